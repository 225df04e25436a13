"""
Identity Registry - one identity record per principal

Owns registration, key/hash updates, self-revocation and the bounded
list of credential references attached to each identity.
"""

import logging
from typing import Optional

from .access_guard import AccessGuard, CallerContext
from .errors import IdentityExistsError, IdentityNotFoundError, UnauthorizedAccessError
from .models import IDENTITIES, BoundedList, Identity, load_optional
from .store import KeyValueStore
from .validator import HASH_LENGTH, PUBLIC_KEY_LENGTH, require_length

logger = logging.getLogger(__name__)


class IdentityRegistry:
    """
    Manages Identity records

    Features:
    - Register exactly one identity per caller
    - Update identity hash and public key while not revoked
    - Append credential references (capacity 10)
    - Revoke (freeze) an identity
    """

    def __init__(self, store: KeyValueStore, guard: Optional[AccessGuard] = None):
        self.store = store
        self.guard = guard or AccessGuard()

    def register(
        self,
        ctx: CallerContext,
        public_key: bytes,
        identity_hash: bytes
    ) -> Identity:
        """
        Register the caller's identity

        Args:
            ctx: Caller and ledger time
            public_key: 33-byte compressed public key
            identity_hash: 32-byte hash of off-chain identity material

        Returns:
            The new Identity
        """
        public_key = require_length(public_key, PUBLIC_KEY_LENGTH, "public_key")
        identity_hash = require_length(identity_hash, HASH_LENGTH, "identity_hash")

        with self.store.transaction() as tx:
            if tx.exists(IDENTITIES, ctx.caller):
                raise IdentityExistsError(f"identity already registered for {ctx.caller}")

            identity = Identity(
                owner=ctx.caller,
                identity_hash=identity_hash,
                public_key=public_key,
                registration_time=ctx.now,
                credentials=BoundedList(),
                revoked=False
            )
            tx.put(IDENTITIES, ctx.caller, identity.to_dict())

        logger.info("Registered identity for %s at %d", ctx.caller, ctx.now)
        return identity

    def update(
        self,
        ctx: CallerContext,
        identity_hash: bytes,
        public_key: bytes
    ) -> Identity:
        """Replace identity hash and public key; other fields are kept"""
        identity_hash = require_length(identity_hash, HASH_LENGTH, "identity_hash")
        public_key = require_length(public_key, PUBLIC_KEY_LENGTH, "public_key")

        with self.store.transaction() as tx:
            current = self.guard.require_owner(tx, ctx)
            updated = current.with_keys(identity_hash, public_key)
            tx.put(IDENTITIES, ctx.caller, updated.to_dict())

        logger.info("Updated identity for %s", ctx.caller)
        return updated

    def append_credential(self, ctx: CallerContext, credential_hash: bytes) -> Identity:
        """
        Attach a credential reference to the caller's identity

        Called by credential issuance inside its own transaction.

        Raises:
            IdentityNotFoundError: caller has no identity
            UnauthorizedAccessError: identity revoked
            CapacityExceededError: identity already holds 10 credentials
        """
        credential_hash = require_length(credential_hash, HASH_LENGTH, "credential_hash")

        with self.store.transaction() as tx:
            current = self.guard.require_owner(tx, ctx)
            updated = current.with_credential(credential_hash)
            tx.put(IDENTITIES, ctx.caller, updated.to_dict())

        logger.debug(
            "Identity %s now holds %d credential(s)", ctx.caller, len(updated.credentials)
        )
        return updated

    def revoke(self, ctx: CallerContext) -> Identity:
        """Permanently freeze the caller's identity"""
        with self.store.transaction() as tx:
            current = self.guard.load_identity(tx, ctx.caller)
            if current is None:
                raise IdentityNotFoundError(f"no identity registered for {ctx.caller}")
            if current.revoked:
                raise UnauthorizedAccessError(f"identity {ctx.caller} is already revoked")
            updated = current.revoked_copy()
            tx.put(IDENTITIES, ctx.caller, updated.to_dict())

        logger.info("Revoked identity for %s", ctx.caller)
        return updated

    # ==================== READS ====================

    def get(self, principal: str) -> Optional[Identity]:
        """Return the identity of `principal`, or None"""
        return load_optional(Identity, self.store.get(IDENTITIES, principal))

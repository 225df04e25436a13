"""
Credential Registry
===================

One record per credential hash. Credentials are issued by the owner of a
live identity, referenced from that identity's credential list, and can
be revoked only by their issuer.
"""

import logging
from typing import Optional

from .access_guard import AccessGuard, CallerContext
from .errors import CredentialExpiredError, InvalidInputError, RecordNotFoundError
from .identity_registry import IdentityRegistry
from .models import CREDENTIALS, Credential, load_optional
from .store import KeyValueStore
from .validator import HASH_LENGTH, require_label, require_length, require_timestamp

logger = logging.getLogger(__name__)


class CredentialRegistry:
    """
    Issues, revokes and checks credentials

    Issuance writes the credential and appends it to the issuer's identity
    in one transaction: if the append fails, the credential is not kept.
    """

    def __init__(
        self,
        store: KeyValueStore,
        identities: IdentityRegistry,
        guard: Optional[AccessGuard] = None
    ):
        self.store = store
        self.identities = identities
        self.guard = guard or identities.guard

    # ==================== ISSUANCE ====================

    def issue(
        self,
        ctx: CallerContext,
        credential_hash: bytes,
        expires_at: int,
        category: str
    ) -> Credential:
        """
        Issue a credential from the caller's identity

        Args:
            ctx: Caller and ledger time
            credential_hash: 32-byte credential hash, globally unique
            expires_at: Ledger time after which the credential is expired
            category: Free-form label (at most 64 characters)

        Returns:
            The new Credential
        """
        credential_hash = require_length(credential_hash, HASH_LENGTH, "credential_hash")
        expires_at = require_timestamp(expires_at)
        category = require_label(category, "category")
        key = credential_hash.hex()

        with self.store.transaction() as tx:
            self.guard.require_owner(tx, ctx)

            if expires_at <= ctx.now:
                raise CredentialExpiredError(
                    f"expires_at {expires_at} is not after current time {ctx.now}"
                )
            if tx.exists(CREDENTIALS, key):
                raise InvalidInputError(f"credential 0x{key} already issued")

            credential = Credential(
                credential_hash=credential_hash,
                issuer=ctx.caller,
                issued_at=ctx.now,
                expires_at=expires_at,
                category=category,
                revoked=False
            )
            tx.put(CREDENTIALS, key, credential.to_dict())
            self.identities.append_credential(ctx, credential_hash)

        logger.info("Issued credential 0x%s (%s) by %s", key, category, ctx.caller)
        return credential

    # ==================== REVOCATION ====================

    def revoke(self, ctx: CallerContext, credential_hash: bytes) -> Credential:
        """Revoke a credential; only its issuer may do this"""
        credential_hash = require_length(credential_hash, HASH_LENGTH, "credential_hash")
        key = credential_hash.hex()

        with self.store.transaction() as tx:
            current = load_optional(Credential, tx.get(CREDENTIALS, key))
            if current is None:
                raise RecordNotFoundError(f"credential 0x{key} not found")
            self.guard.require_issuer(current, ctx)

            updated = current.revoked_copy()
            tx.put(CREDENTIALS, key, updated.to_dict())

        logger.info("Revoked credential 0x%s", key)
        return updated

    # ==================== READS ====================

    def get(self, credential_hash: bytes) -> Optional[Credential]:
        if not isinstance(credential_hash, (bytes, bytearray)) or len(credential_hash) != HASH_LENGTH:
            return None
        return load_optional(Credential, self.store.get(CREDENTIALS, bytes(credential_hash).hex()))

    def is_valid(self, credential_hash: bytes, now: int) -> bool:
        """True iff the credential exists, has not expired and is not revoked"""
        credential = self.get(credential_hash)
        if credential is None:
            return False
        return credential.is_valid_at(now)

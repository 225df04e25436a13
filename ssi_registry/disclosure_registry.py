"""
Disclosure Registry
===================

Two-phase workflow for attribute disclosure:

1. initiate: a requester opens a request naming the attributes it wants
2. approve: an identity owner approves it with a proof

The proof is the approver's own identity hash. It is compared by exact
byte equality; no cryptographic proof system is involved.
"""

import logging
from typing import List, Optional

from .access_guard import AccessGuard, CallerContext
from .errors import InvalidInputError, InvalidVerificationProofError, RecordNotFoundError
from .models import DISCLOSURES, DisclosureRequest, load_optional
from .store import KeyValueStore
from .validator import (
    HASH_LENGTH,
    PROOF_LENGTH,
    ZERO_PROOF,
    proofs_match,
    require_attributes,
    require_length,
)

logger = logging.getLogger(__name__)


class DisclosureRegistry:
    """Initiates, approves and verifies disclosure requests"""

    def __init__(self, store: KeyValueStore, guard: Optional[AccessGuard] = None):
        self.store = store
        self.guard = guard or AccessGuard()

    def initiate(
        self,
        ctx: CallerContext,
        request_id: bytes,
        attributes: List[str]
    ) -> DisclosureRequest:
        """
        Open a disclosure request

        Args:
            ctx: Caller (the requester) and ledger time
            request_id: 32-byte identifier, must be unused
            attributes: Up to 5 attribute labels of at most 64 characters

        Returns:
            The unapproved DisclosureRequest
        """
        request_id = require_length(request_id, HASH_LENGTH, "request_id")
        attributes = require_attributes(attributes)
        key = request_id.hex()

        with self.store.transaction() as tx:
            if tx.exists(DISCLOSURES, key):
                raise InvalidInputError(f"disclosure request 0x{key} already exists")

            request = DisclosureRequest(
                request_id=request_id,
                requester=ctx.caller,
                requested_attributes=tuple(attributes),
                approved=False,
                proof=ZERO_PROOF
            )
            tx.put(DISCLOSURES, key, request.to_dict())

        logger.info(
            "Disclosure request 0x%s opened by %s for %s", key, ctx.caller, attributes
        )
        return request

    def approve(
        self,
        ctx: CallerContext,
        request_id: bytes,
        proof: bytes
    ) -> DisclosureRequest:
        """
        Approve a disclosure request as an identity owner

        The proof must equal the caller's registered identity hash.

        Raises:
            InvalidInputError: bad lengths
            UnauthorizedAccessError: request missing, or identity revoked
            IdentityNotFoundError: caller has no identity
            InvalidVerificationProofError: proof does not match
        """
        request_id = require_length(request_id, HASH_LENGTH, "request_id")
        proof = require_length(proof, PROOF_LENGTH, "proof")
        key = request_id.hex()

        with self.store.transaction() as tx:
            current = load_optional(DisclosureRequest, tx.get(DISCLOSURES, key))
            if current is None:
                raise RecordNotFoundError(f"disclosure request 0x{key} not found")

            identity = self.guard.require_owner(tx, ctx)
            if not proofs_match(identity.identity_hash, proof):
                logger.debug("Proof mismatch approving 0x%s by %s", key, ctx.caller)
                raise InvalidVerificationProofError(
                    "proof does not match the approver's identity hash"
                )

            updated = current.approved_copy(proof)
            tx.put(DISCLOSURES, key, updated.to_dict())

        logger.info("Disclosure request 0x%s approved by %s", key, ctx.caller)
        return updated

    # ==================== READS ====================

    def get(self, request_id: bytes) -> Optional[DisclosureRequest]:
        if not isinstance(request_id, (bytes, bytearray)) or len(request_id) != HASH_LENGTH:
            return None
        return load_optional(DisclosureRequest, self.store.get(DISCLOSURES, bytes(request_id).hex()))

    def verify(self, request_id: bytes, proof: bytes) -> bool:
        """True iff the request exists, is approved and carries exactly `proof`"""
        request = self.get(request_id)
        if request is None or not request.approved:
            return False
        if not isinstance(proof, (bytes, bytearray)):
            return False
        return proofs_match(request.proof, bytes(proof))

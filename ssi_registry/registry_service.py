"""
Registry Integration Service
============================

Single entry point exposing the registry's operation surface:

- register / update / revoke_identity
- issue_credential / revoke_credential
- initiate_disclosure / approve_disclosure
- read-only lookups and verification

Each mutating call receives the verified caller identifier and runs as
one all-or-nothing transaction against the shared store.
"""

import logging
from typing import Any, Dict, List, Optional

from .access_guard import AccessGuard, CallerContext, SystemClock
from .config import RegistrySettings, settings as default_settings
from .credential_registry import CredentialRegistry
from .disclosure_registry import DisclosureRegistry
from .identity_registry import IdentityRegistry
from .models import CREDENTIALS, DISCLOSURES, IDENTITIES, Credential, DisclosureRequest, Identity
from .store import KeyValueStore, MemoryStore, SQLiteStore

logger = logging.getLogger(__name__)


class RegistryService:
    """
    Main service class for registry operations

    Args:
        store: Transactional store; built from settings when omitted
        clock: Ledger clock exposing now(); SystemClock when omitted
        config: Settings used for the store and the access guard
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock=None,
        config: Optional[RegistrySettings] = None
    ):
        self.config = config or default_settings
        self.store = store or self._build_store(self.config)
        self.clock = clock or SystemClock()
        self.guard = AccessGuard(self.config.SIGNING_PREFIX, self.config.SIGNATURE_WINDOW)

        self.identities = IdentityRegistry(self.store, self.guard)
        self.credentials = CredentialRegistry(self.store, self.identities, self.guard)
        self.disclosures = DisclosureRegistry(self.store, self.guard)

    @staticmethod
    def _build_store(config: RegistrySettings) -> KeyValueStore:
        if config.DB_PATH:
            logger.info("Using SQLite store at %s", config.DB_PATH)
            return SQLiteStore(config.DB_PATH)
        return MemoryStore()

    def _context(self, caller: str) -> CallerContext:
        return CallerContext(caller=caller, now=self.clock.now())

    # ==================== IDENTITY OPERATIONS ====================

    def register(self, caller: str, public_key: bytes, identity_hash: bytes) -> Identity:
        return self.identities.register(self._context(caller), public_key, identity_hash)

    def update(self, caller: str, identity_hash: bytes, public_key: bytes) -> Identity:
        return self.identities.update(self._context(caller), identity_hash, public_key)

    def revoke_identity(self, caller: str) -> Identity:
        return self.identities.revoke(self._context(caller))

    # ==================== CREDENTIAL OPERATIONS ====================

    def issue_credential(
        self,
        caller: str,
        credential_hash: bytes,
        expires_at: int,
        category: str
    ) -> Credential:
        return self.credentials.issue(
            self._context(caller), credential_hash, expires_at, category
        )

    def revoke_credential(self, caller: str, credential_hash: bytes) -> Credential:
        return self.credentials.revoke(self._context(caller), credential_hash)

    # ==================== DISCLOSURE OPERATIONS ====================

    def initiate_disclosure(
        self,
        caller: str,
        request_id: bytes,
        attributes: List[str]
    ) -> DisclosureRequest:
        return self.disclosures.initiate(self._context(caller), request_id, attributes)

    def approve_disclosure(self, caller: str, request_id: bytes, proof: bytes) -> DisclosureRequest:
        return self.disclosures.approve(self._context(caller), request_id, proof)

    # ==================== READS ====================

    def get_identity(self, principal: str) -> Optional[Identity]:
        return self.identities.get(principal)

    def get_credential(self, credential_hash: bytes) -> Optional[Credential]:
        return self.credentials.get(credential_hash)

    def get_disclosure(self, request_id: bytes) -> Optional[DisclosureRequest]:
        return self.disclosures.get(request_id)

    def verify_disclosure(self, request_id: bytes, proof: bytes) -> bool:
        return self.disclosures.verify(request_id, proof)

    def is_credential_valid(self, credential_hash: bytes) -> bool:
        return self.credentials.is_valid(credential_hash, self.clock.now())

    # ==================== STATISTICS ====================

    def get_statistics(self) -> Dict[str, Any]:
        """Counts over committed records"""
        identities = list(self.store.values(IDENTITIES))
        credentials = list(self.store.values(CREDENTIALS))
        disclosures = list(self.store.values(DISCLOSURES))
        now = self.clock.now()

        revoked_credentials = sum(1 for c in credentials if c["revoked"])
        expired_credentials = sum(
            1 for c in credentials if not c["revoked"] and c["expiresAt"] <= now
        )

        return {
            "identities": {
                "total": len(identities),
                "revoked": sum(1 for i in identities if i["revoked"])
            },
            "credentials": {
                "total": len(credentials),
                "revoked": revoked_credentials,
                "expired": expired_credentials,
                "valid": len(credentials) - revoked_credentials - expired_credentials
            },
            "disclosures": {
                "total": len(disclosures),
                "approved": sum(1 for d in disclosures if d["approved"])
            }
        }

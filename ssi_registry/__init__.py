"""
Self-Sovereign Identity Registry
================================

Registry for self-sovereign identities, the credentials issued against
them, and third-party requests to disclose identity attributes.

Components:
- Validator: pure checks on raw inputs
- IdentityRegistry: one identity per principal, bounded credential list
- CredentialRegistry: issuance, expiry and revocation of credentials
- DisclosureRegistry: initiate/approve workflow with proof verification
- AccessGuard: caller context and authorization checks
- RegistryService: the operation surface over a transactional store
"""

from .errors import (
    ErrorCode,
    RegistryError,
    UnauthorizedAccessError,
    RecordNotFoundError,
    CapacityExceededError,
    IdentityExistsError,
    IdentityNotFoundError,
    InvalidVerificationProofError,
    CredentialExpiredError,
    InvalidInputError,
)
from .models import BoundedList, Identity, Credential, DisclosureRequest
from .store import KeyValueStore, MemoryStore, SQLiteStore
from .access_guard import AccessGuard, CallerContext, ManualClock, SystemClock
from .identity_registry import IdentityRegistry
from .credential_registry import CredentialRegistry
from .disclosure_registry import DisclosureRegistry
from .key_manager import KeyManager, KeyPair
from .registry_service import RegistryService

__version__ = "1.0.0"
__all__ = [
    # Errors
    "ErrorCode",
    "RegistryError",
    "UnauthorizedAccessError",
    "RecordNotFoundError",
    "CapacityExceededError",
    "IdentityExistsError",
    "IdentityNotFoundError",
    "InvalidVerificationProofError",
    "CredentialExpiredError",
    "InvalidInputError",

    # Records
    "BoundedList",
    "Identity",
    "Credential",
    "DisclosureRequest",

    # Storage
    "KeyValueStore",
    "MemoryStore",
    "SQLiteStore",

    # Access
    "AccessGuard",
    "CallerContext",
    "ManualClock",
    "SystemClock",

    # Registries
    "IdentityRegistry",
    "CredentialRegistry",
    "DisclosureRegistry",

    # Keys
    "KeyManager",
    "KeyPair",

    # Service
    "RegistryService"
]

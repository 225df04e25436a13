"""
Registry Errors
===============

Error taxonomy shared by every registry operation.

Each error carries a stable numeric code so callers on the other side of
an RPC or HTTP boundary can match on it without parsing messages.
"""

from enum import IntEnum
from typing import Any, Dict


class ErrorCode(IntEnum):
    """Stable numeric error codes"""
    UNAUTHORIZED_ACCESS = 100
    IDENTITY_EXISTS = 101
    IDENTITY_NOT_FOUND = 102
    INVALID_VERIFICATION_PROOF = 103
    CREDENTIAL_EXPIRED = 104
    INVALID_INPUT = 105


class RegistryError(Exception):
    """Base class for all registry failures"""

    code: ErrorCode = ErrorCode.INVALID_INPUT
    name: str = "RegistryError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.name)
        self.message = message or self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": int(self.code),
            "error": self.name,
            "detail": self.message
        }


class UnauthorizedAccessError(RegistryError):
    """Caller is not the owner/issuer, or the identity is revoked"""
    code = ErrorCode.UNAUTHORIZED_ACCESS
    name = "UnauthorizedAccess"


class RecordNotFoundError(UnauthorizedAccessError):
    """
    A record the caller wanted to act on does not exist.

    Reported with the UnauthorizedAccess code for compatibility; the
    subclass keeps the real cause visible to Python callers.
    """


class CapacityExceededError(UnauthorizedAccessError):
    """A bounded collection is already full (UnauthorizedAccess code)"""


class IdentityExistsError(RegistryError):
    code = ErrorCode.IDENTITY_EXISTS
    name = "IdentityExists"


class IdentityNotFoundError(RegistryError):
    code = ErrorCode.IDENTITY_NOT_FOUND
    name = "IdentityNotFound"


class InvalidVerificationProofError(RegistryError):
    code = ErrorCode.INVALID_VERIFICATION_PROOF
    name = "InvalidVerificationProof"


class CredentialExpiredError(RegistryError):
    code = ErrorCode.CREDENTIAL_EXPIRED
    name = "CredentialExpired"


class InvalidInputError(RegistryError):
    code = ErrorCode.INVALID_INPUT
    name = "InvalidInput"

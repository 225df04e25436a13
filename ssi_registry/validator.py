"""
Validator - pure input checks used before any record is loaded.

No state. Every check either returns the (normalized) value or raises
InvalidInputError.
"""

import hmac
from typing import Any, List, Sequence

from .errors import InvalidInputError

HASH_LENGTH = 32
PUBLIC_KEY_LENGTH = 33
PROOF_LENGTH = 32

MIN_TIMESTAMP = 1
MAX_TIMESTAMP = 9_999_999_999

MAX_LABEL_LENGTH = 64
MAX_ATTRIBUTES = 5

ZERO_PROOF = bytes(PROOF_LENGTH)


def require_length(value: Any, length: int, field: str) -> bytes:
    """
    Check that value is a byte string of exactly `length` bytes

    Args:
        value: Candidate value (bytes, bytearray or memoryview)
        length: Required length in bytes
        field: Field name used in the error message

    Returns:
        The value as immutable bytes
    """
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"{field} must be bytes, got {type(value).__name__}")
    value = bytes(value)
    if len(value) != length:
        raise InvalidInputError(f"{field} must be {length} bytes, got {len(value)}")
    return value


def require_timestamp(value: Any, field: str = "expires_at") -> int:
    """Check that value is an integer ledger time in the accepted range"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be an integer")
    if not MIN_TIMESTAMP <= value <= MAX_TIMESTAMP:
        raise InvalidInputError(
            f"{field} must be within [{MIN_TIMESTAMP}, {MAX_TIMESTAMP}], got {value}"
        )
    return value


def require_label(value: Any, field: str) -> str:
    """Check a free-form label: str of at most MAX_LABEL_LENGTH characters"""
    if not isinstance(value, str):
        raise InvalidInputError(f"{field} must be a string")
    if len(value) > MAX_LABEL_LENGTH:
        raise InvalidInputError(
            f"{field} exceeds {MAX_LABEL_LENGTH} characters ({len(value)})"
        )
    return value


def require_attributes(values: Any) -> List[str]:
    """Check the requested attribute list of a disclosure request"""
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise InvalidInputError("attributes must be a sequence of strings")
    if len(values) > MAX_ATTRIBUTES:
        raise InvalidInputError(
            f"at most {MAX_ATTRIBUTES} attributes allowed, got {len(values)}"
        )
    return [require_label(v, f"attributes[{i}]") for i, v in enumerate(values)]


def proofs_match(expected: bytes, submitted: bytes) -> bool:
    """Constant-time byte equality; differing lengths never match"""
    if len(expected) != len(submitted):
        return False
    return hmac.compare_digest(bytes(expected), bytes(submitted))


def parse_hex(value: Any, length: int, field: str) -> bytes:
    """
    Decode a hex string (optionally 0x-prefixed) into exactly `length` bytes

    Used at the HTTP boundary, where byte fields travel as hex.
    """
    if not isinstance(value, str):
        raise InvalidInputError(f"{field} must be a hex string")
    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise InvalidInputError(f"{field} is not valid hex")
    return require_length(raw, length, field)

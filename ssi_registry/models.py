"""
Registry Records
================

Immutable record values for the three registries:

- Identity: one per principal
- Credential: one per credential hash
- DisclosureRequest: one per request identifier

Records are never modified in place. The update helpers return a new
record with only the named fields changed, so every other field is
carried over untouched.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Optional, Tuple

from .errors import CapacityExceededError
from .validator import ZERO_PROOF

IDENTITY_CREDENTIAL_CAPACITY = 10

# Store namespaces
IDENTITIES = "identities"
CREDENTIALS = "credentials"
DISCLOSURES = "disclosures"


class BoundedList:
    """
    Immutable ordered sequence with a hard capacity

    append() returns a new BoundedList; appending to a full list raises
    CapacityExceededError instead of truncating.
    """

    __slots__ = ("_items", "capacity")

    def __init__(self, items=(), capacity: int = IDENTITY_CREDENTIAL_CAPACITY):
        items = tuple(items)
        if len(items) > capacity:
            raise CapacityExceededError(
                f"{len(items)} items exceed capacity {capacity}"
            )
        self._items: Tuple = items
        self.capacity = capacity

    def append(self, item) -> "BoundedList":
        if len(self._items) >= self.capacity:
            raise CapacityExceededError(f"list is full (capacity {self.capacity})")
        return BoundedList(self._items + (item,), self.capacity)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __getitem__(self, index):
        return self._items[index]

    def __contains__(self, item) -> bool:
        return item in self._items

    def __eq__(self, other) -> bool:
        if isinstance(other, BoundedList):
            return self._items == other._items and self.capacity == other.capacity
        if isinstance(other, (list, tuple)):
            return list(self._items) == list(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._items, self.capacity))

    def __repr__(self) -> str:
        return f"BoundedList({list(self._items)!r}, capacity={self.capacity})"


def _hex(value: bytes) -> str:
    return "0x" + value.hex()


def _unhex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


@dataclass(frozen=True)
class Identity:
    """A principal's registered identity"""
    owner: str
    identity_hash: bytes
    public_key: bytes
    registration_time: int
    credentials: BoundedList = field(default_factory=BoundedList)
    revoked: bool = False

    # ==================== FIELD UPDATES ====================

    def with_keys(self, identity_hash: bytes, public_key: bytes) -> "Identity":
        """Replace identity hash and public key, keep everything else"""
        return replace(self, identity_hash=identity_hash, public_key=public_key)

    def with_credential(self, credential_hash: bytes) -> "Identity":
        """Append a credential reference (raises CapacityExceededError when full)"""
        return replace(self, credentials=self.credentials.append(credential_hash))

    def revoked_copy(self) -> "Identity":
        return replace(self, revoked=True)

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "identityHash": _hex(self.identity_hash),
            "publicKey": _hex(self.public_key),
            "registrationTime": self.registration_time,
            "credentials": [_hex(c) for c in self.credentials],
            "revoked": self.revoked
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            owner=data["owner"],
            identity_hash=_unhex(data["identityHash"]),
            public_key=_unhex(data["publicKey"]),
            registration_time=data["registrationTime"],
            credentials=BoundedList(_unhex(c) for c in data.get("credentials", [])),
            revoked=data.get("revoked", False)
        )


@dataclass(frozen=True)
class Credential:
    """An attestation issued by an identity owner"""
    credential_hash: bytes
    issuer: str
    issued_at: int
    expires_at: int
    category: str
    revoked: bool = False

    def is_valid_at(self, now: int) -> bool:
        """Valid iff not yet expired and not revoked"""
        return now < self.expires_at and not self.revoked

    def revoked_copy(self) -> "Credential":
        return replace(self, revoked=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credentialHash": _hex(self.credential_hash),
            "issuer": self.issuer,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
            "category": self.category,
            "revoked": self.revoked
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            credential_hash=_unhex(data["credentialHash"]),
            issuer=data["issuer"],
            issued_at=data["issuedAt"],
            expires_at=data["expiresAt"],
            category=data["category"],
            revoked=data.get("revoked", False)
        )


@dataclass(frozen=True)
class DisclosureRequest:
    """
    A third party's request for attribute disclosure

    Moves one way from unapproved to approved. The proof stays all zeros
    until an identity owner approves.
    """
    request_id: bytes
    requester: str
    requested_attributes: Tuple[str, ...] = ()
    approved: bool = False
    proof: bytes = ZERO_PROOF

    def approved_copy(self, proof: bytes) -> "DisclosureRequest":
        """Mark approved with the submitted proof; attributes are kept"""
        return replace(self, approved=True, proof=proof)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": _hex(self.request_id),
            "requester": self.requester,
            "requestedAttributes": list(self.requested_attributes),
            "approved": self.approved,
            "proof": _hex(self.proof)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisclosureRequest":
        return cls(
            request_id=_unhex(data["requestId"]),
            requester=data["requester"],
            requested_attributes=tuple(data.get("requestedAttributes", [])),
            approved=data.get("approved", False),
            proof=_unhex(data.get("proof", "")) or ZERO_PROOF
        )


def load_optional(cls, data: Optional[Dict[str, Any]]):
    """Build a record from a stored dict, passing None through"""
    if data is None:
        return None
    return cls.from_dict(data)

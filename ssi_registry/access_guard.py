"""
Access Guard
============

Derives the acting principal for an invocation and answers the two
authorization questions every mutation asks:

- is the caller the owner of a live (non-revoked) identity?
- is the caller the issuer of this credential?

The caller and the ledger time are passed explicitly as a CallerContext,
so registries can be exercised without a running host environment.
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address, to_checksum_address

from .errors import (
    IdentityNotFoundError,
    UnauthorizedAccessError,
)
from .models import IDENTITIES, Credential, Identity, load_optional
from .store import Transaction

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_WINDOW = 300
MAX_NONCE_LENGTH = 128


# ==================== LEDGER CLOCKS ====================

class SystemClock:
    """Ledger time from the wall clock, in whole seconds, never going back"""

    def __init__(self):
        self._last = 0

    def now(self) -> int:
        self._last = max(self._last, int(time.time()))
        return self._last


class ManualClock:
    """Ledger time that only moves when told to"""

    def __init__(self, start: int = 1):
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, value: int) -> None:
        if value < self._now:
            raise ValueError(f"ledger time cannot move backwards ({value} < {self._now})")
        self._now = value

    def advance(self, seconds: int = 1) -> int:
        self.set(self._now + seconds)
        return self._now


@dataclass(frozen=True)
class CallerContext:
    """Verified caller identifier and ledger time of one invocation"""
    caller: str
    now: int


# ==================== GUARD ====================

class AccessGuard:
    """Authorization checks shared by the registries"""

    def __init__(
        self,
        signing_prefix: str = "ssi-registry",
        signature_window: int = DEFAULT_SIGNATURE_WINDOW
    ):
        self.signing_prefix = signing_prefix
        self.signature_window = signature_window
        self._seen_nonces: Dict[Tuple[str, str], int] = {}
        self._nonce_lock = threading.Lock()

    def load_identity(self, tx: Transaction, principal: str) -> Optional[Identity]:
        return load_optional(Identity, tx.get(IDENTITIES, principal))

    def require_owner(self, tx: Transaction, ctx: CallerContext) -> Identity:
        """
        Load the caller's identity and make sure it can still act

        Raises:
            IdentityNotFoundError: caller never registered
            UnauthorizedAccessError: caller's identity is revoked
        """
        identity = self.load_identity(tx, ctx.caller)
        if identity is None:
            raise IdentityNotFoundError(f"no identity registered for {ctx.caller}")
        if identity.revoked:
            logger.warning("Revoked identity %s attempted a mutation", ctx.caller)
            raise UnauthorizedAccessError(f"identity {ctx.caller} is revoked")
        return identity

    def require_issuer(self, credential: Credential, ctx: CallerContext) -> None:
        if credential.issuer != ctx.caller:
            logger.warning(
                "%s is not the issuer of credential 0x%s",
                ctx.caller, credential.credential_hash.hex()
            )
            raise UnauthorizedAccessError("caller is not the credential issuer")

    # ==================== CALLER AUTHENTICATION ====================

    def operation_message(
        self,
        operation: str,
        address: str,
        digest: str,
        nonce: str,
        issued_at: int
    ) -> str:
        """Message a caller signs to invoke `operation` with one specific request"""
        return (
            f"{self.signing_prefix}:{operation}:{address.lower()}"
            f":{digest}:{nonce}:{issued_at}"
        )

    def authenticate(
        self,
        address: str,
        operation: str,
        signature: str,
        digest: str,
        nonce: str,
        issued_at: int,
        now: int
    ) -> str:
        """
        Verify a signed request and return the checksummed caller address

        The signature covers the operation, the body digest, a nonce and the
        time the request was issued. Each nonce is accepted once per caller
        while the request is inside the freshness window.

        Args:
            address: Claimed caller address
            operation: Operation name that was signed
            signature: Hex encoded EIP-191 signature
            digest: request_digest() of the request body
            nonce: Caller-chosen single-use value
            issued_at: Ledger time the caller signed at
            now: Current ledger time

        Returns:
            The recovered address, which becomes the principal identifier
        """
        address = normalize_principal(address)
        if not nonce or len(nonce) > MAX_NONCE_LENGTH:
            raise UnauthorizedAccessError("nonce missing or too long")
        if abs(now - issued_at) > self.signature_window:
            raise UnauthorizedAccessError(
                f"request issued at {issued_at} is outside the {self.signature_window}s window"
            )

        message = self.operation_message(operation, address, digest, nonce, issued_at)
        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            raise UnauthorizedAccessError(f"malformed signature: {e}")
        if recovered != address:
            logger.warning("Signature for %s recovered %s", address, recovered)
            raise UnauthorizedAccessError("signature does not match caller and request")

        with self._nonce_lock:
            self._forget_stale_nonces(now)
            key = (address, nonce)
            if key in self._seen_nonces:
                logger.warning("Replayed nonce %s from %s", nonce, address)
                raise UnauthorizedAccessError("nonce already used")
            self._seen_nonces[key] = issued_at
        return recovered

    def _forget_stale_nonces(self, now: int) -> None:
        # a nonce older than the window fails the freshness check anyway
        cutoff = now - self.signature_window
        for key in [k for k, issued in self._seen_nonces.items() if issued < cutoff]:
            del self._seen_nonces[key]


def request_digest(body: Optional[Dict[str, Any]]) -> str:
    """SHA-256 hex digest of the canonical JSON form of a request body"""
    canonical = json.dumps(body or {}, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode()).hexdigest()


def normalize_principal(address: str) -> str:
    """Checksummed form of an Ethereum address; anything else is rejected"""
    if not isinstance(address, str) or not is_address(address):
        raise UnauthorizedAccessError(f"caller {address!r} is not a valid address")
    return to_checksum_address(address)

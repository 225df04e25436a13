"""
Key Manager - secp256k1 keys for registry principals

Supports:
- Generating principals (Ethereum accounts, the address is the principal id)
- 33-byte compressed public keys for identity registration
- Identity hashes over off-chain identity material
- Signing requests checked by AccessGuard.authenticate
"""

import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from eth_account import Account
from eth_account.messages import encode_defunct

from .access_guard import AccessGuard, request_digest


@dataclass
class KeyPair:
    """A principal's signing key"""
    address: str          # Checksummed Ethereum address, the principal id
    private_key: str      # Hex with 0x prefix; never leaves this process
    public_key: bytes     # 33-byte SEC1 compressed point

    @property
    def public_key_hex(self) -> str:
        return "0x" + self.public_key.hex()


def compressed_public_key(private_key: str) -> bytes:
    """
    Derive the 33-byte compressed secp256k1 public key

    Args:
        private_key: Hex encoded private key (with or without 0x)

    Returns:
        SEC1 compressed point (0x02/0x03 prefix + 32-byte X)
    """
    secret = int(private_key[2:] if private_key.startswith("0x") else private_key, 16)
    key = ec.derive_private_key(secret, ec.SECP256K1())
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint
    )


def identity_hash(material: Dict[str, Any]) -> bytes:
    """SHA-256 over canonical JSON of off-chain identity material"""
    canonical = json.dumps(material, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode()).digest()


class KeyManager:
    """
    Manages principal keys

    Features:
    - Generate or import secp256k1 keys
    - Sign requests for the HTTP surface
    """

    def __init__(self, signing_prefix: str = "ssi-registry"):
        self.guard = AccessGuard(signing_prefix)
        self._keys: Dict[str, KeyPair] = {}

    def generate(self) -> KeyPair:
        """Create a fresh principal"""
        account = Account.create()
        return self._store(account.address, account.key.hex())

    def import_key(self, private_key: str) -> KeyPair:
        """Load an existing private key (hex with 0x prefix)"""
        account = Account.from_key(private_key)
        return self._store(account.address, private_key)

    def _store(self, address: str, private_key: str) -> KeyPair:
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        keypair = KeyPair(
            address=address,
            private_key=private_key,
            public_key=compressed_public_key(private_key)
        )
        self._keys[address.lower()] = keypair
        return keypair

    def get_key(self, address: str) -> Optional[KeyPair]:
        return self._keys.get(address.lower())

    def sign_request(
        self,
        address: str,
        operation: str,
        body: Optional[Dict[str, Any]],
        issued_at: int,
        nonce: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Sign one request to `operation` on behalf of `address`

        Args:
            address: Caller address (key must be known to this manager)
            operation: Operation name
            body: JSON body that will be sent, or None
            issued_at: Ledger time of signing
            nonce: Single-use value; a random one is generated when omitted

        Returns:
            The X-Caller / X-Signature / X-Nonce / X-Issued-At headers
        """
        keypair = self.get_key(address)
        if not keypair:
            raise ValueError(f"Key not found: {address}")

        nonce = nonce or secrets.token_hex(16)
        message = self.guard.operation_message(
            operation, keypair.address, request_digest(body), nonce, issued_at
        )
        signed = Account.sign_message(encode_defunct(text=message), private_key=keypair.private_key)
        return {
            "X-Caller": keypair.address,
            "X-Signature": signed.signature.hex(),
            "X-Nonce": nonce,
            "X-Issued-At": str(issued_at)
        }

"""
Registry Service Tests
======================

End-to-end flows through the operation surface, plus key management and
caller authentication.
"""

import pytest

from ssi_registry import (
    CredentialExpiredError,
    ErrorCode,
    IdentityExistsError,
    InvalidVerificationProofError,
    KeyManager,
    ManualClock,
    MemoryStore,
    RegistryService,
    SQLiteStore,
    UnauthorizedAccessError,
)
from ssi_registry.access_guard import (
    AccessGuard,
    SystemClock,
    normalize_principal,
    request_digest,
)
from ssi_registry.config import RegistrySettings
from ssi_registry.key_manager import compressed_public_key, identity_hash

NOW = 1_700_000_000


class TestRegistryService:
    """Scenarios through RegistryService"""

    def setup_method(self):
        self.clock = ManualClock(start=1_700_000_000)
        self.service = RegistryService(store=MemoryStore(), clock=self.clock)
        self.key_manager = KeyManager()
        self.alice = self.key_manager.generate()
        self.bob = self.key_manager.generate()
        self.alice_hash = identity_hash({"name": "Alice", "dob": "1990-01-01"})

    def test_scenario_a_register_once(self):
        identity = self.service.register(
            self.alice.address, self.alice.public_key, b"\xaa" * 32
        )
        assert identity.registration_time == 1_700_000_000

        with pytest.raises(IdentityExistsError) as exc:
            self.service.register(self.alice.address, self.alice.public_key, b"\xaa" * 32)
        assert exc.value.code == ErrorCode.IDENTITY_EXISTS

    def test_scenario_b_issue_and_revoke(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        self.service.register(self.bob.address, self.bob.public_key, b"\xbb" * 32)
        now = self.clock.now()

        credential = self.service.issue_credential(
            self.alice.address, b"\xbb" * 32, now + 100, "diploma"
        )
        assert credential.issuer == self.alice.address
        assert self.service.is_credential_valid(b"\xbb" * 32)

        with pytest.raises(UnauthorizedAccessError) as exc:
            self.service.revoke_credential(self.bob.address, b"\xbb" * 32)
        assert exc.value.code == ErrorCode.UNAUTHORIZED_ACCESS

        self.service.revoke_credential(self.alice.address, b"\xbb" * 32)
        assert self.service.is_credential_valid(b"\xbb" * 32) is False
        assert self.service.get_credential(b"\xbb" * 32).revoked is True

    def test_credential_expires_with_ledger_time(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        now = self.clock.now()
        self.service.issue_credential(self.alice.address, b"\x01" * 32, now + 100, "membership")

        self.clock.advance(99)
        assert self.service.is_credential_valid(b"\x01" * 32)
        self.clock.advance(1)
        assert not self.service.is_credential_valid(b"\x01" * 32)

    def test_scenario_c_disclosure(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        request_id = b"\xcc" * 32

        self.service.initiate_disclosure(self.bob.address, request_id, ["name"])

        with pytest.raises(InvalidVerificationProofError):
            self.service.approve_disclosure(self.alice.address, request_id, b"\x00" * 32)
        assert self.service.get_disclosure(request_id).approved is False
        assert not self.service.verify_disclosure(request_id, self.alice_hash)

        self.service.approve_disclosure(self.alice.address, request_id, self.alice_hash)
        assert self.service.verify_disclosure(request_id, self.alice_hash)

    def test_scenario_d_expiry_equal_to_now(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)

        with pytest.raises(CredentialExpiredError):
            self.service.issue_credential(
                self.alice.address, b"\xdd" * 32, self.clock.now(), "diploma"
            )

    def test_update_and_revoke_identity(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        rotated = self.key_manager.generate()

        updated = self.service.update(self.alice.address, b"\xee" * 32, rotated.public_key)
        assert updated.public_key == rotated.public_key

        self.service.revoke_identity(self.alice.address)
        with pytest.raises(UnauthorizedAccessError):
            self.service.update(self.alice.address, self.alice_hash, self.alice.public_key)
        assert self.service.get_identity(self.alice.address).identity_hash == b"\xee" * 32

    def test_reads_on_absent_records(self):
        assert self.service.get_identity("0xnobody") is None
        assert self.service.get_credential(b"\x42" * 32) is None
        assert self.service.get_disclosure(b"\x42" * 32) is None
        assert self.service.is_credential_valid(b"\x42" * 32) is False
        assert self.service.verify_disclosure(b"\x42" * 32, b"\x42" * 32) is False

    def test_statistics(self):
        self.service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        self.service.register(self.bob.address, self.bob.public_key, b"\xbb" * 32)
        now = self.clock.now()
        self.service.issue_credential(self.alice.address, b"\x01" * 32, now + 10, "a")
        self.service.issue_credential(self.alice.address, b"\x02" * 32, now + 1000, "b")
        self.service.issue_credential(self.bob.address, b"\x03" * 32, now + 1000, "c")
        self.service.revoke_credential(self.bob.address, b"\x03" * 32)
        self.service.revoke_identity(self.bob.address)
        self.service.initiate_disclosure("verifier", b"\xcc" * 32, ["name"])
        self.clock.advance(20)

        stats = self.service.get_statistics()

        assert stats["identities"] == {"total": 2, "revoked": 1}
        assert stats["credentials"] == {"total": 3, "revoked": 1, "expired": 1, "valid": 1}
        assert stats["disclosures"] == {"total": 1, "approved": 0}

    def test_sqlite_backed_service(self, tmp_path):
        config = RegistrySettings(DB_PATH=tmp_path / "registry.db")
        service = RegistryService(clock=self.clock, config=config)
        assert isinstance(service.store, SQLiteStore)

        service.register(self.alice.address, self.alice.public_key, self.alice_hash)
        for i in range(10):
            service.issue_credential(self.alice.address, bytes([i]) * 32, self.clock.now() + 5, "x")
        with pytest.raises(UnauthorizedAccessError):
            service.issue_credential(self.alice.address, b"\xfe" * 32, self.clock.now() + 5, "x")

        reopened = RegistryService(clock=self.clock, config=config)
        assert len(reopened.get_identity(self.alice.address).credentials) == 10
        assert reopened.get_credential(b"\xfe" * 32) is None


class TestClocks:
    """Ledger clocks never go backwards"""

    def test_manual_clock(self):
        clock = ManualClock(start=10)
        assert clock.advance(5) == 15
        clock.set(15)
        with pytest.raises(ValueError):
            clock.set(14)

    def test_system_clock_is_monotonic(self):
        clock = SystemClock()
        first = clock.now()
        assert clock.now() >= first > 0


class TestKeyManager:
    """Principal keys and caller authentication"""

    def setup_method(self):
        self.key_manager = KeyManager(signing_prefix="test")
        self.guard = AccessGuard(signing_prefix="test")

    def test_generate(self):
        keypair = self.key_manager.generate()

        assert keypair.address.startswith("0x")
        assert len(keypair.public_key) == 33
        assert keypair.public_key[0] in (2, 3)
        assert self.key_manager.get_key(keypair.address.lower()) is keypair

    def test_import_known_key(self):
        # Hardhat development account #0
        keypair = self.key_manager.import_key(
            "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
        )

        assert keypair.address == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert keypair.public_key == compressed_public_key(keypair.private_key)

    def test_identity_hash_is_canonical(self):
        assert identity_hash({"a": 1, "b": 2}) == identity_hash({"b": 2, "a": 1})
        assert len(identity_hash({"a": 1})) == 32

    def _authenticate(self, headers, operation, body=None, now=NOW):
        return self.guard.authenticate(
            headers["X-Caller"],
            operation,
            headers["X-Signature"],
            digest=request_digest(body),
            nonce=headers["X-Nonce"],
            issued_at=int(headers["X-Issued-At"]),
            now=now
        )

    def test_authenticate_signed_request(self):
        keypair = self.key_manager.generate()
        body = {"identity_hash": "0xaa"}
        headers = self.key_manager.sign_request(keypair.address, "register", body, NOW)

        assert self._authenticate(headers, "register", body) == keypair.address

    def test_authenticate_rejects_other_operation(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(keypair.address, "register", None, NOW)

        with pytest.raises(UnauthorizedAccessError):
            self._authenticate(headers, "update")

    def test_authenticate_rejects_other_body(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(
            keypair.address, "update", {"identity_hash": "0xaa"}, NOW
        )

        with pytest.raises(UnauthorizedAccessError):
            self._authenticate(headers, "update", {"identity_hash": "0xee"})

    def test_body_digest_ignores_key_order(self):
        assert request_digest({"a": 1, "b": 2}) == request_digest({"b": 2, "a": 1})
        assert request_digest(None) == request_digest({})

    def test_authenticate_rejects_reused_nonce(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(keypair.address, "revokeIdentity", None, NOW)
        self._authenticate(headers, "revokeIdentity")

        with pytest.raises(UnauthorizedAccessError, match="nonce already used"):
            self._authenticate(headers, "revokeIdentity", now=NOW + 1)

    def test_same_nonce_from_different_callers(self):
        alice = self.key_manager.generate()
        bob = self.key_manager.generate()

        self._authenticate(
            self.key_manager.sign_request(alice.address, "register", None, NOW, nonce="n-1"),
            "register"
        )
        assert self._authenticate(
            self.key_manager.sign_request(bob.address, "register", None, NOW, nonce="n-1"),
            "register"
        ) == bob.address

    def test_authenticate_rejects_stale_request(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(keypair.address, "register", None, NOW)
        window = self.guard.signature_window

        with pytest.raises(UnauthorizedAccessError, match="window"):
            self._authenticate(headers, "register", now=NOW + window + 1)

    def test_authenticate_rejects_request_from_the_future(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(
            keypair.address, "register", None, NOW + self.guard.signature_window + 1
        )

        with pytest.raises(UnauthorizedAccessError):
            self._authenticate(headers, "register")

    def test_authenticate_accepts_lowercase_caller(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(keypair.address, "register", None, NOW)
        headers["X-Caller"] = keypair.address.lower()

        assert self._authenticate(headers, "register") == keypair.address

    def test_authenticate_rejects_impersonation(self):
        alice = self.key_manager.generate()
        mallory = self.key_manager.generate()
        headers = self.key_manager.sign_request(mallory.address, "register", None, NOW)
        headers["X-Caller"] = alice.address

        with pytest.raises(UnauthorizedAccessError):
            self._authenticate(headers, "register")

    def test_authenticate_malformed_signature(self):
        keypair = self.key_manager.generate()
        headers = self.key_manager.sign_request(keypair.address, "register", None, NOW)
        headers["X-Signature"] = "0x1234"

        with pytest.raises(UnauthorizedAccessError):
            self._authenticate(headers, "register")

    def test_sign_unknown_key(self):
        with pytest.raises(ValueError):
            self.key_manager.sign_request(
                "0x0000000000000000000000000000000000000000", "x", None, NOW
            )


class TestNormalizePrincipal:
    """Caller identifiers are checksummed addresses"""

    def test_lowercase_is_checksummed(self):
        address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

        assert normalize_principal(address.lower()) == address
        assert normalize_principal(address) == address

    @pytest.mark.parametrize("value", ["alice", "", "0x1234", None])
    def test_non_addresses_rejected(self, value):
        with pytest.raises(UnauthorizedAccessError):
            normalize_principal(value)

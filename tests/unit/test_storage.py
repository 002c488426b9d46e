"""Unit tests for token records and the encrypted file store."""

import json
import os
import stat

import pytest

from mediagraph_mcp.core.oauth import (
    EncryptedFileAuthStorage,
    InMemoryAuthStorage,
    StorageError,
    StoredIdentity,
    TokenBundle,
    ValidationError,
)
from mediagraph_mcp.core.oauth.storage.encryption import derive_key, machine_identity, seal, unseal
from tests.fixtures.doubles import T0, FakeClock, make_bundle

IDENTITY = "/home/tester-mediagraph-mcp"


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "state" / "tokens.enc"


@pytest.fixture
def storage(token_file, clock):
    return EncryptedFileAuthStorage(token_file, identity=IDENTITY, clock=clock)


@pytest.mark.unit
class TestTokenBundle:
    def test_from_token_response_computes_expiry_at_receipt(self, token_response):
        bundle = TokenBundle.from_token_response(token_response, received_at_ms=1_000)
        assert bundle.access_token == "A"
        assert bundle.refresh_token == "R"
        assert bundle.expires_at == 1_000 + 3_600_000

    def test_defaults_for_missing_fields(self):
        bundle = TokenBundle.from_token_response({"access_token": "A"}, received_at_ms=0)
        assert bundle.token_type == "Bearer"
        assert bundle.expires_in == 3600
        assert bundle.refresh_token is None

    def test_keeps_previous_refresh_token_when_not_rotated(self):
        bundle = TokenBundle.from_token_response(
            {"access_token": "A2", "expires_in": 60}, 0, previous_refresh_token="R1"
        )
        assert bundle.refresh_token == "R1"

    def test_rotated_refresh_token_wins(self):
        bundle = TokenBundle.from_token_response(
            {"access_token": "A2", "refresh_token": "R2"}, 0, previous_refresh_token="R1"
        )
        assert bundle.refresh_token == "R2"

    @pytest.mark.parametrize("payload", [{}, {"access_token": ""}, {"access_token": None}])
    def test_missing_access_token_rejected(self, payload):
        with pytest.raises(ValidationError):
            TokenBundle.from_token_response(payload, 0)

    def test_non_numeric_expires_in_rejected(self):
        with pytest.raises(ValidationError):
            TokenBundle.from_token_response({"access_token": "A", "expires_in": "soon"}, 0)

    def test_expiry_uses_buffer(self):
        bundle = make_bundle(issued_at=T0)
        issued_ms = int(T0 * 1000)
        assert not bundle.is_expired(300, issued_ms + 3_299_999)
        assert bundle.is_expired(300, issued_ms + 3_300_000)
        assert not bundle.is_expired(0, issued_ms + 3_599_999)

    def test_repr_hides_tokens(self):
        bundle = make_bundle(access_token="secret-access", refresh_token="secret-refresh")
        assert "secret" not in repr(bundle)

    def test_from_dict_rejects_unknown_fields(self):
        data = make_bundle().to_dict()
        data["id_token"] = "x"
        with pytest.raises(ValidationError):
            TokenBundle.from_dict(data)


@pytest.mark.unit
class TestEncryption:
    def test_seal_layout_and_roundtrip(self):
        key = derive_key(IDENTITY)
        blob = seal(b"hello", key)
        assert len(blob) == 16 + 12 + 16 + len(b"hello")
        assert unseal(blob, key) == b"hello"

    def test_same_plaintext_seals_differently(self):
        key = derive_key(IDENTITY)
        assert seal(b"hello", key) != seal(b"hello", key)

    def test_wrong_key_fails(self):
        blob = seal(b"hello", derive_key(IDENTITY))
        with pytest.raises(StorageError):
            unseal(blob, derive_key("someone-else"))

    def test_truncated_blob_fails(self):
        with pytest.raises(StorageError):
            unseal(b"\x00" * 20, derive_key(IDENTITY))

    def test_key_derivation_is_deterministic(self):
        assert derive_key(IDENTITY) == derive_key(IDENTITY)
        assert len(derive_key(IDENTITY)) == 32

    def test_machine_identity_uses_home(self, tmp_path):
        assert machine_identity(tmp_path) == f"{tmp_path}-mediagraph-mcp"


@pytest.mark.unit
class TestEncryptedFileAuthStorage:
    def test_load_missing_file_returns_none(self, storage):
        assert storage.load() is None
        assert not storage.has_tokens()

    def test_roundtrip(self, storage, stored_identity):
        storage.save(stored_identity)
        assert storage.load() == stored_identity

    def test_roundtrip_with_arbitrary_printable_fields(self, storage):
        record = StoredIdentity(
            tokens=make_bundle(access_token='a"b\\c {}', refresh_token="réfresh"),
            organization_id="org-☃",
            organization_name="  spaced name  ",
            organization_slug="s/l:u?g",
            user_id=0,
            user_email="",
        )
        storage.save(record)
        assert storage.load() == record

    def test_file_is_not_plaintext(self, storage, token_file, stored_identity):
        storage.save(stored_identity)
        raw = token_file.read_bytes()
        assert b"jo@acme.test" not in raw
        assert b"access_token" not in raw

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_permissions(self, storage, token_file, stored_identity):
        storage.save(stored_identity)
        assert stat.S_IMODE(token_file.stat().st_mode) == 0o600
        assert stat.S_IMODE(token_file.parent.stat().st_mode) == 0o700

    def test_save_replaces_whole_record(self, storage, stored_identity):
        storage.save(stored_identity)
        replacement = StoredIdentity(tokens=make_bundle(access_token="B"))
        storage.save(replacement)
        assert storage.load() == replacement

    def test_no_temp_files_left_behind(self, storage, token_file, stored_identity):
        storage.save(stored_identity)
        storage.save(stored_identity)
        assert [p.name for p in token_file.parent.iterdir()] == ["tokens.enc"]

    def test_corrupt_file_reads_as_absent(self, storage, token_file, stored_identity):
        storage.save(stored_identity)
        raw = bytearray(token_file.read_bytes())
        raw[-1] ^= 0xFF
        token_file.write_bytes(bytes(raw))
        assert storage.load() is None

    def test_garbage_file_reads_as_absent(self, storage, token_file):
        token_file.parent.mkdir(parents=True)
        token_file.write_bytes(b"not a sealed file")
        assert storage.load() is None

    def test_empty_file_reads_as_absent(self, storage, token_file):
        token_file.parent.mkdir(parents=True)
        token_file.write_bytes(b"")
        assert storage.load() is None

    def test_other_identity_cannot_read(self, token_file, stored_identity):
        EncryptedFileAuthStorage(token_file, identity=IDENTITY).save(stored_identity)
        assert EncryptedFileAuthStorage(token_file, identity="intruder").load() is None

    def test_valid_ciphertext_with_bad_schema_reads_as_absent(self, storage, token_file):
        token_file.parent.mkdir(parents=True)
        token_file.write_bytes(seal(json.dumps({"tokens": {}}).encode(), derive_key(IDENTITY)))
        assert storage.load() is None

    def test_reads_camel_case_identity_fields(self, storage, token_file):
        written_by_node = {
            "tokens": make_bundle().to_dict(),
            "organizationId": 7,
            "organizationName": "Acme Media",
            "userId": 42,
            "userEmail": "jo@acme.test",
        }
        token_file.parent.mkdir(parents=True)
        token_file.write_bytes(seal(json.dumps(written_by_node).encode(), derive_key(IDENTITY)))

        record = storage.load()

        assert record is not None
        assert record.tokens == make_bundle()
        assert record.organization_id == 7
        assert record.organization_name == "Acme Media"
        assert record.user_id == 42
        assert record.user_email == "jo@acme.test"
        assert record.organization_slug is None

    def test_clear_removes_file_and_is_idempotent(self, storage, token_file, stored_identity):
        storage.save(stored_identity)
        storage.clear()
        assert not token_file.exists()
        storage.clear()
        assert storage.load() is None

    def test_save_failure_raises_storage_error(self, tmp_path, stored_identity):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        storage = EncryptedFileAuthStorage(blocker / "tokens.enc", identity=IDENTITY)
        with pytest.raises(StorageError):
            storage.save(stored_identity)

    def test_default_path_is_under_home(self, tmp_path):
        storage = EncryptedFileAuthStorage()
        assert storage.path == str(tmp_path / "home" / ".mediagraph" / "tokens.enc")

    def test_expiry_helpers_follow_clock(self, storage, stored_identity):
        storage.save(stored_identity)
        clock = storage._clock

        clock.now = T0 + 3000
        assert storage.get_access_token() == "A"
        assert storage.is_token_expired() is False
        assert storage.is_token_expired() is False

        clock.now = T0 + 3400
        assert storage.get_access_token() is None
        assert storage.is_token_expired() is True
        assert storage.get_refresh_token() == "R"


@pytest.mark.unit
class TestInMemoryAuthStorage:
    def test_roundtrip_and_clear(self, stored_identity):
        storage = InMemoryAuthStorage(clock=FakeClock())
        assert storage.load() is None
        storage.save(stored_identity)
        assert storage.load() == stored_identity
        assert storage.save_count == 1
        storage.clear()
        assert storage.is_token_expired() is True

    def test_repr_shows_only_identity(self, stored_identity):
        text = repr(InMemoryAuthStorage(stored_identity))
        assert "authenticated=True" in text
        assert "access_token" not in text

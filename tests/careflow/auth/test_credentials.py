"""Tests for credential stores."""

import json
import os
import stat

from careflow.auth.credentials import (
    Credential,
    FileCredentialStore,
    InMemoryCredentialStore,
)


class TestCredential:
    def test_repr_masks_token(self):
        credential = Credential("secret-token", {"id": "u1"})
        assert "secret-token" not in repr(credential)
        assert "u1" in repr(credential)


class TestInMemoryCredentialStore:
    def test_starts_logged_out(self):
        store = InMemoryCredentialStore()
        assert store.get_credential() is None
        assert store.get_user() is None
        assert store.is_authenticated() is False

    def test_set_and_clear(self):
        store = InMemoryCredentialStore()

        store.set_credential(Credential("abc123", {"id": "u1", "role": "doctor"}))
        assert store.get_credential() == "abc123"
        assert store.get_user() == {"id": "u1", "role": "doctor"}
        assert store.is_authenticated() is True

        store.clear_credential()
        assert store.get_credential() is None
        assert store.get_user() is None
        assert store.is_authenticated() is False

    def test_initial_credential(self):
        store = InMemoryCredentialStore(Credential("t0"))
        assert store.get_credential() == "t0"


class TestFileCredentialStore:
    def test_missing_file_is_logged_out(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth.json")
        assert store.is_authenticated() is False

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "auth.json"

        FileCredentialStore(path).set_credential(Credential("abc123", {"id": "u1"}))
        reloaded = FileCredentialStore(path)

        assert reloaded.get_credential() == "abc123"
        assert reloaded.get_user() == {"id": "u1"}

    def test_file_layout(self, tmp_path):
        path = tmp_path / "auth.json"
        FileCredentialStore(path).set_credential(Credential("abc123", {"id": "u1"}))

        data = json.loads(path.read_text())
        assert data == {
            "accessToken": "abc123",
            "user": {"id": "u1"},
            "isAuthenticated": True,
        }

    def test_file_is_private(self, tmp_path):
        path = tmp_path / "auth.json"
        FileCredentialStore(path).set_credential(Credential("abc123"))

        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

    def test_clear_writes_logged_out_state(self, tmp_path):
        path = tmp_path / "auth.json"
        store = FileCredentialStore(path)
        store.set_credential(Credential("abc123"))

        store.clear_credential()

        assert json.loads(path.read_text())["isAuthenticated"] is False
        assert FileCredentialStore(path).is_authenticated() is False

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text("{not json")

        store = FileCredentialStore(path)

        assert store.is_authenticated() is False

    def test_no_temp_files_left_behind(self, tmp_path):
        path = tmp_path / "auth.json"
        store = FileCredentialStore(path)
        store.set_credential(Credential("a"))
        store.set_credential(Credential("b"))

        assert [p.name for p in tmp_path.iterdir()] == ["auth.json"]

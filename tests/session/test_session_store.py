"""Tests for session storage backends.

Tests cover:
- Session model (expiry, serialization)
- EncryptedFileSessionStore (round trip, corrupt data, permissions, atomic replace)
- KeychainSessionStore with a mocked keyring
- create_session_store backend selection
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from keyring.errors import PasswordDeleteError

from authn_flow.exceptions import SessionStorageError
from authn_flow.session.store import (
    EncryptedFileSessionStore,
    KeychainSessionStore,
    Session,
    create_session_store,
)
from factories import make_session


# ============================================================================
# Tests: Session Model
# ============================================================================


class TestSession:
    """Tests for Session model behavior."""

    def test_is_expired_false_for_valid_session(self) -> None:
        """Given a session expiring in the future, is_expired is False."""
        # Act & Assert
        assert make_session().is_expired is False

    def test_is_expired_true_for_expired_session(self) -> None:
        """Given an expired session, is_expired is True and seconds_until_expiry negative."""
        # Arrange
        session = make_session(expired=True)

        # Act & Assert
        assert session.is_expired is True
        assert session.seconds_until_expiry < 0

    def test_json_preserves_fields(self) -> None:
        """Given a session, to_json/from_json keeps tokens and timestamps."""
        # Arrange
        session = make_session().model_copy(update={"raw": {"access_token": "tok", "custom": 1}})

        # Act
        restored = Session.from_json(session.to_json())

        # Assert
        assert restored == session

    def test_empty_access_token_rejected(self) -> None:
        """Given an empty access token, validation fails."""
        # Act & Assert
        with pytest.raises(ValueError):
            Session.model_validate_json(make_session().to_json().replace('"tok"', '""'))


# ============================================================================
# Tests: EncryptedFileSessionStore
# ============================================================================


class TestEncryptedFileSessionStore:
    """Tests for the encrypted file fallback backend."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        """Given a saved session, load returns it."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)
        session = make_session("tok")

        # Act
        store.save(session)
        loaded = store.load()

        # Assert
        assert loaded is not None
        assert loaded.access_token == "tok"
        assert loaded.refresh_token == session.refresh_token

    def test_file_is_not_plaintext(self, tmp_path: Path) -> None:
        """Given a saved session, the token does not appear in the file."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)

        # Act
        store.save(make_session("very-secret-token"))

        # Assert
        assert b"very-secret-token" not in store.path.read_bytes()

    def test_save_overwrites_previous(self, tmp_path: Path) -> None:
        """Given two saves, load returns the latest and no temp files remain."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)

        # Act
        store.save(make_session("first"))
        store.save(make_session("second"))

        # Assert
        assert store.load().access_token == "second"
        assert [p.name for p in tmp_path.iterdir()] == ["session.enc"]

    def test_load_returns_none_when_absent(self, tmp_path: Path) -> None:
        """Given no file, load returns None."""
        # Act & Assert
        assert EncryptedFileSessionStore(tmp_path).load() is None

    def test_corrupt_file_treated_as_absent(self, tmp_path: Path) -> None:
        """Given garbage in the file, load returns None instead of raising."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)
        store.path.write_bytes(b"not a fernet token")

        # Act & Assert
        assert store.load() is None

    def test_file_from_other_key_treated_as_absent(self, tmp_path: Path) -> None:
        """Given a file encrypted with another key, load returns None."""
        # Arrange
        writer = EncryptedFileSessionStore(tmp_path)
        writer.save(make_session())
        reader = EncryptedFileSessionStore(tmp_path)
        reader._key = b"A" * 43 + b"="

        # Act & Assert
        assert reader.load() is None

    def test_clear_is_idempotent(self, tmp_path: Path) -> None:
        """Given a stored session, clear twice leaves nothing and does not raise."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)
        store.save(make_session())

        # Act
        store.clear()
        store.clear()

        # Assert
        assert store.exists() is False

    def test_file_has_secure_permissions(self, tmp_path: Path) -> None:
        """Given a saved session, file permissions are 0o600."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)

        # Act
        store.save(make_session())

        # Assert
        assert store.path.stat().st_mode & 0o777 == 0o600

    def test_save_failure_raises_storage_error(self, tmp_path: Path) -> None:
        """Given the atomic write fails, raises SessionStorageError."""
        # Arrange
        store = EncryptedFileSessionStore(tmp_path)

        # Act & Assert
        with patch("authn_flow.session.store.write_bytes_atomic", side_effect=OSError("disk full")):
            with pytest.raises(SessionStorageError, match="disk full"):
                store.save(make_session())


# ============================================================================
# Tests: KeychainSessionStore
# ============================================================================


class TestKeychainSessionStore:
    """Tests for the keychain backend with keyring mocked."""

    def test_save_writes_json_under_fixed_key(self) -> None:
        """Given a session, it is stored under service/username."""
        # Arrange
        store = KeychainSessionStore(service="svc", username="user")
        session = make_session()

        # Act
        with patch("keyring.set_password") as set_password:
            store.save(session)

        # Assert
        set_password.assert_called_once_with("svc", "user", session.to_json())

    def test_load_returns_session(self) -> None:
        """Given stored JSON, load returns the Session."""
        # Arrange
        session = make_session("tok")

        # Act
        with patch("keyring.get_password", return_value=session.to_json()):
            loaded = KeychainSessionStore().load()

        # Assert
        assert loaded is not None
        assert loaded.access_token == "tok"

    def test_load_malformed_returns_none(self) -> None:
        """Given malformed data in the keychain, load returns None."""
        # Act & Assert
        with patch("keyring.get_password", return_value="{broken"):
            assert KeychainSessionStore().load() is None

    def test_clear_ignores_missing_entry(self) -> None:
        """Given nothing stored, clear does not raise."""
        # Act & Assert
        with patch("keyring.delete_password", side_effect=PasswordDeleteError("not found")):
            KeychainSessionStore().clear()

    def test_save_failure_raises_storage_error(self) -> None:
        """Given the keychain refuses the write, raises SessionStorageError."""
        # Act & Assert
        with patch("keyring.set_password", side_effect=RuntimeError("locked")):
            with pytest.raises(SessionStorageError):
                KeychainSessionStore().save(make_session())


# ============================================================================
# Tests: create_session_store Factory
# ============================================================================


class TestCreateSessionStore:
    """Tests for backend selection."""

    def test_returns_encrypted_file_when_keyring_unavailable(self) -> None:
        """Given keyring unavailable, returns EncryptedFileSessionStore."""
        # Arrange & Act
        with patch("authn_flow.session.store._is_keyring_available", return_value=False):
            store = create_session_store()

        # Assert
        assert isinstance(store, EncryptedFileSessionStore)

    def test_returns_keychain_when_available(self) -> None:
        """Given a working keyring, returns KeychainSessionStore."""
        # Arrange & Act
        with patch("authn_flow.session.store._is_keyring_available", return_value=True):
            store = create_session_store()

        # Assert
        assert isinstance(store, KeychainSessionStore)

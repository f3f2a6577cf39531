"""Secure storage for the authenticated session.

Provides two storage backends for the single session record:
1. KeychainSessionStore (primary): OS keychain via keyring library
   - macOS: Keychain
   - Windows: Credential Locker
   - Linux: Secret Service (GNOME Keyring, KDE Wallet)

2. EncryptedFileSessionStore (fallback): Fernet-encrypted file
   - Used when keyring is unavailable
   - Key derived from machine-specific identifiers
   - Written via temp file + rename, so a reader never sees a partial record

Both are keyed by one fixed namespace. An absent record is the normal
unauthenticated state; a corrupt record is logged and treated as absent.
"""

from __future__ import annotations

__all__ = [
    "EncryptedFileSessionStore",
    "KeychainSessionStore",
    "Session",
    "SessionStore",
    "create_session_store",
]

import base64
import hashlib
import platform
import socket
import subprocess
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from authn_flow.constants import (
    APP_NAME,
    PROTECTED_CONFIG_DIR,
    SESSION_FILENAME,
    SESSION_KEYRING_SERVICE,
    SESSION_KEYRING_USERNAME,
)
from authn_flow.exceptions import SessionStorageError
from authn_flow.telemetry.system_logger import get_system_logger
from authn_flow.utils.file_helpers import set_secure_permissions, write_bytes_atomic

if TYPE_CHECKING:
    from cryptography.fernet import Fernet


class Session(BaseModel):
    """Tokens issued for an authenticated user.

    Attributes:
        access_token: Bearer token for API calls.
        refresh_token: Token for obtaining new access tokens.
        id_token: OIDC ID token (needed for end-session).
        token_type: Usually "Bearer".
        scope: Granted scopes, if the server reported them.
        session_state: OIDC session_state from the authorization result.
        issued_at: UTC timestamp when tokens were issued.
        expires_at: UTC timestamp when access_token expires.
        raw: Full token response, kept as an opaque blob.
    """

    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    session_state: str | None = None
    issued_at: datetime
    expires_at: datetime
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_expired(self) -> bool:
        """Check if access token has expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def seconds_until_expiry(self) -> float:
        """Seconds until access token expires (negative if expired)."""
        return (self.expires_at - datetime.now(timezone.utc)).total_seconds()

    def to_json(self) -> str:
        """Serialize to JSON string for storage."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "Session":
        """Deserialize from JSON string."""
        return cls.model_validate_json(data)


class SessionStore(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    def save(self, session: Session) -> None:
        """Replace the stored session.

        Raises:
            SessionStorageError: If save fails.
        """

    @abstractmethod
    def load(self) -> Session | None:
        """Load the stored session.

        Returns:
            Session if a valid record exists, None if absent or unreadable.
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored session. Idempotent.

        Raises:
            SessionStorageError: If the backend refuses the delete.
        """

    @abstractmethod
    def exists(self) -> bool:
        """Check if a session record is stored."""


def _discard_corrupt(backend: str, error: Exception) -> None:
    get_system_logger().warning(
        {
            "event": "session_record_unreadable",
            "backend": backend,
            "error_type": type(error).__name__,
            "message": "Stored session could not be read; treating as signed out",
        }
    )


class KeychainSessionStore(SessionStore):
    """Session storage in the OS keychain via keyring."""

    def __init__(
        self,
        service: str = SESSION_KEYRING_SERVICE,
        username: str = SESSION_KEYRING_USERNAME,
    ) -> None:
        self._service = service
        self._username = username

    def save(self, session: Session) -> None:
        import keyring

        try:
            # Single set_password call: the keychain replaces the item atomically
            keyring.set_password(self._service, self._username, session.to_json())
        except Exception as e:
            raise SessionStorageError(f"Failed to save session to keychain: {e}") from e

    def load(self) -> Session | None:
        import keyring

        try:
            data = keyring.get_password(self._service, self._username)
        except Exception as e:
            _discard_corrupt("keychain", e)
            return None

        if data is None:
            return None

        try:
            return Session.from_json(data)
        except ValueError as e:
            _discard_corrupt("keychain", e)
            return None

    def clear(self) -> None:
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(self._service, self._username)
        except PasswordDeleteError:
            # Nothing stored
            pass
        except Exception as e:
            raise SessionStorageError(f"Failed to delete session from keychain: {e}") from e

    def exists(self) -> bool:
        import keyring

        try:
            return keyring.get_password(self._service, self._username) is not None
        except Exception:
            return False


class EncryptedFileSessionStore(SessionStore):
    """Fallback session storage in a Fernet-encrypted file.

    The key is derived with PBKDF2 from the machine id and hostname, so the
    file is only readable on the machine that wrote it.
    """

    def __init__(self, storage_dir: Path | None = None) -> None:
        self._storage_path = Path(storage_dir or PROTECTED_CONFIG_DIR) / SESSION_FILENAME
        self._key: bytes | None = None

    @property
    def path(self) -> Path:
        return self._storage_path

    def _get_machine_id(self) -> str:
        system = platform.system()

        if system == "Linux":
            for path in ("/etc/machine-id", "/var/lib/dbus/machine-id"):
                try:
                    return Path(path).read_text().strip()
                except OSError:
                    continue

        elif system == "Darwin":
            try:
                result = subprocess.run(
                    ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
                    capture_output=True,
                    text=True,
                    timeout=5,
                )
                for line in result.stdout.splitlines():
                    if "IOPlatformUUID" in line:
                        return line.split("=", 1)[1].strip().strip('"')
            except (subprocess.SubprocessError, OSError, IndexError):
                pass

        # MAC-address based node id: stable enough when nothing better exists
        return f"node-{uuid.getnode():x}"

    def _derive_key(self) -> bytes:
        if self._key is not None:
            return self._key

        combined = f"{self._get_machine_id()}:{socket.gethostname()}:{APP_NAME}-session-storage"
        salt = f"{APP_NAME}-v1".encode()
        key = hashlib.pbkdf2_hmac("sha256", combined.encode(), salt, iterations=100_000, dklen=32)

        # Fernet requires URL-safe base64 encoded key
        self._key = base64.urlsafe_b64encode(key)
        return self._key

    def _get_fernet(self) -> "Fernet":
        from cryptography.fernet import Fernet

        return Fernet(self._derive_key())

    def save(self, session: Session) -> None:
        try:
            encrypted = self._get_fernet().encrypt(session.to_json().encode())

            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            set_secure_permissions(self._storage_path.parent, is_directory=True)

            write_bytes_atomic(self._storage_path, encrypted)
        except Exception as e:
            raise SessionStorageError(f"Failed to save encrypted session: {e}") from e

    def load(self) -> Session | None:
        from cryptography.fernet import InvalidToken

        if not self._storage_path.exists():
            return None

        try:
            decrypted = self._get_fernet().decrypt(self._storage_path.read_bytes())
            return Session.from_json(decrypted)
        except (InvalidToken, ValueError, OSError) as e:
            _discard_corrupt("encrypted_file", e)
            return None

    def clear(self) -> None:
        try:
            self._storage_path.unlink(missing_ok=True)
        except OSError as e:
            raise SessionStorageError(f"Failed to delete encrypted session: {e}") from e

    def exists(self) -> bool:
        return self._storage_path.exists()


def _is_keyring_available() -> bool:
    """Check if a keyring backend is available and functional.

    Performs a write/read/delete cycle under a throwaway service name.
    """
    logger = get_system_logger()

    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring

        if isinstance(keyring.get_keyring(), FailKeyring):
            logger.debug({"event": "keyring_unavailable", "reason": "fail_backend"})
            return False

        test_service = f"{APP_NAME}-session-test"
        keyring.set_password(test_service, "availability-check", "test")
        result = keyring.get_password(test_service, "availability-check")
        keyring.delete_password(test_service, "availability-check")
        return result == "test"

    except Exception as e:
        # DBus errors, locked keychains, missing backends: all mean "use the file"
        logger.debug(
            {
                "event": "keyring_unavailable",
                "reason": "keyring_error",
                "error_type": type(e).__name__,
            }
        )
        return False


def create_session_store() -> SessionStore:
    """Create the appropriate session storage backend.

    Prefers keychain storage when available, falls back to encrypted file.
    """
    if _is_keyring_available():
        return KeychainSessionStore()
    return EncryptedFileSessionStore()

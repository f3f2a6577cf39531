"""Session persistence.

Session model, keychain/encrypted-file storage, and token response parsing.
"""

from authn_flow.session.store import (
    EncryptedFileSessionStore,
    KeychainSessionStore,
    Session,
    SessionStore,
    create_session_store,
)
from authn_flow.session.token_parser import parse_token_response

__all__ = [
    "EncryptedFileSessionStore",
    "KeychainSessionStore",
    "Session",
    "SessionStore",
    "create_session_store",
    "parse_token_response",
]

"""Application-wide constants for authn-flow.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

import os

__all__ = [
    # Application identity
    "APP_NAME",
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    # Protected directories
    "PROTECTED_CONFIG_DIR",
    # HTTP
    "DEFAULT_REQUEST_TIMEOUT_SECONDS",
    "MIN_REQUEST_TIMEOUT_SECONDS",
    "MAX_REQUEST_TIMEOUT_SECONDS",
    "ATTESTATION_HEADER",
    "HTTP_OK",
    # Authorization request defaults
    "DEFAULT_SCOPE",
    "DEFAULT_RESPONSE_MODE",
    "STATE_BYTES",
    # Token defaults
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    # Session storage
    "SESSION_KEYRING_SERVICE",
    "SESSION_KEYRING_USERNAME",
    "SESSION_FILENAME",
    # State notifications
    "STATE_QUEUE_MAXSIZE",
]

from platformdirs import user_config_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, service names, etc.
APP_NAME: str = "authn-flow"

# Environment variable that overrides the config file location
CONFIG_ENV_VAR: str = "AUTHN_FLOW_CONFIG"

CONFIG_FILENAME: str = "config.json"

# ============================================================================
# Protected Configuration Directory
# ============================================================================

# OS-specific config directory holding config.json and the encrypted session
# fallback file.
#
# Platform-specific paths:
# - macOS: ~/Library/Application Support/authn-flow/
# - Linux: ~/.config/authn-flow/
# - Windows: %APPDATA%\authn-flow\
#
# Note: Resolved with os.path.realpath() to prevent symlink bypass.
PROTECTED_CONFIG_DIR: str = os.path.realpath(user_config_dir(APP_NAME))

# ============================================================================
# HTTP
# ============================================================================

# Applied to every authorize/authn/token/logout request. A timeout surfaces
# as TransportError.
DEFAULT_REQUEST_TIMEOUT_SECONDS: int = 30
MIN_REQUEST_TIMEOUT_SECONDS: int = 1
MAX_REQUEST_TIMEOUT_SECONDS: int = 300

# Header carrying the device attestation key on the authorize request only
ATTESTATION_HEADER: str = "x-client-attestation"

HTTP_OK: int = 200

# ============================================================================
# Authorization Request Defaults
# ============================================================================

DEFAULT_SCOPE: str = "openid internal_login"

# "direct" asks the server for an API-based (redirect-free) flow
DEFAULT_RESPONSE_MODE: str = "direct"

# Entropy for the generated OAuth state parameter
STATE_BYTES: int = 16

# ============================================================================
# Token Defaults
# ============================================================================

# Used when the token response omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS: int = 3600

# ============================================================================
# Session Storage
# ============================================================================

# Fixed namespace/key pair for the single persisted session record
SESSION_KEYRING_SERVICE: str = APP_NAME
SESSION_KEYRING_USERNAME: str = "session"

# Encrypted fallback file (inside PROTECTED_CONFIG_DIR)
SESSION_FILENAME: str = "session.enc"

# ============================================================================
# State Notifications
# ============================================================================

# Per-subscriber queue bound; slow subscribers miss snapshots instead of
# blocking transitions
STATE_QUEUE_MAXSIZE: int = 100

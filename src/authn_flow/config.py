"""Application configuration for authn-flow.

Defines the static authorization-server configuration and logging settings.
The config is a JSON resource loaded once at startup and read-only afterwards.
A missing file or any missing required field is fatal (ConfigurationError),
never silently defaulted.

Example usage:
    # Load from config file
    config = load_config(config_path)
    client = FlowClient(config.auth)
"""

from __future__ import annotations

__all__ = [
    "AppConfig",
    "AuthConfig",
    "LoggingConfig",
    "default_config_path",
    "load_config",
]

import os
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from authn_flow.constants import (
    CONFIG_ENV_VAR,
    CONFIG_FILENAME,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RESPONSE_MODE,
    DEFAULT_SCOPE,
    MAX_REQUEST_TIMEOUT_SECONDS,
    MIN_REQUEST_TIMEOUT_SECONDS,
    PROTECTED_CONFIG_DIR,
)
from authn_flow.exceptions import ConfigurationError
from authn_flow.utils.file_helpers import load_validated_json, require_file_exists


# =============================================================================
# Authorization Server Configuration
# =============================================================================


class AuthConfig(BaseModel):
    """Authorization server endpoints and client registration.

    All endpoint fields plus client_id and redirect_url are required.
    camelCase keys (clientId, redirectURL, authorizeEndpoint, ...) are
    accepted so an existing bundled settings file can be reused as-is.

    Attributes:
        client_id: OAuth client id registered with the server.
        redirect_url: Registered redirect URI (sent on authorize and token).
        authorize_endpoint: Starts a flow (form-encoded POST).
        authn_endpoint: Accepts authenticator submissions (JSON POST).
        token_endpoint: Authorization-code and refresh grants.
        logout_endpoint: OIDC end-session endpoint.
        userinfo_endpoint: OIDC userinfo endpoint.
        scope: Space-separated scopes requested on authorize.
        response_mode: "direct" for API-based flows.
        state: Fixed OAuth state value; None generates one per flow.
        request_timeout_seconds: Timeout for every HTTP request.
        token_request_format: Body encoding for token endpoint calls.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    client_id: str = Field(min_length=1, validation_alias=AliasChoices("client_id", "clientId"))
    redirect_url: str = Field(
        min_length=1, validation_alias=AliasChoices("redirect_url", "redirectURL", "redirectUrl")
    )
    authorize_endpoint: str = Field(
        min_length=1, validation_alias=AliasChoices("authorize_endpoint", "authorizeEndpoint")
    )
    authn_endpoint: str = Field(min_length=1, validation_alias=AliasChoices("authn_endpoint", "authnEndpoint"))
    token_endpoint: str = Field(min_length=1, validation_alias=AliasChoices("token_endpoint", "tokenEndpoint"))
    logout_endpoint: str = Field(
        min_length=1, validation_alias=AliasChoices("logout_endpoint", "logoutEndpoint")
    )
    userinfo_endpoint: str = Field(
        min_length=1, validation_alias=AliasChoices("userinfo_endpoint", "userInfoEndpoint")
    )

    scope: str = DEFAULT_SCOPE
    response_mode: str = DEFAULT_RESPONSE_MODE
    state: str | None = None
    request_timeout_seconds: int = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        ge=MIN_REQUEST_TIMEOUT_SECONDS,
        le=MAX_REQUEST_TIMEOUT_SECONDS,
    )
    token_request_format: Literal["form", "json"] = "form"


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Attributes:
        log_dir: Directory for system.jsonl (WARNING and above). None keeps
            logging on stderr only.
        log_level: Console level (DEBUG or INFO).
    """

    log_dir: str | None = None
    log_level: Literal["DEBUG", "INFO"] = "INFO"


class AppConfig(BaseModel):
    """Top-level configuration file.

    Attributes:
        auth: Authorization server configuration. Required.
        logging: Logging configuration.
    """

    model_config = ConfigDict(frozen=True)

    auth: AuthConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def default_config_path() -> Path:
    """Resolve the config file location.

    Returns:
        $AUTHN_FLOW_CONFIG if set, otherwise config.json in the protected
        platform config directory.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(PROTECTED_CONFIG_DIR) / CONFIG_FILENAME


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load and validate the configuration resource.

    Args:
        config_path: Path to the JSON file (default: default_config_path()).

    Returns:
        Validated AppConfig.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not JSON,
            or lacks a required field.
    """
    path = config_path or default_config_path()
    try:
        require_file_exists(path, file_type="configuration")
        return load_validated_json(path, AppConfig, file_type="config")
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e

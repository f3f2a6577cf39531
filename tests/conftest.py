"""Shared fixtures."""

from __future__ import annotations

import pytest

from authn_flow.config import AuthConfig
from factories import OAUTH_STATE, MemorySessionStore


@pytest.fixture
def auth_config() -> AuthConfig:
    """Valid auth configuration with a fixed OAuth state."""
    return AuthConfig(
        client_id="test-client-id",
        redirect_url="wso2sample://oauth2",
        authorize_endpoint="https://idp.example.com/oauth2/authorize",
        authn_endpoint="https://idp.example.com/oauth2/authn",
        token_endpoint="https://idp.example.com/oauth2/token",
        logout_endpoint="https://idp.example.com/oidc/logout",
        userinfo_endpoint="https://idp.example.com/oauth2/userinfo",
        state=OAUTH_STATE,
    )


@pytest.fixture
def memory_store() -> MemorySessionStore:
    """Empty in-memory session store."""
    return MemorySessionStore()

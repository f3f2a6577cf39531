"""Tests for the built-in platform capability implementations."""

from __future__ import annotations

import pytest

from authn_flow.capabilities import (
    AttestationProvider,
    FederatedCredentials,
    StaticAttestationProvider,
    UnsupportedAttestationProvider,
)
from authn_flow.exceptions import AttestationError, AttestationUnsupportedError


class TestStaticAttestationProvider:
    """Tests for StaticAttestationProvider."""

    @pytest.mark.asyncio
    async def test_returns_configured_key(self) -> None:
        """Given a key, attest returns it."""
        # Arrange
        provider = StaticAttestationProvider("key-1")

        # Act & Assert
        assert await provider.attest() == "key-1"
        assert isinstance(provider, AttestationProvider)

    def test_empty_key_rejected(self) -> None:
        """Given an empty key, construction raises AttestationError."""
        # Act & Assert
        with pytest.raises(AttestationError):
            StaticAttestationProvider("")


class TestUnsupportedAttestationProvider:
    """Tests for UnsupportedAttestationProvider."""

    @pytest.mark.asyncio
    async def test_attest_raises_unsupported(self) -> None:
        """Given a host without attestation, attest raises AttestationUnsupportedError."""
        # Act & Assert
        with pytest.raises(AttestationUnsupportedError):
            await UnsupportedAttestationProvider().attest()


class TestFederatedCredentials:
    """Tests for FederatedCredentials."""

    def test_as_params(self) -> None:
        """Given provider tokens, params use the wire names."""
        # Act & Assert
        assert FederatedCredentials("at", "it").as_params() == {"accessToken": "at", "idToken": "it"}

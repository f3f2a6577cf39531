"""Platform capabilities injected into the flow state machine.

Device attestation and federated sign-in are owned by the host platform
(App Attest, Play Integrity, Google Sign-In SDK, ...). The core only talks
to these protocols:

    AttestationProvider.attest() -> key            (or AttestationUnsupportedError / AttestationError)
    FederatedSignInProvider.sign_in(provider) -> FederatedCredentials

StaticAttestationProvider and UnsupportedAttestationProvider cover the CLI
and tests, where no platform SDK exists.
"""

from __future__ import annotations

__all__ = [
    "AttestationProvider",
    "FederatedCredentials",
    "FederatedSignInProvider",
    "StaticAttestationProvider",
    "UnsupportedAttestationProvider",
]

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from authn_flow.exceptions import AttestationError, AttestationUnsupportedError


@runtime_checkable
class AttestationProvider(Protocol):
    """Produces a device-integrity assertion key for the authorize request.

    Implementations raise AttestationUnsupportedError when the device
    cannot attest at all and AttestationError when key generation fails.
    """

    async def attest(self) -> str:
        """Return the attestation key id."""
        ...


@dataclass(frozen=True)
class FederatedCredentials:
    """Tokens obtained from a federated identity provider.

    Attributes:
        access_token: Provider access token (sent as accessToken).
        id_token: Provider ID token (sent as idToken).
    """

    access_token: str
    id_token: str

    def as_params(self) -> dict[str, str]:
        """Authenticator params for a FEDERATED submission."""
        return {"accessToken": self.access_token, "idToken": self.id_token}


@runtime_checkable
class FederatedSignInProvider(Protocol):
    """Runs the platform sign-in for a federated provider ("google", ...)."""

    async def sign_in(self, provider: str) -> FederatedCredentials:
        """Return provider tokens, or raise if the user cancels or sign-in fails."""
        ...


class StaticAttestationProvider:
    """Attestation provider returning a pre-provisioned key.

    Used where the key is generated out of band (CLI option, test fixtures).
    """

    def __init__(self, key: str) -> None:
        if not key:
            raise AttestationError("Attestation key must not be empty")
        self._key = key

    async def attest(self) -> str:
        return self._key


class UnsupportedAttestationProvider:
    """Attestation provider for hosts without any attestation support."""

    async def attest(self) -> str:
        raise AttestationUnsupportedError("App attestation is not supported on this device.")

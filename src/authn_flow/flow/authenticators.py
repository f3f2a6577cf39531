"""Authenticator kinds and step payload construction.

The server names authenticators with free-form labels. This module maps
those labels onto a closed set of kinds, each with a fixed param contract:

    PASSWORD   "Username & Password"   username, password
    TOTP       "TOTP"                  token
    FEDERATED  "Google"                accessToken, idToken

A label outside the table is an UnsupportedAuthenticatorError when a
submission is built for it; it is never silently ignored.
"""

from __future__ import annotations

__all__ = [
    "AuthenticatorKind",
    "AuthenticatorSelection",
    "FEDERATED_PROVIDER_BY_LABEL",
    "KIND_BY_LABEL",
    "REQUIRED_PARAMS_BY_KIND",
    "build_submission",
    "confidential_params",
    "federated_provider",
    "required_params",
    "resolve_kind",
    "selectable_authenticators",
]

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from authn_flow.exceptions import MissingParamError, UnsupportedAuthenticatorError
from authn_flow.flow.models import (
    Authenticator,
    AuthenticatorSubmission,
    Flow,
    SelectedAuthenticator,
)


class AuthenticatorKind(str, Enum):
    """Authenticator kinds this client can drive."""

    PASSWORD = "password"
    TOTP = "totp"
    FEDERATED = "federated"


KIND_BY_LABEL: dict[str, AuthenticatorKind] = {
    "Username & Password": AuthenticatorKind.PASSWORD,
    "TOTP": AuthenticatorKind.TOTP,
    "Google": AuthenticatorKind.FEDERATED,
}

# Federated labels -> provider name handed to FederatedSignInProvider
FEDERATED_PROVIDER_BY_LABEL: dict[str, str] = {
    "Google": "google",
}

# Ordered: the first missing key is the one reported
REQUIRED_PARAMS_BY_KIND: dict[AuthenticatorKind, tuple[str, ...]] = {
    AuthenticatorKind.PASSWORD: ("username", "password"),
    AuthenticatorKind.TOTP: ("token",),
    AuthenticatorKind.FEDERATED: ("accessToken", "idToken"),
}

# Secret regardless of what the server flags
_SECRET_PARAMS_BY_KIND: dict[AuthenticatorKind, frozenset[str]] = {
    AuthenticatorKind.PASSWORD: frozenset({"password"}),
    AuthenticatorKind.TOTP: frozenset({"token"}),
    AuthenticatorKind.FEDERATED: frozenset({"accessToken", "idToken"}),
}


def resolve_kind(authenticator: Authenticator) -> AuthenticatorKind:
    """Map an authenticator's server label onto a kind.

    Raises:
        UnsupportedAuthenticatorError: If the label is not in KIND_BY_LABEL.
    """
    kind = KIND_BY_LABEL.get(authenticator.label)
    if kind is None:
        raise UnsupportedAuthenticatorError(authenticator.label)
    return kind


def federated_provider(authenticator: Authenticator) -> str:
    """Provider name for a FEDERATED authenticator (falls back to its idp)."""
    provider = FEDERATED_PROVIDER_BY_LABEL.get(authenticator.label)
    if provider:
        return provider
    return (authenticator.idp or authenticator.label).lower()


def required_params(authenticator: Authenticator) -> tuple[str, ...]:
    """Kind contract followed by any extra params the server requires."""
    contract = REQUIRED_PARAMS_BY_KIND[resolve_kind(authenticator)]
    extra = tuple(p for p in authenticator.required_params or [] if p not in contract)
    return contract + extra


def confidential_params(authenticator: Authenticator) -> frozenset[str]:
    """Params whose values must never be logged or echoed."""
    return _SECRET_PARAMS_BY_KIND[resolve_kind(authenticator)] | authenticator.flagged_confidential


def build_submission(
    flow_id: str,
    authenticator: Authenticator,
    raw_input: Mapping[str, str],
) -> AuthenticatorSubmission:
    """Validate user input and build the authn payload.

    Only the required keys are carried into the payload. A key counts as
    missing when absent or empty.

    Args:
        flow_id: Current flow id.
        authenticator: Authenticator chosen from the current step.
        raw_input: Collected user input.

    Returns:
        AuthenticatorSubmission ready for FlowClient.authenticate().

    Raises:
        UnsupportedAuthenticatorError: If the authenticator kind is unknown.
        MissingParamError: Naming the first missing key.
    """
    params: dict[str, str] = {}
    for name in required_params(authenticator):
        value = raw_input.get(name)
        if not value:
            raise MissingParamError(name)
        params[name] = value

    return AuthenticatorSubmission(
        flow_id=flow_id,
        selected_authenticator=SelectedAuthenticator(authenticator_id=authenticator.id, params=params),
        confidential=confidential_params(authenticator),
    )


@dataclass(frozen=True)
class AuthenticatorSelection:
    """Presentation split of a step's authenticators.

    Attributes:
        primary: PASSWORD authenticators, shown immediately.
        secondary: Everything else, offered as alternative paths.
    """

    primary: tuple[Authenticator, ...]
    secondary: tuple[Authenticator, ...]

    @property
    def unsupported(self) -> tuple[Authenticator, ...]:
        """Secondary authenticators whose label has no known kind."""
        return tuple(a for a in self.secondary if a.label not in KIND_BY_LABEL)


def selectable_authenticators(flow: Flow) -> AuthenticatorSelection:
    """Partition a step's authenticators into primary and secondary.

    Presentation policy only; input order is preserved in each partition.
    """
    primary: list[Authenticator] = []
    secondary: list[Authenticator] = []
    for authenticator in flow.authenticators:
        if KIND_BY_LABEL.get(authenticator.label) is AuthenticatorKind.PASSWORD:
            primary.append(authenticator)
        else:
            secondary.append(authenticator)
    return AuthenticatorSelection(primary=tuple(primary), secondary=tuple(secondary))

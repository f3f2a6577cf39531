"""Custom exceptions for authn-flow.

This module contains all custom exceptions used throughout the package.
Every exception derives from AuthFlowError and carries an ErrorKind plus a
single human-readable message for the UI layer.

Local validation failures (raised before any network call, flow is kept):
    - MissingParamError: Required authenticator param absent or empty
    - UnknownAuthenticatorError: Authenticator id not offered at this step
    - UnsupportedAuthenticatorError: Server offered an unrecognized kind
    - FlowBusyError: Another operation is outstanding on this flow

Flow failures (state machine moves to Failed):
    - AttestationUnsupportedError / AttestationError
    - FederatedSignInError
    - TransportError / ServerRejectedError / DecodeError
    - ProtocolViolationError / TokenExchangeError
    - InvalidTransitionError / SessionStorageError

Startup failures:
    - ConfigurationError: AuthConfig resource missing or incomplete

Usage:
    from authn_flow.exceptions import ServerRejectedError, user_message_for
"""

from __future__ import annotations

__all__ = [
    "AttestationError",
    "AttestationUnsupportedError",
    "AuthFlowError",
    "ConfigurationError",
    "DecodeError",
    "ErrorKind",
    "FederatedSignInError",
    "FlowBusyError",
    "InvalidTransitionError",
    "MissingParamError",
    "ProtocolViolationError",
    "ServerRejectedError",
    "SessionStorageError",
    "TokenExchangeError",
    "TransportError",
    "UnknownAuthenticatorError",
    "UnsupportedAuthenticatorError",
    "user_message_for",
]

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories surfaced by the flow state machine."""

    ATTESTATION_UNSUPPORTED = "attestation_unsupported"
    ATTESTATION_ERROR = "attestation_error"
    FEDERATED_SIGN_IN_ERROR = "federated_sign_in_error"
    TRANSPORT_ERROR = "transport_error"
    SERVER_REJECTED = "server_rejected"
    DECODE_ERROR = "decode_error"
    MISSING_PARAM = "missing_param"
    UNKNOWN_AUTHENTICATOR = "unknown_authenticator"
    UNSUPPORTED_AUTHENTICATOR = "unsupported_authenticator"
    PROTOCOL_VIOLATION = "protocol_violation"
    TOKEN_EXCHANGE_ERROR = "token_exchange_error"
    FLOW_BUSY = "flow_busy"
    INVALID_TRANSITION = "invalid_transition"
    STORAGE_ERROR = "storage_error"
    CONFIGURATION_ERROR = "configuration_error"


# Generic text for exceptions outside the taxonomy
_FALLBACK_USER_MESSAGE = "Something went wrong. Please try signing in again."


class AuthFlowError(Exception):
    """Base exception for authentication flow failures.

    Attributes:
        kind: Failure category (class-level).
        user_message: Human-readable text suitable for a transient UI notice.
    """

    kind: ErrorKind = ErrorKind.PROTOCOL_VIOLATION
    user_message: str = _FALLBACK_USER_MESSAGE

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


# =============================================================================
# Attestation
# =============================================================================


class AttestationUnsupportedError(AuthFlowError):
    """Device cannot produce an integrity assertion at all."""

    kind = ErrorKind.ATTESTATION_UNSUPPORTED
    user_message = "This device does not support app attestation."


class AttestationError(AuthFlowError):
    """Attestation is supported but key generation failed."""

    kind = ErrorKind.ATTESTATION_ERROR
    user_message = "Could not verify this device. Please try again."


class FederatedSignInError(AuthFlowError):
    """Platform federated sign-in failed or was cancelled."""

    kind = ErrorKind.FEDERATED_SIGN_IN_ERROR
    user_message = "Sign-in with the selected provider did not complete."


# =============================================================================
# HTTP boundary (FlowClient)
# =============================================================================


class TransportError(AuthFlowError):
    """Network failure or timeout - no HTTP response was received."""

    kind = ErrorKind.TRANSPORT_ERROR
    user_message = "Network error. Check your connection and try again."


class ServerRejectedError(AuthFlowError):
    """Server answered with a non-200 status.

    Not safe to retry blindly: 400/401 usually mean invalid credentials.

    Attributes:
        status_code: HTTP status code of the rejected response.
    """

    kind = ErrorKind.SERVER_REJECTED
    user_message = "The sign-in request was rejected by the server."

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"Server rejected request with HTTP {status_code}")

    def __repr__(self) -> str:
        return f"ServerRejectedError(status_code={self.status_code!r})"


class DecodeError(AuthFlowError):
    """Response body does not match any expected shape."""

    kind = ErrorKind.DECODE_ERROR
    user_message = "Received an unexpected response from the server."


# =============================================================================
# Local validation (no network call performed)
# =============================================================================


class MissingParamError(AuthFlowError):
    """A required authenticator param is absent or empty.

    Attributes:
        param: Name of the first missing param (never its value).
    """

    kind = ErrorKind.MISSING_PARAM
    user_message = "Please fill in all required fields."

    def __init__(self, param: str) -> None:
        self.param = param
        super().__init__(f"Missing required param: {param}")


class UnknownAuthenticatorError(AuthFlowError):
    """Authenticator id is not offered by the current step.

    Attributes:
        authenticator_id: The id that was requested.
    """

    kind = ErrorKind.UNKNOWN_AUTHENTICATOR
    user_message = "That sign-in option is not available."

    def __init__(self, authenticator_id: str) -> None:
        self.authenticator_id = authenticator_id
        super().__init__(f"Unknown authenticator: {authenticator_id}")


class UnsupportedAuthenticatorError(AuthFlowError):
    """Server offered an authenticator kind this client cannot drive.

    Attributes:
        label: Server-provided authenticator name.
    """

    kind = ErrorKind.UNSUPPORTED_AUTHENTICATOR
    user_message = "That sign-in option is not supported by this app."

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Unsupported authenticator kind: {label!r}")


class FlowBusyError(AuthFlowError):
    """Another operation is already outstanding on the current flow."""

    kind = ErrorKind.FLOW_BUSY
    user_message = "Please wait for the current request to finish."


# =============================================================================
# Flow semantics
# =============================================================================


class ProtocolViolationError(AuthFlowError):
    """Server response is well-formed but breaks the flow contract.

    Raised when:
    - A flow reports completion without an authorization code
    - An incomplete flow offers zero authenticators
    - The returned state does not match the one sent on authorize
    """

    kind = ErrorKind.PROTOCOL_VIOLATION
    user_message = "The server ended sign-in unexpectedly. Please start again."


class TokenExchangeError(AuthFlowError):
    """Authorization code could not be exchanged for tokens."""

    kind = ErrorKind.TOKEN_EXCHANGE_ERROR
    user_message = "Sign-in could not be completed. Please start again."


class InvalidTransitionError(AuthFlowError):
    """Operation is not valid in the current state (e.g. submit with no flow)."""

    kind = ErrorKind.INVALID_TRANSITION
    user_message = "That action is not available right now."


class SessionStorageError(AuthFlowError):
    """Secure storage could not save or clear the session."""

    kind = ErrorKind.STORAGE_ERROR
    user_message = "Could not access secure storage on this device."


class ConfigurationError(AuthFlowError):
    """Configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist
    - Config file contains invalid JSON
    - A required endpoint, client_id or redirect_url is missing or empty
    """

    kind = ErrorKind.CONFIGURATION_ERROR
    user_message = "Sign-in is not configured on this device."


def user_message_for(error: BaseException) -> str:
    """Map any exception to the single message the UI surfaces.

    Args:
        error: Exception raised by a flow operation.

    Returns:
        Human-readable message (generic text for unknown exceptions).
    """
    if isinstance(error, AuthFlowError):
        return error.user_message
    return _FALLBACK_USER_MESSAGE

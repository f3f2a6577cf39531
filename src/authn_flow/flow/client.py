"""HTTP boundary for the authorize -> authn -> token sequence.

FlowClient is stateless apart from its connection pool. Each operation
builds one request, sends it, and classifies the result:

    no response (network failure, timeout)  -> TransportError
    HTTP status != 200                      -> ServerRejectedError(status)
    body not decodable as expected shape    -> DecodeError

There are no retries here. Retrying TransportError is a caller policy;
ServerRejectedError must not be retried blindly (it may mean bad credentials).

Flow:
1. authorize(): form POST with x-client-attestation header -> Flow
2. authenticate(): JSON POST of the selected authenticator -> AuthnResult | Flow
3. exchange_token(): authorization_code grant -> Session
4. end_session(): best-effort OIDC logout (caller decides what "best-effort" means)
"""

from __future__ import annotations

__all__ = [
    "FlowClient",
]

from typing import TYPE_CHECKING, Any

import httpx

from authn_flow.constants import ATTESTATION_HEADER, HTTP_OK
from authn_flow.exceptions import DecodeError, ServerRejectedError, TransportError
from authn_flow.flow.models import (
    AuthenticatorSubmission,
    Flow,
    StepOutcome,
    decode_flow,
    decode_step_outcome,
)
from authn_flow.session.store import Session
from authn_flow.session.token_parser import parse_token_response
from authn_flow.telemetry.redaction import hash_sensitive_id, redact_params
from authn_flow.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from authn_flow.config import AuthConfig


class FlowClient:
    """Client for the flow endpoints configured in AuthConfig.

    Usage:
        async with FlowClient(config.auth) as client:
            flow = await client.authorize(attestation_key, state)
            outcome = await client.authenticate(submission)
            if isinstance(outcome, AuthnResult):
                session = await client.exchange_token(outcome.code)
    """

    def __init__(
        self,
        config: "AuthConfig",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Endpoints and client registration.
            http_client: Optional httpx client (for testing). When omitted a
                client with the configured timeout is created and owned.
        """
        self._config = config
        self._timeout = config.request_timeout_seconds
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        self._owns_client = http_client is None
        self._logger = get_system_logger()

    async def __aenter__(self) -> "FlowClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # Flow operations
    # -------------------------------------------------------------------------

    async def authorize(self, attestation_key: str, state: str) -> Flow:
        """Start a flow.

        Args:
            attestation_key: Device attestation key (sent as a header).
            state: OAuth state value echoed back in the authorization result.

        Returns:
            The initial Flow.

        Raises:
            TransportError, ServerRejectedError, DecodeError.
        """
        response = await self._send(
            "authorize",
            "POST",
            self._config.authorize_endpoint,
            headers={"Accept": "application/json", ATTESTATION_HEADER: attestation_key},
            data={
                "client_id": self._config.client_id,
                "response_type": "code",
                "redirect_uri": self._config.redirect_url,
                "state": state,
                "scope": self._config.scope,
                "response_mode": self._config.response_mode,
            },
        )
        flow = decode_flow(self._json(response, "authorize"))
        self._logger.debug(
            {
                "event": "flow_started",
                "flow_id": hash_sensitive_id(flow.flow_id),
                "flow_status": flow.flow_status,
                "authenticators": [a.label for a in flow.authenticators],
            }
        )
        return flow

    async def authenticate(self, submission: AuthenticatorSubmission) -> StepOutcome:
        """Submit the selected authenticator for the current step.

        Returns:
            AuthnResult when the flow is finished, otherwise the replacement Flow.

        Raises:
            TransportError, ServerRejectedError, DecodeError.
        """
        selected = submission.selected_authenticator
        self._logger.debug(
            {
                "event": "step_submitted",
                "flow_id": hash_sensitive_id(submission.flow_id),
                "authenticator_id": selected.authenticator_id,
                "params": redact_params(selected.params, submission.confidential),
            }
        )
        response = await self._send(
            "authenticate",
            "POST",
            self._config.authn_endpoint,
            headers={"Accept": "application/json"},
            json=submission.to_payload(),
        )
        return decode_step_outcome(self._json(response, "authenticate"))

    async def exchange_token(self, code: str, *, session_state: str | None = None) -> Session:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the AuthnResult.
            session_state: OIDC session_state to record on the Session.

        Returns:
            New Session.

        Raises:
            TransportError, ServerRejectedError, DecodeError.
        """
        body = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_url,
        }
        response = await self._send_token_request("exchange_token", body)
        return parse_token_response(self._json(response, "exchange_token"), session_state=session_state)

    async def refresh(self, session: Session) -> Session:
        """Obtain new tokens with the session's refresh token.

        Raises:
            DecodeError: If the session has no refresh token.
            TransportError, ServerRejectedError.
        """
        if not session.refresh_token:
            raise DecodeError("Session has no refresh token")

        body = {
            "grant_type": "refresh_token",
            "refresh_token": session.refresh_token,
            "client_id": self._config.client_id,
        }
        response = await self._send_token_request("refresh", body)
        return parse_token_response(self._json(response, "refresh"), previous=session)

    async def end_session(self, id_token: str) -> None:
        """Terminate the server-side session.

        Raises:
            TransportError, ServerRejectedError.
        """
        await self._send(
            "end_session",
            "POST",
            self._config.logout_endpoint,
            data={
                "id_token_hint": id_token,
                "client_id": self._config.client_id,
                "post_logout_redirect_uri": self._config.redirect_url,
            },
        )

    async def userinfo(self, access_token: str) -> dict[str, Any]:
        """Fetch OIDC userinfo claims.

        Raises:
            TransportError, ServerRejectedError, DecodeError.
        """
        response = await self._send(
            "userinfo",
            "GET",
            self._config.userinfo_endpoint,
            headers={"Accept": "application/json", "Authorization": f"Bearer {access_token}"},
        )
        claims = self._json(response, "userinfo")
        if not isinstance(claims, dict):
            raise DecodeError("Userinfo response is not a JSON object")
        return claims

    # -------------------------------------------------------------------------
    # Request helpers
    # -------------------------------------------------------------------------

    async def _send_token_request(self, operation: str, body: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._config.token_request_format == "json":
            return await self._send(operation, "POST", self._config.token_endpoint, headers=headers, json=body)
        return await self._send(operation, "POST", self._config.token_endpoint, headers=headers, data=body)

    async def _send(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request and classify transport and status failures.

        Every failure terminates the request with an exception; nothing
        falls through to the success path.
        """
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            self._log_transport_failure(operation, e)
            raise TransportError(f"{operation} timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            self._log_transport_failure(operation, e)
            raise TransportError(f"{operation} failed: {type(e).__name__}") from e

        if response.status_code != HTTP_OK:
            description = _error_description(response)
            self._logger.warning(
                {
                    "event": "request_rejected",
                    "operation": operation,
                    "status_code": response.status_code,
                    "error": description,
                    "message": f"{operation} rejected with HTTP {response.status_code}",
                }
            )
            detail = f": {description}" if description else ""
            raise ServerRejectedError(
                response.status_code,
                f"{operation} rejected with HTTP {response.status_code}{detail}",
            )

        return response

    def _json(self, response: httpx.Response, operation: str) -> Any:
        if not response.content:
            raise DecodeError(f"{operation} returned an empty body")
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{operation} returned a non-JSON body") from e

    def _log_transport_failure(self, operation: str, error: Exception) -> None:
        self._logger.warning(
            {
                "event": "transport_error",
                "operation": operation,
                "error_type": type(error).__name__,
                "message": f"{operation} failed before a response was received",
            }
        )


def _error_description(response: httpx.Response) -> str | None:
    """Pull an OAuth error/error_description out of a rejected response."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    description = data.get("error_description") or data.get("description") or data.get("error")
    return str(description) if description else None

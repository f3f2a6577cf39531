"""Tests for flow wire models and response decoding.

Tests cover:
- Flow parsing from server JSON (aliases, status collapse, links)
- Authenticator helpers (prompt order, confidential params)
- decode_step_outcome precedence (AuthnResult before Flow)
- AuthenticatorSubmission payload shape
"""

from __future__ import annotations

import pytest

from authn_flow.exceptions import DecodeError
from authn_flow.flow.models import (
    AuthenticatorSubmission,
    AuthnResult,
    Flow,
    FlowStatus,
    SelectedAuthenticator,
    decode_flow,
    decode_step_outcome,
)
from factories import authn_data, flow_data, google_authenticator, password_authenticator, totp_authenticator


# ============================================================================
# Tests: Flow
# ============================================================================


class TestFlow:
    """Tests for Flow parsing and accessors."""

    def test_decode_flow_parses_server_fields(self) -> None:
        """Given a server flow body, fields are exposed in snake_case."""
        # Act
        flow = decode_flow(flow_data(password_authenticator(), google_authenticator(), flow_id="f-42"))

        # Assert
        assert flow.flow_id == "f-42"
        assert flow.flow_type == "AUTHENTICATION"
        assert flow.next_step is not None
        assert flow.next_step.step_type == "AUTHENTICATOR_PROMPT"
        assert [a.label for a in flow.authenticators] == ["Username & Password", "Google"]
        assert flow.links[0].href == "/oauth2/authn"

    @pytest.mark.parametrize(
        "flow_status,expected",
        [
            ("INCOMPLETE", FlowStatus.INCOMPLETE),
            ("FAIL_INCOMPLETE", FlowStatus.INCOMPLETE),
            ("SUCCESS_COMPLETED", FlowStatus.COMPLETE),
            ("COMPLETE", FlowStatus.COMPLETE),
        ],
    )
    def test_status_collapses_server_values(self, flow_status: str, expected: FlowStatus) -> None:
        """Given a server flowStatus, status collapses to INCOMPLETE or COMPLETE."""
        # Act
        flow = decode_flow(flow_data(password_authenticator(), status=flow_status))

        # Assert
        assert flow.status is expected

    def test_missing_next_step_yields_no_authenticators(self) -> None:
        """Given a flow without nextStep, authenticators is empty."""
        # Act
        flow = decode_flow({"flowId": "f-1", "flowStatus": "SUCCESS_COMPLETED"})

        # Assert
        assert flow.authenticators == []

    def test_find_authenticator_by_id(self) -> None:
        """Given a known id, find_authenticator returns it; unknown returns None."""
        # Arrange
        flow = decode_flow(flow_data(password_authenticator("a"), totp_authenticator("b")))

        # Act & Assert
        assert flow.find_authenticator("b") is not None
        assert flow.find_authenticator("b").label == "TOTP"
        assert flow.find_authenticator("zzz") is None

    def test_decode_flow_rejects_missing_flow_id(self) -> None:
        """Given a body without flowId, raises DecodeError."""
        # Act & Assert
        with pytest.raises(DecodeError):
            decode_flow({"flowStatus": "INCOMPLETE"})

    def test_flow_is_immutable(self) -> None:
        """Given a decoded flow, assigning a field raises."""
        # Arrange
        flow = decode_flow(flow_data(password_authenticator()))

        # Act & Assert
        with pytest.raises(ValueError):
            flow.flow_id = "other"  # type: ignore[misc]


# ============================================================================
# Tests: Authenticator
# ============================================================================


class TestAuthenticator:
    """Tests for authenticator presentation helpers."""

    def test_prompt_params_sorted_by_order(self) -> None:
        """Given params out of order, prompt_params follows the order field."""
        # Arrange
        flow = decode_flow(flow_data(password_authenticator()))

        # Act
        params = flow.authenticators[0].prompt_params

        # Assert
        assert [p.param for p in params] == ["username", "password"]

    def test_flagged_confidential(self) -> None:
        """Given a param marked confidential, it is listed."""
        # Arrange
        flow = decode_flow(flow_data(password_authenticator()))

        # Act & Assert
        assert flow.authenticators[0].flagged_confidential == frozenset({"password"})

    def test_metadata_without_params(self) -> None:
        """Given metadata without params, helpers return empty values."""
        # Arrange
        flow = decode_flow(flow_data(google_authenticator()))
        google = flow.authenticators[0]

        # Act & Assert
        assert google.prompt_params == []
        assert google.flagged_confidential == frozenset()
        assert google.metadata.prompt_type == "REDIRECTION_PROMPT"


# ============================================================================
# Tests: decode_step_outcome
# ============================================================================


class TestDecodeStepOutcome:
    """Tests for authn response decoding precedence."""

    def test_authn_result_body(self) -> None:
        """Given {code, state, session_state}, returns AuthnResult."""
        # Act
        outcome = decode_step_outcome(authn_data(code="abc"))

        # Assert
        assert isinstance(outcome, AuthnResult)
        assert outcome.code == "abc"
        assert outcome.session_state == "sess-state-1"

    def test_flow_body(self) -> None:
        """Given a flow body, returns Flow."""
        # Act
        outcome = decode_step_outcome(flow_data(totp_authenticator(), flow_id="f-2"))

        # Assert
        assert isinstance(outcome, Flow)
        assert outcome.flow_id == "f-2"

    def test_body_valid_as_both_resolves_to_authn_result(self) -> None:
        """Given a body satisfying both shapes, the authorization result wins."""
        # Arrange
        body = {**flow_data(totp_authenticator()), **authn_data(code="both")}

        # Act
        outcome = decode_step_outcome(body)

        # Assert
        assert isinstance(outcome, AuthnResult)
        assert outcome.code == "both"

    def test_empty_code_falls_back_to_flow(self) -> None:
        """Given an empty code next to a valid flow, the flow is used."""
        # Arrange
        body = {**flow_data(totp_authenticator()), **authn_data(code="")}

        # Act
        outcome = decode_step_outcome(body)

        # Assert
        assert isinstance(outcome, Flow)

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"code": "abc"},
            {"unexpected": True},
            ["not", "an", "object"],
            "text",
        ],
    )
    def test_neither_shape_raises_decode_error(self, body: object) -> None:
        """Given a body matching neither shape, raises DecodeError."""
        # Act & Assert
        with pytest.raises(DecodeError):
            decode_step_outcome(body)


# ============================================================================
# Tests: AuthenticatorSubmission
# ============================================================================


class TestAuthenticatorSubmission:
    """Tests for the outbound authn payload."""

    def test_payload_uses_server_field_names(self) -> None:
        """Given a submission, to_payload emits flowId/selectedAuthenticator."""
        # Arrange
        submission = AuthenticatorSubmission(
            flow_id="f-1",
            selected_authenticator=SelectedAuthenticator(
                authenticator_id="pwd-1",
                params={"username": "u", "password": "p"},
            ),
            confidential=frozenset({"password"}),
        )

        # Act
        payload = submission.to_payload()

        # Assert
        assert payload == {
            "flowId": "f-1",
            "selectedAuthenticator": {
                "authenticatorId": "pwd-1",
                "params": {"username": "u", "password": "p"},
            },
        }

"""Tests for authenticator kinds and submission building."""

from __future__ import annotations

import pytest

from authn_flow.exceptions import MissingParamError, UnsupportedAuthenticatorError
from authn_flow.flow.authenticators import (
    AuthenticatorKind,
    build_submission,
    confidential_params,
    federated_provider,
    required_params,
    resolve_kind,
    selectable_authenticators,
)
from authn_flow.flow.models import Authenticator, decode_flow
from factories import flow_data, google_authenticator, password_authenticator, totp_authenticator


def _authenticator(data: dict) -> Authenticator:
    return Authenticator.model_validate(data)


# ============================================================================
# Tests: Kind resolution
# ============================================================================


class TestResolveKind:
    """Tests for label -> kind mapping."""

    @pytest.mark.parametrize(
        "data,expected",
        [
            (password_authenticator(), AuthenticatorKind.PASSWORD),
            (totp_authenticator(), AuthenticatorKind.TOTP),
            (google_authenticator(), AuthenticatorKind.FEDERATED),
        ],
    )
    def test_known_labels(self, data: dict, expected: AuthenticatorKind) -> None:
        """Given a known server label, resolves to its kind."""
        # Act & Assert
        assert resolve_kind(_authenticator(data)) is expected

    def test_unknown_label_raises(self) -> None:
        """Given an unrecognized label, raises UnsupportedAuthenticatorError naming it."""
        # Arrange
        authenticator = _authenticator({"authenticatorId": "x", "authenticator": "Magic Link"})

        # Act & Assert
        with pytest.raises(UnsupportedAuthenticatorError) as exc_info:
            resolve_kind(authenticator)
        assert exc_info.value.label == "Magic Link"

    def test_federated_provider_for_google(self) -> None:
        """Given the Google authenticator, provider is 'google'."""
        # Act & Assert
        assert federated_provider(_authenticator(google_authenticator())) == "google"


# ============================================================================
# Tests: Param contract
# ============================================================================


class TestParamContract:
    """Tests for required and confidential params."""

    def test_required_params_follow_contract_order(self) -> None:
        """Given PASSWORD, username comes before password."""
        # Act & Assert
        assert required_params(_authenticator(password_authenticator())) == ("username", "password")

    def test_server_extra_required_params_appended(self) -> None:
        """Given requiredParams beyond the contract, they are required too."""
        # Arrange
        data = totp_authenticator()
        data["requiredParams"] = ["token", "deviceId"]

        # Act & Assert
        assert required_params(_authenticator(data)) == ("token", "deviceId")

    def test_confidential_includes_kind_secrets_and_flags(self) -> None:
        """Given a flagged param, it joins the kind's built-in secrets."""
        # Arrange
        data = password_authenticator()
        data["metadata"]["params"][1]["confidential"] = True  # username

        # Act
        result = confidential_params(_authenticator(data))

        # Assert
        assert result == frozenset({"username", "password"})


# ============================================================================
# Tests: build_submission
# ============================================================================


class TestBuildSubmission:
    """Tests for validating input and building AuthenticatorSubmission."""

    def test_password_submission(self) -> None:
        """Given username and password, builds the payload."""
        # Act
        submission = build_submission(
            "f-1", _authenticator(password_authenticator("pwd-1")), {"username": "u", "password": "p"}
        )

        # Assert
        assert submission.to_payload() == {
            "flowId": "f-1",
            "selectedAuthenticator": {
                "authenticatorId": "pwd-1",
                "params": {"username": "u", "password": "p"},
            },
        }
        assert submission.confidential == frozenset({"password"})

    @pytest.mark.parametrize(
        "raw_input,missing",
        [
            ({}, "username"),
            ({"password": "p"}, "username"),
            ({"username": "u"}, "password"),
            ({"username": "u", "password": ""}, "password"),
        ],
    )
    def test_missing_param_names_first_missing_key(self, raw_input: dict, missing: str) -> None:
        """Given absent or empty required keys, raises MissingParamError for the first."""
        # Act & Assert
        with pytest.raises(MissingParamError) as exc_info:
            build_submission("f-1", _authenticator(password_authenticator()), raw_input)
        assert exc_info.value.param == missing

    def test_missing_param_message_has_no_values(self) -> None:
        """Given a password with missing username, the password value is not in the error."""
        # Act
        with pytest.raises(MissingParamError) as exc_info:
            build_submission("f-1", _authenticator(password_authenticator()), {"password": "hunter2"})

        # Assert
        assert "hunter2" not in str(exc_info.value)

    def test_extra_input_keys_dropped(self) -> None:
        """Given keys outside the contract, only required keys are sent."""
        # Act
        submission = build_submission(
            "f-1", _authenticator(totp_authenticator()), {"token": "123456", "remember": "yes"}
        )

        # Assert
        assert submission.selected_authenticator.params == {"token": "123456"}

    def test_federated_requires_both_tokens(self) -> None:
        """Given only accessToken for Google, raises naming idToken."""
        # Act & Assert
        with pytest.raises(MissingParamError, match="idToken"):
            build_submission("f-1", _authenticator(google_authenticator()), {"accessToken": "at"})

    def test_unsupported_kind_raises(self) -> None:
        """Given an unknown authenticator, raises UnsupportedAuthenticatorError."""
        # Arrange
        authenticator = _authenticator({"authenticatorId": "x", "authenticator": "Magic Link"})

        # Act & Assert
        with pytest.raises(UnsupportedAuthenticatorError):
            build_submission("f-1", authenticator, {"anything": "x"})


# ============================================================================
# Tests: selectable_authenticators
# ============================================================================


class TestSelectableAuthenticators:
    """Tests for primary/secondary partitioning."""

    def test_partition_preserves_order(self) -> None:
        """Given mixed authenticators, PASSWORD is primary and the rest keep order."""
        # Arrange
        flow = decode_flow(
            flow_data(
                google_authenticator("g"),
                password_authenticator("p"),
                totp_authenticator("t"),
            )
        )

        # Act
        selection = selectable_authenticators(flow)

        # Assert
        assert [a.id for a in selection.primary] == ["p"]
        assert [a.id for a in selection.secondary] == ["g", "t"]

    def test_unknown_kinds_reported_not_dropped(self) -> None:
        """Given an unknown label, it stays in secondary and is listed as unsupported."""
        # Arrange
        flow = decode_flow(
            flow_data(password_authenticator("p"), {"authenticatorId": "m", "authenticator": "Magic Link"})
        )

        # Act
        selection = selectable_authenticators(flow)

        # Assert
        assert [a.id for a in selection.secondary] == ["m"]
        assert [a.id for a in selection.unsupported] == ["m"]

"""Wire models for the authorize/authn flow protocol.

The server drives the flow: each authorize or authn response either carries
a terminal authorization result ({code, state, session_state}) or a complete
replacement Flow describing the next step and its selectable authenticators.

Field names follow the server's JSON (flowId, nextStep, authenticatorId, ...)
through aliases; Python code uses snake_case.
"""

from __future__ import annotations

__all__ = [
    "AuthenticatorParam",
    "AuthenticatorMetadata",
    "Authenticator",
    "AuthenticatorSubmission",
    "AuthnResult",
    "Flow",
    "FlowLink",
    "FlowStatus",
    "NextStep",
    "SelectedAuthenticator",
    "StepOutcome",
    "decode_flow",
    "decode_step_outcome",
]

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from authn_flow.exceptions import DecodeError


class _WireModel(BaseModel):
    """Immutable model that accepts server aliases and Python names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class FlowStatus(str, Enum):
    """Collapsed flow status.

    The server reports finer values ("INCOMPLETE", "FAIL_INCOMPLETE",
    "SUCCESS_COMPLETED"); anything still INCOMPLETE means more steps follow.
    """

    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"


class AuthenticatorParam(_WireModel):
    """One input field an authenticator expects.

    Attributes:
        param: Param name sent back in the submission.
        type: Input type hint ("STRING", "INTEGER", ...).
        order: Display order.
        i18n_key: Localization key for the field label.
        confidential: Value must be masked in UI and never logged.
    """

    param: str
    type: str = "STRING"
    order: int = 0
    i18n_key: str | None = Field(default=None, alias="i18nKey")
    confidential: bool = False


class AuthenticatorMetadata(_WireModel):
    """Presentation hints for an authenticator."""

    prompt_type: str | None = Field(default=None, alias="promptType")
    params: list[AuthenticatorParam] | None = None
    i18n_key: str | None = Field(default=None, alias="i18nKey")


class Authenticator(_WireModel):
    """A selectable way to satisfy the current step.

    Attributes:
        id: Unique within the step (authenticatorId).
        label: Server-provided kind name ("Username & Password", "TOTP", "Google").
        idp: Identity provider the authenticator belongs to ("LOCAL", "Google").
        metadata: Presentation hints, including per-param confidentiality.
        required_params: Params the server declares mandatory (may be absent).
    """

    id: str = Field(alias="authenticatorId")
    label: str = Field(alias="authenticator")
    idp: str = ""
    metadata: AuthenticatorMetadata = Field(default_factory=AuthenticatorMetadata)
    required_params: list[str] | None = Field(default=None, alias="requiredParams")

    @property
    def prompt_params(self) -> list[AuthenticatorParam]:
        """Input fields in server display order."""
        return sorted(self.metadata.params or [], key=lambda p: p.order)

    @property
    def flagged_confidential(self) -> frozenset[str]:
        """Params the server marked confidential."""
        return frozenset(p.param for p in self.metadata.params or [] if p.confidential)


class NextStep(_WireModel):
    """The step the client must satisfy next."""

    step_type: str = Field(alias="stepType")
    authenticators: list[Authenticator] = Field(default_factory=list)


class FlowLink(_WireModel):
    """Hypermedia link returned with a flow (e.g. the authn endpoint)."""

    name: str
    href: str
    method: str = "POST"


class Flow(_WireModel):
    """Server-orchestrated authentication session.

    Replaced wholesale by every authn response; never patched locally.
    """

    flow_id: str = Field(alias="flowId")
    flow_status: str = Field(alias="flowStatus")
    flow_type: str = Field(default="", alias="flowType")
    next_step: NextStep | None = Field(default=None, alias="nextStep")
    links: list[FlowLink] = Field(default_factory=list)

    @property
    def status(self) -> FlowStatus:
        if "INCOMPLETE" in self.flow_status.upper():
            return FlowStatus.INCOMPLETE
        return FlowStatus.COMPLETE

    @property
    def authenticators(self) -> list[Authenticator]:
        """Authenticators offered by the next step (empty when none)."""
        return list(self.next_step.authenticators) if self.next_step else []

    def find_authenticator(self, authenticator_id: str) -> Authenticator | None:
        for authenticator in self.authenticators:
            if authenticator.id == authenticator_id:
                return authenticator
        return None


class AuthnResult(_WireModel):
    """Terminal result of the flow: an authorization code to exchange."""

    code: str = Field(min_length=1)
    state: str
    session_state: str


class SelectedAuthenticator(_WireModel):
    authenticator_id: str = Field(alias="authenticatorId")
    params: dict[str, str]


class AuthenticatorSubmission(_WireModel):
    """Outbound step payload for the authn endpoint.

    Attributes:
        flow_id: Flow being advanced.
        selected_authenticator: Chosen authenticator and its params.
        confidential: Param names that must not be logged (not serialized).
    """

    flow_id: str = Field(alias="flowId")
    selected_authenticator: SelectedAuthenticator = Field(alias="selectedAuthenticator")
    confidential: frozenset[str] = Field(default=frozenset(), exclude=True)

    def to_payload(self) -> dict[str, Any]:
        """JSON body in server field names."""
        return self.model_dump(by_alias=True)


StepOutcome = Union[AuthnResult, Flow]


def decode_flow(data: Any) -> Flow:
    """Decode an authorize response body.

    Raises:
        DecodeError: If data is not a Flow.
    """
    try:
        return Flow.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"Response is not a valid flow: {e.error_count()} validation error(s)") from e


def decode_step_outcome(data: Any) -> StepOutcome:
    """Decode an authn response body.

    Order is part of the protocol contract: a body is first tried as a
    terminal AuthnResult and only then as a continuation Flow. A body valid
    as both resolves to AuthnResult.

    Raises:
        DecodeError: If data matches neither shape.
    """
    try:
        return AuthnResult.model_validate(data)
    except ValidationError:
        pass

    try:
        return Flow.model_validate(data)
    except ValidationError as e:
        raise DecodeError("Response is neither an authorization result nor a flow") from e

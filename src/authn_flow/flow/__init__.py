"""Server-driven authentication flow.

Wire models, authenticator payload construction, the HTTP client, and the
state machine that walks authorize -> authn steps -> token.
"""

from authn_flow.flow.authenticators import (
    AuthenticatorKind,
    AuthenticatorSelection,
    build_submission,
    selectable_authenticators,
)
from authn_flow.flow.client import FlowClient
from authn_flow.flow.models import (
    Authenticator,
    AuthenticatorSubmission,
    AuthnResult,
    Flow,
    FlowStatus,
    StepOutcome,
)
from authn_flow.flow.state_machine import (
    Authenticated,
    AwaitingAttestation,
    Exchanging,
    Failed,
    FlowInProgress,
    FlowState,
    FlowStateMachine,
    NotStarted,
)

__all__ = [
    "Authenticated",
    "Authenticator",
    "AuthenticatorKind",
    "AuthenticatorSelection",
    "AuthenticatorSubmission",
    "AuthnResult",
    "AwaitingAttestation",
    "Exchanging",
    "Failed",
    "Flow",
    "FlowClient",
    "FlowInProgress",
    "FlowState",
    "FlowStateMachine",
    "FlowStatus",
    "NotStarted",
    "StepOutcome",
    "build_submission",
    "selectable_authenticators",
]

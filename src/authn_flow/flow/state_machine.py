"""Authentication flow state machine.

Walks the server-dictated graph of authentication steps:

    NotStarted -> AwaitingAttestation -> FlowInProgress(flow)
        -> FlowInProgress(next flow) ...     (server asks for another step)
        -> Exchanging -> Authenticated(session)
    any I/O failure -> Failed(kind)          (restartable via start())
    logout() / abort() -> NotStarted

States are immutable snapshots. Observers receive every snapshot through
subscribe() queues or add_listener() callbacks; nothing outside this class
mutates flow state.

Concurrency: one I/O operation per machine. A second operation while one is
outstanding raises FlowBusyError. Every I/O operation runs as a task tagged
with the current generation; abort() cancels the task and bumps the
generation, so a response that still arrives is discarded instead of applied.
"""

from __future__ import annotations

__all__ = [
    "AwaitingAttestation",
    "Authenticated",
    "Exchanging",
    "Failed",
    "FlowInProgress",
    "FlowState",
    "FlowStateMachine",
    "NotStarted",
    "StateListener",
]

import asyncio
import secrets
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn, TypeVar, Union

from authn_flow.capabilities import AttestationProvider, FederatedSignInProvider
from authn_flow.constants import STATE_BYTES, STATE_QUEUE_MAXSIZE
from authn_flow.exceptions import (
    AttestationError,
    AuthFlowError,
    ErrorKind,
    FederatedSignInError,
    FlowBusyError,
    InvalidTransitionError,
    ProtocolViolationError,
    ServerRejectedError,
    SessionStorageError,
    TokenExchangeError,
    UnknownAuthenticatorError,
)
from authn_flow.flow.authenticators import (
    AuthenticatorKind,
    AuthenticatorSelection,
    build_submission,
    federated_provider,
    resolve_kind,
    selectable_authenticators,
)
from authn_flow.flow.models import (
    Authenticator,
    AuthenticatorSubmission,
    AuthnResult,
    Flow,
    FlowStatus,
)
from authn_flow.session.store import Session, SessionStore
from authn_flow.telemetry.redaction import hash_sensitive_id
from authn_flow.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from authn_flow.config import AuthConfig
    from authn_flow.flow.client import FlowClient

_logger = get_system_logger()

T = TypeVar("T")


# =============================================================================
# States
# =============================================================================


@dataclass(frozen=True)
class NotStarted:
    """No flow and no session."""


@dataclass(frozen=True)
class AwaitingAttestation:
    """Waiting for the device attestation key before authorize."""


@dataclass(frozen=True)
class FlowInProgress:
    """A step is waiting for user input.

    Attributes:
        flow: Current flow (status INCOMPLETE, at least one authenticator).
        primary: PASSWORD authenticators, shown immediately.
        secondary: Alternative paths, including unsupported kinds.
    """

    flow: Flow
    primary: tuple[Authenticator, ...]
    secondary: tuple[Authenticator, ...]

    @property
    def flow_id(self) -> str:
        return self.flow.flow_id


@dataclass(frozen=True)
class Exchanging:
    """Authorization code received; token exchange in progress."""

    flow_id: str


@dataclass(frozen=True)
class Authenticated:
    """Tokens issued and persisted."""

    session: Session


@dataclass(frozen=True)
class Failed:
    """Flow ended with an error. start() begins a fresh flow.

    Attributes:
        kind: Failure category.
        message: User-facing message for a transient notice.
        error: The exception that ended the flow.
    """

    kind: ErrorKind
    message: str
    error: AuthFlowError | None = None


FlowState = Union[NotStarted, AwaitingAttestation, FlowInProgress, Exchanging, Authenticated, Failed]

StateListener = Callable[[FlowState], None]


# =============================================================================
# State machine
# =============================================================================


class FlowStateMachine:
    """Drives one authentication flow at a time.

    Usage:
        machine = FlowStateMachine(config.auth, client, store, attestation)
        state = await machine.start()
        if isinstance(state, FlowInProgress):
            state = await machine.submit_step(
                state.primary[0].id, {"username": "u", "password": "p"}
            )
    """

    def __init__(
        self,
        config: "AuthConfig",
        client: "FlowClient",
        store: SessionStore,
        attestation: AttestationProvider,
        federated: FederatedSignInProvider | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            config: Authorization server configuration.
            client: HTTP boundary for authorize/authn/token/logout.
            store: Persistent slot for the session.
            attestation: Device attestation capability.
            federated: Federated sign-in capability (needed for FEDERATED steps).
        """
        self._config = config
        self._client = client
        self._store = store
        self._attestation = attestation
        self._federated = federated

        self._state: FlowState = NotStarted()
        self._oauth_state: str | None = None
        self._generation = 0
        self._task: asyncio.Task[Any] | None = None

        self._subscribers: set[asyncio.Queue[FlowState]] = set()
        self._listeners: list[StateListener] = []

    # =========================================================================
    # Observation
    # =========================================================================

    @property
    def state(self) -> FlowState:
        """Current state snapshot."""
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while an I/O operation is outstanding."""
        return self._task is not None and not self._task.done()

    def subscribe(self) -> asyncio.Queue[FlowState]:
        """Subscribe to state snapshots.

        Returns:
            Queue that receives every new state. Call unsubscribe() when done.
        """
        queue: asyncio.Queue[FlowState] = asyncio.Queue(maxsize=STATE_QUEUE_MAXSIZE)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[FlowState]) -> None:
        """Stop delivering snapshots to a queue returned by subscribe()."""
        self._subscribers.discard(queue)

    def add_listener(self, listener: StateListener) -> None:
        """Register a synchronous callback invoked on every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def selectable_authenticators(self, flow: Flow) -> AuthenticatorSelection:
        """Partition a flow's authenticators into primary and secondary."""
        return selectable_authenticators(flow)

    # =========================================================================
    # Operations
    # =========================================================================

    async def start(self) -> FlowState:
        """Begin a new flow: attest the device, then authorize.

        Valid from NotStarted, Failed, or FlowInProgress (the current flow is
        abandoned).

        Returns:
            FlowInProgress on success.

        Raises:
            FlowBusyError: If an operation is outstanding.
            InvalidTransitionError: If a session is active (logout first).
            AttestationUnsupportedError, AttestationError, TransportError,
            ServerRejectedError, DecodeError, ProtocolViolationError:
                After transitioning to Failed.
        """
        self._ensure_idle()
        if isinstance(self._state, Authenticated):
            raise InvalidTransitionError("A session is active; log out before starting a new flow")
        return await self._run(self._start)

    async def submit_step(self, authenticator_id: str, raw_input: Mapping[str, str]) -> FlowState:
        """Submit user input for one authenticator of the current step.

        Local validation happens before any network call and leaves the
        current FlowInProgress state untouched.

        Args:
            authenticator_id: Id of an authenticator in the current step.
            raw_input: Collected user input (param name -> value).

        Returns:
            FlowInProgress for another step, or Authenticated.

        Raises:
            FlowBusyError: If an operation is outstanding.
            InvalidTransitionError: If no flow is in progress.
            UnknownAuthenticatorError, UnsupportedAuthenticatorError,
            MissingParamError: Local validation failures.
            TransportError, ServerRejectedError, DecodeError,
            ProtocolViolationError, TokenExchangeError:
                After transitioning to Failed.
        """
        self._ensure_idle()
        current = self._require_flow()
        authenticator = self._require_authenticator(current.flow, authenticator_id)
        submission = build_submission(current.flow_id, authenticator, raw_input)
        return await self._run(self._submit, submission)

    async def submit_federated(self, authenticator_id: str) -> FlowState:
        """Run platform federated sign-in, then submit its tokens.

        Raises:
            InvalidTransitionError: If no federated provider was injected or
                no flow is in progress.
            UnknownAuthenticatorError, UnsupportedAuthenticatorError:
                Local validation failures.
            Same failures as submit_step() otherwise.
        """
        self._ensure_idle()
        current = self._require_flow()
        authenticator = self._require_authenticator(current.flow, authenticator_id)
        if resolve_kind(authenticator) is not AuthenticatorKind.FEDERATED:
            raise InvalidTransitionError(f"Authenticator {authenticator.label!r} is not a federated sign-in")
        if self._federated is None:
            raise InvalidTransitionError("Federated sign-in is not available")

        return await self._run(self._submit_federated, current.flow_id, authenticator, self._federated)

    async def restore(self) -> FlowState:
        """Load a persisted session (app launch).

        Returns:
            Authenticated if a valid session is stored, otherwise the
            unchanged state.

        Raises:
            FlowBusyError: If an operation is outstanding.
        """
        self._ensure_idle()
        if not isinstance(self._state, (NotStarted, Failed)):
            return self._state
        return await self._run(self._restore)

    async def refresh_session(self) -> Session:
        """Refresh tokens for the active session and persist them.

        A rejected refresh (the refresh token is no longer valid) clears
        storage and returns to NotStarted. A transport failure leaves the
        session in place.

        Returns:
            The refreshed Session.

        Raises:
            InvalidTransitionError: If there is no active session.
            ServerRejectedError, TransportError, DecodeError, SessionStorageError.
        """
        self._ensure_idle()
        if not isinstance(self._state, Authenticated):
            raise InvalidTransitionError("No active session to refresh")
        return await self._run(self._refresh, self._state.session)

    async def logout(self) -> FlowState:
        """End the session: best-effort server logout, then local cleanup.

        Idempotent. Server failures are logged and never block clearing the
        store. Any outstanding operation is aborted first.

        Returns:
            NotStarted.

        Raises:
            SessionStorageError: If the store refuses the delete (state Failed).
        """
        await self._cancel_outstanding()
        return await self._run(self._logout)

    async def abort(self) -> FlowState:
        """Abandon the current flow.

        Cancels any in-flight request; a response arriving afterwards is
        discarded. A stored session is left untouched.

        Returns:
            NotStarted, or Authenticated when a session was active.
        """
        # Publish before cancelling so the superseded caller observes NotStarted
        self._oauth_state = None
        if not isinstance(self._state, Authenticated):
            self._set_state(NotStarted())
        await self._cancel_outstanding()
        return self._state

    # =========================================================================
    # Operation bodies (run as tasks, tagged with a generation)
    # =========================================================================

    async def _restore(self, generation: int) -> FlowState:
        session = await asyncio.to_thread(self._store.load)
        if session is None or not self._is_current(generation):
            return self._state

        _logger.info(
            {
                "event": "session_restored",
                "expires_in_seconds": int(session.seconds_until_expiry),
            }
        )
        return self._apply(generation, Authenticated(session))

    async def _start(self, generation: int) -> FlowState:
        self._apply(generation, AwaitingAttestation())

        try:
            key = await self._attestation.attest()
        except AuthFlowError as e:
            self._fail(generation, e)
        except Exception as e:
            self._fail(generation, AttestationError(f"Attestation failed: {type(e).__name__}"), cause=e)
        if not self._is_current(generation):
            return self._state

        oauth_state = self._config.state or secrets.token_urlsafe(STATE_BYTES)
        try:
            flow = await self._client.authorize(key, oauth_state)
        except AuthFlowError as e:
            self._fail(generation, e)
        if not self._is_current(generation):
            return self._state

        self._oauth_state = oauth_state
        return self._enter_flow(generation, flow)

    async def _submit_federated(
        self,
        generation: int,
        flow_id: str,
        authenticator: Authenticator,
        federated: FederatedSignInProvider,
    ) -> FlowState:
        provider = federated_provider(authenticator)
        try:
            credentials = await federated.sign_in(provider)
        except AuthFlowError as e:
            self._fail(generation, e)
        except Exception as e:
            error = FederatedSignInError(f"Federated sign-in with {provider} failed: {type(e).__name__}")
            self._fail(generation, error, cause=e)
        if not self._is_current(generation):
            return self._state

        try:
            submission = build_submission(flow_id, authenticator, credentials.as_params())
        except AuthFlowError as e:
            self._fail(generation, e)
        return await self._submit(generation, submission)

    async def _submit(self, generation: int, submission: AuthenticatorSubmission) -> FlowState:
        try:
            outcome = await self._client.authenticate(submission)
        except AuthFlowError as e:
            self._fail(generation, e)
        if not self._is_current(generation):
            return self._state

        if isinstance(outcome, AuthnResult):
            return await self._complete_with_code(generation, submission.flow_id, outcome)
        return self._enter_flow(generation, outcome)

    async def _complete_with_code(self, generation: int, flow_id: str, result: AuthnResult) -> FlowState:
        if result.state != self._oauth_state:
            self._fail(
                generation,
                ProtocolViolationError("Authorization result state does not match the authorize request"),
            )

        self._apply(generation, Exchanging(flow_id))
        try:
            session = await self._client.exchange_token(result.code, session_state=result.session_state)
        except AuthFlowError as e:
            await self._clear_store_after_failure()
            self._fail(generation, TokenExchangeError(f"Token exchange failed: {e.message}"), cause=e)
        if not self._is_current(generation):
            return self._state

        try:
            await asyncio.to_thread(self._store.save, session)
        except SessionStorageError as e:
            await self._clear_store_after_failure()
            self._fail(generation, e)
        if not self._is_current(generation):
            return self._state

        self._oauth_state = None
        _logger.info(
            {
                "event": "flow_authenticated",
                "flow_id": hash_sensitive_id(flow_id),
                "expires_in_seconds": int(session.seconds_until_expiry),
            }
        )
        return self._apply(generation, Authenticated(session))

    async def _refresh(self, generation: int, session: Session) -> Session:
        try:
            refreshed = await self._client.refresh(session)
        except ServerRejectedError:
            _logger.warning(
                {
                    "event": "session_refresh_rejected",
                    "message": "Refresh token rejected; session cleared",
                }
            )
            await self._clear_store_after_failure()
            self._apply(generation, NotStarted())
            raise

        await asyncio.to_thread(self._store.save, refreshed)
        self._apply(generation, Authenticated(refreshed))
        return refreshed

    async def _logout(self, generation: int) -> FlowState:
        if isinstance(self._state, Authenticated):
            session: Session | None = self._state.session
        else:
            session = await asyncio.to_thread(self._store.load)

        if session is not None and session.id_token:
            try:
                await self._client.end_session(session.id_token)
            except AuthFlowError as e:
                # Local state wins
                _logger.warning(
                    {
                        "event": "end_session_failed",
                        "error_kind": e.kind.value,
                        "message": f"Server logout failed, clearing local session anyway: {e.message}",
                    }
                )

        try:
            await asyncio.to_thread(self._store.clear)
        except SessionStorageError as e:
            self._fail(generation, e)

        self._oauth_state = None
        if session is not None:
            _logger.info({"event": "logged_out"})
        return self._apply(generation, NotStarted())

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _run(self, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run an operation as the single outstanding task.

        If abort() or logout() supersedes the task, the caller receives the
        current state instead of a CancelledError or the stale flow's error.
        If the caller itself is cancelled, the flow is abandoned like abort()
        before the CancelledError propagates.
        """
        self._ensure_idle()
        generation = self._generation
        task = asyncio.create_task(operation(generation, *args))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return self._state  # type: ignore[return-value]
            self._abandon()
            raise
        except AuthFlowError:
            if generation != self._generation:
                return self._state  # type: ignore[return-value]
            raise
        finally:
            if self._task is task:
                self._task = None

    def _abandon(self) -> None:
        """Drop the current flow after its caller went away; a session survives."""
        self._generation += 1
        self._oauth_state = None
        if not isinstance(self._state, Authenticated):
            self._set_state(NotStarted())
        _logger.debug({"event": "operation_abandoned", "generation": self._generation})

    async def _cancel_outstanding(self) -> None:
        self._generation += 1
        task = self._task
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except AuthFlowError as e:
            # Raised before cancellation landed; belongs to the superseded flow
            _logger.debug({"event": "superseded_operation_failed", "error_kind": e.kind.value})
        _logger.debug({"event": "operation_aborted", "generation": self._generation})

    def _ensure_idle(self) -> None:
        if self.is_busy:
            raise FlowBusyError("Another operation is already in progress")

    def _require_flow(self) -> FlowInProgress:
        if not isinstance(self._state, FlowInProgress):
            raise InvalidTransitionError(f"No flow in progress (state: {type(self._state).__name__})")
        return self._state

    def _require_authenticator(self, flow: Flow, authenticator_id: str) -> Authenticator:
        authenticator = flow.find_authenticator(authenticator_id)
        if authenticator is None:
            raise UnknownAuthenticatorError(authenticator_id)
        return authenticator

    def _enter_flow(self, generation: int, flow: Flow) -> FlowState:
        if flow.status is not FlowStatus.INCOMPLETE:
            self._fail(
                generation,
                ProtocolViolationError(f"Flow reported {flow.flow_status} without an authorization code"),
            )
        if not flow.authenticators:
            self._fail(
                generation,
                ProtocolViolationError("Incomplete flow offers no authenticators"),
            )

        selection = selectable_authenticators(flow)
        if selection.unsupported:
            _logger.info(
                {
                    "event": "unsupported_authenticators_offered",
                    "labels": [a.label for a in selection.unsupported],
                }
            )
        return self._apply(
            generation,
            FlowInProgress(flow=flow, primary=selection.primary, secondary=selection.secondary),
        )

    def _fail(self, generation: int, error: AuthFlowError, *, cause: BaseException | None = None) -> NoReturn:
        """Transition to Failed and raise the error."""
        _logger.warning(
            {
                "event": "flow_failed",
                "error_kind": error.kind.value,
                "message": error.message,
            }
        )
        self._apply(generation, Failed(kind=error.kind, message=error.user_message, error=error))
        if cause is not None:
            raise error from cause
        raise error

    async def _clear_store_after_failure(self) -> None:
        try:
            await asyncio.to_thread(self._store.clear)
        except SessionStorageError as e:
            _logger.error(
                {
                    "event": "session_clear_failed",
                    "message": e.message,
                }
            )

    def _is_current(self, generation: int) -> bool:
        if generation == self._generation:
            return True
        _logger.debug({"event": "stale_response_discarded", "generation": generation})
        return False

    def _apply(self, generation: int, state: FlowState) -> FlowState:
        """Apply a transition produced by an operation of the given generation."""
        if self._is_current(generation):
            self._set_state(state)
        return self._state

    def _set_state(self, state: FlowState) -> None:
        self._state = state
        for queue in self._subscribers:
            try:
                queue.put_nowait(state)
            except asyncio.QueueFull:
                # Subscriber is slow, skip this snapshot
                _logger.warning(
                    {
                        "event": "state_queue_full",
                        "message": f"State queue full, dropping snapshot: {type(state).__name__}",
                    }
                )
        for listener in list(self._listeners):
            listener(state)

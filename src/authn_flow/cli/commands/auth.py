"""Authentication commands for authn-flow CLI.

Commands:
    login   - Run the sign-in flow interactively
    logout  - End the session and clear stored tokens
    status  - Show the stored session
"""

from __future__ import annotations

__all__ = ["login", "logout", "status"]

import asyncio
import json as json_module
from typing import TYPE_CHECKING, Any

import click
import jwt

from authn_flow.capabilities import StaticAttestationProvider, UnsupportedAttestationProvider
from authn_flow.exceptions import AuthFlowError, MissingParamError, user_message_for
from authn_flow.flow.authenticators import (
    AuthenticatorKind,
    KIND_BY_LABEL,
    confidential_params,
    required_params,
)
from authn_flow.flow.client import FlowClient
from authn_flow.flow.state_machine import Authenticated, FlowInProgress, FlowStateMachine
from authn_flow.session.store import EncryptedFileSessionStore, create_session_store

from ..helpers import load_config_or_exit
from ..styling import style_dim, style_error, style_header, style_label, style_success, style_warning

if TYPE_CHECKING:
    from authn_flow.capabilities import AttestationProvider
    from authn_flow.config import AuthConfig
    from authn_flow.flow.models import Authenticator
    from authn_flow.session.store import Session, SessionStore

# Kinds that can be completed with typed input
_PROMPTABLE_KINDS = frozenset({AuthenticatorKind.PASSWORD, AuthenticatorKind.TOTP})


def _storage_backend(store: SessionStore) -> str:
    if isinstance(store, EncryptedFileSessionStore):
        return f"Encrypted file ({store.path})"
    return "OS keychain"


# =============================================================================
# login
# =============================================================================


def _promptable(state: FlowInProgress) -> list[Authenticator]:
    return [
        a
        for a in (*state.primary, *state.secondary)
        if KIND_BY_LABEL.get(a.label) in _PROMPTABLE_KINDS
    ]


def _choose_authenticator(state: FlowInProgress) -> Authenticator:
    """Pick the authenticator for this step, asking when there is a choice."""
    candidates = _promptable(state)
    others = [a for a in state.secondary if a not in candidates]

    if others:
        click.echo(style_dim("Other sign-in options (not available here): " + ", ".join(a.label for a in others)))

    if not candidates:
        raise click.ClickException("This step can only be completed in the app.")
    if len(candidates) == 1:
        return candidates[0]

    for index, authenticator in enumerate(candidates, start=1):
        click.echo(f"  {index}. {authenticator.label}")
    choice = click.prompt(
        "Choose a sign-in option",
        type=click.IntRange(1, len(candidates)),
        default=1,
    )
    return candidates[choice - 1]


def _prompt_params(authenticator: Authenticator) -> dict[str, str]:
    """Prompt for every required param, hiding confidential ones."""
    hidden = confidential_params(authenticator)
    labels = {p.param: p.param.replace("_", " ").capitalize() for p in authenticator.prompt_params}

    raw_input: dict[str, str] = {}
    for name in required_params(authenticator):
        label = labels.get(name, name.capitalize())
        raw_input[name] = click.prompt(label, hide_input=name in hidden)
    return raw_input


async def _run_login(auth_config: AuthConfig, store: SessionStore, attestation: AttestationProvider) -> Session:
    async with FlowClient(auth_config) as client:
        machine = FlowStateMachine(auth_config, client, store, attestation)

        state = await machine.restore()
        if isinstance(state, Authenticated) and not state.session.is_expired:
            click.echo(style_dim("Already signed in. Run 'authn-flow logout' first to switch users."))
            return state.session

        # Expired session: a fresh flow replaces it
        if isinstance(state, Authenticated):
            await machine.logout()

        state = await machine.start()
        while isinstance(state, FlowInProgress):
            authenticator = _choose_authenticator(state)
            click.echo(style_header(authenticator.label))
            raw_input = _prompt_params(authenticator)
            try:
                state = await machine.submit_step(authenticator.id, raw_input)
            except MissingParamError as e:
                click.echo(style_error(f"{e.param} is required"), err=True)

        if not isinstance(state, Authenticated):
            raise click.ClickException(f"Sign-in ended in state {type(state).__name__}")
        return state.session


@click.command()
@click.option(
    "--attestation-key",
    envvar="AUTHN_FLOW_ATTESTATION_KEY",
    help="Pre-provisioned device attestation key (env: AUTHN_FLOW_ATTESTATION_KEY)",
)
@click.pass_context
def login(ctx: click.Context, attestation_key: str | None) -> None:
    """Sign in by walking the server's authentication steps.

    Prompts for each step's fields (passwords and one-time codes are not
    echoed). Tokens are stored in the OS keychain, or an encrypted file
    when no keychain is available.
    """
    app_config = load_config_or_exit(ctx)
    store = create_session_store()
    attestation: AttestationProvider = (
        StaticAttestationProvider(attestation_key) if attestation_key else UnsupportedAttestationProvider()
    )

    try:
        session = asyncio.run(_run_login(app_config.auth, store, attestation))
    except AuthFlowError as e:
        raise click.ClickException(user_message_for(e)) from e

    click.echo(click.style(style_success("Signed in."), bold=True))
    click.echo(f"  Session stored in: {_storage_backend(store)}")
    hours_until_expiry = session.seconds_until_expiry / 3600
    click.echo(f"  Access token expires in: {hours_until_expiry:.1f} hours")


# =============================================================================
# logout
# =============================================================================


async def _run_logout(auth_config: AuthConfig, store: SessionStore) -> None:
    async with FlowClient(auth_config) as client:
        machine = FlowStateMachine(auth_config, client, store, UnsupportedAttestationProvider())
        await machine.restore()
        await machine.logout()


@click.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """End the session and clear stored tokens.

    The server-side session is ended when possible; local tokens are
    cleared even if the server cannot be reached.
    """
    app_config = load_config_or_exit(ctx)
    store = create_session_store()

    if not store.exists():
        click.echo(style_dim("No stored session found."))
        return

    try:
        asyncio.run(_run_logout(app_config.auth, store))
    except AuthFlowError as e:
        raise click.ClickException(f"Failed to clear session: {e.message}") from e

    click.echo(style_success("Signed out. Local session cleared."))


# =============================================================================
# status
# =============================================================================


def _id_token_subject(id_token: str) -> str | None:
    """Read the sub claim without verifying the signature (display only)."""
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    subject = claims.get("sub")
    return str(subject) if subject else None


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show whether a session is stored and when it expires."""
    store = create_session_store()
    session = store.load()

    result: dict[str, Any] = {
        "authenticated": False,
        "status": "not_authenticated",
        "storage": _storage_backend(store),
    }

    if session is not None:
        result["status"] = "expired" if session.is_expired else "authenticated"
        result["authenticated"] = not session.is_expired
        result["session"] = {
            "expires_at": session.expires_at.isoformat(),
            "expires_in_seconds": int(session.seconds_until_expiry),
            "has_refresh_token": bool(session.refresh_token),
            "has_id_token": bool(session.id_token),
        }
        if session.id_token:
            result["subject"] = _id_token_subject(session.id_token)

    if as_json:
        click.echo(json_module.dumps(result, indent=2))
        return

    click.echo(f"{style_label('Storage')} {result['storage']}")
    if session is None:
        click.echo(style_dim("Not signed in. Run 'authn-flow login' to sign in."))
        return

    if session.is_expired:
        click.echo(style_warning("Session expired. Run 'authn-flow login' to sign in again."))
    else:
        click.echo(style_success("Signed in."))
    click.echo(f"{style_label('Expires')} {session.expires_at.isoformat()}")
    if result.get("subject"):
        click.echo(f"{style_label('Subject')} {result['subject']}")

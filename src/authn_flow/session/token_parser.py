"""OAuth token response parsing.

Shared by the authorization-code exchange and the refresh grant.
"""

from __future__ import annotations

__all__ = ["parse_token_response"]

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from authn_flow.constants import DEFAULT_TOKEN_LIFETIME_SECONDS
from authn_flow.exceptions import DecodeError
from authn_flow.session.store import Session


def parse_token_response(
    data: Any,
    *,
    session_state: str | None = None,
    previous: Session | None = None,
) -> Session:
    """Parse an OAuth 2.0 token response into a Session.

    Handles the standard fields:
    - access_token (required)
    - refresh_token, id_token, scope, token_type (optional)
    - expires_in (optional, defaults to one hour)

    When refreshing, fields the server omits (typically refresh_token and
    id_token) are carried over from the previous session.

    Args:
        data: Token response JSON.
        session_state: OIDC session_state from the authorization result.
        previous: Session being refreshed, if any.

    Returns:
        Session ready for storage.

    Raises:
        DecodeError: If the body is not an object or lacks access_token.
    """
    if not isinstance(data, dict) or not data.get("access_token"):
        raise DecodeError("Token response has no access_token")

    now = datetime.now(timezone.utc)
    try:
        expires_in = int(data.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS))
    except (TypeError, ValueError) as e:
        raise DecodeError("Token response has a non-numeric expires_in") from e

    try:
        return Session(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or (previous.refresh_token if previous else None),
            id_token=data.get("id_token") or (previous.id_token if previous else None),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or (previous.scope if previous else None),
            session_state=session_state or (previous.session_state if previous else None),
            issued_at=now,
            expires_at=now + timedelta(seconds=expires_in),
            raw=data,
        )
    except ValidationError as e:
        raise DecodeError("Token response fields have unexpected types") from e

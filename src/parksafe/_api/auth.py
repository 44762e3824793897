"""Auth provider endpoints: sign-in, sign-up, refresh and profile metadata."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from parksafe._constants import AVATAR_URL_TEMPLATE, MIN_PASSWORD_LENGTH
from parksafe._transport import Transport
from parksafe.exceptions import (
    ParkSafeAuthenticationError,
    ParkSafeDuplicateAccountError,
    ParkSafeSessionExpiredError,
)
from parksafe.models.user import AuthUser, UserSummary
from parksafe.session import Session

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class SignUpResult(BaseModel):
    """Sign-up outcome. ``session`` is ``None`` while email confirmation is pending."""

    model_config = ConfigDict(frozen=True)

    user: AuthUser
    session: Session | None = None


def validate_credentials(email: str, password: str) -> str:
    """Check credentials before any request is made; return the trimmed email."""
    email = email.strip()
    if not email or not password:
        raise ValueError("Please fill in all fields")
    if not _EMAIL_RE.match(email):
        raise ValueError("Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return email


def avatar_url_for(seed: str) -> str:
    return AVATAR_URL_TEMPLATE.format(seed=seed)


async def sign_in(transport: Transport, email: str, password: str) -> Session:
    email = validate_credentials(email, password)
    try:
        response = await transport.auth(
            "POST",
            "/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
        )
    except ParkSafeSessionExpiredError:
        raise
    except ParkSafeAuthenticationError as exc:
        raise ParkSafeAuthenticationError(
            "Invalid email or password",
            code=exc.code,
            endpoint=exc.endpoint,
        ) from exc
    return Session.model_validate(response)


async def sign_up(
    transport: Transport,
    email: str,
    password: str,
    *,
    is_admin: bool = False,
    full_name: str = "",
) -> SignUpResult:
    email = validate_credentials(email, password)
    response = await transport.auth(
        "POST",
        "/signup",
        payload={
            "email": email,
            "password": password,
            "data": {
                "is_admin": is_admin,
                "full_name": full_name,
                "avatar_url": avatar_url_for(email),
            },
        },
    )
    if "access_token" in response:
        session = Session.model_validate(response)
        user = session.user
    else:
        session = None
        user = AuthUser.model_validate(response.get("user", response))
    if user.identities is not None and len(user.identities) == 0:
        raise ParkSafeDuplicateAccountError(
            "An account with this email already exists",
            code="user_already_exists",
            endpoint="/auth/v1/signup",
        )
    return SignUpResult(user=user, session=session)


async def refresh_session(transport: Transport, refresh_token: str) -> Session:
    response = await transport.auth(
        "POST",
        "/token",
        params={"grant_type": "refresh_token"},
        payload={"refresh_token": refresh_token},
    )
    return Session.model_validate(response)


async def fetch_user(transport: Transport) -> AuthUser:
    return AuthUser.model_validate(await transport.auth("GET", "/user"))


async def update_user_metadata(transport: Transport, metadata: Mapping[str, Any]) -> AuthUser:
    response = await transport.auth("PUT", "/user", payload={"data": dict(metadata)})
    return AuthUser.model_validate(response)


async def sign_out(transport: Transport) -> None:
    await transport.auth("POST", "/logout")


async def list_users_privileged(transport: Transport, email_pattern: str) -> list[UserSummary]:
    """Privileged user listing; raises :class:`ParkSafePermissionError` for ordinary users."""
    response = await transport.auth("GET", "/admin/users", params={"filter": email_pattern})
    users = response.get("users")
    items: list[Any] = users if isinstance(users, list) else []
    return [UserSummary.model_validate(item) for item in items if isinstance(item, dict)]

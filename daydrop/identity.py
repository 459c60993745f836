"""Signed-in identity (via Supabase Auth) kept in the Flask session, plus the admin allow-list."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from flask import current_app, session

from .errors import RemoteFailure, Unauthenticated

SESSION_KEY = "daydrop_identity"


@dataclass(frozen=True)
class Identity:
    uid: str
    display_name: str = ""
    email: str = ""
    photo_url: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Identity"]:
        if not isinstance(data, dict):
            return None
        uid = str(data.get("uid") or "").strip()
        if not uid:
            return None
        return cls(
            uid=uid,
            display_name=data.get("display_name") or "",
            email=data.get("email") or "",
            photo_url=data.get("photo_url") or "",
        )


def is_admin(identity: Optional[Identity], allowed_emails: Iterable[str]) -> bool:
    """Client-side convenience check only; the store's row level security is the real gate."""
    if identity is None or not identity.email:
        return False
    allowed = {email.strip().lower() for email in allowed_emails if email}
    return identity.email.strip().lower() in allowed


def current_user() -> Optional[Identity]:
    return Identity.from_dict(session.get(SESSION_KEY))


def sign_out() -> None:
    session.pop(SESSION_KEY, None)


def remember(identity: Identity) -> Identity:
    session[SESSION_KEY] = identity.to_dict()
    session.permanent = True
    return identity


def sign_in(access_token: str) -> Identity:
    """Verify a Supabase Auth access token and store the resulting identity in the session."""
    token = (access_token or "").strip()
    if not token:
        raise Unauthenticated("Sign-in token missing.")

    client = current_app.config.get("SUPABASE_CLIENT")
    if not client:
        raise RemoteFailure(
            "Sign-in is unavailable right now.",
            status_code=503,
            payload={"error": "identity_unavailable"},
        )

    try:
        resp = client.auth.get_user(token)
    except Exception as exc:
        current_app.logger.warning("Supabase sign-in verification failed: %s", exc)
        raise Unauthenticated("Sign-in failed. Please try again.") from exc

    user = getattr(resp, "user", None)
    if user is None or not getattr(user, "id", None):
        raise Unauthenticated("Sign-in failed. Please try again.")

    metadata = getattr(user, "user_metadata", None) or {}
    identity = Identity(
        uid=str(user.id),
        display_name=metadata.get("full_name") or metadata.get("name") or (user.email or ""),
        email=user.email or "",
        photo_url=metadata.get("avatar_url") or metadata.get("picture") or "",
    )
    return remember(identity)

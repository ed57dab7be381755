"""
Authentication against the hosted auth service (Supabase GoTrue).

Admin status is derived from a configured email list. When SUPABASE_URL is
not set the in-memory client is used instead.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

SESSION_POLL_ATTEMPTS = 5
SESSION_POLL_INTERVAL_SECONDS = 0.3
REQUEST_TIMEOUT = 10  # seconds


class AuthError(Exception):
    pass


class EmailAlreadyRegistered(AuthError):
    pass


@dataclass
class AuthUser:
    id: str
    email: str
    full_name: str = ""
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        local_part = (self.email or "").split("@")[0]
        return local_part or "Admin"

    @property
    def home(self) -> str:
        return "/admin" if self.is_admin else "/dashboard"


@dataclass
class AuthSession:
    user: AuthUser
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class AuthClient(Protocol):
    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        ...

    def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    def sign_out(self, access_token: str) -> None:
        ...

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        ...


def _is_admin(email: str, admin_emails: set[str]) -> bool:
    return (email or "").lower() in admin_emails


def wait_for_session(
    auth: AuthClient,
    access_token: Optional[str],
    *,
    attempts: int = SESSION_POLL_ATTEMPTS,
    interval: float = SESSION_POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> AuthUser:
    """Poll until a freshly signed-up session resolves to a user."""
    if access_token:
        for attempt in range(attempts):
            user = auth.get_user(access_token)
            if user:
                return user
            if attempt < attempts - 1:
                sleep(interval)
    raise AuthError("Session not ready")


@dataclass
class _StoredUser:
    id: str
    email: str
    password: str
    full_name: str


@dataclass
class InMemoryAuthClient:
    """Test double for the hosted auth service."""

    admin_emails: set = field(default_factory=lambda: {"admin@st.id"})
    users: dict = field(default_factory=dict)
    sessions: dict = field(default_factory=dict)

    def reset(self) -> None:
        self.users.clear()
        self.sessions.clear()

    def _to_user(self, stored: _StoredUser) -> AuthUser:
        return AuthUser(
            id=stored.id,
            email=stored.email,
            full_name=stored.full_name,
            is_admin=_is_admin(stored.email, self.admin_emails),
        )

    def _open_session(self, stored: _StoredUser) -> AuthSession:
        token = uuid.uuid4().hex
        self.sessions[token] = stored.id
        return AuthSession(
            user=self._to_user(stored),
            access_token=token,
            refresh_token=uuid.uuid4().hex,
        )

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        key = email.strip().lower()
        if key in self.users:
            raise EmailAlreadyRegistered("User already registered")
        stored = _StoredUser(
            id=str(uuid.uuid4()), email=email.strip(), password=password, full_name=full_name
        )
        self.users[key] = stored
        return self._open_session(stored)

    def sign_in(self, email: str, password: str) -> AuthSession:
        stored = self.users.get(email.strip().lower())
        if not stored or stored.password != password:
            raise AuthError("Invalid login credentials")
        return self._open_session(stored)

    def sign_out(self, access_token: str) -> None:
        self.sessions.pop(access_token, None)

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        user_id = self.sessions.get(access_token)
        if not user_id:
            return None
        for stored in self.users.values():
            if stored.id == user_id:
                return self._to_user(stored)
        return None


class SupabaseAuthClient:
    """GoTrue REST client over requests."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        admin_emails: set[str],
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ):
        if not url or not anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")
        self.admin_emails = admin_emails
        self.base_url = f"{url.rstrip('/')}/auth/v1"
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"apikey": anon_key})

    def _to_user(self, payload: dict) -> AuthUser:
        email = payload.get("email") or ""
        metadata = payload.get("user_metadata") or {}
        return AuthUser(
            id=payload.get("id") or "",
            email=email,
            full_name=metadata.get("full_name") or "",
            is_admin=_is_admin(email, self.admin_emails),
        )

    def _to_session(self, payload: dict) -> AuthSession:
        # Signup without auto-confirm returns the bare user object.
        user_payload = payload.get("user") or payload
        return AuthSession(
            user=self._to_user(user_payload),
            access_token=payload.get("access_token"),
            refresh_token=payload.get("refresh_token"),
        )

    @staticmethod
    def _error_message(response: requests.Response, default: str) -> str:
        try:
            data = response.json()
        except ValueError:
            return default
        return (
            data.get("error_description")
            or data.get("msg")
            or data.get("message")
            or default
        )

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(
                method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise AuthError(f"Connection error: {exc}") from exc

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        response = self._request(
            "POST",
            "/signup",
            json={
                "email": email,
                "password": password,
                "data": {"full_name": full_name},
            },
        )
        if response.status_code != 200:
            message = self._error_message(response, "Signup failed")
            if "already registered" in message.lower():
                raise EmailAlreadyRegistered(message)
            raise AuthError(message)
        return self._to_session(response.json())

    def sign_in(self, email: str, password: str) -> AuthSession:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code != 200:
            raise AuthError(self._error_message(response, "Login failed"))
        return self._to_session(response.json())

    def sign_out(self, access_token: str) -> None:
        response = self._request(
            "POST", "/logout", headers={"Authorization": f"Bearer {access_token}"}
        )
        if response.status_code not in (200, 204):
            logger.warning(
                "Sign out returned %s: %s",
                response.status_code,
                self._error_message(response, "Logout failed"),
            )

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        response = self._request(
            "GET", "/user", headers={"Authorization": f"Bearer {access_token}"}
        )
        if response.status_code != 200:
            return None
        return self._to_user(response.json())

"""
GoTrue-style auth interface of the BaaS.

  POST /auth/v1/token?grant_type=password        { email, password }
  POST /auth/v1/token?grant_type=refresh_token   { refresh_token }
  POST /auth/v1/signup                           { email, password, data: {...} }
  GET  /auth/v1/user                             (Bearer access token)
  POST /auth/v1/logout                           (Bearer access token)
  POST /auth/v1/recover?redirect_to=…            { email }

The token lifecycle itself stays with the BaaS; this module only carries the
session it hands back.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import httpx

from unfriendable.clients.errors import AuthError, BackendError, error_from_response
from unfriendable.telemetry import BAAS_ERRORS_TOTAL, BAAS_REQUEST_LATENCY

logger = logging.getLogger(__name__)

# Refresh a little before the BaaS considers the token expired.
EXPIRY_MARGIN_SECONDS = 30


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_at: float
    user: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        expires_at = payload.get("expires_at")
        if expires_at is None:
            expires_at = time.time() + float(payload.get("expires_in") or 3600)
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token", ""),
            expires_at=float(expires_at),
            user=payload.get("user") or {},
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SignUpResult:
    user: dict[str, Any]
    session: Optional[AuthSession] = None  # None → email confirmation required


class AuthClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str) -> None:
        self._http = http
        self._api_key = api_key

    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token or self._api_key}",
        }

    async def _call(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        start = time.perf_counter()
        try:
            resp = await self._http.request(
                method,
                f"/auth/v1/{path}",
                params=params,
                json=json,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as exc:
            BAAS_ERRORS_TOTAL.labels(operation="auth").inc()
            logger.warning("auth %s failed: %s", path, exc)
            # transport failures are transient, not a rejection of the credentials
            raise BackendError(f"Network error: {exc}") from exc
        finally:
            BAAS_REQUEST_LATENCY.labels(operation="auth").observe(time.perf_counter() - start)

        if resp.is_error:
            BAAS_ERRORS_TOTAL.labels(operation="auth").inc()
            error = error_from_response(resp, AuthError)
            logger.warning("auth %s rejected (%s): %s", path, resp.status_code, error.message)
            raise error
        return resp.json() if resp.content else None

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = await self._call(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_payload(payload)

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        payload = await self._call(
            "POST",
            "token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.from_payload(payload)

    async def sign_up(
        self,
        email: str,
        password: str,
        username: str,
        display_name: str,
    ) -> SignUpResult:
        """
        Register an account. username/display_name travel as user metadata;
        the BaaS creates the `users` row from them.

        With auto-confirm the response is a full session; otherwise it is the
        bare user object and the account waits for email confirmation.
        """
        payload = await self._call(
            "POST",
            "signup",
            json={
                "email": email,
                "password": password,
                "data": {"username": username, "display_name": display_name},
            },
        )
        if payload and payload.get("access_token"):
            session = AuthSession.from_payload(payload)
            return SignUpResult(user=session.user, session=session)
        return SignUpResult(user=payload or {})

    async def get_user(self, access_token: str) -> dict[str, Any]:
        return await self._call("GET", "user", access_token=access_token)

    async def sign_out(self, access_token: str) -> None:
        await self._call("POST", "logout", access_token=access_token)

    async def reset_password_for_email(
        self, email: str, redirect_to: Optional[str] = None
    ) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._call("POST", "recover", params=params, json={"email": email})

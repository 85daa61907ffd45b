"""
Errors raised by the backend-as-a-service clients.

Every remote failure (a service-reported error or a transport failure) is a
BackendError. Routers let them propagate; the app-level handler turns them
into a `{"detail": ...}` response for the caller to show as a notification.
"""
from typing import Optional

import httpx


class BackendError(Exception):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        return self.message


class AuthError(BackendError):
    """Failure reported by the auth interface (bad credentials, expired refresh token…)."""


def error_from_response(resp: httpx.Response, error_cls: type = BackendError) -> BackendError:
    """
    Build an error from a non-2xx response.

    PostgREST replies with {code, message, details, hint}; the auth service
    uses {error, error_description} or {code, msg}.
    """
    message = None
    code = None
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
        )
        raw_code = body.get("error_code") or body.get("code")
        code = str(raw_code) if raw_code is not None else None

    if not message:
        message = resp.text or resp.reason_phrase or f"HTTP {resp.status_code}"
    return error_cls(message, status_code=resp.status_code, code=code)

"""Request guards for the HTTP surface.

  - require_admin_token()   — admin endpoints (Bearer token in Authorization header)
  - webhook_secret_ok()     — Telegram webhook (X-Telegram-Bot-Api-Secret-Token)

Admin behavior matrix:
  ADMIN_API_KEY set + valid token   → allow
  ADMIN_API_KEY set + wrong/missing → 401 Unauthorized
  ADMIN_API_KEY empty + DEBUG=true  → allow (local dev convenience)
  ADMIN_API_KEY empty + DEBUG=false → 403 Forbidden (locked in production)
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

log = logging.getLogger("backoffice.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


async def require_admin_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """FastAPI dependency — protect admin endpoints with a bearer token.

    Reads the ``Settings`` the app was created with (``app.state.settings``).
    """
    config = request.app.state.settings
    key = config.admin_api_key

    if not key:
        if config.debug:
            return
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API key not configured. Set ADMIN_API_KEY in .env.",
        )

    if credentials is None or not secrets.compare_digest(credentials.credentials, key):
        log.warning("Rejected admin request: invalid or missing token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def webhook_secret_ok(expected: str, received: str | None) -> bool:
    """Whether a webhook call carries the configured secret.

    With no secret configured every call is accepted.
    """
    if not expected:
        return True
    return received is not None and secrets.compare_digest(received, expected)

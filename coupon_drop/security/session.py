from __future__ import annotations

from typing import Optional

from fastapi import Request, Response

from coupon_drop.config import settings


def read_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def issue_session_cookie(response: Response, token: Optional[str]) -> None:
    """Attach a freshly minted session token; lives exactly one cooldown."""
    if not token:
        return
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=max(settings.COOLDOWN_MS // 1000, 1),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )

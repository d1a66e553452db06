# api/auth.py
from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

ERR_INVALID = "Invalid or missing API key"

API_KEY_HEADER = APIKeyHeader(name="x-api-key", auto_error=False)


def _fail(detail: str = ERR_INVALID) -> None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Depends(API_KEY_HEADER),
) -> None:
    """
    Gate for every non-health route.

    Auth state is frozen on app.state by build_app(); never re-read env here.
    """
    if not bool(getattr(request.app.state, "auth_enabled", False)):
        return

    expected = getattr(request.app.state, "api_key", None)
    if not expected or x_api_key is None or not str(x_api_key).strip():
        _fail()

    if not hmac.compare_digest(str(x_api_key).strip(), str(expected)):
        _fail()

"""API key authentication dependency."""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-Api-Key"),
    authorization: Optional[str] = Header(None),
) -> str:
    """Accept the admin key from ``X-Api-Key`` or ``Authorization: Bearer``."""
    provided = x_api_key
    if not provided and authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]

    expected = request.app.state.container.settings.api_key
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return provided

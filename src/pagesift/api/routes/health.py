"""Health check route.

``GET /health``
    Reports whether the shared Chromium instance is connected and how many
    sessions are active.  Launches the browser if it is not running yet.
    Returns HTTP 200 when healthy and 503 otherwise.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pagesift.api.dependencies import get_session_manager
from pagesift.scraper.session_manager import SessionManager

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> JSONResponse:
    """Return browser engine status and session usage."""
    status = await sessions.health()
    code = 200 if status.get("status") == "healthy" else 503
    return JSONResponse(status, status_code=code)

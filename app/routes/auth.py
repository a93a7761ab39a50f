"""
Authentication routes - login/logout.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import settings
from ..dependencies import get_session_manager, check_auth
from ..auth import verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")


class LoginRequest(BaseModel):
    password: str


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    """Check the admin password and start a session."""
    session_manager = get_session_manager()

    if not settings.admin_password_hash or not verify_password(body.password, settings.admin_password_hash):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"Failed admin login from {client_ip}")
        raise HTTPException(status_code=401, detail="Invalid password")

    response = JSONResponse({"success": True})
    session_manager.create_session(response)
    return response


@router.post("/logout")
async def logout():
    """End the session."""
    session_manager = get_session_manager()
    response = JSONResponse({"success": True})
    session_manager.clear_session(response)
    return response


@router.get("/me")
async def whoami(request: Request):
    """Whether the caller holds a valid session."""
    return {"authenticated": check_auth(request)}

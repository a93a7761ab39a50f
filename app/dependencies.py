"""
FastAPI dependency injection.
Database, Ginee client and session management.
"""

from typing import Callable, Optional
from fastapi import Request, HTTPException

from .config import settings
from .db import SQLiteDatabase
from .auth import SessionManager
from .ginee import GineeClient


# Global instances (initialized on startup)
_db: Optional[SQLiteDatabase] = None
_session_manager: Optional[SessionManager] = None
_ginee_client: Optional[GineeClient] = None


def create_ginee_client() -> GineeClient:
    """Build a client from settings. Background runs own and close their own."""
    return GineeClient(
        settings.ginee_base_url,
        settings.ginee_api_token,
        timeout=settings.ginee_timeout_seconds,
    )


async def init_dependencies():
    """Initialize global dependencies. Called on app startup."""
    global _db, _session_manager, _ginee_client

    _db = SQLiteDatabase(settings.database_path)
    await _db.initialize()

    _session_manager = SessionManager(settings.session_secret)
    _ginee_client = create_ginee_client()


async def close_dependencies():
    """Close global dependencies. Called on app shutdown."""
    global _db, _ginee_client
    if _ginee_client:
        await _ginee_client.close()
        _ginee_client = None
    if _db:
        await _db.close()


def get_db() -> SQLiteDatabase:
    """Get the database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


def get_ginee_client() -> GineeClient:
    """Shared client for request-scoped sync operations."""
    if _ginee_client is None:
        raise RuntimeError("Ginee client not initialized")
    return _ginee_client


def get_ginee_client_factory() -> Callable[[], GineeClient]:
    """Factory handed to background sync-all runs."""
    return create_ginee_client


def get_session_manager() -> SessionManager:
    """Get the session manager instance."""
    if _session_manager is None:
        raise RuntimeError("Session manager not initialized")
    return _session_manager


async def require_auth(request: Request):
    """Dependency that requires an authenticated session."""
    session_manager = get_session_manager()

    if not session_manager.is_authenticated(request):
        raise HTTPException(status_code=401, detail="Not authenticated")


def check_auth(request: Request) -> bool:
    """Check if user is authenticated (without raising exception)."""
    session_manager = get_session_manager()
    return session_manager.is_authenticated(request)

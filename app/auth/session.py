"""
Cookie-based admin sessions.
"""

from datetime import datetime
from typing import Optional

from fastapi import Request, Response
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired


# Session duration: 12 hours
SESSION_MAX_AGE = 12 * 60 * 60  # seconds
SESSION_COOKIE_NAME = "admin_session"


class SessionManager:
    """Issues and checks signed session cookies for the admin panel."""

    def __init__(self, secret_key: str, secure_cookies: bool = False):
        self._serializer = URLSafeTimedSerializer(secret_key, salt="admin-session")
        self._secure = secure_cookies

    def create_session(self, response: Response, user_id: str = "admin") -> None:
        token = self._serializer.dumps({
            "user_id": user_id,
            "created_at": datetime.utcnow().isoformat(),
        })
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=token,
            max_age=SESSION_MAX_AGE,
            httponly=True,
            samesite="lax",
            secure=self._secure,
        )

    def get_session(self, request: Request) -> Optional[dict]:
        """Session data, or None when the cookie is missing, forged or expired."""
        token = request.cookies.get(SESSION_COOKIE_NAME)
        if not token:
            return None

        try:
            return self._serializer.loads(token, max_age=SESSION_MAX_AGE)
        except (BadSignature, SignatureExpired):
            return None

    def clear_session(self, response: Response) -> None:
        response.delete_cookie(
            key=SESSION_COOKIE_NAME,
            httponly=True,
            samesite="lax",
        )

    def is_authenticated(self, request: Request) -> bool:
        return self.get_session(request) is not None

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from .models import User
from .settings import get_settings
from .store.firestore import init_firebase_app

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


def verify_id_token(token: str) -> User:
    """
    Verify a Firebase ID token and return the identity it carries.

    Raises ValueError or a firebase_admin error when the token is invalid,
    expired or revoked.
    """
    init_firebase_app(get_settings().firebase_credentials)
    claims = firebase_auth.verify_id_token(token)
    return User(uid=claims["uid"], email=claims.get("email"), display_name=claims.get("name"))


# PUBLIC_INTERFACE
def get_auth_dependency():
    """
    Return a FastAPI dependency callable that requires a Firebase ID token only
    when REQUIRE_AUTH is enabled in settings. When disabled, the dependency is a no-op.

    Behavior:
    - If settings.require_auth is False (default): returns a dependency that does nothing.
    - If True: expects 'Authorization: Bearer <id token>' and verifies it with firebase_admin.
      Missing or invalid tokens raise 401 with WWW-Authenticate: Bearer.

    Usage:
        router = APIRouter(dependencies=[Depends(get_auth_dependency())])
    """
    settings = get_settings()

    if not settings.require_auth:
        async def _noop() -> None:  # noqa: D401 - trivial
            """No-op dependency (auth disabled)."""
            return None

        return _noop

    def _enforce(creds: Optional[HTTPAuthorizationCredentials] = Depends(_security)) -> User:
        """
        Enforce bearer-token authentication when enabled.

        Raises:
            HTTPException(401) if the token is missing or invalid.
        """
        if creds is None or not creds.credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            return verify_id_token(creds.credentials)
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            logger.info("Rejected ID token: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc

    return _enforce

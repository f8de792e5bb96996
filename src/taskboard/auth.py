from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import get_settings

logger = logging.getLogger(__name__)

_security = HTTPBasic(auto_error=False, realm="taskboard")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": 'Basic realm="taskboard"'},
    )


# PUBLIC_INTERFACE
def get_basic_auth_dependency():
    """
    Return a FastAPI dependency that enforces HTTP Basic Auth when
    ENABLE_BASIC_AUTH is set, and does nothing otherwise.

    Usage:
        router = APIRouter(dependencies=[Depends(get_basic_auth_dependency())])
    """
    settings = get_settings()

    if not settings.enable_basic_auth:
        async def _noop() -> None:
            return None

        return _noop

    expected_user: Optional[str] = settings.basic_auth_username
    expected_pass: Optional[str] = settings.basic_auth_password
    if expected_user is None or expected_pass is None:
        logger.warning(
            "ENABLE_BASIC_AUTH is set but BASIC_AUTH_USERNAME/PASSWORD are missing; "
            "all requests will be rejected"
        )

    async def _enforce(creds: Optional[HTTPBasicCredentials] = Depends(_security)) -> None:
        """
        Raises:
            HTTPException(401) if credentials are missing, invalid, or not configured.
        """
        if creds is None:
            raise _unauthorized("Not authenticated")
        if expected_user is None or expected_pass is None:
            raise _unauthorized("Server authentication not configured")

        user_ok = secrets.compare_digest(creds.username.encode(), expected_user.encode())
        pass_ok = secrets.compare_digest(creds.password.encode(), expected_pass.encode())
        if not (user_ok and pass_ok):
            raise _unauthorized("Invalid authentication credentials")

    return _enforce

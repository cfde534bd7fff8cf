"""Dependency injection for FastAPI endpoints"""

import logging
from datetime import datetime
from typing import Callable, Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from payout_gateway.config import settings
from payout_gateway.infrastructure.database.models import AdminUser
from payout_gateway.infrastructure.database.repositories import AdminRepository
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.utils.date_utils import utc_now

security = HTTPBearer(auto_error=False)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> Callable[[], datetime]:
    """Provide the wall clock; tests override this to pin cycle boundaries"""
    return utc_now


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AdminUser:
    """
    Resolve the calling operator from a Bearer API key.

    Raises:
        HTTPException: 401 if the key is missing, unknown or inactive
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin = AdminRepository(db).get_active_by_api_key(credentials.credentials)
    if admin is None:
        logging.warning("Authentication failed: invalid or inactive API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin


def require_payout_admin(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
    """Only the configured payout role may run payout stages"""
    if admin.role != settings.payout_admin_role:
        logging.warning(
            "Access denied: insufficient role",
            extra={"admin_id": admin.id, "role": admin.role, "required_role": settings.payout_admin_role},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return admin

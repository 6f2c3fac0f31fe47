from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from ..database import get_db, get_supabase
from ..models.user import User
from ..services.notification_service import (
    NotificationScheduler,
    get_notification_scheduler,
)
from ..services.response_service import ResponseService
from supabase import Client
import logging

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


def _resolve_user(token: str, db: Session, supabase: Client) -> Optional[User]:
    """Verify a Supabase access token and return the matching local user"""
    auth_response = supabase.auth.get_user(token)

    if not auth_response or not auth_response.user:
        return None

    supabase_user = auth_response.user

    user = (
        db.query(User)
        .filter(User.supabase_id == supabase_user.id, User.is_active == True)
        .first()
    )

    # First request from this account: mirror it locally
    if not user:
        user = User.create_from_supabase(supabase_user, db)

    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Authenticated user when a bearer token is sent, otherwise None (guest)"""
    if credentials is None:
        return None

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        user = _resolve_user(credentials.credentials, db, get_supabase())
    except Exception as e:
        logger.error(f"Authentication error: {e}")
        raise credentials_exception

    if user is None:
        raise credentials_exception
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    """Require an authenticated user"""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_response_service(
    db: Session = Depends(get_db),
    notifier: NotificationScheduler = Depends(get_notification_scheduler),
) -> ResponseService:
    return ResponseService(db, notifier=notifier)

from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import decode_access_token
from app.services.waitlist_service import WaitlistService
from app.utils.notification_service import NotificationService

bearer_scheme = HTTPBearer(auto_error=False)


def _extract_token(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Access token from the Authorization header, falling back to the ``token`` cookie."""
    if creds and creds.scheme.lower() == "bearer" and creds.credentials:
        return creds.credentials
    return request.cookies.get("token")


def get_current_user_id(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    token = _extract_token(request, creds)
    payload = decode_access_token(token) if token else None

    user_id = None
    if payload:
        user_id = payload.get("sub") or payload.get("id")

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(user_id)


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_waitlist_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service)
) -> WaitlistService:
    return WaitlistService(db, notifier)

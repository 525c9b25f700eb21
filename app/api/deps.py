"""
FastAPI dependencies (DB session, current user, messaging bridge)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from app.application.telegram_bridge import get_messenger as _get_messenger
from app.infrastructure.db.session import get_db as _get_db
from app.infrastructure.db.models import User


# Re-exported so tests can override them via app.dependency_overrides
get_db = _get_db
get_messenger = _get_messenger


def get_current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    """
    Current user id from the session cookie (set by the login flow)

    Raises:
        HTTPException(401): not logged in or the user no longer exists

    Usage:
        @router.get("/equbs")
        def list_equbs(user_id: int = Depends(get_current_user_id)):
            ...
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user.id

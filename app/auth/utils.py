"""
Authentication utilities for session-based auth.

The journal owner is the logged-in user's id. With the local store backend
there is no login: every request belongs to the local pseudo-owner.
Missing sessions raise Unauthenticated, which the app maps to a 401.
"""

import logging
from typing import Optional

from fastapi import Request, Depends
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User
from app.services.errors import Unauthenticated
from app.services.local_store import LOCAL_OWNER

logger = logging.getLogger(__name__)

# Password hashing context using bcrypt
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt has a 72-byte limit on passwords
BCRYPT_MAX_BYTES = 72

SESSION_KEY = "user_id"


def _safe_password(password: str) -> bytes:
    """Encode and truncate to bcrypt's 72-byte limit; long CJK passwords hit it quickly."""
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(_safe_password(plain_password), hashed_password)
    except ValueError:
        # Malformed or unknown hash format
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(_safe_password(password))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _active_user(request: Request, db: Session) -> User:
    user_id = request.session.get(SESSION_KEY)
    if not user_id:
        raise Unauthenticated("Not logged in, please log in first")

    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if not user:
        request.session.clear()
        raise Unauthenticated("Session expired, please log in again")
    return user


def get_current_owner(request: Request, db: Session = Depends(get_db)):
    """
    Journal owner for this request.

    Local backend: the pseudo-owner. SQL backend: the session's user id,
    as long as that user still exists and is active.
    Raises Unauthenticated otherwise.
    """
    if request.app.state.store_backend == "local":
        return LOCAL_OWNER
    return _active_user(request, db).id


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """The logged-in, still active user. A deactivated user's session is dropped."""
    return _active_user(request, db)


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """
    Check an email/password pair.
    Returns the user if authentication succeeds, None otherwise.
    """
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not user.is_active:
        logger.info("Login rejected: unknown or inactive account")
        return None

    if not verify_password(password, user.password_hash):
        logger.info(f"Login rejected: wrong password for user {user.id}")
        return None

    return user


def start_session(request: Request, user: User) -> None:
    request.session.clear()
    request.session[SESSION_KEY] = user.id


def end_session(request: Request) -> Optional[int]:
    """Clear the session, returning the user id it belonged to."""
    user_id = request.session.get(SESSION_KEY)
    request.session.clear()
    return user_id

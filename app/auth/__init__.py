from app.auth.utils import (
    authenticate_user,
    end_session,
    get_current_owner,
    get_current_user,
    get_password_hash,
    start_session,
    verify_password,
)

__all__ = [
    "authenticate_user",
    "end_session",
    "get_current_owner",
    "get_current_user",
    "get_password_hash",
    "start_session",
    "verify_password",
]

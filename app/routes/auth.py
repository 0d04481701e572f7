"""
Auth Routes

Session login for the SQL backend. The local backend never needs these.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.auth.utils import authenticate_user, end_session, get_current_user, start_session
from app.database import get_db
from app.models import User

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


def _user_payload(user: User) -> dict:
    return {"id": user.id, "email": user.email, "full_name": user.full_name}


@router.post("/login")
async def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.email, data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    start_session(request, user)
    return _user_payload(user)


@router.post("/logout")
async def logout(request: Request):
    """End the session and drop the owner's cached journal state."""
    user_id = end_session(request)
    if user_id:
        request.app.state.engine.forget_owner(user_id)
    return {"ok": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return _user_payload(user)

# src/wpfleet/api/auth.py
"""
Password hashing and session helpers.
"""
from typing import Optional

from fastapi import HTTPException, Request
from passlib.context import CryptContext

from wpfleet.api.schemas import User
from wpfleet.engine.storage import Storage

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

SESSION_USER_KEY = "user_id"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def authenticate_user(store: Storage, username: str, password: str) -> Optional[User]:
    user = store.get_user_by_username(username)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def login_session(request: Request, user: User) -> None:
    request.session[SESSION_USER_KEY] = user.id


def logout_session(request: Request) -> None:
    request.session.clear()


def require_auth(request: Request) -> int:
    """Dependency for protected routes: the logged-in user id, or 401."""
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id

"""
Authentication flows and the route guards built on them.

``protect`` resolves the bearer token to the current user and
``restrict_to`` narrows a route to a set of roles; both are FastAPI
dependencies. The flow functions return response envelopes.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from natours.core.errors import AppError
from natours.core.security import (
    changed_password_after,
    create_password_reset_token,
    decode_token,
    hash_password,
    hash_reset_token,
    sign_token,
    verify_password,
)
from natours.db.database import get_db
from natours.db.repositories import UserRepository, public_user

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def token_response(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": "success",
        "token": sign_token(user["id"]),
        "data": {"user": public_user(user)},
    }


def _password_changed_now() -> datetime:
    # one second back so a token issued right after the change still verifies
    return datetime.now(timezone.utc) - timedelta(seconds=1)


# ============================================================================
# ROUTE GUARDS
# ============================================================================

def protect(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Require a valid bearer token; returns the current user row."""
    if credentials is None or not credentials.credentials:
        raise AppError("You are not logged in! Please log in to get access.", 401)

    try:
        payload = decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise AppError("Your token has expired! Please log in again.", 401) from None
    except JWTError:
        raise AppError("Invalid token. Please log in again!", 401) from None

    user_id = payload.get("id")
    user = UserRepository(db).get_by_id(user_id) if user_id is not None else None
    if user is None:
        raise AppError("The user belonging to this token does no longer exist.", 401)

    if changed_password_after(user["password_changed_at"], payload.get("iat", 0)):
        raise AppError("User recently changed password! Please log in again.", 401)

    return user


def restrict_to(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency factory: allow only users whose role is in ``roles``."""

    def dependency(current_user: Dict[str, Any] = Depends(protect)) -> Dict[str, Any]:
        if current_user["role"] not in roles:
            raise AppError("You do not have permission to perform this action", 403)
        return current_user

    return dependency


# ============================================================================
# FLOWS
# ============================================================================

def signup(db: Session, name: str, email: str, password: str, photo: Optional[str] = None) -> Dict[str, Any]:
    user = UserRepository(db).create(name, email.lower(), hash_password(password), photo=photo)
    logger.info(f"New user signed up: {user['id']}")
    return token_response(user)


def login(db: Session, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    if not email or not password:
        raise AppError("Please provide email and password!", 400)

    user = UserRepository(db).get_by_email(email.lower())
    if user is None or not verify_password(password, user["password"]):
        raise AppError("Incorrect email or password", 401)

    return token_response(user)


def forgot_password(db: Session, email: Optional[str], reset_url_base: str) -> Dict[str, Any]:
    repo = UserRepository(db)
    user = repo.get_by_email(email.lower()) if email else None
    if user is None:
        raise AppError("There is no user with that email address.", 404)

    token, token_hash, expires = create_password_reset_token()
    repo.set_reset_token(user["id"], token_hash, expires)

    # no mail transport: the link is logged for the operator to hand over
    logger.info(f"Password reset requested for user {user['id']}: {reset_url_base}{token}")
    return {"status": "success", "message": "Token sent to email!"}


def reset_password(db: Session, token: str, password: str) -> Dict[str, Any]:
    repo = UserRepository(db)
    user = repo.get_by_reset_token(hash_reset_token(token))
    if user is None:
        raise AppError("Token is invalid or has expired", 400)

    repo.set_password(user["id"], hash_password(password), _password_changed_now())
    return token_response(user)


def update_password(db: Session, current_user: Dict[str, Any], current_password: str, new_password: str) -> Dict[str, Any]:
    if not verify_password(current_password, current_user["password"]):
        raise AppError("Your current password is wrong.", 401)

    UserRepository(db).set_password(
        current_user["id"], hash_password(new_password), _password_changed_now()
    )
    return token_response(current_user)

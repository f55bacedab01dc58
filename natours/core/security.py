"""
Password hashing, JWT signing and password-reset tokens.
Thin wrappers around passlib and python-jose.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
import hashlib
import secrets

from jose import jwt
from passlib.context import CryptContext

from natours.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def sign_token(user_id: int) -> str:
    """Issue an access token for a user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.jwt_expires_in_days)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry. Raises jose.JWTError (or ExpiredSignatureError)."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def changed_password_after(password_changed_at: Optional[datetime], issued_at: int) -> bool:
    if password_changed_at is None:
        return False
    return int(as_utc(password_changed_at).timestamp()) > issued_at


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_password_reset_token() -> Tuple[str, str, datetime]:
    """Return (plain token, stored hash, expiry)."""
    token = secrets.token_hex(32)
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=settings.password_reset_expires_minutes
    )
    return token, hash_reset_token(token), expires

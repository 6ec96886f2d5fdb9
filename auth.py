import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import get_settings
from database import now_utc
from errors import AuthorizationError

ALGORITHM = "HS256"
HASH_SCHEME = "pbkdf2_sha256"
HASH_ITERATIONS = 260000


def hash_password(password: str, salt: Optional[str] = None, iterations: int = HASH_ITERATIONS) -> str:
    """Salted PBKDF2 digest stored as ``scheme$iterations$salt$hex``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{HASH_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        scheme, iterations, salt, _ = password_hash.split("$")
        iterations = int(iterations)
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    return hmac.compare_digest(hash_password(password, salt, iterations), password_hash)



def create_token(user_id: str) -> str:
    settings = get_settings()
    issued = now_utc()
    payload = {
        "sub": user_id,
        "iat": issued,
        "exp": issued + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> str:
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        raise AuthorizationError("Not authorized, token failed")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthorizationError("Not authorized, token failed")
    return user_id


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency resolving the bearer token to a user id."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Not authorized, no token")
    return decode_token(authorization.split(" ", 1)[1].strip())

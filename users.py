from typing import Dict, List, Optional

from loguru import logger
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from auth import create_token, hash_password, verify_password
from database import create_document, now_utc, parse_object_id, serialize_doc
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from schemas import User

PUBLIC_FIELDS = {"name": 1, "email": 1, "profile_picture": 1, "karma_points": 1, "role": 1, "created_at": 1}
DISPLAY_FIELDS = {"name": 1, "email": 1, "profile_picture": 1}


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Invalid email")
    return email


def _with_token(user: dict) -> dict:
    out = serialize_doc(user)
    out["token"] = create_token(out["id"])
    return out


def display_users(db: Database, user_ids: List[str]) -> Dict[str, dict]:
    """Name/email/avatar for each id, keyed by id string."""
    oids = [parse_object_id(u, "user id") for u in user_ids]
    docs = db["user"].find({"_id": {"$in": oids}}, DISPLAY_FIELDS)
    return {str(d["_id"]): serialize_doc(d) for d in docs}


def register_user(db: Database, name: str, email: str, password: str) -> dict:
    email = _normalize_email(email)
    if not name or not name.strip():
        raise ValidationError("Name is required")
    if db["user"].find_one({"email": email}):
        raise ConflictError("User already exists")
    user = User(name=name.strip(), email=email, password_hash=hash_password(password))
    user_id = create_document(db, "user", user)
    logger.info("Registered user {}", user_id)
    return _with_token(db["user"].find_one({"_id": parse_object_id(user_id)}))


def authenticate(db: Database, email: str, password: str) -> dict:
    user = db["user"].find_one({"email": (email or "").strip().lower()})
    if not user or not verify_password(password, user.get("password_hash")):
        raise AuthorizationError("Invalid email or password")
    return _with_token(user)


def get_user(db: Database, user_id: str) -> dict:
    user = db["user"].find_one({"_id": parse_object_id(user_id, "user id")}, PUBLIC_FIELDS)
    if not user:
        raise NotFoundError("User not found")
    return serialize_doc(user)


def update_profile(db: Database, user_id: str, name: Optional[str] = None, email: Optional[str] = None, password: Optional[str] = None) -> dict:
    changes = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("Name is required")
        changes["name"] = name.strip()
    if email is not None:
        email = _normalize_email(email)
        other = db["user"].find_one({"email": email})
        if other and str(other["_id"]) != user_id:
            raise ConflictError("Email already in use")
        changes["email"] = email
    if password:
        changes["password_hash"] = hash_password(password)
    changes["updated_at"] = now_utc()
    user = db["user"].find_one_and_update(
        {"_id": parse_object_id(user_id, "user id")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFoundError("User not found")
    return _with_token(user)


def set_profile_picture(db: Database, user_id: str, url: str) -> dict:
    result = db["user"].update_one(
        {"_id": parse_object_id(user_id, "user id")},
        {"$set": {"profile_picture": url, "updated_at": now_utc()}},
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    return get_user(db, user_id)


def leaderboard(db: Database, limit: int = 10) -> List[dict]:
    docs = db["user"].find({}, {"name": 1, "profile_picture": 1, "karma_points": 1}).sort(
        [("karma_points", DESCENDING), ("name", 1)]
    ).limit(limit)
    return [serialize_doc(d) for d in docs]

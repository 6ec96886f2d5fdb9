"""
MongoDB access for LocalAid.

Collections are named after the lowercased schema class:
- User -> "user"
- Post -> "post"
- Conversation -> "conversation"
- Message -> "message"
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import HTTPException
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, GEOSPHERE, MongoClient
from pymongo.database import Database

from config import get_settings
from errors import ValidationError

_settings = get_settings()

client: Optional[MongoClient] = MongoClient(_settings.database_url) if _settings.database_url else None
db: Optional[Database] = client[_settings.database_name] if client is not None else None


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ValidationError(f"Invalid {label}")
    return ObjectId(str(value))


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database: Database) -> None:
    database["post"].create_index([("location", GEOSPHERE)])
    database["post"].create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])
    database["user"].create_index("email", unique=True)
    database["conversation"].create_index("member_key", unique=True)
    database["message"].create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])
    logger.info("MongoDB indexes ensured on {}", database.name)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password_hash", None)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
        elif isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else i for i in v]
        elif isinstance(v, dict):
            doc[k] = serialize_doc(v)
    return doc

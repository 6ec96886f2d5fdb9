"""
Conversations and messages between pairs of neighbors.

A conversation belongs jointly to its two members. It is looked up by
`member_key`, the two user ids sorted and joined, so the same pair always
resolves to one record regardless of who starts the chat.
"""
from typing import List, Optional

from bson import ObjectId
from loguru import logger
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, now_utc, parse_object_id, serialize_doc
from errors import AuthorizationError, NotFoundError, ValidationError
from notifications import EVENT_MESSAGE_RECEIVED, Notifier
from schemas import Message
from users import display_users


def member_key(user_a: str, user_b: str) -> str:
    return ":".join(sorted([user_a, user_b]))


def _expand_messages(db: Database, messages: List[dict]) -> List[dict]:
    senders = display_users(db, list({m["sender_id"] for m in messages}))
    out = []
    for m in messages:
        item = serialize_doc(m)
        item["sender"] = senders.get(m["sender_id"])
        out.append(item)
    return out


def _expand_conversations(db: Database, conversations: List[dict]) -> List[dict]:
    member_ids = {uid for c in conversations for uid in c["members"]}
    members = display_users(db, list(member_ids))
    latest_ids = [ObjectId(c["latest_message_id"]) for c in conversations if c.get("latest_message_id")]
    latest = {}
    if latest_ids:
        docs = list(db["message"].find({"_id": {"$in": latest_ids}}))
        latest = {m["id"]: m for m in _expand_messages(db, docs)}
    out = []
    for c in conversations:
        item = serialize_doc(c)
        item["members"] = [members.get(uid, {"id": uid}) for uid in c["members"]]
        item["latest_message"] = latest.get(c.get("latest_message_id"))
        out.append(item)
    return out


def _load_conversation(db: Database, conversation_id: str, user_id: str) -> dict:
    conversation = db["conversation"].find_one({"_id": parse_object_id(conversation_id, "conversation id")})
    if not conversation:
        raise NotFoundError("Conversation not found")
    if user_id not in conversation["members"]:
        raise AuthorizationError("Not a member of this conversation")
    return conversation


def get_or_create_conversation(db: Database, user_id: str, other_user_id: Optional[str]) -> dict:
    if not other_user_id:
        raise ValidationError("userId is required")
    if user_id == other_user_id:
        raise AuthorizationError("Cannot chat with yourself", status_code=400)
    if not db["user"].find_one({"_id": parse_object_id(other_user_id, "user id")}, {"_id": 1}):
        raise NotFoundError("User not found")

    key = member_key(user_id, other_user_id)
    stamp = now_utc()
    # single upsert so concurrent first contact cannot create two conversations
    conversation = db["conversation"].find_one_and_update(
        {"member_key": key},
        {"$setOnInsert": {
            "members": [user_id, other_user_id],
            "latest_message_id": None,
            "created_at": stamp,
            "updated_at": stamp,
        }},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Resolved conversation {} for {}", conversation["_id"], key)
    return _expand_conversations(db, [conversation])[0]


def list_conversations(db: Database, user_id: str) -> List[dict]:
    docs = list(db["conversation"].find({"members": user_id}).sort("updated_at", DESCENDING))
    return _expand_conversations(db, docs)


def append_message(db: Database, notifier: Notifier, conversation_id: Optional[str], sender_id: str,
                   text: Optional[str] = None, image: Optional[str] = None) -> dict:
    """Store a message, move the conversation's latest pointer and push it to the other member."""
    text = text.strip() if text else None
    if not conversation_id or (not text and not image):
        raise ValidationError("Invalid data")
    conversation = _load_conversation(db, conversation_id, sender_id)

    message = Message(sender_id=sender_id, conversation_id=str(conversation["_id"]), text=text, image=image)
    message_id = create_document(db, "message", message)
    stored = db["message"].find_one({"_id": ObjectId(message_id)})

    db["conversation"].update_one(
        {"_id": conversation["_id"]},
        {"$set": {"latest_message_id": message_id, "updated_at": stored["created_at"]}},
    )

    payload = _expand_messages(db, [stored])[0]
    members = display_users(db, conversation["members"])
    payload["conversation"] = {
        "id": str(conversation["_id"]),
        "members": [members.get(uid, {"id": uid}) for uid in conversation["members"]],
    }

    for member in conversation["members"]:
        if member == sender_id:
            continue
        notifier.to_user(member, EVENT_MESSAGE_RECEIVED, payload)
    return payload


def list_messages(db: Database, conversation_id: str, user_id: str) -> List[dict]:
    conversation = _load_conversation(db, conversation_id, user_id)
    docs = list(
        db["message"].find({"conversation_id": str(conversation["_id"])}).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
    )
    return _expand_messages(db, docs)

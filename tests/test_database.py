from datetime import datetime, timezone

import pytest
from bson import ObjectId

from database import create_document, parse_object_id, serialize_doc
from errors import ValidationError
from schemas import GeoPoint


def test_create_document_stamps_timestamps(db):
    doc_id = create_document(db, "post", {"title": "Ladder"})
    stored = db["post"].find_one({"_id": ObjectId(doc_id)})
    assert stored["created_at"] is not None
    assert stored["updated_at"] is not None


def test_serialize_doc_flattens_ids_and_dates():
    oid = ObjectId()
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    out = serialize_doc({
        "_id": oid,
        "password_hash": "secret",
        "created_at": when,
        "location": GeoPoint.from_lat_lng(12.97, 77.59).model_dump(),
        "members": [{"_id": oid, "name": "Alice"}, "raw"],
    })
    assert out["id"] == str(oid)
    assert "password_hash" not in out
    assert out["created_at"] == when.isoformat()
    assert out["location"]["coordinates"] == [77.59, 12.97]
    assert out["members"] == [{"id": str(oid), "name": "Alice"}, "raw"]


def test_parse_object_id():
    oid = ObjectId()
    assert parse_object_id(str(oid)) == oid
    assert parse_object_id(oid) is oid
    with pytest.raises(ValidationError):
        parse_object_id("123")
    with pytest.raises(ValidationError):
        parse_object_id(None)

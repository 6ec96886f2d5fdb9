"""
Help posts: creation, nearby search, trends, deletion and fulfillment.

Locations are stored as GeoJSON points ([lng, lat]). Proximity is decided by
great-circle distance so a query never returns a post outside its radius.
"""
import re
from collections import Counter
from math import asin, atan2, cos, degrees, radians, sin, sqrt
from typing import List, Optional

from bson import ObjectId
from loguru import logger
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, now_utc, parse_object_id, serialize_doc
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from notifications import (
    EVENT_KARMA_UPDATED,
    EVENT_NEW_POST,
    EVENT_POST_COMPLETED,
    EVENT_POST_DELETED,
    Notifier,
)
from schemas import CreatePostBody, GeoPoint, Post
from summarizer import NO_ACTIVITY, Summarizer, TrendStats, TypeTrend
from users import display_users

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 10.0
KARMA_REWARD = 10


def distance_km(a, b):
    """Haversine distance between two (lat, lng) pairs."""
    dlat = radians(b[0] - a[0])
    dlon = radians(b[1] - a[1])
    x = sin(dlat / 2) ** 2 + cos(radians(a[0])) * cos(radians(b[0])) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(x), sqrt(1 - x))


def _post_lat_lng(post: dict):
    coords = (post.get("location") or {}).get("coordinates") or []
    if len(coords) != 2:
        return None
    return coords[1], coords[0]


def _bounding_box(lat: float, lng: float, radius_km: float) -> dict:
    """Coordinate ranges enclosing the search circle, used to narrow the read before the exact check."""
    angle = radius_km / EARTH_RADIUS_KM
    dlat = degrees(angle)
    box = {"location.coordinates.1": {"$gte": max(lat - dlat, -90.0), "$lte": min(lat + dlat, 90.0)}}
    # a circle reaching a pole spans every longitude
    if abs(lat) + dlat >= 90:
        return box
    dlng = degrees(asin(sin(angle) / cos(radians(lat))))
    # a box crossing the antimeridian is left open in longitude
    if -180 <= lng - dlng and lng + dlng <= 180:
        box["location.coordinates.0"] = {"$gte": lng - dlng, "$lte": lng + dlng}
    return box


def _within(posts: List[dict], lat: float, lng: float, radius_km: float) -> List[dict]:
    out = []
    for p in posts:
        point = _post_lat_lng(p)
        if point is not None and distance_km((lat, lng), point) <= radius_km:
            out.append(p)
    return out


def _expand_owners(db: Database, posts: List[dict]) -> List[dict]:
    owners = display_users(db, list({p["user_id"] for p in posts}))
    out = []
    for p in posts:
        item = serialize_doc(p)
        owner = owners.get(p["user_id"], {"id": p["user_id"]})
        item["user"] = {"id": owner["id"], "name": owner.get("name"), "profile_picture": owner.get("profile_picture")}
        out.append(item)
    return out


def _load_owned_post(db: Database, post_id: str, acting_user_id: str, action: str) -> dict:
    post = db["post"].find_one({"_id": parse_object_id(post_id, "post id")})
    if not post:
        raise NotFoundError("Post not found")
    if post["user_id"] != acting_user_id:
        raise AuthorizationError(f"Not authorized to {action} this post")
    return post


def create_post(db: Database, notifier: Notifier, owner_id: str, body: CreatePostBody) -> dict:
    post = Post(
        user_id=owner_id,
        title=body.title.strip(),
        description=body.description.strip(),
        type=body.type,
        category=body.category.strip(),
        location=GeoPoint.from_lat_lng(body.latitude, body.longitude, body.address),
        images=body.images,
    )
    post_id = create_document(db, "post", post)
    created = _expand_owners(db, [db["post"].find_one({"_id": ObjectId(post_id)})])[0]
    logger.info("User {} created {} post {}", owner_id, post.type, post_id)
    notifier.broadcast(EVENT_NEW_POST, created)
    return created


def query_posts(db: Database, lat: Optional[float] = None, lng: Optional[float] = None,
                dist_km: Optional[float] = None, exclude_id: Optional[str] = None,
                post_type: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    filt = {}
    if exclude_id:
        filt["user_id"] = {"$ne": exclude_id}
    if post_type and post_type != "all":
        if post_type not in ("request", "offer"):
            raise ValidationError("Invalid post type")
        filt["type"] = post_type
    if search and search.strip():
        pattern = re.escape(search.strip())
        filt["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"category": {"$regex": pattern, "$options": "i"}},
        ]
    nearby = lat is not None and lng is not None
    if nearby:
        filt.update(_bounding_box(lat, lng, dist_km or DEFAULT_RADIUS_KM))
    docs = list(db["post"].find(filt).sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
    if nearby:
        docs = _within(docs, lat, lng, dist_km or DEFAULT_RADIUS_KM)
    return _expand_owners(db, docs)


def list_user_posts(db: Database, user_id: str) -> List[dict]:
    docs = list(db["post"].find({"user_id": user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
    return [serialize_doc(d) for d in docs]


def _type_trend(posts: List[dict]) -> TypeTrend:
    if not posts:
        return TypeTrend()
    category, count = Counter(p["category"] for p in posts).most_common(1)[0]
    return TypeTrend(count=len(posts), top_category=category, top_category_count=count)


def trend_summary(db: Database, summarizer: Summarizer, lat: float, lng: float,
                  dist_km: Optional[float] = None, exclude_id: Optional[str] = None) -> dict:
    radius = dist_km or DEFAULT_RADIUS_KM
    filt = {"status": "open"}
    if exclude_id:
        filt["user_id"] = {"$ne": exclude_id}
    filt.update(_bounding_box(lat, lng, radius))
    nearby = _within(list(db["post"].find(filt, {"type": 1, "category": 1, "location": 1})), lat, lng, radius)
    if not nearby:
        return {"summary": NO_ACTIVITY}

    stats = TrendStats(
        radius_km=radius,
        requests=_type_trend([p for p in nearby if p["type"] == "request"]),
        offers=_type_trend([p for p in nearby if p["type"] == "offer"]),
    )
    result = {
        "summary": summarizer.summarize(stats),
        "requests": stats.requests.count,
        "offers": stats.offers.count,
    }
    if stats.requests.top_category:
        result["mostNeeded"] = stats.requests.top_category
    if stats.offers.top_category:
        result["mostOffered"] = stats.offers.top_category
    return result


def delete_post(db: Database, notifier: Notifier, post_id: str, acting_user_id: str) -> dict:
    post = _load_owned_post(db, post_id, acting_user_id, "delete")
    result = db["post"].delete_one({"_id": post["_id"]})
    if result.deleted_count == 0:
        raise NotFoundError("Post not found")
    logger.info("User {} deleted post {}", acting_user_id, post["_id"])
    notifier.broadcast(EVENT_POST_DELETED, {"post_id": str(post["_id"])})
    return {"message": "Post removed", "id": str(post["_id"])}


def fulfill_post(db: Database, notifier: Notifier, post_id: str, acting_user_id: str,
                 helper_id: Optional[str] = None, reward: int = KARMA_REWARD) -> dict:
    """Mark an open post fulfilled and credit the helper with karma.

    Only the owner may fulfill, and only once: the open -> fulfilled flip is a
    conditional update, so a second or concurrent call fails with
    ConflictError and awards nothing.
    """
    post = _load_owned_post(db, post_id, acting_user_id, "fulfill")
    if post.get("status") == "fulfilled":
        raise ConflictError("Post already fulfilled")

    helper_oid = None
    if helper_id:
        if helper_id == acting_user_id:
            raise ValidationError("You cannot award karma to yourself")
        helper_oid = parse_object_id(helper_id, "helper id")
        if not db["user"].find_one({"_id": helper_oid}, {"_id": 1}):
            raise NotFoundError("Helper not found")

    flipped = db["post"].update_one(
        {"_id": post["_id"], "status": "open"},
        {"$set": {"status": "fulfilled", "fulfilled_by": helper_id, "updated_at": now_utc()}},
    )
    if flipped.modified_count == 0:
        raise ConflictError("Post already fulfilled")

    result = {"message": "Post marked as fulfilled", "post_id": str(post["_id"]), "status": "fulfilled",
              "fulfilled_by": helper_id}

    if helper_oid is not None:
        helper = db["user"].find_one_and_update(
            {"_id": helper_oid},
            {"$inc": {"karma_points": reward}, "$set": {"updated_at": now_utc()}},
            projection={"karma_points": 1},
            return_document=ReturnDocument.AFTER,
        )
        karma = helper["karma_points"]
        result["karma_points"] = karma
        logger.info("Awarded {} karma to {} for post {} (total {})", reward, helper_id, post["_id"], karma)
        notifier.notify_user(helper_id, f'You earned {reward} karma points for helping with "{post["title"]}"!', karma)
        notifier.broadcast(EVENT_KARMA_UPDATED, {"user_id": helper_id, "karma_points": karma})

    notifier.broadcast(EVENT_POST_COMPLETED, {"post_id": str(post["_id"])})
    return result

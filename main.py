import os
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

import socketio
from fastapi import Depends, FastAPI, File, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pymongo.database import Database

import chat
import posts
import users
from auth import get_current_user_id
from config import get_settings
from database import db, ensure_indexes, get_db
from errors import ValidationError
from notifications import Notifier, SessionRegistry, SocketEvents, SocketNotifier, create_socket_server
from schemas import (
    MAX_POST_IMAGES,
    AccessChatBody,
    CreatePostBody,
    FulfillBody,
    LoginBody,
    RegisterBody,
    SendMessageBody,
    UpdateProfileBody,
)
from summarizer import Summarizer, build_summarizer
from uploads import CHAT_FOLDER, POST_FOLDER, PROFILE_FOLDER, CloudinaryImageHost, ImageHost

settings = get_settings()

logger.remove()
logger.add(sys.stderr, level=settings.log_level)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if db is not None:
        ensure_indexes(db)
    else:
        logger.warning("DATABASE_URL not set, API will answer 503 on data routes")
    yield


app = FastAPI(title="LocalAid API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------------------------
# Real-time layer
# ------------------------
sio = create_socket_server(settings.cors_origins)
registry = SessionRegistry()
SocketEvents(sio, registry).bind()
notifier = SocketNotifier(sio, registry)

asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

_summarizer = build_summarizer(settings)
_image_host: Optional[ImageHost] = None


def get_notifier() -> Notifier:
    return notifier


def get_summarizer() -> Summarizer:
    return _summarizer


def get_image_host() -> ImageHost:
    global _image_host
    if _image_host is None:
        _image_host = CloudinaryImageHost(settings)
    return _image_host


def _read_image(upload: Optional[UploadFile]) -> tuple:
    if upload is None:
        raise ValidationError("No file uploaded")
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Only image uploads are allowed")
    return upload.file.read(), content_type


# ------------------------
# Health
# ------------------------
@app.get("/")
def read_root():
    return {"message": "LocalAid API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
        "online_users": len(registry.online_users()),
    }
    if db is None:
        return response
    response["database_name"] = db.name
    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database health check failed: {}", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# ------------------------
# Users
# ------------------------
@app.post("/api/users/register", status_code=201)
def register(body: RegisterBody, database: Database = Depends(get_db)):
    return users.register_user(database, body.name, body.email, body.password)


@app.post("/api/users/login")
def login(body: LoginBody, database: Database = Depends(get_db)):
    return users.authenticate(database, body.email, body.password)


@app.get("/api/users/me")
def my_profile(user_id: str = Depends(get_current_user_id), database: Database = Depends(get_db)):
    return users.get_user(database, user_id)


@app.put("/api/users/profile")
def update_profile(body: UpdateProfileBody, user_id: str = Depends(get_current_user_id),
                   database: Database = Depends(get_db)):
    return users.update_profile(database, user_id, body.name, body.email, body.password)


@app.get("/api/users/leaderboard")
def karma_leaderboard(limit: int = Query(10, ge=1, le=100), database: Database = Depends(get_db)):
    return {"items": users.leaderboard(database, limit)}


@app.get("/api/users/{user_id}")
def get_user(user_id: str, database: Database = Depends(get_db)):
    return users.get_user(database, user_id)


# ------------------------
# Posts
# ------------------------
@app.get("/api/posts")
def list_posts(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    dist: Optional[float] = Query(None, gt=0),
    exclude_id: Optional[str] = Query(None, alias="excludeId"),
    type: Optional[str] = None,
    search: Optional[str] = None,
    database: Database = Depends(get_db),
):
    return posts.query_posts(database, lat, lng, dist or settings.default_radius_km, exclude_id, type, search)


@app.post("/api/posts", status_code=201)
def create_post(body: CreatePostBody, user_id: str = Depends(get_current_user_id),
                database: Database = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return posts.create_post(database, notify, user_id, body)


@app.get("/api/posts/me")
def my_posts(user_id: str = Depends(get_current_user_id), database: Database = Depends(get_db)):
    return posts.list_user_posts(database, user_id)


@app.get("/api/posts/trends")
def post_trends(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    dist: Optional[float] = Query(None, gt=0),
    exclude_id: Optional[str] = Query(None, alias="excludeId"),
    database: Database = Depends(get_db),
    summarizer: Summarizer = Depends(get_summarizer),
):
    return posts.trend_summary(database, summarizer, lat, lng, dist or settings.default_radius_km, exclude_id)


@app.delete("/api/posts/{post_id}")
def delete_post(post_id: str, user_id: str = Depends(get_current_user_id),
                database: Database = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return posts.delete_post(database, notify, post_id, user_id)


@app.put("/api/posts/{post_id}/fulfill")
def fulfill_post(post_id: str, body: FulfillBody, user_id: str = Depends(get_current_user_id),
                 database: Database = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return posts.fulfill_post(database, notify, post_id, user_id, body.helper_id, settings.karma_reward)


# ------------------------
# Chat
# ------------------------
@app.post("/api/chat")
def access_conversation(body: AccessChatBody, user_id: str = Depends(get_current_user_id),
                        database: Database = Depends(get_db)):
    return chat.get_or_create_conversation(database, user_id, body.user_id)


@app.get("/api/chat")
def fetch_conversations(user_id: str = Depends(get_current_user_id), database: Database = Depends(get_db)):
    return chat.list_conversations(database, user_id)


@app.post("/api/chat/message")
def send_message(body: SendMessageBody, user_id: str = Depends(get_current_user_id),
                 database: Database = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return chat.append_message(database, notify, body.conversation_id, user_id, body.text, body.image)


@app.get("/api/chat/{conversation_id}")
def all_messages(conversation_id: str, user_id: str = Depends(get_current_user_id),
                 database: Database = Depends(get_db)):
    return chat.list_messages(database, conversation_id, user_id)


# ------------------------
# Uploads
# ------------------------
@app.post("/api/upload/profile")
def upload_profile_picture(image: Optional[UploadFile] = File(None), user_id: str = Depends(get_current_user_id),
                           database: Database = Depends(get_db), host: ImageHost = Depends(get_image_host)):
    content, content_type = _read_image(image)
    url = host.upload(content, content_type, PROFILE_FOLDER)
    users.set_profile_picture(database, user_id, url)
    return {"message": "Image uploaded", "image_url": url}


@app.post("/api/upload/message")
def upload_message_image(image: Optional[UploadFile] = File(None), user_id: str = Depends(get_current_user_id),
                         host: ImageHost = Depends(get_image_host)):
    content, content_type = _read_image(image)
    return {"image_url": host.upload(content, content_type, CHAT_FOLDER)}


@app.post("/api/upload/post-images")
def upload_post_images(images: Optional[List[UploadFile]] = File(None), user_id: str = Depends(get_current_user_id),
                       host: ImageHost = Depends(get_image_host)):
    if not images:
        raise ValidationError("No images uploaded")
    if len(images) > MAX_POST_IMAGES:
        raise ValidationError(f"At most {MAX_POST_IMAGES} images per post")
    files = [_read_image(i) for i in images]
    return {"images": [host.upload(content, content_type, POST_FOLDER) for content, content_type in files]}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(asgi_app, host="0.0.0.0", port=settings.port)

"""
Database Schemas for LocalAid (neighborhood help exchange)

Each Pydantic model maps to a MongoDB collection (lowercased class name).
- User -> "user"
- Post -> "post"
- Conversation -> "conversation"
- Message -> "message"
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

PostType = Literal["request", "offer"]
PostStatus = Literal["open", "fulfilled"]

MAX_POST_IMAGES = 4


class GeoPoint(BaseModel):
    """GeoJSON point, coordinates are [lng, lat]."""
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)
    address: Optional[str] = None

    @classmethod
    def from_lat_lng(cls, lat: float, lng: float, address: Optional[str] = None) -> "GeoPoint":
        return cls(coordinates=[lng, lat], address=address)


class User(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., description="Login email")
    password_hash: str = Field(..., description="Salted PBKDF2 hash of password")
    profile_picture: Optional[str] = Field(None, description="Hosted avatar URL")
    karma_points: int = Field(0, ge=0, description="Reputation earned by helping")
    role: str = Field("user", description="Role tag")


class Post(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    title: str = Field(..., min_length=1, max_length=140)
    description: str = Field(..., min_length=1, max_length=5000)
    type: PostType
    category: str = Field(..., min_length=1)
    status: PostStatus = "open"
    location: GeoPoint
    images: List[str] = Field(default_factory=list, max_length=MAX_POST_IMAGES)
    fulfilled_by: Optional[str] = None


class Conversation(BaseModel):
    members: List[str] = Field(..., min_length=2, max_length=2)
    member_key: str
    latest_message_id: Optional[str] = None


class Message(BaseModel):
    sender_id: str
    conversation_id: str
    text: Optional[str] = None
    image: Optional[str] = None

    @model_validator(mode="after")
    def require_text_or_image(self):
        if not (self.text and self.text.strip()) and not self.image:
            raise ValueError("A message needs text or an image")
        return self


# ------------------------
# Request bodies
# ------------------------
class RegisterBody(BaseModel):
    name: str
    email: str
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: str
    password: str


class UpdateProfileBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class CreatePostBody(BaseModel):
    title: str
    description: str
    type: PostType
    category: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None
    images: List[str] = Field(default_factory=list, max_length=MAX_POST_IMAGES)


class FulfillBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    helper_id: Optional[str] = Field(None, alias="helperId")


class AccessChatBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")


class SendMessageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(None, alias="conversationId")
    text: Optional[str] = None
    image: Optional[str] = None

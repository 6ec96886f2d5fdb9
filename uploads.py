import base64
from abc import ABC, abstractmethod

import cloudinary
import cloudinary.uploader
from loguru import logger

from config import Settings
from errors import UpstreamError

PROFILE_FOLDER = "localaid_profiles"
CHAT_FOLDER = "localaid_chat"
POST_FOLDER = "localaid_posts"


class ImageHost(ABC):
    @abstractmethod
    def upload(self, content: bytes, content_type: str, folder: str) -> str:
        """Store the image and return its public URL."""


class CloudinaryImageHost(ImageHost):
    def __init__(self, settings: Settings):
        # the SDK reads CLOUDINARY_URL from the environment on import
        if settings.cloudinary_url:
            cloudinary.config(secure=True)
        else:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )

    def upload(self, content, content_type, folder):
        data_uri = f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"
        try:
            result = cloudinary.uploader.upload(data_uri, folder=folder)
        except Exception:
            logger.exception("Image upload to {} failed", folder)
            raise UpstreamError("Upload failed")
        return result["secure_url"]

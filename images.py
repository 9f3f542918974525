import logging
from typing import Dict, Optional

import cloudinary
import cloudinary.uploader

import config

logger = logging.getLogger(__name__)


class ImageHostError(Exception):
    pass


class ImageHost:
    """Cloudinary uploads for product pictures."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "products"):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)
        self.folder = folder

    def upload(self, image: str) -> Dict[str, str]:
        try:
            result = cloudinary.uploader.upload(image, folder=self.folder)
        except Exception as exc:
            raise ImageHostError(str(exc)) from exc
        return {"public_id": result["public_id"], "url": result["secure_url"]}

    def destroy(self, public_id: str) -> None:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except Exception as exc:
            raise ImageHostError(str(exc)) from exc
        logger.debug("Destroyed image %s: %s", public_id, result)


_image_host: Optional[ImageHost] = None


def get_image_host() -> ImageHost:
    global _image_host
    if _image_host is None:
        _image_host = ImageHost(config.CLOUDINARY_CLOUD_NAME, config.CLOUDINARY_API_KEY, config.CLOUDINARY_API_SECRET)
    return _image_host

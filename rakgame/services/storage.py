import logging
import mimetypes
import os
import time
from dataclasses import dataclass
from typing import Optional

from config.environment import Environment
from rakgame.core.error_handler import AuthenticationError, NetworkError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ImageUpload:
    """A cover image picked by the user"""
    content: bytes
    filename: str
    content_type: Optional[str] = None

    def get_mime_type(self) -> str:
        if self.content_type:
            return self.content_type
        mime_type, _ = mimetypes.guess_type(self.filename)
        return mime_type or 'application/octet-stream'


class ImageStorageService:
    """Service for storing game cover images in the Firebase Storage bucket"""

    def __init__(self, manager, folder: Optional[str] = None, max_size: Optional[int] = None):
        settings = Environment.get_image_settings()
        self.manager = manager
        self.folder = folder or settings['bucket_folder']
        self.max_size = max_size or settings['max_image_size']

    def validate(self, image: ImageUpload) -> None:
        if len(image.content) > self.max_size:
            raise ValidationError(
                f"Image size must be less than {self.max_size // (1024 * 1024)}MB",
                error_code='IMAGE_TOO_LARGE'
            )
        if not image.get_mime_type().startswith('image/'):
            raise ValidationError("File must be an image", error_code='NOT_AN_IMAGE')

    def _generate_file_path(self, user_id: str, filename: str) -> str:
        """Build ``<folder>/<uid>/<epoch ms>.<ext>``"""
        _, ext = os.path.splitext(filename)
        ext = ext.lstrip('.').lower() or 'jpg'
        return f"{self.folder}/{user_id}/{int(time.time() * 1000)}.{ext}"

    async def upload_image(self, image: ImageUpload) -> str:
        """
        Upload a cover image for the signed-in user

        Args:
            image: The picked file

        Returns:
            str: Public URL of the stored image
        """
        user = self.manager.get_current_user()
        if not user:
            raise AuthenticationError("Not authenticated", error_code='UNAUTHENTICATED')
        self.validate(image)

        path = self._generate_file_path(user.id, image.filename)
        try:
            blob = self.manager.bucket().blob(path)
            blob.upload_from_string(image.content, content_type=image.get_mime_type())
            blob.make_public()
        except Exception as e:
            logger.error(f"Error uploading image {path}: {str(e)}")
            raise NetworkError(f"Failed to upload image: {str(e)}", error_code='UPLOAD_FAILED')

        logger.info(f"Uploaded image {path}")
        return blob.public_url

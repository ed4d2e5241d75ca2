"""
storage.py
File storage for experience photos
"""

import logging
import mimetypes
import secrets
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, unquote

logger = logging.getLogger(__name__)

MAX_PHOTO_SIZE_MB = 5


def is_image_file(filename: str) -> bool:
    mime_type, _ = mimetypes.guess_type(filename)
    return bool(mime_type and mime_type.startswith('image/'))


def is_file_size_valid(size_bytes: int, max_size_mb: float = MAX_PHOTO_SIZE_MB) -> bool:
    return size_bytes <= max_size_mb * 1024 * 1024


class PhotoStorage:
    """Stores uploaded photos under ``root_dir`` and hands out public URLs.

    Objects are laid out as ``{experience_id}/{user_id}/{timestamp}_{random}.{ext}``.
    """

    def __init__(self, root_dir: str, public_base_url: str = ''):
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip('/')

    def _object_path(self, experience_id: str, user_id: str, filename: str) -> str:
        timestamp = int(time.time() * 1000)
        random_part = secrets.token_hex(6)
        ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'bin'
        return f"{experience_id}/{user_id}/{timestamp}_{random_part}.{ext}"

    def public_url(self, object_path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{object_path}"
        return (self.root_dir / object_path).resolve().as_uri()

    def upload(self, experience_id: str, user_id: str, filename: str, data: bytes) -> str:
        """Store photo bytes and return their public URL"""
        if not is_image_file(filename):
            raise ValueError(f"{filename}: not an image file")
        if not is_file_size_valid(len(data)):
            raise ValueError(f"{filename}: file is larger than {MAX_PHOTO_SIZE_MB}MB")

        object_path = self._object_path(experience_id, user_id, filename)
        target = self.root_dir / object_path
        target.parent.mkdir(parents=True, exist_ok=True)
        # Paths are unique per upload, never overwrite
        with open(target, 'xb') as f:
            f.write(data)

        logger.info(f"Uploaded photo {object_path} ({len(data)} bytes)")
        return self.public_url(object_path)

    def object_path_from_url(self, photo_url: str) -> str:
        """The last three URL path segments identify the stored object"""
        path = unquote(urlparse(photo_url).path)
        return '/'.join(path.split('/')[-3:])

    def delete(self, photo_url: str) -> bool:
        object_path = self.object_path_from_url(photo_url)
        target = self.root_dir / object_path
        if not target.exists():
            logger.warning(f"Photo not found in storage: {object_path}")
            return False

        target.unlink()
        logger.info(f"Deleted photo {object_path}")
        return True

    def guess_mime_type(self, filename: str) -> Optional[str]:
        return mimetypes.guess_type(filename)[0]

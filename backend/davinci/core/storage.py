"""
Local file storage for avatar images.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import aiofiles
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from davinci.core.config import settings

logger = logging.getLogger(__name__)

ORG_AVATAR_PATH = "organization/avatar"

IMAGE_FORMAT_EXTENSIONS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "GIF": ".gif",
    "BMP": ".bmp",
    "WEBP": ".webp",
}


class AvatarStorage:
    """Stores images under AVATAR_UPLOAD_DIR and hands back public paths."""

    def __init__(self, root: str | None = None, url_prefix: str | None = None) -> None:
        self.root = Path(root or settings.AVATAR_UPLOAD_DIR)
        self.url_prefix = (url_prefix or settings.AVATAR_URL_PREFIX).rstrip("/")

    async def is_image(self, file: UploadFile) -> bool:
        """Check content type, size and that Pillow can actually parse the bytes."""
        if not file.content_type or not file.content_type.startswith("image/"):
            return False
        if file.size is not None and file.size > settings.AVATAR_MAX_BYTES:
            return False

        content = await file.read()
        await file.seek(0)

        if not content or len(content) > settings.AVATAR_MAX_BYTES:
            return False

        try:
            with Image.open(io.BytesIO(content)) as image:
                image.verify()
        except (UnidentifiedImageError, OSError):
            return False
        return True

    async def upload(self, file: UploadFile, directory: str, filename: str) -> str:
        """
        Write the upload to {root}/{directory}/{filename}{ext}.

        Returns the public path ({url_prefix}/{directory}/{filename}{ext}).
        """
        content = await file.read()
        with Image.open(io.BytesIO(content)) as image:
            extension = IMAGE_FORMAT_EXTENSIONS.get(image.format or "", "")

        target_dir = self.root / directory
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{filename}{extension}"

        async with aiofiles.open(target, "wb") as out:
            await out.write(content)

        logger.info("Stored avatar %s (%d bytes)", target, len(content))
        return f"{self.url_prefix}/{directory}/{target.name}"

    def remove(self, public_path: str) -> None:
        """Delete a file previously returned by upload(); unknown paths are ignored."""
        if not public_path.startswith(f"{self.url_prefix}/"):
            logger.warning("Refusing to remove %s: outside avatar storage", public_path)
            return
        relative = public_path[len(self.url_prefix) + 1:]
        target = (self.root / relative).resolve()
        if self.root.resolve() not in target.parents:
            logger.warning("Refusing to remove %s: outside avatar storage", public_path)
            return
        target.unlink(missing_ok=True)

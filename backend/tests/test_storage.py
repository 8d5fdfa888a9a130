"""
Avatar storage tests.
"""

import io

import pytest
from fastapi import UploadFile
from PIL import Image
from starlette.datastructures import Headers

from davinci.core.config import settings
from davinci.core.storage import ORG_AVATAR_PATH, AvatarStorage


def upload_file(
    content: bytes, content_type: str, filename: str = "upload", size: int | None = None
) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        size=size,
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def image_bytes(fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(255, 0, 0)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def storage(tmp_path) -> AvatarStorage:
    return AvatarStorage(root=str(tmp_path), url_prefix="/image/")


class TestIsImage:

    async def test_accepts_png_and_jpeg(self, storage):
        assert await storage.is_image(upload_file(image_bytes("PNG"), "image/png"))
        assert await storage.is_image(upload_file(image_bytes("JPEG"), "image/jpeg"))

    async def test_rejects_wrong_content_type(self, storage):
        assert not await storage.is_image(upload_file(image_bytes("PNG"), "application/pdf"))

    async def test_rejects_unparseable_bytes(self, storage):
        assert not await storage.is_image(upload_file(b"\x89PNG broken", "image/png"))

    async def test_rejects_empty(self, storage):
        assert not await storage.is_image(upload_file(b"", "image/png"))

    async def test_rejects_oversized(self, storage, monkeypatch):
        monkeypatch.setattr(settings, "AVATAR_MAX_BYTES", 10)
        assert not await storage.is_image(upload_file(image_bytes("PNG"), "image/png"))

    async def test_declared_size_rejected_before_reading(self, storage, monkeypatch):
        monkeypatch.setattr(settings, "AVATAR_MAX_BYTES", 10)
        file = upload_file(image_bytes("PNG"), "image/png", size=11)

        assert not await storage.is_image(file)
        assert file.file.tell() == 0

    async def test_rewinds_file(self, storage):
        content = image_bytes("PNG")
        file = upload_file(content, "image/png")
        await storage.is_image(file)
        assert await file.read() == content


class TestUploadAndRemove:

    async def test_upload_uses_detected_extension(self, storage, tmp_path):
        content = image_bytes("JPEG")
        path = await storage.upload(upload_file(content, "image/jpeg"), ORG_AVATAR_PATH, "alice_1")

        assert path == "/image/organization/avatar/alice_1.jpg"
        assert (tmp_path / "organization" / "avatar" / "alice_1.jpg").read_bytes() == content

    async def test_remove_deletes_file(self, storage, tmp_path):
        path = await storage.upload(upload_file(image_bytes("PNG"), "image/png"), ORG_AVATAR_PATH, "logo")
        target = tmp_path / "organization" / "avatar" / "logo.png"
        assert target.exists()

        storage.remove(path)
        assert not target.exists()

    def test_remove_missing_file(self, storage):
        storage.remove("/image/organization/avatar/never-uploaded.png")

    def test_remove_refuses_foreign_paths(self, tmp_path):
        storage = AvatarStorage(root=str(tmp_path / "files"), url_prefix="/image")
        outside = tmp_path / "keep.txt"
        outside.write_text("keep")

        storage.remove("/image/../keep.txt")
        storage.remove("https://cdn.example.com/logo.png")

        assert outside.exists()

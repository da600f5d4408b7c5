"""Local filesystem storage for uploaded documents."""

import asyncio
import os
import re
import uuid
from pathlib import Path

# <uuid4>.<ext> - the only shape save_file produces
_STORED_NAME = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.[a-z0-9]{1,8}$"
)

ALLOWED_MIME_TYPES: dict[str, tuple[str, ...]] = {
    "application/pdf": (".pdf",),
    "text/plain": (".txt",),
    "application/msword": (".doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (".docx",),
    "application/vnd.ms-powerpoint": (".ppt",),
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": (".pptx",),
    "application/vnd.ms-excel": (".xls",),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": (".xlsx",),
    "image/jpeg": (".jpg", ".jpeg"),
    "image/jpg": (".jpg", ".jpeg"),
    "image/png": (".png",),
}


def extension_matches(file_type: str, file_name: str) -> bool:
    """Whether ``file_name``'s extension is allowed for MIME type ``file_type``."""
    ext = os.path.splitext(file_name)[1].lower()
    return ext in ALLOWED_MIME_TYPES.get(file_type, ())


class FileStorage:
    """Stores uploads under random names in a single directory."""

    def __init__(self, upload_dir: str):
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_stored_file_name_safe(file_name: str) -> bool:
        return bool(_STORED_NAME.match(file_name))

    def _path(self, file_name: str) -> Path:
        if not self.is_stored_file_name_safe(file_name):
            raise ValueError(f"Unsafe stored file name: {file_name!r}")
        return self.upload_dir / file_name

    async def save_file(self, data: bytes, original_name: str) -> str:
        """Write ``data`` and return the generated stored name."""
        ext = os.path.splitext(original_name)[1].lower()
        file_name = f"{uuid.uuid4()}{ext}"
        await asyncio.to_thread(self._path(file_name).write_bytes, data)
        return file_name

    async def read_file(self, file_name: str) -> bytes:
        return await asyncio.to_thread(self._path(file_name).read_bytes)

    async def delete_file(self, file_name: str) -> None:
        await asyncio.to_thread(self._path(file_name).unlink, True)

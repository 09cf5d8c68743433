import logging
import os
import shutil
import uuid

from fastapi import UploadFile

from .config import settings
from .errors import NotFound

logger = logging.getLogger(__name__)

PROFILE_PHOTOS = "profile_photos"
WORKSHEETS = "worksheets"
SUBMISSIONS = "submissions"
BUCKETS = (PROFILE_PHOTOS, WORKSHEETS, SUBMISSIONS)


class LocalFileStorage:
    """Stores uploads under ``root/<bucket>/`` and hands back relative paths."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def save(self, upload: UploadFile, bucket: str) -> str:
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown storage bucket: {bucket}")
        bucket_dir = os.path.join(self.root, bucket)
        os.makedirs(bucket_dir, exist_ok=True)

        file_ext = os.path.splitext(upload.filename or "")[1].lower()
        unique_filename = f"{uuid.uuid4()}{file_ext}"
        with open(os.path.join(bucket_dir, unique_filename), "wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)

        relative_path = f"{bucket}/{unique_filename}"
        logger.info(f"Stored upload {upload.filename!r} as {relative_path}")
        return relative_path

    def resolve(self, relative_path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, relative_path))
        if os.path.commonpath([self.root, full_path]) != self.root:
            raise NotFound("File not found.")
        return full_path

    def exists(self, relative_path: str | None) -> bool:
        if not relative_path:
            return False
        try:
            return os.path.isfile(self.resolve(relative_path))
        except NotFound:
            return False

    def delete(self, relative_path: str | None) -> None:
        if not self.exists(relative_path):
            return
        os.remove(self.resolve(relative_path))
        logger.info(f"Deleted stored file {relative_path}")


_storage = LocalFileStorage(settings.upload_dir)


def get_storage() -> LocalFileStorage:
    return _storage

"""Storage router for admitted uploads.

Files are written to one flat directory per bucket under the public root:
    <public_root>/img/<name>
    <public_root>/document/<name>

Naming schemes:
    timestamp: <field>-<epoch ms>-<original filename>
    token:     <field>-<uuid4 hex><ext>

The timestamp scheme is not collision-free. Files are opened with
exclusive creation, so a collision fails the upload instead of
overwriting the earlier file.
"""
import logging
import time
import uuid
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Dict, Optional

from .schemas import Bucket, StoredFile, UploadRequest

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


class StorageError(Exception):
    """Writing an upload to disk failed."""


class InvalidBucketError(StorageError):
    """The storage router was handed something other than a known bucket."""


class FileTooLargeError(StorageError):
    """The upload exceeded the configured size limit."""

    def __init__(self, limit: int):
        super().__init__(f"File size exceeds limit of {limit} bytes")
        self.limit = limit


def _now_ms() -> int:
    return int(time.time() * 1000)


def safe_basename(filename: str) -> str:
    """Strip any directory part a client put into the filename."""
    name = PureWindowsPath(PurePosixPath(filename).name).name
    name = name.replace("\x00", "")
    if name in ("", ".", ".."):
        return "unnamed"
    return name


class StorageRouter:
    """Writes admitted uploads into their bucket directory."""

    def __init__(
        self,
        public_root: str,
        image_dir: str = "img",
        document_dir: str = "document",
        naming: str = "timestamp",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_file_size: Optional[int] = None,
    ):
        if naming not in ("timestamp", "token"):
            raise ValueError(f"Unknown naming scheme: {naming}")
        self.public_root = Path(public_root).resolve()
        self.segments: Dict[Bucket, str] = {
            Bucket.IMAGE: image_dir,
            Bucket.DOCUMENT: document_dir,
        }
        self.naming = naming
        self.chunk_size = chunk_size
        self.max_file_size = max_file_size

    def ensure_dirs(self) -> None:
        """Create both bucket directories if missing."""
        for bucket in Bucket:
            self.bucket_dir(bucket).mkdir(parents=True, exist_ok=True)

    def bucket_dir(self, bucket: Bucket) -> Path:
        segment = self.segments.get(bucket) if isinstance(bucket, Bucket) else None
        if segment is None:
            raise InvalidBucketError(f"No storage directory for bucket {bucket!r}")
        return self.public_root / segment

    def make_filename(self, field_name: str, original_filename: str, now_ms: int) -> str:
        if self.naming == "token":
            suffix = Path(original_filename).suffix.lower()
            return f"{field_name}-{uuid.uuid4().hex}{suffix}"
        return f"{field_name}-{now_ms}-{original_filename}"

    async def store(self, bucket: Bucket, upload: UploadRequest) -> StoredFile:
        """Copy ``upload.stream`` verbatim into the bucket directory.

        Args:
            bucket: Bucket chosen by the gatekeeper
            upload: The admitted upload; its field name and filename make
                up the stored name

        Returns:
            StoredFile describing the written file

        Raises:
            InvalidBucketError: If ``bucket`` is not a known bucket
            FileTooLargeError: If the stream exceeds ``max_file_size``
            StorageError: If the file cannot be created or written
        """
        directory = self.bucket_dir(bucket)
        original = safe_basename(upload.filename)
        created_at_ms = _now_ms()
        stored_filename = self.make_filename(upload.field_name, original, created_at_ms)
        path = directory / stored_filename

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fh = path.open("xb")
        except OSError as e:
            logger.error(f"Cannot create {path}: {e}")
            raise StorageError(f"Cannot create {stored_filename}: {e}") from e

        size = 0
        try:
            with fh:
                while True:
                    chunk = await upload.stream.read(self.chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    if self.max_file_size is not None and size > self.max_file_size:
                        raise FileTooLargeError(self.max_file_size)
                    fh.write(chunk)
        except BaseException as e:
            # Covers cancellation too: never leave a partial file behind
            path.unlink(missing_ok=True)
            if isinstance(e, OSError):
                logger.error(f"Write to {path} failed: {e}")
                raise StorageError(f"Cannot write {stored_filename}: {e}") from e
            raise

        logger.info(f"Saved file: {path} ({size} bytes)")

        return StoredFile(
            bucket=bucket,
            stored_filename=stored_filename,
            original_filename=original,
            path=str(path),
            segment=self.segments[bucket],
            mime_type=upload.mime_type or "application/octet-stream",
            size_bytes=size,
            created_at_ms=created_at_ms,
            uploaded_by=upload.user_id,
        )

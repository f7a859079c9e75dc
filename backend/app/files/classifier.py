"""Content classification for uploads.

Two independent checks, both mandatory:

1. The declared MIME type picks the bucket (first match wins):
   ``image*`` -> IMAGE, Word/legacy Word/PDF -> DOCUMENT, anything else
   has no bucket.
2. The filename extension must be in ``ALLOWED_EXTENSIONS``.

The declared MIME type is client-controlled metadata, so the extension
check is never skipped even when the MIME type already matched.
"""
from dataclasses import dataclass
from typing import Optional

from .schemas import (
    ALLOWED_EXTENSIONS,
    DOCUMENT_MIME_PREFIXES,
    IMAGE_MIME_PREFIX,
    Bucket,
)


@dataclass(frozen=True)
class Classification:
    bucket: Optional[Bucket]
    extension_allowed: bool

    @property
    def accepted(self) -> bool:
        return self.bucket is not None and self.extension_allowed


def bucket_for_mime_type(mime_type: Optional[str]) -> Optional[Bucket]:
    """Map a declared MIME type to its bucket, or ``None`` if unsupported.

    Examples:
        >>> bucket_for_mime_type("image/png")
        <Bucket.IMAGE: 'image'>
        >>> bucket_for_mime_type("application/pdf")
        <Bucket.DOCUMENT: 'document'>
        >>> bucket_for_mime_type("text/plain") is None
        True
    """
    if not mime_type:
        return None
    if mime_type.startswith(IMAGE_MIME_PREFIX):
        return Bucket.IMAGE
    if mime_type.startswith(DOCUMENT_MIME_PREFIXES):
        return Bucket.DOCUMENT
    return None


def file_extension(filename: Optional[str]) -> str:
    """Lowercased text after the last dot, or ``""`` when there is none."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def has_allowed_extension(filename: Optional[str]) -> bool:
    return file_extension(filename) in ALLOWED_EXTENSIONS


def classify(mime_type: Optional[str], filename: Optional[str]) -> Classification:
    return Classification(
        bucket=bucket_for_mime_type(mime_type),
        extension_allowed=has_allowed_extension(filename),
    )

"""Schemas for the upload subsystem.

This module defines the data models for file ingestion:
- Bucket: the two storage categories (image, document)
- UploadRequest: one inbound file, consumed synchronously
- StoredFile: the persisted artifact returned by the storage router
- Admission: the gatekeeper's tagged accept/ignore/reject decision
- FileMetadata: the ledger row describing a stored file

Files are stored in two flat directories under the public root
(``img/`` and ``document/``) and served statically afterwards.
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Bucket(str, Enum):
    """Storage categories.

    The bucket decides the destination directory:
    - IMAGE: ``<public_root>/img``
    - DOCUMENT: ``<public_root>/document``
    """
    IMAGE = "image"
    DOCUMENT = "document"


# Filename extensions accepted for any bucket (compared lowercased)
ALLOWED_EXTENSIONS = frozenset({"gif", "jpg", "jpeg", "bmp", "png", "pdf", "docx", "doc"})

IMAGE_MIME_PREFIX = "image"

DOCUMENT_MIME_PREFIXES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
    "application/pdf",
)

# Response bodies for requests that carry no (admissible) file
NOT_ATTACHED_MESSAGES = {
    Bucket.IMAGE: "Image not attached",
    Bucket.DOCUMENT: "Document not attached",
}

UNSUPPORTED_FILE_TYPE = "Unsupported file type"


@dataclass
class UploadRequest:
    """One inbound file.

    ``stream`` is any object with an async ``read(size)`` method, such as
    Starlette's ``UploadFile``.
    """
    field_name: str
    filename: str
    mime_type: Optional[str]
    stream: Any
    user_id: Optional[str] = None


class AdmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"


class DenialReason(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"


@dataclass(frozen=True)
class Admission:
    """Outcome of ``UploadGatekeeper.admit``.

    IGNORED is the soft denial for callers without a session, REJECTED is
    a client input error. Only ACCEPTED carries a bucket.
    """
    status: AdmissionStatus
    bucket: Optional[Bucket] = None
    user_id: Optional[str] = None
    reason: Optional[DenialReason] = None

    @property
    def accepted(self) -> bool:
        return self.status is AdmissionStatus.ACCEPTED

    @classmethod
    def accept(cls, bucket: Bucket, user_id: str) -> "Admission":
        return cls(AdmissionStatus.ACCEPTED, bucket=bucket, user_id=user_id)

    @classmethod
    def ignore(cls) -> "Admission":
        return cls(AdmissionStatus.IGNORED, reason=DenialReason.NOT_AUTHENTICATED)

    @classmethod
    def reject(cls, user_id: Optional[str] = None) -> "Admission":
        return cls(
            AdmissionStatus.REJECTED,
            user_id=user_id,
            reason=DenialReason.UNSUPPORTED_FILE_TYPE,
        )


class StoredFile(BaseModel):
    """A file written to one of the bucket directories.

    ``created_at_ms`` is the epoch-millisecond timestamp; under the default
    naming scheme it is also embedded in ``stored_filename``.
    """
    bucket: Bucket = Field(..., description="Destination bucket")
    stored_filename: str = Field(..., description="Generated name on disk")
    original_filename: str = Field(..., description="Filename sent by the client")
    path: str = Field(..., description="Absolute path of the stored file")
    segment: str = Field(..., description="Bucket directory name (img or document)")
    mime_type: str = Field(..., description="Declared MIME type")
    size_bytes: int = Field(..., description="Bytes written")
    created_at_ms: int = Field(..., description="Creation time, epoch milliseconds")
    uploaded_by: Optional[str] = Field(None, description="User id of the uploader")


class FileMetadata(BaseModel):
    """Ledger row for a stored file."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique record ID")
    bucket: Bucket = Field(..., description="Destination bucket")
    stored_filename: str = Field(..., description="Generated name on disk")
    original_filename: str = Field(..., description="Filename sent by the client")
    reference: str = Field(..., description="Reference path returned to the client")
    mime_type: str = Field(..., description="Declared MIME type")
    size_bytes: int = Field(..., description="File size in bytes")
    uploaded_by: Optional[str] = Field(None, description="User id of the uploader")
    created_at_ms: int = Field(..., description="Creation time, epoch milliseconds")

"""Upload ledger.

Tracks metadata for every stored upload in DuckDB so the original filename
and uploader remain available after the file is renamed on disk.

Database Schema:
    uploaded_files table:
        - id: Record ID (UUID)
        - bucket: 'image' or 'document'
        - stored_filename: Name on disk
        - original_filename: Name sent by the client
        - reference: Reference path returned to the client
        - mime_type, size_bytes, uploaded_by
        - created_at: Creation time (epoch milliseconds)
"""
import logging
from typing import List, Optional

import duckdb

from .schemas import Bucket, FileMetadata, StoredFile

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, bucket, stored_filename, original_filename, reference, "
    "mime_type, size_bytes, uploaded_by, created_at"
)


class UploadLedger:
    """DuckDB store of upload metadata.

    The DuckDB connection is NOT thread-safe; the app keeps one ledger per
    process and only touches it from the event loop.
    """

    _db_path: str = "uploads.duckdb"

    def __init__(self, db_path: Optional[str] = None):
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS uploaded_files (
                id VARCHAR PRIMARY KEY,
                bucket VARCHAR NOT NULL,
                stored_filename VARCHAR NOT NULL,
                original_filename VARCHAR NOT NULL,
                reference VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                size_bytes BIGINT NOT NULL,
                uploaded_by VARCHAR,
                created_at BIGINT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_uploaded_files_bucket ON uploaded_files(bucket)
        """)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def record(self, stored: StoredFile, reference: str) -> FileMetadata:
        """Record a stored file and return its metadata row."""
        metadata = FileMetadata(
            bucket=stored.bucket,
            stored_filename=stored.stored_filename,
            original_filename=stored.original_filename,
            reference=reference,
            mime_type=stored.mime_type,
            size_bytes=stored.size_bytes,
            uploaded_by=stored.uploaded_by,
            created_at_ms=stored.created_at_ms,
        )
        conn = self._get_connection()
        conn.execute(
            f"INSERT INTO uploaded_files ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                metadata.id,
                metadata.bucket.value,
                metadata.stored_filename,
                metadata.original_filename,
                metadata.reference,
                metadata.mime_type,
                metadata.size_bytes,
                metadata.uploaded_by,
                metadata.created_at_ms,
            ],
        )
        logger.debug("Recorded upload %s as %s", metadata.stored_filename, metadata.id)
        return metadata

    def get_file(self, file_id: str) -> Optional[FileMetadata]:
        """Get file metadata by ID."""
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM uploaded_files WHERE id = ?",
            [file_id],
        ).fetchone()
        return self._to_metadata(row) if row else None

    def list_files(self, bucket: Optional[Bucket] = None) -> List[FileMetadata]:
        """List recorded files, oldest first, optionally for one bucket."""
        conn = self._get_connection()
        if bucket is None:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM uploaded_files ORDER BY created_at ASC"
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM uploaded_files WHERE bucket = ? ORDER BY created_at ASC",
                [bucket.value],
            ).fetchall()
        return [self._to_metadata(r) for r in rows]

    @staticmethod
    def _to_metadata(row) -> FileMetadata:
        return FileMetadata(
            id=row[0],
            bucket=Bucket(row[1]),
            stored_filename=row[2],
            original_filename=row[3],
            reference=row[4],
            mime_type=row[5],
            size_bytes=row[6],
            uploaded_by=row[7],
            created_at_ms=row[8],
        )

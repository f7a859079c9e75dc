"""Tests for the storage router."""
import asyncio
import io
import re

import pytest

from app.files.schemas import Bucket, UploadRequest
from app.files.storage import (
    FileTooLargeError,
    InvalidBucketError,
    StorageError,
    StorageRouter,
    safe_basename,
)


class FakeStream:
    """Async stream over bytes, like UploadFile.read."""

    def __init__(self, data: bytes):
        self._buf = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


class FailingStream:
    def __init__(self, first: bytes, exc: BaseException):
        self.first = first
        self.exc = exc
        self.sent = False

    async def read(self, size: int = -1) -> bytes:
        if not self.sent:
            self.sent = True
            return self.first
        raise self.exc


def _req(field_name, filename, stream, mime_type="image/png", user_id=None):
    return UploadRequest(
        field_name=field_name,
        filename=filename,
        mime_type=mime_type,
        stream=stream,
        user_id=user_id,
    )


@pytest.fixture
def storage(tmp_path):
    router = StorageRouter(public_root=str(tmp_path / "public"), chunk_size=4)
    router.ensure_dirs()
    return router


def _listing(storage):
    return {
        bucket: sorted(p.name for p in storage.bucket_dir(bucket).iterdir())
        for bucket in Bucket
    }


class TestStore:

    @pytest.mark.asyncio
    async def test_image_written_verbatim(self, storage):
        data = b"\x89PNG\r\n\x1a\n" + bytes(range(256))
        stored = await storage.store(Bucket.IMAGE, _req("image", "cat.PNG", FakeStream(data), "image/png", "u1"))

        assert re.fullmatch(r"image-\d+-cat\.PNG", stored.stored_filename)
        assert stored.bucket is Bucket.IMAGE
        assert stored.segment == "img"
        assert stored.size_bytes == len(data)
        assert stored.uploaded_by == "u1"
        assert stored.stored_filename == f"image-{stored.created_at_ms}-cat.PNG"
        path = storage.bucket_dir(Bucket.IMAGE) / stored.stored_filename
        assert str(path) == stored.path
        assert path.read_bytes() == data

    @pytest.mark.asyncio
    async def test_document_goes_to_document_dir(self, storage):
        stored = await storage.store(Bucket.DOCUMENT, _req("document", "report.pdf", FakeStream(b"%PDF-1.4"), "application/pdf"))
        assert stored.segment == "document"
        assert _listing(storage)[Bucket.DOCUMENT] == [stored.stored_filename]
        assert _listing(storage)[Bucket.IMAGE] == []

    @pytest.mark.asyncio
    async def test_empty_stream_creates_empty_file(self, storage):
        stored = await storage.store(Bucket.IMAGE, _req("image", "blank.png", FakeStream(b"")))
        assert stored.size_bytes == 0

    @pytest.mark.asyncio
    async def test_invalid_bucket_refuses_to_write(self, storage):
        with pytest.raises(InvalidBucketError):
            await storage.store("video", _req("image", "cat.png", FakeStream(b"x")))
        assert _listing(storage) == {Bucket.IMAGE: [], Bucket.DOCUMENT: []}

    @pytest.mark.asyncio
    async def test_directory_part_of_filename_is_dropped(self, storage):
        stored = await storage.store(Bucket.IMAGE, _req("image", "../../etc/cat.png", FakeStream(b"x")))
        assert stored.original_filename == "cat.png"
        assert _listing(storage)[Bucket.IMAGE] == [stored.stored_filename]

    @pytest.mark.asyncio
    async def test_same_millisecond_does_not_overwrite(self, storage, monkeypatch):
        monkeypatch.setattr("app.files.storage._now_ms", lambda: 1700000000000)
        await storage.store(Bucket.IMAGE, _req("image", "cat.png", FakeStream(b"first")))

        with pytest.raises(StorageError):
            await storage.store(Bucket.IMAGE, _req("image", "cat.png", FakeStream(b"second")))

        path = storage.bucket_dir(Bucket.IMAGE) / "image-1700000000000-cat.png"
        assert path.read_bytes() == b"first"

    @pytest.mark.asyncio
    async def test_rapid_duplicates_get_distinct_names(self, storage, monkeypatch):
        ticks = iter([1700000000000, 1700000000001])
        monkeypatch.setattr("app.files.storage._now_ms", lambda: next(ticks))
        a = await storage.store(Bucket.IMAGE, _req("image", "cat.png", FakeStream(b"same")))
        b = await storage.store(Bucket.IMAGE, _req("image", "cat.png", FakeStream(b"same")))
        assert a.stored_filename != b.stored_filename
        assert len(_listing(storage)[Bucket.IMAGE]) == 2


class TestFailures:

    @pytest.mark.asyncio
    async def test_size_limit_removes_partial_file(self, tmp_path):
        storage = StorageRouter(public_root=str(tmp_path), chunk_size=4, max_file_size=6)
        storage.ensure_dirs()
        with pytest.raises(FileTooLargeError):
            await storage.store(Bucket.IMAGE, _req("image", "big.png", FakeStream(b"0123456789")))
        assert _listing(storage)[Bucket.IMAGE] == []

    @pytest.mark.asyncio
    async def test_read_error_removes_partial_file(self, storage):
        stream = FailingStream(b"abcd", ConnectionResetError("client went away"))
        with pytest.raises(StorageError):
            await storage.store(Bucket.IMAGE, _req("image", "cat.png", stream))
        assert _listing(storage)[Bucket.IMAGE] == []

    @pytest.mark.asyncio
    async def test_cancellation_removes_partial_file(self, storage):
        stream = FailingStream(b"abcd", asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await storage.store(Bucket.IMAGE, _req("image", "cat.png", stream))
        assert _listing(storage)[Bucket.IMAGE] == []

    @pytest.mark.asyncio
    async def test_unwritable_directory_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "public"
        blocker.write_text("not a directory")
        storage = StorageRouter(public_root=str(blocker))
        with pytest.raises(StorageError):
            await storage.store(Bucket.IMAGE, _req("image", "cat.png", FakeStream(b"x")))


class TestNaming:

    @pytest.mark.asyncio
    async def test_token_naming_keeps_original_as_metadata(self, tmp_path):
        storage = StorageRouter(public_root=str(tmp_path), naming="token")
        stored = await storage.store(Bucket.IMAGE, _req("image", "Cat Photo.PNG", FakeStream(b"x")))
        assert re.fullmatch(r"image-[0-9a-f]{32}\.png", stored.stored_filename)
        assert stored.original_filename == "Cat Photo.PNG"

    def test_unknown_naming_scheme(self, tmp_path):
        with pytest.raises(ValueError):
            StorageRouter(public_root=str(tmp_path), naming="sha1")

    @pytest.mark.parametrize("raw,expected", [
        ("cat.png", "cat.png"),
        ("a/b/cat.png", "cat.png"),
        ("C:\\Users\\me\\cat.png", "cat.png"),
        ("..", "unnamed"),
        ("", "unnamed"),
    ])
    def test_safe_basename(self, raw, expected):
        assert safe_basename(raw) == expected

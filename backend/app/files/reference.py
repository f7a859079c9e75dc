"""Reference paths for stored files.

A reference is the stored file's ``file://`` URL cut down to the part that
starts at the bucket directory, e.g. ``img/image-1700000000000-cat.png``.
The static file server serves the public root, so the reference doubles as
the URL path of the file.
"""
from pathlib import PurePath
from urllib.parse import quote

from .schemas import StoredFile


def path_to_reference(path: str, segment: str) -> str:
    """Trim a file URL down to ``<segment>/...``.

    The last ``/<segment>/`` component is used so that a parent directory
    sharing the segment's name cannot shift the cut. The segment is
    percent-encoded like the rest of the file URL before it is searched for.

    Raises:
        ValueError: If the path has no ``segment`` directory component
    """
    file_url = PurePath(path).as_uri()
    marker = f"/{quote(segment)}/"
    idx = file_url.rfind(marker)
    if idx == -1:
        raise ValueError(f"{path!r} is not inside a {segment!r} directory")
    return file_url[idx + 1:]


def to_reference(stored_file: StoredFile) -> str:
    return path_to_reference(stored_file.path, stored_file.segment)

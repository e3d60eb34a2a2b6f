""" Path helpers shared by FileOps and the download server. """

import mimetypes
import os
from typing import Union
from urllib.parse import quote

PathLike = Union[str, "os.PathLike[str]"]

DIRECTORY_MIME_TYPE = "directory"
FALLBACK_MIME_TYPE = "application/octet-stream"


def normalize_folder(folder: PathLike) -> str:
    """Return *folder* as a string ending with exactly one separator appended if missing."""
    folder = os.fspath(folder)
    if not folder.endswith(os.sep):
        folder += os.sep
    return folder


def _last_segment(path: PathLike) -> str:
    # Trailing separators do not start a new (empty) segment.
    path = os.fspath(path)
    stripped = path.rstrip("/" + os.sep)
    return os.path.basename(stripped)


def file_extension(path: PathLike) -> str:
    """Text after the last dot of the final path segment, or ``""``."""
    segment = _last_segment(path)
    if "." not in segment:
        return ""
    return segment.rsplit(".", 1)[1]


def filename(path: PathLike) -> str:
    """Final path segment without its extension."""
    segment = _last_segment(path)
    if "." not in segment:
        return segment
    return segment.rsplit(".", 1)[0]


def resolve_download_path(name: str, folder: str = "") -> str:
    # Downloads always join with "/" whatever the platform separator is.
    if folder:
        return f"{folder}/{name}"
    return name


def detect_mime_type(path: PathLike) -> str:
    """Best guess content type for *path*."""
    if os.path.isdir(path):
        return DIRECTORY_MIME_TYPE
    mime_type, _encoding = mimetypes.guess_type(os.fspath(path))
    return mime_type or FALLBACK_MIME_TYPE


def content_disposition(name: str) -> str:
    """Attachment header value; non-ASCII names also get an RFC 6266 ``filename*``."""
    try:
        name.encode("ascii")
    except UnicodeEncodeError:
        fallback = name.encode("ascii", "replace").decode("ascii").replace('"', "_")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"
    return f'attachment; filename="{name}"'

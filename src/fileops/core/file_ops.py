"""
FileOps: fail-fast wrappers over filesystem and archive calls.

Failure buckets:
- almost every operation raises ``HaltError`` when the underlying call
  fails; ``halt_on_failure`` turns that into process exit at the call site
- ``download`` raises the recoverable ``DownloadNotFoundError`` for a missing
  file; an existing file that cannot be opened halts like everything else
- inner unlinks of ``delete_tree``, every archive call of ``create_zip``
  and the post-download delete are best-effort and never surface errors
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
from contextlib import contextmanager
from enum import IntEnum
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional, Sequence, Set, Union

from ..network.responses import ResponseWriter
from .config import Settings
from .exceptions import DownloadNotFoundError, FailureKind, HaltError
from .halt import ARCHIVE_ERRORS, best_effort
from . import paths

logger = logging.getLogger(__name__)

VERSION = "2025.01.16"

DETECT = "detect"
CSV_TYPE = "text/csv"
EXCEL_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
JSON_TYPE = "application/json"
PDF_TYPE = "application/pdf"
ZIP_TYPE = "application/zip"

CHUNK_SIZE = 65536  # 64KB

Content = Union[str, bytes]


class SortOrder(IntEnum):
    ASCENDING = 0
    DESCENDING = 1
    NONE = 2


def _as_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


@contextmanager
def _open_or_halt(path: str, mode: str) -> Iterator[IO[bytes]]:
    # The handle is closed on every exit path; a failing close halts too.
    try:
        handle = open(path, mode)
    except OSError as e:
        raise HaltError(FailureKind.OPEN, f"Unable to open file: {path}", path) from e
    try:
        yield handle
    finally:
        try:
            handle.close()
        except OSError as e:
            raise HaltError(
                FailureKind.CLOSE, f"Unable to close file: {path}", path
            ) from e


def _drop_entries(zip_file: str, names: Set[str]) -> None:
    """Rewrite an existing archive without the entries called *names*."""
    if not names or not os.path.isfile(zip_file):
        return
    with zipfile.ZipFile(zip_file) as src:
        if not names.intersection(src.namelist()):
            return
        tmp_file = zip_file + ".tmp"
        with zipfile.ZipFile(tmp_file, "w", compression=zipfile.ZIP_DEFLATED) as dst:
            for info in src.infolist():
                if info.filename not in names:
                    dst.writestr(info, src.read(info.filename))
    os.replace(tmp_file, zip_file)


class FileOps:
    """Path-normalized, fail-fast file and folder operations."""

    def __init__(
        self,
        writer: Optional[ResponseWriter] = None,
        legacy_mime_from_folder: bool = False,
        legacy_delete_by_name: bool = False,
    ):
        # Result of the last read_folder() call
        self.last_listing: List[str] = []
        self.last_listing_count = 0

        self.writer = writer
        self.legacy_mime_from_folder = legacy_mime_from_folder
        self.legacy_delete_by_name = legacy_delete_by_name

    @classmethod
    def from_settings(
        cls, settings: Settings, writer: Optional[ResponseWriter] = None
    ) -> "FileOps":
        return cls(
            writer=writer,
            legacy_mime_from_folder=settings.legacy_mime_from_folder,
            legacy_delete_by_name=settings.legacy_delete_by_name,
        )

    @staticmethod
    def version() -> str:
        return VERSION

    # --- folders ---

    def create_folder(
        self, folder: str, mode: int = 0o777, recursive: bool = False
    ) -> None:
        """Create *folder* unless it already exists."""
        if not os.fspath(folder):
            raise ValueError("folder must not be empty")
        folder = paths.normalize_folder(folder)
        if os.path.isdir(folder):
            return
        try:
            if recursive:
                os.makedirs(folder, mode)
            else:
                os.mkdir(folder, mode)
        except OSError as e:
            raise HaltError(
                FailureKind.CREATE_FOLDER, f"Unable to create folder: {folder}", folder
            ) from e
        logger.debug("Created folder %s", folder)

    def delete_folder(self, folder: str) -> None:
        """Remove an empty folder; no-op if it is not a directory."""
        folder = paths.normalize_folder(folder)
        if not os.path.isdir(folder):
            return
        self._remove_dir(folder)

    def delete_tree(self, folder: str) -> None:
        """
        Remove *folder* and everything below it.

        Walks with an explicit stack so depth is not limited by recursion.
        Symlinks are unlinked, never followed. Files that cannot be removed
        are skipped, which then makes removing their parent folder halt.
        """
        root = paths.normalize_folder(folder)
        if not os.path.isdir(root):
            return

        # (folder, children_already_pushed)
        stack = [(root, False)]
        while stack:
            current, expanded = stack.pop()
            if expanded:
                self._remove_dir(current)
                continue

            stack.append((current, True))
            try:
                entries = os.listdir(current)
            except OSError as e:
                raise HaltError(
                    FailureKind.LIST, f"Unable to read folder: {current}", current
                ) from e
            for entry in entries:
                path = current + entry
                if os.path.isdir(path) and not os.path.islink(path):
                    stack.append((paths.normalize_folder(path), False))
                else:
                    with best_effort("unlink", path):
                        os.unlink(path)
        logger.debug("Deleted tree %s", root)

    def _remove_dir(self, folder: str) -> None:
        try:
            os.rmdir(folder)
        except OSError as e:
            raise HaltError(
                FailureKind.DELETE_FOLDER, f"Unable to delete folder: {folder}", folder
            ) from e

    def read_folder(self, folder: str, sort: int = SortOrder.ASCENDING) -> None:
        """
        List *folder* into ``last_listing`` / ``last_listing_count``.

        Entries include ``.`` and ``..``. Nothing changes when *folder* is
        not a directory.
        """
        sort = SortOrder(sort)
        folder = paths.normalize_folder(folder)
        if not os.path.isdir(folder):
            return
        try:
            entries = [".", ".."] + os.listdir(folder)
        except OSError as e:
            raise HaltError(
                FailureKind.LIST, f"Unable to read folder: {folder}", folder
            ) from e

        if sort is SortOrder.ASCENDING:
            entries.sort()
        elif sort is SortOrder.DESCENDING:
            entries.sort(reverse=True)

        self.last_listing = entries
        self.last_listing_count = len(entries)

    # --- files ---

    def rename_file(self, old_name: str, new_name: str) -> None:
        if not old_name or not new_name:
            raise ValueError("old_name and new_name must not be empty")
        try:
            os.rename(old_name, new_name)
        except OSError as e:
            raise HaltError(
                FailureKind.RENAME,
                f"Unable to rename file: {old_name} to {new_name}",
                old_name,
                new_name,
            ) from e

    def copy_file(self, source: str, destination: str) -> None:
        if not os.path.exists(source):
            raise HaltError(FailureKind.NOT_FOUND, f"File not found: {source}", source)
        try:
            shutil.copyfile(source, destination)
        except OSError as e:
            raise HaltError(
                FailureKind.COPY,
                f"Unable to copy file: {source} to {destination}",
                source,
                destination,
            ) from e

    def move_file(self, file: str, original_folder: str, new_folder: str) -> None:
        """Move *file* from *original_folder* into *new_folder*."""
        source = paths.normalize_folder(original_folder) + file
        target = paths.normalize_folder(new_folder) + file
        if not os.path.exists(source):
            raise HaltError(FailureKind.NOT_FOUND, f"File not found: {source}", source)
        try:
            shutil.move(source, target)
        except OSError as e:
            raise HaltError(
                FailureKind.MOVE,
                f"Unable to move file: {source} to {target}",
                source,
                target,
            ) from e

    def move_uploaded_file(
        self, original_file: str, new_file: str, folder: str, mode: int = 0o777
    ) -> str:
        """Move an uploaded temp file into *folder* as *new_file* and chmod it."""
        folder = paths.normalize_folder(folder)
        if not os.path.exists(folder):
            self.create_folder(folder, mode)
        target = folder + new_file
        try:
            shutil.move(original_file, target)
        except OSError as e:
            raise HaltError(
                FailureKind.MOVE_UPLOADED,
                f"Unable to move uploaded file: {original_file} to {target}",
                original_file,
                target,
            ) from e
        try:
            os.chmod(target, mode)
        except OSError as e:
            raise HaltError(
                FailureKind.CHMOD, f"Unable to change file permissions: {target}", target
            ) from e
        return target

    @staticmethod
    def file_extension(file: str) -> str:
        return paths.file_extension(file)

    @staticmethod
    def filename(file: str) -> str:
        return paths.filename(file)

    # --- content ---

    def _write(self, file: str, content: Content, mode: str) -> None:
        data = _as_bytes(content)
        with _open_or_halt(file, mode) as handle:
            try:
                handle.write(data)
            except OSError as e:
                raise HaltError(
                    FailureKind.WRITE, f"Unable to write to file: {file}", file
                ) from e

    def write_file(self, file: str, content: Content) -> None:
        """Overwrite *file* with *content*."""
        self._write(file, content, "wb")

    def append_file(self, file: str, content: Content) -> None:
        self._write(file, content, "ab")

    def read_file(self, file: str) -> bytes:
        """Read exactly the current size of *file*."""
        with _open_or_halt(file, "rb") as handle:
            try:
                size = os.fstat(handle.fileno()).st_size
                return handle.read(size)
            except OSError as e:
                raise HaltError(
                    FailureKind.READ, f"Unable to read file: {file}", file
                ) from e

    def write_little_file(self, file: str, content: Content) -> None:
        try:
            Path(file).write_bytes(_as_bytes(content))
        except OSError as e:
            raise HaltError(FailureKind.SAVE, f"Unable to save file: {file}", file) from e

    def append_little_file(self, file: str, content: Content) -> None:
        try:
            with open(file, "ab") as f:
                f.write(_as_bytes(content))
        except OSError as e:
            raise HaltError(
                FailureKind.APPEND, f"Unable to add content to file: {file}", file
            ) from e

    def read_little_file(self, file: str) -> bytes:
        try:
            return Path(file).read_bytes()
        except OSError as e:
            raise HaltError(FailureKind.READ, f"Unable to read file: {file}", file) from e

    # --- archives & downloads ---

    def create_zip(
        self, files: Sequence[str], filename: str, filepath: str = ""
    ) -> str:
        """
        Add *files* (under their base names) to the ZIP archive *filename*.

        The archive is created if missing and added to otherwise; an entry
        with the same base name is replaced. No failure in here is
        reported: a missing source file is just left out.
        Returns the archive path.
        """
        if filepath and not os.path.exists(filepath):
            with best_effort("create folder", filepath):
                os.makedirs(filepath, 0o777, exist_ok=True)

        zip_file = f"{filepath}/{filename}" if filepath else filename

        # base name -> source; a later file with the same name wins
        entries: Dict[str, str] = {}
        for file in files:
            if not os.path.isfile(file):
                logger.debug("Ignoring missing archive source %s", file)
                continue
            entries[os.path.basename(file)] = file

        with best_effort("open archive", zip_file, errors=ARCHIVE_ERRORS):
            _drop_entries(zip_file, set(entries))
            with zipfile.ZipFile(zip_file, "a", compression=zipfile.ZIP_DEFLATED) as zf:
                for arcname, file in entries.items():
                    with best_effort("add to archive", file, errors=ARCHIVE_ERRORS):
                        zf.write(file, arcname)
        logger.debug("Wrote archive %s", zip_file)
        return zip_file

    def download(
        self,
        filename: str,
        filepath: str = "",
        content_type: str = DETECT,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        """
        Send *filepath*/*filename* as an attachment through *writer*.

        Raises ``DownloadNotFoundError`` if the file does not exist and
        ``HaltError`` if it exists but cannot be opened.
        """
        download_file = paths.resolve_download_path(filename, filepath)
        if not os.path.isfile(download_file):
            raise DownloadNotFoundError(download_file)

        writer = writer or self.writer
        if writer is None:
            raise ValueError("download() needs a ResponseWriter")

        if content_type == DETECT:
            source = filepath if self.legacy_mime_from_folder else download_file
            content_type = paths.detect_mime_type(source)

        # Nothing reaches the writer unless the file opens.
        try:
            f = open(download_file, "rb")
        except OSError as e:
            raise HaltError(
                FailureKind.OPEN, f"Unable to open file: {download_file}", download_file
            ) from e
        with f:
            size = os.fstat(f.fileno()).st_size
            writer.header("Content-Type", content_type)
            writer.header(
                "Content-Disposition",
                paths.content_disposition(os.path.basename(download_file)),
            )
            writer.header("Content-Length", str(size))
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                writer.write(chunk)
        logger.debug("Sent %s (%d bytes, %s)", download_file, size, content_type)

    def _download_as(
        self,
        filename: str,
        filepath: str,
        content_type: str,
        delete: bool,
        writer: Optional[ResponseWriter],
    ) -> None:
        self.download(filename, filepath, content_type, writer=writer)
        if delete:
            if self.legacy_delete_by_name:
                target = filename
            else:
                target = paths.resolve_download_path(filename, filepath)
            with best_effort("delete", target):
                os.unlink(target)

    def download_csv(
        self,
        filename: str,
        filepath: str = "",
        delete: bool = False,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        self._download_as(filename, filepath, CSV_TYPE, delete, writer)

    def download_excel(
        self,
        filename: str,
        filepath: str = "",
        delete: bool = False,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        self._download_as(filename, filepath, EXCEL_TYPE, delete, writer)

    def download_json(
        self,
        filename: str,
        filepath: str = "",
        delete: bool = False,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        self._download_as(filename, filepath, JSON_TYPE, delete, writer)

    def download_pdf(
        self,
        filename: str,
        filepath: str = "",
        delete: bool = False,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        self._download_as(filename, filepath, PDF_TYPE, delete, writer)

    def download_zip(
        self,
        filename: str,
        filepath: str = "",
        delete: bool = False,
        writer: Optional[ResponseWriter] = None,
    ) -> None:
        self._download_as(filename, filepath, ZIP_TYPE, delete, writer)

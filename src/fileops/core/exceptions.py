"""
Exceptions for FileOps core module
Three buckets live here: fatal halts, recoverable download errors, and
the base class everything hangs from.
"""

from enum import Enum
from typing import Tuple


class FailureKind(str, Enum):
    """Which underlying call failed."""

    NOT_FOUND = "not_found"
    CREATE_FOLDER = "create_folder"
    DELETE_FOLDER = "delete_folder"
    RENAME = "rename"
    COPY = "copy"
    MOVE = "move"
    MOVE_UPLOADED = "move_uploaded"
    CHMOD = "chmod"
    LIST = "list"
    OPEN = "open"
    READ = "read"
    WRITE = "write"
    CLOSE = "close"
    SAVE = "save"
    APPEND = "append"


class FileOpsError(Exception):
    # general container for errors
    pass


class HaltError(FileOpsError):
    """
    A filesystem call failed and the process must not continue.

    Library code only raises this; ``fileops.core.halt.halt_on_failure``
    is the one place that turns it into process exit.
    """

    def __init__(self, kind: FailureKind, message: str, *paths: str):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.paths: Tuple[str, ...] = paths


class DownloadNotFoundError(FileOpsError):
    # raised when the file to download does not exist (recoverable)
    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path

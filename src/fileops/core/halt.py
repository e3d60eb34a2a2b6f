"""
Failure policies for FileOps.

- ``halt_on_failure``: the outermost adapter. Wrap a call site with it and
  a ``HaltError`` raised anywhere below ends the process with status 1.
- ``best_effort``: marks a block whose failures are deliberately not
  surfaced (inner unlinks of a tree delete, every archive call).
"""

import logging
import zipfile
from contextlib import contextmanager
from typing import Iterator, Tuple, Type

from .exceptions import HaltError

logger = logging.getLogger(__name__)

HALT_EXIT_CODE = 1

ARCHIVE_ERRORS: Tuple[Type[BaseException], ...] = (OSError, zipfile.BadZipFile)


@contextmanager
def halt_on_failure(exit_code: int = HALT_EXIT_CODE) -> Iterator[None]:
    """Turn a ``HaltError`` into process termination after logging it."""
    try:
        yield
    except HaltError as e:
        logger.critical("%s", e.message)
        raise SystemExit(exit_code) from e


@contextmanager
def best_effort(
    action: str,
    *paths: str,
    errors: Tuple[Type[BaseException], ...] = (OSError,),
) -> Iterator[None]:
    """Run a block whose failures are swallowed (logged at DEBUG only)."""
    try:
        yield
    except errors as e:
        logger.debug("Ignoring failed %s on %s: %s", action, ", ".join(paths), e)

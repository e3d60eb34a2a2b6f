"""Environment-driven settings for FileOps."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Mapping, Optional

TRUTHY = {"1", "true", "yes", "on"}


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in TRUTHY


@dataclass
class Settings:
    """
    Runtime knobs read from the environment.

    - ``FILEOPS_FOLDER_MODE``: octal permission bits for created folders
    - ``FILEOPS_LEGACY_MIME_FROM_FOLDER``: detect download MIME type from the
      folder argument instead of the resolved file
    - ``FILEOPS_LEGACY_DELETE_BY_NAME``: after a typed download, delete the
      bare name instead of the resolved path
    - ``FILEOPS_LOG_LEVEL``: logging level name
    - ``FILEOPS_SERVE_ROOT`` / ``FILEOPS_PORT``: download server defaults
    """

    folder_mode: int = 0o777
    legacy_mime_from_folder: bool = False
    legacy_delete_by_name: bool = False
    log_level: int = logging.INFO
    serve_root: str = "."
    port: int = 9999


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from *env* (defaults to ``os.environ``)."""
    if env is None:
        env = os.environ

    settings = Settings()
    mode = env.get("FILEOPS_FOLDER_MODE")
    if mode:
        try:
            settings.folder_mode = int(mode, 8)
        except ValueError:
            raise ValueError(f"FILEOPS_FOLDER_MODE must be octal, got {mode!r}")

    settings.legacy_mime_from_folder = _flag(env, "FILEOPS_LEGACY_MIME_FROM_FOLDER")
    settings.legacy_delete_by_name = _flag(env, "FILEOPS_LEGACY_DELETE_BY_NAME")

    level_name = env.get("FILEOPS_LOG_LEVEL")
    if level_name:
        level = logging.getLevelName(level_name.strip().upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown FILEOPS_LOG_LEVEL: {level_name!r}")
        settings.log_level = level

    settings.serve_root = env.get("FILEOPS_SERVE_ROOT", settings.serve_root)
    port = env.get("FILEOPS_PORT")
    if port:
        settings.port = int(port)
    return settings

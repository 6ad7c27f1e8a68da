"""Environment-driven settings and logging setup for the filesystem server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(log_file: Optional[str] = None) -> logging.Logger:
    """Apply ``MCP_FS_LOG_LEVEL`` and ``MCP_FS_LOG_FILE`` to the package logger.

    Logs go to stderr or to a file, never stdout: stdout carries the stdio
    transport."""

    package_logger = logging.getLogger("mcp_fs")
    level_name = os.environ.get("MCP_FS_LOG_LEVEL")
    level: Optional[int] = None
    if level_name:
        candidate = getattr(logging, level_name.upper(), None)
        if isinstance(candidate, int):
            level = candidate
            package_logger.setLevel(level)
        else:
            package_logger.warning(
                "Unknown MCP_FS_LOG_LEVEL %r. Falling back to default levels.",
                level_name,
            )

    log_file = log_file or os.environ.get("MCP_FS_LOG_FILE")
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        already_attached = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(path)
            for h in package_logger.handlers
        )
        if not already_attached:
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            package_logger.addHandler(handler)
    elif level is not None and not logging.getLogger().handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    return package_logger


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer for %s: %r. Falling back to %d.",
            name,
            raw,
            default,
        )
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return Path(raw).expanduser()


def session_dir() -> Path:
    return _env_path("MCP_FS_SESSION_DIR", Path.home() / ".ai-tools" / "sessions")


def search_max_file_bytes() -> int:
    return _int_from_env("MCP_FS_SEARCH_MAX_FILE_BYTES", 0)


def search_max_results() -> int:
    return _int_from_env("MCP_FS_SEARCH_MAX_RESULTS", 50)


def global_gitignore() -> Optional[Path]:
    """Locate the user's global excludes file, if one exists."""

    explicit = os.environ.get("MCP_FS_GLOBAL_GITIGNORE", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    candidate = base / "git" / "ignore"
    return candidate if candidate.is_file() else None

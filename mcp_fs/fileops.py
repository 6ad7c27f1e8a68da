"""Whole-file read/write/move/delete on resolved paths.

Everything here raises ``FsToolError`` subclasses; raw ``OSError`` is wrapped
with the attempted operation and path before it leaves the module, including
errors from the existence and type checks that precede each operation.
"""

from __future__ import annotations

import enum
import errno
import logging
import os
import shutil
import stat
import uuid
import warnings
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple

from .errors import (
    AlreadyExistsError,
    DestinationExistsError,
    InvalidArgumentError,
    IsDirectoryError,
    LossyDecodeWarning,
    NotEmptyError,
    NotFoundError,
    from_os_error,
    os_errors,
)

logger = logging.getLogger(__name__)

SEAM_LINES = 3


class WriteMode(str, enum.Enum):
    OVERWRITE = "overwrite"
    APPEND = "append"
    CREATE_DIRS = "create_dirs"
    NO_CLOBBER = "no_clobber"


class TextContent(NamedTuple):
    text: str
    size: int
    truncated: bool
    lossy: bool


class WriteResult(NamedTuple):
    path: Path
    bytes_written: int
    created: bool
    size: int
    seam: Optional[List[str]] = None


def _lstat(path: Path, operation: str) -> Optional[os.stat_result]:
    """``lstat`` that reports absence as ``None`` and wraps anything else."""

    with os_errors(operation, path):
        try:
            return path.lstat()
        except (FileNotFoundError, NotADirectoryError):
            return None


def _stat(path: Path, operation: str) -> Optional[os.stat_result]:
    with os_errors(operation, path):
        try:
            return path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None


def _is_dir(st: Optional[os.stat_result]) -> bool:
    return st is not None and stat.S_ISDIR(st.st_mode)


def _decode(data: bytes) -> Tuple[str, bool]:
    try:
        return data.decode("utf-8"), False
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace"), True


def read_text(path: Path, max_bytes: Optional[int] = None) -> TextContent:
    """Read ``path`` as UTF-8, replacing invalid sequences.

    With ``max_bytes`` only the head is returned; a code point cut at the
    boundary shows up as a replacement character."""

    st = _stat(path, "read")
    if st is None:
        raise NotFoundError(f"read failed, path not found: {path}", path=str(path))
    if _is_dir(st):
        raise IsDirectoryError(f"Cannot read a directory: {path}", path=str(path))
    with os_errors("read", path):
        with path.open("rb") as fh:
            data = fh.read() if not max_bytes or max_bytes <= 0 else fh.read(max_bytes)
    truncated = len(data) < st.st_size
    text, lossy = _decode(data)
    if lossy:
        warnings.warn(f"{path} is not valid UTF-8; invalid bytes replaced", LossyDecodeWarning, stacklevel=2)
    return TextContent(text, st.st_size, truncated, lossy)


def read(path: Path) -> str:
    return read_text(path).text


def _tail_lines(path: Path, count: int) -> List[str]:
    try:
        text = path.read_bytes().decode("utf-8", errors="replace")
    except OSError:
        return []
    lines = text.splitlines()
    return lines[-count:] if count > 0 else []


def _atomic_replace(target: Path, data: bytes) -> None:
    tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
    try:
        with tmp.open("wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if target.exists():
            shutil.copymode(target, tmp)
        tmp.replace(target)
    finally:
        if tmp.exists():
            tmp.unlink(missing_ok=True)


def write(path: Path, contents: str, mode: WriteMode = WriteMode.OVERWRITE) -> WriteResult:
    mode = WriteMode(mode)
    st = _stat(path, "write")
    if _is_dir(st):
        raise IsDirectoryError(f"Cannot write to a directory: {path}", path=str(path))
    existed = st is not None
    if mode is WriteMode.NO_CLOBBER and existed:
        raise AlreadyExistsError(f"File already exists: {path}", path=str(path))

    parent = path.parent
    if _stat(parent, "write") is None:
        if mode is not WriteMode.CREATE_DIRS:
            raise NotFoundError(
                f"Parent directory does not exist: {parent}; use mode='create_dirs'",
                path=str(path),
            )
        with os_errors("create directories", parent):
            parent.mkdir(parents=True, exist_ok=True)

    data = contents.encode("utf-8")
    seam = None
    if mode is WriteMode.APPEND:
        seam = _tail_lines(path, SEAM_LINES) if existed else []
        with os_errors("append", path):
            with path.open("ab") as fh:
                fh.write(data)
    elif mode is WriteMode.NO_CLOBBER:
        with os_errors("write", path):
            with path.open("xb") as fh:
                fh.write(data)
    else:
        with os_errors("write", path):
            _atomic_replace(path, data)

    with os_errors("stat", path):
        size = path.stat().st_size
    logger.debug("Wrote %d bytes to %s (mode=%s)", len(data), path, mode.value)
    return WriteResult(path, len(data), not existed, size, seam)


def _discard(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _replace_through_backup(src: Path, dst: Path) -> None:
    """Move ``src`` onto the existing ``dst`` without ever losing ``dst``.

    ``dst`` is renamed to a hidden sibling first and only discarded once the
    move has landed; a failed move puts it back."""

    backup = dst.with_name(f".{dst.name}.{uuid.uuid4().hex}.bak")
    with os_errors("move", dst):
        dst.rename(backup)
    try:
        shutil.move(str(src), str(dst))
    except OSError as exc:
        try:
            if dst.exists() or dst.is_symlink():
                _discard(dst)
            backup.rename(dst)
        except OSError:
            logger.exception("Could not restore %s; previous contents kept at %s", dst, backup)
        raise from_os_error("move", src, exc) from exc
    try:
        _discard(backup)
    except OSError as exc:
        logger.warning("Moved %s to %s but could not remove %s: %s", src, dst, backup, exc)


def move(src: Path, dst: Path, overwrite: bool = False, create_dirs: bool = True) -> None:
    src_st = _lstat(src, "move")
    if src_st is None:
        raise NotFoundError(f"Source not found: {src}", path=str(src))
    if src == dst:
        return
    if src.is_relative_to(dst) or dst.is_relative_to(src):
        raise InvalidArgumentError(
            f"Cannot move {src} to {dst}: one path contains the other",
            src=str(src),
            dst=str(dst),
        )

    dst_st = _lstat(dst, "move")
    if dst_st is not None and not overwrite:
        raise DestinationExistsError(
            f"{dst} already exists; set overwrite=true to replace it",
            path=str(dst),
        )
    if _stat(dst.parent, "move") is None:
        if not create_dirs:
            raise NotFoundError(f"Destination parent does not exist: {dst.parent}", path=str(dst))
        with os_errors("create directories", dst.parent):
            dst.parent.mkdir(parents=True, exist_ok=True)

    if dst_st is None:
        with os_errors("move", src):
            shutil.move(str(src), str(dst))
    elif not (_is_dir(src_st) or _is_dir(dst_st)):
        try:
            os.replace(src, dst)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise from_os_error("move", src, exc) from exc
            _replace_through_backup(src, dst)
    else:
        _replace_through_backup(src, dst)
    logger.debug("Moved %s to %s", src, dst)


def delete(path: Path, recursive: bool = False) -> None:
    st = _lstat(path, "delete")
    if st is None:
        raise NotFoundError(f"Path not found: {path}", path=str(path))
    if _is_dir(st):
        if not recursive:
            with os_errors("inspect", path):
                has_children = any(path.iterdir())
            if has_children:
                raise NotEmptyError(f"Directory not empty: {path}; set recursive=true", path=str(path))
            raise IsDirectoryError(f"{path} is a directory; set recursive=true", path=str(path))
        with os_errors("delete", path):
            shutil.rmtree(path)
    else:
        # symlinks land here too: the link goes, its target stays
        with os_errors("delete", path):
            path.unlink()
    logger.debug("Deleted %s", path)

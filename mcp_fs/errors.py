"""Error taxonomy shared by the resolver, session store and file operations.

Every error carries an errno-style ``code`` so the tool layer can turn it into
the ``{"error": {"code", "message"}}`` payload without inspecting types.
"""

from __future__ import annotations

import contextlib
import errno
from pathlib import Path
from typing import Any, Dict, Iterator


class FsToolError(Exception):
    code = "EIO"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class MissingContextError(FsToolError):
    code = "ENOCONTEXT"

    def __init__(self, session_id: str, path: str) -> None:
        super().__init__(
            f"No context set for session '{session_id}'. "
            "Call set_context first or provide an absolute path.",
            session_id=session_id,
            path=path,
        )


class PathEscapeError(FsToolError):
    code = "EPERM"

    def __init__(self, path: str) -> None:
        super().__init__(f"Path escapes the filesystem root: {path}", path=path)


class NotFoundError(FsToolError):
    code = "ENOENT"


class IsDirectoryError(FsToolError):
    code = "EISDIR"


class AlreadyExistsError(FsToolError):
    code = "EEXIST"


class DestinationExistsError(FsToolError):
    code = "EEXIST"


class NotEmptyError(FsToolError):
    code = "ENOTEMPTY"


class PersistenceError(FsToolError):
    code = "EIO"


class FsOperationError(FsToolError):
    code = "EIO"


class InvalidArgumentError(FsToolError):
    code = "EINVAL"


class LossyDecodeWarning(UserWarning):
    """File content was not valid UTF-8 and was decoded with replacements."""


def from_os_error(operation: str, path: Path, exc: OSError) -> FsToolError:
    """Translate ``exc`` raised while doing ``operation`` on ``path``."""

    if isinstance(exc, FileNotFoundError):
        return NotFoundError(f"{operation} failed, path not found: {path}", path=str(path))
    if isinstance(exc, FileExistsError):
        return AlreadyExistsError(f"{operation} failed, already exists: {path}", path=str(path))
    if isinstance(exc, IsADirectoryError):
        return IsDirectoryError(f"{operation} failed, {path} is a directory", path=str(path))
    if exc.errno == errno.ENAMETOOLONG:
        return InvalidArgumentError(f"{operation} failed, name too long: {path}", path=str(path))
    reason = exc.strerror or exc.__class__.__name__
    return FsOperationError(f"{operation} failed for {path}: {reason}", path=str(path))


@contextlib.contextmanager
def os_errors(operation: str, path: Path) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise from_os_error(operation, path, exc) from exc

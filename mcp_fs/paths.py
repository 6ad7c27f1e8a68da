"""Session-anchored path resolution.

Paths are normalized syntactically, never canonicalized: the target does not
have to exist and symlinks are left alone, so the same rules serve reads and
creates alike.
"""

from __future__ import annotations

import glob
import os
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple

from .errors import MissingContextError, PathEscapeError

GLOB_CHARS = frozenset("*?[")
_SEPARATORS = (os.sep,) + ((os.altsep,) if os.altsep else ())


class Resolution(NamedTuple):
    """Result of resolving one user-supplied path.

    ``base`` is the directory traversal and ignore rules are anchored at; for a
    glob input it is the literal prefix before the first metacharacter.
    ``pattern`` is ``None`` unless the input was a glob."""

    base: Path
    paths: List[Path]
    pattern: Optional[str] = None

    @property
    def is_glob(self) -> bool:
        return self.pattern is not None


def has_glob(raw: str) -> bool:
    return any(ch in GLOB_CHARS for ch in raw)


def normalize(raw: str) -> Path:
    """Collapse ``.``/``..`` segments of an absolute path without touching disk.

    Raises ``PathEscapeError`` when ``..`` would climb above the root."""

    if not os.path.isabs(raw):
        raise ValueError(f"normalize expects an absolute path, got {raw!r}")
    drive, tail = os.path.splitdrive(raw)
    if os.altsep:
        tail = tail.replace(os.altsep, os.sep)
    parts: List[str] = []
    for part in tail.split(os.sep):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                raise PathEscapeError(raw)
            parts.pop()
            continue
        parts.append(part)
    return Path(drive + os.sep + os.sep.join(parts))


def split_glob(raw: str) -> Tuple[str, str]:
    """Split ``raw`` into the literal directory prefix and the glob remainder.

    >>> split_glob("src/**/*.txt")
    ('src', '**/*.txt')
    >>> split_glob("*.md")
    ('', '*.md')
    """

    first = min(i for i, ch in enumerate(raw) if ch in GLOB_CHARS)
    cut = max(raw.rfind(sep, 0, first) for sep in _SEPARATORS)
    if cut < 0:
        return "", raw
    prefix = raw[:cut] if cut > 0 else raw[: cut + 1]
    return prefix, raw[cut + 1 :]


def _anchor(context_dir: Optional[Path], raw: str, session_id: str) -> Path:
    expanded = os.path.expanduser(raw) if raw else "."
    if os.path.isabs(expanded):
        return normalize(expanded)
    if context_dir is None:
        raise MissingContextError(session_id, raw)
    return normalize(os.path.join(str(context_dir), expanded))


def expand_glob(base: Path, pattern: str) -> List[Path]:
    """Expand ``pattern`` under ``base``; ``**`` spans any number of directories.

    Hidden entries are returned too: whether they are shown is decided by the
    ignore rules, not by the glob engine."""

    full = os.path.join(glob.escape(str(base)), pattern)
    matches = glob.glob(full, recursive=True, include_hidden=True)
    seen = set()
    out: List[Path] = []
    for match in sorted(matches):
        path = normalize(match)
        if path not in seen:
            seen.add(path)
            out.append(path)
    return out


def resolve(
    context_dir: Optional[Path],
    raw: str,
    session_id: str = "default",
    literal: bool = False,
) -> Resolution:
    """Resolve ``raw`` against a session's context directory.

    Absolute inputs are normalized directly; relative inputs need a context
    directory. Glob inputs are expanded against the filesystem and may
    resolve to zero paths. With ``literal`` metacharacters are plain
    characters; an input naming an existing entry, such as
    ``report[1].txt``, is taken literally either way."""

    raw = raw or "."
    path = _anchor(context_dir, raw, session_id)
    if literal or not has_glob(raw) or os.path.lexists(path):
        return Resolution(path, [path], None)
    prefix, pattern = split_glob(raw)
    base = _anchor(context_dir, prefix, session_id)
    return Resolution(base, expand_glob(base, pattern), pattern)

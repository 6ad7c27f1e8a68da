"""Gitignore-aware directory enumeration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Collection, Dict, Iterator, List, NamedTuple, Optional, Set

from .errors import NotFoundError, os_errors
from .ignore import IgnoreMatcher
from .paths import Resolution

logger = logging.getLogger(__name__)


class ListEntry(NamedTuple):
    path: Path
    is_dir: bool
    size: Optional[int] = None
    mtime: Optional[float] = None


class SkippedEntry(NamedTuple):
    path: Path
    reason: str


def describe_os_error(exc: OSError) -> str:
    return exc.strerror or exc.__class__.__name__


def _scandir_sorted(directory: Path) -> List[os.DirEntry]:
    with os.scandir(directory) as it:
        return sorted(it, key=lambda entry: entry.name)


class Listing:
    """Lazy, single-pass enumeration of one resolution.

    Entries come out root by root in resolution order; within a directory
    children are sorted by name and, when recursive, each subdirectory's
    subtree follows the subdirectory itself. Failures on individual
    directories are appended to ``skipped`` as iteration reaches them."""

    def __init__(
        self,
        resolution: Resolution,
        recursive: bool = False,
        include_gitignore: bool = False,
        include_metadata: bool = False,
        prune: Collection[str] = (),
        matcher: Optional[IgnoreMatcher] = None,
    ):
        self.resolution = resolution
        self.recursive = recursive
        self.include_gitignore = include_gitignore
        self.include_metadata = include_metadata
        self.prune = frozenset(prune)
        self.skipped: List[SkippedEntry] = []
        self._emitted: Set[Path] = set()
        if not resolution.is_glob:
            root = resolution.paths[0]
            with os_errors("list", root):
                try:
                    root.lstat()
                except (FileNotFoundError, NotADirectoryError) as exc:
                    raise NotFoundError(f"Path not found: {root}", path=str(root)) from exc
        self.matcher = matcher or IgnoreMatcher(resolution.base)
        self._iter = self._generate()

    def __iter__(self) -> Iterator[ListEntry]:
        return self

    def __next__(self) -> ListEntry:
        return next(self._iter)

    def _generate(self) -> Iterator[ListEntry]:
        if not self.resolution.is_glob:
            root = self.resolution.paths[0]
            if root.is_dir():
                yield from self._walk(root, descend=self.recursive)
            else:
                entry = self._entry(root, is_dir=False)
                if entry is not None:
                    yield entry
            return

        for match in self.resolution.paths:
            try:
                is_dir = match.is_dir()
            except OSError as exc:
                self.skipped.append(SkippedEntry(match, describe_os_error(exc)))
                continue
            if match.name in self.prune or self._ignored(match, is_dir):
                continue
            entry = self._entry(match, is_dir)
            if entry is not None:
                yield entry
            if is_dir and self.recursive and not match.is_symlink():
                yield from self._walk(match, descend=True)

    def _walk(self, directory: Path, descend: bool) -> Iterator[ListEntry]:
        try:
            children = _scandir_sorted(directory)
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", directory, exc)
            self.skipped.append(SkippedEntry(directory, describe_os_error(exc)))
            return
        for child in children:
            path = directory / child.name
            if child.name in self.prune:
                continue
            try:
                is_dir = child.is_dir()
                is_link = child.is_symlink()
            except OSError as exc:
                self.skipped.append(SkippedEntry(path, describe_os_error(exc)))
                continue
            if self._ignored(path, is_dir):
                continue
            entry = self._entry(path, is_dir)
            if entry is not None:
                yield entry
            if is_dir and descend and not is_link:
                yield from self._walk(path, descend=True)

    def _ignored(self, path: Path, is_dir: bool) -> bool:
        return self.matcher.is_ignored(path, self.include_gitignore, is_dir=is_dir)

    def _entry(self, path: Path, is_dir: bool) -> Optional[ListEntry]:
        if path in self._emitted:
            return None
        self._emitted.add(path)
        if not self.include_metadata:
            return ListEntry(path, is_dir)
        try:
            st = path.stat()
        except OSError as exc:
            self.skipped.append(SkippedEntry(path, describe_os_error(exc)))
            return ListEntry(path, is_dir)
        return ListEntry(path, is_dir, st.st_size, st.st_mtime)


def entry_to_dict(entry: ListEntry, base: Path) -> Dict[str, Any]:
    try:
        rel = entry.path.relative_to(base).as_posix()
    except ValueError:
        rel = str(entry.path)
    out: Dict[str, Any] = {"path": rel, "is_dir": entry.is_dir}
    if entry.size is not None:
        out["size"] = entry.size
        out["mtime"] = entry.mtime
    return out

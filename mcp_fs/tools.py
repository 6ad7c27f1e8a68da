"""Session-aware filesystem operations behind the MCP tool surface."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from . import config, fileops
from .errors import FsToolError, InvalidArgumentError, os_errors
from .fileops import TextContent, WriteMode, WriteResult
from .listing import Listing, SkippedEntry
from .paths import Resolution, normalize, resolve
from .search import SearchReport, search
from .sessions import FsContext, SessionStore, now_iso

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
STORE_NAME = "fs"


class ReadOutcome(NamedTuple):
    """What one requested path of a multi-path read produced."""

    requested: str
    files: List[Tuple[Path, TextContent]]
    skipped: List[SkippedEntry]
    error: Optional[FsToolError] = None


def open_store(directory: Optional[Path] = None) -> SessionStore[FsContext]:
    return SessionStore.load(directory or config.session_dir(), STORE_NAME, FsContext)


class FsTools:
    """Filesystem operations anchored at per-session working directories.

    The store is the only shared state; it is consulted in a short critical
    section and never held across filesystem work."""

    def __init__(self, store: SessionStore[FsContext]):
        self.store = store

    # ---------------------------------------------------------------- context

    def set_context(self, path: str, session_id: Optional[str] = None) -> FsContext:
        """Seed or move a session's working directory.

        Any path is accepted: absolute, ``~``-prefixed, or relative to the
        process working directory."""

        session_id = session_id or DEFAULT_SESSION
        expanded = os.path.expanduser(path)
        if not os.path.isabs(expanded):
            expanded = os.path.join(os.getcwd(), expanded)
        working_directory = normalize(expanded)
        with os_errors("set_context", working_directory):
            is_dir = working_directory.is_dir()
        if not is_dir:
            logger.warning(
                "Session %r context %s is not an existing directory",
                session_id,
                working_directory,
            )
        context = FsContext(str(working_directory), now_iso())
        self.store.set(session_id, context)
        logger.info("Set context for session %r to %s", session_id, working_directory)
        return context

    def get_context(self, session_id: Optional[str] = None) -> FsContext:
        return self.store.get_or_default(session_id or DEFAULT_SESSION)

    def resolve(
        self,
        path: Optional[str],
        session_id: Optional[str] = None,
        literal: bool = False,
    ) -> Resolution:
        session_id = session_id or DEFAULT_SESSION
        context = self.store.get_or_default(session_id)
        return resolve(context.path, path or ".", session_id, literal=literal)

    def resolve_one(self, path: str, session_id: Optional[str] = None) -> Path:
        """Resolve ``path`` with glob metacharacters taken as plain characters."""

        return self.resolve(path, session_id, literal=True).paths[0]

    # ------------------------------------------------------------- operations

    def list(
        self,
        path: Optional[str] = None,
        session_id: Optional[str] = None,
        include_gitignore: bool = False,
        recursive: bool = False,
        include_metadata: bool = False,
    ) -> Listing:
        resolution = self.resolve(path, session_id)
        return Listing(
            resolution,
            recursive=recursive,
            include_gitignore=include_gitignore,
            include_metadata=include_metadata,
        )

    def read(
        self,
        path: str,
        session_id: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> Tuple[Resolution, List[Tuple[Path, TextContent]], List[SkippedEntry]]:
        """Read one file, or every non-ignored file a glob matches."""

        resolution = self.resolve(path, session_id)
        if not resolution.is_glob:
            target = resolution.paths[0]
            return resolution, [(target, fileops.read_text(target, max_bytes))], []

        files: List[Tuple[Path, TextContent]] = []
        skipped: List[SkippedEntry] = []
        listing = Listing(resolution)
        for entry in listing:
            if entry.is_dir:
                continue
            try:
                files.append((entry.path, fileops.read_text(entry.path, max_bytes)))
            except FsToolError as exc:
                skipped.append(SkippedEntry(entry.path, exc.message))
        return resolution, files, listing.skipped + skipped

    def read_many(
        self,
        paths: Sequence[str],
        session_id: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> List[ReadOutcome]:
        """Read each of ``paths`` independently; a failure stays with its path."""

        outcomes: List[ReadOutcome] = []
        for raw in paths:
            try:
                _, files, skipped = self.read(raw, session_id, max_bytes)
            except FsToolError as exc:
                logger.info("read of %s failed: %s", raw, exc.message)
                outcomes.append(ReadOutcome(raw, [], [], exc))
                continue
            outcomes.append(ReadOutcome(raw, files, skipped))
        return outcomes

    def write(
        self,
        path: str,
        contents: str,
        session_id: Optional[str] = None,
        mode: WriteMode | str = WriteMode.CREATE_DIRS,
    ) -> WriteResult:
        try:
            mode = WriteMode(mode)
        except ValueError as exc:
            choices = ", ".join(m.value for m in WriteMode)
            raise InvalidArgumentError(f"Unknown write mode {mode!r}; expected one of {choices}") from exc
        return fileops.write(self.resolve_one(path, session_id), contents, mode)

    def move(
        self,
        src: str,
        dst: str,
        session_id: Optional[str] = None,
        overwrite: bool = False,
        create_dirs: bool = True,
    ) -> Tuple[Path, Path]:
        src_path = self.resolve_one(src, session_id)
        dst_path = self.resolve_one(dst, session_id)
        fileops.move(src_path, dst_path, overwrite=overwrite, create_dirs=create_dirs)
        return src_path, dst_path

    def delete(self, path: str, session_id: Optional[str] = None, recursive: bool = False) -> Path:
        target = self.resolve_one(path, session_id)
        fileops.delete(target, recursive=recursive)
        return target

    def search(
        self,
        pattern: str,
        session_id: Optional[str] = None,
        path: Optional[str] = None,
        context_lines: int = 1,
        regex: bool = False,
        case_sensitive: bool = False,
        include_gitignore: bool = False,
        include_extensions: Optional[Iterable[str]] = None,
        max_results: Optional[int] = None,
        max_file_size: Optional[int] = None,
    ) -> Tuple[Resolution, SearchReport]:
        resolution = self.resolve(path, session_id)
        if max_results is None:
            max_results = config.search_max_results()
        if max_file_size is None:
            max_file_size = config.search_max_file_bytes()
        report = search(
            resolution,
            pattern,
            context_lines,
            regex=regex,
            case_sensitive=case_sensitive,
            include_gitignore=include_gitignore,
            include_extensions=include_extensions,
            max_results=max_results,
            max_file_size=max_file_size,
        )
        return resolution, report

"""Line-oriented text search over gitignore-filtered files."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from .errors import InvalidArgumentError
from .listing import Listing, SkippedEntry, describe_os_error
from .paths import Resolution

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192
VCS_DIRS = (".git", ".hg", ".svn")

HIGHLIGHT_MARKERS = {
    "none": None,
    "box": ("┌─", "─┐"),
    "emphasis": ("⦗", "⦘"),
    "ansi": ("\x1b[93m", "\x1b[0m"),
    "markdown": ("**", "**"),
}


class MatchResult(NamedTuple):
    path: Path
    line_number: int
    line: str
    before: List[str]
    after: List[str]


class SearchReport(NamedTuple):
    matches: List[MatchResult]
    skipped: List[SkippedEntry]
    files_scanned: int
    truncated: bool


def compile_pattern(pattern: str, regex: bool = False, case_sensitive: bool = False) -> re.Pattern[str]:
    """Literal match unless ``regex`` is set; case-insensitive by default."""

    if not pattern:
        raise InvalidArgumentError("Search pattern must not be empty")
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(pattern if regex else re.escape(pattern), flags)
    except re.error as exc:
        raise InvalidArgumentError(f"Invalid pattern: {exc}", pattern=pattern) from exc


def highlight_style(style: Optional[str]) -> str:
    normalized = (style or "none").strip().lower()
    if normalized not in HIGHLIGHT_MARKERS:
        raise InvalidArgumentError(
            f"Unknown highlight style {style!r}; expected one of {sorted(HIGHLIGHT_MARKERS)}"
        )
    return normalized


def highlight(line: str, matcher: re.Pattern[str], style: str = "none") -> str:
    markers = HIGHLIGHT_MARKERS[highlight_style(style)]
    if markers is None:
        return line
    prefix, suffix = markers
    return matcher.sub(lambda m: f"{prefix}{m.group(0)}{suffix}", line)


def split_lines(text: str) -> List[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _wanted(path: Path, extensions: Optional[Iterable[str]]) -> bool:
    if not extensions:
        return True
    suffix = path.suffix.lstrip(".")
    return bool(suffix) and suffix in extensions


def scan_text(path: Path, text: str, matcher: re.Pattern[str], context_lines: int) -> Iterable[MatchResult]:
    lines = split_lines(text)
    for index, line in enumerate(lines):
        if matcher.search(line) is None:
            continue
        start = max(0, index - context_lines)
        end = min(len(lines), index + 1 + context_lines)
        yield MatchResult(path, index + 1, line, lines[start:index], lines[index + 1 : end])


def search(
    resolution: Resolution,
    pattern: str,
    context_lines: int = 1,
    *,
    regex: bool = False,
    case_sensitive: bool = False,
    include_gitignore: bool = False,
    include_extensions: Optional[Iterable[str]] = None,
    max_results: Optional[int] = None,
    max_file_size: Optional[int] = None,
) -> SearchReport:
    """Scan every non-ignored text file under ``resolution`` for ``pattern``.

    Matches are ordered by file traversal order, then line number. Binary
    files (a NUL byte in the first 8 KiB), files over ``max_file_size`` and
    unreadable files are skipped and reported rather than failing the
    search. ``max_results`` of ``None`` or ``<= 0`` means unlimited."""

    if context_lines < 0:
        raise InvalidArgumentError("context_lines must be >= 0")
    matcher = compile_pattern(pattern, regex=regex, case_sensitive=case_sensitive)
    extensions = {ext.lstrip(".") for ext in include_extensions} if include_extensions else None
    limit = max_results if max_results and max_results > 0 else None
    size_limit = max_file_size if max_file_size and max_file_size > 0 else None

    start_time = time.perf_counter()
    listing = Listing(
        resolution,
        recursive=True,
        include_gitignore=include_gitignore,
        prune=VCS_DIRS,
    )
    matches: List[MatchResult] = []
    skipped: List[SkippedEntry] = []
    files_scanned = 0
    truncated = False

    for entry in listing:
        if entry.is_dir or not _wanted(entry.path, extensions):
            continue
        try:
            if size_limit is not None and entry.path.stat().st_size > size_limit:
                skipped.append(SkippedEntry(entry.path, f"larger than {size_limit} bytes"))
                continue
            data = entry.path.read_bytes()
        except OSError as exc:
            logger.debug("Skipping %s during search due to read error: %s", entry.path, exc)
            skipped.append(SkippedEntry(entry.path, describe_os_error(exc)))
            continue
        if b"\x00" in data[:BINARY_SNIFF_BYTES]:
            logger.debug("Skipping %s during search (binary detected)", entry.path)
            skipped.append(SkippedEntry(entry.path, "binary"))
            continue
        files_scanned += 1
        text = data.decode("utf-8", errors="replace")
        for match in scan_text(entry.path, text, matcher, context_lines):
            if limit is not None and len(matches) >= limit:
                truncated = True
                break
            matches.append(match)
        if truncated:
            break

    skipped = listing.skipped + skipped
    logger.info(
        "Search completed base=%s pattern=%r results=%d files=%d skipped=%d elapsed=%.3fs status=%s",
        resolution.base,
        pattern,
        len(matches),
        files_scanned,
        len(skipped),
        time.perf_counter() - start_time,
        "truncated" if truncated else "ok",
    )
    return SearchReport(matches, skipped, files_scanned, truncated)


def match_to_dict(
    match: MatchResult,
    base: Path,
    matcher: Optional[re.Pattern[str]] = None,
    style: str = "none",
) -> Dict[str, Any]:
    try:
        rel = match.path.relative_to(base).as_posix()
    except ValueError:
        rel = str(match.path)
    out: Dict[str, Any] = {
        "path": rel,
        "line_no": match.line_number,
        "line": match.line,
        "before": match.before,
        "after": match.after,
    }
    if matcher is not None and style != "none":
        out["highlighted"] = highlight(match.line, matcher, style)
    return out

#!/usr/bin/env python3
"""Session-aware filesystem MCP server."""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Mount, Route
import uvicorn

from . import config
from .errors import FsToolError
from .listing import SkippedEntry, entry_to_dict
from .search import compile_pattern, highlight_style, match_to_dict
from .fileops import TextContent
from .tools import FsTools, open_store

logger = logging.getLogger(__name__)
config.configure_logging()

DEFAULT_MAX_ENTRIES = 1000

TOOLS: Optional[FsTools] = None


def _tools() -> FsTools:
    global TOOLS
    if TOOLS is None:
        TOOLS = FsTools(open_store())
    return TOOLS


def _normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    if isinstance(value, (int, float)):
        return value != 0
    return bool(value)


def _error(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": {"code": code, "message": message}}
    if extra:
        payload["error"].update(extra)
    return payload


def _from_exc(operation: str, exc: FsToolError) -> Dict[str, Any]:
    logger.info("%s failed: %s", operation, exc.message)
    return _error(exc.code, exc.message, **exc.details)


def _skipped(entries: Sequence[SkippedEntry]) -> List[Dict[str, str]]:
    return [{"path": str(entry.path), "reason": entry.reason} for entry in entries]


# ----------------------------- MCP server setup -----------------------------

mcp = FastMCP(
    name="Session FS",
    instructions=(
        "Filesystem operations with session support. Call `set_context(path, session_id)` "
        "once, then pass the same session_id so relative paths resolve against it."
    ),
)


# ------------------------------- context tools -------------------------------


@mcp.tool()
def set_context(path: str, session_id: Optional[str] = None) -> Dict[str, Any]:
    """Set the working directory for a session.
    Use once per project; tip: pick a session_id unlikely to collide with others.
    Usage: set_context(path="/usr/local/projects/cobol", session_id="GraceHopper1906")
    Params: path:str (absolute, ~, or relative to the server's cwd), session_id:str
    Returns: {ok, session_id, working_directory, exists, last_updated}
    Gotchas: The directory does not have to exist yet."""

    try:
        context = _tools().set_context(path, session_id)
    except FsToolError as exc:
        return _from_exc("set_context", exc)
    return {
        "ok": True,
        "session_id": session_id or "default",
        "working_directory": context.working_directory,
        "exists": bool(context.path and context.path.is_dir()),
        "last_updated": context.last_updated,
    }


@mcp.tool()
def get_context(session_id: Optional[str] = None) -> Dict[str, Any]:
    """Show the working directory stored for a session.
    Usage: get_context(session_id="GraceHopper1906")
    Returns: {session_id, working_directory|null, last_updated|null}"""

    context = _tools().get_context(session_id)
    return {
        "session_id": session_id or "default",
        "working_directory": context.working_directory,
        "last_updated": context.last_updated,
    }


# ------------------------------- FS tooling ---------------------------------


@mcp.tool(name="list")
def list_entries(
    path: str = ".",
    session_id: Optional[str] = None,
    include_gitignore: bool = False,
    recursive: bool = False,
    include_metadata: bool = False,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> Dict[str, Any]:
    """List a directory or glob matches, honouring .gitignore.
    Use to orient in a project; tip: globs like "src/**/*.py" span directories.
    Usage: list(path="src/**/*.rs", session_id="s1", include_metadata=true)
    Params: path:str, include_gitignore:bool (show hidden+ignored), recursive:bool,
      include_metadata:bool, max_entries:int
    Returns: {base, entries:[{path,is_dir,size?,mtime?}], skipped:[{path,reason}], truncated}
    Gotchas: Paths in entries are relative to base."""

    include_gitignore = _normalize_bool(include_gitignore)
    try:
        listing = _tools().list(
            path,
            session_id,
            include_gitignore=include_gitignore,
            recursive=_normalize_bool(recursive),
            include_metadata=_normalize_bool(include_metadata),
        )
        base = listing.resolution.base
        entries: List[Dict[str, Any]] = []
        truncated = False
        for entry in listing:
            if max_entries > 0 and len(entries) >= max_entries:
                truncated = True
                break
            entries.append(entry_to_dict(entry, base))
    except FsToolError as exc:
        return _from_exc("list", exc)

    return {
        "base": str(base),
        "entries": entries,
        "skipped": _skipped(listing.skipped),
        "truncated": truncated,
    }


def _file_payload(target: Path, content: TextContent) -> Dict[str, Any]:
    return {
        "path": str(target),
        "text": content.text,
        "size": content.size,
        "truncated": content.truncated,
        "lossy": content.lossy,
    }


@mcp.tool()
def read(
    path: Optional[str] = None,
    session_id: Optional[str] = None,
    max_bytes: Optional[int] = None,
    paths: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Read whole UTF-8 files (invalid bytes are replaced).
    Use after list/search; tip: pass several files at once via paths=[...].
    Usage: read(path="src/main.rs", session_id="s1") or read(paths=["src/main.rs", "Cargo.toml"])
    Params: path:str, paths:list[str] (each may be a glob), max_bytes:int|None (head only)
    Returns: {path,text,size,truncated,lossy} for one path, else
      {files:[{path,text,...}|{path,error}], skipped:[...]}
    Gotchas: Directories return EISDIR; with paths=[...] a failing path does not fail the call."""

    if paths is None:
        if not path:
            return _error("EINVAL", "read needs path or paths")
        try:
            resolution, files, skipped = _tools().read(path, session_id, max_bytes)
        except FsToolError as exc:
            return _from_exc("read", exc)
        if not resolution.is_glob:
            target, content = files[0]
            return _file_payload(target, content)
        return {
            "files": [_file_payload(target, content) for target, content in files],
            "skipped": _skipped(skipped),
        }

    requested = ([path] if path else []) + list(paths)
    if not requested:
        return _error("EINVAL", "paths must not be empty")
    entries: List[Dict[str, Any]] = []
    skipped_all: List[SkippedEntry] = []
    for outcome in _tools().read_many(requested, session_id, max_bytes):
        if outcome.error is not None:
            failure = outcome.error
            entries.append({"path": outcome.requested, **_error(failure.code, failure.message, **failure.details)})
            continue
        entries.extend(_file_payload(target, content) for target, content in outcome.files)
        skipped_all.extend(outcome.skipped)
    return {"files": entries, "skipped": _skipped(skipped_all)}


@mcp.tool()
def write(path: str, contents: str, session_id: Optional[str] = None, mode: str = "create_dirs") -> Dict[str, Any]:
    """Write or append a UTF-8 file.
    Use for new files and full rewrites; tip: overwrite modes replace atomically.
    Usage: write(path="src/lib.rs", contents="...", session_id="s1", mode="create_dirs")
    Params: path:str, contents:str, mode:"overwrite"|"append"|"create_dirs"|"no_clobber"
    Returns: {ok, path, bytes, created, size, seam?}
    Gotchas: no_clobber fails with EEXIST when the file exists; * ? [ are literal here."""

    try:
        result = _tools().write(path, contents, session_id, mode)
    except FsToolError as exc:
        return _from_exc("write", exc)
    out: Dict[str, Any] = {
        "ok": True,
        "path": str(result.path),
        "bytes": result.bytes_written,
        "created": result.created,
        "size": result.size,
    }
    if result.seam is not None:
        out["seam"] = result.seam
    return out


@mcp.tool()
def move(
    src: str,
    dst: str,
    session_id: Optional[str] = None,
    overwrite: bool = False,
    create_dirs: bool = True,
) -> Dict[str, Any]:
    """Move or rename a file or directory.
    Usage: move(src="src/tool.rs", dst="src/tool/mod.rs", session_id="s1")
    Params: src:str, dst:str, overwrite:bool, create_dirs:bool
    Returns: {ok, src, dst}
    Gotchas: Existing destinations need overwrite=true; a path cannot move into itself."""

    try:
        src_path, dst_path = _tools().move(
            src,
            dst,
            session_id,
            overwrite=_normalize_bool(overwrite),
            create_dirs=_normalize_bool(create_dirs),
        )
    except FsToolError as exc:
        return _from_exc("move", exc)
    return {"ok": True, "src": str(src_path), "dst": str(dst_path)}


@mcp.tool()
def delete(path: str, session_id: Optional[str] = None, recursive: bool = False) -> Dict[str, Any]:
    """Remove a file, or a directory with recursive=true.
    Usage: delete(path="build/tmp", session_id="s1", recursive=true)
    Returns: {ok, path}
    Gotchas: Directories without recursive=true fail with ENOTEMPTY/EISDIR; globs are not expanded."""

    try:
        target = _tools().delete(path, session_id, recursive=_normalize_bool(recursive))
    except FsToolError as exc:
        return _from_exc("delete", exc)
    return {"ok": True, "path": str(target)}


@mcp.tool()
def search(
    pattern: str,
    session_id: Optional[str] = None,
    path: str = ".",
    context_lines: int = 1,
    regex: bool = False,
    case_sensitive: bool = False,
    include_gitignore: bool = False,
    include_extensions: Optional[List[str]] = None,
    max_results: Optional[int] = None,
    highlight: str = "none",
) -> Dict[str, Any]:
    """Search file contents line by line with context.
    Use to locate code; tip: regex=true for alternations like "TODO|FIXME".
    Usage: search(pattern="fn main", path="src", include_extensions=["rs"], context_lines=2)
    Params: pattern:str, path:str, context_lines:int, regex:bool, case_sensitive:bool,
      include_gitignore:bool, include_extensions:list[str], max_results:int,
      highlight:"none"|"box"|"emphasis"|"ansi"|"markdown"
    Returns: {base, results:[{path,line_no,line,before,after,highlighted?}], skipped, truncated}
    Gotchas: Binary files are skipped; matching is case-insensitive unless case_sensitive=true."""

    regex = _normalize_bool(regex)
    case_sensitive = _normalize_bool(case_sensitive)
    try:
        matcher = compile_pattern(pattern, regex=regex, case_sensitive=case_sensitive)
        style = highlight_style(highlight)
        resolution, report = _tools().search(
            pattern,
            session_id,
            path=path,
            context_lines=context_lines,
            regex=regex,
            case_sensitive=case_sensitive,
            include_gitignore=_normalize_bool(include_gitignore),
            include_extensions=include_extensions,
            max_results=max_results,
        )
    except FsToolError as exc:
        return _from_exc("search", exc)

    return {
        "base": str(resolution.base),
        "pattern": pattern,
        "results": [
            match_to_dict(match, resolution.base, matcher, style)
            for match in report.matches
        ],
        "files_scanned": report.files_scanned,
        "skipped": _skipped(report.skipped),
        "truncated": report.truncated,
    }


# --------------------------- ASGI app & transports ---------------------------


async def health(_req):
    return PlainTextResponse("ok")


class MCPGateway:
    """Route bare `/mcp` requests to the mounted app without a redirect."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
            scope["raw_path"] = b"/mcp/"
        return await self.app(scope, receive, send)


def build_app() -> MCPGateway:
    @contextlib.asynccontextmanager
    async def lifespan(app):
        async with mcp.session_manager.run():
            yield

    mcp.settings.streamable_http_path = "/"
    mcp_asgi = mcp.streamable_http_app()

    app = Starlette(
        routes=[
            Route("/health", endpoint=health),
            Mount("/mcp", app=mcp_asgi),
        ],
        lifespan=lifespan,
    )
    return MCPGateway(app)


# ---------------------------------- main ------------------------------------


def main():
    parser = argparse.ArgumentParser(description="Run the session-aware filesystem MCP server.")
    parser.add_argument("--transport", choices=("stdio", "http"), default=os.environ.get("MCP_FS_TRANSPORT", "stdio"))
    parser.add_argument("--session-dir", default=None, help="Directory holding the session store.")
    parser.add_argument("--log-file", default=None, help="Append logs to this file.")
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=config._int_from_env("PORT", 8000))
    args = parser.parse_args()

    config.configure_logging(args.log_file)

    global TOOLS
    session_dir = Path(args.session_dir).expanduser() if args.session_dir else None
    TOOLS = FsTools(open_store(session_dir))
    logger.info("Session store at %s", TOOLS.store.path)

    if args.transport == "stdio":
        mcp.run(transport="stdio")
        return

    uvicorn.run(
        build_app(),
        host=args.host,
        port=args.port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()

"""Layered gitignore evaluation for one traversal.

Layers are combined front to back: the global excludes file, the repository's
``.git/info/exclude``, then every ``.gitignore`` from the repository root (or
the traversal base outside a repository) down to the entry's parent. The last
pattern that matches wins, so rules in deeper directories override their
ancestors. A matcher is built per call and only caches within its own life.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from pathspec.patterns import GitWildMatchPattern

from . import config

logger = logging.getLogger(__name__)

IGNORE_FILE = ".gitignore"


class _Layer(NamedTuple):
    root: Path
    patterns: Tuple[GitWildMatchPattern, ...]


def _find_repo_root(start: Path) -> Optional[Path]:
    for candidate in (start, *start.parents):
        try:
            if (candidate / ".git").exists():
                return candidate
        except OSError as exc:
            logger.debug("Cannot probe %s for a repository: %s", candidate, exc)
    return None


def _read_patterns(path: Path) -> Tuple[GitWildMatchPattern, ...]:
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError:
        return ()
    except OSError as exc:
        logger.debug("Skipping unreadable ignore file %s: %s", path, exc)
        return ()
    patterns = []
    for line in lines:
        try:
            pattern = GitWildMatchPattern(line)
        except ValueError as exc:
            logger.debug("Skipping invalid pattern %r in %s: %s", line, path, exc)
            continue
        if pattern.include is not None:
            patterns.append(pattern)
    return tuple(patterns)


class IgnoreMatcher:
    """Answers "is this path hidden from listing/search" below ``base``."""

    def __init__(self, base: Path, global_ignore: Optional[Path] = None):
        self.base = base
        self.repo_root = _find_repo_root(base)
        self.top = self.repo_root or base
        self._dir_layers: Dict[Path, Optional[_Layer]] = {}
        self._verdicts: Dict[Tuple[Path, bool], bool] = {}

        root_patterns: List[GitWildMatchPattern] = []
        global_file = global_ignore if global_ignore is not None else config.global_gitignore()
        if global_file is not None:
            root_patterns.extend(_read_patterns(global_file))
        if self.repo_root is not None:
            root_patterns.extend(_read_patterns(self.repo_root / ".git" / "info" / "exclude"))
        self._root_layer = _Layer(self.top, tuple(root_patterns)) if root_patterns else None

    def is_ignored(
        self,
        path: Path,
        include_gitignore_override: bool = False,
        is_dir: Optional[bool] = None,
    ) -> bool:
        if include_gitignore_override:
            return False
        try:
            rel = path.relative_to(self.base)
        except ValueError:
            return False
        if not rel.parts:
            return False
        if any(part.startswith(".") for part in rel.parts):
            return True

        ancestor = self.base
        for part in rel.parts[:-1]:
            ancestor = ancestor / part
            if self._verdict(ancestor, True):
                return True
        if is_dir is None:
            is_dir = path.is_dir()
        return self._verdict(path, is_dir)

    def _verdict(self, path: Path, is_dir: bool) -> bool:
        key = (path, is_dir)
        cached = self._verdicts.get(key)
        if cached is not None:
            return cached
        ignored = False
        for layer in self._layers_for(path.parent):
            rel = path.relative_to(layer.root).as_posix()
            if is_dir:
                rel += "/"
            for pattern in layer.patterns:
                if pattern.match_file(rel) is not None:
                    ignored = bool(pattern.include)
        self._verdicts[key] = ignored
        return ignored

    def _layers_for(self, directory: Path) -> List[_Layer]:
        try:
            rel = directory.relative_to(self.top)
        except ValueError:
            return []
        layers: List[_Layer] = []
        if self._root_layer is not None:
            layers.append(self._root_layer)
        current = self.top
        for part in ("",) + rel.parts:
            if part:
                current = current / part
            layer = self._dir_layer(current)
            if layer is not None:
                layers.append(layer)
        return layers

    def _dir_layer(self, directory: Path) -> Optional[_Layer]:
        if directory not in self._dir_layers:
            patterns = _read_patterns(directory / IGNORE_FILE)
            self._dir_layers[directory] = _Layer(directory, patterns) if patterns else None
        return self._dir_layers[directory]

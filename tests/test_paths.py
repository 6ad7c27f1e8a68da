from pathlib import Path

import pytest

from mcp_fs.errors import MissingContextError, PathEscapeError
from mcp_fs.paths import expand_glob, has_glob, normalize, resolve, split_glob


def test_absolute_input_is_normalized_without_context():
    resolution = resolve(None, "/srv/app/./src/../README.md")
    assert resolution.paths == [Path("/srv/app/README.md")]
    assert resolution.pattern is None


def test_relative_input_requires_context():
    with pytest.raises(MissingContextError) as excinfo:
        resolve(None, "src/main.py", session_id="alpha")
    assert "alpha" in str(excinfo.value)
    assert "set_context" in str(excinfo.value)


def test_relative_input_joins_context(tmp_path):
    resolution = resolve(tmp_path, "src/../docs/./guide.md")
    assert resolution.paths == [tmp_path / "docs" / "guide.md"]


def test_target_does_not_need_to_exist(tmp_path):
    resolution = resolve(tmp_path, "new/dir/file.txt")
    assert not resolution.paths[0].exists()
    assert resolution.paths[0] == tmp_path / "new" / "dir" / "file.txt"


def test_escape_past_filesystem_root_is_rejected(tmp_path):
    climb = "/".join([".."] * (len(tmp_path.parts) + 2))
    with pytest.raises(PathEscapeError):
        resolve(tmp_path, climb)
    with pytest.raises(PathEscapeError):
        normalize("/a/../../b")


def test_leaving_context_directory_is_allowed(tmp_path):
    resolution = resolve(tmp_path, "../sibling")
    assert resolution.paths == [tmp_path.parent / "sibling"]


@pytest.mark.parametrize("raw", ["a/b/c.txt", "./x", "deep/./nested//file", "."])
def test_resolution_is_idempotent(tmp_path, raw):
    first = resolve(tmp_path, raw).paths[0]
    again = resolve(tmp_path, str(first)).paths[0]
    assert again == first


def test_tilde_expands_to_home(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert resolve(None, "~/notes.txt").paths == [tmp_path / "notes.txt"]


def test_split_glob():
    assert split_glob("src/**/*.txt") == ("src", "**/*.txt")
    assert split_glob("*.md") == ("", "*.md")
    assert split_glob("/*.py") == ("/", "*.py")
    assert has_glob("file[12].txt")
    assert not has_glob("plain/path.txt")


def test_double_star_spans_directories(tmp_path):
    for rel in ("src/a.txt", "src/x/b.txt", "src/x/y/c.txt", "src/x/d.md", "other/e.txt"):
        target = tmp_path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(rel)

    resolution = resolve(tmp_path, "src/**/*.txt")
    assert resolution.base == tmp_path / "src"
    assert resolution.pattern == "**/*.txt"
    assert resolution.paths == [
        tmp_path / "src" / "a.txt",
        tmp_path / "src" / "x" / "b.txt",
        tmp_path / "src" / "x" / "y" / "c.txt",
    ]


def test_empty_glob_is_not_an_error(tmp_path):
    resolution = resolve(tmp_path, "*.nothing")
    assert resolution.is_glob
    assert resolution.paths == []


def test_glob_base_with_metacharacters_is_escaped(tmp_path):
    odd = tmp_path / "weird[dir]"
    odd.mkdir()
    (odd / "one.txt").write_text("1")
    assert expand_glob(odd, "*.txt") == [odd / "one.txt"]


def test_literal_mode_keeps_metacharacters(tmp_path):
    resolution = resolve(tmp_path, "notes[draft].md", literal=True)
    assert not resolution.is_glob
    assert resolution.paths == [tmp_path / "notes[draft].md"]


def test_existing_name_with_metacharacters_is_taken_literally(tmp_path):
    (tmp_path / "report[1].txt").write_text("literal")
    (tmp_path / "report1.txt").write_text("glob match")

    resolution = resolve(tmp_path, "report[1].txt")
    assert not resolution.is_glob
    assert resolution.paths == [tmp_path / "report[1].txt"]

    (tmp_path / "report[1].txt").unlink()
    assert resolve(tmp_path, "report[1].txt").paths == [tmp_path / "report1.txt"]

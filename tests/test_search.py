import pytest

from mcp_fs.errors import InvalidArgumentError
from mcp_fs.paths import resolve
from mcp_fs.search import compile_pattern, highlight, match_to_dict, search, split_lines


def _write(root, rel, data):
    target = root / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        target.write_bytes(data)
    else:
        target.write_text(data)
    return target


def test_match_reports_surrounding_context(tmp_path):
    lines = [f"line {n}" for n in range(1, 11)]
    lines[4] = "    # TODO: tidy this up"
    _write(tmp_path, "notes.py", "\n".join(lines) + "\n")

    report = search(resolve(tmp_path, "."), "TODO", context_lines=1)
    assert report.files_scanned == 1
    assert len(report.matches) == 1
    match = report.matches[0]
    assert match.line_number == 5
    assert match.before == ["line 4"]
    assert match.after == ["line 6"]
    assert match_to_dict(match, tmp_path) == {
        "path": "notes.py",
        "line_no": 5,
        "line": "    # TODO: tidy this up",
        "before": ["line 4"],
        "after": ["line 6"],
    }


def test_context_is_clamped_at_file_edges(tmp_path):
    _write(tmp_path, "a.txt", "hit\nsecond\n")
    match = search(resolve(tmp_path, "."), "hit", context_lines=3).matches[0]
    assert match.before == []
    assert match.after == ["second"]


def test_literal_by_default_regex_on_request(tmp_path):
    _write(tmp_path, "a.txt", "a.c\nabc\n")
    literal = search(resolve(tmp_path, "."), "a.c")
    assert [m.line for m in literal.matches] == ["a.c"]
    regex = search(resolve(tmp_path, "."), "a.c", regex=True)
    assert [m.line for m in regex.matches] == ["a.c", "abc"]


def test_case_insensitive_unless_requested(tmp_path):
    _write(tmp_path, "a.txt", "Error\nerror\n")
    assert len(search(resolve(tmp_path, "."), "ERROR").matches) == 2
    assert len(search(resolve(tmp_path, "."), "Error", case_sensitive=True).matches) == 1


def test_invalid_arguments_are_rejected(tmp_path):
    with pytest.raises(InvalidArgumentError):
        compile_pattern("")
    with pytest.raises(InvalidArgumentError):
        compile_pattern("(unclosed", regex=True)
    with pytest.raises(InvalidArgumentError):
        search(resolve(tmp_path, "."), "x", context_lines=-1)


def test_binary_files_are_skipped(tmp_path):
    blob = _write(tmp_path, "blob.bin", b"needle\x00\x01\x02")
    _write(tmp_path, "text.txt", "needle\n")
    report = search(resolve(tmp_path, "."), "needle")
    assert [m.path.name for m in report.matches] == ["text.txt"]
    assert [(s.path, s.reason) for s in report.skipped] == [(blob, "binary")]


def test_invalid_utf8_is_searched_lossily(tmp_path):
    _write(tmp_path, "latin.txt", b"caf\xe9 needle\n")
    report = search(resolve(tmp_path, "."), "needle")
    assert report.matches[0].line == "caf� needle"


def test_ignored_and_vcs_files_are_not_searched(tmp_path):
    _write(tmp_path, ".gitignore", "dist/\n")
    _write(tmp_path, "dist/bundle.js", "needle\n")
    _write(tmp_path, ".git/config", "needle\n")
    _write(tmp_path, "src/app.js", "needle\n")

    report = search(resolve(tmp_path, "."), "needle")
    assert [m.path for m in report.matches] == [tmp_path / "src" / "app.js"]

    everything = search(resolve(tmp_path, "."), "needle", include_gitignore=True)
    paths = {m.path.relative_to(tmp_path).as_posix() for m in everything.matches}
    assert paths == {"dist/bundle.js", "src/app.js"}


def test_results_are_capped(tmp_path):
    _write(tmp_path, "a.txt", "hit\n" * 5)
    _write(tmp_path, "b.txt", "hit\n" * 5)
    report = search(resolve(tmp_path, "."), "hit", max_results=3)
    assert len(report.matches) == 3
    assert report.truncated
    assert all(m.path.name == "a.txt" for m in report.matches)

    unlimited = search(resolve(tmp_path, "."), "hit", max_results=0)
    assert len(unlimited.matches) == 10
    assert not unlimited.truncated


def test_extension_filter(tmp_path):
    _write(tmp_path, "main.rs", "fn main() {}\n")
    _write(tmp_path, "main.py", "def main(): pass\n")
    _write(tmp_path, "Makefile", "main:\n")
    report = search(resolve(tmp_path, "."), "main", include_extensions=[".rs", "py"])
    assert sorted(m.path.name for m in report.matches) == ["main.py", "main.rs"]


def test_oversized_files_are_skipped(tmp_path):
    big = _write(tmp_path, "big.txt", "needle\n" + "x" * 200)
    _write(tmp_path, "small.txt", "needle\n")
    report = search(resolve(tmp_path, "."), "needle", max_file_size=64)
    assert [m.path.name for m in report.matches] == ["small.txt"]
    assert [s.path for s in report.skipped] == [big]


def test_search_over_glob_resolution(tmp_path):
    _write(tmp_path, "src/a.py", "needle\n")
    _write(tmp_path, "src/b.txt", "needle\n")
    report = search(resolve(tmp_path, "src/*.py"), "needle")
    assert [m.path.name for m in report.matches] == ["a.py"]


def test_crlf_lines_are_trimmed():
    assert split_lines("one\r\ntwo\r\n") == ["one", "two"]
    assert split_lines("no newline") == ["no newline"]
    assert split_lines("") == []


@pytest.mark.parametrize(
    "style, expected",
    [
        ("none", "call foo()"),
        ("markdown", "call **foo**()"),
        ("emphasis", "call ⦗foo⦘()"),
        ("box", "call ┌─foo─┐()"),
        ("ansi", "call \x1b[93mfoo\x1b[0m()"),
    ],
)
def test_highlight_styles(style, expected):
    assert highlight("call foo()", compile_pattern("foo"), style) == expected


def test_unknown_highlight_style():
    with pytest.raises(InvalidArgumentError):
        highlight("x", compile_pattern("x"), "sparkles")

import logging
from pathlib import Path

from mcp_fs import config


def test_int_from_env_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("MCP_FS_SEARCH_MAX_RESULTS", "many")
    assert config.search_max_results() == 50
    monkeypatch.setenv("MCP_FS_SEARCH_MAX_RESULTS", " 7 ")
    assert config.search_max_results() == 7
    monkeypatch.delenv("MCP_FS_SEARCH_MAX_FILE_BYTES", raising=False)
    assert config.search_max_file_bytes() == 0


def test_session_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv("MCP_FS_SESSION_DIR", str(tmp_path / "store"))
    assert config.session_dir() == tmp_path / "store"
    monkeypatch.setenv("MCP_FS_SESSION_DIR", "")
    assert config.session_dir() == Path.home() / ".ai-tools" / "sessions"


def test_global_gitignore_lookup(monkeypatch, tmp_path):
    monkeypatch.delenv("MCP_FS_GLOBAL_GITIGNORE", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert config.global_gitignore() is None
    (tmp_path / "git").mkdir()
    (tmp_path / "git" / "ignore").write_text("*.swp\n")
    assert config.global_gitignore() == tmp_path / "git" / "ignore"


def test_log_file_handler_is_attached_once(monkeypatch, tmp_path):
    log_file = tmp_path / "logs" / "fs.log"
    monkeypatch.setenv("MCP_FS_LOG_LEVEL", "debug")
    package_logger = logging.getLogger("mcp_fs")
    before = list(package_logger.handlers)
    original_level = package_logger.level
    try:
        config.configure_logging(str(log_file))
        config.configure_logging(str(log_file))
        added = [h for h in package_logger.handlers if h not in before]
        assert len(added) == 1
        assert package_logger.level == logging.DEBUG

        logging.getLogger("mcp_fs.tools").debug("hello from the test")
        added[0].flush()
        assert "hello from the test" in log_file.read_text()
    finally:
        for handler in package_logger.handlers[:]:
            if handler not in before:
                package_logger.removeHandler(handler)
                handler.close()
        package_logger.setLevel(original_level)

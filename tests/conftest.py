import pytest


@pytest.fixture(autouse=True)
def isolated_env(tmp_path_factory, monkeypatch):
    """Keep the user's global gitignore and session store out of every test."""
    scratch = tmp_path_factory.mktemp("env")
    monkeypatch.setenv("MCP_FS_GLOBAL_GITIGNORE", str(scratch / "no-global-ignore"))
    monkeypatch.setenv("MCP_FS_SESSION_DIR", str(scratch / "sessions"))
    yield scratch

"""
Shared pytest fixtures.

Every test runs with its own empty guard home and project directory so the
developer's real ~/.session-guard config never leaks into results.
"""

import pytest

from security import _engine_for


@pytest.fixture(autouse=True)
def project_dir(tmp_path, monkeypatch):
    """Isolated project directory, also exported as CLAUDE_PROJECT_DIR."""
    guard_home = tmp_path / "guard-home"
    project = tmp_path / "project"
    project.mkdir()

    monkeypatch.setenv("SESSION_GUARD_HOME", str(guard_home))
    monkeypatch.setenv("CLAUDE_PROJECT_DIR", str(project))
    monkeypatch.delenv("SESSION_GUARD_READ_TIMEOUT", raising=False)
    monkeypatch.delenv("SESSION_GUARD_REPO_DIR", raising=False)

    _engine_for.cache_clear()
    yield project
    _engine_for.cache_clear()


@pytest.fixture
def guard_home(tmp_path):
    """The user-level config directory (SESSION_GUARD_HOME), created on demand."""
    home = tmp_path / "guard-home"
    home.mkdir(exist_ok=True)
    return home

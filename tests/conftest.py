"""Pytest configuration and fixtures for gitplus tests."""

import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

from gitplus.core.log import ConsoleSink, setup_logger


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure console-only logging for the test session.

    Debug output is visible on failures and nothing is sent to
    logfire.dev or an OTLP collector.
    """
    test_log_root = Path(tempfile.gettempdir()) / "gitplus-tests"
    setup_logger(
        log_root=test_log_root,
        session="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture(scope="session")
def test_config():
    """Configuration loaded the way the CLI loads it.

    sys.argv is replaced while loading so pytest's own arguments are
    not mistaken for --include flags.
    """
    from gitplus.core.config import State

    old_argv = sys.argv
    sys.argv = ['gitplus']
    try:
        state = State()
        return state.config
    finally:
        sys.argv = old_argv
        # Loading State reconfigures the global logger
        setup_logger(
            log_root=Path(tempfile.gettempdir()) / "gitplus-tests",
            session="test",
            console=ConsoleSink(level="debug"),
        )


def git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run git directly, bypassing gitplus, to arrange test repositories."""
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=check,
        capture_output=True,
        text=True,
    )


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "commit.gpgsign", "false")
    git(path, "config", "merge.conflictStyle", "merge")
    return path


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def git_repo(tmp_path):
    """Repository on main with one commit."""
    repo = init_repo(tmp_path / "repo")
    commit_file(repo, "README.md", "# test\n", "initial commit")
    return repo


@pytest.fixture
def conflict_repo(git_repo):
    """Repository in the middle of a merge with app.py conflicted."""
    commit_file(
        git_repo, "app.py", "def greet():\n    return 'hello'\n", "add app"
    )
    git(git_repo, "checkout", "-q", "-b", "feature")
    commit_file(
        git_repo, "app.py", "def greet():\n    return 'hi there'\n",
        "change greeting on feature",
    )
    git(git_repo, "checkout", "-q", "main")
    commit_file(
        git_repo, "app.py", "def greet():\n    return 'hello world'\n",
        "change greeting on main",
    )
    result = git(git_repo, "merge", "feature", check=False)
    assert result.returncode != 0, "merge was expected to conflict"
    return git_repo


@pytest.fixture
def run_git():
    """The git helper, for tests that arrange repositories themselves."""
    return git


@pytest.fixture
def repo_factory(tmp_path):
    """Create extra repositories: repo_factory("name") -> Path."""
    def make(name: str) -> Path:
        return init_repo(tmp_path / name)
    return make


@pytest.fixture
def make_state(monkeypatch):
    """Build a State from config overrides, as the CLI would.

    make_state(repository={"workdir": path}) -> State
    """
    from gitplus.core.config import State

    monkeypatch.setattr(sys, "argv", ["gitplus"])

    def make(**config) -> "State":
        return State(config=config)

    yield make

    setup_logger(
        log_root=Path(tempfile.gettempdir()) / "gitplus-tests",
        session="test",
        console=ConsoleSink(level="debug"),
    )

"""Tests for the mutating repository operations."""

import os
import stat

import pytest

from gitplus.core.errors import SecurityViolation, ValidationError
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.operations import GitOperations
from gitplus.git.repository import RepositoryHandle


def test_write_file_keeps_mode_and_leaves_no_temp_file(git_repo):
    script = git_repo / "run.sh"
    script.write_text("#!/bin/sh\n")
    os.chmod(script, 0o755)
    ops = GitOperations(RepositoryHandle(git_repo))

    ops.write_file("run.sh", "#!/bin/sh\necho hi\n")

    assert script.read_text() == "#!/bin/sh\necho hi\n"
    assert stat.S_IMODE(script.stat().st_mode) == 0o755
    assert not [p for p in git_repo.iterdir() if p.name.endswith(".gitplus")]


def test_write_file_creates_parent_directories(git_repo):
    ops = GitOperations(RepositoryHandle(git_repo))

    target = ops.write_file("pkg/new.py", "x = 1\n")

    assert target == git_repo.resolve() / "pkg" / "new.py"
    assert target.read_text() == "x = 1\n"


@pytest.mark.parametrize("path,error", [
    ("../outside.txt", ValidationError),
    ("/etc/passwd", SecurityViolation),
])
def test_write_file_refuses_paths_outside_repository(git_repo, path, error):
    ops = GitOperations(RepositoryHandle(git_repo))
    with pytest.raises(error):
        ops.write_file(path, "nope\n")


def test_take_side_rejects_unknown_side(conflict_repo):
    ops = GitOperations(RepositoryHandle(conflict_repo))
    with pytest.raises(ValueError):
        ops.take_side("app.py", "both")


def test_abort_merge_restores_clean_tree(conflict_repo):
    handle = RepositoryHandle(conflict_repo)

    GitOperations(handle).abort_merge()

    inspector = RepositoryInspector(handle)
    assert not inspector.is_merge_in_progress()
    assert not inspector.get_status().is_dirty
    assert "hello world" in (conflict_repo / "app.py").read_text()


def test_conclude_merge_after_staging(conflict_repo, run_git):
    handle = RepositoryHandle(conflict_repo)
    ops = GitOperations(handle)
    ops.write_file("app.py", "def greet():\n    return 'hello there'\n")
    ops.stage(["app.py"])

    sha = ops.conclude_merge()

    assert sha == run_git(conflict_repo, "rev-parse", "HEAD").stdout.strip()
    assert not RepositoryInspector(handle).is_merge_in_progress()

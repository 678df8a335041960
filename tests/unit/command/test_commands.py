"""Tests for the status and check commands and CLI dispatch."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from pydantic_settings import CliApp

from gitplus.cli import CliState
from gitplus.command.status import StatusCommand
from gitplus.command.validate import ValidateCommand
from gitplus.core.errors import ExecError
from gitplus.git.inspector import RepositoryInspector


def run(command, state) -> int:
    return asyncio.run(command.run_workflow(state))


def test_status_clean(git_repo, make_state, capsys):
    state = make_state(repository={"workdir": str(git_repo)})

    assert run(StatusCommand(), state) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["status"]["branch"] == "main"
    assert report["status"]["is_dirty"] is False
    assert report["sync"]["has_upstream"] is False
    assert report["operation"] is None


def test_status_during_merge(conflict_repo, make_state, capsys):
    state = make_state(repository={"workdir": str(conflict_repo)})

    assert run(StatusCommand(), state) == 1

    report = json.loads(capsys.readouterr().out)
    assert report["status"]["conflicted"] == ["app.py"]
    assert report["operation"] == "merge"


def test_status_detached_head(git_repo, make_state, run_git, capsys):
    run_git(git_repo, "checkout", "-q", "--detach")
    state = make_state(repository={"workdir": str(git_repo)})

    assert run(StatusCommand(), state) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["status"]["branch"] is None
    assert report["sync"] is None


def test_status_of_missing_directory(tmp_path, make_state):
    state = make_state(repository={"workdir": str(tmp_path / "nowhere")})
    assert run(StatusCommand(), state) == 2


def test_check_paths(git_repo, make_state, capsys):
    state = make_state(repository={"workdir": str(git_repo)})
    command = ValidateCommand(paths=["src/app.py", "../escape", "/etc/passwd"])

    assert run(command, state) == 1

    paths = json.loads(capsys.readouterr().out)["paths"]
    assert paths["src/app.py"]["is_valid"] is True
    assert paths["../escape"]["is_valid"] is False
    assert paths["/etc/passwd"]["is_valid"] is False


def test_check_healthy_repository(git_repo, make_state, capsys):
    state = make_state(repository={"workdir": str(git_repo)})

    assert run(ValidateCommand(), state) == 0

    report = json.loads(capsys.readouterr().out)["repository"]
    assert report["is_valid"] is True


def test_check_writes_audit_trail(git_repo, tmp_path, make_state, capsys):
    state = make_state(
        repository={"workdir": str(git_repo)},
        security={"audit": True},
        audit_root=str(tmp_path / "audit"),
    )

    run(ValidateCommand(paths=["../escape"]), state)

    [events_file] = (tmp_path / "audit").glob(
        "repo/validate-*/security-events.jsonl"
    )
    assert events_file.read_text()


def test_cli_dispatches_subcommand(git_repo, make_state, monkeypatch, capsys):
    """make_state patches sys.argv and restores the logger afterwards."""
    monkeypatch.setenv("GITPLUS_CONFIG__REPOSITORY__WORKDIR", str(git_repo))

    with pytest.raises(SystemExit) as excinfo:
        CliApp.run(CliState, cli_args=["status"])

    assert excinfo.value.code == 0
    assert json.loads(capsys.readouterr().out)["status"]["branch"] == "main"


@pytest.mark.parametrize("command", [StatusCommand(), ValidateCommand()])
def test_refusal_carries_recovery_advice(
    command, git_repo, make_state, monkeypatch
):
    def corrupt(self, *args, **kwargs):
        raise ExecError(
            "git status", "exit status 128", 128,
            stderr="fatal: index file corrupt\n",
        )

    monkeypatch.setattr(RepositoryInspector, "get_status", corrupt)
    monkeypatch.setattr(RepositoryInspector, "validate_repository", corrupt)
    recorder = MagicMock()
    monkeypatch.setattr(f"{type(command).__module__}.logger", recorder)
    state = make_state(repository={"workdir": str(git_repo)})

    assert run(command, state) == 2

    _, fields = recorder.error.call_args
    assert fields["category"] == "corrupt_index"
    assert fields["corruption"] is True
    assert "index" in fields["hint"]

"""Tests for git failure classification and recovery advice."""

import pytest

from gitplus.core.errors import CommandTimeout, ExecError, ValidationError
from gitplus.git.recovery import (
    ErrorCategory,
    Severity,
    advise,
    classify_git_error,
    refusal_fields,
)


@pytest.mark.parametrize("message,category", [
    (
        "fatal: Unable to create '/r/.git/index.lock': File exists.\n"
        "Another git process seems to be running in this repository",
        ErrorCategory.LOCK,
    ),
    ("error: bad signature 0x00000000\nfatal: index file corrupt",
     ErrorCategory.CORRUPT_INDEX),
    ("error: object file .git/objects/ab/cdef is empty\n"
     "fatal: loose object abcdef is corrupt", ErrorCategory.CORRUPT_OBJECT),
    ("fatal: bad object HEAD", ErrorCategory.CORRUPT_OBJECT),
    ("error: refs/heads/main: invalid ref", ErrorCategory.CORRUPT_REF),
    ("error: packfile .git/objects/pack/x.pack does not match index\n"
     "fatal: pack has bad object", ErrorCategory.CORRUPT_OBJECT),
    ("fatal: bad pack header", ErrorCategory.CORRUPT_PACK),
    ("Automatic merge failed; fix conflicts", ErrorCategory.MERGE_CONFLICT),
    ("error: could not apply 1a2b3c... rebase conflict",
     ErrorCategory.REBASE_CONFLICT),
    ("error: open(\"x\"): Permission denied", ErrorCategory.PERMISSION),
    ("fatal: write error: No space left on device", ErrorCategory.DISK_FULL),
    ("fatal: Authentication failed for 'https://x/'", ErrorCategory.REMOTE),
])
def test_classify_known_messages(message, category):
    assert classify_git_error(message).category is category


def test_lock_is_not_corruption():
    advice = classify_git_error("fatal: Unable to create '.git/index.lock'")

    assert not advice.is_corruption
    assert advice.severity is Severity.LOW
    assert any("index.lock" in fix for fix in advice.quick_fixes)


def test_object_corruption_warns_of_data_loss():
    advice = classify_git_error("fatal: bad object HEAD")

    assert advice.is_corruption
    assert advice.data_loss_risk
    assert advice.severity is Severity.HIGH


def test_unrecognized_corruption_wording():
    advice = classify_git_error("error: tree is broken")

    assert advice.category is ErrorCategory.UNKNOWN
    assert advice.is_corruption
    assert "fsck" in advice.hint


def test_unrecognized_message():
    advice = classify_git_error("fatal: something odd happened")

    assert advice.category is ErrorCategory.UNKNOWN
    assert not advice.is_corruption


def test_advise_reads_stderr_of_exec_errors():
    error = ExecError(
        "git status", "exit status 128", 128,
        stderr="fatal: index file corrupt\n",
    )

    assert advise(error).category is ErrorCategory.CORRUPT_INDEX


def test_advise_timeout_and_other_errors():
    assert advise(CommandTimeout("git status", 5)).category is (
        ErrorCategory.TIMEOUT
    )
    assert advise(ValidationError("empty", "path", "filepath")) is None


def test_refusal_fields():
    error = ExecError(
        "git status", "exit status 128", 128, stderr="fatal: bad object HEAD"
    )

    fields = refusal_fields(error)

    assert fields["reason"] == str(error)
    assert fields["category"] == "corrupt_object"
    assert fields["corruption"] is True
    assert refusal_fields(ValueError("plain")) == {"reason": "plain"}

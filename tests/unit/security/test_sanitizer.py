"""Tests for the argument sanitizer."""

import pytest

from gitplus.core.errors import ValidationError
from gitplus.security.sanitizer import (
    SHELL_METACHARACTERS,
    Context,
    PullRequestFields,
    is_valid,
    validate,
    validate_branch_name,
    validate_commit_message,
    validate_git_subcommand,
    validate_pr_number,
    validate_repo_slug,
    validate_sha,
)

ALL_CONTEXTS = list(Context)


@pytest.mark.parametrize("char", sorted(SHELL_METACHARACTERS))
@pytest.mark.parametrize("context", ALL_CONTEXTS)
def test_shell_metacharacters_rejected_in_every_context(char, context):
    """Metacharacters are refused wherever they appear."""
    with pytest.raises(ValidationError) as exc:
        validate(f"abc{char}def", context)
    assert exc.value.rule == "shell_metacharacter"


@pytest.mark.parametrize(
    "code", [*range(0x01, 0x09), *range(0x0e, 0x20), 0x7f]
)
@pytest.mark.parametrize("context", ALL_CONTEXTS)
def test_control_characters_rejected_in_every_context(code, context):
    with pytest.raises(ValidationError) as exc:
        validate(f"abc{chr(code)}def", context)
    assert exc.value.rule == "control_character"


def test_null_byte_has_its_own_rule():
    with pytest.raises(ValidationError) as exc:
        validate("abc\x00def", Context.ARGUMENT)
    assert exc.value.rule == "null_byte"


def test_commit_message_with_command_is_rejected():
    """A chained shell command is caught before any process starts."""
    with pytest.raises(ValidationError) as exc:
        validate_commit_message("feat: add login; rm -rf /")
    assert exc.value.rule == "shell_metacharacter"
    assert exc.value.field == "commit message"
    assert ";" in exc.value.detail


def test_error_names_rule_and_field_without_raw_value():
    with pytest.raises(ValidationError) as exc:
        validate("x\x1b[31m", Context.ARGUMENT, field="branch")
    message = str(exc.value)
    assert "branch" in message
    assert "control_character" in message
    assert "\x1b" not in message


def test_empty_values():
    with pytest.raises(ValidationError) as exc:
        validate("", Context.ARGUMENT)
    assert exc.value.rule == "empty"
    assert validate("", Context.MESSAGE, required=False) == ""


def test_whitespace_only_is_empty():
    with pytest.raises(ValidationError) as exc:
        validate("   ", Context.ARGUMENT)
    assert exc.value.rule == "empty"


def test_non_string_rejected():
    with pytest.raises(ValidationError) as exc:
        validate(42, Context.ARGUMENT)
    assert exc.value.rule == "type"


@pytest.mark.parametrize("context,limit", [
    (Context.COMMAND, 50),
    (Context.ARGUMENT, 255),
    (Context.FILEPATH, 4096),
    (Context.MESSAGE, 2048),
])
def test_max_length_per_context(context, limit):
    assert validate("a" * limit, context) == "a" * limit
    with pytest.raises(ValidationError) as exc:
        validate("a" * (limit + 1), context)
    assert exc.value.rule == "max_length"


def test_line_breaks_only_allowed_in_messages():
    assert validate("subject\n\nbody", Context.MESSAGE)
    with pytest.raises(ValidationError) as exc:
        validate("one\ntwo", Context.ARGUMENT)
    assert exc.value.rule == "line_break"


@pytest.mark.parametrize("path", ["../etc/passwd", "a/../../b", "a\\..\\b", ".."])
def test_traversal_rejected_for_paths(path):
    with pytest.raises(ValidationError) as exc:
        validate(path, Context.FILEPATH)
    assert exc.value.rule == "path_traversal"


def test_dots_inside_names_are_fine():
    assert validate("docs/v1..2-notes.md", Context.FILEPATH)
    assert validate("src/..hidden", Context.FILEPATH)


def test_leading_dash_rejected_for_arguments():
    with pytest.raises(ValidationError) as exc:
        validate("--upload-pack=evil", Context.ARGUMENT)
    assert exc.value.rule == "option_injection"


def test_is_valid():
    assert is_valid("feature/login", "argument")
    assert not is_valid("a|b", "argument")


def test_git_subcommand_allowlist():
    assert validate_git_subcommand("status") == "status"
    with pytest.raises(ValidationError) as exc:
        validate_git_subcommand("daemon")
    assert exc.value.rule == "allowlist"


@pytest.mark.parametrize("name", ["main", "feature/login", "release-1.2", "user/fix_3"])
def test_valid_branch_names(name):
    assert validate_branch_name(name) == name


@pytest.mark.parametrize("name", [
    "a..b", "a b", "a~1", "a^", "a:b", "a?", "a*", "a\\b", "a@{1}",
    "a//b", "a.", "a/", "a.lock", "/a", "@", ".hidden", "dir/.hidden",
])
def test_invalid_branch_names(name):
    with pytest.raises(ValidationError) as exc:
        validate_branch_name(name)
    assert exc.value.rule in ("ref_format", "shell_metacharacter")


def test_sha():
    assert validate_sha("ABCDEF1234") == "abcdef1234"
    with pytest.raises(ValidationError) as exc:
        validate_sha("xyz123")
    assert exc.value.rule == "sha_format"


def test_repo_slug():
    assert validate_repo_slug("owner/name") == "owner/name"
    for slug in ("owner", "owner/name/extra", "owner/name.git"):
        with pytest.raises(ValidationError):
            validate_repo_slug(slug)


def test_pr_number():
    assert validate_pr_number("42") == 42
    assert validate_pr_number(7) == 7
    for bad in ("0", "-1", "abc", True, None, "1e3"):
        with pytest.raises(ValidationError) as exc:
            validate_pr_number(bad)
        assert exc.value.rule == "pr_number"


def test_pull_request_fields():
    fields = PullRequestFields.build(
        "Add login page", head="feature/login", base="main",
        body="Adds the login page.\n\nCloses nothing.", labels=["ui"],
    )
    assert fields.head == "feature/login"
    assert fields.labels == ("ui",)

    with pytest.raises(ValidationError) as exc:
        PullRequestFields.build("Title", head="x; rm", base="main")
    assert exc.value.field == "head branch"


def test_tab_allowed_only_in_messages():
    assert validate("col1\tcol2", Context.MESSAGE)
    with pytest.raises(ValidationError) as exc:
        validate("a\tb", Context.FILEPATH)
    assert exc.value.rule == "control_character"


@pytest.mark.parametrize("char", ["\x0b", "\x0c"])
def test_vertical_tab_and_form_feed_allowed_only_in_messages(char):
    assert validate(f"page one{char}page two", Context.MESSAGE)
    for context in (Context.ARGUMENT, Context.FILEPATH, Context.COMMAND):
        with pytest.raises(ValidationError) as exc:
            validate(f"a{char}b", context)
        assert exc.value.rule == "control_character"

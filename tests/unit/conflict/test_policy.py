"""Tests for ResolutionPolicy and ResolutionApplier."""

import pytest

from gitplus.backend.response import ResolutionProposal
from gitplus.conflict.models import ConflictResolution, ResolvedFile, Strategy
from gitplus.conflict.policy import ResolutionApplier, ResolutionPolicy
from gitplus.core.config import ResolutionConfig, ResolutionMode
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.repository import RepositoryHandle

MERGED = "def greet():\n    return 'hello there'\n"


def make_proposal(
    confidence, strategy="auto", files=("app.py",), unresolved=()
):
    return ResolutionProposal.model_validate({
        "strategy": strategy,
        "confidence": confidence,
        "reasoning": "both sides change the greeting",
        "resolvedFiles": [
            {"path": path, "content": MERGED, "changes": "combined"}
            for path in files
        ],
        "unresolved": list(unresolved),
    })


@pytest.fixture
def policy():
    return ResolutionPolicy(ResolutionConfig())


# ============================================================
# POLICY
# ============================================================

def test_no_proposal_escalates(policy):
    decision = policy.decide(
        None, ["b.py", "a.py"], ResolutionMode.SMART, "backend timed out"
    )

    assert decision.strategy is Strategy.ESCALATE
    assert decision.confidence == 0
    assert decision.unresolved == ["a.py", "b.py"]
    assert decision.resolved_files == []
    assert "backend timed out" in decision.reasoning


def test_below_floor_escalates_in_every_mode(policy):
    for mode in ResolutionMode:
        decision = policy.decide(make_proposal(40), ["app.py"], mode)

        assert decision.strategy is Strategy.ESCALATE
        assert decision.confidence == 40
        assert decision.unresolved == ["app.py"]
        assert any("escalation floor" in w for w in decision.warnings)


@pytest.mark.parametrize("confidence", [0, 25, 49.9, 50, 70, 84, 84.99])
@pytest.mark.parametrize("strategy", ["auto", "manual", "escalate"])
def test_safe_mode_never_auto_below_threshold(policy, confidence, strategy):
    decision = policy.decide(
        make_proposal(confidence, strategy), ["app.py"], ResolutionMode.SAFE
    )
    assert decision.strategy is not Strategy.AUTO


def test_safe_mode_below_threshold_escalates(policy):
    decision = policy.decide(make_proposal(80), ["app.py"], ResolutionMode.SAFE)
    assert decision.strategy is Strategy.ESCALATE
    assert decision.warnings[-1] == (
        "Not applied: confidence 80 is below the safe threshold of 85"
    )


def test_smart_mode_below_threshold_is_manual(policy):
    decision = policy.decide(make_proposal(60), ["app.py"], ResolutionMode.SMART)

    assert decision.strategy is Strategy.MANUAL
    # The proposal is kept for a human to review, but nothing is resolved
    assert [f.path for f in decision.resolved_files] == ["app.py"]
    assert decision.unresolved == ["app.py"]


def test_review_mode_is_always_manual(policy):
    decision = policy.decide(
        make_proposal(99), ["app.py"], ResolutionMode.REVIEW
    )
    assert decision.strategy is Strategy.MANUAL
    assert not decision.fully_resolved


def test_backend_choice_is_kept(policy):
    decision = policy.decide(
        make_proposal(95, "manual"), ["app.py"], ResolutionMode.SMART
    )
    assert decision.strategy is Strategy.MANUAL


@pytest.mark.parametrize("mode,confidence", [
    (ResolutionMode.SMART, 70),
    (ResolutionMode.SAFE, 85),
    (ResolutionMode.SAFE, 100),
])
def test_auto_at_or_above_threshold(policy, mode, confidence):
    decision = policy.decide(make_proposal(confidence), ["app.py"], mode)

    assert decision.strategy is Strategy.AUTO
    assert decision.unresolved == []
    assert decision.fully_resolved


def test_auto_ignores_files_outside_conflict_set(policy):
    proposal = make_proposal(95, files=("app.py", "setup.py", "lib.py"),
                             unresolved=("lib.py",))

    decision = policy.decide(
        proposal, ["app.py", "lib.py"], ResolutionMode.SMART
    )

    assert [f.path for f in decision.resolved_files] == ["app.py"]
    assert decision.unresolved == ["lib.py"]
    assert any("outside the conflict set: setup.py" in w
               for w in decision.warnings)
    assert any("both resolved and unresolved: lib.py" in w
               for w in decision.warnings)


def test_mode_defaults_to_config():
    policy = ResolutionPolicy(ResolutionConfig(mode=ResolutionMode.REVIEW))
    decision = policy.decide(make_proposal(99), ["app.py"])
    assert decision.mode is ResolutionMode.REVIEW
    assert decision.strategy is Strategy.MANUAL


def test_thresholds(policy):
    assert policy.threshold(ResolutionMode.SMART) == 70
    assert policy.threshold(ResolutionMode.SAFE) == 85
    assert policy.threshold(ResolutionMode.REVIEW) is None


# ============================================================
# APPLIER
# ============================================================

def auto_resolution(*files: ResolvedFile) -> ConflictResolution:
    return ConflictResolution(
        strategy=Strategy.AUTO,
        confidence=95,
        reasoning="test",
        resolved_files=list(files),
    )


def test_applier_writes_and_stages(conflict_repo):
    handle = RepositoryHandle(conflict_repo)
    applier = ResolutionApplier(handle)

    result = applier.apply(
        auto_resolution(ResolvedFile(path="app.py", content=MERGED))
    )

    assert result.strategy is Strategy.AUTO
    assert result.applied == ["app.py"]
    assert result.unresolved == []
    assert (conflict_repo / "app.py").read_text() == MERGED
    assert RepositoryInspector(handle).get_conflicted_files() == []


def test_applier_refuses_unsafe_path(conflict_repo, tmp_path):
    applier = ResolutionApplier(RepositoryHandle(conflict_repo))

    result = applier.apply(auto_resolution(
        ResolvedFile(path="../escaped.py", content=MERGED)
    ))

    assert result.strategy is Strategy.ESCALATE
    assert result.applied == []
    assert result.unresolved == ["../escaped.py"]
    assert not (tmp_path / "escaped.py").exists()


def test_applier_refuses_bad_content_but_applies_the_rest(conflict_repo, run_git):
    handle = RepositoryHandle(conflict_repo)
    applier = ResolutionApplier(handle)

    result = applier.apply(auto_resolution(
        ResolvedFile(path="app.py", content=MERGED),
        ResolvedFile(path="README.md", content="# merged\n"),
        ResolvedFile(path="other.py", content="<<<<<<< HEAD\n"),
    ))

    assert result.strategy is Strategy.AUTO
    assert result.applied == ["app.py"]
    assert result.unresolved == ["README.md", "other.py"]
    assert any("no longer conflicted" in w for w in result.warnings)
    # README.md was never conflicted, so it is left untouched
    assert (conflict_repo / "README.md").read_text() == "# test\n"


def test_applier_rejects_syntax_errors(conflict_repo):
    applier = ResolutionApplier(RepositoryHandle(conflict_repo))

    result = applier.apply(auto_resolution(
        ResolvedFile(path="app.py", content="def greet(:\n")
    ))

    assert result.strategy is Strategy.ESCALATE
    assert "Python syntax error" in result.warnings[-1]
    assert "<<<<<<<" in (conflict_repo / "app.py").read_text()


def test_applier_leaves_held_decisions_alone(conflict_repo):
    applier = ResolutionApplier(RepositoryHandle(conflict_repo))
    held = ConflictResolution(
        strategy=Strategy.MANUAL,
        confidence=90,
        resolved_files=[ResolvedFile(path="app.py", content=MERGED)],
        unresolved=["app.py"],
    )

    assert applier.apply(held) is held
    assert "<<<<<<<" in (conflict_repo / "app.py").read_text()


@pytest.mark.parametrize("side,expected", [
    ("ours", "hello world"),
    ("theirs", "hi there"),
])
def test_take_side(conflict_repo, side, expected):
    handle = RepositoryHandle(conflict_repo)
    applier = ResolutionApplier(handle)

    result = applier.take_side(["app.py"], side)

    assert result.strategy is Strategy.AUTO
    assert result.confidence == 100
    assert result.applied == ["app.py"]
    assert expected in (conflict_repo / "app.py").read_text()
    assert RepositoryInspector(handle).get_conflicted_files() == []


def test_take_side_on_clean_file(git_repo):
    applier = ResolutionApplier(RepositoryHandle(git_repo))

    result = applier.take_side(["README.md"], "ours")

    assert result.strategy is Strategy.ESCALATE
    assert result.unresolved == ["README.md"]


def test_applier_survives_content_too_deep_to_compile(conflict_repo):
    applier = ResolutionApplier(RepositoryHandle(conflict_repo))

    result = applier.apply(auto_resolution(
        ResolvedFile(path="app.py", content="x = 1" + "+1" * 24000)
    ))

    assert result.strategy is Strategy.ESCALATE
    assert result.unresolved == ["app.py"]
    assert result.applied == []
    assert "<<<<<<<" in (conflict_repo / "app.py").read_text()

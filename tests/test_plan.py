from collections import Counter

import pytest

from conftest import make_commit, make_commits
from gitcraft.errors import ValidationError
from gitcraft.model import (
    DiffLine,
    Drop,
    Edit,
    Fixup,
    Hunk,
    LineKind,
    Pick,
    Reword,
    Split,
    SplitGroup,
    Squash,
)
from gitcraft.plan import CraftPlan


def _hunks(count: int) -> list[Hunk]:
    return [
        Hunk(
            file_path="x",
            header=f"@@ -{n * 10 + 1} +{n * 10 + 1} @@",
            lines=(DiffLine(kind=LineKind.ADDED, text=str(n)),),
            old_start=n * 10 + 1,
            new_start=n * 10 + 1,
        )
        for n in range(count)
    ]


@pytest.fixture
def plan() -> CraftPlan:
    return CraftPlan.start(make_commits(4))


def test_start_picks_every_commit(plan):
    assert [entry.original_index for entry in plan.entries] == [0, 1, 2, 3]
    assert not plan.has_changes()
    assert plan.action_count == 0


def test_one_entry_per_commit_is_enforced(plan):
    with pytest.raises(ValueError):
        CraftPlan(commits=plan.commits, entries=plan.entries[:2])


def test_self_squash_is_rejected(plan):
    with pytest.raises(ValidationError):
        plan.assign(1, Squash(into_index=1))
    with pytest.raises(ValidationError):
        plan.assign(1, Fixup(into_index=1))
    assert plan.entry_for(1).is_pick


def test_squash_cycles_are_rejected(plan):
    plan.assign(0, Squash(into_index=1))
    with pytest.raises(ValidationError):
        plan.assign(1, Fixup(into_index=0))
    assert plan.entry_for(1).is_pick


def test_squash_targets_cannot_be_dropped(plan):
    plan.assign(0, Fixup(into_index=1))
    with pytest.raises(ValidationError):
        plan.assign(1, Drop())

    plan.assign(2, Drop())
    with pytest.raises(ValidationError):
        plan.assign(3, Squash(into_index=2))


def test_out_of_range_target_is_rejected(plan):
    with pytest.raises(ValidationError):
        plan.assign(0, Squash(into_index=9))


def test_reassign_replaces(plan):
    plan.assign(2, Drop())
    plan.assign(2, Reword(message="fix"))
    plan.assign(2, Edit())
    assert plan.entry_for(2).action == Edit()
    assert plan.action_count == 1


def test_swapping_preserves_entries(plan):
    plan.swap(0, 1)
    plan.swap(2, 3)
    plan.swap(1, 2)

    assert Counter(entry.original_index for entry in plan.entries) == Counter(range(4))
    assert len(plan) == 4
    assert plan.reordered
    assert plan.has_changes()


def test_replay_order_is_oldest_first(plan):
    plan.assign(1, Reword(message="fix: b"))
    assert [entry.original_index for entry in plan.replay_order()] == [3, 2, 1, 0]


def test_squash_sources_follow_their_target(plan):
    # both newer commits fold into the oldest one, in their original order
    plan.assign(0, Squash(into_index=3))
    plan.assign(1, Fixup(into_index=0))

    order = [entry.original_index for entry in plan.replay_order()]

    assert order == [3, 1, 0, 2]
    assert plan.touched_indices() == {0, 1, 2, 3}


def test_touched_indices(plan):
    plan.assign(1, Fixup(into_index=2))
    assert plan.touched_indices() == {1, 2}

    plan.reset(1)
    plan.swap(0, 1)
    assert plan.touched_indices() == {0, 1}


def test_validate_rejects_merges_in_range():
    commits = make_commits(3)
    commits[1] = commits[1].model_copy(update={"parents": ("a" * 40, "b" * 40)})
    plan = CraftPlan.start(commits)
    plan.assign(0, Drop())

    with pytest.raises(ValidationError, match="merge"):
        plan.validate()


def test_validate_split_needs_cached_hunks(plan):
    group = SplitGroup(hunk_indices=(0,), message="one")
    plan.assign(1, Split(groups=(group,)))
    with pytest.raises(ValidationError, match="no hunks cached"):
        plan.validate()

    plan.hunk_cache[1] = _hunks(2)
    plan.validate()
    assert plan.unassigned_hunks(1) == [1]


def test_validate_split_rejects_duplicates_and_missing_hunks(plan):
    plan.hunk_cache[1] = _hunks(2)
    plan.assign(
        1,
        Split(
            groups=(
                SplitGroup(hunk_indices=(0,), message="a"),
                SplitGroup(hunk_indices=(0, 1), message="b"),
            )
        ),
    )
    with pytest.raises(ValidationError, match="more than one group"):
        plan.validate()

    plan.assign(1, Split(groups=(SplitGroup(hunk_indices=(5,), message="a"),)))
    with pytest.raises(ValidationError, match="missing hunk"):
        plan.validate()


def test_root_commit_cannot_be_split():
    plan = CraftPlan.start([make_commit(0), make_commit(1, parents=())])
    plan.hunk_cache[1] = _hunks(1)
    plan.assign(1, Split(groups=(SplitGroup(hunk_indices=(0,), message="a"),)))

    with pytest.raises(ValidationError, match="root"):
        plan.validate()


def test_reset_returns_to_pick(plan):
    plan.assign(3, Drop())
    plan.reset(3)
    assert plan.entry_for(3).action == Pick()


@pytest.mark.parametrize(
    "later",
    [
        Reword(message="fix"),
        Squash(into_index=2),
        Split(groups=(SplitGroup(hunk_indices=(0,), message="a"),)),
    ],
    ids=["reword", "squash", "split"],
)
def test_scripted_steps_cannot_follow_an_edit_stop(plan, later):
    plan.hunk_cache[1] = _hunks(1)
    plan.assign(2, Edit())
    plan.assign(1, later)

    with pytest.raises(ValidationError, match="after the edit stop"):
        plan.validate()


def test_edit_after_scripted_steps_and_fixups_is_fine(plan):
    plan.assign(3, Reword(message="fix"))
    plan.assign(2, Edit())
    plan.assign(1, Fixup(into_index=2))
    plan.assign(0, Drop())

    plan.validate()

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from conftest import make_commit
from gitcraft.model import (
    DiffLine,
    Drop,
    LineKind,
    Pick,
    RebaseAction,
    Reword,
    Split,
    SplitGroup,
    Squash,
    TodoEntry,
    format_relative_time,
)


def test_reassigning_replaces_the_action():
    entry = TodoEntry(original_index=2)
    assert entry.is_pick

    entry.action = Drop()
    entry.action = Reword(message="fix: b")

    assert entry.action == Reword(message="fix: b")
    assert entry.into_index is None


def test_action_union_is_tagged_by_kind():
    adapter = TypeAdapter(RebaseAction)

    action = adapter.validate_python({"kind": "squash", "into_index": 3})

    assert isinstance(action, Squash)
    assert action.into_index == 3
    assert action.message is None


def test_todo_keywords():
    group = SplitGroup(hunk_indices=(0,), message="part")
    assert Pick.keyword == "pick"
    assert Split(groups=(group,)).keyword == "edit"
    assert Squash(into_index=0).keyword == "squash"


def test_empty_split_and_reword_are_rejected():
    with pytest.raises(PydanticValidationError):
        Split(groups=())
    with pytest.raises(PydanticValidationError):
        SplitGroup(hunk_indices=(), message="x")
    with pytest.raises(PydanticValidationError):
        Reword(message="")


def test_diff_line_keeps_missing_newline_marker():
    line = DiffLine(kind=LineKind.ADDED, text="last", no_newline=True)
    assert line.render() == "+last\n\\ No newline at end of file\n"


def test_commit_descriptor_shape():
    root = make_commit(0, parents=())
    merge = make_commit(1, parents=("a" * 40, "b" * 40))
    assert root.is_root and not root.is_merge
    assert merge.is_merge
    assert root.model_copy(update={"message": ""}).full_message == root.summary


@pytest.mark.parametrize(
    "age, expected",
    [
        (timedelta(seconds=20), "now"),
        (timedelta(minutes=5), "5m"),
        (timedelta(hours=3), "3h"),
        (timedelta(days=2), "2d"),
        (timedelta(days=14), "2w"),
        (timedelta(days=90), "3mo"),
    ],
)
def test_format_relative_time(age, expected):
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert format_relative_time(now - age, now) == expected

import pytest

from conftest import make_commits
from gitcraft.errors import CraftError, RepositoryStateError
from gitcraft.reword import (
    edit_with_editor,
    parse_selection,
    pick_commits,
    run_reword,
    select_commits,
)


def answers(*replies: str):
    """A ``read`` stand-in that replays ``replies`` in order."""
    queue = list(replies)

    def read(prompt: str) -> str:
        return queue.pop(0)

    return read


def _with_merge(count: int, position: int):
    commits = make_commits(count)
    commits[position] = commits[position].model_copy(
        update={"parents": ("a" * 40, "b" * 40)}
    )
    return commits


@pytest.mark.parametrize(
    "text, expected",
    [
        ("3", [2]),
        ("1-3", [0, 1, 2]),
        ("3-2", [1, 2]),
        ("1, 3", [0, 2]),
        ("0", None),
        ("4", None),
        ("x", None),
        ("1-2-3", None),
    ],
)
def test_parse_selection(text, expected):
    assert parse_selection(text, 3) == expected


def test_select_all_skips_merges():
    commits = _with_merge(3, 1)
    assert select_commits(commits, select_all=True) == [0, 2]


def test_select_last_is_clamped():
    commits = make_commits(3)
    assert select_commits(commits, last=2) == [0, 1]
    assert select_commits(commits, last=10) == [0, 1, 2]


def test_picker_toggles_until_confirmed(capsys):
    commits = _with_merge(3, 2)

    chosen = pick_commits(commits, answers("1-2", "2", "bogus", "3", ""))

    assert chosen == [0]
    output = capsys.readouterr().out
    assert "invalid input" in output
    assert "commit 3 is a merge" in output


def test_picker_all_and_none():
    commits = _with_merge(3, 0)
    assert pick_commits(commits, answers("a", "")) == [1, 2]
    assert pick_commits(commits, answers("a", "n", "")) == []


def test_editor_result(tmp_path):
    writer = "sh -c 'printf \"new message\\n\" > \"$1\"' sh"
    assert edit_with_editor("old", writer) == "new message"
    assert edit_with_editor("old", "true") is None


def test_failing_editor_raises():
    with pytest.raises(CraftError, match="status 1"):
        edit_with_editor("old", "false")


def test_reword_newest(linear, capsys):
    reworded = run_reword(linear.repo, 3, last=1, read=answers("fix: c"))

    assert reworded == 1
    assert linear.subjects() == ["fix: c", "B", "A"]
    assert "done: reworded 1 commit(s)" in capsys.readouterr().out


def test_reword_picked_commit(linear):
    run_reword(linear.repo, 3, read=answers("2", "", "fix: b"))
    assert linear.subjects() == ["C", "fix: b", "A"]


def test_reword_with_no_change_leaves_history(linear, capsys):
    before = linear.head()

    assert run_reword(linear.repo, 3, last=2, read=answers("", "C")) == 0

    assert linear.head() == before
    assert "no messages changed" in capsys.readouterr().out


def test_nothing_selected(linear, capsys):
    assert run_reword(linear.repo, 3, read=answers("")) == 0
    assert "no commits selected" in capsys.readouterr().out


def test_pushed_commits_need_confirmation(linear, tmp_path, capsys):
    remote = tmp_path / "remote.git"
    linear.git("init", "-q", "--bare", str(remote))
    linear.git("remote", "add", "origin", str(remote))
    linear.git("push", "-q", "-u", "origin", "main")
    before = linear.head()

    assert run_reword(linear.repo, 3, last=1, read=answers("fix: c", "n")) == 0
    assert linear.head() == before
    assert "cancelled" in capsys.readouterr().out

    assert run_reword(linear.repo, 3, last=1, read=answers("fix: c", "y")) == 1
    assert linear.subjects()[0] == "fix: c"


def test_dirty_tree_is_refused(linear):
    linear.write("a.txt", "changed\n")
    with pytest.raises(RepositoryStateError, match="dirty"):
        run_reword(linear.repo, 3, last=1, read=answers("x"))


def test_reword_to_an_issue_reference(linear):
    run_reword(linear.repo, 3, last=1, read=answers("#7 fix: c"))
    assert linear.subjects()[0] == "#7 fix: c"


def test_merge_inside_the_selected_window_is_refused(merged):
    before = merged.head()

    with pytest.raises(RepositoryStateError, match="merge"):
        run_reword(merged.repo, 10, select_all=True, read=answers())

    assert merged.head() == before
    assert run_reword(merged.repo, 10, last=1, read=answers("fix: d")) == 1
    assert merged.subjects()[0] == "fix: d"

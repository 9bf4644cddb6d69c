"""Reword commit messages without the full-screen planner."""

import shlex
import subprocess
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path

from git import Repo
from loguru import logger

from .errors import CraftError
from .get_commits import load_commits, refuse_merges, validate_state
from .guard import warn_pushed_commits
from .model import CommitDescriptor, Reword, format_relative_time
from .plan import CraftPlan
from .rebase_manager import GitRebaseManager

Reader = Callable[[str], str]


def parse_selection(text: str, maximum: int) -> list[int] | None:
    """
    Parse ``3``, ``1-5`` or ``1,3,5`` (one-based) into zero-based indices.

    Returns None when any part is malformed or out of range.
    """
    indices: list[int] = []
    for part in text.split(","):
        part = part.strip()
        try:
            if "-" in part:
                low, high = (int(bound) for bound in part.split("-"))
            else:
                low = high = int(part)
        except ValueError:
            return None
        low, high = min(low, high), max(low, high)
        if low < 1 or high > maximum:
            return None
        indices.extend(range(low - 1, high))
    return indices


def _without_merges(
    commits: Sequence[CommitDescriptor], indices: list[int]
) -> list[int]:
    kept = [index for index in indices if not commits[index].is_merge]
    if skipped := len(indices) - len(kept):
        logger.warning(f"Skipping {skipped} merge commit(s)")
    return sorted(kept)


def pick_commits(commits: Sequence[CommitDescriptor], read: Reader = input) -> list[int]:
    """Numbered picker; toggles until an empty line confirms."""
    print("\nSELECT COMMITS TO REWORD")
    print("-" * 60)
    for number, commit in enumerate(commits, start=1):
        merge = " (merge)" if commit.is_merge else ""
        print(
            f"  {number:>3} {commit.short_sha} {commit.summary} "
            f"{format_relative_time(commit.timestamp)}{merge}"
        )
    print("-" * 60)
    print("  toggle: 1, 1-5, 1,3,5 | a=all n=none Enter=confirm")

    selected = [False] * len(commits)
    while True:
        if any(selected):
            chosen = [str(index + 1) for index, flag in enumerate(selected) if flag]
            print(f"  [{len(chosen)}] selected: {', '.join(chosen)}")
        answer = read("  > ").strip()
        if not answer:
            break
        if answer == "a":
            selected = [not commit.is_merge for commit in commits]
        elif answer == "n":
            selected = [False] * len(commits)
        elif (indices := parse_selection(answer, len(commits))) is None:
            print("  invalid input")
        else:
            for index in indices:
                if commits[index].is_merge:
                    print(f"  commit {index + 1} is a merge, skipping")
                else:
                    selected[index] = not selected[index]
    return [index for index, flag in enumerate(selected) if flag]


def select_commits(
    commits: Sequence[CommitDescriptor],
    last: int | None = None,
    select_all: bool = False,
    read: Reader = input,
) -> list[int]:
    if select_all:
        return _without_merges(commits, list(range(len(commits))))
    if last is not None:
        return _without_merges(commits, list(range(min(last, len(commits)))))
    return pick_commits(commits, read)


def edit_with_editor(current: str, editor: str) -> str | None:
    """
    Let the user edit ``current`` in ``editor``.

    Returns the new message, or None when it is empty or unchanged.
    """
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".txt", prefix="gitcraft-reword-", delete=False, encoding="utf-8"
    ) as message_file:
        message_file.write(current)
    path = Path(message_file.name)
    try:
        completed = subprocess.run([*shlex.split(editor), str(path)])
        if completed.returncode != 0:
            raise CraftError(f"editor exited with status {completed.returncode}")
        message = path.read_text(encoding="utf-8").strip()
    finally:
        path.unlink(missing_ok=True)

    if not message or message == current.strip():
        return None
    return message


def prompt_inline(current: str, editor: str, read: Reader = input) -> str | None:
    answer = read("  new message (Enter=keep, e=editor): ").strip()
    if not answer:
        return None
    if answer == "e":
        return edit_with_editor(current, editor)
    return answer if answer != current.strip() else None


def collect_new_messages(
    commits: Sequence[CommitDescriptor],
    selected: Sequence[int],
    use_editor: bool,
    editor: str,
    read: Reader = input,
) -> dict[int, str]:
    """Ask for new messages oldest first; unchanged ones are left out."""
    messages: dict[int, str] = {}
    for index in sorted(selected, reverse=True):
        commit = commits[index]
        print(
            f"\n  {commit.short_sha} {commit.summary} "
            f"{format_relative_time(commit.timestamp)}"
        )
        if use_editor:
            message = edit_with_editor(commit.full_message, editor)
        else:
            message = prompt_inline(commit.full_message, editor, read)
        if message:
            messages[index] = message
    return messages


def run_reword(
    repo: Repo,
    count: int,
    last: int | None = None,
    select_all: bool = False,
    use_editor: bool = False,
    editor: str = "vi",
    read: Reader = input,
) -> int:
    """Returns the number of commits reworded."""
    validate_state(repo)
    commits = load_commits(repo, count)

    selected = select_commits(commits, last=last, select_all=select_all, read=read)
    if not selected:
        print("no commits selected")
        return 0
    refuse_merges(commits[: max(selected) + 1])

    messages = collect_new_messages(commits, selected, use_editor, editor, read)
    if not messages:
        print("no messages changed")
        return 0

    plan = CraftPlan.start(commits[: max(messages) + 1])
    for index, message in messages.items():
        plan.assign(index, Reword(message=message))

    if warn_pushed_commits(repo, plan.commits, messages):
        answer = read("selected commits are already pushed, force-push needed. continue? [y/N] ")
        if answer.strip().lower() != "y":
            print("cancelled")
            return 0

    GitRebaseManager(repo).execute(plan)
    print(f"done: reworded {len(messages)} commit(s)")
    return len(messages)

"""
Compile a finished plan into the files git's rebase hooks consume.

Layout of the staging directory::

    sequence.json   seq-editor.sh
    counter msg_0 msg_1 ...   msg-editor.sh
    patches/patch_<commit>_<group>.patch   split-<sha>.sh
"""

import os
import shlex
import stat
import sys
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

from .errors import ScriptIOError
from .hooks import COUNTER_FILE, SequenceSpec, message_file
from .model import CommitDescriptor, Reword, Split, Squash, TodoEntry
from .patch import generate_patch_for_hunks
from .plan import CraftPlan

PACKAGE_ROOT = Path(__file__).resolve().parents[1]


class RebaseScripts(BaseModel):
    directory: Path
    sequence_editor: Path
    message_editor: Path
    messages: list[str] = Field(default_factory=list)
    split_recipes: dict[str, Path] = Field(default_factory=dict)

    def recipe_for(self, stopped_sha: str) -> Path | None:
        """Find the split recipe of the commit git stopped at."""
        for sha, recipe in self.split_recipes.items():
            if sha.startswith(stopped_sha) or stopped_sha.startswith(sha):
                return recipe
        return None

    def environment(self) -> dict[str, str]:
        """Variables that wire the hooks into ``git rebase``."""
        python_path = os.pathsep.join(
            filter(None, [str(PACKAGE_ROOT), os.environ.get("PYTHONPATH")])
        )
        return {
            "GIT_SEQUENCE_EDITOR": shlex.quote(str(self.sequence_editor)),
            "GIT_EDITOR": shlex.quote(str(self.message_editor)),
            "PYTHONPATH": python_path,
        }


def _write(path: Path, content: str, executable: bool = False) -> Path:
    try:
        path.write_text(content, encoding="utf-8")
        if executable:
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as e:
        raise ScriptIOError(f"cannot write {path}: {e}") from e
    return path


def _hook_wrapper(command: str, source: Path) -> str:
    return (
        "#!/bin/sh\n"
        f"exec {shlex.quote(sys.executable)} -m gitcraft.hooks {command} "
        f'{shlex.quote(str(source))} "$1"\n'
    )


def rebase_range(plan: CraftPlan) -> list[TodoEntry]:
    """Replay-ordered entries, or none when the plan changes nothing."""
    return plan.replay_order() if plan.has_changes() else []


def sequence_spec(plan: CraftPlan) -> SequenceSpec:
    replay = rebase_range(plan)
    return SequenceSpec(
        order=[plan.commit_of(entry).sha for entry in replay],
        actions={
            plan.commit_of(entry).sha: entry.action.keyword
            for entry in replay
            if not entry.is_pick
        },
    )


def _chain_message(plan: CraftPlan, head: TodoEntry, chain: list[TodoEntry]) -> str:
    explicit = [
        entry.action.message
        for entry in chain
        if isinstance(entry.action, Squash) and entry.action.message
    ]
    if explicit:
        return explicit[-1]
    match head.action:
        case Reword(message=message):
            return message
        case Split(groups=groups):
            return groups[-1].message
    return plan.commit_of(head).full_message


def message_schedule(plan: CraftPlan) -> list[str]:
    """
    One message per editor invocation git will make, in replay order.

    git opens the editor for every ``reword`` and once at the end of a
    squash chain holding at least one ``squash``; fixup-only chains keep
    the target's message without asking.
    """
    messages: list[str] = []
    replay = rebase_range(plan)
    position = 0
    while position < len(replay):
        head = replay[position]
        chain: list[TodoEntry] = []
        position += 1
        while position < len(replay) and replay[position].into_index is not None:
            chain.append(replay[position])
            position += 1

        if isinstance(head.action, Reword):
            messages.append(head.action.message)
        if any(isinstance(entry.action, Squash) for entry in chain):
            messages.append(_chain_message(plan, head, chain))
    return messages


def _author_environment(commit: CommitDescriptor) -> str:
    variables = {"GIT_AUTHOR_NAME": commit.author, "GIT_AUTHOR_EMAIL": commit.author_email}
    if commit.authored_at is not None:
        offset = commit.authored_at.strftime("%z") or "+0000"
        variables["GIT_AUTHOR_DATE"] = f"@{int(commit.authored_at.timestamp())} {offset}"
    return " ".join(
        f"{name}={shlex.quote(value)}" for name, value in variables.items() if value
    )


def write_split_recipe(plan: CraftPlan, entry: TodoEntry, directory: Path) -> Path:
    """Write the patches and shell recipe that split one stopped commit."""
    action = entry.action
    if not isinstance(action, Split):
        raise ValueError(f"entry {entry.original_index} is not a split")
    commit = plan.commit_of(entry)
    hunks = plan.hunk_cache[entry.original_index]
    patches = directory / "patches"
    try:
        patches.mkdir(exist_ok=True)
    except OSError as e:
        raise ScriptIOError(f"cannot create {patches}: {e}") from e

    author = _author_environment(commit)
    recipe = [
        "#!/bin/sh",
        f"# split {commit.short_sha} {commit.summary}",
        "set -e",
        "git reset -q --soft HEAD^",
        "git reset -q",
    ]
    for number, group in enumerate(action.groups):
        patch_path = patches / f"patch_{entry.original_index}_{number}.patch"
        _write(patch_path, generate_patch_for_hunks(hunks, group.hunk_indices))
        recipe.append(f"git apply --cached {shlex.quote(str(patch_path))}")
        recipe.append(
            f"{author} git commit -q --no-verify --cleanup=whitespace "
            f"-m {shlex.quote(group.message)}".lstrip()
        )

    dropped = plan.unassigned_hunks(entry.original_index)
    if dropped:
        logger.warning(
            f"{len(dropped)} unassigned hunk(s) of {commit.short_sha} "
            "will be dropped from history"
        )
    # discard whatever no group took; the tree was clean before the rebase
    recipe.append("git reset -q --hard HEAD")
    recipe.append("git clean -fdq")
    recipe.append("git -c commit.cleanup=whitespace rebase --continue")

    path = directory / f"split-{commit.short_sha}.sh"
    return _write(path, "\n".join(recipe) + "\n", executable=True)


def write_scripts(plan: CraftPlan, directory: Path) -> RebaseScripts:
    """
    Stage every hook script, message and patch for ``plan``.

    Raises:
        ScriptIOError: If any file cannot be written.
    """
    spec = sequence_spec(plan)
    spec_path = _write(directory / "sequence.json", spec.model_dump_json(indent=2))
    sequence_editor = _write(
        directory / "seq-editor.sh",
        _hook_wrapper("sequence", spec_path),
        executable=True,
    )

    messages = message_schedule(plan)
    _write(directory / COUNTER_FILE, "0")
    for index, message in enumerate(messages):
        _write(message_file(directory, index), message.rstrip("\n") + "\n")
    message_editor = _write(
        directory / "msg-editor.sh",
        _hook_wrapper("message", directory),
        executable=True,
    )

    split_recipes = {
        plan.commit_of(entry).sha: write_split_recipe(plan, entry, directory)
        for entry in rebase_range(plan)
        if isinstance(entry.action, Split)
    }

    logger.debug(
        f"Scripts staged in {directory}: {len(spec.order)} todo lines, "
        f"{len(messages)} messages, {len(split_recipes)} split recipes"
    )
    return RebaseScripts(
        directory=directory,
        sequence_editor=sequence_editor,
        message_editor=message_editor,
        messages=messages,
        split_recipes=split_recipes,
    )

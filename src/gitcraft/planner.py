"""
Interactive plan builder.

A small state machine with seven modes. The curses front end turns each
key press into a key name and hands it to ``PlanBuilder.handle_key``;
everything the screen shows is read back from the builder. Key names are
single characters plus ``up``, ``down``, ``enter``, ``esc``,
``backspace``, ``newline`` and ``cancel``.

The builder keeps three parallel lists in display order (newest first):
``commits``, ``plan.entries`` and ``selected``. Reordering swaps all
three together so an entry's ``original_index`` always travels with its
commit.
"""

from collections.abc import Callable

from loguru import logger
from pydantic import BaseModel, Field

from .errors import DiffParseError, ValidationError
from .model import (
    CommitDescriptor,
    Drop,
    Edit,
    Fixup,
    Hunk,
    Pick,
    RebaseAction,
    Reword,
    Split,
    SplitGroup,
    Squash,
    TodoEntry,
)
from .plan import CraftPlan

MAX_GROUP = 9

HunkLoader = Callable[[str], list[Hunk]]
PatchLoader = Callable[[str], str]


class CommitList(BaseModel):
    pass


class ActionMenu(BaseModel):
    pass


class RewordEdit(BaseModel):
    original_index: int
    buffer: str = ""


class SplitView(BaseModel):
    original_index: int
    hunks: list[Hunk]
    groups: list[int]
    cursor: int = 0
    active_group: int = 1
    names: dict[int, str] = Field(default_factory=dict)
    naming: int | None = None
    name_buffer: str = ""


class SquashTarget(BaseModel):
    source: int
    origin: int


class ReorderMode(BaseModel):
    saved_commits: list[CommitDescriptor]
    saved_entries: list[TodoEntry]
    saved_selected: list[bool]
    saved_cursor: int


class Preview(BaseModel):
    scroll: int = 0


Mode = CommitList | ActionMenu | RewordEdit | SplitView | SquashTarget | ReorderMode | Preview


class Execute(BaseModel):
    """The confirmed plan; split hunks travel in ``plan.hunk_cache``."""

    plan: CraftPlan


class Cancel(BaseModel):
    pass


Outcome = Execute | Cancel


def _is_text(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


def action_label(action: RebaseAction) -> str:
    match action:
        case Pick():
            return ""
        case Drop():
            return "DROP"
    return action.kind


class PlanBuilder:
    def __init__(
        self,
        commits: list[CommitDescriptor],
        hunk_loader: HunkLoader,
        patch_loader: PatchLoader,
        preselect: int = 0,
    ):
        self.plan = CraftPlan.start(commits)
        self.commits = list(commits)
        self.selected = [position < preselect for position in range(len(commits))]
        self.cursor = 0
        self.mode: Mode = CommitList()
        self.status = ""
        self.diff_text: str | None = None
        self.outcome: Outcome | None = None
        self._load_hunks = hunk_loader
        self._load_patch = patch_loader

    @property
    def done(self) -> bool:
        return self.outcome is not None

    @property
    def current(self) -> TodoEntry:
        return self.plan.entries[self.cursor]

    def handle_key(self, key: str) -> None:
        if key == "cancel":
            self.outcome = Cancel()
            return
        match self.mode:
            case CommitList():
                self._commit_list(key)
            case ActionMenu():
                self._action_menu(key)
            case RewordEdit() as mode:
                self._reword_edit(mode, key)
            case SplitView() as mode:
                self._split_view(mode, key)
            case SquashTarget() as mode:
                self._squash_target(mode, key)
            case ReorderMode() as mode:
                self._reorder(mode, key)
            case Preview() as mode:
                self._preview(mode, key)

    def _move(self, step: int) -> None:
        self.cursor = max(0, min(len(self.commits) - 1, self.cursor + step))

    # commit list

    def _commit_list(self, key: str) -> None:
        match key:
            case "j" | "down":
                self._move(1)
                self.diff_text = None
            case "k" | "up":
                self._move(-1)
                self.diff_text = None
            case " ":
                self.selected[self.cursor] = not self.selected[self.cursor]
            case "enter":
                self.mode = ActionMenu()
                self.status = "r=reword s=split q=squash f=fixup d=drop m=reorder e=edit x=reset"
            case "D":
                commit = self.commits[self.cursor]
                try:
                    self.diff_text = self._load_patch(commit.sha)
                except DiffParseError as e:
                    self.status = f"diff error: {e}"
            case "p":
                if self.plan.has_changes():
                    self.mode = Preview()
                else:
                    self.status = "no actions assigned yet"
            case "q" | "esc":
                self.outcome = Cancel()

    # action menu

    def _targets(self) -> list[int]:
        """Display positions an immediate action applies to."""
        chosen = [position for position, flag in enumerate(self.selected) if flag]
        return chosen or [self.cursor]

    def _apply_immediate(self, build: Callable[[int], RebaseAction | None]) -> None:
        applied: list[str] = []
        kind = ""
        for position in self._targets():
            entry = self.plan.entries[position]
            commit = self.commits[position]
            action = build(position)
            if action is None:
                continue
            try:
                self.plan.assign(entry.original_index, action)
            except ValidationError as e:
                self.status = str(e)
                logger.debug(f"Rejected {action.kind} on {commit.short_sha}: {e}")
                continue
            applied.append(commit.short_sha)
            kind = action.kind
        if applied:
            self.status = f"{kind} {', '.join(applied)}"
        self.selected = [False] * len(self.selected)
        self.mode = CommitList()

    def _fixup_for(self, position: int) -> RebaseAction | None:
        if position + 1 >= len(self.plan.entries):
            self.status = "no older commit to fix up into"
            return None
        return Fixup(into_index=self.plan.entries[position + 1].original_index)

    def _action_menu(self, key: str) -> None:
        match key:
            case "r":
                entry = self.current
                commit = self.commits[self.cursor]
                buffer = (
                    entry.action.message
                    if isinstance(entry.action, Reword)
                    else commit.full_message
                )
                self.mode = RewordEdit(original_index=entry.original_index, buffer=buffer)
                self.status = "editing message: Enter=save ^O=newline Esc=discard"
            case "s":
                self._open_split()
            case "q":
                self.mode = SquashTarget(
                    source=self.current.original_index, origin=self.cursor
                )
                self.status = "select target commit to squash into (j/k, Enter)"
            case "f":
                self._apply_immediate(self._fixup_for)
            case "d":
                self._apply_immediate(lambda position: Drop())
            case "e":
                self._apply_immediate(lambda position: Edit())
            case "x":
                self._apply_immediate(lambda position: Pick())
            case "m":
                self.mode = ReorderMode(
                    saved_commits=list(self.commits),
                    saved_entries=list(self.plan.entries),
                    saved_selected=list(self.selected),
                    saved_cursor=self.cursor,
                )
                self.status = "J/K=move commit j/k=nav Enter=keep Esc=restore"
            case "esc":
                self.mode = CommitList()
                self.status = ""

    # reword

    def _reword_edit(self, mode: RewordEdit, key: str) -> None:
        match key:
            case "enter":
                commit = self.plan.commits[mode.original_index]
                message = mode.buffer.strip()
                if message and message != commit.full_message.strip():
                    self.plan.assign(mode.original_index, Reword(message=message))
                    self.status = f"reword {commit.short_sha}"
                else:
                    self.status = "message unchanged"
                self.mode = CommitList()
            case "esc":
                self.status = "reword discarded"
                self.mode = CommitList()
            case "backspace":
                mode.buffer = mode.buffer[:-1]
            case "newline":
                mode.buffer += "\n"
            case _ if _is_text(key):
                mode.buffer += key

    # split

    def _open_split(self) -> None:
        entry = self.current
        commit = self.commits[self.cursor]
        self.mode = CommitList()
        if commit.is_root:
            self.status = "cannot split the root commit"
            return
        hunks = self.plan.hunk_cache.get(entry.original_index)
        if hunks is None:
            try:
                hunks = self._load_hunks(commit.sha)
            except DiffParseError as e:
                self.status = f"hunk parse error: {e}"
                return
        if not hunks:
            self.status = "no hunks to split"
            return

        groups = [0] * len(hunks)
        names: dict[int, str] = {}
        if isinstance(entry.action, Split):
            for number, group in enumerate(entry.action.groups, start=1):
                names[number] = group.message
                for index in group.hunk_indices:
                    groups[index] = number
        self.mode = SplitView(
            original_index=entry.original_index,
            hunks=hunks,
            groups=groups,
            names=names,
            active_group=max(groups, default=0) or 1,
        )
        self.status = "space=toggle 1-9=assign 0=unassign g=new group n=name Enter=done"

    def _split_view(self, mode: SplitView, key: str) -> None:
        if mode.naming is not None:
            self._name_group(mode, key)
            return
        match key:
            case "j" | "down":
                mode.cursor = min(mode.cursor + 1, len(mode.hunks) - 1)
            case "k" | "up":
                mode.cursor = max(mode.cursor - 1, 0)
            case " ":
                if mode.groups[mode.cursor] == mode.active_group:
                    mode.groups[mode.cursor] = 0
                else:
                    mode.groups[mode.cursor] = mode.active_group
            case "0":
                mode.groups[mode.cursor] = 0
            case _ if len(key) == 1 and key in "123456789":
                mode.active_group = int(key)
                mode.groups[mode.cursor] = mode.active_group
            case "g":
                fresh = max(mode.groups, default=0) + 1
                if fresh > MAX_GROUP:
                    self.status = f"at most {MAX_GROUP} groups"
                    return
                mode.active_group = fresh
                mode.groups[mode.cursor] = fresh
            case "n":
                group = mode.groups[mode.cursor]
                if group:
                    mode.naming = group
                    mode.name_buffer = mode.names.get(group, "")
                    self.status = f"message for group {group}: Enter=save Esc=discard"
                else:
                    self.status = "assign the hunk to a group first"
            case "enter":
                self._finalize_split(mode)
            case "esc":
                self.status = "split discarded"
                self.mode = CommitList()

    def _name_group(self, mode: SplitView, key: str) -> None:
        match key:
            case "enter":
                name = mode.name_buffer.strip()
                if name:
                    mode.names[mode.naming] = name
                else:
                    mode.names.pop(mode.naming, None)
                mode.naming = None
                self.status = ""
            case "esc":
                mode.naming = None
                self.status = ""
            case "backspace":
                mode.name_buffer = mode.name_buffer[:-1]
            case _ if _is_text(key):
                mode.name_buffer += key

    def _finalize_split(self, mode: SplitView) -> None:
        max_group = max(mode.groups, default=0)
        if max_group == 0:
            self.status = "no hunks assigned to groups"
            return

        groups = []
        for number in range(1, max_group + 1):
            indices = tuple(
                index for index, group in enumerate(mode.groups) if group == number
            )
            if indices:
                groups.append(
                    SplitGroup(
                        hunk_indices=indices,
                        message=mode.names.get(number) or f"split part {number}",
                    )
                )

        self.plan.hunk_cache[mode.original_index] = mode.hunks
        self.plan.assign(mode.original_index, Split(groups=tuple(groups)))
        commit = self.plan.commits[mode.original_index]
        self.status = f"split {commit.short_sha} into {len(groups)} parts"
        unassigned = mode.groups.count(0)
        if unassigned:
            self.status += f" ({unassigned} unassigned hunk(s) will be dropped)"
        self.mode = CommitList()

    # squash

    def _squash_target(self, mode: SquashTarget, key: str) -> None:
        match key:
            case "j" | "down":
                self._move(1)
            case "k" | "up":
                self._move(-1)
            case "enter":
                target = self.current.original_index
                source = self.plan.commits[mode.source]
                try:
                    self.plan.assign(mode.source, Squash(into_index=target))
                except ValidationError as e:
                    self.status = str(e)
                    return
                self.status = (
                    f"squash {source.short_sha} into {self.plan.commits[target].short_sha}"
                )
                self.cursor = mode.origin
                self.mode = CommitList()
            case "esc":
                self.cursor = mode.origin
                self.status = ""
                self.mode = CommitList()

    # reorder

    def _swap(self, a: int, b: int) -> None:
        self.commits[a], self.commits[b] = self.commits[b], self.commits[a]
        self.plan.swap(a, b)
        self.selected[a], self.selected[b] = self.selected[b], self.selected[a]

    def _reorder(self, mode: ReorderMode, key: str) -> None:
        match key:
            case "J":
                if self.cursor < len(self.commits) - 1:
                    self._swap(self.cursor, self.cursor + 1)
                    self.cursor += 1
            case "K":
                if self.cursor > 0:
                    self._swap(self.cursor, self.cursor - 1)
                    self.cursor -= 1
            case "j" | "down":
                self._move(1)
            case "k" | "up":
                self._move(-1)
            case "enter":
                self.status = "reorder applied"
                self.mode = CommitList()
            case "esc":
                self.commits = mode.saved_commits
                self.plan.entries = mode.saved_entries
                self.selected = mode.saved_selected
                self.cursor = mode.saved_cursor
                self.status = "reorder discarded"
                self.mode = CommitList()

    # preview

    def preview_lines(self) -> list[str]:
        lines = ["Rebase Plan:", ""]
        for entry, commit in zip(self.plan.entries, self.commits):
            detail = ""
            match entry.action:
                case Reword(message=message):
                    detail = f' -> "{message.splitlines()[0][:40]}"'
                case Squash(into_index=target) | Fixup(into_index=target):
                    detail = f" -> into {self.plan.commits[target].short_sha}"
                case Split(groups=groups):
                    detail = f" -> {len(groups)} parts"
            lines.append(
                f"{entry.action.kind:>7} {commit.short_sha} {commit.summary[:30]}{detail}"
            )
        if self.plan.reordered:
            lines += ["", "commits reordered"]
        lines += ["", "y/Enter=execute  Esc=back"]
        return lines

    def _preview(self, mode: Preview, key: str) -> None:
        match key:
            case "j" | "down":
                mode.scroll += 1
            case "k" | "up":
                mode.scroll = max(mode.scroll - 1, 0)
            case "y" | "enter":
                try:
                    self.plan.validate()
                except ValidationError as e:
                    self.status = str(e)
                    return
                self.outcome = Execute(plan=self.plan)
            case "esc" | "q":
                self.mode = CommitList()

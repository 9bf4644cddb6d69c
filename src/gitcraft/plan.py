"""
The plan model: one TodoEntry per loaded commit.

``commits`` is the immutable load-order list (index 0 is the branch tip)
and every ``TodoEntry.original_index`` points into it. ``entries`` is
kept in display order, newest first, so reordering moves entries while
their ``original_index`` travels with them.
"""

from collections import Counter

from pydantic import BaseModel, Field, model_validator

from .errors import ValidationError
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
    Squash,
    TodoEntry,
)


class CraftPlan(BaseModel):
    commits: tuple[CommitDescriptor, ...]
    entries: list[TodoEntry]
    hunk_cache: dict[int, list[Hunk]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_entry_per_commit(self) -> "CraftPlan":
        indices = sorted(entry.original_index for entry in self.entries)
        if indices != list(range(len(self.commits))):
            raise ValueError("plan needs exactly one entry per loaded commit")
        return self

    @classmethod
    def start(cls, commits: list[CommitDescriptor]) -> "CraftPlan":
        """A plan that picks every commit in load order."""
        return cls(
            commits=tuple(commits),
            entries=[TodoEntry(original_index=i) for i in range(len(commits))],
        )

    def __len__(self) -> int:
        return len(self.entries)

    def entry_for(self, original_index: int) -> TodoEntry:
        for entry in self.entries:
            if entry.original_index == original_index:
                return entry
        raise IndexError(f"no entry for commit {original_index}")

    def commit_of(self, entry: TodoEntry) -> CommitDescriptor:
        return self.commits[entry.original_index]

    def assign(self, original_index: int, action: RebaseAction) -> None:
        """
        Replace the action of one commit.

        Raises:
            ValidationError: If the action would break a plan invariant;
                the plan is left unchanged.
        """
        entry = self.entry_for(original_index)
        target = getattr(action, "into_index", None)
        if target is not None:
            if target == original_index:
                raise ValidationError(
                    f"cannot {action.keyword} "
                    f"{self.commits[original_index].short_sha} into itself"
                )
            if not 0 <= target < len(self.commits):
                raise ValidationError(f"no commit at position {target}")
            if isinstance(self.entry_for(target).action, Drop):
                raise ValidationError(
                    f"cannot {action.keyword} into dropped commit "
                    f"{self.commits[target].short_sha}"
                )
            if self._root_of(target, original_index) == original_index:
                raise ValidationError(
                    f"{action.keyword} would create a cycle through "
                    f"{self.commits[original_index].short_sha}"
                )
        if isinstance(action, Drop):
            sources = self.sources_of(original_index)
            if sources:
                raise ValidationError(
                    f"{self.commits[original_index].short_sha} is the squash "
                    f"target of {', '.join(self.commits[i].short_sha for i in sources)}"
                )
        entry.action = action

    def reset(self, original_index: int) -> None:
        self.entry_for(original_index).action = Pick()

    def swap(self, a: int, b: int) -> None:
        """Swap two display positions."""
        self.entries[a], self.entries[b] = self.entries[b], self.entries[a]

    def sources_of(self, original_index: int) -> list[int]:
        return [
            entry.original_index
            for entry in self.entries
            if entry.into_index == original_index
        ]

    def _root_of(self, original_index: int, start: int | None = None) -> int:
        """Follow squash/fixup targets down to the commit that absorbs them."""
        seen = {start} if start is not None else set()
        current = original_index
        while (target := self.entry_for(current).into_index) is not None:
            if current in seen:
                return current
            seen.add(current)
            current = target
        return current

    @property
    def action_count(self) -> int:
        return sum(1 for entry in self.entries if not entry.is_pick)

    @property
    def reordered(self) -> bool:
        return any(
            entry.original_index != position
            for position, entry in enumerate(self.entries)
        )

    def has_changes(self) -> bool:
        return self.action_count > 0 or self.reordered

    def replay_order(self) -> list[TodoEntry]:
        """
        Entries oldest first, the order git should replay them in.

        A squash or fixup entry is moved right after the commit that
        absorbs it, so git folds it into its target and not into
        whichever commit happens to precede it.
        """
        attached: dict[int, list[TodoEntry]] = {}
        heads: list[TodoEntry] = []
        for entry in reversed(self.entries):
            if entry.into_index is None:
                heads.append(entry)
            else:
                attached.setdefault(self._root_of(entry.original_index), []).append(
                    entry
                )
        order: list[TodoEntry] = []
        for head in heads:
            order.append(head)
            order.extend(attached.get(head.original_index, []))
        return order

    def touched_indices(self) -> set[int]:
        """Commits whose action, target role or replay position changes."""
        touched: set[int] = set()
        for entry in self.entries:
            if not entry.is_pick:
                touched.add(entry.original_index)
            if entry.into_index is not None:
                touched.add(entry.into_index)
        natural = list(range(len(self.commits) - 1, -1, -1))
        replayed = [entry.original_index for entry in self.replay_order()]
        touched.update(
            index for index, expected in zip(replayed, natural) if index != expected
        )
        return touched

    def validate(self) -> None:
        """
        Check the whole plan before any script is generated.

        Raises:
            ValidationError: On the first broken invariant.
        """
        for entry in self.entries:
            commit = self.commit_of(entry)
            match entry.action:
                case Squash(into_index=target) | Fixup(into_index=target):
                    if target == entry.original_index:
                        raise ValidationError(
                            f"cannot squash {commit.short_sha} into itself"
                        )
                    if not 0 <= target < len(self.commits):
                        raise ValidationError(f"no commit at position {target}")
                    if isinstance(self.entry_for(target).action, Drop):
                        raise ValidationError(
                            f"{commit.short_sha} targets a dropped commit"
                        )
                case Split(groups=groups):
                    self._validate_split(entry.original_index, groups)
                case Reword(message=message) if not message.strip():
                    raise ValidationError(f"empty message for {commit.short_sha}")

        for entry in self.entries:
            if entry.into_index is not None:
                root = self._root_of(entry.original_index)
                if self.entry_for(root).into_index is not None:
                    raise ValidationError(
                        f"squash cycle through {self.commit_of(entry).short_sha}"
                    )

        self._validate_after_edit()

        for commit in self.commits:
            if commit.is_merge:
                raise ValidationError(
                    f"cannot rewrite across merge commit {commit.short_sha}; "
                    "load fewer commits"
                )

    def _validate_after_edit(self) -> None:
        """Scripted steps cannot run once git has handed the rebase to the user."""
        stop: TodoEntry | None = None
        for entry in self.replay_order():
            match entry.action:
                case Edit() if stop is None:
                    stop = entry
                case Split() | Reword() | Squash() if stop is not None:
                    raise ValidationError(
                        f"cannot {entry.action.kind} {self.commit_of(entry).short_sha} "
                        f"after the edit stop at {self.commit_of(stop).short_sha}; "
                        "do it in a separate run"
                    )

    def _validate_split(self, original_index: int, groups) -> None:
        commit = self.commits[original_index]
        hunks = self.hunk_cache.get(original_index)
        if commit.is_root:
            raise ValidationError(
                f"cannot split root commit {commit.short_sha}"
            )
        if hunks is None:
            raise ValidationError(f"no hunks cached for split of {commit.short_sha}")
        assigned = Counter(index for group in groups for index in group.hunk_indices)
        if not assigned:
            raise ValidationError(f"split of {commit.short_sha} has no hunks")
        for index, count in assigned.items():
            if not 0 <= index < len(hunks):
                raise ValidationError(
                    f"split of {commit.short_sha} names missing hunk {index}"
                )
            if count > 1:
                raise ValidationError(
                    f"hunk {index} of {commit.short_sha} is in more than one group"
                )

    def unassigned_hunks(self, original_index: int) -> list[int]:
        action = self.entry_for(original_index).action
        hunks = self.hunk_cache.get(original_index, [])
        if not isinstance(action, Split):
            return []
        assigned = {index for group in action.groups for index in group.hunk_indices}
        return [index for index in range(len(hunks)) if index not in assigned]

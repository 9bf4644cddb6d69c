from datetime import datetime
from enum import StrEnum
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field


class CommitDescriptor(BaseModel):
    """A commit as it was when the history was loaded."""

    model_config = ConfigDict(frozen=True)

    sha: str = Field(..., min_length=7, max_length=64)
    short_sha: str = Field(..., min_length=4, max_length=64)
    summary: str
    message: str = ""
    author: str
    author_email: str = ""
    authored_at: datetime | None = None
    timestamp: datetime
    parents: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def full_message(self) -> str:
        return self.message.strip() or self.summary


class LineKind(StrEnum):
    """Prefix character of a line inside a unified diff hunk."""

    CONTEXT = " "
    ADDED = "+"
    REMOVED = "-"


class DiffLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LineKind
    text: str
    no_newline: bool = False

    def render(self) -> str:
        rendered = f"{self.kind.value}{self.text}\n"
        if self.no_newline:
            rendered += "\\ No newline at end of file\n"
        return rendered


class Hunk(BaseModel):
    """One hunk of a commit's diff, header kept verbatim."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    old_path: str | None = None
    change: Literal["add", "modify", "delete"] = "modify"
    old_mode: str | None = None
    new_mode: str | None = None
    header: str
    lines: tuple[DiffLine, ...] = ()
    old_start: int = Field(0, ge=0)
    old_count: int = Field(1, ge=0)
    new_start: int = Field(0, ge=0)
    new_count: int = Field(1, ge=0)

    @property
    def source_path(self) -> str:
        return self.old_path or self.file_path

    @property
    def added(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.ADDED)

    @property
    def removed(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.REMOVED)

    def summary(self) -> str:
        return f"{self.file_path} +{self.added} -{self.removed}"


class SplitGroup(BaseModel):
    """Hunks of a split commit that become one new commit."""

    model_config = ConfigDict(frozen=True)

    hunk_indices: tuple[int, ...] = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class Pick(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "pick"

    kind: Literal["pick"] = "pick"


class Reword(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "reword"

    kind: Literal["reword"] = "reword"
    message: str = Field(..., min_length=1)


class Squash(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "squash"

    kind: Literal["squash"] = "squash"
    into_index: int = Field(..., ge=0)
    message: str | None = Field(None, min_length=1)


class Fixup(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "fixup"

    kind: Literal["fixup"] = "fixup"
    into_index: int = Field(..., ge=0)


class Drop(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "drop"

    kind: Literal["drop"] = "drop"


class Split(BaseModel):
    model_config = ConfigDict(frozen=True)
    # git stops at the commit; the split recipe takes over from there
    keyword: ClassVar[str] = "edit"

    kind: Literal["split"] = "split"
    groups: tuple[SplitGroup, ...] = Field(..., min_length=1)


class Edit(BaseModel):
    model_config = ConfigDict(frozen=True)
    keyword: ClassVar[str] = "edit"

    kind: Literal["edit"] = "edit"


RebaseAction = Annotated[
    Pick | Reword | Squash | Fixup | Drop | Split | Edit,
    Field(discriminator="kind"),
]


class TodoEntry(BaseModel):
    """The action chosen for one loaded commit."""

    model_config = ConfigDict(validate_assignment=True)

    original_index: int = Field(..., ge=0)
    action: RebaseAction = Field(default_factory=Pick)

    @property
    def is_pick(self) -> bool:
        return isinstance(self.action, Pick)

    @property
    def into_index(self) -> int | None:
        if isinstance(self.action, (Squash, Fixup)):
            return self.action.into_index
        return None


class RebaseState(StrEnum):
    """Where an interactive rebase stands after git returned."""

    NONE = "none"
    EDIT_STOP = "edit_stop"
    IN_PROGRESS = "in_progress"


class ExecutionResult(BaseModel):
    action_count: int = 0
    head: str | None = None
    paused_at: str | None = None


def format_relative_time(moment: datetime, now: datetime | None = None) -> str:
    """Render an age as a compact string such as ``5m`` or ``3d``."""
    now = now or datetime.now(tz=moment.tzinfo)
    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    days = hours // 24
    if days < 7:
        return f"{days}d"
    if days < 28:
        return f"{days // 7}w"
    return f"{days // 30}mo"

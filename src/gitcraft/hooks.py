"""
Editor hooks run by git during the rebase.

git starts these as separate processes: ``sequence`` once to rewrite the
todo list, ``message`` once per commit message it wants edited. They
share nothing with the planning process except the files it staged.

    python -m gitcraft.hooks sequence SPEC_JSON TODO_FILE
    python -m gitcraft.hooks message MESSAGE_DIR MESSAGE_FILE
"""

import shutil
import sys
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

PICK_KEYWORDS = ("pick", "p")
COUNTER_FILE = "counter"


class SequenceSpec(BaseModel):
    """What the sequence hook needs to know about the plan."""

    order: list[str] = Field(default_factory=list)
    actions: dict[str, str] = Field(default_factory=dict)

    def position(self, abbrev: str) -> int | None:
        if len(abbrev) < 4:
            return None
        for position, sha in enumerate(self.order):
            if sha.startswith(abbrev):
                return position
        return None


def message_file(directory: Path, index: int) -> Path:
    return directory / f"msg_{index}"


def _line_sha(line: str) -> tuple[str, str] | None:
    parts = line.split(maxsplit=2)
    if len(parts) < 2 or line.lstrip().startswith("#"):
        return None
    return parts[0], parts[1]


def transform_todo(todo: str, spec: SequenceSpec) -> str:
    """
    Rewrite git's todo list to match the plan.

    ``pick`` becomes the planned keyword for each planned commit and the
    lines are sorted into the planned order. Lines that match no planned
    commit (comments, blanks, anything unexpected) follow in their
    original order. Running it on its own output changes nothing.
    """
    ranked: list[tuple[int, str]] = []
    unmatched: list[str] = []
    for line in todo.splitlines():
        parsed = _line_sha(line)
        position = spec.position(parsed[1]) if parsed else None
        if position is None:
            unmatched.append(line)
            continue
        keyword = parsed[0]
        planned = spec.actions.get(spec.order[position])
        if planned and keyword in PICK_KEYWORDS:
            line = planned + line.lstrip()[len(keyword):]
        ranked.append((position, line))

    ranked.sort(key=lambda item: item[0])
    lines = [line for _, line in ranked] + unmatched
    return "\n".join(lines) + "\n" if lines else ""


def serve_message(directory: Path, destination: Path) -> bool:
    """
    Copy the next queued message over ``destination``.

    The counter file holds the index of the next message and is advanced
    on every call. Once it runs past the last message file the
    destination is left as git wrote it.
    """
    counter = directory / COUNTER_FILE
    index = int(counter.read_text(encoding="utf-8").strip() or "0")
    source = message_file(directory, index)
    served = source.is_file()
    if served:
        shutil.copyfile(source, destination)
    counter.write_text(str(index + 1), encoding="utf-8")
    return served


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 3 or args[0] not in ("sequence", "message"):
        print(__doc__, file=sys.stderr)
        return 2

    logger.remove()
    logger.add(sink=sys.stderr, format="{message}", level="WARNING")

    command, source, target = args[0], Path(args[1]), Path(args[2])
    if command == "sequence":
        spec = SequenceSpec.model_validate_json(source.read_text(encoding="utf-8"))
        todo = target.read_text(encoding="utf-8")
        target.write_text(transform_todo(todo, spec), encoding="utf-8")
        logger.debug(f"Todo list rewritten for {len(spec.order)} commits")
    else:
        if not serve_message(source, target):
            logger.debug(f"No queued message for {target}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from collections.abc import Iterable, Sequence

from .errors import ValidationError
from .model import Hunk

_NEEDS_QUOTING = ('"', "\\", "\t", "\n")


def _quote(path: str) -> str:
    """Apply git's C-style quoting when a path needs it."""
    if not any(char in path for char in _NEEDS_QUOTING) and path.isascii():
        return path
    escaped = []
    for byte in path.encode("utf-8"):
        char = chr(byte)
        if char in '"\\':
            escaped.append("\\" + char)
        elif char == "\t":
            escaped.append("\\t")
        elif char == "\n":
            escaped.append("\\n")
        elif byte < 0x20 or byte >= 0x7F:
            escaped.append(f"\\{byte:03o}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def _label(prefix: str, path: str) -> str:
    path = f"{prefix}{path}"
    return _quote(path) if path != "/dev/null" else path


def _mode_lines(hunk: Hunk) -> list[str]:
    match hunk.change:
        case "add" if hunk.new_mode:
            return [f"new file mode {hunk.new_mode}"]
        case "delete" if hunk.old_mode:
            return [f"deleted file mode {hunk.old_mode}"]
        case "modify" if hunk.old_mode and hunk.new_mode and hunk.old_mode != hunk.new_mode:
            return [f"old mode {hunk.old_mode}", f"new mode {hunk.new_mode}"]
    return []


def file_header(hunk: Hunk, with_mode: bool = True) -> str:
    """
    The header introducing a hunk's file.

    A ``diff --git`` line and the mode lines precede the ``---``/``+++``
    pair only when the file's mode is created, deleted or changed.
    """
    old = "/dev/null" if hunk.change == "add" else _label("a/", hunk.source_path)
    new = "/dev/null" if hunk.change == "delete" else _label("b/", hunk.file_path)
    header = ""
    if with_mode and (modes := _mode_lines(hunk)):
        header = (
            f"diff --git {_label('a/', hunk.source_path)} {_label('b/', hunk.file_path)}\n"
            + "".join(f"{line}\n" for line in modes)
        )
    return f"{header}--- {old}\n+++ {new}\n"


def check_overlaps(hunks: Sequence[Hunk], indices: Sequence[int]) -> None:
    """
    Reject selections whose hunks overlap within one file.

    Hunks from a single ``git diff`` never overlap, so this only trips on
    hunk lists that were edited or assembled by hand.
    """
    last_end: dict[str, tuple[int, int]] = {}
    for index in indices:
        hunk = hunks[index]
        start = hunk.old_start
        end = start + max(hunk.old_count, 1)
        previous = last_end.get(hunk.source_path)
        if previous is not None and start < previous[1]:
            raise ValidationError(
                f"hunks {previous[0]} and {index} overlap in {hunk.source_path}"
            )
        last_end[hunk.source_path] = (index, end)


def generate_patch_for_hunks(
    hunks: Sequence[Hunk], selected: Iterable[int]
) -> str:
    """
    Build a unified diff holding exactly the selected hunks.

    Hunks are emitted in their original order, grouped under one header
    pair per file in order of first appearance. Headers are reused
    verbatim; each one already describes only its own line range.
    """
    indices = sorted(set(selected))
    for index in indices:
        if not 0 <= index < len(hunks):
            raise ValidationError(
                f"hunk {index} does not exist (commit has {len(hunks)} hunks)"
            )
    check_overlaps(hunks, indices)

    first_of_file: dict[str, int] = {}
    for index, hunk in enumerate(hunks):
        first_of_file.setdefault(hunk.file_path, index)

    by_file: dict[str, list[int]] = {}
    for index in indices:
        by_file.setdefault(hunks[index].file_path, []).append(index)

    patch: list[str] = []
    for path, file_indices in by_file.items():
        # a mode change travels with the file's first hunk only
        first = file_indices[0]
        patch.append(file_header(hunks[first], with_mode=first == first_of_file[path]))
        for hunk in (hunks[index] for index in file_indices):
            patch.append(f"{hunk.header}\n")
            patch.extend(line.render() for line in hunk.lines)
    return "".join(patch)

"""
Hunk decomposition of a commit's diff.

The commit is diffed against its first parent (or the empty tree for a
root commit) with git's own unified diff output, which is then parsed
into per-file hunks. Each hunk keeps its ``@@`` header verbatim so that
any subset of hunks can later be re-emitted as a patch without redoing
line arithmetic.
"""

import codecs
import re
from collections.abc import Sequence

from git import BadName, BadObject, GitCommandError, Repo
from loguru import logger

from .errors import DiffParseError
from .model import DiffLine, Hunk, LineKind

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

DIFF_OPTIONS = (
    "--no-color",
    "--no-ext-diff",
    "--no-renames",
    "--src-prefix=a/",
    "--dst-prefix=b/",
)

_HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    r" \+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
_NO_NEWLINE_MARKER = b"\\ No newline at end of file"


def _diff_base(repo: Repo, sha: str) -> str:
    commit = repo.commit(sha)
    if commit.parents:
        return commit.parents[0].hexsha
    return EMPTY_TREE_SHA


def get_commit_diff(repo: Repo, sha: str) -> bytes:
    """Raw unified diff between ``sha`` and its first parent."""
    try:
        base = _diff_base(repo, sha)
        return repo.git.diff(
            *DIFF_OPTIONS, base, sha, "--", stdout_as_string=False
        )
    except (BadName, BadObject, GitCommandError, ValueError) as e:
        raise DiffParseError(f"cannot diff {sha[:7]}: {e}") from e


def get_commit_patch(repo: Repo, sha: str) -> str:
    """Diff of ``sha`` decoded for display only."""
    return get_commit_diff(repo, sha).decode("utf-8", errors="replace")


def get_commit_hunks(repo: Repo, sha: str) -> list[Hunk]:
    """Decompose a commit into its ordered list of hunks."""
    hunks = parse_hunks(get_commit_diff(repo, sha))
    logger.debug(f"{len(hunks)} hunks in {sha[:7]}")
    return hunks


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual file names."""
    path = path.rstrip("\t")
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    raw = codecs.escape_decode(path[1:-1].encode("latin-1"))[0]
    return raw.decode("utf-8", errors="replace")


def _strip_prefix(path: str, prefix: str) -> str | None:
    path = _unquote(path)
    if path == "/dev/null":
        return None
    return path[len(prefix):] if path.startswith(prefix) else path


def _decode(line: bytes, path: str) -> str:
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DiffParseError(f"{path}: diff is not valid UTF-8 text") from e


def _mode(line: bytes) -> str:
    return line.rsplit(b" ", 1)[-1].decode("ascii", errors="replace").strip()


def parse_hunks(raw: bytes) -> list[Hunk]:
    """
    Parse ``git diff`` output into hunks, file by file, in diff order.

    Binary files and files without textual hunks (mode-only changes,
    empty new files) are left out.
    """
    lines = raw.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()

    hunks: list[Hunk] = []
    i = 0
    while i < len(lines):
        if lines[i].startswith(b"diff --git "):
            i = _parse_file(lines, i, hunks)
        else:
            i += 1
    return hunks


def _parse_file(lines: Sequence[bytes], start: int, hunks: list[Hunk]) -> int:
    header = lines[start].decode("utf-8", errors="replace")
    i = start + 1
    old_path: str | None = None
    new_path: str | None = None
    change = "modify"
    binary = False
    old_mode: str | None = None
    new_mode: str | None = None

    while i < len(lines) and not lines[i].startswith(b"diff --git "):
        line = lines[i]
        if line.startswith(b"@@"):
            break
        if line.startswith(b"new file mode "):
            change = "add"
            new_mode = _mode(line)
        elif line.startswith(b"deleted file mode "):
            change = "delete"
            old_mode = _mode(line)
        elif line.startswith(b"old mode "):
            old_mode = _mode(line)
        elif line.startswith(b"new mode "):
            new_mode = _mode(line)
        elif line.startswith(b"Binary files ") or line.startswith(
            b"GIT binary patch"
        ):
            binary = True
        elif line.startswith(b"--- "):
            old_path = _strip_prefix(_decode(line[4:], header), "a/")
        elif line.startswith(b"+++ "):
            new_path = _strip_prefix(_decode(line[4:], header), "b/")
        i += 1

    if old_path is None and new_path is None:
        # no ---/+++ pair: binary, mode-only or empty file
        label = header.removeprefix("diff --git ")
        if binary:
            logger.warning(f"Binary change excluded from split: {label}")
        else:
            logger.warning(f"Change without hunks excluded from split: {label}")
        while i < len(lines) and not lines[i].startswith(b"diff --git "):
            i += 1
        return i

    if old_path is None:
        change = "add"
    elif new_path is None:
        change = "delete"
    file_path = new_path or old_path or ""
    source = old_path if old_path not in (None, file_path) else None

    while i < len(lines) and lines[i].startswith(b"@@"):
        hunk, i = _parse_hunk(
            lines, i, file_path, source, change, (old_mode, new_mode)
        )
        hunks.append(hunk)
    return i


def _without_newline(line: DiffLine) -> DiffLine:
    return line.model_copy(update={"no_newline": True})


def _parse_hunk(
    lines: Sequence[bytes],
    start: int,
    file_path: str,
    old_path: str | None,
    change: str,
    modes: tuple[str | None, str | None] = (None, None),
) -> tuple[Hunk, int]:
    header = _decode(lines[start], file_path).rstrip("\r")
    match = _HUNK_HEADER_RE.match(header)
    if not match:
        raise DiffParseError(f"{file_path}: malformed hunk header {header!r}")

    old_start = int(match["old_start"])
    new_start = int(match["new_start"])
    old_count = int(match["old_count"]) if match["old_count"] is not None else 1
    new_count = int(match["new_count"]) if match["new_count"] is not None else 1

    old_left, new_left = old_count, new_count
    diff_lines: list[DiffLine] = []
    i = start + 1
    while old_left > 0 or new_left > 0:
        if i >= len(lines):
            raise DiffParseError(f"{file_path}: truncated hunk {header!r}")
        raw = lines[i]
        if raw.startswith(_NO_NEWLINE_MARKER):
            if diff_lines:
                diff_lines[-1] = _without_newline(diff_lines[-1])
            i += 1
            continue
        prefix, text = raw[:1], _decode(raw[1:], file_path)
        if prefix == b"+":
            kind = LineKind.ADDED
            new_left -= 1
        elif prefix == b"-":
            kind = LineKind.REMOVED
            old_left -= 1
        elif prefix in (b" ", b""):
            kind = LineKind.CONTEXT
            old_left -= 1
            new_left -= 1
        else:
            raise DiffParseError(
                f"{file_path}: unexpected line in hunk {header!r}"
            )
        diff_lines.append(DiffLine(kind=kind, text=text))
        i += 1

    if i < len(lines) and lines[i].startswith(_NO_NEWLINE_MARKER):
        # marker belongs to the line just read
        if diff_lines:
            diff_lines[-1] = _without_newline(diff_lines[-1])
        i += 1

    return Hunk(
        file_path=file_path,
        old_path=old_path,
        change=change,
        old_mode=modes[0],
        new_mode=modes[1],
        header=header,
        lines=tuple(diff_lines),
        old_start=old_start,
        old_count=old_count,
        new_start=new_start,
        new_count=new_count,
    ), i

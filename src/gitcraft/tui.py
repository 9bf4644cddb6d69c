import curses
import os
from contextlib import suppress

from loguru import logger

from .model import Drop, format_relative_time
from .planner import (
    ActionMenu,
    CommitList,
    Outcome,
    PlanBuilder,
    Preview,
    ReorderMode,
    RewordEdit,
    SplitView,
    SquashTarget,
    action_label,
)

POLL_MS = 100

HELP = {
    CommitList: "j/k:nav  space:select  Enter:actions  D:diff  p:preview  q:quit",
    ActionMenu: "r:reword s:split q:squash f:fixup d:drop m:reorder e:edit x:reset  Esc:back",
    RewordEdit: "type to edit  Enter:save  ^O:newline  Esc:discard",
    SplitView: "j/k:nav  space:toggle  1-9:assign  0:unassign  g:new group  n:name group  Enter:done  Esc:discard",
    SquashTarget: "j/k:select target  Enter:confirm  Esc:cancel",
    ReorderMode: "J/K:move commit  j/k:nav  Enter:keep  Esc:restore",
    Preview: "y/Enter:execute  j/k:scroll  Esc:back",
}

_CHAR_KEYS = {
    "\n": "enter",
    "\r": "enter",
    "\x1b": "esc",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "cancel",
    "\x07": "cancel",
    "\x0f": "newline",
}

_CODE_KEYS = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
}


def key_name(key: str | int) -> str | None:
    """Map a ``get_wch`` result onto the key names the builder understands."""
    if isinstance(key, int):
        return _CODE_KEYS.get(key)
    if key in _CHAR_KEYS:
        return _CHAR_KEYS[key]
    return key if key.isprintable() else None


def _put(screen, y: int, x: int, text: str, attr: int = 0) -> None:
    height, width = screen.getmaxyx()
    if 0 <= y < height and x < width - 1:
        screen.addnstr(y, x, text.replace("\t", "    "), width - 1 - x, attr)


def _window(cursor: int, total: int, rows: int) -> range:
    start = max(0, min(cursor - rows // 2, total - rows))
    return range(start, min(total, start + rows))


def _draw_commits(screen, builder: PlanBuilder, top: int, rows: int) -> None:
    target_mode = isinstance(builder.mode, SquashTarget)
    for line, position in enumerate(_window(builder.cursor, len(builder.commits), rows)):
        commit = builder.commits[position]
        entry = builder.plan.entries[position]
        marker = "*" if builder.selected[position] else " "
        text = (
            f"{marker} {action_label(entry.action):>7} {commit.short_sha} "
            f"{commit.summary}  {format_relative_time(commit.timestamp)}  {commit.author}"
        )
        attr = curses.A_DIM if isinstance(entry.action, Drop) else 0
        if position == builder.cursor:
            attr |= curses.A_BOLD if target_mode else curses.A_REVERSE
        _put(screen, top + line, 0, text, attr)


def _draw_text(screen, lines: list[str], top: int, rows: int, scroll: int = 0) -> None:
    for line, text in enumerate(lines[scroll : scroll + rows]):
        _put(screen, top + line, 0, text)


def _draw_split(screen, mode: SplitView, top: int, rows: int) -> None:
    listing = max(3, rows // 3)
    for line, index in enumerate(_window(mode.cursor, len(mode.hunks), listing)):
        hunk = mode.hunks[index]
        group = mode.groups[index]
        label = f"[{group}]" if group else "[ ]"
        name = mode.names.get(group, "") if group else ""
        attr = curses.A_REVERSE if index == mode.cursor else 0
        _put(screen, top + line, 0, f"{label} {hunk.summary()} {hunk.header}  {name}", attr)

    hunk = mode.hunks[mode.cursor]
    body = [hunk.header] + [line.render().rstrip("\n") for line in hunk.lines]
    _draw_text(screen, body, top + listing + 1, rows - listing - 1)
    if mode.naming is not None:
        _put(screen, top + rows - 1, 0, f"group {mode.naming}: {mode.name_buffer}_", curses.A_BOLD)


def _draw(screen, builder: PlanBuilder) -> None:
    screen.erase()
    height, _ = screen.getmaxyx()
    rows = max(1, height - 4)
    _put(
        screen,
        0,
        0,
        f" CRAFT  {len(builder.commits)} commits  {builder.plan.action_count} action(s) ",
        curses.A_BOLD,
    )

    match builder.mode:
        case RewordEdit() as mode:
            commit = builder.plan.commits[mode.original_index]
            _put(screen, 2, 0, f"reword {commit.short_sha}", curses.A_BOLD)
            _draw_text(screen, (mode.buffer + "_").split("\n"), 3, rows - 1)
        case SplitView() as mode:
            _draw_split(screen, mode, 2, rows)
        case Preview() as mode:
            _draw_text(screen, builder.preview_lines(), 2, rows, mode.scroll)
        case _ if builder.diff_text is not None:
            half = max(1, rows // 2)
            _draw_commits(screen, builder, 2, half)
            _draw_text(screen, builder.diff_text.splitlines(), 2 + half + 1, rows - half - 1)
        case _:
            _draw_commits(screen, builder, 2, rows)

    _put(screen, height - 2, 0, builder.status, curses.A_BOLD)
    _put(screen, height - 1, 0, HELP[type(builder.mode)], curses.A_DIM)
    screen.refresh()


def _loop(screen, builder: PlanBuilder) -> Outcome:
    curses.raw()
    # terminals without cursor visibility control
    with suppress(curses.error):
        curses.curs_set(0)
    screen.keypad(True)
    screen.timeout(POLL_MS)

    while not builder.done:
        _draw(screen, builder)
        try:
            key = screen.get_wch()
        except curses.error:
            continue  # poll timeout
        if (name := key_name(key)) is not None:
            builder.handle_key(name)
    return builder.outcome


def run_planner(builder: PlanBuilder) -> Outcome:
    """
    Drive ``builder`` from the terminal until it reaches an outcome.

    Log records emitted meanwhile are tagged so console sinks can skip
    them; warnings are shown on the status line instead.
    """
    os.environ.setdefault("ESCDELAY", "25")

    def to_status(message) -> None:
        builder.status = message.record["message"]

    sink = logger.add(
        to_status,
        level="WARNING",
        filter=lambda record: record["extra"].get("tui", False),
    )
    try:
        with logger.contextualize(tui=True):
            return curses.wrapper(_loop, builder)
    finally:
        logger.remove(sink)

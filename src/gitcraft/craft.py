from collections.abc import Callable
from functools import partial

from git import Repo
from loguru import logger

from .get_commits import load_commits, refuse_merges, validate_state
from .guard import warn_pushed_commits
from .hunks import get_commit_hunks, get_commit_patch
from .planner import Cancel, Execute, Outcome, PlanBuilder
from .rebase_manager import GitRebaseManager
from .tui import run_planner


def run_craft(
    repo: Repo,
    count: int,
    last: int | None = None,
    planner: Callable[[PlanBuilder], Outcome] | None = None,
) -> int:
    """
    Load history, let the user build a plan, then execute it.

    ``last`` preselects that many of the newest commits. Returns the
    number of actions applied.
    """
    validate_state(repo)
    commits = load_commits(repo, count)
    refuse_merges(commits)

    builder = PlanBuilder(
        commits,
        hunk_loader=partial(get_commit_hunks, repo),
        patch_loader=partial(get_commit_patch, repo),
        preselect=last or 0,
    )
    outcome = (planner or run_planner)(builder)

    match outcome:
        case Execute(plan=plan):
            if not plan.has_changes():
                print("no changes to apply")
                return 0
            warn_pushed_commits(repo, plan.commits, plan.touched_indices())

            result = GitRebaseManager(repo).execute(plan)
            if result.paused_at:
                print(
                    f"paused at {result.paused_at[:7]}: amend, then git rebase --continue"
                )
            print(f"done: crafted {result.action_count} action(s)")
            return result.action_count
        case Cancel():
            logger.debug("Planning session cancelled")
            print("cancelled")
    return 0

import tempfile
from pathlib import Path

from git import GitCommandError, Repo
from loguru import logger

from .errors import RebaseConflict, RebaseError, RebaseFailed
from .get_commits import decode_bytes, rebase_in_progress
from .model import ExecutionResult, RebaseState
from .plan import CraftPlan
from .scripts import RebaseScripts, write_scripts

# served messages are committed verbatim
REBASE = ("git", "-c", "commit.cleanup=whitespace", "rebase")
CONFLICT_MARKERS = ("CONFLICT", "could not apply")
EDIT_KEYWORDS = ("edit", "e")


def classify_failure(output: str) -> RebaseError:
    """Turn the output of a failed rebase step into the matching error."""
    if any(marker in output for marker in CONFLICT_MARKERS):
        return RebaseConflict(output)
    return RebaseFailed(output)


def _todo_sha(line: str) -> str | None:
    parts = line.split()
    if len(parts) >= 2 and parts[0] in EDIT_KEYWORDS:
        return parts[1]
    return None


class GitRebaseManager:
    def __init__(self, repo: Repo):
        self.repo = repo
        self.git = self.repo.git

    @property
    def _merge_dir(self) -> Path:
        return Path(self.repo.git_dir) / "rebase-merge"

    def rebase_base(self, plan: CraftPlan) -> str | None:
        """Parent of the oldest loaded commit, or None for a root rebase."""
        oldest = plan.commits[-1]
        return oldest.parents[0] if oldest.parents else None

    def execute(self, plan: CraftPlan) -> ExecutionResult:
        """
        Run the plan as one scripted interactive rebase.

        The staging directory is removed whatever the outcome.

        Raises:
            ValidationError: If the plan is not executable.
            ScriptIOError: If the hook scripts cannot be staged.
            RebaseConflict: If git stops on conflicts.
            RebaseFailed: For any other failed rebase step.
        """
        plan.validate()
        if not plan.has_changes():
            logger.info("Plan has no changes, nothing to rebase")
            return ExecutionResult()

        with tempfile.TemporaryDirectory(prefix="gitcraft-") as staging:
            scripts = write_scripts(plan, Path(staging))
            base = self.rebase_base(plan)
            logger.info(
                f"Rebasing {len(plan)} commits onto {base[:7] if base else 'root'}"
            )
            self._run(
                [*REBASE, "-i", "--no-autosquash", base or "--root"],
                scripts,
            )
            paused_at = self._finish_edit_stops(scripts)

        result = ExecutionResult(
            action_count=plan.action_count,
            head=self.repo.head.commit.hexsha,
            paused_at=paused_at,
        )
        logger.info(f"Rebase finished at {result.head[:7]}")
        return result

    def _run(self, command: list[str], scripts: RebaseScripts) -> str:
        logger.debug(f"Running {' '.join(command)}")
        status, stdout, stderr = self.git.execute(
            command,
            with_extended_output=True,
            with_exceptions=False,
            env=scripts.environment(),
        )
        output = "\n".join(
            part for part in (decode_bytes(stdout), decode_bytes(stderr)) if part
        )
        if status != 0:
            raise classify_failure(output)
        if output:
            logger.debug(output)
        return output

    def _finish_edit_stops(self, scripts: RebaseScripts) -> str | None:
        """Run split recipes until the rebase ends or stops for a manual edit."""
        handled: set[str] = set()
        while (state := self.rebase_state()) is not RebaseState.NONE:
            if state is RebaseState.IN_PROGRESS:
                raise RebaseFailed("rebase stopped without reporting an error")

            stopped = self.stopped_commit()
            recipe = scripts.recipe_for(stopped) if stopped else None
            if recipe is None:
                logger.warning(
                    f"Rebase paused at {(stopped or 'HEAD')[:7]} for editing. "
                    "Amend it, then run: git rebase --continue"
                )
                return stopped or self.repo.head.commit.hexsha
            if stopped in handled:
                raise RebaseFailed(f"split of {stopped[:7]} stopped twice")
            handled.add(stopped)

            logger.info(f"Splitting {stopped[:7]}")
            self._run(["sh", str(recipe)], scripts)
        return None

    def rebase_state(self) -> RebaseState:
        if not rebase_in_progress(self.repo):
            return RebaseState.NONE
        if (self._merge_dir / "amend").is_file():
            return RebaseState.EDIT_STOP
        if not self._merge_dir.is_dir() and self._status_stop() is not None:
            return RebaseState.EDIT_STOP
        return RebaseState.IN_PROGRESS

    def stopped_commit(self) -> str | None:
        """Id of the commit an edit stop paused on."""
        stopped_sha = self._merge_dir / "stopped-sha"
        if stopped_sha.is_file():
            if sha := stopped_sha.read_text(encoding="utf-8").strip():
                return sha
        done = self._merge_dir / "done"
        if done.is_file():
            for line in reversed(done.read_text(encoding="utf-8").splitlines()):
                if sha := _todo_sha(line):
                    return sha
        return self._status_stop()

    def _status_stop(self) -> str | None:
        """Read the edit stop from ``git status`` when no state file tells."""
        try:
            status = self.git.status()
        except GitCommandError as e:
            logger.debug(f"git status failed: {e}")
            return None
        if "editing a commit" not in status:
            return None
        sha = None
        in_done = False
        for line in status.splitlines():
            if line.startswith("Last command"):
                in_done = True
            elif in_done and line.startswith(" "):
                sha = _todo_sha(line) or sha
            else:
                in_done = False
        return sha

    def abort_rebase(self) -> None:
        """Abort the current rebase operation."""
        self.git.rebase("--abort")

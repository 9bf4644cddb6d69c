from collections.abc import Iterable, Sequence

from git import GitCommandError, Repo
from loguru import logger

from .model import CommitDescriptor


def find_pushed_commits(
    repo: Repo, commits: Sequence[CommitDescriptor], indices: Iterable[int]
) -> list[CommitDescriptor]:
    """Commits among ``indices`` already reachable from the upstream tip."""
    if repo.head.is_detached:
        return []
    upstream = repo.active_branch.tracking_branch()
    if upstream is None or not upstream.is_valid():
        logger.debug("No upstream tracking branch, skipping pushed-commit check")
        return []

    tip = upstream.commit.hexsha
    pushed: list[CommitDescriptor] = []
    for index in sorted(set(indices)):
        commit = commits[index]
        try:
            if commit.sha == tip or repo.is_ancestor(commit.sha, tip):
                pushed.append(commit)
        except GitCommandError as e:
            logger.debug(f"Ancestry check of {commit.short_sha} failed: {e}")
    return pushed


def warn_pushed_commits(
    repo: Repo, commits: Sequence[CommitDescriptor], indices: Iterable[int]
) -> int:
    """Warn when the rewrite will need a force-push. Returns the pushed count."""
    pushed = find_pushed_commits(repo, commits, indices)
    if pushed:
        upstream = repo.active_branch.tracking_branch()
        logger.warning(
            f"{len(pushed)} commit(s) already pushed to {upstream.name}: "
            f"{', '.join(commit.short_sha for commit in pushed)}. "
            "A force-push will be required after the rewrite"
        )
    return len(pushed)

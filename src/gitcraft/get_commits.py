from pathlib import Path

from git import Commit, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from loguru import logger

from .errors import RepositoryStateError
from .model import CommitDescriptor

SHORT_SHA_LENGTH = 7


def decode_bytes(str_or_bytes: bytes | str) -> str:
    """Decode bytestring to string."""
    if isinstance(str_or_bytes, bytes):
        str_or_bytes = str_or_bytes.decode(encoding="utf-8", errors="replace")
    return str_or_bytes


def open_repo(path: Path | None = None) -> Repo:
    """Open the repository containing ``path`` (default: the cwd)."""
    try:
        return Repo(path or Path.cwd(), search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise RepositoryStateError(
            f"{path or Path.cwd()} is not inside a git repository"
        ) from e


def rebase_in_progress(repo: Repo) -> bool:
    """Check if the old or current rebase state directory exists"""
    git_dir = Path(repo.git_dir)
    return (git_dir / "rebase-merge").exists() or (
        git_dir / "rebase-apply"
    ).exists()


def validate_state(repo: Repo) -> None:
    """Refuse to plan a rewrite the repository cannot safely take."""
    if repo.head.is_detached:
        raise RepositoryStateError("detached HEAD: check out a branch first")
    if not repo.head.is_valid():
        raise RepositoryStateError(
            f"branch {repo.active_branch.name} has no commits"
        )
    if rebase_in_progress(repo):
        raise RepositoryStateError(
            "a rebase is already in progress: finish or abort it first"
        )
    if repo.is_dirty(index=True, working_tree=True, untracked_files=True):
        raise RepositoryStateError(
            "dirty working tree: commit or stash changes first"
        )


def describe(commit: Commit) -> CommitDescriptor:
    """Snapshot the fields of a GitPython commit."""
    sha = commit.hexsha
    return CommitDescriptor(
        sha=sha,
        short_sha=sha[:SHORT_SHA_LENGTH],
        summary=decode_bytes(commit.summary),
        message=decode_bytes(commit.message),
        author=commit.author.name or "",
        author_email=commit.author.email or "",
        authored_at=commit.authored_datetime,
        timestamp=commit.committed_datetime,
        parents=tuple(parent.hexsha for parent in commit.parents),
    )


def load_commits(repo: Repo, max_count: int) -> list[CommitDescriptor]:
    """
    Walk the current branch from its tip, newest first.

    Raises:
        RepositoryStateError: If the branch is empty or cannot be walked.
    """
    if repo.head.is_detached:
        raise RepositoryStateError("detached HEAD: check out a branch first")
    branch = repo.active_branch
    try:
        commits = [
            describe(commit)
            for commit in repo.iter_commits(branch.name, max_count=max_count)
        ]
    except (GitCommandError, ValueError) as e:
        raise RepositoryStateError(
            f"cannot walk history of {branch.name}: {e}"
        ) from e

    if not commits:
        raise RepositoryStateError(f"branch {branch.name} has no commits")

    logger.debug(f"{len(commits)} commits loaded from {branch.name}")
    for commit in commits:
        logger.debug(f"{commit.short_sha} - {commit.summary}")
    return commits


def refuse_merges(commits: list[CommitDescriptor]) -> None:
    """
    Refuse a rewrite range holding merge commits.

    Raises:
        RepositoryStateError: If any commit in the range is a merge.
    """
    merges = [commit.short_sha for commit in commits if commit.is_merge]
    if merges:
        raise RepositoryStateError(
            f"merge commit(s) in range: {', '.join(merges)}; "
            "interactive rebase would linearize them, load fewer commits"
        )

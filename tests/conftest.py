import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest
from git import Repo

from gitcraft.model import CommitDescriptor

AUTHOR = {"name": "Ada Lovelace", "email": "ada@example.com"}


def run_git(path: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=path, check=True, capture_output=True, text=True
    ).stdout


class RepoBuilder:
    """A throwaway repository with helpers to lay down commits."""

    def __init__(self, path: Path):
        self.path = path
        path.mkdir(parents=True, exist_ok=True)
        run_git(path, "init", "-q", "-b", "main")

    @property
    def repo(self) -> Repo:
        return Repo(self.path)

    def write(self, name: str, content: str) -> None:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def commit(self, message: str, files: dict[str, str], author: str | None = None) -> str:
        for name, content in files.items():
            self.write(name, content)
        run_git(self.path, "add", "-A")
        args = ["commit", "-q", "-m", message]
        if author:
            args += ["--author", author]
        run_git(self.path, *args)
        return self.head()

    def head(self) -> str:
        return run_git(self.path, "rev-parse", "HEAD").strip()

    def subjects(self) -> list[str]:
        """Commit subjects, newest first."""
        return run_git(self.path, "log", "--format=%s").splitlines()

    def show(self, rev: str, name: str) -> str:
        return run_git(self.path, "show", f"{rev}:{name}")

    def git(self, *args: str) -> str:
        return run_git(self.path, *args)


@pytest.fixture(autouse=True)
def isolated_git(tmp_path, monkeypatch):
    """Keep the user's git config and settings out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", AUTHOR["name"])
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", AUTHOR["email"])
    monkeypatch.setenv("GIT_COMMITTER_NAME", AUTHOR["name"])
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", AUTHOR["email"])
    for variable in ("GIT_EDITOR", "GIT_SEQUENCE_EDITOR", "GITCRAFT_COUNT", "GITCRAFT_LOG_DIR", "GITCRAFT_EDITOR"):
        monkeypatch.delenv(variable, raising=False)


@pytest.fixture
def workdir(tmp_path) -> RepoBuilder:
    return RepoBuilder(tmp_path / "work")


@pytest.fixture
def linear(workdir) -> RepoBuilder:
    """Three commits A (oldest), B, C touching separate files."""
    workdir.commit("A", {"a.txt": "a\n"})
    workdir.commit("B", {"b.txt": "b\n"})
    workdir.commit("C", {"c.txt": "c\n"})
    return workdir


def make_commit(
    index: int, parents: tuple[str, ...] | None = None, message: str | None = None
) -> CommitDescriptor:
    sha = f"{index + 1:x}".rjust(2, "0") * 20
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    summary = message or f"commit {index}"
    return CommitDescriptor(
        sha=sha,
        short_sha=sha[:7],
        summary=summary,
        message=f"{summary}\n",
        author=AUTHOR["name"],
        author_email=AUTHOR["email"],
        authored_at=moment,
        timestamp=moment,
        parents=("f" * 40,) if parents is None else parents,
    )


def make_commits(count: int) -> list[CommitDescriptor]:
    """Linear descriptors, newest first, each the parent of the one before."""
    commits = [make_commit(index) for index in range(count)]
    linked = []
    for index, commit in enumerate(commits):
        parent = commits[index + 1].sha if index + 1 < count else "f" * 40
        linked.append(commit.model_copy(update={"parents": (parent,)}))
    return linked


@pytest.fixture
def merged(linear) -> RepoBuilder:
    """A, B, C on main, a side branch merged with --no-ff, then D."""
    linear.git("checkout", "-q", "-b", "side", "HEAD~1")
    linear.commit("S", {"s.txt": "s\n"})
    linear.git("checkout", "-q", "main")
    linear.git("merge", "-q", "--no-ff", "-m", "merge side", "side")
    linear.commit("D", {"d.txt": "d\n"})
    return linear

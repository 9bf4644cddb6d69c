"""Exception types raised by gitcraft."""


class CraftError(Exception):
    """Base class for every gitcraft failure."""


class ConfigError(CraftError):
    """Raised when the settings file or environment is invalid."""


class RepositoryStateError(CraftError):
    """Raised when the repository cannot be rewritten in its current state."""


class DiffParseError(CraftError):
    """Raised when a commit's diff cannot be decomposed into hunks."""


class ValidationError(CraftError):
    """Raised when a plan edit or a finished plan breaks a plan invariant."""


class ScriptIOError(CraftError):
    """Raised when a hook script or patch file cannot be written."""


class RebaseError(CraftError):
    """Raised when git rebase does not finish successfully."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class RebaseConflict(RebaseError):
    """Raised when git stops a rebase on unresolved conflicts."""

    def __init__(self, output: str) -> None:
        super().__init__(
            "rebase conflict:\n"
            f"{output.rstrip()}\n"
            "resolve manually, then:\n"
            "  git rebase --continue\n"
            "or give up with:\n"
            "  git rebase --abort",
            output,
        )


class RebaseFailed(RebaseError):
    """Raised for any other non-zero exit of git rebase."""

    def __init__(self, output: str) -> None:
        super().__init__(f"rebase failed:\n{output.rstrip()}", output)

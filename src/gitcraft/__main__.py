import argparse
import sys
import time
from pathlib import Path

from loguru import logger

from gitcraft.config import load_settings
from gitcraft.craft import run_craft
from gitcraft.errors import CraftError
from gitcraft.get_commits import open_repo
from gitcraft.reword import run_reword

start_time: float = time.time()

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{message}</level>"


def _console(record) -> bool:
    # the planner owns the terminal while it runs
    return not record["extra"].get("tui", False)


def set_logger(verbose: bool, silent: bool, log_dir: Path = Path("logs")) -> None:
    """Set up the Loguru logger."""
    logger.remove()
    log_file = log_dir / "gitcraft.log"

    if verbose:
        logger.add(sink=sys.stdout, format=LOG_FORMAT, level="DEBUG", filter=_console)
        logger.add(sink=log_file, format=LOG_FORMAT, level="DEBUG")
    elif silent:
        logger.add(sink=log_file, format=LOG_FORMAT, level="ERROR")
    else:
        logger.add(sink=sys.stdout, format=LOG_FORMAT, level="INFO", filter=_console)


def parse_repo_path(repo_path: str) -> Path:
    """Parse a path to an existing directory."""
    path = Path(repo_path)
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"{path} is not a valid directory")
    return path if path.is_absolute() else Path.cwd() / path


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value} must be at least 1")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create a parser for the command line arguments."""
    parser = argparse.ArgumentParser(
        prog="gitcraft",
        description="Plan a history rewrite interactively, then run it as one rebase",
    )
    parser.add_argument(
        "-C",
        metavar="PATH",
        type=parse_repo_path,
        default=None,
        help="Run as if started in PATH",
        dest="repo_path",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "-q", "--silent", action="store_true", help="Disable logging to stdout"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    craft = subparsers.add_parser(
        "craft", help="Reword, squash, fixup, drop, split, edit or reorder commits"
    )
    craft.add_argument(
        "-n",
        "--count",
        type=positive_int,
        default=None,
        help="Number of commits to load. Defaults to the configured count",
    )
    craft.add_argument(
        "--last",
        metavar="N",
        type=positive_int,
        default=None,
        help="Preselect the N newest commits",
    )

    reword = subparsers.add_parser("reword", help="Change commit messages")
    reword.add_argument(
        "--last",
        metavar="N",
        type=positive_int,
        default=None,
        help="Reword the N newest commits without the picker",
    )
    reword.add_argument(
        "--all",
        action="store_true",
        help="Reword every loaded commit except merges",
        dest="select_all",
    )
    reword.add_argument(
        "-n",
        "--count",
        type=positive_int,
        default=None,
        help="Number of commits to show. Defaults to the configured count",
    )
    reword.add_argument(
        "--editor",
        action="store_true",
        help="Write every message in the editor instead of inline",
        dest="use_editor",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    gitcraft

    Loads the newest commits of the current branch, lets the user decide
    what happens to each of them and replays the result with a single
    scripted ``git rebase -i``.

    Raises:
        CraftError: For any failure that stops the run.
    """
    args = create_parser().parse_args(argv)
    settings = load_settings()
    set_logger(args.verbose, args.silent, settings.log_dir)

    repo = open_repo(args.repo_path)
    count = args.count or settings.default_count
    logger.debug(f"Repository {repo.working_tree_dir}, loading {count} commits")

    if args.command == "craft":
        run_craft(repo, count, args.last)
    else:
        run_reword(
            repo,
            count,
            last=args.last,
            select_all=args.select_all,
            use_editor=args.use_editor,
            editor=settings.resolve_editor(),
        )
    return 0


def run() -> None:
    exit_code = 0
    try:
        exit_code = main()
    except CraftError as e:
        logger.error(e)
        exit_code = 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        exit_code = 130
    except Exception as e:
        logger.opt(exception=e).debug("Unexpected failure")
        logger.error(e)
        exit_code = 1
    finally:
        logger.debug(f"Execution time: {time.time() - start_time:.2f} seconds")
    sys.exit(exit_code)


if __name__ == "__main__":
    run()

"""kanbansync entry point.

Two directions: push (task files -> issues + board, default) and pull
(board -> task files). Usage: kanbansync push | kanbansync pull [--mode all].
"""

import argparse
import logging
import sys
from pathlib import Path

from kanbansync.adapters import GitHubAdapter, TrackerError
from kanbansync.config import DEFAULT_CONFIG_PATH, AppConfig, ConfigurationError, load_config
from kanbansync.logging import SyncLogging
from kanbansync.services.git import GitRunnerError, commit_and_push
from kanbansync.services.pull import MODES, RemotePuller
from kanbansync.services.reconciler import Reconciler
from kanbansync.store import TaskValidationError

LOG = logging.getLogger("kanbansync.main")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI with optional subcommand (push | pull)."""
    argv = argv if argv is not None else sys.argv[1:]
    sub = "push"
    rest = list(argv)
    if argv and not argv[0].startswith("-") and argv[0] in ("push", "pull"):
        sub = argv[0]
        rest = argv[1:]

    parser = argparse.ArgumentParser(
        prog="kanbansync",
        description="Sync Markdown task files with GitHub issues and a Projects (v2) board",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file (optional)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only load and validate config, then exit",
    )
    parser.add_argument(
        "--no-commit",
        action="store_true",
        help="Do not commit and push changed task files",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default=None,
        help="Pull mode (default: SYNC_MODE or missing)",
    )
    parsed = parser.parse_args(rest)
    parsed.subcommand = sub
    return parsed


def _commit(config: AppConfig) -> None:
    git = config.git
    commit_and_push(
        [config.tasks.dir],
        git.branch,
        git.message,
        git.name,
        git.email,
        log=logging.getLogger("kanbansync.git"),
    )


def run(config: AppConfig, subcommand: str, mode: str | None = None, commit: bool = True) -> None:
    """Run one sync direction and commit the resulting file changes."""
    adapter = GitHubAdapter(
        config.github.token or "",
        api_url=config.github.api_url,
        graphql_url=config.github.graphql_url,
    )
    if subcommand == "pull":
        RemotePuller(adapter, config).run(mode)
    else:
        Reconciler(adapter, config).run()
    if commit and config.git.commit:
        _commit(config)


def main(argv: list[str] | None = None) -> int:
    """Entry point: 0 on success, 1 on configuration, validation or fatal
    errors."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
        SyncLogging(config.logging).setup()
        config.require()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        LOG.error("%s", e)
        return 1
    except (ValueError, OSError) as e:
        logging.basicConfig(level=logging.INFO)
        LOG.error("Invalid configuration: %s", e)
        return 1

    if args.check:
        print("Config OK:", config.github.repository, f"{config.board.owner}#{config.board.number}")
        return 0

    try:
        run(config, args.subcommand, mode=args.mode, commit=not args.no_commit)
    except TaskValidationError as e:
        LOG.error("%s; nothing was synced", e)
        return 1
    except TrackerError as e:
        LOG.error("Sync failed: %s", e)
        return 1
    except GitRunnerError as e:
        LOG.error("Could not commit or push task file changes: %s", e)
        return 1
    except Exception as e:
        LOG.exception("Fatal error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

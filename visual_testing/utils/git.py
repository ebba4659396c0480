"""Git metadata for tagging captures and uploads."""

from __future__ import annotations

import logging

from visual_testing.device.runner import CommandError, CommandRunner
from visual_testing.errors import VisualTestError

logger = logging.getLogger(__name__)


async def current_branch(runner: CommandRunner | None = None, cwd_args: tuple[str, ...] = ()) -> str:
    runner = runner or CommandRunner(timeout=10)
    try:
        result = await runner.run("git", *cwd_args, "rev-parse", "--abbrev-ref", "HEAD")
    except (CommandError, OSError) as e:
        raise VisualTestError("Failed to get current branch. Is this a git repository?") from e
    return result.stdout.strip()


async def commit_hash(runner: CommandRunner | None = None, cwd_args: tuple[str, ...] = ()) -> str:
    """Full hash of HEAD, or an empty string outside a repository."""
    runner = runner or CommandRunner(timeout=10)
    try:
        result = await runner.run("git", *cwd_args, "rev-parse", "HEAD")
    except (CommandError, OSError) as e:
        logger.debug("Could not read commit hash: %s", e)
        return ""
    return result.stdout.strip()


async def commit_message(runner: CommandRunner | None = None, cwd_args: tuple[str, ...] = ()) -> str:
    runner = runner or CommandRunner(timeout=10)
    try:
        result = await runner.run("git", *cwd_args, "log", "-1", "--pretty=%B")
    except (CommandError, OSError) as e:
        logger.debug("Could not read commit message: %s", e)
        return ""
    return result.stdout.strip()


def repo_args(project_path) -> tuple[str, ...]:
    """``git -C <path>`` arguments so metadata is read from the project, not the cwd."""
    return ("-C", str(project_path))

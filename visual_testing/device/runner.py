"""Async subprocess runner used for simctl, odiff and git invocations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    def __init__(self, result: CommandResult):
        detail = (result.stderr or result.stdout).strip()
        super().__init__(
            f"Command '{' '.join(result.args)}' failed with exit code {result.returncode}: {detail}"
        )
        self.result = result


class CommandRunner:
    """Runs external commands without a shell and with an explicit timeout."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    async def run(self, *args: str, check: bool = True, timeout: float | None = None) -> CommandResult:
        logger.debug("Running: %s", " ".join(args))
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout or self.timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        result = CommandResult(
            args=tuple(args),
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if check and not result.ok:
            raise CommandError(result)
        return result

"""ODiff backend — fast external image diff tool, used when installed."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from PIL import Image

from visual_testing.comparison.backend import DiffBackend, DiffOutcome
from visual_testing.device.runner import CommandRunner
from visual_testing.errors import ComparisonError, DimensionMismatch

logger = logging.getLogger(__name__)

EXIT_MATCH = 0
EXIT_LAYOUT_DIFF = 21
EXIT_PIXEL_DIFF = 22

_PERCENT_PATTERNS = (
    re.compile(r"Difference:\s*([\d.]+)%"),
    re.compile(r"Different pixels:\s*\d+\s*\(([\d.]+)%\)"),
)


def parse_diff_percentage(output: str) -> float | None:
    for pattern in _PERCENT_PATTERNS:
        match = pattern.search(output)
        if match:
            return float(match.group(1))
    return None


class ODiffBackend(DiffBackend):
    name = "odiff"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        binary: str = "odiff",
        pixel_threshold: float = 0.1,
    ):
        self.runner = runner or CommandRunner()
        self.binary = binary
        self.pixel_threshold = pixel_threshold
        self._available: bool | None = None

    def is_available(self) -> bool:
        """Probe PATH once; the answer is cached for the backend's lifetime."""
        if self._available is None:
            self._available = shutil.which(self.binary) is not None
            if not self._available:
                logger.debug("ODiff not found, skipping")
        return self._available

    async def compare(self, baseline: Path, current: Path, diff_path: Path) -> DiffOutcome:
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        result = await self.runner.run(
            self.binary, str(baseline), str(current), str(diff_path),
            f"--threshold={self.pixel_threshold}",
            check=False,
        )
        output = result.stdout + result.stderr

        if result.returncode == EXIT_MATCH:
            return DiffOutcome(percent=0.0, diff_path=None, backend=self.name)
        if result.returncode == EXIT_LAYOUT_DIFF:
            raise DimensionMismatch(_image_size(baseline), _image_size(current))
        if result.returncode == EXIT_PIXEL_DIFF:
            percent = parse_diff_percentage(output)
            if percent is None:
                raise ComparisonError(f"Could not parse odiff output: {output.strip()!r}")
            return DiffOutcome(
                percent=percent,
                diff_path=diff_path if diff_path.exists() else None,
                backend=self.name,
            )
        raise ComparisonError(
            f"odiff exited with code {result.returncode}: {output.strip()}"
        )


def _image_size(path: Path) -> tuple[int, int]:
    with Image.open(path) as img:
        return img.size

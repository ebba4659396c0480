"""Common result shape for the pixel-difference backends."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class DiffOutcome:
    """Normalized backend output.

    ``percent`` is only comparable with results from the same backend: odiff
    and the in-process backend derive it from different metrics.
    """

    percent: float
    diff_path: Optional[Path]
    backend: str


class DiffBackend:
    name = "base"

    async def compare(self, baseline: Path, current: Path, diff_path: Path) -> DiffOutcome:
        raise NotImplementedError

"""Baseline store: accepted reference images keyed by platform and device."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from visual_testing.errors import EmptyBaselineSource, MissingBaselineDirectory

logger = logging.getLogger(__name__)

IMAGE_SUFFIX = ".png"


def list_images(directory: Path) -> list[str]:
    """PNG file names directly inside ``directory``, dotfiles excluded, sorted."""
    if not directory.is_dir():
        return []
    return sorted(
        p.name for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() == IMAGE_SUFFIX and not p.name.startswith(".")
    )


@dataclass
class BaselineStatus:
    baseline_dir: Path
    exists: bool
    baselines: list[str] = field(default_factory=list)
    new_scenes: list[str] = field(default_factory=list)  # captured, no baseline yet
    missing_scenes: list[str] = field(default_factory=list)  # baseline, not recaptured


class BaselineStore:
    """Manages ``<baselineDir>/<platform>/<device>/<sceneId>.png``.

    Only ``update`` and ``clear`` mutate the directory; comparison reads it.
    """

    def __init__(self, baseline_dir: Path, screenshot_root: Path):
        self.baseline_dir = baseline_dir
        self.screenshot_root = screenshot_root

    def capture_dir(self, branch: str) -> Path:
        return self.screenshot_root / branch

    def baseline_path(self, scene_id: str) -> Path:
        return self.baseline_dir / f"{scene_id}{IMAGE_SUFFIX}"

    def has_baseline(self, scene_id: str) -> bool:
        return self.baseline_path(scene_id).is_file()

    def list_baselines(self) -> list[str]:
        return list_images(self.baseline_dir)

    def update(self, branch: str) -> list[str]:
        """Replace baselines with the screenshots captured on ``branch``."""
        source = self.capture_dir(branch)
        if not source.is_dir():
            raise MissingBaselineDirectory(
                f"Screenshot directory not found: {source}. "
                "Capture screenshots before updating baselines."
            )
        files = list_images(source)
        if not files:
            raise EmptyBaselineSource(f"No screenshots found in {source} to use as baselines")

        self.baseline_dir.mkdir(parents=True, exist_ok=True)
        for name in files:
            shutil.copy2(source / name, self.baseline_dir / name)
            logger.debug("Copied baseline %s", name)
        logger.info("Updated %d baselines in %s", len(files), self.baseline_dir)
        return files

    def clear(self) -> bool:
        if not self.baseline_dir.exists():
            logger.warning("No baselines to clear")
            return False
        shutil.rmtree(self.baseline_dir)
        logger.info("Baselines cleared: %s", self.baseline_dir)
        return True

    def status(self, branch: str) -> BaselineStatus:
        """Compare baseline and capture file names without looking at pixels."""
        baselines = self.list_baselines()
        status = BaselineStatus(
            baseline_dir=self.baseline_dir,
            exists=self.baseline_dir.is_dir(),
            baselines=baselines,
        )
        captured = list_images(self.capture_dir(branch))
        if captured:
            baseline_set, captured_set = set(baselines), set(captured)
            status.new_scenes = [f for f in captured if f not in baseline_set]
            status.missing_scenes = [f for f in baselines if f not in captured_set]
        return status

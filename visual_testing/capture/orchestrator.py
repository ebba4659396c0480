"""Capture orchestrator — navigates to each scene in turn and captures a screenshot."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from visual_testing.catalog.parser import filter_scenes
from visual_testing.device.runner import CommandError
from visual_testing.device.settle import NoDelay, SettleStrategy
from visual_testing.device.simulator import SimulatorManager
from visual_testing.errors import VisualTestError
from visual_testing.models.capture import MANIFEST_FILE_NAME, CaptureManifest, CaptureRecord
from visual_testing.models.device import DeviceSession
from visual_testing.models.scene import Scene
from visual_testing.protocol.navigation import NavigationStrategy

logger = logging.getLogger(__name__)


def _now_millis() -> int:
    return int(time.time() * 1000)


class CaptureOrchestrator:
    """Captures scenes sequentially; one failing scene never aborts the run."""

    def __init__(
        self,
        manager: SimulatorManager,
        output_dir: Path,
        branch: str,
        commit_hash: str = "",
        settle: SettleStrategy | None = None,
    ):
        self.manager = manager
        self.output_dir = output_dir
        self.branch = branch
        self.commit_hash = commit_hash
        self.settle = settle or NoDelay()

    def image_path(self, scene: Scene) -> Path:
        return self.output_dir / f"{scene.id}.png"

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / MANIFEST_FILE_NAME

    async def capture_all(
        self,
        scenes: list[Scene],
        session: DeviceSession,
        navigator: NavigationStrategy,
        scene_filter: str | None = None,
    ) -> list[CaptureRecord]:
        """Capture every scene in order and write the run manifest."""
        scenes = filter_scenes(scenes, scene_filter)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        total = len(scenes)
        logger.info("Capturing %d scenes via %s navigation", total, navigator.name)

        records: list[CaptureRecord] = []
        for index, scene in enumerate(scenes):
            logger.info("Capturing [%d/%d]: %s/%s",
                        index + 1, total, scene.group_path, scene.variant_name)
            record = await self._capture_one(scene, session, navigator)
            records.append(record)
            if record.failure_reason:
                logger.error("Failed to capture %s: %s", scene.id, record.failure_reason)
            else:
                logger.debug("Captured %s in %dms", scene.id, record.render_duration_millis)

        manifest = self.build_manifest(records, total)
        manifest.save(self.manifest_path)
        logger.info("Capture complete: %d captured, %d failed (manifest: %s)",
                    manifest.captured_count, manifest.failed_count, self.manifest_path)
        return records

    async def _capture_one(
        self, scene: Scene, session: DeviceSession, navigator: NavigationStrategy,
    ) -> CaptureRecord:
        start = time.perf_counter()
        record = dict(
            scene_id=scene.id,
            component_name=scene.component_name,
            variant_name=scene.variant_name,
            branch=self.branch,
            commit_hash=self.commit_hash,
        )
        try:
            await navigator.navigate(scene, session)
            await self.settle.wait(f"capture {scene.id}")
            render_ms = int(round((time.perf_counter() - start) * 1000))
            path = await self.manager.capture_screenshot(session, self.image_path(scene))
        except (VisualTestError, CommandError, OSError, asyncio.TimeoutError) as e:
            return CaptureRecord(
                **record,
                captured_at_epoch_millis=_now_millis(),
                render_duration_millis=int(round((time.perf_counter() - start) * 1000)),
                failure_reason=str(e) or type(e).__name__,
            )
        return CaptureRecord(
            **record,
            image_path=str(path),
            captured_at_epoch_millis=_now_millis(),
            render_duration_millis=render_ms,
        )

    def build_manifest(self, records: list[CaptureRecord], total: int | None = None) -> CaptureManifest:
        failed = sum(1 for r in records if r.failure_reason)
        return CaptureManifest(
            branch=self.branch,
            commit_hash=self.commit_hash,
            timestamp=_now_millis(),
            screenshots=records,
            total_scenes=total if total is not None else len(records),
            captured_count=len(records) - failed,
            failed_count=failed,
        )


def load_manifest(branch_dir: Path) -> CaptureManifest | None:
    """Load ``metadata.json`` from a capture directory, if present."""
    path = branch_dir / MANIFEST_FILE_NAME
    if not path.exists():
        return None
    return CaptureManifest.load(path)

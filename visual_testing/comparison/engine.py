"""Comparison engine: runs the backend cascade and turns its output into verdicts."""

from __future__ import annotations

import logging
from pathlib import Path

from visual_testing.baseline.store import BaselineStore, list_images
from visual_testing.comparison.backend import DiffOutcome
from visual_testing.comparison.odiff import ODiffBackend
from visual_testing.comparison.pixel_diff import PixelDiffBackend
from visual_testing.comparison.ssim import structural_similarity
from visual_testing.errors import ComparisonError, DimensionMismatch, VisualTestError
from visual_testing.models.capture import CaptureRecord
from visual_testing.models.comparison import ComparisonVerdict

logger = logging.getLogger(__name__)


class ComparisonEngine:
    """Compares captures against baselines.

    Cascade: odiff when installed, else the in-process pixel backend. SSIM is
    computed independently of the backend. A scene differs when
    ``pixel_diff_percent > threshold * 100``, whichever backend measured it.
    """

    def __init__(
        self,
        threshold: float,
        diff_dir: Path,
        pixel_threshold: float = 0.1,
        odiff: ODiffBackend | None = None,
        pixel: PixelDiffBackend | None = None,
        use_odiff: bool = True,
        include_metrics: bool = True,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        self.threshold = threshold
        self.diff_dir = diff_dir
        self.include_metrics = include_metrics
        self.odiff = odiff or ODiffBackend(pixel_threshold=pixel_threshold)
        self.pixel = pixel or PixelDiffBackend(pixel_threshold=pixel_threshold)
        self.use_odiff = use_odiff and self.odiff.is_available()

    @property
    def primary_backend(self) -> str:
        return self.odiff.name if self.use_odiff else self.pixel.name

    def is_different(self, pixel_diff_percent: float) -> bool:
        return pixel_diff_percent > self.threshold * 100

    async def _run_cascade(self, baseline: Path, current: Path, diff_path: Path) -> DiffOutcome:
        if self.use_odiff:
            try:
                return await self.odiff.compare(baseline, current, diff_path)
            except DimensionMismatch:
                raise
            except (ComparisonError, OSError) as e:
                logger.warning("ODiff comparison failed, falling back to pixel diff: %s", e)
        return await self.pixel.compare(baseline, current, diff_path)

    async def compare(self, capture: CaptureRecord, store: BaselineStore) -> ComparisonVerdict:
        """Compare one capture against its baseline; raises on per-scene errors."""
        if not capture.image_path:
            raise ComparisonError(
                f"No screenshot for {capture.scene_id}: {capture.failure_reason or 'capture failed'}"
            )
        current = Path(capture.image_path)
        if not current.is_file():
            raise ComparisonError(f"Screenshot not found: {current}")

        extra = dict(
            component_name=capture.component_name,
            variant_name=capture.variant_name,
            render_duration_millis=capture.render_duration_millis,
        )

        baseline = store.baseline_path(capture.scene_id)
        if not baseline.is_file():
            logger.warning("No baseline found for %s", capture.scene_id)
            return ComparisonVerdict.new_scene(capture.scene_id, str(current), **extra)

        diff_path = self.diff_dir / f"{capture.scene_id}.png"
        outcome = await self._run_cascade(baseline, current, diff_path)
        has_difference = self.is_different(outcome.percent)
        if self.include_metrics:
            similarity = structural_similarity(baseline, current)
        else:
            # SSIM skipped; report the verdict as a binary score
            similarity = 0.0 if has_difference else 1.0

        kept_diff = None
        if has_difference and outcome.diff_path is not None and outcome.diff_path.exists():
            kept_diff = str(outcome.diff_path)
        elif diff_path.exists():
            diff_path.unlink()

        return ComparisonVerdict(
            scene_id=capture.scene_id,
            baseline_path=str(baseline),
            current_path=str(current),
            diff_path=kept_diff,
            pixel_diff_percent=min(100.0, max(0.0, outcome.percent)),
            similarity_score=similarity,
            has_difference=has_difference,
            backend=outcome.backend,
            **extra,
        )

    async def compare_all(
        self, captures: list[CaptureRecord], store: BaselineStore,
    ) -> list[ComparisonVerdict]:
        """Compare every capture; per-scene errors become failed verdicts."""
        logger.info("Comparing %d screenshots using %s", len(captures), self.primary_backend)
        verdicts = []
        for index, capture in enumerate(captures):
            logger.debug("Comparing [%d/%d]: %s", index + 1, len(captures), capture.scene_id)
            try:
                verdict = await self.compare(capture, store)
            except (VisualTestError, OSError, ValueError) as e:
                logger.error("Failed to compare %s: %s", capture.scene_id, e)
                baseline = store.baseline_path(capture.scene_id)
                verdict = ComparisonVerdict(
                    scene_id=capture.scene_id,
                    component_name=capture.component_name,
                    variant_name=capture.variant_name,
                    baseline_path=str(baseline) if baseline.is_file() else None,
                    current_path=capture.image_path,
                    render_duration_millis=capture.render_duration_millis,
                    failure_reason=str(e),
                )
            else:
                if verdict.has_difference:
                    logger.warning("%s: %.2f%% different", verdict.scene_id, verdict.pixel_diff_percent)
                else:
                    logger.debug("%s: passed", verdict.scene_id)
            verdicts.append(verdict)
        return verdicts


def records_from_directory(branch_dir: Path, branch: str) -> list[CaptureRecord]:
    """Build capture records from the PNGs in a directory when no manifest exists."""
    records = []
    for name in list_images(branch_dir):
        path = branch_dir / name
        records.append(CaptureRecord(
            scene_id=path.stem,
            image_path=str(path),
            branch=branch,
            captured_at_epoch_millis=int(path.stat().st_mtime * 1000),
        ))
    return records

"""Pipeline coordinator — capture, compare, report and upload stages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal, Optional

import httpx

from visual_testing.baseline.store import BaselineStore
from visual_testing.capture.orchestrator import CaptureOrchestrator, load_manifest
from visual_testing.catalog.parser import discover_scenes
from visual_testing.comparison.engine import ComparisonEngine, records_from_directory
from visual_testing.comparison.odiff import ODiffBackend
from visual_testing.device.runner import CommandRunner
from visual_testing.device.settle import FixedDelay, NoDelay
from visual_testing.device.simulator import SimulatorManager
from visual_testing.errors import DeviceNotBooted, VisualTestError
from visual_testing.models.capture import MANIFEST_FILE_NAME, CaptureManifest, CaptureRecord
from visual_testing.models.comparison import RESULTS_FILE_NAME, RunSummary
from visual_testing.models.config import VisualTestConfig
from visual_testing.models.scene import Scene
from visual_testing.models.upload import UploadResponse
from visual_testing.protocol.client import RenderInspectionClient, wait_for_server
from visual_testing.protocol.navigation import DeepLinkNavigator, ProtocolNavigator
from visual_testing.reporter.json_report import load_summary
from visual_testing.reporter.reporter import Reporter
from visual_testing.reporter.summary import summarize
from visual_testing.upload.client import build_payload, upload_results
from visual_testing.utils import git

logger = logging.getLogger(__name__)

Strategy = Literal["protocol", "deeplink"]

DEFAULT_BASE_BRANCH = "main"
UPLOAD_TIMEOUT_SECONDS = 30.0
DIFF_DIR_NAME = "diffs"


@dataclass
class PipelineResult:
    summary: RunSummary
    exit_code: int
    reports: dict[str, str] = field(default_factory=dict)
    upload: Optional[UploadResponse] = None
    duration: float = 0.0


class Pipeline:
    """Coordinates one visual test run against a project checkout."""

    def __init__(
        self,
        config: VisualTestConfig,
        project_path: str | Path = ".",
        manager: SimulatorManager | None = None,
        client_factory: Callable[[VisualTestConfig], RenderInspectionClient] | None = None,
        runner: CommandRunner | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.project_path = Path(project_path)
        self.runner = runner or CommandRunner()
        timing = config.timing
        self.manager = manager or SimulatorManager(
            runner=self.runner,
            boot_timeout=timing.boot_timeout_seconds,
            poll_interval=timing.boot_poll_interval_seconds,
            launch_settle=FixedDelay(timing.launch_settle_seconds),
        )
        self.client_factory = client_factory or self._default_client
        self.http_transport = http_transport

    @staticmethod
    def _default_client(config: VisualTestConfig) -> RenderInspectionClient:
        return RenderInspectionClient(
            port=config.storybook.port,
            host=config.storybook.host,
            connect_timeout=config.timing.connect_timeout_seconds,
            render_timeout=config.timing.render_timeout_seconds,
            list_timeout=config.timing.list_scenes_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Paths and metadata
    # ------------------------------------------------------------------

    @property
    def screenshot_root(self) -> Path:
        return self.project_path / self.config.screenshot_dir

    def branch_dir(self, branch: str) -> Path:
        return self.config.branch_dir(self.project_path, branch)

    def baseline_store(self) -> BaselineStore:
        return BaselineStore(self.config.baseline_root(self.project_path), self.screenshot_root)

    async def resolve_branch(self, branch: str | None) -> str:
        if branch:
            return branch
        return await git.current_branch(self.runner, git.repo_args(self.project_path))

    async def _commit_hash(self) -> str:
        return await git.commit_hash(self.runner, git.repo_args(self.project_path))

    def catalog(self) -> list[Scene]:
        """Scenes found in the project's story files."""
        return discover_scenes(self.project_path, self.config.storybook.stories_pattern)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture(
        self,
        branch: str | None = None,
        strategy: Strategy = "protocol",
        scene_filter: str | None = None,
        boot: bool = True,
        shutdown: bool = True,
        scheme: str | None = None,
        delay: float | None = None,
    ) -> list[CaptureRecord]:
        """Capture every scene for ``branch`` using the given navigation strategy."""
        branch = await self.resolve_branch(branch)
        commit = await self._commit_hash()
        logger.info("Branch: %s", branch)
        if commit:
            logger.info("Commit: %s", commit[:7])

        if strategy == "protocol":
            return await self._capture_protocol(branch, commit, scene_filter, boot, shutdown)
        if strategy == "deeplink":
            return await self._capture_deeplink(branch, commit, scene_filter, shutdown, scheme, delay)
        raise ValueError(f"Unknown capture strategy: {strategy}")

    async def _capture_protocol(
        self, branch: str, commit: str, scene_filter: str | None, boot: bool, shutdown: bool,
    ) -> list[CaptureRecord]:
        config = self.config
        orchestrator = CaptureOrchestrator(
            self.manager,
            self.branch_dir(branch),
            branch,
            commit_hash=commit,
            settle=FixedDelay(config.timing.capture_settle_seconds),
        )
        async with self.manager.session(
            config.simulator.device,
            app_id=config.bundle_id,
            boot=boot,
            shutdown=shutdown,
        ) as session:
            logger.info("Waiting for Storybook server on port %d...", config.storybook.port)
            await wait_for_server(
                config.storybook.port,
                host=config.storybook.host,
                timeout=config.timing.server_timeout_seconds,
                transport=self.http_transport,
            )
            async with self.client_factory(config) as client:
                scenes = await client.list_scenes()
                logger.info("Found %d stories", len(scenes))
                if not scenes:
                    logger.warning("No stories found matching criteria")
                    return []
                navigator = ProtocolNavigator(client, config.timing.render_timeout_seconds)
                return await orchestrator.capture_all(scenes, session, navigator, scene_filter)

    async def _capture_deeplink(
        self,
        branch: str,
        commit: str,
        scene_filter: str | None,
        shutdown: bool,
        scheme: str | None,
        delay: float | None,
    ) -> list[CaptureRecord]:
        config = self.config
        scheme = scheme or config.storybook.scheme or config.simulator.app_scheme
        if not scheme:
            raise VisualTestError(
                "URL scheme not configured. Set storybook.scheme in config or pass --scheme"
            )
        logger.info("Using URL scheme: %s", scheme)

        scenes = self.catalog()
        if not scenes:
            logger.warning("No stories found matching %s", config.storybook.stories_pattern)
            return []

        settle = FixedDelay(delay if delay is not None else config.timing.deep_link_settle_seconds)
        orchestrator = CaptureOrchestrator(
            self.manager, self.branch_dir(branch), branch, commit_hash=commit, settle=NoDelay(),
        )
        async with self.manager.session(
            config.simulator.device, boot=False, shutdown=shutdown,
        ) as session:
            if not session.is_booted:
                raise DeviceNotBooted(
                    "Simulator is not booted. Please boot it and launch the app with Storybook enabled."
                )
            navigator = DeepLinkNavigator(self.manager, scheme, settle)
            return await orchestrator.capture_all(scenes, session, navigator, scene_filter)

    async def screenshot(self, name: str | None = None, branch: str | None = None) -> Path:
        """Capture whatever is currently on screen into the branch directory."""
        branch = await self.resolve_branch(branch)
        commit = await self._commit_hash()
        session = await self.manager.find_device(self.config.simulator.device)
        if not session.is_booted:
            raise DeviceNotBooted("Simulator is not booted. Please boot it first.")

        name = name or f"screenshot-{int(time.time() * 1000)}"
        output_dir = self.branch_dir(branch)
        path = await self.manager.capture_screenshot(session, output_dir / f"{name}.png")

        orchestrator = CaptureOrchestrator(self.manager, output_dir, branch, commit_hash=commit)
        record = CaptureRecord(
            scene_id=name,
            image_path=str(path),
            branch=branch,
            commit_hash=commit,
            captured_at_epoch_millis=int(time.time() * 1000),
        )
        manifest = load_manifest(output_dir)
        records = [r for r in manifest.screenshots if r.scene_id != name] if manifest else []
        orchestrator.build_manifest(records + [record]).save(orchestrator.manifest_path)
        logger.info("Screenshot saved: %s", path)
        return path

    # ------------------------------------------------------------------
    # Compare
    # ------------------------------------------------------------------

    def _load_captures(self, branch: str) -> list[CaptureRecord]:
        branch_dir = self.branch_dir(branch)
        if not branch_dir.is_dir():
            raise VisualTestError(
                f"Screenshots not found for branch {branch} at {branch_dir}. Run capture first."
            )
        manifest: CaptureManifest | None = load_manifest(branch_dir)
        if manifest is not None:
            return manifest.screenshots
        logger.warning("No %s in %s, comparing every PNG in the directory", MANIFEST_FILE_NAME, branch_dir)
        return records_from_directory(branch_dir, branch)

    def _effective_threshold(self, threshold: float | None) -> float:
        if threshold is not None:
            return threshold
        if self.config.comparison.mode == "strict":
            return 0.0
        return self.config.comparison.threshold

    async def _compare(
        self,
        base_branch: str,
        current_branch: str | None,
        threshold: float | None,
        report: bool,
    ) -> tuple[RunSummary, dict[str, str]]:
        current_branch = await self.resolve_branch(current_branch)
        captures = self._load_captures(current_branch)
        store = self.baseline_store()
        if not store.baseline_dir.is_dir():
            logger.warning("No baselines found at %s. All scenes will be marked as new.",
                           store.baseline_dir)

        branch_dir = self.branch_dir(current_branch)
        engine = ComparisonEngine(
            threshold=self._effective_threshold(threshold),
            diff_dir=branch_dir / DIFF_DIR_NAME,
            pixel_threshold=self.config.comparison.pixel_threshold,
            odiff=ODiffBackend(self.runner, pixel_threshold=self.config.comparison.pixel_threshold),
            include_metrics=self.config.comparison.include_metrics,
        )
        verdicts = await engine.compare_all(captures, store)
        summary = summarize(verdicts, base_branch, current_branch)
        reports = Reporter().generate_reports(summary, branch_dir, html=report)
        logger.info("Comparison complete: %d passed, %d changed, %d failed",
                    summary.passed_count, summary.changed_count, summary.failed_count)
        return summary, reports

    async def compare(
        self,
        base_branch: str = DEFAULT_BASE_BRANCH,
        current_branch: str | None = None,
        threshold: float | None = None,
        report: bool = True,
    ) -> RunSummary:
        """Compare the current branch's captures against the stored baselines."""
        summary, _ = await self._compare(base_branch, current_branch, threshold, report)
        return summary

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(self, branch: str | None = None, api_url: str | None = None) -> UploadResponse:
        api_url = api_url or self.config.api_url
        if not api_url:
            raise VisualTestError("API URL not configured. Set apiUrl in config or pass --api-url")
        branch = await self.resolve_branch(branch)
        summary = load_summary(self.branch_dir(branch) / RESULTS_FILE_NAME)
        payload = build_payload(
            summary,
            branch,
            await self._commit_hash(),
            await git.commit_message(self.runner, git.repo_args(self.project_path)),
        )
        return await upload_results(
            api_url, payload, timeout=UPLOAD_TIMEOUT_SECONDS, transport=self.http_transport,
        )

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run_test(
        self,
        branch: str | None = None,
        base_branch: str = DEFAULT_BASE_BRANCH,
        skip_capture: bool = False,
        skip_upload: bool = False,
        threshold: float | None = None,
        strategy: Strategy = "protocol",
        shutdown: bool = True,
    ) -> PipelineResult:
        """Capture, compare and optionally upload. Exit code 1 when anything changed."""
        start = time.time()
        branch = await self.resolve_branch(branch)
        logger.info("=== Visual regression test: %s vs %s ===", branch, base_branch)

        if skip_capture:
            logger.info("--- Step 1: Capture (skipped) ---")
        else:
            logger.info("--- Step 1: Capture ---")
            records = await self.capture(branch, strategy=strategy, shutdown=shutdown)
            failed = sum(1 for r in records if r.failure_reason)
            logger.info("--- Step 1 complete: %d captured, %d failed ---", len(records) - failed, failed)

        logger.info("--- Step 2: Compare ---")
        summary, reports = await self._compare(base_branch, branch, threshold, report=True)
        logger.info("--- Step 2 complete: %d changed of %d ---", summary.changed_count, summary.total_scenes)

        upload = None
        if not self.config.api_url:
            logger.info("--- Step 3: Upload (skipped - no apiUrl configured) ---")
        elif skip_upload:
            logger.info("--- Step 3: Upload (skipped) ---")
        else:
            logger.info("--- Step 3: Upload ---")
            try:
                upload = await self.upload(branch)
            except VisualTestError as e:
                logger.warning("Upload failed - results saved locally: %s", e)

        duration = time.time() - start
        exit_code = 1 if summary.changed_count > 0 else 0
        if exit_code:
            logger.warning("=== Visual test completed with changes (%.1fs) ===", duration)
        else:
            logger.info("=== Visual test passed (%.1fs) ===", duration)
        return PipelineResult(
            summary=summary,
            exit_code=exit_code,
            reports=reports,
            upload=upload,
            duration=round(duration, 2),
        )

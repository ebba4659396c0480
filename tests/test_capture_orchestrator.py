"""Tests for the capture orchestrator."""

import json
from pathlib import Path

import pytest

from visual_testing.capture.orchestrator import CaptureOrchestrator, load_manifest
from visual_testing.device.settle import NoDelay
from visual_testing.protocol.client import RenderInspectionClient
from visual_testing.protocol.navigation import DeepLinkNavigator, ProtocolNavigator

from conftest import DroppingStorybookSocket, FakeStorybookSocket, connector_for


def _make_client(socket: FakeStorybookSocket) -> RenderInspectionClient:
    return RenderInspectionClient(port=7007, render_timeout=0.05, connector=connector_for(socket))


class TestCaptureAll:
    """Tests for CaptureOrchestrator.capture_all."""

    @pytest.mark.asyncio
    async def test_captures_every_scene_in_order(self, manager, booted_session, scenes, tmp_path: Path):
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main", commit_hash="abc123")
        socket = FakeStorybookSocket()

        async with _make_client(socket) as client:
            records = await orchestrator.capture_all(scenes, booted_session, ProtocolNavigator(client))

        assert [r.scene_id for r in records] == [s.id for s in scenes]
        assert all(r.succeeded for r in records)
        assert all(Path(r.image_path).exists() for r in records)
        assert records[0].image_path == str(tmp_path / "main" / f"{scenes[0].id}.png")
        assert records[0].commit_hash == "abc123"
        assert records[0].component_name == "Button"

    @pytest.mark.asyncio
    async def test_navigation_timeout_is_recorded_and_run_continues(
        self, manager, fake_runner, booted_session, scenes, tmp_path: Path
    ):
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main")
        socket = FakeStorybookSocket(silent=(scenes[1].id,))

        async with _make_client(socket) as client:
            records = await orchestrator.capture_all(scenes, booted_session, ProtocolNavigator(client))

        assert len(records) == 3
        failed = [r for r in records if r.failure_reason]
        assert [r.scene_id for r in failed] == [scenes[1].id]
        assert failed[0].image_path is None
        assert "did not render" in failed[0].failure_reason
        # no screenshot attempted for the scene that never rendered
        assert len(fake_runner.simctl_calls("io")) == 2

        manifest = load_manifest(tmp_path / "main")
        assert manifest is not None
        assert manifest.total_scenes == 3
        assert manifest.captured_count == 2
        assert manifest.failed_count == 1
        assert [r.scene_id for r in manifest.screenshots] == [s.id for s in scenes]

    @pytest.mark.asyncio
    async def test_dropped_connection_fails_remaining_scenes_and_writes_manifest(
        self, manager, booted_session, scenes, tmp_path: Path
    ):
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main")
        socket = DroppingStorybookSocket(sends_before_drop=1)

        async with _make_client(socket) as client:
            records = await orchestrator.capture_all(scenes, booted_session, ProtocolNavigator(client))

        assert [r.scene_id for r in records] == [s.id for s in scenes]
        assert records[0].succeeded
        assert all("connection closed" in r.failure_reason for r in records[1:])

        manifest = load_manifest(tmp_path / "main")
        assert manifest is not None
        assert manifest.captured_count == 1
        assert manifest.failed_count == 2

    @pytest.mark.asyncio
    async def test_screenshot_failure_is_recorded(self, manager, fake_runner, booted_session, scenes, tmp_path):
        fake_runner.failures["io"] = "display not ready"
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main")
        navigator = DeepLinkNavigator(manager, "myapp", NoDelay())

        records = await orchestrator.capture_all(scenes, booted_session, navigator)

        assert len(records) == 3
        assert all(not r.succeeded for r in records)
        assert all("Failed to capture screenshot" in r.failure_reason for r in records)

    @pytest.mark.asyncio
    async def test_filter_is_applied(self, manager, booted_session, scenes, tmp_path: Path):
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main")
        navigator = DeepLinkNavigator(manager, "myapp", NoDelay())

        records = await orchestrator.capture_all(scenes, booted_session, navigator, scene_filter="input")

        assert [r.scene_id for r in records] == ["forms-input--default"]
        manifest = json.loads((tmp_path / "main" / "metadata.json").read_text())
        assert manifest["totalScenes"] == 1

    @pytest.mark.asyncio
    async def test_navigation_happens_before_capture(self, manager, fake_runner, booted_session, scenes, tmp_path):
        orchestrator = CaptureOrchestrator(manager, tmp_path / "main", "main")
        navigator = DeepLinkNavigator(manager, "myapp", NoDelay())

        await orchestrator.capture_all(scenes[:1], booted_session, navigator)

        subcommands = [c[2] for c in fake_runner.calls if c[:2] == ("xcrun", "simctl")]
        assert subcommands == ["openurl", "io"]


class TestLoadManifest:
    """Tests for load_manifest."""

    def test_missing_manifest(self, tmp_path: Path):
        assert load_manifest(tmp_path) is None

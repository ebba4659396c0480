"""Pytest configuration and shared fixtures."""

import asyncio
import json
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from visual_testing.catalog.parser import generate_scene_id
from visual_testing.device.runner import CommandError, CommandResult
from visual_testing.device.settle import NoDelay
from visual_testing.device.simulator import SimulatorManager
from visual_testing.models.capture import CaptureRecord
from visual_testing.models.config import (
    ComparisonConfig,
    SimulatorConfig,
    StorybookConfig,
    TimingConfig,
    VisualTestConfig,
)
from visual_testing.models.device import DeviceSession, LifecycleState
from visual_testing.models.scene import Scene


DEVICE_NAME = "iPhone 15 Pro"
DEVICE_UDID = "AAAA-1111"
RUNTIME = "com.apple.CoreSimulator.SimRuntime.iOS-17-0"


# ============================================================================
# Image Helpers
# ============================================================================


def write_png(path: Path, size=(32, 32), color=(255, 255, 255, 255), pixels=None) -> Path:
    """Write a solid PNG, optionally overriding individual pixels ({(x, y): rgba})."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGBA", size, color)
    for xy, rgba in (pixels or {}).items():
        img.putpixel(xy, rgba)
    img.save(path)
    return path


@pytest.fixture
def png_factory(tmp_path: Path) -> Callable[..., Path]:
    """Create PNG files relative to tmp_path."""
    def _make(name: str, **kwargs) -> Path:
        return write_png(tmp_path / name, **kwargs)
    return _make


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def timing_config() -> TimingConfig:
    """Timings with every wait disabled so tests never sleep."""
    return TimingConfig(
        boot_timeout_seconds=0.5,
        boot_poll_interval_seconds=0.01,
        launch_settle_seconds=0,
        deep_link_settle_seconds=0,
        capture_settle_seconds=0,
        connect_timeout_seconds=1,
        render_timeout_seconds=0.2,
        list_scenes_timeout_seconds=0.5,
        server_timeout_seconds=0.5,
    )


@pytest.fixture
def visual_config(timing_config: TimingConfig) -> VisualTestConfig:
    """Create a test visual testing configuration."""
    return VisualTestConfig(
        storybook=StorybookConfig(
            port=7007,
            stories_pattern="src/**/*.stories.?(ts|tsx)",
            scheme="myapp",
        ),
        simulator=SimulatorConfig(device=DEVICE_NAME, bundle_id="com.example.app"),
        comparison=ComparisonConfig(threshold=0.01),
        timing=timing_config,
    )


@pytest.fixture
def temp_config_file(visual_config: VisualTestConfig, tmp_path: Path) -> Path:
    """Create a temporary config file in a project directory."""
    config_file = tmp_path / ".rn-visual-testing.json"
    visual_config.save(config_file)
    return config_file


# ============================================================================
# Fake Command Runner
# ============================================================================


class FakeRunner:
    """Stands in for CommandRunner: emulates simctl, git and odiff.

    Screenshots are written as solid PNGs; ``screenshot_colors`` maps a file
    stem to the color used for it.
    """

    def __init__(self, state: str = "Shutdown", boot_to: str = "Booted"):
        self.calls: list[tuple[str, ...]] = []
        self.state = state
        self.boot_to = boot_to
        self.failures: dict[str, str] = {}  # simctl subcommand -> stderr
        self.screenshot_colors: dict[str, tuple] = {}
        self.screenshot_size = (24, 24)
        self.branch = "feature/login"
        self.commit = "0123456789abcdef"
        self.message = "Tweak button padding"

    def devices_json(self) -> str:
        return json.dumps({
            "devices": {
                RUNTIME: [
                    {"udid": "UNAVAILABLE", "name": DEVICE_NAME, "state": "Shutdown", "isAvailable": False},
                    {"udid": DEVICE_UDID, "name": DEVICE_NAME, "state": self.state, "isAvailable": True},
                    {"udid": "BBBB-2222", "name": "iPhone SE", "state": "Shutdown", "isAvailable": True},
                ]
            }
        })

    def simctl_calls(self, subcommand: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[:3] == ("xcrun", "simctl", subcommand)]

    async def run(self, *args: str, check: bool = True, timeout: float | None = None) -> CommandResult:
        self.calls.append(args)
        stdout, stderr, code = "", "", 0

        if args[:2] == ("xcrun", "simctl"):
            sub = args[2]
            if sub in self.failures:
                stderr, code = self.failures[sub], 1
            elif sub == "list":
                stdout = self.devices_json()
            elif sub == "boot":
                self.state = self.boot_to
            elif sub == "shutdown":
                self.state = "Shutdown"
            elif sub == "io":
                path = Path(args[-1])
                color = self.screenshot_colors.get(path.stem, (255, 255, 255, 255))
                write_png(path, size=self.screenshot_size, color=color)
        elif args[0] == "git":
            if "--abbrev-ref" in args:
                stdout = self.branch + "\n"
            elif "rev-parse" in args:
                stdout = self.commit + "\n"
            elif "log" in args:
                stdout = self.message + "\n"
        else:
            stderr, code = f"{args[0]}: command not found", 127

        result = CommandResult(args=tuple(args), returncode=code, stdout=stdout, stderr=stderr)
        if check and not result.ok:
            raise CommandError(result)
        return result


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def manager(fake_runner: FakeRunner) -> SimulatorManager:
    return SimulatorManager(
        runner=fake_runner,
        boot_timeout=0.5,
        poll_interval=0.01,
        launch_settle=NoDelay(),
    )


@pytest.fixture
def booted_session() -> DeviceSession:
    return DeviceSession(
        handle=DEVICE_UDID,
        display_name=DEVICE_NAME,
        lifecycle_state=LifecycleState.BOOTED,
        runtime=RUNTIME,
    )


# ============================================================================
# Fake Storybook Socket
# ============================================================================


class FakeStorybookSocket:
    """In-memory stand-in for the in-app WebSocket server.

    Replies to getStories with ``stories`` and to selectStory with
    storyRendered, except for ids listed in ``silent``.
    """

    def __init__(self, stories: dict | None = None, silent: tuple = (), auto_reply: bool = True):
        self.stories = stories or {}
        self.silent = set(silent)
        self.auto_reply = auto_reply
        self.sent: list[dict] = []
        self.closed = False
        self.incoming: asyncio.Queue = asyncio.Queue()

    def push(self, message) -> None:
        self.incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    async def send(self, data: str) -> None:
        message = json.loads(data)
        self.sent.append(message)
        if not self.auto_reply:
            return
        if message["type"] == "getStories":
            self.push({"type": "setStories", "stories": self.stories})
        elif message["type"] == "selectStory" and message["storyId"] not in self.silent:
            self.push({"type": "storyRendered", "storyId": message["storyId"]})

    async def recv(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)


class DroppingStorybookSocket(FakeStorybookSocket):
    """Socket whose connection drops after ``sends_before_drop`` successful sends."""

    def __init__(self, *args, sends_before_drop: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.sends_before_drop = sends_before_drop

    async def send(self, data: str) -> None:
        if len(self.sent) >= self.sends_before_drop:
            raise ConnectionClosedError(None, None)
        await super().send(data)


def story_index(*scenes: Scene) -> dict:
    """Build a setStories ``stories`` map from scenes."""
    return {
        s.id: {"id": s.id, "title": s.group_path, "name": s.variant_name}
        for s in scenes
    }


def connector_for(socket: FakeStorybookSocket):
    async def _connect(url: str):
        return socket
    return _connect


# ============================================================================
# Scene and Capture Fixtures
# ============================================================================


def make_scene(title: str = "UI/Button", variant: str = "Primary") -> Scene:
    return Scene(
        id=generate_scene_id(title, variant),
        component_name=title.split("/")[-1],
        variant_name=variant,
        group_path=title,
    )


@pytest.fixture
def scenes() -> list[Scene]:
    return [
        make_scene("UI/Button", "Primary"),
        make_scene("UI/Button", "Secondary"),
        make_scene("Forms/Input", "Default"),
    ]


def make_capture(scene_id: str, image_path: Path | None, branch: str = "feature", **kwargs) -> CaptureRecord:
    return CaptureRecord(
        scene_id=scene_id,
        image_path=str(image_path) if image_path else None,
        branch=branch,
        captured_at_epoch_millis=1_700_000_000_000,
        **kwargs,
    )

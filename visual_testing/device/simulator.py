"""Device session manager — finds, boots, launches and shuts down iOS simulators via simctl."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from visual_testing.device.runner import CommandError, CommandRunner
from visual_testing.device.settle import FixedDelay, SettleStrategy
from visual_testing.errors import (
    AppLaunchError,
    CaptureFailure,
    DeviceBootTimeout,
    DeviceNotFound,
    VisualTestError,
)
from visual_testing.models.device import DeviceSession, LifecycleState

logger = logging.getLogger(__name__)


class SimulatorManager:
    """Owns the lifecycle of one simulator session for the duration of a run."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        boot_timeout: float = 30.0,
        poll_interval: float = 1.0,
        launch_settle: SettleStrategy | None = None,
    ):
        self.runner = runner or CommandRunner()
        self.boot_timeout = boot_timeout
        self.poll_interval = poll_interval
        self.launch_settle = launch_settle or FixedDelay(3.0)

    async def _simctl(self, *args: str, check: bool = True):
        return await self.runner.run("xcrun", "simctl", *args, check=check)

    async def list_devices(self) -> list[DeviceSession]:
        """Enumerate every available simulator, in simctl's order."""
        result = await self._simctl("list", "devices", "--json")
        data = json.loads(result.stdout)
        devices = []
        for runtime, entries in data.get("devices", {}).items():
            for entry in entries:
                if entry.get("isAvailable") is False:
                    continue
                devices.append(DeviceSession(
                    handle=entry["udid"],
                    display_name=entry["name"],
                    lifecycle_state=LifecycleState.parse(entry.get("state")),
                    runtime=runtime,
                ))
        return devices

    async def find_device(self, name: str) -> DeviceSession:
        """Find a simulator by name, preferring one that is already booted."""
        matches = [d for d in await self.list_devices() if d.display_name == name]
        if not matches:
            raise DeviceNotFound(f"Simulator not found: {name}")
        for device in matches:
            if device.is_booted:
                return device
        return matches[0]

    async def query_state(self, session: DeviceSession) -> LifecycleState:
        for device in await self.list_devices():
            if device.handle == session.handle:
                return device.lifecycle_state
        return LifecycleState.UNKNOWN

    @staticmethod
    def _sync_state(session: DeviceSession, state: LifecycleState) -> None:
        if session.lifecycle_state != state:
            session.transition(state)

    async def boot(self, session: DeviceSession) -> None:
        """Boot the simulator unless it is already booted, then wait for Booted."""
        state = await self.query_state(session)
        if state == LifecycleState.BOOTED:
            logger.info("Simulator already booted")
            self._sync_state(session, state)
            return

        logger.info("Booting simulator %s...", session.display_name)
        session.transition(LifecycleState.BOOTING)
        try:
            await self._simctl("boot", session.handle)
        except CommandError as e:
            if "current state: Booted" in str(e):
                logger.info("Simulator already booted")
                session.transition(LifecycleState.BOOTED)
                return
            raise VisualTestError(f"Failed to boot simulator: {e}") from e

        await self._wait_for_booted(session)
        logger.info("Simulator booted")

    async def _wait_for_booted(self, session: DeviceSession) -> None:
        deadline = time.monotonic() + self.boot_timeout
        while time.monotonic() < deadline:
            try:
                if await self.query_state(session) == LifecycleState.BOOTED:
                    session.transition(LifecycleState.BOOTED)
                    return
            except (CommandError, ValueError) as e:
                logger.debug("Device not ready yet: %s", e)
            await asyncio.sleep(self.poll_interval)
        raise DeviceBootTimeout(
            f"Simulator {session.display_name} did not boot within {self.boot_timeout:g}s"
        )

    async def shutdown(self, session: DeviceSession) -> None:
        """Best-effort shutdown; never raises."""
        try:
            state = await self.query_state(session)
            if state == LifecycleState.SHUTDOWN:
                logger.info("Simulator already shutdown")
                self._sync_state(session, state)
                return
            logger.info("Shutting down simulator...")
            session.transition(LifecycleState.SHUTTING_DOWN)
            await self._simctl("shutdown", session.handle)
            session.transition(LifecycleState.SHUTDOWN)
            logger.info("Simulator shutdown")
        except Exception as e:
            logger.warning("Failed to shutdown simulator: %s", e)

    async def launch_app(self, session: DeviceSession, app_id: str) -> None:
        logger.info("Launching app: %s", app_id)
        try:
            await self._simctl("launch", session.handle, app_id)
        except CommandError as e:
            raise AppLaunchError(f"Failed to launch app: {e}") from e
        await self.launch_settle.wait("app launch")

    async def terminate_app(self, session: DeviceSession, app_id: str) -> None:
        try:
            await self._simctl("terminate", session.handle, app_id)
            logger.info("App terminated")
        except Exception as e:
            # App might not be running
            logger.debug("Failed to terminate app: %s", e)

    async def capture_screenshot(self, session: DeviceSession, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._simctl("io", session.handle, "screenshot", str(output_path))
        except (CommandError, asyncio.TimeoutError) as e:
            raise CaptureFailure(f"Failed to capture screenshot: {e}") from e
        logger.debug("Screenshot saved: %s", output_path)
        return output_path

    async def open_url(self, session: DeviceSession, url: str) -> None:
        try:
            await self._simctl("openurl", session.handle, url)
        except (CommandError, asyncio.TimeoutError) as e:
            raise VisualTestError(f"Failed to open {url}: {e}") from e

    async def install_app(self, session: DeviceSession, app_path: str) -> None:
        logger.info("Installing app: %s", app_path)
        try:
            await self._simctl("install", session.handle, app_path)
        except CommandError as e:
            raise VisualTestError(f"Failed to install app: {e}") from e

    async def is_app_installed(self, session: DeviceSession, bundle_id: str) -> bool:
        result = await self._simctl("listapps", session.handle, check=False)
        return result.ok and bundle_id in result.stdout

    async def erase(self, session: DeviceSession) -> None:
        logger.info("Erasing simulator data...")
        try:
            await self._simctl("erase", session.handle)
        except CommandError as e:
            raise VisualTestError(f"Failed to erase simulator: {e}") from e

    @asynccontextmanager
    async def session(
        self,
        device_name: str,
        app_id: str | None = None,
        boot: bool = True,
        shutdown: bool = True,
    ) -> AsyncIterator[DeviceSession]:
        """Acquire a booted session and release it on every exit path."""
        session = await self.find_device(device_name)
        logger.info("Found simulator: %s (%s)", session.display_name, session.lifecycle_state.value)
        try:
            if boot:
                await self.boot(session)
            if app_id:
                await self.launch_app(session, app_id)
            yield session
        finally:
            if app_id:
                await self.terminate_app(session, app_id)
            if shutdown:
                await self.shutdown(session)

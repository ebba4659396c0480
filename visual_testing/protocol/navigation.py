"""Navigation strategies: bring a scene to the foreground before capture.

A run uses exactly one strategy. ``navigate`` returns only once navigation is
complete, so capture always happens after it.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from visual_testing.device.settle import SettleStrategy
from visual_testing.device.simulator import SimulatorManager
from visual_testing.models.device import DeviceSession
from visual_testing.models.scene import Scene
from visual_testing.protocol.client import RenderInspectionClient

logger = logging.getLogger(__name__)


class NavigationStrategy:
    name = "base"

    async def navigate(self, scene: Scene, session: DeviceSession) -> None:
        raise NotImplementedError


class ProtocolNavigator(NavigationStrategy):
    """Select the scene over the socket and wait for its render-complete message."""

    name = "protocol"

    def __init__(self, client: RenderInspectionClient, render_timeout: float | None = None):
        self.client = client
        self.render_timeout = render_timeout

    async def navigate(self, scene: Scene, session: DeviceSession) -> None:
        await self.client.select_scene(scene.id, timeout=self.render_timeout)


class DeepLinkNavigator(NavigationStrategy):
    """Open ``<scheme>://?STORYBOOK_STORY_ID=<id>`` and wait a fixed settle delay.

    There is no render-complete signal on this path.
    """

    name = "deeplink"

    def __init__(self, manager: SimulatorManager, scheme: str, settle: SettleStrategy):
        self.manager = manager
        self.scheme = scheme
        self.settle = settle

    def url_for(self, scene: Scene) -> str:
        return f"{self.scheme}://?{urlencode({'STORYBOOK_STORY_ID': scene.id})}"

    async def navigate(self, scene: Scene, session: DeviceSession) -> None:
        url = self.url_for(scene)
        logger.debug("Opening %s", url)
        await self.manager.open_url(session, url)
        await self.settle.wait(f"deep link {scene.id}")

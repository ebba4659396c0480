"""Render-inspection protocol client — JSON messages over a persistent WebSocket.

The in-app server does not echo request ids, so replies are correlated by
message type. Each request kind owns a single pending slot: a second request of
the same kind while one is outstanding raises ``ProtocolBusy``. When a request
times out its slot is cleared, and a late reply that arrives while no request
of its kind is pending is discarded by the reader.

``storyRendered`` replies carry the story id and are matched on it, so a late
ack for one scene never completes the wait for another. ``setStories`` carries
nothing to correlate on: a late index that arrives after a new ``getStories``
was sent satisfies that new call. Both replies describe the same story index.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from visual_testing.errors import (
    ConnectionTimeout,
    NavigationTimeout,
    NotConnected,
    ProtocolBusy,
    ProtocolTimeout,
)
from visual_testing.models.scene import Scene

logger = logging.getLogger(__name__)

GET_STORIES = "getStories"
SET_STORIES = "setStories"
SELECT_STORY = "selectStory"
STORY_RENDERED = "storyRendered"

Matcher = Callable[[dict], bool]


class RenderInspectionClient:
    """Client for the in-app render-inspection (Storybook) WebSocket server."""

    def __init__(
        self,
        port: int,
        host: str = "localhost",
        connect_timeout: float = 60.0,
        render_timeout: float = 5.0,
        list_timeout: float = 10.0,
        connector: Callable[[str], Awaitable[Any]] | None = None,
    ):
        self.url = f"ws://{host}:{port}"
        self.connect_timeout = connect_timeout
        self.render_timeout = render_timeout
        self.list_timeout = list_timeout
        self._connector = connector or ws_connect
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._pending: dict[str, tuple[Matcher, asyncio.Future]] = {}

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        try:
            self._ws = await asyncio.wait_for(self._connector(self.url), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionTimeout(f"Storybook connection timeout ({self.url})") from e
        except OSError as e:
            raise ConnectionTimeout(f"Storybook connection error: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Connected to Storybook at %s", self.url)

    async def disconnect(self) -> None:
        if self._reader:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self._fail_pending(NotConnected("Disconnected from Storybook"))
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
            logger.debug("Storybook connection closed")

    async def __aenter__(self) -> "RenderInspectionClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    async def _read_loop(self) -> None:
        try:
            while True:
                raw = await self._ws.recv()
                self._dispatch(raw)
        except ConnectionClosed:
            logger.debug("Storybook socket closed by server")
            self._fail_pending(NotConnected("Storybook connection closed"))

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(message, dict):
            return
        msg_type = message.get("type")
        slot = self._pending.get(msg_type)
        if slot is None:
            logger.debug("Discarding unsolicited %s message", msg_type)
            return
        matches, future = slot
        if not matches(message):
            logger.debug("Ignoring %s message for another request: %s", msg_type, message)
            return
        del self._pending[msg_type]
        if not future.done():
            future.set_result(message)

    def _fail_pending(self, error: Exception) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _request(
        self,
        payload: dict,
        response_type: str,
        matches: Matcher,
        timeout: float,
        on_timeout: Callable[[], Exception],
    ) -> dict:
        if self._ws is None or self._reader is None or self._reader.done():
            raise NotConnected("Not connected to Storybook")
        if response_type in self._pending:
            raise ProtocolBusy(f"A request awaiting '{response_type}' is already pending")

        future = asyncio.get_running_loop().create_future()
        self._pending[response_type] = (matches, future)
        try:
            await self._ws.send(json.dumps(payload))
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise on_timeout() from e
        except ConnectionClosed as e:
            raise NotConnected(f"Storybook connection closed: {e}") from e
        finally:
            slot = self._pending.get(response_type)
            if slot is not None and slot[1] is future:
                del self._pending[response_type]

    async def list_scenes(self) -> list[Scene]:
        """Ask the app for its story index."""
        message = await self._request(
            {"type": GET_STORIES},
            SET_STORIES,
            lambda m: True,
            self.list_timeout,
            lambda: ProtocolTimeout("Failed to get stories"),
        )
        scenes = []
        for scene_id, story in (message.get("stories") or {}).items():
            title = story.get("title") or story.get("kind") or ""
            scenes.append(Scene(
                id=scene_id,
                component_name=title.split("/")[-1],
                variant_name=story.get("name") or story.get("story") or "",
                group_path=title,
            ))
        return scenes

    async def select_scene(self, scene_id: str, timeout: float | None = None) -> None:
        """Navigate to a scene and wait until the app reports it rendered."""
        timeout = timeout if timeout is not None else self.render_timeout
        await self._request(
            {"type": SELECT_STORY, "storyId": scene_id},
            STORY_RENDERED,
            lambda m: m.get("storyId") == scene_id,
            timeout,
            lambda: NavigationTimeout(scene_id, timeout),
        )


async def wait_for_server(
    port: int,
    host: str = "localhost",
    timeout: float = 60.0,
    interval: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Poll the Storybook HTTP endpoint until it answers."""
    url = f"http://{host}:{port}"
    deadline = time.monotonic() + timeout
    async with httpx.AsyncClient(timeout=interval, transport=transport) as client:
        while time.monotonic() < deadline:
            try:
                response = await client.get(url)
                if response.is_success:
                    logger.info("Storybook server is ready")
                    return
            except httpx.HTTPError:
                pass
            await asyncio.sleep(interval)
    raise ConnectionTimeout(f"Storybook server timeout ({url})")

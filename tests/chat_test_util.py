import asyncio
import time
from typing import Any, Callable, Dict, List

from aiohttp import WSMsgType, web


def far_future(hours: int = 24) -> int:
    return int(time.time() * 1000) + hours * 60 * 60 * 1000


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class FakeChatServer:
    """In-process stand-in for the chat backend: HTTP API plus websocket channel."""

    def __init__(self, *, admin_password: str = "letmein", history: List[Dict[str, Any]] | None = None) -> None:
        self.admin_password = admin_password
        self.history = list(history or [])
        self.received: List[Dict[str, Any]] = []
        self.sockets: List[web.WebSocketResponse] = []
        self.verify_calls = 0
        self.history_calls = 0
        # Tests may set these to hold a request open until the event is set.
        self.verify_gate: asyncio.Event | None = None
        self.history_gate: asyncio.Event | None = None
        self.app = web.Application()
        self.app.router.add_post("/api/verify-admin", self.handle_verify_admin)
        self.app.router.add_get("/api/messages", self.handle_messages)
        self.app.router.add_get("/ws", self.handle_ws)

    async def handle_verify_admin(self, request: web.Request) -> web.Response:
        self.verify_calls += 1
        body = await request.json()
        if self.verify_gate is not None:
            await self.verify_gate.wait()
        if body.get("password") == self.admin_password:
            return web.json_response({"success": True})
        return web.json_response({"success": False}, status=401)

    async def handle_messages(self, _: web.Request) -> web.Response:
        self.history_calls += 1
        if self.history_gate is not None:
            await self.history_gate.wait()
        return web.json_response(self.history)

    async def handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                self.received.append(msg.json())
        return ws

    def frames(self, event: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.received if frame.get("t") == event]

    async def wait_for_frame(self, event: str, *, count: int = 1, timeout: float = 2.0) -> Dict[str, Any]:
        await wait_until(lambda: len(self.frames(event)) >= count, timeout=timeout)
        return self.frames(event)[count - 1]

    async def push(self, event: str, body: Any = None) -> None:
        frame: Dict[str, Any] = {"v": 1, "t": event}
        if body is not None:
            frame["body"] = body
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.send_json(frame)

    async def push_raw(self, text: str) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.send_str(text)

    async def drop_all(self) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.close()


class FakeTimer:
    """Timer double whose callback only runs when the test fires it."""

    def __init__(self) -> None:
        self.callback = None
        self.delay_s = None
        self.starts = 0

    @property
    def active(self) -> bool:
        return self.callback is not None

    def start(self, delay_s, callback) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.starts += 1

    def cancel(self) -> None:
        self.callback = None

    def fire(self) -> None:
        callback, self.callback = self.callback, None
        callback()

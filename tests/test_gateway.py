import asyncio
import json
from types import SimpleNamespace

from fastapi import WebSocketDisconnect

from parley.http.ws import Gateway, websocket_endpoint
from parley.messaging import MessageService
from parley.store import JsonStore
from parley.topics import ServerTopic, TopicRouter


class ScriptedWebSocket:
    """Feeds frames to the endpoint; callables run before their frame is read."""

    def __init__(self, gateway, script):
        self.app = SimpleNamespace(state=SimpleNamespace(gateway=gateway))
        self.scope = {"path": "/ws"}
        self.script = list(script)
        self.sent: list[str] = []
        self.close_code = None

    async def accept(self, headers=None):
        pass

    async def send_text(self, message: str):
        self.sent.append(message)

    async def close(self, code: int = 1000):
        self.close_code = code

    async def receive_json(self):
        # Give the connection writer a chance to run between frames.
        await asyncio.sleep(0.01)
        if not self.script:
            raise WebSocketDisconnect(code=1000)
        item = self.script.pop(0)
        if callable(item):
            item = item()
        return item


def test_endpoint_stops_reading_once_router_drops_connection(db_path):
    async def _run():
        router = TopicRouter(outbox_limit=1)
        gateway = Gateway(MessageService(JsonStore(db_path), router), router)

        def overflow():
            # No await between the publishes, so the second overflows the outbox.
            router.publish(ServerTopic("1"), {"op": "server-message"})
            router.publish(ServerTopic("1"), {"op": "server-message"})
            return {"op": "join", "d": {"kind": "server", "id": "2"}}

        leftover = {"op": "join", "d": {"kind": "server", "id": "3"}}
        ws = ScriptedWebSocket(
            gateway,
            [{"op": "join", "d": {"kind": "server", "id": "1"}}, overflow, leftover],
        )
        await websocket_endpoint(ws)
        await router.flush()

        assert ws.close_code == 1011
        assert not router.is_connected(ws)
        assert ws.script == [leftover]
        assert router.subscribers(ServerTopic("2")) == set()

    asyncio.run(_run())


def test_endpoint_answers_non_json_frames(db_path):
    class BinaryFrameSocket(ScriptedWebSocket):
        async def receive_json(self):
            if self.script == ["binary"]:
                self.script.pop(0)
                # Starlette reads message["text"], absent on binary frames.
                raise KeyError("text")
            return await super().receive_json()

    async def _run():
        router = TopicRouter()
        gateway = Gateway(MessageService(JsonStore(db_path), router), router)
        ws = BinaryFrameSocket(
            gateway, ["binary", {"op": "leave", "d": {"kind": "dm", "id": "a-b"}}]
        )

        await websocket_endpoint(ws)
        frames = [json.loads(m) for m in ws.sent]
        assert frames == [
            {"op": "error", "d": {"status": 400, "detail": "invalid JSON"}},
            {"op": "ack", "d": {"kind": "dm", "id": "a-b", "joined": False}},
        ]

    asyncio.run(_run())

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol, Set, Union

from .errors import DeliveryError

logger = logging.getLogger(__name__)

SEND_TIMEOUT = 5.0
OUTBOX_LIMIT = 256
# Internal error: the server gave up on this connection.
DROP_CLOSE_CODE = 1011


@dataclass(frozen=True)
class ServerTopic:
    server_id: str

    @property
    def kind(self) -> str:
        return "server"

    @property
    def key(self) -> str:
        return self.server_id


@dataclass(frozen=True)
class DmTopic:
    thread_id: str

    @property
    def kind(self) -> str:
        return "dm"

    @property
    def key(self) -> str:
        return self.thread_id


Topic = Union[ServerTopic, DmTopic]


def make_topic(kind: str, key: str) -> Topic:
    if kind == "server":
        return ServerTopic(key)
    if kind == "dm":
        return DmTopic(key)
    raise ValueError(f"unknown topic kind: {kind!r}")


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(eq=False)
class Connection:
    transport: Transport
    outbox: asyncio.Queue
    topics: Set[Topic] = field(default_factory=set)
    writer: asyncio.Task | None = None


class TopicRouter:
    """Tracks live connections and the topics each one has joined.

    Publications are encoded once and queued on each target connection's
    outbox.  A single writer task per connection drains the outbox, so every
    connection sees publications in the order :meth:`publish` was called.
    A connection whose send fails, times out or whose outbox overflows is
    dropped without affecting the other subscribers, and its transport is
    closed so the client knows to reconnect.
    """

    def __init__(
        self, send_timeout: float = SEND_TIMEOUT, outbox_limit: int = OUTBOX_LIMIT
    ) -> None:
        self.send_timeout = send_timeout
        self.outbox_limit = outbox_limit
        self.connections: Dict[Transport, Connection] = {}
        self._subscribers: Dict[Topic, Set[Transport]] = {}
        self._connect_count = 0
        self._disconnect_count = 0
        self._closing: Set[asyncio.Task] = set()

    def register(self, transport: Transport) -> Connection:
        """Track ``transport`` and start its writer; needs a running loop."""
        existing = self.connections.get(transport)
        if existing is not None:
            return existing
        conn = Connection(transport, outbox=asyncio.Queue(self.outbox_limit))
        conn.writer = asyncio.get_running_loop().create_task(self._writer(conn))
        self.connections[transport] = conn
        self._connect_count += 1
        logger.info("router connect count=%s live=%s", self._connect_count, len(self.connections))
        return conn

    async def connect(self, websocket) -> Connection:
        await websocket.accept()
        return self.register(websocket)

    def disconnect(self, transport: Transport) -> None:
        conn = self.connections.pop(transport, None)
        if conn is None:
            return
        for topic in list(conn.topics):
            self._remove_subscriber(topic, transport)
        conn.topics.clear()
        self._drain(conn)
        if conn.writer is not None and conn.writer is not asyncio.current_task():
            conn.writer.cancel()
        self._disconnect_count += 1
        logger.info(
            "router disconnect count=%s live=%s", self._disconnect_count, len(self.connections)
        )

    def is_connected(self, transport: Transport) -> bool:
        return transport in self.connections

    def drop(self, transport: Transport, reason: str) -> None:
        """Disconnect ``transport`` and close it with :data:`DROP_CLOSE_CODE`."""
        if transport not in self.connections:
            return
        logger.warning("router dropping connection: %s", reason)
        self.disconnect(transport)
        task = asyncio.get_running_loop().create_task(self._close_transport(transport))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def subscribe(self, transport: Transport, topic: Topic) -> bool:
        """Add ``topic`` to the connection; returns ``False`` if already joined."""
        conn = self.connections.get(transport)
        if conn is None or topic in conn.topics:
            return False
        conn.topics.add(topic)
        self._subscribers.setdefault(topic, set()).add(transport)
        logger.debug("router subscribe kind=%s id=%s", topic.kind, topic.key)
        return True

    def unsubscribe(self, transport: Transport, topic: Topic) -> bool:
        conn = self.connections.get(transport)
        if conn is None or topic not in conn.topics:
            return False
        conn.topics.discard(topic)
        self._remove_subscriber(topic, transport)
        logger.debug("router unsubscribe kind=%s id=%s", topic.kind, topic.key)
        return True

    def subscribers(self, topic: Topic) -> Set[Transport]:
        return set(self._subscribers.get(topic, ()))

    def publish(self, topic: Topic, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every connection subscribed to ``topic`` now."""
        targets = self._subscribers.get(topic)
        if not targets:
            return 0
        message = self._encode(event)
        delivered = 0
        for transport in list(targets):
            if self._enqueue(transport, message):
                delivered += 1
        logger.debug(
            "router publish kind=%s id=%s op=%s delivered=%s",
            topic.kind,
            topic.key,
            event.get("op"),
            delivered,
        )
        return delivered

    def broadcast(self, event: Dict[str, Any]) -> int:
        """Queue ``event`` for every live connection."""
        if not self.connections:
            return 0
        message = self._encode(event)
        delivered = 0
        for transport in list(self.connections):
            if self._enqueue(transport, message):
                delivered += 1
        logger.debug("router broadcast op=%s delivered=%s", event.get("op"), delivered)
        return delivered

    def send(self, transport: Transport, event: Dict[str, Any]) -> bool:
        """Queue a reply for a single connection, behind earlier publications."""
        return self._enqueue(transport, self._encode(event))

    async def flush(self) -> None:
        """Wait until every outbox has been handed to its transport.

        Pending closes of dropped connections are awaited as well.
        """
        await asyncio.gather(
            *(conn.outbox.join() for conn in list(self.connections.values()))
        )
        if self._closing:
            await asyncio.gather(*list(self._closing))

    async def close(self) -> None:
        for transport in list(self.connections):
            self.disconnect(transport)

    @staticmethod
    def _encode(event: Dict[str, Any]) -> str:
        try:
            return json.dumps(event)
        except (TypeError, ValueError) as exc:
            raise DeliveryError(f"event {event.get('op')!r} is not serialisable") from exc

    def _enqueue(self, transport: Transport, message: str) -> bool:
        conn = self.connections.get(transport)
        if conn is None:
            return False
        try:
            conn.outbox.put_nowait(message)
        except asyncio.QueueFull:
            self.drop(transport, f"outbox full limit={self.outbox_limit}")
            return False
        return True

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await asyncio.wait_for(
                transport.close(code=DROP_CLOSE_CODE), self.send_timeout
            )
        except Exception as exc:
            # The peer may already be gone; the connection is unregistered either way.
            logger.info("router close after drop failed: %s", exc)

    def _remove_subscriber(self, topic: Topic, transport: Transport) -> None:
        subs = self._subscribers.get(topic)
        if not subs:
            return
        subs.discard(transport)
        if not subs:
            self._subscribers.pop(topic, None)

    @staticmethod
    def _drain(conn: Connection) -> None:
        while True:
            try:
                conn.outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            conn.outbox.task_done()

    async def _writer(self, conn: Connection) -> None:
        while True:
            message = await conn.outbox.get()
            try:
                await asyncio.wait_for(
                    conn.transport.send_text(message), self.send_timeout
                )
            except asyncio.CancelledError:
                conn.outbox.task_done()
                raise
            except Exception as exc:
                conn.outbox.task_done()
                self.drop(conn.transport, f"send failed ({exc!r})")
                return
            conn.outbox.task_done()

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

from ..errors import ParleyError, ValidationError
from ..messaging import MessageService
from ..topics import Topic, TopicRouter, make_topic

logger = logging.getLogger(__name__)


def _topic_from(data: Dict[str, Any]) -> Topic:
    kind = data.get("kind")
    key = data.get("id")
    if key is None or not str(key).strip():
        raise ValidationError("id required")
    try:
        return make_topic(str(kind), str(key))
    except ValueError:
        raise ValidationError("kind must be 'server' or 'dm'") from None


class Gateway:
    """Translates websocket frames into router and message service calls.

    Frames are JSON objects ``{"op": ..., "d": {...}}``.  Replies go through
    the router's outbox so they stay ordered with publications.
    """

    def __init__(self, service: MessageService, router: TopicRouter) -> None:
        self.service = service
        self.router = router

    async def handle(self, websocket: WebSocket, message: Any) -> None:
        if not isinstance(message, dict):
            self.reply_error(websocket, ValidationError("frame must be an object"))
            return
        op = message.get("op")
        data = message.get("d") or {}
        if not isinstance(data, dict):
            self.reply_error(websocket, ValidationError("d must be an object"))
            return
        try:
            if op == "join":
                self._join(websocket, data)
            elif op == "leave":
                self._leave(websocket, data)
            elif op == "submit-server-message":
                await self.service.post_server_message(
                    data.get("serverId"),
                    data.get("text"),
                    channel_id=data.get("channelId"),
                    author=data.get("author"),
                )
            else:
                logger.debug("ws ignoring op=%r", op)
        except ParleyError as exc:
            logger.info("ws op=%s rejected status=%s: %s", op, exc.http_status, exc.message)
            self.reply_error(websocket, exc)

    def _join(self, websocket: WebSocket, data: Dict[str, Any]) -> None:
        topic = _topic_from(data)
        joined = self.router.subscribe(websocket, topic)
        logger.info("ws join kind=%s id=%s new=%s", topic.kind, topic.key, joined)
        self.router.send(
            websocket,
            {"op": "ack", "d": {"kind": topic.kind, "id": topic.key, "joined": True}},
        )

    def _leave(self, websocket: WebSocket, data: Dict[str, Any]) -> None:
        topic = _topic_from(data)
        self.router.unsubscribe(websocket, topic)
        logger.info("ws leave kind=%s id=%s", topic.kind, topic.key)
        self.router.send(
            websocket,
            {"op": "ack", "d": {"kind": topic.kind, "id": topic.key, "joined": False}},
        )

    def reply_error(self, websocket: WebSocket, exc: ParleyError) -> None:
        self.router.send(
            websocket,
            {"op": "error", "d": {"status": exc.http_status, "detail": exc.message}},
        )


async def websocket_endpoint(websocket: WebSocket) -> None:
    gateway: Gateway = websocket.app.state.gateway
    router = gateway.router
    path = websocket.scope.get("path", "")
    await router.connect(websocket)
    logger.info("WS %s connected", path)
    try:
        # The router closes connections it drops; stop reading from them too.
        while router.is_connected(websocket):
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: binary frame, which carries no "text".
                gateway.reply_error(websocket, ValidationError("invalid JSON"))
                continue
            await gateway.handle(websocket, data)
        logger.info("WS %s dropped by router", path)
    except WebSocketDisconnect:
        logger.info("WS %s disconnected", path)
    finally:
        router.disconnect(websocket)

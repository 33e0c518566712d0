from __future__ import annotations

"""Message submission for servers, direct messages and the timeline.

Each submission runs the same three steps: validate the input, commit the new
entity through the store, then publish the committed entity to live
connections.  The commit is the durability boundary.  Nothing is published
for a submission whose commit failed, and a publish failure never undoes a
commit.

Publishing happens synchronously right after ``commit`` returns.  With no
``await`` in between, publications leave in the same order the store
serialised the commits.
"""

import logging
from typing import Any, Dict, List

from .errors import DeliveryError, NotFoundError, ValidationError
from .store import (
    Channel,
    DmMessage,
    DmThread,
    JsonStore,
    Server,
    ServerMessage,
    Snapshot,
    TimelinePost,
    User,
    thread_id_for,
)
from .store.models import DEFAULT_CHANNEL_ID, utcnow
from .topics import DmTopic, ServerTopic, Topic, TopicRouter
from .validation import optional_name, require_name, require_text

logger = logging.getLogger(__name__)

OP_TIMELINE_POST = "new-timeline-post"
OP_NEW_SERVER = "new-server"
OP_SERVER_MESSAGE = "server-message"
OP_DM_MESSAGE = "dm-message"


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


class MessageService:
    def __init__(self, store: JsonStore, router: TopicRouter) -> None:
        self.store = store
        self.router = router

    # ---- Submissions ----

    async def post_timeline(self, author: object, text: object) -> TimelinePost:
        author_value = optional_name(author, "Anonymous", "author")
        text_value = require_text(text, "text")
        created: List[TimelinePost] = []

        def mutate(snapshot: Snapshot) -> Snapshot:
            post = TimelinePost(
                id=self.store.ids.next_int(),
                author=author_value,
                text=text_value,
                created_at=utcnow(),
            )
            snapshot.timeline.insert(0, post)
            created.append(post)
            return snapshot

        await self.store.commit(mutate)
        post = created[0]
        logger.info("timeline post id=%s author=%s", post.id, post.author)
        self._broadcast({"op": OP_TIMELINE_POST, "d": _dump(post)})
        return post

    async def create_server(self, name: object = None) -> Server:
        name_value = optional_name(name, "New Server", "name")
        created: List[Server] = []

        def mutate(snapshot: Snapshot) -> Snapshot:
            server = Server(
                id=self.store.ids.next_str(),
                name=name_value,
                channels=[Channel(id=DEFAULT_CHANNEL_ID, name=DEFAULT_CHANNEL_ID)],
                messages=[],
            )
            snapshot.servers.append(server)
            created.append(server)
            return snapshot

        await self.store.commit(mutate)
        server = created[0]
        logger.info("server created id=%s name=%s", server.id, server.name)
        self._broadcast({"op": OP_NEW_SERVER, "d": _dump(server)})
        return server

    async def post_server_message(
        self,
        server_id: str,
        text: object,
        channel_id: object = None,
        author: object = None,
    ) -> ServerMessage:
        server_key = require_name(server_id, "serverId")
        text_value = require_text(text, "text")
        channel_value = optional_name(channel_id, DEFAULT_CHANNEL_ID, "channelId")
        author_value = optional_name(author, "anonymous", "author")
        created: List[ServerMessage] = []

        def mutate(snapshot: Snapshot) -> Snapshot:
            server = snapshot.server(server_key)
            if server is None:
                raise NotFoundError("server not found")
            if server.channel(channel_value) is None:
                raise NotFoundError("channel not found")
            msg = ServerMessage(
                id=self.store.ids.next_int(),
                author=author_value,
                text=text_value,
                channel_id=channel_value,
                created_at=utcnow(),
            )
            server.messages.append(msg)
            created.append(msg)
            return snapshot

        await self.store.commit(mutate)
        msg = created[0]
        logger.info(
            "server message server=%s channel=%s id=%s", server_key, channel_value, msg.id
        )
        self._publish(
            ServerTopic(server_key),
            {"op": OP_SERVER_MESSAGE, "d": {"serverId": server_key, "msg": _dump(msg)}},
        )
        return msg

    async def send_dm(self, sender: object, recipient: object, text: object) -> DmMessage:
        sender_value = require_name(sender, "from")
        recipient_value = require_name(recipient, "to")
        if sender_value == recipient_value:
            raise ValidationError("from and to must differ")
        text_value = require_text(text, "text")
        thread_id = thread_id_for(sender_value, recipient_value)
        created: List[DmMessage] = []

        def mutate(snapshot: Snapshot) -> Snapshot:
            thread = snapshot.thread(thread_id)
            if thread is None:
                thread = DmThread(
                    id=thread_id,
                    participants=sorted([sender_value, recipient_value]),
                    messages=[],
                )
                snapshot.dms.append(thread)
            msg = DmMessage(
                id=self.store.ids.next_int(),
                sender=sender_value,
                text=text_value,
                created_at=utcnow(),
            )
            thread.messages.append(msg)
            created.append(msg)
            return snapshot

        await self.store.commit(mutate)
        msg = created[0]
        logger.info("dm message thread=%s id=%s", thread_id, msg.id)
        self._publish(
            DmTopic(thread_id),
            {"op": OP_DM_MESSAGE, "d": {"threadId": thread_id, "msg": _dump(msg)}},
        )
        return msg

    async def register_user(self, name: object) -> User:
        name_value = require_name(name)
        created: List[User] = []

        def mutate(snapshot: Snapshot) -> Snapshot:
            user = User(id=self.store.ids.next_str(), name=name_value)
            snapshot.users.append(user)
            created.append(user)
            return snapshot

        await self.store.commit(mutate)
        user = created[0]
        logger.info("user created id=%s", user.id)
        return user

    # ---- Reads ----

    async def list_timeline(self) -> List[TimelinePost]:
        return (await self.store.snapshot()).timeline

    async def list_servers(self) -> List[Server]:
        return (await self.store.snapshot()).servers

    async def get_server(self, server_id: str) -> Server:
        server = (await self.store.snapshot()).server(server_id)
        if server is None:
            logger.info("server not found id=%s", server_id)
            raise NotFoundError("server not found")
        return server

    async def list_dms(self) -> List[DmThread]:
        return (await self.store.snapshot()).dms

    async def get_dm_thread(self, thread_id: str) -> DmThread:
        thread = (await self.store.snapshot()).thread(thread_id)
        if thread is None:
            raise NotFoundError("dm thread not found")
        return thread

    async def list_users(self) -> List[User]:
        return (await self.store.snapshot()).users

    # ---- Fan-out ----

    def _publish(self, topic: Topic, event: Dict[str, Any]) -> None:
        try:
            self.router.publish(topic, event)
        except DeliveryError:
            logger.exception(
                "publish failed kind=%s id=%s op=%s", topic.kind, topic.key, event["op"]
            )

    def _broadcast(self, event: Dict[str, Any]) -> None:
        try:
            self.router.broadcast(event)
        except DeliveryError:
            logger.exception("broadcast failed op=%s", event["op"])

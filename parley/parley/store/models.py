from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CHANNEL_ID = "general"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class User(CamelModel):
    id: str
    name: str


class Channel(CamelModel):
    id: str
    name: str


class ServerMessage(CamelModel):
    id: int
    author: str
    text: str
    channel_id: str = Field(default=DEFAULT_CHANNEL_ID, alias="channelId")
    created_at: datetime = Field(alias="createdAt")


class Server(CamelModel):
    id: str
    name: str
    channels: List[Channel] = Field(default_factory=list)
    messages: List[ServerMessage] = Field(default_factory=list)

    def channel(self, channel_id: str) -> Channel | None:
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        return None


class DmMessage(CamelModel):
    id: int
    sender: str = Field(alias="from")
    text: str
    created_at: datetime = Field(alias="createdAt")


class DmThread(CamelModel):
    id: str
    participants: List[str]
    messages: List[DmMessage] = Field(default_factory=list)


class TimelinePost(CamelModel):
    id: int
    author: str
    text: str
    created_at: datetime = Field(alias="createdAt")


class Snapshot(CamelModel):
    """The whole persisted universe as one versioned document."""

    version: int = 0
    users: List[User] = Field(default_factory=list)
    servers: List[Server] = Field(default_factory=list)
    timeline: List[TimelinePost] = Field(default_factory=list)
    dms: List[DmThread] = Field(default_factory=list)

    def server(self, server_id: str) -> Server | None:
        for server in self.servers:
            if server.id == server_id:
                return server
        return None

    def thread(self, thread_id: str) -> DmThread | None:
        for thread in self.dms:
            if thread.id == thread_id:
                return thread
        return None

    def max_id(self) -> int:
        """Largest numeric id recorded anywhere in the document."""
        ids: list[int] = [post.id for post in self.timeline]
        for server in self.servers:
            ids.extend(msg.id for msg in server.messages)
            if server.id.isdigit():
                ids.append(int(server.id))
        for thread in self.dms:
            ids.extend(msg.id for msg in thread.messages)
        ids.extend(int(user.id) for user in self.users if user.id.isdigit())
        return max(ids, default=0)


def thread_id_for(first: str, second: str) -> str:
    """Return the DM thread id for a participant pair, independent of order."""
    return "-".join(sorted([first, second]))

from .ids import IdSource
from .models import (
    Channel,
    DmMessage,
    DmThread,
    Server,
    ServerMessage,
    Snapshot,
    TimelinePost,
    User,
    thread_id_for,
)
from .session import JsonStore, get_store, init_store

__all__ = [
    "Channel",
    "DmMessage",
    "DmThread",
    "IdSource",
    "JsonStore",
    "Server",
    "ServerMessage",
    "Snapshot",
    "TimelinePost",
    "User",
    "get_store",
    "init_store",
    "thread_id_for",
]

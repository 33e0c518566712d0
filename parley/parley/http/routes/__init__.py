from . import dms, ping, servers, timeline, users

__all__ = ["dms", "ping", "servers", "timeline", "users"]

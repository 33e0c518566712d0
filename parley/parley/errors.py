from __future__ import annotations

"""Error hierarchy shared by the store, message service and gateway.

Every error carries the HTTP status the REST layer answers with.  Websocket
frames reuse the same status in their ``error`` payload.
"""


class ParleyError(Exception):
    """Base class for all Parley errors."""

    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"detail": self.message}


class ValidationError(ParleyError):
    """A required field is missing, blank or out of range."""

    http_status = 400


class NotFoundError(ParleyError):
    """A referenced server, channel, thread or user does not exist."""

    http_status = 404


class PersistenceError(ParleyError):
    """The durable write failed; the previous snapshot is still current."""

    http_status = 500


class DeliveryError(ParleyError):
    """Live fan-out failed after the message was already committed."""

    http_status = 500

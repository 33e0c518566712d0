from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Request bodies.  Fields are optional here so that missing values reach the
# message service and are reported with its error messages.


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TimelinePostBody(CamelModel):
    author: Optional[str] = None
    text: Optional[str] = None


class ServerBody(CamelModel):
    name: Optional[str] = None


class ServerMessageBody(CamelModel):
    text: Optional[str] = None
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    author: Optional[str] = None


class DmBody(CamelModel):
    sender: Optional[str] = Field(default=None, alias="from")
    recipient: Optional[str] = Field(default=None, alias="to")
    text: Optional[str] = None


class UserBody(CamelModel):
    name: Optional[str] = None

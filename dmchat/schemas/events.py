# dmchat/schemas/events.py
from typing import List
from pydantic import BaseModel, Field
from datetime import datetime, timezone

from dmchat.models.enums import EventKind
from dmchat.schemas.messages import MessageView


def _now():
    return datetime.now(timezone.utc)


class MessageEvent(BaseModel):
    """Lifecycle event pushed over the realtime channel; clients replace by payload.id"""
    type: EventKind
    payload: MessageView
    timestamp: datetime = Field(default_factory=_now)


class PresenceEvent(BaseModel):
    type: str = "online_users"
    user_ids: List[str]
    timestamp: datetime = Field(default_factory=_now)


class SystemEvent(BaseModel):
    """Replies to client-initiated frames (pong, error)"""
    type: str
    content: str = ""
    timestamp: datetime = Field(default_factory=_now)

# dmchat/schemas/messages.py
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from dmchat.models.enums import AttachmentKind

DELETED_PLACEHOLDER = "deleted message"


class AttachmentSchema(BaseModel):
    """Tagged media reference: kind plus where to fetch it."""
    kind: AttachmentKind
    url: str = Field(..., min_length=1)
    name: str = ""

    class Config:
        from_attributes = True


class ReactionView(BaseModel):
    user_id: str
    emoji: str
    name: str
    profile_pic: Optional[str] = None


class MessageView(BaseModel):
    """A message as one particular viewer is allowed to see it."""
    id: str
    sender_id: str
    receiver_id: str
    text: str
    attachment: Optional[AttachmentSchema] = None
    created_at: datetime
    updated_at: datetime
    edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_for: List[str] = []
    reactions: List[ReactionView] = []


class MessageCreate(BaseModel):
    """
    Body of a send request. Either ``text`` or some media is required;
    media is an already uploaded ``attachment`` or a base64 data URI in
    ``file`` that the server uploads.
    """
    text: Optional[str] = None
    attachment: Optional[AttachmentSchema] = None
    file: Optional[str] = None
    file_name: Optional[str] = None


class MessageUpdate(BaseModel):
    text: Optional[str] = None


class ReactionRequest(BaseModel):
    emoji: Optional[str] = None


class VoiceMessageCreate(BaseModel):
    audio_data: Optional[str] = None
    receiver_id: Optional[str] = None

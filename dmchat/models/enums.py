# dmchat/models/enums.py
import enum


class AttachmentKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    PDF = "pdf"
    AUDIO = "audio"


class EventKind(str, enum.Enum):
    CREATED = "created"
    EDITED = "edited"
    DELETED = "deleted"
    REACTED = "reacted"

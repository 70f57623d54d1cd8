"""
Schema definitions for the application.
This module exports all schemas for easy importing throughout the app.
"""

# Import from users
from dmchat.schemas.users import UserSummary, UserResponse

# Import from messages
from dmchat.schemas.messages import (
    DELETED_PLACEHOLDER, AttachmentSchema, ReactionView, MessageView,
    MessageCreate, MessageUpdate, ReactionRequest, VoiceMessageCreate
)

# Import from events
from dmchat.schemas.events import MessageEvent, PresenceEvent, SystemEvent

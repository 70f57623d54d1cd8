# dmchat/services/conversation_service.py
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Sequence
import logging

from dmchat.core.crypto import MessageCipher, get_cipher
from dmchat.exceptions import CryptoError, StoreError
from dmchat.models.message import Message
from dmchat.models.user import User
from dmchat.schemas.messages import DELETED_PLACEHOLDER, AttachmentSchema, MessageView, ReactionView
from dmchat.services.user_service import UserService

logger = logging.getLogger(__name__)


class ConversationProjector:
    """
    Turns stored message rows into the view one viewer is allowed to see.

    Messages deleted for everyone, or hidden by the viewer, come out redacted:
    placeholder text and no attachment. Reactions stay visible on redacted
    messages.
    """

    def __init__(self, user_service: UserService, cipher: Optional[MessageCipher] = None):
        self.user_service = user_service
        self.cipher = cipher or get_cipher()

    def project(self, messages: Sequence[Message], viewer_id: str) -> List[MessageView]:
        profiles = self._load_profiles(messages)
        return [self._render(message, viewer_id, profiles) for message in messages]

    def project_one(self, message: Message, viewer_id: str) -> MessageView:
        return self.project([message], viewer_id)[0]

    def _load_profiles(self, messages: Sequence[Message]) -> Dict[str, User]:
        user_ids = {reaction.user_id for message in messages for reaction in message.reactions}
        try:
            return self.user_service.get_users_by_ids(user_ids)
        except StoreError as e:
            # Reactions fall back to raw user ids
            logger.warning(f"Reaction enrichment unavailable: {e.detail}")
            return {}

    def _render(self, message: Message, viewer_id: str, profiles: Dict[str, User]) -> MessageView:
        if message.is_hidden_for(viewer_id):
            text = DELETED_PLACEHOLDER
            attachment = None
        else:
            try:
                text = self.cipher.decrypt(message.text)
            except CryptoError:
                logger.error(f"Stored text of message {message.id} could not be decrypted")
                raise
            attachment = self._render_attachment(message)

        return MessageView(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            text=text,
            attachment=attachment,
            created_at=message.created_at,
            updated_at=message.updated_at,
            edited=bool(message.edited),
            edited_at=message.edited_at,
            is_deleted=bool(message.is_deleted),
            deleted_for=sorted(message.deleted_for),
            reactions=[
                self._render_reaction(reaction.user_id, reaction.emoji, profiles)
                for reaction in message.reactions
            ]
        )

    @staticmethod
    def _render_attachment(message: Message) -> Optional[AttachmentSchema]:
        attachment = message.attachment
        if attachment is None:
            return None
        return AttachmentSchema(kind=attachment.kind, url=attachment.url, name=attachment.name)

    @staticmethod
    def _render_reaction(user_id: str, emoji: str, profiles: Dict[str, User]) -> ReactionView:
        profile = profiles.get(user_id)
        if profile is None:
            return ReactionView(user_id=user_id, emoji=emoji, name=user_id)
        return ReactionView(
            user_id=user_id,
            emoji=emoji,
            name=profile.display_name,
            profile_pic=profile.profile_pic
        )


class ConversationService:
    """Service for conversation-level reads"""

    def __init__(self, db: Session):
        self.db = db
        self.user_service = UserService(db)

    def list_partners(self, user_id: str) -> List[User]:
        """Everyone the user can open a conversation with (self excluded)"""
        return self.user_service.list_users_except(user_id)

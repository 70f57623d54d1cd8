# dmchat/services/chat_service.py
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import List, Optional
import asyncio
import logging

from dmchat.core.crypto import MessageCipher, get_cipher
from dmchat.exceptions import NotFound, PermissionDenied, ValidationError
from dmchat.models.enums import AttachmentKind, EventKind
from dmchat.models.message import Attachment, Message
from dmchat.models.user import User
from dmchat.schemas.messages import AttachmentSchema, MessageView
from dmchat.services.conversation_service import ConversationProjector, ConversationService
from dmchat.services.message_service import MessageService
from dmchat.services.search_service import SearchService
from dmchat.services.storage_service import StorageService
from dmchat.services.user_service import UserService
from dmchat.websockets.event_dispatcher import RealtimeDispatcher

logger = logging.getLogger(__name__)

VOICE_MESSAGE_NAME = "voice_message"


class ChatService:
    """
    Entry point for every direct-message operation a client can request.

    Mutations follow the same path: validate, commit to the store, render the
    result for the caller, then push the event to both participants. The push
    is shielded from request cancellation and can never undo the commit.
    """

    def __init__(
        self,
        db: Session,
        dispatcher: RealtimeDispatcher,
        storage: Optional[StorageService] = None,
        cipher: Optional[MessageCipher] = None
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.storage = storage or StorageService()
        cipher = cipher or get_cipher()

        self.user_service = UserService(db)
        self.conversation_service = ConversationService(db)
        self.message_service = MessageService(db, cipher=cipher)
        self.projector = ConversationProjector(self.user_service, cipher=cipher)
        self.search_service = SearchService(self.message_service, self.projector, cipher=cipher)

    def list_partners(self, user_id: str) -> List[User]:
        return self.conversation_service.list_partners(user_id)

    def get_conversation(self, user_id: str, other_user_id: str) -> List[MessageView]:
        messages = self.message_service.list_conversation(user_id, other_user_id)
        return self.projector.project(messages, user_id)

    def search_messages(self, user_id: str, other_user_id: str, query: str) -> List[MessageView]:
        return self.search_service.search(user_id, other_user_id, query)

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        attachment: Optional[AttachmentSchema] = None,
        file: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> MessageView:
        if not text and attachment is None and not file:
            raise ValidationError("Message must contain text or file.")
        self._check_recipient(sender_id, receiver_id)

        if file:
            stored_attachment = await run_in_threadpool(self.storage.upload_data_uri, file, file_name)
        elif attachment is not None:
            stored_attachment = Attachment(kind=attachment.kind, url=attachment.url, name=attachment.name)
        else:
            stored_attachment = None

        message = self.message_service.create_message(sender_id, receiver_id, text, stored_attachment)
        logger.info(f"Message {message.id} sent from {sender_id} to {receiver_id}")
        return await self._publish(EventKind.CREATED, message, sender_id)

    async def send_voice_message(self, sender_id: str, receiver_id: Optional[str], audio_data: Optional[str]) -> MessageView:
        if not audio_data or not receiver_id:
            raise ValidationError("Audio data or receiver missing")
        self._check_recipient(sender_id, receiver_id)

        attachment = await run_in_threadpool(
            self.storage.upload_data_uri, audio_data, VOICE_MESSAGE_NAME, AttachmentKind.AUDIO
        )
        message = self.message_service.create_message(sender_id, receiver_id, None, attachment)
        logger.info(f"Voice message {message.id} sent from {sender_id} to {receiver_id}")
        return await self._publish(EventKind.CREATED, message, sender_id)

    async def edit_message(self, user_id: str, message_id: str, text: Optional[str]) -> MessageView:
        if not text:
            raise ValidationError("Text is required")
        message = self._get_participating(user_id, message_id)
        if message.sender_id != user_id:
            raise PermissionDenied("Only the sender can edit a message")

        message = self.message_service.set_text(message_id, text)
        return await self._publish(EventKind.EDITED, message, user_id)

    async def delete_message(self, user_id: str, message_id: str) -> MessageView:
        self._get_participating(user_id, message_id)
        message = self.message_service.mark_deleted_for(message_id, user_id)
        logger.info(f"Message {message_id} deleted for {user_id} (deleted for both: {message.is_deleted})")
        return await self._publish(EventKind.DELETED, message, user_id)

    async def react_to_message(self, user_id: str, message_id: str, emoji: Optional[str]) -> MessageView:
        if not emoji or not emoji.strip():
            raise ValidationError("Emoji is required")
        self._get_participating(user_id, message_id)
        message = self.message_service.apply_reaction(message_id, user_id, emoji.strip())
        return await self._publish(EventKind.REACTED, message, user_id)

    def _check_recipient(self, sender_id: str, receiver_id: str):
        if sender_id == receiver_id:
            raise ValidationError("Cannot send a message to yourself")
        if not self.user_service.get_user(receiver_id):
            raise NotFound("User not found")

    def _get_participating(self, user_id: str, message_id: str) -> Message:
        message = self.message_service.get_message(message_id)
        # Outsiders are told the message does not exist
        if user_id not in message.participants:
            raise NotFound("Message not found")
        return message

    async def _publish(self, event_kind: EventKind, message: Message, viewer_id: str) -> MessageView:
        """
        Push the event to both participants, then return the caller's view.

        Views are rendered lazily per recipient, so a participant whose view
        cannot be rendered is skipped by the dispatcher instead of failing the
        already committed mutation.
        """
        await asyncio.shield(
            self.dispatcher.notify(
                event_kind,
                message,
                message.sender_id,
                message.receiver_id,
                view_for=lambda participant: self.projector.project_one(message, participant)
            )
        )
        return self.projector.project_one(message, viewer_id)

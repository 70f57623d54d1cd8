# dmchat/services/message_service.py
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import and_, or_
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional
import logging
import threading

from dmchat.core.crypto import MessageCipher, get_cipher
from dmchat.core.reactions import apply_reaction
from dmchat.exceptions import NotFound, StoreError, ValidationError
from dmchat.models.message import Attachment, Message, MessageDeletion, MessageReaction
from dmchat.models.mixins import utcnow

logger = logging.getLogger(__name__)


class MessageLocks:
    """
    Per-message mutual exclusion for read-modify-write mutations.

    Entries are reference counted and dropped once no caller holds or waits
    on them, so the registry only grows with the number of messages being
    mutated concurrently.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, message_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(message_id)
            if entry is None:
                entry = self._locks[message_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[message_id]

    def __len__(self):
        return len(self._locks)


message_locks = MessageLocks()


class MessageService:
    """Durable store for direct messages and their mutable sub-state."""

    def __init__(
        self,
        db: Session,
        cipher: Optional[MessageCipher] = None,
        locks: Optional[MessageLocks] = None
    ):
        self.db = db
        self.cipher = cipher or get_cipher()
        self.locks = locks or message_locks

    def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        attachment: Optional[Attachment] = None
    ) -> Message:
        """
        Create a new message between two users.

        Args:
            sender_id: ID of the user sending the message.
            receiver_id: ID of the user receiving it.
            text: Plaintext content; encrypted before it is stored.
            attachment: Media reference, if any.

        Returns:
            The stored Message, whose text is still ciphertext.

        Raises:
            ValidationError: If there is neither text nor an attachment.
            StoreError: If the row could not be persisted.
        """
        if not text and attachment is None:
            raise ValidationError("Message must contain text or an attachment")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=self.cipher.encrypt(text) or None
        )
        if attachment is not None:
            message.attachment_kind = attachment.kind
            message.attachment_url = attachment.url
            message.attachment_name = attachment.name

        try:
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create message from {sender_id} to {receiver_id}: {str(e)}")
            raise StoreError("Failed to create message") from e

        return message

    def get_message(self, message_id: str) -> Message:
        """Retrieve a message by its ID, raising NotFound if absent."""
        try:
            message = self.db.query(Message).filter(Message.id == message_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load message {message_id}: {str(e)}")
            raise StoreError("Failed to load message") from e
        if not message:
            raise NotFound("Message not found")
        return message

    def list_conversation(self, user_a: str, user_b: str) -> List[Message]:
        """All messages exchanged between two users, oldest first."""
        try:
            return (
                self.db.query(Message)
                .filter(
                    or_(
                        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
                        and_(Message.sender_id == user_b, Message.receiver_id == user_a)
                    )
                )
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to list conversation {user_a}/{user_b}: {str(e)}")
            raise StoreError("Failed to load conversation") from e

    def mark_deleted_for(self, message_id: str, user_id: str) -> Message:
        """
        Hide a message for one participant. Once both participants have
        hidden it the message is deleted for good; that flag never resets.
        """
        with self._mutation(message_id) as message:
            if user_id not in message.participants:
                raise ValidationError("Only conversation participants can delete a message")
            if user_id not in message.deleted_for:
                message.deletions.append(MessageDeletion(user_id=user_id))
            if message.participants <= message.deleted_for:
                message.is_deleted = True
        return message

    def set_text(self, message_id: str, text: str) -> Message:
        """Replace the text of a message and mark it as edited."""
        with self._mutation(message_id) as message:
            message.text = self.cipher.encrypt(text) or None
            message.edited = True
            message.edited_at = utcnow()
        return message

    def set_reactions(self, message_id: str, reactions: Mapping[str, str]) -> Message:
        """Atomically replace the reaction set (user id -> emoji) of a message."""
        with self._mutation(message_id) as message:
            self._replace_reactions(message, reactions)
        return message

    def apply_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        """Toggle, replace or add one user's reaction under the message lock."""
        with self._mutation(message_id) as message:
            updated = apply_reaction(message.reaction_map, user_id, emoji)
            self._replace_reactions(message, updated)
        return message

    @contextmanager
    def _mutation(self, message_id: str) -> Iterator[Message]:
        """Lock, load for update, yield, commit. Rolls back on any failure."""
        with self.locks.hold(message_id):
            try:
                message = self._load_for_update(message_id)
                yield message
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to update message {message_id}: {str(e)}")
                raise StoreError("Failed to update message") from e
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(message)

    def _load_for_update(self, message_id: str) -> Message:
        message = (
            self.db.query(Message)
            .filter(Message.id == message_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not message:
            raise NotFound("Message not found")
        return message

    def _replace_reactions(self, message: Message, reactions: Mapping[str, str]) -> None:
        current = {reaction.user_id: reaction for reaction in message.reactions}

        for user_id, row in current.items():
            if user_id not in reactions:
                message.reactions.remove(row)
            elif row.emoji != reactions[user_id]:
                # Same row, so the reaction keeps its position
                row.emoji = reactions[user_id]

        for user_id, emoji in reactions.items():
            if user_id not in current:
                message.reactions.append(MessageReaction(user_id=user_id, emoji=emoji))

# dmchat/models/message.py
from dataclasses import dataclass
from typing import Dict, Optional, Set

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from dmchat.database import Base
from dmchat.models.enums import AttachmentKind
from dmchat.models.mixins import TimestampMixin, generate_uuid, utcnow


@dataclass(frozen=True)
class Attachment:
    """Media attached to a message; immutable once stored."""
    kind: AttachmentKind
    url: str
    name: str


class Message(Base, TimestampMixin):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    # Ciphertext only; empty for media-only messages
    text = Column(Text, nullable=True)

    attachment_kind = Column(Enum(AttachmentKind), nullable=True)
    attachment_url = Column(String(1024), nullable=True)
    attachment_name = Column(String(255), nullable=True)

    edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)

    deletions = relationship(
        "MessageDeletion",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    reactions = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.created_at",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_messages_pair_created", "sender_id", "receiver_id", "created_at"),
    )

    @property
    def attachment(self) -> Optional[Attachment]:
        if not self.attachment_url:
            return None
        return Attachment(
            kind=self.attachment_kind,
            url=self.attachment_url,
            name=self.attachment_name or "",
        )

    @property
    def deleted_for(self) -> Set[str]:
        return {deletion.user_id for deletion in self.deletions}

    @property
    def participants(self) -> Set[str]:
        return {self.sender_id, self.receiver_id}

    @property
    def reaction_map(self) -> Dict[str, str]:
        """Reactions as user id -> emoji, in insertion order"""
        return {reaction.user_id: reaction.emoji for reaction in self.reactions}

    def is_hidden_for(self, user_id: str) -> bool:
        return bool(self.is_deleted) or user_id in self.deleted_for

    def __repr__(self):
        return f"<Message {self.id} from {self.sender_id} to {self.receiver_id}>"


class MessageDeletion(Base):
    """A participant hiding a message from their own view."""
    __tablename__ = "message_deletions"

    message_id = Column(String(36), ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    deleted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    message = relationship("Message", back_populates="deletions")

    def __repr__(self):
        return f"<MessageDeletion {self.message_id} for {self.user_id}>"


class MessageReaction(Base, TimestampMixin):
    __tablename__ = "message_reactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    message_id = Column(String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    emoji = Column(String(32), nullable=False)

    message = relationship("Message", back_populates="reactions")

    # One reaction per user per message
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_reactions_message_user"),
    )

    def __repr__(self):
        return f"<MessageReaction {self.emoji} by {self.user_id} on {self.message_id}>"

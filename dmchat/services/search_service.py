# dmchat/services/search_service.py
from typing import List, Optional
import logging

from dmchat.core.crypto import MessageCipher, get_cipher
from dmchat.exceptions import CryptoError, ValidationError
from dmchat.schemas.messages import MessageView
from dmchat.services.conversation_service import ConversationProjector
from dmchat.services.message_service import MessageService

logger = logging.getLogger(__name__)


class SearchService:
    """Case-insensitive substring search over a conversation's decrypted text."""

    def __init__(
        self,
        message_service: MessageService,
        projector: ConversationProjector,
        cipher: Optional[MessageCipher] = None
    ):
        self.message_service = message_service
        self.projector = projector
        self.cipher = cipher or get_cipher()

    def search(self, viewer_id: str, other_user_id: str, query: str) -> List[MessageView]:
        """
        Search the conversation between ``viewer_id`` and ``other_user_id``.

        Ciphertext is stored with a random nonce, so matching has to happen
        after decryption rather than in the database. Attachment-only
        messages and messages hidden for the viewer never match.

        Raises:
            ValidationError: If the query is empty.
            CryptoError: If a stored text cannot be decrypted.
        """
        if not query or not query.strip():
            raise ValidationError("Query is required")

        needle = query.lower()
        matches = []
        for message in self.message_service.list_conversation(viewer_id, other_user_id):
            if not message.text or message.is_hidden_for(viewer_id):
                continue
            try:
                text = self.cipher.decrypt(message.text)
            except CryptoError:
                logger.error(f"Stored text of message {message.id} could not be decrypted during search")
                raise
            if needle in text.lower():
                matches.append(message)

        return self.projector.project(matches, viewer_id)

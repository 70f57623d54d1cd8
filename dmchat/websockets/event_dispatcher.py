# dmchat/websockets/event_dispatcher.py
import logging
from typing import Callable

from fastapi import WebSocket

from dmchat.exceptions import DispatchFailure, MessagingError
from dmchat.models.enums import EventKind
from dmchat.models.message import Message
from dmchat.schemas.events import MessageEvent
from dmchat.schemas.messages import MessageView
from dmchat.websockets.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class RealtimeDispatcher:
    """
    Pushes message lifecycle events to the live sockets of both participants.

    Delivery is best effort: a participant without sockets gets nothing, and
    a failed send is logged and the stale socket dropped. Nothing here ever
    raises into the caller, whose store mutation has already committed.
    """

    def __init__(self, connection_manager: ConnectionManager):
        self.connection_manager = connection_manager

    async def notify(
        self,
        event_kind: EventKind,
        message: Message,
        participant_a: str,
        participant_b: str,
        view_for: Callable[[str], MessageView]
    ) -> int:
        """
        Deliver ``event_kind`` for ``message`` to both participants.

        Args:
            event_kind: created, edited, deleted or reacted.
            message: The message the event is about.
            participant_a: One participant's user id.
            participant_b: The other participant's user id.
            view_for: Renders the message as a given participant sees it.

        Returns:
            Number of sockets the event reached.
        """
        delivered = 0
        for user_id in dict.fromkeys((participant_a, participant_b)):
            sockets = self.connection_manager.get_connections(user_id)
            if not sockets:
                continue

            try:
                event = MessageEvent(type=event_kind, payload=view_for(user_id))
            except MessagingError as e:
                logger.warning(f"Could not render {event_kind.value} event of message {message.id} for {user_id}: {e.detail}")
                continue

            for websocket in sockets:
                try:
                    await self._push(websocket, event)
                    delivered += 1
                except DispatchFailure as e:
                    logger.warning(f"{e.detail}; dropping socket of user {user_id}")
                    await self.connection_manager.disconnect(user_id, websocket)

        return delivered

    async def _push(self, websocket: WebSocket, event: MessageEvent):
        try:
            await self.connection_manager.send_event(websocket, event)
        except Exception as e:
            raise DispatchFailure(f"Failed to deliver {event.type.value} event: {str(e)}") from e

"""Transaction chat: message storage and WebSocket broadcast."""

import logging
from collections import defaultdict

from fastapi import WebSocket
from sqlalchemy.orm import Session

from logiflex_api.errors import ForbiddenError, NotFoundError, ValidationError
from logiflex_api.models import Message, Transaction, User
from logiflex_api.notifications.outbox import NotificationOutbox

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000


class ChatHub:
    """In-process registry of sockets authenticated per transaction."""

    def __init__(self):
        """Initialize empty hub."""
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)

    def join(self, transaction_id: str, websocket: WebSocket) -> None:
        """Register a socket for a transaction room."""
        self._rooms[transaction_id].add(websocket)

    def leave(self, transaction_id: str, websocket: WebSocket) -> None:
        """Remove a socket; drops the room when it empties."""
        room = self._rooms.get(transaction_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self._rooms[transaction_id]

    def connections(self, transaction_id: str) -> int:
        """Number of sockets in a room."""
        return len(self._rooms.get(transaction_id, ()))

    async def broadcast(self, transaction_id: str, payload: dict) -> int:
        """Send a payload to every socket in the room; returns sockets reached."""
        sent = 0
        for websocket in list(self._rooms.get(transaction_id, ())):
            try:
                await websocket.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning(
                    f"Dropping dead chat socket: {e}", extra={"transaction_id": transaction_id}, exc_info=True
                )
                self.leave(transaction_id, websocket)
        return sent


chat_hub = ChatHub()


class MessageService:
    """Chat messages between the two parties of a transaction."""

    def __init__(self, db: Session, outbox: NotificationOutbox = None):
        """Initialize message service."""
        self.db = db
        self.outbox = outbox if outbox is not None else NotificationOutbox()

    def get_transaction_for_party(self, transaction_id: str, user: User) -> Transaction:
        """Load a transaction, requiring the user to be one of its parties."""
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if transaction.party_role(user.id) is None:
            raise ForbiddenError("Not authorized to access messages in this transaction")
        return transaction

    def create_message(self, sender: User, transaction_id: str, content: str) -> Message:
        """Store a chat message and notify the other party."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content must not be empty", field="content")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters", field="content")

        transaction = self.get_transaction_for_party(transaction_id, sender)
        message = Message(transaction_id=transaction.id, sender_id=sender.id, content=content)
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)

        self.outbox.publish(
            transaction.counterparty_id(sender.id),
            "new_message",
            "Новое сообщение",
            f"{sender.display_name}: {content[:120]}",
            f"/transactions/{transaction.id}",
        )
        return message

    def list_messages(self, user: User, transaction_id: str) -> list[Message]:
        """Messages of a transaction in chronological order."""
        self.get_transaction_for_party(transaction_id, user)
        return (
            self.db.query(Message)
            .filter(Message.transaction_id == transaction_id)
            .order_by(Message.created_at.asc())
            .all()
        )

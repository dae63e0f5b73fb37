"""Transaction chat routes, HTTP and WebSocket."""

import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user, get_user_by_api_key
from logiflex_api.db.session import get_db
from logiflex_api.errors import MarketplaceError
from logiflex_api.models import User
from logiflex_api.notifications.chat import MessageService, chat_hub
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import NotificationPublisher, get_outbox, get_publisher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


class MessageCreate(BaseModel):
    """Chat message request."""

    transaction_id: str
    content: str


class MessageResponse(BaseModel):
    """Chat message response."""

    id: str
    transaction_id: str
    sender_id: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


def _broadcast_payload(message) -> dict:
    return {"type": "new_message", "message": MessageResponse.model_validate(message).model_dump(mode="json")}


@router.post("/v1/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Post a chat message to a transaction."""
    message = MessageService(db, outbox).create_message(user, message_data.transaction_id, message_data.content)
    await chat_hub.broadcast(message.transaction_id, _broadcast_payload(message))
    return message


@router.get("/v1/messages/{transaction_id}", response_model=list[MessageResponse])
async def list_messages(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List a transaction's chat history."""
    return MessageService(db).list_messages(user, transaction_id)


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    api_key: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_publisher),
):
    """Live chat: send {"type": "auth", "transactionId"} then {"type": "message", "content"}."""
    user = get_user_by_api_key(db, api_key or websocket.headers.get("x-api-key") or "")
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    transaction_id = None
    try:
        while True:
            try:
                data = json.loads(await websocket.receive_text())
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid message format"})
                continue

            kind = data.get("type") if isinstance(data, dict) else None
            if kind == "auth":
                try:
                    transaction = MessageService(db).get_transaction_for_party(
                        str(data.get("transactionId") or ""), user
                    )
                except MarketplaceError:
                    await websocket.send_json(
                        {"type": "error", "message": "Not authorized to access this transaction"}
                    )
                    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                    return
                if transaction_id:
                    chat_hub.leave(transaction_id, websocket)
                transaction_id = transaction.id
                chat_hub.join(transaction_id, websocket)
                await websocket.send_json(
                    {"type": "authenticated", "userId": user.id, "transactionId": transaction_id}
                )
                logger.info("Chat socket authenticated", extra={"user_id": user.id, "transaction_id": transaction_id})

            elif kind == "message":
                if not transaction_id:
                    await websocket.send_json(
                        {"type": "error", "message": "Not authenticated. Please send auth message first."}
                    )
                    continue
                outbox = NotificationOutbox()
                try:
                    message = MessageService(db, outbox).create_message(user, transaction_id, str(data.get("content") or ""))
                except MarketplaceError as e:
                    await websocket.send_json({"type": "error", "message": e.message})
                    continue
                await chat_hub.broadcast(transaction_id, _broadcast_payload(message))
                await run_in_threadpool(outbox.flush, publisher)

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})
    except WebSocketDisconnect:
        logger.debug("Chat socket disconnected", extra={"user_id": user.id, "transaction_id": transaction_id})
    finally:
        if transaction_id:
            chat_hub.leave(transaction_id, websocket)

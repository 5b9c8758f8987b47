"""Message history API endpoints.

Endpoints:
    GET    /api/messages?userId=:              Messages sent or received by a user
    GET    /api/messages/user/{user_id}:       Same, addressed by path
    GET    /api/messages/unread-count?userId=: Unread messages addressed to a user
    GET    /api/messages/conversations?userId=: Conversation list, newest first
    GET    /api/messages/conversation/{other_user_id}: History with one partner
    GET    /api/messages/{message_id}:         One message
    POST   /api/messages:                      Send (also delivered in real time)
    PUT    /api/messages/{message_id}/reply:   Attach or overwrite the reply
    PUT    /api/messages/{message_id}/read:    Mark read, receipt to the sender
    PUT    /api/messages/{message_id}:         Edit the message text
    DELETE /api/messages/{message_id}:         Archive (soft delete)

The calling user is taken from an explicit query parameter when the route
has one, otherwise from the ``X-User-Id`` header.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from medisales.config import AppConfig
from medisales.dependencies import get_app_config, get_chat_hub, get_message_store, get_user_repository
from medisales.realtime.hub import ChatHub
from medisales.realtime.identity import resolve_identity
from medisales.users.repository import UserRepository

from .schemas import ConversationSummary, Message, MessageCreate, MessageReply, MessageUpdate, UnreadCount
from .store import MessagePermissionError, MessageStore, MessageValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


def _caller(connection: Request, explicit: Optional[int] = None) -> int:
    """Return the acting user ID or fail with 400."""
    user_id = explicit if explicit is not None else resolve_identity(connection)
    if user_id is None or user_id <= 0:
        raise HTTPException(status_code=400, detail="A valid user ID is required")
    return user_id


def _not_found(message_id: int) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Message {message_id} not found")


# =============================================================================
# Reads
# =============================================================================


@router.get("", response_model=List[Message])
async def list_messages(
    request: Request,
    user_id: Optional[int] = Query(None, alias="userId"),
    store: MessageStore = Depends(get_message_store),
    config: AppConfig = Depends(get_app_config),
) -> List[Message]:
    return store.get_messages_for_user(_caller(request, user_id), limit=config.chat.history_limit)


@router.get("/user/{user_id}", response_model=List[Message])
async def list_messages_for_user(
    user_id: int,
    store: MessageStore = Depends(get_message_store),
    config: AppConfig = Depends(get_app_config),
) -> List[Message]:
    return store.get_messages_for_user(user_id, limit=config.chat.history_limit)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    request: Request,
    user_id: Optional[int] = Query(None, alias="userId"),
    store: MessageStore = Depends(get_message_store),
) -> UnreadCount:
    caller = _caller(request, user_id)
    return UnreadCount(user_id=caller, unread_count=store.unread_count(caller))


@router.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(
    request: Request,
    user_id: Optional[int] = Query(None, alias="userId"),
    store: MessageStore = Depends(get_message_store),
    users: UserRepository = Depends(get_user_repository),
) -> List[ConversationSummary]:
    return store.list_conversations(_caller(request, user_id), users)


@router.get("/conversation/{other_user_id}", response_model=List[Message])
async def get_conversation(
    other_user_id: int,
    request: Request,
    current_user_id: Optional[int] = Query(None, alias="currentUserId"),
    store: MessageStore = Depends(get_message_store),
) -> List[Message]:
    """Return the conversation oldest first.

    Opening a conversation marks the caller's unread incoming messages read.
    """
    return store.get_conversation(_caller(request, current_user_id), other_user_id)


@router.get("/{message_id}", response_model=Message)
async def get_message(
    message_id: int, store: MessageStore = Depends(get_message_store)
) -> Message:
    message = store.get(message_id)
    if message is None:
        raise _not_found(message_id)
    return message


# =============================================================================
# Writes
# =============================================================================


@router.post("", response_model=Message, status_code=201)
async def send_message(
    body: MessageCreate,
    request: Request,
    hub: ChatHub = Depends(get_chat_hub),
) -> Message:
    """Persist a message and deliver it to any live connections.

    If the ``X-User-Id`` header is present it must match ``from_user_id``.
    """
    caller = resolve_identity(request)
    if caller is not None and caller != body.from_user_id:
        raise HTTPException(status_code=403, detail="You can only send messages as yourself.")
    try:
        return await hub.send_message(body.from_user_id, body.to_user_id, body.message_text)
    except MessageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{message_id}/reply", response_model=Message)
async def reply_to_message(
    message_id: int,
    body: MessageReply,
    store: MessageStore = Depends(get_message_store),
) -> Message:
    try:
        message = store.reply(message_id, body.reply_text)
    except MessageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if message is None:
        raise _not_found(message_id)
    return message


@router.put("/{message_id}/read", response_model=Message)
async def mark_message_read(
    message_id: int,
    request: Request,
    store: MessageStore = Depends(get_message_store),
    hub: ChatHub = Depends(get_chat_hub),
) -> Message:
    """Mark a message read and notify its sender.

    When the caller is known it must be the recipient.
    """
    existing = store.get(message_id)
    if existing is None:
        raise _not_found(message_id)
    reader = resolve_identity(request) or existing.to_user_id
    try:
        message = await hub.mark_message_read(message_id, reader)
    except MessagePermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if message is None:
        raise _not_found(message_id)
    return message


@router.put("/{message_id}", response_model=Message)
async def update_message(
    message_id: int,
    body: MessageUpdate,
    store: MessageStore = Depends(get_message_store),
) -> Message:
    try:
        message = store.update_text(message_id, body.message_text)
    except MessageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if message is None:
        raise _not_found(message_id)
    return message


@router.delete("/{message_id}", status_code=204)
async def archive_message(
    message_id: int, store: MessageStore = Depends(get_message_store)
) -> Response:
    if not store.archive(message_id):
        raise _not_found(message_id)
    logger.info("[Messages] Archived message %s", message_id)
    return Response(status_code=204)

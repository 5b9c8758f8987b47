"""Presence lookups for the point-of-sale frontend."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from medisales.dependencies import get_chat_hub, get_user_repository
from medisales.realtime.hub import ChatHub

from .repository import UserRepository
from .schemas import PresenceRead, User

router = APIRouter(prefix="/api/users", tags=["users"])


def _presence(user: User, hub: ChatHub) -> PresenceRead:
    return PresenceRead(
        user_id=user.user_id,
        username=user.username,
        full_name=user.full_name,
        role=user.role,
        status=user.status,
        is_online_now=user.is_online_now,
        last_seen_at=user.last_seen_at,
        live_connections=len(hub.registry.connections_for_user(user.user_id)),
    )


@router.get("/online", response_model=List[PresenceRead])
async def list_online_users(
    users: UserRepository = Depends(get_user_repository),
    hub: ChatHub = Depends(get_chat_hub),
) -> List[PresenceRead]:
    """Users whose persisted presence flag is set, ordered by full name."""
    return [_presence(user, hub) for user in users.list_online_users()]


@router.get("/{user_id}/presence", response_model=PresenceRead)
async def get_presence(
    user_id: int,
    users: UserRepository = Depends(get_user_repository),
    hub: ChatHub = Depends(get_chat_hub),
) -> PresenceRead:
    user = users.find_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return _presence(user, hub)

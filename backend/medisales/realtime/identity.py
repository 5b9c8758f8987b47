"""Resolve the user identity of an incoming connection.

Authentication itself happens upstream (the point-of-sale login sets the
user ID on the connection). This module only reads it: the ``X-User-Id``
header first, then the ``userId`` query parameter. Anything that is not a
positive integer makes the connection anonymous.
"""
from typing import Optional

from starlette.requests import HTTPConnection

USER_ID_HEADER = "x-user-id"
USER_ID_QUERY = "userId"


def parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        user_id = int(raw.strip())
    except ValueError:
        return None
    return user_id if user_id > 0 else None


def resolve_identity(connection: HTTPConnection) -> Optional[int]:
    """Return the user ID for a request or WebSocket, or None if anonymous."""
    user_id = parse_user_id(connection.headers.get(USER_ID_HEADER))
    if user_id is None:
        user_id = parse_user_id(connection.query_params.get(USER_ID_QUERY))
    return user_id

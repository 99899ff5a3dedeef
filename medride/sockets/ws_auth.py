"""
WebSocket Authentication Utility
Optional JWT check on the realtime handshake

Join events carry client-supplied ids. When a token is presented (or required
through WS_REQUIRE_TOKEN) the ids a connection may claim are pinned to the
token's user_id.
"""

import logging
from typing import Optional

from fastapi import WebSocket, status

from medride.config import Settings
from medride.exceptions import Unauthorized
from medride.sockets.connection import ClientConnection
from medride.utils.jwt_utils import verify_token

logger = logging.getLogger(__name__)


class WebSocketAuthError(Exception):
    """Handshake rejected; the socket has already been closed."""


def _extract_token(websocket: WebSocket) -> Optional[str]:
    # Try to get token from query parameters first
    token = websocket.query_params.get("token")

    # If not in query params, try headers
    if not token:
        auth_header = websocket.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]

    return token


async def authenticate_websocket(websocket: WebSocket, settings: Settings) -> Optional[dict]:
    """
    Authenticate WebSocket connection using JWT token

    Returns:
        Verified {"id", "role"} claims, or None for an anonymous handshake
        when tokens are not required

    Raises:
        WebSocketAuthError if the token is missing (and required) or invalid
    """
    token = _extract_token(websocket)

    if not token:
        if not settings.ws_require_token:
            return None
        logger.warning("WebSocket connection rejected: Missing authentication token")
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION, reason="Missing authentication token"
        )
        raise WebSocketAuthError("Missing authentication token")

    claims = verify_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    if claims is None:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or expired token"
        )
        raise WebSocketAuthError("Invalid or expired token")

    logger.info(f"WebSocket authenticated: user_id={claims['id']}, role={claims['role']}")
    return claims


def ensure_claim_matches(connection: ClientConnection, claimed_id: Optional[str]) -> None:
    """Reject a join whose id differs from the verified token, if there is one."""
    if connection.verified_user_id is None or claimed_id is None:
        return
    if str(claimed_id) != connection.verified_user_id:
        logger.warning(
            f"Connection {connection.connection_id} tried to join as {claimed_id} "
            f"with a token for {connection.verified_user_id}"
        )
        raise Unauthorized("Token does not match the joining identity")


def ensure_holds_identity(connection: ClientConnection, identity: str) -> None:
    """On a verified connection, only act for identities this connection joined as."""
    if connection.verified_user_id is None:
        return
    if identity not in connection.identities:
        logger.warning(
            f"Connection {connection.connection_id} acted for {identity} without joining as it"
        )
        raise Unauthorized("Connection has not joined as this identity")

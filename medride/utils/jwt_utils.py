"""
JWT Utilities
Token creation and verification for REST collaborators and the optional WebSocket handshake check
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_HOURS = 24 * 7  # 7 days
SERVICE_ROLES = ("admin", "service")

# Security scheme
security = HTTPBearer()


def create_access_token(
    data: dict,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create JWT access token

    Args:
        data: Claims; must carry user_id and role to be accepted by verify_token
        secret_key: Signing key
        algorithm: JOSE algorithm name
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def verify_token(token: str, secret_key: str, algorithm: str = "HS256") -> Optional[dict]:
    """
    Verify and decode JWT token

    Returns:
        {"id": ..., "role": ...} for a valid token carrying both claims, otherwise None
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.warning(f"Token verification failed: {str(e)}")
        return None

    user_id = payload.get("user_id")
    role = payload.get("role")
    if not user_id or not role:
        logger.warning("Token verification failed: missing user_id or role claim")
        return None

    return {"id": str(user_id), "role": role}


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Verified identity of the REST caller
    Used as dependency in protected routes
    """
    settings = request.app.state.settings
    identity = verify_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def require_admin(identity: dict = Depends(get_current_identity)) -> dict:
    """Require admin role for protected routes"""
    if identity["role"] != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return identity


async def require_service(identity: dict = Depends(get_current_identity)) -> dict:
    """Require a backend service or admin token for server-originated pushes"""
    if identity["role"] not in SERVICE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Service access required"
        )
    return identity

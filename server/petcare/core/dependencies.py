"""FastAPI dependencies for caller identity."""

from dataclasses import dataclass, field
from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by a bearer token."""

    member_id: str
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_admin(self) -> bool:
        return settings.admin_role in self.roles


def decode_bearer_token(token: str) -> Principal:
    """
    Validate an HS256 token and turn its claims into a principal.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from e

    member_id = payload.get("sub")
    if not member_id:
        raise AuthenticationError(detail="Invalid token payload")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Principal(member_id=str(member_id), roles=tuple(roles))


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Principal:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        Principal: Caller identity from the validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError as e:
        raise AuthenticationError(detail="Invalid authorization header format") from e

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    return decode_bearer_token(token)


async def require_admin(principal: Principal = Depends(get_current_user)) -> Principal:
    """Authorization dependency for venue and reservation administration."""
    if not principal.is_admin:
        raise AuthorizationError(required_permissions=[settings.admin_role])
    return principal


"""
Bearer token authentication for the billing API.

Parses API tokens from the API_TOKENS setting and resolves incoming
``Authorization: Bearer {token}`` headers to a :class:`Principal` (user id
and role). Tokens are compared with ``secrets.compare_digest``.

CHANGELOG:
- 2026-03-09: Resolve tokens to user id and role (STORY-015)

TODO:
- None
"""

import logging
import secrets
from dataclasses import dataclass

from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"
USER_ROLE = "USER"


@dataclass(frozen=True)
class Principal:
    """The caller of a request."""

    user_id: str
    role: str = USER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def can_access(self, user_id: str) -> bool:
        """Admins may act on any user; everyone else only on themselves."""
        return self.is_admin or self.user_id == user_id


def parse_api_tokens(raw: str) -> dict[str, Principal]:
    """Parse API_TOKENS into a token-to-principal mapping.

    Format: ``"token1:user1:ADMIN,token2:user2"``. The role is optional and
    defaults to ``USER``; it is upper-cased. Malformed entries are skipped
    with a warning.

    Args:
        raw: The raw comma-separated entries.

    Returns:
        dict[str, Principal]: Mapping of token -> principal.
    """
    if not raw or not raw.strip():
        return {}

    token_map: dict[str, Principal] = {}
    for idx, entry in enumerate(raw.split(",")):
        parts = [part.strip() for part in entry.strip().split(":")]
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            logger.warning("Skipping malformed API_TOKENS entry at position %d", idx)
            continue
        role = parts[2].upper() if len(parts) == 3 and parts[2] else USER_ROLE
        token_map[parts[0]] = Principal(user_id=parts[1], role=role)
    return token_map


def verify_bearer_token(
    token: str,
    token_map: dict[str, Principal],
) -> Principal | None:
    """Return the principal of a token, or None if it is not registered."""
    if not token:
        return None

    for registered_token, principal in token_map.items():
        if secrets.compare_digest(token.encode("utf-8"), registered_token.encode("utf-8")):
            return principal
    return None


class BearerAuth:
    """FastAPI-compatible bearer token dependency.

    Attributes:
        token_map: Mapping of valid token -> principal.
        scheme: FastAPI HTTPBearer security scheme.
    """

    def __init__(self, token_map: dict[str, Principal]) -> None:
        self.token_map = token_map
        self.scheme = HTTPBearer(auto_error=False)

    async def verify(self, request: Request) -> Principal:
        """Resolve the request's bearer token to a principal.

        Raises:
            HTTPException: 401 if the token is missing or unknown.
        """
        credentials: HTTPAuthorizationCredentials | None = await self.scheme(request)

        if credentials is None:
            raise HTTPException(
                status_code=401,
                detail="Missing authorization credentials.",
                headers={"WWW-Authenticate": "Bearer"},
            )

        principal = verify_bearer_token(credentials.credentials, self.token_map)
        if principal is None:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired token.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return principal

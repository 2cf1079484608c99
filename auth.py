"""
Bearer-token authentication and role-gated access.

Tokens carry only the identity claim (email) and an expiry. Roles are looked
up in the user store on every gated call, never read from the token.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request

from databases_sql import DocumentStore
from dependencies import get_store, get_token_service
from errors import ForbiddenException, InvalidToken, UnauthorizedException
from models import Identity, Role
from users import role_of

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_EXPIRY = timedelta(hours=2)


class TokenService:
    """Issues and verifies HMAC-signed bearer tokens."""

    def __init__(
        self,
        secret: str,
        expires_in: timedelta = DEFAULT_EXPIRY,
        algorithm: str = ALGORITHM,
    ):
        self._secret = secret
        self.expires_in = expires_in
        self.algorithm = algorithm

    def issue(self, claims: Dict[str, Any]) -> str:
        """
        Sign a token for the given identity claims.

        Args:
            claims: Must contain ``email``; ``iat`` and ``exp`` are added here

        Returns:
            str: The encoded JWT
        """
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload.update({"iat": now, "exp": now + self.expires_in})
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Decode a token and return its identity claim.

        Raises:
            InvalidToken: bad signature, malformed token, expired, or missing its exp or email claim
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "email"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken(code="token_expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidToken(code="token_invalid") from exc
        email = payload.get("email")
        if not isinstance(email, str) or not email:
            raise InvalidToken(code="token_invalid")
        return Identity(email=email)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise UnauthorizedException(code="credentials_missing")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedException(code="credentials_malformed")
    return token


def authenticate(authorization: Optional[str], tokens: TokenService) -> Identity:
    return tokens.verify(bearer_token(authorization))


async def require_authenticated(
    request: Request, tokens: TokenService = Depends(get_token_service)
) -> Identity:
    return authenticate(request.headers.get("Authorization"), tokens)


async def require_role(identity: Identity, *roles: Role, store: DocumentStore) -> Role:
    """Fail with ForbiddenException unless the caller currently holds one of ``roles``."""
    current = await role_of(store, identity.email)
    if current not in roles:
        logger.info(
            "Denied %s: role %s, needs %s",
            identity.email,
            current.value if current else None,
            "/".join(r.value for r in roles),
        )
        raise ForbiddenException()
    return current


def role_required(*roles: Role):
    """
    Build a dependency that authenticates the caller, then checks their role.

    Example:
        @app.get("/users")
        async def all_users(identity: Identity = Depends(role_required(Role.ADMIN))):
            ...
    """

    async def role_checker(
        identity: Identity = Depends(require_authenticated),
        store: DocumentStore = Depends(get_store),
    ) -> Identity:
        await require_role(identity, *roles, store=store)
        return identity

    return role_checker


def ensure_self(identity: Identity, email: Optional[str]) -> str:
    """Only let callers act on records filed under their own email.

    Emails compare case-insensitively. Returns the address from the token,
    which is the form records are stored under.
    """
    if not email or identity.email.lower() != email.lower():
        raise ForbiddenException()
    return identity.email

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bearer token verification with python-jose.

Students and admins sign in with the identity provider; CourseFlow only
checks the signature and expiry and reads two claims: ``sub`` (the user
id) and ``role`` (student or admin). create_access_token mints tokens of
the same shape for tests and local tooling.

Example:
    >>> manager = JWTManager(get_settings().jwt)
    >>> token = manager.create_access_token("student-1", Role.STUDENT)
    >>> manager.decode_token(token).role
    <Role.STUDENT: 'student'>
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.core.config.settings import JWTSettings
from src.models.common import Role

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """Claims CourseFlow relies on."""

    sub: str
    role: Role
    exp: int
    iat: int
    jti: str | None = None


class JWTError(Exception):
    """Base exception for token verification."""


class TokenExpiredError(JWTError):
    """The token's exp claim has passed."""


class InvalidTokenError(JWTError):
    """Bad signature, malformed token, or missing claims."""


class JWTManager:
    """Signs and verifies access tokens with the configured key."""

    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings

    @property
    def _key(self) -> str:
        return self._settings.secret_key.get_secret_value()

    def create_access_token(
        self,
        user_id: str,
        role: Role | str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Mint a token for user_id with the given role.

        Args:
            user_id: Subject of the token.
            role: Caller role.
            expires_delta: Lifetime, defaults to access_token_expire_minutes.
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=self._settings.access_token_expire_minutes)
        issued = datetime.now(timezone.utc)

        claims = {
            "sub": str(user_id),
            "role": Role(role).value,
            "iat": int(issued.timestamp()),
            "exp": int((issued + expires_delta).timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(claims, self._key, algorithm=self._settings.algorithm)

    def decode_token(self, token: str) -> TokenPayload:
        """Verify a token and return its claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the signature or format is wrong, or the
                subject or role claim is missing or unknown.
        """
        try:
            claims = jwt.decode(token, self._key, algorithms=[self._settings.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JoseJWTError as e:
            logger.warning("Token rejected: %s", e)
            raise InvalidTokenError(f"Invalid token: {e}") from e

        try:
            return TokenPayload.model_validate(claims)
        except PydanticValidationError as e:
            logger.warning("Token claims rejected: %s", e)
            raise InvalidTokenError("Token is missing required claims") from e

    def verify_token(self, token: str) -> bool:
        """Check a token without raising."""
        try:
            self.decode_token(token)
        except JWTError:
            return False
        return True

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bearer token authentication middleware.

Every request gets ``request.state.user``: the caller decoded from the
``Authorization: Bearer`` header, or None. When a token was sent but
refused, ``request.state.auth_error`` says why ("expired" or "invalid").
Endpoints decide through the dependencies in src.api.dependencies whether
an anonymous caller is acceptable.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.config import get_settings
from src.domains.auth.jwt import InvalidTokenError, JWTManager, TokenExpiredError, TokenPayload
from src.models.common import Role
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

# Probes and docs never look at the token
PUBLIC_PATHS = frozenset({"/", "/health", "/health/ready", "/docs", "/redoc", "/openapi.json"})


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller."""

    id: str
    role: Role

    @classmethod
    def from_token(cls, payload: TokenPayload) -> "CurrentUser":
        return cls(id=payload.sub, role=payload.role)

    def has_role(self, *roles: Role | str) -> bool:
        return self.role in {Role(role) for role in roles}

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def bearer_token(request: Request) -> str | None:
    """Token from an ``Authorization: Bearer <token>`` header, if any."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        return None
    return token.strip()


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the caller from the bearer token."""

    def __init__(self, app: ASGIApp, jwt_manager: JWTManager | None = None) -> None:
        super().__init__(app)
        self.jwt_manager = jwt_manager or JWTManager(get_settings().jwt)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request.state.user = None
        request.state.auth_error = None

        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token = bearer_token(request)
        if token is not None:
            self._authenticate(request, token)

        try:
            return await call_next(request)
        finally:
            clear_context()

    def _authenticate(self, request: Request, token: str) -> None:
        try:
            payload = self.jwt_manager.decode_token(token)
        except TokenExpiredError:
            request.state.auth_error = "expired"
            logger.debug("Expired token on %s", request.url.path)
            return
        except InvalidTokenError as e:
            request.state.auth_error = "invalid"
            logger.debug("Invalid token on %s: %s", request.url.path, e)
            return

        user = CurrentUser.from_token(payload)
        request.state.user = user
        bind_context(user_id=user.id, role=user.role.value)


def get_current_user(request: Request) -> CurrentUser | None:
    """Caller resolved by AuthMiddleware, or None."""
    return getattr(request.state, "user", None)

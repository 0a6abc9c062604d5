# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""In-memory implementation of every engine capability.

Useful for tests, demos and as a template for a real persistence layer.
Tokens are self-describing JWTs signed with ``JWTTokenSigner``; clients,
users, authorization codes and live refresh tokens live in dictionaries.
"""

import asyncio
import secrets
import time
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from beartype import beartype
from passlib.context import CryptContext

from grant_core.core.auth.oauth2.errors import (
    INVALID_REFRESH_TOKEN,
    GrantError,
    invalid_grant,
)
from grant_core.core.auth.oauth2.registry import Capability, CapabilityRegistry, Handler
from grant_core.core.auth.oauth2.scopes import ScopeValidator
from grant_core.core.auth.oauth2.tokens import JWTTokenSigner
from grant_core.core.config import Settings, get_settings
from grant_core.core.logging_utils import get_logger
from grant_core.core.result_types import Err, fail
from grant_core.models import (
    AuthorizationCode,
    ClaimsRequest,
    Client,
    GrantType,
    RefreshTokenRequest,
    ServerConfig,
    TokenKind,
    TokenRequest,
    UserCredentials,
    UserId,
)

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class InMemoryStrategy:
    """Capability handlers backed by process memory."""

    def __init__(
        self,
        settings: Settings | None = None,
        clients: Iterable[Client | Mapping[str, Any]] = (),
        rotate_refresh_tokens: bool = True,
    ) -> None:
        """Initialize strategy.

        Args:
            settings: Engine settings (signing secret, issuer, lifetimes)
            clients: Client registrations to preload
            rotate_refresh_tokens: Whether a refresh token is single-use
        """
        self._settings = settings or get_settings()
        self._signer = JWTTokenSigner.from_settings(self._settings)
        self._rotate_refresh_tokens = rotate_refresh_tokens

        self._clients: dict[str, Client] = {}
        self._users: dict[str, tuple[UserId, str]] = {}
        self._codes: dict[str, AuthorizationCode] = {}
        self._refresh_tokens: dict[str, str] = {}  # jti -> client_id
        self._config_overrides: dict[str, ServerConfig | Mapping[str, Any]] = {}
        self._lock = asyncio.Lock()

        for client in clients:
            self.add_client(client)

    # Setup

    @beartype
    def add_client(self, client: Client | Mapping[str, Any]) -> Client:
        """Register a client."""
        record = client if isinstance(client, Client) else Client.model_validate(client)
        self._clients[record.client_id] = record
        return record

    @beartype
    def add_user(self, username: str, password: str, user_id: UserId) -> None:
        """Register a resource owner with a hashed password."""
        self._users[username] = (user_id, pwd_context.hash(password))

    @beartype
    def set_config(
        self, client_id: str, override: ServerConfig | Mapping[str, Any]
    ) -> None:
        """Override the configuration returned for one client."""
        self._config_overrides[client_id] = override

    @beartype
    def handlers(self) -> dict[str, Handler]:
        """Capability name to handler mapping."""
        return {
            Capability.GET_CLIENT.value: self.get_client,
            Capability.AUTHENTICATE_USER.value: self.authenticate_user,
            Capability.GENERATE_TOKENS.value: self.generate_tokens,
            Capability.GENERATE_AUTHORIZATION_CODE.value: self.generate_authorization_code,
            Capability.CONSUME_AUTHORIZATION_CODE.value: self.consume_authorization_code,
            Capability.VALIDATE_REFRESH_TOKEN.value: self.validate_refresh_token,
            Capability.GET_TOKEN_CLAIMS.value: self.get_token_claims,
            Capability.GET_CONFIG.value: self.get_config,
        }

    @beartype
    def register(self, registry: CapabilityRegistry) -> CapabilityRegistry:
        """Install every handler of this strategy into ``registry``."""
        registry.register_many(self.handlers())
        return registry

    # Capabilities

    async def get_client(self, client_id: str) -> Client | None:
        """Look up a client registration."""
        return self._clients.get(client_id)

    async def authenticate_user(self, credentials: UserCredentials) -> UserId | None:
        """Verify a username and password."""
        record = self._users.get(credentials.username)
        if record is None:
            return None
        user_id, password_hash = record
        if not pwd_context.verify(credentials.password, password_hash):
            return None
        return user_id

    async def generate_tokens(
        self, request: TokenRequest
    ) -> dict[str, Any] | Err[list[GrantError]]:
        """Mint an access token plus the id and refresh tokens the scopes unlock.

        On a refresh exchange the presented refresh token is retired first when
        rotation is on. A token retired by a concurrent exchange is refused.
        """
        if (
            self._rotate_refresh_tokens
            and request.grant_type is GrantType.REFRESH_TOKEN
            and request.refresh_token_id is not None
        ):
            async with self._lock:
                if self._refresh_tokens.pop(request.refresh_token_id, None) is None:
                    return fail(invalid_grant(INVALID_REFRESH_TOKEN))

        now = int(time.time())
        expiry = request.config.expiry
        tokens: dict[str, Any] = {
            "access_token": self._sign(request, TokenKind.ACCESS_TOKEN, now),
            "expires_in": expiry.access_token,
            "scope": ScopeValidator.format(request.scopes),
        }

        if request.user_id is None:
            return tokens

        if ScopeValidator.grants_token(request.scopes, TokenKind.ID_TOKEN.value):
            tokens["id_token"] = self._sign(request, TokenKind.ID_TOKEN, now)

        if ScopeValidator.grants_token(request.scopes, TokenKind.REFRESH_TOKEN.value):
            jti = uuid4().hex
            tokens["refresh_token"] = self._sign(
                request, TokenKind.REFRESH_TOKEN, now, jti=jti
            )
            async with self._lock:
                self._refresh_tokens[jti] = request.client_id

        return tokens

    async def generate_authorization_code(self, request: TokenRequest) -> dict[str, str]:
        """Store a single-use authorization code."""
        code = secrets.token_urlsafe(32)
        self._codes[code] = AuthorizationCode(
            code=code,
            client_id=request.client_id,
            user_id=request.user_id,
            scopes=request.scopes,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=self._settings.authorization_code_expiry),
        )
        return {"code": code}

    async def consume_authorization_code(self, code: str) -> AuthorizationCode | None:
        """Remove and return a code. A second call for the same code gets None."""
        async with self._lock:
            record = self._codes.pop(code, None)
        if record is None:
            return None
        if record.expires_at is not None and record.expires_at <= datetime.now(timezone.utc):
            logger.debug("Authorization code expired before redemption")
            return None
        return record

    async def validate_refresh_token(
        self, request: RefreshTokenRequest
    ) -> dict[str, Any] | None:
        """Check a refresh token is live and owned by the requesting client.

        The token stays live until ``generate_tokens`` exchanges it.
        """
        claims = self._decode(request.token, TokenKind.REFRESH_TOKEN)
        if claims is None or claims.get("client_id") != request.client_id:
            return None

        if claims.get("jti") not in self._refresh_tokens:
            return None
        return claims

    async def get_token_claims(self, request: ClaimsRequest) -> dict[str, Any] | None:
        """Decode a token of the hinted kind."""
        claims = self._decode(request.token, request.token_type_hint)
        if claims is None:
            return None
        if (
            request.token_type_hint is TokenKind.REFRESH_TOKEN
            and claims.get("jti") not in self._refresh_tokens
        ):
            return None
        return claims

    async def get_config(self, client_id: str | None) -> ServerConfig:
        """Configuration for ``client_id``: this strategy's settings plus any override."""
        config = ServerConfig.from_settings(self._settings)
        override = self._config_overrides.get(client_id) if client_id else None
        if override is None:
            return config
        return config.merged(override)

    # Helpers

    def _sign(
        self,
        request: TokenRequest,
        kind: TokenKind,
        now: int,
        jti: str | None = None,
    ) -> str:
        config = request.config
        subject = request.user_id if request.user_id is not None else request.client_id
        return self._signer.encode(
            {
                "iss": config.iss,
                "sub": str(subject),
                "aud": config.aud,
                "iat": now,
                "exp": now + config.expiry.for_kind(kind),
                "scope": ScopeValidator.format(request.scopes),
                "client_id": request.client_id,
                "token_type": "Bearer",
                "kind": kind.value,
                "jti": jti or uuid4().hex,
            }
        )

    def _decode(self, token: str, kind: TokenKind) -> dict[str, Any] | None:
        decoded = self._signer.decode(token)
        if isinstance(decoded, Err):
            logger.debug("Rejected %s: %s", kind.value, decoded.error)
            return None
        claims = decoded.value
        if claims.get("kind") != kind.value:
            return None
        return claims

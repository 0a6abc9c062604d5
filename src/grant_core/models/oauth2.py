# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 domain models exchanged between the engine and capability handlers."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from beartype import beartype
from pydantic import ConfigDict, Field

from ..core.config import Settings
from .base import BaseModelConfig, HandlerRecord

UserId = str | int


class TokenKind(str, Enum):
    """Token kinds a client can mint or introspect."""

    ACCESS_TOKEN = "access_token"
    ID_TOKEN = "id_token"
    REFRESH_TOKEN = "refresh_token"


class GrantType(str, Enum):
    """Supported OAuth2 grant types."""

    PASSWORD = "password"
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class Client(HandlerRecord):
    """OAuth2 client registration as returned by ``get_client``."""

    model_config = ConfigDict(str_strip_whitespace=False)

    client_id: str = Field(..., min_length=1, description="Client identifier")
    client_secret: str | None = Field(
        default=None, repr=False, description="Client secret"
    )
    allowed_scopes: list[str] = Field(
        default_factory=list, description="Scopes the client may be granted"
    )
    allowed_grant_types: list[str] = Field(
        default_factory=list,
        description="Grant types the client may use (empty means any)",
    )


class UserCredentials(BaseModelConfig):
    """Resource owner credentials forwarded to ``authenticate_user``."""

    model_config = ConfigDict(str_strip_whitespace=False)

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)


class AuthorizationCode(HandlerRecord):
    """Authorization code as returned by ``consume_authorization_code``."""

    code: str | None = Field(default=None, description="The code value")
    client_id: str | None = Field(
        default=None, description="Client the code was issued to"
    )
    user_id: UserId = Field(..., description="Resource owner")
    scopes: list[str] = Field(default_factory=list, description="Granted scopes")
    expires_at: datetime | None = Field(default=None, description="Expiry instant")


class ExpiryConfig(HandlerRecord):
    """Token lifetimes in seconds. Negative values force immediate expiry."""

    access_token: int
    id_token: int
    refresh_token: int

    @beartype
    def for_kind(self, kind: TokenKind) -> int:
        """Get the lifetime of a token kind."""
        return int(getattr(self, kind.value))


class ServerConfig(HandlerRecord):
    """Effective per-request configuration returned by ``get_config``."""

    expiry: ExpiryConfig
    iss: str = Field(..., min_length=1)
    aud: str = Field(..., min_length=1)

    @classmethod
    @beartype
    def from_settings(cls, settings: Settings) -> "ServerConfig":
        """Build the default configuration from engine settings."""
        return cls(
            expiry=ExpiryConfig(
                access_token=settings.access_token_expiry,
                id_token=settings.id_token_expiry,
                refresh_token=settings.refresh_token_expiry,
            ),
            iss=settings.issuer,
            aud=settings.audience,
        )

    @beartype
    def merged(self, override: "ServerConfig | Mapping[str, Any]") -> "ServerConfig":
        """Overlay a full or partial override on this configuration."""
        if isinstance(override, ServerConfig):
            return override

        data = self.model_dump()
        expiry_override = override.get("expiry") or {}
        data.update({k: v for k, v in override.items() if k != "expiry"})
        data["expiry"] = {**data["expiry"], **dict(expiry_override)}
        return ServerConfig.model_validate(data)


class TokenRequest(BaseModelConfig):
    """Input of ``generate_tokens`` and ``generate_authorization_code``."""

    client_id: str
    user_id: UserId | None = None
    scopes: list[str] = Field(default_factory=list)
    grant_type: GrantType | None = None
    config: ServerConfig
    refresh_token_id: str | None = Field(
        default=None, description="jti of the refresh token being exchanged"
    )


class RefreshTokenRequest(BaseModelConfig):
    """Input of ``validate_refresh_token``."""

    client_id: str
    token: str = Field(..., repr=False)


class ClaimsRequest(BaseModelConfig):
    """Input of ``get_token_claims``."""

    token: str = Field(..., repr=False)
    token_type_hint: TokenKind


class TokenClaims(HandlerRecord):
    """Claims carried by an access, id or refresh token."""

    iss: str | None = None
    sub: UserId | None = None
    aud: str | list[str] | None = None
    exp: int
    iat: int | None = None
    scope: str = ""
    client_id: str
    token_type: str = "Bearer"
    kind: TokenKind | None = None
    jti: str | None = None

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list."""
        return self.scope.split()


class TokenSet(HandlerRecord):
    """Tokens minted by a successful grant."""

    access_token: str = Field(..., min_length=1)
    id_token: str | None = None
    refresh_token: str | None = None
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int
    scope: str = ""

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Token endpoint response body."""
        return self.model_dump(exclude_none=True)


class IntrospectionResponse(BaseModelConfig):
    """RFC 7662 introspection response."""

    active: bool
    iss: str | None = None
    sub: UserId | None = None
    aud: str | list[str] | None = None
    client_id: str | None = None
    scope: str | None = None
    token_type: str | None = None
    exp: int | None = None
    iat: int | None = None

    @classmethod
    @beartype
    def inactive(cls) -> "IntrospectionResponse":
        """Response for a token that is not active and not disclosed."""
        return cls(active=False)

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Introspection endpoint response body."""
        return self.model_dump(exclude_none=True)

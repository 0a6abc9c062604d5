"""Domain models package for the grant engine.

This package exports the Pydantic models exchanged between the engine and
the capability handlers supplied by the embedding application.
"""

from .base import BaseModelConfig, HandlerRecord
from .oauth2 import (
    AuthorizationCode,
    ClaimsRequest,
    Client,
    ExpiryConfig,
    GrantType,
    IntrospectionResponse,
    RefreshTokenRequest,
    ServerConfig,
    TokenClaims,
    TokenKind,
    TokenRequest,
    TokenSet,
    UserCredentials,
    UserId,
)

__all__ = [
    # Base models
    "BaseModelConfig",
    "HandlerRecord",
    # OAuth2 models
    "AuthorizationCode",
    "ClaimsRequest",
    "Client",
    "ExpiryConfig",
    "GrantType",
    "IntrospectionResponse",
    "RefreshTokenRequest",
    "ServerConfig",
    "TokenClaims",
    "TokenKind",
    "TokenRequest",
    "TokenSet",
    "UserCredentials",
    "UserId",
]

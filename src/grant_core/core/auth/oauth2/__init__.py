# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 grant execution and token introspection engine."""

from .client_auth import ClientAuthenticator
from .errors import ErrorKind, GrantError
from .grants import (
    GRANT_TYPES,
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    GrantTypeExecutor,
    PasswordGrant,
    RefreshTokenGrant,
    execute_grant,
    issue_authorization_code,
)
from .introspection import TokenIntrospector, introspect, to_response_body
from .registry import Capability, CapabilityRegistry, load_effective_config
from .scopes import OIDC_SCOPES, Scope, ScopeValidator
from .tokens import JWTTokenSigner, TokenCodec

__all__ = [
    "AuthorizationCodeGrant",
    "Capability",
    "CapabilityRegistry",
    "ClientAuthenticator",
    "ClientCredentialsGrant",
    "ErrorKind",
    "GRANT_TYPES",
    "GrantError",
    "GrantTypeExecutor",
    "JWTTokenSigner",
    "OIDC_SCOPES",
    "PasswordGrant",
    "RefreshTokenGrant",
    "Scope",
    "ScopeValidator",
    "TokenCodec",
    "TokenIntrospector",
    "execute_grant",
    "introspect",
    "issue_authorization_code",
    "load_effective_config",
    "to_response_body",
]

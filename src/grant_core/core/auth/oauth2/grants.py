# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 grant type executors.

Every grant runs the same pipeline and stops at the first failing stage:

    capability check -> client authentication -> grant type check
    -> effective config -> grant-specific authorization -> token minting

The grant-specific stage is the only part a variant implements. It resolves
who the tokens are for and which scopes they carry.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, ClassVar

from attrs import frozen
from beartype import beartype
from pydantic import ValidationError

from grant_core.core.config import Settings
from grant_core.core.logging_utils import get_logger
from grant_core.core.result_types import Err, Ok, Result, fail
from grant_core.models import (
    AuthorizationCode,
    Client,
    GrantType,
    RefreshTokenRequest,
    ServerConfig,
    TokenClaims,
    TokenKind,
    TokenRequest,
    TokenSet,
    UserCredentials,
    UserId,
)

from .client_auth import ClientAuthenticator, Payload, first_missing_field, is_present
from .errors import (
    INVALID_CODE,
    INVALID_REFRESH_TOKEN,
    INVALID_USER_CREDENTIALS,
    ErrorKind,
    GrantError,
    invalid_grant,
    missing_field,
    server_error,
)
from .registry import Capability, CapabilityRegistry, load_effective_config
from .scopes import ScopeValidator
from .tokens import TokenCodec

logger = get_logger(__name__)


@frozen
class GrantedAccess:
    """Resource owner and scopes a grant resolved to."""

    user_id: UserId | None
    scopes: list[str]
    refresh_token_id: str | None = None


def requested_scopes(payload: Payload) -> Result[list[str] | None, list[GrantError]]:
    """Read ``scopes`` (list) or ``scope`` (space-delimited string).

    Returns ``Ok(None)`` when the request names no scope at all.
    """
    raw = payload.get("scopes", payload.get("scope"))
    if raw is None:
        return Ok(None)
    if isinstance(raw, str) or (
        isinstance(raw, (list, tuple, set, frozenset))
        and all(isinstance(s, str) for s in raw)
    ):
        return Ok(ScopeValidator.parse(raw))
    return fail(GrantError("Invalid 'scope'", ErrorKind.VALIDATION, "invalid_scope"))


class GrantTypeExecutor(ABC):
    """Base class for a grant type's token-minting pipeline."""

    grant_type: ClassVar[GrantType]
    required_capabilities: ClassVar[tuple[Capability, ...]]

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize executor.

        Args:
            settings: Engine settings used for default configuration
        """
        self._settings = settings

    @beartype
    async def execute(
        self, registry: CapabilityRegistry, payload: Payload
    ) -> Result[TokenSet, list[GrantError]]:
        """Run the grant and mint a token set.

        Args:
            registry: Capability handlers supplied by the embedder
            payload: Token request parameters

        Returns:
            Result containing the minted tokens or the errors of the stage
            that stopped the pipeline
        """
        missing = registry.missing_handler_errors(self.required_capabilities)
        if missing:
            return Err(missing)

        authenticated = await ClientAuthenticator.authenticate(payload, registry)
        if isinstance(authenticated, Err):
            return authenticated
        client = authenticated.value

        permitted = ClientAuthenticator.check_grant_type(client, self.grant_type)
        if isinstance(permitted, Err):
            return permitted

        config = await load_effective_config(registry, client.client_id, self._settings)
        if isinstance(config, Err):
            return config

        authorized = await self.authorize(registry, payload, client, config.value)
        if isinstance(authorized, Err):
            logger.info(
                "Rejected %s grant for client '%s': %s",
                self.grant_type.value,
                client.client_id,
                "; ".join(e.message for e in authorized.error),
            )
            return authorized

        return await self._mint(registry, client, authorized.value, config.value)

    @abstractmethod
    async def authorize(
        self,
        registry: CapabilityRegistry,
        payload: Payload,
        client: Client,
        config: ServerConfig,
    ) -> Result[GrantedAccess, list[GrantError]]:
        """Resolve the resource owner and granted scopes for this grant."""

    def shape(self, tokens: TokenSet) -> TokenSet:
        """Adjust the minted token set before it is returned."""
        return tokens

    async def _mint(
        self,
        registry: CapabilityRegistry,
        client: Client,
        access: GrantedAccess,
        config: ServerConfig,
    ) -> Result[TokenSet, list[GrantError]]:
        request = TokenRequest(
            client_id=client.client_id,
            user_id=access.user_id,
            scopes=access.scopes,
            grant_type=self.grant_type,
            config=config,
            refresh_token_id=access.refresh_token_id,
        )
        outcome = await registry.invoke(Capability.GENERATE_TOKENS, request)
        if isinstance(outcome, Err):
            return outcome

        minted = _as_token_set(outcome.value, access.scopes, config)
        if isinstance(minted, Err):
            return minted

        owned = await _check_owner(registry, client, minted.value)
        if isinstance(owned, Err):
            return owned

        logger.info(
            "Issued tokens to client '%s' via %s grant (scopes: %s)",
            client.client_id,
            self.grant_type.value,
            " ".join(access.scopes) or "-",
        )
        return Ok(self.shape(minted.value))


async def _check_owner(
    registry: CapabilityRegistry, client: Client, tokens: TokenSet
) -> Result[TokenSet, list[GrantError]]:
    """Ensure the minted access token belongs to the authenticated client.

    Skipped when no ``get_token_claims`` handler can read the token back.
    """
    if Capability.GET_TOKEN_CLAIMS not in registry:
        return Ok(tokens)

    decoded = await TokenCodec.decode(registry, tokens.access_token, TokenKind.ACCESS_TOKEN)
    if isinstance(decoded, Err):
        logger.error("get_token_claims cannot read the access token just minted")
        return fail(
            server_error("Handler 'generate_tokens' returned an unreadable access token")
        )
    if decoded.value.client_id != client.client_id:
        logger.error(
            "generate_tokens minted a token for '%s' while serving '%s'",
            decoded.value.client_id,
            client.client_id,
        )
        return fail(
            server_error("Handler 'generate_tokens' minted a token for another client")
        )
    return Ok(tokens)


def _as_token_set(
    value: Any, scopes: list[str], config: ServerConfig
) -> Result[TokenSet, list[GrantError]]:
    if isinstance(value, TokenSet):
        return Ok(value)
    if not isinstance(value, Mapping):
        logger.error("generate_tokens returned %s", type(value).__name__)
        return fail(server_error("Handler 'generate_tokens' returned no tokens"))

    data = dict(value)
    data.setdefault("expires_in", config.expiry.access_token)
    data.setdefault("scope", ScopeValidator.format(scopes))
    data["token_type"] = "Bearer"
    try:
        return Ok(TokenSet.model_validate(data))
    except ValidationError:
        logger.exception("generate_tokens returned an invalid token set")
        return fail(server_error("Handler 'generate_tokens' returned an invalid token set"))


class PasswordGrant(GrantTypeExecutor):
    """Resource owner password credentials grant."""

    grant_type = GrantType.PASSWORD
    required_capabilities = (
        Capability.GET_CLIENT,
        Capability.AUTHENTICATE_USER,
        Capability.GENERATE_TOKENS,
    )

    async def authorize(
        self,
        registry: CapabilityRegistry,
        payload: Payload,
        client: Client,
        config: ServerConfig,
    ) -> Result[GrantedAccess, list[GrantError]]:
        user = payload.get("user")
        if user is not None and not isinstance(user, Mapping):
            return fail(GrantError("Invalid 'user'", ErrorKind.VALIDATION))
        credentials_source = user if isinstance(user, Mapping) else payload
        checked = first_missing_field(credentials_source, ("username", "password"))
        if isinstance(checked, Err):
            return checked

        requested = requested_scopes(payload)
        if isinstance(requested, Err):
            return requested

        credentials = UserCredentials(
            username=str(credentials_source["username"]),
            password=str(credentials_source["password"]),
        )
        outcome = await registry.invoke(Capability.AUTHENTICATE_USER, credentials)
        if isinstance(outcome, Err):
            return outcome

        user_id = outcome.value
        if isinstance(user_id, Mapping):
            user_id = user_id.get("user_id")
        if not isinstance(user_id, (str, int)) or isinstance(user_id, bool):
            return fail(invalid_grant(INVALID_USER_CREDENTIALS))

        granted = ScopeValidator.validate(requested.value or [], client.allowed_scopes)
        if isinstance(granted, Err):
            return granted

        return Ok(GrantedAccess(user_id=user_id, scopes=granted.value))


class AuthorizationCodeGrant(GrantTypeExecutor):
    """Authorization code grant. Each code can be redeemed once."""

    grant_type = GrantType.AUTHORIZATION_CODE
    required_capabilities = (
        Capability.GET_CLIENT,
        Capability.CONSUME_AUTHORIZATION_CODE,
        Capability.GENERATE_TOKENS,
    )

    async def authorize(
        self,
        registry: CapabilityRegistry,
        payload: Payload,
        client: Client,
        config: ServerConfig,
    ) -> Result[GrantedAccess, list[GrantError]]:
        checked = first_missing_field(payload, ("code",))
        if isinstance(checked, Err):
            return checked

        outcome = await registry.invoke(
            Capability.CONSUME_AUTHORIZATION_CODE, str(payload["code"])
        )
        if isinstance(outcome, Err):
            return outcome
        if outcome.value is None:
            return fail(invalid_grant(INVALID_CODE))

        try:
            code = (
                outcome.value
                if isinstance(outcome.value, AuthorizationCode)
                else AuthorizationCode.model_validate(outcome.value)
            )
        except ValidationError:
            logger.warning("consume_authorization_code returned an invalid record")
            return fail(invalid_grant(INVALID_CODE))

        if code.client_id is not None and code.client_id != client.client_id:
            logger.warning(
                "Client '%s' redeemed a code issued to '%s'",
                client.client_id,
                code.client_id,
            )
            return fail(invalid_grant(INVALID_CODE))

        if code.expires_at is not None:
            expires_at = code.expires_at
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                return fail(invalid_grant(INVALID_CODE))

        # Client scopes may have narrowed since the code was issued.
        scopes = ScopeValidator.intersect(code.scopes, client.allowed_scopes)
        return Ok(GrantedAccess(user_id=code.user_id, scopes=scopes))


class RefreshTokenGrant(GrantTypeExecutor):
    """Refresh token grant, optionally narrowing the original scopes."""

    grant_type = GrantType.REFRESH_TOKEN
    required_capabilities = (
        Capability.GET_CLIENT,
        Capability.VALIDATE_REFRESH_TOKEN,
        Capability.GENERATE_TOKENS,
    )

    async def authorize(
        self,
        registry: CapabilityRegistry,
        payload: Payload,
        client: Client,
        config: ServerConfig,
    ) -> Result[GrantedAccess, list[GrantError]]:
        checked = first_missing_field(payload, ("refresh_token",))
        if isinstance(checked, Err):
            return checked

        token = payload["refresh_token"]
        if not isinstance(token, str):
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))

        requested = requested_scopes(payload)
        if isinstance(requested, Err):
            return requested

        outcome = await registry.invoke(
            Capability.VALIDATE_REFRESH_TOKEN,
            RefreshTokenRequest(client_id=client.client_id, token=token),
        )
        if isinstance(outcome, Err):
            logger.debug("validate_refresh_token rejected token: %s", outcome.error)
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))
        if outcome.value is None:
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))

        try:
            claims = (
                outcome.value
                if isinstance(outcome.value, TokenClaims)
                else TokenClaims.model_validate(outcome.value)
            )
        except ValidationError:
            logger.warning("validate_refresh_token returned malformed claims")
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))

        if claims.kind is not None and claims.kind != TokenKind.REFRESH_TOKEN:
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))
        if claims.client_id != client.client_id:
            logger.warning(
                "Client '%s' presented a refresh token of '%s'",
                client.client_id,
                claims.client_id,
            )
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))
        if TokenCodec.is_expired(claims, window=config.expiry.refresh_token):
            return fail(invalid_grant(INVALID_REFRESH_TOKEN))

        original = ScopeValidator.intersect(claims.scopes, client.allowed_scopes)
        if requested.value is None:
            scopes = original
        else:
            narrowed = ScopeValidator.validate(requested.value, original)
            if isinstance(narrowed, Err):
                return narrowed
            scopes = narrowed.value

        return Ok(
            GrantedAccess(
                user_id=claims.sub, scopes=scopes, refresh_token_id=claims.jti
            )
        )


class ClientCredentialsGrant(GrantTypeExecutor):
    """Client credentials grant. Tokens carry no resource owner."""

    grant_type = GrantType.CLIENT_CREDENTIALS
    required_capabilities = (Capability.GET_CLIENT, Capability.GENERATE_TOKENS)

    async def authorize(
        self,
        registry: CapabilityRegistry,
        payload: Payload,
        client: Client,
        config: ServerConfig,
    ) -> Result[GrantedAccess, list[GrantError]]:
        requested = requested_scopes(payload)
        if isinstance(requested, Err):
            return requested

        granted = ScopeValidator.validate(requested.value or [], client.allowed_scopes)
        if isinstance(granted, Err):
            return granted
        return Ok(GrantedAccess(user_id=None, scopes=granted.value))

    def shape(self, tokens: TokenSet) -> TokenSet:
        # No resource owner: neither an identity nor offline access applies.
        return tokens.model_copy(update={"id_token": None, "refresh_token": None})


GRANT_TYPES: dict[GrantType, type[GrantTypeExecutor]] = {
    GrantType.PASSWORD: PasswordGrant,
    GrantType.AUTHORIZATION_CODE: AuthorizationCodeGrant,
    GrantType.REFRESH_TOKEN: RefreshTokenGrant,
    GrantType.CLIENT_CREDENTIALS: ClientCredentialsGrant,
}


@beartype
async def execute_grant(
    registry: CapabilityRegistry,
    payload: Payload,
    settings: Settings | None = None,
) -> Result[TokenSet, list[GrantError]]:
    """Dispatch a token request to the executor of its ``grant_type``."""
    checked = first_missing_field(payload, ("grant_type",))
    if isinstance(checked, Err):
        return checked

    try:
        grant_type = GrantType(payload["grant_type"])
    except ValueError:
        return fail(
            GrantError(
                f"Unsupported grant_type '{payload['grant_type']}'",
                ErrorKind.VALIDATION,
                "unsupported_grant_type",
            )
        )

    return await GRANT_TYPES[grant_type](settings).execute(registry, payload)


@beartype
async def issue_authorization_code(
    registry: CapabilityRegistry,
    payload: Payload,
    settings: Settings | None = None,
) -> Result[dict[str, str], list[GrantError]]:
    """Create an authorization code for a user who approved a client.

    The client is identified by ``client_id`` alone. The code carries
    ``user_id`` and the requested scopes, which must be allowed for the client.
    """
    missing = registry.missing_handler_errors(
        (Capability.GET_CLIENT, Capability.GENERATE_AUTHORIZATION_CODE)
    )
    if missing:
        return Err(missing)

    identified = await ClientAuthenticator.identify(payload, registry)
    if isinstance(identified, Err):
        return identified
    client = identified.value

    permitted = ClientAuthenticator.check_grant_type(client, GrantType.AUTHORIZATION_CODE)
    if isinstance(permitted, Err):
        return permitted

    user_id = payload.get("user_id")
    if not is_present(user_id):
        return fail(missing_field("user_id"))
    if not isinstance(user_id, (str, int)) or isinstance(user_id, bool):
        return fail(GrantError("Invalid 'user_id'", ErrorKind.VALIDATION))

    requested = requested_scopes(payload)
    if isinstance(requested, Err):
        return requested
    granted = ScopeValidator.validate(requested.value or [], client.allowed_scopes)
    if isinstance(granted, Err):
        return granted

    config = await load_effective_config(registry, client.client_id, settings)
    if isinstance(config, Err):
        return config

    outcome = await registry.invoke(
        Capability.GENERATE_AUTHORIZATION_CODE,
        TokenRequest(
            client_id=client.client_id,
            user_id=user_id,
            scopes=granted.value,
            grant_type=GrantType.AUTHORIZATION_CODE,
            config=config.value,
        ),
    )
    if isinstance(outcome, Err):
        return outcome

    code = outcome.value.get("code") if isinstance(outcome.value, Mapping) else outcome.value
    if not isinstance(code, str) or not code:
        logger.error("generate_authorization_code returned no code")
        return fail(server_error("Handler 'generate_authorization_code' returned no code"))

    logger.info("Issued authorization code to client '%s'", client.client_id)
    return Ok({"code": code})

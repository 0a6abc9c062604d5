# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""RFC 7662 token introspection."""

from datetime import datetime
from typing import Any

from beartype import beartype

from grant_core.core.config import Settings
from grant_core.core.logging_utils import get_logger
from grant_core.core.result_types import Err, Ok, Result, fail
from grant_core.models import IntrospectionResponse, TokenKind

from .client_auth import ClientAuthenticator, Payload, first_missing_field
from .errors import ErrorKind, GrantError, client_not_found
from .registry import Capability, CapabilityRegistry, load_effective_config
from .tokens import TokenCodec

logger = get_logger(__name__)


class TokenIntrospector:
    """Report whether a token is active and what it carries.

    Stages run in a fixed order and the first failing one ends the call:
    capability check, required fields, client authentication, decoding,
    ownership check, expiry check.
    """

    required_capabilities = (Capability.GET_TOKEN_CLAIMS, Capability.GET_CLIENT)
    required_fields = ("client_id", "client_secret", "token", "token_type_hint")

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize introspector.

        Args:
            settings: Engine settings used for default configuration
        """
        self._settings = settings

    @beartype
    async def introspect(
        self,
        payload: Payload,
        registry: CapabilityRegistry,
        now: datetime | None = None,
    ) -> Result[IntrospectionResponse, list[GrantError]]:
        """Introspect the token named in ``payload``.

        Args:
            payload: ``client_id``, ``client_secret``, ``token`` and
                ``token_type_hint`` of the introspection request
            registry: Capability handlers supplied by the embedder
            now: Reference instant for the expiry check

        Returns:
            Result containing the introspection response or the errors of
            the stage that stopped the pipeline. Expired tokens are not an
            error: they come back with ``active`` set to False.
        """
        missing = registry.missing_handler_errors(self.required_capabilities)
        if missing:
            return Err(missing)

        checked = first_missing_field(payload, self.required_fields)
        if isinstance(checked, Err):
            return checked

        try:
            kind = TokenKind(payload["token_type_hint"])
        except ValueError:
            return fail(
                GrantError(
                    f"Unsupported token_type_hint '{payload['token_type_hint']}'",
                    ErrorKind.VALIDATION,
                    "unsupported_token_type",
                )
            )

        authenticated = await ClientAuthenticator.authenticate(payload, registry)
        if isinstance(authenticated, Err):
            return authenticated
        client = authenticated.value

        decoded = await TokenCodec.decode(registry, payload["token"], kind)
        if isinstance(decoded, Err):
            return decoded
        claims = decoded.value

        if claims.client_id != client.client_id:
            logger.debug(
                "Client '%s' introspected a %s owned by '%s'",
                client.client_id,
                kind.value,
                claims.client_id,
            )
            return fail(client_not_found())

        config = await load_effective_config(registry, client.client_id, self._settings)
        if isinstance(config, Err):
            return config

        active = not TokenCodec.is_expired(
            claims, now, config.value.expiry.for_kind(kind)
        )
        return Ok(
            IntrospectionResponse(
                active=active,
                iss=claims.iss,
                sub=claims.sub,
                aud=claims.aud,
                client_id=claims.client_id,
                scope=claims.scope,
                token_type="Bearer",
                exp=claims.exp,
                iat=claims.iat,
            )
        )


@beartype
async def introspect(
    payload: Payload,
    registry: CapabilityRegistry,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> Result[IntrospectionResponse, list[GrantError]]:
    """Introspect a token with a default ``TokenIntrospector``."""
    return await TokenIntrospector(settings).introspect(payload, registry, now)


@beartype
def to_response_body(
    result: Result[IntrospectionResponse, list[GrantError]],
) -> dict[str, Any]:
    """Map an introspection result to an RFC 7662 response body.

    A token that cannot be decoded is reported as ``{"active": false}``.
    Any other failure becomes the OAuth2 error body of its first error.
    """
    if isinstance(result, Ok):
        return result.value.to_dict()
    errors = result.error
    if errors and all(e.kind is ErrorKind.DECODE for e in errors):
        return IntrospectionResponse.inactive().to_dict()
    return errors[0].to_dict()

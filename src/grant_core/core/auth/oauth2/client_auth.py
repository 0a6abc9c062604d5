# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Client authentication against the ``get_client`` capability."""

import secrets
from collections.abc import Iterable, Mapping
from typing import Any

from beartype import beartype
from pydantic import ValidationError

from grant_core.core.logging_utils import get_logger
from grant_core.core.result_types import Err, Ok, Result, fail
from grant_core.models import Client, GrantType

from .errors import ErrorKind, GrantError, client_not_found, missing_field
from .registry import Capability, CapabilityRegistry

logger = get_logger(__name__)

Payload = Mapping[str, Any]


def is_present(value: Any) -> bool:
    """A payload value counts as present unless it is None or blank."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


@beartype
def first_missing_field(
    payload: Payload, names: Iterable[str]
) -> Result[None, list[GrantError]]:
    """Check required fields in order. The first missing one wins."""
    for name in names:
        if not is_present(payload.get(name)):
            return fail(missing_field(name))
    return Ok(None)


class ClientAuthenticator:
    """Verify a client_id/client_secret pair.

    Every failure after the presence checks surfaces as the same
    ``client_id not found`` message so callers cannot tell an unknown client
    from a wrong secret.
    """

    @staticmethod
    @beartype
    async def authenticate(
        payload: Payload, registry: CapabilityRegistry
    ) -> Result[Client, list[GrantError]]:
        """Authenticate the client identified by the payload credentials."""
        checked = first_missing_field(payload, ("client_id", "client_secret"))
        if isinstance(checked, Err):
            return checked

        found = await ClientAuthenticator._load(payload["client_id"], registry)
        if isinstance(found, Err):
            return found

        client = found.value
        if client.client_secret is None or not secrets.compare_digest(
            client.client_secret.encode(), str(payload["client_secret"]).encode()
        ):
            logger.debug("Client '%s' presented a wrong secret", client.client_id)
            return fail(client_not_found())

        return Ok(client)

    @staticmethod
    @beartype
    async def identify(
        payload: Payload, registry: CapabilityRegistry
    ) -> Result[Client, list[GrantError]]:
        """Resolve a client by id alone, without checking a secret."""
        checked = first_missing_field(payload, ("client_id",))
        if isinstance(checked, Err):
            return checked
        return await ClientAuthenticator._load(payload["client_id"], registry)

    @staticmethod
    @beartype
    def check_grant_type(
        client: Client, grant_type: GrantType
    ) -> Result[Client, list[GrantError]]:
        """Ensure the client may use ``grant_type``. An empty list allows all."""
        allowed = client.allowed_grant_types
        if allowed and grant_type.value not in allowed:
            return fail(
                GrantError(
                    f"Client is not authorized for grant_type '{grant_type.value}'",
                    ErrorKind.AUTHENTICATION,
                    "unauthorized_client",
                )
            )
        return Ok(client)

    @staticmethod
    async def _load(
        client_id: Any, registry: CapabilityRegistry
    ) -> Result[Client, list[GrantError]]:
        if Capability.GET_CLIENT not in registry:
            return Err(registry.missing_handler_errors([Capability.GET_CLIENT]))

        outcome = await registry.invoke(Capability.GET_CLIENT, str(client_id))
        if isinstance(outcome, Err):
            return outcome

        record = outcome.value
        if record is None:
            logger.debug("Unknown client '%s'", client_id)
            return fail(client_not_found())
        try:
            client = record if isinstance(record, Client) else Client.model_validate(record)
        except ValidationError:
            logger.warning("get_client returned an invalid record for '%s'", client_id)
            return fail(client_not_found())

        if client.client_id != str(client_id):
            logger.warning("get_client returned client '%s' for '%s'", client.client_id, client_id)
            return fail(client_not_found())
        return Ok(client)

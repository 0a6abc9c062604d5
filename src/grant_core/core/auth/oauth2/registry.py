# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Registry of embedder-supplied capability handlers.

The engine never touches storage, users or signing keys directly. Each of
those concerns is a named capability whose handler the embedding application
registers at startup. A registry is an explicit value passed into every grant
or introspection call; there is no process-wide instance.
"""

import inspect
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import ValidationError

from grant_core.models import ServerConfig

from ...config import Settings, get_settings
from ...logging_utils import get_logger
from ...result_types import Err, Ok, Result, fail
from .errors import ErrorKind, GrantError, missing_handler, server_error

logger = get_logger(__name__)

Handler = Callable[..., Any]


class Capability(str, Enum):
    """Named extension points the engine calls into."""

    GET_CLIENT = "get_client"
    AUTHENTICATE_USER = "authenticate_user"
    GENERATE_TOKENS = "generate_tokens"
    GENERATE_AUTHORIZATION_CODE = "generate_authorization_code"
    CONSUME_AUTHORIZATION_CODE = "consume_authorization_code"
    VALIDATE_REFRESH_TOKEN = "validate_refresh_token"
    GET_TOKEN_CLAIMS = "get_token_claims"
    GET_CONFIG = "get_config"


CapabilityName = str | Capability


def _key(name: CapabilityName) -> str:
    return name.value if isinstance(name, Capability) else name


class CapabilityRegistry:
    """Mapping of capability name to handler.

    Handlers may be plain functions or coroutine functions. Registration is
    meant to happen during setup; the registry is only read while requests
    are in flight.
    """

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        """Initialize registry, optionally with an initial set of handlers."""
        self._handlers: dict[str, Handler] = {}
        if handlers:
            self.register_many(handlers)

    @beartype
    def register(self, name: CapabilityName, handler: Handler) -> None:
        """Store ``handler`` under ``name``. The last registration wins."""
        key = _key(name)
        if key in self._handlers:
            logger.debug("Replacing handler for capability '%s'", key)
        self._handlers[key] = handler

    @beartype
    def register_many(self, handlers: Mapping[str, Handler]) -> None:
        """Register every handler of a mapping."""
        for name, handler in handlers.items():
            self.register(name, handler)

    @beartype
    def require(self, names: Iterable[CapabilityName]) -> list[str]:
        """Return the names that have no registered handler, in order."""
        return [_key(name) for name in names if _key(name) not in self._handlers]

    @beartype
    def missing_handler_errors(self, names: Iterable[CapabilityName]) -> list[GrantError]:
        """One configuration error per capability without a handler."""
        return [missing_handler(name) for name in self.require(names)]

    @beartype
    def lookup(self, name: CapabilityName) -> Result[Handler, list[GrantError]]:
        """Get the handler for ``name`` or a typed unregistered error."""
        handler = self._handlers.get(_key(name))
        if handler is None:
            return fail(missing_handler(_key(name)))
        return Ok(handler)

    async def invoke(
        self, name: CapabilityName, *args: Any, **kwargs: Any
    ) -> Result[Any, list[GrantError]]:
        """Call a handler and normalize its outcome into a Result.

        A plain return value becomes ``Ok(value)`` (``None`` included, meaning
        absent). A returned ``Ok``/``Err`` is passed through. A raised exception
        is logged and reported as a server error.
        """
        key = _key(name)
        found = self.lookup(key)
        if isinstance(found, Err):
            return found

        try:
            outcome = found.value(*args, **kwargs)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception:
            logger.exception("Capability handler '%s' raised", key)
            return fail(server_error(f"Handler '{key}' failed"))

        if isinstance(outcome, Err):
            return Err(_as_grant_errors(key, outcome.error))
        if isinstance(outcome, Ok):
            return outcome
        return Ok(outcome)

    def names(self) -> list[str]:
        """Registered capability names."""
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, (str, Capability)):
            return _key(name) in self._handlers
        return False

    def __len__(self) -> int:
        return len(self._handlers)


def _as_grant_errors(key: str, error: Any) -> list[GrantError]:
    items = error if isinstance(error, (list, tuple)) else [error]
    errors = []
    for item in items:
        if isinstance(item, GrantError):
            errors.append(item)
        else:
            errors.append(GrantError(str(item), ErrorKind.SERVER, "server_error"))
    if not errors:
        errors.append(server_error(f"Handler '{key}' failed"))
    return errors


async def load_effective_config(
    registry: CapabilityRegistry,
    client_id: str | None,
    settings: Settings | None = None,
) -> Result[ServerConfig, list[GrantError]]:
    """Resolve the per-request configuration for ``client_id``.

    Without a ``get_config`` handler the defaults from ``Settings`` apply. A
    handler may return a full ``ServerConfig`` or a partial mapping, which is
    merged over the defaults (nested ``expiry`` entries included).
    """
    base = ServerConfig.from_settings(settings or get_settings())
    if Capability.GET_CONFIG not in registry:
        return Ok(base)

    outcome = await registry.invoke(Capability.GET_CONFIG, client_id)
    if isinstance(outcome, Err):
        return outcome

    override = outcome.value
    if override is None:
        return Ok(base)
    if not isinstance(override, (ServerConfig, Mapping)):
        logger.error("get_config returned %s", type(override).__name__)
        return fail(server_error("Handler 'get_config' returned an invalid configuration"))

    try:
        return Ok(base.merged(override))
    except ValidationError:
        logger.exception("get_config returned an invalid configuration")
        return fail(server_error("Handler 'get_config' returned an invalid configuration"))

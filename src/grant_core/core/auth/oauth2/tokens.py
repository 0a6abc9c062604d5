# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Token encoding, decoding and expiry checks.

``TokenCodec`` turns a raw token into validated ``TokenClaims`` through the
``get_token_claims`` capability, so opaque tokens and self-describing ones
go through the same path. ``JWTTokenSigner`` is the signing primitive the
bundled strategy uses for self-describing tokens.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from beartype import beartype
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import ValidationError

from grant_core.core.config import Settings
from grant_core.core.logging_utils import get_logger
from grant_core.core.result_types import Err, Ok, Result, fail
from grant_core.models import ClaimsRequest, TokenClaims, TokenKind

from .errors import GrantError, invalid_token
from .registry import Capability, CapabilityRegistry

logger = get_logger(__name__)


class JWTTokenSigner:
    """Sign and verify self-describing tokens with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        """Initialize signer."""
        self._secret = secret
        self._algorithm = algorithm

    @classmethod
    @beartype
    def from_settings(cls, settings: Settings) -> "JWTTokenSigner":
        """Build a signer from engine settings."""
        return cls(settings.jwt_secret, settings.jwt_algorithm)

    @beartype
    def encode(self, claims: Mapping[str, Any]) -> str:
        """Sign claims into a compact JWT."""
        return jwt.encode(dict(claims), self._secret, algorithm=self._algorithm)

    @beartype
    def decode(self, token: str) -> Result[dict[str, Any], str]:
        """Verify the signature and return the raw claims.

        Expiry is not enforced here; ``TokenCodec.is_expired``
        judges it against the effective per-request configuration.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as e:
            return Err(str(e))
        return Ok(payload)


class TokenCodec:
    """Decode tokens into claims and judge their expiry."""

    @staticmethod
    @beartype
    async def decode(
        registry: CapabilityRegistry, token: Any, kind: TokenKind
    ) -> Result[TokenClaims, list[GrantError]]:
        """Decode ``token`` as ``kind``.

        Any structural problem (not a string, unknown to the handler, claims
        that do not validate, claims of another kind) is reported as
        ``Invalid <kind>``.
        """
        if not isinstance(token, str) or not token.strip():
            logger.debug("Rejected non-string %s", kind.value)
            return fail(invalid_token(kind.value))

        missing = registry.missing_handler_errors([Capability.GET_TOKEN_CLAIMS])
        if missing:
            return Err(missing)

        outcome = await registry.invoke(
            Capability.GET_TOKEN_CLAIMS,
            ClaimsRequest(token=token, token_type_hint=kind),
        )
        if isinstance(outcome, Err):
            logger.debug("get_token_claims rejected %s: %s", kind.value, outcome.error)
            return fail(invalid_token(kind.value))
        if outcome.value is None:
            return fail(invalid_token(kind.value))

        record = outcome.value
        try:
            claims = (
                record
                if isinstance(record, TokenClaims)
                else TokenClaims.model_validate(record)
            )
        except ValidationError:
            logger.debug("get_token_claims returned malformed claims for %s", kind.value)
            return fail(invalid_token(kind.value))

        if claims.kind is not None and claims.kind != kind:
            logger.debug("Token is a %s, not a %s", claims.kind.value, kind.value)
            return fail(invalid_token(kind.value))

        return Ok(claims)

    @staticmethod
    @beartype
    def is_expired(
        claims: TokenClaims,
        now: datetime | None = None,
        window: int | None = None,
    ) -> bool:
        """Check whether the claims are past their expiry.

        Args:
            claims: Decoded token claims
            now: Reference instant, defaults to the current UTC time
            window: Configured lifetime in seconds, measured from ``iat``

        Returns:
            True when ``exp`` has passed, or when ``iat + window`` has passed
        """
        timestamp = int((now or datetime.now(timezone.utc)).timestamp())
        if claims.exp <= timestamp:
            return True
        if window is not None and claims.iat is not None:
            return claims.iat + window <= timestamp
        return False

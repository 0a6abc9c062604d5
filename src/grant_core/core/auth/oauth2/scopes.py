# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""OAuth2 scope parsing and validation."""

from collections.abc import Iterable

from beartype import beartype

from grant_core.core.result_types import Ok, Result, fail

from .errors import ErrorKind, GrantError

OPENID = "openid"
OFFLINE_ACCESS = "offline_access"


class Scope:
    """OAuth2 scope definition."""

    def __init__(self, name: str, description: str, mints: str | None = None) -> None:
        """Initialize scope.

        Args:
            name: Scope identifier
            description: Human-readable description
            mints: Token kind whose issuance this scope unlocks
        """
        self.name = name
        self.description = description
        self.mints = mints


# Standard OpenID Connect scopes
OIDC_SCOPES: dict[str, Scope] = {
    OPENID: Scope(OPENID, "Authenticate with OpenID Connect", mints="id_token"),
    OFFLINE_ACCESS: Scope(
        OFFLINE_ACCESS, "Keep access while the user is offline", mints="refresh_token"
    ),
    "profile": Scope("profile", "Read default profile claims"),
    "email": Scope("email", "Read email address claims"),
    "phone": Scope("phone", "Read phone number claims"),
    "address": Scope("address", "Read postal address claims"),
}

ScopeInput = str | Iterable[str] | None


class ScopeValidator:
    """Normalize and compare scope sets.

    On the wire a scope is a space-delimited list. Internally it is an
    ordered set: duplicates are dropped and the first occurrence keeps its
    position.
    """

    @staticmethod
    @beartype
    def parse(scope: ScopeInput) -> list[str]:
        """Normalize a scope string or iterable to an ordered unique list."""
        if scope is None:
            return []
        items = scope.split() if isinstance(scope, str) else scope
        seen: dict[str, None] = {}
        for item in items:
            name = str(item).strip()
            if name:
                seen.setdefault(name, None)
        return list(seen)

    @staticmethod
    @beartype
    def format(scopes: Iterable[str]) -> str:
        """Serialize scopes to the space-delimited wire format."""
        return " ".join(ScopeValidator.parse(list(scopes)))

    @staticmethod
    @beartype
    def intersect(requested: ScopeInput, allowed: ScopeInput) -> list[str]:
        """Scopes present in both sets, in ``requested`` order."""
        allowed_set = set(ScopeValidator.parse(allowed))
        return [s for s in ScopeValidator.parse(requested) if s in allowed_set]

    @staticmethod
    @beartype
    def is_subset(requested: ScopeInput, allowed: ScopeInput) -> bool:
        """Check every requested scope is allowed."""
        return set(ScopeValidator.parse(requested)) <= set(ScopeValidator.parse(allowed))

    @staticmethod
    @beartype
    def validate(
        requested: ScopeInput, allowed: ScopeInput
    ) -> Result[list[str], list[GrantError]]:
        """Validate requested scopes against the allowed set.

        Args:
            requested: Scopes asked for by the request
            allowed: Scopes the client (or original grant) permits

        Returns:
            Result containing the granted scopes, never a superset of
            ``allowed``, or an ``invalid_scope`` error naming the offenders
        """
        scopes = ScopeValidator.parse(requested)
        allowed_set = set(ScopeValidator.parse(allowed))
        disallowed = [s for s in scopes if s not in allowed_set]
        if disallowed:
            return fail(
                GrantError(
                    f"Scopes not allowed: {', '.join(disallowed)}",
                    ErrorKind.VALIDATION,
                    "invalid_scope",
                )
            )
        return Ok(scopes)

    @staticmethod
    @beartype
    def grants_token(scopes: Iterable[str], kind: str) -> bool:
        """Check whether the scopes unlock an optional token kind."""
        return any(
            OIDC_SCOPES[s].mints == kind for s in scopes if s in OIDC_SCOPES
        )

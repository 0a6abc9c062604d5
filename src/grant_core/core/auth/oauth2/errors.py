# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Structured errors reported by grant execution and introspection.

Errors are values, never raised across the engine boundary. Each one keeps
the human-readable ``message`` the HTTP layer surfaces plus the OAuth2 wire
``error`` code it should map to.
"""

from enum import Enum
from typing import Any

from attrs import field, frozen
from beartype import beartype

CLIENT_NOT_FOUND = "client_id not found"
INVALID_CODE = "Invalid or expired authorization code"
INVALID_USER_CREDENTIALS = "Invalid username or password"
INVALID_REFRESH_TOKEN = "Invalid refresh_token"


class ErrorKind(str, Enum):
    """Error categories."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    DECODE = "decode"
    SERVER = "server"


@frozen
class GrantError:
    """A single failure discovered while processing a request."""

    message: str
    kind: ErrorKind = field(default=ErrorKind.VALIDATION)
    error: str = field(default="invalid_request")

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to an OAuth2 error response body."""
        return {"error": self.error, "error_description": self.message}

    def __str__(self) -> str:
        return f"{self.error}: {self.message}"


@beartype
def missing_handler(name: str) -> GrantError:
    """Capability handler absent from the registry."""
    return GrantError(
        f"Missing '{name}' handler", ErrorKind.CONFIGURATION, "server_error"
    )


@beartype
def missing_field(name: str) -> GrantError:
    """Required payload field absent or empty."""
    return GrantError(f"Missing required '{name}'", ErrorKind.VALIDATION)


@beartype
def client_not_found() -> GrantError:
    """Unknown client, wrong secret or a token owned by another client."""
    return GrantError(CLIENT_NOT_FOUND, ErrorKind.AUTHENTICATION, "invalid_client")


@beartype
def invalid_grant(message: str) -> GrantError:
    """Credential, code or refresh token rejected."""
    return GrantError(message, ErrorKind.AUTHENTICATION, "invalid_grant")


@beartype
def invalid_token(kind: str) -> GrantError:
    """Token that cannot be decoded as the declared kind."""
    return GrantError(f"Invalid {kind}", ErrorKind.DECODE, "invalid_token")


@beartype
def server_error(message: str) -> GrantError:
    """Handler crash or malformed handler output."""
    return GrantError(message, ErrorKind.SERVER, "server_error")

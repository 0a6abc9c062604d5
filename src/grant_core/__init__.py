# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""GrantCore - storage-agnostic OAuth2/OIDC grant and introspection engine."""

__version__ = "0.1.0"

from .core.auth.oauth2 import (
    Capability,
    CapabilityRegistry,
    ErrorKind,
    GrantError,
    TokenIntrospector,
    execute_grant,
    introspect,
    issue_authorization_code,
)
from .core.result_types import Err, Ok, Result

__all__ = [
    "Capability",
    "CapabilityRegistry",
    "Err",
    "ErrorKind",
    "GrantError",
    "Ok",
    "Result",
    "TokenIntrospector",
    "__version__",
    "execute_grant",
    "introspect",
    "issue_authorization_code",
]

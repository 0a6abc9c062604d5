# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Core infrastructure components for the grant engine."""

from .config import Settings, get_settings
from .logging_utils import configure_logging, get_logger
from .result_types import Err, Ok, Result

__all__ = [
    "Err",
    "Ok",
    "Result",
    "Settings",
    "configure_logging",
    "get_logger",
    "get_settings",
]

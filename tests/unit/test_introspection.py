"""Unit tests for token introspection."""

from datetime import datetime, timedelta, timezone

import pytest

from grant_core.core.auth.oauth2 import (
    CapabilityRegistry,
    ErrorKind,
    GrantError,
    TokenIntrospector,
    introspect,
    to_response_body,
)
from grant_core.core.result_types import Err, Ok
from grant_core.models import IntrospectionResponse
from tests.fixtures.oauth2_data import (
    ALT_CLIENT_ID,
    ALT_CLIENT_SECRET,
    AUDIENCE,
    CLIENT_ID,
    CREDENTIALS,
    ISSUER,
    get_valid_access_token,
    get_valid_id_and_refresh_token,
    messages,
)


@pytest.fixture
def introspector(settings):
    """Create introspector bound to the test settings."""
    return TokenIntrospector(settings)


class TestCapabilityChecks:
    """Tests for missing capability handlers."""

    @pytest.mark.asyncio
    async def test_missing_get_token_claims_handler(self, introspector):
        """Test an empty registry reports the missing get_token_claims handler."""
        result = await introspector.introspect(
            {**CREDENTIALS, "token": "abc", "token_type_hint": "access_token"},
            CapabilityRegistry(),
        )

        assert result.is_err()
        assert "Missing 'get_token_claims' handler" in messages(result.error)
        assert all(e.kind is ErrorKind.CONFIGURATION for e in result.error)

    @pytest.mark.asyncio
    async def test_missing_get_client_handler(self, introspector, strategy):
        """Test a registry with only get_token_claims reports get_client."""
        registry = CapabilityRegistry({"get_token_claims": strategy.get_token_claims})

        result = await introspector.introspect(
            {**CREDENTIALS, "token": "abc", "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_err()
        assert messages(result.error) == ["Missing 'get_client' handler"]

    @pytest.mark.asyncio
    async def test_capabilities_checked_before_fields(self, introspector):
        """Test a missing handler wins over an empty payload."""
        result = await introspector.introspect({}, CapabilityRegistry())

        assert result.is_err()
        assert messages(result.error) == [
            "Missing 'get_token_claims' handler",
            "Missing 'get_client' handler",
        ]


class TestActiveTokens:
    """Tests for introspecting valid tokens."""

    @pytest.mark.asyncio
    async def test_valid_access_token(self, introspector, registry, settings):
        """Test a fresh access token is active and describes its grant."""
        access_token = await get_valid_access_token(registry, settings)

        result = await introspector.introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_ok()
        info = result.value
        assert info.active is True
        assert info.iss == ISSUER
        assert info.sub == "1"
        assert info.aud == AUDIENCE
        assert info.client_id == CLIENT_ID
        assert info.token_type == "Bearer"
        assert info.exp is not None
        assert info.iat is not None

    @pytest.mark.asyncio
    async def test_valid_id_token(self, introspector, registry, settings):
        """Test an id token from the authorization code grant is active."""
        tokens = await get_valid_id_and_refresh_token(registry, settings)
        assert tokens.id_token
        assert tokens.refresh_token

        result = await introspector.introspect(
            {**CREDENTIALS, "token": tokens.id_token, "token_type_hint": "id_token"},
            registry,
        )

        assert result.is_ok()
        info = result.value
        assert info.active is True
        assert info.iss == ISSUER
        assert info.sub == "1"
        assert info.aud == AUDIENCE
        assert info.client_id == CLIENT_ID
        assert set(info.scope.split()) == {"openid", "offline_access"}
        assert info.token_type == "Bearer"

    @pytest.mark.asyncio
    async def test_valid_refresh_token(self, introspector, registry, settings):
        """Test a refresh token is active and carries the granted scopes."""
        tokens = await get_valid_id_and_refresh_token(registry, settings)

        result = await introspector.introspect(
            {
                **CREDENTIALS,
                "token": tokens.refresh_token,
                "token_type_hint": "refresh_token",
            },
            registry,
        )

        assert result.is_ok()
        info = result.value
        assert info.active is True
        assert info.sub == "1"
        assert info.client_id == CLIENT_ID
        assert set(info.scope.split()) == {"openid", "offline_access"}
        assert info.token_type == "Bearer"

    @pytest.mark.asyncio
    async def test_module_level_introspect(self, registry, settings):
        """Test the module-level helper matches the introspector."""
        access_token = await get_valid_access_token(registry, settings)

        result = await introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "access_token"},
            registry,
            settings,
        )

        assert result.is_ok()
        assert result.value.active is True


class TestRequiredFields:
    """Tests for missing payload fields."""

    @pytest.mark.parametrize(
        "field",
        ["client_id", "client_secret", "token", "token_type_hint"],
    )
    @pytest.mark.asyncio
    async def test_missing_field(self, introspector, registry, settings, field):
        """Test each required field is reported when absent."""
        tokens = await get_valid_id_and_refresh_token(registry, settings)
        payload = {
            **CREDENTIALS,
            "token": tokens.refresh_token,
            "token_type_hint": "refresh_token",
        }
        payload[field] = None

        result = await introspector.introspect(payload, registry)

        assert result.is_err()
        assert f"Missing required '{field}'" in messages(result.error)

    @pytest.mark.asyncio
    async def test_fields_checked_in_order(self, introspector, registry):
        """Test only the first missing field is reported."""
        result = await introspector.introspect({"token": "abc"}, registry)

        assert result.is_err()
        assert messages(result.error) == ["Missing required 'client_id'"]

    @pytest.mark.asyncio
    async def test_unsupported_token_type_hint(self, introspector, registry):
        """Test an unknown hint is rejected with unsupported_token_type."""
        result = await introspector.introspect(
            {**CREDENTIALS, "token": "abc", "token_type_hint": "session_token"},
            registry,
        )

        assert result.is_err()
        assert result.error[0].error == "unsupported_token_type"
        assert "session_token" in result.error[0].message


class TestRejectedTokens:
    """Tests for tokens that fail decoding or ownership checks."""

    @pytest.mark.asyncio
    async def test_non_string_token(self, introspector, registry):
        """Test a numeric token is reported as invalid for its hint."""
        result = await introspector.introspect(
            {**CREDENTIALS, "token": 12344, "token_type_hint": "refresh_token"},
            registry,
        )

        assert result.is_err()
        assert "Invalid refresh_token" in messages(result.error)
        assert result.error[0].kind is ErrorKind.DECODE

    @pytest.mark.asyncio
    async def test_garbage_token(self, introspector, registry):
        """Test an undecodable string token is reported as invalid."""
        result = await introspector.introspect(
            {**CREDENTIALS, "token": "not-a-jwt", "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_err()
        assert messages(result.error) == ["Invalid access_token"]

    @pytest.mark.asyncio
    async def test_token_of_other_kind(self, introspector, registry, settings):
        """Test an access token introspected as an id token is rejected."""
        access_token = await get_valid_access_token(registry, settings)

        result = await introspector.introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "id_token"},
            registry,
        )

        assert result.is_err()
        assert messages(result.error) == ["Invalid id_token"]

    @pytest.mark.asyncio
    async def test_token_owned_by_other_client(self, introspector, registry, settings):
        """Test a client cannot introspect another client's token."""
        tokens = await get_valid_id_and_refresh_token(registry, settings)

        result = await introspector.introspect(
            {
                "client_id": ALT_CLIENT_ID,
                "client_secret": ALT_CLIENT_SECRET,
                "token": tokens.refresh_token,
                "token_type_hint": "refresh_token",
            },
            registry,
        )

        assert result.is_err()
        assert "client_id not found" in messages(result.error)

    @pytest.mark.asyncio
    async def test_wrong_client_secret(self, introspector, registry, settings):
        """Test a wrong secret reads the same as an unknown client."""
        access_token = await get_valid_access_token(registry, settings)

        result = await introspector.introspect(
            {
                "client_id": CLIENT_ID,
                "client_secret": "wrong",
                "token": access_token,
                "token_type_hint": "access_token",
            },
            registry,
        )

        assert result.is_err()
        assert messages(result.error) == ["client_id not found"]

    @pytest.mark.asyncio
    async def test_handler_error_maps_to_invalid_token(self, introspector, registry):
        """Test an Err from get_token_claims is reported as an invalid token."""
        registry.register(
            "get_token_claims", lambda request: Err(["token revoked"])
        )

        result = await introspector.introspect(
            {**CREDENTIALS, "token": "abc", "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_err()
        assert messages(result.error) == ["Invalid access_token"]


class TestExpiry:
    """Tests for the expiry check."""

    @pytest.mark.asyncio
    async def test_expired_access_token_is_inactive(
        self, introspector, registry, strategy, settings
    ):
        """Test a negative configured lifetime makes the token inactive."""
        access_token = await get_valid_access_token(registry, settings)
        strategy.set_config(CLIENT_ID, {"expiry": {"access_token": -1000}})

        result = await introspector.introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_ok()
        assert result.value.active is False

    @pytest.mark.asyncio
    async def test_get_config_override_handler(self, introspector, registry, settings):
        """Test a replaced get_config handler drives the expiry window."""
        access_token = await get_valid_access_token(registry, settings)
        registry.register(
            "get_config",
            lambda client_id: {"expiry": {"access_token": -1000}},
        )

        result = await introspector.introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "access_token"},
            registry,
        )

        assert result.is_ok()
        assert result.value.active is False

    @pytest.mark.asyncio
    async def test_later_reference_time_is_inactive(
        self, introspector, registry, settings
    ):
        """Test a reference instant past exp makes the token inactive."""
        access_token = await get_valid_access_token(registry, settings)
        later = datetime.now(timezone.utc) + timedelta(
            seconds=settings.access_token_expiry + 1
        )

        result = await introspector.introspect(
            {**CREDENTIALS, "token": access_token, "token_type_hint": "access_token"},
            registry,
            now=later,
        )

        assert result.is_ok()
        assert result.value.active is False
        assert result.value.client_id == CLIENT_ID


class TestResponseBody:
    """Tests for mapping introspection results to response bodies."""

    def test_ok_body_omits_empty_fields(self):
        """Test an active response serializes without None fields."""
        body = to_response_body(
            Ok(IntrospectionResponse(active=True, client_id=CLIENT_ID, scope=""))
        )

        assert body == {"active": True, "client_id": CLIENT_ID, "scope": ""}

    def test_decode_errors_become_inactive(self):
        """Test undecodable tokens are reported as inactive."""
        body = to_response_body(
            Err([GrantError("Invalid access_token", ErrorKind.DECODE, "invalid_token")])
        )

        assert body == {"active": False}

    def test_other_errors_become_error_body(self):
        """Test non-decode failures keep their OAuth2 error body."""
        body = to_response_body(
            Err(
                [
                    GrantError(
                        "client_id not found", ErrorKind.AUTHENTICATION, "invalid_client"
                    )
                ]
            )
        )

        assert body == {
            "error": "invalid_client",
            "error_description": "client_id not found",
        }

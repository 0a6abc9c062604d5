"""Unit tests for the capability registry and effective configuration."""

import pytest

from grant_core.core.auth.oauth2 import (
    Capability,
    CapabilityRegistry,
    ErrorKind,
    GrantError,
    load_effective_config,
)
from grant_core.core.result_types import Err, Ok
from grant_core.models import ExpiryConfig, ServerConfig


class TestRegistration:
    """Tests for registering and looking up handlers."""

    def test_register_and_lookup(self):
        """Test a registered handler can be looked up by name or enum."""
        registry = CapabilityRegistry()

        def handler(client_id):
            return None

        registry.register("get_client", handler)

        assert registry.lookup(Capability.GET_CLIENT).value is handler
        assert "get_client" in registry
        assert Capability.GET_CLIENT in registry
        assert len(registry) == 1

    def test_last_registration_wins(self):
        """Test registering a name twice replaces the first handler."""
        registry = CapabilityRegistry()

        def first(client_id):
            return None

        def second(client_id):
            return None

        registry.register(Capability.GET_CLIENT, first)
        registry.register(Capability.GET_CLIENT, second)

        assert registry.lookup("get_client").value is second
        assert registry.names() == ["get_client"]

    def test_lookup_unregistered(self):
        """Test looking up an unknown name yields a configuration error."""
        result = CapabilityRegistry().lookup("get_client")

        assert result.is_err()
        assert result.error[0].message == "Missing 'get_client' handler"
        assert result.error[0].kind is ErrorKind.CONFIGURATION

    def test_require_reports_in_order(self):
        """Test require lists missing names in the order asked."""
        registry = CapabilityRegistry({"generate_tokens": lambda request: {}})

        missing = registry.require(
            [Capability.GET_CLIENT, Capability.GENERATE_TOKENS, "get_config"]
        )

        assert missing == ["get_client", "get_config"]

    def test_registries_are_independent(self):
        """Test handlers registered in one registry do not leak into another."""
        first = CapabilityRegistry()
        first.register("get_client", lambda client_id: None)

        assert "get_client" not in CapabilityRegistry()


class TestInvoke:
    """Tests for calling handlers through the registry."""

    @pytest.mark.asyncio
    async def test_sync_handler(self):
        """Test a plain function's return value is wrapped in Ok."""
        registry = CapabilityRegistry({"get_client": lambda client_id: {"id": client_id}})

        result = await registry.invoke("get_client", "abc")

        assert result == Ok({"id": "abc"})

    @pytest.mark.asyncio
    async def test_async_handler(self):
        """Test a coroutine handler is awaited."""

        async def get_client(client_id):
            return client_id.upper()

        registry = CapabilityRegistry({"get_client": get_client})

        result = await registry.invoke(Capability.GET_CLIENT, "abc")

        assert result.value == "ABC"

    @pytest.mark.asyncio
    async def test_none_is_ok(self):
        """Test None is passed through as an absent value."""
        registry = CapabilityRegistry({"get_client": lambda client_id: None})

        result = await registry.invoke("get_client", "abc")

        assert result.is_ok()
        assert result.value is None

    @pytest.mark.asyncio
    async def test_err_is_normalized(self):
        """Test plain error values in an Err become server errors."""
        registry = CapabilityRegistry({"get_client": lambda client_id: Err("boom")})

        result = await registry.invoke("get_client", "abc")

        assert result.is_err()
        assert result.error == [GrantError("boom", ErrorKind.SERVER, "server_error")]

    @pytest.mark.asyncio
    async def test_grant_errors_pass_through(self):
        """Test GrantError values in an Err are kept as they are."""
        error = GrantError("nope", ErrorKind.AUTHENTICATION, "invalid_grant")
        registry = CapabilityRegistry({"get_client": lambda client_id: Err([error])})

        result = await registry.invoke("get_client", "abc")

        assert result.error == [error]

    @pytest.mark.asyncio
    async def test_exception_is_captured(self):
        """Test an exception raised by a handler becomes a server error."""

        async def get_client(client_id):
            raise ConnectionError("down")

        registry = CapabilityRegistry({"get_client": get_client})

        result = await registry.invoke("get_client", "abc")

        assert result.is_err()
        assert result.error[0].message == "Handler 'get_client' failed"
        assert result.error[0].kind is ErrorKind.SERVER

    @pytest.mark.asyncio
    async def test_invoke_unregistered(self):
        """Test invoking an unknown handler reports it as missing."""
        result = await CapabilityRegistry().invoke("get_config", None)

        assert result.is_err()
        assert result.error[0].message == "Missing 'get_config' handler"


class TestEffectiveConfig:
    """Tests for resolving per-request configuration."""

    @pytest.mark.asyncio
    async def test_defaults_without_handler(self, settings):
        """Test settings defaults apply when get_config is not registered."""
        result = await load_effective_config(CapabilityRegistry(), "abc", settings)

        assert result.is_ok()
        assert result.value == ServerConfig.from_settings(settings)

    @pytest.mark.asyncio
    async def test_partial_override(self, settings):
        """Test a partial mapping is merged over the defaults."""
        registry = CapabilityRegistry(
            {"get_config": lambda client_id: {"expiry": {"access_token": -1000}}}
        )

        result = await load_effective_config(registry, "abc", settings)

        assert result.is_ok()
        config = result.value
        assert config.expiry.access_token == -1000
        assert config.expiry.refresh_token == settings.refresh_token_expiry
        assert config.iss == settings.issuer

    @pytest.mark.asyncio
    async def test_full_override(self, settings):
        """Test a full ServerConfig replaces the defaults."""
        override = ServerConfig(
            expiry=ExpiryConfig(access_token=1, id_token=2, refresh_token=3),
            iss="https://other.test",
            aud="https://other-api.test",
        )
        registry = CapabilityRegistry({"get_config": lambda client_id: override})

        result = await load_effective_config(registry, "abc", settings)

        assert result.value == override

    @pytest.mark.asyncio
    async def test_none_keeps_defaults(self, settings):
        """Test a handler returning None keeps the defaults."""
        registry = CapabilityRegistry({"get_config": lambda client_id: None})

        result = await load_effective_config(registry, "abc", settings)

        assert result.value == ServerConfig.from_settings(settings)

    @pytest.mark.asyncio
    async def test_invalid_override(self, settings):
        """Test a malformed override is reported as a server error."""
        registry = CapabilityRegistry(
            {"get_config": lambda client_id: {"expiry": {"access_token": "soon"}}}
        )

        result = await load_effective_config(registry, "abc", settings)

        assert result.is_err()
        assert result.error[0].kind is ErrorKind.SERVER

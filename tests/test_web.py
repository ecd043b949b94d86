"""Tests for the aiohttp middleware and error mapping."""
import asyncpg
import orjson
import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from apikey_vault import KeyVault
from apikey_vault.exceptions import (
    AlreadyExists,
    StoreError,
    ValidationError,
    VaultCorrupted,
)
from apikey_vault.storage.postgres import PostgresBackend
from apikey_vault.web import (
    IDENTITY_KEY,
    error_response,
    extract_credential,
    identity_of,
    json_response,
    vault_middleware,
)


async def whoami(request):
    return json_response({"identityId": identity_of(request)})


async def public(request):
    return json_response({"ok": True})


def body(response):
    return orjson.loads(response.body)


class DroppedConnectionPool:
    """Pool whose connections are gone by the time they are used."""

    def acquire(self):
        return self

    async def __aenter__(self):
        raise asyncpg.ConnectionDoesNotExistError(
            "connection was closed in the middle of operation"
        )

    async def __aexit__(self, *exc):
        return False

    async def close(self):
        pass


class TestExtractCredential:

    def test_api_key_header(self):
        request = make_mocked_request("GET", "/", headers={"X-API-Key": "ak_1"})
        assert extract_credential(request) == "ak_1"

    def test_bearer_header(self):
        request = make_mocked_request(
            "GET", "/", headers={"Authorization": "Bearer ak_2"},
        )
        assert extract_credential(request) == "ak_2"

    def test_api_key_wins(self):
        request = make_mocked_request(
            "GET", "/", headers={"X-API-Key": "ak_1", "Authorization": "Bearer ak_2"},
        )
        assert extract_credential(request) == "ak_1"

    @pytest.mark.parametrize("headers", [
        {}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "},
    ])
    def test_no_credential(self, headers):
        request = make_mocked_request("GET", "/", headers=headers)
        assert extract_credential(request) is None


class TestMiddleware:

    async def test_authenticated_request(self, vault):
        registered = await vault.register("a@x.com")
        middleware = vault_middleware(vault)
        request = make_mocked_request(
            "GET", "/api/keys", headers={"X-API-Key": registered["rawCredential"]},
        )
        response = await middleware(request, whoami)
        assert response.status == 200
        assert body(response) == {"identityId": registered["identityId"]}
        assert request[IDENTITY_KEY] == registered["identityId"]

    async def test_missing_and_invalid_look_the_same(self, vault):
        """Test both auth failures give the same 401 body."""
        middleware = vault_middleware(vault)
        missing = await middleware(make_mocked_request("GET", "/api/keys"), whoami)
        invalid = await middleware(
            make_mocked_request("GET", "/api/keys", headers={"X-API-Key": "ak_bad"}),
            whoami,
        )
        assert missing.status == invalid.status == 401
        assert body(missing) == body(invalid) == {"error": "Authentication failed"}

    async def test_public_path_skips_auth(self, vault):
        middleware = vault_middleware(vault)
        response = await middleware(
            make_mocked_request("POST", "/api/users/register"), public,
        )
        assert response.status == 200

    async def test_custom_public_paths(self, vault):
        middleware = vault_middleware(vault, public_paths=["/open"])
        response = await middleware(make_mocked_request("GET", "/open"), public)
        assert response.status == 200
        response = await middleware(
            make_mocked_request("POST", "/api/users/register"), public,
        )
        assert response.status == 401

    async def test_handler_errors_are_mapped(self, vault):
        registered = await vault.register("a@x.com")
        middleware = vault_middleware(vault)

        async def conflict(request):
            raise AlreadyExists("openai")

        response = await middleware(
            make_mocked_request(
                "POST", "/api/keys", headers={"X-API-Key": registered["rawCredential"]},
            ),
            conflict,
        )
        assert response.status == 409
        assert body(response) == {"error": "API key for openai already exists"}

    async def test_store_failures_become_json(self, config):
        """Test a database outage maps to the opaque JSON 500."""
        vault = KeyVault(config, PostgresBackend(DroppedConnectionPool()))
        middleware = vault_middleware(vault)

        async def register(request):
            return json_response(await vault.register("a@x.com"), status=201)

        response = await middleware(
            make_mocked_request("POST", "/api/users/register"), register,
        )
        assert response.status == 500
        assert body(response) == {"error": "Internal server error"}

    def test_identity_of_without_middleware(self):
        with pytest.raises(web.HTTPUnauthorized):
            identity_of(make_mocked_request("GET", "/"))


class TestErrorResponse:

    def test_validation_is_verbatim(self):
        response = error_response(ValidationError("Please provide a valid email"))
        assert response.status == 400
        assert body(response) == {"error": "Please provide a valid email"}

    @pytest.mark.parametrize("err", [
        VaultCorrupted("identity-1", "openai"),
        StoreError("connection refused on 10.0.0.3"),
    ])
    def test_internal_errors_are_opaque(self, err):
        """Test internal detail never reaches the body."""
        response = error_response(err)
        assert response.status == 500
        assert body(response) == {"error": "Internal server error"}

"""
Tests for RestEntityStore using httpx.MockTransport in place of the
hosted PostgREST endpoint.
"""

import json

import httpx
import pytest

from console_kernel.domain.gateway import GatewayAction, GatewayErrorKind, GatewayRequest
from console_kernel.exceptions import (
    EntityNotFoundError,
    StoreConfigurationError,
    StoreRejectedError,
    StoreUnavailableError,
)
from console_kernel.services.action_gateway import ActionGateway
from console_kernel.services.rest_store import RestEntityStore

BASE_URL = "https://project.example.co"


def _store(handler, **kwargs) -> RestEntityStore:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RestEntityStore(BASE_URL, api_key="anon-key", client=client, **kwargs)


def _request(action, entity_id="u-1", entity_type="license", **patch):
    return GatewayRequest(
        entity_type=entity_type, entity_id=entity_id, action=action, patch=patch,
    )


# =============================================================================
# Request shape
# =============================================================================


class TestRequestShape:
    def test_update_is_patch_filtered_by_id(self):
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["params"] = dict(request.url.params)
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"id": "u-1", "status": "suspended"}])

        req = _request(GatewayAction.UPDATE, status="suspended")
        data = _store(handler).apply(req)

        assert data == {"id": "u-1", "status": "suspended"}
        assert captured["method"] == "PATCH"
        assert captured["path"] == "/rest/v1/user_licenses"
        assert captured["params"] == {"id": "eq.u-1"}
        assert captured["body"] == {"status": "suspended"}
        assert captured["headers"]["apikey"] == "anon-key"
        assert captured["headers"]["authorization"] == "Bearer anon-key"
        assert captured["headers"]["prefer"] == "return=representation"
        assert captured["headers"]["idempotency-key"] == req.idempotency_key

    def test_access_token_used_as_bearer(self):
        seen: dict = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json=[{"id": "u-1"}])

        _store(handler, access_token="user-jwt").apply(_request(GatewayAction.FETCH))
        assert seen["auth"] == "Bearer user-jwt"

    def test_create_posts_id_with_patch(self):
        seen: dict = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=[seen["body"]])

        data = _store(handler).apply(
            _request(GatewayAction.CREATE, license_type="premium")
        )
        assert seen["method"] == "POST"
        assert seen["body"] == {"id": "u-1", "license_type": "premium"}
        assert data["license_type"] == "premium"

    def test_fetch_selects_all_columns(self):
        seen: dict = {}

        def handler(request):
            seen["method"] = request.method
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[{"id": "b-1"}])

        _store(handler).apply(_request(GatewayAction.FETCH, entity_id="b-1", entity_type="budget"))
        assert seen["method"] == "GET"
        assert seen["params"] == {"id": "eq.b-1", "select": "*"}

    def test_custom_table_mapping(self):
        seen: dict = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(200, json=[{"id": "b-1"}])

        store = _store(handler, tables={"budget": "quotes"})
        store.apply(_request(GatewayAction.DELETE, entity_id="b-1", entity_type="budget"))
        assert seen["path"] == "/rest/v1/quotes"


# =============================================================================
# Error mapping
# =============================================================================


class TestErrorMapping:
    def test_empty_representation_is_not_found(self):
        store = _store(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(EntityNotFoundError):
            store.apply(_request(GatewayAction.UPDATE, status="active"))

    def test_empty_body_on_create_is_accepted(self):
        store = _store(lambda request: httpx.Response(201))
        assert store.apply(_request(GatewayAction.CREATE)) is None

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_configuration_failures(self, status):
        store = _store(lambda request: httpx.Response(status, json={"message": "nope"}))
        with pytest.raises(StoreConfigurationError, match="nope"):
            store.apply(_request(GatewayAction.FETCH))

    def test_conflict(self):
        store = _store(lambda request: httpx.Response(409, json={"message": "duplicate key"}))
        with pytest.raises(StoreRejectedError) as exc_info:
            store.apply(_request(GatewayAction.CREATE))
        assert exc_info.value.reject_code == "CONFLICT"

    def test_other_client_error(self):
        store = _store(lambda request: httpx.Response(422, text="bad value"))
        with pytest.raises(StoreRejectedError) as exc_info:
            store.apply(_request(GatewayAction.UPDATE, expires_at="soon"))
        assert exc_info.value.reject_code == "HTTP_422"
        assert "bad value" in str(exc_info.value)

    def test_server_error(self):
        store = _store(lambda request: httpx.Response(503))
        with pytest.raises(StoreUnavailableError):
            store.apply(_request(GatewayAction.FETCH))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StoreUnavailableError, match="ConnectError"):
            _store(handler).apply(_request(GatewayAction.FETCH))

    def test_unmapped_entity_type(self):
        store = _store(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(StoreConfigurationError):
            store.apply(_request(GatewayAction.FETCH, entity_type="invoice"))


class TestThroughGateway:
    def test_gateway_classifies_rest_failures(self):
        store = _store(lambda request: httpx.Response(401, json={"message": "JWT expired"}))
        with store:
            result = ActionGateway(store, default_timeout=2.0).invoke(
                _request(GatewayAction.FETCH)
            )
        assert result.error.kind == GatewayErrorKind.MISCONFIGURED

    def test_gateway_success(self):
        store = _store(lambda request: httpx.Response(200, json=[{"id": "u-1", "status": "active"}]))
        with store:
            result = ActionGateway(store, default_timeout=2.0).invoke(
                _request(GatewayAction.UPDATE, status="active")
            )
        assert result.ok
        assert result.response.data["status"] == "active"

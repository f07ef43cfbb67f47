"""Tests for TenantClient SDK — request shapes, retries, error mapping."""

import json

import httpx

from pgtenant_engine.client import TenantClient


def make_client(handler, **kwargs) -> TenantClient:
    return TenantClient(
        server_url="http://pgtenant.test",
        api_key="k",
        transport=httpx.MockTransport(handler),
        retry_backoff_base=0,
        **kwargs,
    )


class TestRequests:
    def test_create_sends_camel_case_body(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["key"] = request.headers.get("x-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"success": True, "data": {"id": "t1"}})

        with make_client(handler) as client:
            result = client.create_database("Acme", "o@a.test", max_connections=5)

        assert result.success and result.status_code == 201
        assert result.data == {"id": "t1"}
        assert seen == {
            "path": "/api/databases",
            "key": "k",
            "body": {"friendlyName": "Acme", "ownerEmail": "o@a.test", "maxConnections": 5},
        }

    def test_error_envelope(self):
        def handler(request):
            return httpx.Response(404, json={
                "success": False, "error": "Not Found",
                "code": "NOT_FOUND", "message": "Database not found",
            })

        result = make_client(handler).get_database("missing")
        assert not result.success
        assert result.code == "NOT_FOUND"
        assert result.message == "Database not found"

    def test_stale_warning(self):
        def handler(request):
            return httpx.Response(202, json={
                "success": True, "message": "saved",
                "warning": {"code": "ACCESS_CONTROL_STALE", "cause": "RELOAD_FAILED"},
                "data": {"id": 1},
            })

        result = make_client(handler).add_ip("t1", "1.2.3.4")
        assert result.success and result.stale
        assert result.code == "ACCESS_CONTROL_STALE"


class TestRetries:
    def test_get_retried_on_5xx(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"success": False, "code": "STORE_UNAVAILABLE"})
            return httpx.Response(200, json={"success": True, "count": 0, "data": []})

        result = make_client(handler).list_databases()
        assert result.success and result.count == 0
        assert len(calls) == 3

    def test_create_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"success": False, "code": "PROVISIONING_FAILED"})

        result = make_client(handler).create_database("Acme", "o@a.test")
        assert result.code == "PROVISIONING_FAILED"
        assert len(calls) == 1

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        result = make_client(handler, max_retries=2).list_databases()
        assert not result.success
        assert result.code == "CONNECTION_ERROR"

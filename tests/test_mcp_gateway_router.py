"""Tests for request routing and the HTTP surface."""

import asyncio
import json
from typing import Any
from unittest.mock import patch

import pytest

from horizon_mcp.clients.exchange import ExchangeClient
from horizon_mcp.core.config import ServerConfig
from horizon_mcp.core.types import ErrorCode, ResourceResponse
from horizon_mcp.mcp_gateway.protocol import ExchangeProtocolHandler
from horizon_mcp.mcp_gateway.router import RequestRouter
from horizon_mcp.mcp_gateway.server import create_app
from horizon_mcp.mcp_gateway.session import SessionRegistry
from horizon_mcp.mcp_gateway.tools.exchange_tools import ExchangeTools

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "0"},
    },
}
PING = {"jsonrpc": "2.0", "id": 2, "method": "ping"}

class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


CONFIG = ServerConfig(exchange_url="https://exchange.example/v1/orgs", exchange_org="myorg")


def _client() -> ExchangeClient:
    return ExchangeClient(CONFIG.exchange_url, CONFIG.exchange_org, credential="cred")


def _router(registry: SessionRegistry | None = None) -> RequestRouter:
    client = _client()
    return RequestRouter(
        registry if registry is not None else SessionRegistry(),
        lambda headers: ExchangeProtocolHandler(ExchangeTools(client), initial_headers=headers),
    )


def _tool_call(arguments: dict[str, Any], request_id: int = 3) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": "exchange", "arguments": arguments},
    }


class TestRequestRouter:
    def test_initiation_registers_one_session(self) -> None:
        router = _router()

        response = asyncio.run(router.handle_post({"authorization": "Basic abc"}, INITIALIZE))

        session_id = response.headers["mcp-session-id"]
        assert response.status_code == 200
        assert router.registry.session_ids() == [session_id]
        session = router.registry.lookup(session_id)
        assert session is not None
        assert session.transport.session_id == session_id
        assert session.handler.transport is session.transport
        assert session.initial_headers["authorization"] == "Basic abc"
        assert session.handler.initial_headers["authorization"] == "Basic abc"

    def test_two_initiations_get_distinct_ids(self) -> None:
        router = _router()

        async def initiate_twice() -> list[Any]:
            return list(
                await asyncio.gather(
                    router.handle_post({}, INITIALIZE), router.handle_post({}, INITIALIZE)
                )
            )

        first, second = asyncio.run(initiate_twice())

        first_id = first.headers["mcp-session-id"]
        second_id = second.headers["mcp-session-id"]
        assert first_id != second_id
        assert router.registry.lookup(first_id).transport.session_id == first_id  # type: ignore[union-attr]
        assert router.registry.lookup(second_id).transport.session_id == second_id  # type: ignore[union-attr]
        assert len(router.registry) == 2

    def test_non_initialize_without_session_is_rejected(self) -> None:
        router = _router()

        response = asyncio.run(router.handle_post({}, PING))

        assert response.status_code == 400
        assert response.body["error"]["code"] == -32000
        assert len(router.registry) == 0

    @pytest.mark.parametrize(
        "params",
        [None, "junk", {"protocolVersion": "2025-03-26"}],
        ids=["bare", "junk", "incomplete"],
    )
    def test_malformed_initialize_is_rejected_without_mutation(self, params: Any) -> None:
        router = _router()
        body: dict[str, Any] = {"jsonrpc": "2.0", "id": 1, "method": "initialize"}
        if params is not None:
            body["params"] = params

        response = asyncio.run(router.handle_post({}, body))

        assert response.status_code == 400
        assert response.body["error"]["code"] == -32000
        assert "mcp-session-id" not in response.headers
        assert len(router.registry) == 0

    def test_unknown_session_is_rejected_without_mutation(self) -> None:
        router = _router()

        response = asyncio.run(router.handle_post({"mcp-session-id": "ghost"}, INITIALIZE))

        assert response.status_code == 400
        assert response.body["error"]["code"] == -32000
        assert len(router.registry) == 0

    def test_failed_initialize_leaves_no_session(self) -> None:
        router = _router()

        response = asyncio.run(router.handle_post({}, [INITIALIZE, {**INITIALIZE, "id": 9}]))

        assert response.status_code == 400
        assert len(router.registry) == 0

    def test_forwarding_is_response_transparent(self) -> None:
        router = _router()
        init = asyncio.run(router.handle_post({}, INITIALIZE))
        headers = {"mcp-session-id": init.headers["mcp-session-id"]}
        session = router.registry.lookup(headers["mcp-session-id"])
        assert session is not None

        routed = asyncio.run(router.handle_post(headers, PING))
        direct = asyncio.run(session.transport.handle_request("POST", headers, PING))

        assert routed.status_code == direct.status_code
        assert routed.body == direct.body
        assert routed.headers == direct.headers

    def test_closed_session_is_removed_and_not_resurrected(self) -> None:
        router = _router()
        init = asyncio.run(router.handle_post({}, INITIALIZE))
        headers = {"mcp-session-id": init.headers["mcp-session-id"]}

        deleted = asyncio.run(router.handle_session_request("DELETE", headers))
        after = asyncio.run(router.handle_post(headers, PING))

        assert deleted.status_code == 200
        assert router.registry.lookup(headers["mcp-session-id"]) is None
        assert after.status_code == 400
        assert after.body["error"]["code"] == -32000

    def test_idle_sessions_are_reaped_on_initiation(self) -> None:
        clock = _Clock()
        client = _client()
        router = RequestRouter(
            SessionRegistry(),
            lambda headers: ExchangeProtocolHandler(ExchangeTools(client), headers),
            idle_timeout=10.0,
            clock=clock,
        )
        abandoned = [
            asyncio.run(router.handle_post({}, INITIALIZE)).headers["mcp-session-id"]
            for _ in range(5)
        ]

        clock.now = 60.0
        fresh = asyncio.run(router.handle_post({}, INITIALIZE)).headers["mcp-session-id"]

        assert router.registry.session_ids() == [fresh]
        assert all(router.registry.lookup(session_id) is None for session_id in abandoned)

    def test_session_request_without_id_is_405(self) -> None:
        response = asyncio.run(_router().handle_session_request("GET", {}))

        assert response.status_code == 405
        assert response.headers["Allow"] == "POST"

    def test_session_request_with_unknown_id_is_400(self) -> None:
        response = asyncio.run(_router().handle_session_request("DELETE", {"mcp-session-id": "x"}))

        assert response.status_code == 400
        assert response.body == "Invalid or missing session ID"

    def test_custom_session_id_factory(self) -> None:
        router = RequestRouter(
            SessionRegistry(),
            lambda headers: ExchangeProtocolHandler(ExchangeTools(_client()), headers),
            session_id_factory=lambda: "fixed-id",
        )

        response = asyncio.run(router.handle_post({}, INITIALIZE))

        assert response.headers["mcp-session-id"] == "fixed-id"
        assert "fixed-id" in router.registry


def _create_test_client(registry: SessionRegistry | None = None) -> Any:
    fastapi_testclient = pytest.importorskip("fastapi.testclient")
    app = create_app(CONFIG, registry=registry or SessionRegistry(), client=_client())
    return fastapi_testclient.TestClient(app)


def _initialize(client: Any) -> str:
    response = client.post("/mcp", json=INITIALIZE)
    assert response.status_code == 200
    return str(response.headers["mcp-session-id"])


class TestHttpSurface:
    def test_health(self) -> None:
        client = _create_test_client()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_post_without_session_and_not_initialize(self) -> None:
        client = _create_test_client()

        response = client.post("/mcp", json=PING)

        assert response.status_code == 400
        payload = response.json()
        assert payload["jsonrpc"] == "2.0"
        assert payload["error"]["code"] == -32000
        assert payload["id"] is None

    def test_post_invalid_json(self) -> None:
        client = _create_test_client()

        response = client.post(
            "/mcp", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32700

    def test_get_and_delete_without_session_are_405(self) -> None:
        client = _create_test_client()

        get_response = client.get("/mcp")
        delete_response = client.delete("/mcp")

        assert get_response.status_code == 405
        assert get_response.headers["allow"] == "POST"
        assert delete_response.status_code == 405

    def test_get_with_unknown_session_is_400(self) -> None:
        client = _create_test_client()

        response = client.get("/mcp", headers={"mcp-session-id": "unknown"})

        assert response.status_code == 400

    def test_full_session_lifecycle(self) -> None:
        registry = SessionRegistry()
        client = _create_test_client(registry)
        session_id = _initialize(client)
        headers = {"mcp-session-id": session_id}

        initialized = client.post(
            "/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}, headers=headers
        )
        with patch(
            "horizon_mcp.clients.exchange.ExchangeClient.fetch",
            return_value=ResourceResponse.remote({"policies": []}, 200),
        ) as mock_fetch:
            called = client.post(
                "/mcp", json=_tool_call({"action": "list", "target": "policy"}), headers=headers
            )
        events = client.get("/mcp", headers=headers)
        deleted = client.delete("/mcp", headers=headers)
        after = client.post("/mcp", json=PING, headers=headers)

        assert initialized.status_code == 202
        assert called.status_code == 200
        mock_fetch.assert_called_once_with("https://exchange.example/v1/orgs/myorg/business/policies")
        result = called.json()["result"]
        assert json.loads(result["content"][0]["text"]) == {"policies": []}
        assert events.status_code == 200
        assert events.json()["result"]["events"]
        assert deleted.status_code == 200
        assert session_id not in registry
        assert after.status_code == 400

    def test_remote_404_reaches_client_as_error_result(self) -> None:
        client = _create_test_client()
        session_id = _initialize(client)
        error = ResourceResponse.error(
            ErrorCode.REMOTE_HTTP_ERROR, "Error fetching data: 404 Not Found", status_code=404
        )

        with patch("horizon_mcp.clients.exchange.ExchangeClient.fetch", return_value=error):
            response = client.post(
                "/mcp",
                json=_tool_call({"action": "status", "target": "node", "name": "ghost"}),
                headers={"mcp-session-id": session_id},
            )

        result = response.json()["result"]
        assert response.status_code == 200
        assert result["isError"] is True
        assert "404" in result["content"][0]["text"]

    def test_missing_name_is_tool_error_not_http_error(self) -> None:
        client = _create_test_client()
        session_id = _initialize(client)

        with patch("horizon_mcp.clients.exchange.ExchangeClient.fetch") as mock_fetch:
            response = client.post(
                "/mcp",
                json=_tool_call({"action": "details", "target": "service"}),
                headers={"mcp-session-id": session_id},
            )

        assert response.status_code == 200
        assert response.json()["result"]["structuredContent"]["error_code"] == "MISSING_PARAMETER"
        assert mock_fetch.call_count == 0

    def test_shutdown_closes_registry(self) -> None:
        fastapi_testclient = pytest.importorskip("fastapi.testclient")
        registry = SessionRegistry()
        app = create_app(CONFIG, registry=registry, client=_client())

        with fastapi_testclient.TestClient(app) as client:
            _initialize(client)
            assert len(registry) == 1

        assert len(registry) == 0

"""
Contract tests for the JSON-RPC endpoint.
Verifies envelopes, error codes and the pm_* method surface over HTTP.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.app import create_app
from src.api.utils.metrics import SimpleMetrics, get_metrics
from src.core.dependencies import get_api_key_gate, get_sponsorship_engine
from src.core.exceptions.base import ParseError
from src.core.service.access.models import ApiKey
from src.core.service.sponsorship.models import Account

API_KEY = "test-key-0001"
ADDRESS_A = "0x00000000000000000000000000000000000000aa"


@pytest.fixture
def gate():
    gate = AsyncMock()
    gate.authorize = AsyncMock(return_value=ApiKey(key=API_KEY, name="tests"))
    return gate


@pytest.fixture
def metrics():
    return SimpleMetrics()


@pytest.fixture
def client(engine, gate, metrics):
    app = create_app()

    async def engine_override():
        return engine

    async def gate_override():
        return gate

    app.dependency_overrides[get_sponsorship_engine] = engine_override
    app.dependency_overrides[get_api_key_gate] = gate_override
    app.dependency_overrides[get_metrics] = lambda: metrics
    return TestClient(app)


def _call(client, method, params, request_id=1, key=API_KEY):
    return client.post(f"/{key}", json={
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params
    })


def test_request_gas_then_gas_remain(client, tiers, metrics):
    response = _call(client, "pm_requestGas", [ADDRESS_A])

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": True}

    remain = _call(client, "pm_gasRemain", [ADDRESS_A], request_id=2).json()
    assert remain["id"] == 2
    assert remain["result"]["remain"] == str(tiers.create_gas)
    assert remain["result"]["total_used"] == "0"
    assert isinstance(remain["result"]["last_request"], int)

    summary = metrics.get_metrics_summary()
    assert summary["overall"]["allowance_grants"] == 1
    assert summary["by_method"]["pm_requestGas"]["success"] == 1


def test_repeat_request_gas_is_frequent_request(client):
    _call(client, "pm_requestGas", [ADDRESS_A])

    response = _call(client, "pm_requestGas", [ADDRESS_A], request_id=5)

    assert response.status_code == 200
    body = response.json()
    assert "result" not in body
    assert body["id"] == 5
    assert body["error"]["code"] == -32003
    assert body["error"]["message"] == "frequent requests"


def test_config(client, tiers):
    body = _call(client, "pm_config", []).json()

    assert body["result"] == {
        "max_gas": str(tiers.max_gas),
        "vip_contract": tiers.vip_contract,
        "max_vip_gas": str(tiers.max_vip_gas)
    }


def test_sponsor_user_operation(client, store, user_operation_payload, metrics):
    store.put(Account(address=ADDRESS_A, remaining_gas=10 ** 18))

    body = _call(
        client,
        "pm_sponsorUserOperation",
        [user_operation_payload(), "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"]
    ).json()

    result = body["result"]
    assert set(result) == {"paymasterAndData", "preVerificationGas", "verificationGasLimit", "callGasLimit"}
    assert len(result["paymasterAndData"]) == 2 + 149 * 2
    assert result["preVerificationGas"] == "0xcc50"
    assert store.accounts[ADDRESS_A].used_gas == 185404
    assert metrics.get_metrics_summary()["overall"]["sponsorships"] == 1


def test_sponsor_unknown_sender_is_insufficient_gas(client, user_operation_payload):
    body = _call(client, "pm_sponsorUserOperation", [user_operation_payload(), "0x"]).json()

    assert body["error"] == {"code": -32001, "message": "insufficient gas", "data": None}


def test_bad_param_type(client):
    body = _call(client, "pm_gasRemain", [42]).json()

    assert body["error"]["code"] == -32602
    assert body["error"]["data"] == "Param [0] can't be converted to string"


def test_unknown_method(client):
    body = _call(client, "pm_nothing", []).json()

    assert body["error"]["code"] == -32601


def test_malformed_json(client):
    response = client.post(f"/{API_KEY}", content=b"{oops", headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32700
    assert response.json()["id"] is None


def test_empty_body(client):
    body = client.post(f"/{API_KEY}", content=b"").json()

    assert body["error"] == {"code": -32700, "message": "Parse error", "data": "No POST data"}


def test_get_is_rejected(client):
    response = client.get(f"/{API_KEY}")

    assert response.status_code == 200
    assert response.json()["error"] == {"code": -32700, "message": "Parse error", "data": "POST method expected"}


def test_missing_key(client):
    body = client.post("/", json={"jsonrpc": "2.0", "id": 1, "method": "pm_config", "params": []}).json()

    assert body["error"] == {"code": -32700, "message": "Key error", "data": "No key"}


def test_rejected_key_never_dispatches(client, gate, engine):
    gate.authorize.side_effect = ParseError("Key error", data="Apikey error")
    engine.get_config = lambda: pytest.fail("dispatched with a rejected key")

    body = _call(client, "pm_config", [], key="bogus").json()

    assert body["error"] == {"code": -32700, "message": "Key error", "data": "Apikey error"}
    gate.authorize.assert_awaited_with("bogus")


@pytest.fixture
def unsigned_client(client):
    """Client whose engine cannot be built, as when PRIVATE_KEY is unset."""
    async def engine_unavailable():
        raise RuntimeError("PRIVATE_KEY not configured - paymaster cannot sign")

    client.app.dependency_overrides[get_sponsorship_engine] = engine_unavailable
    return client


def test_rejected_key_is_answered_before_engine_is_built(unsigned_client, gate):
    gate.authorize.side_effect = ParseError("Key error", data="Apikey error")

    response = _call(unsigned_client, "pm_config", [], key="bad-key")

    assert response.status_code == 200
    assert response.json()["error"] == {"code": -32700, "message": "Key error", "data": "Apikey error"}
    assert response.json()["id"] is None


def test_empty_body_is_answered_before_engine_is_built(unsigned_client, gate):
    body = unsigned_client.post(f"/{API_KEY}", content=b"").json()

    assert body["error"] == {"code": -32700, "message": "Parse error", "data": "No POST data"}
    gate.authorize.assert_not_awaited()

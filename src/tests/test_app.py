import asyncio
import uuid
import pytest
import jwt
from httpx import AsyncClient, ASGITransport
from fastapi import status
from app import app, get_orchestrator
from payouts.config import setting
from tests.fakes import ADDR_X, ADDR_Y, FEE_ADDRESS, FakeWalletService

default_payload = {
    "network": "base",
    "asset": "eth",
    "amount": "0.005",
    "recipients": [ADDR_X, ADDR_Y],
}


def create_jwt_token():
    """Helper function to create a JWT token for testing."""
    payload = {
        "sub": "test_user",
        "jti": str(uuid.uuid4()),
        "exp": 9999999999  # Set a far future expiration for testing
    }
    token = jwt.encode(payload, setting.JWT_SECRET_KEY, algorithm=setting.JWT_ALGORITHM)
    return token


def auth_headers():
    return {'Authorization': f'Bearer {create_jwt_token()}'}


@pytest.fixture
def wallet():
    return FakeWalletService(balances={"eth": 1, "usdc": 10})


@pytest.fixture
def client_for(make_orchestrator, wallet, payout_log, monkeypatch):
    def _client(fee_enabled=False):
        orchestrator = make_orchestrator(wallet, fee_enabled=fee_enabled, fee_addresses={"base": FEE_ADDRESS})
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        monkeypatch.setattr(setting, "PAYOUTS_CSV_PATH", payout_log.path)
        return AsyncClient(base_url="http://test", transport=ASGITransport(app=app))
    yield _client
    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_payout_requires_token(client_for):
    async with client_for() as client:
        response = await client.post("/api/v1/payouts", json=default_payload)
    assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)


@pytest.mark.anyio
async def test_reused_token_is_rejected(client_for):
    headers = auth_headers()
    async with client_for() as client:
        first = await client.get("/api/v1/payouts", headers=headers)
        second = await client.get("/api/v1/payouts", headers=headers)
    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.anyio
async def test_payout_returns_ledger_summary(client_for, wallet):
    async with client_for(fee_enabled=True) as client:
        response = await client.post("/api/v1/payouts", json=default_payload, headers=auth_headers())

    assert response.status_code == status.HTTP_200_OK
    assert "X-Request-ID" in response.headers
    body = response.json()
    assert body["status"] == "success"
    assert body["successful_count"] == 2
    assert body["failed_count"] == 0
    assert [o["address"] for o in body["outcomes"]] == [ADDR_X, ADDR_Y]
    assert body["fee"]["address"] == FEE_ADDRESS
    assert body["fee"]["status"] == "Success"
    assert "Successful Transactions: 2" in body["summary"]
    assert len(wallet.transfers) == 3


@pytest.mark.anyio
async def test_partial_failure_is_not_an_error(client_for):
    payload = {**default_payload, "recipients": [ADDR_X, ""]}
    async with client_for() as client:
        response = await client.post("/api/v1/payouts", json=payload, headers=auth_headers())

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "partial_failure"
    assert body["outcomes"][1]["error_code"] == "InvalidAddress"
    assert body["fee"]["error_code"] == "FeeMisconfigured"


@pytest.mark.anyio
async def test_wallet_unavailable_is_503(client_for, wallet):
    wallet.resolve_error = RuntimeError("unauthorized")
    async with client_for() as client:
        response = await client.post("/api/v1/payouts", json=default_payload, headers=auth_headers())
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


@pytest.mark.anyio
@pytest.mark.parametrize("override", [
    {"network": "dogecoin"},
    {"amount": "0"},
    {"amount": "-1"},
    {"recipients": []},
    {"asset": ""},
])
async def test_invalid_payout_request_is_422(client_for, override):
    async with client_for() as client:
        response = await client.post(
            "/api/v1/payouts", json={**default_payload, **override}, headers=auth_headers()
        )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_sequential_requests(client_for, wallet):
    async with client_for() as client:
        # Send two requests and ensure they are processed sequentially
        responses = await asyncio.gather(
            client.post("/api/v1/payouts", json={**default_payload, "amount": "0.6"}, headers=auth_headers()),
            client.post("/api/v1/payouts", json={**default_payload, "amount": "0.6"}, headers=auth_headers()),
        )
        response1, response2 = responses

    assert response1.status_code == status.HTTP_200_OK
    assert response2.status_code == status.HTTP_200_OK
    # only one of the four transfers fits in the 1 ETH balance
    assert sum(r.json()["successful_count"] for r in responses) == 1
    assert len(wallet.transfers) == 1


@pytest.mark.anyio
async def test_past_payouts_read_the_audit_log(client_for):
    async with client_for() as client:
        await client.post("/api/v1/payouts", json=default_payload, headers=auth_headers())
        response = await client.get("/api/v1/payouts", headers=auth_headers())

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert [p["address"] for p in body["payouts"]] == [ADDR_X, ADDR_Y, ""]
    assert body["payouts"][2]["error_code"] == "FeeMisconfigured"
    assert "Total Payouts: 3" in body["summary"]


@pytest.mark.anyio
async def test_trade_endpoint(client_for, wallet):
    payload = {"network": "base", "amount": "0.5", "source_asset": "eth", "target_asset": "usdc"}
    async with client_for(fee_enabled=True) as client:
        response = await client.post("/api/v1/trades", json=payload, headers=auth_headers())

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "Success"
    assert body["fee"]["address"] == FEE_ADDRESS
    assert "Trade executed on base" in body["summary"]
    assert len(wallet.trades) == 1


@pytest.mark.anyio
async def test_past_payouts_skip_corrupted_rows(client_for, payout_log):
    async with client_for() as client:
        await client.post("/api/v1/payouts", json=default_payload, headers=auth_headers())
        with open(payout_log.path, "a", encoding="utf-8", newline="") as f:
            f.write(f"{ADDR_X},garbage,Success,,\n")
        response = await client.get("/api/v1/payouts", headers=auth_headers())

    assert response.status_code == status.HTTP_200_OK
    assert "Total Payouts: 3" in response.json()["summary"]

import pytest

from payouts.audit import PayoutAuditLog, TradeAuditLog
from payouts.config import setting
from payouts.executor import TransferExecutor
from payouts.fees import FeeConfiguration, FeeSplitter
from payouts.orchestrator import DisbursementOrchestrator

setting.JWT_SECRET_KEY = "test-jwt-secret"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def payout_log(tmp_path):
    return PayoutAuditLog(str(tmp_path / "transactions.csv"))


@pytest.fixture
def trade_log(tmp_path):
    return TradeAuditLog(str(tmp_path / "trades.csv"))


@pytest.fixture
def make_orchestrator(payout_log, trade_log):
    def _make(wallet_service, fee_enabled=False, fee_addresses=None):
        config = FeeConfiguration(enabled=fee_enabled, addresses=fee_addresses or {})
        return DisbursementOrchestrator(
            wallet_service=wallet_service,
            executor=TransferExecutor(wallet_service, poll_interval=0, timeout=1),
            fee_splitter=FeeSplitter(config),
            payout_log=payout_log,
            trade_log=trade_log,
            agent_id="agent-1",
        )
    return _make

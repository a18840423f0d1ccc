from decimal import Decimal

import pytest

from payouts.errors import FEE_MISCONFIGURED, INSUFFICIENT_FUNDS, WalletUnavailableError
from payouts.ledger import TransferStatus
from payouts.orchestrator import TradeRequest
from tests.fakes import FEE_ADDRESS, ApiError, FakeWalletService


def trade(amount, fee_opt_in=True):
    return TradeRequest(
        network="base",
        amount=Decimal(str(amount)),
        source_asset="eth",
        target_asset="usdc",
        fee_opt_in=fee_opt_in,
    )


def test_fee_sent_before_trading_the_rest(make_orchestrator, trade_log, payout_log):
    wallet = FakeWalletService(balances={"eth": 2})
    orchestrator = make_orchestrator(wallet, fee_enabled=True, fee_addresses={"base": FEE_ADDRESS})

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.status == TransferStatus.SUCCESS
    assert outcome.from_amount == Decimal("0.99")
    assert outcome.to_amount == Decimal("1.98")
    assert outcome.fee.status == TransferStatus.SUCCESS
    assert outcome.fee.amount == Decimal("0.01")
    assert wallet.transfers == [
        {"amount": Decimal("0.01"), "asset": "eth", "destination": FEE_ADDRESS, "gasless": False}
    ]
    assert payout_log.read()[0].address == FEE_ADDRESS
    rows = trade_log.read_rows()
    assert len(rows) == 1
    assert rows[0]["Status"] == "Success"


def test_no_fee_when_splitting_disabled(make_orchestrator):
    wallet = FakeWalletService(balances={"eth": 2})
    orchestrator = make_orchestrator(wallet, fee_enabled=False)

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.succeeded
    assert outcome.fee is None
    assert wallet.transfers == []


def test_misconfigured_fee_recorded_on_trade(make_orchestrator):
    wallet = FakeWalletService(balances={"eth": 2})
    orchestrator = make_orchestrator(wallet, fee_enabled=True, fee_addresses={})

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.succeeded
    assert outcome.fee.error_code == FEE_MISCONFIGURED
    assert wallet.transfers == []


def test_insufficient_source_balance_skips_trade(make_orchestrator, trade_log):
    wallet = FakeWalletService(balances={"eth": "0.5"})
    orchestrator = make_orchestrator(wallet)

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.status == TransferStatus.FAILED
    assert outcome.error_code == INSUFFICIENT_FUNDS
    assert wallet.trades == []
    assert trade_log.read_rows()[0]["Status"] == "Failed"


def test_trade_error_is_classified(make_orchestrator):
    wallet = FakeWalletService(balances={"eth": 2})
    wallet.trade_error = ApiError("unsupported_asset", "cannot trade")
    orchestrator = make_orchestrator(wallet, fee_enabled=True, fee_addresses={"base": FEE_ADDRESS})

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.status == TransferStatus.FAILED
    assert outcome.error_code == "unsupported_asset"
    assert outcome.fee.status == TransferStatus.SUCCESS
    assert wallet.trades[0]["amount"] == Decimal("0.99")


def test_trade_wallet_unavailable(make_orchestrator):
    wallet = FakeWalletService()
    wallet.resolve_error = RuntimeError("no credentials")
    orchestrator = make_orchestrator(wallet)

    with pytest.raises(WalletUnavailableError):
        orchestrator.execute_trade_and_charity_transfer(trade(1))


def test_trade_and_fee_together_spend_the_requested_amount(make_orchestrator):
    wallet = FakeWalletService(balances={"eth": 1})
    orchestrator = make_orchestrator(wallet, fee_enabled=True, fee_addresses={"base": FEE_ADDRESS})

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.succeeded
    assert wallet.trades[0]["amount"] == Decimal("0.99")
    assert outcome.fee.amount == Decimal("0.01")
    assert wallet.balances["eth"] == Decimal("0")


def test_failed_fee_transfer_trades_full_amount(make_orchestrator):
    wallet = FakeWalletService(
        balances={"eth": 2}, errors={FEE_ADDRESS: ApiError("invalid_destination", "rejected")}
    )
    orchestrator = make_orchestrator(wallet, fee_enabled=True, fee_addresses={"base": FEE_ADDRESS})

    outcome = orchestrator.execute_trade_and_charity_transfer(trade(1))

    assert outcome.succeeded
    assert outcome.fee.status == TransferStatus.FAILED
    assert outcome.fee.error_code == "invalid_destination"
    assert wallet.trades[0]["amount"] == Decimal("1")

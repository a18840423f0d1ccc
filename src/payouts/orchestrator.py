from dataclasses import dataclass
from decimal import Decimal

from loguru import logger

from payouts.audit import PayoutAuditLog, TradeAuditLog
from payouts.errors import (
    FEE_MISCONFIGURED,
    INSUFFICIENT_FUNDS,
    INVALID_ADDRESS,
    TRANSFER_FAILED,
    FeeMisconfiguredError,
    WalletUnavailableError,
    error_code_of,
)
from payouts.executor import TransferConfirmed, TransferExecutor
from payouts.fees import FeeSplitter, compute_fee
from payouts.ledger import DisbursementLedger, TradeOutcome, TransferOutcome, TransferStatus
from payouts.utils import is_valid_address
from payouts.wallet import WalletHandle


@dataclass(frozen=True)
class TransferRequest:
    network: str
    asset: str
    recipients: tuple[str, ...]
    amount: Decimal
    fee_opt_in: bool = True


@dataclass(frozen=True)
class TradeRequest:
    network: str
    amount: Decimal
    source_asset: str
    target_asset: str
    fee_opt_in: bool = True


class DisbursementOrchestrator:
    """
    Fans a request out into one transfer per recipient plus one fee transfer.

    Recipients are paid strictly in order: each pre-flight balance check has
    to see the previous transfer, since nothing reserves funds in the wallet.
    """

    def __init__(
        self,
        wallet_service,
        executor: TransferExecutor,
        fee_splitter: FeeSplitter,
        payout_log: PayoutAuditLog,
        trade_log: TradeAuditLog | None = None,
        agent_id: str = "default-agent",
    ):
        self.wallet_service = wallet_service
        self.executor = executor
        self.fee_splitter = fee_splitter
        self.payout_log = payout_log
        self.trade_log = trade_log
        self.agent_id = agent_id

    def _resolve_wallet(self, network: str) -> WalletHandle:
        try:
            return self.wallet_service.resolve_or_create(self.agent_id, network)
        except WalletUnavailableError:
            raise
        except Exception as exc:
            logger.error(f"Failed to initialize wallet on {network}: {exc}")
            raise WalletUnavailableError(str(exc)) from exc

    def _balance(self, handle: WalletHandle, asset: str) -> Decimal:
        try:
            return self.wallet_service.get_available_balance(handle, asset)
        except Exception as exc:
            logger.error(f"Failed to read {asset} balance of {handle.address}: {exc}")
            raise WalletUnavailableError(f"Balance query failed: {exc}") from exc

    def _record(self, ledger: DisbursementLedger, outcome: TransferOutcome) -> None:
        ledger.record(outcome)
        self.payout_log.append(outcome)

    def _transfer(self, handle: WalletHandle, amount: Decimal, asset: str, destination: str, is_fee: bool = False) -> TransferOutcome:
        try:
            result = self.executor.execute(handle, amount, asset, destination)
        except Exception as exc:
            logger.error(f"Unexpected error sending {amount} {asset} to {destination}: {exc}")
            return TransferOutcome.failed(destination, amount, error_code_of(exc), str(exc), is_fee=is_fee)
        if isinstance(result, TransferConfirmed):
            return TransferOutcome.success(
                destination, result.transfer.amount, result.transfer.transaction_url, is_fee=is_fee
            )
        return TransferOutcome.failed(destination, amount, result.error_code, result.message, is_fee=is_fee)

    def _pay_recipient(self, handle: WalletHandle, request: TransferRequest, address: str) -> TransferOutcome:
        if not is_valid_address(address):
            logger.warning(f"Skipping invalid address {address!r}")
            return TransferOutcome.failed(address, request.amount, INVALID_ADDRESS, f"Invalid address: {address!r}")

        available = self._balance(handle, request.asset)
        if available < request.amount:
            message = (
                f"Insufficient funds in wallet {handle.address} to send {request.amount} "
                f"{request.asset} to {address}. Required: {request.amount}, but only "
                f"{available} available."
            )
            logger.warning(message)
            return TransferOutcome.failed(address, request.amount, INSUFFICIENT_FUNDS, message)

        return self._transfer(handle, request.amount, request.asset, address)

    def _pay_fee(self, handle: WalletHandle, network: str, asset: str, amount: Decimal, opt_in: bool) -> TransferOutcome:
        try:
            split = self.fee_splitter.split(network, amount, opt_in)
        except FeeMisconfiguredError as exc:
            fee, _ = compute_fee(amount, self.fee_splitter.config.rate)
            return TransferOutcome.failed("", fee, FEE_MISCONFIGURED, str(exc), is_fee=True)
        if split is None:
            fee, _ = compute_fee(amount, self.fee_splitter.config.rate)
            return TransferOutcome.failed(
                "", fee, FEE_MISCONFIGURED, f"No fee destination: fee splitting is disabled for {network}", is_fee=True
            )
        return self._transfer(handle, split.fee_amount, asset, split.destination, is_fee=True)

    def execute_mass_payout(self, request: TransferRequest) -> DisbursementLedger:
        """
        Pay every recipient, then attempt the fee payment once.

        Each outcome is appended to the payout audit log as soon as it is known.

        :param request: The transfer request

        :return DisbursementLedger: One outcome per recipient, followed by the fee outcome
        :raises WalletUnavailableError: the wallet could not be resolved or its balance read
        """
        handle = self._resolve_wallet(request.network)
        ledger = DisbursementLedger()
        logger.info(
            f"Starting mass payout of {request.amount} {request.asset} to "
            f"{len(request.recipients)} recipients from {handle.address} on {request.network}"
        )

        for address in request.recipients:
            self._record(ledger, self._pay_recipient(handle, request, address))

        self._record(ledger, self._pay_fee(handle, request.network, request.asset, request.amount, request.fee_opt_in))

        logger.info(
            f"Mass payout finished: {len(ledger.successful)} succeeded, {len(ledger.failed)} failed, "
            f"fee {ledger.fee_outcome.status.value}"
        )
        return ledger

    def execute_trade_and_charity_transfer(self, request: TradeRequest) -> TradeOutcome:
        """
        Send the fee share of the source amount, then trade what is left.

        The wallet is charged the requested amount in total. When no fee goes
        out (opted out, misconfigured or the fee transfer failed) the full
        amount is traded.
        """
        handle = self._resolve_wallet(request.network)

        available = self._balance(handle, request.source_asset)
        if available < request.amount:
            message = (
                f"Insufficient funds in wallet {handle.address} to trade {request.amount} "
                f"{request.source_asset}. Required: {request.amount}, but only {available} available."
            )
            logger.warning(message)
            outcome = TradeOutcome(
                network=request.network,
                from_amount=request.amount,
                source_asset=request.source_asset,
                target_asset=request.target_asset,
                status=TransferStatus.FAILED,
                error_code=INSUFFICIENT_FUNDS,
                error_message=message,
            )
            self._log_trade(outcome)
            return outcome

        fee, trade_amount = self._pay_trade_fee(handle, request)

        try:
            trade = self.wallet_service.trade(
                handle,
                trade_amount,
                request.source_asset,
                request.target_asset,
                interval_seconds=self.executor.poll_interval,
                timeout_seconds=self.executor.timeout,
            )
        except Exception as exc:
            logger.error(f"Trade of {trade_amount} {request.source_asset} to {request.target_asset} failed: {exc}")
            outcome = TradeOutcome(
                network=request.network,
                from_amount=trade_amount,
                source_asset=request.source_asset,
                target_asset=request.target_asset,
                status=TransferStatus.FAILED,
                error_code=error_code_of(exc),
                error_message=str(exc),
                fee=fee,
            )
            self._log_trade(outcome)
            return outcome

        if trade.status.lower() == "failed":
            outcome = TradeOutcome(
                network=request.network,
                from_amount=trade.from_amount,
                source_asset=request.source_asset,
                target_asset=request.target_asset,
                status=TransferStatus.FAILED,
                to_amount=trade.to_amount,
                error_code=TRANSFER_FAILED,
                error_message=f"Trade ended with status {trade.status}",
                transaction_url=trade.transaction_url,
                fee=fee,
            )
            self._log_trade(outcome)
            return outcome

        logger.info(f"Trade completed: {trade.from_amount} {request.source_asset} -> {trade.to_amount} {request.target_asset}")
        outcome = TradeOutcome(
            network=request.network,
            from_amount=trade.from_amount,
            source_asset=request.source_asset,
            target_asset=request.target_asset,
            status=TransferStatus.SUCCESS,
            to_amount=trade.to_amount,
            transaction_url=trade.transaction_url,
            fee=fee,
        )
        self._log_trade(outcome)
        return outcome

    def _pay_trade_fee(self, handle: WalletHandle, request: TradeRequest) -> tuple[TransferOutcome | None, Decimal]:
        try:
            split = self.fee_splitter.split(request.network, request.amount, request.fee_opt_in)
        except FeeMisconfiguredError as exc:
            fee_amount, _ = compute_fee(request.amount, self.fee_splitter.config.rate)
            fee = TransferOutcome.failed("", fee_amount, FEE_MISCONFIGURED, str(exc), is_fee=True)
            self.payout_log.append(fee)
            return fee, request.amount
        if split is None or split.fee_amount <= 0:
            return None, request.amount

        fee = self._transfer(handle, split.fee_amount, request.source_asset, split.destination, is_fee=True)
        self.payout_log.append(fee)
        if not fee.succeeded:
            logger.warning(f"Fee transfer before trade failed, trading the full {request.amount} {request.source_asset}")
            return fee, request.amount
        return fee, split.net_amount

    def _log_trade(self, outcome: TradeOutcome) -> None:
        if self.trade_log is not None:
            self.trade_log.append(outcome)

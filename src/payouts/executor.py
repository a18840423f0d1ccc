from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from loguru import logger

from payouts.errors import TRANSFER_FAILED, error_code_of
from payouts.wallet import ConfirmedTransfer, WalletHandle

FAILED_STATUSES = {"failed"}


@dataclass(frozen=True)
class TransferConfirmed:
    transfer: ConfirmedTransfer


@dataclass(frozen=True)
class TransferFailed:
    error_code: str
    message: str


TransferResult = Union[TransferConfirmed, TransferFailed]


class TransferExecutor:
    """Runs one transfer and waits for it, never raising."""

    def __init__(self, wallet_service, stablecoin_asset: str = "usdc", poll_interval: float = 1.0, timeout: float = 20.0):
        self.wallet_service = wallet_service
        self.stablecoin_asset = stablecoin_asset
        self.poll_interval = poll_interval
        self.timeout = timeout

    def is_gasless(self, asset: str) -> bool:
        return asset.lower() == self.stablecoin_asset.lower()

    def execute(self, handle: WalletHandle, amount: Decimal, asset: str, destination: str) -> TransferResult:
        """
        Transfer an asset from the custodial wallet and wait for confirmation.

        :param handle: The wallet to send from
        :param amount: The amount to send
        :param asset: The asset id, e.g. "eth" or "usdc"
        :param destination: The destination address

        :return: TransferConfirmed with the confirmed transfer, or TransferFailed with a classification
        """
        gasless = self.is_gasless(asset)
        logger.info(f"Sending {amount} {asset} to {destination} (gasless={gasless})...")
        try:
            confirmed = self.wallet_service.transfer(
                handle,
                amount,
                asset,
                destination,
                gasless=gasless,
                interval_seconds=self.poll_interval,
                timeout_seconds=self.timeout,
            )
        except Exception as exc:
            logger.error(f"Error during transfer of {amount} {asset} to {destination}: {exc}")
            return TransferFailed(error_code=error_code_of(exc), message=str(exc) or error_code_of(exc))

        if confirmed.status.lower() in FAILED_STATUSES:
            logger.warning(f"Transfer of {amount} {asset} to {destination} ended with status {confirmed.status}")
            return TransferFailed(error_code=TRANSFER_FAILED, message=f"Transfer ended with status {confirmed.status}")

        logger.info(f"Transfer to {destination} completed: {confirmed.amount} {asset}, {confirmed.transaction_url}")
        return TransferConfirmed(transfer=confirmed)

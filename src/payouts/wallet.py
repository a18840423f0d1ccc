import json
import os
import tempfile
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from cdp import Cdp, Wallet, WalletData
from cryptography.fernet import Fernet
from loguru import logger

from payouts.errors import WalletUnavailableError
from payouts.networks import network_id_for


@dataclass
class WalletHandle:
    agent_id: str
    network: str
    address: str
    wallet: Any = None


@dataclass(frozen=True)
class ConfirmedTransfer:
    amount: Decimal
    status: str
    transaction_url: str | None = None


@dataclass(frozen=True)
class ConfirmedTrade:
    from_amount: Decimal
    to_amount: Decimal
    status: str
    transaction_url: str | None = None


class WalletStore:
    """Encrypted JSON file of exported wallet data, one entry per agent and network."""

    def __init__(self, path: str, fernet: Fernet):
        self.path = path
        self.fernet = fernet

    @staticmethod
    def key(agent_id: str, network: str) -> str:
        return f"{agent_id}:{network}"

    def _read(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def load(self, agent_id: str, network: str) -> dict | None:
        token = self._read().get(self.key(agent_id, network))
        if token is None:
            return None
        return json.loads(self.fernet.decrypt(token.encode("utf-8")).decode("utf-8"))

    def save(self, agent_id: str, network: str, data: dict) -> None:
        entries = self._read()
        entries[self.key(agent_id, network)] = self.fernet.encrypt(json.dumps(data).encode("utf-8")).decode("utf-8")
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # write beside the store and swap in, so a failed write never truncates existing seeds
        fd, tmp_path = tempfile.mkstemp(dir=directory or ".", prefix=".wallets-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            os.remove(tmp_path)
            raise


def configure_cdp(api_key_name: str, private_key: str) -> None:
    """Configure the CDP SDK once at process start."""
    Cdp.configure(api_key_name, private_key.replace("\\n", "\n"))
    logger.info(f"Configured CDP SDK with API key {api_key_name}")


class CdpWalletService:
    """Custodial wallet operations backed by the Coinbase CDP SDK."""

    def __init__(self, store: WalletStore):
        self.store = store

    def resolve_or_create(self, agent_id: str, network: str) -> WalletHandle:
        """
        Import the agent's persisted wallet for the network, or create and persist a new one.

        :raises WalletUnavailableError: the wallet could not be imported or created
        """
        network_id = network_id_for(network)
        try:
            data = self.store.load(agent_id, network_id)
            if data is not None:
                wallet = Wallet.import_data(WalletData.from_dict(data))
                logger.info(f"Imported wallet {wallet.id} for agent {agent_id} on {network_id}")
            else:
                wallet = Wallet.create(network_id=network_id)
                self.store.save(agent_id, network_id, wallet.export_data().to_dict())
                logger.info(f"Created wallet {wallet.id} for agent {agent_id} on {network_id}")
        except Exception as exc:
            logger.error(f"Failed to initialize wallet for agent {agent_id} on {network_id}: {exc}")
            raise WalletUnavailableError(str(exc)) from exc
        return WalletHandle(
            agent_id=agent_id,
            network=network_id,
            address=wallet.default_address.address_id,
            wallet=wallet,
        )

    def get_available_balance(self, handle: WalletHandle, asset: str) -> Decimal:
        return Decimal(str(handle.wallet.balance(asset.lower())))

    def transfer(
        self,
        handle: WalletHandle,
        amount: Decimal,
        asset: str,
        destination: str,
        gasless: bool,
        interval_seconds: float,
        timeout_seconds: float,
    ) -> ConfirmedTransfer:
        transfer = handle.wallet.transfer(
            amount=amount,
            asset_id=asset.lower(),
            destination=destination,
            gasless=gasless,
        )
        transfer.wait(interval_seconds=interval_seconds, timeout_seconds=timeout_seconds)
        return ConfirmedTransfer(
            amount=Decimal(str(transfer.amount)),
            status=str(transfer.status),
            transaction_url=transfer.transaction_link,
        )

    def trade(
        self,
        handle: WalletHandle,
        amount: Decimal,
        source_asset: str,
        target_asset: str,
        interval_seconds: float,
        timeout_seconds: float,
    ) -> ConfirmedTrade:
        trade = handle.wallet.trade(
            amount=amount,
            from_asset_id=source_asset.lower(),
            to_asset_id=target_asset.lower(),
        )
        trade.wait(interval_seconds=interval_seconds, timeout_seconds=timeout_seconds)
        return ConfirmedTrade(
            from_amount=Decimal(str(trade.from_amount)),
            to_amount=Decimal(str(trade.to_amount)),
            status=str(trade.status),
            transaction_url=trade.transaction.transaction_link,
        )

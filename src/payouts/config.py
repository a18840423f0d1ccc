import os
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payouts.fees import FeeConfiguration
from payouts.networks import canonical_network

FEE_ADDRESS_PREFIX = "fee_address_"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    CDP_API_KEY_NAME: str | None = None
    CIPHER_TEXT: str | None = None
    password: str | None = None
    decrypted_api_key: str | None = None
    AGENT_ID: str = "default-agent"

    JWT_SECRET_KEY: str | None = None
    JWT_ALGORITHM: str = 'HS256'
    TOKEN_EXPIRE_MINUTES: int = 30
    MAX_USED_TOKENS: int = 1000

    FEE_SPLITTING_ENABLED: bool = False
    FEE_ADDRESSES: dict[str, str] = {}
    FEE_RATE: Decimal = Decimal("0.01")
    STABLECOIN_ASSET: str = "usdc"

    TRANSFER_POLL_INTERVAL: float = 1.0
    TRANSFER_TIMEOUT: float = 20.0

    PAYOUTS_CSV_PATH: str = "data/transactions.csv"
    TRADES_CSV_PATH: str = "data/trades.csv"
    WALLET_STORE_PATH: str = "data/wallets.json"

    @model_validator(mode="after")
    def collect_fee_addresses(self):
        """Merge FEE_ADDRESS_<NETWORK> variables from the environment and .env."""
        found = {}
        sources = list((self.model_extra or {}).items()) + list(os.environ.items())
        for key, value in sources:
            if key.lower().startswith(FEE_ADDRESS_PREFIX) and value:
                found[canonical_network(key[len(FEE_ADDRESS_PREFIX):])] = value.strip()
        self.FEE_ADDRESSES = {
            **found,
            **{canonical_network(network): address for network, address in self.FEE_ADDRESSES.items()},
        }
        return self

    def fee_configuration(self) -> FeeConfiguration:
        return FeeConfiguration(
            enabled=self.FEE_SPLITTING_ENABLED,
            addresses=dict(self.FEE_ADDRESSES),
            rate=self.FEE_RATE,
        )


setting = Settings()

# Models with validation
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from payouts.ledger import TradeOutcome, TransferOutcome
from payouts.networks import NETWORK_IDS


def _check_network(value: str) -> str:
    value = value.strip().lower()
    if value not in NETWORK_IDS and value not in NETWORK_IDS.values():
        raise ValueError(f"Unsupported network: {value}")
    return value


# API request models
class PayoutRequest(BaseModel):
    network: str
    asset: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    recipients: list[str] = Field(min_length=1)
    fee_opt_in: bool = True

    @field_validator("network")
    @classmethod
    def check_network(cls, value: str) -> str:
        return _check_network(value)


class TradeRequest(BaseModel):
    network: str
    amount: Decimal = Field(gt=0)
    source_asset: str = Field(min_length=1)
    target_asset: str = Field(min_length=1)
    fee_opt_in: bool = True

    @field_validator("network")
    @classmethod
    def check_network(cls, value: str) -> str:
        return _check_network(value)


# API response models
class OutcomeModel(BaseModel):
    address: str
    amount: Decimal
    status: str
    error_code: str | None = None
    error_message: str | None = None
    transaction_url: str | None = None

    @classmethod
    def from_outcome(cls, outcome: TransferOutcome) -> "OutcomeModel":
        return cls(
            address=outcome.address,
            amount=outcome.amount,
            status=outcome.status.value,
            error_code=outcome.error_code,
            error_message=outcome.error_message,
            transaction_url=outcome.transaction_url,
        )


class PayoutResponse(BaseModel):
    status: str
    successful_count: int
    failed_count: int
    outcomes: list[OutcomeModel]
    fee: OutcomeModel | None = None
    summary: str


class PastPayoutsResponse(BaseModel):
    payouts: list[OutcomeModel]
    summary: str


class TradeResponse(BaseModel):
    status: str
    network: str
    from_amount: Decimal
    source_asset: str
    to_amount: Decimal | None = None
    target_asset: str
    error_code: str | None = None
    error_message: str | None = None
    transaction_url: str | None = None
    fee: OutcomeModel | None = None
    summary: str

    @classmethod
    def from_outcome(cls, outcome: TradeOutcome, summary: str) -> "TradeResponse":
        return cls(
            status=outcome.status.value,
            network=outcome.network,
            from_amount=outcome.from_amount,
            source_asset=outcome.source_asset,
            to_amount=outcome.to_amount,
            target_asset=outcome.target_asset,
            error_code=outcome.error_code,
            error_message=outcome.error_message,
            transaction_url=outcome.transaction_url,
            fee=OutcomeModel.from_outcome(outcome.fee) if outcome.fee is not None else None,
            summary=summary,
        )

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class TransferStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass(frozen=True)
class TransferOutcome:
    """Result of one transfer attempt. Frozen once recorded."""

    address: str
    amount: Decimal
    status: TransferStatus
    error_code: str | None = None
    error_message: str | None = None
    transaction_url: str | None = None
    is_fee: bool = False

    @classmethod
    def success(cls, address: str, amount: Decimal, transaction_url: str | None, is_fee: bool = False):
        return cls(address, amount, TransferStatus.SUCCESS, transaction_url=transaction_url, is_fee=is_fee)

    @classmethod
    def failed(cls, address: str, amount: Decimal, error_code: str, error_message: str | None = None, is_fee: bool = False):
        return cls(
            address,
            amount,
            TransferStatus.FAILED,
            error_code=error_code,
            error_message=error_message or error_code,
            is_fee=is_fee,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == TransferStatus.SUCCESS


@dataclass
class DisbursementLedger:
    """Ordered outcomes of a single disbursement, recipients first and the fee entry last."""

    outcomes: list[TransferOutcome] = field(default_factory=list)

    def record(self, outcome: TransferOutcome) -> TransferOutcome:
        self.outcomes.append(outcome)
        return outcome

    def __len__(self):
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)

    def __getitem__(self, index):
        return self.outcomes[index]

    @property
    def recipient_outcomes(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if not o.is_fee]

    @property
    def fee_outcome(self) -> TransferOutcome | None:
        return next((o for o in self.outcomes if o.is_fee), None)

    @property
    def successful(self) -> list[TransferOutcome]:
        return [o for o in self.recipient_outcomes if o.succeeded]

    @property
    def failed(self) -> list[TransferOutcome]:
        return [o for o in self.recipient_outcomes if not o.succeeded]


@dataclass(frozen=True)
class TradeOutcome:
    network: str
    from_amount: Decimal
    source_asset: str
    target_asset: str
    status: TransferStatus
    to_amount: Decimal | None = None
    error_code: str | None = None
    error_message: str | None = None
    transaction_url: str | None = None
    fee: TransferOutcome | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == TransferStatus.SUCCESS

import csv
import os
from decimal import Decimal, InvalidOperation

from loguru import logger

from payouts.ledger import TradeOutcome, TransferOutcome, TransferStatus

PAYOUT_HEADERS = ["Address", "Amount", "Status", "Error Code", "Transaction URL"]
TRADE_HEADERS = ["Network", "From Amount", "Source Asset", "To Amount", "Target Asset", "Status", "Transaction URL"]


def _cell(value) -> str:
    return "" if value is None else str(value)


def _value(cell: str) -> str | None:
    return cell if cell != "" else None


class CsvAuditLog:
    """Append-only CSV file with a fixed header row, created on first write."""

    headers: list[str] = []

    def __init__(self, path: str):
        self.path = path

    def append_row(self, row: list) -> bool:
        """Append one row. Failures are logged and reported as False, never raised."""
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            new_file = not os.path.exists(self.path)
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                if new_file:
                    writer.writerow(self.headers)
                writer.writerow([_cell(v) for v in row])
            return True
        except Exception as exc:
            logger.error(f"Failed to write audit row to {self.path}: {exc}")
            return False

    def read_rows(self) -> list[dict[str, str | None]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            return [{k: _value(v) for k, v in row.items()} for row in reader]


class PayoutAuditLog(CsvAuditLog):
    headers = PAYOUT_HEADERS

    def append(self, outcome: TransferOutcome) -> bool:
        return self.append_row([
            outcome.address,
            outcome.amount,
            outcome.status.value,
            outcome.error_code,
            outcome.transaction_url,
        ])

    def read(self) -> list[TransferOutcome]:
        """Rows that no longer parse are logged and skipped."""
        outcomes = []
        for line, row in enumerate(self.read_rows(), start=2):
            try:
                outcomes.append(TransferOutcome(
                    address=row["Address"] or "",
                    amount=Decimal(row["Amount"]),
                    status=TransferStatus(row["Status"]),
                    error_code=row["Error Code"],
                    transaction_url=row["Transaction URL"],
                ))
            except (InvalidOperation, ValueError, TypeError, KeyError) as e:
                logger.warning(f"Skipping unreadable row {line} in {self.path}: {e}")
        return outcomes


class TradeAuditLog(CsvAuditLog):
    headers = TRADE_HEADERS

    def append(self, outcome: TradeOutcome) -> bool:
        return self.append_row([
            outcome.network,
            outcome.from_amount,
            outcome.source_asset,
            outcome.to_amount,
            outcome.target_asset,
            outcome.status.value,
            outcome.transaction_url,
        ])

import base64
import hashlib
import re

from cryptography.fernet import Fernet

from payouts.audit import PayoutAuditLog, TradeAuditLog
from payouts.executor import TransferExecutor
from payouts.fees import FeeSplitter
from payouts.ledger import DisbursementLedger, TradeOutcome, TransferOutcome

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
ENS_NAME_RE = re.compile(r"^[a-z0-9-]+(\.[a-z0-9-]+)*\.eth$")


def is_valid_address(address: str | None) -> bool:
    """
    Check a destination address before any network call.

    Accepts 0x-prefixed 20 byte hex addresses and ENS / basename names.
    """
    if address is None or not address.strip():
        return False
    address = address.strip()
    return bool(EVM_ADDRESS_RE.match(address) or ENS_NAME_RE.match(address.lower()))


def derive_fernet(password: str) -> Fernet:
    """Derive a Fernet key from a password"""
    key = hashlib.sha256(password.encode('utf-8')).digest()
    return Fernet(base64.urlsafe_b64encode(key))


def build_orchestrator(setting, wallet_service):
    """
    Assemble the disbursement orchestrator from loaded settings.

    :param setting: The loaded Settings
    :param wallet_service: The wallet service to pay from

    :return: The DisbursementOrchestrator
    """
    from payouts.orchestrator import DisbursementOrchestrator

    executor = TransferExecutor(
        wallet_service,
        stablecoin_asset=setting.STABLECOIN_ASSET,
        poll_interval=setting.TRANSFER_POLL_INTERVAL,
        timeout=setting.TRANSFER_TIMEOUT,
    )
    return DisbursementOrchestrator(
        wallet_service=wallet_service,
        executor=executor,
        fee_splitter=FeeSplitter(setting.fee_configuration()),
        payout_log=PayoutAuditLog(setting.PAYOUTS_CSV_PATH),
        trade_log=TradeAuditLog(setting.TRADES_CSV_PATH),
        agent_id=setting.AGENT_ID,
    )


def _outcome_line(outcome: TransferOutcome) -> str:
    if outcome.succeeded:
        return f"✅ {outcome.address}: {outcome.amount} ({outcome.transaction_url or 'no transaction link'})"
    return f"❌ {outcome.address or '(none)'}: {outcome.amount} [{outcome.error_code}] {outcome.error_message or ''}".rstrip()


def format_payout_summary(ledger: DisbursementLedger) -> str:
    lines = [
        "Mass payouts completed.",
        f"- Successful Transactions: {len(ledger.successful)}",
        f"- Failed Transactions: {len(ledger.failed)}",
        "",
        "Details:",
    ]
    lines += [_outcome_line(o) for o in ledger.recipient_outcomes]
    fee = ledger.fee_outcome
    if fee is not None:
        lines += ["", "Fee Transaction:", _outcome_line(fee)]
    return "\n".join(lines)


def format_past_payouts(outcomes: list[TransferOutcome]) -> str:
    if not outcomes:
        return "No past payouts recorded."
    successful = [o for o in outcomes if o.succeeded]
    lines = [
        "Past payouts:",
        f"- Total Payouts: {len(outcomes)}",
        f"- Successful Payouts: {len(successful)}",
        f"- Failed Payouts: {len(outcomes) - len(successful)}",
    ]
    if successful:
        lines.append("- Transaction URLs:")
        lines += [f"  {o.transaction_url}" for o in successful if o.transaction_url]
    return "\n".join(lines)


def format_trade_summary(outcome: TradeOutcome) -> str:
    if not outcome.succeeded:
        return (
            f"Trade of {outcome.from_amount} {outcome.source_asset} to {outcome.target_asset} "
            f"on {outcome.network} failed: [{outcome.error_code}] {outcome.error_message or ''}".rstrip()
        )
    lines = [
        f"Trade executed on {outcome.network}: {outcome.from_amount} {outcome.source_asset} "
        f"-> {outcome.to_amount} {outcome.target_asset}",
        f"Transaction URL: {outcome.transaction_url or 'N/A'}",
    ]
    if outcome.fee is not None:
        lines.append(f"Fee Transaction: {_outcome_line(outcome.fee)}")
    return "\n".join(lines)

INVALID_ADDRESS = "InvalidAddress"
INSUFFICIENT_FUNDS = "InsufficientFunds"
TRANSFER_FAILED = "TransferFailed"
FEE_MISCONFIGURED = "FeeMisconfigured"
WALLET_UNAVAILABLE = "WalletUnavailable"
UNKNOWN_ERROR = "UnknownError"


class WalletUnavailableError(Exception):
    """The custodial wallet could not be resolved or queried. Aborts the whole request."""

    code = WALLET_UNAVAILABLE


class FeeMisconfiguredError(Exception):
    """Fee splitting is enabled but no fee address is configured for the network."""

    code = FEE_MISCONFIGURED

    def __init__(self, network: str):
        super().__init__(f"Fee splitting is enabled but no fee address is configured for network '{network}'")
        self.network = network


def error_code_of(exc: BaseException) -> str:
    """Classification of an SDK or transport error, `UnknownError` when it carries none."""
    for attr in ("code", "api_code"):
        value = getattr(exc, attr, None)
        if value:
            return str(value)
    return UNKNOWN_ERROR

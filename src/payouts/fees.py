from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from payouts.errors import FeeMisconfiguredError
from payouts.networks import canonical_network

DEFAULT_FEE_RATE = Decimal("0.01")


@dataclass(frozen=True)
class FeeConfiguration:
    enabled: bool = False
    addresses: dict[str, str] = field(default_factory=dict)
    rate: Decimal = DEFAULT_FEE_RATE

    def __post_init__(self):
        # "base" and "base-mainnet" name the same chain
        object.__setattr__(
            self, "addresses", {canonical_network(network): address for network, address in self.addresses.items()}
        )

    def address_for(self, network: str) -> str | None:
        return self.addresses.get(canonical_network(network)) or None


@dataclass(frozen=True)
class FeeSplit:
    destination: str
    fee_amount: Decimal
    net_amount: Decimal


def compute_fee(amount: Decimal, rate: Decimal = DEFAULT_FEE_RATE) -> tuple[Decimal, Decimal]:
    """
    Split an amount into fee and net parts.

    Plain decimal multiplication, no quantization: 0.005 * 0.01 gives 0.00005.

    :param amount: The requested amount
    :param rate: The fee rate

    :return tuple[Decimal, Decimal]: The fee amount and the net amount
    """
    amount = Decimal(str(amount))
    fee = amount * rate
    return fee, amount - fee


class FeeSplitter:
    def __init__(self, config: FeeConfiguration):
        self.config = config

    def split(self, network: str, amount: Decimal, opt_in: bool = True) -> FeeSplit | None:
        """
        Resolve the fee payment for a request.

        :param network: The network the fee is paid on
        :param amount: The requested amount the fee is taken from
        :param opt_in: Per-call opt-in, ANDed with the global flag

        :return: None when no fee is due, else the fee destination and amounts
        :raises FeeMisconfiguredError: splitting is enabled but the network has no fee address
        """
        if not (self.config.enabled and opt_in):
            return None
        destination = self.config.address_for(network)
        if not destination:
            logger.error(f"No fee address configured for network {network}")
            raise FeeMisconfiguredError(network)
        fee, net = compute_fee(amount, self.config.rate)
        return FeeSplit(destination=destination, fee_amount=fee, net_amount=net)

"""Enzyme vault fees.

Encode fee settings passed to ``FeeManager`` when the vault is created.

- Rates are given as percents, e.g. ``2`` for 2% management fee

- On-chain rates are 18 decimal fixed point, ``10**18`` being 100%

- The recipient defaults to the zero address, meaning the fees are paid to the vault owner

See `Enzyme fees <https://docs.enzyme.finance/managers/setup/fees>`__.
"""

import decimal
import enum
import logging
from decimal import Decimal

from eth_abi import encode
from eth_typing import HexAddress
from web3 import Web3

from eth_fund.abi import ZERO_ADDRESS
from eth_fund.errors import ConfigurationError

logger = logging.getLogger(__name__)


#: 100% in Enzyme fixed point presentation
ONE_HUNDRED_PERCENT = 10**18

#: Performance fee high-water mark if not given, in denomination token per share
DEFAULT_HIGH_WATER_MARK = Decimal(1)


class FeeKind(enum.Enum):
    """Fee types a fund manager can enable."""

    #: Annual fee on the assets under management
    management = "management"

    #: Fee on the share value gains above the high-water mark
    performance = "performance"

    #: Fee burnt from the shares on subscription
    entrance = "entrance"

    #: Fee burnt from the shares on redemption
    exit = "exit"


#: Which registry entry holds the fee module address
FEE_MODULE_KEYS = {
    FeeKind.management: "management_fee",
    FeeKind.performance: "performance_fee",
    FeeKind.entrance: "entrance_rate_burn_fee",
    FeeKind.exit: "exit_rate_burn_fee",
}


def parse_percent(value: Decimal | str | int | float, label: str) -> Decimal:
    """Parse a percent value and check it is between 0 and 100.

    :raise ConfigurationError:
        Not a number or out of range
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"{label} is missing")

    if isinstance(value, float):
        # Use the shortest decimal presentation, not the binary one
        value = str(value)

    try:
        percent = Decimal(value)
    except decimal.InvalidOperation as e:
        raise ConfigurationError(f"{label} is not a number: {value}") from e

    if not percent.is_finite() or percent < 0 or percent > 100:
        raise ConfigurationError(f"{label} must be between 0 and 100, got {value}")

    return percent


def convert_percent_to_fixed_point(percent: Decimal) -> int:
    """Convert a percent to Enzyme 18 decimal fixed point.

    ``rate / 100 * 10**18`` computed without precision loss.
    Any residue below 1 wei is truncated.

    Example:

    .. code-block:: python

        assert convert_percent_to_fixed_point(Decimal(2)) == 2 * 10**16
    """
    assert isinstance(percent, Decimal), f"Got {type(percent)}"
    with decimal.localcontext() as ctx:
        ctx.prec = 80
        return int(percent.scaleb(16).to_integral_value(rounding=decimal.ROUND_DOWN))


def convert_recipient(recipient: HexAddress | str | None) -> HexAddress:
    if not recipient:
        return ZERO_ADDRESS
    if not Web3.is_address(recipient):
        raise ConfigurationError(f"Fee recipient is not an address: {recipient}")
    return Web3.to_checksum_address(recipient)


def encode_fee_settings(
    kind: FeeKind,
    rate: Decimal | str | int,
    recipient: HexAddress | str | None = None,
    high_water_mark: Decimal | None = None,
) -> bytes:
    """Encode the settings of one fee for ``FeeManager``.

    :param kind:
        Which fee

    :param rate:
        Percent, between 0 and 100

    :param recipient:
        Who receives the fee. Zero address pays the vault owner.

    :param high_water_mark:
        Performance fee only. Share price from which the gains are counted,
        in denomination token.

    :return:
        ABI encoded settings bytes
    """
    kind = FeeKind(kind)
    fixed_rate = convert_percent_to_fixed_point(parse_percent(rate, f"{kind.value} fee rate"))
    recipient = convert_recipient(recipient)

    match kind:
        case FeeKind.management | FeeKind.entrance:
            return encode(["uint256", "address"], [fixed_rate, recipient])
        case FeeKind.performance:
            if high_water_mark is None:
                high_water_mark = DEFAULT_HIGH_WATER_MARK
            high_water_mark = Decimal(high_water_mark)
            if not high_water_mark.is_finite() or high_water_mark <= 0:
                raise ConfigurationError(f"High-water mark must be positive, got {high_water_mark}")
            raw_high_water_mark = int(high_water_mark.scaleb(18).to_integral_value(rounding=decimal.ROUND_DOWN))
            return encode(["uint256", "uint256", "address"], [fixed_rate, raw_high_water_mark, recipient])
        case FeeKind.exit:
            # Same rate for in-kind and specific asset redemptions
            return encode(["uint256", "uint256", "address"], [fixed_rate, fixed_rate, recipient])
        case _:
            raise NotImplementedError(f"Unsupported fee {kind}")

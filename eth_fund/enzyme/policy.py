"""Enzyme vault policies.

Encode policy settings passed to ``PolicyManager`` when the vault is created.

- Depositor whitelist: only listed addresses can buy shares

- Shares transfer whitelist: shares can be transferred only to listed addresses

- Deposit limits: minimum and maximum investment per deposit

- Cumulative slippage tolerance: the asset manager can bleed only this much value a week

Whitelists are created as new address lists in Enzyme's ``AddressListRegistry``.
"""

import decimal
import enum
import logging
import re
from decimal import Decimal
from typing import Iterable

from eth_abi import encode
from eth_typing import HexAddress
from web3 import Web3

from eth_fund.enzyme.fee import ONE_HUNDRED_PERCENT, parse_percent
from eth_fund.errors import ConfigurationError
from eth_fund.token import convert_to_raw_amount

logger = logging.getLogger(__name__)


#: What a whitelist line must look like to be accepted
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


class AddressListUpdateType(enum.Enum):
    """What kind of delta operation we do on an address.

    Taken from Enzyme's JS core.
    """

    None_ = 0
    AddOnly = 1
    RemoveOnly = 2
    AddAndRemove = 3


class PolicyKind(enum.Enum):
    """Policy types a fund manager can enable."""

    depositor_whitelist = "depositor_whitelist"
    shares_transfer_whitelist = "shares_transfer_whitelist"
    deposit_limits = "deposit_limits"
    cumulative_slippage_tolerance = "cumulative_slippage_tolerance"


#: Which registry entry holds the policy module address
POLICY_MODULE_KEYS = {
    PolicyKind.depositor_whitelist: "allowed_deposit_recipients_policy",
    PolicyKind.shares_transfer_whitelist: "allowed_shares_transfer_recipients_policy",
    PolicyKind.deposit_limits: "min_max_investment_policy",
    PolicyKind.cumulative_slippage_tolerance: "cumulative_slippage_tolerance_policy",
}


def parse_address_list(text: str | Iterable[str] | None) -> list[HexAddress]:
    """Parse whitelist input.

    - One address per line

    - Lines that are not addresses are skipped

    - Duplicates are dropped, regardless of the checksum casing, first one wins

    Example:

    .. code-block:: python

        addresses = parse_address_list("0xA...\\n0xa...\\nbad\\n0xB...")
        assert len(addresses) == 2

    :return:
        Checksummed addresses in the input order
    """
    if text is None:
        return []

    if isinstance(text, str):
        lines = text.splitlines()
    else:
        lines = list(text)

    seen = set()
    result = []
    for line in lines:
        candidate = line.strip()
        if not ADDRESS_PATTERN.match(candidate):
            if candidate:
                logger.debug("Skipping whitelist line %s", candidate)
            continue
        key = candidate.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(Web3.to_checksum_address(candidate))
    return result


def encode_address_list_policy_args(
    addresses: list[HexAddress],
    update_type=AddressListUpdateType.None_,
) -> bytes:
    """How to pass an address list to a fund deployer.

    Creates one new list in ``AddressListRegistry``, no existing lists are referred.
    ``AddressListUpdateType.None_`` makes the list immutable, so that the policy
    settings are replaced, never appended.
    """

    # export function addressListRegistryPolicyArgs({
    #   existingListIds = [],
    #   newListsArgs = [],
    # }) {
    #   return encodeArgs(
    #     ['uint256[]', 'bytes[]'],
    #     [
    #       existingListIds,
    #       newListsArgs.map(({ updateType, initialItems }) =>
    #         encodeArgs(['uint256', 'address[]'], [updateType, initialItems]),
    #       ),
    #     ],
    #   );
    # }

    existing_list_ids = []
    new_list_args = [encode(["uint256", "address[]"], [update_type.value, list(addresses)])]
    return encode(["uint256[]", "bytes[]"], [existing_list_ids, new_list_args])


def encode_deposit_limits(min_amount: Decimal | str | int, max_amount: Decimal | str | int, decimals: int) -> bytes:
    """Encode ``MinMaxInvestmentPolicy`` settings.

    :param min_amount:
        Minimum investment in denomination token

    :param max_amount:
        Maximum investment in denomination token

    :param decimals:
        Denomination token decimals
    """
    limits = []
    for label, value in (("Minimum deposit", min_amount), ("Maximum deposit", max_amount)):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigurationError(f"{label} is missing")
        try:
            amount = Decimal(str(value) if isinstance(value, float) else value)
        except decimal.InvalidOperation as e:
            raise ConfigurationError(f"{label} is not a number: {value}") from e
        if not amount.is_finite() or amount < 0:
            raise ConfigurationError(f"{label} must be zero or positive, got {value}")
        if -amount.normalize().as_tuple().exponent > decimals:
            raise ConfigurationError(f"{label} {value} has more than {decimals} decimal places")
        limits.append(amount)

    min_amount, max_amount = limits
    if min_amount > max_amount:
        raise ConfigurationError(f"Minimum deposit {min_amount} is larger than maximum deposit {max_amount}")

    return encode(["uint256", "uint256"], [convert_to_raw_amount(min_amount, decimals), convert_to_raw_amount(max_amount, decimals)])


def encode_cumulative_slippage_tolerance(tolerance: Decimal | str | int) -> bytes:
    """Encode ``CumulativeSlippageTolerancePolicy`` settings.

    :param tolerance:
        How many percent we can have total slippage per week.
    """
    percent = parse_percent(tolerance, "Cumulative slippage tolerance")
    with decimal.localcontext() as ctx:
        ctx.prec = 80
        value = int((percent * ONE_HUNDRED_PERCENT / 100).to_integral_value(rounding=decimal.ROUND_DOWN))
    return encode(["uint64"], [value])


def encode_policy_settings(kind: PolicyKind, parameters: dict, denomination_decimals: int) -> bytes:
    """Encode the settings of one policy for ``PolicyManager``.

    Parameters per policy:

    - Whitelists: ``addresses``, newline separated text or a list

    - Deposit limits: ``min`` and ``max`` in denomination token

    - Cumulative slippage tolerance: ``tolerance`` percent

    :raise ConfigurationError:
        Parameters missing or invalid
    """
    kind = PolicyKind(kind)
    parameters = parameters or {}

    match kind:
        case PolicyKind.depositor_whitelist | PolicyKind.shares_transfer_whitelist:
            addresses = parse_address_list(parameters.get("addresses"))
            if not addresses:
                raise ConfigurationError(f"{kind.value} is enabled, but has no valid addresses")
            return encode_address_list_policy_args(addresses)
        case PolicyKind.deposit_limits:
            return encode_deposit_limits(parameters.get("min"), parameters.get("max"), denomination_decimals)
        case PolicyKind.cumulative_slippage_tolerance:
            return encode_cumulative_slippage_tolerance(parameters.get("tolerance"))
        case _:
            raise NotImplementedError(f"Unsupported policy {kind}")

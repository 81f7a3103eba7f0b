"""Subscription and redemption quotes.

Estimate what an investor gets, before the transaction is sent.
All values are :py:class:`decimal.Decimal` in human units.
Truncation happens only when converting to raw token units.
"""

from dataclasses import dataclass
from decimal import Decimal

from eth_fund.enzyme.vault import SHARES_DECIMALS
from eth_fund.token import convert_to_decimal_amount, convert_to_raw_amount

#: Entrance fee assumed for quotes, 1%
DEFAULT_ENTRANCE_FEE_RATE = Decimal("0.01")

#: Exit fee assumed for quotes, 0.5%
DEFAULT_EXIT_FEE_RATE = Decimal("0.005")

#: How much less shares than quoted we accept, 0.5%
DEFAULT_SLIPPAGE_TOLERANCE = Decimal("0.005")


@dataclass(slots=True, frozen=True)
class SubscriptionQuote:
    """Estimated outcome of buying shares."""

    #: Denomination token amount invested
    amount: Decimal

    #: Entrance fee in denomination token
    fee: Decimal

    #: Amount left after the fee
    net_amount: Decimal

    #: Shares at the current share price
    estimated_shares: Decimal

    def get_min_shares_out(self, slippage_tolerance: Decimal = DEFAULT_SLIPPAGE_TOLERANCE) -> Decimal:
        """Minimum shares to accept, truncated to share token precision.

        :param slippage_tolerance:
            E.g. ``Decimal("0.005")`` for 0.5%
        """
        assert Decimal(0) <= slippage_tolerance < Decimal(1), f"Bad slippage tolerance {slippage_tolerance}"
        min_shares = self.estimated_shares * (Decimal(1) - slippage_tolerance)
        return convert_to_decimal_amount(convert_to_raw_amount(min_shares, SHARES_DECIMALS), SHARES_DECIMALS)


@dataclass(slots=True, frozen=True)
class RedemptionQuote:
    """Estimated outcome of redeeming shares."""

    shares_amount: Decimal

    #: Shares value before fees, in denomination token
    gross_value: Decimal

    #: Exit fee in denomination token
    fee: Decimal

    #: What is received after the fee
    net_value: Decimal


def calculate_subscription_quote(
    amount: Decimal,
    nav_per_share: Decimal,
    entrance_fee_rate: Decimal = DEFAULT_ENTRANCE_FEE_RATE,
) -> SubscriptionQuote:
    """Quote a subscription.

    ``fee = amount * rate``, ``net = amount - fee``, ``shares = net / nav``.

    Example:

    .. code-block:: python

        quote = calculate_subscription_quote(Decimal(1000), Decimal(1))
        assert quote.estimated_shares == 990
    """
    assert isinstance(amount, Decimal), f"Got {type(amount)}"
    assert isinstance(nav_per_share, Decimal), f"Got {type(nav_per_share)}"
    assert nav_per_share > 0, f"Share price must be positive, got {nav_per_share}"
    fee = amount * entrance_fee_rate
    net_amount = amount - fee
    return SubscriptionQuote(
        amount=amount,
        fee=fee,
        net_amount=net_amount,
        estimated_shares=net_amount / nav_per_share,
    )


def calculate_redemption_quote(
    shares_amount: Decimal,
    nav_per_share: Decimal,
    exit_fee_rate: Decimal = DEFAULT_EXIT_FEE_RATE,
) -> RedemptionQuote:
    """Quote a redemption.

    ``gross = shares * nav``, ``fee = gross * rate``, ``net = gross - fee``.
    """
    assert isinstance(shares_amount, Decimal), f"Got {type(shares_amount)}"
    assert isinstance(nav_per_share, Decimal), f"Got {type(nav_per_share)}"
    gross_value = shares_amount * nav_per_share
    fee = gross_value * exit_fee_rate
    return RedemptionQuote(
        shares_amount=shares_amount,
        gross_value=gross_value,
        fee=fee,
        net_value=gross_value - fee,
    )

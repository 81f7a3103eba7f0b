"""ERC-20 token deployment and manipulation.

Async helpers to read ERC-20 token details and balances,
and to convert between human-readable decimal amounts and raw ``uint256`` units.
"""

import decimal
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from eth_typing import HexAddress
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction

from eth_fund.abi import get_deployed_contract
from eth_fund.errors import InvalidAmountError

logger = logging.getLogger(__name__)


#: Enough precision for any uint256 value
UINT256_DECIMAL_PRECISION = 80


def convert_to_raw_amount(amount: Decimal, decimals: int) -> int:
    """Convert a decimal amount to raw token units.

    Any residue below the smallest unit is truncated, never rounded up.

    Example:

    .. code-block:: python

        assert convert_to_raw_amount(Decimal("1.5"), 6) == 1_500_000
    """
    assert isinstance(amount, Decimal), f"Give amounts in decimal, got {type(amount)}"
    assert type(decimals) == int, f"Bad decimals {decimals}"
    with decimal.localcontext() as ctx:
        ctx.prec = UINT256_DECIMAL_PRECISION
        return int(amount.scaleb(decimals).to_integral_value(rounding=decimal.ROUND_DOWN))


def convert_to_decimal_amount(raw_amount: int, decimals: int) -> Decimal:
    """Convert raw token units to a decimal amount."""
    assert type(raw_amount) == int, f"Got {type(raw_amount)}, expected int: {raw_amount}"
    with decimal.localcontext() as ctx:
        ctx.prec = UINT256_DECIMAL_PRECISION
        return Decimal(raw_amount).scaleb(-decimals)


def parse_token_amount(value: str | Decimal | int | None, decimals: int) -> Decimal:
    """Parse user input to a token amount.

    - Must be a positive decimal number

    - Must not have more fractional digits than the token has decimals

    :param value:
        Raw user input, e.g. ``"100.25"``

    :raise InvalidAmountError:
        If the input is not a valid amount for this token
    """

    if value is None:
        raise InvalidAmountError("Amount missing")

    if isinstance(value, float):
        raise InvalidAmountError(f"Give amounts as strings or decimals, got float {value}")

    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise InvalidAmountError("Amount missing")

    try:
        amount = Decimal(value)
    except decimal.InvalidOperation as e:
        raise InvalidAmountError(f"Not a number: {value}") from e

    if not amount.is_finite():
        raise InvalidAmountError(f"Not a finite number: {value}")

    if amount <= 0:
        raise InvalidAmountError(f"Amount must be positive, got {value}")

    exponent = amount.normalize().as_tuple().exponent
    if -exponent > decimals:
        raise InvalidAmountError(f"Amount {value} has more than {decimals} decimal places")

    return amount


@dataclass
class TokenDetails:
    """ERC-20 token Python presentation.

    - A helper class to work with ERC-20 tokens.

    - Read on-chain data, deal with token value decimal conversions.

    Example how to get USDC details on Ethereum:

    .. code-block:: python

        usdc = await fetch_erc20_details(web3, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")
        assert usdc.decimals == 6
    """

    #: The underlying ERC-20 contract proxy class instance
    contract: AsyncContract

    #: Token name e.g. ``USD Circle``
    name: Optional[str] = None

    #: Token symbol e.g. ``USDC``
    symbol: Optional[str] = None

    #: Number of decimals
    decimals: Optional[int] = None

    def __repr__(self):
        return f"<{self.name} ({self.symbol}) at {self.contract.address}, {self.decimals} decimals>"

    @property
    def address(self) -> HexAddress:
        """The address of this token."""
        return self.contract.address

    @property
    def functions(self):
        """Alias for underlying Web3 contract method"""
        return self.contract.functions

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to decimals.

        Example:

        .. code-block:: python

            # Convert 1 USDC raw unit to decimals
            assert details.convert_to_decimals(1) == Decimal("0.000001")

        """
        return convert_to_decimal_amount(raw_amount, self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal) -> int:
        """Convert decimalised token amount to raw uint256.

        Example:

        .. code-block:: python

            # Convert 1.0 USDC to raw unit with 6 decimals
            assert details.convert_to_raw(Decimal(1)) == 1_000_000

        """
        return convert_to_raw_amount(decimal_amount, self.decimals)

    async def fetch_raw_balance_of(self, address: HexAddress | str) -> int:
        """Get an address token balance.

        :return:
            Raw token amount.
        """
        address = Web3.to_checksum_address(address)
        return await self.contract.functions.balanceOf(address).call()

    async def fetch_balance_of(self, address: HexAddress | str) -> Decimal:
        """Get an address token balance.

        :return:
            Converted to decimal using :py:meth:`convert_to_decimals`
        """
        raw_amount = await self.fetch_raw_balance_of(address)
        return self.convert_to_decimals(raw_amount)

    async def fetch_raw_allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        """How many raw token units ``spender`` may transfer on behalf of ``owner``."""
        owner = Web3.to_checksum_address(owner)
        spender = Web3.to_checksum_address(spender)
        return await self.contract.functions.allowance(owner, spender).call()

    def approve(self, spender: HexAddress | str, amount: Decimal) -> AsyncContractFunction:
        """Prepare a ERC20.approve() transaction with human-readable amount.

        The allowance is set for the exact amount, never unlimited.

        :return:
            Bound contract function you need to turn to a tx
        """
        assert isinstance(amount, Decimal), f"Give amounts in decimal, got {type(amount)}"
        spender = Web3.to_checksum_address(spender)
        raw_amount = self.convert_to_raw(amount)
        return self.contract.functions.approve(spender, raw_amount)


async def fetch_erc20_details(
    web3: AsyncWeb3,
    token_address: HexAddress | str,
) -> TokenDetails:
    """Read token details from on-chain data.

    :param web3:
        AsyncWeb3 connection

    :param token_address:
        ERC-20 contract address
    """
    contract = get_deployed_contract(web3, "ERC20.json", token_address)
    name = await contract.functions.name().call()
    symbol = await contract.functions.symbol().call()
    decimals = await contract.functions.decimals().call()
    logger.debug("Fetched token details %s (%s), %d decimals", name, symbol, decimals)
    return TokenDetails(contract, name=name, symbol=symbol, decimals=decimals)

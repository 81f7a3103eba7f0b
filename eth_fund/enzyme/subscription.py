"""Buy shares of an Enzyme vault.

Approve-then-deposit flow:

1. Investor approves the exact deposit amount for the vault comptroller

2. After the approval has been confirmed, the investor calls ``buyShares()``
   with a minimum shares amount derived from the current share price

Example:

.. code-block:: python

    vault = await Vault.fetch(web3, vault_address)
    reader = ChainStateReader(vault)
    flow = SubscriptionFlow(vault, wallet, reader)
    await reader.set_inputs(owner=wallet.address, amount=Decimal(500))

    await flow.approve(Decimal(500))
    handle = await flow.deposit(Decimal(500))
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from eth_typing import HexAddress

from eth_fund.basewallet import BaseWallet
from eth_fund.confirmation import TransactionHandle
from eth_fund.enzyme.chain_state import ChainStateReader, VaultSnapshot
from eth_fund.enzyme.flow import InvestorFlow
from eth_fund.enzyme.quote import (
    DEFAULT_ENTRANCE_FEE_RATE,
    DEFAULT_SLIPPAGE_TOLERANCE,
    SubscriptionQuote,
    calculate_subscription_quote,
)
from eth_fund.enzyme.vault import Vault
from eth_fund.errors import InsufficientAllowanceError, NetworkReadError
from eth_fund.token import parse_token_amount

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SubscriptionIntent:
    """A deposit as sent to the comptroller."""

    #: Denomination token amount
    amount: Decimal

    #: Denomination token address
    denomination_asset: HexAddress

    #: The least shares ``buyShares()`` may give us, or it reverts
    min_shares_out: Decimal


class SubscriptionFlow(InvestorFlow):
    """Deposit denomination token to a vault for shares."""

    def __init__(
        self,
        vault: Vault,
        signer: Optional[BaseWallet],
        reader: ChainStateReader,
        entrance_fee_rate: Decimal = DEFAULT_ENTRANCE_FEE_RATE,
        slippage_tolerance: Decimal = DEFAULT_SLIPPAGE_TOLERANCE,
    ):
        super().__init__(vault, signer, reader)
        self.entrance_fee_rate = entrance_fee_rate
        self.slippage_tolerance = slippage_tolerance

    def __repr__(self):
        return f"<SubscriptionFlow {self.vault.address} {self.state.value}>"

    @property
    def decimals(self) -> int:
        return self.vault.denomination_token.decimals

    def quote(self, amount: Decimal | str, snapshot: Optional[VaultSnapshot]) -> SubscriptionQuote:
        """Estimate shares received for a deposit.

        :raise InvalidAmountError:
            Bad amount

        :raise NetworkReadError:
            No share price read yet
        """
        amount = parse_token_amount(amount, self.decimals)
        if snapshot is None:
            raise NetworkReadError("Share price not available yet")
        if snapshot.nav_per_share <= 0:
            raise NetworkReadError(f"Vault {self.vault.address} reports share price {snapshot.nav_per_share}, cannot estimate shares")
        return calculate_subscription_quote(amount, snapshot.nav_per_share, self.entrance_fee_rate)

    def max_amount(self) -> Optional[Decimal]:
        """Investor denomination token balance, if read."""
        account = self.reader.latest_account
        return account.denomination_balance if account else None

    def can_approve(self, amount: Decimal | str | None) -> bool:
        """Should the approve action be offered."""
        parsed = self._try_parse(amount, self.decimals)
        if parsed is None or self.is_busy() or self.signer is None:
            return False
        allowance = self.reader.latest_allowance
        if allowance is None:
            return True
        return not allowance.covers(self.vault.denomination_token.convert_to_raw(parsed))

    def can_deposit(self, amount: Decimal | str | None) -> bool:
        """Should the deposit action be offered."""
        parsed = self._try_parse(amount, self.decimals)
        if parsed is None or self.is_busy() or self.signer is None:
            return False
        allowance = self.reader.latest_allowance
        if allowance is None:
            return False
        return allowance.covers(self.vault.denomination_token.convert_to_raw(parsed))

    async def approve(self, amount: Decimal | str) -> TransactionHandle:
        """Approve the comptroller to pull exactly ``amount``.

        Waits for the confirmation and re-reads the allowance.
        """
        self._begin("approve")
        try:
            amount = parse_token_amount(amount, self.decimals)
            signer = self._get_signer()
            func = self.vault.denomination_token.approve(self.vault.comptroller_address, amount)
            handle = await self._broadcast_and_confirm(func)
            allowance = await self.reader.read_allowance(signer.address)
            logger.info("Allowance of %s for %s is now %d", signer.address, self.vault.comptroller_address, allowance.amount)
            return handle
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._finish()

    async def deposit(self, amount: Decimal | str) -> TransactionHandle:
        """Buy shares for ``amount`` of denomination token.

        - The allowance is checked on-chain right before the deposit

        - Minimum shares received is the quoted amount less the slippage tolerance

        :raise InsufficientAllowanceError:
            The approval is missing or not yet confirmed
        """
        self._begin("deposit")
        try:
            amount = parse_token_amount(amount, self.decimals)
            signer = self._get_signer()
            raw_amount = self.vault.denomination_token.convert_to_raw(amount)

            allowance = await self.reader.read_allowance(signer.address)
            if not allowance.covers(raw_amount):
                raise InsufficientAllowanceError(
                    f"Allowance {allowance.amount} is less than the deposit {raw_amount}",
                    allowance=allowance.amount,
                    required=raw_amount,
                )

            snapshot = self.reader.latest_snapshot
            if snapshot is None:
                await self.reader.refresh()
                snapshot = self.reader.latest_snapshot

            quote = self.quote(amount, snapshot)
            intent = SubscriptionIntent(
                amount=amount,
                denomination_asset=self.vault.denomination_token.address,
                min_shares_out=quote.get_min_shares_out(self.slippage_tolerance),
            )
            self.last_intent = intent
            logger.info("Depositing %s, estimated shares %s, minimum %s", amount, quote.estimated_shares, intent.min_shares_out)

            func = self.vault.prepare_buy_shares(intent.amount, intent.min_shares_out)
            handle = await self._broadcast_and_confirm(func)
            await self.reader.refresh()
            return handle
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._finish()

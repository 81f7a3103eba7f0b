"""Redeem shares of an Enzyme vault.

Redemption is in-kind: the investor receives its pro rata part of every vault asset.
Shares are burnt by the comptroller, so no approval is needed.
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
from eth_fund.enzyme.quote import DEFAULT_EXIT_FEE_RATE, RedemptionQuote, calculate_redemption_quote
from eth_fund.enzyme.vault import SHARES_DECIMALS, Vault
from eth_fund.errors import InvalidAmountError, NetworkReadError
from eth_fund.token import convert_to_raw_amount, parse_token_amount

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RedemptionIntent:
    """A redemption as sent to the comptroller."""

    shares_amount: Decimal

    #: Receives the vault assets, always the investor itself
    recipient: HexAddress


class RedemptionFlow(InvestorFlow):
    """Redeem vault shares for the underlying assets."""

    def __init__(
        self,
        vault: Vault,
        signer: Optional[BaseWallet],
        reader: ChainStateReader,
        exit_fee_rate: Decimal = DEFAULT_EXIT_FEE_RATE,
    ):
        super().__init__(vault, signer, reader)
        self.exit_fee_rate = exit_fee_rate

    def __repr__(self):
        return f"<RedemptionFlow {self.vault.address} {self.state.value}>"

    def quote(self, shares_amount: Decimal | str, snapshot: Optional[VaultSnapshot]) -> RedemptionQuote:
        """Estimate the value received for redeemed shares.

        :raise NetworkReadError:
            No share price read yet
        """
        shares_amount = parse_token_amount(shares_amount, SHARES_DECIMALS)
        if snapshot is None:
            raise NetworkReadError("Share price not available yet")
        return calculate_redemption_quote(shares_amount, snapshot.nav_per_share, self.exit_fee_rate)

    def max_amount(self) -> Optional[Decimal]:
        """Investor share balance, if read."""
        account = self.reader.latest_account
        return account.share_balance if account else None

    def can_redeem(self, shares_amount: Decimal | str | None) -> bool:
        parsed = self._try_parse(shares_amount, SHARES_DECIMALS)
        if parsed is None or self.is_busy() or self.signer is None:
            return False
        balance = self.max_amount()
        return balance is None or parsed <= balance

    async def redeem(self, shares_amount: Decimal | str) -> TransactionHandle:
        """Redeem shares in kind to the investor's own address.

        :raise InvalidAmountError:
            More shares than the investor holds
        """
        self._begin("redeem")
        try:
            shares_amount = parse_token_amount(shares_amount, SHARES_DECIMALS)
            signer = self._get_signer()

            account = await self.reader.read_account(signer.address)
            if convert_to_raw_amount(shares_amount, SHARES_DECIMALS) > convert_to_raw_amount(account.share_balance, SHARES_DECIMALS):
                raise InvalidAmountError(f"Cannot redeem {shares_amount} shares, balance is {account.share_balance}")

            intent = RedemptionIntent(shares_amount=shares_amount, recipient=signer.address)
            self.last_intent = intent
            logger.info("Redeeming %s shares of %s for %s", shares_amount, self.vault.address, intent.recipient)
            func = self.vault.prepare_redeem_shares_in_kind(intent.recipient, intent.shares_amount)
            handle = await self._broadcast_and_confirm(func)
            await self.reader.refresh()
            return handle
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._finish()

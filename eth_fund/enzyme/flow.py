"""Common machinery of the investor flows.

- One mutating action at a time per flow instance

- Broadcast, then wait for the confirmation

- Record the failure for the user and return to idle
"""

import enum
import logging
from decimal import Decimal
from typing import Optional

from eth_fund.basewallet import BaseWallet
from eth_fund.confirmation import TransactionHandle
from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.vault import Vault
from eth_fund.errors import ActionInFlightError, InvalidAmountError, WalletNotConnectedError, describe_error
from eth_fund.token import parse_token_amount

logger = logging.getLogger(__name__)


class FlowState(enum.Enum):
    """Where an investor flow is."""

    #: Ready to take a new action
    idle = "idle"

    #: Validating the action and waiting the wallet to broadcast it
    submitting = "submitting"

    #: Transaction has been broadcast, waiting for it to be mined
    confirming = "confirming"


class InvestorFlow:
    """Base class for :py:class:`~eth_fund.enzyme.subscription.SubscriptionFlow`
    and :py:class:`~eth_fund.enzyme.redemption.RedemptionFlow`."""

    def __init__(self, vault: Vault, signer: Optional[BaseWallet], reader: ChainStateReader):
        assert reader.vault is vault, f"Reader {reader} follows another vault"
        self.vault = vault
        self.signer = signer
        self.reader = reader
        self.state = FlowState.idle

        #: The exception of the latest failed action, cleared when a new action starts
        self.last_error: Optional[Exception] = None

        #: User-facing description of :py:attr:`last_error`
        self.last_message: Optional[str] = None

        #: The latest transaction we broadcast
        self.last_transaction: Optional[TransactionHandle] = None

        #: What the current or latest action asked for,
        #: :py:class:`~eth_fund.enzyme.subscription.SubscriptionIntent` or
        #: :py:class:`~eth_fund.enzyme.redemption.RedemptionIntent`
        self.last_intent = None

    def is_busy(self) -> bool:
        return self.state != FlowState.idle

    def _begin(self, action: str):
        # Must be called before the first await, so that
        # a concurrent call sees the flow busy
        if self.is_busy():
            raise ActionInFlightError(f"Cannot {action}, {self.state.value} is in progress")
        self.state = FlowState.submitting
        self.last_error = None
        self.last_message = None
        self.last_intent = None
        logger.info("%s: starting %s", self.__class__.__name__, action)

    def _fail(self, e: Exception):
        self.last_error = e
        self.last_message = describe_error(e)
        logger.warning("%s failed: %s", self.__class__.__name__, self.last_message)

    def _finish(self):
        self.state = FlowState.idle

    def _get_signer(self) -> BaseWallet:
        if self.signer is None:
            raise WalletNotConnectedError("No wallet connected")
        return self.signer

    def _try_parse(self, amount, decimals: int) -> Optional[Decimal]:
        try:
            return parse_token_amount(amount, decimals)
        except InvalidAmountError:
            return None

    async def _broadcast_and_confirm(self, func) -> TransactionHandle:
        """Send the transaction and wait until it is mined.

        :raise WalletRejectedError:
            The user declined to sign

        :raise ChainExecutionError:
            Broadcast failed, or the transaction reverted
        """
        signer = self._get_signer()
        tx_hash = await signer.transact(func)
        handle = TransactionHandle(signer.web3, tx_hash, func.fn_name, signer.address)
        self.last_transaction = handle
        self.state = FlowState.confirming
        # No timeout: a transaction that is never mined keeps us confirming
        await handle.wait()
        return handle

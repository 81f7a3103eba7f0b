"""Transaction confirmation tools.

- Wait for a broadcast transaction to be mined

- Tell a confirmed revert apart from a broadcast failure
"""

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Optional

from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from eth_fund.errors import ChainExecutionError
from eth_fund.revert_reason import fetch_transaction_revert_reason

logger = logging.getLogger(__name__)


async def wait_transaction_to_complete(
    web3: AsyncWeb3,
    tx_hash: HexBytes | str,
    poll_delay=datetime.timedelta(seconds=1),
    max_timeout: datetime.timedelta | None = None,
) -> dict:
    """Wait for a transaction receipt.

    Use simple poll loop, suspending the calling task between polls.

    .. warning::

        By default there is no timeout. If the transaction never gets mined
        the caller stays waiting until it is cancelled.

    :param poll_delay:
        How long to sleep between receipt polls

    :param max_timeout:
        Give up after this long. ``None`` waits forever.

    :return:
        Transaction receipt

    :raise asyncio.TimeoutError:
        If ``max_timeout`` was given and exceeded
    """
    assert isinstance(poll_delay, datetime.timedelta)

    tx_hash = HexBytes(tx_hash)
    logger.info("Waiting transaction %s to confirm", tx_hash.hex())

    async def _poll() -> dict:
        while True:
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound as e:
                logger.debug("Transaction not found yet: %s", e)
                receipt = None

            if receipt:
                logger.info("Confirmed tx %s in block %s, status %s", tx_hash.hex(), receipt["blockNumber"], receipt["status"])
                return receipt

            await asyncio.sleep(poll_delay.total_seconds())

    if max_timeout is None:
        return await _poll()
    return await asyncio.wait_for(_poll(), timeout=max_timeout.total_seconds())


async def assert_transaction_success(web3: AsyncWeb3, tx_hash: HexBytes | str, receipt: dict) -> dict:
    """Check the receipt status and explain a revert.

    :return:
        The receipt if the transaction succeeded

    :raise ChainExecutionError:
        With ``phase="confirmed"`` and the revert reason
    """
    if receipt["status"] == 1:
        return receipt

    tx_hash = HexBytes(tx_hash)
    reason = await fetch_transaction_revert_reason(web3, tx_hash)
    logger.warning("Transaction %s reverted: %s", tx_hash.hex(), reason)
    raise ChainExecutionError(reason, phase=ChainExecutionError.CONFIRMED, tx_hash=tx_hash.hex())


@dataclass(slots=True)
class TransactionHandle:
    """A broadcast transaction the caller may follow up.

    Returned by all mutating fund operations as soon as the transaction
    has been broadcast. Use :py:meth:`wait` for the confirmation.
    """

    #: Read connection used to follow up the transaction
    web3: AsyncWeb3

    #: Transaction identifier
    tx_hash: HexBytes

    #: Contract function name, e.g. ``buyShares``
    action: str

    #: Who sent the transaction
    sender: HexAddress

    #: Filled in when the transaction has been confirmed successfully
    receipt: Optional[dict] = field(default=None, repr=False)

    def __post_init__(self):
        assert isinstance(self.tx_hash, HexBytes), f"Got {type(self.tx_hash)}: {self.tx_hash}"

    @property
    def tx_hash_hex(self) -> str:
        return self.tx_hash.hex()

    def is_confirmed(self) -> bool:
        return self.receipt is not None

    async def wait(self, poll_delay=datetime.timedelta(seconds=1)) -> dict:
        """Wait for the confirmation.

        :return:
            Receipt of the successful transaction

        :raise ChainExecutionError:
            If the transaction reverted
        """
        if self.receipt is not None:
            return self.receipt

        receipt = await wait_transaction_to_complete(self.web3, self.tx_hash, poll_delay=poll_delay)
        self.receipt = await assert_transaction_success(self.web3, self.tx_hash, receipt)
        return self.receipt

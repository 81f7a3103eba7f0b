"""Hot wallet management utilities.

- Create local wallets from a private key

- Sign and broadcast fund transactions over an async connection

"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import AsyncWeb3

from eth_fund.basewallet import BROADCAST_EXCEPTIONS, BaseWallet, translate_broadcast_error

logger = logging.getLogger(__name__)


def get_tx_broadcast_data(signed_tx) -> HexBytes:
    """Get raw transaction bytes with compatibility for attribute name changes.

    eth_account changed rawTransaction to raw_transaction in newer versions.
    """
    raw = getattr(signed_tx, "raw_transaction", None)
    if raw is None:
        raw = signed_tx.rawTransaction
    return HexBytes(raw)


class HotWallet(BaseWallet):
    """Hot wallet for signing transactions.

    - A hot wallet maintains an plain text private key of an Ethereum address in the process memory
      using :py:class:`eth_account.signers.local.LocalAccount` and nonce counter.

    - Used by scripts and server-side fund operations.

    Example:

    .. code-block:: python

        web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(json_rpc_url))
        wallet = HotWallet.from_private_key(web3, os.environ["PRIVATE_KEY"])
        tx_hash = await wallet.transact(usdc.approve(comptroller.address, Decimal(500)))

    .. note ::

        The nonce counter is not shared with other processes.
        Do not use the same private key elsewhere at the same time.
    """

    def __init__(self, web3: AsyncWeb3, account: LocalAccount):
        self._web3 = web3
        self.account = account
        self.current_nonce: Optional[int] = None

    def __repr__(self):
        return f"<Hot wallet {self.account.address}>"

    @staticmethod
    def from_private_key(web3: AsyncWeb3, private_key: str) -> "HotWallet":
        """Create a hot wallet from a private key.

        :param private_key:
            0x prefixed hex string
        """
        assert private_key.startswith("0x"), "Private key must be 0x prefixed"
        account = Account.from_key(private_key)
        return HotWallet(web3, account)

    @property
    def address(self) -> HexAddress:
        """Ethereum address of the wallet."""
        return self.account.address

    @property
    def web3(self) -> AsyncWeb3:
        return self._web3

    async def sync_nonce(self):
        """Initialise the current nonce from the on-chain data."""
        self.current_nonce = await self._web3.eth.get_transaction_count(self.account.address)
        logger.info("Synced nonce for %s to %d", self.account.address, self.current_nonce)

    def allocate_nonce(self) -> int:
        """Get the next free available nonce to be used with a transaction.

        Increase the nonce counter.
        """
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    async def transact(self, func, tx_params: Optional[dict] = None) -> HexBytes:
        action = func.fn_name

        try:
            if self.current_nonce is None:
                await self.sync_nonce()

            tx_params = dict(tx_params or {})
            tx_params["from"] = self.address
            if "chainId" not in tx_params:
                tx_params["chainId"] = await self._web3.eth.chain_id

            tx = await func.build_transaction(tx_params)
            tx["nonce"] = self.allocate_nonce()
            signed = self.account.sign_transaction(tx)
            tx_hash = await self._web3.eth.send_raw_transaction(get_tx_broadcast_data(signed))
        except BROADCAST_EXCEPTIONS as e:
            # Whatever nonce we allocated was not consumed
            self.current_nonce = None
            raise translate_broadcast_error(e, action) from e

        logger.info("Broadcast %s from %s, tx %s", action, self.address, tx_hash.hex())
        return tx_hash

"""Provider-based wallet implementation.

This module provides a wallet implementation that delegates transaction signing to a connected
provider (like MetaMask or other browser wallets).
"""

import logging
from typing import Optional

from eth_typing import ChecksumAddress, HexAddress
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3

from eth_fund.basewallet import BROADCAST_EXCEPTIONS, BaseWallet, translate_broadcast_error
from eth_fund.errors import WalletNotConnectedError

logger = logging.getLogger(__name__)


class Web3ProviderWallet(BaseWallet):
    """Wallet implementation that delegates operations to a connected Web3 provider.

    This wallet is designed to work with browser wallets (like MetaMask) or other
    external signers connected via a Web3 provider. The provider is responsible for nonces
    and for asking the user to sign. If the user declines, the provider returns
    EIP-1193 error code 4001 and we raise :py:class:`eth_fund.errors.WalletRejectedError`.

    Example:

    .. code-block:: python

        wallet = await Web3ProviderWallet.connect(web3)
        tx_hash = await wallet.transact(usdc.approve(comptroller.address, Decimal(500)))
    """

    def __init__(self, web3: AsyncWeb3, address: HexAddress | str):
        """Create a wallet using a connected Web3 provider.

        :param web3:
            Web3 instance with connected accounts

        :param address:
            The connected account
        """
        self._web3 = web3
        self._address = Web3.to_checksum_address(address)

    def __repr__(self):
        return f"<Provider wallet {self._address}>"

    @staticmethod
    async def connect(web3: AsyncWeb3) -> "Web3ProviderWallet":
        """Use the first account the provider exposes.

        :raise WalletNotConnectedError:
            The provider does not expose any accounts
        """
        accounts = await web3.eth.accounts
        if not accounts:
            raise WalletNotConnectedError("No accounts available in the connected Web3 provider")
        return Web3ProviderWallet(web3, accounts[0])

    @property
    def address(self) -> ChecksumAddress:
        return self._address

    @property
    def web3(self) -> AsyncWeb3:
        return self._web3

    async def transact(self, func, tx_params: Optional[dict] = None) -> HexBytes:
        action = func.fn_name
        try:
            tx_params = dict(tx_params or {})
            tx_params["from"] = self._address
            tx = await func.build_transaction(tx_params)
            # The provider will handle signing and nonce
            tx_hash = await self._web3.eth.send_transaction(tx)
        except BROADCAST_EXCEPTIONS as e:
            raise translate_broadcast_error(e, action) from e

        logger.info("Broadcast %s from %s via provider, tx %s", action, self._address, tx_hash.hex())
        return tx_hash

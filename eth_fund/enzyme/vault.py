"""High level interface to read and transact with Enzyme vaults.

See :py:class:`Vault`.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from eth_typing import HexAddress
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction

from eth_fund.abi import get_deployed_contract
from eth_fund.token import TokenDetails, convert_to_decimal_amount, convert_to_raw_amount, fetch_erc20_details

logger = logging.getLogger(__name__)


#: Enzyme share tokens always have 18 decimals
SHARES_DECIMALS = 18


@dataclass()
class Vault:
    """Enzyme vault wrapper.

    - Vaults are Enzyme Protocol "funds" where you have investors and assets

    - Investors have ownership of vault assets with a share token

    - Each vault has its denomination asset, e.g. USDC that you use for the buy in

    - You buy-in to a vault using `buyShares`

    - Redemption is "in-kind" and you swap your share tokens to the tokens
      of underlying open positions and other assets

    Vault in Enzyme are presented by two smart contracts

    - Vault contract

    - Comptroller contract

    - `See Enzyme documentation for general information about vaults <https://docs.enzyme.finance/managers/setup/fund-basics>`__.

    Example:

    .. code-block:: python

        vault = await Vault.fetch(web3, vault_address)
        print(f"Denominated in: {vault.denomination_token}")
        nav = await vault.fetch_share_price()
    """

    #: Vault smart contract
    #:
    #: The VaultLib contract contains the storage layout, event signatures, and logic for VaultProxy instances.
    #: Vault is also the share token.
    vault: AsyncContract

    #: Comptroller smart contract
    #:
    #: A ComptrollerProxy is deployed per-fund, and it is the canonical contract for interacting with a fund.
    #:
    #: Emits important events like `SharesBought`, `SharesRedeemed`
    comptroller: AsyncContract

    #: ERC-20 the vault is denominated in
    denomination_token: TokenDetails

    def __repr__(self) -> str:
        return f"<Vault vault={self.vault.address} comptroller={self.comptroller.address} denomination={self.denomination_token.symbol}>"

    @property
    def web3(self) -> AsyncWeb3:
        """Web3 connection.

        Used for reading JSON-RPC calls
        """
        return self.vault.w3

    @property
    def address(self) -> HexAddress:
        """The address of the vault contract."""
        return self.vault.address

    @property
    def comptroller_address(self) -> HexAddress:
        """The spender of investor deposits."""
        return self.comptroller.address

    async def fetch_raw_share_price(self) -> int:
        """Get the gross value of one share.

        - Denominated in the denomination token raw units

        - Does not account for any fees
        """
        return await self.comptroller.functions.calcGrossShareValue().call()

    async def fetch_share_price(self) -> Decimal:
        """Get the gross value of one share as a decimal."""
        return self.denomination_token.convert_to_decimals(await self.fetch_raw_share_price())

    async def fetch_raw_gross_asset_value(self) -> int:
        """Calculate the gross asset value (GAV) of the fund.

        Denominated in the denomination token raw units.
        """
        return await self.comptroller.functions.calcGav().call()

    async def fetch_gross_asset_value(self) -> Decimal:
        return self.denomination_token.convert_to_decimals(await self.fetch_raw_gross_asset_value())

    async def fetch_raw_share_balance(self, owner: HexAddress | str) -> int:
        return await self.vault.functions.balanceOf(Web3.to_checksum_address(owner)).call()

    async def fetch_share_balance(self, owner: HexAddress | str) -> Decimal:
        """How many shares an investor holds."""
        return convert_to_decimal_amount(await self.fetch_raw_share_balance(owner), SHARES_DECIMALS)

    def prepare_buy_shares(self, amount: Decimal, min_shares_quantity: Decimal) -> AsyncContractFunction:
        """Prepare ``ComptrollerLib.buyShares()``.

        :param amount:
            Denomination token amount to invest

        :param min_shares_quantity:
            Revert if fewer shares than this would be received
        """
        raw_amount = self.denomination_token.convert_to_raw(amount)
        raw_min_shares = convert_to_raw_amount(min_shares_quantity, SHARES_DECIMALS)
        assert raw_amount > 0, f"Cannot buy with zero amount: {amount}"
        return self.comptroller.functions.buyShares(raw_amount, raw_min_shares)

    def prepare_redeem_shares_in_kind(self, recipient: HexAddress | str, shares: Decimal) -> AsyncContractFunction:
        """Prepare ``ComptrollerLib.redeemSharesInKind()``.

        No assets are skipped or added, the recipient receives
        its pro rata share of every vault asset.
        """
        raw_shares = convert_to_raw_amount(shares, SHARES_DECIMALS)
        assert raw_shares > 0, f"Cannot redeem zero shares: {shares}"
        return self.comptroller.functions.redeemSharesInKind(Web3.to_checksum_address(recipient), raw_shares, [], [])

    @staticmethod
    async def fetch(web3: AsyncWeb3, vault_address: HexAddress | str) -> "Vault":
        """Fetch Enzyme vault and comptroller smart contract and the denomination token details.

        :param vault_address:
            The vault proxy address, as shown in the Enzyme app
        """
        vault_contract = get_deployed_contract(web3, "enzyme/VaultLib.json", vault_address)
        comptroller_address = await vault_contract.functions.getAccessor().call()
        comptroller_contract = get_deployed_contract(web3, "enzyme/ComptrollerLib.json", comptroller_address)
        denomination_asset = await comptroller_contract.functions.getDenominationAsset().call()
        denomination_token = await fetch_erc20_details(web3, denomination_asset)
        logger.info("Resolved vault %s, comptroller %s, denominated in %s", vault_contract.address, comptroller_address, denomination_token.symbol)
        return Vault(vault_contract, comptroller_contract, denomination_token)

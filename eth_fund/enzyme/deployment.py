"""Enzyme protocol deployment registry.

Resolve the Enzyme contracts, fee and policy modules and the supported
denomination assets of a network.

- Built-in address tables for Ethereum, Polygon and Arbitrum

- Fee and policy module addresses can be added or overridden from a JSON file,
  see :py:func:`load_deployment_overrides`

- The fund deployer is resolved on-chain from the comptroller library unless
  given explicitly

See `Enzyme contract addresses <https://docs.enzyme.finance/general-info/codebase/contracts>`__.

Example:

.. code-block:: python

    from eth_fund.enzyme.deployment import EnzymeDeployment, get_network_deployment

    contract_addresses = get_network_deployment("ethereum", overrides=load_deployment_overrides(path))
    deployment = await EnzymeDeployment.fetch_deployment(web3, contract_addresses)
    usdc = deployment.get_denomination_asset("USDC")
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from eth_typing import HexAddress
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.logs import DISCARD

from eth_fund.abi import get_deployed_contract
from eth_fund.errors import ConfigurationError, UnsupportedAssetError

logger = logging.getLogger(__name__)


#: Enzyme deployment details for Ethereum
#:
#: See https://docs.enzyme.finance/general-info/codebase/contracts/ethereum
#:
ETHEREUM_DEPLOYMENT = {
    "comptroller_lib": "0x03F7f3B8Da875881206655D8099B9DACf721f1EF",
    "fund_value_calculator": "0x490e64E0690b4aa481Fb02255aED3d052Bad7BF1",
    "denomination_assets": {
        "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6},
        "WETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "decimals": 18},
    },
}

#: Enzyme deployment details for Polygon
#:
#: See https://docs.enzyme.finance/developers/contracts/polygon
#:
POLYGON_DEPLOYMENT = {
    "comptroller_lib": "0xf5fc0e36c85552E44354132D188C33D9361eB441",
    "fund_value_calculator": "0xcdf038Dd3b66506d2e5378aee185b2f0084B7A33",
    "cumulative_slippage_tolerance_policy": "0x1332367C181F1157F751b160187DcAa219706bF2",
    "denomination_assets": {
        "USDC": {"address": "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", "decimals": 6},
        "WETH": {"address": "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", "decimals": 18},
        "WMATIC": {"address": "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", "decimals": 18},
    },
}

#: Enzyme deployment details for Arbitrum
#:
#: See https://docs.enzyme.finance/general-info/codebase/contracts/arbitrum
#:
ARBITRUM_DEPLOYMENT = {
    "comptroller_lib": "0x3868c0fc34b6ece124c6ab122f6f29e978be6661",
    "fund_value_calculator": "0xea609eeb38d1ee8e8719597d47cc9276df9f8707",
    "cumulative_slippage_tolerance_policy": "0x487f6a8a93c2be5a296ead2c3fbc3fceed4ac599",
    "denomination_assets": {
        "USDC": {"address": "0xff970a61a04b1ca14834a43f5de4533ebddb5cc8", "decimals": 6},  # USDC (bridged)
        "USDT": {"address": "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9", "decimals": 6},
        "WETH": {"address": "0x82af49447d8a07e3bd95bd0d56f35241523fbab1", "decimals": 18},
    },
}

#: Network name -> built-in address table
NETWORK_DEPLOYMENTS = {
    "ethereum": ETHEREUM_DEPLOYMENT,
    "polygon": POLYGON_DEPLOYMENT,
    "arbitrum": ARBITRUM_DEPLOYMENT,
}

#: Registry keys that are not protocol module addresses
_NON_MODULE_KEYS = {"comptroller_lib", "fund_value_calculator", "fund_deployer", "denomination_assets"}


@dataclass(slots=True, frozen=True)
class DenominationAsset:
    """Supported denomination asset of a network."""

    #: Registry symbol, e.g. ``USDC``
    symbol: str

    #: ERC-20 address
    address: HexAddress

    #: ERC-20 decimals
    decimals: int

    def __post_init__(self):
        assert self.address.startswith("0x"), f"Bad asset address {self.address}"
        assert type(self.decimals) == int and self.decimals >= 0, f"Bad decimals {self.decimals}"


@dataclass(slots=True, frozen=True)
class NewFund:
    """Contracts created by a successful ``createNewFund()``."""

    comptroller_proxy: HexAddress
    vault_proxy: HexAddress


def load_deployment_overrides(path: Path | str) -> dict:
    """Read extra registry entries from a JSON file.

    The file has the same shape as :py:data:`ETHEREUM_DEPLOYMENT`, e.g.:

    .. code-block:: json

        {
            "management_fee": "0x...",
            "min_max_investment_policy": "0x...",
            "denomination_assets": {"DAI": {"address": "0x...", "decimals": 18}}
        }
    """
    path = Path(path)
    with open(path, "rt", encoding="utf-8") as f:
        data = json.load(f)
    assert isinstance(data, dict), f"{path}: expected a JSON object, got {type(data)}"
    return data


def get_network_deployment(network: str, overrides: dict | None = None) -> dict:
    """Get the address table of a network, with overrides merged in.

    :param network:
        ``ethereum``, ``polygon`` or ``arbitrum``

    :param overrides:
        Extra or replacement entries

    :raise UnsupportedAssetError:
        Unknown network
    """
    base = NETWORK_DEPLOYMENTS.get(network.lower())
    if base is None:
        raise UnsupportedAssetError(f"No Enzyme deployment known for network {network}")

    merged = dict(base)
    merged["denomination_assets"] = dict(base.get("denomination_assets", {}))

    if overrides:
        for key, value in overrides.items():
            if key == "denomination_assets":
                merged["denomination_assets"].update(value)
            else:
                merged[key] = value

    return merged


@dataclass(slots=True)
class EnzymeDeployment:
    """Enzyme protocol deployment description.

    - Describe on-chain Enzyme deployment

    - Act as the asset and module registry for the fund configuration

    - Prepare vault deployments
    """

    #: Web3 connection this deployment is tied to
    web3: AsyncWeb3

    #: FundDeployer.sol
    fund_deployer: AsyncContract

    #: Symbol -> denomination asset
    denomination_assets: Dict[str, DenominationAsset] = field(default_factory=dict)

    #: Registry key -> fee or policy module address
    modules: Dict[str, HexAddress] = field(default_factory=dict)

    def __repr__(self):
        return f"<Enzyme deployment, fund deployer is {self.fund_deployer.address}>"

    def get_denomination_asset(self, symbol: str) -> DenominationAsset:
        """Resolve a denomination asset by its symbol.

        :raise UnsupportedAssetError:
            The asset is not supported on this network
        """
        asset = self.denomination_assets.get((symbol or "").upper())
        if asset is None:
            supported = ", ".join(sorted(self.denomination_assets.keys()))
            raise UnsupportedAssetError(f"Unsupported denomination asset: {symbol}. Supported: {supported}")
        return asset

    def get_module_address(self, key: str) -> HexAddress:
        """Resolve a fee or policy module address.

        :param key:
            Registry key like ``management_fee``

        :raise ConfigurationError:
            The module address is not configured for this network
        """
        address = self.modules.get(key)
        if not address:
            raise ConfigurationError(f"Enzyme module {key} is not configured for this network")
        return address

    def prepare_create_new_fund(
        self,
        owner: HexAddress,
        fund_name: str,
        fund_symbol: str,
        denomination_asset: DenominationAsset,
        shares_action_time_lock: int,
        fee_manager_config_data: bytes,
        policy_manager_config_data: bytes,
    ):
        """Prepare ``FundDeployer.createNewFund()``.

        - See `FundDeployer.sol`.

        :return:
            Bound contract function the signer broadcasts
        """
        assert type(shares_action_time_lock) == int and shares_action_time_lock >= 0
        assert type(fee_manager_config_data) == bytes
        assert type(policy_manager_config_data) == bytes
        return self.fund_deployer.functions.createNewFund(
            owner,
            fund_name,
            fund_symbol,
            denomination_asset.address,
            shares_action_time_lock,
            fee_manager_config_data,
            policy_manager_config_data,
        )

    def parse_new_fund(self, receipt: dict) -> NewFund:
        """Get the created comptroller and vault from a ``createNewFund()`` receipt.

        :raise AssertionError:
            The receipt does not contain exactly one ``NewFundCreated`` event
        """
        events = list(self.fund_deployer.events.NewFundCreated().process_receipt(receipt, errors=DISCARD))
        assert len(events) == 1, f"Expected one NewFundCreated event, got {len(events)}"
        args = events[0]["args"]
        return NewFund(
            comptroller_proxy=args["comptrollerProxy"],
            vault_proxy=args["vaultProxy"],
        )

    @staticmethod
    def create_registry(web3: AsyncWeb3, fund_deployer: AsyncContract, contract_addresses: dict) -> "EnzymeDeployment":
        """Build the asset and module registry from an address table."""
        denomination_assets = {}
        for symbol, data in contract_addresses.get("denomination_assets", {}).items():
            denomination_assets[symbol.upper()] = DenominationAsset(
                symbol=symbol.upper(),
                address=Web3.to_checksum_address(data["address"]),
                decimals=int(data["decimals"]),
            )

        modules = {}
        for key, value in contract_addresses.items():
            if key in _NON_MODULE_KEYS or not value:
                continue
            modules[key] = Web3.to_checksum_address(value)

        return EnzymeDeployment(
            web3=web3,
            fund_deployer=fund_deployer,
            denomination_assets=denomination_assets,
            modules=modules,
        )

    @staticmethod
    async def fetch_deployment(
        web3: AsyncWeb3,
        contract_addresses: dict,
    ) -> "EnzymeDeployment":
        """Fetch enzyme deployment and some of its contract.

        Read existing Enzyme deployment from on-chain.

        :param contract_addresses:
            Dictionary of contract addresses required to resolve Enzyme deployment.
            See :py:func:`get_network_deployment`.

        :return:
            Enzyme deployment details
        """
        fund_deployer_address = contract_addresses.get("fund_deployer")
        if not fund_deployer_address:
            comptroller_lib = get_deployed_contract(web3, "enzyme/ComptrollerLib.json", contract_addresses["comptroller_lib"])
            fund_deployer_address = await comptroller_lib.functions.getFundDeployer().call()

        fund_deployer = get_deployed_contract(web3, "enzyme/FundDeployer.json", fund_deployer_address)
        logger.info("Resolved Enzyme fund deployer at %s", fund_deployer.address)
        return EnzymeDeployment.create_registry(web3, fund_deployer, contract_addresses)

"""Network registry of Enzyme contracts and denomination assets."""
import json

import pytest
from web3 import AsyncWeb3

from eth_fund.enzyme.deployment import (
    ETHEREUM_DEPLOYMENT,
    EnzymeDeployment,
    get_network_deployment,
    load_deployment_overrides,
)
from eth_fund.errors import ConfigurationError, UnsupportedAssetError
from tests.enzyme.fakes import FUND_DEPLOYER, MODULES, make_address


def test_builtin_ethereum_assets():
    contract_addresses = get_network_deployment("Ethereum")
    assert contract_addresses["comptroller_lib"] == ETHEREUM_DEPLOYMENT["comptroller_lib"]
    assert set(contract_addresses["denomination_assets"].keys()) == {"USDC", "WETH"}


def test_unknown_network():
    with pytest.raises(UnsupportedAssetError):
        get_network_deployment("dogechain")


def test_overrides_from_file(tmp_path):
    dai = make_address("da")
    path = tmp_path / "enzyme.json"
    path.write_text(json.dumps({"management_fee": MODULES["management_fee"], "denomination_assets": {"DAI": {"address": dai, "decimals": 18}}}))

    contract_addresses = get_network_deployment("ethereum", overrides=load_deployment_overrides(path))
    assert contract_addresses["management_fee"] == MODULES["management_fee"]
    assert set(contract_addresses["denomination_assets"].keys()) == {"USDC", "WETH", "DAI"}

    # Built-in table is not modified
    assert "management_fee" not in ETHEREUM_DEPLOYMENT
    assert "DAI" not in ETHEREUM_DEPLOYMENT["denomination_assets"]


def test_registry_lookups(deployment: EnzymeDeployment):
    usdc = deployment.get_denomination_asset("usdc")
    assert usdc.symbol == "USDC"
    assert usdc.decimals == 6

    with pytest.raises(UnsupportedAssetError):
        deployment.get_denomination_asset("DOGE")

    assert deployment.get_module_address("management_fee") == MODULES["management_fee"]
    with pytest.raises(ConfigurationError):
        deployment.get_module_address("no_such_policy")


@pytest.mark.asyncio
async def test_fetch_deployment_with_known_fund_deployer():
    """Fund deployer given explicitly is not resolved on-chain."""
    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider("http://localhost:8545"))
    contract_addresses = get_network_deployment("ethereum", overrides={"fund_deployer": FUND_DEPLOYER, **MODULES})
    deployment = await EnzymeDeployment.fetch_deployment(web3, contract_addresses)

    assert deployment.fund_deployer.address == FUND_DEPLOYER
    assert deployment.get_module_address("min_max_investment_policy") == MODULES["min_max_investment_policy"]
    assert "fund_deployer" not in deployment.modules
    assert "comptroller_lib" not in deployment.modules
    assert deployment.get_denomination_asset("WETH").decimals == 18

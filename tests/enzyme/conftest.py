"""Fixtures for the fund flow tests.

See :py:mod:`tests.enzyme.fakes` for the in-memory chain.
"""

import pytest

from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.deployment import EnzymeDeployment
from eth_fund.enzyme.vault import Vault
from eth_fund.token import TokenDetails
from tests.enzyme.fakes import FUND_DEPLOYER, INVESTOR, MODULES, USDC, WETH, FakeChain, FakeClock, FakeContract, FakeSigner


@pytest.fixture()
def chain() -> FakeChain:
    chain = FakeChain()
    chain.usdc_balances[INVESTOR] = 10_000 * 10**6
    return chain


@pytest.fixture()
def vault(chain: FakeChain) -> Vault:
    usdc = TokenDetails(chain.usdc, name="USD Coin", symbol="USDC", decimals=6)
    return Vault(chain.vault, chain.comptroller, usdc)


@pytest.fixture()
def reader(vault: Vault) -> ChainStateReader:
    return ChainStateReader(vault, clock=FakeClock())


@pytest.fixture()
def signer(chain: FakeChain) -> FakeSigner:
    return FakeSigner(chain)


@pytest.fixture()
def deployment() -> EnzymeDeployment:
    contract_addresses = {
        "denomination_assets": {
            "USDC": {"address": USDC, "decimals": 6},
            "WETH": {"address": WETH, "decimals": 18},
        },
        **MODULES,
    }
    fund_deployer = FakeContract(FUND_DEPLOYER)
    return EnzymeDeployment.create_registry(None, fund_deployer, contract_addresses)

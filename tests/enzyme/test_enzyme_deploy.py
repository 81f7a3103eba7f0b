"""Deploy an Enzyme vault with createNewFund().

Uses the in-memory chain, see :py:mod:`tests.enzyme.fakes`.
"""
import asyncio

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from eth_fund.abi import get_abi_by_filename
from eth_fund.enzyme.configuration import FundConfigurationDraft
from eth_fund.enzyme.deployment import EnzymeDeployment
from eth_fund.enzyme.fee import FeeKind
from eth_fund.enzyme.lifecycle import LifecycleOrchestrator, LifecycleState
from eth_fund.errors import ActionInFlightError, ConfigurationError, UnsupportedAssetError, WalletNotConnectedError, WalletRejectedError
from tests.enzyme.fakes import FUND_DEPLOYER, FUND_MANAGER, MODULES, USDC, FakeChain, FakeSigner, make_address, wait_until


@pytest.fixture()
def draft() -> FundConfigurationDraft:
    draft = FundConfigurationDraft(name="Degen Fund", symbol="DGN", denomination_asset="USDC")
    draft.enable_fee(FeeKind.management, 2)
    return draft


@pytest.fixture()
def manager(chain: FakeChain) -> FakeSigner:
    return FakeSigner(chain, address=FUND_MANAGER)


@pytest.mark.asyncio
async def test_create_fund(deployment: EnzymeDeployment, draft: FundConfigurationDraft, manager: FakeSigner):
    """createNewFund() is broadcast with the encoded configuration and no shares time lock."""
    orchestrator = LifecycleOrchestrator(deployment)
    handle = await orchestrator.create_fund(draft, manager)

    assert handle.action == "createNewFund"
    assert handle.sender == FUND_MANAGER
    assert not handle.is_confirmed()

    call = manager.calls[0]
    assert call.fn_name == "createNewFund"
    owner, name, symbol, denomination_asset, time_lock, fee_config, policy_config = call.args
    assert owner == FUND_MANAGER
    assert name == "Degen Fund"
    assert symbol == "DGN"
    assert denomination_asset == USDC
    assert time_lock == 0
    assert fee_config == encode(["address[]", "bytes[]"], [[MODULES["management_fee"]], [encode(["uint256", "address"], [2 * 10**16, "0x0000000000000000000000000000000000000000"])]])
    assert policy_config == b""

    assert orchestrator.transitions == [LifecycleState.idle, LifecycleState.encoding, LifecycleState.submitting, LifecycleState.broadcast]
    assert orchestrator.state == LifecycleState.broadcast

    # Draft is cleared after a successful submission
    assert draft.name == ""
    assert draft.fees == {}


@pytest.mark.asyncio
async def test_missing_name(deployment: EnzymeDeployment, draft: FundConfigurationDraft, manager: FakeSigner):
    draft.name = "  "
    orchestrator = LifecycleOrchestrator(deployment)
    with pytest.raises(ConfigurationError):
        await orchestrator.create_fund(draft, manager)

    assert orchestrator.transitions == [LifecycleState.idle, LifecycleState.failed]
    assert manager.calls == []
    assert draft.symbol == "DGN"


@pytest.mark.asyncio
async def test_no_wallet(deployment: EnzymeDeployment, draft: FundConfigurationDraft):
    orchestrator = LifecycleOrchestrator(deployment)
    with pytest.raises(WalletNotConnectedError):
        await orchestrator.create_fund(draft, None)
    assert orchestrator.state == LifecycleState.failed


@pytest.mark.asyncio
async def test_unsupported_asset(deployment: EnzymeDeployment, draft: FundConfigurationDraft, manager: FakeSigner):
    draft.denomination_asset = "DOGE"
    orchestrator = LifecycleOrchestrator(deployment)
    with pytest.raises(UnsupportedAssetError):
        await orchestrator.create_fund(draft, manager)
    assert orchestrator.transitions == [LifecycleState.idle, LifecycleState.encoding, LifecycleState.failed]


@pytest.mark.asyncio
async def test_rejected_then_retried(deployment: EnzymeDeployment, draft: FundConfigurationDraft, manager: FakeSigner):
    """No automatic retry, the next attempt starts from idle."""
    orchestrator = LifecycleOrchestrator(deployment)
    manager.reject = True
    with pytest.raises(WalletRejectedError):
        await orchestrator.create_fund(draft, manager)
    assert orchestrator.state == LifecycleState.failed
    assert isinstance(orchestrator.last_error, WalletRejectedError)
    assert len(manager.calls) == 1

    await orchestrator.create_fund(draft, manager)
    assert orchestrator.transitions[0] == LifecycleState.idle
    assert orchestrator.state == LifecycleState.broadcast
    assert orchestrator.last_error is None
    assert len(manager.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_create_rejected(deployment: EnzymeDeployment, draft: FundConfigurationDraft, manager: FakeSigner):
    orchestrator = LifecycleOrchestrator(deployment)
    manager.gate = asyncio.Event()
    first = asyncio.create_task(orchestrator.create_fund(draft, manager))
    await wait_until(lambda: orchestrator.state == LifecycleState.submitting)

    with pytest.raises(ActionInFlightError):
        await orchestrator.create_fund(draft, manager)

    manager.gate.set()
    await first
    assert len(manager.calls) == 1


@pytest.mark.asyncio
async def test_fetch_new_fund(draft: FundConfigurationDraft, manager: FakeSigner, chain: FakeChain):
    """Read the created vault from NewFundCreated event."""
    web3 = Web3(Web3.HTTPProvider("http://localhost:8545"))
    fund_deployer = web3.eth.contract(address=FUND_DEPLOYER, abi=get_abi_by_filename("enzyme/FundDeployer.json"))
    contract_addresses = {"denomination_assets": {"USDC": {"address": USDC, "decimals": 6}}, **MODULES}
    deployment = EnzymeDeployment.create_registry(None, fund_deployer, contract_addresses)

    new_vault = make_address("71")
    new_comptroller = make_address("72")
    chain.receipt_logs = [
        {
            "address": FUND_DEPLOYER,
            "topics": [
                HexBytes(Web3.keccak(text="NewFundCreated(address,address,address)")),
                HexBytes(encode(["address"], [FUND_MANAGER])),
            ],
            "data": HexBytes(encode(["address", "address"], [new_vault, new_comptroller])),
            "logIndex": 0,
            "transactionIndex": 0,
            "transactionHash": HexBytes(b"\x01" * 32),
            "blockHash": HexBytes(b"\x02" * 32),
            "blockNumber": 3,
        }
    ]

    orchestrator = LifecycleOrchestrator(deployment)
    handle = await orchestrator.create_fund(draft, manager)
    new_fund = await orchestrator.fetch_new_fund(handle)
    assert new_fund.vault_proxy == new_vault
    assert new_fund.comptroller_proxy == new_comptroller
    assert handle.is_confirmed()

"""Approve-then-deposit flow against the in-memory chain."""
import asyncio
from decimal import Decimal

import pytest
from web3.exceptions import Web3RPCError

from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.flow import FlowState
from eth_fund.enzyme.subscription import SubscriptionFlow, SubscriptionIntent
from eth_fund.enzyme.vault import Vault
from eth_fund.errors import (
    ActionInFlightError,
    ChainExecutionError,
    InsufficientAllowanceError,
    InvalidAmountError,
    NetworkReadError,
    WalletNotConnectedError,
    WalletRejectedError,
)
from tests.enzyme.fakes import COMPTROLLER, INVESTOR, USDC, FakeChain, FakeSigner, wait_until


@pytest.fixture()
def flow(vault: Vault, signer: FakeSigner, reader: ChainStateReader) -> SubscriptionFlow:
    return SubscriptionFlow(vault, signer, reader)


@pytest.mark.asyncio
async def test_approve_then_deposit(flow: SubscriptionFlow, reader: ChainStateReader, signer: FakeSigner, chain: FakeChain):
    """Approve the exact amount, then buy shares with slippage protected minimum."""
    await reader.set_inputs(owner=INVESTOR, amount=Decimal(500))
    assert reader.latest_snapshot.nav_per_share == 1
    assert flow.max_amount() == 10_000

    assert flow.can_approve("500")
    assert not flow.can_deposit("500")

    await flow.approve("500")
    approve = signer.calls[0]
    assert approve.fn_name == "approve"
    assert approve.args == (COMPTROLLER, 500 * 10**6)
    assert reader.latest_allowance.amount == 500 * 10**6
    assert not flow.can_approve("500")
    assert flow.can_deposit("500")

    handle = await flow.deposit("500")
    buy = signer.calls[1]
    assert buy.fn_name == "buyShares"
    # 500 - 1% entrance fee = 495 shares, less 0.5% slippage tolerance
    assert buy.args == (500 * 10**6, 492_525 * 10**15)
    assert flow.last_intent == SubscriptionIntent(amount=Decimal(500), denomination_asset=USDC, min_shares_out=Decimal("492.525"))
    assert handle.is_confirmed()
    assert handle.action == "buyShares"

    assert flow.state == FlowState.idle
    assert flow.last_error is None
    assert reader.latest_account.share_balance == 500
    assert reader.latest_account.denomination_balance == 9_500


@pytest.mark.asyncio
async def test_min_shares_follow_share_price(flow: SubscriptionFlow, reader: ChainStateReader, signer: FakeSigner, chain: FakeChain):
    chain.raw_nav_per_share = 1_250_000
    chain.allowances[(INVESTOR, COMPTROLLER)] = 1000 * 10**6
    await reader.set_inputs(owner=INVESTOR)

    quote = flow.quote("1000", reader.latest_snapshot)
    assert quote.estimated_shares == 792

    await flow.deposit("1000")
    # 792 shares less 0.5%
    assert signer.calls[0].args == (1000 * 10**6, 78_804 * 10**16)


@pytest.mark.asyncio
async def test_deposit_without_allowance(flow: SubscriptionFlow, signer: FakeSigner):
    with pytest.raises(InsufficientAllowanceError) as exc_info:
        await flow.deposit("100")

    assert exc_info.value.allowance == 0
    assert exc_info.value.required == 100 * 10**6
    assert signer.calls == []
    assert flow.state == FlowState.idle
    assert isinstance(flow.last_error, InsufficientAllowanceError)
    assert flow.last_message.startswith("Approve the deposit amount first")


@pytest.mark.asyncio
async def test_deposit_before_approval_confirms(vault: Vault, reader: ChainStateReader, signer: FakeSigner, chain: FakeChain):
    """An approval that has been broadcast, but not mined, does not allow deposit."""
    chain.mining = False
    approving_flow = SubscriptionFlow(vault, signer, reader)
    approve_task = asyncio.create_task(approving_flow.approve("100"))
    await wait_until(lambda: approving_flow.state == FlowState.confirming)

    depositing_flow = SubscriptionFlow(vault, signer, reader)
    with pytest.raises(InsufficientAllowanceError):
        await depositing_flow.deposit("100")

    # The first flow cannot deposit either while it waits
    with pytest.raises(ActionInFlightError):
        await approving_flow.deposit("100")

    approve_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await approve_task
    assert approving_flow.state == FlowState.idle
    assert [c.fn_name for c in signer.calls] == ["approve"]


@pytest.mark.asyncio
async def test_concurrent_deposit_rejected(flow: SubscriptionFlow, signer: FakeSigner, chain: FakeChain):
    """Second deposit is rejected right away, not queued."""
    chain.allowances[(INVESTOR, COMPTROLLER)] = 1000 * 10**6
    signer.gate = asyncio.Event()

    first = asyncio.create_task(flow.deposit("500"))
    await wait_until(lambda: len(signer.calls) == 1)
    assert flow.state == FlowState.submitting
    assert not flow.can_deposit("500")

    with pytest.raises(ActionInFlightError):
        await flow.deposit("500")

    signer.gate.set()
    await first
    assert [c.fn_name for c in signer.calls] == ["buyShares"]
    assert flow.state == FlowState.idle


@pytest.mark.asyncio
async def test_wallet_rejection(flow: SubscriptionFlow, reader: ChainStateReader, signer: FakeSigner):
    signer.reject = True
    with pytest.raises(WalletRejectedError):
        await flow.approve("100")

    assert flow.state == FlowState.idle
    assert flow.last_message == "You rejected the transaction in your wallet."
    assert reader.latest_allowance is None

    # Can retry
    await flow.approve("100")
    assert flow.last_error is None
    assert reader.latest_allowance.amount == 100 * 10**6


@pytest.mark.asyncio
async def test_deposit_reverts(flow: SubscriptionFlow, chain: FakeChain):
    chain.allowances[(INVESTOR, COMPTROLLER)] = 1000 * 10**6
    chain.reverting = True

    with pytest.raises(ChainExecutionError) as exc_info:
        await flow.deposit("500")

    e = exc_info.value
    assert e.is_reverted()
    assert "_minSharesQuantity" in e.reason
    assert e.tx_hash is not None
    assert "reverted on-chain" in flow.last_message
    assert flow.state == FlowState.idle


@pytest.mark.asyncio
async def test_invalid_amount(flow: SubscriptionFlow, signer: FakeSigner):
    with pytest.raises(InvalidAmountError):
        await flow.deposit("1.0000001")
    with pytest.raises(InvalidAmountError):
        await flow.approve("-5")
    assert signer.calls == []


@pytest.mark.parametrize("amount", [None, "", "0", "-1", "abc", "1.0000001"])
def test_cannot_act_on_bad_amount(flow: SubscriptionFlow, amount):
    assert not flow.can_approve(amount)
    assert not flow.can_deposit(amount)


@pytest.mark.asyncio
async def test_no_wallet(vault: Vault, reader: ChainStateReader):
    flow = SubscriptionFlow(vault, None, reader)
    assert not flow.can_approve("10")
    with pytest.raises(WalletNotConnectedError):
        await flow.approve("10")
    assert flow.last_message == "Connect your wallet first."


@pytest.mark.asyncio
async def test_deposit_reverts_without_replay_state(flow: SubscriptionFlow, chain: FakeChain):
    """A revert is reported as such even if the node cannot tell the reason."""
    chain.allowances[(INVESTOR, COMPTROLLER)] = 1000 * 10**6
    chain.reverting = True
    chain.replay_error = Web3RPCError("missing trie node 1c2b3a (path ) state is not available")

    with pytest.raises(ChainExecutionError) as exc_info:
        await flow.deposit("500")

    e = exc_info.value
    assert e.is_reverted()
    assert e.reason == "<could not extract the revert reason>"
    assert "reverted on-chain" in flow.last_message
    assert flow.state == FlowState.idle


@pytest.mark.asyncio
async def test_quote_zero_share_price(flow: SubscriptionFlow, reader: ChainStateReader, chain: FakeChain):
    chain.raw_nav_per_share = 0
    await reader.poll()

    with pytest.raises(NetworkReadError) as exc_info:
        flow.quote("100", reader.latest_snapshot)
    assert "share price" in str(exc_info.value)

    chain.allowances[(INVESTOR, COMPTROLLER)] = 100 * 10**6
    with pytest.raises(NetworkReadError):
        await flow.deposit("100")
    assert flow.state == FlowState.idle

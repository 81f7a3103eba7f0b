"""In-kind redemption flow against the in-memory chain."""
import asyncio
from decimal import Decimal

import pytest

from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.flow import FlowState
from eth_fund.enzyme.redemption import RedemptionFlow, RedemptionIntent
from eth_fund.enzyme.vault import Vault
from eth_fund.errors import ActionInFlightError, InvalidAmountError, WalletRejectedError
from tests.enzyme.fakes import INVESTOR, FakeChain, FakeSigner, wait_until


@pytest.fixture()
def flow(vault: Vault, signer: FakeSigner, reader: ChainStateReader, chain: FakeChain) -> RedemptionFlow:
    chain.share_balances[INVESTOR] = 100 * 10**18
    chain.raw_nav_per_share = 1_050_000
    return RedemptionFlow(vault, signer, reader)


@pytest.mark.asyncio
async def test_redemption_quote(flow: RedemptionFlow, reader: ChainStateReader):
    await reader.set_inputs(owner=INVESTOR)
    quote = flow.quote("100", reader.latest_snapshot)
    assert quote.gross_value == Decimal("105")
    assert quote.fee == Decimal("0.525")
    assert quote.net_value == Decimal("104.475")
    assert flow.max_amount() == 100


@pytest.mark.asyncio
async def test_redeem(flow: RedemptionFlow, reader: ChainStateReader, signer: FakeSigner, chain: FakeChain):
    """Redeem in kind to own address, no approval needed."""
    handle = await flow.redeem("40")

    assert len(signer.calls) == 1
    call = signer.calls[0]
    assert call.fn_name == "redeemSharesInKind"
    assert call.args == (INVESTOR, 40 * 10**18, [], [])
    assert flow.last_intent == RedemptionIntent(shares_amount=Decimal(40), recipient=INVESTOR)
    assert handle.is_confirmed()

    assert flow.state == FlowState.idle
    assert reader.latest_account.share_balance == 60
    assert chain.usdc_balances[INVESTOR] == 10_000 * 10**6 + 42 * 10**6


@pytest.mark.asyncio
async def test_redeem_more_than_balance(flow: RedemptionFlow, signer: FakeSigner):
    with pytest.raises(InvalidAmountError):
        await flow.redeem("100.000000000000000001")
    assert signer.calls == []
    assert flow.last_intent is None
    assert flow.last_message.startswith("Invalid input")


@pytest.mark.asyncio
async def test_cannot_redeem_more_than_balance(flow: RedemptionFlow, reader: ChainStateReader):
    await reader.set_inputs(owner=INVESTOR)
    assert flow.can_redeem("100")
    assert not flow.can_redeem("101")
    assert not flow.can_redeem("0")
    assert not flow.can_redeem("")


@pytest.mark.asyncio
async def test_concurrent_redeem_rejected(flow: RedemptionFlow, signer: FakeSigner):
    signer.gate = asyncio.Event()
    first = asyncio.create_task(flow.redeem("10"))
    await wait_until(lambda: len(signer.calls) == 1)

    with pytest.raises(ActionInFlightError):
        await flow.redeem("10")

    signer.gate.set()
    await first
    assert len(signer.calls) == 1


@pytest.mark.asyncio
async def test_redeem_rejected_in_wallet(flow: RedemptionFlow, signer: FakeSigner, chain: FakeChain):
    signer.reject = True
    with pytest.raises(WalletRejectedError):
        await flow.redeem("10")
    assert flow.state == FlowState.idle
    assert chain.share_balances[INVESTOR] == 100 * 10**18

"""In-memory chain for the fund flow tests.

The fakes mimic the web3.py contract interface the flows use:
``contract.functions.fn(*args).call()`` and a signer ``transact(bound_call)``.
Transactions are "mined" when their receipt is first asked.
"""

import asyncio
import datetime
from collections import defaultdict
from typing import Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from eth_fund.basewallet import BaseWallet
from eth_fund.errors import WalletRejectedError


def make_address(byte: str) -> str:
    return Web3.to_checksum_address("0x" + byte * 20)


INVESTOR = make_address("a1")
FUND_MANAGER = make_address("a2")
VAULT = make_address("b1")
COMPTROLLER = make_address("b2")
USDC = make_address("c1")
WETH = make_address("c2")
FUND_DEPLOYER = make_address("d0")

MODULES = {
    "management_fee": make_address("e1"),
    "performance_fee": make_address("e2"),
    "entrance_rate_burn_fee": make_address("e3"),
    "exit_rate_burn_fee": make_address("e4"),
    "allowed_deposit_recipients_policy": make_address("f1"),
    "allowed_shares_transfer_recipients_policy": make_address("f2"),
    "min_max_investment_policy": make_address("f3"),
    "cumulative_slippage_tolerance_policy": make_address("f4"),
}


class FakeBoundCall:
    """Bound contract function, like ``AsyncContractFunction``."""

    def __init__(self, contract: "FakeContract", fn_name: str, args: tuple):
        self.contract = contract
        self.fn_name = fn_name
        self.args = args

    def __repr__(self):
        return f"<{self.fn_name}{self.args}>"

    async def call(self):
        handler = self.contract.handlers[self.fn_name]
        result = handler(*self.args)
        if asyncio.iscoroutine(result):
            result = await result
        return result


class FakeFunctions:
    def __init__(self, contract: "FakeContract"):
        self._contract = contract

    def __getattr__(self, fn_name: str):
        return lambda *args: FakeBoundCall(self._contract, fn_name, args)


class FakeContract:
    """Contract whose view functions are answered by Python callables."""

    def __init__(self, address: str, w3=None, handlers: Optional[dict] = None):
        self.address = address
        self.w3 = w3
        self.handlers = handlers or {}
        self.functions = FakeFunctions(self)


class FakeEth:
    def __init__(self, chain: "FakeChain"):
        self.chain = chain

    async def get_transaction_receipt(self, tx_hash: HexBytes) -> dict:
        return self.chain.mine(HexBytes(tx_hash))

    async def get_transaction(self, tx_hash: HexBytes) -> dict:
        tx = self.chain.transactions[HexBytes(tx_hash)]
        return {"to": COMPTROLLER, "from": tx["sender"], "value": 0, "input": "0x", "gas": 500_000, "blockNumber": 2}

    async def call(self, tx: dict, block_identifier=None):
        raise self.chain.replay_error


class FakeWeb3:
    def __init__(self, chain: "FakeChain"):
        self.eth = FakeEth(chain)


class FakeChain:
    """Vault, comptroller and USDC state of one investor."""

    def __init__(self):
        self.web3 = FakeWeb3(self)
        self.raw_nav_per_share = 1 * 10**6
        self.raw_gav = 1_000_000 * 10**6
        self.usdc_balances = defaultdict(int)
        self.share_balances = defaultdict(int)
        self.allowances = defaultdict(int)

        #: Transactions we have broadcast, tx hash -> details
        self.transactions = {}

        #: When false, broadcast transactions stay pending
        self.mining = True

        #: When true, transactions revert when mined
        self.reverting = False

        #: Logs included in every receipt
        self.receipt_logs = []

        #: Fail all reads with this exception
        self.read_error: Optional[Exception] = None

        #: What replaying a reverted transaction raises
        self.replay_error: Exception = ContractLogicError("execution reverted: __buyShares: Shares received < _minSharesQuantity")

        self.usdc = FakeContract(
            USDC,
            w3=self.web3,
            handlers={
                "balanceOf": lambda owner: self.read(self.usdc_balances[owner]),
                "allowance": lambda owner, spender: self.read(self.allowances[(owner, spender)]),
            },
        )
        self.vault = FakeContract(
            VAULT,
            w3=self.web3,
            handlers={
                "balanceOf": lambda owner: self.read(self.share_balances[owner]),
                "getAccessor": lambda: COMPTROLLER,
            },
        )
        self.comptroller = FakeContract(
            COMPTROLLER,
            w3=self.web3,
            handlers={
                "calcGrossShareValue": lambda: self.read(self.raw_nav_per_share),
                "calcGav": lambda: self.read(self.raw_gav),
            },
        )

    def read(self, value):
        if self.read_error is not None:
            raise self.read_error
        return value

    def broadcast(self, sender: str, func: FakeBoundCall) -> HexBytes:
        tx_hash = HexBytes(Web3.keccak(text=f"{len(self.transactions)}"))
        self.transactions[tx_hash] = {"sender": sender, "func": func, "mined": False}
        return tx_hash

    def mine(self, tx_hash: HexBytes) -> dict:
        if not self.mining or tx_hash not in self.transactions:
            raise TransactionNotFound(f"Transaction {tx_hash.hex()} not found")

        tx = self.transactions[tx_hash]
        status = 0 if self.reverting else 1
        if not tx["mined"]:
            tx["mined"] = True
            if status == 1:
                self.apply(tx["sender"], tx["func"])
        return {"status": status, "blockNumber": 3, "transactionHash": tx_hash, "logs": self.receipt_logs}

    def apply(self, sender: str, func: FakeBoundCall):
        match func.fn_name:
            case "approve":
                spender, amount = func.args
                self.allowances[(sender, spender)] = amount
            case "buyShares":
                amount, min_shares = func.args
                self.allowances[(sender, COMPTROLLER)] -= amount
                self.usdc_balances[sender] -= amount
                self.share_balances[sender] += amount * 10**18 // self.raw_nav_per_share
            case "redeemSharesInKind":
                recipient, shares, _, _ = func.args
                self.share_balances[sender] -= shares
                self.usdc_balances[recipient] += shares * self.raw_nav_per_share // 10**18


class FakeSigner(BaseWallet):
    """Signer that broadcasts to :py:class:`FakeChain`."""

    def __init__(self, chain: FakeChain, address: str = INVESTOR):
        self.chain = chain
        self._address = address
        self.calls = []

        #: Wait this event before broadcasting
        self.gate: Optional[asyncio.Event] = None

        #: User declines the next signature
        self.reject = False

    @property
    def address(self) -> str:
        return self._address

    @property
    def web3(self):
        return self.chain.web3

    async def transact(self, func, tx_params=None) -> HexBytes:
        self.calls.append(func)
        if self.gate is not None:
            await self.gate.wait()
        if self.reject:
            self.reject = False
            raise WalletRejectedError(f"{func.fn_name}: User rejected the request.")
        return self.chain.broadcast(self._address, func)


class FakeClock:
    """Deterministic ``as_of`` timestamps, one second apart."""

    def __init__(self):
        self.now = datetime.datetime(2024, 1, 1)

    def __call__(self) -> datetime.datetime:
        self.now += datetime.timedelta(seconds=1)
        return self.now


async def wait_until(predicate, rounds=100):
    """Let other tasks run until the predicate holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError(f"Condition never met: {predicate}")

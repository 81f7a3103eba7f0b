"""Vault and investor state polling.

:py:class:`ChainStateReader` keeps the latest share price, investor balances
and denomination token allowance of one vault in memory.

- Polls periodically in a background :py:class:`asyncio.Task`

- Polls immediately when the inputs change

- A poll trigger while another poll is running is dropped, not queued

- Two polls never run at the same time

- A result older than the stored one is discarded

Example:

.. code-block:: python

    reader = ChainStateReader(vault)
    await reader.set_inputs(owner=wallet.address)
    reader.start()
    ...
    print(reader.latest_snapshot.nav_per_share)
    await reader.stop()
"""

import asyncio
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

import aiohttp
from eth_typing import HexAddress
from web3 import Web3
from web3.exceptions import Web3Exception

from eth_fund.enzyme.vault import Vault
from eth_fund.errors import NetworkReadError
from eth_fund.utils import native_datetime_utc_now

logger = logging.getLogger(__name__)


#: How often we poll, seconds
DEFAULT_POLL_INTERVAL = 30

#: Errors we may get from JSON-RPC reads.
#: ``AsyncHTTPProvider`` raises :py:class:`aiohttp.ClientResponseError` on HTTP 429 and 5xx.
READ_EXCEPTIONS = (ValueError, Web3Exception, OSError, asyncio.TimeoutError, aiohttp.ClientError)

#: Marks an argument that was not given
_UNCHANGED = object()


@dataclass(slots=True, frozen=True)
class VaultSnapshot:
    """Vault valuation at a point of time."""

    #: Gross share value in denomination token
    nav_per_share: Decimal

    #: Gross asset value in denomination token
    gross_asset_value: Decimal

    raw_nav_per_share: int
    raw_gross_asset_value: int

    #: When the read was started, naive UTC
    as_of: datetime.datetime


@dataclass(slots=True, frozen=True)
class AccountSnapshot:
    """Investor balances at a point of time."""

    owner: HexAddress
    denomination_balance: Decimal
    share_balance: Decimal
    as_of: datetime.datetime


@dataclass(slots=True, frozen=True)
class AllowanceRecord:
    """How much denomination token the comptroller may pull from the investor."""

    owner: HexAddress
    spender: HexAddress

    #: Raw token units
    amount: int

    as_of: datetime.datetime

    def covers(self, raw_amount: int) -> bool:
        return self.amount >= raw_amount


class ChainStateReader:
    """Poll vault state for the subscription and redemption flows.

    Only this class writes snapshots. Flows read them through
    :py:attr:`latest_snapshot`, :py:attr:`latest_account` and :py:attr:`latest_allowance`.
    """

    def __init__(
        self,
        vault: Vault,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], datetime.datetime] = native_datetime_utc_now,
    ):
        self.vault = vault
        self.poll_interval = poll_interval
        self.clock = clock

        #: Investor whose balances and allowance we follow
        self.owner: Optional[HexAddress] = None

        #: What the investor is about to deposit or redeem
        self.amount: Optional[Decimal] = None

        #: The exception of the latest failed read, cleared on success
        self.last_error: Optional[NetworkReadError] = None

        self._snapshot: Optional[VaultSnapshot] = None
        self._account: Optional[AccountSnapshot] = None
        self._allowance: Optional[AllowanceRecord] = None
        self._poll_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"<ChainStateReader vault={self.vault.address} owner={self.owner}>"

    @property
    def latest_snapshot(self) -> Optional[VaultSnapshot]:
        return self._snapshot

    @property
    def latest_account(self) -> Optional[AccountSnapshot]:
        return self._account

    @property
    def latest_allowance(self) -> Optional[AllowanceRecord]:
        return self._allowance

    def is_polling(self) -> bool:
        return self._poll_lock.locked()

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the periodic poll task.

        Must be called within a running event loop.
        """
        assert not self.is_running(), f"Already running: {self}"
        self._task = asyncio.create_task(self._run(), name=f"poll-{self.vault.address}")
        return self._task

    async def stop(self):
        """Cancel the periodic poll task and wait it to exit."""
        if self._task is None:
            return
        task = self._task
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        while True:
            try:
                await self.poll()
            except Exception as e:
                # Keep polling, the next round may succeed
                logger.exception("Unexpected poll failure for %s: %s", self.vault.address, e)
            await asyncio.sleep(self.poll_interval)

    async def set_inputs(self, owner: HexAddress | str = _UNCHANGED, amount: Optional[Decimal] = _UNCHANGED) -> Optional[VaultSnapshot]:
        """Update the investor and the amount being edited.

        Arguments not given keep their current value.
        Poll immediately if either changed.

        :return:
            New snapshot, or ``None`` if nothing changed or the poll was dropped
        """
        if owner is _UNCHANGED:
            owner = self.owner
        else:
            assert owner is not None, "Use clear_inputs() to stop following the investor"
            owner = Web3.to_checksum_address(owner)

        if amount is _UNCHANGED:
            amount = self.amount

        if owner == self.owner and amount == self.amount:
            return None

        if owner != self.owner:
            # Balances of the previous investor are no longer relevant
            self._account = None
            self._allowance = None

        self.owner = owner
        self.amount = amount
        return await self.poll()

    def clear_inputs(self):
        """Stop following the investor, e.g. when the wallet disconnects."""
        self.owner = None
        self.amount = None
        self._account = None
        self._allowance = None

    async def poll(self) -> Optional[VaultSnapshot]:
        """Read the vault, and the investor state if we have an investor.

        A failed read is logged and stored in :py:attr:`last_error`.

        :return:
            The new snapshot, or ``None`` if the poll was dropped or failed
        """
        if self._poll_lock.locked():
            logger.warning("Poll already in progress for %s, dropping the trigger", self.vault.address)
            return None

        async with self._poll_lock:
            return await self._poll()

    async def refresh(self) -> Optional[VaultSnapshot]:
        """Poll once the poll in progress, if any, has completed.

        Used after our own transactions have been confirmed,
        so that the result reflects them.

        :return:
            The new snapshot, or ``None`` if the poll failed
        """
        async with self._poll_lock:
            return await self._poll()

    async def _poll(self) -> Optional[VaultSnapshot]:
        as_of = self.clock()
        try:
            snapshot = await self._read_snapshot(as_of)
            if self.owner is not None:
                await self._read_account(self.owner, as_of)
                await self._read_allowance(self.owner, as_of)
        except NetworkReadError as e:
            logger.warning("Poll failed for %s: %s", self.vault.address, e)
            self.last_error = e
            return None

        self.last_error = None
        return snapshot

    async def read_allowance(self, owner: HexAddress | str) -> AllowanceRecord:
        """Read the allowance right now.

        :return:
            The fresh record, even if a newer one was stored meanwhile

        :raise NetworkReadError:
            The read failed
        """
        owner = self._adopt_owner(owner)
        try:
            return await self._read_allowance(owner, self.clock())
        except NetworkReadError as e:
            self.last_error = e
            raise

    async def read_account(self, owner: HexAddress | str) -> AccountSnapshot:
        """Read the investor balances right now.

        :raise NetworkReadError:
            The read failed
        """
        owner = self._adopt_owner(owner)
        try:
            return await self._read_account(owner, self.clock())
        except NetworkReadError as e:
            self.last_error = e
            raise

    async def _read_snapshot(self, as_of: datetime.datetime) -> VaultSnapshot:
        try:
            raw_nav_per_share = await self.vault.fetch_raw_share_price()
            raw_gross_asset_value = await self.vault.fetch_raw_gross_asset_value()
        except READ_EXCEPTIONS as e:
            raise NetworkReadError(f"Could not read vault {self.vault.address} valuation: {e}") from e

        token = self.vault.denomination_token
        snapshot = VaultSnapshot(
            nav_per_share=token.convert_to_decimals(raw_nav_per_share),
            gross_asset_value=token.convert_to_decimals(raw_gross_asset_value),
            raw_nav_per_share=raw_nav_per_share,
            raw_gross_asset_value=raw_gross_asset_value,
            as_of=as_of,
        )

        if self._snapshot is not None and snapshot.as_of < self._snapshot.as_of:
            logger.info("Discarding stale vault snapshot from %s, we have %s", snapshot.as_of, self._snapshot.as_of)
        else:
            self._snapshot = snapshot
        return snapshot

    async def _read_account(self, owner: HexAddress, as_of: datetime.datetime) -> AccountSnapshot:
        try:
            denomination_balance = await self.vault.denomination_token.fetch_balance_of(owner)
            share_balance = await self.vault.fetch_share_balance(owner)
        except READ_EXCEPTIONS as e:
            raise NetworkReadError(f"Could not read balances of {owner}: {e}") from e

        account = AccountSnapshot(
            owner=owner,
            denomination_balance=denomination_balance,
            share_balance=share_balance,
            as_of=as_of,
        )

        if self._is_newer(self._account, account, owner):
            self._account = account
        return account

    async def _read_allowance(self, owner: HexAddress, as_of: datetime.datetime) -> AllowanceRecord:
        spender = self.vault.comptroller_address
        try:
            amount = await self.vault.denomination_token.fetch_raw_allowance(owner, spender)
        except READ_EXCEPTIONS as e:
            raise NetworkReadError(f"Could not read allowance of {owner}: {e}") from e

        record = AllowanceRecord(owner=owner, spender=spender, amount=amount, as_of=as_of)
        if self._is_newer(self._allowance, record, owner):
            self._allowance = record
        return record

    def _is_newer(self, current, new, owner: HexAddress) -> bool:
        if owner != self.owner:
            # Read for someone we do not follow
            return False
        if current is None or current.owner != new.owner:
            return True
        return new.as_of >= current.as_of

    def _adopt_owner(self, owner: HexAddress | str) -> HexAddress:
        owner = Web3.to_checksum_address(owner)
        if self.owner is None:
            self.owner = owner
        return owner

"""Redeem shares of an Enzyme vault in kind.

Set ``AMOUNT`` to ``max`` to redeem all shares.

.. code-block:: shell

    export VAULT_ADDRESS=0x6c4a43d136d695a80bab48732df1be2571429b0c
    export AMOUNT=max
    export PRIVATE_KEY=
    export JSON_RPC_URL=

    python scripts/enzyme/redeem.py

"""

import asyncio
import logging
import os

from web3 import AsyncWeb3

from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.redemption import RedemptionFlow
from eth_fund.enzyme.vault import Vault
from eth_fund.hotwallet import HotWallet
from eth_fund.utils import setup_console_logging

logger = logging.getLogger(__name__)


async def main():
    setup_console_logging(default_log_level="info")

    json_rpc_url = os.environ.get("JSON_RPC_URL")
    assert json_rpc_url, f"You need to give JSON_RPC_URL environment variable pointing to your full node"

    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(json_rpc_url))
    wallet = HotWallet.from_private_key(web3, os.environ["PRIVATE_KEY"])
    vault = await Vault.fetch(web3, os.environ["VAULT_ADDRESS"])

    reader = ChainStateReader(vault)
    await reader.set_inputs(owner=wallet.address)
    assert reader.latest_snapshot, f"Could not read vault: {reader.last_error}"

    flow = RedemptionFlow(vault, wallet, reader)
    amount = os.environ.get("AMOUNT", "max")
    if amount == "max":
        amount = flow.max_amount()

    quote = flow.quote(amount, reader.latest_snapshot)
    logger.info("Redeeming %s shares, gross value %s, exit fee %s", quote.shares_amount, quote.gross_value, quote.fee)

    handle = await flow.redeem(quote.shares_amount)
    print(f"Redemption confirmed in tx {handle.tx_hash_hex}")


if __name__ == "__main__":
    asyncio.run(main())

"""Buy shares of an Enzyme vault.

Approves the exact amount if needed and then buys shares.

.. code-block:: shell

    export VAULT_ADDRESS=0x6c4a43d136d695a80bab48732df1be2571429b0c
    export AMOUNT=500
    export PRIVATE_KEY=
    export JSON_RPC_URL=

    python scripts/enzyme/deposit.py

"""

import asyncio
import logging
import os

from web3 import AsyncWeb3

from eth_fund.enzyme.chain_state import ChainStateReader
from eth_fund.enzyme.subscription import SubscriptionFlow
from eth_fund.enzyme.vault import Vault
from eth_fund.hotwallet import HotWallet
from eth_fund.token import parse_token_amount
from eth_fund.utils import setup_console_logging

logger = logging.getLogger(__name__)


async def main():
    setup_console_logging(default_log_level="info")

    json_rpc_url = os.environ.get("JSON_RPC_URL")
    assert json_rpc_url, f"You need to give JSON_RPC_URL environment variable pointing to your full node"

    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(json_rpc_url))
    wallet = HotWallet.from_private_key(web3, os.environ["PRIVATE_KEY"])
    vault = await Vault.fetch(web3, os.environ["VAULT_ADDRESS"])
    amount = parse_token_amount(os.environ["AMOUNT"], vault.denomination_token.decimals)

    reader = ChainStateReader(vault)
    await reader.set_inputs(owner=wallet.address, amount=amount)
    assert reader.latest_snapshot, f"Could not read vault: {reader.last_error}"

    flow = SubscriptionFlow(vault, wallet, reader)
    quote = flow.quote(amount, reader.latest_snapshot)
    logger.info(
        "Depositing %s %s, entrance fee %s, estimated shares %s",
        amount,
        vault.denomination_token.symbol,
        quote.fee,
        quote.estimated_shares,
    )

    if flow.can_approve(amount):
        handle = await flow.approve(amount)
        logger.info("Approved, tx %s", handle.tx_hash_hex)

    handle = await flow.deposit(amount)
    print(f"Deposit confirmed in tx {handle.tx_hash_hex}")
    print(f"Share balance is now {reader.latest_account.share_balance}")


if __name__ == "__main__":
    asyncio.run(main())

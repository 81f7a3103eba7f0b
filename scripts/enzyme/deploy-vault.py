"""Deploy a new Enzyme vault.

- Fees and policies are read from environment variables, only the ones given are enabled

- Fee and policy module addresses are not part of the built-in network tables,
  give them in a JSON file with ``ENZYME_DEPLOYMENT_FILE``
  (enabling a fee or a policy without its module address fails with ``ConfigurationError``):

  .. code-block:: json

      {
          "management_fee": "0x...",
          "performance_fee": "0x...",
          "min_max_investment_policy": "0x...",
          "allowed_deposit_recipients_policy": "0x..."
      }

Example how to run this script to deploy a vault on Ethereum mainnet:

.. code-block:: shell

    export FUND_NAME="Degen Fund"
    export FUND_SYMBOL=DGN
    export DENOMINATION_ASSET=USDC
    export MANAGEMENT_FEE=2
    export PERFORMANCE_FEE=20
    export MIN_DEPOSIT=1000
    export MAX_DEPOSIT=100000
    export DEPOSIT_WHITELIST="0x238B0435F69355e623d99363d58F7ba49C408491 0xe747721f8C79A98d7A8dcE0dbd9f26B99E188137"
    export ENZYME_DEPLOYMENT_FILE=enzyme-modules.json
    export PRIVATE_KEY=
    export JSON_RPC_URL=

    python scripts/enzyme/deploy-vault.py

"""

import asyncio
import logging
import os

from web3 import AsyncWeb3

from eth_fund.enzyme.configuration import FundConfigurationDraft
from eth_fund.enzyme.deployment import EnzymeDeployment, get_network_deployment, load_deployment_overrides
from eth_fund.enzyme.fee import FeeKind
from eth_fund.enzyme.lifecycle import LifecycleOrchestrator
from eth_fund.enzyme.policy import PolicyKind
from eth_fund.hotwallet import HotWallet
from eth_fund.utils import setup_console_logging

logger = logging.getLogger(__name__)

#: Environment variable -> fee
FEE_VARIABLES = {
    "MANAGEMENT_FEE": FeeKind.management,
    "PERFORMANCE_FEE": FeeKind.performance,
    "ENTRANCE_FEE": FeeKind.entrance,
    "EXIT_FEE": FeeKind.exit,
}


def read_draft() -> FundConfigurationDraft:
    draft = FundConfigurationDraft(
        name=os.environ["FUND_NAME"],
        symbol=os.environ["FUND_SYMBOL"],
        denomination_asset=os.environ.get("DENOMINATION_ASSET", "USDC"),
    )

    for variable, kind in FEE_VARIABLES.items():
        rate = os.environ.get(variable)
        if rate:
            draft.enable_fee(kind, rate)

    if os.environ.get("DEPOSIT_WHITELIST"):
        draft.enable_policy(PolicyKind.depositor_whitelist, addresses=os.environ["DEPOSIT_WHITELIST"].split())

    if os.environ.get("TRANSFER_WHITELIST"):
        draft.enable_policy(PolicyKind.shares_transfer_whitelist, addresses=os.environ["TRANSFER_WHITELIST"].split())

    if os.environ.get("MIN_DEPOSIT") or os.environ.get("MAX_DEPOSIT"):
        draft.enable_policy(PolicyKind.deposit_limits, min=os.environ.get("MIN_DEPOSIT"), max=os.environ.get("MAX_DEPOSIT"))

    if os.environ.get("CUMULATIVE_SLIPPAGE_TOLERANCE"):
        draft.enable_policy(PolicyKind.cumulative_slippage_tolerance, tolerance=os.environ["CUMULATIVE_SLIPPAGE_TOLERANCE"])

    return draft


async def main():
    setup_console_logging(default_log_level="info")

    json_rpc_url = os.environ.get("JSON_RPC_URL")
    assert json_rpc_url, f"You need to give JSON_RPC_URL environment variable pointing to your full node"

    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(json_rpc_url))
    wallet = HotWallet.from_private_key(web3, os.environ["PRIVATE_KEY"])

    overrides = None
    if os.environ.get("ENZYME_DEPLOYMENT_FILE"):
        overrides = load_deployment_overrides(os.environ["ENZYME_DEPLOYMENT_FILE"])

    contract_addresses = get_network_deployment(os.environ.get("ENZYME_NETWORK", "ethereum"), overrides=overrides)
    deployment = await EnzymeDeployment.fetch_deployment(web3, contract_addresses)

    draft = read_draft()
    orchestrator = LifecycleOrchestrator(deployment)
    handle = await orchestrator.create_fund(draft, wallet)
    logger.info("Broadcast createNewFund, tx %s", handle.tx_hash_hex)

    new_fund = await orchestrator.fetch_new_fund(handle)
    print(f"Vault: {new_fund.vault_proxy}")
    print(f"Comptroller: {new_fund.comptroller_proxy}")


if __name__ == "__main__":
    asyncio.run(main())

"""Deploy a new Enzyme vault.

:py:class:`LifecycleOrchestrator` validates a fund configuration draft,
encodes it and broadcasts ``FundDeployer.createNewFund()``.

Example:

.. code-block:: python

    orchestrator = LifecycleOrchestrator(deployment)
    handle = await orchestrator.create_fund(draft, wallet)
    new_fund = await orchestrator.fetch_new_fund(handle)
    print(f"Vault deployed at {new_fund.vault_proxy}")
"""

import enum
import logging
from typing import List, Optional

from eth_fund.basewallet import BaseWallet
from eth_fund.confirmation import TransactionHandle
from eth_fund.enzyme.configuration import FundConfiguration, FundConfigurationDraft, encode_fund_configuration
from eth_fund.enzyme.deployment import EnzymeDeployment, NewFund
from eth_fund.errors import ActionInFlightError, ConfigurationError, WalletNotConnectedError

logger = logging.getLogger(__name__)


#: Shares can be redeemed immediately after they were bought
SHARES_ACTION_TIME_LOCK = 0


class LifecycleState(enum.Enum):
    """Where a vault deployment attempt is."""

    idle = "idle"
    encoding = "encoding"
    submitting = "submitting"
    broadcast = "broadcast"
    failed = "failed"


class LifecycleOrchestrator:
    """Turn a fund configuration draft to a deployed vault.

    - No automatic retries: after ``failed`` call :py:meth:`create_fund` again

    - The transaction handle is returned right after the broadcast
    """

    def __init__(self, deployment: EnzymeDeployment):
        self.deployment = deployment
        self.state = LifecycleState.idle

        #: States of the current attempt, in order
        self.transitions: List[LifecycleState] = [LifecycleState.idle]

        self.last_error: Optional[Exception] = None

        #: What we encoded on the latest attempt
        self.last_configuration: Optional[FundConfiguration] = None

    def __repr__(self):
        return f"<LifecycleOrchestrator {self.state.value}>"

    def _set_state(self, state: LifecycleState):
        logger.info("Fund deployment %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    async def create_fund(self, draft: FundConfigurationDraft, signer: Optional[BaseWallet]) -> TransactionHandle:
        """Deploy a new vault with the draft settings.

        The draft is reset after the transaction has been broadcast.

        :param draft:
            Fund name, symbol, denomination asset, fees and policies

        :param signer:
            The wallet that becomes the fund owner

        :return:
            Handle of the broadcast ``createNewFund()`` transaction

        :raise ActionInFlightError:
            A previous attempt is still being encoded or submitted
        """
        if self.state in (LifecycleState.encoding, LifecycleState.submitting):
            raise ActionInFlightError(f"Fund deployment is {self.state.value}")

        self.state = LifecycleState.idle
        self.transitions = [LifecycleState.idle]
        self.last_error = None
        self.last_configuration = None

        try:
            if signer is None:
                raise WalletNotConnectedError("Connect a wallet to deploy a fund")

            name = (draft.name or "").strip()
            symbol = (draft.symbol or "").strip()
            if not name:
                raise ConfigurationError("Fund name is missing")
            if not symbol:
                raise ConfigurationError("Fund symbol is missing")

            self._set_state(LifecycleState.encoding)
            denomination_asset = self.deployment.get_denomination_asset(draft.denomination_asset)
            configuration = encode_fund_configuration(draft, self.deployment)
            self.last_configuration = configuration

            func = self.deployment.prepare_create_new_fund(
                owner=signer.address,
                fund_name=name,
                fund_symbol=symbol,
                denomination_asset=denomination_asset,
                shares_action_time_lock=SHARES_ACTION_TIME_LOCK,
                fee_manager_config_data=configuration.fee_manager_config,
                policy_manager_config_data=configuration.policy_manager_config,
            )

            self._set_state(LifecycleState.submitting)
            tx_hash = await signer.transact(func)
        except Exception as e:
            self.last_error = e
            self._set_state(LifecycleState.failed)
            raise

        self._set_state(LifecycleState.broadcast)
        logger.info("Fund %s (%s) deployment broadcast, tx %s", name, symbol, tx_hash.hex())
        draft.reset()
        return TransactionHandle(signer.web3, tx_hash, "createNewFund", signer.address)

    async def fetch_new_fund(self, handle: TransactionHandle) -> NewFund:
        """Wait for the deployment to confirm and get the new vault.

        :raise ChainExecutionError:
            The deployment reverted
        """
        receipt = await handle.wait()
        new_fund = self.deployment.parse_new_fund(receipt)
        logger.info("New fund deployed, vault %s, comptroller %s", new_fund.vault_proxy, new_fund.comptroller_proxy)
        return new_fund

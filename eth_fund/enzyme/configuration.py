"""Fund configuration encoding.

Turn the fee and policy choices of a fund manager into the
``feeManagerConfigData`` and ``policyManagerConfigData`` blobs
``FundDeployer.createNewFund()`` takes.

Example:

.. code-block:: python

    draft = FundConfigurationDraft(name="Degen Fund", symbol="DGN", denomination_asset="USDC")
    draft.enable_fee(FeeKind.management, 2)
    draft.enable_policy(PolicyKind.deposit_limits, min=1000, max=100_000)
    configuration = encode_fund_configuration(draft, deployment)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from eth_abi import encode
from eth_typing import HexAddress

from eth_fund.enzyme.deployment import EnzymeDeployment
from eth_fund.enzyme.fee import FEE_MODULE_KEYS, FeeKind, encode_fee_settings
from eth_fund.enzyme.policy import POLICY_MODULE_KEYS, PolicyKind, encode_policy_settings

logger = logging.getLogger(__name__)


#: Denomination asset of a fresh draft
DEFAULT_DENOMINATION_ASSET = "USDC"


@dataclass(slots=True)
class FeeSetting:
    """One fee as the fund manager set it up."""

    enabled: bool = False

    #: Percent, between 0 and 100
    rate: Decimal | str | int = Decimal(0)

    #: Fee recipient, zero address if not given
    recipient: Optional[HexAddress] = None

    #: Performance fee only
    high_water_mark: Optional[Decimal] = None


@dataclass(slots=True)
class PolicySetting:
    """One policy as the fund manager set it up.

    See :py:func:`eth_fund.enzyme.policy.encode_policy_settings` for the parameters.
    """

    enabled: bool = False
    parameters: dict = field(default_factory=dict)


@dataclass
class FundConfigurationDraft:
    """Fund settings being edited before the vault is deployed.

    Fees are applied by the protocol in the order they are listed.
    Enabling a fee or a policy moves it last.
    """

    name: str = ""
    symbol: str = ""

    #: Symbol of a denomination asset in the network registry
    denomination_asset: str = DEFAULT_DENOMINATION_ASSET

    fees: Dict[FeeKind, FeeSetting] = field(default_factory=dict)
    policies: Dict[PolicyKind, PolicySetting] = field(default_factory=dict)

    def enable_fee(
        self,
        kind: FeeKind | str,
        rate: Decimal | str | int,
        recipient: Optional[HexAddress] = None,
        high_water_mark: Optional[Decimal] = None,
    ):
        kind = FeeKind(kind)
        self.fees.pop(kind, None)
        self.fees[kind] = FeeSetting(enabled=True, rate=rate, recipient=recipient, high_water_mark=high_water_mark)

    def disable_fee(self, kind: FeeKind | str):
        setting = self.fees.get(FeeKind(kind))
        if setting is not None:
            setting.enabled = False

    def enable_policy(self, kind: PolicyKind | str, **parameters):
        kind = PolicyKind(kind)
        self.policies.pop(kind, None)
        self.policies[kind] = PolicySetting(enabled=True, parameters=parameters)

    def disable_policy(self, kind: PolicyKind | str):
        setting = self.policies.get(PolicyKind(kind))
        if setting is not None:
            setting.enabled = False

    def reset(self):
        """Clear the draft after it has been submitted."""
        self.name = ""
        self.symbol = ""
        self.denomination_asset = DEFAULT_DENOMINATION_ASSET
        self.fees.clear()
        self.policies.clear()


@dataclass(slots=True, frozen=True)
class EncodedModuleSetting:
    """Settings of one fee or policy module."""

    module_address: HexAddress
    encoded_settings: bytes

    def __post_init__(self):
        assert self.module_address.startswith("0x")
        assert type(self.encoded_settings) == bytes


@dataclass(slots=True, frozen=True)
class FundConfiguration:
    """Encoded configuration ready for ``createNewFund()``."""

    fee_manager_config: bytes
    policy_manager_config: bytes
    fee_settings: List[EncodedModuleSetting]
    policy_settings: List[EncodedModuleSetting]


def encode_module_settings(settings: List[EncodedModuleSetting]) -> bytes:
    """Serialise module settings for the fund deployer.

    See https://github.com/enzymefinance/protocol/blob/v4/tests/utils/core/PolicyUtils.sol

    :return:
        Empty bytes if there are no modules, the fund deployer then skips the manager setup
    """
    if not settings:
        return b""
    addresses = [s.module_address for s in settings]
    configs = [s.encoded_settings for s in settings]
    return encode(["address[]", "bytes[]"], [addresses, configs])


def encode_fund_configuration(draft: FundConfigurationDraft, deployment: EnzymeDeployment) -> FundConfiguration:
    """Encode fee and policy settings of a draft.

    - Disabled fees and policies are left out

    - The same draft always encodes to the same bytes

    :raise UnsupportedAssetError:
        The denomination asset is not in the network registry

    :raise ConfigurationError:
        A fee or a policy parameter is invalid, or its module is not configured
    """
    denomination_asset = deployment.get_denomination_asset(draft.denomination_asset)

    fee_settings = []
    for kind, setting in draft.fees.items():
        if not setting.enabled:
            continue
        module = deployment.get_module_address(FEE_MODULE_KEYS[kind])
        encoded = encode_fee_settings(kind, setting.rate, setting.recipient, setting.high_water_mark)
        fee_settings.append(EncodedModuleSetting(module, encoded))

    policy_settings = []
    for kind, setting in draft.policies.items():
        if not setting.enabled:
            continue
        module = deployment.get_module_address(POLICY_MODULE_KEYS[kind])
        encoded = encode_policy_settings(kind, setting.parameters, denomination_asset.decimals)
        policy_settings.append(EncodedModuleSetting(module, encoded))

    logger.info(
        "Encoded fund configuration, fees: %s, policies: %s",
        [k.value for k, s in draft.fees.items() if s.enabled],
        [k.value for k, s in draft.policies.items() if s.enabled],
    )

    return FundConfiguration(
        fee_manager_config=encode_module_settings(fee_settings),
        policy_manager_config=encode_module_settings(policy_settings),
        fee_settings=fee_settings,
        policy_settings=policy_settings,
    )

"""Signer interface consumed by the fund flows.

The flows never manage a wallet session themselves. Instead, every flow
takes a :py:class:`BaseWallet` as an explicit argument.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception

from eth_fund.errors import ChainExecutionError, WalletRejectedError

logger = logging.getLogger(__name__)


#: EIP-1193 error code for "User Rejected Request"
USER_REJECTED_REQUEST_CODE = 4001


def get_rpc_error_code(e: Exception) -> int | None:
    """Dig the JSON-RPC error code out of web3.py exceptions.

    web3.py v7 puts the response in ``rpc_response``, older versions
    raise ``ValueError`` with the error dict as the first argument.
    """
    rpc_response = getattr(e, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict):
            return error.get("code")

    if e.args and isinstance(e.args[0], dict):
        return e.args[0].get("code")

    return None


def get_rpc_error_message(e: Exception) -> str:
    """Human-readable part of a JSON-RPC error."""
    if e.args and isinstance(e.args[0], dict):
        return e.args[0].get("message", str(e))
    message = getattr(e, "message", None)
    if message:
        return message
    return str(e)


def is_user_rejection(e: Exception) -> bool:
    """Did the wallet refuse to sign because the user said no."""
    if get_rpc_error_code(e) == USER_REJECTED_REQUEST_CODE:
        return True
    message = get_rpc_error_message(e).lower()
    return "user rejected" in message or "user denied" in message


def translate_broadcast_error(e: Exception, action: str) -> Exception:
    """Map exceptions raised before the transaction was sent to flow errors.

    - User declining the signature becomes :py:class:`WalletRejectedError`

    - Everything else, like gas estimation reverts or node errors,
      becomes :py:class:`ChainExecutionError` in the broadcast phase
    """
    if isinstance(e, WalletRejectedError):
        return e

    if is_user_rejection(e):
        return WalletRejectedError(f"{action}: {get_rpc_error_message(e)}")

    if isinstance(e, ContractLogicError):
        reason = e.args[0] if e.args else str(e)
        return ChainExecutionError(f"{action} would revert: {reason}", phase=ChainExecutionError.BROADCAST)

    return ChainExecutionError(f"{action} failed: {get_rpc_error_message(e)}", phase=ChainExecutionError.BROADCAST)


#: Exceptions we expect to see when building, signing and sending a transaction
BROADCAST_EXCEPTIONS = (ValueError, Web3Exception)


class BaseWallet(ABC):
    """Abstract base class for the signers used by the fund flows.

    - Exposes the connected address

    - Exposes a read-only :py:class:`web3.AsyncWeb3` connection for queries

    - Can sign and broadcast a bound contract call
    """

    @property
    @abstractmethod
    def address(self) -> HexAddress:
        """Get the wallet's Ethereum address."""

    @property
    @abstractmethod
    def web3(self) -> AsyncWeb3:
        """Read-only provider used for queries and confirmations."""

    @abstractmethod
    async def transact(self, func, tx_params: Optional[dict] = None) -> HexBytes:
        """Sign and broadcast a bound contract function call.

        Returns as soon as the transaction has been broadcast.

        :param func:
            Bound contract function, e.g. ``token.functions.approve(spender, amount)``

        :param tx_params:
            Extra transaction parameters like ``gas``

        :return:
            Transaction hash

        :raise WalletRejectedError:
            The user declined signing

        :raise ChainExecutionError:
            The transaction could not be sent (``phase="broadcast"``)
        """

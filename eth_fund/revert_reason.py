"""Revert reason extraction.

Further reading

- `Web3.py Patterns: Revert Reason Lookups <https://snakecharmers.ethereum.org/web3py-revert-reason-parsing/>`_

"""

import asyncio
import logging
from typing import Union

import aiohttp
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception

from eth_fund.abi import get_transaction_data_field

logger = logging.getLogger(__name__)


#: The node could not replay the transaction, e.g. missing archive state
REPLAY_EXCEPTIONS = (Web3Exception, OSError, asyncio.TimeoutError, aiohttp.ClientError)


async def fetch_transaction_revert_reason(
    web3: AsyncWeb3,
    tx_hash: Union[HexBytes, str],
    unknown_error_message="<could not extract the revert reason>",
) -> str:
    """Gets a transaction revert reason.

    Ethereum nodes do not store the transaction failure reason in any database or index.
    We replay the transaction against the state of the block before it was mined.

    - Live node must have had enough archive state for the replay to success
      (full nodes store only 128 blocks by default)

    - If the replay does not revert, or the node cannot replay it,
      return ``unknown_error_message``

    :param web3: Our JSON-RPC connection

    :param tx_hash: Transaction hash of which reason we extract by simulation.

    :param unknown_error_message:
        Return this message if the revert reason extraction fails.
        Check the logs for details and pointers.

    :return: The revert reason of the placeholder message if we could not extract the reason somehow.
    """

    if not isinstance(tx_hash, HexBytes):
        tx_hash = HexBytes(tx_hash)

    try:
        tx = await web3.eth.get_transaction(tx_hash)
    except (ValueError, *REPLAY_EXCEPTIONS) as e:
        logger.warning("Could not fetch transaction %s for its revert reason: %s", tx_hash.hex(), e)
        return unknown_error_message

    replay_tx = {
        "to": tx["to"],
        "from": tx["from"],
        "value": tx["value"],
        "data": get_transaction_data_field(tx),
        "gas": tx["gas"],
    }

    try:
        await web3.eth.call(replay_tx, tx["blockNumber"] - 1)
    except ContractLogicError as e:
        return e.args[0]
    except ValueError as e:
        logger.debug("Revert exception result is: %s", e)
        data = e.args[0] if e.args else str(e)
        if type(data) == str:
            return data
        elif isinstance(data, dict):
            return data.get("message", unknown_error_message)
        return unknown_error_message
    except REPLAY_EXCEPTIONS as e:
        logger.warning("Node could not replay transaction %s: %s", tx_hash.hex(), e)
        return unknown_error_message

    logger.error(
        "Transaction %s succeeded, when we tried to fetch its revert reason. Maybe the node lacks archive state or the chain tip is unstable.",
        tx_hash.hex(),
    )
    return unknown_error_message

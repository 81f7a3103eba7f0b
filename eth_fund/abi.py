"""ABI loading from the bundled ABI files.

Provides functions to load ABI files and construct :py:class:`web3.contract.AsyncContract` types.
The results are cached for the speedup.

Bundled files are Etherscan style ABI lists, trimmed to the functions and events
the fund flows call. They live in ``eth_fund/abi/``.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Type, Union

from eth_typing import HexAddress
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.datastructures import AttributeDict

# How big are our ABI and contract caches
_CACHE_SIZE = 512


#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@lru_cache(maxsize=_CACHE_SIZE)
def get_abi_by_filename(fname: str) -> list:
    """Reads a embedded ABI file and returns it.

    Example::

        abi = get_abi_by_filename("enzyme/ComptrollerLib.json")

    Loaded ABI files are cache in in-process memory to speed up future loading.

    :param fname:
        Path relative to ``eth_fund/abi``

    :return:
        ABI as a list of function and event descriptions
    """

    here = Path(__file__).resolve().parent
    abi_path = here / "abi" / Path(fname)
    with open(abi_path, "rt", encoding="utf-8") as f:
        abi = json.load(f)

    if type(abi) == dict:
        # Solc output
        abi = abi["abi"]

    return abi


@lru_cache(maxsize=_CACHE_SIZE)
def get_contract(web3: AsyncWeb3, fname: str) -> Type[AsyncContract]:
    """Get AsyncContract proxy class from a bundled ABI file.

    Any results are cached. Web3 connection is part of the cache key.

    Example:

    .. code-block:: python

        ERC20 = get_contract(web3, "ERC20.json")

    :return:
        Contract proxy class
    """
    abi = get_abi_by_filename(fname)
    return web3.eth.contract(abi=abi)


def get_deployed_contract(
    web3: AsyncWeb3,
    fname: str,
    address: Union[HexAddress, str],
) -> AsyncContract:
    """Get a contract proxy object for a contract deployed at a specific address.

    Example:

    .. code-block:: python

        comptroller = get_deployed_contract(web3, "enzyme/ComptrollerLib.json", comptroller_address)
        gav = await comptroller.functions.calcGav().call()

    :param web3:
        AsyncWeb3 instance

    :param fname:
        ABI file name relative to ``eth_fund/abi``

    :param address:
        Ethereum address of the deployed contract

    :return:
        `web3.contract.AsyncContract` proxy
    """
    assert isinstance(web3, AsyncWeb3), f"Got {type(web3)} instead of AsyncWeb3"
    assert address, f"get_deployed_contract() address was None"

    address = Web3.to_checksum_address(address)

    Contract = get_contract(web3, fname)
    return Contract(address)


def get_transaction_data_field(tx: AttributeDict) -> str:
    """Get the "Data" payload of a transaction.

    Some nodes return this in tx.data while others have this in tx.input.
    """
    if "data" in tx:
        return tx["data"]
    else:
        return tx["input"]

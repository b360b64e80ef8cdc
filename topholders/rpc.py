"""
Alchemy RPC client

Async web3 wrapper over the handful of reads the holder sync needs:
the block number, totalSupply() and eth_getCode for deployment block
probing, plus Alchemy's alchemy_getAssetTransfers for paging Transfer
events.
"""

import asyncio
import logging

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from .errors import UpstreamError
from .models import Transfer

logger = logging.getLogger(__name__)

# ERC20 ABI (minimal)
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    }
]

RPC_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, Web3Exception, ValueError)


def to_hex_block(block):
    if block is None:
        return "latest"
    return hex(int(block))


class AlchemyClient:
    def __init__(self, url, request_timeout=30.0):
        self.url = url
        # Pacing and degradation are handled by the caller, so no provider retries
        self.w3 = AsyncWeb3(AsyncHTTPProvider(
            url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            exception_retry_configuration=None,
        ))

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        await self.w3.provider.disconnect()

    async def block_number(self):
        try:
            return await self.w3.eth.block_number
        except RPC_ERRORS as e:
            raise UpstreamError(f"eth_blockNumber failed: {e}") from e

    async def transfer_page(self, contract_address, from_block, to_block=None, page_key=None, page_size=1000):
        """
        Fetch one page of ERC-20 transfers for a contract.

        Returns (transfers, next_page_key); next_page_key is None on the last page.
        """
        query = {
            "fromBlock": to_hex_block(from_block),
            "toBlock": to_hex_block(to_block),
            "contractAddresses": [contract_address],
            "category": ["erc20"],
            "withMetadata": False,
            "excludeZeroValue": False,
            "maxCount": hex(page_size),
        }
        if page_key:
            query["pageKey"] = page_key

        try:
            response = await self.w3.provider.make_request("alchemy_getAssetTransfers", [query])
        except RPC_ERRORS as e:
            raise UpstreamError(f"alchemy_getAssetTransfers request failed: {e}") from e

        error = response.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise UpstreamError(f"Alchemy API error: {message}")

        result = response.get("result") or {}
        try:
            transfers = [Transfer.from_alchemy(t) for t in result.get("transfers", [])]
        except (ValueError, TypeError, AttributeError) as e:
            raise UpstreamError(f"Malformed transfer in response: {e}") from e
        return transfers, result.get("pageKey") or None

    async def total_supply(self, contract_address, block="latest"):
        """totalSupply() of the token as of the given block."""
        token = self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=ERC20_ABI)
        try:
            return await token.functions.totalSupply().call(block_identifier=block)
        except RPC_ERRORS as e:
            raise UpstreamError(f"totalSupply() failed for {contract_address}: {e}") from e

    async def get_code(self, address, block):
        try:
            return await self.w3.eth.get_code(Web3.to_checksum_address(address), block_identifier=block)
        except RPC_ERRORS as e:
            raise UpstreamError(f"eth_getCode failed at block {block}: {e}") from e

    async def find_deployment_block(self, address, high):
        """Binary search for the first block where the contract has code."""
        logger.info("Probing deployment block for %s", address)
        lo, hi = 0, high
        while lo < hi:
            mid = (lo + hi) // 2
            code = await self.get_code(address, mid)
            if len(code) > 0:  # Has contract code
                hi = mid
            else:
                lo = mid + 1
        logger.info("Found deployment at block %d", lo)
        return lo

import asyncio
import json

import pytest

from topholders.config import DEFAULT_FLAGS, SyncConfig, ZERO_ADDRESS
from topholders.errors import UpstreamError
from topholders.models import Transfer
from topholders.sync import TopHoldersSync

CONTRACT = "0x" + "c" * 40


def addr(n):
    return "0x%040x" % n


def mint(to, value, block):
    return Transfer(ZERO_ADDRESS, to, value, block)


def send(frm, to, value, block):
    return Transfer(frm, to, value, block)


class FakeChain:
    """In-memory stand-in for AlchemyClient, paging by list offset."""

    def __init__(self, transfers=(), head=1000, total_supply=None, page_size=2,
                 fail_after_pages=None, supply_error=False, deployment_block=None, page_delay=0):
        self.transfers = list(transfers)
        self.head = head
        self.supply = total_supply
        self.page_size = page_size
        self.fail_after_pages = fail_after_pages
        self.supply_error = supply_error
        self.deployment_block = deployment_block
        self.page_delay = page_delay
        self.page_calls = []
        self.supply_blocks = []
        self.block_gate = None

    async def block_number(self):
        if self.block_gate is not None:
            await self.block_gate.wait()
        return self.head

    async def transfer_page(self, contract, from_block, to_block, page_key=None, page_size=1000):
        if self.page_delay:
            await asyncio.sleep(self.page_delay)
        if self.fail_after_pages is not None and len(self.page_calls) >= self.fail_after_pages:
            raise UpstreamError("Alchemy API error: 429 Too Many Requests")
        self.page_calls.append((contract, from_block, to_block, page_key))

        window = [t for t in self.transfers if from_block <= t.block_number <= to_block]
        offset = int(page_key or 0)
        page = window[offset:offset + self.page_size]
        nxt = offset + self.page_size
        return page, (str(nxt) if nxt < len(window) else None)

    async def total_supply(self, contract, block="latest"):
        self.supply_blocks.append(block)
        if self.supply_error:
            raise UpstreamError("execution reverted")
        return self.supply

    async def find_deployment_block(self, address, high):
        return self.deployment_block


@pytest.fixture
def data_dir(tmp_path):
    pools = [
        {"id": "pool-1", "chain": "ethereum", "poolAddress": CONTRACT, "tokenPair": "steakUSDC"},
        {"id": "pool-base", "chain": "base", "poolAddress": "0x" + "b" * 40, "tokenPair": "sparkUSDC"},
        {"id": "no-address", "chain": "ethereum", "poolAddress": None, "tokenPair": "orphan"},
        {"id": "bad-chain", "chain": "solana", "poolAddress": "0x" + "d" * 40, "tokenPair": "wrong"},
    ]
    (tmp_path / "pools.json").write_text(json.dumps(pools))
    return tmp_path


def make_config(data_dir, **overrides):
    options = dict(
        rpc_urls={"ethereum": "http://alchemy.test/eth", "base": "http://alchemy.test/base"},
        data_dir=str(data_dir),
        rate_limit=0,
        flags=dict(DEFAULT_FLAGS),
    )
    options.update(overrides)
    return SyncConfig(**options)


@pytest.fixture
def config(data_dir):
    return make_config(data_dir)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def service(config, chain):
    return TopHoldersSync(config, client_factory=lambda name, url: chain)

"""
Top holders sync

Rebuilds the largest holders of a pool token from its Transfer history:
pick a starting block, page through alchemy_getAssetTransfers, net the
balances (on top of the previous snapshot when resyncing), rank, and
persist the snapshot.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from web3 import Web3

from .config import FALLBACK_DAYS, blocks_per_day, flag_enabled
from .errors import (
    ConfigurationError,
    FeatureDisabledError,
    NotFoundError,
    SyncInProgressError,
    SyncTimeoutError,
    UpstreamError,
    WindowContiguityError,
)
from .ledger import apply_transfers, rank_holders
from .models import Snapshot, SnapshotMetadata
from .rpc import AlchemyClient
from .store import CreationBlockIndex, PoolRegistry, SnapshotStore

logger = logging.getLogger(__name__)


class TopHoldersSync:
    """
    Holder snapshot builder for every pool in a registry.

    Use as an async context manager so the per-chain clients get
    closed. client_factory(chain, url) replaces the Alchemy client, which
    is how tests plug in a fake chain.
    """

    def __init__(self, config, pools=None, store=None, creation_index=None, client_factory=None):
        self.config = config
        self.pools = pools if pools is not None else PoolRegistry(config.pools_file)
        self.store = store if store is not None else SnapshotStore(config.snapshot_dir)
        self.creation_index = (creation_index if creation_index is not None
                               else CreationBlockIndex(config.creation_info_file))
        self._client_factory = client_factory
        self._clients = {}
        # (chain, pool_id) pairs with a sync in flight
        self._running = set()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        self._clients.clear()

    def client(self, chain):
        url = self.config.rpc_url(chain)
        if not url:
            raise ConfigurationError(f"No Alchemy URL configured for chain: {chain}")
        if chain not in self._clients:
            if self._client_factory is not None:
                self._clients[chain] = self._client_factory(chain, url)
            else:
                self._clients[chain] = AlchemyClient(url, request_timeout=self.config.request_timeout)
        return self._clients[chain]

    def is_running(self, chain, pool_id):
        return (chain, str(pool_id)) in self._running

    def resolve_pool(self, pool_id):
        pool = self.pools.get(pool_id)
        if pool is None or not pool.pool_address:
            raise NotFoundError(f"Pool {pool_id} not found or missing pool address")
        if not Web3.is_address(pool.pool_address):
            raise NotFoundError(f"Pool {pool_id} has an invalid pool address: {pool.pool_address}")
        return pool

    async def sync_top_holders(self, pool_id, full=False, from_block=None, to_block=None):
        """
        Sync and persist the top holders snapshot for one pool.

        full=True ignores any stored snapshot and rebuilds from scratch.
        from_block/to_block pin the window; an incremental from_block must
        be exactly one past the stored snapshot's toBlock. Total supply is
        read at the window's end block so percentages match the balances.
        """
        timeout = self.config.sync_timeout
        if timeout is None:
            return await self._sync(pool_id, full, from_block, to_block)
        try:
            return await asyncio.wait_for(self._sync(pool_id, full, from_block, to_block), timeout)
        except asyncio.TimeoutError:
            raise SyncTimeoutError(pool_id, timeout) from None

    async def _sync(self, pool_id, full, from_block, to_block):
        started = time.monotonic()
        pool = self.resolve_pool(pool_id)
        if not flag_enabled(self.config, "asset_transfers"):
            raise FeatureDisabledError("asset_transfers")
        client = self.client(pool.chain)

        key = (pool.chain, pool.id)
        if key in self._running:
            raise SyncInProgressError(pool.chain, pool.id)
        self._running.add(key)
        try:
            return await self._run(pool, client, full, from_block, to_block, started)
        finally:
            self._running.discard(key)

    async def _run(self, pool, client, full, from_block, to_block, started):
        chain = pool.chain
        contract = pool.pool_address.lower()
        logger.info("Starting top holders sync for %s on %s (contract %s)",
                    pool.token_pair or pool.id, chain, contract)

        previous = None if full else self.store.load(chain, pool.id)
        if previous is not None and previous.token_address.lower() != contract:
            logger.warning("Stored snapshot for %s tracks %s, rebuilding for %s",
                           pool.id, previous.token_address, contract)
            previous = None

        head = await client.block_number()
        target = head if to_block is None else to_block
        start = await self._start_block(pool, client, previous, from_block, head)

        if start > target:
            logger.info("No new blocks for %s (from %d, head %d)", pool.id, start, target)
            transfers, pages, complete = [], 0, True
        else:
            transfers, pages, complete = await self._collect_transfers(client, contract, start, target)

        if complete:
            end = max(target, start - 1)
        else:
            # The last page may have stopped mid-block, so that block is fetched
            # again in full by the next run
            last = max((t.block_number for t in transfers), default=None)
            if last is None:
                end = start - 1
            else:
                transfers = [t for t in transfers if t.block_number < last]
                end = last - 1
            logger.warning("Top holders for %s may be incomplete: %d transfers over %d pages, "
                           "up to block %d (block %d will be refetched)",
                           pool.id, len(transfers), pages, end, end + 1)

        seed = None
        if previous is not None:
            if previous.ledger is None:
                logger.warning("Snapshot for %s has no ledger, seeding from its %d top holders only",
                               pool.id, len(previous.holders))
            seed = previous.balances()
        balances = apply_transfers(transfers, contract, seed)

        total_supply = await self._total_supply(client, contract, max(end, 0))
        holders = rank_holders(balances, total_supply, self.config.max_holders)

        metadata = SnapshotMetadata(
            chain_id=chain,
            pool_id=pool.id,
            transfers_processed=len(transfers),
            from_block=start,
            to_block=end,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            pages_fetched=pages,
            complete=complete,
        )
        snapshot = Snapshot(
            updated_at=datetime.now(timezone.utc).isoformat(),
            token_address=contract,
            total_supply=total_supply,
            holders=holders,
            metadata=metadata,
            ledger=balances,
        )
        self.store.save(chain, pool.id, snapshot)

        logger.info("Top holders sync completed for %s: %d holders from %d transfers in %dms",
                    pool.token_pair or pool.id, len(holders), len(transfers), metadata.processing_time_ms)
        return snapshot

    async def _start_block(self, pool, client, previous, from_block, head):
        if previous is not None:
            expected = previous.metadata.to_block + 1
            if from_block is not None and from_block != expected:
                raise WindowContiguityError(expected, from_block)
            logger.info("Incremental sync from block %d", expected)
            return expected

        if from_block is not None:
            return from_block

        creation_block = self.creation_index.get(pool.pool_address)
        if creation_block:
            logger.info("Starting from creation block %d", creation_block)
            return creation_block

        if flag_enabled(self.config, "creation_block_probe"):
            try:
                return await client.find_deployment_block(pool.pool_address, head)
            except UpstreamError as e:
                logger.warning("Deployment block probe failed for %s: %s", pool.pool_address, e)

        estimated = max(1, head - blocks_per_day(pool.chain) * FALLBACK_DAYS)
        logger.info("Starting from estimated recent block %d", estimated)
        return estimated

    async def _collect_transfers(self, client, contract, from_block, to_block):
        """
        Page through transfers for the window.

        Returns (transfers, pages, complete). A failing page or the page cap
        ends pagination early with complete=False; whatever was collected is
        still returned.
        """
        logger.info("Fetching transfers for %s from block %d to %d", contract, from_block, to_block)
        transfers = []
        page_key = None
        pages = 0
        complete = False

        while pages < self.config.max_pages:
            # Small delay to avoid rate limits
            await asyncio.sleep(self.config.rate_limit)
            try:
                page, page_key = await client.transfer_page(
                    contract, from_block, to_block, page_key=page_key, page_size=self.config.page_size)
            except UpstreamError as e:
                logger.error("Error fetching transfers page %d: %s", pages + 1, e)
                break

            pages += 1
            transfers.extend(page)
            logger.debug("Page %d: %d transfers", pages, len(page))
            if not page_key:
                complete = True
                break
        else:
            logger.warning("Stopped after %d pages with more transfers pending", pages)

        logger.info("Total transfers fetched: %d across %d pages", len(transfers), pages)
        return transfers, pages, complete

    async def _total_supply(self, client, contract, block):
        try:
            return await client.total_supply(contract, block)
        except UpstreamError as e:
            logger.warning("Could not fetch total supply for %s: %s", contract, e)
            return None

    async def sync_all_pools(self):
        """
        Sync every pool in the registry, one at a time.

        A failing pool is logged and skipped. Returns a summary with the
        synced, failed and skipped pool ids.
        """
        logger.info("Starting top holders sync for all pools")
        summary = {"synced": [], "failed": {}, "skipped": []}

        for pool in self.pools.all():
            if not pool.pool_address:
                logger.info("Skipping %s - no pool address", pool.token_pair or pool.id)
                summary["skipped"].append(pool.id)
                continue

            try:
                await self.sync_top_holders(pool.id)
                summary["synced"].append(pool.id)
            except Exception as e:
                logger.error("Failed to sync top holders for %s: %s", pool.token_pair or pool.id, e)
                summary["failed"][pool.id] = str(e)

            # Longer pause between pools than between pages
            await asyncio.sleep(self.config.rate_limit * 2)

        logger.info("Completed top holders sync for all pools: %d synced, %d failed, %d skipped",
                    len(summary["synced"]), len(summary["failed"]), len(summary["skipped"]))
        return summary

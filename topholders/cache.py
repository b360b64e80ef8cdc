"""
Read side for stored top holder snapshots.

Serves whatever snapshot is on disk and schedules a background rebuild
when it is missing, stale or expired. Only one build per pool runs at a
time.
"""

import asyncio
import logging
import time
from collections import namedtuple
from datetime import datetime

from .config import HARD_TTL_SEC, STALE_TTL_SEC

logger = logging.getLogger(__name__)

CachedSnapshot = namedtuple("CachedSnapshot", ["snapshot", "is_stale"])


def snapshot_age(snapshot, now=None):
    """Seconds since the snapshot was written."""
    updated = datetime.fromisoformat(snapshot.updated_at.replace("Z", "+00:00"))
    return (now if now is not None else time.time()) - updated.timestamp()


class TopHoldersCache:
    def __init__(self, sync, stale_ttl=STALE_TTL_SEC, hard_ttl=HARD_TTL_SEC, clock=time.time):
        self.sync = sync
        self.stale_ttl = stale_ttl
        self.hard_ttl = hard_ttl
        self._clock = clock
        self._builds = {}

    async def get(self, pool_id, ensure_fresh=False):
        """
        Return CachedSnapshot(snapshot, is_stale), or None while a build is pending.

        Expired snapshots (older than hard_ttl) are not served. Stale ones
        are served and refreshed in the background.
        """
        pool = self.sync.resolve_pool(pool_id)
        key = (pool.chain, pool.id)
        snapshot = self.sync.store.load(pool.chain, pool.id)

        if snapshot is None:
            self._trigger(key)
            return None

        age = snapshot_age(snapshot, self._clock())
        if age > self.hard_ttl:
            logger.info("Top holders for %s/%s expired, rebuilding", *key)
            self._trigger(key)
            return None

        is_stale = age > self.stale_ttl
        if is_stale or ensure_fresh:
            logger.info("Triggering background refresh for %s/%s", *key)
            self._trigger(key)

        return CachedSnapshot(snapshot, is_stale)

    def _trigger(self, key):
        if key in self._builds:
            logger.debug("Build already running for %s/%s", *key)
            return
        task = asyncio.create_task(self._build(key))
        self._builds[key] = task
        task.add_done_callback(lambda _: self._builds.pop(key, None))

    async def _build(self, key):
        chain, pool_id = key
        logger.info("Starting background build for %s/%s", chain, pool_id)
        try:
            await self.sync.sync_top_holders(pool_id)
            logger.info("Background build completed for %s/%s", chain, pool_id)
        except Exception as e:
            logger.error("Background build failed for %s/%s: %s", chain, pool_id, e)

    async def invalidate(self, pool_id):
        """Rebuild now and return the new snapshot. Errors propagate."""
        logger.info("Invalidating top holders for pool %s", pool_id)
        return await self.sync.sync_top_holders(pool_id)

    def is_building(self, pool_id):
        return any(key[1] == str(pool_id) for key in self._builds)

    def metrics(self):
        return {
            "running_builds": len(self._builds),
            "build_queue": [f"{chain}:{pool_id}" for chain, pool_id in self._builds],
        }

    async def drain(self):
        """Wait for every background build to finish."""
        while self._builds:
            await asyncio.gather(*list(self._builds.values()))

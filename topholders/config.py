"""
Configuration for the top holders sync.

Protocol constants live at module level. Everything that varies per
deployment (RPC endpoints, data directory, flags) is read from the
environment into a SyncConfig.
"""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Snapshot size and pagination bounds
MAX_HOLDERS = 20
MAX_PAGES = 100  # Prevent runaway costs
PAGE_SIZE = 1000
RATE_LIMIT_SEC = 0.1  # Delay before every upstream request

# Recency fallback when no better starting block is known
FALLBACK_DAYS = 7
BLOCKS_PER_DAY = {
    "ethereum": 7200,  # ~12s blocks
    "base": 43200,  # ~2s blocks
}
DEFAULT_BLOCKS_PER_DAY = 43200

# Cache TTLs for stored snapshots
STALE_TTL_SEC = 60 * 60
HARD_TTL_SEC = 24 * 60 * 60

# Chains served by the shared ALCHEMY_RPC_URL unless overridden
DEFAULT_CHAINS = ("ethereum", "base")

DEFAULT_FLAGS = {
    "asset_transfers": True,
    "creation_block_probe": False,
}


@dataclass(frozen=True)
class SyncConfig:
    rpc_urls: Mapping[str, str] = field(default_factory=dict)
    data_dir: str = "data"
    max_pages: int = MAX_PAGES
    page_size: int = PAGE_SIZE
    rate_limit: float = RATE_LIMIT_SEC
    max_holders: int = MAX_HOLDERS
    sync_timeout: Optional[float] = None
    request_timeout: float = 30.0
    flags: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_FLAGS)))

    def rpc_url(self, chain):
        return self.rpc_urls.get(chain.lower())

    @property
    def snapshot_dir(self):
        return os.path.join(self.data_dir, "snapshots", "top-holders")

    @property
    def pools_file(self):
        return os.path.join(self.data_dir, "pools.json")

    @property
    def creation_info_file(self):
        return os.path.join(self.data_dir, "creation-info.json")


def flag_enabled(config: SyncConfig, name: str) -> bool:
    """Look up a feature flag. Unknown flags are off."""
    return bool(config.flags.get(name, False))


def blocks_per_day(chain: str) -> int:
    return BLOCKS_PER_DAY.get(chain.lower(), DEFAULT_BLOCKS_PER_DAY)


def parse_flags(raw: Optional[str]) -> Mapping[str, bool]:
    """
    Parse a flag override string such as "creation_block_probe,-asset_transfers".
    A leading '-' disables a flag. Unlisted flags keep their defaults.
    """
    flags = dict(DEFAULT_FLAGS)
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        if item.startswith("-"):
            flags[item[1:]] = False
        else:
            flags[item.lstrip("+")] = True
    return MappingProxyType(flags)


def load_config(env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """Build a SyncConfig from the environment (and .env when reading os.environ)."""
    if env is None:
        load_dotenv()
        env = os.environ

    rpc_urls = {}
    shared = env.get("ALCHEMY_RPC_URL")
    if shared:
        for chain in DEFAULT_CHAINS:
            rpc_urls[chain] = shared

    # Per-chain overrides, e.g. ALCHEMY_RPC_URL_BASE
    prefix = "ALCHEMY_RPC_URL_"
    for key, value in env.items():
        if key.startswith(prefix) and value:
            rpc_urls[key[len(prefix):].lower()] = value

    timeout = env.get("TOP_HOLDERS_SYNC_TIMEOUT")

    return SyncConfig(
        rpc_urls=MappingProxyType(rpc_urls),
        data_dir=env.get("TOP_HOLDERS_DATA_DIR", "data"),
        max_pages=int(env.get("TOP_HOLDERS_MAX_PAGES", MAX_PAGES)),
        rate_limit=float(env.get("TOP_HOLDERS_RATE_LIMIT", RATE_LIMIT_SEC)),
        sync_timeout=float(timeout) if timeout else None,
        flags=parse_flags(env.get("TOP_HOLDERS_FLAGS")),
    )

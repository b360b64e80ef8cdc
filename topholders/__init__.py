"""
Top holder reconstruction for pool tokens.

Replays ERC-20 Transfer events from an Alchemy endpoint, nets balances,
and keeps a ranked snapshot of the largest holders per pool.
"""

from .config import SyncConfig, flag_enabled, load_config
from .errors import (
    ConfigurationError,
    FeatureDisabledError,
    NotFoundError,
    SyncInProgressError,
    SyncTimeoutError,
    TopHoldersError,
    UpstreamError,
    WindowContiguityError,
)
from .models import Holder, Pool, Snapshot, SnapshotMetadata, Transfer
from .sync import TopHoldersSync

__all__ = [
    "ConfigurationError",
    "FeatureDisabledError",
    "Holder",
    "NotFoundError",
    "Pool",
    "Snapshot",
    "SnapshotMetadata",
    "SyncConfig",
    "SyncInProgressError",
    "SyncTimeoutError",
    "TopHoldersError",
    "TopHoldersSync",
    "Transfer",
    "UpstreamError",
    "WindowContiguityError",
    "flag_enabled",
    "load_config",
]

__version__ = "0.1.0"

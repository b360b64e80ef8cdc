"""
JSON file backed stores: pool registry, creation block index and snapshots.

Layout under the data directory:
    pools.json                               [{id, chain, poolAddress, tokenPair}, ...]
    creation-info.json                       {contractAddress: {blockNumber}}
    snapshots/top-holders/<chain>/<id>.json  one Snapshot per pool
"""

import json
import logging
import os
import tempfile

from .models import Pool, Snapshot

logger = logging.getLogger(__name__)


def _read_json(path):
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        return None


def _safe_segment(value):
    value = str(value)
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"Invalid path segment: {value!r}")
    return value


class PoolRegistry:
    def __init__(self, path):
        self.path = path

    def _load(self):
        data = _read_json(self.path) or []
        return [Pool.from_dict(p) for p in data]

    def get(self, pool_id):
        for pool in self._load():
            if pool.id == str(pool_id):
                return pool
        return None

    def all(self):
        return self._load()


class CreationBlockIndex:
    def __init__(self, path):
        self.path = path

    def get(self, contract_address):
        """Deployment block for a contract, or None if it is not recorded."""
        try:
            info = _read_json(self.path) or {}
        except (OSError, ValueError) as e:
            logger.warning("Could not read creation info %s: %s", self.path, e)
            return None

        # Keys may be stored checksummed or lower-cased
        entry = info.get(contract_address) or info.get(contract_address.lower())
        if entry is None:
            lowered = contract_address.lower()
            entry = next((v for k, v in info.items() if k.lower() == lowered), None)
        if not entry or not entry.get("blockNumber"):
            return None
        return int(entry["blockNumber"])


class SnapshotStore:
    def __init__(self, root):
        self.root = root

    def path(self, chain, pool_id):
        return os.path.join(self.root, _safe_segment(chain), f"{_safe_segment(pool_id)}.json")

    def load(self, chain, pool_id):
        path = self.path(chain, pool_id)
        try:
            data = _read_json(path)
        except ValueError as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, e)
            return None
        if data is None:
            return None
        try:
            return Snapshot.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed snapshot %s: %r", path, e)
            return None

    def save(self, chain, pool_id, snapshot):
        path = self.path(chain, pool_id)
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)

        # Write then rename so readers never see a half written file
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        return path

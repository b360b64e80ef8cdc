import json
from decimal import Decimal

import pytest

from conftest import CONTRACT, addr
from topholders.models import Holder, Snapshot, SnapshotMetadata
from topholders.store import CreationBlockIndex, PoolRegistry, SnapshotStore


def make_snapshot(ledger=None):
    return Snapshot(
        updated_at="2025-01-01T00:00:00+00:00",
        token_address=CONTRACT,
        total_supply=10**24,
        holders=[Holder(addr(1), 6 * 10**23, Decimal("60.00")), Holder(addr(2), 4 * 10**23, Decimal("40.00"))],
        metadata=SnapshotMetadata("ethereum", "pool-1", 2, 100, 200, 15, 1, True),
        ledger=ledger,
    )


def test_save_and_load(tmp_path):
    store = SnapshotStore(str(tmp_path))
    snapshot = make_snapshot(ledger={addr(1): 6 * 10**23, addr(2): 4 * 10**23})

    path = store.save("ethereum", "pool-1", snapshot)
    loaded = store.load("ethereum", "pool-1")

    assert path == str(tmp_path / "ethereum" / "pool-1.json")
    assert loaded == snapshot
    # Balances stay exact decimal strings on disk
    raw = json.loads((tmp_path / "ethereum" / "pool-1.json").read_text())
    assert raw["holders"][0]["balance"] == "600000000000000000000000"
    assert raw["ledger"][addr(2)] == "400000000000000000000000"
    assert list(tmp_path.joinpath("ethereum").iterdir()) == [tmp_path / "ethereum" / "pool-1.json"]


def test_load_missing_snapshot(tmp_path):
    assert SnapshotStore(str(tmp_path)).load("base", "nope") is None


def test_legacy_snapshot_seeds_from_holders(tmp_path):
    store = SnapshotStore(str(tmp_path))
    store.save("ethereum", "pool-1", make_snapshot())

    loaded = store.load("ethereum", "pool-1")

    assert loaded.ledger is None
    assert loaded.balances() == {addr(1): 6 * 10**23, addr(2): 4 * 10**23}


@pytest.mark.parametrize("content", [
    "{not json",
    "{}",
    "[]",
    json.dumps({"updatedAt": "2025-01-01T00:00:00+00:00", "tokenAddress": CONTRACT, "holders": []}),
    json.dumps({"updatedAt": "2025-01-01T00:00:00+00:00", "tokenAddress": CONTRACT, "holders": [],
                "metadata": {"chainId": "ethereum", "poolId": "pool-1", "fromBlock": "x", "toBlock": 2}}),
])
def test_unreadable_snapshot_is_ignored(tmp_path, content):
    (tmp_path / "ethereum").mkdir()
    (tmp_path / "ethereum" / "pool-1.json").write_text(content)

    assert SnapshotStore(str(tmp_path)).load("ethereum", "pool-1") is None


@pytest.mark.parametrize("pool_id", ["../escape", "", ".."])
def test_rejects_path_traversal(tmp_path, pool_id):
    with pytest.raises(ValueError):
        SnapshotStore(str(tmp_path)).path("ethereum", pool_id)


def test_pool_registry(data_dir):
    registry = PoolRegistry(str(data_dir / "pools.json"))

    pool = registry.get("pool-1")
    assert pool.chain == "ethereum"
    assert pool.pool_address == CONTRACT
    assert registry.get("no-address").pool_address is None
    assert registry.get("unknown") is None
    assert [p.id for p in registry.all()] == ["pool-1", "pool-base", "no-address", "bad-chain"]


def test_pool_registry_without_file(tmp_path):
    assert PoolRegistry(str(tmp_path / "pools.json")).all() == []


def test_creation_block_lookup_ignores_case(tmp_path):
    path = tmp_path / "creation-info.json"
    path.write_text(json.dumps({
        "0xAbC0000000000000000000000000000000000001": {"blockNumber": 42},
        addr(2): {"blockNumber": None},
    }))
    index = CreationBlockIndex(str(path))

    assert index.get("0xabc0000000000000000000000000000000000001") == 42
    assert index.get(addr(2)) is None
    assert index.get(addr(3)) is None
    assert CreationBlockIndex(str(tmp_path / "missing.json")).get(addr(1)) is None

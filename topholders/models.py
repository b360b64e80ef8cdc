"""
Data model for holder snapshots.

Balances are ints end to end and are written to JSON as decimal strings.
Only percentage_of_supply is a limited precision Decimal.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Dict, List, Optional


def _parse_int(value, default=0):
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if value.lower().startswith("0x"):
        return int(value, 16)
    try:
        return int(value)
    except ValueError:
        # Decimal token amounts are floored to whole units
        try:
            return int(Decimal(value).to_integral_value(rounding=ROUND_FLOOR))
        except InvalidOperation:
            raise ValueError(f"Invalid integer amount: {value!r}")


@dataclass(frozen=True)
class Transfer:
    from_address: str
    to_address: str
    value: int
    block_number: int

    @classmethod
    def from_alchemy(cls, record):
        """Parse an alchemy_getAssetTransfers record."""
        from_address, to_address = record.get("from"), record.get("to")
        if not from_address or not to_address:
            raise ValueError(f"Transfer record without from/to address: {record!r}")
        raw = (record.get("rawContract") or {}).get("value")
        value = _parse_int(raw) if raw else _parse_int(record.get("value"))
        return cls(
            from_address=from_address.lower(),
            to_address=to_address.lower(),
            value=value,
            block_number=_parse_int(record.get("blockNum")),
        )


@dataclass(frozen=True)
class Pool:
    id: str
    chain: str
    pool_address: Optional[str]
    token_pair: str = ""

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data["id"]),
            chain=str(data.get("chain", "")).lower(),
            pool_address=data.get("poolAddress") or None,
            token_pair=data.get("tokenPair", ""),
        )


@dataclass(frozen=True)
class Holder:
    address: str
    balance: int
    percentage_of_supply: Decimal = Decimal("0")

    def to_dict(self):
        return {
            "address": self.address,
            "balance": str(self.balance),
            "percentageOfSupply": float(self.percentage_of_supply),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            address=data["address"].lower(),
            balance=int(data["balance"]),
            percentage_of_supply=Decimal(str(data.get("percentageOfSupply", 0))),
        )


@dataclass
class SnapshotMetadata:
    chain_id: str
    pool_id: str
    transfers_processed: int
    from_block: int
    to_block: int
    processing_time_ms: int = 0
    pages_fetched: int = 0
    complete: bool = True

    def to_dict(self):
        return {
            "chainId": self.chain_id,
            "poolId": self.pool_id,
            "transfersProcessed": self.transfers_processed,
            "fromBlock": self.from_block,
            "toBlock": self.to_block,
            "processingTimeMs": self.processing_time_ms,
            "pagesFetched": self.pages_fetched,
            "complete": self.complete,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            chain_id=data["chainId"],
            pool_id=data["poolId"],
            transfers_processed=int(data.get("transfersProcessed", 0)),
            from_block=int(data["fromBlock"]),
            to_block=int(data["toBlock"]),
            processing_time_ms=int(data.get("processingTimeMs", 0)),
            pages_fetched=int(data.get("pagesFetched", 0)),
            complete=bool(data.get("complete", True)),
        )


@dataclass
class Snapshot:
    updated_at: str
    token_address: str
    total_supply: Optional[int]
    holders: List[Holder]
    metadata: SnapshotMetadata
    ledger: Optional[Dict[str, int]] = field(default=None, repr=False)

    def to_dict(self):
        data = {
            "updatedAt": self.updated_at,
            "tokenAddress": self.token_address,
            "holders": [h.to_dict() for h in self.holders],
            "metadata": self.metadata.to_dict(),
        }
        if self.total_supply is not None:
            data["totalSupply"] = str(self.total_supply)
        if self.ledger is not None:
            data["ledger"] = {addr: str(bal) for addr, bal in self.ledger.items()}
        return data

    @classmethod
    def from_dict(cls, data):
        supply = data.get("totalSupply")
        ledger = data.get("ledger")
        return cls(
            updated_at=data["updatedAt"],
            token_address=data["tokenAddress"],
            total_supply=int(supply) if supply is not None else None,
            holders=[Holder.from_dict(h) for h in data.get("holders", [])],
            metadata=SnapshotMetadata.from_dict(data["metadata"]),
            ledger={addr.lower(): int(bal) for addr, bal in ledger.items()} if ledger is not None else None,
        )

    def balances(self):
        """Balances to seed an incremental sync with."""
        if self.ledger is not None:
            return dict(self.ledger)
        return {h.address: h.balance for h in self.holders}

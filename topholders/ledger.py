"""
Balance netting over a Transfer log.

Pure functions: no I/O, no logging. Balances are plain ints so nothing is
lost to floating point.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .config import MAX_HOLDERS, ZERO_ADDRESS
from .models import Holder, Transfer

TWO_PLACES = Decimal("0.01")


def apply_transfers(transfers: Iterable[Transfer], contract_address: str,
                    balances: Optional[Dict[str, int]] = None) -> Dict[str, int]:
    """
    Net transfers into a balance map and drop every address left at or below zero.

    The zero address (mint/burn) and the token contract itself are never
    holders. When balances is given it is used as the starting point and is
    not modified.
    """
    excluded = {ZERO_ADDRESS, contract_address.lower()}
    ledger = dict(balances or {})

    for transfer in transfers:
        if transfer.from_address not in excluded:
            ledger[transfer.from_address] = ledger.get(transfer.from_address, 0) - transfer.value
        if transfer.to_address not in excluded:
            ledger[transfer.to_address] = ledger.get(transfer.to_address, 0) + transfer.value

    return {addr: bal for addr, bal in ledger.items() if bal > 0}


def percentage_of_supply(balance: int, total_supply: Optional[int]) -> Decimal:
    """Share of supply in percent, two places, rounded half up. 0 when supply is unknown."""
    if not total_supply:
        return Decimal("0")
    # Basis points in exact integer arithmetic, then shift two places
    bps, remainder = divmod(balance * 10000, total_supply)
    if remainder * 2 >= total_supply:
        bps += 1
    return Decimal(bps).scaleb(-2).quantize(TWO_PLACES)


def rank_holders(balances: Dict[str, int], total_supply: Optional[int] = None,
                 limit: int = MAX_HOLDERS) -> List[Holder]:
    # sorted() is stable, so ties keep ledger insertion order
    ranked = sorted(balances.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [
        Holder(address=addr, balance=bal, percentage_of_supply=percentage_of_supply(bal, total_supply))
        for addr, bal in ranked
    ]

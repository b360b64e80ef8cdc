from decimal import Decimal

from conftest import CONTRACT, addr, mint, send
from topholders.config import ZERO_ADDRESS
from topholders.ledger import apply_transfers, percentage_of_supply, rank_holders


def test_nets_senders_and_receivers():
    a, b, c = addr(1), addr(2), addr(3)
    transfers = [mint(a, 100, 1), send(a, b, 30, 2), send(b, c, 10, 3), send(c, a, 5, 4)]

    assert apply_transfers(transfers, CONTRACT) == {a: 75, b: 20, c: 5}


def test_balance_is_conserved_without_mint_or_burn():
    seed = {addr(1): 500, addr(2): 300}
    transfers = [send(addr(1), addr(3), 120, 1), send(addr(2), addr(4), 300, 2), send(addr(3), addr(1), 20, 3)]

    balances = apply_transfers(transfers, CONTRACT, seed)

    assert sum(balances.values()) == sum(seed.values())
    assert addr(2) not in balances


def test_burn_and_contract_transfers_are_excluded():
    a = addr(1)
    transfers = [mint(a, 100, 1), send(a, ZERO_ADDRESS, 40, 2), send(a, CONTRACT, 10, 3)]

    balances = apply_transfers(transfers, CONTRACT.upper().replace("0X", "0x"))

    assert balances == {a: 50}


def test_seed_is_not_mutated():
    seed = {addr(1): 10}
    apply_transfers([send(addr(1), addr(2), 10, 1)], CONTRACT, seed)
    assert seed == {addr(1): 10}


def test_rank_keeps_insertion_order_on_ties():
    balances = {addr(3): 5, addr(1): 9, addr(2): 5}

    ranked = rank_holders(balances, limit=3)

    assert [h.address for h in ranked] == [addr(1), addr(3), addr(2)]


def test_percentage_rounding():
    assert percentage_of_supply(70, 150) == Decimal("46.67")
    assert percentage_of_supply(50, 150) == Decimal("33.33")
    assert percentage_of_supply(1, 3) == Decimal("33.33")
    assert percentage_of_supply(2, 3) == Decimal("66.67")
    assert percentage_of_supply(10**30, 10**30) == Decimal("100.00")
    assert percentage_of_supply(5, None) == Decimal("0")
    assert percentage_of_supply(5, 0) == Decimal("0")


def test_percentage_matches_basis_points_for_large_balances():
    supply = 123456789 * 10**18
    balance = 987654 * 10**18
    expected = Decimal(balance * 10000 // supply) / 100
    assert abs(percentage_of_supply(balance, supply) - expected) <= Decimal("0.01")

import random
import threading
from collections import Counter

from conftest import ScriptedDist
from economy.ledger import LedgerStore
from economy.slots import (
    DEFAULT_TICKETS, NO_TICKETS_MSG, PAYTABLE, REACT_SYMBOLS, WIN_SYMBOLS,
    SlotMachine, Tier,
)


def test_declines_without_tickets(tickets, accounts, machine):
    tickets.set(7, 0)
    accounts.set(7, 300)

    assert machine.pull(7) == NO_TICKETS_MSG
    assert tickets.get_or_default(7, DEFAULT_TICKETS) == 0
    assert accounts.get_or_default(7, 0) == 300


def test_declined_pull_does_not_create_account(tickets, accounts, machine):
    tickets.set(7, 0)
    machine.pull(7)
    assert 7 not in accounts


def test_fresh_user_starts_with_fifty_tickets(tickets, accounts, machine):
    result = machine.spin(11)
    assert result["success"]
    assert result["tickets"] == 49
    assert tickets.get_or_default(11, DEFAULT_TICKETS) == 49
    assert accounts.get_or_default(11, 0) == result["payout"]


def test_pull_debits_one_and_credits_payout(tickets, accounts, machine):
    tickets.set(3, 10)
    accounts.set(3, 1000)
    result = machine.spin(3)

    assert tickets.get_or_default(3, DEFAULT_TICKETS) == 9
    assert accounts.get_or_default(3, 0) == 1000 + PAYTABLE[result["tier"]]["payout"]
    assert result["balance"] == 1000 + result["payout"]


def test_jackpot_render(tickets, accounts):
    machine = SlotMachine(tickets, accounts, dist=ScriptedDist([Tier.JACKPOT]),
                          rng=random.Random(3))
    text = machine.pull(1)

    win = WIN_SYMBOLS[Tier.JACKPOT]
    assert f"|{win}|{win}|{win}|" in text.splitlines()
    assert text.endswith(f"{REACT_SYMBOLS[Tier.JACKPOT]}, Won 5000 Units!")
    assert accounts.get_or_default(1, 0) == 5000


def test_render_places_win_row(tickets, accounts):
    machine = SlotMachine(tickets, accounts, dist=ScriptedDist([Tier.RARE]), rng=random.Random(0))
    result  = machine.spin(1)
    lines   = machine.render(result).splitlines()

    win = WIN_SYMBOLS[Tier.RARE]
    assert len(lines) == 4
    assert lines[result["row"]] == f"|{win}|{win}|{win}|"
    assert lines[3] == f"{REACT_SYMBOLS[Tier.RARE]}, Won 250 Units!"


def test_runs_out_after_fifty(tickets, accounts, machine):
    payouts = [machine.spin(5)["payout"] for _ in range(DEFAULT_TICKETS)]

    assert tickets.get_or_default(5, DEFAULT_TICKETS) == 0
    assert accounts.get_or_default(5, 0) == sum(payouts)
    assert machine.pull(5) == NO_TICKETS_MSG
    assert accounts.get_or_default(5, 0) == sum(payouts)


def test_pull_is_flushed(db_root, machine):
    machine.pull(8)
    assert LedgerStore(db_root, "tickets").get_or_default(8, DEFAULT_TICKETS) == 49


def test_units(accounts, machine):
    assert machine.units(4) == "You have 0 Units."
    accounts.set(4, 2500)
    assert machine.units(4) == "You have 2500 Units."


def test_concurrent_users_stay_independent(tickets, accounts, machine):
    won = {1: [], 2: []}

    def play(user):
        for _ in range(20):
            won[user].append(machine.spin(user)["payout"])

    threads = [threading.Thread(target=play, args=(u,)) for u in won]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for user, payouts in won.items():
        assert tickets.get_or_default(user, DEFAULT_TICKETS) == 30
        assert accounts.get_or_default(user, 0) == sum(payouts)


def test_concurrent_pulls_same_user_never_double_spend(tickets, accounts, machine):
    tickets.set(9, 5)
    results = []

    def play():
        for _ in range(5):
            results.append(machine.spin(9))

    threads = [threading.Thread(target=play) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    wins = [r for r in results if r["success"]]
    assert len(wins) == 5
    assert tickets.get_or_default(9, DEFAULT_TICKETS) == 0
    assert accounts.get_or_default(9, 0) == sum(r["payout"] for r in wins)


# chi-square critical values at df=2
CHI2_ROWS_P001  = 13.816
CHI2_ROWS_P0001 = 18.420


def _row_chi2(rows: list[int]) -> float:
    counts   = Counter(rows)
    expected = len(rows) / 3
    return sum((counts[r] - expected) ** 2 / expected for r in range(3))


def test_win_row_is_uniform_overall_and_per_tier(monkeypatch, tickets, accounts):
    monkeypatch.setattr(tickets, "flush", lambda: None)
    monkeypatch.setattr(accounts, "flush", lambda: None)
    n = 30_000
    tickets.set(1, n)
    machine = SlotMachine(tickets, accounts, rng=random.Random(20240602))

    by_tier = {tier: [] for tier in Tier}
    for _ in range(n):
        result = machine.spin(1)
        by_tier[result["tier"]].append(result["row"])

    rows = [r for bucket in by_tier.values() for r in bucket]
    assert _row_chi2(rows) < CHI2_ROWS_P001

    for tier, bucket in by_tier.items():
        # at least 5 expected hits per row
        if len(bucket) >= 15:
            assert _row_chi2(bucket) < CHI2_ROWS_P0001, tier

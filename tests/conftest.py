import itertools
import random

import pytest

from economy.ledger import LedgerStore
from economy.slots import PAYTABLE, SlotMachine, Tier


class ScriptedDist:
    """Stands in for RewardDistribution: plays back a fixed list of tiers, then cycles all tiers."""

    def __init__(self, script):
        self.paytable = PAYTABLE
        self._draws   = itertools.chain(script, itertools.cycle(list(Tier)))

    def sample(self) -> Tier:
        return next(self._draws)

    def payout(self, tier: Tier) -> int:
        return PAYTABLE[tier]["payout"]


class FixedRandom(random.Random):
    """randrange() returns queued values in order."""

    def __init__(self, values):
        super().__init__(0)
        self.values = list(values)

    def randrange(self, *args, **kwargs):
        return self.values.pop(0)


@pytest.fixture
def db_root(tmp_path):
    return tmp_path / "db"


@pytest.fixture
def tickets(db_root):
    return LedgerStore(db_root, "tickets")


@pytest.fixture
def accounts(db_root):
    return LedgerStore(db_root, "account")


@pytest.fixture
def machine(tickets, accounts):
    return SlotMachine(tickets, accounts, rng=random.Random(1234))

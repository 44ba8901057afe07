"""
Slot Machine Engine
Weighted reward draw, decorative reels, 3x3 grid and the pull itself.
"""

import logging
import random
from enum import Enum

from economy.ledger import LedgerStore

log = logging.getLogger("slots.machine")

# ─── Constants ────────────────────────────────────────────────────────────────

DEFAULT_TICKETS  = 50
DEFAULT_UNITS    = 0
GRID_ROWS        = 3
DECORATIVE_COUNT = 6
MAX_REPEAT       = 2

NO_TICKETS_MSG   = "❌Unfortunately, you do not have any tickets to perform pulls."


class Tier(Enum):
    VERY_COMMON = "very_common"
    COMMON      = "common"
    UNCOMMON    = "uncommon"
    RARE        = "rare"
    VERY_RARE   = "very_rare"
    EPIC        = "epic"
    LEGENDARY   = "legendary"
    JACKPOT     = "jackpot"


# Declaration order is the draw order for the cumulative walk.
PAYTABLE = {
    Tier.VERY_COMMON: {"weight": 100, "payout": 0},
    Tier.COMMON:      {"weight": 95,  "payout": 25},
    Tier.UNCOMMON:    {"weight": 75,  "payout": 100},
    Tier.RARE:        {"weight": 60,  "payout": 250},
    Tier.VERY_RARE:   {"weight": 50,  "payout": 500},
    Tier.EPIC:        {"weight": 30,  "payout": 1000},
    Tier.LEGENDARY:   {"weight": 10,  "payout": 2500},
    Tier.JACKPOT:     {"weight": 1,   "payout": 5000},
}

# ─── Symbols ──────────────────────────────────────────────────────────────────

WIN_SYMBOLS = {
    Tier.VERY_COMMON: "🐶",
    Tier.COMMON:      "🍓",
    Tier.UNCOMMON:    "😃",
    Tier.RARE:        "🎤",
    Tier.VERY_RARE:   "🏷️",
    Tier.EPIC:        "🏐",
    Tier.LEGENDARY:   "🌈",
    Tier.JACKPOT:     "🐛",
}

# Same as WIN_SYMBOLS except the jackpot, which only shows its special glyph on the win row.
REEL_SYMBOLS = {**WIN_SYMBOLS, Tier.JACKPOT: "🐞"}

REACT_SYMBOLS = {
    Tier.VERY_COMMON: "😠",
    Tier.COMMON:      "😴",
    Tier.UNCOMMON:    "😒",
    Tier.RARE:        "🤔",
    Tier.VERY_RARE:   "🏆",
    Tier.EPIC:        "🏆",
    Tier.LEGENDARY:   "🏆",
    Tier.JACKPOT:     "🎰",
}


class SymbolSet:
    def __init__(self, win: dict = None, reel: dict = None, react: dict = None):
        self.win   = dict(win or WIN_SYMBOLS)
        self.reel  = dict(reel or REEL_SYMBOLS)
        self.react = dict(react or REACT_SYMBOLS)
        for table in (self.win, self.reel, self.react):
            missing = set(Tier) - set(table)
            if missing:
                raise ValueError(f"symbol table is missing tiers: {sorted(t.value for t in missing)}")


# ══════════════════════════════════════════════════════════════════════════════
# REWARD DISTRIBUTION
# ══════════════════════════════════════════════════════════════════════════════

class RewardDistribution:
    """Categorical draw over the paytable, weights summed once."""

    def __init__(self, paytable: dict = None, rng: random.Random = None):
        self.paytable = paytable or PAYTABLE
        self.rng      = rng or random.Random()
        self.tiers    = list(self.paytable)
        self.weights  = [self.paytable[t]["weight"] for t in self.tiers]
        for tier, w in zip(self.tiers, self.weights):
            if isinstance(w, bool) or not isinstance(w, int) or w <= 0:
                raise ValueError(f"weight for {tier} must be a positive integer, got {w!r}")
        self.total_weight = sum(self.weights)

    def sample(self) -> Tier:
        roll = self.rng.randrange(self.total_weight)
        acc  = 0
        for tier, w in zip(self.tiers, self.weights):
            acc += w
            if roll < acc:
                return tier
        raise AssertionError("roll outside total weight")

    def payout(self, tier: Tier) -> int:
        return self.paytable[tier]["payout"]


# ══════════════════════════════════════════════════════════════════════════════
# DECORATIVE REELS
# ══════════════════════════════════════════════════════════════════════════════

def generate_decorative(dist: RewardDistribution, symbol_for, count: int = DECORATIVE_COUNT,
                        strict: bool = False) -> list:
    """
    Draw `count` filler symbols, rerolling a draw that would make a third in a row.

    The repeat counter is not reset by a reroll, so with strict=False an identical
    draw straight after a reroll pushes it past the limit and is kept: a run of
    three can still slip through. strict=True rejects every draw while the counter
    is at or above the limit, which caps runs at two.
    """
    out   = []
    last  = None
    same  = 0
    while len(out) < count:
        sym = symbol_for(dist.sample())
        if sym == last:
            same += 1
        else:
            same = 0
            last = sym

        if same == MAX_REPEAT or (strict and same > MAX_REPEAT):
            continue
        out.append(sym)
    return out


# ══════════════════════════════════════════════════════════════════════════════
# GRID LAYOUT
# ══════════════════════════════════════════════════════════════════════════════

def _row(symbols) -> str:
    return "|" + "|".join(symbols) + "|\n"


def layout(win_symbol, decorative: list, win_row: int) -> str:
    """Render the 3x3 grid. Filler is taken last-generated first."""
    if win_row not in range(GRID_ROWS):
        raise ValueError(f"winning row must be 0, 1 or 2, got {win_row!r}")
    if len(decorative) != DECORATIVE_COUNT:
        raise ValueError(f"need {DECORATIVE_COUNT} decorative symbols, got {len(decorative)}")

    filler = list(decorative)
    rows   = []
    for i in range(GRID_ROWS):
        if i == win_row:
            rows.append(_row([win_symbol] * 3))
        else:
            rows.append(_row([filler.pop() for _ in range(3)]))
    return "".join(rows)


# ══════════════════════════════════════════════════════════════════════════════
# PULL ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════════════

class SlotMachine:
    """
    Ties the ticket store, the account store and the draw together.

    A ticket is spent before anything else happens. If the process dies between
    the ticket debit and the account credit, the ticket is gone with no reward;
    both stores are flushed at the end of every pull to keep that window short.
    """

    def __init__(self, tickets: LedgerStore, accounts: LedgerStore,
                 dist: RewardDistribution = None, symbols: SymbolSet = None,
                 rng: random.Random = None, strict_reels: bool = False):
        self.tickets      = tickets
        self.accounts     = accounts
        self.rng          = rng or random.Random()
        self.dist         = dist or RewardDistribution(rng=self.rng)
        self.symbols      = symbols or SymbolSet()
        self.strict_reels = strict_reels

    def spin(self, user_id: int) -> dict:
        remaining = self.tickets.take_one(user_id, DEFAULT_TICKETS)
        if remaining is None:
            log.info("pull declined for %s: no tickets", user_id)
            return {"success": False, "error": NO_TICKETS_MSG}

        tier    = self.dist.sample()
        payout  = self.dist.payout(tier)
        balance = self.accounts.increment(user_id, payout, DEFAULT_UNITS)

        row   = self.rng.randrange(GRID_ROWS)
        reels = generate_decorative(self.dist, self.symbols.reel.__getitem__,
                                    strict=self.strict_reels)

        self.tickets.flush()
        self.accounts.flush()

        log.debug("pull %s: tier=%s payout=%d row=%d tickets=%d balance=%d",
                  user_id, tier.value, payout, row, remaining, balance)
        return {
            "success": True,
            "tier":    tier,
            "payout":  payout,
            "row":     row,
            "reels":   reels,
            "tickets": remaining,
            "balance": balance,
        }

    def render(self, result: dict) -> str:
        if not result["success"]:
            return result["error"]
        tier = result["tier"]
        grid = layout(self.symbols.win[tier], result["reels"], result["row"])
        return grid + f"{self.symbols.react[tier]}, Won {result['payout']} Units!"

    def pull(self, user_id: int) -> str:
        return self.render(self.spin(user_id))

    def units(self, user_id: int) -> str:
        return f"You have {self.accounts.get_or_default(user_id, DEFAULT_UNITS)} Units."

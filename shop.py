"""
Shop catalog and purchase strategies for EvoArena.

Two strategies resolve a shop visit:
  ContinuousMappingShop – the policy's shop output picks ONE catalog entry,
                          which is bought repeatedly while affordable.
                          Used by headless training episodes.
  GreedyShop            – repeatedly buys the affordable entry with the
                          best (value × priority) / cost ratio.
                          Used by live play.
"""

import math

from mathutil import clamp
from config import SHOP_CATALOG, INPUT_SIZE, CURRENCY_NORM


class ShopOption:
    """One purchasable upgrade."""

    __slots__ = ("name", "key", "amount", "cost", "value", "priority", "repeatable")

    def __init__(self, name: str, key: str, amount: int, cost: int,
                 value: float = None, priority: float = 1.0,
                 repeatable: bool = True):
        if cost <= 0:
            raise ValueError(f"shop option {key!r} must have a positive cost")
        self.name       = name
        self.key        = key
        self.amount     = amount
        self.cost       = cost
        self.value      = amount if value is None else value
        self.priority   = 1.0 if priority is None else priority
        self.repeatable = repeatable

    @property
    def score(self) -> float:
        return (self.value * self.priority) / self.cost

    def to_dict(self) -> dict:
        return {
            "name": self.name, "key": self.key, "amount": self.amount,
            "cost": self.cost, "value": self.value,
            "priority": self.priority, "repeatable": self.repeatable,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ShopOption":
        return cls(d["name"], d["key"], d["amount"], d["cost"],
                   value=d.get("value"), priority=d.get("priority", 1.0),
                   repeatable=d.get("repeatable", True))

    def __repr__(self):
        return f"ShopOption({self.key!r}, +{self.amount}, cost={self.cost})"


def default_catalog() -> list:
    """A fresh copy of the standard catalog."""
    return [ShopOption(name, key, amount, cost, priority=priority)
            for (name, key, amount, cost, priority) in SHOP_CATALOG]


def _as_options(options) -> list:
    return [o if isinstance(o, ShopOption) else ShopOption.from_dict(o)
            for o in options]


def cheapest_cost(options) -> float:
    options = _as_options(options)
    return min(o.cost for o in options) if options else math.inf


# ──────────────────────────────────────────────────────────────────────────────
# Purchase primitives
# ──────────────────────────────────────────────────────────────────────────────

def _buy(economy, option: ShopOption):
    economy.gold -= option.cost
    economy.add(option.key, option.amount)


def greedy_buy(economy, options) -> list:
    """
    Buy the affordable option with the highest (value × priority) / cost
    until nothing is affordable. Non-repeatable options drop out after one
    purchase. Gold strictly decreases each round, so the loop terminates.
    """
    remaining = _as_options(options)
    bought = []
    while True:
        affordable = [o for o in remaining if o.cost <= economy.gold]
        if not affordable:
            break
        best = max(affordable, key=lambda o: o.score)
        _buy(economy, best)
        bought.append(best)
        if not best.repeatable:
            remaining.remove(best)
    return bought


def continuous_shop_index(shop_value: float, num_options: int) -> int:
    """Map an unbounded shop signal onto a catalog index."""
    idx = math.floor(((math.tanh(shop_value) + 1.0) / 2.0) * num_options)
    return int(clamp(idx, 0, num_options - 1))


def shop_features(gold: int, input_size: int = INPUT_SIZE) -> list:
    """Minimal feature vector used when asking the policy for a shop choice."""
    features = [1.0, gold / CURRENCY_NORM]
    features += [0.0] * (input_size - len(features))
    return features


# ──────────────────────────────────────────────────────────────────────────────
# Strategies
# ──────────────────────────────────────────────────────────────────────────────

class ShopStrategy:
    """Resolves one shop visit. Subclasses implement purchase()."""

    name = "base"

    def purchase(self, policy, economy, options) -> list:
        raise NotImplementedError


class ContinuousMappingShop(ShopStrategy):
    name = "continuous"

    def purchase(self, policy, economy, options) -> list:
        options = _as_options(options)
        if not options:
            return []
        out = policy.forward(shop_features(economy.gold, policy.input_size))
        choice = options[continuous_shop_index(float(out[3]), len(options))]
        bought = []
        while economy.gold >= choice.cost:
            _buy(economy, choice)
            bought.append(choice)
            if not choice.repeatable:
                break
        return bought


class GreedyShop(ShopStrategy):
    name = "greedy"

    def purchase(self, policy, economy, options) -> list:
        return greedy_buy(economy, options)


SHOP_STRATEGIES = {
    ContinuousMappingShop.name: ContinuousMappingShop,
    GreedyShop.name:            GreedyShop,
}


def make_strategy(name: str) -> ShopStrategy:
    try:
        return SHOP_STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"unknown shop strategy {name!r}; "
                         f"choose from {sorted(SHOP_STRATEGIES)}") from None

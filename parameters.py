"""
Policy parameter containers for EvoArena.

A PolicyParameters bundle is the unit of persistence and of candidate
rollback. Its document form is JSON-compatible:

  {
    "W1": [[...] * INPUT_SIZE] * HIDDEN_SIZE,
    "b1": [...] * HIDDEN_SIZE,
    "W2": [[...] * HIDDEN_SIZE] * OUTPUT_SIZE,
    "b2": [...] * OUTPUT_SIZE,
    "bestFitness": float | null,     # null while nothing has been scored
    "sigma": float,
    "state": {"upgrades": {key: int}, "gold": int}
  }
"""

import math
import numpy as np

from errors import ValidationError
from mathutil import gauss_array
from config import INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE, INITIAL_SIGMA


# ──────────────────────────────────────────────────────────────────────────────
# Economy
# ──────────────────────────────────────────────────────────────────────────────

class EconomyState:
    """Upgrade counts plus the gold balance that pays for them."""

    __slots__ = ("upgrades", "gold")

    def __init__(self, upgrades: dict = None, gold: int = 0):
        self.upgrades = dict(upgrades) if upgrades else {}
        self.gold     = int(gold)

    def copy(self) -> "EconomyState":
        return EconomyState(self.upgrades, self.gold)

    def count(self, key: str) -> int:
        return self.upgrades.get(key, 0)

    def add(self, key: str, amount: int):
        self.upgrades[key] = self.upgrades.get(key, 0) + int(amount)

    def to_document(self) -> dict:
        return {"upgrades": dict(self.upgrades), "gold": self.gold}

    @classmethod
    def from_document(cls, doc) -> "EconomyState":
        if doc is None:
            return cls()
        if not isinstance(doc, dict):
            raise ValidationError("state must be an object")
        upgrades = doc.get("upgrades") or {}
        if not isinstance(upgrades, dict):
            raise ValidationError("state.upgrades must be an object")
        clean = {}
        for key, value in upgrades.items():
            if not isinstance(key, str) or not _is_int_like(value) or value < 0:
                raise ValidationError(f"bad upgrade entry {key!r}: {value!r}")
            clean[key] = int(value)
        gold = doc.get("gold", 0) or 0
        if not _is_int_like(gold) or gold < 0:
            raise ValidationError(f"state.gold must be a non-negative integer, got {gold!r}")
        return cls(clean, int(gold))

    def __eq__(self, other):
        if not isinstance(other, EconomyState):
            return NotImplemented
        return self.upgrades == other.upgrades and self.gold == other.gold

    def __repr__(self):
        return f"EconomyState(upgrades={self.upgrades!r}, gold={self.gold})"


def _is_int_like(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, np.integer)):
        return True
    return isinstance(value, float) and value.is_integer()


# ──────────────────────────────────────────────────────────────────────────────
# Policy parameters
# ──────────────────────────────────────────────────────────────────────────────

class PolicyParameters:
    """Weights, biases and evolutionary bookkeeping of one MLP policy."""

    __slots__ = ("W1", "b1", "W2", "b2", "sigma", "best_fitness", "economy")

    def __init__(self, W1, b1, W2, b2, sigma: float = INITIAL_SIGMA,
                 best_fitness: float = -math.inf, economy: EconomyState = None):
        self.W1 = W1
        self.b1 = b1
        self.W2 = W2
        self.b2 = b2
        self.sigma        = float(sigma)
        self.best_fitness = float(best_fitness)
        self.economy      = economy if economy is not None else EconomyState()

    @property
    def shape(self) -> tuple:
        """(input_size, hidden_size, output_size)"""
        return self.W1.shape[1], self.W1.shape[0], self.W2.shape[0]

    def arrays(self) -> tuple:
        return self.W1, self.b1, self.W2, self.b2

    def copy(self) -> "PolicyParameters":
        """Deep copy; nothing mutable is shared with the original."""
        return PolicyParameters(
            self.W1.copy(), self.b1.copy(), self.W2.copy(), self.b2.copy(),
            self.sigma, self.best_fitness, self.economy.copy(),
        )

    def validate(self, input_size: int = INPUT_SIZE,
                 hidden_size: int = HIDDEN_SIZE,
                 output_size: int = OUTPUT_SIZE):
        """Raise ValidationError unless every array has the configured shape."""
        expected = {
            "W1": (hidden_size, input_size),
            "b1": (hidden_size,),
            "W2": (output_size, hidden_size),
            "b2": (output_size,),
        }
        for name, shape in expected.items():
            arr = getattr(self, name)
            if not isinstance(arr, np.ndarray) or arr.shape != shape:
                got = getattr(arr, "shape", type(arr).__name__)
                raise ValidationError(f"{name} has shape {got}, expected {shape}")
            if not np.all(np.isfinite(arr)):
                raise ValidationError(f"{name} contains non-finite values")
        if not math.isfinite(self.sigma) or self.sigma <= 0:
            raise ValidationError(f"sigma must be a positive number, got {self.sigma!r}")
        if math.isnan(self.best_fitness):
            raise ValidationError("bestFitness is NaN")
        if not isinstance(self.economy, EconomyState):
            raise ValidationError("economy must be an EconomyState")

    # ──────────────────────────────────────────────────────────────────────────

    def to_document(self) -> dict:
        best = self.best_fitness if math.isfinite(self.best_fitness) else None
        return {
            "W1": self.W1.tolist(),
            "b1": self.b1.tolist(),
            "W2": self.W2.tolist(),
            "b2": self.b2.tolist(),
            "bestFitness": best,
            "sigma": self.sigma,
            "state": self.economy.to_document(),
        }

    @classmethod
    def from_document(cls, doc, input_size: int = INPUT_SIZE,
                      hidden_size: int = HIDDEN_SIZE,
                      output_size: int = OUTPUT_SIZE) -> "PolicyParameters":
        """Build and validate parameters from a decoded JSON document."""
        if not isinstance(doc, dict):
            raise ValidationError("parameter document must be an object")
        missing = [k for k in ("W1", "b1", "W2", "b2") if k not in doc]
        if missing:
            raise ValidationError(f"parameter document is missing {missing}")

        arrays = {}
        for name in ("W1", "b1", "W2", "b2"):
            try:
                arrays[name] = np.array(doc[name], dtype=np.float64)
            except (TypeError, ValueError) as exc:
                # ragged or non-numeric nested lists
                raise ValidationError(f"{name} is not a numeric matrix: {exc}") from exc

        sigma = doc.get("sigma", INITIAL_SIGMA)
        best  = doc.get("bestFitness")
        if not isinstance(sigma, (int, float)) or isinstance(sigma, bool):
            raise ValidationError(f"sigma must be a number, got {sigma!r}")
        if best is None:
            best = -math.inf
        elif not isinstance(best, (int, float)) or isinstance(best, bool):
            raise ValidationError(f"bestFitness must be a number, got {best!r}")

        params = cls(arrays["W1"], arrays["b1"], arrays["W2"], arrays["b2"],
                     sigma=sigma, best_fitness=best,
                     economy=EconomyState.from_document(doc.get("state")))
        params.validate(input_size, hidden_size, output_size)
        return params

    def __repr__(self):
        i, h, o = self.shape
        return (f"PolicyParameters({i}→{h}→{o}, sigma={self.sigma:.4f}, "
                f"best={self.best_fitness:.2f}, gold={self.economy.gold})")


def random_parameters(input_size: int = INPUT_SIZE,
                      hidden_size: int = HIDDEN_SIZE,
                      output_size: int = OUTPUT_SIZE,
                      sigma: float = INITIAL_SIGMA,
                      rng=None) -> PolicyParameters:
    """Fresh parameters with weights scaled by 1/sqrt(fan_in) and zero biases."""
    if rng is None:
        rng = np.random.default_rng()
    W1 = gauss_array((hidden_size, input_size), rng) / math.sqrt(input_size)
    W2 = gauss_array((output_size, hidden_size), rng) / math.sqrt(hidden_size)
    return PolicyParameters(
        W1, np.zeros(hidden_size), W2, np.zeros(output_size), sigma=sigma,
    )

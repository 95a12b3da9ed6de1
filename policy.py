"""
Neural policy for EvoArena.

Topology: features (14) → hidden (tanh) → outputs (linear, 5)

The raw outputs are turned into a Decision:
  move          (tanh(o0), tanh(o1))     each in [-1, 1]
  shoot_prob    sigmoid(o2)
  shop_value    o3                       unbounded
  special_value o4                       unbounded, unused by the rules

Evolution is a (1+1)-ES with the classic step-size rule: an improvement
shrinks sigma, a failure widens it.
"""

import json
import math
import numpy as np

from errors import ValidationError, StorageError, NotFoundError
from mathutil import gauss_array, sigmoid
from parameters import PolicyParameters, random_parameters
from shop import greedy_buy
from config import (INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE, INITIAL_SIGMA,
                    SIGMA_MIN, SIGMA_MAX, SIGMA_DECAY, SIGMA_GROWTH)


class Decision:
    """Action signals produced from one forward pass."""

    __slots__ = ("move", "shoot_prob", "shop_value", "special_value")

    def __init__(self, move, shoot_prob, shop_value, special_value):
        self.move          = move
        self.shoot_prob    = shoot_prob
        self.shop_value    = shop_value
        self.special_value = special_value

    def to_dict(self) -> dict:
        return {
            "move":          [self.move[0], self.move[1]],
            "shootProb":     self.shoot_prob,
            "shopValue":     self.shop_value,
            "specialValue":  self.special_value,
        }


class NeuralPolicy:
    """
    Fixed-topology MLP plus its evolutionary bookkeeping and persistence.
    """

    def __init__(self, input_size: int = INPUT_SIZE,
                 hidden_size: int = HIDDEN_SIZE,
                 output_size: int = OUTPUT_SIZE,
                 sigma: float = INITIAL_SIGMA,
                 store=None, rng=None, params: PolicyParameters = None):
        self.input_size  = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size
        self.store       = store
        self.rng         = rng if rng is not None else np.random.default_rng()
        self.needs_save  = False
        self.last_revision = None

        if params is None:
            params = random_parameters(input_size, hidden_size, output_size,
                                       sigma=sigma, rng=self.rng)
        else:
            params.validate(input_size, hidden_size, output_size)
            params = params.copy()
        self._params = params

    @classmethod
    def from_parameters(cls, params: PolicyParameters, rng=None) -> "NeuralPolicy":
        """Detached policy around a copy of params (no store)."""
        i, h, o = params.shape
        return cls(i, h, o, rng=rng, params=params)

    # ──────────────────────────────────────────────────────────────────────────

    @property
    def params(self) -> PolicyParameters:
        return self._params

    @property
    def sigma(self) -> float:
        return self._params.sigma

    @sigma.setter
    def sigma(self, value: float):
        self._params.sigma = min(SIGMA_MAX, max(SIGMA_MIN, float(value)))

    @property
    def best_fitness(self) -> float:
        return self._params.best_fitness

    @property
    def economy(self):
        return self._params.economy

    # ──────────────────────────────────────────────────────────────────────────
    # Inference
    # ──────────────────────────────────────────────────────────────────────────

    def _prepare(self, inputs) -> np.ndarray:
        x = np.zeros(self.input_size, dtype=np.float64)
        raw = np.asarray(inputs, dtype=np.float64).ravel()[:self.input_size]
        x[:raw.size] = raw
        return x

    def forward(self, inputs) -> np.ndarray:
        """
        Args:
            inputs: up to input_size floats; shorter inputs are zero-padded

        Returns:
            float64 array of shape (output_size,), linear outputs
        """
        p = self._params
        hidden = np.tanh(p.W1 @ self._prepare(inputs) + p.b1)
        return p.W2 @ hidden + p.b2

    def decide(self, inputs) -> Decision:
        out = self.forward(inputs)
        return Decision(
            move          = (math.tanh(out[0]), math.tanh(out[1])),
            shoot_prob    = sigmoid(float(out[2])),
            shop_value    = float(out[3]),
            special_value = float(out[4]) if out.size > 4 else 0.0,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Evolution
    # ──────────────────────────────────────────────────────────────────────────

    def mutate(self, sigma: float = None):
        """Add N(0, sigma²) noise to every weight and bias, in place."""
        if sigma is None:
            sigma = self._params.sigma
        for arr in self._params.arrays():
            arr += gauss_array(arr.shape, self.rng) * sigma

    def try_update_best(self, fitness: float) -> bool:
        p = self._params
        if fitness > p.best_fitness:
            p.best_fitness = float(fitness)
            p.sigma = max(SIGMA_MIN, p.sigma * SIGMA_DECAY)
            self.needs_save = True
            return True
        p.sigma = min(SIGMA_MAX, p.sigma * SIGMA_GROWTH)
        return False

    # ──────────────────────────────────────────────────────────────────────────
    # Snapshots
    # ──────────────────────────────────────────────────────────────────────────

    def get_params(self) -> PolicyParameters:
        return self._params.copy()

    def set_params(self, params, keep_economy: bool = False):
        """
        Replace all parameters. Accepts PolicyParameters or a document dict.
        Shapes are checked before anything is replaced. With keep_economy the
        current EconomyState object stays in place, so live episodes spending
        it keep writing to the policy.
        """
        if isinstance(params, dict):
            params = PolicyParameters.from_document(
                params, self.input_size, self.hidden_size, self.output_size)
        elif isinstance(params, PolicyParameters):
            params.validate(self.input_size, self.hidden_size, self.output_size)
        else:
            raise ValidationError(f"cannot set parameters from {type(params).__name__}")
        params = params.copy()
        if keep_economy:
            params.economy = self._params.economy
        self._params = params

    # ──────────────────────────────────────────────────────────────────────────
    # Shop
    # ──────────────────────────────────────────────────────────────────────────

    def shop_buy_loop(self, options, economy=None) -> list:
        """Greedy purchases against economy (default: this policy's own)."""
        return greedy_buy(self._params.economy if economy is None else economy, options)

    # ──────────────────────────────────────────────────────────────────────────
    # Persistence
    # ──────────────────────────────────────────────────────────────────────────

    def save(self) -> bool:
        if self.store is None:
            return False
        try:
            revision = self.store.save(self._params.to_document())
        except StorageError as exc:
            print(f"  !! Could not save policy: {exc}")
            return False
        self.needs_save = False
        self.last_revision = revision
        return True

    def load_if_exists(self) -> bool:
        """Replace parameters with the stored ones; keep current ones on any failure."""
        if self.store is None:
            return False
        try:
            self.set_params(self.store.load())
        except NotFoundError:
            return False
        except (StorageError, ValidationError) as exc:
            print(f"  !! Ignoring saved policy: {exc}")
            return False
        return True

    def export_json(self) -> str:
        return json.dumps(self._params.to_document())

    def import_json(self, text: str) -> bool:
        try:
            doc = json.loads(text)
            self.set_params(doc)
        except (TypeError, ValueError, ValidationError) as exc:
            print(f"  !! Could not import policy: {exc}")
            return False
        return True

    def summary(self) -> str:
        p = self._params
        lines = [f"NeuralPolicy ({self.input_size}→{self.hidden_size}→{self.output_size})",
                 f"  sigma        {p.sigma:.4f}",
                 f"  best fitness {p.best_fitness:.2f}",
                 f"  gold         {p.economy.gold}"]
        for key, count in sorted(p.economy.upgrades.items()):
            lines.append(f"  upgrade      {key:<10} {count}")
        return "\n".join(lines)

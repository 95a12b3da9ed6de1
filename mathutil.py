"""
Small numeric helpers shared by the policy and the simulator.

Noise for mutation is drawn with the Box–Muller transform from a uniform
source; the adaptive step size is tuned against that noise shape.
"""

import math
import numpy as np


def gauss(rng=None) -> float:
    """One standard-normal sample via Box–Muller."""
    if rng is None:
        rng = np.random.default_rng()
    u = 0.0
    while u == 0.0:
        u = rng.random()
    v = 0.0
    while v == 0.0:
        v = rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def gauss_array(shape, rng=None) -> np.ndarray:
    """Array of standard-normal samples via Box–Muller."""
    if rng is None:
        rng = np.random.default_rng()
    # 1 - U lies in (0, 1], so the log is always finite
    u = 1.0 - rng.random(shape)
    v = rng.random(shape)
    return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def sigmoid(x: float) -> float:
    # split to avoid overflow in exp for large |x|
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def dist_sq(a, b) -> float:
    """Squared distance between two objects exposing .x and .y."""
    dx = a.x - b.x
    dy = a.y - b.y
    return dx * dx + dy * dy


def circles_overlap(a, b) -> bool:
    """Circle-circle test on squared distance vs summed radii."""
    r = a.radius + b.radius
    return dist_sq(a, b) < r * r


def nearest(origin, items):
    """Closest item to origin, or None if there are none."""
    best, best_d = None, math.inf
    for item in items:
        d = dist_sq(origin, item)
        if d < best_d:
            best, best_d = item, d
    return best


def k_nearest(origin, items, k: int) -> list:
    """Up to k items sorted by ascending distance from origin."""
    return sorted(items, key=lambda item: dist_sq(origin, item))[:k]

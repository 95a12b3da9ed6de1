"""
Arena World for EvoArena.

The world is a fixed-size rectangle holding one player, the live enemies
and the bullets in flight. It also exposes the helpers the simulator uses
for spawning and for building the policy's feature vector.
"""

import math
import numpy as np

from entities import Player, Enemy
from mathutil import k_nearest, nearest
from config import (WORLD_WIDTH, WORLD_HEIGHT, SPAWN_WEIGHTS, SPAWN_OFFSET,
                    INPUT_SIZE, NEAREST_ENEMIES, CURRENCY_NORM, KIND_CODES)


class World:
    """
    Owns every entity of one episode.
    """

    def __init__(self, width: float = WORLD_WIDTH, height: float = WORLD_HEIGHT,
                 seed: int = None, rng=None):
        self.width   = width
        self.height  = height
        self.rng     = rng if rng is not None else np.random.default_rng(seed)
        self.player  = None
        self.enemies = []
        self.bullets = []

    # ──────────────────────────────────────────────────────────────────────────
    # Placement helpers
    # ──────────────────────────────────────────────────────────────────────────

    def place_player(self, economy=None) -> Player:
        """Create the episode's player at the centre of the field."""
        self.player = Player(self.width / 2, self.height / 2, economy)
        return self.player

    def add_enemy(self, kind: str, x: float, y: float) -> Enemy:
        enemy = Enemy(x, y, kind)
        self.enemies.append(enemy)
        return enemy

    def random_kind(self) -> str:
        """Draw an enemy kind from the weighted spawn table."""
        r = self.rng.random() * sum(w for _, w in SPAWN_WEIGHTS)
        for kind, weight in SPAWN_WEIGHTS:
            if r < weight:
                return kind
            r -= weight
        return SPAWN_WEIGHTS[-1][0]

    def edge_point(self, offset: float = SPAWN_OFFSET) -> tuple:
        """A random point `offset` units outside a random edge."""
        side = int(self.rng.integers(0, 4))
        if side == 0:
            return -offset, self.rng.random() * self.height
        if side == 1:
            return self.width + offset, self.rng.random() * self.height
        if side == 2:
            return self.rng.random() * self.width, -offset
        return self.rng.random() * self.width, self.height + offset

    def spawn_wave(self) -> list:
        """Spawn 1 or 2 enemies just outside the field."""
        count = 1 if self.rng.random() < 0.5 else 2
        spawned = []
        for _ in range(count):
            x, y = self.edge_point()
            spawned.append(self.add_enemy(self.random_kind(), x, y))
        return spawned

    def prune(self):
        """Drop dead enemies and bullets."""
        self.enemies = [e for e in self.enemies if e.alive]
        self.bullets = [b for b in self.bullets if b.alive]

    # ──────────────────────────────────────────────────────────────────────────
    # Sensing helpers
    # ──────────────────────────────────────────────────────────────────────────

    def nearest_enemy(self):
        return nearest(self.player, [e for e in self.enemies if e.alive])

    def features(self) -> list:
        """
        The policy's fixed 14-float feature vector:
          health ratio, normalised currency, then per nearest enemy
          (up to 3, ascending distance) dx/W, dy/H, distance, kind code.
        """
        p = self.player
        inputs = [p.health / max(1.0, p.max_health), p.currency / CURRENCY_NORM]
        closest = k_nearest(p, [e for e in self.enemies if e.alive], NEAREST_ENEMIES)
        for i in range(NEAREST_ENEMIES):
            if i < len(closest):
                e = closest[i]
                dx = (e.x - p.x) / self.width
                dy = (e.y - p.y) / self.height
                inputs += [dx, dy, math.hypot(dx, dy), KIND_CODES.get(e.kind, 0.0)]
            else:
                inputs += [0.0, 0.0, 0.0, 0.0]
        inputs += [0.0] * (INPUT_SIZE - len(inputs))
        return inputs[:INPUT_SIZE]

    # ──────────────────────────────────────────────────────────────────────────
    # Snapshot for presentation
    # ──────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        p = self.player
        return {
            "width":  self.width,
            "height": self.height,
            "player": None if p is None else {
                "x": p.x, "y": p.y, "radius": p.radius,
                "health": p.health, "maxHealth": p.max_health,
                "kills": p.kills, "currency": p.currency, "alive": p.alive,
            },
            "enemies": [
                {"x": e.x, "y": e.y, "kind": e.kind, "radius": e.radius,
                 "health": e.health}
                for e in self.enemies if e.alive
            ],
            "bullets": [
                {"x": b.x, "y": b.y, "friendly": b.owner is p}
                for b in self.bullets if b.alive
            ],
        }

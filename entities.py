"""
World entities for EvoArena: Player, Enemy, Bullet.

Entities are plain state holders with small update rules. The episode
simulator owns every instance; nothing here knows about rendering.

Player combat attributes are derived from the economy's upgrade counts
by recompute_player() and are not edited anywhere else.
"""

import math

from config import (
    PLAYER_RADIUS, PLAYER_MAX_HEALTH, PLAYER_MOVE_SPEED, PLAYER_DAMAGE,
    PLAYER_FIRE_COOLDOWN, FIRERATE_STEP, MIN_FIRE_COOLDOWN,
    BULLET_RADIUS, PLAYER_BULLET_SPEED, ENEMY_BULLET_SPEED, BULLET_MARGIN,
    FAN_STEP, FAN_MAX, RANGED_HOLD_DISTANCE, TIMER_EPSILON, ENEMY_STATS,
    HEAL_THRESHOLD, HEAL_BASE, HEAL_FRACTION, HEAL_COOLDOWN,
)


# ──────────────────────────────────────────────────────────────────────────────
# Bullet
# ──────────────────────────────────────────────────────────────────────────────

class Bullet:
    __slots__ = ("x", "y", "vx", "vy", "owner", "damage", "speed",
                 "pierce", "radius", "alive", "hits")

    def __init__(self, x: float, y: float, vx: float, vy: float, owner,
                 damage: float = PLAYER_DAMAGE, speed: float = PLAYER_BULLET_SPEED,
                 pierce: int = 1):
        self.x, self.y   = x, y
        self.vx, self.vy = vx, vy      # unit direction
        self.owner  = owner
        self.damage = damage
        self.speed  = speed
        self.pierce = pierce
        self.radius = BULLET_RADIUS
        self.alive  = True
        self.hits   = set()        # enemies already struck

    def update(self, dt: float, width: float, height: float):
        self.x += self.vx * self.speed * dt
        self.y += self.vy * self.speed * dt
        if (self.x < -BULLET_MARGIN or self.x > width + BULLET_MARGIN or
                self.y < -BULLET_MARGIN or self.y > height + BULLET_MARGIN):
            self.alive = False

    def register_hit(self, target=None):
        """Spend one pierce on target; the bullet dies when none is left."""
        if target is not None:
            self.hits.add(target)
        self.pierce -= 1
        if self.pierce <= 0:
            self.alive = False


# ──────────────────────────────────────────────────────────────────────────────
# Player
# ──────────────────────────────────────────────────────────────────────────────

class Player:
    __slots__ = (
        "x", "y", "radius", "health", "max_health", "move_speed", "damage",
        "fire_cooldown", "fire_timer", "multishot", "pierce",
        "heal_charges", "heal_timer", "kills", "currency", "alive",
    )

    def __init__(self, x: float, y: float, economy=None):
        self.x = x
        self.y = y
        self.radius       = PLAYER_RADIUS
        self.max_health   = PLAYER_MAX_HEALTH
        self.health       = PLAYER_MAX_HEALTH
        self.move_speed   = PLAYER_MOVE_SPEED
        self.damage       = PLAYER_DAMAGE
        self.fire_cooldown = PLAYER_FIRE_COOLDOWN
        self.fire_timer   = 0.0
        self.multishot    = 0
        self.pierce       = 0
        self.heal_charges = 0
        self.heal_timer   = 0.0
        self.kills        = 0
        self.currency     = 0
        self.alive        = True
        if economy is not None:
            recompute_player(self, economy.upgrades)

    @property
    def can_fire(self) -> bool:
        return self.fire_timer <= TIMER_EPSILON

    def move(self, dx: float, dy: float, dt: float, width: float, height: float):
        """Move along (dx, dy) normalised; clamp to the playfield."""
        norm = math.hypot(dx, dy)
        if norm > 1e-6:
            dx, dy = dx / norm, dy / norm
        else:
            dx, dy = 0.0, 0.0
        self.x = max(0.0, min(width,  self.x + dx * self.move_speed * dt))
        self.y = max(0.0, min(height, self.y + dy * self.move_speed * dt))

    def fire_at(self, tx: float, ty: float) -> list:
        """
        Fire 1 + multishot bullets in a fan centred on (tx, ty) and start
        the cooldown. Returns the new bullets.
        """
        base  = math.atan2(ty - self.y, tx - self.x)
        count = 1 + self.multishot
        half  = min(FAN_MAX, FAN_STEP * self.multishot)
        bullets = []
        for i in range(count):
            angle = base if count == 1 else base - half + (2 * half) * i / (count - 1)
            vx, vy = math.cos(angle), math.sin(angle)
            bullets.append(Bullet(
                self.x + vx * self.radius, self.y + vy * self.radius, vx, vy,
                owner=self, damage=self.damage, speed=PLAYER_BULLET_SPEED,
                pierce=1 + self.pierce,
            ))
        self.fire_timer = self.fire_cooldown
        return bullets

    def take_damage(self, amount: float):
        self.health -= amount
        if self.health <= 0:
            self.alive = False

    def wants_heal(self) -> bool:
        return (self.alive and self.health < self.max_health * HEAL_THRESHOLD
                and self.heal_timer <= 0.0)

    def use_heal(self) -> bool:
        """Spend one charge if the cooldown allows it."""
        if self.heal_charges <= 0 or self.heal_timer > 0.0:
            return False
        self.heal_charges -= 1
        self.health = min(self.max_health,
                          self.health + HEAL_BASE + HEAL_FRACTION * self.max_health)
        self.heal_timer = HEAL_COOLDOWN
        return True

    def tick_timers(self, dt: float):
        self.fire_timer = max(0.0, self.fire_timer - dt)
        self.heal_timer = max(0.0, self.heal_timer - dt)
        if self.health <= 0:
            self.alive = False


def recompute_player(player: Player, upgrades: dict):
    """Derive the player's combat attributes from upgrade counts."""
    player.max_health    = PLAYER_MAX_HEALTH + upgrades.get("max_health", 0)
    player.move_speed    = PLAYER_MOVE_SPEED + upgrades.get("speed", 0)
    player.damage        = PLAYER_DAMAGE + upgrades.get("damage", 0)
    player.fire_cooldown = max(MIN_FIRE_COOLDOWN,
                               PLAYER_FIRE_COOLDOWN - upgrades.get("firerate", 0) * FIRERATE_STEP)
    player.multishot     = upgrades.get("multishot", 0)
    player.pierce        = upgrades.get("pierce", 0)
    player.health        = min(player.health, player.max_health)


# ──────────────────────────────────────────────────────────────────────────────
# Enemy
# ──────────────────────────────────────────────────────────────────────────────

class Enemy:
    __slots__ = ("x", "y", "kind", "speed", "radius", "health", "damage",
                 "attack_cooldown", "attack_timer", "shoot", "alive")

    def __init__(self, x: float, y: float, kind: str = "melee"):
        self.x, self.y = x, y
        self.kind = kind
        stats = ENEMY_STATS.get(kind, ENEMY_STATS["default"])
        (self.speed, self.radius, self.health, self.damage,
         self.attack_cooldown, self.shoot) = stats
        self.attack_timer = 0.0
        self.alive = True

    @property
    def ready(self) -> bool:
        return self.attack_timer <= TIMER_EPSILON

    def update(self, dt: float, player: Player) -> list:
        """
        Chase the player; ranged enemies stop at the hold distance and fire.
        Returns any bullets fired this step.
        """
        self.attack_timer = max(0.0, self.attack_timer - dt)
        dx, dy = player.x - self.x, player.y - self.y
        dist = math.hypot(dx, dy) + 1e-6
        nx, ny = dx / dist, dy / dist

        if self.shoot and dist <= RANGED_HOLD_DISTANCE:
            if self.ready:
                self.attack_timer = self.attack_cooldown
                offset = self.radius + 6
                return [Bullet(self.x + nx * offset, self.y + ny * offset, nx, ny,
                               owner=self, damage=self.damage,
                               speed=ENEMY_BULLET_SPEED)]
            return []

        self.x += nx * self.speed * dt
        self.y += ny * self.speed * dt
        return []

    def take_damage(self, amount: float) -> bool:
        """Apply damage; True exactly once, on the hit that kills."""
        self.health -= amount
        if self.health <= 0 and self.alive:
            self.alive = False
            return True
        return False

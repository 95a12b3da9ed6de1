"""
Episode Simulator for EvoArena.

One Episode advances a World under a policy's decisions. Headless training
and live play run the exact same rules through _advance(dt):

  1. Ambient spawning (countdown timer with a difficulty ramp)
  2. Policy decision → player movement
  3. Player fire at the nearest enemy
  4. Bullets: move, collide, damage, kill credit
  5. Enemies: chase / hold-and-shoot, contact damage on cooldown
  6. Shop visit once gold covers the cheapest catalog entry
  7. Healing below the health threshold
  8. Timers, dead-entity cleanup

Headless episodes call run() with a fixed timestep until the player dies
or the time budget elapses; live play calls step(dt) once per frame.
"""

import numpy as np

from world import World
from entities import recompute_player
from mathutil import circles_overlap
from shop import default_catalog, make_strategy, cheapest_cost
from config import (
    WORLD_WIDTH, WORLD_HEIGHT, TICK_RATE, MAX_FRAME_DT, SHOOT_THRESHOLD,
    SPAWN_BASE_INTERVAL, SPAWN_RAMP, SPAWN_MIN_INTERVAL, KILL_REWARD,
    FITNESS_KILL, FITNESS_SURVIVAL, FITNESS_CURRENCY, FITNESS_DAMAGE,
    TRAIN_EPISODE_SECONDS, PLAY_POINTS, SPAWN_COSTS, USER_SPAWN_JITTER,
)

HEADLESS = "headless"
LIVE     = "live"


def fitness_of(kills: int, seconds: float, currency: int,
               max_health: float, health: float) -> float:
    """The objective the evolution driver maximises."""
    return (FITNESS_KILL * kills + FITNESS_SURVIVAL * seconds
            + FITNESS_CURRENCY * currency - FITNESS_DAMAGE * (max_health - health))


class EpisodeConfig:
    """
    Per-episode rules. The mode only picks defaults; every field can be
    set explicitly.
    """

    def __init__(self, mode: str = HEADLESS, time_budget: float = None,
                 ambient_spawns: bool = None, shop: str = None,
                 tick_rate: int = TICK_RATE,
                 width: float = WORLD_WIDTH, height: float = WORLD_HEIGHT,
                 catalog: list = None):
        if mode not in (HEADLESS, LIVE):
            raise ValueError(f"unknown episode mode {mode!r}")
        self.mode           = mode
        self.time_budget    = (TRAIN_EPISODE_SECONDS if mode == HEADLESS else None) \
            if time_budget is None else time_budget
        self.ambient_spawns = (mode == HEADLESS) if ambient_spawns is None else ambient_spawns
        self.shop           = shop or ("continuous" if mode == HEADLESS else "greedy")
        self.tick_rate      = tick_rate
        self.width          = width
        self.height         = height
        self.catalog        = catalog if catalog is not None else default_catalog()

    @property
    def dt(self) -> float:
        return 1.0 / self.tick_rate


class EpisodeResult:
    __slots__ = ("fitness", "kills", "seconds", "currency", "health", "max_health")

    def __init__(self, fitness, kills, seconds, currency, health, max_health):
        self.fitness    = fitness
        self.kills      = kills
        self.seconds    = seconds
        self.currency   = currency
        self.health     = health
        self.max_health = max_health

    def to_dict(self) -> dict:
        return {
            "fitness": self.fitness, "kills": self.kills,
            "seconds": self.seconds, "currency": self.currency,
            "health": self.health, "maxHealth": self.max_health,
        }


class Episode:
    """
    One bounded run of the arena.

    Args:
        policy:      object with forward(inputs) and decide(inputs)
        economy:     EconomyState the episode owns and spends. Defaults to a
                     copy of the policy's economy in headless mode. In live mode
                     the policy's current economy is looked up on every use,
                     so parameter swaps never orphan the run's spending.
        on_step:     called after every step as on_step(episode)
        on_purchase: called as on_purchase(episode, bought) after a shop visit
                     that bought something
    """

    def __init__(self, policy, economy=None, config: EpisodeConfig = None,
                 seed: int = None, rng=None, on_step=None, on_purchase=None):
        self.policy  = policy
        self.config  = config or EpisodeConfig()
        if economy is None and self.config.mode == HEADLESS:
            economy = policy.economy.copy()
        self._economy = economy
        self.world   = World(self.config.width, self.config.height,
                             rng=rng if rng is not None else np.random.default_rng(seed))
        self.player  = self.world.place_player(self.economy)
        self.shop    = make_strategy(self.config.shop)
        self.on_step     = on_step
        self.on_purchase = on_purchase

        self.elapsed       = 0.0
        self.ticks         = 0
        self.spawn_timer   = 0.0
        self.last_decision = None
        self._min_cost     = cheapest_cost(self.config.catalog)

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def economy(self):
        return self.policy.economy if self._economy is None else self._economy

    @property
    def finished(self) -> bool:
        budget = self.config.time_budget
        return (not self.player.alive) or (budget is not None and self.elapsed >= budget)

    def run(self) -> EpisodeResult:
        """Run headlessly at the fixed tick rate until the episode ends."""
        dt = self.config.dt
        while not self.finished:
            self.ticks += 1
            # counted in ticks so the budget is hit exactly
            self.elapsed = self.ticks / self.config.tick_rate
            self._advance(dt)
            if self.on_step:
                self.on_step(self)
        return self.result()

    def step(self, dt: float) -> bool:
        """Advance one live frame. Returns False once the episode is over."""
        if self.finished:
            return False
        dt = min(max(0.0, dt), MAX_FRAME_DT)
        self.ticks += 1
        self.elapsed += dt
        self._advance(dt)
        if self.on_step:
            self.on_step(self)
        return not self.finished

    def result(self) -> EpisodeResult:
        p = self.player
        return EpisodeResult(
            fitness_of(p.kills, self.elapsed, p.currency, p.max_health, p.health),
            p.kills, self.elapsed, p.currency, p.health, p.max_health,
        )

    def snapshot(self) -> dict:
        snap = self.world.snapshot()
        snap["elapsed"]  = self.elapsed
        snap["gold"]     = self.economy.gold
        snap["upgrades"] = dict(self.economy.upgrades)
        snap["finished"] = self.finished
        snap["decision"] = self.last_decision.to_dict() if self.last_decision else None
        return snap

    # ──────────────────────────────────────────────────────────────────────────
    # One step of the rules
    # ──────────────────────────────────────────────────────────────────────────

    def _advance(self, dt: float):
        if self.config.ambient_spawns:
            self.update_spawns(dt)
        self.apply_decision(dt)
        self.update_bullets(dt)
        self.update_enemies(dt)
        self.visit_shop()
        self.resolve_heal()
        self.player.tick_timers(dt)

    def spawn_interval(self) -> float:
        return max(SPAWN_MIN_INTERVAL, SPAWN_BASE_INTERVAL - self.elapsed * SPAWN_RAMP)

    def update_spawns(self, dt: float):
        self.spawn_timer -= dt
        if self.spawn_timer <= 0:
            self.spawn_timer = self.spawn_interval()
            self.world.spawn_wave()

    def apply_decision(self, dt: float):
        w, p = self.world, self.player
        decision = self.policy.decide(w.features())
        self.last_decision = decision
        p.move(decision.move[0], decision.move[1], dt, w.width, w.height)

        if decision.shoot_prob > SHOOT_THRESHOLD and p.can_fire:
            target = w.nearest_enemy()
            if target is not None:
                w.bullets.extend(p.fire_at(target.x, target.y))

    def update_bullets(self, dt: float):
        w, p = self.world, self.player
        for b in w.bullets:
            b.update(dt, w.width, w.height)
            if not b.alive:
                continue
            if b.owner is p:
                for e in w.enemies:
                    if not e.alive or e in b.hits or not circles_overlap(b, e):
                        continue
                    killed = e.take_damage(b.damage)
                    b.register_hit(e)
                    if killed:
                        self._credit_kill()
                    break
            elif p.alive and circles_overlap(b, p):
                p.take_damage(b.damage)
                b.alive = False
        w.prune()

    def update_enemies(self, dt: float):
        w, p = self.world, self.player
        for e in w.enemies:
            if not e.alive:
                continue
            w.bullets.extend(e.update(dt, p))
            # contact damage only when the attack cooldown has run out
            if p.alive and circles_overlap(e, p) and e.ready:
                p.take_damage(e.damage)
                e.attack_timer = e.attack_cooldown
        w.prune()

    def _credit_kill(self):
        self.player.kills += 1
        self.player.currency += KILL_REWARD
        self.economy.gold += KILL_REWARD

    def visit_shop(self) -> list:
        if self.economy.gold < self._min_cost:
            return []
        bought = self.shop.purchase(self.policy, self.economy, self.config.catalog)
        if bought:
            recompute_player(self.player, self.economy.upgrades)
            if self.on_purchase:
                self.on_purchase(self, bought)
        return bought

    def resolve_heal(self) -> bool:
        """
        Heal once when below the threshold, converting a purchased heal
        upgrade into a charge if no charge is ready.
        """
        p = self.player
        if not p.wants_heal():
            return False
        if p.use_heal():
            return True
        if self.economy.count("heal") > 0:
            self.economy.upgrades["heal"] -= 1
            p.heal_charges += 1
            return p.use_heal()
        return False


def run_headless(policy, economy=None, seconds: float = TRAIN_EPISODE_SECONDS,
                 seed: int = None, rng=None) -> EpisodeResult:
    """Score policy over one accelerated episode."""
    config = EpisodeConfig(HEADLESS, time_budget=seconds)
    return Episode(policy, economy=economy, config=config, seed=seed, rng=rng).run()


# ──────────────────────────────────────────────────────────────────────────────
# Interactive play
# ──────────────────────────────────────────────────────────────────────────────

class PlaySession:
    """
    A live episode the user populates by spending points on enemies.
    The run is paused until start() is called.
    """

    def __init__(self, policy, points: int = PLAY_POINTS, seed: int = None,
                 ambient_spawns: bool = False, time_budget: float = None,
                 persist_purchases: bool = True):
        self.policy            = policy
        self.initial_points    = points
        self.seed              = seed
        self.ambient_spawns    = ambient_spawns
        self.time_budget       = time_budget
        self.persist_purchases = persist_purchases
        self.reset()

    def reset(self):
        config = EpisodeConfig(LIVE, time_budget=self.time_budget,
                               ambient_spawns=self.ambient_spawns)
        self.episode = Episode(self.policy, config=config, seed=self.seed,
                               on_purchase=self._on_purchase)
        self.points  = self.initial_points
        self.running = False

    def start(self):
        self.running = True

    def pause(self):
        self.running = False

    def spawn(self, kind: str, x: float = None, y: float = None) -> bool:
        """Spend points on an enemy. Near the field centre unless placed."""
        cost = SPAWN_COSTS.get(kind)
        if cost is None or self.points < cost:
            return False
        w = self.episode.world
        if x is None or y is None:
            x = w.width / 2 + (w.rng.random() - 0.5) * 2 * USER_SPAWN_JITTER
            y = w.height / 2 + (w.rng.random() - 0.5) * 2 * USER_SPAWN_JITTER
        w.add_enemy(kind, float(x), float(y))
        self.points -= cost
        return True

    def tick(self, dt: float) -> bool:
        """Advance one frame if running. Returns whether the run is still live."""
        if not self.running:
            return not self.episode.finished
        alive = self.episode.step(dt)
        if not alive:
            self.running = False
        return alive

    def _on_purchase(self, episode, bought):
        if self.persist_purchases:
            self.policy.save()

    def snapshot(self) -> dict:
        snap = self.episode.snapshot()
        snap["points"]  = self.points
        snap["running"] = self.running
        snap["fitness"] = self.episode.result().fitness
        return snap

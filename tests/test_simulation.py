import pathlib
import sys
import unittest

import numpy as np


ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from entities import Bullet
from parameters import EconomyState
from policy import Decision, NeuralPolicy
from simulation import (HEADLESS, LIVE, Episode, EpisodeConfig, PlaySession,
                        fitness_of, run_headless)
from storage import MemoryPolicyStore
import config


DT = 1.0 / 60.0


class _IdlePolicy:
    """Stands still, never shoots; its shop signal picks the middle entry."""

    input_size = config.INPUT_SIZE

    def __init__(self, economy=None):
        self.economy = economy if economy is not None else EconomyState()

    def forward(self, inputs):
        return np.array([0.0, 0.0, -10.0, 0.0, 0.0])

    def decide(self, inputs):
        return Decision((0.0, 0.0), 0.0, 0.0, 0.0)


def quiet_headless(seconds: float) -> EpisodeConfig:
    return EpisodeConfig(HEADLESS, time_budget=seconds, ambient_spawns=False)


class TestFitness(unittest.TestCase):
    def test_formula(self) -> None:
        self.assertEqual(fitness_of(2, 3.5, 30, 120, 100), 153.5)

    def test_quiet_episode_scores_survival_time(self) -> None:
        policy = NeuralPolicy(rng=np.random.default_rng(0))
        episode = Episode(policy, config=quiet_headless(5.0), seed=1)
        result = episode.run()
        self.assertEqual(result.fitness, 5.0)
        self.assertEqual(result.seconds, 5.0)
        self.assertEqual(episode.ticks, 5 * config.TICK_RATE)
        self.assertEqual(result.kills, 0)

    def test_result_dict(self) -> None:
        result = Episode(_IdlePolicy(), config=quiet_headless(0.5)).run()
        self.assertEqual(set(result.to_dict()),
                         {"fitness", "kills", "seconds", "currency", "health", "maxHealth"})


class TestEpisodeRules(unittest.TestCase):
    def test_bullet_kill_credits_player_and_economy(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        w, p = episode.world, episode.player
        enemy = w.add_enemy("melee", 100, 100)
        enemy.health = 10
        w.bullets.append(Bullet(95, 100, 1.0, 0.0, owner=p, damage=20, pierce=1))
        episode.update_bullets(DT)
        self.assertEqual(p.kills, 1)
        self.assertEqual(p.currency, config.KILL_REWARD)
        self.assertEqual(episode.economy.gold, config.KILL_REWARD)
        self.assertEqual(w.enemies, [])
        self.assertEqual(w.bullets, [])

    def test_piercing_bullet_passes_through_to_next_enemy(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        w, p = episode.world, episode.player
        first = w.add_enemy("melee", 100, 100)
        second = w.add_enemy("melee", 130, 100)
        w.bullets.append(Bullet(95, 100, 1.0, 0.0, owner=p, damage=20, pierce=2))
        for _ in range(3):
            episode.update_bullets(DT)
        self.assertEqual(first.health, 10)
        self.assertEqual(second.health, 10)
        self.assertEqual(w.bullets, [])
        self.assertEqual(p.kills, 0)

    def test_enemy_bullet_hurts_player(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        w, p = episode.world, episode.player
        shooter = w.add_enemy("ranged", 0, 0)
        w.bullets.append(Bullet(p.x, p.y, 1.0, 0.0, owner=shooter, damage=12,
                                speed=config.ENEMY_BULLET_SPEED))
        episode.update_bullets(DT)
        self.assertEqual(p.health, 88)
        self.assertEqual(w.bullets, [])

    def test_contact_damage_respects_cooldown(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        p = episode.player
        episode.world.add_enemy("melee", p.x, p.y)
        for _ in range(60):
            episode.update_enemies(DT)
        self.assertEqual(p.health, 64)

    def test_heal_needs_a_charge_or_upgrade(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        p = episode.player
        p.health = 10
        self.assertFalse(episode.resolve_heal())
        self.assertEqual(p.health, 10)

        episode.economy.add("heal", 1)
        self.assertTrue(episode.resolve_heal())
        self.assertEqual(p.health, 55)
        self.assertEqual(episode.economy.count("heal"), 0)
        self.assertEqual(p.heal_charges, 0)

    def test_spawn_interval_ramps_down_to_floor(self) -> None:
        episode = Episode(_IdlePolicy())
        self.assertEqual(episode.spawn_interval(), config.SPAWN_BASE_INTERVAL)
        episode.elapsed = 1000.0
        self.assertEqual(episode.spawn_interval(), config.SPAWN_MIN_INTERVAL)

    def test_ambient_spawning_fills_the_field(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(HEADLESS, time_budget=1.0), seed=2)
        episode.update_spawns(DT)
        self.assertGreaterEqual(len(episode.world.enemies), 1)
        self.assertEqual(episode.spawn_timer, config.SPAWN_BASE_INTERVAL)


class TestShopping(unittest.TestCase):
    def test_headless_shop_spends_a_copy(self) -> None:
        policy = _IdlePolicy(EconomyState(gold=100))
        episode = Episode(policy, config=quiet_headless(1.0))
        bought = episode.visit_shop()
        self.assertEqual([o.key for o in bought], ["firerate", "firerate"])
        self.assertEqual(episode.economy.gold, 10)
        self.assertEqual(policy.economy.gold, 100)
        self.assertAlmostEqual(episode.player.fire_cooldown,
                               config.PLAYER_FIRE_COOLDOWN - 2 * config.FIRERATE_STEP)

    def test_live_shop_spends_the_policy_economy(self) -> None:
        calls = []
        policy = _IdlePolicy(EconomyState(gold=30))
        episode = Episode(policy, config=EpisodeConfig(LIVE),
                          on_purchase=lambda ep, bought: calls.append(bought))
        self.assertIs(episode.economy, policy.economy)
        episode.visit_shop()
        self.assertEqual(policy.economy.gold, 0)
        self.assertEqual(episode.player.max_health, 120)
        self.assertEqual(len(calls), 1)

    def test_shop_skipped_below_cheapest_cost(self) -> None:
        episode = Episode(_IdlePolicy(EconomyState(gold=29)), config=EpisodeConfig(LIVE))
        self.assertEqual(episode.visit_shop(), [])


class TestRunModes(unittest.TestCase):
    def test_headless_run_is_reproducible(self) -> None:
        policy = NeuralPolicy(rng=np.random.default_rng(4))
        first = run_headless(policy, seconds=3.0, seed=5)
        second = run_headless(policy, seconds=3.0, seed=5)
        self.assertEqual(first.fitness, second.fitness)
        self.assertEqual(first.kills, second.kills)
        self.assertLessEqual(first.seconds, 3.0)

    def test_headless_run_leaves_policy_economy_alone(self) -> None:
        policy = NeuralPolicy(rng=np.random.default_rng(6))
        policy.economy.gold = 40
        run_headless(policy, seconds=4.0, seed=7)
        self.assertEqual(policy.economy, EconomyState(gold=40))

    def test_live_step_clamps_long_frames(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        self.assertTrue(episode.step(1.0))
        self.assertAlmostEqual(episode.elapsed, config.MAX_FRAME_DT)
        self.assertIsNotNone(episode.snapshot()["decision"])

    def test_dead_player_ends_the_episode(self) -> None:
        episode = Episode(_IdlePolicy(), config=EpisodeConfig(LIVE))
        episode.player.take_damage(1000)
        self.assertTrue(episode.finished)
        self.assertFalse(episode.step(DT))
        self.assertEqual(episode.run().seconds, 0.0)

    def test_on_step_called_every_tick(self) -> None:
        seen = []
        episode = Episode(_IdlePolicy(), config=quiet_headless(0.5),
                          on_step=lambda ep: seen.append(ep.ticks))
        episode.run()
        self.assertEqual(seen, list(range(1, 31)))


class TestPlaySession(unittest.TestCase):
    def make_session(self, **kwargs) -> PlaySession:
        policy = NeuralPolicy(rng=np.random.default_rng(8), store=MemoryPolicyStore())
        return PlaySession(policy, seed=9, **kwargs)

    def test_spawning_spends_points(self) -> None:
        session = self.make_session()
        self.assertTrue(session.spawn("melee"))
        self.assertEqual(session.points, config.PLAY_POINTS - config.SPAWN_COSTS["melee"])
        self.assertTrue(session.spawn("ranged", 10, 20))
        enemy = session.episode.world.enemies[-1]
        self.assertEqual((enemy.x, enemy.y), (10.0, 20.0))
        self.assertFalse(session.spawn("dragon"))

    def test_spawning_refused_without_points(self) -> None:
        session = self.make_session(points=10)
        self.assertFalse(session.spawn("melee"))
        self.assertEqual(session.episode.world.enemies, [])
        self.assertEqual(session.points, 10)

    def test_paused_session_does_not_advance(self) -> None:
        session = self.make_session()
        self.assertTrue(session.tick(DT))
        self.assertEqual(session.episode.elapsed, 0.0)
        session.start()
        session.tick(DT)
        self.assertAlmostEqual(session.episode.elapsed, DT)
        session.pause()
        self.assertFalse(session.running)

    def test_purchases_are_saved(self) -> None:
        session = self.make_session()
        session.policy.economy.gold = 30
        session.start()
        session.tick(DT)
        self.assertEqual(session.policy.economy.upgrades, {"max_health": 20})
        self.assertIsNotNone(session.policy.last_revision)

    def test_purchases_can_stay_unsaved(self) -> None:
        session = self.make_session(persist_purchases=False)
        session.policy.economy.gold = 30
        session.start()
        session.tick(DT)
        self.assertIsNone(session.policy.last_revision)

    def test_purchases_survive_a_parameter_swap(self) -> None:
        session = self.make_session()
        policy = session.policy
        policy.set_params(policy.get_params())
        policy.economy.gold = 30
        session.start()
        session.tick(DT)
        self.assertIs(session.episode.economy, policy.economy)
        self.assertEqual(policy.economy.upgrades, {"max_health": 20})
        self.assertEqual(policy.economy.gold, 0)
        self.assertEqual(policy.store.load()["state"], {"upgrades": {"max_health": 20}, "gold": 0})

    def test_time_budget_stops_the_run(self) -> None:
        session = self.make_session(time_budget=0.05)
        session.start()
        self.assertTrue(session.tick(1.0 / 30.0))
        self.assertFalse(session.tick(1.0 / 30.0))
        self.assertFalse(session.running)

    def test_reset_restores_points(self) -> None:
        session = self.make_session()
        session.spawn("fast")
        session.start()
        session.reset()
        snap = session.snapshot()
        self.assertEqual(snap["points"], config.PLAY_POINTS)
        self.assertFalse(snap["running"])
        self.assertEqual(snap["enemies"], [])
        self.assertIn("fitness", snap)


if __name__ == "__main__":
    unittest.main()

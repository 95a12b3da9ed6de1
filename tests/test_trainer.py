import contextlib
import io
import pathlib
import sys
import unittest

import numpy as np


ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errors import StorageError
from policy import NeuralPolicy
from simulation import HEADLESS, PlaySession
from storage import MemoryPolicyStore
from trainer import IDLE, TRAINING, Trainer
import config


class _FlakyStore(MemoryPolicyStore):
    """Fails the first save, then behaves."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def save(self, document):
        if self.failures:
            self.failures -= 1
            raise StorageError("temporarily unavailable")
        return super().save(document)


def make_trainer(seed: int = 0, **kwargs) -> Trainer:
    rng = np.random.default_rng(seed)
    policy = NeuralPolicy(rng=rng, store=MemoryPolicyStore())
    kwargs.setdefault("episode_seconds", 0.5)
    kwargs.setdefault("yield_seconds", 0.0)
    kwargs.setdefault("verbose", False)
    return Trainer(policy, rng=rng, **kwargs)


class TestIterate(unittest.TestCase):
    def test_first_iteration_always_improves(self) -> None:
        trainer = make_trainer()
        sigma = trainer.policy.sigma
        stats = trainer.iterate()
        self.assertTrue(stats["improved"])
        self.assertEqual(stats["iteration"], 0)
        self.assertEqual(stats["best"], stats["fitness"])
        self.assertEqual(trainer.policy.best_fitness, stats["fitness"])
        self.assertAlmostEqual(trainer.policy.sigma, sigma * config.SIGMA_DECAY)
        self.assertIsNotNone(trainer.policy.last_revision)
        self.assertEqual(trainer.iteration, 1)
        self.assertEqual(trainer.history, [stats])
        self.assertEqual(set(stats), {"iteration", "fitness", "best", "sigma",
                                      "improved", "kills", "seconds", "elapsed_s"})

    def test_failed_candidate_is_rolled_back_and_nudged(self) -> None:
        trainer = make_trainer(1)
        trainer.policy.params.best_fitness = 1e9
        before = trainer.policy.get_params()
        stats = trainer.iterate()
        self.assertFalse(stats["improved"])
        self.assertEqual(trainer.policy.best_fitness, 1e9)
        self.assertAlmostEqual(trainer.policy.sigma, before.sigma * config.SIGMA_GROWTH)
        self.assertFalse(np.array_equal(trainer.policy.params.W1, before.W1))
        self.assertIsNone(trainer.policy.last_revision)

    def test_baseline_economy_never_drifts(self) -> None:
        trainer = make_trainer(2, episode_seconds=3.0)
        trainer.policy.economy.gold = 500
        trainer.policy.economy.add("damage", 6)
        for _ in range(3):
            trainer.iterate()
        self.assertEqual(trainer.policy.economy.gold, 500)
        self.assertEqual(trainer.policy.economy.upgrades, {"damage": 6})

    def test_commits_keep_the_live_economy_object(self) -> None:
        trainer = make_trainer(9)
        economy = trainer.policy.economy
        session = PlaySession(trainer.policy, seed=1)
        for _ in range(3):
            trainer.iterate()
        self.assertIs(trainer.policy.economy, economy)
        trainer.policy.economy.gold = 30
        session.start()
        session.tick(1.0 / 60.0)
        self.assertEqual(trainer.policy.economy.upgrades, {"max_health": 20})

    def test_failed_save_is_retried_next_iteration(self) -> None:
        trainer = make_trainer(10)
        trainer.policy.store = _FlakyStore()
        with contextlib.redirect_stdout(io.StringIO()) as out:
            self.assertTrue(trainer.iterate()["improved"])
        self.assertIn("!!", out.getvalue())
        self.assertTrue(trainer.policy.needs_save)
        self.assertIsNone(trainer.policy.last_revision)

        trainer.policy.params.best_fitness = 1e9
        self.assertFalse(trainer.iterate()["improved"])
        self.assertFalse(trainer.policy.needs_save)
        self.assertIsNotNone(trainer.policy.last_revision)

    def test_make_episode_uses_copy_of_economy(self) -> None:
        trainer = make_trainer(3, episode_seconds=2.0)
        saved = trainer.snapshot_params()
        episode = trainer.make_episode(saved, saved.economy)
        self.assertEqual(episode.config.mode, HEADLESS)
        self.assertEqual(episode.config.time_budget, 2.0)
        self.assertIsNot(episode.economy, saved.economy)
        self.assertEqual(episode.economy, saved.economy)

    def test_progress_lines_are_printed(self) -> None:
        trainer = make_trainer(4, verbose=True)
        with contextlib.redirect_stdout(io.StringIO()) as out:
            trainer.iterate()
        self.assertIn("Iter", out.getvalue())
        self.assertIn("fitness", out.getvalue())


class TestRunControl(unittest.TestCase):
    def test_run_counts_iterations(self) -> None:
        seen = []
        trainer = make_trainer(5, on_iteration=seen.append)
        stats = trainer.run(3)
        self.assertEqual(len(stats), 3)
        self.assertEqual([s["iteration"] for s in stats], [0, 1, 2])
        self.assertEqual(seen, stats)
        self.assertEqual(trainer.state, IDLE)
        more = trainer.run(2)
        self.assertEqual([s["iteration"] for s in more], [3, 4])

    def test_best_fitness_never_decreases(self) -> None:
        trainer = make_trainer(6)
        bests = [s["best"] for s in trainer.run(8)]
        self.assertEqual(bests, sorted(bests))

    def test_background_training_stops_on_request(self) -> None:
        trainer = make_trainer(7)
        self.assertTrue(trainer.start())
        self.assertFalse(trainer.start())
        self.assertEqual(trainer.state, TRAINING)
        with self.assertRaises(RuntimeError):
            trainer.run(1)
        trainer.stop()
        trainer.join(timeout=10)
        self.assertFalse(trainer.training)
        self.assertEqual(trainer.state, IDLE)
        self.assertEqual(len(trainer.history), trainer.iteration)

    def test_start_right_after_stop_restarts(self) -> None:
        trainer = make_trainer(11)
        self.assertTrue(trainer.start())
        trainer.stop()
        self.assertTrue(trainer.start())
        self.assertEqual(trainer.state, TRAINING)
        self.assertTrue(trainer._thread.is_alive())
        trainer.stop()
        trainer.join(timeout=10)
        self.assertEqual(trainer.state, IDLE)

    def test_can_restart_after_stop(self) -> None:
        trainer = make_trainer(8)
        trainer.start()
        trainer.stop()
        trainer.join(timeout=10)
        count = trainer.iteration
        self.assertTrue(trainer.start())
        trainer.stop()
        trainer.join(timeout=10)
        self.assertGreaterEqual(trainer.iteration, count)


if __name__ == "__main__":
    unittest.main()

"""
Training Driver for EvoArena.

Runs the (1+1) evolution loop:
  repeat:
    1. Snapshot the retained best parameters
    2. Clone and mutate the clone with its own sigma
    3. Score the clone over one headless episode, starting from the
       saved economy (not the clone's) so gold never drifts upward
    4. Commit and persist on improvement; otherwise restore the snapshot
       and nudge it with one more mutation
    5. Report iteration statistics

The driver is the single writer of the policy; all access goes through
self.lock. Stop requests are honoured between iterations only.
"""

import threading
import time

from policy import NeuralPolicy
from simulation import Episode, EpisodeConfig, HEADLESS
from config import TRAIN_EPISODE_SECONDS, YIELD_SECONDS

IDLE     = "idle"
TRAINING = "training"


class Trainer:
    """
    Evolution driver around one NeuralPolicy.
    """

    def __init__(self, policy: NeuralPolicy,
                 episode_seconds: float = TRAIN_EPISODE_SECONDS,
                 yield_seconds: float = YIELD_SECONDS,
                 rng=None,
                 on_iteration=None,   # called with the stats dict of every iteration
                 verbose: bool = True):
        self.policy          = policy
        self.episode_seconds = episode_seconds
        self.yield_seconds   = yield_seconds
        self.rng             = rng if rng is not None else policy.rng
        self.on_iteration    = on_iteration
        self.verbose         = verbose

        self.lock       = threading.Lock()
        self.iteration  = 0
        self.history    = []          # list of stats dicts
        self._state     = IDLE
        self._stop_evt  = threading.Event()
        self._thread    = None

    # ──────────────────────────────────────────────────────────────────────────
    # State machine
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> str:
        return self._state

    @property
    def training(self) -> bool:
        return self._state == TRAINING

    def start(self) -> bool:
        """Idle → Training; trains in a background thread until stop()."""
        if self._stop_evt.is_set():
            # a stopping loop finishes its in-flight episode before we restart
            self.join()
        if self._state == TRAINING:
            return False
        self._stop_evt.clear()
        self._state = TRAINING
        self._thread = threading.Thread(target=self._loop, args=(None,), daemon=True)
        self._thread.start()
        return True

    def stop(self):
        """Ask the loop to finish; the in-flight episode completes first."""
        self._stop_evt.set()

    def join(self, timeout: float = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self, iterations: int) -> list:
        """Train synchronously for a number of iterations (or until stop())."""
        if self._state == TRAINING:
            raise RuntimeError("trainer is already running")
        self._stop_evt.clear()
        self._state = TRAINING
        start = len(self.history)
        self._loop(iterations)
        return self.history[start:]

    def _loop(self, iterations):
        done = 0
        try:
            while not self._stop_evt.is_set():
                if iterations is not None and done >= iterations:
                    break
                self.iterate()
                done += 1
                # cooperative yield so presentation threads stay responsive
                if self.yield_seconds > 0:
                    time.sleep(self.yield_seconds)
        finally:
            self._state = IDLE

    # ──────────────────────────────────────────────────────────────────────────
    # One iteration
    # ──────────────────────────────────────────────────────────────────────────

    def make_episode(self, candidate, baseline_economy) -> Episode:
        """Headless episode for candidate parameters on a copy of the baseline economy."""
        config = EpisodeConfig(HEADLESS, time_budget=self.episode_seconds)
        return Episode(NeuralPolicy.from_parameters(candidate, rng=self.rng),
                       economy=baseline_economy.copy(), config=config, rng=self.rng)

    def iterate(self) -> dict:
        t0 = time.time()
        with self.lock:
            saved = self.policy.get_params()

        candidate = saved.copy()
        mutant = NeuralPolicy.from_parameters(candidate, rng=self.rng)
        mutant.mutate()
        result = self.make_episode(mutant.params, saved.economy).run()

        with self.lock:
            # a live play run may be spending the economy meanwhile
            self.policy.set_params(mutant.params, keep_economy=True)
            improved = self.policy.try_update_best(result.fitness)
            if not improved:
                # keep the widened step size, drop the rejected weights
                widened = self.policy.sigma
                self.policy.set_params(saved, keep_economy=True)
                self.policy.sigma = widened
                self.policy.mutate()
            # also retries a save that failed on an earlier improvement
            if self.policy.needs_save:
                self.policy.save()
            best, sigma = self.policy.best_fitness, self.policy.sigma

        stats = {
            "iteration": self.iteration,
            "fitness":   result.fitness,
            "best":      best,
            "sigma":     sigma,
            "improved":  improved,
            "kills":     result.kills,
            "seconds":   result.seconds,
            "elapsed_s": round(time.time() - t0, 3),
        }
        self.history.append(stats)
        self._print_stats(stats)
        self.iteration += 1

        if self.on_iteration:
            self.on_iteration(stats)
        return stats

    def snapshot_params(self):
        """Thread-safe copy of the current best parameters."""
        with self.lock:
            return self.policy.get_params()

    def _print_stats(self, stats: dict):
        it = stats["iteration"]
        if self.verbose and (it % 10 == 0 or it < 5):
            print(
                f"Iter {it:>6}  |  "
                f"fitness {stats['fitness']:>8.1f}  |  "
                f"best {stats['best']:>8.1f}  |  "
                f"sigma {stats['sigma']:.4f}  |  "
                f"kills {stats['kills']:>3}"
                f"{'  *' if stats['improved'] else ''}  |  "
                f"{stats['elapsed_s']:.2f}s"
            )

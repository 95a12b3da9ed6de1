"""
EvoArena – Main Entry Point
===========================

Usage examples:
  python main.py                              # train 500 iterations, save improvements
  python main.py --iterations 2000 --seed 7   # longer, reproducible run
  python main.py --episode-seconds 14         # longer headless episodes
  python main.py --iterations 0 --play 30     # watch the saved policy for 30 s
  python main.py --export agent.json          # write the saved policy to a file
  python main.py --import agent.json          # replace the saved policy
"""

import argparse
import os

import numpy as np

from policy import NeuralPolicy
from simulation import PlaySession
from storage import LocalPolicyStore
from trainer import Trainer
from visualizer import (ensure_dirs, save_training_chart,
                        save_episode_snapshot, append_csv)
from config import (SAVE_DIR, STORAGE_DIR, STORAGE_VERSION, HIDDEN_SIZE,
                    INITIAL_SIGMA, TRAIN_EPISODE_SECONDS, CHART_INTERVAL,
                    TICK_RATE)


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="EvoArena – neuro-evolved arena survivor")
    p.add_argument("--iterations",      type=int,   default=500,
                   help="Training iterations to run (0 to skip training)")
    p.add_argument("--episode-seconds", type=float, default=TRAIN_EPISODE_SECONDS,
                   help="Simulated seconds per headless episode")
    p.add_argument("--hidden",          type=int,   default=HIDDEN_SIZE,
                   help="Hidden layer size")
    p.add_argument("--sigma",           type=float, default=INITIAL_SIGMA,
                   help="Initial mutation sigma for fresh policies")
    p.add_argument("--seed",            type=int,   default=None,
                   help="Random seed for reproducibility")
    p.add_argument("--store-dir",       default=STORAGE_DIR,
                   help="Directory holding saved policies")
    p.add_argument("--version",         default=STORAGE_VERSION,
                   help="Version tag of the saved policy")
    p.add_argument("--outdir",          default=SAVE_DIR,
                   help="Output directory for charts and logs")
    p.add_argument("--chart-interval",  type=int,   default=CHART_INTERVAL,
                   help="Redraw the training chart every N iterations")
    p.add_argument("--play",            type=float, default=0.0, metavar="SECONDS",
                   help="After training, run a live episode with ambient spawns")
    p.add_argument("--export",          default=None, metavar="PATH",
                   help="Write the current policy document to PATH")
    p.add_argument("--import",          dest="import_path", default=None, metavar="PATH",
                   help="Load a policy document from PATH and save it")
    return p.parse_args(argv)


# ──────────────────────────────────────────────────────────────────────────────
# Callbacks
# ──────────────────────────────────────────────────────────────────────────────

class TrainCallbacks:
    """Bundles the per-iteration callbacks used by the trainer."""

    def __init__(self, outdir: str, chart_interval: int, all_stats: list):
        self.outdir         = outdir
        self.chart_interval = chart_interval
        self.all_stats      = all_stats

    def on_iteration(self, stats):
        self.all_stats.append(stats)
        append_csv(stats, self.outdir)
        it = stats["iteration"]
        if it % self.chart_interval == 0 and it > 0:
            save_training_chart(self.all_stats, self.outdir)


# ──────────────────────────────────────────────────────────────────────────────
# Live replay
# ──────────────────────────────────────────────────────────────────────────────

def play(policy: NeuralPolicy, seconds: float, outdir: str, seed: int = None):
    """Drive a live run at the frame rate and snapshot it once per second."""
    # detached copy so the replay cannot touch the saved economy
    session = PlaySession(NeuralPolicy.from_parameters(policy.get_params()),
                          seed=seed, ambient_spawns=True,
                          time_budget=seconds, persist_purchases=False)
    session.start()
    frame = 0
    while session.tick(1.0 / TICK_RATE):
        frame += 1
        if frame % TICK_RATE == 0:
            save_episode_snapshot(session.snapshot(), f"play_{frame // TICK_RATE:04d}", outdir)
    result = session.episode.result()
    print(f"  Play run   : {result.seconds:.1f}s  kills {result.kills}  "
          f"fitness {result.fitness:.1f}")
    path = save_episode_snapshot(session.snapshot(), "play_final", outdir)
    print(f"  → Final snapshot: {path}")
    return result


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    args = parse_args(argv)
    ensure_dirs(args.outdir)

    rng    = np.random.default_rng(args.seed)
    store  = LocalPolicyStore(args.store_dir, args.version)
    policy = NeuralPolicy(hidden_size=args.hidden, sigma=args.sigma,
                          store=store, rng=rng)
    loaded = policy.load_if_exists()

    print("=" * 60)
    print("  EvoArena – Neuro-Evolved Arena Survivor")
    print("=" * 60)
    print(f"  Policy     : {'loaded from ' + store.path if loaded else 'fresh random weights'}")
    print(f"  Network    : {policy.input_size}→{policy.hidden_size}→{policy.output_size}")
    print(f"  Sigma      : {policy.sigma:.4f}")
    print(f"  Iterations : {args.iterations}")
    print(f"  Episode    : {args.episode_seconds:.1f}s")
    print(f"  Output dir : {args.outdir}")
    print("=" * 60)

    if args.import_path:
        with open(args.import_path, encoding="utf-8") as f:
            if policy.import_json(f.read()) and policy.save():
                print(f"  → Imported {args.import_path}")

    all_stats = []
    if args.iterations > 0:
        cb = TrainCallbacks(args.outdir, args.chart_interval, all_stats)
        trainer = Trainer(policy, episode_seconds=args.episode_seconds,
                          yield_seconds=0.0, rng=rng,
                          on_iteration=cb.on_iteration)
        try:
            trainer.run(args.iterations)
        except KeyboardInterrupt:
            print("\n  !! Interrupted – keeping the best policy so far.")

        print("\n=== Training complete ===")
        print(policy.summary())
        chart_path = save_training_chart(all_stats, args.outdir, "training_final.png")
        if chart_path:
            print(f"  → {chart_path}")

    if args.play > 0:
        play(policy, args.play, args.outdir, args.seed)

    if args.export:
        with open(args.export, "w", encoding="utf-8") as f:
            f.write(policy.export_json())
        print(f"  → Exported {args.export}")

    print("\nDone! All outputs saved to:", os.path.abspath(args.outdir))


if __name__ == "__main__":
    main()

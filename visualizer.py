"""
Visualizer for EvoArena.

Produces:
  1. Training chart     – fitness, best fitness and sigma per iteration
  2. Episode snapshots  – player, enemies and bullets of a running episode
  3. CSV log            – per-iteration stats
"""

import os
import csv
import math
import matplotlib
matplotlib.use("Agg")          # non-interactive backend (no display needed)
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from config import SAVE_DIR, LOG_CSV

KIND_COLORS = {
    "melee":  "#DC5A5A",
    "ranged": "#D4B24A",
    "fast":   "#B86ADF",
}
DEFAULT_KIND_COLOR = "#DC5A5A"


# ──────────────────────────────────────────────────────────────────────────────
# Directory setup
# ──────────────────────────────────────────────────────────────────────────────

def ensure_dirs(base: str = SAVE_DIR):
    for sub in ("snapshots", "charts"):
        os.makedirs(os.path.join(base, sub), exist_ok=True)


# ──────────────────────────────────────────────────────────────────────────────
# Episode snapshot
# ──────────────────────────────────────────────────────────────────────────────

def save_episode_snapshot(snapshot: dict, label: str, base: str = SAVE_DIR):
    """
    Render one Episode.snapshot() as a top-down view.
    Enemies are coloured by kind; friendly bullets yellow, hostile orange.
    """
    W, H = snapshot["width"], snapshot["height"]
    fig, ax = plt.subplots(figsize=(7.2, 4.8), dpi=100)
    ax.set_xlim(0, W)
    ax.set_ylim(H, 0)          # screen coordinates: y grows downward
    ax.set_aspect("equal")
    ax.set_facecolor("#071018")
    fig.patch.set_facecolor("#071018")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444444")

    for e in snapshot["enemies"]:
        ax.add_patch(mpatches.Circle(
            (e["x"], e["y"]), e["radius"],
            color=KIND_COLORS.get(e["kind"], DEFAULT_KIND_COLOR)))

    bullets = snapshot["bullets"]
    if bullets:
        ax.scatter([b["x"] for b in bullets], [b["y"] for b in bullets],
                   c=["#FFD83A" if b["friendly"] else "#FF8800" for b in bullets],
                   s=6, linewidths=0)

    p = snapshot["player"]
    if p is not None:
        ax.add_patch(mpatches.Circle((p["x"], p["y"]), p["radius"], color="#3CB4DF"))
        ax.set_title(
            f"{label}  t={snapshot['elapsed']:.1f}s  "
            f"hp {max(0.0, p['health']):.0f}/{p['maxHealth']:.0f}  "
            f"kills {p['kills']}  gold {snapshot['gold']}",
            color="white", fontsize=10)

    path = os.path.join(base, "snapshots", f"{label}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Training chart
# ──────────────────────────────────────────────────────────────────────────────

def save_training_chart(stats: list, base: str = SAVE_DIR,
                        filename: str = "training.png"):
    """
    Plot episode fitness, retained best fitness and sigma across iterations.
    """
    if not stats:
        return
    iters   = [s["iteration"] for s in stats]
    fitness = [s["fitness"]   for s in stats]
    best    = [s["best"] if math.isfinite(s["best"]) else float("nan") for s in stats]
    sigma   = [s["sigma"]     for s in stats]

    fig, ax1 = plt.subplots(figsize=(12, 5), dpi=100)
    fig.patch.set_facecolor("#111111")
    ax1.set_facecolor("#111111")

    # Episode fitness (grey scatter) and best so far (green), left axis
    ax1.scatter(iters, fitness, color="#888888", s=4, linewidths=0,
                label="Episode fitness", zorder=2)
    ax1.plot(iters, best, color="#44FF44", linewidth=1.4,
             label="Best fitness", zorder=3)
    ax1.set_ylabel("Fitness", color="white")
    ax1.set_xlabel("Iteration", color="white")
    ax1.tick_params(axis="both", colors="white")

    # Sigma (purple, right axis)
    ax2 = ax1.twinx()
    ax2.plot(iters, sigma, color="#CC44FF", linewidth=1.0,
             linestyle="--", label="Sigma", zorder=2)
    ax2.set_ylabel("Mutation sigma", color="white")
    ax2.tick_params(colors="white")

    for spine in ax1.spines.values():
        spine.set_edgecolor("#444444")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2,
               facecolor="#222222", labelcolor="white",
               loc="lower right", fontsize=8)

    ax1.set_title("Training Progress", color="white", fontsize=12)
    plt.tight_layout()
    path = os.path.join(base, "charts", filename)
    plt.savefig(path, dpi=100, bbox_inches="tight",
                facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# CSV log
# ──────────────────────────────────────────────────────────────────────────────

def append_csv(stats: dict, base: str = SAVE_DIR):
    """Append one iteration's stats to a CSV file."""
    if not LOG_CSV:
        return
    path = os.path.join(base, "training_log.csv")
    file_exists = os.path.isfile(path)
    with open(path, "a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(stats.keys()))
        if not file_exists:
            writer.writeheader()
        writer.writerow(stats)
    return path

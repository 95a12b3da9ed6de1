"""
EvoArena Configuration
All tunable parameters for the neuro-evolved arena survivor.
"""

# ─── World ────────────────────────────────────────────────────────────────────
WORLD_WIDTH  = 720.0   # playfield width in world units
WORLD_HEIGHT = 480.0   # playfield height in world units
TICK_RATE    = 60      # fixed simulation steps per simulated second
MAX_FRAME_DT = 1.0 / 30.0   # live frames longer than this are clamped

# ─── Neural Network ───────────────────────────────────────────────────────────
# Feature vector fed to the policy (index → meaning)
FEATURE_LABELS = {
    0:  "health_ratio",       # health / max_health
    1:  "currency",           # currency / CURRENCY_NORM
    2:  "e1_dx",              # nearest enemy dx / world width
    3:  "e1_dy",              # nearest enemy dy / world height
    4:  "e1_dist",            # normalised euclidean distance
    5:  "e1_kind",            # melee 0.0, ranged 0.5, fast 1.0
    6:  "e2_dx",
    7:  "e2_dy",
    8:  "e2_dist",
    9:  "e2_kind",
    10: "e3_dx",
    11: "e3_dy",
    12: "e3_dist",
    13: "e3_kind",
}
INPUT_SIZE  = len(FEATURE_LABELS)
HIDDEN_SIZE = 48

# Decision outputs (index → meaning)
OUTPUT_LABELS = {
    0: "move_x",     # tanh → [-1, 1]
    1: "move_y",     # tanh → [-1, 1]
    2: "shoot",      # sigmoid → shoot probability
    3: "shop",       # raw shop-selection signal
    4: "special",    # reserved
}
OUTPUT_SIZE = len(OUTPUT_LABELS)

NEAREST_ENEMIES = 3
CURRENCY_NORM   = 200.0
KIND_CODES      = {"melee": 0.0, "ranged": 0.5, "fast": 1.0}

# ─── Evolution ────────────────────────────────────────────────────────────────
INITIAL_SIGMA  = 0.12
SIGMA_MIN      = 0.005
SIGMA_MAX      = 0.9
SIGMA_DECAY    = 0.96    # applied on improvement
SIGMA_GROWTH   = 1.02    # applied on failure

# ─── Player ───────────────────────────────────────────────────────────────────
PLAYER_RADIUS        = 14.0
PLAYER_MAX_HEALTH    = 100.0
PLAYER_MOVE_SPEED    = 150.0
PLAYER_DAMAGE        = 20.0
PLAYER_FIRE_COOLDOWN = 0.35
FIRERATE_STEP        = 0.03    # cooldown reduction per fire-rate upgrade
MIN_FIRE_COOLDOWN    = 0.05
SHOOT_THRESHOLD      = 0.55

HEAL_THRESHOLD   = 0.45   # fraction of max health
HEAL_BASE        = 30.0
HEAL_FRACTION    = 0.15
HEAL_COOLDOWN    = 6.0

# ─── Combat ───────────────────────────────────────────────────────────────────
BULLET_RADIUS        = 4.0
PLAYER_BULLET_SPEED  = 420.0
ENEMY_BULLET_SPEED   = 300.0
BULLET_MARGIN        = 50.0     # bullets die this far outside the field
FAN_STEP             = 0.12     # radians of half-width per multishot level
FAN_MAX              = 0.6
RANGED_HOLD_DISTANCE = 220.0
TIMER_EPSILON        = 1e-6

# ─── Enemies ──────────────────────────────────────────────────────────────────
# kind → (speed, radius, health, damage, attack_cooldown, shoots)
ENEMY_STATS = {
    "melee":   (90.0,  12.0, 30.0, 18.0, 0.8, False),
    "ranged":  (60.0,  12.0, 20.0, 12.0, 1.2, True),
    "fast":    (140.0, 10.0, 15.0, 12.0, 0.5, False),
    "default": (80.0,  12.0, 25.0, 10.0, 1.0, False),
}

# ─── Spawning ─────────────────────────────────────────────────────────────────
SPAWN_WEIGHTS       = (("melee", 0.45), ("ranged", 0.35), ("fast", 0.20))
SPAWN_OFFSET        = 30.0    # how far outside the edge enemies appear
SPAWN_BASE_INTERVAL = 1.2
SPAWN_RAMP          = 0.01    # interval shrinks by this much per second
SPAWN_MIN_INTERVAL  = 0.25

# ─── Economy ──────────────────────────────────────────────────────────────────
KILL_REWARD = 15

# name, key, amount, cost, priority
SHOP_CATALOG = [
    ("Max Health +20", "max_health", 20, 30, 1.0),
    ("Damage +6",      "damage",      6, 40, 1.2),
    ("Speed +20",      "speed",      20, 35, 1.0),
    ("Fire Rate +1",   "firerate",    1, 45, 1.1),
    ("Multi-Shot +1",  "multishot",   1, 60, 1.6),
    ("Pierce +1",      "pierce",      1, 55, 1.3),
    ("Heal Charge +1", "heal",        1, 50, 1.0),
]

# ─── Fitness ──────────────────────────────────────────────────────────────────
FITNESS_KILL     = 50.0
FITNESS_SURVIVAL = 1.0
FITNESS_CURRENCY = 2.0
FITNESS_DAMAGE   = 0.5

# ─── Training ─────────────────────────────────────────────────────────────────
TRAIN_EPISODE_SECONDS = 10.0
YIELD_SECONDS         = 0.012   # pause between training iterations

# ─── Play Mode ────────────────────────────────────────────────────────────────
PLAY_POINTS      = 100
SPAWN_COSTS      = {"melee": 20, "ranged": 30, "fast": 25}
USER_SPAWN_JITTER = 60.0

# ─── Persistence ──────────────────────────────────────────────────────────────
STORAGE_VERSION = "v1"
STORAGE_DIR     = "saves"
REMOTE_FILENAME = "ai_weights.json"
REMOTE_MESSAGE  = "Update AI weights"

# ─── Output / Logging ─────────────────────────────────────────────────────────
SAVE_DIR        = "output"   # directory for charts, snapshots and logs
CHART_INTERVAL  = 100        # redraw the training chart every N iterations
LOG_CSV         = True       # write per-iteration CSV log

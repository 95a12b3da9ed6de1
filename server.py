"""
EvoArena Server  –  Flask + Server-Sent Events
==============================================

Endpoints:
  POST /train/start   Start background training (optional JSON config body)
  POST /train/stop    Stop training after the current iteration
  GET  /status        Trainer state and policy summary as JSON
  GET  /stream        SSE stream – one event per training iteration
  GET  /policy        Export the current parameter document
  POST /policy        Import a parameter document (400 if malformed)
  POST /play/reset    New paused play run with freshly loaded weights
  POST /play/start    Resume the play run
  POST /play/pause    Pause the play run
  POST /play/spawn    Spend points on an enemy {kind, x?, y?}
  POST /play/step     Advance the play run by {dt} seconds
  GET  /play/state    Entity positions, health and decisions of the play run

Run:
  python server.py
  # → http://localhost:5000
"""

import threading
import queue
import json

from flask import Flask, Response, request, jsonify

from errors import ValidationError
from policy import NeuralPolicy
from simulation import PlaySession
from storage import LocalPolicyStore
from trainer import Trainer
from config import (
    HIDDEN_SIZE, INITIAL_SIGMA, TRAIN_EPISODE_SECONDS, YIELD_SECONDS,
    PLAY_POINTS, STORAGE_DIR, STORAGE_VERSION, MAX_FRAME_DT,
)

# ──────────────────────────────────────────────────────────────────────────────
app = Flask(__name__)

# Global state
_policy:  NeuralPolicy | None = None
_trainer: Trainer | None = None
_play:    PlaySession | None = None
_iter_queue   = queue.Queue(maxsize=200)   # holds dicts to stream
_status_lock  = threading.Lock()
_cfg          = {}


# ──────────────────────────────────────────────────────────────────────────────
# CORS helper – allow any origin to call us
# ──────────────────────────────────────────────────────────────────────────────

@app.after_request
def add_cors(response):
    response.headers["Access-Control-Allow-Origin"]  = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response

@app.route("/", methods=["OPTIONS"])
@app.route("/<path:p>", methods=["OPTIONS"])
def preflight(p=""):
    return Response(status=200)


# ──────────────────────────────────────────────────────────────────────────────
# State setup
# ──────────────────────────────────────────────────────────────────────────────

def _build_cfg(data: dict) -> dict:
    """Merge request JSON with defaults."""
    return {
        "hidden_size":     int(data.get("hiddenSize",      HIDDEN_SIZE)),
        "sigma":           float(data.get("sigma",         INITIAL_SIGMA)),
        "episode_seconds": float(data.get("episodeSeconds", TRAIN_EPISODE_SECONDS)),
        "yield_seconds":   float(data.get("yieldSeconds",  YIELD_SECONDS)),
        "play_points":     int(data.get("playPoints",      PLAY_POINTS)),
        "storage_dir":     str(data.get("storageDir",      STORAGE_DIR)),
        "version":         str(data.get("version",         STORAGE_VERSION)),
    }


def configure(store=None, data: dict = None):
    """(Re)create the policy, trainer and play run. Stops running training."""
    global _policy, _trainer, _play, _iter_queue, _cfg

    if _trainer is not None:
        _trainer.stop()
        _trainer.join(timeout=3)

    _cfg = _build_cfg(data or {})
    if store is None:
        store = LocalPolicyStore(_cfg["storage_dir"], _cfg["version"])

    _policy = NeuralPolicy(hidden_size=_cfg["hidden_size"], sigma=_cfg["sigma"], store=store)
    _policy.load_if_exists()
    _iter_queue = queue.Queue(maxsize=200)
    _trainer = Trainer(_policy,
                       episode_seconds=_cfg["episode_seconds"],
                       yield_seconds=_cfg["yield_seconds"],
                       on_iteration=_on_iteration,
                       verbose=False)
    _play = PlaySession(_policy, points=_cfg["play_points"])


def _on_iteration(stats: dict):
    payload = dict(stats, type="iteration")
    # Non-blocking put; drop oldest frame if queue full
    if _iter_queue.full():
        try:
            _iter_queue.get_nowait()
        except queue.Empty:
            pass
    _iter_queue.put(payload)


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _number(data: dict, key: str, default=None):
    """Numeric field of a request body; ValidationError if it is not a number."""
    value = data.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number, got {value!r}") from None


# ──────────────────────────────────────────────────────────────────────────────
# Training routes
# ──────────────────────────────────────────────────────────────────────────────

@app.route("/train/start", methods=["POST"])
def train_start():
    data = _json_body()
    with _status_lock:
        if data:
            # new settings rebuild the trainer around the stored weights
            configure(store=_policy.store, data=data)
        started = _trainer.start()
    return jsonify({"status": "started" if started else "already_running", "cfg": _cfg})


@app.route("/train/stop", methods=["POST"])
def train_stop():
    _trainer.stop()
    return jsonify({"status": "stopping"})


@app.route("/status", methods=["GET"])
def status():
    with _trainer.lock:
        best, sigma = _policy.best_fitness, _policy.sigma
        economy = _policy.economy.to_document()
    last = _trainer.history[-1] if _trainer.history else None
    return jsonify({
        "state":       _trainer.state,
        "iteration":   _trainer.iteration,
        "bestFitness": best if best != float("-inf") else None,
        "sigma":       sigma,
        "economy":     economy,
        "last":        last,
        "cfg":         _cfg,
    })


@app.route("/stream", methods=["GET"])
def stream():
    """SSE endpoint – browser subscribes and receives each iteration as an event."""

    def event_gen():
        yield "data: {\"type\": \"connected\"}\n\n"

        while True:
            try:
                payload = _iter_queue.get(timeout=1)
                yield f"data: {json.dumps(payload)}\n\n"
            except queue.Empty:
                if not _trainer.training:
                    yield "data: {\"type\": \"idle\"}\n\n"
                    break
                # Keep-alive ping
                yield "data: {\"type\": \"ping\"}\n\n"

    return Response(
        event_gen(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",    # disable nginx buffering if behind proxy
        },
    )


# ──────────────────────────────────────────────────────────────────────────────
# Policy routes
# ──────────────────────────────────────────────────────────────────────────────

@app.route("/policy", methods=["GET"])
def export_policy():
    with _trainer.lock:
        text = _policy.export_json()
    return Response(text, mimetype="application/json")


@app.route("/policy", methods=["POST"])
def import_policy():
    doc = request.get_json(force=True, silent=True)
    try:
        with _trainer.lock:
            _policy.set_params(doc)
            saved = _policy.save()
    except ValidationError as exc:
        return jsonify({"status": "rejected", "error": str(exc)}), 400
    return jsonify({"status": "imported", "saved": saved})


# ──────────────────────────────────────────────────────────────────────────────
# Play routes
# ──────────────────────────────────────────────────────────────────────────────

@app.route("/play/reset", methods=["POST"])
def play_reset():
    with _trainer.lock:
        _policy.load_if_exists()
        _play.reset()
    return jsonify(_play.snapshot())


@app.route("/play/start", methods=["POST"])
def play_start():
    _play.start()
    return jsonify({"running": _play.running})


@app.route("/play/pause", methods=["POST"])
def play_pause():
    _play.pause()
    return jsonify({"running": _play.running})


@app.route("/play/spawn", methods=["POST"])
def play_spawn():
    data = _json_body()
    try:
        x, y = _number(data, "x"), _number(data, "y")
    except ValidationError as exc:
        return jsonify({"status": "rejected", "error": str(exc)}), 400
    ok = _play.spawn(str(data.get("kind", "melee")), x, y)
    if not ok:
        return jsonify({"status": "refused", "points": _play.points}), 409
    return jsonify({"status": "spawned", "points": _play.points})


@app.route("/play/step", methods=["POST"])
def play_step():
    try:
        dt = _number(_json_body(), "dt", MAX_FRAME_DT)
    except ValidationError as exc:
        return jsonify({"status": "rejected", "error": str(exc)}), 400
    with _trainer.lock:
        _play.tick(dt)
    return jsonify(_play.snapshot())


@app.route("/play/state", methods=["GET"])
def play_state():
    return jsonify(_play.snapshot())


configure()

# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print("=" * 50)
    print("  EvoArena Server  →  http://localhost:5000")
    print("  SSE stream       →  http://localhost:5000/stream")
    print("=" * 50)
    app.run(host="0.0.0.0", port=5000, threaded=True, debug=False)

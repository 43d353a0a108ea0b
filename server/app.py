"""Minimal Flask API for playing Klondike and querying solvability."""
from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict

from flask import Flask, jsonify, request

from game import GameState, Position, execute_draw, execute_move, init_game
from scripts.solver import DEFAULT_MAX_ITERATIONS, check_solvability

DEFAULT_UNDO_LIMIT = 20
DEFAULT_MAX_GAMES = 1000

LOGGER = logging.getLogger("server")

app = Flask(__name__)
app.config.setdefault("SOLITAIRE_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)
app.config.setdefault("SOLITAIRE_UNDO_LIMIT", DEFAULT_UNDO_LIMIT)
app.config.setdefault("SOLITAIRE_MAX_GAMES", DEFAULT_MAX_GAMES)


@dataclass
class GameSession:
    """The live state of one game plus its bounded snapshot history."""

    state: GameState
    history: Deque[Dict[str, Any]] = field(default_factory=deque)

    def advance(self, new_state: GameState) -> None:
        self.history.append(self.state.to_dict())
        self.state = new_state

    def restart(self, new_state: GameState) -> None:
        self.history.clear()
        self.state = new_state

    def undo(self) -> bool:
        if not self.history:
            return False
        self.state = GameState.from_dict(self.history.pop())
        return True


GAMES: Dict[str, GameSession] = {}


def _evict_oldest(keep: int) -> None:
    # Insertion order: the first key is the oldest session.
    while GAMES and len(GAMES) > max(keep, 0):
        oldest = next(iter(GAMES))
        del GAMES[oldest]
        LOGGER.info("Evicted game %s", oldest)


def _session_payload(game_id: str, session: GameSession) -> Dict[str, Any]:
    return {
        "id": game_id,
        "state": session.state.to_dict(),
        "can_undo": bool(session.history),
    }


def _not_found():
    return jsonify({"error": "game not found"}), 404


def _parse_seed(payload: Dict[str, Any]) -> int | None:
    seed = payload.get("seed")
    if seed is None:
        return None
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValueError(f"seed has invalid type: {type(seed).__name__}")
    return seed


def _parse_move(payload: Dict[str, Any]) -> tuple[Position, str, int]:
    source = payload.get("source")
    if not isinstance(source, dict):
        raise ValueError("Missing field: source")
    position = Position.from_dict(source)

    target_type = payload.get("target_pile_type")
    if not isinstance(target_type, str):
        raise ValueError("Missing field: target_pile_type")
    target_index = payload.get("target_pile_index")
    if isinstance(target_index, bool) or not isinstance(target_index, int):
        raise ValueError("target_pile_index must be an integer")
    return position, target_type, target_index


@app.post("/api/games")
def create_game():
    payload = request.get_json(silent=True) or {}
    try:
        seed = _parse_seed(payload)
        state = init_game(payload.get("mode"), seed=seed)
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    game_id = uuid.uuid4().hex
    session = GameSession(
        state=state,
        history=deque(maxlen=int(app.config["SOLITAIRE_UNDO_LIMIT"])),
    )
    _evict_oldest(int(app.config["SOLITAIRE_MAX_GAMES"]) - 1)
    GAMES[game_id] = session
    LOGGER.info("Started game %s in %s mode", game_id, state.mode.name)
    return jsonify(_session_payload(game_id, session)), 201


@app.get("/api/games/<game_id>")
def get_game(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()
    return jsonify(_session_payload(game_id, session))


@app.post("/api/games/<game_id>/new")
def restart_game(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()

    payload = request.get_json(silent=True) or {}
    mode = payload.get("mode")
    if mode is None:
        mode = session.state.mode
    try:
        state = init_game(mode, seed=_parse_seed(payload))
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    session.restart(state)
    LOGGER.info("Restarted game %s in %s mode", game_id, state.mode.name)
    return jsonify(_session_payload(game_id, session))


@app.delete("/api/games/<game_id>")
def delete_game(game_id: str):
    if GAMES.pop(game_id, None) is None:
        return _not_found()
    LOGGER.info("Deleted game %s", game_id)
    return "", 204


@app.post("/api/games/<game_id>/draw")
def draw(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()
    session.advance(execute_draw(session.state))
    return jsonify(_session_payload(game_id, session))


@app.post("/api/games/<game_id>/move")
def move(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()

    payload = request.get_json(silent=True) or {}
    try:
        source, target_type, target_index = _parse_move(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    new_state = execute_move(session.state, source, target_type, target_index)
    if new_state is None:
        return jsonify({"error": "illegal move"}), 409

    session.advance(new_state)
    if new_state.won:
        LOGGER.info("Game %s won in %d moves", game_id, new_state.moves)
    return jsonify(_session_payload(game_id, session))


@app.post("/api/games/<game_id>/undo")
def undo(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()
    if not session.undo():
        return jsonify({"error": "nothing to undo"}), 409
    return jsonify(_session_payload(game_id, session))


@app.get("/api/games/<game_id>/solvability")
def solvability(game_id: str):
    session = GAMES.get(game_id)
    if session is None:
        return _not_found()

    raw_budget = request.args.get("max_iterations")
    if raw_budget is None:
        budget = int(app.config["SOLITAIRE_MAX_ITERATIONS"])
    else:
        try:
            budget = int(raw_budget, 10)
        except ValueError:
            return jsonify({"error": "max_iterations must be an integer"}), 400
        if budget < 1:
            return jsonify({"error": "max_iterations must be at least 1"}), 400

    verdict = check_solvability(session.state, budget)
    LOGGER.info("Game %s solvability with budget %d: %s", game_id, budget, verdict)
    return jsonify({"id": game_id, "verdict": verdict, "max_iterations": budget})


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(host="0.0.0.0", port=5000, debug=True)

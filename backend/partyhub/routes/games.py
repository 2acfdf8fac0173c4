from __future__ import annotations

from flask import Blueprint, jsonify

from ..games import GAME_TYPES

bp = Blueprint("games", __name__)


@bp.get("/games")
def list_games():
    return jsonify({"games": [g.to_dict() for g in GAME_TYPES.values()]})

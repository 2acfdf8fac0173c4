from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..lobby import lobby_public_state

bp = Blueprint("lobbies", __name__)


def _lobbies():
    return current_app.extensions["partyhub"].lobbies


@bp.get("/lobbies")
def list_lobbies():
    return jsonify({"lobbies": [lobby_public_state(lobby) for lobby in _lobbies().all_lobbies()]})


@bp.get("/lobbies/<code>")
def get_lobby(code: str):
    lobby = _lobbies().get_lobby(code)
    if not lobby:
        return jsonify({"error": "lobby_not_found"}), 404
    return jsonify(lobby_public_state(lobby))

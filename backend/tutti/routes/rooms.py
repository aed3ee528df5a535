from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("rooms", __name__)


@bp.get("/rooms/<code>")
def get_room(code: str):
    game = current_app.extensions["tutti"]
    room = game.get_room(code.strip().upper())
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(game.room_snapshot(room))

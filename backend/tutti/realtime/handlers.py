from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game.errors import GameError
from ..game.service import Ballot, DisconnectOutcome, GameService, VoteOutcome
from .events import (
    CreateRoom,
    InvalidPayload,
    JoinRoom,
    RejoinRequest,
    RoomAction,
    SubmitAnswers,
    SubmitVotes,
)

logger = logging.getLogger(__name__)

P = TypeVar("P")


def _parse(event_cls: type[P], data: Any) -> P | None:
    try:
        return event_cls.parse(data)  # type: ignore[attr-defined]
    except InvalidPayload as exc:
        logger.debug("dropping %s from %s: %s", event_cls.__name__, request.sid, exc)
        return None


def _emit_error(message: str, code: str) -> None:
    emit("error", {"message": message, "code": code})


def register_socketio_handlers(socketio: SocketIO, game: GameService, config: Mapping[str, Any]) -> None:
    display_delay = float(config.get("VOTING_DISPLAY_DELAY_SEC", 0) or 0)
    tasks_enabled = bool(config.get("ROOM_TASKS_ENABLED", False))
    room_tasks: dict[str, bool] = {}

    def _broadcast_players(room_code: str) -> None:
        socketio.emit("update_players", {"players": game.players_public(room_code)}, to=room_code)

    def _broadcast_ballot(ballot: Ballot) -> None:
        socketio.emit("start_voting_phase", ballot.to_payload(), to=ballot.room_code)

    def _broadcast_stop(room_code: str, stopped_by: str | None) -> None:
        socketio.emit("round_stopped", {"stoppedBy": stopped_by}, to=room_code)
        socketio.emit("request_answers", {}, to=room_code)

    def _schedule_next_target(room_code: str, index: int) -> None:
        def _open() -> None:
            ballot = game.begin_voting(room_code, index)
            if ballot is not None:
                _broadcast_ballot(ballot)

        if display_delay <= 0:
            _open()
            return

        def _runner() -> None:
            socketio.sleep(display_delay)
            _open()

        socketio.start_background_task(_runner)

    def _broadcast_votes(outcome: VoteOutcome) -> None:
        room_code = outcome.room_code
        socketio.emit("voting_progress", outcome.progress_payload(), to=room_code)
        if not outcome.tallied:
            return

        socketio.emit("player_round_total", outcome.total_payload(), to=room_code)
        if outcome.summary is not None:
            socketio.emit("round_ended", outcome.summary.to_payload(), to=room_code)
            _broadcast_players(room_code)
        elif outcome.next_index is not None:
            _schedule_next_target(room_code, outcome.next_index)

    def _broadcast_disconnect(outcome: DisconnectOutcome | None) -> None:
        if outcome is None:
            return
        _broadcast_players(outcome.room_code)
        if outcome.ballot is not None:
            _broadcast_ballot(outcome.ballot)
        if outcome.votes is not None:
            _broadcast_votes(outcome.votes)

    def _release_connection(keep: tuple[str, str] | None = None) -> None:
        # One socket speaks for one player in one room at a time.
        info = game.lookup_connection(request.sid)
        if info is None or info == keep:
            return
        leave_room(info[0])
        _broadcast_disconnect(game.handle_disconnect(request.sid))

    def _caller(room_code: str) -> str | None:
        info = game.lookup_connection(request.sid)
        if info is None or info[0] != room_code:
            logger.debug("connection %s is not in room %s", request.sid, room_code)
            return None
        return info[1]

    def _send_restored_state(room_code: str, player_id: str) -> None:
        state = game.restore_state(room_code, player_id)
        if state is None:
            return
        emit("state_restored", state)

        ballot = game.current_ballot(room_code)
        if ballot is not None:
            emit("start_voting_phase", ballot.to_payload())

        summary = game.last_round_summary(room_code)
        if summary is not None:
            emit("round_ended", summary.to_payload())

    def _ensure_room_task(room_code: str) -> None:
        if not tasks_enabled or room_tasks.get(room_code):
            return
        room_tasks[room_code] = True

        def _runner() -> None:
            try:
                while game.get_room(room_code) is not None:
                    # Writing deadline passed -> ask everyone for their sheet.
                    if game.expire_round(room_code):
                        _broadcast_stop(room_code, None)

                    for code in game.reap_idle_rooms():
                        logger.info("room %s reaped after idle timeout", code)

                    socketio.sleep(1)
            finally:
                room_tasks.pop(room_code, None)

        socketio.start_background_task(_runner)

    @socketio.on("create_room")
    def on_create_room(data):
        try:
            event = CreateRoom.parse(data)
        except InvalidPayload as exc:
            _emit_error(str(exc), exc.code)
            return

        _release_connection()
        room = game.create_room(event.player_id, event.player_name, request.sid)
        join_room(room.code)
        emit("room_created", {"code": room.code, "playerId": event.player_id})
        _broadcast_players(room.code)
        _ensure_room_task(room.code)

    @socketio.on("join_room")
    def on_join_room(data):
        try:
            event = JoinRoom.parse(data)
        except InvalidPayload as exc:
            _emit_error(str(exc), exc.code)
            return

        _release_connection(keep=(event.code, event.player_id))
        try:
            result = game.join_or_rejoin(event.code, event.player_id, event.player_name, request.sid)
        except GameError as exc:
            _emit_error(exc.message, exc.code)
            return

        join_room(event.code)
        emit("room_joined", {"code": event.code, "playerId": event.player_id})
        if result.is_rejoin:
            _send_restored_state(event.code, event.player_id)
        _broadcast_players(event.code)
        _ensure_room_task(event.code)

    @socketio.on("rejoin_request")
    def on_rejoin_request(data):
        event = _parse(RejoinRequest, data)
        if event is None:
            return

        _release_connection(keep=(event.room_code, event.player_id))
        try:
            game.join_or_rejoin(event.room_code, event.player_id, event.player_name, request.sid)
        except GameError as exc:
            logger.info("rejoin of %s to %s refused: %s", event.player_id, event.room_code, exc)
            _emit_error("Could not rejoin room", "REJOIN_FAILED")
            return

        join_room(event.room_code)
        _send_restored_state(event.room_code, event.player_id)
        _broadcast_players(event.room_code)
        _ensure_room_task(event.room_code)

    @socketio.on("start_game")
    def on_start_game(data):
        event = _parse(RoomAction, data)
        if event is None:
            return
        player_id = _caller(event.code)
        if player_id is None:
            return
        if not game.is_host(event.code, player_id):
            logger.debug("start_game from non-host %s in %s", player_id, event.code)
            return

        started = game.start_round(event.code)
        if started is None:
            return
        socketio.emit("round_started", started.to_payload(), to=event.code)
        _ensure_room_task(event.code)

    @socketio.on("stop_round")
    def on_stop_round(data):
        event = _parse(RoomAction, data)
        if event is None:
            return
        player_id = _caller(event.code)
        if player_id is None:
            return

        if game.stop_round(event.code, player_id):
            _broadcast_stop(event.code, player_id)

    @socketio.on("submit_answers")
    def on_submit_answers(data):
        event = _parse(SubmitAnswers, data)
        if event is None:
            return
        player_id = _caller(event.code)
        if player_id is None:
            return

        ballot = game.submit_answers(event.code, player_id, event.answers)
        if ballot is not None:
            _broadcast_ballot(ballot)

    @socketio.on("submit_votes")
    def on_submit_votes(data):
        event = _parse(SubmitVotes, data)
        if event is None:
            return
        player_id = _caller(event.code)
        if player_id is None:
            return

        outcome = game.submit_votes(event.code, player_id, event.target_player_id, event.votes)
        if outcome is not None:
            _broadcast_votes(outcome)

    @socketio.on("reset_game")
    def on_reset_game(data):
        event = _parse(RoomAction, data)
        if event is None:
            return
        player_id = _caller(event.code)
        if player_id is None or not game.is_host(event.code, player_id):
            return

        if game.reset_game(event.code) is None:
            return
        players = game.players_public(event.code)
        socketio.emit("game_reset", {"players": players}, to=event.code)
        socketio.emit("update_players", {"players": players}, to=event.code)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        _broadcast_disconnect(game.handle_disconnect(request.sid))

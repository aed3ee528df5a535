from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Mapping

from ..config import Config
from .errors import GameAlreadyStarted, InvalidPhaseTransition, RoomNotFound, UnknownConnection
from .models import Player, Room
from .pools import generate_room_code, pick_categories, pick_letter
from .tally import POINTS_PER_CATEGORY, TallyResult, tally

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


# Phases in which each mutating operation is accepted.
ALLOWED_PHASES: dict[str, tuple[str, ...]] = {
    "start_round": ("LOBBY", "ROUND_RESULTS"),
    "stop_round": ("PLAYING",),
    "expire_round": ("PLAYING",),
    "submit_answers": ("PLAYING", "COLLECTING_ANSWERS"),
    "begin_voting": ("VOTING",),
    "submit_votes": ("VOTING",),
    "reset_game": ("PLAYING", "COLLECTING_ANSWERS", "VOTING", "ROUND_RESULTS", "GAME_OVER"),
}


def player_public(p: Player) -> dict:
    # connection_ref stays server-side.
    return {"id": p.id, "name": p.name, "score": p.score, "connected": p.connected}


@dataclass
class JoinResult:
    room: Room
    player: Player
    is_rejoin: bool


@dataclass
class RoundStart:
    room_code: str
    round: int
    letter: str
    ends_at_ms: int
    categories: list[str]

    def to_payload(self) -> dict:
        return {
            "round": self.round,
            "letter": self.letter,
            "endTime": self.ends_at_ms,
            "categories": list(self.categories),
        }


@dataclass
class Ballot:
    """Answers of the player currently being judged."""

    room_code: str
    voting_index: int
    target_id: str
    target_name: str
    answers: dict[str, str]

    def to_payload(self) -> dict:
        return {
            "targetPlayer": {"id": self.target_id, "name": self.target_name},
            "answers": dict(self.answers),
        }


@dataclass
class RoundSummary:
    room_code: str
    round: int
    letter: str
    leaderboard: list[dict]
    is_game_over: bool
    round_details: list[dict]
    categories: list[str]

    def to_payload(self) -> dict:
        return {
            "leaderboard": self.leaderboard,
            "isGameOver": self.is_game_over,
            "roundDetails": self.round_details,
            "categories": list(self.categories),
        }


@dataclass
class VoteOutcome:
    room_code: str
    target_id: str
    target_name: str
    voters: int
    total_needed: int
    result: TallyResult | None = None
    total_score: int = 0
    # Set when another target still has to be judged.
    next_index: int | None = None
    summary: RoundSummary | None = None

    @property
    def tallied(self) -> bool:
        return self.result is not None

    def progress_payload(self) -> dict:
        return {"voters": self.voters, "totalNeeded": self.total_needed}

    def total_payload(self) -> dict:
        assert self.result is not None
        return {
            "player": {"id": self.target_id, "name": self.target_name},
            "roundScore": self.result.score,
            "totalScore": self.total_score,
            "details": self.result.details(),
        }


@dataclass
class DisconnectOutcome:
    room_code: str
    player_id: str
    # A disconnect can complete a pending quorum.
    ballot: Ballot | None = None
    votes: VoteOutcome | None = None


def _guarded(operation: str):
    """Resolve the room and check the phase table before running ``fn``.

    The wrapped method is called with the Room instead of its code. Unknown
    rooms and disallowed phases turn the call into a no-op returning None.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(self: GameService, room_code: str, *args, **kwargs):
            with self._lock:
                try:
                    room = self._require(room_code, operation)
                except (RoomNotFound, InvalidPhaseTransition) as exc:
                    logger.debug("%s ignored: %s", operation, exc)
                    return None
                return fn(self, room, *args, **kwargs)

        return wrapper

    return decorator


class GameService:
    """Owns every live room and the connection index.

    All mutations run under one re-entrant lock, so handlers may be called
    from several threads.
    """

    def __init__(
        self,
        *,
        round_duration_sec: int = Config.ROUND_DURATION_SEC,
        max_rounds: int = Config.MAX_ROUNDS,
        points_per_category: int = POINTS_PER_CATEGORY,
        idle_ttl_sec: int = Config.ROOM_IDLE_TTL_SEC,
        code_generator: Callable[[], str] = generate_room_code,
        category_picker: Callable[[], list[str]] = pick_categories,
        letter_picker: Callable[[list[str]], str] = pick_letter,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._connections: dict[str, tuple[str, str]] = {}

        self.round_duration_sec = round_duration_sec
        self.max_rounds = max_rounds
        self.points_per_category = points_per_category
        self.idle_ttl_sec = idle_ttl_sec

        self._code_generator = code_generator
        self._category_picker = category_picker
        self._letter_picker = letter_picker
        self._clock = clock

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> GameService:
        kwargs: dict[str, Any] = {
            "round_duration_sec": int(config.get("ROUND_DURATION_SEC", Config.ROUND_DURATION_SEC)),
            "max_rounds": int(config.get("MAX_ROUNDS", Config.MAX_ROUNDS)),
            "points_per_category": int(config.get("POINTS_PER_CATEGORY", Config.POINTS_PER_CATEGORY)),
            "idle_ttl_sec": int(config.get("ROOM_IDLE_TTL_SEC", Config.ROOM_IDLE_TTL_SEC)),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    # ---- registry ----

    def create_room(self, player_id: str, player_name: str, connection_ref: str) -> Room:
        with self._lock:
            code = self._code_generator()
            while code in self._rooms:
                code = self._code_generator()

            host = Player(id=player_id, name=player_name, connection_ref=connection_ref)
            room = Room(
                code=code,
                host_id=player_id,
                categories=list(self._category_picker()),
                players=[host],
                max_rounds=self.max_rounds,
                round_duration_sec=self.round_duration_sec,
            )
            self._rooms[code] = room
            self._connections[connection_ref] = (code, player_id)
            logger.info("room %s created by %s", code, player_id)
            return room

    def join_or_rejoin(
        self,
        room_code: str,
        player_id: str,
        player_name: str,
        connection_ref: str,
    ) -> JoinResult:
        """Add a player to a room, or reattach a known player id.

        Raises RoomNotFound, or GameAlreadyStarted for a new id outside the
        lobby. A known id can always come back, whatever the phase.
        """
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                raise RoomNotFound(room_code)

            player = room.find_player(player_id)
            if player is None and room.phase != "LOBBY":
                raise GameAlreadyStarted(room_code)

            is_rejoin = player is not None
            if player is None:
                player = Player(id=player_id, name=player_name, connection_ref=connection_ref)
                room.players.append(player)
                logger.info("player %s joined room %s", player_id, room_code)
            else:
                if player.connection_ref and player.connection_ref != connection_ref:
                    # The old socket no longer speaks for this player.
                    self._connections.pop(player.connection_ref, None)
                player.connected = True
                player.connection_ref = connection_ref
                if player_name:
                    player.name = player_name
                logger.info("player %s rejoined room %s (phase=%s)", player_id, room_code, room.phase)

            room.last_empty_at_ms = None
            self._connections[connection_ref] = (room_code, player_id)
            return JoinResult(room=room, player=player, is_rejoin=is_rejoin)

    def handle_disconnect(self, connection_ref: str) -> DisconnectOutcome | None:
        with self._lock:
            info = self._connections.pop(connection_ref, None)
            if info is None:
                return None

            room_code, player_id = info
            room = self._rooms.get(room_code)
            if room is None:
                return None
            player = room.find_player(player_id)
            if player is None or player.connection_ref != connection_ref:
                return None

            player.connected = False
            player.connection_ref = None
            if not any(p.connected for p in room.players):
                room.last_empty_at_ms = self._clock()
            logger.info("player %s disconnected from room %s", player_id, room_code)

            outcome = DisconnectOutcome(room_code=room_code, player_id=player_id)
            if room.phase in ("PLAYING", "COLLECTING_ANSWERS"):
                outcome.ballot = self._maybe_start_voting(room)
            elif room.phase == "VOTING" and room.voting_open:
                outcome.votes = self._maybe_close_ballot(room)
            return outcome

    def get_room(self, room_code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(room_code)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def delete_room(self, room_code: str) -> bool:
        with self._lock:
            if self._rooms.pop(room_code, None) is None:
                return False
            for ref, (code, _pid) in list(self._connections.items()):
                if code == room_code:
                    del self._connections[ref]
            logger.info("room %s deleted", room_code)
            return True

    def lookup_connection(self, connection_ref: str) -> tuple[str, str] | None:
        with self._lock:
            return self._connections.get(connection_ref)

    def resolve_connection(self, connection_ref: str) -> tuple[str, str]:
        info = self.lookup_connection(connection_ref)
        if info is None:
            raise UnknownConnection(connection_ref)
        return info

    def reap_idle_rooms(self, now: int | None = None) -> list[str]:
        """Delete rooms nobody has been connected to for ``idle_ttl_sec``."""
        with self._lock:
            now = self._clock() if now is None else now
            ttl_ms = self.idle_ttl_sec * 1000
            reaped = [
                code for code, room in self._rooms.items()
                if room.last_empty_at_ms is not None and now - room.last_empty_at_ms >= ttl_ms
            ]
            for code in reaped:
                self.delete_room(code)
            return reaped

    # ---- state machine ----

    def _require(self, room_code: str, operation: str) -> Room:
        room = self._rooms.get(room_code)
        if room is None:
            raise RoomNotFound(room_code)
        if room.phase not in ALLOWED_PHASES[operation]:
            raise InvalidPhaseTransition(operation, room.phase)
        return room

    @_guarded("start_round")
    def start_round(self, room: Room) -> RoundStart:
        letter = self._letter_picker(room.used_letters)
        if letter not in room.used_letters:
            room.used_letters.append(letter)

        room.current_letter = letter
        room.answers = {}
        room.round_votes = {}
        room.voting_index = 0
        room.voting_open = False
        room.stop_called_by = None
        for p in room.players:
            p.round_results = {}
            p.round_score = 0

        room.phase = "PLAYING"
        room.round += 1
        room.round_ends_at_ms = self._clock() + room.round_duration_sec * 1000

        logger.info("room %s round %d started with letter %s", room.code, room.round, letter)
        return RoundStart(
            room_code=room.code,
            round=room.round,
            letter=letter,
            ends_at_ms=room.round_ends_at_ms,
            categories=list(room.categories),
        )

    @_guarded("stop_round")
    def stop_round(self, room: Room, caller_id: str | None) -> bool:
        room.stop_called_by = caller_id
        room.phase = "COLLECTING_ANSWERS"
        logger.info("room %s round %d stopped by %s", room.code, room.round, caller_id or "timer")
        return True

    @_guarded("expire_round")
    def expire_round(self, room: Room, now: int | None = None) -> bool:
        now = self._clock() if now is None else now
        if room.round_ends_at_ms is None or now < room.round_ends_at_ms:
            return False
        room.stop_called_by = None
        room.phase = "COLLECTING_ANSWERS"
        logger.info("room %s round %d reached its deadline", room.code, room.round)
        return True

    @_guarded("submit_answers")
    def submit_answers(self, room: Room, player_id: str, answers: Mapping[str, str]) -> Ballot | None:
        if room.find_player(player_id) is None:
            return None
        room.answers[player_id] = {
            category: str(word).strip()
            for category, word in answers.items()
            if category in room.categories
        }
        return self._maybe_start_voting(room)

    @_guarded("begin_voting")
    def begin_voting(self, room: Room, index: int) -> Ballot | None:
        if room.voting_open or room.voting_index != index:
            return None
        return self._open_ballot(room)

    @_guarded("submit_votes")
    def submit_votes(
        self,
        room: Room,
        voter_id: str,
        target_id: str,
        votes: Mapping[str, bool],
    ) -> VoteOutcome | None:
        target = room.voting_target
        if not room.voting_open or target is None or target.id != target_id:
            return None
        if room.find_player(voter_id) is None:
            return None

        room.round_votes[voter_id] = {
            category: value for category, value in votes.items() if category in room.categories
        }
        return self._maybe_close_ballot(room)

    @_guarded("reset_game")
    def reset_game(self, room: Room) -> Room:
        room.phase = "LOBBY"
        room.round = 0
        room.used_letters = []
        room.current_letter = ""
        room.answers = {}
        room.round_votes = {}
        room.voting_index = 0
        room.voting_open = False
        room.stop_called_by = None
        room.round_ends_at_ms = None
        room.history = []
        for p in room.players:
            p.score = 0
            p.round_results = {}
            p.round_score = 0
        logger.info("room %s reset to lobby", room.code)
        return room

    def _maybe_start_voting(self, room: Room) -> Ballot | None:
        connected = [p for p in room.players if p.connected]
        if not connected or any(p.id not in room.answers for p in connected):
            return None
        room.phase = "VOTING"
        room.voting_index = 0
        room.round_votes = {}
        return self._open_ballot(room)

    def _open_ballot(self, room: Room) -> Ballot:
        target = room.players[room.voting_index]
        room.voting_open = True
        return Ballot(
            room_code=room.code,
            voting_index=room.voting_index,
            target_id=target.id,
            target_name=target.name,
            answers=dict(room.answers.get(target.id, {})),
        )

    def _vote_quorum(self, room: Room, target: Player) -> tuple[int, int]:
        # Everyone but the target who is still here, or who already voted.
        eligible = [
            p.id for p in room.players
            if p.id != target.id and (p.connected or p.id in room.round_votes)
        ]
        if not eligible:
            # Solo game: the target's own submission acknowledges the ballot.
            eligible = [target.id]
        voters = sum(1 for pid in eligible if pid in room.round_votes)
        return voters, len(eligible)

    def _maybe_close_ballot(self, room: Room) -> VoteOutcome:
        target = room.players[room.voting_index]
        voters, needed = self._vote_quorum(room, target)
        outcome = VoteOutcome(
            room_code=room.code,
            target_id=target.id,
            target_name=target.name,
            voters=voters,
            total_needed=needed,
        )
        if voters < needed:
            return outcome

        result = tally(
            room.categories,
            room.answers.get(target.id, {}),
            room.round_votes,
            exclude_voter_id=target.id,
            points_per_category=self.points_per_category,
        )
        target.score += result.score
        target.round_results = result.validity
        target.round_score = result.score
        outcome.result = result
        outcome.total_score = target.score
        logger.info(
            "room %s round %d: %s scored %d (total %d)",
            room.code, room.round, target.id, result.score, target.score,
        )

        room.round_votes = {}
        room.voting_open = False
        room.voting_index += 1
        if room.voting_index < len(room.players):
            outcome.next_index = room.voting_index
        else:
            outcome.summary = self._end_round(room)
        return outcome

    def _end_round(self, room: Room) -> RoundSummary:
        details = [
            {
                "id": p.id,
                "name": p.name,
                "answers": dict(room.answers.get(p.id, {})),
                "validations": dict(p.round_results),
                "roundScore": p.round_score,
                "totalScore": p.score,
            }
            for p in room.players
        ]
        room.history.append({"round": room.round, "letter": room.current_letter, "details": details})

        for p in room.players:
            p.round_results = {}
            p.round_score = 0

        is_game_over = room.round >= room.max_rounds
        room.phase = "GAME_OVER" if is_game_over else "ROUND_RESULTS"
        logger.info("room %s round %d ended (game over: %s)", room.code, room.round, is_game_over)
        return self._summary(room, details)

    def _summary(self, room: Room, details: list[dict]) -> RoundSummary:
        # sorted() is stable, so ties keep join order.
        leaderboard = sorted(room.players, key=lambda p: p.score, reverse=True)
        return RoundSummary(
            room_code=room.code,
            round=room.round,
            letter=room.current_letter,
            leaderboard=[player_public(p) for p in leaderboard],
            is_game_over=room.round >= room.max_rounds,
            round_details=details,
            categories=list(room.categories),
        )

    # ---- read models ----

    def is_host(self, room_code: str, player_id: str) -> bool:
        with self._lock:
            room = self._rooms.get(room_code)
            return room is not None and room.host_id == player_id

    def players_public(self, room_code: str) -> list[dict]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                return []
            return [player_public(p) for p in room.players]

    def room_snapshot(self, room: Room) -> dict:
        with self._lock:
            target = room.voting_target
            return {
                "code": room.code,
                "hostId": room.host_id,
                "phase": room.phase,
                "round": room.round,
                "maxRounds": room.max_rounds,
                "categories": list(room.categories),
                "letter": room.current_letter,
                "roundEndsAtMs": room.round_ends_at_ms,
                "votingTargetId": target.id if target else None,
                "players": [player_public(p) for p in room.players],
            }

    def current_ballot(self, room_code: str) -> Ballot | None:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None or room.voting_target is None or not room.voting_open:
                return None
            return Ballot(
                room_code=room.code,
                voting_index=room.voting_index,
                target_id=room.voting_target.id,
                target_name=room.voting_target.name,
                answers=dict(room.answers.get(room.voting_target.id, {})),
            )

    def last_round_summary(self, room_code: str) -> RoundSummary | None:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None or room.phase not in ("ROUND_RESULTS", "GAME_OVER") or not room.history:
                return None
            return self._summary(room, room.history[-1]["details"])

    def restore_state(self, room_code: str, player_id: str) -> dict | None:
        """Everything a reconnecting client needs to redraw the game."""
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None or room.find_player(player_id) is None:
                return None

            payload = {
                "roomCode": room.code,
                "playerId": player_id,
                "isHost": room.host_id == player_id,
                "players": [player_public(p) for p in room.players],
                "state": room.phase,
                "roundData": {
                    "round": room.round,
                    "letter": room.current_letter,
                    "endTime": room.round_ends_at_ms,
                    "categories": list(room.categories),
                },
                "myAnswers": dict(room.answers.get(player_id, {})),
            }

            target = room.voting_target
            if target is not None:
                voters, needed = self._vote_quorum(room, target)
                payload["votingState"] = {
                    "targetPlayer": {"id": target.id, "name": target.name},
                    "answers": dict(room.answers.get(target.id, {})),
                    "open": room.voting_open,
                    "voters": voters,
                    "totalNeeded": needed,
                    "hasVoted": player_id in room.round_votes,
                }
            return payload

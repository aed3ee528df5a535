"""Typed payloads for inbound socket events.

Each ``parse`` classmethod takes the raw event data and either returns a
payload or raises :class:`InvalidPayload`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


MAX_NAME_LEN = 20
MAX_ID_LEN = 64
MAX_WORD_LEN = 60


class InvalidPayload(ValueError):
    code = "INVALID_PAYLOAD"


def _as_dict(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidPayload("payload must be an object")
    return data


def _text(payload: dict, key: str, max_len: int = MAX_ID_LEN) -> str:
    value = payload.get(key)
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise InvalidPayload(f"{key} is required")
    text = str(value).strip()
    if not text or len(text) > max_len:
        raise InvalidPayload(f"invalid {key}")
    return text


def _name(payload: dict, key: str = "playerName") -> str:
    n = _text(payload, key, MAX_NAME_LEN)
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        raise InvalidPayload(f"invalid {key}")
    # No control characters.
    if any(ord(ch) < 32 for ch in n):
        raise InvalidPayload(f"invalid {key}")
    return n


def _room_code(payload: dict, key: str = "code") -> str:
    return _text(payload, key, 16).upper()


@dataclass(frozen=True)
class CreateRoom:
    player_id: str
    player_name: str

    @classmethod
    def parse(cls, data: Any) -> CreateRoom:
        payload = _as_dict(data)
        return cls(player_id=_text(payload, "playerId"), player_name=_name(payload))


@dataclass(frozen=True)
class JoinRoom:
    code: str
    player_id: str
    player_name: str

    @classmethod
    def parse(cls, data: Any) -> JoinRoom:
        payload = _as_dict(data)
        return cls(
            code=_room_code(payload),
            player_id=_text(payload, "playerId"),
            player_name=_name(payload),
        )


@dataclass(frozen=True)
class RejoinRequest:
    room_code: str
    player_id: str
    # Empty keeps the stored name.
    player_name: str = ""

    @classmethod
    def parse(cls, data: Any) -> RejoinRequest:
        payload = _as_dict(data)
        name = _name(payload) if payload.get("playerName") else ""
        return cls(
            room_code=_room_code(payload, "roomCode"),
            player_id=_text(payload, "playerId"),
            player_name=name,
        )


@dataclass(frozen=True)
class RoomAction:
    """start_game, stop_round and reset_game only carry the room code."""

    code: str

    @classmethod
    def parse(cls, data: Any) -> RoomAction:
        return cls(code=_room_code(_as_dict(data)))


@dataclass(frozen=True)
class SubmitAnswers:
    code: str
    answers: dict[str, str]

    @classmethod
    def parse(cls, data: Any) -> SubmitAnswers:
        payload = _as_dict(data)
        raw = payload.get("answers")
        if not isinstance(raw, dict):
            raise InvalidPayload("answers must be an object")

        answers: dict[str, str] = {}
        for category, word in raw.items():
            if not isinstance(category, str):
                continue
            if word is None:
                word = ""
            if not isinstance(word, str):
                raise InvalidPayload(f"answer for {category} must be text")
            answers[category] = word.strip()[:MAX_WORD_LEN]
        return cls(code=_room_code(payload), answers=answers)


@dataclass(frozen=True)
class SubmitVotes:
    code: str
    target_player_id: str
    votes: dict[str, bool]

    @classmethod
    def parse(cls, data: Any) -> SubmitVotes:
        payload = _as_dict(data)
        raw = payload.get("votes")
        if not isinstance(raw, dict):
            raise InvalidPayload("votes must be an object")

        votes: dict[str, bool] = {}
        for category, value in raw.items():
            if not isinstance(category, str) or not isinstance(value, bool):
                raise InvalidPayload("votes must map categories to true/false")
            votes[category] = value
        return cls(
            code=_room_code(payload),
            target_player_id=_text(payload, "targetPlayerId"),
            votes=votes,
        )

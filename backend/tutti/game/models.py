from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Phase = Literal[
    "LOBBY",
    "PLAYING",
    "COLLECTING_ANSWERS",
    "VOTING",
    "ROUND_RESULTS",
    "GAME_OVER",
]


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    connected: bool = True
    connection_ref: str | None = None
    # Valid only between a player's tally and the end of the round.
    round_results: dict[str, bool] = field(default_factory=dict)
    round_score: int = 0


@dataclass
class Room:
    code: str
    host_id: str
    categories: list[str]
    players: list[Player] = field(default_factory=list)
    phase: Phase = "LOBBY"
    round: int = 0
    max_rounds: int = 5
    used_letters: list[str] = field(default_factory=list)
    current_letter: str = ""
    answers: dict[str, dict[str, str]] = field(default_factory=dict)
    round_votes: dict[str, dict[str, bool]] = field(default_factory=dict)
    voting_index: int = 0
    voting_open: bool = False
    stop_called_by: str | None = None
    round_duration_sec: int = 180
    round_ends_at_ms: int | None = None
    history: list[dict] = field(default_factory=list)
    last_empty_at_ms: int | None = None

    def find_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    @property
    def voting_target(self) -> Player | None:
        if self.phase != "VOTING" or not 0 <= self.voting_index < len(self.players):
            return None
        return self.players[self.voting_index]

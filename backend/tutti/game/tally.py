"""Vote tally: turns peer ballots into per-category validity and points.

Everything here is pure. The same categories, answers and ballots always
produce the same :class:`TallyResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence


POINTS_PER_CATEGORY = 10


@dataclass(frozen=True)
class CategoryVerdict:
    category: str
    word: str
    valid: bool
    votes_for: int
    votes_against: int

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "word": self.word,
            "valid": self.valid,
            "votesFor": self.votes_for,
            "votesAgainst": self.votes_against,
        }


@dataclass(frozen=True)
class TallyResult:
    verdicts: tuple[CategoryVerdict, ...]
    score: int

    @property
    def validity(self) -> dict[str, bool]:
        return {v.category: v.valid for v in self.verdicts}

    def details(self) -> list[dict]:
        return [v.to_dict() for v in self.verdicts]


def _judge(votes_for: int, total: int) -> bool:
    # Nobody else could judge (solo game): accept the word.
    if total == 0:
        return True
    # Strict majority; a tie is not enough.
    return votes_for > total / 2


def tally(
    categories: Sequence[str],
    target_answers: Mapping[str, str],
    votes_by_voter: Mapping[str, Mapping[str, bool]],
    exclude_voter_id: str | None = None,
    points_per_category: int = POINTS_PER_CATEGORY,
) -> TallyResult:
    """Judge every category of one player's answers.

    ``exclude_voter_id`` is the player being judged; their own ballot is
    ignored. A blank or missing word is invalid whatever the votes say.
    """
    ballots = [
        votes for voter_id, votes in votes_by_voter.items()
        if voter_id != exclude_voter_id
    ]

    verdicts = []
    score = 0
    for category in categories:
        word = (target_answers.get(category) or "").strip()
        if not word:
            verdicts.append(CategoryVerdict(category, "", False, 0, 0))
            continue

        votes_for = sum(1 for ballot in ballots if ballot.get(category) is True)
        total = len(ballots)
        valid = _judge(votes_for, total)
        if valid:
            score += points_per_category
        verdicts.append(CategoryVerdict(category, word, valid, votes_for, total - votes_for))

    return TallyResult(verdicts=tuple(verdicts), score=score)

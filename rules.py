"""Card model and legality rules shared by play and the solver."""
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Mapping, MutableMapping


SUITS = ("HEARTS", "DIAMONDS", "CLUBS", "SPADES")
SUIT_COLORS = {
    "HEARTS": "RED",
    "DIAMONDS": "RED",
    "CLUBS": "BLACK",
    "SPADES": "BLACK",
}
RANKS = tuple(range(1, 14))
ACE = 1
KING = 13

RANK_LABELS = {
    1: "A",
    11: "J",
    12: "Q",
    13: "K",
}


def suit_color(suit: str) -> str:
    """Return ``"RED"`` or ``"BLACK"`` for *suit*."""
    return SUIT_COLORS[suit]


@dataclass(frozen=True)
class Card:
    """A playing card. Turning it over yields a new value."""

    suit: str
    rank: int
    face_up: bool = False

    @property
    def id(self) -> str:
        return f"{self.rank}-{self.suit}"

    @property
    def color(self) -> str:
        return SUIT_COLORS[self.suit]

    def label(self) -> str:
        return RANK_LABELS.get(self.rank, str(self.rank))

    def flipped(self, face_up: bool) -> "Card":
        if self.face_up == face_up:
            return self
        return replace(self, face_up=face_up)

    def to_dict(self) -> MutableMapping[str, Any]:
        return dict(asdict(self))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Card":
        suit = data.get("suit")
        rank = data.get("rank")
        if suit not in SUIT_COLORS:
            raise ValueError(f"Unknown suit: {suit!r}")
        if isinstance(rank, bool) or not isinstance(rank, int) or rank not in RANKS:
            raise ValueError(f"Rank must be an integer between 1 and 13, got {rank!r}")
        return cls(suit=suit, rank=rank, face_up=bool(data.get("face_up", False)))

    def __str__(self) -> str:  # pragma: no cover - debug helper
        return f"{self.label()}{self.suit[0]}"


def is_valid_tableau_move(card: Card, target_top: Card | None) -> bool:
    """Return ``True`` when *card* may be placed on a tableau topped by *target_top*."""
    if target_top is None:
        return card.rank == KING
    different_color = card.color != target_top.color
    descending = card.rank == target_top.rank - 1
    return different_color and descending


def is_valid_foundation_move(card: Card, target_top: Card | None) -> bool:
    """Return ``True`` when *card* may be placed on a foundation topped by *target_top*."""
    if target_top is None:
        return card.rank == ACE
    same_suit = card.suit == target_top.suit
    ascending = card.rank == target_top.rank + 1
    return same_suit and ascending


MODE_ALIASES = {
    "easy": "EASY",
    "one": "EASY",
    "single": "EASY",
    "hard": "HARD",
    "three": "HARD",
    "triple": "HARD",
}

DRAW_COUNTS = {
    1: "EASY",
    3: "HARD",
}


@dataclass(frozen=True)
class GameMode:
    """A difficulty profile: how many cards each draw turns over."""

    name: str
    draw_count: int

    def to_dict(self) -> MutableMapping[str, Any]:
        """Return the mode as a JSON-serialisable mapping."""
        return dict(asdict(self))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameMode":
        """Create a mode from *data* produced by :meth:`to_dict`."""
        if "draw_count" in data:
            return resolve_mode(data["draw_count"])
        return resolve_mode(data.get("name"))

    def to_json(self) -> str:
        """Serialise the mode to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str) -> "GameMode":
        """Deserialise a :class:`GameMode` from *payload*."""
        return cls.from_dict(json.loads(payload))


EASY = GameMode(name="EASY", draw_count=1)
HARD = GameMode(name="HARD", draw_count=3)

MODES = {
    "EASY": EASY,
    "HARD": HARD,
}


def _mode_for_draw_count(count: int) -> GameMode:
    name = DRAW_COUNTS.get(count)
    if name is None:
        raise ValueError(f"Draw count must be 1 or 3, got {count}")
    return MODES[name]


def resolve_mode(value: Any) -> GameMode:
    """Convert *value* into one of the known :class:`GameMode` profiles.

    Modes arrive from several places: command-line flags, JSON request bodies
    and stored snapshots.  This helper accepts a profile instance, a mode name
    (``"easy"``, ``"HARD"``, ``"three"``), a draw count (``1`` or ``3``) or a
    numeric string.  ``None`` and blank strings select :data:`EASY`.

    ``ValueError`` is raised when the content is recognised but invalid (for
    example a draw count of 2) while ``TypeError`` flags unsupported data types.
    """

    if value is None:
        return EASY
    if isinstance(value, GameMode):
        return _mode_for_draw_count(value.draw_count)
    if isinstance(value, bool):
        raise TypeError("Boolean values are not valid game modes")
    if isinstance(value, int):
        return _mode_for_draw_count(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or not value.is_integer():
            raise ValueError(f"Draw count must be a whole number, got {value!r}")
        return _mode_for_draw_count(int(value))
    if isinstance(value, str):
        token = value.strip().lower()
        if not token:
            return EASY
        if token in MODE_ALIASES:
            return MODES[MODE_ALIASES[token]]
        try:
            parsed = int(token, 10)
        except ValueError as exc:
            raise ValueError(f"Unknown game mode: {value!r}") from exc
        return _mode_for_draw_count(parsed)
    raise TypeError(f"Unsupported game mode type: {type(value).__name__}")


__all__ = [
    "ACE",
    "Card",
    "EASY",
    "GameMode",
    "HARD",
    "KING",
    "RANKS",
    "SUITS",
    "is_valid_foundation_move",
    "is_valid_tableau_move",
    "resolve_mode",
    "suit_color",
]

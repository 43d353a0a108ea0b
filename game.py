"""Klondike game state and the transitions that produce new states.

Every pile is a tuple and every :class:`~rules.Card` is frozen, so a
:class:`GameState` handed to a caller can never change underneath it.  The
transition helpers below always return a fresh state (or ``None`` when a move
is rejected) and are shared by interactive play and the solver.
"""
from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, MutableMapping, Sequence

from rules import (
    EASY,
    KING,
    RANKS,
    SUITS,
    Card,
    GameMode,
    is_valid_foundation_move,
    is_valid_tableau_move,
    resolve_mode,
)

FOUNDATION_COUNT = 4
TABLEAU_COUNT = 7
DECK_SIZE = len(SUITS) * len(RANKS)

PILE_TYPES = ("stock", "waste", "foundation", "tableau")

Pile = tuple[Card, ...]


@dataclass(frozen=True)
class Position:
    """Location of the card (or group of cards) a move picks up."""

    pile_type: str
    pile_index: int = 0
    # Only meaningful for tableau sources.
    card_index: int | None = None

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "pile_type": self.pile_type,
            "pile_index": self.pile_index,
            "card_index": self.card_index,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        pile_type = data.get("pile_type")
        if pile_type not in PILE_TYPES:
            raise ValueError(f"Unknown pile type: {pile_type!r}")
        pile_index = data.get("pile_index", 0)
        card_index = data.get("card_index")
        if isinstance(pile_index, bool) or not isinstance(pile_index, int):
            raise ValueError("pile_index must be an integer")
        if card_index is not None and (
            isinstance(card_index, bool) or not isinstance(card_index, int)
        ):
            raise ValueError("card_index must be an integer or null")
        return cls(pile_type=pile_type, pile_index=pile_index, card_index=card_index)


def _empty_piles(count: int) -> tuple[Pile, ...]:
    return tuple(() for _ in range(count))


@dataclass(frozen=True)
class GameState:
    """A complete Klondike position."""

    stock: Pile = ()
    waste: Pile = ()
    foundations: tuple[Pile, ...] = field(default_factory=lambda: _empty_piles(FOUNDATION_COUNT))
    tableau: tuple[Pile, ...] = field(default_factory=lambda: _empty_piles(TABLEAU_COUNT))
    moves: int = 0
    score: int = 0
    won: bool = False
    mode: GameMode = EASY

    def all_cards(self) -> list[Card]:
        cards = list(self.stock) + list(self.waste)
        for pile in self.foundations:
            cards.extend(pile)
        for column in self.tableau:
            cards.extend(column)
        return cards

    def to_dict(self) -> MutableMapping[str, Any]:
        """Return a JSON-serialisable snapshot of the state."""

        def dump(pile: Pile) -> list[MutableMapping[str, Any]]:
            return [card.to_dict() for card in pile]

        return {
            "stock": dump(self.stock),
            "waste": dump(self.waste),
            "foundations": [dump(pile) for pile in self.foundations],
            "tableau": [dump(column) for column in self.tableau],
            "moves": self.moves,
            "score": self.score,
            "won": self.won,
            "mode": self.mode.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameState":
        """Rebuild a state from a snapshot produced by :meth:`to_dict`."""

        def load(raw: Any) -> Pile:
            if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
                raise ValueError("Piles must be lists of cards")
            return tuple(Card.from_dict(item) for item in raw)

        foundations = data.get("foundations") or []
        tableau = data.get("tableau") or []
        for name, piles in (("foundations", foundations), ("tableau", tableau)):
            if not isinstance(piles, Sequence) or isinstance(piles, (str, bytes)):
                raise ValueError(f"{name} must be a list of piles")
        if len(foundations) != FOUNDATION_COUNT:
            raise ValueError(f"Expected {FOUNDATION_COUNT} foundations, got {len(foundations)}")
        if len(tableau) != TABLEAU_COUNT:
            raise ValueError(f"Expected {TABLEAU_COUNT} tableau columns, got {len(tableau)}")

        mode_data = data.get("mode")
        mode = GameMode.from_dict(mode_data) if isinstance(mode_data, Mapping) else resolve_mode(mode_data)
        loaded_foundations = tuple(load(pile) for pile in foundations)
        return cls(
            stock=load(data.get("stock") or []),
            waste=load(data.get("waste") or []),
            foundations=loaded_foundations,
            tableau=tuple(load(column) for column in tableau),
            moves=int(data.get("moves", 0)),
            score=int(data.get("score", 0)),
            won=check_win(loaded_foundations),
            mode=mode,
        )


def top_card(pile: Pile) -> Card | None:
    return pile[-1] if pile else None


def is_king_to_empty(card: Card, target: Pile) -> bool:
    return card.rank == KING and not target


def check_win(foundations: Sequence[Pile]) -> bool:
    """Return ``True`` when all four foundations are complete."""
    if len(foundations) != FOUNDATION_COUNT:
        return False
    return all(len(pile) == len(RANKS) for pile in foundations)


# ----------------------------------------------------------------------
# Dealing
# ----------------------------------------------------------------------
def build_deck() -> list[Card]:
    return [Card(suit=suit, rank=rank) for suit in SUITS for rank in RANKS]


def shuffle_deck(deck: Sequence[Card], rng: random.Random | None = None) -> list[Card]:
    shuffled = list(deck)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled


def init_game(mode: Any = EASY, *, seed: int | None = None) -> GameState:
    """Deal a new game.

    *mode* is anything :func:`rules.resolve_mode` understands.  Passing *seed*
    makes the shuffle reproducible.
    """

    game_mode = resolve_mode(mode)
    rng = random.Random(seed & 0xFFFFFFFF) if seed is not None else random.Random()
    deck = shuffle_deck(build_deck(), rng)

    columns: list[list[Card]] = [[] for _ in range(TABLEAU_COUNT)]
    for column in range(TABLEAU_COUNT):
        for row in range(column + 1):
            card = deck.pop()
            columns[column].append(card.flipped(row == column))

    return GameState(
        stock=tuple(card.flipped(False) for card in deck),
        tableau=tuple(tuple(column) for column in columns),
        mode=game_mode,
    )


# ----------------------------------------------------------------------
# Transitions
# ----------------------------------------------------------------------
def execute_draw(state: GameState) -> GameState:
    """Draw from the stock, or recycle the waste once the stock is empty."""
    stock = state.stock
    waste = state.waste
    if stock:
        count = min(state.mode.draw_count, len(stock))
        drawn = tuple(card.flipped(True) for card in reversed(stock[-count:]))
        stock = stock[:-count]
        waste = waste + drawn
    elif waste:
        stock = tuple(card.flipped(False) for card in reversed(waste))
        waste = ()
    return replace(state, stock=stock, waste=waste, moves=state.moves + 1)


def _valid_index(value: Any, size: int) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value < size


def _moving_cards(state: GameState, source: Position) -> Pile:
    """Return the cards picked up at *source*, or an empty tuple."""
    if source.pile_type == "waste":
        return state.waste[-1:]
    if source.pile_type == "foundation":
        if not _valid_index(source.pile_index, FOUNDATION_COUNT):
            return ()
        return state.foundations[source.pile_index][-1:]
    if source.pile_type == "tableau":
        if not _valid_index(source.pile_index, TABLEAU_COUNT):
            return ()
        column = state.tableau[source.pile_index]
        if not _valid_index(source.card_index, len(column)):
            return ()
        if not column[source.card_index].face_up:
            return ()
        return column[source.card_index:]
    return ()


def _remove_from_source(state: GameState, source: Position, count: int) -> GameState:
    if source.pile_type == "waste":
        return replace(state, waste=state.waste[:-count])
    if source.pile_type == "foundation":
        foundations = list(state.foundations)
        foundations[source.pile_index] = foundations[source.pile_index][:-count]
        return replace(state, foundations=tuple(foundations))

    tableau = list(state.tableau)
    remaining = tableau[source.pile_index][: source.card_index]
    if remaining and not remaining[-1].face_up:
        remaining = remaining[:-1] + (remaining[-1].flipped(True),)
    tableau[source.pile_index] = remaining
    return replace(state, tableau=tuple(tableau))


def execute_move(
    state: GameState,
    source: Position,
    target_pile_type: str,
    target_pile_index: int,
) -> GameState | None:
    """Move the card(s) at *source* onto a foundation or tableau pile.

    Returns the new state, or ``None`` when the move is illegal or refers to a
    position that does not exist.  The input state is never modified.
    """

    moving = _moving_cards(state, source)
    if not moving:
        return None
    if source.pile_type == target_pile_type and source.pile_index == target_pile_index:
        return None

    if target_pile_type == "foundation":
        if not _valid_index(target_pile_index, FOUNDATION_COUNT):
            return None
        if len(moving) != 1:
            return None
        if not is_valid_foundation_move(moving[0], top_card(state.foundations[target_pile_index])):
            return None
    elif target_pile_type == "tableau":
        if not _valid_index(target_pile_index, TABLEAU_COUNT):
            return None
        if not is_valid_tableau_move(moving[0], top_card(state.tableau[target_pile_index])):
            return None
    else:
        return None

    updated = _remove_from_source(state, source, len(moving))
    if target_pile_type == "foundation":
        foundations = list(updated.foundations)
        foundations[target_pile_index] = foundations[target_pile_index] + moving
        updated = replace(updated, foundations=tuple(foundations))
    else:
        tableau = list(updated.tableau)
        tableau[target_pile_index] = tableau[target_pile_index] + moving
        updated = replace(updated, tableau=tuple(tableau))

    return replace(
        updated,
        moves=state.moves + 1,
        won=check_win(updated.foundations),
    )


# ----------------------------------------------------------------------
# Consistency checks
# ----------------------------------------------------------------------
def find_invariant_violations(state: GameState) -> list[str]:
    """Return a description of every broken invariant in *state*."""

    problems: list[str] = []

    identities = Counter(card.id for card in state.all_cards())
    expected = {card.id for card in build_deck()}
    duplicates = sorted(card_id for card_id, count in identities.items() if count > 1)
    missing = sorted(expected - set(identities))
    unknown = sorted(set(identities) - expected)
    if duplicates:
        problems.append("Duplicate cards: " + ", ".join(duplicates))
    if missing:
        problems.append("Missing cards: " + ", ".join(missing))
    if unknown:
        problems.append("Unknown cards: " + ", ".join(unknown))

    if any(card.face_up for card in state.stock):
        problems.append("Stock contains face-up cards")
    if any(not card.face_up for card in state.waste):
        problems.append("Waste contains face-down cards")

    for index, pile in enumerate(state.foundations):
        for position, card in enumerate(pile):
            if card.suit != pile[0].suit or card.rank != position + 1 or not card.face_up:
                problems.append(f"Foundation {index} is not an ascending same-suit run")
                break

    for index, column in enumerate(state.tableau):
        if column and not column[-1].face_up:
            problems.append(f"Tableau {index} has a face-down top card")
        first_up = next((i for i, card in enumerate(column) if card.face_up), len(column))
        suffix = column[first_up:]
        if any(not card.face_up for card in suffix):
            problems.append(f"Tableau {index} has a face-down card above a face-up card")
            continue
        for lower, upper in zip(suffix, suffix[1:]):
            if not is_valid_tableau_move(upper, lower):
                problems.append(f"Tableau {index} face-up run is out of sequence")
                break

    if state.won != check_win(state.foundations):
        problems.append("Won flag does not match the foundations")

    return problems


__all__ = [
    "DECK_SIZE",
    "FOUNDATION_COUNT",
    "GameState",
    "PILE_TYPES",
    "Position",
    "TABLEAU_COUNT",
    "build_deck",
    "check_win",
    "execute_draw",
    "execute_move",
    "find_invariant_violations",
    "init_game",
    "is_king_to_empty",
    "shuffle_deck",
    "top_card",
]

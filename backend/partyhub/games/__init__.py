"""Game engines and the catalog of game types a lobby can be created with."""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass

from ..errors import InvalidGameType
from ..timers import Scheduler
from .base import GameAction, GameEngine, GameEvent
from .drawing import DrawingGuessEngine
from .preferences import PreferenceVoteEngine
from .statements import StatementDeductionEngine


@dataclass(frozen=True)
class GameType:
    id: str
    name: str
    description: str
    min_players: int
    max_players: int
    estimated_duration: int
    category: str

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "id": d["id"],
            "name": d["name"],
            "description": d["description"],
            "minPlayers": d["min_players"],
            "maxPlayers": d["max_players"],
            "estimatedDuration": d["estimated_duration"],
            "category": d["category"],
            "available": True,
        }


GAME_TYPES: dict[str, GameType] = {
    "quick-draw": GameType(
        id="quick-draw",
        name="Quick Draw",
        description="Drawing and guessing game with real-time canvas sharing",
        min_players=3,
        max_players=8,
        estimated_duration=15,
        category="drawing",
    ),
    "two-truths-and-a-lie": GameType(
        id="two-truths-and-a-lie",
        name="Two Truths and a Lie",
        description="Social deduction with voting mechanics",
        min_players=3,
        max_players=10,
        estimated_duration=10,
        category="social",
    ),
    "would-you-rather": GameType(
        id="would-you-rather",
        name="Would You Rather",
        description="Write dilemmas and see which side everyone picks",
        min_players=3,
        max_players=10,
        estimated_duration=10,
        category="social",
    ),
}

_ENGINES: dict[str, type[GameEngine]] = {
    "quick-draw": DrawingGuessEngine,
    "two-truths-and-a-lie": StatementDeductionEngine,
    "would-you-rather": PreferenceVoteEngine,
}


def is_supported(game_type: str) -> bool:
    return game_type in _ENGINES


def create_engine(
    game_type: str,
    player_ids: list[str],
    scheduler: Scheduler,
    rng: random.Random | None = None,
    **options,
) -> GameEngine:
    engine_cls = _ENGINES.get(game_type)
    if engine_cls is None:
        raise InvalidGameType()
    return engine_cls(player_ids, rng=rng, scheduler=scheduler, **options)


__all__ = [
    "GAME_TYPES",
    "DrawingGuessEngine",
    "GameAction",
    "GameEngine",
    "GameEvent",
    "GameType",
    "PreferenceVoteEngine",
    "StatementDeductionEngine",
    "create_engine",
    "is_supported",
]

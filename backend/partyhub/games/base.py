"""Shared contract for the game engines.

An engine owns the authoritative state of one running game. The session
router only talks to it through ``handle_action``, ``get_state`` and the
result helpers below, and drains the engine's queued events after every
action so it can broadcast them in order.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Callable

from ..errors import ActionRejected
from ..timers import Scheduler
from ..utils.clock import now_ms

# Below this many players left in the roster a game ends early.
MIN_ACTIVE_PLAYERS = 2


@dataclass
class GameAction:
    type: str
    player_id: str
    data: dict = field(default_factory=dict)
    timestamp: int = 0

    @classmethod
    def from_payload(cls, payload: dict | None, player_id: str) -> "GameAction":
        payload = payload or {}
        data = payload.get("data")
        timestamp = payload.get("timestamp")
        return cls(
            type=str(payload.get("type", "")).strip(),
            player_id=player_id,
            data=data if isinstance(data, dict) else {},
            timestamp=timestamp if isinstance(timestamp, int) else now_ms(),
        )


@dataclass
class GameEvent:
    name: str
    payload: Any = None


class GameEngine:
    game_type = ""

    def __init__(
        self,
        player_ids: list[str],
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        if not player_ids:
            raise ValueError("a game needs at least one player")
        self.player_ids = list(player_ids)
        self.scores: dict[str, int] = {pid: 0 for pid in self.player_ids}
        self._rng = rng or random.Random()
        self._scheduler = scheduler
        self._events: list[GameEvent] = []
        self._listener: Callable[["GameEngine"], None] | None = None
        self._disposed = False

    # -- context management --------------------------------------------

    def __enter__(self) -> "GameEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        self._disposed = True

    @property
    def disposed(self) -> bool:
        return self._disposed

    # -- events ----------------------------------------------------------

    def set_listener(self, listener: Callable[["GameEngine"], None] | None) -> None:
        """Called after a timer changed the state outside of any action."""
        self._listener = listener

    def _emit(self, name: str, payload: Any = None) -> None:
        self._events.append(GameEvent(name, payload))

    def _notify(self) -> None:
        if self._listener is not None and not self._disposed:
            self._listener(self)

    def drain_events(self) -> list[GameEvent]:
        events, self._events = self._events, []
        return events

    # -- actions ---------------------------------------------------------

    def _action_handlers(self) -> dict[str, Callable[[GameAction], None]]:
        raise NotImplementedError

    def handle_action(self, action: GameAction) -> dict:
        if self._disposed:
            raise ActionRejected("Game is over")
        handler = self._action_handlers().get(action.type)
        if handler is None:
            raise ActionRejected(f"Unknown action type: {action.type}")
        if action.player_id not in self.player_ids:
            raise ActionRejected("Player is not part of this game")
        handler(action)
        return self.get_state(action.player_id)

    # -- roster ----------------------------------------------------------

    def remove_player(self, player_id: str) -> None:
        """Take a departed player out of the running game.

        Points they already earned stay in ``scores``. Whatever was waiting
        on them is re-checked, and the game ends once fewer than
        ``MIN_ACTIVE_PLAYERS`` remain.
        """
        if self._disposed or self.is_complete() or player_id not in self.player_ids:
            return
        self.player_ids.remove(player_id)
        if len(self.player_ids) < MIN_ACTIVE_PLAYERS:
            self._end_early()
        else:
            self._on_player_removed(player_id)

    def _on_player_removed(self, player_id: str) -> None:
        raise NotImplementedError

    def _end_early(self) -> None:
        raise NotImplementedError

    # -- views and results ---------------------------------------------

    def get_state(self, viewer_id: str | None = None) -> dict:
        raise NotImplementedError

    def is_complete(self) -> bool:
        raise NotImplementedError

    def get_winner(self) -> str | None:
        if not self.is_complete() or not self.scores:
            return None
        # max() keeps the first of equal scores, i.e. roster order.
        return max(self.scores, key=lambda pid: self.scores[pid])

    def get_round_results(self) -> dict:
        raise NotImplementedError

    def get_final_results(self) -> dict:
        raise NotImplementedError

    def _require(self, condition: Any, message: str) -> None:
        if not condition:
            raise ActionRejected(message)

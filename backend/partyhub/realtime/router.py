"""Routes client messages to the lobby service and the running game engines.

The router is transport agnostic: it talks to clients through a
``Transport`` (the Socket.IO server in production, a recorder in tests) and
schedules delayed work through a ``Scheduler``. Every public method runs
under one re-entrant lock and returns the ack payload for the sender.
"""

from __future__ import annotations

import functools
import logging
import random
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Mapping, Protocol

from ..errors import (
    AlreadyInLobby,
    GameNotFound,
    GameNotPlaying,
    InvalidGameType,
    InvalidPayload,
    LobbyNotFound,
    PartyError,
    PlayerNotFound,
)
from ..games import GameAction, GameEngine, create_engine, is_supported
from ..lobby import Lobby, LobbyService, lobby_public_state, player_public_state
from ..timers import Scheduler, TimerHandle, cancel_timer
from ..utils.clock import now_ms
from . import events

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 16
MIN_LOBBY_SIZE = 3


class Transport(Protocol):
    def emit(self, event: str, data: Any = None, to: str | None = None, skip_sid: str | None = None) -> None:
        ...

    def enter_room(self, sid: str, room: str) -> None:
        ...

    def leave_room(self, sid: str, room: str) -> None:
        ...


@dataclass
class RouterSettings:
    grace_sec: float = 30
    countdown_sec: int = 3
    sweep_interval_sec: float = 300
    default_max_players: int = 8
    max_players_limit: int = 16
    engine_options: dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RouterSettings":
        return cls(
            grace_sec=config.get("DISCONNECT_GRACE_SEC", 30),
            countdown_sec=config.get("START_COUNTDOWN_SEC", 3),
            sweep_interval_sec=config.get("LOBBY_SWEEP_INTERVAL_SEC", 300),
            default_max_players=config.get("DEFAULT_MAX_PLAYERS", 8),
            max_players_limit=config.get("MAX_PLAYERS_LIMIT", 16),
            engine_options={
                "quick-draw": {
                    "round_duration": config.get("DRAW_ROUND_DURATION_SEC", 90),
                    "guessing_at": config.get("DRAW_GUESSING_AT_SEC", 30),
                    "reveal_duration": config.get("REVEAL_DURATION_SEC", 5),
                    "max_strokes": config.get("MAX_CANVAS_STROKES", 2000),
                },
            },
        )


def _validate_name(name: Any) -> str:
    n = name.strip() if isinstance(name, str) else ""
    if not n:
        raise InvalidPayload("Name is required")
    if len(n) > MAX_NAME_LENGTH:
        raise InvalidPayload(f"Name must be at most {MAX_NAME_LENGTH} characters")
    if "<" in n or ">" in n:
        raise InvalidPayload("Name contains invalid characters")
    for ch in n:
        if ord(ch) < 32 or ord(ch) == 127:
            raise InvalidPayload("Name contains invalid characters")
    return n


def _payload(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidPayload()
    return data


def _dispatch(method):
    """Run a router method under the lock and turn failures into an ack."""

    @functools.wraps(method)
    def wrapper(self: "SessionRouter", *args, **kwargs):
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except PartyError as exc:
                logger.debug("%s rejected: %s", method.__name__, exc.message)
                return exc.to_response()
            except Exception:
                logger.exception("%s failed", method.__name__)
                return {"success": False, "error": "Internal server error", "code": "internal_error"}

    return wrapper


class SessionRouter:
    def __init__(
        self,
        lobbies: LobbyService,
        transport: Transport,
        scheduler: Scheduler,
        settings: RouterSettings | None = None,
        rng: random.Random | None = None,
        lock: RLock | None = None,
    ) -> None:
        self.lobbies = lobbies
        self.transport = transport
        self.scheduler = scheduler
        self.settings = settings or RouterSettings()
        self._rng = rng
        self._lock = lock or RLock()

        self._sid_to_player: dict[str, str] = {}
        self._player_to_sid: dict[str, str] = {}
        self._engines: dict[str, GameEngine] = {}
        self._countdowns: dict[str, TimerHandle] = {}
        self._grace_timers: dict[str, TimerHandle] = {}
        self._sweep: TimerHandle | None = None

        lobbies.add_removal_listener(self._on_lobby_removed)

    # -- lookups ---------------------------------------------------------

    def player_for_sid(self, sid: str) -> str | None:
        return self._sid_to_player.get(sid)

    def sid_for_player(self, player_id: str) -> str | None:
        return self._player_to_sid.get(player_id)

    def engine_for(self, code: str) -> GameEngine | None:
        return self._engines.get(code)

    def _require_player(self, sid: str) -> str:
        player_id = self._sid_to_player.get(sid)
        if not player_id:
            raise PlayerNotFound()
        return player_id

    def _bind(self, sid: str, player_id: str) -> None:
        previous = self._player_to_sid.get(player_id)
        if previous and previous != sid:
            self._sid_to_player.pop(previous, None)
        self._sid_to_player[sid] = player_id
        self._player_to_sid[player_id] = sid

    def _attach(self, sid: str, player_id: str, code: str) -> None:
        """Bind a freshly added player to its connection and lobby room.

        If the room join fails the player is taken back out of the lobby.
        """
        self._bind(sid, player_id)
        try:
            self.transport.enter_room(sid, code)
        except Exception:
            self._unbind(sid)
            self.lobbies.leave_lobby(player_id)
            raise

    def _unbind(self, sid: str) -> str | None:
        player_id = self._sid_to_player.pop(sid, None)
        if player_id and self._player_to_sid.get(player_id) == sid:
            del self._player_to_sid[player_id]
        return player_id

    def _parse_max_players(self, raw: Any) -> int:
        if raw is None:
            return self.settings.default_max_players
        if isinstance(raw, str) and raw.strip().isdigit():
            value = int(raw)
        elif isinstance(raw, int) and not isinstance(raw, bool):
            value = raw
        else:
            raise InvalidPayload("maxPlayers must be an integer")
        if not MIN_LOBBY_SIZE <= value <= self.settings.max_players_limit:
            raise InvalidPayload(
                f"maxPlayers must be between {MIN_LOBBY_SIZE} and {self.settings.max_players_limit}"
            )
        return value

    # -- lobby messages --------------------------------------------------

    def _broadcast_lobby(self, lobby: Lobby) -> None:
        self.transport.emit(events.LOBBY_UPDATED, lobby_public_state(lobby), to=lobby.code)

    @_dispatch
    def create_lobby(self, sid: str, data: Any = None) -> dict:
        payload = _payload(data)
        if sid in self._sid_to_player:
            raise AlreadyInLobby()

        host_name = _validate_name(payload.get("hostName"))
        game_type = payload.get("gameType")
        if not isinstance(game_type, str) or not game_type.strip():
            raise InvalidPayload("gameType is required")
        max_players = self._parse_max_players(payload.get("maxPlayers"))

        lobby, player_id = self.lobbies.create_lobby(host_name, game_type.strip(), max_players)
        self._attach(sid, player_id, lobby.code)
        self._broadcast_lobby(lobby)
        return {"success": True, "lobby": lobby_public_state(lobby), "playerId": player_id}

    @_dispatch
    def join_lobby(self, sid: str, data: Any = None) -> dict:
        payload = _payload(data)
        if sid in self._sid_to_player:
            raise AlreadyInLobby()

        code = payload.get("lobbyId")
        if not isinstance(code, str) or not code.strip():
            raise InvalidPayload("lobbyId is required")
        name = _validate_name(payload.get("playerName"))

        lobby, player_id = self.lobbies.join_lobby(code, name)
        self._attach(sid, player_id, lobby.code)

        player = lobby.find_player(player_id)
        self.transport.emit(
            events.LOBBY_PLAYER_JOINED, player_public_state(player), to=lobby.code, skip_sid=sid
        )
        self._broadcast_lobby(lobby)
        return {"success": True, "lobby": lobby_public_state(lobby), "playerId": player_id}

    @_dispatch
    def rejoin_lobby(self, sid: str, data: Any = None) -> dict:
        payload = _payload(data)
        code = payload.get("lobbyId")
        player_id = payload.get("playerId")
        if not isinstance(code, str) or not isinstance(player_id, str):
            raise InvalidPayload("lobbyId and playerId are required")

        lobby = self.lobbies.get_lobby(code)
        if lobby is None:
            raise LobbyNotFound()
        player = lobby.find_player(player_id)
        if player is None:
            raise PlayerNotFound()

        current = self._sid_to_player.get(sid)
        if current and current != player_id:
            raise AlreadyInLobby()

        cancel_timer(self._grace_timers.pop(player_id, None))
        self.lobbies.set_connection(player_id, True)
        stale_sid = self._player_to_sid.get(player_id)
        if stale_sid and stale_sid != sid:
            self.transport.leave_room(stale_sid, lobby.code)
        self._bind(sid, player_id)
        self.transport.enter_room(sid, lobby.code)

        self.transport.emit(events.LOBBY_PLAYER_UPDATED, player_public_state(player), to=lobby.code)
        self._broadcast_lobby(lobby)

        engine = self._engines.get(lobby.code)
        if engine is not None:
            self.transport.emit(events.GAME_STATE_UPDATE, engine.get_state(player_id), to=sid)

        logger.info("Player %s reconnected to lobby %s", player.name, lobby.code)
        return {"success": True, "lobby": lobby_public_state(lobby), "playerId": player_id}

    @_dispatch
    def leave_lobby(self, sid: str) -> dict:
        player_id = self._require_player(sid)
        lobby = self.lobbies.get_lobby_by_player(player_id)

        self._unbind(sid)
        if lobby is not None:
            self.transport.leave_room(sid, lobby.code)
        self._remove_player(player_id)
        return {"success": True}

    def _remove_player(self, player_id: str) -> None:
        cancel_timer(self._grace_timers.pop(player_id, None))
        result = self.lobbies.leave_lobby(player_id)
        if result.lobby is None:
            # Teardown and lobby:disbanded happen in the removal listener.
            return
        self.transport.emit(
            events.LOBBY_PLAYER_LEFT,
            {"playerId": player_id, "newHostId": result.lobby.host_id if result.was_host else None},
            to=result.lobby.code,
        )
        self._broadcast_lobby(result.lobby)

        engine = self._engines.get(result.lobby.code)
        if engine is not None:
            engine.remove_player(player_id)
            self._pump(result.lobby, engine)

    @_dispatch
    def update_player(self, sid: str, data: Any = None) -> dict:
        player_id = self._require_player(sid)
        payload = _payload(data)
        updates = {}
        if "name" in payload:
            updates["name"] = _validate_name(payload["name"])
        if "isReady" in payload:
            if not isinstance(payload["isReady"], bool):
                raise InvalidPayload("isReady must be a boolean")
            updates["isReady"] = payload["isReady"]

        lobby = self.lobbies.update_player(player_id, updates)
        self._broadcast_player(lobby, player_id)
        return {"success": True}

    @_dispatch
    def toggle_ready(self, sid: str) -> dict:
        player_id = self._require_player(sid)
        lobby = self.lobbies.toggle_ready(player_id)
        self._broadcast_player(lobby, player_id)
        return {"success": True}

    def _broadcast_player(self, lobby: Lobby, player_id: str) -> None:
        player = lobby.find_player(player_id)
        if player is not None:
            self.transport.emit(events.LOBBY_PLAYER_UPDATED, player_public_state(player), to=lobby.code)
        self._broadcast_lobby(lobby)

    @_dispatch
    def reset_lobby(self, sid: str) -> dict:
        player_id = self._require_player(sid)
        lobby = self.lobbies.reset_lobby(player_id)
        self._broadcast_lobby(lobby)
        logger.info("Lobby %s reset for another game", lobby.code)
        return {"success": True}

    # -- game lifecycle ----------------------------------------------------

    @_dispatch
    def start_game(self, sid: str) -> dict:
        player_id = self._require_player(sid)
        current = self.lobbies.get_lobby_by_player(player_id)
        if current is not None and not is_supported(current.game_type):
            raise InvalidGameType()

        lobby = self.lobbies.start_game(player_id)
        code = lobby.code
        remaining = self.settings.countdown_sec
        self._broadcast_lobby(lobby)

        if remaining <= 0:
            self._begin_game(code)
            return {"success": True}

        self.transport.emit(events.GAME_STARTING, remaining, to=code)

        def _tick() -> None:
            nonlocal remaining
            with self._lock:
                remaining -= 1
                if remaining > 0:
                    self.transport.emit(events.GAME_STARTING, remaining, to=code)
                else:
                    self._begin_game(code)

        self._countdowns[code] = self.scheduler.call_every(1, _tick)
        return {"success": True}

    def _begin_game(self, code: str) -> None:
        cancel_timer(self._countdowns.pop(code, None))

        lobby = self.lobbies.get_lobby(code)
        if lobby is None or lobby.status != "starting":
            return

        engine = create_engine(
            lobby.game_type,
            lobby.player_ids,
            self.scheduler,
            rng=self._rng,
            **self.settings.engine_options.get(lobby.game_type, {}),
        )
        engine.set_listener(self._on_engine_update)
        self._engines[code] = engine
        self.lobbies.mark_playing(code)

        self.transport.emit(events.GAME_STARTED, {"gameType": lobby.game_type}, to=code)
        self._broadcast_state(lobby, engine)
        self._broadcast_lobby(lobby)
        logger.info("Game %s started in lobby %s", lobby.game_type, code)

    @_dispatch
    def game_action(self, sid: str, data: Any = None) -> dict:
        player_id = self._require_player(sid)
        payload = _payload(data)

        lobby = self.lobbies.get_lobby_by_player(player_id)
        if lobby is None:
            raise LobbyNotFound()
        if lobby.status != "playing":
            raise GameNotPlaying()
        engine = self._engines.get(lobby.code)
        if engine is None:
            raise GameNotFound()

        action = GameAction.from_payload(payload, player_id)
        if not action.type:
            raise InvalidPayload("Action type is required")

        engine.handle_action(action)
        self._pump(lobby, engine)
        return {"success": True}

    def ping(self, sid: str | None = None) -> dict:
        return {"timestamp": now_ms()}

    def _broadcast_state(self, lobby: Lobby, engine: GameEngine) -> None:
        for player in lobby.players:
            sid = self.sid_for_player(player.id)
            if sid:
                self.transport.emit(events.GAME_STATE_UPDATE, engine.get_state(player.id), to=sid)

    def _on_engine_update(self, engine: GameEngine) -> None:
        with self._lock:
            for code, running in self._engines.items():
                if running is engine:
                    break
            else:
                return
            lobby = self.lobbies.get_lobby(code)
            if lobby is not None:
                self._pump(lobby, engine, from_timer=True)

    def _pump(self, lobby: Lobby, engine: GameEngine, from_timer: bool = False) -> None:
        """Broadcast what the engine queued since the last pump."""
        queued = engine.drain_events()

        # A bare countdown tick only needs the tick itself.
        if not from_timer or any(e.name != "time_update" for e in queued):
            self._broadcast_state(lobby, engine)

        for event in queued:
            wire_name = events.ENGINE_EVENTS.get(event.name)
            if wire_name is not None:
                self.transport.emit(wire_name, event.payload, to=lobby.code)

        if engine.is_complete():
            self._finish_game(lobby.code)

    def _finish_game(self, code: str) -> None:
        engine = self._engines.pop(code, None)
        if engine is None:
            return
        results = engine.get_final_results()
        engine.cleanup()

        lobby = self.lobbies.mark_finished(code)
        self.transport.emit(events.GAME_ENDED, results, to=code)
        if lobby is not None:
            self._broadcast_lobby(lobby)
        logger.info("Game finished in lobby %s, winner %s", code, results.get("winner"))

    # -- connection lifecycle ------------------------------------------

    @_dispatch
    def disconnect(self, sid: str) -> dict:
        player_id = self._unbind(sid)
        if not player_id:
            return {"success": True}

        lobby = self.lobbies.set_connection(player_id, False)
        if lobby is None:
            return {"success": True}

        self._broadcast_player(lobby, player_id)

        cancel_timer(self._grace_timers.get(player_id))
        self._grace_timers[player_id] = self.scheduler.call_later(
            self.settings.grace_sec, self._expire_grace, player_id
        )
        logger.info("Player %s disconnected from lobby %s", player_id, lobby.code)
        return {"success": True}

    def _expire_grace(self, player_id: str) -> None:
        with self._lock:
            self._grace_timers.pop(player_id, None)
            lobby = self.lobbies.get_lobby_by_player(player_id)
            if lobby is None:
                return
            player = lobby.find_player(player_id)
            if player is None or player.is_connected:
                return
            try:
                self._remove_player(player_id)
            except PartyError as exc:
                logger.debug("Grace expiry for %s skipped: %s", player_id, exc.message)
                return
            logger.info("Removed disconnected player %s from lobby %s", player_id, lobby.code)

    def _on_lobby_removed(self, lobby: Lobby) -> None:
        code = lobby.code
        cancel_timer(self._countdowns.pop(code, None))
        engine = self._engines.pop(code, None)
        if engine is not None:
            engine.cleanup()

        self.transport.emit(events.LOBBY_DISBANDED, {"lobbyId": code}, to=code)
        for player in lobby.players:
            cancel_timer(self._grace_timers.pop(player.id, None))
            sid = self._player_to_sid.pop(player.id, None)
            if sid:
                self._sid_to_player.pop(sid, None)
                self.transport.leave_room(sid, code)

    def reclaim_idle_lobbies(self) -> int:
        with self._lock:
            removed = self.lobbies.reclaim_idle_lobbies()
            if removed:
                logger.info("Reclaimed %s idle lobbies", removed)
            return removed

    def start_idle_sweep(self) -> None:
        with self._lock:
            if self._sweep is not None and self._sweep.active:
                return
            self._sweep = self.scheduler.call_every(self.settings.sweep_interval_sec, self.reclaim_idle_lobbies)

    def shutdown(self) -> None:
        with self._lock:
            self._sweep = cancel_timer(self._sweep)
            for handle in list(self._countdowns.values()) + list(self._grace_timers.values()):
                handle.cancel()
            self._countdowns.clear()
            self._grace_timers.clear()
            for engine in self._engines.values():
                engine.cleanup()
            self._engines.clear()

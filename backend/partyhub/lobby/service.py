from __future__ import annotations

import logging
import random
import string
import uuid
from dataclasses import dataclass
from threading import RLock
from typing import Callable

from ..errors import (
    GameInProgress,
    LobbyCodeExhausted,
    LobbyFull,
    LobbyNotFound,
    NameTaken,
    NotEnoughPlayers,
    NotHost,
    PlayerNotFound,
    PlayersNotReady,
)
from ..utils.clock import now_ms
from .models import Lobby, Player
from .registry import MembershipRegistry

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 100

# Fields a player may change about themselves through update_player.
_UPDATABLE_FIELDS = {
    "name": "name",
    "isReady": "is_ready",
    "is_ready": "is_ready",
}


@dataclass
class LeaveResult:
    lobby: Lobby | None
    was_host: bool
    player: Player


class LobbyService:
    def __init__(
        self,
        registry: MembershipRegistry | None = None,
        *,
        min_players: int = 3,
        code_length: int = 6,
        idle_timeout_sec: int = 1800,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.registry = registry or MembershipRegistry()
        self.min_players = min_players
        self.code_length = code_length
        self.idle_timeout_sec = idle_timeout_sec
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = RLock()
        self._removal_listeners: list[Callable[[Lobby], None]] = []

    def add_removal_listener(self, listener: Callable[[Lobby], None]) -> None:
        self._removal_listeners.append(listener)

    def _generate_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = "".join(self._rng.choice(CODE_ALPHABET) for _ in range(self.code_length))
            if code not in self.registry:
                return code
        raise LobbyCodeExhausted()

    @staticmethod
    def _generate_player_id() -> str:
        return str(uuid.uuid4())

    def create_lobby(self, host_name: str, game_type: str, max_players: int) -> tuple[Lobby, str]:
        with self._lock:
            now = self._clock()
            player_id = self._generate_player_id()
            host = Player(
                id=player_id,
                name=host_name.strip(),
                is_host=True,
                is_ready=True,
                is_connected=True,
                joined_at_ms=now,
            )
            lobby = Lobby(
                code=self._generate_code(),
                id=str(uuid.uuid4()),
                game_type=game_type,
                max_players=max_players,
                created_at_ms=now,
                players=[host],
            )
            self.registry.add_lobby(lobby)
            self.registry.track(player_id, lobby.code)

            logger.info("Created lobby %s (%s) with host %s", lobby.code, game_type, host.name)
            return lobby, player_id

    def join_lobby(self, code: str, name: str) -> tuple[Lobby, str]:
        with self._lock:
            lobby = self.registry.get_lobby((code or "").strip().upper())
            if not lobby:
                raise LobbyNotFound()
            if lobby.status != "waiting":
                raise GameInProgress()
            if lobby.is_full:
                raise LobbyFull()
            if lobby.has_name(name):
                raise NameTaken()

            player = Player(
                id=self._generate_player_id(),
                name=name.strip(),
                is_host=False,
                is_ready=False,
                is_connected=True,
                joined_at_ms=self._clock(),
            )
            lobby.players.append(player)
            self.registry.track(player.id, lobby.code)

            logger.info("Player %s joined lobby %s", player.name, lobby.code)
            return lobby, player.id

    def _locate(self, player_id: str) -> tuple[Lobby, Player]:
        code = self.registry.lobby_code_for(player_id)
        if not code:
            raise PlayerNotFound()
        lobby = self.registry.get_lobby(code)
        if not lobby:
            raise LobbyNotFound()
        player = lobby.find_player(player_id)
        if not player:
            raise PlayerNotFound()
        return lobby, player

    def leave_lobby(self, player_id: str) -> LeaveResult:
        with self._lock:
            lobby, player = self._locate(player_id)
            was_host = player.is_host

            lobby.players.remove(player)
            self.registry.untrack(player_id)

            if not lobby.players:
                self._delete_lobby(lobby.code)
                logger.info("Deleted empty lobby %s", lobby.code)
                return LeaveResult(lobby=None, was_host=was_host, player=player)

            if was_host:
                new_host = lobby.players[0]
                new_host.is_host = True
                logger.info("%s is now host of lobby %s", new_host.name, lobby.code)

            logger.info("Player %s left lobby %s", player.name, lobby.code)
            return LeaveResult(lobby=lobby, was_host=was_host, player=player)

    def update_player(self, player_id: str, updates: dict) -> Lobby:
        with self._lock:
            lobby, player = self._locate(player_id)
            changes = {
                _UPDATABLE_FIELDS[key]: value
                for key, value in (updates or {}).items()
                if key in _UPDATABLE_FIELDS
            }
            # Names are only checked for collisions on join.
            if "name" in changes:
                player.name = str(changes["name"]).strip()
            if "is_ready" in changes:
                player.is_ready = bool(changes["is_ready"])
            return lobby

    def toggle_ready(self, player_id: str) -> Lobby:
        with self._lock:
            lobby, player = self._locate(player_id)
            player.is_ready = not player.is_ready
            return lobby

    def set_connection(self, player_id: str, connected: bool) -> Lobby | None:
        with self._lock:
            lobby = self.registry.lobby_for_player(player_id)
            if not lobby:
                return None
            player = lobby.find_player(player_id)
            if not player:
                return None
            player.is_connected = connected
            return lobby

    def get_lobby(self, code: str) -> Lobby | None:
        with self._lock:
            return self.registry.get_lobby((code or "").strip().upper())

    def get_lobby_by_player(self, player_id: str) -> Lobby | None:
        with self._lock:
            return self.registry.lobby_for_player(player_id)

    def all_lobbies(self) -> list[Lobby]:
        with self._lock:
            return list(self.registry)

    def start_game(self, player_id: str) -> Lobby:
        with self._lock:
            lobby = self.registry.lobby_for_player(player_id)
            if not lobby:
                raise LobbyNotFound()

            player = lobby.find_player(player_id)
            if not player or not player.is_host:
                raise NotHost()
            if lobby.status != "waiting":
                raise GameInProgress()
            if lobby.player_count < self.min_players:
                raise NotEnoughPlayers()
            if not all(p.is_ready for p in lobby.players):
                raise PlayersNotReady()

            lobby.status = "starting"
            lobby.started_at_ms = self._clock()
            logger.info("Game starting in lobby %s", lobby.code)
            return lobby

    def mark_playing(self, code: str) -> Lobby | None:
        with self._lock:
            lobby = self.registry.get_lobby(code)
            if lobby and lobby.status == "starting":
                lobby.status = "playing"
            return lobby

    def mark_finished(self, code: str) -> Lobby | None:
        with self._lock:
            lobby = self.registry.get_lobby(code)
            if lobby and lobby.status in ("starting", "playing"):
                lobby.status = "finished"
                lobby.finished_at_ms = self._clock()
            return lobby

    def reset_lobby(self, player_id: str) -> Lobby:
        """Send a finished lobby back to the waiting room for another game."""
        with self._lock:
            lobby = self.registry.lobby_for_player(player_id)
            if not lobby:
                raise LobbyNotFound()
            player = lobby.find_player(player_id)
            if not player or not player.is_host:
                raise NotHost()
            if lobby.status != "finished":
                raise GameInProgress()

            lobby.status = "waiting"
            lobby.started_at_ms = None
            lobby.finished_at_ms = None
            for p in lobby.players:
                p.is_ready = p.is_host
            return lobby

    def reclaim_idle_lobbies(self) -> int:
        """Remove lobbies past the idle threshold or with nobody connected."""
        with self._lock:
            now = self._clock()
            max_age_ms = self.idle_timeout_sec * 1000

            stale = [
                lobby.code
                for lobby in self.registry
                if now - lobby.created_at_ms > max_age_ms or lobby.connected_count == 0
            ]
            for code in stale:
                self._delete_lobby(code)
                logger.info("Cleaned up inactive lobby %s", code)
            return len(stale)

    def _delete_lobby(self, code: str) -> None:
        lobby = self.registry.remove_lobby(code)
        if lobby is None:
            return
        for listener in self._removal_listeners:
            listener(lobby)


def lobby_public_state(lobby: Lobby) -> dict:
    return {
        "id": lobby.id,
        "lobbyId": lobby.code,
        "gameType": lobby.game_type,
        "status": lobby.status,
        "players": [player_public_state(p) for p in lobby.players],
        "maxPlayers": lobby.max_players,
        "hostId": lobby.host_id,
        "createdAt": lobby.created_at_ms,
        "startedAt": lobby.started_at_ms,
        "finishedAt": lobby.finished_at_ms,
    }


def player_public_state(player: Player) -> dict:
    return {
        "id": player.id,
        "name": player.name,
        "isHost": player.is_host,
        "isReady": player.is_ready,
        "isConnected": player.is_connected,
        "joinedAt": player.joined_at_ms,
    }

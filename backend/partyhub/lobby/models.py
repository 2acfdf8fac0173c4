from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


LobbyStatus = Literal["waiting", "starting", "playing", "finished"]


@dataclass
class Player:
    id: str
    name: str
    is_host: bool = False
    is_ready: bool = False
    is_connected: bool = True
    joined_at_ms: int = 0


@dataclass
class Lobby:
    code: str
    id: str
    game_type: str
    max_players: int
    created_at_ms: int
    status: LobbyStatus = "waiting"
    players: list[Player] = field(default_factory=list)
    started_at_ms: int | None = None
    finished_at_ms: int | None = None

    @property
    def host(self) -> Player | None:
        for p in self.players:
            if p.is_host:
                return p
        return None

    @property
    def host_id(self) -> str | None:
        host = self.host
        return host.id if host else None

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def connected_count(self) -> int:
        return sum(1 for p in self.players if p.is_connected)

    @property
    def player_ids(self) -> list[str]:
        return [p.id for p in self.players]

    def find_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def has_name(self, name: str) -> bool:
        n = name.strip().lower()
        return any(p.name.lower() == n for p in self.players)

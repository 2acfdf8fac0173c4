from __future__ import annotations

from typing import Iterator

from .models import Lobby


class MembershipRegistry:
    """Lobby code -> lobby, and player id -> lobby code.

    One instance is created per process in ``create_app`` and handed to the
    lobby service; nothing here is module-global.
    """

    def __init__(self) -> None:
        self._lobbies: dict[str, Lobby] = {}
        self._player_lobby: dict[str, str] = {}

    def __contains__(self, code: str) -> bool:
        return code in self._lobbies

    def __iter__(self) -> Iterator[Lobby]:
        return iter(list(self._lobbies.values()))

    def add_lobby(self, lobby: Lobby) -> None:
        self._lobbies[lobby.code] = lobby

    def get_lobby(self, code: str) -> Lobby | None:
        return self._lobbies.get(code)

    def remove_lobby(self, code: str) -> Lobby | None:
        lobby = self._lobbies.pop(code, None)
        if lobby is None:
            return None
        for p in lobby.players:
            if self._player_lobby.get(p.id) == code:
                del self._player_lobby[p.id]
        for pid in [pid for pid, c in self._player_lobby.items() if c == code]:
            del self._player_lobby[pid]
        return lobby

    def track(self, player_id: str, code: str) -> None:
        self._player_lobby[player_id] = code

    def untrack(self, player_id: str) -> None:
        self._player_lobby.pop(player_id, None)

    def lobby_code_for(self, player_id: str) -> str | None:
        return self._player_lobby.get(player_id)

    def lobby_for_player(self, player_id: str) -> Lobby | None:
        code = self._player_lobby.get(player_id)
        return self._lobbies.get(code) if code else None

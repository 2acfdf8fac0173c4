from .models import Lobby, Player
from .registry import MembershipRegistry
from .service import LeaveResult, LobbyService, lobby_public_state, player_public_state

__all__ = [
    "LeaveResult",
    "Lobby",
    "LobbyService",
    "MembershipRegistry",
    "Player",
    "lobby_public_state",
    "player_public_state",
]

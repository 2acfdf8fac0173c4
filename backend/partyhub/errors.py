from __future__ import annotations


class PartyError(Exception):
    """Base for every error reported back to the client that sent a message."""

    code = "error"
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_response(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class LobbyNotFound(PartyError):
    code = "lobby_not_found"
    default_message = "Lobby not found"


class LobbyFull(PartyError):
    code = "lobby_full"
    default_message = "Lobby is full"


class GameInProgress(PartyError):
    code = "game_in_progress"
    default_message = "Game already in progress"


class NameTaken(PartyError):
    code = "name_taken"
    default_message = "Player name already taken"


class AlreadyInLobby(PartyError):
    code = "already_in_lobby"
    default_message = "Already in a lobby"


class PlayerNotFound(PartyError):
    code = "player_not_found"
    default_message = "Player not found"


class NotHost(PartyError):
    code = "not_host"
    default_message = "Only the host can do that"


class NotEnoughPlayers(PartyError):
    code = "not_enough_players"
    default_message = "Not enough players to start"


class PlayersNotReady(PartyError):
    code = "players_not_ready"
    default_message = "Not all players are ready"


class InvalidGameType(PartyError):
    code = "invalid_game_type"
    default_message = "Unsupported game type"


class InvalidPayload(PartyError):
    code = "invalid_payload"
    default_message = "Invalid payload"


class GameNotFound(PartyError):
    code = "game_not_found"
    default_message = "Game instance not found"


class GameNotPlaying(PartyError):
    code = "game_not_playing"
    default_message = "Game is not currently playing"


class ActionRejected(PartyError):
    code = "action_rejected"
    default_message = "Action not allowed"


class LobbyCodeExhausted(PartyError):
    code = "lobby_code_exhausted"
    default_message = "Could not allocate a lobby code"

"""Socket.IO event names shared by the router and the handlers."""

LOBBY_CREATE = "lobby:create"
LOBBY_JOIN = "lobby:join"
LOBBY_REJOIN = "lobby:rejoin"
LOBBY_LEAVE = "lobby:leave"
LOBBY_UPDATE_PLAYER = "lobby:updatePlayer"
LOBBY_TOGGLE_READY = "lobby:toggleReady"
LOBBY_RESET = "lobby:reset"
GAME_START = "game:start"
GAME_ACTION = "game:action"
PING = "ping"

LOBBY_UPDATED = "lobby:updated"
LOBBY_PLAYER_JOINED = "lobby:playerJoined"
LOBBY_PLAYER_LEFT = "lobby:playerLeft"
LOBBY_PLAYER_UPDATED = "lobby:playerUpdated"
LOBBY_DISBANDED = "lobby:disbanded"
GAME_STARTING = "game:starting"
GAME_STARTED = "game:started"
GAME_STATE_UPDATE = "game:stateUpdate"
GAME_ROUND_STARTED = "game:roundStarted"
GAME_PHASE_CHANGED = "game:phaseChanged"
GAME_TIME_UPDATE = "game:timeUpdate"
GAME_ROUND_ENDED = "game:roundEnded"
GAME_SCENARIO_RESOLVED = "game:scenarioResolved"
GAME_ENDED = "game:ended"

# Engine event name -> wire event name. ``game_ended`` is handled by the
# completion path instead.
ENGINE_EVENTS = {
    "round_started": GAME_ROUND_STARTED,
    "phase_changed": GAME_PHASE_CHANGED,
    "time_update": GAME_TIME_UPDATE,
    "round_ended": GAME_ROUND_ENDED,
    "scenario_resolved": GAME_SCENARIO_RESOLVED,
}

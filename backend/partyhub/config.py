import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    TESTING = False

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO worker model ("" picks a default per platform)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Lobby
    LOBBY_CODE_LENGTH = int(os.environ.get("LOBBY_CODE_LENGTH", "6"))
    MIN_PLAYERS_TO_START = int(os.environ.get("MIN_PLAYERS_TO_START", "3"))
    DEFAULT_MAX_PLAYERS = int(os.environ.get("DEFAULT_MAX_PLAYERS", "8"))
    MAX_PLAYERS_LIMIT = int(os.environ.get("MAX_PLAYERS_LIMIT", "16"))
    LOBBY_IDLE_TIMEOUT_SEC = int(os.environ.get("LOBBY_IDLE_TIMEOUT_SEC", "1800"))
    LOBBY_SWEEP_INTERVAL_SEC = int(os.environ.get("LOBBY_SWEEP_INTERVAL_SEC", "300"))
    DISCONNECT_GRACE_SEC = int(os.environ.get("DISCONNECT_GRACE_SEC", "30"))
    START_COUNTDOWN_SEC = int(os.environ.get("START_COUNTDOWN_SEC", "3"))

    # Quick draw
    DRAW_ROUND_DURATION_SEC = int(os.environ.get("DRAW_ROUND_DURATION_SEC", "90"))
    DRAW_GUESSING_AT_SEC = int(os.environ.get("DRAW_GUESSING_AT_SEC", "30"))
    REVEAL_DURATION_SEC = int(os.environ.get("REVEAL_DURATION_SEC", "5"))
    MAX_CANVAS_STROKES = int(os.environ.get("MAX_CANVAS_STROKES", "2000"))

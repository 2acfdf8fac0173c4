from __future__ import annotations

import sys
from pathlib import Path
from threading import RLock

from flask import Flask, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .lobby import LobbyService
from .realtime.handlers import SocketIOTransport, register_socketio_handlers
from .realtime.router import RouterSettings, SessionRouter
from .routes.games import bp as games_bp
from .routes.health import bp as health_bp
from .routes.lobbies import bp as lobbies_bp
from .timers import BackgroundScheduler, Scheduler


def _pick_async_mode(configured: str) -> str:
    if configured:
        return configured
    # Default choice:
    # - Windows: threading (eventlet has known compatibility issues on newer Python)
    # - Python >= 3.13: threading (safer default)
    # - Otherwise: eventlet
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(config_class: type = Config, scheduler: Scheduler | None = None) -> tuple[Flask, SocketIO]:
    dist_dir = Path(__file__).resolve().parents[2] / "frontend" / "dist"

    static_folder = str(dist_dir) if dist_dir.exists() else None
    static_url_path = "/" if dist_dir.exists() else None

    app = Flask(
        __name__,
        static_folder=static_folder,
        static_url_path=static_url_path,
    )
    app.config.from_object(config_class)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_pick_async_mode(app.config.get("SOCKETIO_ASYNC_MODE", "")),
    )

    # Message handlers and timer callbacks share this lock.
    lock = RLock()
    if scheduler is None:
        scheduler = BackgroundScheduler(socketio, lock)

    lobbies = LobbyService(
        min_players=app.config["MIN_PLAYERS_TO_START"],
        code_length=app.config["LOBBY_CODE_LENGTH"],
        idle_timeout_sec=app.config["LOBBY_IDLE_TIMEOUT_SEC"],
    )
    router = SessionRouter(
        lobbies,
        SocketIOTransport(socketio),
        scheduler,
        settings=RouterSettings.from_config(app.config),
        lock=lock,
    )
    app.extensions["partyhub"] = router

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(games_bp, url_prefix="/api")
    app.register_blueprint(lobbies_bp, url_prefix="/api")

    register_socketio_handlers(socketio, router)
    router.start_idle_sweep()

    if dist_dir.exists():
        @app.get("/")
        def index():
            return send_from_directory(dist_dir, "index.html")

        @app.get("/<path:path>")
        def static_proxy(path: str):
            file_path = dist_dir / path
            if file_path.exists() and file_path.is_file():
                return send_from_directory(dist_dir, path)
            return send_from_directory(dist_dir, "index.html")

    return app, socketio

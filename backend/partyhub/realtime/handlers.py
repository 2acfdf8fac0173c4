from __future__ import annotations

from typing import Any

from flask import request
from flask_socketio import SocketIO

from . import events
from .router import SessionRouter


class SocketIOTransport:
    """Router transport backed by the Flask-SocketIO server."""

    def __init__(self, socketio: SocketIO, namespace: str = "/") -> None:
        self._socketio = socketio
        self._namespace = namespace

    def emit(self, event: str, data: Any = None, to: str | None = None, skip_sid: str | None = None) -> None:
        self._socketio.emit(event, data, to=to, skip_sid=skip_sid, namespace=self._namespace)

    def enter_room(self, sid: str, room: str) -> None:
        self._socketio.server.enter_room(sid, room, namespace=self._namespace)

    def leave_room(self, sid: str, room: str) -> None:
        self._socketio.server.leave_room(sid, room, namespace=self._namespace)


def register_socketio_handlers(socketio: SocketIO, router: SessionRouter) -> None:
    @socketio.on(events.LOBBY_CREATE)
    def lobby_create(data=None):
        return router.create_lobby(request.sid, data)

    @socketio.on(events.LOBBY_JOIN)
    def lobby_join(data=None):
        return router.join_lobby(request.sid, data)

    @socketio.on(events.LOBBY_REJOIN)
    def lobby_rejoin(data=None):
        return router.rejoin_lobby(request.sid, data)

    @socketio.on(events.LOBBY_LEAVE)
    def lobby_leave(data=None):
        return router.leave_lobby(request.sid)

    @socketio.on(events.LOBBY_UPDATE_PLAYER)
    def lobby_update_player(data=None):
        return router.update_player(request.sid, data)

    @socketio.on(events.LOBBY_TOGGLE_READY)
    def lobby_toggle_ready(data=None):
        return router.toggle_ready(request.sid)

    @socketio.on(events.LOBBY_RESET)
    def lobby_reset(data=None):
        return router.reset_lobby(request.sid)

    @socketio.on(events.GAME_START)
    def game_start(data=None):
        return router.start_game(request.sid)

    @socketio.on(events.GAME_ACTION)
    def game_action(data=None):
        return router.game_action(request.sid, data)

    @socketio.on(events.PING)
    def ping(data=None):
        return router.ping(request.sid)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        router.disconnect(request.sid)

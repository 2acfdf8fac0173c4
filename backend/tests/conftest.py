import os
import random
import sys
from collections import namedtuple

import pytest

# Ensure the backend root (containing the `partyhub` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from partyhub.config import Config
from partyhub.lobby import LobbyService
from partyhub.realtime.router import RouterSettings, SessionRouter
from partyhub.server import create_app
from partyhub.timers import TimerHandle


class ManualScheduler:
    """Scheduler on a virtual clock; timers only fire inside advance()."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._timers = []

    def _push(self, due, handle, callback, args):
        self._seq += 1
        self._timers.append((due, self._seq, handle, callback, args))

    def call_later(self, delay, callback, *args):
        handle = TimerHandle()
        self._push(self.now + delay, handle, callback, args)
        return handle

    def call_every(self, interval, callback, *args):
        handle = TimerHandle(interval=interval)
        self._push(self.now + interval, handle, callback, args)
        return handle

    @property
    def pending(self):
        return [t for t in self._timers if t[2].active]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if t[2].active and t[0] <= target]
            if not due:
                break
            entry = min(due, key=lambda t: (t[0], t[1]))
            self._timers.remove(entry)
            when, _, handle, callback, args = entry
            self.now = when
            if handle.interval is None:
                handle.cancel()
            else:
                self._push(when + handle.interval, handle, callback, args)
            callback(*args)
        self.now = target
        self._timers = [t for t in self._timers if t[2].active]


Emitted = namedtuple('Emitted', 'event data to skip_sid')


class RecordingTransport:
    def __init__(self):
        self.emitted = []
        self.rooms = {}

    def emit(self, event, data=None, to=None, skip_sid=None):
        self.emitted.append(Emitted(event, data, to, skip_sid))

    def enter_room(self, sid, room):
        self.rooms.setdefault(room, set()).add(sid)

    def leave_room(self, sid, room):
        self.rooms.get(room, set()).discard(sid)

    def events(self, name, to=None):
        return [e for e in self.emitted if e.event == name and (to is None or e.to == to)]

    def payloads(self, name, to=None):
        return [e.data for e in self.events(name, to)]

    def names(self):
        return [e.event for e in self.emitted]

    def clear(self):
        self.emitted.clear()


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = 'threading'


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def lobbies(rng):
    return LobbyService(rng=rng)


@pytest.fixture()
def router(lobbies, transport, scheduler, rng):
    return SessionRouter(lobbies, transport, scheduler, RouterSettings(), rng=rng)


@pytest.fixture()
def make_lobby(router):
    """Create a lobby through the router; sids are 'sid-0' (host), 'sid-1', ..."""

    def _make(game_type='quick-draw', names=('Alice', 'Bob', 'Carol'), ready=True):
        ack = router.create_lobby('sid-0', {'hostName': names[0], 'gameType': game_type})
        assert ack['success'], ack
        code = ack['lobby']['lobbyId']
        players = {'sid-0': ack['playerId']}
        for i, name in enumerate(names[1:], start=1):
            sid = f'sid-{i}'
            joined = router.join_lobby(sid, {'lobbyId': code, 'playerName': name})
            assert joined['success'], joined
            players[sid] = joined['playerId']
            if ready:
                router.toggle_ready(sid)
        return code, players

    return _make


@pytest.fixture()
def started_lobby(make_lobby, router, scheduler):
    """A lobby whose game is running, countdown already elapsed."""

    def _start(game_type='quick-draw', names=('Alice', 'Bob', 'Carol')):
        code, players = make_lobby(game_type, names)
        ack = router.start_game('sid-0')
        assert ack == {'success': True}
        scheduler.advance(router.settings.countdown_sec)
        return code, players

    return _start


@pytest.fixture()
def app_bundle():
    sched = ManualScheduler()
    app, socketio = create_app(TestConfig, scheduler=sched)
    return app, socketio, sched


@pytest.fixture()
def flask_app(app_bundle):
    return app_bundle[0]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(app_bundle):
    app, socketio, _ = app_bundle
    clients = []

    def _connect():
        test_client = socketio.test_client(app, flask_test_client=app.test_client())
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()

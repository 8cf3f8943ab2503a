import os
import sys
import pytest

# Ensure the backend root (containing the `buzzer` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from buzzer import create_app, socketio
from buzzer.services.sessions import SessionEngine, TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:3000']
    DEFAULT_TIME_LIMIT_SEC = 30
    DEFAULT_COUNTDOWN_SEC = 3
    COUNTDOWN_TICK_SEC = 1
    SWEEP_INTERVAL_SEC = 1
    BACKUP_SWEEP_ENABLED = True
    SESSION_CODE_LENGTH = 6
    OPEN_SESSION_QUESTION = 'Open Buzzer Session'
    LOG_LEVEL = 'DEBUG'


class ManualTimerService:
    """Virtual clock for deterministic timer tests.

    Nothing fires until ``advance`` moves the clock past a deadline.
    Callbacks due at the same instant fire in the order they were scheduled.
    """

    EPOCH_MS = 1_700_000_000_000.0

    def __init__(self):
        self.elapsed = 0.0
        self._seq = 0
        self._entries = []

    def now(self):
        return self.EPOCH_MS + self.elapsed * 1000.0

    def _schedule(self, delay, callback, interval, name):
        handle = TimerHandle(name)
        self._seq += 1
        self._entries.append({
            'deadline': self.elapsed + max(0.0, delay),
            'seq': self._seq,
            'interval': interval,
            'callback': callback,
            'handle': handle,
        })
        return handle

    def call_later(self, delay, callback, name='timer'):
        return self._schedule(delay, callback, None, name)

    def call_every(self, interval, callback, name='timer'):
        return self._schedule(interval, callback, interval, name)

    def pending(self, prefix=''):
        return [
            e['handle'] for e in self._entries
            if not e['handle'].cancelled and e['handle'].name.startswith(prefix)
        ]

    def advance(self, seconds):
        target = self.elapsed + seconds
        while True:
            self._entries = [e for e in self._entries if not e['handle'].cancelled]
            due = [e for e in self._entries if e['deadline'] <= target + 1e-9]
            if not due:
                break
            entry = min(due, key=lambda e: (e['deadline'], e['seq']))
            self.elapsed = max(self.elapsed, entry['deadline'])
            if entry['interval'] is None:
                self._entries.remove(entry)
                entry['handle'].cancel()
            else:
                entry['deadline'] += entry['interval']
            entry['callback']()
        self.elapsed = target


class Recorder:
    """Collects engine broadcasts as (session_id, message) pairs."""

    def __init__(self):
        self.messages = []

    def __call__(self, session_id, message):
        self.messages.append((session_id, message))

    def types(self, session_id=None):
        return [m['type'] for sid, m in self.messages if session_id is None or sid == session_id]

    def clear(self):
        self.messages.clear()


@pytest.fixture()
def timers():
    return ManualTimerService()


@pytest.fixture()
def recorder():
    return Recorder()


@pytest.fixture()
def engine(timers, recorder):
    eng = SessionEngine(timers, recorder)
    yield eng
    eng.shutdown()


@pytest.fixture()
def flask_app(timers):
    application = create_app(TestConfig, timers=timers)
    with application.app_context():
        yield application
    application.extensions['session_engine'].shutdown()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    created = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(make_sio_client):
    return make_sio_client()

import os
import random
import sys
import pytest

# Ensure the backend root (containing the `heltblank` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from heltblank.config import Config
from heltblank import create_app, get_registry, socketio
from heltblank.services.games import (
    FillerAgent,
    RoundCoordinator,
    SessionRegistry,
    WordBank,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'DEBUG'
    WORDS_PATH = Config.WORDS_PATH
    WIN_SCORE = 30
    REJOIN_BY_NAME = True
    MIN_PLAYERS = 3
    FILLER_ENABLED = False


class RecordingEmitter:
    """Stands in for socketio.emit and keeps every outbound event."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload, to):
        self.events.append((event, payload, to))

    def named(self, event):
        return [payload for name, payload, _ in self.events if name == event]

    def clear(self):
        self.events.clear()


class FakeGenerator:
    def __init__(self, reply='robotsvar', error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def registry(flask_app):
    return get_registry(flask_app)


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
    yield test_client
    try:
        test_client.disconnect()
    except Exception:
        pass


@pytest.fixture()
def make_sio(flask_app):
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        c.get_received()  # flush 'connected'
        clients.append(c)
        return c

    yield _make
    for c in clients:
        if c.is_connected():
            c.disconnect()


@pytest.fixture()
def word_bank():
    return WordBank({'dyr': ['hund', 'kat', 'hest'], 'mad': ['ost', 'brød']}, rng=random.Random(7))


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def make_registry(word_bank, emitter):
    def _make(win_score=30, filler_agent=None, rejoin_by_name=True, bank=None):
        return SessionRegistry(
            bank or word_bank,
            RoundCoordinator(win_score=win_score),
            emit=emitter,
            filler_agent=filler_agent,
            rejoin_by_name=rejoin_by_name,
        )
    return _make


@pytest.fixture()
def make_filler_agent(word_bank):
    def _make(generator=None, min_players=3):
        return FillerAgent(generator or FakeGenerator(), word_bank, min_players=min_players)
    return _make

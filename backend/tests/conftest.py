import os
import sys

import pytest

# Ensure the backend root (containing the `tutti` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from tutti.game.service import GameService
from tutti.server import create_app


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret"
    CORS_ORIGINS = "*"
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = "threading"
    LOG_LEVEL = "DEBUG"
    ROUND_DURATION_SEC = 180
    MAX_ROUNDS = 5
    POINTS_PER_CATEGORY = 10
    # Open the next ballot right away instead of from a background task.
    VOTING_DISPLAY_DELAY_SEC = 0
    ROOM_IDLE_TTL_SEC = 600
    ROOM_TASKS_ENABLED = False


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def first_unused_letter(used):
    for ch in "BCDFGHJ":
        if ch not in used:
            return ch
    return "A"


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def make_game(clock):
    def _make(**overrides):
        codes = iter(f"ROOM{i}" for i in range(1, 1000))
        kwargs = dict(
            round_duration_sec=180,
            max_rounds=5,
            idle_ttl_sec=600,
            code_generator=lambda: next(codes),
            category_picker=lambda: ["Animal", "Color", "Cosa"],
            letter_picker=first_unused_letter,
            clock=clock,
        )
        kwargs.update(overrides)
        return GameService(**kwargs)

    return _make


@pytest.fixture()
def game(make_game):
    return make_game()


@pytest.fixture()
def app_and_socketio():
    return create_app(TestConfig)


@pytest.fixture()
def flask_app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def connect(flask_app, socketio):
    clients = []

    def _connect():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _connect

    for test_client in clients:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass


@pytest.fixture()
def drain():
    """Pop everything a test client received, grouped by event name."""

    def _drain(test_client):
        received = {}
        for pkt in test_client.get_received():
            args = pkt.get("args") or [None]
            received.setdefault(pkt["name"], []).append(args[0])
        return received

    return _drain

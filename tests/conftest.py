import logging
import os
import socket
import sys
import urllib.request
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    from geo_multisearch.settings import reset_settings_cache

    for name in list(os.environ):
        if name.startswith("GMS_"):
            monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture(autouse=True)
def restore_gms_logger():
    root = logging.getLogger("gms")
    handlers = list(root.handlers)
    level = root.level
    propagate = root.propagate
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate


class FakeProvider:
    """Returns queued row lists in order; raises `fail` when set."""

    name = "fake"

    def __init__(self, *responses):
        self.queue = [list(r) for r in responses]
        self.calls = []
        self.fail = None

    def push(self, rows):
        self.queue.append(list(rows))

    def search(self, kind, geometry):
        self.calls.append((str(kind), dict(geometry)))
        if self.fail is not None:
            raise self.fail
        return self.queue.pop(0) if self.queue else []


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def zip_row(code, city="Austin", state="TX", county="Travis", population=100, **extra):
    row = {
        "zipcode": code,
        "city": city,
        "state": state,
        "county": county,
        "latitude": 30.27,
        "longitude": -97.74,
        "population": population,
        "households": population // 2,
    }
    row.update(extra)
    return row


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(fake_provider, clock):
    from geo_multisearch.engine import SearchEngine

    return SearchEngine(fake_provider, clock=clock)

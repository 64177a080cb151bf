import itertools
import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from wpfleet.api.auth import hash_password
from wpfleet.config import Settings
from wpfleet.engine.job_manager import JobManager
from wpfleet.engine.sql_storage import SqlStorage
from wpfleet.engine.storage import MemStorage
from wpfleet.main import create_app
from wpfleet.tools.simulated import SimulatedExecutor

ADMIN_PASSWORD = "correct horse"


class FakeClock:
    """Returns a strictly increasing UTC time, one second per call."""

    def __init__(self, start=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.start = start
        self._ticks = itertools.count()
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            return self.start + timedelta(seconds=next(self._ticks))


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def no_sleep(seconds):
    pass


def make_executor(update_succeeds=True):
    return SimulatedExecutor(rng=FixedRandom(0.5), success_rate=1.0 if update_succeeds else 0.0, sleep=no_sleep)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemStorage(clock=clock)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, clock):
    if request.param == "memory":
        return MemStorage(clock=clock)
    return SqlStorage("sqlite://", clock=clock)


@pytest.fixture
def make_client(store):
    def _make(update_succeeds=True, exclusive=False, executor=None, sleep=no_sleep, **client_kwargs):
        manager = JobManager(store, executor or make_executor(update_succeeds),
                             exclusive_site_runs=exclusive, start_delay=0, sleep=sleep)
        settings = Settings(session_secret="test-secret", seed_demo_data=False)
        app = create_app(settings=settings, store=store, job_manager=manager)
        return TestClient(app, **client_kwargs), manager
    return _make


@pytest.fixture
def admin(store):
    return store.create_user("admin", hash_password(ADMIN_PASSWORD), "admin@example.com")


@pytest.fixture
def client(make_client, admin):
    client, _ = make_client()
    resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client


def site_payload(**overrides):
    payload = {
        "name": "Company Website",
        "url": "https://company.com",
        "wpCliPath": "/usr/local/bin/wp",
        "sshHost": "company.com",
        "sshUser": "admin",
        "pagesToScan": ["/", "/about", "/contact"],
    }
    payload.update(overrides)
    return payload

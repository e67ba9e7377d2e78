"""
Shared test fixtures.

Provides:
  • a controllable clock so windows, lockouts and expiries run instantly
  • memory-backed RateLimiter / OtpLifecycleManager instances
  • a Flask app built from TestingConfig on an in-memory SQLite database,
    plus a debug-mode variant that exposes issued codes
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from security.otp import OtpLifecycleManager
from security.otp_store import MemoryOtpStore
from security.rate_limiter import RateLimiter


# ── Helpers ────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable returning a frozen naive-UTC time that tests move by hand."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> None:
        self.now += timedelta(seconds=seconds, minutes=minutes)


class DebugTestingConfig(TestingConfig):
    OTP_DEBUG_EXPOSE_CODE = True


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(max_attempts=5, window_seconds=15 * 60, lockout_seconds=5 * 60, clock=clock)


@pytest.fixture()
def store() -> MemoryOtpStore:
    return MemoryOtpStore()


@pytest.fixture()
def manager(store: MemoryOtpStore, clock: FakeClock) -> OtpLifecycleManager:
    return OtpLifecycleManager(store=store, hash_rounds=4, clock=clock)


def _app_with_tables(config_object):
    """
    Flask app with tables created in an in-memory database. The app context
    stays pushed for the whole test so SQL-backed stores can be used directly.
    """
    flask_app = create_app(config_object)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app():
    yield from _app_with_tables(TestingConfig)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def debug_app():
    """Same app with OTP_DEBUG_EXPOSE_CODE on, so /send returns the code."""
    yield from _app_with_tables(DebugTestingConfig)


@pytest.fixture()
def debug_client(debug_app):
    return debug_app.test_client()

"""Shared fixtures: virtual clock, fake page, and a controller wired to both."""

from __future__ import annotations

import random

import pytest

from fbpilot.session_manager.controller import LoginPolicy, SessionController
from fbpilot.session_manager.human import HumanPacer
from fbpilot.session_manager.screenshots import ScreenshotCapture
from fbpilot.session_manager.store import SessionStore
from fbpilot.session_manager.throttle import ActionThrottle
from tests.fakes import FakeClock, FakePage, RecordingSleep

SESSION_KEY = "test"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def page(clock: FakeClock) -> FakePage:
    return FakePage(url="https://www.facebook.com/", clock=clock)


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(tmp_path / "sessions")


@pytest.fixture
def capture(tmp_path) -> ScreenshotCapture:
    return ScreenshotCapture(tmp_path / "screenshots")


@pytest.fixture
def pacer_sleep() -> RecordingSleep:
    """Typing and pauses are recorded here, not on the clock."""
    return RecordingSleep()


@pytest.fixture
def make_controller(page, store, capture, clock, pacer_sleep):
    """Build a controller on the fake page; keyword args override collaborators."""

    def _make(**overrides) -> SessionController:
        kwargs = dict(
            session_name=SESSION_KEY,
            throttle=ActionThrottle(min_interval_ms=10000, clock=clock, sleep=clock.sleep),
            pacer=HumanPacer(page, rng=random.Random(1), sleep=pacer_sleep),
            policy=LoginPolicy(),
            rng=random.Random(7),
            clock=clock,
            sleep=clock.sleep,
        )
        kwargs.update(overrides)
        return SessionController(page, store, capture, **kwargs)

    return _make

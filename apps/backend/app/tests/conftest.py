import pytest

from apps.backend.app.tests.helpers import FakeStore, ManualClock, make_settings


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store(clock):
    return FakeStore(clock=clock)


@pytest.fixture
def settings():
    return make_settings()

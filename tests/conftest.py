"""
Pytest fixtures for the NutriPilot bot tests.
Everything runs against the in-process session store; HTTP collaborators are mocks.
"""
import pytest

from nutripilot.config import Settings
from nutripilot.router import Router
from nutripilot.sessions import MemorySessionStore

SENDER = "+61400000001"

# hi, then core 1 > build > poultry > broiler > Ross > Starter > Mash
TO_INPUT_METHOD = ["hi", "1", "1", "1", "1", "1", "1", "1"]


@pytest.fixture
def settings():
    return Settings(max_ingredients=120)


@pytest.fixture
def store():
    return MemorySessionStore(ttl_seconds=3600)


@pytest.fixture
def router(store, settings):
    return Router(store, settings=settings)


@pytest.fixture
def send(router):
    """send(*messages, sender=SENDER) -> last Reply"""
    def _send(*messages, sender=SENDER, media_url=None, media_type=None):
        reply = None
        for body in messages:
            reply = router.handle(sender, body, media_url=media_url, media_type=media_type)
        return reply
    return _send


@pytest.fixture
def state_of(store):
    def _state(sender=SENDER):
        return store.load(sender).state
    return _state

import fakeredis
import pytest

from arena.core.models import GenerationRequest
from arena.core.orchestrator import Orchestrator
from tests.fakes import MemoryImageStorage


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def storage():
    return MemoryImageStorage()


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator with the given providers registered."""

    def _make(*providers, strategy=None):
        orchestrator = Orchestrator(strategy=strategy)
        for provider in providers:
            orchestrator.register(provider)
        return orchestrator

    return _make


@pytest.fixture
def request_factory():
    def _make(prompt="a red fox in the snow", image_count=2):
        return GenerationRequest.create(prompt, image_count=image_count)

    return _make

import pytest

from bucketsink.streaming.destination import ObjectDestination
from tests.unit.fakes import FakeInitiator, FakeResumableTransport


@pytest.fixture
def transport() -> FakeResumableTransport:
    return FakeResumableTransport()


@pytest.fixture
def initiator(transport: FakeResumableTransport) -> FakeInitiator:
    return FakeInitiator(transport)


@pytest.fixture
def destination() -> ObjectDestination:
    return ObjectDestination("test-bucket", "recordings/trace.bin")

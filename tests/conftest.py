import pytest

from core.layer_processor import SpatialQueryOrchestrator
from core.query_cache import QueryCache
from core.session import MapSession
from tests.fakes import FakeClock, FakeMapView, RecordingDisplay


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    return QueryCache(ttl_seconds=300, max_entries=256, clock=clock)


@pytest.fixture
def orchestrator(cache: QueryCache) -> SpatialQueryOrchestrator:
    return SpatialQueryOrchestrator(cache=cache)


@pytest.fixture
def map_view() -> FakeMapView:
    return FakeMapView(zoom=12)


@pytest.fixture
def display() -> RecordingDisplay:
    return RecordingDisplay()


@pytest.fixture
def make_session(map_view, display, orchestrator):
    """Build a MapSession over the given fake layers."""
    def _make(layers, descriptors=None, **settings):
        return MapSession(
            map_view,
            layers,
            descriptors=descriptors,
            orchestrator=orchestrator,
            display=display,
            interaction_settings=settings or None,
        )
    return _make

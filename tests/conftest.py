import pytest

from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.tracker import ExecutionTracker


@pytest.fixture
def registry():
    return ProbeRegistry()


@pytest.fixture
def sample_registry():
    """P1 (a.py:5), P2 (a.py:9) and P3 (b.py:2)."""
    registry = ProbeRegistry()
    registry.register(SourceLocation("a.py", 5))
    registry.register(SourceLocation("a.py", 9))
    registry.register(SourceLocation("b.py", 2))
    return registry


@pytest.fixture
def tracker(sample_registry):
    tracker = ExecutionTracker(sample_registry, strict=False, session_mode="delta")
    tracker.start()
    yield tracker
    tracker.teardown()

import pytest

from covtrack.errors import DuplicateLocationError
from covtrack.errors import RegistryFrozenError
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.probes import UnitKind


def test_register_assigns_dense_ids_in_registration_order(registry):
    ids = [registry.register(SourceLocation("a.py", line)) for line in (9, 5, 7)]

    assert ids == [0, 1, 2]
    assert [p.location.line for p in registry.all()] == [9, 5, 7]
    assert len(registry) == 3


def test_register_is_idempotent(registry):
    first = registry.register(SourceLocation("a.py", 5))
    again = registry.register(SourceLocation("a.py", 5))

    assert first == again
    assert len(registry) == 1


def test_register_infers_kind_from_location(registry):
    line = registry.register(SourceLocation("a.py", 5))
    branch = registry.register(SourceLocation("a.py", 5, 0))

    assert registry.get(line).kind is UnitKind.LINE
    assert registry.get(branch).kind is UnitKind.BRANCH
    assert line != branch


def test_register_conflicting_kind(registry):
    location = SourceLocation("a.py", 5)
    registry.register(location)

    with pytest.raises(DuplicateLocationError) as exc_info:
        registry.register(location, UnitKind.BRANCH)

    assert exc_info.value.location == location
    assert exc_info.value.existing_kind is UnitKind.LINE
    assert len(registry) == 1


def test_frozen_registry_rejects_new_locations(registry):
    known = registry.register(SourceLocation("a.py", 5))
    registry.register_file("empty.py")
    registry.freeze()

    assert registry.frozen
    # Known locations and files still resolve
    assert registry.register(SourceLocation("a.py", 5)) == known
    registry.register_file("empty.py")

    with pytest.raises(RegistryFrozenError):
        registry.register(SourceLocation("a.py", 6))
    with pytest.raises(RegistryFrozenError):
        registry.register_file("other.py")


def test_lookup_and_get(sample_registry):
    probe = sample_registry.lookup(SourceLocation("b.py", 2))

    assert probe is not None
    assert sample_registry.get(probe.id) is probe
    assert sample_registry.lookup(SourceLocation("b.py", 3)) is None
    assert sample_registry.get(3) is None
    assert sample_registry.get(-1) is None


def test_contains(sample_registry):
    assert 0 in sample_registry
    assert 2 in sample_registry
    assert 3 not in sample_registry
    assert "0" not in sample_registry


def test_files_include_files_without_probes(registry):
    registry.register(SourceLocation("b.py", 1))
    registry.register_file("c.py")
    registry.register(SourceLocation("a.py", 1))

    assert registry.files() == ("b.py", "c.py", "a.py")


@pytest.mark.parametrize("line, branch", [(-1, None), (3, -2)])
def test_source_location_rejects_negative_values(line, branch):
    with pytest.raises(ValueError):
        SourceLocation("a.py", line, branch)


def test_source_location_ordering():
    locations = [
        SourceLocation("b.py", 1),
        SourceLocation("a.py", 2, 1),
        SourceLocation("a.py", 2),
        SourceLocation("a.py", 2, 0),
        SourceLocation("a.py", 1),
    ]

    assert [str(loc) for loc in sorted(locations)] == ["a.py:1", "a.py:2", "a.py:2#0", "a.py:2#1", "b.py:1"]


def test_registry_iteration_is_a_copy():
    registry = ProbeRegistry()
    registry.register(SourceLocation("a.py", 1))

    for _ in registry:
        registry.register(SourceLocation("a.py", 2))

    assert len(registry) == 2

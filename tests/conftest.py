"""
Shared fixtures: a controllable clock, an employee directory and an
in-memory issue store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from civicdesk.assignment import AssignmentResolver, Employee, InMemoryDirectory
from civicdesk.issues import Actor, Category, InMemoryStorage, IssueStore, Role


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def employees():
    return [
        Employee(id="E1", name="Sipho Maluleke", department=Category.WATER),
        Employee(id="E2", name="Thabo Mokoena", department=Category.ROADS),
        Employee(id="E3", name="Lerato Ndlovu", department=Category.ROADS),
    ]


@pytest.fixture
def directory(employees):
    return InMemoryDirectory(employees)


@pytest.fixture
def store(directory, clock):
    return IssueStore(InMemoryStorage(), AssignmentResolver(directory), clock=clock)


@pytest.fixture
def resident():
    return Actor(id="res-1", name="Jane", role=Role.RESIDENT)


@pytest.fixture
def staff():
    return Actor(id="staff-1", name="Mpho Staff", role=Role.STAFF)


@pytest.fixture
def make_issue(store, resident):
    """Create an issue with sensible defaults."""
    def _make(**overrides):
        fields = {
            "title": "Pothole on Main Rd",
            "description": "Deep pothole near the taxi rank",
            "category": "roads",
            "location": "Main Rd, Polokwane",
        }
        fields.update(overrides)
        reporter = fields.pop("reporter", resident)
        return store.create(reporter, **fields)
    return _make

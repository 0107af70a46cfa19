"""
Tests for the issue lifecycle: models, IssueStore mutations and invariants
"""

import json
import math
import threading
from datetime import datetime, timezone

import pytest

from civicdesk.issues import (
    Actor, Category, Issue, IssueStatus, Priority, Role, StatusHistoryEntry,
    InvalidAssignmentError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError, ValidationError,
)


def _roundtrip(issue: Issue) -> Issue:
    return Issue.from_dict(json.loads(json.dumps(issue.to_dict())))


class TestIssueModels:
    """Tests for Issue data models."""

    def test_status_values(self):
        """Test status values."""
        assert IssueStatus.PENDING.value == "pending"
        assert IssueStatus.IN_PROGRESS.value == "in-progress"
        assert IssueStatus.RESOLVED.value == "resolved"
        assert IssueStatus.REJECTED.value == "rejected"

    def test_category_enumeration(self):
        """Test category enumeration."""
        assert [c.value for c in Category] == [
            "roads", "water", "electricity", "waste", "safety", "parks", "other",
        ]

    def test_roundtrip_minimal(self, make_issue):
        """Test roundtrip minimal."""
        issue = make_issue()
        assert _roundtrip(issue) == issue

    def test_roundtrip_all_optional_fields(self, make_issue, store, staff, resident, clock):
        """Test roundtrip all optional fields."""
        issue = make_issue(
            latitude=-23.9045,
            longitude=29.4689,
            photo_ref="photos/abc.jpg",
            priority="urgent",
            ai_category="roads",
            ai_confidence=0.6,
            ai_analysis={"issue_type": "Pothole", "keywords": ["pothole", "road"], "risk_level": "high"},
        )
        store.assign(issue.id, "roads", "E2", "Thabo Mokoena", assigned_by=staff)
        store.update_notes(issue.id, "Crew booked for Friday", staff)
        clock.advance(days=2)
        store.update_status(issue.id, "resolved", changed_by=staff, note="Patched")
        issue = store.reject_resolution(issue.id, resident, "Still broken")

        restored = _roundtrip(issue)

        assert restored == issue
        assert restored.department == Category.ROADS
        assert restored.resolved_at is not None
        assert restored.status_history[-1].note.endswith("Still broken")

    def test_from_dict_defaults_absent_optionals(self):
        """Test from dict defaults absent optionals."""
        now = datetime(2026, 1, 1, tzinfo=timezone.utc).isoformat()
        issue = Issue.from_dict({
            "id": "abc",
            "title": "Leak",
            "description": "Tap leaking",
            "category": "water",
            "created_at": now,
            "updated_at": now,
        })

        assert issue.status == IssueStatus.PENDING
        assert issue.department is None
        assert issue.resolved_at is None
        assert issue.ai_category is None
        assert issue.status_history == []

    def test_short_id(self, make_issue):
        """Test the short display id."""
        issue = make_issue()
        assert issue.short_id() == issue.id[:8].upper()


class TestCreate:
    """Tests for IssueStore.create."""

    def test_create_sets_initial_state(self, make_issue, clock, resident):
        """Test create sets initial state."""
        issue = make_issue(priority="high")

        assert issue.status == IssueStatus.PENDING
        assert issue.priority == Priority.HIGH
        assert issue.reporter_id == resident.id
        assert issue.reporter_name == "Jane"
        assert issue.created_at == issue.updated_at == clock.now
        assert issue.resident_confirmed is False
        assert issue.resident_rejected is False
        assert issue.resolved_at is None
        assert issue.status_history == [
            StatusHistoryEntry(
                status=IssueStatus.PENDING, changed_by="system", changed_at=clock.now, note="created"
            )
        ]

    def test_create_persists(self, make_issue, store):
        """Test create persists."""
        issue = make_issue()
        assert store.get(issue.id) == issue

    def test_ids_are_unique(self, make_issue):
        """Test ids are unique."""
        ids = {make_issue().id for _ in range(50)}
        assert len(ids) == 50

    def test_id_collision_regenerates(self, directory, clock, resident):
        """Test id collision regenerates."""
        from civicdesk.assignment import AssignmentResolver
        from civicdesk.issues import InMemoryStorage, IssueStore

        ids = iter(["dup", "dup", "fresh"])
        store = IssueStore(
            InMemoryStorage(), AssignmentResolver(directory), clock=clock, id_factory=lambda: next(ids)
        )
        first = store.create(resident, "A", "a", "roads")
        second = store.create(resident, "B", "b", "roads")

        assert first.id == "dup"
        assert second.id == "fresh"

    @pytest.mark.parametrize("field", ["title", "description"])
    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_required_text(self, make_issue, field, value):
        """Test required text."""
        with pytest.raises(ValidationError):
            make_issue(**{field: value})

    def test_unknown_category(self, make_issue):
        """Test unknown category."""
        with pytest.raises(ValidationError):
            make_issue(category="potholes")

    def test_unknown_priority(self, make_issue):
        """Test unknown priority."""
        with pytest.raises(ValidationError):
            make_issue(priority="critical")

    @pytest.mark.parametrize("lat, lon", [
        (10.0, None),
        (None, 10.0),
        (91.0, 0.0),
        (0.0, -180.5),
        (math.nan, 0.0),
        (0.0, math.inf),
        ("12.3", 4.5),
        (True, 4.5),
    ])
    def test_invalid_coordinates(self, make_issue, lat, lon):
        """Test invalid coordinates."""
        with pytest.raises(ValidationError):
            make_issue(latitude=lat, longitude=lon)

    def test_boundary_coordinates_accepted(self, make_issue):
        """Test boundary coordinates accepted."""
        issue = make_issue(latitude=-90, longitude=180)
        assert issue.latitude == -90.0
        assert issue.longitude == 180.0

    def test_ai_confidence_range(self, make_issue):
        """Test ai confidence range."""
        with pytest.raises(ValidationError):
            make_issue(ai_confidence=1.5)

    def test_failed_create_stores_nothing(self, make_issue, store):
        """Test failed create stores nothing."""
        with pytest.raises(ValidationError):
            make_issue(category="nope")
        assert store.list_issues() == []

    def test_employee_cannot_create(self, make_issue):
        """Test employee cannot create."""
        employee = Actor(id="E1", name="Sipho", role=Role.EMPLOYEE)
        with pytest.raises(PermissionDeniedError):
            make_issue(reporter=employee)

    def test_guest_can_create(self, make_issue):
        """Test guest can create."""
        issue = make_issue(reporter=Actor.guest("guest-123"))
        assert issue.reporter_id == "guest-123"
        assert issue.reporter_name == "Anonymous Resident"

    def test_system_can_create(self, make_issue):
        """Test system can create."""
        issue = make_issue(reporter=Actor.system())
        assert issue.reporter_id == "system"


class TestUpdateStatus:
    """Tests for IssueStore.update_status."""

    def test_unknown_issue(self, store, staff):
        """Test an unknown issue."""
        with pytest.raises(NotFoundError):
            store.update_status("missing", "in-progress", changed_by=staff)

    def test_unknown_status(self, make_issue, store, staff):
        """Test an unknown status."""
        issue = make_issue()
        with pytest.raises(InvalidTransitionError):
            store.update_status(issue.id, "closed", changed_by=staff)

    def test_progress_and_history(self, make_issue, store, staff, clock):
        """Test progress and history."""
        issue = make_issue()
        clock.advance(hours=1)
        updated = store.update_status(issue.id, IssueStatus.IN_PROGRESS, changed_by=staff, note="Crew out")

        assert updated.status == IssueStatus.IN_PROGRESS
        assert updated.updated_at == clock.now
        assert len(updated.status_history) == 2
        entry = updated.status_history[-1]
        assert entry.status == IssueStatus.IN_PROGRESS
        assert entry.changed_by == "Mpho Staff"
        assert entry.note == "Crew out"

    def test_resolve_sets_resolved_at(self, make_issue, store, staff, clock):
        """Test resolve sets resolved at."""
        issue = make_issue()
        clock.advance(days=3)
        resolved = store.update_status(issue.id, "resolved", changed_by=staff)
        assert resolved.resolved_at == clock.now

    def test_same_status_reconfirmation_appends_history(self, make_issue, store, staff):
        """Test same status reconfirmation appends history."""
        issue = make_issue()
        updated = store.update_status(issue.id, "pending", changed_by=staff)

        assert updated.status == IssueStatus.PENDING
        assert len(updated.status_history) == 2

    @pytest.mark.parametrize("target", ["pending", "in-progress", "resolved", "rejected"])
    def test_resolved_is_closed_to_plain_updates(self, make_issue, store, staff, target):
        """Test resolved is closed to plain updates."""
        issue = make_issue()
        store.update_status(issue.id, "resolved", changed_by=staff)

        with pytest.raises(InvalidTransitionError):
            store.update_status(issue.id, target, changed_by=staff)

        assert store.get(issue.id).status == IssueStatus.RESOLVED
        assert len(store.get(issue.id).status_history) == 2

    @pytest.mark.parametrize("target", ["pending", "in-progress"])
    def test_rejected_can_be_reconsidered(self, make_issue, store, staff, target):
        """Test rejected can be reconsidered."""
        issue = make_issue()
        store.update_status(issue.id, "rejected", changed_by=staff)
        updated = store.update_status(issue.id, target, changed_by=staff)
        assert updated.status.value == target

    def test_rejected_cannot_jump_to_resolved(self, make_issue, store, staff):
        """Test rejected cannot jump to resolved."""
        issue = make_issue()
        store.update_status(issue.id, "rejected", changed_by=staff)
        with pytest.raises(InvalidTransitionError):
            store.update_status(issue.id, "resolved", changed_by=staff)

    def test_resident_cannot_update_status(self, make_issue, store, resident):
        """Test resident cannot update status."""
        issue = make_issue()
        with pytest.raises(PermissionDeniedError):
            store.update_status(issue.id, "in-progress", changed_by=resident)

    def test_employee_only_on_own_assignment(self, make_issue, store, staff):
        """Test employee only on own assignment."""
        issue = make_issue()
        assignee = Actor(id="E2", name="Thabo Mokoena", role=Role.EMPLOYEE)
        other = Actor(id="E3", name="Lerato Ndlovu", role=Role.EMPLOYEE)

        with pytest.raises(PermissionDeniedError):
            store.update_status(issue.id, "in-progress", changed_by=assignee)

        store.assign(issue.id, "roads", "E2", "Thabo Mokoena", assigned_by=staff)
        updated = store.update_status(issue.id, "in-progress", changed_by=assignee)
        assert updated.status == IssueStatus.IN_PROGRESS

        with pytest.raises(PermissionDeniedError):
            store.update_status(issue.id, "resolved", changed_by=other)

    def test_history_timestamps_never_go_backwards(self, make_issue, store, staff, clock):
        """Test history timestamps never go backwards."""
        issue = make_issue()
        clock.advance(hours=-5)
        updated = store.update_status(issue.id, "in-progress", changed_by=staff)

        stamps = [e.changed_at for e in updated.status_history]
        assert stamps == sorted(stamps)


class TestAssign:
    """Tests for IssueStore.assign."""

    def test_assign_sets_fields_without_status_change(self, make_issue, store, staff, clock):
        """Test assign sets fields without status change."""
        issue = make_issue()
        clock.advance(minutes=10)
        updated = store.assign(issue.id, "roads", "E2", "Thabo Mokoena", assigned_by=staff)

        assert updated.department == Category.ROADS
        assert updated.assigned_employee_id == "E2"
        assert updated.assigned_employee_name == "Thabo Mokoena"
        assert updated.assigned_by == "Mpho Staff"
        assert updated.status == IssueStatus.PENDING
        assert updated.updated_at == clock.now
        assert len(updated.status_history) == 2
        assert updated.status_history[-1].status == IssueStatus.PENDING
        assert "Thabo Mokoena" in updated.status_history[-1].note

    def test_department_may_differ_from_category(self, make_issue, store, staff):
        """Test department may differ from category."""
        issue = make_issue(category="other")
        updated = store.assign(issue.id, "water", "E1", "Sipho Maluleke", assigned_by=staff)
        assert updated.category == Category.OTHER
        assert updated.department == Category.WATER

    def test_missing_name_taken_from_directory(self, make_issue, store, staff):
        """Test missing name taken from directory."""
        issue = make_issue()
        updated = store.assign(issue.id, "roads", "E3", None, assigned_by=staff)
        assert updated.assigned_employee_name == "Lerato Ndlovu"

    def test_unknown_issue(self, store, staff):
        """Test an unknown issue."""
        with pytest.raises(NotFoundError):
            store.assign("missing", "roads", "E2", "Thabo", assigned_by=staff)

    def test_unknown_department(self, make_issue, store, staff):
        """Test an unknown department."""
        issue = make_issue()
        with pytest.raises(ValidationError):
            store.assign(issue.id, "transport", "E2", "Thabo", assigned_by=staff)

    def test_employee_from_other_department(self, make_issue, store, staff):
        """E1 exists, but in water, so a roads assignment is rejected and nothing changes."""
        issue = make_issue()
        before = store.get(issue.id).to_dict()

        with pytest.raises(InvalidAssignmentError):
            store.assign(issue.id, "roads", "E1", "Sipho Maluleke", assigned_by=staff)

        after = store.get(issue.id)
        assert after.to_dict() == before
        assert len(after.status_history) == 1
        assert after.assigned_employee_id is None

    def test_unknown_employee(self, make_issue, store, staff):
        """Test an unknown employee."""
        issue = make_issue()
        with pytest.raises(InvalidAssignmentError):
            store.assign(issue.id, "roads", "E99", "Nobody", assigned_by=staff)

    def test_empty_department_pool(self, make_issue, store, staff):
        """Test empty department pool."""
        issue = make_issue()
        with pytest.raises(InvalidAssignmentError):
            store.assign(issue.id, "parks", "E2", "Thabo", assigned_by=staff)

    def test_directory_change_between_calls(self, make_issue, store, staff, directory, employees):
        """Test directory change between calls."""
        issue = make_issue()
        directory.replace([e for e in employees if e.id != "E2"])
        with pytest.raises(InvalidAssignmentError):
            store.assign(issue.id, "roads", "E2", "Thabo", assigned_by=staff)

    def test_only_staff_can_assign(self, make_issue, store, resident):
        """Test only staff can assign."""
        issue = make_issue()
        employee = Actor(id="E2", name="Thabo", role=Role.EMPLOYEE)
        for actor in (resident, employee):
            with pytest.raises(PermissionDeniedError):
                store.assign(issue.id, "roads", "E2", "Thabo", assigned_by=actor)

    def test_reassignment(self, make_issue, store, staff):
        """Test reassigning an issue."""
        issue = make_issue()
        store.assign(issue.id, "roads", "E2", "Thabo", assigned_by=staff)
        updated = store.assign(issue.id, "water", "E1", "Sipho", assigned_by=staff)
        assert updated.department == Category.WATER
        assert updated.assigned_employee_id == "E1"
        assert len(updated.status_history) == 3


class TestResidentReview:
    """Tests for confirm_resolution and reject_resolution."""

    @pytest.fixture
    def resolved_issue(self, make_issue, store, staff, clock):
        issue = make_issue()
        store.assign(issue.id, "roads", "E2", "Thabo Mokoena", assigned_by=staff)
        store.update_status(issue.id, "in-progress", changed_by=staff)
        clock.advance(days=2)
        return store.update_status(issue.id, "resolved", changed_by=staff)

    def test_confirm(self, resolved_issue, store, resident):
        """Test confirming a resolution."""
        confirmed = store.confirm_resolution(resolved_issue.id, resident)

        assert confirmed.resident_confirmed is True
        assert confirmed.status == IssueStatus.RESOLVED
        assert len(confirmed.status_history) == len(resolved_issue.status_history) + 1

    @pytest.mark.parametrize("status", ["pending", "in-progress", "rejected"])
    def test_confirm_requires_resolved(self, make_issue, store, staff, resident, status):
        """Test confirm requires resolved."""
        issue = make_issue()
        if status != "pending":
            store.update_status(issue.id, status, changed_by=staff)
        with pytest.raises(InvalidTransitionError):
            store.confirm_resolution(issue.id, resident)

    @pytest.mark.parametrize("status", ["pending", "in-progress", "rejected"])
    def test_reject_requires_resolved(self, make_issue, store, staff, resident, status):
        """Test reject requires resolved."""
        issue = make_issue()
        if status != "pending":
            store.update_status(issue.id, status, changed_by=staff)
        with pytest.raises(InvalidTransitionError):
            store.reject_resolution(issue.id, resident, "Still broken")

    def test_reject_reopens(self, resolved_issue, store, resident, clock):
        """Reopen path: back to in-progress, feedback kept, resolved_at untouched."""
        original_resolved_at = resolved_issue.resolved_at
        clock.advance(days=1)

        reopened = store.reject_resolution(resolved_issue.id, resident, "Still broken")

        assert reopened.status == IssueStatus.IN_PROGRESS
        assert reopened.resident_rejected is True
        assert reopened.resident_feedback == "Still broken"
        assert reopened.resolved_at == original_resolved_at
        assert len(reopened.status_history) == len(resolved_issue.status_history) + 1
        assert "Still broken" in reopened.status_history[-1].note
        assert reopened.status_history[-1].changed_by == "Jane"

    @pytest.mark.parametrize("feedback", ["", "   ", None])
    def test_reject_requires_feedback(self, resolved_issue, store, resident, feedback):
        """Test reject requires feedback."""
        with pytest.raises(ValidationError):
            store.reject_resolution(resolved_issue.id, resident, feedback)
        assert store.get(resolved_issue.id).status == IssueStatus.RESOLVED

    def test_resolved_at_is_sticky_across_second_resolution(self, resolved_issue, store, staff, resident, clock):
        """Test resolved at is sticky across second resolution."""
        first = resolved_issue.resolved_at
        store.reject_resolution(resolved_issue.id, resident, "Still broken")
        clock.advance(days=1)
        again = store.update_status(resolved_issue.id, "resolved", changed_by=staff)
        assert again.resolved_at == first

    def test_confirm_after_second_fix_clears_rejection(self, resolved_issue, store, staff, resident):
        """Test confirm after second fix clears rejection."""
        store.reject_resolution(resolved_issue.id, resident, "Still broken")
        store.update_status(resolved_issue.id, "resolved", changed_by=staff)
        confirmed = store.confirm_resolution(resolved_issue.id, resident)

        assert confirmed.resident_confirmed is True
        assert confirmed.resident_rejected is False
        assert confirmed.resident_feedback == "Still broken"

    def test_only_reporter_or_staff_reviews(self, resolved_issue, store, staff):
        """Test only reporter or staff reviews."""
        stranger = Actor(id="res-2", name="Someone Else", role=Role.RESIDENT)
        with pytest.raises(PermissionDeniedError):
            store.confirm_resolution(resolved_issue.id, stranger)
        with pytest.raises(PermissionDeniedError):
            store.reject_resolution(resolved_issue.id, stranger, "Nope")

        assert store.confirm_resolution(resolved_issue.id, staff).resident_confirmed is True


class TestHistoryInvariant:
    """Audit trail length follows the number of recorded mutations."""

    def test_history_counts_mutations(self, make_issue, store, staff, resident):
        """Test history counts mutations."""
        issue = make_issue()
        store.assign(issue.id, "roads", "E2", "Thabo", assigned_by=staff)
        store.update_status(issue.id, "in-progress", changed_by=staff)
        store.update_notes(issue.id, "notes do not count", staff)
        store.update_status(issue.id, "resolved", changed_by=staff)
        store.reject_resolution(issue.id, resident, "Still broken")
        store.update_status(issue.id, "resolved", changed_by=staff)
        final = store.confirm_resolution(issue.id, resident)

        assert final.status_history[0].status == IssueStatus.PENDING
        assert len(final.status_history) == 1 + 6

    def test_failed_mutations_leave_history(self, make_issue, store, staff, resident):
        """Test failed mutations leave history."""
        issue = make_issue()
        with pytest.raises(InvalidTransitionError):
            store.update_status(issue.id, "bogus", changed_by=staff)
        with pytest.raises(InvalidAssignmentError):
            store.assign(issue.id, "roads", "E1", "Sipho", assigned_by=staff)
        with pytest.raises(InvalidTransitionError):
            store.confirm_resolution(issue.id, resident)
        with pytest.raises(InvalidTransitionError):
            store.reject_resolution(issue.id, resident, "x")

        assert len(store.get(issue.id).status_history) == 1


class TestQueries:
    """Tests for IssueStore reads and notes."""

    def test_get_unknown(self, store):
        """Test getting an unknown issue."""
        with pytest.raises(NotFoundError):
            store.get("missing")

    def test_list_filters(self, make_issue, store, staff, clock):
        """Test listing issues with filters."""
        a = make_issue(category="water")
        clock.advance(minutes=1)
        b = make_issue(category="roads")
        store.assign(b.id, "roads", "E2", "Thabo", assigned_by=staff)
        store.update_status(b.id, "in-progress", changed_by=staff)

        assert [i.id for i in store.list_issues()] == [b.id, a.id]
        assert [i.id for i in store.list_issues(status="in-progress")] == [b.id]
        assert [i.id for i in store.list_issues(category=Category.WATER)] == [a.id]
        assert [i.id for i in store.list_issues(employee_id="E2")] == [b.id]
        assert len(store.list_issues(reporter_id="res-1")) == 2

    def test_update_notes(self, make_issue, store, staff):
        """Test updating staff notes."""
        issue = make_issue()
        updated = store.update_notes(issue.id, "  Check drainage too ", staff)
        assert updated.staff_notes == "Check drainage too"
        assert store.update_notes(issue.id, "", staff).staff_notes is None


class TestConcurrency:
    """Writers on the same issue are serialized."""

    def test_parallel_updates_are_not_lost(self, make_issue, store, staff):
        """Test parallel updates are not lost."""
        issue = make_issue()
        workers = 16
        barrier = threading.Barrier(workers)

        def worker():
            barrier.wait()
            store.update_status(issue.id, "pending", changed_by=staff)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.get(issue.id).status_history) == 1 + workers

    def test_unknown_ids_do_not_register_locks(self, make_issue, store, staff, resident):
        """Test writes to unknown issues fail without leaving a lock behind."""
        issue = make_issue()
        store.update_status(issue.id, "in-progress", changed_by=staff)

        with pytest.raises(NotFoundError):
            store.update_status("missing", "resolved", changed_by=staff)
        with pytest.raises(NotFoundError):
            store.assign("missing", "roads", "E2", "Thabo", assigned_by=staff)
        with pytest.raises(NotFoundError):
            store.update_notes("missing", "notes", staff)
        with pytest.raises(NotFoundError):
            store.confirm_resolution("missing", resident)
        with pytest.raises(NotFoundError):
            store.reject_resolution("missing", resident, "x")

        assert set(store._locks) == {issue.id}

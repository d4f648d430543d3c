"""
Tests for the assignment status engine.

These tests prove:
- A real status change writes exactly one status log row and one audit row
- Setting the current status again writes nothing
- Both log rows share the actor and commit with the status change
"""
from datetime import datetime

import pytest

from shiftledger.errors import NotFoundError, ValidationFailure
from shiftledger.models.audit import AuditLog, ShiftAssignmentLog
from shiftledger.models.domain import ShiftAssignment, Staff, User
from shiftledger.models.enums import AuditAction, EntityType, ResponseStatus
from shiftledger.services.assignments import AssignmentStatusEngine
from shiftledger.services.audit_logger import AuditContext, AuditLogger
from shiftledger.services.formatting import format_assignment_history


class TestStatusChange:

    def test_pending_to_accepted_writes_dual_log(self, db_session, assignment, staff_member, shift):
        """
        Pending assignment accepted with a message: row updated, one status
        log row and one status_change audit row, same actor.
        """
        engine = AssignmentStatusEngine(db_session)
        context = AuditContext(performed_by_staff=staff_member.id, user_agent="ShiftApp/2.1")

        updated = engine.update_assignment_status(assignment.id, "accepted", context, message="Available!")

        assert updated.response_status == ResponseStatus.ACCEPTED
        assert updated.response_message == "Available!"
        assert updated.responded_at is not None

        log = db_session.query(ShiftAssignmentLog).one()
        assert log.assignment_id == assignment.id
        assert log.previous_status == ResponseStatus.PENDING
        assert log.new_status == ResponseStatus.ACCEPTED
        assert log.message == "Available!"
        assert log.changed_by_staff == staff_member.id
        assert log.changed_by is None

        audit = db_session.query(AuditLog).one()
        assert audit.action == AuditAction.STATUS_CHANGE
        assert audit.entity_type == EntityType.SHIFT_ASSIGNMENT
        assert audit.entity_id == assignment.id
        assert audit.changed_fields == ["response_status"]
        assert audit.old_values == {"response_status": "pending"}
        assert audit.new_values == {"response_status": "accepted"}
        assert audit.performed_by_staff == staff_member.id
        assert audit.performed_by is None
        assert audit.user_agent == "ShiftApp/2.1"
        # Scoped through the owning shift rather than left empty
        assert audit.organization_id == shift.organization_id

    def test_same_status_is_a_no_op(self, db_session, assignment, manager, counts):
        """IDEMPOTENCE: current status again returns the unchanged row and writes nothing."""
        before = counts()
        updated_at = assignment.updated_at

        result = AssignmentStatusEngine(db_session).update_assignment_status(
            assignment.id, ResponseStatus.PENDING, AuditContext(performed_by=manager.id), message="ping"
        )

        assert result.id == assignment.id
        assert result.response_status == ResponseStatus.PENDING
        assert result.response_message is None
        assert result.updated_at == updated_at
        assert result.responded_at is None
        assert counts() == before

    def test_reinvitation_back_to_pending(self, db_session, assignment, manager):
        """Any transition between the three states is allowed."""
        engine = AssignmentStatusEngine(db_session)
        engine.update_assignment_status(assignment.id, "declined")
        engine.update_assignment_status(assignment.id, "pending", AuditContext(performed_by=manager.id))

        assert db_session.get(ShiftAssignment, assignment.id).response_status == ResponseStatus.PENDING
        assert db_session.query(ShiftAssignmentLog).count() == 2
        assert db_session.query(AuditLog).count() == 2

    def test_missing_assignment(self, db_session, counts):
        before = counts()
        with pytest.raises(NotFoundError):
            AssignmentStatusEngine(db_session).update_assignment_status("no-such-id", "accepted")
        assert counts() == before

    def test_unknown_status(self, db_session, assignment):
        with pytest.raises(ValidationFailure):
            AssignmentStatusEngine(db_session).update_assignment_status(assignment.id, "maybe")

    def test_audit_failure_rolls_back_status_and_log(self, db_session, assignment, counts, monkeypatch):
        """DUAL-LOG ATOMICITY: no status change without both log rows."""
        before = counts()

        def failing_append(self, *args, **kwargs):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(AuditLogger, "append", failing_append)

        with pytest.raises(RuntimeError):
            AssignmentStatusEngine(db_session).update_assignment_status(assignment.id, "accepted")

        assert db_session.get(ShiftAssignment, assignment.id).response_status == ResponseStatus.PENDING
        assert counts() == before


class TestHistoryAndStatistics:

    @pytest.fixture
    def busy_assignment(self, db_session, assignment, staff_member, manager):
        """pending -> accepted (staff) -> declined (manager) -> pending (system)."""
        engine = AssignmentStatusEngine(db_session)
        engine.update_assignment_status(
            assignment.id, "accepted", AuditContext(performed_by_staff=staff_member.id), message="Available!"
        )
        engine.update_assignment_status(
            assignment.id, "declined", AuditContext(performed_by=manager.id), message="Overbooked"
        )
        engine.update_assignment_status(assignment.id, "pending")
        return assignment

    def test_history_newest_first(self, db_session, busy_assignment):
        history = AssignmentStatusEngine(db_session).get_assignment_history(busy_assignment.id)

        assert [log.new_status for log in history] == [
            ResponseStatus.PENDING, ResponseStatus.DECLINED, ResponseStatus.ACCEPTED
        ]
        assert history[1].changed_by_user.name == "Anna Berg"
        assert history[2].changed_by_staff_member.name == "John Smith"

    def test_statistics(self, db_session, busy_assignment):
        stats = AssignmentStatusEngine(db_session).get_assignment_statistics(busy_assignment.id)

        assert stats.total_changes == 3
        assert stats.accepted_count == 1
        assert stats.declined_count == 1
        assert stats.changed_by_manager_count == 1
        assert stats.changed_by_staff_count == 1
        assert len(stats.logs) == 3

    def test_statistics_without_changes(self, db_session, assignment):
        stats = AssignmentStatusEngine(db_session).get_assignment_statistics(assignment.id)
        assert stats.total_changes == 0
        assert stats.logs == []

    def test_shift_statistics_cover_all_assignments(self, db_session, busy_assignment, shift, organization):
        colleague = Staff(organization_id=organization.id, name="Lena Fischer", email="lena@example.com")
        db_session.add(colleague)
        db_session.commit()
        second = ShiftAssignment(shift_id=shift.id, staff_id=colleague.id)
        db_session.add(second)
        db_session.commit()

        AssignmentStatusEngine(db_session).update_assignment_status(
            second.id, "accepted", AuditContext(performed_by_staff=colleague.id)
        )

        stats = AssignmentStatusEngine(db_session).get_shift_statistics(shift.id)
        assert stats.total_changes == 4
        assert stats.accepted_count == 2
        assert stats.changed_by_staff_count == 2

    def test_formatted_history_from_engine(self, db_session, busy_assignment):
        history = AssignmentStatusEngine(db_session).get_assignment_history(busy_assignment.id)
        lines = format_assignment_history(history)

        assert lines[0].endswith("] System: declined → pending")
        assert lines[1].endswith('] Manager Anna Berg: accepted → declined - "Overbooked"')
        assert lines[2].endswith('] Staff John Smith: pending → accepted - "Available!"')


class TestFormatting:

    def make_log(self, previous_status, new_status, message=None, user=None, staff=None):
        log = ShiftAssignmentLog(
            assignment_id="a1",
            previous_status=previous_status,
            new_status=new_status,
            message=message,
            created_at=datetime(2026, 3, 1, 18, 30, 5)
        )
        log.changed_by_user = user
        log.changed_by_staff_member = staff
        return log

    def test_transition_with_message(self):
        log = self.make_log(
            ResponseStatus.PENDING, ResponseStatus.ACCEPTED, "Available!", staff=Staff(name="Jane Doe")
        )
        assert format_assignment_history([log]) == [
            '[01.03.2026, 18:30:05] Staff Jane Doe: pending → accepted - "Available!"'
        ]

    def test_first_status_without_message(self):
        log = self.make_log(None, ResponseStatus.PENDING, user=User(name="Anna Berg"))
        assert format_assignment_history([log]) == [
            "[01.03.2026, 18:30:05] Manager Anna Berg: Status set: pending"
        ]

    def test_system_actor_and_custom_timestamp(self):
        log = self.make_log(ResponseStatus.ACCEPTED, ResponseStatus.DECLINED)
        assert format_assignment_history([log], timestamp_format="%Y-%m-%d %H:%M") == [
            "[2026-03-01 18:30] System: accepted → declined"
        ]

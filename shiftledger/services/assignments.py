"""
Assignment status engine.

Every response-status change of a shift assignment writes three things in one
transaction: the assignment row itself, a ShiftAssignmentLog entry, and a
universal `status_change` audit entry. Setting the status an assignment
already has is a no-op.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from shiftledger.database import atomic
from shiftledger.errors import NotFoundError, ValidationFailure
from shiftledger.models.audit import ShiftAssignmentLog
from shiftledger.models.domain import ShiftAssignment
from shiftledger.models.enums import AuditAction, EntityType, ResponseStatus
from shiftledger.services.audit_logger import SYSTEM, AuditContext, AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class AssignmentStatistics:
    """Counts over the status log of one assignment (or of all assignments of a shift)."""
    total_changes: int = 0
    accepted_count: int = 0
    declined_count: int = 0
    changed_by_manager_count: int = 0
    changed_by_staff_count: int = 0
    logs: List[ShiftAssignmentLog] = field(default_factory=list)

    @classmethod
    def from_logs(cls, logs: List[ShiftAssignmentLog]) -> "AssignmentStatistics":
        return cls(
            total_changes=len(logs),
            accepted_count=sum(1 for log in logs if log.new_status == ResponseStatus.ACCEPTED),
            declined_count=sum(1 for log in logs if log.new_status == ResponseStatus.DECLINED),
            changed_by_manager_count=sum(1 for log in logs if log.changed_by is not None),
            changed_by_staff_count=sum(1 for log in logs if log.changed_by_staff is not None),
            logs=logs
        )


class AssignmentStatusEngine:
    """Moves shift assignments between pending, accepted and declined."""

    def __init__(self, db: Session, audit_logger: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit_logger or AuditLogger(db)

    def update_assignment_status(
        self,
        assignment_id: str,
        new_status: ResponseStatus,
        context: AuditContext = SYSTEM,
        message: Optional[str] = None
    ) -> ShiftAssignment:
        """
        Change the response status of an assignment.

        Invariants:
        - Same status as now: returns the row unchanged, writes nothing
        - Otherwise exactly one status log entry and one audit entry, both
          with the same actor, committed with the status change
        """
        try:
            new_status = ResponseStatus(new_status)
        except ValueError:
            raise ValidationFailure(f"Unknown response status: {new_status!r}")

        assignment = self.db.get(ShiftAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")

        previous_status = assignment.response_status

        # Only write when the status actually changes
        if previous_status == new_status:
            logger.debug("Assignment %s already %s, nothing to do", assignment_id, new_status.value)
            return assignment

        with atomic(self.db):
            now = datetime.utcnow()

            # 1. Update the assignment
            assignment.response_status = new_status
            assignment.response_message = message
            assignment.responded_at = now
            assignment.updated_at = now
            self.db.flush()

            # 2. Assignment-specific transition log
            self.db.add(ShiftAssignmentLog(
                assignment_id=assignment_id,
                previous_status=previous_status,
                new_status=new_status,
                changed_by=context.performed_by,
                changed_by_staff=context.performed_by_staff,
                message=message,
                context_metadata=context.metadata
            ))
            self.db.flush()

            # 3. Universal audit entry, scoped through the owning shift
            self.audit.append(
                EntityType.SHIFT_ASSIGNMENT,
                assignment_id,
                AuditAction.STATUS_CHANGE,
                context,
                organization_id=self.audit.organization_scope(EntityType.SHIFT_ASSIGNMENT, assignment),
                old_values={"response_status": previous_status.value if previous_status else None},
                new_values={"response_status": new_status.value},
                changed_fields=["response_status"]
            )

        logger.info(
            "Assignment %s: %s -> %s by %s", assignment_id,
            previous_status.value if previous_status else None, new_status.value, context.actor_description
        )
        return assignment

    def get_assignment_history(self, assignment_id: str) -> List[ShiftAssignmentLog]:
        """Status log of one assignment, newest first, with actors loaded."""
        return self.db.query(ShiftAssignmentLog).options(
            joinedload(ShiftAssignmentLog.changed_by_user),
            joinedload(ShiftAssignmentLog.changed_by_staff_member)
        ).filter(
            ShiftAssignmentLog.assignment_id == assignment_id
        ).order_by(
            ShiftAssignmentLog.created_at.desc()
        ).all()

    def get_assignment_statistics(self, assignment_id: str) -> AssignmentStatistics:
        return AssignmentStatistics.from_logs(self.get_assignment_history(assignment_id))

    def get_shift_statistics(self, shift_id: str) -> AssignmentStatistics:
        """Same counts, over every assignment of one shift."""
        logs = self.db.query(ShiftAssignmentLog).join(
            ShiftAssignment, ShiftAssignmentLog.assignment_id == ShiftAssignment.id
        ).filter(
            ShiftAssignment.shift_id == shift_id
        ).order_by(
            ShiftAssignmentLog.created_at.desc()
        ).all()
        return AssignmentStatistics.from_logs(logs)

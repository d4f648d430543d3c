"""
Universal audit logging for every mutation in the system.

Every mutating operation MUST produce exactly one audit entry in the same
transaction as the data change. The *_with_audit wrappers do both; append()
adds an entry to a transaction someone else owns.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from shiftledger.config import settings
from shiftledger.database import atomic
from shiftledger.errors import NotFoundError, ValidationFailure
from shiftledger.models.audit import AuditLog, ShiftAssignmentLog
from shiftledger.models.domain import Organization, Shift, ShiftAssignment, VersionedMixin
from shiftledger.models.enums import AuditAction, EntityType
from shiftledger.models.registry import model_for, resolve_entity_type
from shiftledger.services.snapshots import check_fields, diff_values, snapshot

logger = logging.getLogger(__name__)

# Never settable through create/update wrappers
PROTECTED_FIELDS = frozenset({"id", "previous_version_id", "valid_from", "valid_to", "is_current", "created_at"})

MAX_IP_ADDRESS_LENGTH = 45

# Changed only by the assignment status engine, which also writes the status log
ENGINE_OWNED_FIELDS = {
    EntityType.SHIFT_ASSIGNMENT: frozenset({"response_status"}),
}


@dataclass(frozen=True)
class AuditContext:
    """
    Who performed a change and where the request came from.

    At most one actor: a user (manager) or a staff member. Neither means the
    change was made by the system.
    """
    performed_by: Optional[str] = None
    performed_by_staff: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)

    def __post_init__(self):
        if self.performed_by and self.performed_by_staff:
            raise ValidationFailure(
                "A change has at most one actor: pass performed_by or performed_by_staff, not both"
            )
        if self.ip_address and len(self.ip_address) > MAX_IP_ADDRESS_LENGTH:
            raise ValidationFailure(f"ip_address longer than {MAX_IP_ADDRESS_LENGTH} characters")

    @property
    def is_system(self) -> bool:
        return not self.performed_by and not self.performed_by_staff

    @property
    def actor_description(self) -> str:
        if self.performed_by:
            return f"user:{self.performed_by}"
        if self.performed_by_staff:
            return f"staff:{self.performed_by_staff}"
        return "system"


SYSTEM = AuditContext()


class AuditLogger:
    """Appends audit entries and serves entity- and organization-scoped reads."""

    def __init__(self, db: Session):
        self.db = db

    def organization_scope(self, entity_type: EntityType, row) -> Optional[str]:
        """
        Organization an entry about this row belongs to.

        Organizations scope to themselves; shift assignments scope through
        their shift; everything else carries organization_id directly.
        """
        if isinstance(row, Organization):
            return row.id
        if isinstance(row, ShiftAssignment):
            shift = self.db.get(Shift, row.shift_id)
            return shift.organization_id if shift else None
        return getattr(row, "organization_id", None)

    def append(
        self,
        entity_type,
        entity_id: str,
        action: AuditAction,
        context: AuditContext = SYSTEM,
        organization_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        changed_fields: Optional[List[str]] = None
    ) -> AuditLog:
        """
        Add an audit entry to the current transaction without committing.

        Callers own the transaction; the entry commits or rolls back with
        their data change.
        """
        try:
            action = AuditAction(action)
        except ValueError:
            raise ValidationFailure(f"Unknown audit action: {action!r}")

        entry = AuditLog(
            organization_id=organization_id,
            entity_type=resolve_entity_type(entity_type),
            entity_id=entity_id,
            action=action,
            performed_by=context.performed_by,
            performed_by_staff=context.performed_by_staff,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed_fields,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            context_metadata=context.metadata
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def log_audit_event(
        self,
        entity_type,
        entity_id: str,
        action: AuditAction,
        context: AuditContext = SYSTEM,
        organization_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        changed_fields: Optional[List[str]] = None
    ) -> AuditLog:
        """
        Unconditionally append and commit one entry.

        For callers that already performed the mutation themselves.
        """
        with atomic(self.db):
            entry = self.append(
                entity_type,
                entity_id,
                action,
                context,
                organization_id=organization_id,
                old_values=old_values,
                new_values=new_values,
                changed_fields=changed_fields
            )
        logger.info(
            "Audit %s %s/%s by %s", entry.action.value, entry.entity_type.value, entity_id,
            context.actor_description
        )
        return entry

    def create_with_audit(self, entity_type, values: Dict[str, Any], context: AuditContext = SYSTEM):
        """
        Insert a row and log a `create` entry with the full row as new_values.

        For versioned entities this starts a new lineage: the row is current
        and has no predecessor.
        """
        entity_type = resolve_entity_type(entity_type)
        model = model_for(entity_type)

        with atomic(self.db):
            check_fields(model, values.keys(), protected=PROTECTED_FIELDS)
            row = model(**values)
            if isinstance(row, VersionedMixin):
                now = datetime.utcnow()
                row.valid_from = now
                row.created_at = now
                row.updated_at = now
                row.is_current = True
            self.db.add(row)
            self.db.flush()

            self.append(
                entity_type,
                row.id,
                AuditAction.CREATE,
                context,
                organization_id=self.organization_scope(entity_type, row),
                new_values=snapshot(row)
            )

        logger.info("Created %s/%s by %s", entity_type.value, row.id, context.actor_description)
        return row

    def update_with_audit(
        self,
        entity_type,
        entity_id: str,
        updates: Dict[str, Any],
        context: AuditContext = SYSTEM
    ):
        """
        Update a row in place and log an `update` entry for the changed fields.

        No version splice happens here; use the version chain manager to keep
        history of versioned entities.
        """
        entity_type = resolve_entity_type(entity_type)
        model = model_for(entity_type)

        with atomic(self.db):
            if not updates:
                raise ValidationFailure("No fields to update")
            owned = sorted(ENGINE_OWNED_FIELDS.get(entity_type, frozenset()) & set(updates))
            if owned:
                raise ValidationFailure(
                    f"{', '.join(owned)} of {entity_type.value} changes through the assignment status engine"
                )
            check_fields(model, updates.keys(), protected=PROTECTED_FIELDS)

            row = self.db.get(model, entity_id)
            if row is None:
                raise NotFoundError(f"{entity_type.value} {entity_id} not found")

            old_values, new_values, changed_fields = diff_values(row, updates)
            for name, value in updates.items():
                setattr(row, name, value)
            if hasattr(row, "updated_at"):
                row.updated_at = datetime.utcnow()
            self.db.flush()

            self.append(
                entity_type,
                entity_id,
                AuditAction.UPDATE,
                context,
                organization_id=self.organization_scope(entity_type, row),
                old_values=old_values,
                new_values=new_values,
                changed_fields=changed_fields
            )

        logger.info(
            "Updated %s/%s fields=%s by %s", entity_type.value, entity_id, changed_fields,
            context.actor_description
        )
        return row

    def delete_with_audit(self, entity_type, entity_id: str, context: AuditContext = SYSTEM) -> Dict[str, Any]:
        """
        Log a `delete` entry with the full pre-image, then delete the row.

        The entry is written before the delete inside the same transaction.
        Returns the pre-image snapshot. Assignments with a status history
        are kept, since their append-only status log references them.
        """
        entity_type = resolve_entity_type(entity_type)
        model = model_for(entity_type)

        with atomic(self.db):
            row = self.db.get(model, entity_id)
            if row is None:
                raise NotFoundError(f"{entity_type.value} {entity_id} not found")
            if isinstance(row, ShiftAssignment) and self.db.query(
                self.db.query(ShiftAssignmentLog).filter(ShiftAssignmentLog.assignment_id == entity_id).exists()
            ).scalar():
                raise ValidationFailure(
                    f"shift_assignment {entity_id} has a status history and cannot be deleted"
                )

            pre_image = snapshot(row)
            self.append(
                entity_type,
                entity_id,
                AuditAction.DELETE,
                context,
                organization_id=self.organization_scope(entity_type, row),
                old_values=pre_image
            )

            self.db.delete(row)
            self.db.flush()

        logger.info("Deleted %s/%s by %s", entity_type.value, entity_id, context.actor_description)
        return pre_image

    def get_audit_logs_for_entity(self, entity_type, entity_id: str, limit: Optional[int] = None) -> List[AuditLog]:
        """Entries for one entity version, newest first, with actors loaded."""
        entity_type = resolve_entity_type(entity_type)
        if limit is None:
            limit = settings.default_entity_log_limit

        logger.debug("Reading audit logs for %s/%s (limit=%s)", entity_type.value, entity_id, limit)
        return self.db.query(AuditLog).options(
            joinedload(AuditLog.performed_by_user),
            joinedload(AuditLog.performed_by_staff_member)
        ).filter(
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id
        ).order_by(
            AuditLog.created_at.desc()
        ).limit(limit).all()

    def get_organization_audit_logs(
        self,
        organization_id: str,
        entity_type=None,
        action: Optional[AuditAction] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """
        Entries scoped to one organization, newest first.

        Optional filters: entity type, action, and an inclusive created_at
        range.
        """
        if limit is None:
            limit = settings.default_organization_log_limit
        query = self.db.query(AuditLog).options(
            joinedload(AuditLog.performed_by_user),
            joinedload(AuditLog.performed_by_staff_member)
        ).filter(AuditLog.organization_id == organization_id)

        if entity_type is not None:
            query = query.filter(AuditLog.entity_type == resolve_entity_type(entity_type))
        if action is not None:
            query = query.filter(AuditLog.action == AuditAction(action))
        if start_date is not None:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date is not None:
            query = query.filter(AuditLog.created_at <= end_date)

        logger.debug("Reading audit logs for organization %s (limit=%s)", organization_id, limit)
        return query.order_by(AuditLog.created_at.desc()).limit(limit).all()

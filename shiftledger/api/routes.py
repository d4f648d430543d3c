"""API routes for versioned entities, audit logs and assignment status changes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from shiftledger.api.schemas import (
    ActorFields,
    AssignmentHistoryResponse,
    AssignmentLogResponse,
    AssignmentResponse,
    AssignmentStatisticsResponse,
    AssignmentStatusUpdate,
    AuditLogResponse,
    EntityCreate,
    EntityDelete,
    ErrorResponse,
    NewVersionCreate,
    VersionResponse,
)
from shiftledger.database import get_db
from shiftledger.models.domain import VERSION_COLUMNS, VersionedMixin
from shiftledger.models.enums import AuditAction, EntityType
from shiftledger.services.assignments import AssignmentStatusEngine
from shiftledger.services.audit_logger import AuditContext, AuditLogger
from shiftledger.services.formatting import format_assignment_history
from shiftledger.services.snapshots import snapshot
from shiftledger.services.versioning import VersionChainManager

router = APIRouter()

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Row not found or not current"},
    409: {"model": ErrorResponse, "description": "Concurrent change or broken version chain"},
    422: {"model": ErrorResponse, "description": "Invalid fields or actor"},
    503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
}


def audit_context(request: Request, actor: ActorFields) -> AuditContext:
    """Actor from the body, provenance from the connection."""
    return AuditContext(
        performed_by=actor.performed_by,
        performed_by_staff=actor.performed_by_staff,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        metadata=actor.metadata
    )


def version_response(row) -> VersionResponse:
    values = snapshot(row)
    return VersionResponse(
        id=row.id,
        previous_version_id=row.previous_version_id,
        valid_from=row.valid_from,
        valid_to=row.valid_to,
        is_current=row.is_current,
        created_at=row.created_at,
        updated_at=row.updated_at,
        data={name: value for name, value in values.items() if name not in VERSION_COLUMNS}
    )


def entity_response(row) -> dict:
    if isinstance(row, VersionedMixin):
        return version_response(row).model_dump(mode="json")
    return snapshot(row)


# Entity endpoints
@router.post("/entities/{entity_type}", status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
def create_entity(entity_type: EntityType, data: EntityCreate, request: Request, db: Session = Depends(get_db)):
    """Create a row (the first version of a new lineage for versioned entities)."""
    row = AuditLogger(db).create_with_audit(entity_type, data.values, audit_context(request, data))
    return entity_response(row)


@router.post(
    "/entities/{entity_type}/{version_id}/versions",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES
)
def create_new_version(
    entity_type: EntityType,
    version_id: str,
    data: NewVersionCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Retire the current version and create its successor.
    Fails with 404 if version_id is not the current version.
    """
    manager = VersionChainManager(db)
    row = manager.create_new_version(entity_type, version_id, data.updates, audit_context(request, data))
    return version_response(row)


@router.get("/entities/{entity_type}/{version_id}/history", response_model=List[VersionResponse], responses=ERROR_RESPONSES)
def get_entity_history(entity_type: EntityType, version_id: str, db: Session = Depends(get_db)):
    """All versions of the lineage, newest first."""
    versions = VersionChainManager(db).get_entity_history(entity_type, version_id)
    if not versions:
        raise HTTPException(status_code=404, detail="Version not found")
    return [version_response(v) for v in versions]


@router.get("/entities/{entity_type}/{version_id}/current", response_model=VersionResponse, responses=ERROR_RESPONSES)
def get_current_version(entity_type: EntityType, version_id: str, db: Session = Depends(get_db)):
    """Resolve the current version from any version of the lineage."""
    row = VersionChainManager(db).get_current_version(entity_type, version_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Version not found")
    return version_response(row)


@router.get("/entities/{entity_type}/{version_id}/as-of", response_model=VersionResponse, responses=ERROR_RESPONSES)
def get_version_as_of(entity_type: EntityType, version_id: str, at: datetime, db: Session = Depends(get_db)):
    """The version that was authoritative at the given instant."""
    row = VersionChainManager(db).get_version_as_of(entity_type, version_id, at)
    if row is None:
        raise HTTPException(status_code=404, detail="No version valid at that instant")
    return version_response(row)


@router.delete("/entities/{entity_type}/{entity_id}", responses=ERROR_RESPONSES)
def delete_entity(
    entity_type: EntityType,
    entity_id: str,
    request: Request,
    data: Optional[EntityDelete] = None,
    db: Session = Depends(get_db)
):
    """Delete a row; the audit log keeps its full pre-image."""
    context = audit_context(request, data or EntityDelete())
    return AuditLogger(db).delete_with_audit(entity_type, entity_id, context)


# Audit log endpoints
@router.get("/audit-logs/{entity_type}/{entity_id}", response_model=List[AuditLogResponse])
def get_audit_logs_for_entity(
    entity_type: EntityType,
    entity_id: str,
    limit: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    """Audit entries for one entity version, newest first."""
    return AuditLogger(db).get_audit_logs_for_entity(entity_type, entity_id, limit=limit)


@router.get("/organizations/{organization_id}/audit-logs", response_model=List[AuditLogResponse])
def get_organization_audit_logs(
    organization_id: str,
    entity_type: Optional[EntityType] = None,
    action: Optional[AuditAction] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    """Audit entries of an organization, newest first, optionally filtered."""
    return AuditLogger(db).get_organization_audit_logs(
        organization_id,
        entity_type=entity_type,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=limit
    )


# Assignment endpoints
@router.put("/assignments/{assignment_id}/status", response_model=AssignmentResponse, responses=ERROR_RESPONSES)
def update_assignment_status(
    assignment_id: str,
    data: AssignmentStatusUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Change an assignment's response status.
    Setting the current status again changes nothing and logs nothing.
    """
    engine = AssignmentStatusEngine(db)
    return engine.update_assignment_status(
        assignment_id,
        data.new_status,
        audit_context(request, data),
        message=data.message
    )


@router.get("/assignments/{assignment_id}/history", response_model=AssignmentHistoryResponse)
def get_assignment_history(assignment_id: str, db: Session = Depends(get_db)):
    """Status log of an assignment, newest first, with display lines."""
    logs = AssignmentStatusEngine(db).get_assignment_history(assignment_id)
    return AssignmentHistoryResponse(
        logs=[AssignmentLogResponse.model_validate(log) for log in logs],
        lines=format_assignment_history(logs)
    )


@router.get("/assignments/{assignment_id}/statistics", response_model=AssignmentStatisticsResponse)
def get_assignment_statistics(assignment_id: str, db: Session = Depends(get_db)):
    stats = AssignmentStatusEngine(db).get_assignment_statistics(assignment_id)
    return AssignmentStatisticsResponse(
        total_changes=stats.total_changes,
        accepted_count=stats.accepted_count,
        declined_count=stats.declined_count,
        changed_by_manager_count=stats.changed_by_manager_count,
        changed_by_staff_count=stats.changed_by_staff_count
    )

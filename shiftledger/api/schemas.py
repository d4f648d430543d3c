"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from shiftledger.models.enums import AuditAction, EntityType, ResponseStatus


class ActorFields(BaseModel):
    """Who performs the change; omit both for a system change."""
    performed_by: Optional[str] = None
    performed_by_staff: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _single_actor(self):
        if self.performed_by and self.performed_by_staff:
            raise ValueError("performed_by and performed_by_staff are mutually exclusive")
        return self


# Entity schemas
class EntityCreate(ActorFields):
    values: Dict[str, Any] = Field(..., min_length=1)


class NewVersionCreate(ActorFields):
    updates: Dict[str, Any] = Field(..., min_length=1)


class EntityDelete(ActorFields):
    pass


class VersionResponse(BaseModel):
    """One row of a versioned entity, version columns first."""
    id: str
    previous_version_id: Optional[str]
    valid_from: datetime
    valid_to: Optional[datetime]
    is_current: bool
    created_at: datetime
    updated_at: datetime
    data: Dict[str, Any]


# Audit schemas
class ActorSummary(BaseModel):
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: str
    organization_id: Optional[str]
    entity_type: EntityType
    entity_id: str
    action: AuditAction
    performed_by: Optional[str]
    performed_by_staff: Optional[str]
    performed_by_user: Optional[ActorSummary]
    performed_by_staff_member: Optional[ActorSummary]
    old_values: Optional[Dict[str, Any]]
    new_values: Optional[Dict[str, Any]]
    changed_fields: Optional[List[str]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    context_metadata: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


# Assignment schemas
class AssignmentStatusUpdate(ActorFields):
    new_status: ResponseStatus
    message: Optional[str] = Field(None, max_length=1000)


class AssignmentResponse(BaseModel):
    id: str
    shift_id: str
    staff_id: str
    role_id: Optional[str]
    response_status: ResponseStatus
    response_message: Optional[str]
    invited_at: datetime
    responded_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignmentLogResponse(BaseModel):
    id: str
    assignment_id: str
    previous_status: Optional[ResponseStatus]
    new_status: ResponseStatus
    changed_by: Optional[str]
    changed_by_staff: Optional[str]
    message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentHistoryResponse(BaseModel):
    logs: List[AssignmentLogResponse]
    lines: List[str]


class AssignmentStatisticsResponse(BaseModel):
    total_changes: int
    accepted_count: int
    declined_count: int
    changed_by_manager_count: int
    changed_by_staff_count: int


# Error response
class ErrorResponse(BaseModel):
    """Response when an operation fails with a domain error."""
    message: str
    retryable: bool = False

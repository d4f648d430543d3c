"""
Entity-type registry: the closed mapping between audit entity types,
ORM models and physical table names.
"""
from typing import Dict, Type, Union

from shiftledger.errors import ValidationFailure
from shiftledger.models.domain import (
    Organization,
    Role,
    Shift,
    ShiftAssignment,
    Staff,
    StaffAddress,
    User,
    VersionedMixin,
)
from shiftledger.models.enums import EntityType

ENTITY_MODELS: Dict[EntityType, Type] = {
    EntityType.ORGANIZATION: Organization,
    EntityType.USER: User,
    EntityType.ROLE: Role,
    EntityType.STAFF: Staff,
    EntityType.STAFF_ADDRESS: StaffAddress,
    EntityType.SHIFT: Shift,
    EntityType.SHIFT_ASSIGNMENT: ShiftAssignment,
}

TABLE_ENTITY_TYPES: Dict[str, EntityType] = {
    model.__tablename__: entity_type for entity_type, model in ENTITY_MODELS.items()
}


def resolve_entity_type(entity: Union[EntityType, str, Type]) -> EntityType:
    """
    Accept an EntityType, its value, a table name or a model class.

    Unknown names are rejected rather than mapped to a default type.
    """
    if isinstance(entity, EntityType):
        return entity
    if isinstance(entity, type):
        entity = getattr(entity, "__tablename__", entity.__name__)
    if entity in TABLE_ENTITY_TYPES:
        return TABLE_ENTITY_TYPES[entity]
    try:
        return EntityType(entity)
    except ValueError:
        raise ValidationFailure(f"Unknown entity type: {entity!r}")


def model_for(entity: Union[EntityType, str, Type]) -> Type:
    return ENTITY_MODELS[resolve_entity_type(entity)]


def versioned_model_for(entity: Union[EntityType, str, Type]) -> Type:
    """Like model_for, but only for SCD Type 2 versioned entities."""
    entity_type = resolve_entity_type(entity)
    model = ENTITY_MODELS[entity_type]
    if not issubclass(model, VersionedMixin):
        raise ValidationFailure(f"Entity type {entity_type.value!r} is not versioned")
    return model

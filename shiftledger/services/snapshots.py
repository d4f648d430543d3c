"""Row snapshots and field diffs for audit before/after values."""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import inspect

from shiftledger.errors import ValidationFailure


def json_safe(value: Any) -> Any:
    """Convert a column value into something the JSON columns can store."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value


def attribute_names(model) -> List[str]:
    """Mapped column attribute names of a model, in table order."""
    return [attr.key for attr in inspect(model).column_attrs]


def snapshot(row) -> Dict[str, Any]:
    """Full snapshot of a row keyed by attribute name."""
    return {name: json_safe(getattr(row, name)) for name in attribute_names(type(row))}


def diff_values(row, updates: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any], List[str]]:
    """
    Before/after values restricted to the keys being updated.

    Returns (old_values, new_values, changed_fields). changed_fields lists the
    update keys in the order the caller gave them.
    """
    changed_fields = list(updates.keys())
    old_values = {field: json_safe(getattr(row, field)) for field in changed_fields}
    new_values = {field: json_safe(updates[field]) for field in changed_fields}
    return old_values, new_values, changed_fields


def check_fields(model, fields: Iterable[str], protected: Iterable[str] = ()) -> None:
    """Reject unknown or protected attribute names."""
    known = set(attribute_names(model))
    protected = set(protected)
    unknown = sorted(field for field in fields if field not in known)
    if unknown:
        raise ValidationFailure(
            f"Unknown fields for {model.__tablename__}: {', '.join(unknown)}"
        )
    blocked = sorted(field for field in fields if field in protected)
    if blocked:
        raise ValidationFailure(
            f"Fields managed by the version chain cannot be set directly: {', '.join(blocked)}"
        )

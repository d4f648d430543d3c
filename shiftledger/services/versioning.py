"""
SCD Type 2 version chain manager.

A lineage is the set of rows connected by previous_version_id edges. The
current row is the head of that path and is the only row with
is_current = True. Every change to a versioned entity retires the head and
splices a successor in front of it; rows are never overwritten.

This is the only mutation path for versioned entities after creation.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftledger.config import settings
from shiftledger.database import atomic
from shiftledger.errors import ChainInconsistencyError, ConflictError, NotFoundError, ValidationFailure
from shiftledger.models.domain import StaffAddress, VERSION_COLUMNS
from shiftledger.models.enums import AuditAction, EntityType
from shiftledger.models.registry import resolve_entity_type, versioned_model_for
from shiftledger.services.audit_logger import SYSTEM, AuditContext, AuditLogger
from shiftledger.services.snapshots import attribute_names, check_fields, diff_values

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = frozenset({"street", "house_number", "postal_code", "city", "state", "country"})


def is_successor_conflict(exc: IntegrityError) -> bool:
    """True when the violation is the unique predecessor link, not bad data."""
    message = str(exc.orig).lower()
    return "previous_version_id" in message and ("unique" in message or "duplicate" in message)


class VersionChainManager:
    """Creates, retires and resolves versions of any versioned entity type."""

    def __init__(self, db: Session, audit_logger: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit_logger or AuditLogger(db)

    def create_new_version(
        self,
        entity_type,
        current_id: str,
        updates: Dict[str, Any],
        context: AuditContext = SYSTEM
    ):
        """
        Retire the current version and insert its successor.

        Steps, all in one transaction:
        1. Retire the current row (valid_to = now, is_current = False)
        2. Insert a copy with updates overlaid, linked back to the retired row
        3. Log an `update` audit entry against the new version id

        Raises:
        - NotFoundError if current_id does not exist or is no longer current
        - ConflictError if a concurrent caller retired the same row first
        - ValidationFailure for empty or unknown updates
        """
        entity_type = resolve_entity_type(entity_type)
        model = versioned_model_for(entity_type)

        with atomic(self.db):
            if not updates:
                raise ValidationFailure("No fields to update")
            check_fields(model, updates.keys(), protected=VERSION_COLUMNS)

            current = self.db.query(model).filter(
                model.id == current_id,
                model.is_current.is_(True)
            ).with_for_update().first()

            if current is None:
                raise NotFoundError(f"Current version {current_id} of {entity_type.value} not found")

            # Copy domain fields before retirement touches the instance
            carried = {
                name: getattr(current, name)
                for name in attribute_names(model)
                if name not in VERSION_COLUMNS
            }
            created_at = current.created_at
            old_values, new_values, changed_fields = diff_values(current, updates)

            now = datetime.utcnow()

            # 1. Retire the current version, guarded on it still being current
            result = self.db.execute(
                update(model).where(
                    model.id == current_id,
                    model.is_current.is_(True)
                ).values(
                    valid_to=now,
                    is_current=False,
                    updated_at=now
                ).execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Version {current_id} of {entity_type.value} was retired by a concurrent change"
                )

            # 2. Splice in the successor
            carried.update(updates)
            new_version = model(
                **carried,
                previous_version_id=current_id,
                valid_from=now,
                valid_to=None,
                is_current=True,
                created_at=created_at,
                updated_at=now
            )
            self.db.add(new_version)
            try:
                self.db.flush()
            except IntegrityError as exc:
                if not is_successor_conflict(exc):
                    raise ValidationFailure(
                        f"Version of {entity_type.value} rejected by store constraint: {exc.orig}"
                    ) from exc
                raise ConflictError(
                    f"Version {current_id} of {entity_type.value} already has a successor"
                ) from exc

            # 3. Audit entry for the new version
            self.audit.append(
                entity_type,
                new_version.id,
                AuditAction.UPDATE,
                context,
                organization_id=self.audit.organization_scope(entity_type, new_version),
                old_values=old_values,
                new_values=new_values,
                changed_fields=changed_fields
            )

        logger.info(
            "New version %s of %s replaces %s (fields=%s) by %s",
            new_version.id, entity_type.value, current_id, changed_fields, context.actor_description
        )
        return new_version

    def _walk_forward(self, model, start) -> List:
        """
        Follow successors from `start` until none is found.

        Returns the visited rows, start first. Stops on a repeated id or an
        overlong chain instead of looping.
        """
        visited = [start]
        seen = {start.id}
        candidate = start
        while len(visited) < settings.max_chain_length:
            successor = self.db.query(model).filter(
                model.previous_version_id == candidate.id
            ).first()
            if successor is None:
                break
            if successor.id in seen:
                logger.warning("Cycle in %s version chain at %s", model.__tablename__, successor.id)
                break
            seen.add(successor.id)
            visited.append(successor)
            candidate = successor
        return visited

    def _walk_back(self, model, start_id: str) -> List:
        """
        Follow previous_version_id from start_id to the lineage root.

        A missing predecessor ends the walk without failing. A repeated id or
        an overlong chain also ends the walk and is logged.
        """
        versions = []
        seen = set()
        next_id = start_id

        while next_id:
            if next_id in seen:
                logger.warning("Cycle in %s version chain at %s", model.__tablename__, next_id)
                break
            if len(versions) >= settings.max_chain_length:
                logger.warning(
                    "Stopped walking %s version chain after %d rows", model.__tablename__, len(versions)
                )
                break

            version = self.db.get(model, next_id)
            if version is None:
                if versions:
                    logger.warning("Broken %s version chain: %s is missing", model.__tablename__, next_id)
                break

            seen.add(next_id)
            versions.append(version)
            next_id = version.previous_version_id

        return versions

    def get_entity_history(self, entity_type, version_id: str) -> List:
        """
        Every version of the lineage containing version_id, newest first.

        Finds the newest reachable version by following successors, then walks
        previous_version_id back to the root. Broken links end a walk rather
        than failing; an unknown version_id yields an empty list.
        """
        model = versioned_model_for(entity_type)

        start = self.db.get(model, version_id)
        if start is None:
            return []

        newest = self._walk_forward(model, start)[-1]
        versions = self._walk_back(model, newest.id)

        logger.debug("History of %s/%s: %d versions", model.__tablename__, version_id, len(versions))
        # sorted() is stable: rows sharing a valid_from keep chain order
        return sorted(versions, key=lambda v: v.valid_from, reverse=True)

    def get_current_version(self, entity_type, version_id: str):
        """
        Resolve the lineage head from any version.

        Returns None if version_id does not exist. Walks forward by looking
        for the row whose previous_version_id points at the candidate.

        Raises ChainInconsistencyError when the walk ends on a row that is
        not current, or loops; a non-current row is never returned as head.
        """
        model = versioned_model_for(entity_type)

        candidate = self.db.get(model, version_id)
        if candidate is None:
            return None

        visited = [candidate.id]
        while not candidate.is_current:
            successor = self.db.query(model).filter(
                model.previous_version_id == candidate.id
            ).first()

            if successor is None:
                logger.warning(
                    "Broken %s version chain: %s is retired but has no successor",
                    model.__tablename__, candidate.id
                )
                raise ChainInconsistencyError(
                    f"Version chain of {model.__tablename__} ends at retired version {candidate.id}",
                    visited_ids=visited
                )
            if successor.id in visited or len(visited) >= settings.max_chain_length:
                raise ChainInconsistencyError(
                    f"Version chain of {model.__tablename__} does not terminate after {candidate.id}",
                    visited_ids=visited
                )

            candidate = successor
            visited.append(candidate.id)

        return candidate

    def get_version_as_of(self, entity_type, version_id: str, instant: datetime):
        """
        The version that was authoritative at `instant`, or None.

        A version covers the half-open interval [valid_from, valid_to).
        """
        for version in self.get_entity_history(entity_type, version_id):
            if version.valid_from <= instant and (version.valid_to is None or instant < version.valid_to):
                return version
        return None

    def verify_chain(self, entity_type, version_id: str) -> List[str]:
        """
        Check the lineage containing version_id for single-head violations.

        Returns a list of problems; empty means the chain is healthy.
        """
        model = versioned_model_for(entity_type)
        problems = []

        versions = self.get_entity_history(entity_type, version_id)

        current = [v for v in versions if v.is_current]
        if len(current) != 1:
            problems.append(f"Expected exactly one current version, found {len(current)}")

        for version in versions:
            if version.is_current != (version.valid_to is None):
                problems.append(f"Version {version.id} has is_current={version.is_current} but valid_to={version.valid_to}")

        if versions:
            root = versions[-1]
            if root.previous_version_id is not None:
                problems.append(f"Predecessor {root.previous_version_id} of {root.id} is missing")

        if problems:
            logger.warning("%s lineage of %s: %s", model.__tablename__, version_id, "; ".join(problems))
        return problems

    def update_staff_address(
        self,
        address_id: str,
        updates: Dict[str, Any],
        context: AuditContext = SYSTEM
    ) -> StaffAddress:
        """New version of a staff address; only the postal fields may change."""
        extra = sorted(set(updates) - ADDRESS_FIELDS)
        if extra:
            raise ValidationFailure(f"Not an address field: {', '.join(extra)}")
        return self.create_new_version(EntityType.STAFF_ADDRESS, address_id, updates, context)

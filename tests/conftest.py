"""Pytest configuration and shared fixtures."""
import os

# Keep the application's own engine off disk while tests import it
os.environ.setdefault("SHIFTLEDGER_DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shiftledger.database import Base
from shiftledger.models.audit import AuditLog, ShiftAssignmentLog
from shiftledger.models.domain import Organization, Shift, ShiftAssignment, Staff, StaffAddress, User
from shiftledger.models.enums import ResponseStatus


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # StaticPool keeps one connection so TestClient threads see the same data
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def organization(db_session):
    org = Organization(name="Blue Note Catering", type="catering")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def manager(db_session, organization):
    """A user who manages shifts."""
    user = User(
        organization_id=organization.id,
        email="anna@bluenote.example",
        name="Anna Berg",
        password_hash="not-a-real-hash"
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def staff_member(db_session, organization):
    """First version of a staff lineage: current, no predecessor."""
    staff = Staff(
        organization_id=organization.id,
        name="John Smith",
        email="john@bluenote.example",
        phone="+49 30 1234567"
    )
    db_session.add(staff)
    db_session.commit()
    db_session.refresh(staff)
    return staff


@pytest.fixture
def staff_address(db_session, staff_member):
    address = StaffAddress(
        staff_id=staff_member.id,
        street="Hauptstrasse",
        house_number="12",
        postal_code="10115",
        city="Berlin",
        country="DE"
    )
    db_session.add(address)
    db_session.commit()
    db_session.refresh(address)
    return address


@pytest.fixture
def shift(db_session, organization, manager):
    start = datetime(2026, 11, 7, 18, 0)
    shift = Shift(
        organization_id=organization.id,
        created_by=manager.id,
        title="Wedding reception",
        location="Schloss Charlottenburg",
        shift_date=start,
        start_time=start,
        end_time=start + timedelta(hours=6),
        compensation="180 EUR"
    )
    db_session.add(shift)
    db_session.commit()
    db_session.refresh(shift)
    return shift


@pytest.fixture
def assignment(db_session, shift, staff_member):
    """A pending invitation of staff_member to shift."""
    assignment = ShiftAssignment(
        shift_id=shift.id,
        staff_id=staff_member.id,
        response_status=ResponseStatus.PENDING
    )
    db_session.add(assignment)
    db_session.commit()
    db_session.refresh(assignment)
    return assignment


def count(db_session, model, *criteria):
    """Row count helper for asserting 'no writes happened'."""
    return db_session.query(model).filter(*criteria).count()


@pytest.fixture
def counts(db_session):
    """Snapshot of row counts in every table the engine writes to."""
    def snapshot():
        return {
            "staff": count(db_session, Staff),
            "audit": count(db_session, AuditLog),
            "assignment_logs": count(db_session, ShiftAssignmentLog),
        }
    return snapshot

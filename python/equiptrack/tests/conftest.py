"""Pytest configuration and shared fixtures for equipment tracker tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from equiptrack.config import get_settings
from equiptrack.database import Base, get_db
from equiptrack.api import app
from equiptrack.models import (
    Equipment, RFIDReader, Room, EquipmentStatus, RoomType, UpdateMethod, utc_now
)


# Use in-memory SQLite for tests
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_db():
    """Create a fresh test database for each test."""
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Create all tables
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """Session factory on a file-backed SQLite database.

    Each session gets its own connection, so tests can interleave two
    independent units of work on the same rows.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tracker.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture(scope="function")
def client(test_db):
    """Create a test client with the test database."""
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    """Process settings, restored after the test."""
    current = get_settings()
    original = dict(vars(current))
    yield current
    for key, value in original.items():
        setattr(current, key, value)


def make_room(db, code, building="A", department="Chemistry", **kwargs):
    room = Room(code=code, name=f"Room {code}", building=building, department=department, **kwargs)
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


def make_equipment(db, serial_number, room=None, **kwargs):
    kwargs.setdefault("name", "Spectrophotometer")
    kwargs.setdefault("model", "UV-1900")
    item = Equipment(serial_number=serial_number, **kwargs)
    if room is not None:
        item.room = room
        item.room_code = room.code
        item.building = room.building
        item.department = room.department
        item.location_updated_at = utc_now()
        item.update_method = UpdateMethod.SYSTEM.value
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def create_room(test_db):
    """Factory for extra rooms in the test database."""
    return lambda code, **kwargs: make_room(test_db, code, **kwargs)


@pytest.fixture
def create_equipment(test_db):
    """Factory for extra equipment in the test database."""
    return lambda serial_number, **kwargs: make_equipment(test_db, serial_number, **kwargs)


@pytest.fixture
def room_a(test_db):
    """Chemistry lab in building A with one reader."""
    room = Room(
        code="A-101",
        name="Chemistry Lab",
        building="A",
        department="Chemistry",
        type=RoomType.LAB.value,
        capacity=24,
    )
    room.readers.append(RFIDReader(reader_id="RDR-A101"))
    test_db.add(room)
    test_db.commit()
    test_db.refresh(room)
    return room


@pytest.fixture
def room_b(test_db):
    """Second chemistry room in building A with one reader."""
    room = Room(
        code="A-102",
        name="Instrument Room",
        building="A",
        department="Chemistry",
        type=RoomType.LAB.value,
    )
    room.readers.append(RFIDReader(reader_id="RDR-A102"))
    test_db.add(room)
    test_db.commit()
    test_db.refresh(room)
    return room


@pytest.fixture
def room_c(test_db):
    """Physics room in building B, no readers."""
    return make_room(
        test_db, "B-120", building="B", department="Physics", type=RoomType.MEETING_ROOM.value
    )


@pytest.fixture
def equipment_item(test_db, room_a):
    """Equipment with serial, asset tag and RFID tag, located in room A."""
    return make_equipment(
        test_db,
        "SPEC-0001",
        room=room_a,
        asset_tag="AT-1001",
        rfid_tag="E200-0001",
    )


@pytest.fixture
def in_transit_item(test_db, room_a):
    """Equipment currently in transit out of room A."""
    return make_equipment(
        test_db,
        "CENT-0001",
        room=room_a,
        name="Centrifuge",
        model="5424R",
        status=EquipmentStatus.IN_TRANSIT.value,
    )

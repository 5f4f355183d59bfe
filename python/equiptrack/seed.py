"""Seed script for the equipment tracker database.

Creates sample data for development and testing:
- Rooms across two buildings, some with RFID readers
- Equipment items with serial numbers, asset tags and RFID tags
"""

import argparse

from sqlalchemy.orm import Session

from .database import SessionLocal, init_db
from .models import (
    Equipment, LocationChangeRequest, MovementRecord, RFIDReader, Room,
    EquipmentCategory, RoomType, UpdateMethod, utc_now,
)


def clear_data(db: Session) -> None:
    """Clear all existing data."""
    db.query(LocationChangeRequest).delete()
    db.query(MovementRecord).delete()
    db.query(Equipment).delete()
    db.query(RFIDReader).delete()
    db.query(Room).delete()
    db.commit()
    print("✓ Cleared existing data")


def seed_rooms(db: Session) -> dict[str, Room]:
    """Create rooms and their readers."""
    rooms_data = [
        {"code": "A-101", "name": "Chemistry Lab", "building": "A", "department": "Chemistry", "type": RoomType.LAB.value, "capacity": 24},
        {"code": "A-102", "name": "Instrument Room", "building": "A", "department": "Chemistry", "type": RoomType.LAB.value, "capacity": 8},
        {"code": "A-201", "name": "Chemistry Office", "building": "A", "department": "Chemistry", "type": RoomType.OFFICE.value, "capacity": 4},
        {"code": "B-010", "name": "Physics Lab", "building": "B", "department": "Physics", "type": RoomType.LAB.value, "capacity": 30},
        {"code": "B-120", "name": "Seminar Room", "building": "B", "department": "Physics", "type": RoomType.MEETING_ROOM.value, "capacity": 16},
        {"code": "B-200", "name": "Lecture Hall", "building": "B", "department": "Physics", "type": RoomType.CLASSROOM.value, "capacity": 120},
    ]
    readers_data = {
        "A-101": ["RDR-A101-DOOR"],
        "A-102": ["RDR-A102-DOOR"],
        "B-010": ["RDR-B010-DOOR", "RDR-B010-BACK"],
    }

    rooms = {}
    for data in rooms_data:
        room = Room(**data)
        for reader_id in readers_data.get(data["code"], []):
            room.readers.append(RFIDReader(reader_id=reader_id))
        db.add(room)
        rooms[data["code"]] = room

    db.commit()
    print(f"✓ Created {len(rooms)} rooms")
    return rooms


def seed_equipment(db: Session, rooms: dict[str, Room]) -> list[Equipment]:
    """Create equipment items placed in rooms."""
    equipment_data = [
        {"name": "Spectrophotometer", "model": "UV-1900", "serial_number": "SPEC-0001", "asset_tag": "AT-1001", "rfid_tag": "E200-0001", "category": EquipmentCategory.LAB_EQUIPMENT.value, "room": "A-101"},
        {"name": "Centrifuge", "model": "5424R", "serial_number": "CENT-0001", "asset_tag": "AT-1002", "rfid_tag": "E200-0002", "category": EquipmentCategory.LAB_EQUIPMENT.value, "room": "A-102"},
        {"name": "Oscilloscope", "model": "DS1054Z", "serial_number": "OSC-0001", "asset_tag": "AT-2001", "rfid_tag": "E200-0003", "category": EquipmentCategory.ELECTRONICS.value, "room": "B-010"},
        {"name": "Projector", "model": "EB-X51", "serial_number": "PROJ-0001", "asset_tag": None, "rfid_tag": None, "category": EquipmentCategory.OFFICE_EQUIPMENT.value, "room": "B-120"},
        {"name": "Laptop", "model": "ThinkPad T14", "serial_number": "LAP-0001", "asset_tag": "AT-3001", "rfid_tag": "E200-0005", "category": EquipmentCategory.COMPUTERS.value, "room": "A-201"},
    ]

    items = []
    for data in equipment_data:
        data = dict(data)
        room = rooms[data.pop("room")]
        item = Equipment(
            **data,
            room=room,
            room_code=room.code,
            building=room.building,
            department=room.department,
            location_updated_at=utc_now(),
            update_method=UpdateMethod.SYSTEM.value,
        )
        db.add(item)
        items.append(item)

    db.commit()
    print(f"✓ Created {len(items)} equipment items")
    return items


def seed(db: Session, clear: bool = False) -> bool:
    """Seed the database with sample data.

    Returns False, leaving the data alone, when rooms already exist and
    ``clear`` is not set.
    """
    existing_rooms = db.query(Room).count()
    if existing_rooms > 0 and not clear:
        print(f"Database already has {existing_rooms} rooms.")
        print("Use --clear to reset and reseed.")
        return False

    if clear:
        clear_data(db)
    rooms = seed_rooms(db)
    seed_equipment(db, rooms)
    return True


def main():
    parser = argparse.ArgumentParser(description="Seed the equipment tracker database")
    parser.add_argument("--clear", action="store_true", help="Clear existing data first")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        seed(db, clear=args.clear)
    finally:
        db.close()


if __name__ == "__main__":
    main()

"""Room directory: canonical rooms and the readers installed in them."""

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from shared.logging import get_logger

from .errors import ConflictError, NotFoundError, ValidationError, core_operation
from .models import RFIDReader, ReaderType, Room, normalize_identifier, utc_now

logger = get_logger(__name__)


def find_room_by_code(db: Session, code: str | None) -> Room | None:
    """Active room with this code (case-insensitive), or None."""
    code = normalize_identifier(code)
    if code is None:
        return None
    return db.scalar(select(Room).where(Room.code == code, Room.is_active.is_(True)))


def find_room_by_id(db: Session, room_id: int | None) -> Room | None:
    """Active room with this id, or None."""
    if room_id is None:
        return None
    room = db.get(Room, room_id)
    if room is None or not room.is_active:
        return None
    return room


def find_room_by_reader_or_code(db: Session, identifier: str | None) -> Room | None:
    """Room whose code matches, or which hosts an active reader with this id."""
    identifier = normalize_identifier(identifier)
    if identifier is None:
        return None
    stmt = (
        select(Room)
        .outerjoin(RFIDReader, RFIDReader.room_id == Room.id)
        .where(
            Room.is_active.is_(True),
            or_(
                Room.code == identifier,
                (RFIDReader.reader_id == identifier) & RFIDReader.is_active.is_(True),
            ),
        )
        # Prefer a direct code match over a reader match
        .order_by((Room.code == identifier).desc())
        .limit(1)
    )
    return db.scalar(stmt)


def resolve_room(db: Session, room_id: int | None = None, room_code: str | None = None) -> Room:
    """Resolve a move target. The room code wins when both are given.

    Raises:
        ValidationError: neither an id nor a code was supplied
        NotFoundError: the supplied identifier matches no active room
    """
    if room_code:
        room = find_room_by_code(db, room_code)
        if room is None:
            raise NotFoundError(f'Room with code "{room_code}" not found', reason="unknown_room")
        return room
    if room_id is not None:
        room = find_room_by_id(db, room_id)
        if room is None:
            raise NotFoundError(f"Room {room_id} not found", reason="unknown_room")
        return room
    raise ValidationError("Either room_id or room_code is required")


def list_rooms(db: Session, room_type: str | None = None, building: str | None = None) -> list[Room]:
    """Active rooms ordered by code, optionally filtered by type or building."""
    stmt = select(Room).where(Room.is_active.is_(True))
    if room_type:
        stmt = stmt.where(Room.type == room_type)
    if building:
        stmt = stmt.where(Room.building.ilike(f"%{building}%"))
    return list(db.scalars(stmt.order_by(Room.code)))


@core_operation
def register_reader(
    db: Session,
    room_code: str,
    reader_id: str,
    reader_type: str = ReaderType.BOTH.value,
    mount_location: str = "door",
    notes: str | None = None,
) -> RFIDReader:
    """Install an RFID reader in a room."""
    room = find_room_by_code(db, room_code)
    if room is None:
        raise NotFoundError(f'Room with code "{room_code}" not found', reason="unknown_room")
    if normalize_identifier(reader_id) is None:
        raise ValidationError("reader_id is required")
    existing = db.scalar(
        select(RFIDReader).where(RFIDReader.reader_id == normalize_identifier(reader_id))
    )
    if existing is not None:
        raise ConflictError(f"Reader {existing.reader_id} is already registered")

    reader = RFIDReader(
        reader_id=reader_id,
        room=room,
        reader_type=reader_type,
        mount_location=mount_location,
        installed_at=utc_now(),
        notes=notes,
    )
    db.add(reader)
    db.commit()
    db.refresh(reader)
    logger.info(f"Registered reader {reader.reader_id} in room {room.code}")
    return reader


@core_operation
def deactivate_reader(db: Session, reader_id: str) -> RFIDReader:
    """Stop resolving detections from a reader."""
    reader = db.scalar(
        select(RFIDReader).where(RFIDReader.reader_id == normalize_identifier(reader_id))
    )
    if reader is None:
        raise NotFoundError(f"RFID reader {reader_id} not found", reason="unknown_reader")
    reader.is_active = False
    db.commit()
    db.refresh(reader)
    logger.info(f"Deactivated reader {reader.reader_id}")
    return reader

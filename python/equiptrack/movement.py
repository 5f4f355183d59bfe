"""Movement engine: the only path that appends to an item's movement history.

A move resolves the item and the target room, appends one movement record
and rewrites the current-location fields. Both writes go out in a single
commit; the equipment version column makes a concurrent move on the same
item fail instead of silently overwriting.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from shared.logging import get_logger

from .errors import core_operation
from .models import (
    Equipment, EquipmentStatus, MovementReason, MovementRecord, Room, UpdateMethod, utc_now
)
from .registry import resolve_equipment
from .rooms import find_room_by_id, resolve_room

logger = get_logger(__name__)

VALID_REASONS = {reason.value for reason in MovementReason}


@dataclass
class DetectionMeta:
    """RFID context attached to an automatic move."""

    reader_id: str
    timestamp: datetime | None = None


@dataclass
class MoveOutcome:
    equipment: Equipment
    movement: MovementRecord
    previous_room: Room | None


def normalize_reason(reason: str | None) -> str:
    """Unknown or missing reasons are recorded as manual moves."""
    if reason in VALID_REASONS:
        return reason
    return MovementReason.MANUAL.value


def apply_move(
    db: Session,
    equipment: Equipment,
    room: Room,
    reason: str,
    moved_by: str | None = None,
    detection: DetectionMeta | None = None,
) -> MoveOutcome:
    """Mutate ``equipment`` into ``room`` and stage the movement record.

    Does not commit; callers own the transaction.
    """
    now = utc_now()
    previous_room = find_room_by_id(db, equipment.room_id) if equipment.room_id else None

    movement = MovementRecord(
        equipment=equipment,
        from_room_id=equipment.room_id,
        from_room_code=equipment.room_code,
        to_room_id=room.id,
        to_room_code=room.code,
        moved_at=now,
        moved_by=moved_by,
        reason=normalize_reason(reason),
        detected_by_rfid=detection is not None,
    )
    if detection is not None:
        movement.rfid_reader_id = detection.reader_id
        movement.detected_at = detection.timestamp or now
        movement.notes = f"Detected by RFID reader {detection.reader_id}"
    db.add(movement)

    equipment.room_id = room.id
    equipment.room_code = room.code
    equipment.building = room.building
    equipment.department = room.department
    equipment.location_updated_at = now
    equipment.update_method = (
        UpdateMethod.RFID_AUTO.value if detection is not None else UpdateMethod.MANUAL.value
    )
    if equipment.status == EquipmentStatus.IN_TRANSIT.value:
        equipment.status = EquipmentStatus.AVAILABLE.value
    if detection is not None:
        equipment.last_rfid_detection = now

    return MoveOutcome(equipment=equipment, movement=movement, previous_room=previous_room)


@core_operation
def move_equipment(
    db: Session,
    equipment_ref: int | str,
    room_id: int | None = None,
    room_code: str | None = None,
    reason: str | None = MovementReason.MANUAL.value,
    moved_by: str | None = None,
    detection: DetectionMeta | None = None,
) -> MoveOutcome:
    """Move an item to a room and record the movement.

    Args:
        equipment_ref: Database id, serial number or asset tag
        room_id: Target room id (ignored when room_code is given)
        room_code: Target room code
        reason: One of manual/rfid_auto/maintenance/transfer/other; anything
            else is recorded as manual
        moved_by: Actor performing the move
        detection: RFID context for automatic moves

    Returns:
        Result wrapping a MoveOutcome
    """
    equipment = resolve_equipment(db, equipment_ref).equipment
    room = resolve_room(db, room_id=room_id, room_code=room_code)

    outcome = apply_move(db, equipment, room, reason, moved_by=moved_by, detection=detection)
    db.commit()
    db.refresh(equipment)
    db.refresh(outcome.movement)

    logger.info(
        f"Equipment {equipment.serial_number} moved from "
        f"{outcome.previous_room.code if outcome.previous_room else 'none'} to {room.code} "
        f"({outcome.movement.reason})"
    )
    return outcome


@core_operation
def movement_history(db: Session, equipment_ref: int | str) -> list[MovementRecord]:
    """Movement records of an item, oldest first."""
    equipment = resolve_equipment(db, equipment_ref).equipment
    return list(equipment.movement_history)

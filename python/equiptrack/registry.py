"""Equipment registry: identity, lookup and lifecycle of tracked items."""

from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.logging import get_logger

from .errors import ConflictError, NotFoundError, ValidationError, core_operation
from .models import (
    Equipment, LocationChangeRequest, RequestStatus, UpdateMethod, normalize_identifier, utc_now,
)
from .rooms import find_room_by_code

logger = get_logger(__name__)

# Identity fields are set at registration; location is owned by the
# movement engine and the workflow.
UPDATABLE_FIELDS = {
    "name", "model", "category", "manufacturer", "status", "condition",
    "notes", "rfid_status", "specific_location",
}


@dataclass
class ResolvedEquipment:
    """An equipment lookup result tagged with the strategy that matched."""

    equipment: Equipment
    matched_by: str  # "id", "serial_number" or "asset_tag"


def _active(stmt, include_inactive: bool):
    if include_inactive:
        return stmt
    return stmt.where(Equipment.is_active.is_(True))


def find_equipment_by_id(db: Session, equipment_id: int, include_inactive: bool = False) -> Equipment | None:
    equipment = db.get(Equipment, equipment_id)
    if equipment is None or (not include_inactive and not equipment.is_active):
        return None
    return equipment


def find_equipment_by_identifier(
    db: Session, identifier: str, include_inactive: bool = False
) -> Equipment | None:
    """Match a serial number first, then an asset tag."""
    identifier = normalize_identifier(identifier)
    if identifier is None:
        return None
    for column in (Equipment.serial_number, Equipment.asset_tag):
        equipment = db.scalar(_active(select(Equipment).where(column == identifier), include_inactive))
        if equipment is not None:
            return equipment
    return None


def find_equipment_by_rfid_tag(db: Session, tag: str, include_inactive: bool = False) -> Equipment | None:
    tag = normalize_identifier(tag)
    if tag is None:
        return None
    return db.scalar(_active(select(Equipment).where(Equipment.rfid_tag == tag), include_inactive))


def find_equipment_by_detection_tag(db: Session, tag: str) -> Equipment | None:
    """Match a detected tag against RFID tag, serial number, then asset tag."""
    return find_equipment_by_rfid_tag(db, tag) or find_equipment_by_identifier(db, tag)


def resolve_equipment(db: Session, ref: int | str, include_inactive: bool = False) -> ResolvedEquipment:
    """Resolve an equipment reference.

    Tries, in order: database id (ints and all-digit strings), serial
    number, asset tag. A numeric reference that matches no id still falls
    through to the identifier lookups, since serial numbers may be numeric.

    Raises:
        ValidationError: the reference is empty
        NotFoundError: no strategy matched
    """
    if ref is None or (isinstance(ref, str) and not ref.strip()):
        raise ValidationError("Equipment reference is required")

    if isinstance(ref, int) or ref.strip().isdigit():
        equipment = find_equipment_by_id(db, int(ref), include_inactive)
        if equipment is not None:
            return ResolvedEquipment(equipment, "id")
        if isinstance(ref, int):
            raise NotFoundError(f"Equipment {ref} not found", reason="unknown_equipment")

    identifier = normalize_identifier(ref)
    equipment = db.scalar(_active(
        select(Equipment).where(Equipment.serial_number == identifier), include_inactive
    ))
    if equipment is not None:
        return ResolvedEquipment(equipment, "serial_number")
    equipment = db.scalar(_active(
        select(Equipment).where(Equipment.asset_tag == identifier), include_inactive
    ))
    if equipment is not None:
        return ResolvedEquipment(equipment, "asset_tag")

    raise NotFoundError(f"Equipment {ref} not found", reason="unknown_equipment")


def _duplicate_field(error: IntegrityError) -> str:
    message = str(error.orig).lower()
    for field in ("serial_number", "asset_tag", "rfid_tag"):
        if field in message:
            return field
    return "identifier"


@core_operation
def register_equipment(db: Session, data: dict) -> Equipment:
    """Create an equipment record, optionally placed in a room by code."""
    data = dict(data)
    if normalize_identifier(data.get("serial_number")) is None:
        raise ValidationError("serial_number is required")

    room_code = data.pop("room_code", None)
    equipment = Equipment(**data)

    if room_code:
        room = find_room_by_code(db, room_code)
        if room is None:
            raise NotFoundError(f'Room with code "{room_code}" not found', reason="unknown_room")
        equipment.room = room
        equipment.room_code = room.code
        equipment.building = room.building
        equipment.department = room.department
        equipment.location_updated_at = utc_now()
        equipment.update_method = UpdateMethod.SYSTEM.value

    db.add(equipment)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        field = _duplicate_field(e)
        raise ConflictError(f"{field} already exists", reason="duplicate") from e
    db.refresh(equipment)
    logger.info(f"Registered equipment {equipment.serial_number} (id={equipment.id})")
    return equipment


@core_operation
def update_equipment(db: Session, equipment_id: int, changes: dict) -> Equipment:
    """Update descriptive and status fields of an active item."""
    equipment = find_equipment_by_id(db, equipment_id)
    if equipment is None:
        raise NotFoundError(f"Equipment {equipment_id} not found", reason="unknown_equipment")

    rejected = set(changes) - UPDATABLE_FIELDS
    if rejected:
        raise ValidationError(f"Fields cannot be updated here: {', '.join(sorted(rejected))}")

    for key, value in changes.items():
        setattr(equipment, key, value)
    db.commit()
    db.refresh(equipment)
    return equipment


@core_operation
def decommission_equipment(db: Session, equipment_id: int) -> Equipment:
    """Soft delete: the record and its history stay, lookups stop finding it."""
    equipment = find_equipment_by_id(db, equipment_id)
    if equipment is None:
        raise NotFoundError(f"Equipment {equipment_id} not found", reason="unknown_equipment")

    # An open request would otherwise still relocate the retired item
    pending = db.scalars(
        select(LocationChangeRequest).where(
            LocationChangeRequest.equipment_id == equipment.id,
            LocationChangeRequest.status == RequestStatus.PENDING.value,
        )
    )
    for request in pending:
        request.status = RequestStatus.CANCELLED.value
        request.notes = "Cancelled: equipment decommissioned"
        logger.info(f"Location change request {request.id} cancelled by decommission")
    equipment.clear_pending_location_change()
    equipment.is_active = False
    db.commit()
    db.refresh(equipment)
    logger.info(f"Decommissioned equipment {equipment.serial_number}")
    return equipment


def list_equipment(
    db: Session,
    category: str | None = None,
    status: str | None = None,
    condition: str | None = None,
    department: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[Equipment]:
    """Active equipment, newest first, with optional filters."""
    stmt = select(Equipment).where(Equipment.is_active.is_(True))
    if category:
        stmt = stmt.where(Equipment.category == category)
    if status:
        stmt = stmt.where(Equipment.status == status)
    if condition:
        stmt = stmt.where(Equipment.condition == condition)
    if department:
        stmt = stmt.where(Equipment.department.ilike(f"%{department}%"))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Equipment.name.ilike(pattern),
            Equipment.model.ilike(pattern),
            Equipment.serial_number.ilike(pattern),
            Equipment.asset_tag.ilike(pattern),
            Equipment.manufacturer.ilike(pattern),
        ))
    stmt = stmt.order_by(Equipment.created_at.desc(), Equipment.id.desc()).offset(skip).limit(limit)
    return list(db.scalars(stmt))

"""Location change workflow: request, approve, reject, cancel.

A request snapshots the item and its current location, then leaves an
advisory pending marker on the equipment. Approval overwrites the location
fields directly from the request; it does not go through the movement
engine and adds nothing to the movement history.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.logging import get_logger

from .errors import ConflictError, NotFoundError, ValidationError, core_operation
from .models import (
    Equipment, LocationChangeRequest, RequestPriority, RequestStatus, RequestType, Room,
    UpdateMethod, utc_now,
)
from .registry import find_equipment_by_id
from .rooms import find_room_by_code

logger = get_logger(__name__)

REVIEWER_ROLE = "Administrator"
MAX_REASON_LENGTH = 500


def requires_approval(equipment: Equipment, room: Room) -> bool:
    """A manual move into another department has to go through review."""
    if not equipment.department:
        return False
    return equipment.department.strip().lower() != room.department.strip().lower()


def _get_pending(db: Session, request_id: int) -> LocationChangeRequest:
    """Load a request and make sure it can still be reviewed."""
    request = db.get(LocationChangeRequest, request_id)
    if request is None or not request.is_active:
        raise NotFoundError(f"Request {request_id} not found", reason="unknown_request")
    if request.is_terminal:
        raise ConflictError(f"Request already {request.status}", reason=request.status)
    return request


def _reviewable_equipment(db: Session, request: LocationChangeRequest) -> Equipment:
    equipment = find_equipment_by_id(db, request.equipment_id)
    if equipment is None:
        raise NotFoundError(f"Equipment {request.equipment_id} not found", reason="unknown_equipment")
    return equipment


def _release_marker(equipment: Equipment, request: LocationChangeRequest) -> None:
    if equipment.pending_request_id == request.id:
        equipment.clear_pending_location_change()


@core_operation
def create_request(
    db: Session,
    equipment_id: int,
    requested_room_code: str,
    reason: str,
    request_type: str = RequestType.TRANSFER.value,
    requested_by: str | None = "System",
    department: str | None = "Unspecified",
    priority: str = RequestPriority.MEDIUM.value,
    specific_location: str | None = None,
) -> LocationChangeRequest:
    """Open a location change request for an item.

    Raises (as Result errors):
        NotFoundError: unknown equipment or room
        ConflictError: the item already has a pending request
    """
    if not reason or not reason.strip():
        raise ValidationError("A reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"Reason cannot exceed {MAX_REASON_LENGTH} characters")
    if request_type not in {t.value for t in RequestType}:
        raise ValidationError(f"Unknown request type: {request_type}")
    if priority not in {p.value for p in RequestPriority}:
        raise ValidationError(f"Unknown priority: {priority}")

    equipment = find_equipment_by_id(db, equipment_id)
    if equipment is None:
        raise NotFoundError(f"Equipment {equipment_id} not found", reason="unknown_equipment")
    if equipment.pending_request_id is not None:
        raise ConflictError(
            "A location change request is already pending for this equipment",
            reason="pending_exists",
        )

    room = find_room_by_code(db, requested_room_code)
    if room is None:
        raise NotFoundError(f"Room {requested_room_code} does not exist", reason="unknown_room")

    request = LocationChangeRequest(
        equipment=equipment,
        equipment_name=equipment.name,
        equipment_serial_number=equipment.serial_number,
        equipment_model=equipment.model,
        current_building=equipment.building,
        current_room=equipment.room_code,
        current_department=equipment.department,
        requested_building=room.building,
        requested_room=room.code,
        requested_department=room.department,
        requested_specific_location=specific_location,
        requested_room_id=room.id,
        request_type=request_type,
        reason=reason.strip(),
        requested_by_name=requested_by or "System",
        requested_by_department=department or "Unspecified",
        priority=priority,
        status=RequestStatus.PENDING.value,
    )
    db.add(request)
    try:
        # The partial unique index rejects a second pending row even when two
        # creations race past the marker check above
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            "A location change request is already pending for this equipment",
            reason="pending_exists",
        ) from e

    now = utc_now()
    equipment.pending_request_id = request.id
    equipment.pending_building = room.building
    equipment.pending_room_code = room.code
    equipment.pending_department = room.department
    equipment.pending_requested_at = now

    db.commit()
    db.refresh(request)
    logger.info(
        f"Location change request {request.id} opened for {equipment.serial_number}: "
        f"{request.current_room or 'none'} -> {room.code}"
    )
    return request


@core_operation
def approve_request(
    db: Session,
    request_id: int,
    reviewed_by: str | None = "Admin",
    review_notes: str | None = None,
) -> LocationChangeRequest:
    """Approve a pending request and apply the requested location."""
    request = _get_pending(db, request_id)
    equipment = _reviewable_equipment(db, request)

    if equipment.room_code != request.current_room:
        logger.warning(
            f"Request {request.id}: {equipment.serial_number} is in "
            f"{equipment.room_code or 'none'}, snapshot said {request.current_room or 'none'}"
        )

    now = utc_now()
    request.replaced_building = equipment.building
    request.replaced_room = equipment.room_code
    request.replaced_department = equipment.department

    equipment.building = request.requested_building
    equipment.room_code = request.requested_room
    equipment.department = request.requested_department
    if request.requested_specific_location:
        equipment.specific_location = request.requested_specific_location
    # Room id captured when the request was opened; no directory lookup here
    equipment.room_id = request.requested_room_id
    equipment.location_updated_at = now
    equipment.update_method = UpdateMethod.MANUAL.value
    equipment.clear_pending_location_change()

    request.status = RequestStatus.APPROVED.value
    request.reviewed_by_name = reviewed_by or "Admin"
    request.reviewed_by_role = REVIEWER_ROLE
    request.review_date = now
    request.review_notes = review_notes
    request.effective_date = now

    db.commit()
    db.refresh(request)
    logger.info(f"Location change request {request.id} approved by {request.reviewed_by_name}")
    return request


@core_operation
def reject_request(
    db: Session,
    request_id: int,
    reviewed_by: str | None = "Admin",
    review_notes: str | None = None,
) -> LocationChangeRequest:
    """Reject a pending request; the item's location is left as is."""
    request = _get_pending(db, request_id)
    _release_marker(_reviewable_equipment(db, request), request)

    request.status = RequestStatus.REJECTED.value
    request.reviewed_by_name = reviewed_by or "Admin"
    request.reviewed_by_role = REVIEWER_ROLE
    request.review_date = utc_now()
    request.review_notes = review_notes

    db.commit()
    db.refresh(request)
    logger.info(f"Location change request {request.id} rejected by {request.reviewed_by_name}")
    return request


@core_operation
def cancel_request(db: Session, request_id: int, cancelled_by: str | None = None) -> LocationChangeRequest:
    """Withdraw a request before anyone reviews it."""
    request = _get_pending(db, request_id)
    equipment = find_equipment_by_id(db, request.equipment_id, include_inactive=True)
    if equipment is not None:
        _release_marker(equipment, request)

    request.status = RequestStatus.CANCELLED.value
    if cancelled_by:
        request.notes = f"Cancelled by {cancelled_by}"

    db.commit()
    db.refresh(request)
    logger.info(f"Location change request {request.id} cancelled")
    return request


def pending_requests(db: Session) -> list[LocationChangeRequest]:
    """Open requests, newest first."""
    stmt = (
        select(LocationChangeRequest)
        .where(
            LocationChangeRequest.status == RequestStatus.PENDING.value,
            LocationChangeRequest.is_active.is_(True),
        )
        .order_by(LocationChangeRequest.created_at.desc(), LocationChangeRequest.id.desc())
    )
    return list(db.scalars(stmt))


def approved_history(db: Session, equipment_id: int) -> list[LocationChangeRequest]:
    """Approved requests for an item, most recent effective date first."""
    stmt = (
        select(LocationChangeRequest)
        .where(
            LocationChangeRequest.equipment_id == equipment_id,
            LocationChangeRequest.status == RequestStatus.APPROVED.value,
        )
        .order_by(LocationChangeRequest.effective_date.desc(), LocationChangeRequest.id.desc())
    )
    return list(db.scalars(stmt))

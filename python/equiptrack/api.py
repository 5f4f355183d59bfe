"""FastAPI application for the equipment location tracker."""

import argparse
from typing import Annotated

from fastapi import FastAPI, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from shared.logging import get_logger, setup_logging

from . import movement, registry, rooms, workflow
from .config import get_settings
from .database import get_db, init_db
from .errors import Result, TrackingError
from .ingestion import DetectionEvent, handle_detection
from .schemas import (
    CancelRequest, DetectionResponse, EquipmentCreate, EquipmentResponse, EquipmentUpdate,
    LocationChangeCreate, LocationChangeResponse, MoveRequest, MoveResponse,
    MovementHistoryResponse, ReaderCreate, ReaderResponse, ReviewRequest, RoomResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Equipment Location Tracker API",
    description="Equipment locations, movement history, RFID detections and location change approvals",
    version="1.0.0"
)

# Dependency for database session
DbSession = Annotated[Session, Depends(get_db)]

STATUS_BY_KIND = {
    "not_found": 404,
    "conflict": 409,
    "validation": 422,
    "persistence": 500,
}


def unwrap(result: Result):
    """Return the result value or raise the matching HTTP error."""
    if result.ok:
        return result.value
    raise HTTPException(status_code=STATUS_BY_KIND.get(result.error.kind, 500), detail=str(result.error))


# Health check
@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "equiptrack-api", "version": app.version}


# Equipment endpoints
@app.get("/api/equipment", response_model=list[EquipmentResponse])
def list_equipment(
    db: DbSession,
    category: str | None = None,
    status: str | None = None,
    condition: str | None = None,
    department: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = Query(100, le=500)
):
    """List active equipment with optional filters."""
    return registry.list_equipment(
        db, category=category, status=status, condition=condition, department=department,
        search=search, skip=skip, limit=limit,
    )


@app.get("/api/equipment/{equipment_ref}", response_model=EquipmentResponse)
def get_equipment(equipment_ref: str, db: DbSession):
    """Get an item by id, serial number or asset tag."""
    return unwrap(_resolve(db, equipment_ref))


@app.post("/api/equipment", response_model=EquipmentResponse, status_code=201)
def create_equipment(equipment: EquipmentCreate, db: DbSession):
    """Register a new equipment item."""
    return unwrap(registry.register_equipment(db, equipment.model_dump()))


@app.patch("/api/equipment/{equipment_id}", response_model=EquipmentResponse)
def update_equipment(equipment_id: int, equipment: EquipmentUpdate, db: DbSession):
    """Update descriptive fields of an item."""
    return unwrap(registry.update_equipment(db, equipment_id, equipment.model_dump(exclude_unset=True)))


@app.delete("/api/equipment/{equipment_id}")
def delete_equipment(equipment_id: int, db: DbSession):
    """Soft delete an item."""
    unwrap(registry.decommission_equipment(db, equipment_id))
    return {"message": "Equipment decommissioned", "id": equipment_id}


# Room endpoints
@app.get("/api/rooms", response_model=list[RoomResponse])
def list_rooms(db: DbSession):
    """List active rooms ordered by code."""
    return rooms.list_rooms(db)


@app.get("/api/rooms/type/{room_type}", response_model=list[RoomResponse])
def list_rooms_by_type(room_type: str, db: DbSession):
    """List rooms of one type."""
    return rooms.list_rooms(db, room_type=room_type)


@app.get("/api/rooms/building/{building}", response_model=list[RoomResponse])
def list_rooms_by_building(building: str, db: DbSession):
    """List rooms whose building name contains the given text."""
    return rooms.list_rooms(db, building=building)


@app.post("/api/rooms/{room_code}/readers", response_model=ReaderResponse, status_code=201)
def add_reader(room_code: str, reader: ReaderCreate, db: DbSession):
    """Register an RFID reader in a room."""
    return unwrap(rooms.register_reader(db, room_code, **reader.model_dump()))


# Movement endpoints
@app.post("/api/movements/equipment/{equipment_ref}/move", response_model=MoveResponse)
def move_equipment(equipment_ref: str, move: MoveRequest, db: DbSession):
    """Move an item to another room and record the movement."""
    if get_settings().require_cross_department_approval:
        equipment = unwrap(_resolve(db, equipment_ref))
        room = unwrap(_target_room(db, move))
        if workflow.requires_approval(equipment, room):
            raise HTTPException(
                status_code=409,
                detail="Moving to another department requires an approved location change request",
            )

    outcome = unwrap(movement.move_equipment(
        db, equipment_ref,
        room_id=move.new_room_id,
        room_code=move.new_room_code,
        reason=move.reason,
        moved_by=move.moved_by,
    ))
    previous_code = outcome.previous_room.code if outcome.previous_room else "none"
    return {
        "message": f"Equipment moved from {previous_code} to {outcome.equipment.room_code}",
        "equipment": outcome.equipment,
        "previous_room": outcome.previous_room,
        "movement": outcome.movement,
    }


def _resolve(db: Session, equipment_ref: str) -> Result:
    try:
        return Result(value=registry.resolve_equipment(db, equipment_ref).equipment)
    except TrackingError as e:
        return Result(error=e)


def _target_room(db: Session, move: MoveRequest) -> Result:
    try:
        return Result(value=rooms.resolve_room(db, room_id=move.new_room_id, room_code=move.new_room_code))
    except TrackingError as e:
        return Result(error=e)


@app.get("/api/movements/equipment/{equipment_ref}/history", response_model=MovementHistoryResponse)
def get_movement_history(equipment_ref: str, db: DbSession):
    """Movement history of an item, oldest first."""
    equipment = unwrap(_resolve(db, equipment_ref))
    history = unwrap(movement.movement_history(db, equipment.id))
    return {
        "equipment_id": equipment.id,
        "serial_number": equipment.serial_number,
        "count": len(history),
        "movement_history": history,
    }


@app.post("/api/movements/rfid-detection", response_model=DetectionResponse)
def rfid_detection(event: DetectionEvent, db: DbSession):
    """Handle one RFID detection event."""
    outcome = unwrap(handle_detection(
        db, event.reader_id, event.equipment_tag, event.event_type, event.timestamp
    ))
    return {
        "message": (
            f"RFID detection processed: {outcome.equipment.name} - "
            f"{outcome.event_type} - {outcome.room.code}"
        ),
        "equipment_id": outcome.equipment.id,
        "serial_number": outcome.equipment.serial_number,
        "room": outcome.room,
        "event_type": outcome.event_type,
        "reader_id": outcome.reader_id,
        "timestamp": outcome.timestamp,
        "moved": outcome.moved,
        "duplicate": outcome.duplicate,
        "movement": outcome.movement,
    }


# Location change endpoints
@app.post("/api/location-change", response_model=LocationChangeResponse, status_code=201)
def create_location_change(request: LocationChangeCreate, db: DbSession):
    """Open a location change request for an item."""
    return unwrap(workflow.create_request(
        db,
        request.equipment_id,
        request.requested_room,
        request.reason,
        request_type=request.request_type,
        requested_by=request.requested_by,
        department=request.department,
        priority=request.priority,
        specific_location=request.specific_location,
    ))


@app.get("/api/location-change/pending", response_model=list[LocationChangeResponse])
def list_pending_location_changes(db: DbSession):
    """Pending requests, newest first."""
    return workflow.pending_requests(db)


@app.put("/api/location-change/{request_id}/approve", response_model=LocationChangeResponse)
def approve_location_change(request_id: int, review: ReviewRequest, db: DbSession):
    """Approve a pending request and apply its location."""
    return unwrap(workflow.approve_request(db, request_id, review.reviewed_by, review.review_notes))


@app.put("/api/location-change/{request_id}/reject", response_model=LocationChangeResponse)
def reject_location_change(request_id: int, review: ReviewRequest, db: DbSession):
    """Reject a pending request."""
    return unwrap(workflow.reject_request(db, request_id, review.reviewed_by, review.review_notes))


@app.put("/api/location-change/{request_id}/cancel", response_model=LocationChangeResponse)
def cancel_location_change(request_id: int, cancel: CancelRequest, db: DbSession):
    """Withdraw a request before review."""
    return unwrap(workflow.cancel_request(db, request_id, cancel.cancelled_by))


@app.get("/api/location-change/history/{equipment_id}", response_model=list[LocationChangeResponse])
def location_change_history(equipment_id: int, db: DbSession):
    """Approved location changes of an item, most recent first."""
    return workflow.approved_history(db, equipment_id)


def main():
    """Run the equipment tracker API server."""
    parser = argparse.ArgumentParser(description="Equipment Location Tracker API Server")
    parser.add_argument("--port", type=int, default=8082, help="Port to listen on")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    args = parser.parse_args()

    setup_logging(get_settings().log_module)
    init_db()
    logger.info(f"Starting equipment tracker API on {args.host}:{args.port}")

    import uvicorn
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()

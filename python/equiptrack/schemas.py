"""Pydantic schemas for the equipment tracker API requests and responses."""

from datetime import datetime
from pydantic import BaseModel, Field
from .models import (
    EquipmentCategory, EquipmentCondition, EquipmentStatus, MovementReason, ReaderType,
    RequestPriority, RequestType, RFIDStatus,
)


def _pattern(enum_cls) -> str:
    return f"^({'|'.join(e.value for e in enum_cls)})$"


# ============================================================
# Room Schemas
# ============================================================

class ReaderResponse(BaseModel):
    """Schema for an RFID reader."""
    id: int
    reader_id: str
    reader_type: str
    mount_location: str
    is_active: bool
    last_seen: datetime | None
    installed_at: datetime

    model_config = {"from_attributes": True}


class ReaderCreate(BaseModel):
    """Schema for registering a reader in a room."""
    reader_id: str = Field(..., min_length=1, max_length=100)
    reader_type: str = Field(ReaderType.BOTH.value, pattern=_pattern(ReaderType))
    mount_location: str = Field("door", pattern="^(door|window|ceiling|wall|other)$")
    notes: str | None = None


class RoomResponse(BaseModel):
    """Schema for room response."""
    id: int
    code: str
    name: str
    building: str
    department: str
    type: str
    capacity: int | None
    description: str | None
    status: str
    readers: list[ReaderResponse] = []

    model_config = {"from_attributes": True}


class RoomSummary(BaseModel):
    """Short room view used inside movement responses."""
    id: int
    code: str
    name: str
    building: str

    model_config = {"from_attributes": True}


# ============================================================
# Equipment Schemas
# ============================================================

class EquipmentCreate(BaseModel):
    """Schema for registering an equipment item."""
    name: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    serial_number: str = Field(..., min_length=1, max_length=100)
    asset_tag: str | None = Field(None, max_length=100)
    rfid_tag: str | None = Field(None, max_length=100)
    category: str = Field(EquipmentCategory.OTHER.value, pattern=_pattern(EquipmentCategory))
    manufacturer: str | None = Field(None, max_length=100)
    status: str = Field(EquipmentStatus.AVAILABLE.value, pattern=_pattern(EquipmentStatus))
    condition: str = Field(EquipmentCondition.GOOD.value, pattern=_pattern(EquipmentCondition))
    room_code: str | None = None
    specific_location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=1000)


class EquipmentUpdate(BaseModel):
    """Schema for updating descriptive fields of an item."""
    name: str | None = Field(None, min_length=1, max_length=100)
    model: str | None = Field(None, min_length=1, max_length=100)
    category: str | None = Field(None, pattern=_pattern(EquipmentCategory))
    manufacturer: str | None = Field(None, max_length=100)
    status: str | None = Field(None, pattern=_pattern(EquipmentStatus))
    condition: str | None = Field(None, pattern=_pattern(EquipmentCondition))
    rfid_status: str | None = Field(None, pattern=_pattern(RFIDStatus))
    specific_location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=1000)


class LocationInfo(BaseModel):
    """Current location of an item."""
    room_id: int | None
    room: str | None
    building: str | None
    department: str | None
    specific_location: str | None
    last_updated: datetime | None
    update_method: str


class RequestedLocation(BaseModel):
    """Location targeted by a change request."""
    building: str | None
    room: str | None
    department: str | None
    specific_location: str | None = None


class PendingLocationChange(BaseModel):
    """Pending marker on an item."""
    request_id: int
    requested_location: RequestedLocation
    requested_at: datetime | None


class EquipmentResponse(BaseModel):
    """Schema for equipment response."""
    id: int
    name: str
    model: str
    serial_number: str
    asset_tag: str | None
    rfid_tag: str | None
    rfid_status: str
    last_rfid_detection: datetime | None
    category: str
    manufacturer: str | None
    status: str
    condition: str
    notes: str | None
    location: LocationInfo
    pending_location_change: PendingLocationChange | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ============================================================
# Movement Schemas
# ============================================================

class MoveRequest(BaseModel):
    """Schema for a manual move."""
    new_room_id: int | None = None
    new_room_code: str | None = None
    # Free-form on purpose: unknown reasons are recorded as "manual"
    reason: str | None = MovementReason.MANUAL.value
    moved_by: str | None = None


class MovementRecordResponse(BaseModel):
    """Schema for one movement record."""
    id: int
    from_room_id: int | None
    to_room_id: int
    from_room_code: str | None
    to_room_code: str
    moved_at: datetime
    moved_by: str | None
    reason: str
    detected_by_rfid: bool
    rfid_reader_id: str | None
    detected_at: datetime | None
    notes: str | None

    model_config = {"from_attributes": True}


class MoveResponse(BaseModel):
    """Schema for the result of a move."""
    message: str
    equipment: EquipmentResponse
    previous_room: RoomSummary | None
    movement: MovementRecordResponse


class MovementHistoryResponse(BaseModel):
    """Schema for an item's movement history."""
    equipment_id: int
    serial_number: str
    count: int
    movement_history: list[MovementRecordResponse]


class DetectionResponse(BaseModel):
    """Schema for a processed detection event."""
    message: str
    equipment_id: int
    serial_number: str
    room: RoomSummary
    event_type: str
    reader_id: str
    timestamp: datetime
    moved: bool
    duplicate: bool
    movement: MovementRecordResponse | None = None


# ============================================================
# Location Change Request Schemas
# ============================================================

class LocationChangeCreate(BaseModel):
    """Schema for opening a location change request."""
    equipment_id: int
    requested_room: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=500)
    request_type: str = Field(RequestType.TRANSFER.value, pattern=_pattern(RequestType))
    requested_by: str | None = None
    department: str | None = None
    priority: str = Field(RequestPriority.MEDIUM.value, pattern=_pattern(RequestPriority))
    specific_location: str | None = None


class ReviewRequest(BaseModel):
    """Schema for approving or rejecting a request."""
    reviewed_by: str | None = "Admin"
    review_notes: str | None = Field(None, max_length=500)


class CancelRequest(BaseModel):
    """Schema for cancelling a request."""
    cancelled_by: str | None = None


class EquipmentInfo(BaseModel):
    name: str | None
    serial_number: str | None
    model: str | None


class SnapshotLocation(BaseModel):
    building: str | None
    room: str | None
    department: str | None


class Requester(BaseModel):
    user_name: str | None
    department: str | None


class Reviewer(BaseModel):
    user_name: str | None
    role: str | None


class LocationChangeResponse(BaseModel):
    """Schema for a location change request."""
    id: int
    equipment_id: int
    equipment_info: EquipmentInfo
    current_location: SnapshotLocation
    requested_location: RequestedLocation
    request_type: str
    reason: str
    requested_by: Requester
    status: str
    reviewed_by: Reviewer | None
    review_date: datetime | None
    review_notes: str | None
    effective_date: datetime | None
    priority: str
    created_at: datetime

    model_config = {"from_attributes": True}

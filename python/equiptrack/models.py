"""SQLAlchemy models for the equipment location tracker.

Schema:
- ROOM: Canonical rooms keyed by code, with their RFID readers
- RFID_READER: Tag readers installed in a room
- EQUIPMENT: Tracked items, identity fields and current location
- MOVEMENT_RECORD: Append-only log of physical location transitions
- LOCATION_CHANGE_REQUEST: Relocation requests with approval workflow
"""

from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Integer, String, Text, DateTime, Boolean, ForeignKey, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from .database import Base


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_identifier(value: str | None) -> str | None:
    """Strip and uppercase an external identifier; blank becomes None."""
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


# Enums for constrained values
class RoomType(str, Enum):
    """Kind of physical space."""
    LAB = "lab"
    OFFICE = "office"
    MEETING_ROOM = "meeting-room"
    CLASSROOM = "classroom"
    OTHER = "other"


class RoomStatus(str, Enum):
    """Operational status of a room."""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    CLOSED = "closed"
    RESERVED = "reserved"


class ReaderType(str, Enum):
    """Which doorway direction a reader watches."""
    ENTRANCE = "entrance"
    EXIT = "exit"
    BOTH = "both"


class EquipmentStatus(str, Enum):
    """Availability of an equipment item."""
    AVAILABLE = "available"
    IN_USE = "in-use"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out-of-service"
    RETIRED = "retired"
    RESERVED = "reserved"
    LOST = "lost"
    IN_TRANSIT = "in-transit"


class EquipmentCondition(str, Enum):
    """Physical condition of an equipment item."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


class EquipmentCategory(str, Enum):
    """Catalog category of an equipment item."""
    COMPUTERS = "computers"
    NETWORKING = "networking"
    LAB_EQUIPMENT = "lab-equipment"
    MEDICAL = "medical"
    INDUSTRIAL = "industrial"
    OFFICE_EQUIPMENT = "office-equipment"
    VEHICLES = "vehicles"
    TOOLS = "tools"
    SAFETY_EQUIPMENT = "safety-equipment"
    FURNITURE = "furniture"
    ELECTRONICS = "electronics"
    OTHER = "other"


class RFIDStatus(str, Enum):
    """Lifecycle of the RFID tag attached to an item."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    LOST = "lost"
    REPLACED = "replaced"


class UpdateMethod(str, Enum):
    """How the current location was last set."""
    MANUAL = "manual"
    RFID_AUTO = "rfid_auto"
    QR_SCAN = "qr_scan"
    SYSTEM = "system"


class MovementReason(str, Enum):
    """Reason recorded on a movement record."""
    MANUAL = "manual"
    RFID_AUTO = "rfid_auto"
    MAINTENANCE = "maintenance"
    TRANSFER = "transfer"
    OTHER = "other"


class RequestType(str, Enum):
    """Purpose of a location change request."""
    TRANSFER = "transfer"
    REPAIR = "repair"
    MAINTENANCE = "maintenance"
    INVENTORY = "inventory"
    OTHER = "other"


class RequestPriority(str, Enum):
    """Priority of a location change request."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RequestStatus(str, Enum):
    """Status of a location change request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Room(Base):
    """Physical rooms, uniquely identified by code."""
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    building: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default=RoomType.LAB.value)
    capacity: Mapped[int | None] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=RoomStatus.ACTIVE.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    # Relationships
    readers: Mapped[list["RFIDReader"]] = relationship(
        back_populates="room", cascade="all, delete-orphan"
    )
    equipment: Mapped[list["Equipment"]] = relationship(back_populates="room")

    __table_args__ = (
        Index("ix_rooms_building", "building"),
        Index("ix_rooms_department", "department"),
    )

    @validates("code")
    def _normalize_code(self, key, value):
        return normalize_identifier(value)


class RFIDReader(Base):
    """RFID tag readers installed in a room."""
    __tablename__ = "rfid_readers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reader_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    reader_type: Mapped[str] = mapped_column(String(20), default=ReaderType.BOTH.value)
    mount_location: Mapped[str] = mapped_column(String(20), default="door")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime)
    installed_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    notes: Mapped[str | None] = mapped_column(Text)

    room: Mapped["Room"] = relationship(back_populates="readers")

    @validates("reader_id")
    def _normalize_reader_id(self, key, value):
        return normalize_identifier(value)


class Equipment(Base):
    """Tracked equipment items with identity and current location."""
    __tablename__ = "equipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    # Unique but optional: NULLs never collide
    asset_tag: Mapped[str | None] = mapped_column(String(100), unique=True)
    rfid_tag: Mapped[str | None] = mapped_column(String(100), unique=True)
    rfid_status: Mapped[str] = mapped_column(String(20), default=RFIDStatus.ACTIVE.value)
    last_rfid_detection: Mapped[datetime | None] = mapped_column(DateTime)

    category: Mapped[str] = mapped_column(String(30), default=EquipmentCategory.OTHER.value)
    manufacturer: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default=EquipmentStatus.AVAILABLE.value)
    condition: Mapped[str] = mapped_column(String(20), default=EquipmentCondition.GOOD.value)
    notes: Mapped[str | None] = mapped_column(Text)

    # Current location, denormalized from the room for display and workflow snapshots
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"))
    room_code: Mapped[str | None] = mapped_column(String(50))
    building: Mapped[str | None] = mapped_column(String(100))
    department: Mapped[str | None] = mapped_column(String(100))
    specific_location: Mapped[str | None] = mapped_column(String(255))
    location_updated_at: Mapped[datetime | None] = mapped_column(DateTime)
    update_method: Mapped[str] = mapped_column(String(20), default=UpdateMethod.SYSTEM.value)

    # Pending location change marker (advisory pointer to the one open request)
    pending_request_id: Mapped[int | None] = mapped_column(Integer)
    pending_building: Mapped[str | None] = mapped_column(String(100))
    pending_room_code: Mapped[str | None] = mapped_column(String(50))
    pending_department: Mapped[str | None] = mapped_column(String(100))
    pending_requested_at: Mapped[datetime | None] = mapped_column(DateTime)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)
    # Optimistic concurrency token, bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    room: Mapped["Room | None"] = relationship(back_populates="equipment")
    movement_history: Mapped[list["MovementRecord"]] = relationship(
        back_populates="equipment", order_by="MovementRecord.id"
    )
    location_requests: Mapped[list["LocationChangeRequest"]] = relationship(
        back_populates="equipment"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_equipment_status", "status"),
        Index("ix_equipment_room", "room_id"),
    )

    @validates("serial_number", "asset_tag", "rfid_tag")
    def _normalize_identifiers(self, key, value):
        return normalize_identifier(value)

    @property
    def pending_location_change(self) -> dict | None:
        """The outstanding request marker, or None."""
        if self.pending_request_id is None:
            return None
        return {
            "request_id": self.pending_request_id,
            "requested_location": {
                "building": self.pending_building,
                "room": self.pending_room_code,
                "department": self.pending_department,
            },
            "requested_at": self.pending_requested_at,
        }

    @property
    def location(self) -> dict:
        """Current location as a nested view."""
        return {
            "room_id": self.room_id,
            "room": self.room_code,
            "building": self.building,
            "department": self.department,
            "specific_location": self.specific_location,
            "last_updated": self.location_updated_at,
            "update_method": self.update_method,
        }

    def clear_pending_location_change(self) -> None:
        """Drop the pending marker."""
        self.pending_request_id = None
        self.pending_building = None
        self.pending_room_code = None
        self.pending_department = None
        self.pending_requested_at = None


class MovementRecord(Base):
    """One physical location transition. Rows are inserted, never updated."""
    __tablename__ = "movement_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(ForeignKey("equipment.id"), nullable=False)
    from_room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"))
    to_room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    from_room_code: Mapped[str | None] = mapped_column(String(50))
    to_room_code: Mapped[str] = mapped_column(String(50), nullable=False)
    moved_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    moved_by: Mapped[str | None] = mapped_column(String(255))
    reason: Mapped[str] = mapped_column(String(20), default=MovementReason.MANUAL.value)
    detected_by_rfid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rfid_reader_id: Mapped[str | None] = mapped_column(String(100))
    detected_at: Mapped[datetime | None] = mapped_column(DateTime)
    notes: Mapped[str | None] = mapped_column(Text)

    equipment: Mapped["Equipment"] = relationship(back_populates="movement_history")
    from_room: Mapped["Room | None"] = relationship(foreign_keys=[from_room_id])
    to_room: Mapped["Room"] = relationship(foreign_keys=[to_room_id])

    __table_args__ = (
        Index("ix_movement_equipment", "equipment_id", "id"),
    )


class LocationChangeRequest(Base):
    """Relocation request with approval workflow.

    The equipment and current-location columns are a snapshot taken at
    creation and are never rewritten afterwards.
    """
    __tablename__ = "location_change_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(ForeignKey("equipment.id"), nullable=False)

    equipment_name: Mapped[str | None] = mapped_column(String(100))
    equipment_serial_number: Mapped[str | None] = mapped_column(String(100))
    equipment_model: Mapped[str | None] = mapped_column(String(100))

    current_building: Mapped[str | None] = mapped_column(String(100))
    current_room: Mapped[str | None] = mapped_column(String(50))
    current_department: Mapped[str | None] = mapped_column(String(100))

    requested_building: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_room: Mapped[str] = mapped_column(String(50), nullable=False)
    requested_department: Mapped[str | None] = mapped_column(String(100))
    requested_specific_location: Mapped[str | None] = mapped_column(String(255))
    requested_room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"))

    request_type: Mapped[str] = mapped_column(String(20), default=RequestType.TRANSFER.value)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    requested_by_name: Mapped[str | None] = mapped_column(String(255))
    requested_by_department: Mapped[str | None] = mapped_column(String(100))
    priority: Mapped[str] = mapped_column(String(10), default=RequestPriority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(20), default=RequestStatus.PENDING.value)

    reviewed_by_name: Mapped[str | None] = mapped_column(String(255))
    reviewed_by_role: Mapped[str | None] = mapped_column(String(50))
    review_date: Mapped[datetime | None] = mapped_column(DateTime)
    review_notes: Mapped[str | None] = mapped_column(String(500))
    effective_date: Mapped[datetime | None] = mapped_column(DateTime)

    # Location the approval actually overwrote (may differ from the snapshot
    # when an RFID move landed while the request was pending)
    replaced_building: Mapped[str | None] = mapped_column(String(100))
    replaced_room: Mapped[str | None] = mapped_column(String(50))
    replaced_department: Mapped[str | None] = mapped_column(String(100))

    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    equipment: Mapped["Equipment"] = relationship(back_populates="location_requests")

    __table_args__ = (
        # At most one pending request per equipment item
        Index(
            "ix_location_request_one_pending",
            "equipment_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_location_request_status", "status"),
        Index("ix_location_request_created", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status != RequestStatus.PENDING.value

    @property
    def equipment_info(self) -> dict:
        return {
            "name": self.equipment_name,
            "serial_number": self.equipment_serial_number,
            "model": self.equipment_model,
        }

    @property
    def current_location(self) -> dict:
        return {
            "building": self.current_building,
            "room": self.current_room,
            "department": self.current_department,
        }

    @property
    def requested_location(self) -> dict:
        return {
            "building": self.requested_building,
            "room": self.requested_room,
            "department": self.requested_department,
            "specific_location": self.requested_specific_location,
        }

    @property
    def requested_by(self) -> dict:
        return {
            "user_name": self.requested_by_name,
            "department": self.requested_by_department,
        }

    @property
    def reviewed_by(self) -> dict | None:
        if self.reviewed_by_name is None:
            return None
        return {"user_name": self.reviewed_by_name, "role": self.reviewed_by_role}

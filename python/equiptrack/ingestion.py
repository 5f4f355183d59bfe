"""Detection ingestion: turn RFID reader events into movement engine calls.

Events arrive from an external transport (MQTT bridge, HTTP webhook, batch
replay). Each one is validated and handled on its own; a bad or unknown
event is reported and never stops the rest of the feed.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.logging import get_logger

from .config import get_settings
from .errors import NotFoundError, Result, ValidationError, core_operation
from .models import (
    Equipment, MovementReason, MovementRecord, RFIDReader, Room, as_utc, normalize_identifier,
    utc_now,
)
from .movement import DetectionMeta, apply_move
from .registry import find_equipment_by_detection_tag
from .rooms import find_room_by_reader_or_code

logger = get_logger(__name__)

ENTRY_EVENT = "entry"


class DetectionEvent(BaseModel):
    """Inbound tag detection. Device payloads use camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    reader_id: str = Field(..., alias="readerId", min_length=1)
    equipment_tag: str = Field(..., alias="equipmentTag", min_length=1)
    event_type: str = Field(..., alias="eventType", min_length=1)
    timestamp: datetime | None = None

    @field_validator("reader_id", "equipment_tag", "event_type")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


@dataclass
class DetectionOutcome:
    """What happened to one detection event."""

    equipment: Equipment
    room: Room
    event_type: str
    reader_id: str
    timestamp: datetime
    movement: MovementRecord | None = None
    duplicate: bool = False

    @property
    def moved(self) -> bool:
        return self.movement is not None


@dataclass
class FeedReport:
    """Per-event results of a feed run, in input order."""

    results: list[Result] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


def _is_duplicate(db: Session, equipment: Equipment, room: Room, reader_id: str, window_seconds: int) -> bool:
    """Same reader already moved this item into this room within the window."""
    if window_seconds <= 0 or equipment.room_id != room.id:
        return False
    last = db.scalar(
        select(MovementRecord)
        .where(MovementRecord.equipment_id == equipment.id)
        .order_by(MovementRecord.id.desc())
        .limit(1)
    )
    if last is None or not last.detected_by_rfid or last.rfid_reader_id != reader_id:
        return False
    return utc_now() - as_utc(last.moved_at) < timedelta(seconds=window_seconds)


def _touch_reader(db: Session, reader_id: str) -> None:
    reader = db.scalar(select(RFIDReader).where(RFIDReader.reader_id == reader_id))
    if reader is not None:
        reader.last_seen = utc_now()


@core_operation
def handle_detection(
    db: Session,
    reader_id: str,
    tag_id: str,
    event_type: str,
    timestamp: datetime | None = None,
) -> DetectionOutcome:
    """Process one detection.

    Only ``entry`` events move the item; other event types are acknowledged.

    Raises (as Result errors):
        ValidationError: a required field is missing
        NotFoundError: reason "unknown_reader" or "unknown_tag"
    """
    missing = [name for name, value in
               (("reader_id", reader_id), ("equipment_tag", tag_id), ("event_type", event_type))
               if not value or not str(value).strip()]
    if missing:
        raise ValidationError(f"Incomplete detection, missing: {', '.join(missing)}")

    room = find_room_by_reader_or_code(db, reader_id)
    if room is None:
        raise NotFoundError(f"No room found for RFID reader {reader_id}", reason="unknown_reader")

    equipment = find_equipment_by_detection_tag(db, tag_id)
    if equipment is None:
        raise NotFoundError(f"No equipment found with tag {tag_id}", reason="unknown_tag")

    reader_key = normalize_identifier(reader_id)
    outcome = DetectionOutcome(
        equipment=equipment,
        room=room,
        event_type=event_type,
        reader_id=reader_key,
        timestamp=timestamp or utc_now(),
    )
    _touch_reader(db, reader_key)

    if event_type == ENTRY_EVENT:
        window = get_settings().detection_dedup_seconds
        if _is_duplicate(db, equipment, room, reader_key, window):
            outcome.duplicate = True
            logger.info(f"Ignored repeated entry of {equipment.serial_number} at {reader_key}")
        else:
            move = apply_move(
                db, equipment, room, MovementReason.RFID_AUTO.value,
                detection=DetectionMeta(reader_id=reader_key, timestamp=timestamp),
            )
            outcome.movement = move.movement

    db.commit()
    db.refresh(equipment)
    if outcome.movement is not None:
        db.refresh(outcome.movement)
        logger.info(f"RFID detection moved {equipment.serial_number} to {room.code}")
    else:
        logger.info(f"RFID {event_type} for {equipment.serial_number} at {room.code} acknowledged")
    return outcome


@core_operation
def ingest_event(db: Session, payload: dict[str, Any]) -> DetectionOutcome:
    """Validate a raw event payload and handle it."""
    try:
        event = DetectionEvent.model_validate(payload)
    except pydantic.ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ValidationError(
            f"Incomplete detection data, required: readerId, equipmentTag, eventType "
            f"(invalid: {', '.join(fields)})"
        ) from e
    return handle_detection(db, event.reader_id, event.equipment_tag, event.event_type, event.timestamp).unwrap()


def _process_one(session_factory, payload: dict[str, Any]) -> Result:
    db = session_factory()
    try:
        result = ingest_event(db, payload)
    finally:
        db.close()
    if result.ok:
        logger.info(
            f"Feed event {payload.get('equipmentTag') or payload.get('equipment_tag')}: "
            f"{'moved' if result.value.moved else 'acknowledged'}"
        )
    else:
        logger.warning(f"Feed event rejected ({result.error.kind}): {result.error}")
    return result


def process_feed(session_factory, payloads: Iterable[dict[str, Any]], max_workers: int | None = None) -> FeedReport:
    """Handle a batch of detection payloads as independent units of work.

    Each event gets its own session, so a slow write for one item does not
    hold up events for unrelated items.
    """
    workers = max_workers or get_settings().feed_workers
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda payload: _process_one(session_factory, payload), payloads))
    report = FeedReport(results=results)
    logger.info(f"Feed processed: {report.succeeded} ok, {report.failed} failed")
    return report

"""Tests for the location change workflow."""

from datetime import timedelta

from equiptrack import movement, workflow
from equiptrack.ingestion import handle_detection
from equiptrack.models import Equipment, LocationChangeRequest, RequestStatus


def open_request(db, equipment, room_code="B-120", reason="relocate", **kwargs):
    result = workflow.create_request(db, equipment.id, room_code, reason, **kwargs)
    assert result.ok, result.error
    return result.value


class TestCreateRequest:
    """Tests for create_request."""

    def test_snapshots_and_marker(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item, requested_by="alice", department="Chemistry", priority="high")

        assert request.status == RequestStatus.PENDING.value
        assert request.equipment_info == {"name": "Spectrophotometer", "serial_number": "SPEC-0001", "model": "UV-1900"}
        assert request.current_location == {"building": "A", "room": "A-101", "department": "Chemistry"}
        assert request.requested_location["room"] == "B-120"
        assert request.requested_location["building"] == "B"
        assert request.requested_location["department"] == "Physics"
        assert request.requested_by == {"user_name": "alice", "department": "Chemistry"}
        assert request.priority == "high"
        assert request.reviewed_by is None
        assert request.review_date is None
        assert request.effective_date is None

        test_db.refresh(equipment_item)
        marker = equipment_item.pending_location_change
        assert marker["request_id"] == request.id
        assert marker["requested_location"]["room"] == "B-120"
        assert marker["requested_at"] is not None
        # Advisory only: the location itself is unchanged
        assert equipment_item.room_code == "A-101"

    def test_defaults(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item, requested_by=None, department=None)
        assert request.request_type == "transfer"
        assert request.priority == "medium"
        assert request.requested_by == {"user_name": "System", "department": "Unspecified"}

    def test_second_request_conflicts(self, test_db, equipment_item, room_b, room_c):
        """Only one pending request per item; the second is not stored."""
        open_request(test_db, equipment_item)
        result = workflow.create_request(test_db, equipment_item.id, "A-102", "again")
        assert result.error.kind == "conflict"
        assert test_db.query(LocationChangeRequest).count() == 1

    def test_pending_index_blocks_race(self, test_db, equipment_item, room_b, room_c):
        """Even with the marker missing, the store refuses a second pending row."""
        first = open_request(test_db, equipment_item)
        equipment = test_db.get(Equipment, equipment_item.id)
        equipment.clear_pending_location_change()
        test_db.commit()

        result = workflow.create_request(test_db, equipment_item.id, "A-102", "race")
        assert result.error.kind == "conflict"
        assert test_db.query(LocationChangeRequest).count() == 1
        assert test_db.get(LocationChangeRequest, first.id).status == "pending"

    def test_unknown_equipment(self, test_db, room_c):
        assert workflow.create_request(test_db, 9999, "B-120", "x").error.kind == "not_found"

    def test_unknown_room(self, test_db, equipment_item):
        result = workflow.create_request(test_db, equipment_item.id, "Z-999", "x")
        assert result.error.kind == "not_found"
        test_db.refresh(equipment_item)
        assert equipment_item.pending_location_change is None

    def test_invalid_input(self, test_db, equipment_item, room_c):
        assert workflow.create_request(test_db, equipment_item.id, "B-120", "  ").error.kind == "validation"
        assert workflow.create_request(test_db, equipment_item.id, "B-120", "x" * 501).error.kind == "validation"
        assert workflow.create_request(
            test_db, equipment_item.id, "B-120", "x", request_type="teleport"
        ).error.kind == "validation"


class TestApprove:
    """Tests for approve_request."""

    def test_approve_applies_location_without_movement(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        history_before = len(equipment_item.movement_history)

        result = workflow.approve_request(test_db, request.id, "bob", "Fine")
        assert result.ok
        approved = result.value
        assert approved.status == "approved"
        assert approved.reviewed_by == {"user_name": "bob", "role": "Administrator"}
        assert approved.review_notes == "Fine"
        assert approved.review_date is not None
        assert approved.effective_date is not None

        equipment = test_db.get(Equipment, equipment_item.id)
        assert equipment.room_code == "B-120"
        assert equipment.building == "B"
        assert equipment.department == "Physics"
        assert equipment.room_id == room_c.id
        assert equipment.pending_location_change is None
        assert len(equipment.movement_history) == history_before

    def test_snapshot_not_rewritten(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        approved = workflow.approve_request(test_db, request.id).value
        assert approved.current_location["room"] == "A-101"
        assert approved.replaced_room == "A-101"

    def test_approve_twice(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        workflow.approve_request(test_db, request.id)
        result = workflow.approve_request(test_db, request.id)
        assert result.error.kind == "conflict"
        assert "already approved" in str(result.error)

    def test_approve_rejected(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        workflow.reject_request(test_db, request.id)
        result = workflow.approve_request(test_db, request.id)
        assert result.error.kind == "conflict"
        assert "already rejected" in str(result.error)

    def test_approve_unknown(self, test_db):
        assert workflow.approve_request(test_db, 9999).error.kind == "not_found"

    def test_inactive_equipment_cannot_be_reviewed(self, test_db, equipment_item, room_c):
        """Review only touches active equipment."""
        request = open_request(test_db, equipment_item)
        equipment_item.is_active = False
        test_db.commit()

        assert workflow.approve_request(test_db, request.id).error.kind == "not_found"
        assert workflow.reject_request(test_db, request.id).error.kind == "not_found"
        equipment = test_db.get(Equipment, equipment_item.id)
        assert equipment.room_code == "A-101"
        assert test_db.get(LocationChangeRequest, request.id).status == "pending"

        # Withdrawing still works and releases the marker
        assert workflow.cancel_request(test_db, request.id).ok
        assert test_db.get(Equipment, equipment_item.id).pending_location_change is None

    def test_rfid_move_while_pending(self, test_db, equipment_item, room_b, room_c):
        """An RFID move during review is kept in history; approval records what it replaced."""
        request = open_request(test_db, equipment_item)
        assert handle_detection(test_db, "RDR-A102", "E200-0001", "entry").ok

        approved = workflow.approve_request(test_db, request.id).value
        assert approved.current_location["room"] == "A-101"
        assert approved.replaced_room == "A-102"

        equipment = test_db.get(Equipment, equipment_item.id)
        assert equipment.room_code == "B-120"
        assert len(equipment.movement_history) == 1

    def test_new_request_after_approval(self, test_db, equipment_item, room_b, room_c):
        request = open_request(test_db, equipment_item)
        workflow.approve_request(test_db, request.id)
        second = open_request(test_db, test_db.get(Equipment, equipment_item.id), room_code="A-102")
        assert second.current_location["room"] == "B-120"


class TestRejectAndCancel:
    """Tests for reject_request and cancel_request."""

    def test_reject_keeps_location(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        result = workflow.reject_request(test_db, request.id, "bob", "Not now")
        assert result.value.status == "rejected"
        assert result.value.reviewed_by["user_name"] == "bob"
        assert result.value.effective_date is None

        equipment = test_db.get(Equipment, equipment_item.id)
        assert equipment.room_code == "A-101"
        assert equipment.building == "A"
        assert equipment.pending_location_change is None

    def test_reject_twice(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        workflow.reject_request(test_db, request.id)
        assert "already rejected" in str(workflow.reject_request(test_db, request.id).error)

    def test_cancel_pending(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        result = workflow.cancel_request(test_db, request.id, cancelled_by="alice")
        assert result.value.status == "cancelled"
        assert result.value.reviewed_by is None
        assert test_db.get(Equipment, equipment_item.id).pending_location_change is None

    def test_cancel_only_from_pending(self, test_db, equipment_item, room_c):
        request = open_request(test_db, equipment_item)
        workflow.approve_request(test_db, request.id)
        assert workflow.cancel_request(test_db, request.id).error.kind == "conflict"


class TestQueries:
    """Tests for pending_requests, approved_history and requires_approval."""

    def test_pending_requests(self, test_db, equipment_item, in_transit_item, room_c):
        first = open_request(test_db, equipment_item)
        second = open_request(test_db, in_transit_item)
        workflow.reject_request(test_db, first.id)
        assert [r.id for r in workflow.pending_requests(test_db)] == [second.id]

    def test_approved_history_newest_first(self, test_db, equipment_item, room_b, room_c):
        first = open_request(test_db, equipment_item, room_code="B-120")
        workflow.approve_request(test_db, first.id)
        rejected = open_request(test_db, test_db.get(Equipment, equipment_item.id), room_code="A-102")
        workflow.reject_request(test_db, rejected.id)
        second = open_request(test_db, test_db.get(Equipment, equipment_item.id), room_code="A-102")
        workflow.approve_request(test_db, second.id)

        # Make the effective dates unambiguous
        test_db.get(LocationChangeRequest, first.id).effective_date -= timedelta(hours=1)
        test_db.commit()

        history = workflow.approved_history(test_db, equipment_item.id)
        assert [r.id for r in history] == [second.id, first.id]

    def test_requires_approval_across_departments(self, test_db, equipment_item, room_b, room_c):
        assert workflow.requires_approval(equipment_item, room_c) is True
        assert workflow.requires_approval(equipment_item, room_b) is False


class TestScenario:

    def test_request_then_approve(self, test_db, equipment_item, room_a, create_room):
        """create(E1 -> C) then approve: E1 in C, marker cleared, history untouched."""
        create_room("C", building="C", department="Biology")
        history_before = len(movement.movement_history(test_db, equipment_item.id).value)

        request = open_request(test_db, equipment_item, room_code="C", reason="relocate")
        assert workflow.approve_request(test_db, request.id).ok

        equipment = test_db.get(Equipment, equipment_item.id)
        assert equipment.location["room"] == "C"
        assert equipment.pending_location_change is None
        assert len(movement.movement_history(test_db, equipment_item.id).value) == history_before

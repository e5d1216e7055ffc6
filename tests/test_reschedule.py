"""Tests for the reschedule request and admin decision workflow."""

from datetime import time

import pytest

from detailing_booking.errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidTransition,
    RescheduleRejected,
    SlotUnavailable,
)
from detailing_booking.schemas.booking_schema import BookingStatus
from detailing_booking.schemas.reschedule_schema import RescheduleStatus
from detailing_booking.service import build_service
from tests.conftest import (
    NOW,
    TOMORROW,
    booking_payload,
    create_booking,
    make_config,
    run_before_next_save,
    slot_at,
)


def reschedule_payload(booking_id, new_time="13:00", new_date=TOMORROW, customer_id="cust-1"):
    return {
        "booking_id": booking_id,
        "customer_id": customer_id,
        "new_date": new_date,
        "new_time": new_time,
        "reason": "Working late",
    }


class TestRequestReschedule:
    def test_request_is_pending_and_booking_untouched(self, service, slots):
        slot = slot_at(slots, TOMORROW, "09:00")
        booking = create_booking(service, slot, status="confirmed")
        request = service.request_reschedule(reschedule_payload(booking.id))
        assert request.status == RescheduleStatus.PENDING
        assert request.slot_id == slot_at(slots, TOMORROW, "13:00").id
        assert request.created_at == NOW
        unchanged = service.get_booking(booking.id)
        assert unchanged.slot_id == slot.id
        assert unchanged.status == BookingStatus.CONFIRMED
        # Requested slot is not held until approval
        assert service.calendar.is_available(request.slot_id, NOW)

    def test_second_pending_request_rejected(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        service.request_reschedule(reschedule_payload(booking.id))
        with pytest.raises(RescheduleRejected) as exc_info:
            service.request_reschedule(reschedule_payload(booking.id, new_time="15:00"))
        assert exc_info.value.code == "reschedule_already_pending"
        assert len(service.reschedules.list_pending()) == 1

    def test_completed_booking_rejected(self, service, slots):
        slot = slot_at(slots, TOMORROW, "09:00")
        booking = create_booking(service, slot, status="completed")
        with pytest.raises(RescheduleRejected) as exc_info:
            service.request_reschedule(reschedule_payload(booking.id))
        assert exc_info.value.code == "non_reschedulable_status"
        assert service.get_booking(booking.id).slot_id == slot.id
        assert service.reschedules.list_pending() == []

    def test_in_progress_booking_rejected(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"), status="in_progress")
        with pytest.raises(RescheduleRejected, match="in_progress"):
            service.request_reschedule(reschedule_payload(booking.id))

    def test_taken_slot_rejected(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        create_booking(service, slot_at(slots, TOMORROW, "13:00"), customer_id="cust-2")
        with pytest.raises(RescheduleRejected) as exc_info:
            service.request_reschedule(reschedule_payload(booking.id))
        assert exc_info.value.code == "requested_slot_unavailable"

    def test_nonexistent_slot_rejected(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        with pytest.raises(RescheduleRejected) as exc_info:
            service.request_reschedule(reschedule_payload(booking.id, new_time="07:30"))
        assert exc_info.value.code == "requested_slot_unavailable"

    def test_status_checked_before_slot(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"), status="cancelled")
        with pytest.raises(RescheduleRejected) as exc_info:
            service.request_reschedule(reschedule_payload(booking.id, new_time="07:30"))
        assert exc_info.value.code == "non_reschedulable_status"

    def test_other_customer_forbidden(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        with pytest.raises(Forbidden):
            service.request_reschedule(reschedule_payload(booking.id, customer_id="cust-2"))

    def test_request_event_published(self, service, slots, recorded_events):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        request = service.request_reschedule(reschedule_payload(booking.id))
        event = recorded_events[-1]
        assert event.name == "RescheduleRequested"
        assert event.request_id == request.id


class TestAdminDecision:
    def test_approve_moves_booking(self, service, slots):
        old = slot_at(slots, TOMORROW, "09:00")
        new = slot_at(slots, TOMORROW, "13:00")
        booking = create_booking(service, old, status="confirmed")
        request = service.request_reschedule(reschedule_payload(booking.id))

        approved = service.approve_reschedule({"request_id": request.id})
        assert approved.status == RescheduleStatus.APPROVED
        assert approved.responded_at == NOW
        assert approved.admin_response == "Reschedule request approved"

        moved = service.get_booking(booking.id)
        assert moved.slot_id == new.id
        assert moved.scheduled_time == new.start_time
        assert moved.status == BookingStatus.CONFIRMED
        assert service.calendar.get_slot(new.id).reserved_by == booking.id
        assert service.calendar.is_available(old.id, NOW)

    def test_approve_keeps_admin_message(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        request = service.request_reschedule(reschedule_payload(booking.id))
        approved = service.approve_reschedule(
            {"request_id": request.id, "admin_response": "See you then"}
        )
        assert approved.admin_response == "See you then"

    def test_approve_when_slot_taken_leaves_request_pending(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        request = service.request_reschedule(reschedule_payload(booking.id))
        service.create_booking(
            booking_payload(slot_at(slots, TOMORROW, "13:00").id, customer_id="cust-2")
        )
        with pytest.raises(SlotUnavailable):
            service.approve_reschedule({"request_id": request.id})
        assert service.reschedules.get_request(request.id).status == RescheduleStatus.PENDING
        assert service.get_booking(booking.id).slot_id == slot_at(slots, TOMORROW, "09:00").id

    def test_reject_keeps_booking(self, service, slots):
        slot = slot_at(slots, TOMORROW, "09:00")
        booking = create_booking(service, slot)
        request = service.request_reschedule(reschedule_payload(booking.id))
        rejected = service.reject_reschedule(
            {"request_id": request.id, "admin_response": "Fully booked that day"}
        )
        assert rejected.status == RescheduleStatus.REJECTED
        assert rejected.admin_response == "Fully booked that day"
        assert service.get_booking(booking.id).slot_id == slot.id

    def test_new_request_allowed_after_decision(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        first = service.request_reschedule(reschedule_payload(booking.id))
        service.reject_reschedule({"request_id": first.id})
        second = service.request_reschedule(reschedule_payload(booking.id, new_time="15:00"))
        assert second.status == RescheduleStatus.PENDING

    def test_decided_request_cannot_be_decided_again(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        request = service.request_reschedule(reschedule_payload(booking.id))
        service.reject_reschedule({"request_id": request.id})
        with pytest.raises(RescheduleRejected) as exc_info:
            service.approve_reschedule({"request_id": request.id})
        assert exc_info.value.code == "request_not_pending"

    def test_cancelling_booking_rejects_pending_request(self, service, slots, recorded_events):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        request = service.request_reschedule(reschedule_payload(booking.id))
        service.cancel_booking(
            {"booking_id": booking.id, "customer_id": "cust-1", "reason": "Sold the car"}
        )
        closed = service.reschedules.get_request(request.id)
        assert closed.status == RescheduleStatus.REJECTED
        assert closed.responded_at == NOW
        assert closed.admin_response == "Booking is no longer active"
        assert service.reschedules.list_pending() == []
        assert "RescheduleRejected" in [e.name for e in recorded_events]

        with pytest.raises(RescheduleRejected) as exc_info:
            service.approve_reschedule({"request_id": request.id})
        assert exc_info.value.code == "request_not_pending"
        assert service.calendar.is_available(request.slot_id, NOW)

    def test_completing_booking_rejects_pending_request(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"), status="confirmed")
        request = service.request_reschedule(reschedule_payload(booking.id))
        service.transition_status({"booking_id": booking.id, "status": "in_progress"})
        assert service.reschedules.get_request(request.id).status == RescheduleStatus.PENDING
        service.transition_status({"booking_id": booking.id, "status": "completed"})
        assert service.reschedules.get_request(request.id).status == RescheduleStatus.REJECTED

    def test_move_to_slot_on_cancelled_booking_rejected(self, service, slots):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"), status="cancelled")
        with pytest.raises(InvalidTransition):
            service.ledger.move_to_slot(booking.id, slot_at(slots, TOMORROW, "13:00").id, NOW)
        assert service.calendar.is_available(slot_at(slots, TOMORROW, "13:00").id, NOW)


class TestCancelAndApproveInterleaved:
    """A cancellation and an approval race on the same booking; only one write lands."""

    def test_approval_landing_first_refuses_cancellation(
        self, service, slots, monkeypatch, recorded_events
    ):
        old = slot_at(slots, TOMORROW, "09:00")
        new = slot_at(slots, TOMORROW, "13:00")
        booking = create_booking(service, old, status="confirmed")
        request = service.request_reschedule(reschedule_payload(booking.id))

        run_before_next_save(
            service, monkeypatch, lambda: service.approve_reschedule({"request_id": request.id})
        )
        with pytest.raises(ConcurrentUpdate):
            service.cancel_booking(
                {"booking_id": booking.id, "customer_id": "cust-1", "reason": "Sold the car"}
            )

        stored = service.get_booking(booking.id)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.slot_id == new.id
        assert service.calendar.get_slot(new.id).reserved_by == booking.id
        assert service.calendar.is_available(old.id, NOW)
        assert service.reschedules.get_request(request.id).status == RescheduleStatus.APPROVED
        assert "BookingCancelled" not in [e.name for e in recorded_events]

    def test_cancellation_landing_first_refuses_approval(
        self, service, slots, monkeypatch, recorded_events
    ):
        old = slot_at(slots, TOMORROW, "09:00")
        new = slot_at(slots, TOMORROW, "13:00")
        booking = create_booking(service, old, status="confirmed")
        request = service.request_reschedule(reschedule_payload(booking.id))

        run_before_next_save(
            service,
            monkeypatch,
            lambda: service.cancel_booking(
                {"booking_id": booking.id, "customer_id": "cust-1", "reason": "Sold the car"}
            ),
        )
        with pytest.raises(ConcurrentUpdate):
            service.approve_reschedule({"request_id": request.id})

        stored = service.get_booking(booking.id)
        assert stored.status == BookingStatus.CANCELLED
        assert stored.slot_id == old.id
        assert service.calendar.is_available(old.id, NOW)
        assert service.calendar.is_available(new.id, NOW)
        assert service.calendar.get_slot(new.id).reserved_by is None
        assert service.reschedules.get_request(request.id).status == RescheduleStatus.REJECTED
        assert "RescheduleApproved" not in [e.name for e in recorded_events]


class TestExpiry:
    @pytest.fixture
    def ttl_service(self, clock):
        service = build_service(config=make_config(reschedule_ttl_hours=48), clock=clock)
        service.seed_slots({"slot_date": TOMORROW})
        service.seed_slots({"slot_date": "2026-11-10"})
        return service

    def _slot(self, service, hhmm):
        return service.calendar.find_slot(TOMORROW, time.fromisoformat(hhmm))

    def test_requests_never_expire_by_default(self, service, slots, clock):
        booking = create_booking(service, slot_at(slots, TOMORROW, "09:00"))
        service.request_reschedule(reschedule_payload(booking.id))
        clock.advance(days=30)
        assert service.expire_stale_reschedules() == []
        assert len(service.reschedules.list_pending()) == 1

    def test_stale_request_expires_in_bulk(self, ttl_service, clock):
        slot = self._slot(ttl_service, "09:00")
        booking = create_booking(ttl_service, slot)
        request = ttl_service.request_reschedule(
            reschedule_payload(booking.id, new_date="2026-11-10", new_time="11:00")
        )
        clock.advance(hours=47)
        assert ttl_service.expire_stale_reschedules() == []
        clock.advance(hours=1)
        expired = ttl_service.expire_stale_reschedules()
        assert [r.id for r in expired] == [request.id]
        assert expired[0].status == RescheduleStatus.EXPIRED

    def test_stale_request_does_not_block_new_one(self, ttl_service, clock):
        booking = create_booking(ttl_service, self._slot(ttl_service, "09:00"))
        first = ttl_service.request_reschedule(
            reschedule_payload(booking.id, new_date="2026-11-10", new_time="11:00")
        )
        clock.advance(hours=48)
        second = ttl_service.request_reschedule(
            reschedule_payload(booking.id, new_date="2026-11-10", new_time="13:00")
        )
        assert second.status == RescheduleStatus.PENDING
        assert ttl_service.reschedules.get_request(first.id).status == RescheduleStatus.EXPIRED

    def test_stale_request_cannot_be_approved(self, ttl_service, clock):
        booking = create_booking(ttl_service, self._slot(ttl_service, "09:00"))
        request = ttl_service.request_reschedule(
            reschedule_payload(booking.id, new_date="2026-11-10", new_time="11:00")
        )
        clock.advance(hours=49)
        with pytest.raises(RescheduleRejected) as exc_info:
            ttl_service.approve_reschedule({"request_id": request.id})
        assert exc_info.value.code == "request_not_pending"

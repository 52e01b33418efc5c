"""
Tests for conflict detection.
"""

from decimal import Decimal

import pendulum

from salonbooking.domain.booking import Appointment, AppointmentStatus
from salonbooking.domain.conflict_detector import ConflictDetector, find_overlapping

TZ = "America/Sao_Paulo"


def _at(text):
    return pendulum.parse(text, tz=TZ)


def _appointment(appointment_id, start, end, status=AppointmentStatus.CONFIRMED, professional_id="pro-1"):
    return Appointment(
        id=appointment_id,
        salon_id="salon-1",
        client_id="cli-1",
        professional_id=professional_id,
        service_id="svc-1",
        start_time=_at(start),
        end_time=_at(end),
        status=status,
        price=Decimal("50.00"),
    )


class StaticReader:
    """In-memory stand-in for the booking store."""

    def __init__(self, appointments):
        self.appointments = appointments
        self.calls = []

    def list_active_for_professional(self, professional_id, start=None, end=None):
        self.calls.append((professional_id, start, end))
        return [
            appointment
            for appointment in self.appointments
            if appointment.professional_id == professional_id and appointment.is_active
        ]


class TestFindOverlapping:
    """Tests for the half-open overlap rule."""

    def test_overlap_detected(self):
        existing = [_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00")]

        found = find_overlapping(_at("2024-01-01 10:30"), _at("2024-01-01 11:30"), existing)

        assert [a.id for a in found] == ["a-1"]

    def test_back_to_back_does_not_conflict(self):
        """Test that touching endpoints are not an overlap."""
        existing = [_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00")]

        assert find_overlapping(_at("2024-01-01 11:00"), _at("2024-01-01 12:00"), existing) == []
        assert find_overlapping(_at("2024-01-01 09:00"), _at("2024-01-01 10:00"), existing) == []

    def test_cancelled_appointments_ignored(self):
        existing = [
            _appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00", status=AppointmentStatus.CANCELLED)
        ]

        assert find_overlapping(_at("2024-01-01 10:00"), _at("2024-01-01 11:00"), existing) == []

    def test_completed_and_no_show_still_block(self):
        """Test that only cancellation frees an interval."""
        existing = [
            _appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00", status=AppointmentStatus.COMPLETED),
            _appointment("a-2", "2024-01-01 11:00", "2024-01-01 12:00", status=AppointmentStatus.NO_SHOW),
        ]

        found = find_overlapping(_at("2024-01-01 10:30"), _at("2024-01-01 11:30"), existing)

        assert {a.id for a in found} == {"a-1", "a-2"}

    def test_excluded_appointment_ignored(self):
        """Test that rescheduling does not conflict with its own previous interval."""
        existing = [_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00")]

        found = find_overlapping(
            _at("2024-01-01 10:30"), _at("2024-01-01 11:30"), existing, exclude_appointment_id="a-1"
        )

        assert found == []

    def test_empty_interval_never_conflicts(self):
        existing = [_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00")]

        assert find_overlapping(_at("2024-01-01 10:30"), _at("2024-01-01 10:30"), existing) == []
        assert find_overlapping(_at("2024-01-01 10:45"), _at("2024-01-01 10:15"), existing) == []


class TestConflictDetector:
    """Tests for ConflictDetector."""

    def test_queries_only_the_professional_window(self):
        """Test that the reader is asked for the candidate window only."""
        reader = StaticReader([_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00")])
        detector = ConflictDetector(reader)

        assert detector.has_conflict("pro-1", _at("2024-01-01 10:15"), _at("2024-01-01 10:45"))
        assert reader.calls == [("pro-1", _at("2024-01-01 10:15"), _at("2024-01-01 10:45"))]

    def test_other_professionals_do_not_conflict(self):
        reader = StaticReader(
            [_appointment("a-1", "2024-01-01 10:00", "2024-01-01 11:00", professional_id="pro-2")]
        )
        detector = ConflictDetector(reader)

        assert not detector.has_conflict("pro-1", _at("2024-01-01 10:00"), _at("2024-01-01 11:00"))

    def test_find_conflicts_returns_all_overlaps(self):
        reader = StaticReader(
            [
                _appointment("a-1", "2024-01-01 09:00", "2024-01-01 10:00"),
                _appointment("a-2", "2024-01-01 10:00", "2024-01-01 11:00"),
                _appointment("a-3", "2024-01-01 12:00", "2024-01-01 13:00"),
            ]
        )
        detector = ConflictDetector(reader)

        conflicts = detector.find_conflicts("pro-1", _at("2024-01-01 09:30"), _at("2024-01-01 10:30"))

        assert [a.id for a in conflicts] == ["a-1", "a-2"]

    def test_inverted_interval_skips_lookup(self):
        reader = StaticReader([])
        detector = ConflictDetector(reader)

        assert detector.find_conflicts("pro-1", _at("2024-01-01 11:00"), _at("2024-01-01 10:00")) == []
        assert reader.calls == []

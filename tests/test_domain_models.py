"""
Tests for domain models.
"""

import pytest

from campslots.domain.exceptions import InvalidConfiguration
from campslots.domain.models import (
    Camp,
    Registration,
    RegistrationStatus,
    Role,
    Slot,
    UserProfile,
    format_clock,
    parse_clock,
    parse_date,
)


def _camp_document():
    return {
        "organizerId": "org",
        "title": "City Drive",
        "venue": "Town Hall",
        "date": "2030-01-07",
        "startTime": "09:00",
        "endTime": "10:00",
        "slotInterval": 30,
        "slotCapacity": 2,
        "slots": [
            {"start": "09:00", "end": "09:30", "booked": True, "donorId": "d1"},
            {"start": "09:00", "end": "09:30", "booked": False},
            {"start": "09:30", "end": "10:00", "booked": False, "donorId": None},
            {"start": "09:30", "end": "10:00", "booked": False, "donorId": None},
        ],
    }


class TestClock:
    """Tests for wall-clock helpers."""

    def test_parse_and_format(self):
        assert parse_clock("09:30") == 570
        assert parse_clock("00:00") == 0
        assert format_clock(570) == "09:30"
        assert format_clock(parse_clock("23:45")) == "23:45"

    @pytest.mark.parametrize("value", ["", "noon", "ab:cd"])
    def test_parse_invalid(self, value):
        with pytest.raises(InvalidConfiguration):
            parse_clock(value)

    def test_parse_date(self):
        day = parse_date("2030-01-07")

        assert (day.year, day.month, day.day) == (2030, 1, 7)

    def test_parse_date_invalid(self):
        with pytest.raises(InvalidConfiguration):
            parse_date("January 7th")


class TestSlot:
    """Tests for the Slot model."""

    def test_booked_slot_requires_donor(self):
        with pytest.raises(ValueError, match="has no donor"):
            Slot(start="09:00", end="09:30", booked=True)

    def test_free_slot_rejects_donor(self):
        with pytest.raises(ValueError, match="carries donor"):
            Slot(start="09:00", end="09:30", booked=False, donor_id="d1")

    def test_document_round_trip_keeps_null_donor(self):
        slot = Slot(start="09:00", end="09:30")

        assert slot.to_document() == {"start": "09:00", "end": "09:30", "booked": False, "donorId": None}
        assert Slot.from_document(slot.to_document()) == slot


class TestCamp:
    """Tests for the Camp model."""

    def test_from_document(self):
        camp = Camp.from_document("camp_1", _camp_document(), version=3)

        assert camp.id == "camp_1"
        assert camp.version == 3
        assert camp.total_slots() == 4
        assert camp.available_slots() == 3
        assert camp.slot_of("d1").period == ("09:00", "09:30")
        assert camp.slot_of("d2") is None

    def test_to_document_uses_stored_keys(self):
        document = _camp_document()
        document["slots"][1]["donorId"] = None

        camp = Camp.from_document("camp_1", document)

        assert camp.to_document() == document

    def test_slots_by_period(self):
        camp = Camp.from_document("camp_1", _camp_document())

        assert camp.slots_by_period() == [
            ("09:00", "09:30", 1, 2),
            ("09:30", "10:00", 2, 2),
        ]

    def test_clone_is_independent(self):
        camp = Camp.from_document("camp_1", _camp_document())
        copy = camp.clone()
        copy.slots[1] = Slot("09:00", "09:30", True, "d2")

        assert camp.available_slots() == 3
        assert copy.available_slots() == 2

    def test_format_display(self):
        camp = Camp.from_document("camp_1", _camp_document())

        assert camp.format_display() == (
            "Monday, January 7, 2030 | 09:00 – 10:00 | Town Hall (3/4 free)"
        )


class TestRegistration:
    """Tests for the Registration model."""

    def test_round_trip(self):
        registration = Registration(
            id="r1", donor_id="d1", camp_id="camp_1", token="123456",
            slot_start="09:00", slot_end="09:30",
        )

        loaded = Registration.from_document("r1", registration.to_document())

        assert loaded == registration
        assert loaded.is_active

    def test_completed_status_loads(self):
        document = {
            "donorId": "d1", "campId": "c", "token": 654321,
            "slotStart": "09:00", "slotEnd": "09:30", "status": "completed",
        }

        registration = Registration.from_document("r1", document)

        assert registration.status == RegistrationStatus.COMPLETED
        assert registration.token == "654321"
        assert not registration.is_active


def test_user_profile_as_caller():
    profile = UserProfile.from_document(
        {"uid": "u1", "role": "organizer", "name": "Asha", "email": "asha@example.com"}
    )
    caller = profile.as_caller()

    assert caller.user_id == "u1"
    assert caller.role == Role.ORGANIZER
    assert caller.is_organizer
    assert not caller.is_donor

"""
Core business logic for generating and booking camp slots.

Pure domain logic without any external dependencies (no store, no I/O).
Every transition returns updated copies and leaves its inputs untouched, so
the service layer can retry a failed commit from a fresh read.
"""

import dataclasses
import random
import uuid
from typing import List, Optional, Tuple

from .exceptions import AlreadyRegistered, InvalidConfiguration, NoSlotsAvailable
from .models import (
    AuditReport,
    Camp,
    CampDraft,
    Registration,
    RegistrationStatus,
    Slot,
    format_clock,
    parse_clock,
    parse_date,
)

TOKEN_MIN = 100000
TOKEN_MAX = 999999


class SlotScheduler:
    """
    Generates slot sequences and applies claim/release transitions.

    Slot order is significant: claims always take the earliest free seat of
    the earliest period, so the sequence is kept chronological and then by
    capacity index.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def generate_slots(
        self,
        start_time: str,
        end_time: str,
        interval_minutes: int,
        capacity: int
    ) -> List[Slot]:
        """
        Generate the ordered, unbooked slot sequence for a camp window.

        A trailing partial interval is dropped. If no whole interval fits the
        result is empty.

        Raises:
            InvalidConfiguration: On a malformed or empty window, or a
                non-positive interval or capacity
        """
        start = parse_clock(start_time)
        end = parse_clock(end_time)

        if end <= start:
            raise InvalidConfiguration(
                f"End time {end_time} must be after start time {start_time}"
            )
        if interval_minutes <= 0:
            raise InvalidConfiguration(
                f"Slot interval must be greater than zero, got {interval_minutes}"
            )
        if capacity <= 0:
            raise InvalidConfiguration(
                f"Slot capacity must be greater than zero, got {capacity}"
            )

        slots: List[Slot] = []
        cursor = start

        while True:
            slot_end = cursor + interval_minutes
            if slot_end > end:
                break

            for _ in range(capacity):
                slots.append(Slot(start=format_clock(cursor), end=format_clock(slot_end)))

            cursor = slot_end

        return slots

    def build_camp(self, camp_id: str, organizer_id: str, draft: CampDraft) -> Camp:
        """
        Validate organizer input and create a camp with its slots.

        Raises:
            InvalidConfiguration: If any field is missing or malformed
        """
        title = (draft.title or "").strip()
        venue = (draft.venue or "").strip()
        if not title:
            raise InvalidConfiguration("Camp title must not be empty")
        if not venue:
            raise InvalidConfiguration("Camp venue must not be empty")

        day = parse_date(draft.date)
        start = format_clock(parse_clock(draft.start_time))
        end = format_clock(parse_clock(draft.end_time))

        slots = self.generate_slots(start, end, draft.slot_interval, draft.slot_capacity)

        return Camp(
            id=camp_id,
            organizer_id=organizer_id,
            title=title,
            venue=venue,
            date=day.to_date_string(),
            start_time=start,
            end_time=end,
            slot_interval=draft.slot_interval,
            slot_capacity=draft.slot_capacity,
            slots=slots,
        )

    def generate_token(self) -> str:
        """Return a 6-digit display code. Collisions are possible and accepted."""
        return str(self._rng.randint(TOKEN_MIN, TOKEN_MAX))

    def claim_slot(
        self,
        camp: Camp,
        donor_id: str,
        *,
        token: Optional[str] = None,
        registration_id: Optional[str] = None
    ) -> Tuple[Camp, Registration]:
        """
        Book the first free slot of a camp for a donor.

        Returns:
            The updated camp copy and the new active registration

        Raises:
            AlreadyRegistered: If the donor already holds a slot in this camp
            NoSlotsAvailable: If every slot is booked
        """
        held = camp.slot_of(donor_id)
        if held is not None:
            raise AlreadyRegistered(
                f"Donor {donor_id} already holds slot {held.start}-{held.end} in camp {camp.id}"
            )

        updated = camp.clone()

        index = next(
            (i for i, slot in enumerate(updated.slots) if not slot.booked),
            None
        )
        if index is None:
            raise NoSlotsAvailable(f"No slots available in camp {camp.id}")

        slot = updated.slots[index]
        updated.slots[index] = Slot(
            start=slot.start,
            end=slot.end,
            booked=True,
            donor_id=donor_id,
        )

        registration = Registration(
            id=registration_id or uuid.uuid4().hex,
            donor_id=donor_id,
            camp_id=camp.id,
            token=token or self.generate_token(),
            slot_start=slot.start,
            slot_end=slot.end,
        )

        return updated, registration

    def cancel_registration(
        self,
        camp: Optional[Camp],
        registration: Registration
    ) -> Tuple[Optional[Camp], Registration]:
        """
        Cancel a registration and release the slot it occupies.

        The slot is matched on the registration's (start, end, donor).
        Cancelling an already-cancelled registration changes nothing, and a
        missing camp or an already-freed slot is tolerated.
        """
        if registration.status == RegistrationStatus.CANCELLED:
            return camp, registration

        cancelled = dataclasses.replace(registration, status=RegistrationStatus.CANCELLED)

        if camp is None:
            return None, cancelled

        updated = camp.clone()
        for index, slot in enumerate(updated.slots):
            if slot.booked and slot.matches(registration.slot_start, registration.slot_end, registration.donor_id):
                updated.slots[index] = Slot(start=slot.start, end=slot.end)
                break

        return updated, cancelled

    def reconcile_slots(
        self,
        camp: Camp,
        registrations: List[Registration]
    ) -> Tuple[Camp, AuditReport]:
        """
        Compare slot occupancy against the camp's active registrations.

        Booked slots without a matching active registration are freed.
        Active registrations without a matching booked slot are reported
        but left alone.
        """
        pending = [reg for reg in registrations if reg.is_active and reg.camp_id == camp.id]
        report = AuditReport(camp_id=camp.id)
        updated = camp.clone()

        for index, slot in enumerate(updated.slots):
            if not slot.booked:
                continue

            match = next(
                (reg for reg in pending if slot.matches(reg.slot_start, reg.slot_end, reg.donor_id)),
                None
            )
            if match is not None:
                pending.remove(match)
                continue

            report.freed_slots.append(slot)
            updated.slots[index] = Slot(start=slot.start, end=slot.end)

        report.orphaned_registrations.extend(pending)

        return updated, report

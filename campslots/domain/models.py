"""
Domain models for camps, slots and registrations.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pendulum
from pendulum import Date

from .exceptions import InvalidConfiguration

CLOCK_FORMAT = "HH:mm"
DATE_FORMAT = "YYYY-MM-DD"


def parse_clock(value: str) -> int:
    """
    Parse a wall-clock ``HH:MM`` string into minutes after midnight.

    Raises:
        InvalidConfiguration: If the value is not a valid 24h time
    """
    try:
        parsed = pendulum.from_format(str(value).strip(), CLOCK_FORMAT)
    except ValueError as exc:
        raise InvalidConfiguration(f"Invalid time '{value}', expected HH:MM") from exc
    return parsed.hour * 60 + parsed.minute


def format_clock(minutes: int) -> str:
    """Format minutes after midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: str) -> Date:
    """
    Parse an ISO calendar date (``YYYY-MM-DD``).

    Raises:
        InvalidConfiguration: If the value is not a valid date
    """
    try:
        return pendulum.from_format(str(value).strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidConfiguration(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


class Role(str, Enum):
    """Capability tag supplied by the identity provider."""
    DONOR = "donor"
    ORGANIZER = "organizer"


class RegistrationStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    # Only ever read from stored data
    COMPLETED = "completed"


@dataclass
class Slot:
    """
    One bookable seat in one appointment period.

    Invariant: a booked slot carries a donor id, a free slot does not.
    """
    start: str
    end: str
    booked: bool = False
    donor_id: Optional[str] = None

    def __post_init__(self):
        if self.booked and not self.donor_id:
            raise ValueError(f"Booked slot {self.start}-{self.end} has no donor")
        if not self.booked and self.donor_id:
            raise ValueError(f"Free slot {self.start}-{self.end} carries donor {self.donor_id}")

    @property
    def period(self) -> Tuple[str, str]:
        return (self.start, self.end)

    def matches(self, start: str, end: str, donor_id: Optional[str]) -> bool:
        return self.start == start and self.end == end and self.donor_id == donor_id

    def format_display(self) -> str:
        state = f"booked by {self.donor_id}" if self.booked else "free"
        return f"{self.start} – {self.end} ({state})"

    def to_document(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "booked": self.booked,
            "donorId": self.donor_id,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Slot":
        return cls(
            start=data["start"],
            end=data["end"],
            booked=bool(data.get("booked", False)),
            donor_id=data.get("donorId") or None,
        )


@dataclass
class CampDraft:
    """Organizer input for a new camp, before slots exist."""
    title: str
    venue: str
    date: str
    start_time: str
    end_time: str
    slot_interval: int = 15
    slot_capacity: int = 5


@dataclass
class Camp:
    """
    A donation camp and its generated slot sequence.

    ``version`` is the store's concurrency token for the document this camp
    was read from; it is not persisted as a field.
    """
    id: str
    organizer_id: str
    title: str
    venue: str
    date: str
    start_time: str
    end_time: str
    slot_interval: int
    slot_capacity: int
    slots: List[Slot] = field(default_factory=list)
    version: Any = field(default=None, compare=False)

    def total_slots(self) -> int:
        return len(self.slots)

    def available_slots(self) -> int:
        return sum(1 for slot in self.slots if not slot.booked)

    def is_full(self) -> bool:
        return self.available_slots() == 0

    def day(self) -> Date:
        return parse_date(self.date)

    def slot_of(self, donor_id: str) -> Optional[Slot]:
        """Return the slot currently booked by a donor, if any."""
        for slot in self.slots:
            if slot.booked and slot.donor_id == donor_id:
                return slot
        return None

    def slots_by_period(self) -> List[Tuple[str, str, int, int]]:
        """
        Summarize occupancy per period.

        Returns:
            List of (start, end, free, total) tuples in chronological order
        """
        summary: Dict[Tuple[str, str], List[int]] = {}
        for slot in self.slots:
            counts = summary.setdefault(slot.period, [0, 0])
            if not slot.booked:
                counts[0] += 1
            counts[1] += 1
        return [(start, end, free, total) for (start, end), (free, total) in summary.items()]

    def clone(self) -> "Camp":
        return copy.deepcopy(self)

    def format_display(self) -> str:
        """
        Format the camp for display.
        Format: Weekday, Month D, YYYY | HH:MM – HH:MM | Venue
        """
        date_str = self.day().format("dddd, MMMM D, YYYY")
        return (
            f"{date_str} | {self.start_time} – {self.end_time} | {self.venue} "
            f"({self.available_slots()}/{self.total_slots()} free)"
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "organizerId": self.organizer_id,
            "title": self.title,
            "venue": self.venue,
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "slotInterval": self.slot_interval,
            "slotCapacity": self.slot_capacity,
            "slots": [slot.to_document() for slot in self.slots],
        }

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], version: Any = None) -> "Camp":
        return cls(
            id=doc_id,
            organizer_id=data["organizerId"],
            title=data.get("title", ""),
            venue=data.get("venue", ""),
            date=data["date"],
            start_time=data["startTime"],
            end_time=data["endTime"],
            slot_interval=int(data["slotInterval"]),
            slot_capacity=int(data["slotCapacity"]),
            slots=[Slot.from_document(item) for item in data.get("slots", [])],
            version=version,
        )


@dataclass
class Registration:
    """A donor's claim on exactly one slot of one camp."""
    id: str
    donor_id: str
    camp_id: str
    token: str
    slot_start: str
    slot_end: str
    status: RegistrationStatus = RegistrationStatus.ACTIVE
    version: Any = field(default=None, compare=False)

    @property
    def is_active(self) -> bool:
        return self.status == RegistrationStatus.ACTIVE

    def format_display(self) -> str:
        return f"#{self.token} | {self.slot_start} – {self.slot_end} | {self.status.value}"

    def to_document(self) -> Dict[str, Any]:
        return {
            "donorId": self.donor_id,
            "campId": self.camp_id,
            "token": self.token,
            "slotStart": self.slot_start,
            "slotEnd": self.slot_end,
            "status": self.status.value,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], version: Any = None) -> "Registration":
        return cls(
            id=doc_id,
            donor_id=data["donorId"],
            camp_id=data["campId"],
            token=str(data.get("token", "")),
            slot_start=data["slotStart"],
            slot_end=data["slotEnd"],
            status=RegistrationStatus(data.get("status", RegistrationStatus.ACTIVE.value)),
            version=version,
        )


@dataclass(frozen=True)
class Caller:
    """An authenticated user as seen by the service layer."""
    user_id: str
    role: Role

    @property
    def is_organizer(self) -> bool:
        return self.role == Role.ORGANIZER

    @property
    def is_donor(self) -> bool:
        return self.role == Role.DONOR


@dataclass
class UserProfile:
    """Entry of the ``users`` collection."""
    uid: str
    role: Role
    name: str
    email: str

    def as_caller(self) -> Caller:
        return Caller(user_id=self.uid, role=self.role)

    def to_document(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "role": self.role.value,
            "name": self.name,
            "email": self.email,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            uid=data["uid"],
            role=Role(data["role"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
        )


@dataclass
class CampFilter:
    """Optional criteria for listing camps."""
    organizer_id: Optional[str] = None
    upcoming_only: bool = False
    available_only: bool = False


@dataclass
class AuditReport:
    """Outcome of reconciling a camp's slots against its registrations."""
    camp_id: str
    freed_slots: List[Slot] = field(default_factory=list)
    orphaned_registrations: List[Registration] = field(default_factory=list)
    applied: bool = False

    @property
    def is_consistent(self) -> bool:
        return not self.freed_slots and not self.orphaned_registrations


@dataclass
class OrganizerStats:
    """Totals over all camps of one organizer."""
    total_camps: int
    active_registrations: int
    average_fill_rate: int  # percent of slots held by active registrations

"""
Application service for camps and registrations.

The service owns the read -> transition -> commit cycle: it loads documents
from a store, hands them to the pure ``SlotScheduler`` and writes the result
back in a single commit guarded by the version it read. A concurrent change
surfaces as ``ConcurrentModification`` and the whole cycle is retried from a
fresh read, which serializes claims per camp.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import pendulum
from pendulum import Date

from ..domain.exceptions import (
    ConcurrentModification,
    InconsistentState,
    InvalidConfiguration,
    NotFound,
    PermissionDenied,
)
from ..domain.models import (
    AuditReport,
    Caller,
    Camp,
    CampDraft,
    CampFilter,
    OrganizerStats,
    Registration,
    Role,
    UserProfile,
    parse_date,
)
from ..domain.slot_scheduler import SlotScheduler
from .store import CAMPS, REGISTRATIONS, USERS, DocumentStoreProtocol, Write

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDITABLE_FIELDS = {"title": "title", "venue": "venue", "date": "date"}
SLOT_SHAPING_FIELDS = {"start_time", "end_time", "slot_interval", "slot_capacity", "slots"}


class CampService:
    """
    Camp and registration operations for organizers and donors.

    Only organizers may create, edit, audit or delete camps, and only their
    own. Only donors may register, always for themselves.
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        scheduler: Optional[SlotScheduler] = None,
        *,
        timezone: str = "UTC",
        max_retries: int = 3,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler or SlotScheduler()
        self._timezone = timezone
        self._max_retries = max(1, max_retries)
        self._clock = clock or (lambda: int(time.time() * 1000))

    # -- camps ---------------------------------------------------------------

    def create_camp(self, caller: Caller, draft: CampDraft) -> Camp:
        """
        Create a camp and generate its slots.

        Raises:
            PermissionDenied: If the caller is not an organizer
            InvalidConfiguration: If the draft is malformed or the date is in the past
        """
        self._require_role(caller, Role.ORGANIZER)

        camp_id = f"camp_{self._clock()}_{caller.user_id}"
        camp = self._scheduler.build_camp(camp_id, caller.user_id, draft)
        self._check_not_past(camp.day())

        self._store.commit([Write.create(CAMPS, camp.id, camp.to_document())])
        logger.info("Created camp %s with %d slots", camp.id, camp.total_slots())

        return self.get_camp(camp.id)

    def get_camp(self, camp_id: str) -> Camp:
        doc = self._store.get(CAMPS, camp_id)
        if doc is None:
            raise NotFound(f"Camp {camp_id} not found")
        return Camp.from_document(doc.id, doc.data, doc.version)

    def list_camps(self, camp_filter: Optional[CampFilter] = None) -> List[Camp]:
        """List camps ordered by date and start time."""
        camp_filter = camp_filter or CampFilter()

        if camp_filter.organizer_id:
            docs = self._store.query(CAMPS, organizerId=camp_filter.organizer_id)
        else:
            docs = self._store.query(CAMPS)

        camps = [Camp.from_document(doc.id, doc.data, doc.version) for doc in docs]

        if camp_filter.upcoming_only:
            today = pendulum.today(self._timezone).date()
            camps = [camp for camp in camps if camp.day() >= today]

        if camp_filter.available_only:
            camps = [camp for camp in camps if not camp.is_full()]

        return sorted(camps, key=lambda camp: (camp.date, camp.start_time, camp.id))

    def update_camp(self, caller: Caller, camp_id: str, **changes: Any) -> Camp:
        """
        Edit a camp's title, venue or date.

        Slots are generated once, so the time window, interval and capacity
        cannot change after creation.

        Raises:
            InvalidConfiguration: On a slot-shaping or unknown field, or a bad value
        """
        forbidden = sorted(set(changes) & SLOT_SHAPING_FIELDS)
        if forbidden:
            raise InvalidConfiguration(
                f"Cannot change {', '.join(forbidden)} after slots have been generated"
            )
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise InvalidConfiguration(f"Unknown camp field(s): {', '.join(unknown)}")

        fields: Dict[str, Any] = {}
        for name, value in changes.items():
            value = str(value).strip()
            if not value:
                raise InvalidConfiguration(f"Camp {name} must not be empty")
            if name == "date":
                day = parse_date(value)
                self._check_not_past(day)
                value = day.to_date_string()
            fields[EDITABLE_FIELDS[name]] = value

        def attempt() -> Camp:
            camp = self._owned_camp(caller, camp_id)
            if fields:
                self._store.commit([Write.update(CAMPS, camp.id, fields, camp.version)])
            return self.get_camp(camp_id)

        return self._with_retries(f"update camp {camp_id}", attempt)

    def delete_camp(self, caller: Caller, camp_id: str) -> None:
        """
        Delete a camp together with all of its registrations.

        Raises:
            NotFound: If the camp does not exist
            PermissionDenied: If the caller does not own the camp
        """
        def attempt() -> int:
            camp = self._owned_camp(caller, camp_id)
            registrations = self._store.query(REGISTRATIONS, campId=camp_id)

            writes = [Write.delete(REGISTRATIONS, doc.id) for doc in registrations]
            writes.append(Write.delete(CAMPS, camp_id, camp.version))
            self._store.commit(writes)
            return len(registrations)

        removed = self._with_retries(f"delete camp {camp_id}", attempt)
        logger.info("Deleted camp %s and %d registration(s)", camp_id, removed)

    # -- registrations -------------------------------------------------------

    def register_donor(self, caller: Caller, camp_id: str) -> Registration:
        """
        Claim the earliest free slot of a camp for the calling donor.

        Raises:
            PermissionDenied: If the caller is not a donor
            NotFound: If the camp does not exist
            AlreadyRegistered: If the donor already holds a slot in the camp
            NoSlotsAvailable: If the camp is fully booked
        """
        self._require_role(caller, Role.DONOR)

        def attempt() -> Registration:
            camp = self.get_camp(camp_id)
            updated, registration = self._scheduler.claim_slot(camp, caller.user_id)
            self._store.commit([
                Write.update(CAMPS, camp.id, {"slots": _slot_documents(updated)}, camp.version),
                Write.create(REGISTRATIONS, registration.id, registration.to_document()),
            ])
            return registration

        registration = self._with_retries(f"claim slot in camp {camp_id}", attempt)
        logger.info(
            "Donor %s booked %s-%s in camp %s",
            caller.user_id, registration.slot_start, registration.slot_end, camp_id
        )
        return self.get_registration(registration.id)

    def get_registration(self, registration_id: str) -> Registration:
        doc = self._store.get(REGISTRATIONS, registration_id)
        if doc is None:
            raise NotFound(f"Registration {registration_id} not found")
        return Registration.from_document(doc.id, doc.data, doc.version)

    def cancel_registration(self, caller: Caller, registration_id: str) -> Registration:
        """
        Cancel a registration and free its slot.

        Allowed for the donor who holds the registration and for the
        organizer who owns the camp. Cancelling twice is a no-op.

        Raises:
            NotFound: If the registration does not exist
            PermissionDenied: If the caller is neither of the above
        """
        def attempt() -> Registration:
            registration = self.get_registration(registration_id)
            camp_doc = self._store.get(CAMPS, registration.camp_id)
            camp = Camp.from_document(camp_doc.id, camp_doc.data, camp_doc.version) if camp_doc else None

            self._check_cancel_allowed(caller, registration, camp)

            if not registration.is_active:
                return registration

            updated_camp, cancelled = self._scheduler.cancel_registration(camp, registration)

            writes = [
                Write.update(
                    REGISTRATIONS, cancelled.id,
                    {"status": cancelled.status.value},
                    registration.version
                )
            ]
            if camp is not None and updated_camp is not None:
                writes.insert(0, Write.update(CAMPS, camp.id, {"slots": _slot_documents(updated_camp)}, camp.version))
            self._store.commit(writes)
            logger.info("Cancelled registration %s in camp %s", registration_id, registration.camp_id)
            return cancelled

        self._with_retries(f"cancel registration {registration_id}", attempt)
        return self.get_registration(registration_id)

    def list_registrations(
        self,
        *,
        donor_id: Optional[str] = None,
        camp_id: Optional[str] = None,
        include_cancelled: bool = False
    ) -> List[Registration]:
        """
        List registrations of a donor or of a camp.

        Raises:
            ValueError: If neither donor_id nor camp_id is given
        """
        criteria: Dict[str, Any] = {}
        if donor_id:
            criteria["donorId"] = donor_id
        if camp_id:
            criteria["campId"] = camp_id
        if not criteria:
            raise ValueError("list_registrations needs a donor_id or a camp_id")

        registrations = [
            Registration.from_document(doc.id, doc.data, doc.version)
            for doc in self._store.query(REGISTRATIONS, **criteria)
        ]
        if not include_cancelled:
            registrations = [reg for reg in registrations if reg.is_active]

        return sorted(registrations, key=lambda reg: (reg.camp_id, reg.slot_start, reg.id))

    def list_camp_registrations(
        self,
        caller: Caller,
        camp_id: str,
        *,
        include_cancelled: bool = False
    ) -> List[Registration]:
        """
        List the registrations of a camp the calling organizer owns.

        Raises:
            NotFound: If the camp does not exist
            PermissionDenied: If the caller does not own the camp
        """
        self._owned_camp(caller, camp_id)
        return self.list_registrations(camp_id=camp_id, include_cancelled=include_cancelled)

    def organizer_stats(self, caller: Caller) -> OrganizerStats:
        """Summarize all camps of the calling organizer."""
        self._require_role(caller, Role.ORGANIZER)

        camps = self.list_camps(CampFilter(organizer_id=caller.user_id))
        fill_rates = []
        active = 0
        for camp in camps:
            booked = len(self.list_registrations(camp_id=camp.id))
            active += booked
            fill_rates.append(booked / camp.total_slots() * 100 if camp.total_slots() else 0.0)

        return OrganizerStats(
            total_camps=len(camps),
            active_registrations=active,
            average_fill_rate=int(sum(fill_rates) / len(fill_rates) + 0.5) if fill_rates else 0,
        )

    def donor_profiles(self, registrations: Iterable[Registration]) -> Dict[str, UserProfile]:
        """Look up the user profile of every donor in the given registrations."""
        profiles: Dict[str, UserProfile] = {}
        for registration in registrations:
            if registration.donor_id in profiles:
                continue
            doc = self._store.get(USERS, registration.donor_id)
            if doc is not None:
                profiles[registration.donor_id] = UserProfile.from_document(doc.data)
        return profiles

    # -- audit ---------------------------------------------------------------

    def audit_camp(
        self,
        caller: Caller,
        camp_id: str,
        *,
        apply: bool = False,
        strict: bool = False
    ) -> AuditReport:
        """
        Check a camp's booked slots against its active registrations.

        With ``apply`` the phantom bookings are freed. With ``strict`` any
        discrepancy raises instead of being reported.

        Raises:
            InconsistentState: In strict mode, if the camp is inconsistent
        """
        def attempt() -> AuditReport:
            camp = self._owned_camp(caller, camp_id)
            registrations = self.list_registrations(camp_id=camp_id)
            updated, report = self._scheduler.reconcile_slots(camp, registrations)

            if strict and not report.is_consistent:
                raise InconsistentState(
                    f"Camp {camp_id} has {len(report.freed_slots)} phantom booking(s) "
                    f"and {len(report.orphaned_registrations)} orphaned registration(s)"
                )

            if apply and report.freed_slots:
                self._store.commit([
                    Write.update(CAMPS, camp.id, {"slots": _slot_documents(updated)}, camp.version)
                ])
                report.applied = True
                logger.warning("Freed %d phantom booking(s) in camp %s", len(report.freed_slots), camp_id)

            return report

        return self._with_retries(f"audit camp {camp_id}", attempt)

    # -- helpers -------------------------------------------------------------

    def _with_retries(self, action: str, attempt: Callable[[], T]) -> T:
        for attempt_number in range(1, self._max_retries):
            try:
                return attempt()
            except ConcurrentModification as exc:
                logger.warning("Conflict on %s (attempt %d): %s. Retrying...", action, attempt_number, exc)

        # Last attempt propagates the conflict to the caller
        return attempt()

    def _owned_camp(self, caller: Caller, camp_id: str) -> Camp:
        self._require_role(caller, Role.ORGANIZER)
        camp = self.get_camp(camp_id)
        if camp.organizer_id != caller.user_id:
            raise PermissionDenied(f"Camp {camp_id} belongs to another organizer")
        return camp

    def _check_not_past(self, day: Date) -> None:
        today = pendulum.today(self._timezone).date()
        if day < today:
            raise InvalidConfiguration(f"Camp date {day.to_date_string()} is in the past")

    @staticmethod
    def _require_role(caller: Caller, role: Role) -> None:
        if caller.role != role:
            raise PermissionDenied(f"Only {role.value}s may do this, caller is a {caller.role.value}")

    @staticmethod
    def _check_cancel_allowed(caller: Caller, registration: Registration, camp: Optional[Camp]) -> None:
        if caller.is_donor and registration.donor_id == caller.user_id:
            return
        if caller.is_organizer and camp is not None and camp.organizer_id == caller.user_id:
            return
        raise PermissionDenied(f"Registration {registration.id} belongs to someone else")


def _slot_documents(camp: Camp) -> List[Dict[str, Any]]:
    return [slot.to_document() for slot in camp.slots]

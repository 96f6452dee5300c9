"""Persistence interface for leads, realtors, assignments and notifications.

The core only talks to ``LeadStore``. Two guarantees matter to callers:

* lead status writes from the reconciler are compare-and-set on the current
  status, so a racing manual edit is never silently overwritten, and they
  insert their notification in the same operation;
* assignment writes are compare-and-set on ``version`` and the win transition
  (``sign_listing_agreement``) updates the winner and relabels its siblings in
  one transaction.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from leadroute.models.assignment import AssignmentStatus, LeadAssignment
from leadroute.models.lead import Lead, LeadFilter, LeadStatus
from leadroute.models.notification import Notification
from leadroute.models.realtor import Realtor
from leadroute.models.user import UserAccount
from leadroute.utils.errors import ConflictError, NotFoundError


class LeadStore(ABC):
    """Abstract async store."""

    # Leads
    @abstractmethod
    async def insert_lead(self, lead: Lead) -> Lead:
        """Insert a lead. Raises ConflictError if its lead code already exists."""

    @abstractmethod
    async def get_lead(self, lead_pk: str) -> Optional[Lead]: ...

    @abstractmethod
    async def get_lead_by_code(self, lead_code: str) -> Optional[Lead]: ...

    @abstractmethod
    async def list_leads(self, lead_filter: LeadFilter, offset: int, limit: int) -> tuple[list[Lead], int]:
        """Return one page of leads (newest first) and the total match count."""

    @abstractmethod
    async def list_leads_by_status(
        self, status: LeadStatus, zip_codes: Optional[Iterable[str]] = None
    ) -> list[Lead]: ...

    @abstractmethod
    async def update_lead(self, lead_pk: str, updates: dict[str, Any]) -> Lead: ...

    @abstractmethod
    async def compare_and_set_lead_status(
        self,
        lead_pk: str,
        expected: LeadStatus,
        new: LeadStatus,
        require_unassigned: bool = False,
        notification: Optional[Notification] = None,
    ) -> bool:
        """
        Set status only if it still equals ``expected``. Returns whether it was written.

        With ``require_unassigned`` the write also requires the lead to have no
        assignments. ``notification`` is inserted in the same operation: if the
        insert fails the status is left unchanged.
        """

    # Realtors
    @abstractmethod
    async def insert_realtor(self, realtor: Realtor) -> Realtor: ...

    @abstractmethod
    async def get_realtor(self, realtor_id: str) -> Optional[Realtor]: ...

    @abstractmethod
    async def get_realtor_by_agent_code(self, agent_code: str) -> Optional[Realtor]: ...

    @abstractmethod
    async def get_realtor_by_user_id(self, user_id: str) -> Optional[Realtor]: ...

    @abstractmethod
    async def list_realtors(
        self, created_by_id: Optional[str] = None, active_only: bool = False
    ) -> list[Realtor]: ...

    @abstractmethod
    async def update_realtor(self, realtor_id: str, updates: dict[str, Any]) -> Realtor: ...

    # User accounts
    @abstractmethod
    async def insert_user(self, user: UserAccount) -> UserAccount: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserAccount]: ...

    # Assignments
    @abstractmethod
    async def insert_assignment(self, assignment: LeadAssignment) -> LeadAssignment: ...

    @abstractmethod
    async def get_assignment(self, assignment_id: str) -> Optional[LeadAssignment]: ...

    @abstractmethod
    async def list_assignments_for_lead(self, lead_pk: str) -> list[LeadAssignment]: ...

    @abstractmethod
    async def list_assignments_for_user(
        self, user_id: str, exclude_statuses: Iterable[AssignmentStatus] = ()
    ) -> list[LeadAssignment]: ...

    @abstractmethod
    async def update_assignment(
        self, assignment_id: str, expected_version: int, updates: dict[str, Any]
    ) -> LeadAssignment:
        """Write ``updates`` if the version still matches, bumping it. ConflictError otherwise."""

    @abstractmethod
    async def sign_listing_agreement(
        self, assignment_id: str, expected_version: int, callback_time: Optional[datetime] = None
    ) -> LeadAssignment:
        """Atomically mark the winner and relabel every sibling as taken by another realtor."""

    # Notifications
    @abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification: ...

    @abstractmethod
    async def list_notifications(self, limit: int) -> list[Notification]: ...


def _matches_search(lead: Lead, search: str) -> bool:
    needle = search.strip().lower()
    haystack = (
        lead.lead_id, lead.first_name, lead.last_name, lead.phone_number,
        lead.email_address, lead.property_address, lead.city, lead.zip_code,
    )
    return any(needle in value.lower() for value in haystack if value)


def _matches_filter(lead: Lead, lead_filter: LeadFilter) -> bool:
    if lead_filter.status is not None and lead.status != lead_filter.status:
        return False
    submitted = lead.submission_date.date()
    if lead_filter.start_date and submitted < lead_filter.start_date:
        return False
    if lead_filter.end_date and submitted > lead_filter.end_date:
        return False
    if lead_filter.search and not _matches_search(lead, lead_filter.search):
        return False
    return True


class InMemoryLeadStore(LeadStore):
    """Process-local store. A per-lead lock serializes assignment writes of one lead."""

    def __init__(self):
        self.leads: dict[str, Lead] = {}
        self.realtors: dict[str, Realtor] = {}
        self.users: dict[str, UserAccount] = {}
        self.assignments: dict[str, LeadAssignment] = {}
        self.notifications: list[Notification] = []
        self._lead_locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, lead_pk: str) -> asyncio.Lock:
        if lead_pk not in self._lead_locks:
            self._lead_locks[lead_pk] = asyncio.Lock()
        return self._lead_locks[lead_pk]

    # Leads
    async def insert_lead(self, lead: Lead) -> Lead:
        if any(existing.lead_id == lead.lead_id for existing in self.leads.values()):
            raise ConflictError(f"Lead code already exists: {lead.lead_id}")
        self.leads[lead.id] = lead.model_copy(deep=True)
        return lead.model_copy(deep=True)

    async def get_lead(self, lead_pk: str) -> Optional[Lead]:
        lead = self.leads.get(lead_pk)
        return lead.model_copy(deep=True) if lead else None

    async def get_lead_by_code(self, lead_code: str) -> Optional[Lead]:
        for lead in self.leads.values():
            if lead.lead_id == lead_code:
                return lead.model_copy(deep=True)
        return None

    async def list_leads(self, lead_filter: LeadFilter, offset: int, limit: int) -> tuple[list[Lead], int]:
        matches = [lead for lead in self.leads.values() if _matches_filter(lead, lead_filter)]
        matches.sort(key=lambda lead: lead.submission_date, reverse=True)
        page = matches[offset:offset + limit]
        return [lead.model_copy(deep=True) for lead in page], len(matches)

    async def list_leads_by_status(
        self, status: LeadStatus, zip_codes: Optional[Iterable[str]] = None
    ) -> list[Lead]:
        wanted = set(zip_codes) if zip_codes is not None else None
        return [
            lead.model_copy(deep=True)
            for lead in self.leads.values()
            if lead.status == status and (wanted is None or lead.zip_code in wanted)
        ]

    async def update_lead(self, lead_pk: str, updates: dict[str, Any]) -> Lead:
        lead = self.leads.get(lead_pk)
        if lead is None:
            raise NotFoundError("Lead", lead_pk)
        updated = Lead.model_validate({**lead.model_dump(), **updates})
        self.leads[lead_pk] = updated
        return updated.model_copy(deep=True)

    async def compare_and_set_lead_status(
        self,
        lead_pk: str,
        expected: LeadStatus,
        new: LeadStatus,
        require_unassigned: bool = False,
        notification: Optional[Notification] = None,
    ) -> bool:
        if lead_pk not in self.leads:
            raise NotFoundError("Lead", lead_pk)
        # Same lock as insert_assignment, so the assignment check cannot go stale
        async with self._lock_for(lead_pk):
            lead = self.leads[lead_pk]
            if lead.status != expected:
                return False
            if require_unassigned and any(a.lead_id == lead_pk for a in self.assignments.values()):
                return False
            if notification is not None:
                await self.insert_notification(notification)
            self.leads[lead_pk] = lead.model_copy(update={"status": new})
        return True

    # Realtors
    async def insert_realtor(self, realtor: Realtor) -> Realtor:
        self.realtors[realtor.realtor_id] = realtor.model_copy(deep=True)
        return realtor.model_copy(deep=True)

    async def get_realtor(self, realtor_id: str) -> Optional[Realtor]:
        realtor = self.realtors.get(realtor_id)
        return realtor.model_copy(deep=True) if realtor else None

    async def get_realtor_by_agent_code(self, agent_code: str) -> Optional[Realtor]:
        for realtor in self.realtors.values():
            if realtor.agent_code == agent_code:
                return realtor.model_copy(deep=True)
        return None

    async def get_realtor_by_user_id(self, user_id: str) -> Optional[Realtor]:
        for realtor in self.realtors.values():
            if realtor.user_id == user_id:
                return realtor.model_copy(deep=True)
        return None

    async def list_realtors(
        self, created_by_id: Optional[str] = None, active_only: bool = False
    ) -> list[Realtor]:
        realtors = [
            realtor for realtor in self.realtors.values()
            if (created_by_id is None or realtor.created_by_id == created_by_id)
            and (not active_only or realtor.is_active)
        ]
        realtors.sort(key=lambda r: r.created_at.timestamp() if r.created_at else 0.0, reverse=True)
        return [realtor.model_copy(deep=True) for realtor in realtors]

    async def update_realtor(self, realtor_id: str, updates: dict[str, Any]) -> Realtor:
        realtor = self.realtors.get(realtor_id)
        if realtor is None:
            raise NotFoundError("Realtor", realtor_id)
        updated = Realtor.model_validate({**realtor.model_dump(), **updates})
        self.realtors[realtor_id] = updated
        return updated.model_copy(deep=True)

    # User accounts
    async def insert_user(self, user: UserAccount) -> UserAccount:
        self.users[user.user_id] = user.model_copy(deep=True)
        return user.model_copy(deep=True)

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    # Assignments
    async def insert_assignment(self, assignment: LeadAssignment) -> LeadAssignment:
        async with self._lock_for(assignment.lead_id):
            self.assignments[assignment.id] = assignment.model_copy(deep=True)
        return assignment.model_copy(deep=True)

    async def get_assignment(self, assignment_id: str) -> Optional[LeadAssignment]:
        assignment = self.assignments.get(assignment_id)
        return assignment.model_copy(deep=True) if assignment else None

    async def list_assignments_for_lead(self, lead_pk: str) -> list[LeadAssignment]:
        assignments = [a for a in self.assignments.values() if a.lead_id == lead_pk]
        assignments.sort(key=lambda a: a.sent_date, reverse=True)
        return [a.model_copy(deep=True) for a in assignments]

    async def list_assignments_for_user(
        self, user_id: str, exclude_statuses: Iterable[AssignmentStatus] = ()
    ) -> list[LeadAssignment]:
        excluded = set(exclude_statuses)
        assignments = [
            a for a in self.assignments.values()
            if a.user_id == user_id and a.status not in excluded
        ]
        assignments.sort(key=lambda a: a.sent_date, reverse=True)
        return [a.model_copy(deep=True) for a in assignments]

    def _checked_assignment(self, assignment_id: str, expected_version: int) -> LeadAssignment:
        current = self.assignments.get(assignment_id)
        if current is None:
            raise NotFoundError("Assignment", assignment_id)
        if current.version != expected_version:
            raise ConflictError(
                f"Assignment {assignment_id} changed concurrently "
                f"(expected version {expected_version}, found {current.version})"
            )
        return current

    async def update_assignment(
        self, assignment_id: str, expected_version: int, updates: dict[str, Any]
    ) -> LeadAssignment:
        existing = self.assignments.get(assignment_id)
        if existing is None:
            raise NotFoundError("Assignment", assignment_id)
        async with self._lock_for(existing.lead_id):
            current = self._checked_assignment(assignment_id, expected_version)
            updated = LeadAssignment.model_validate(
                {**current.model_dump(), **updates, "version": current.version + 1}
            )
            self.assignments[assignment_id] = updated
        return updated.model_copy(deep=True)

    async def sign_listing_agreement(
        self, assignment_id: str, expected_version: int, callback_time: Optional[datetime] = None
    ) -> LeadAssignment:
        existing = self.assignments.get(assignment_id)
        if existing is None:
            raise NotFoundError("Assignment", assignment_id)
        async with self._lock_for(existing.lead_id):
            current = self._checked_assignment(assignment_id, expected_version)

            # Build every new row first so nothing is written if validation fails
            winner_updates = {"status": AssignmentStatus.LISTING_AGREEMENT_SIGNED}
            if callback_time is not None:
                winner_updates["callback_time"] = callback_time
            staged = {
                assignment_id: current.model_copy(
                    update={**winner_updates, "version": current.version + 1}
                )
            }
            for sibling in self.assignments.values():
                if sibling.lead_id == current.lead_id and sibling.id != assignment_id:
                    staged[sibling.id] = sibling.model_copy(update={
                        "status": AssignmentStatus.LEAD_TAKEN_BY_ANOTHER_REALTOR,
                        "version": sibling.version + 1,
                    })
            self.assignments.update(staged)
        return staged[assignment_id].model_copy(deep=True)

    # Notifications
    async def insert_notification(self, notification: Notification) -> Notification:
        self.notifications.append(notification.model_copy(deep=True))
        return notification.model_copy(deep=True)

    async def list_notifications(self, limit: int) -> list[Notification]:
        # Insertion order breaks timestamp ties
        ordered = sorted(
            enumerate(self.notifications), key=lambda item: (item[1].created_at, item[0]), reverse=True
        )
        return [n.model_copy(deep=True) for _, n in ordered[:limit]]

"""Assignment ledger - lead-to-realtor assignments and their status machine."""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar, Union

from leadroute.models.assignment import (
    DISENGAGEMENT_STATUSES,
    LOSING_STATUSES,
    ActionResult,
    AssignmentStatus,
    LeadAssignment,
    RealtorAssignmentView,
    SupportAssignmentView,
)
from leadroute.models.lead import Lead
from leadroute.services.store import LeadStore
from leadroute.utils.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from leadroute.utils.ids import generate_id
from leadroute.utils.logging import get_structured_logger, mask_sensitive_data

logger = get_structured_logger(__name__)

T = TypeVar("T")

# One retry after a version conflict, then the conflict is surfaced
MAX_WRITE_ATTEMPTS = 2


class AssignmentLedger:
    """Creates, updates and queries lead assignments."""

    def __init__(self, store: LeadStore):
        self.store = store

    async def assign(self, lead_code: str, realtor_id: str) -> SupportAssignmentView:
        """Send a lead to a realtor. Assigning the same pair twice is allowed."""
        lead = await self.store.get_lead_by_code(lead_code)
        if lead is None:
            raise NotFoundError("Lead", lead_code)

        realtor = await self.store.get_realtor(realtor_id)
        if realtor is None:
            raise NotFoundError("Realtor", realtor_id)

        user = await self.store.get_user(realtor.user_id) if realtor.user_id else None
        if user is None:
            raise NotFoundError("User", realtor.user_id, "User not found for this realtor")

        assignment = await self.store.insert_assignment(LeadAssignment(
            id=generate_id(),
            lead_id=lead.id,
            user_id=user.user_id,
            status=AssignmentStatus.ASSIGNED,
            sent_date=datetime.now(timezone.utc),
        ))

        logger.info(
            "Lead assigned",
            lead_code=lead.lead_id,
            assignment_id=assignment.id,
            realtor_id=realtor.realtor_id,
            agent_code=realtor.agent_code,
        )
        return SupportAssignmentView(
            id=assignment.id,
            agent_code=realtor.agent_code,
            realtor_first_name=user.first_name,
            realtor_last_name=user.last_name,
            date_sent=assignment.sent_date,
            lead_id=lead.lead_id,
            comments=assignment.comments,
            status=assignment.status,
            callback_time=assignment.callback_time,
        )

    async def update_status(
        self,
        assignment_id: str,
        new_status: Union[AssignmentStatus, str],
        acting_user_id: str,
        callback_time: Optional[datetime] = None,
    ) -> ActionResult:
        """
        Realtor status change.

        Signing the listing agreement relabels every other assignment of the
        lead as taken by another realtor, in the same store transaction.
        """
        target = AssignmentStatus.normalize(new_status)
        if target is AssignmentStatus.LEAD_TAKEN_BY_ANOTHER_REALTOR:
            raise ValidationError(f"'{target.value}' is set by the system only")

        async def write(assignment: LeadAssignment) -> Optional[LeadAssignment]:
            if assignment.status is AssignmentStatus.LEAD_TAKEN_BY_ANOTHER_REALTOR:
                raise ConflictError(f"Lead already taken by another realtor (assignment {assignment_id})")
            if assignment.status.is_winning:
                if target.is_winning:
                    return None
                raise ValidationError("Status can no longer be changed after the listing agreement is signed")
            if assignment.status in DISENGAGEMENT_STATUSES:
                if target is assignment.status:
                    return None
                raise ValidationError(
                    f"Status can no longer be changed after '{assignment.status.value}' (assignment {assignment_id})"
                )

            if target.is_winning:
                return await self.store.sign_listing_agreement(
                    assignment_id, assignment.version, callback_time
                )
            updates = {"status": target}
            if callback_time is not None:
                updates["callback_time"] = callback_time
            return await self.store.update_assignment(assignment_id, assignment.version, updates)

        updated = await self._write_owned(assignment_id, acting_user_id, write)
        if updated is not None:
            logger.info(
                "Assignment status updated",
                assignment_id=assignment_id,
                to_status=target.value,
                is_active=updated.is_active,
                invalidated_siblings=target.is_winning,
            )
        return ActionResult(success=True)

    async def add_comment(self, assignment_id: str, text: str, acting_user_id: str) -> ActionResult:
        """Overwrite the assignment's comment."""
        async def write(assignment: LeadAssignment) -> LeadAssignment:
            return await self.store.update_assignment(
                assignment_id, assignment.version, {"comments": text}
            )

        await self._write_owned(assignment_id, acting_user_id, write)
        logger.info(
            "Assignment comment updated",
            assignment_id=assignment_id,
            comment=mask_sensitive_data(text),
        )
        return ActionResult(success=True)

    async def set_callback_time(
        self, assignment_id: str, callback_time: datetime, acting_user_id: str
    ) -> ActionResult:
        """Schedule a callback without touching the status."""
        if callback_time is None:
            raise ValidationError("callback_time is required")

        async def write(assignment: LeadAssignment) -> LeadAssignment:
            return await self.store.update_assignment(
                assignment_id, assignment.version, {"callback_time": callback_time}
            )

        await self._write_owned(assignment_id, acting_user_id, write)
        logger.info(
            "Assignment callback time set",
            assignment_id=assignment_id,
            callback_time=callback_time.isoformat(),
        )
        return ActionResult(success=True)

    async def list_for_realtor(self, user_id: str) -> list[RealtorAssignmentView]:
        """Open and won assignments of a realtor; lost ones are hidden."""
        assignments = await self.store.list_assignments_for_user(user_id, exclude_statuses=LOSING_STATUSES)

        views = []
        for assignment in assignments:
            lead = await self.store.get_lead(assignment.lead_id)
            if lead is None:
                logger.warning(
                    "Assignment references a missing lead",
                    assignment_id=assignment.id,
                    lead_pk=assignment.lead_id,
                )
                continue
            views.append(self._realtor_view(assignment, lead))
        return views

    async def list_for_lead(self, lead_code: str) -> list[SupportAssignmentView]:
        """Every assignment of a lead, newest first, for the support dashboard."""
        lead = await self.store.get_lead_by_code(lead_code)
        if lead is None:
            raise NotFoundError("Lead", lead_code)

        views = []
        for assignment in await self.store.list_assignments_for_lead(lead.id):
            realtor = await self.store.get_realtor_by_user_id(assignment.user_id)
            user = await self.store.get_user(assignment.user_id)
            views.append(SupportAssignmentView(
                id=assignment.id,
                agent_code=realtor.agent_code if realtor else "N/A",
                realtor_first_name=user.first_name if user else None,
                realtor_last_name=user.last_name if user else None,
                date_sent=assignment.sent_date,
                lead_id=lead.lead_id,
                comments=assignment.comments,
                status=assignment.status,
                callback_time=assignment.callback_time,
            ))
        return views

    async def _write_owned(
        self,
        assignment_id: str,
        acting_user_id: str,
        write: Callable[[LeadAssignment], Awaitable[T]],
    ) -> T:
        """Read, check ownership and write; re-read and retry once on a version conflict."""
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            assignment = await self.store.get_assignment(assignment_id)
            if assignment is None:
                raise NotFoundError("Assignment", assignment_id)
            if assignment.user_id != acting_user_id:
                raise UnauthorizedError(f"User {acting_user_id} does not own assignment {assignment_id}")

            try:
                return await write(assignment)
            except ConflictError:
                if attempt == MAX_WRITE_ATTEMPTS:
                    logger.warning("Assignment write conflict persisted", assignment_id=assignment_id)
                    raise
                logger.info("Assignment write conflict, retrying", assignment_id=assignment_id, attempt=attempt)

        raise ConflictError(f"Assignment {assignment_id} could not be written")

    @staticmethod
    def _realtor_view(assignment: LeadAssignment, lead: Lead) -> RealtorAssignmentView:
        return RealtorAssignmentView(
            id=assignment.id,
            lead_id=lead.lead_id,
            prospect_name=lead.prospect_name,
            prospect_contact=lead.phone_number or lead.email_address or "",
            property_address=lead.full_address,
            bedrooms=lead.bedrooms,
            bathrooms=lead.bathrooms,
            under_agent_contract=lead.has_realtor_contract,
            status=assignment.status,
            comments=assignment.comments,
            callback_time=assignment.callback_time,
            can_change_status=assignment.can_change_status,
        )

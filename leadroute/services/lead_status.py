"""Lead status machine - intake, dashboard reads and lead status transitions."""

import math
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from leadroute.models.lead import (
    REQUIRED_LEAD_FIELDS,
    Lead,
    LeadCreate,
    LeadFilter,
    LeadPage,
    LeadStatus,
    LeadUpdate,
)
from leadroute.models.notification import Notification
from leadroute.services.store import LeadStore
from leadroute.utils.config import RoutingConfig
from leadroute.utils.errors import ConflictError, NotFoundError, ValidationError
from leadroute.utils.ids import generate_id, generate_lead_code
from leadroute.utils.logging import get_structured_logger, mask_contact

logger = get_structured_logger(__name__)


def _validation_message(error: PydanticValidationError) -> str:
    fields = sorted({".".join(str(part) for part in e["loc"]) for e in error.errors()})
    return f"Invalid or missing fields: {', '.join(fields)}"


class LeadStatusMachine:
    """
    Owns the lead record and its top-level status.

    Operator transitions (accept, reject, overturn, set_status) write
    unconditionally: last write wins. Reconciler transitions are
    compare-and-set on the source status so a concurrent manual edit is
    never clobbered and a repeated sweep writes nothing.
    """

    def __init__(self, store: LeadStore, max_code_attempts: Optional[int] = None):
        self.store = store
        self.max_code_attempts = max_code_attempts or RoutingConfig.LEAD_ID_MAX_ATTEMPTS

    async def create_lead(self, fields: Union[LeadCreate, dict[str, Any]]) -> Lead:
        """Validate intake fields and store a new pending lead."""
        if isinstance(fields, LeadCreate):
            payload = fields
        else:
            try:
                payload = LeadCreate.model_validate(fields)
            except PydanticValidationError as e:
                raise ValidationError(_validation_message(e)) from e

        for attempt in range(1, self.max_code_attempts + 1):
            lead = Lead(
                id=generate_id(),
                lead_id=generate_lead_code(),
                submission_date=datetime.now(timezone.utc),
                status=LeadStatus.PENDING,
                **payload.model_dump(),
            )
            try:
                saved = await self.store.insert_lead(lead)
            except ConflictError:
                logger.warning("Lead code collision, retrying", lead_code=lead.lead_id, attempt=attempt)
                continue

            logger.info(
                "Lead created",
                lead_code=saved.lead_id,
                zip_code=saved.zip_code,
                phone=mask_contact(saved.phone_number),
            )
            return saved

        raise ConflictError(f"Could not generate a unique lead code after {self.max_code_attempts} attempts")

    async def get_lead(self, lead_code: str) -> Lead:
        lead = await self.store.get_lead_by_code(lead_code)
        if lead is None:
            raise NotFoundError("Lead", lead_code)
        return lead

    async def list_leads(
        self,
        lead_filter: Optional[LeadFilter] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> LeadPage:
        page_size = page_size or RoutingConfig.DEFAULT_PAGE_SIZE
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be at least 1")

        leads, total = await self.store.list_leads(
            lead_filter or LeadFilter(), offset=(page - 1) * page_size, limit=page_size
        )
        return LeadPage(
            leads=leads,
            total_count=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    async def update_lead(self, lead_code: str, changes: Union[LeadUpdate, dict[str, Any]]) -> Lead:
        """QA edit: write only the fields that were provided."""
        if not isinstance(changes, LeadUpdate):
            try:
                changes = LeadUpdate.model_validate(changes)
            except PydanticValidationError as e:
                raise ValidationError(_validation_message(e)) from e

        lead = await self.get_lead(lead_code)
        updates = changes.model_dump(exclude_unset=True)
        cleared = sorted(field for field in REQUIRED_LEAD_FIELDS if field in updates and updates[field] is None)
        if cleared:
            raise ValidationError(f"Invalid or missing fields: {', '.join(cleared)}")
        if "status" in updates:
            if updates["status"] is None:
                del updates["status"]
            else:
                updates["status"] = LeadStatus.normalize(updates["status"])
        if not updates:
            return lead

        try:
            updated = await self.store.update_lead(lead.id, updates)
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e
        logger.info("Lead updated", lead_code=lead_code, fields=sorted(updates))
        return updated

    async def set_status(self, lead_code: str, status: Union[LeadStatus, str]) -> Lead:
        """Authorized-actor path: any status to any status."""
        target = LeadStatus.normalize(status)
        lead = await self.get_lead(lead_code)
        if lead.status == target:
            return lead

        updated = await self.store.update_lead(lead.id, {"status": target})
        logger.info(
            "Lead status changed",
            lead_code=lead_code,
            from_status=lead.status.value,
            to_status=target.value,
        )
        return updated

    async def accept_lead(self, lead_code: str) -> Lead:
        return await self.set_status(lead_code, LeadStatus.ACCEPTED)

    async def reject_lead(self, lead_code: str) -> Lead:
        return await self.set_status(lead_code, LeadStatus.REJECTED)

    async def overturn_lead(self, lead_code: str) -> Lead:
        """Support rejects a lead it had already accepted."""
        lead = await self.get_lead(lead_code)
        if lead.status == LeadStatus.REJECTED_OVERTURNED:
            return lead
        if lead.status != LeadStatus.ACCEPTED:
            raise ValidationError(
                f"Only accepted leads can be overturned (lead {lead_code} is {lead.status.value})"
            )
        return await self.set_status(lead_code, LeadStatus.REJECTED_OVERTURNED)

    async def mark_no_coverage(self, lead: Lead, notification: Optional[Notification] = None) -> bool:
        """
        accepted -> no_coverage, only while the lead has no assignments.

        Returns False if the lead moved on or was assigned meanwhile.
        """
        return await self._transition(
            lead, LeadStatus.ACCEPTED, LeadStatus.NO_COVERAGE, notification, require_unassigned=True
        )

    async def restore_coverage(self, lead: Lead, notification: Optional[Notification] = None) -> bool:
        """no_coverage -> accepted. Returns False if the lead moved on meanwhile."""
        return await self._transition(lead, LeadStatus.NO_COVERAGE, LeadStatus.ACCEPTED, notification)

    async def _transition(
        self,
        lead: Lead,
        expected: LeadStatus,
        target: LeadStatus,
        notification: Optional[Notification],
        require_unassigned: bool = False,
    ) -> bool:
        changed = await self.store.compare_and_set_lead_status(
            lead.id, expected, target, require_unassigned=require_unassigned, notification=notification
        )
        if changed:
            logger.info(
                "Lead status changed",
                lead_code=lead.lead_id,
                from_status=expected.value,
                to_status=target.value,
                notification_id=notification.id if notification else None,
            )
        else:
            logger.debug(
                "Lead status transition skipped, status changed concurrently",
                lead_code=lead.lead_id,
                expected_status=expected.value,
            )
        return changed

"""Lead routing service - single entry point used by the HTTP handlers."""

from datetime import datetime
from typing import Any, Optional, Union

from leadroute.models.assignment import (
    ActionResult,
    AssignmentStatus,
    RealtorAssignmentView,
    SupportAssignmentView,
)
from leadroute.models.lead import Lead, LeadCreate, LeadFilter, LeadPage, LeadUpdate
from leadroute.models.notification import Notification
from leadroute.models.realtor import Realtor, RealtorRegistration
from leadroute.services.assignment_ledger import AssignmentLedger
from leadroute.services.coverage import CoverageMatcher
from leadroute.services.lead_status import LeadStatusMachine
from leadroute.services.notifications import NotificationSink
from leadroute.services.realtor_registry import RealtorRegistry
from leadroute.services.reconciler import CoverageReconciler, TickReport
from leadroute.services.scheduler import ReconciliationScheduler
from leadroute.services.store import InMemoryLeadStore, LeadStore
from leadroute.utils.config import RoutingConfig
from leadroute.utils.errors import ValidationError
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class LeadRoutingService:
    """Wires one store into every component and exposes their operations."""

    def __init__(self, store: Optional[LeadStore] = None, matcher: Optional[CoverageMatcher] = None):
        self.store = store or InMemoryLeadStore()
        self.notifications = NotificationSink(self.store)
        self.lead_status = LeadStatusMachine(self.store)
        self.ledger = AssignmentLedger(self.store)
        self.realtors = RealtorRegistry(self.store)
        self.reconciler = CoverageReconciler(
            self.store, self.lead_status, self.notifications, matcher=matcher
        )

    # Leads
    async def create_lead(self, fields: Union[LeadCreate, dict[str, Any]]) -> Lead:
        return await self.lead_status.create_lead(fields)

    async def list_leads(
        self,
        lead_filter: Optional[LeadFilter] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> LeadPage:
        return await self.lead_status.list_leads(lead_filter, page=page, page_size=page_size)

    async def get_lead(self, lead_code: str) -> Lead:
        return await self.lead_status.get_lead(lead_code)

    async def update_lead(self, lead_code: str, changes: Union[LeadUpdate, dict[str, Any]]) -> Lead:
        return await self.lead_status.update_lead(lead_code, changes)

    async def accept_lead(self, lead_code: str) -> Lead:
        return await self.lead_status.accept_lead(lead_code)

    async def reject_lead(self, lead_code: str) -> Lead:
        return await self.lead_status.reject_lead(lead_code)

    async def overturn_lead(self, lead_code: str) -> Lead:
        return await self.lead_status.overturn_lead(lead_code)

    # Assignments
    async def assign_lead(self, lead_code: str, realtor_id: str) -> SupportAssignmentView:
        return await self.ledger.assign(lead_code, realtor_id)

    async def update_assignment_status(
        self,
        assignment_id: str,
        new_status: Union[AssignmentStatus, str],
        acting_user_id: str,
        callback_time: Optional[datetime] = None,
    ) -> ActionResult:
        return await self.ledger.update_status(assignment_id, new_status, acting_user_id, callback_time)

    async def add_assignment_comment(self, assignment_id: str, text: str, acting_user_id: str) -> ActionResult:
        return await self.ledger.add_comment(assignment_id, text, acting_user_id)

    async def set_callback_time(
        self, assignment_id: str, callback_time: datetime, acting_user_id: str
    ) -> ActionResult:
        return await self.ledger.set_callback_time(assignment_id, callback_time, acting_user_id)

    async def get_assignments_for_realtor(self, user_id: str) -> list[RealtorAssignmentView]:
        return await self.ledger.list_for_realtor(user_id)

    async def get_assignments_for_lead(self, lead_code: str) -> list[SupportAssignmentView]:
        return await self.ledger.list_for_lead(lead_code)

    # Realtors
    async def register_realtor(
        self,
        registration: Union[RealtorRegistration, dict[str, Any]],
        created_by_id: Optional[str] = None,
    ) -> Realtor:
        return await self.realtors.register_realtor(registration, created_by_id=created_by_id)

    async def update_realtor(self, realtor_id: str, field: str, value: Any) -> Realtor:
        return await self.realtors.update_realtor(realtor_id, field, value)

    async def list_realtors(
        self, created_by_id: Optional[str] = None, active_only: bool = False
    ) -> list[Realtor]:
        return await self.realtors.list_realtors(created_by_id=created_by_id, active_only=active_only)

    async def get_realtor_for_user(self, user_id: str) -> Realtor:
        return await self.realtors.get_realtor_by_user(user_id)

    async def update_own_realtor_info(self, user_id: str, field: str, value: Any) -> Realtor:
        return await self.realtors.update_own_realtor(user_id, field, value)

    # Reconciliation and notifications
    async def run_reconciliation_tick(self) -> TickReport:
        return await self.reconciler.run_tick()

    async def list_notifications(self, limit: Optional[int] = None) -> list[Notification]:
        return await self.notifications.list_recent(limit)

    def build_scheduler(self, interval_seconds: Optional[float] = None) -> ReconciliationScheduler:
        """In-process periodic trigger for long-running deployments."""
        return ReconciliationScheduler(self.run_reconciliation_tick, interval_seconds=interval_seconds)


def build_store(backend: Optional[str] = None) -> LeadStore:
    backend = (backend or RoutingConfig.LEAD_STORE_BACKEND).lower()
    if backend == "memory":
        return InMemoryLeadStore()
    if backend == "supabase":
        from leadroute.services.supabase_store import SupabaseLeadStore
        return SupabaseLeadStore()
    raise ValidationError(f"Unknown LEAD_STORE_BACKEND: {backend}")


# Global service instance
_routing_service: Optional[LeadRoutingService] = None


def get_routing_service() -> LeadRoutingService:
    """Get or create the process-wide routing service."""
    global _routing_service
    if _routing_service is None:
        _routing_service = LeadRoutingService(store=build_store())
        logger.info("Routing service initialized", store_backend=RoutingConfig.LEAD_STORE_BACKEND)
    return _routing_service


def reset_routing_service() -> None:
    global _routing_service
    _routing_service = None

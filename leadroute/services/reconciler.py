"""Coverage reconciler - periodic sweep that demotes and promotes leads by coverage."""

import asyncio
import time
from typing import Optional

from pydantic import BaseModel, Field

from leadroute.models.lead import LeadStatus
from leadroute.services.coverage import DEFAULT_MATCHER, CoverageMatcher, has_coverage
from leadroute.services.lead_status import LeadStatusMachine
from leadroute.services.notifications import NotificationSink
from leadroute.services.store import LeadStore
from leadroute.utils.config import RoutingConfig
from leadroute.utils.logging import correlation_context, get_structured_logger, log_timing

logger = get_structured_logger(__name__)

NO_COVERAGE_MESSAGE = "Lead {lead_id} has been updated to No-coverage because of no realtor in that area"
COVERAGE_RESTORED_MESSAGE = "{agent_code} covers this area and Lead {lead_id} is set to accepted"


class TickReport(BaseModel):
    """Outcome of one reconciliation tick."""
    demoted: list[str] = Field(default_factory=list, description="Lead codes moved to no_coverage")
    promoted: list[str] = Field(default_factory=list, description="Lead codes moved back to accepted")
    notifications: int = 0
    failures: int = 0
    skipped: bool = False
    timed_out: bool = False
    duration_ms: float = 0.0


class CoverageReconciler:
    """
    Runs the two coverage sweeps.

    Sweep A demotes accepted leads that have no assignments and no active
    covering realtor. Sweep B promotes no_coverage leads covered by an active
    realtor. A lead demoted in Sweep A waits for the next tick before it can
    be promoted again.

    Each status change is written together with its notification, so a
    failed notification insert leaves the lead for the next tick to retry.
    """

    def __init__(
        self,
        store: LeadStore,
        lead_status: LeadStatusMachine,
        notifications: NotificationSink,
        matcher: Optional[CoverageMatcher] = None,
        tick_timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.lead_status = lead_status
        self.notifications = notifications
        self.matcher = matcher or DEFAULT_MATCHER
        self.tick_timeout_seconds = tick_timeout_seconds or RoutingConfig.RECONCILE_TICK_TIMEOUT_SECONDS
        self._tick_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._tick_lock.locked()

    async def run_tick(self) -> TickReport:
        """Run Sweep A then Sweep B. A call made while a tick is running is skipped."""
        if self._tick_lock.locked():
            logger.warning("Reconciliation tick already running, skipping")
            return TickReport(skipped=True)

        async with self._tick_lock:
            with correlation_context(prefix="tick"):
                report = TickReport()
                start = time.perf_counter()
                try:
                    with log_timing("reconciliation_tick", logger=logger):
                        await asyncio.wait_for(self._run_sweeps(report), timeout=self.tick_timeout_seconds)
                except asyncio.TimeoutError:
                    report.timed_out = True
                    logger.error(
                        "Reconciliation tick timed out",
                        timeout_seconds=self.tick_timeout_seconds,
                        demoted=len(report.demoted),
                        promoted=len(report.promoted),
                    )
                report.duration_ms = round((time.perf_counter() - start) * 1000, 2)

                logger.info(
                    "Reconciliation tick completed",
                    demoted=len(report.demoted),
                    promoted=len(report.promoted),
                    notifications=report.notifications,
                    failures=report.failures,
                    timed_out=report.timed_out,
                )
                return report

    async def _run_sweeps(self, report: TickReport) -> None:
        await self.sweep_lead_coverage(report)
        await self.sweep_realtor_coverage(report, skip_lead_codes=set(report.demoted))

    async def sweep_lead_coverage(self, report: Optional[TickReport] = None) -> TickReport:
        """Sweep A: accepted, unassigned leads with no active covering realtor -> no_coverage."""
        report = report or TickReport()
        try:
            leads = await self.store.list_leads_by_status(LeadStatus.ACCEPTED)
            active_realtors = await self.store.list_realtors(active_only=True)
        except Exception as e:
            report.failures += 1
            logger.error("Lead coverage sweep could not load its inputs", error=str(e), exc_info=True)
            return report

        for lead in leads:
            try:
                if has_coverage(lead.zip_code, active_realtors, self.matcher):
                    continue
                # A lead already being worked keeps its status even if coverage disappears;
                # the store checks that together with the status
                notification = self.notifications.build(NO_COVERAGE_MESSAGE.format(lead_id=lead.lead_id))
                if not await self.lead_status.mark_no_coverage(lead, notification=notification):
                    continue

                report.demoted.append(lead.lead_id)
                report.notifications += 1
            except Exception as e:
                report.failures += 1
                logger.error(
                    "Failed to check coverage for lead",
                    lead_code=lead.lead_id,
                    error=str(e),
                    exc_info=True,
                )
        return report

    async def sweep_realtor_coverage(
        self, report: Optional[TickReport] = None, skip_lead_codes: Optional[set[str]] = None
    ) -> TickReport:
        """Sweep B: no_coverage leads inside an active realtor's area -> accepted."""
        report = report or TickReport()
        skip_lead_codes = skip_lead_codes or set()
        try:
            active_realtors = await self.store.list_realtors(active_only=True)
        except Exception as e:
            report.failures += 1
            logger.error("Realtor coverage sweep could not load realtors", error=str(e), exc_info=True)
            return report

        for realtor in active_realtors:
            try:
                zip_codes = self.matcher.covered_zip_codes(realtor)
                if not zip_codes:
                    continue
                leads = await self.store.list_leads_by_status(LeadStatus.NO_COVERAGE, zip_codes=zip_codes)
            except Exception as e:
                report.failures += 1
                logger.error(
                    "Failed to load uncovered leads for realtor",
                    realtor_id=realtor.realtor_id,
                    agent_code=realtor.agent_code,
                    error=str(e),
                    exc_info=True,
                )
                continue

            for lead in leads:
                if lead.lead_id in skip_lead_codes:
                    continue
                try:
                    notification = self.notifications.build(
                        COVERAGE_RESTORED_MESSAGE.format(agent_code=realtor.agent_code, lead_id=lead.lead_id)
                    )
                    if not await self.lead_status.restore_coverage(lead, notification=notification):
                        continue

                    report.promoted.append(lead.lead_id)
                    report.notifications += 1
                except Exception as e:
                    report.failures += 1
                    logger.error(
                        "Failed to restore coverage for lead",
                        lead_code=lead.lead_id,
                        agent_code=realtor.agent_code,
                        error=str(e),
                        exc_info=True,
                    )
        return report

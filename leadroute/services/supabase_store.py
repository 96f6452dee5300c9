"""Supabase-backed LeadStore.

Row-level compare-and-set is an ``update`` filtered on the expected value.
The win transition and the reconciler's status change plus notification run
in Postgres (``sign_listing_agreement`` and ``transition_lead_status``, see
supabase/migrations) because PostgREST cannot span several writes in one
transaction.
"""

from datetime import timedelta
from typing import Any, Callable, Iterable, Optional, TypeVar

from supabase import Client

from leadroute.models.assignment import AssignmentStatus, LeadAssignment
from leadroute.models.lead import Lead, LeadFilter, LeadStatus
from leadroute.models.notification import Notification
from leadroute.models.realtor import Realtor
from leadroute.models.user import UserAccount
from leadroute.services.store import LeadStore
from leadroute.services.supabase_client import SupabaseClient
from leadroute.utils.errors import ConflictError, LeadRouteError, NotFoundError, SupabaseError
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

T = TypeVar("T")

LEADS = "leads"
REALTORS = "realtors"
USERS = "users"
ASSIGNMENTS = "lead_assignments"
NOTIFICATIONS = "notifications"

SEARCH_COLUMNS = (
    "lead_id", "first_name", "last_name", "phone_number",
    "email_address", "property_address", "city", "zip_code",
)


def _jsonable(updates: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in updates.items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        out[key] = value
    return out


class SupabaseLeadStore(LeadStore):
    """LeadStore over Supabase tables."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    async def _run(self, action: str, query: Callable[[Client], T]) -> T:
        async with SupabaseClient(self._client) as client:
            try:
                return query(client)
            except LeadRouteError:
                raise
            except Exception as e:
                message = str(e).lower()
                if "version_conflict" in message:
                    raise ConflictError(f"Failed to {action}: concurrent update") from e
                if "assignment_not_found" in message:
                    raise NotFoundError("Assignment", None, f"Failed to {action}: assignment not found") from e
                if "lead_not_found" in message:
                    raise NotFoundError("Lead", None, f"Failed to {action}: lead not found") from e
                raise SupabaseError(f"Failed to {action}: {e}") from e

    async def _insert(self, table: str, row: dict[str, Any], action: str) -> dict:
        def query(client: Client) -> dict:
            try:
                result = client.table(table).insert(row).execute()
            except Exception as e:
                if "duplicate key" in str(e).lower():
                    raise ConflictError(f"Failed to {action}: duplicate key") from e
                raise
            if result.data:
                return result.data[0]
            raise SupabaseError(f"Failed to {action}: no data returned")

        return await self._run(action, query)

    async def _select_one(self, table: str, column: str, value: str, action: str) -> Optional[dict]:
        def query(client: Client) -> Optional[dict]:
            result = client.table(table).select("*").eq(column, value).limit(1).execute()
            return result.data[0] if result.data else None

        return await self._run(action, query)

    # Leads
    async def insert_lead(self, lead: Lead) -> Lead:
        row = await self._insert(LEADS, lead.model_dump(mode="json"), "create lead")
        return Lead.model_validate(row)

    async def get_lead(self, lead_pk: str) -> Optional[Lead]:
        row = await self._select_one(LEADS, "id", lead_pk, "get lead")
        return Lead.model_validate(row) if row else None

    async def get_lead_by_code(self, lead_code: str) -> Optional[Lead]:
        row = await self._select_one(LEADS, "lead_id", lead_code, "get lead by code")
        return Lead.model_validate(row) if row else None

    async def list_leads(self, lead_filter: LeadFilter, offset: int, limit: int) -> tuple[list[Lead], int]:
        def query(client: Client):
            q = client.table(LEADS).select("*", count="exact")
            if lead_filter.status is not None:
                q = q.eq("status", lead_filter.status.value)
            if lead_filter.start_date:
                q = q.gte("submission_date", lead_filter.start_date.isoformat())
            if lead_filter.end_date:
                q = q.lt("submission_date", (lead_filter.end_date + timedelta(days=1)).isoformat())
            if lead_filter.search and lead_filter.search.strip():
                needle = lead_filter.search.strip().replace(",", " ")
                q = q.or_(",".join(f"{column}.ilike.%{needle}%" for column in SEARCH_COLUMNS))
            result = q.order("submission_date", desc=True).range(offset, offset + limit - 1).execute()
            rows = result.data or []
            total = result.count if result.count is not None else len(rows)
            return [Lead.model_validate(row) for row in rows], total

        return await self._run("list leads", query)

    async def list_leads_by_status(
        self, status: LeadStatus, zip_codes: Optional[Iterable[str]] = None
    ) -> list[Lead]:
        def query(client: Client) -> list[Lead]:
            q = client.table(LEADS).select("*").eq("status", status.value)
            if zip_codes is not None:
                q = q.in_("zip_code", sorted(zip_codes))
            result = q.execute()
            return [Lead.model_validate(row) for row in result.data or []]

        return await self._run("list leads by status", query)

    async def update_lead(self, lead_pk: str, updates: dict[str, Any]) -> Lead:
        def query(client: Client) -> Lead:
            result = client.table(LEADS).update(_jsonable(updates)).eq("id", lead_pk).execute()
            if not result.data:
                raise NotFoundError("Lead", lead_pk)
            return Lead.model_validate(result.data[0])

        return await self._run("update lead", query)

    async def compare_and_set_lead_status(
        self,
        lead_pk: str,
        expected: LeadStatus,
        new: LeadStatus,
        require_unassigned: bool = False,
        notification: Optional[Notification] = None,
    ) -> bool:
        if require_unassigned or notification is not None:
            return await self._transition_lead_status(lead_pk, expected, new, require_unassigned, notification)

        def query(client: Client) -> bool:
            result = (
                client.table(LEADS)
                .update({"status": new.value})
                .eq("id", lead_pk)
                .eq("status", expected.value)
                .execute()
            )
            return bool(result.data)

        return await self._run("update lead status", query)

    async def _transition_lead_status(
        self,
        lead_pk: str,
        expected: LeadStatus,
        new: LeadStatus,
        require_unassigned: bool,
        notification: Optional[Notification],
    ) -> bool:
        def query(client: Client) -> bool:
            result = client.rpc("transition_lead_status", {
                "p_lead_id": lead_pk,
                "p_expected_status": expected.value,
                "p_new_status": new.value,
                "p_require_unassigned": require_unassigned,
                "p_notification_id": notification.id if notification else None,
                "p_notification_message": notification.message if notification else None,
                "p_notification_created_at": notification.created_at.isoformat() if notification else None,
            }).execute()
            data = result.data
            if isinstance(data, list):
                data = data[0] if data else False
            return bool(data)

        return await self._run("transition lead status", query)

    # Realtors
    async def insert_realtor(self, realtor: Realtor) -> Realtor:
        row = await self._insert(REALTORS, realtor.model_dump(mode="json"), "create realtor")
        return Realtor.model_validate(row)

    async def get_realtor(self, realtor_id: str) -> Optional[Realtor]:
        row = await self._select_one(REALTORS, "realtor_id", realtor_id, "get realtor")
        return Realtor.model_validate(row) if row else None

    async def get_realtor_by_agent_code(self, agent_code: str) -> Optional[Realtor]:
        row = await self._select_one(REALTORS, "agent_code", agent_code, "get realtor by agent code")
        return Realtor.model_validate(row) if row else None

    async def get_realtor_by_user_id(self, user_id: str) -> Optional[Realtor]:
        row = await self._select_one(REALTORS, "user_id", user_id, "get realtor by user")
        return Realtor.model_validate(row) if row else None

    async def list_realtors(
        self, created_by_id: Optional[str] = None, active_only: bool = False
    ) -> list[Realtor]:
        def query(client: Client) -> list[Realtor]:
            q = client.table(REALTORS).select("*")
            if created_by_id is not None:
                q = q.eq("created_by_id", created_by_id)
            if active_only:
                q = q.eq("is_active", True)
            result = q.order("created_at", desc=True).execute()
            return [Realtor.model_validate(row) for row in result.data or []]

        return await self._run("list realtors", query)

    async def update_realtor(self, realtor_id: str, updates: dict[str, Any]) -> Realtor:
        def query(client: Client) -> Realtor:
            result = client.table(REALTORS).update(_jsonable(updates)).eq("realtor_id", realtor_id).execute()
            if not result.data:
                raise NotFoundError("Realtor", realtor_id)
            return Realtor.model_validate(result.data[0])

        return await self._run("update realtor", query)

    # User accounts
    async def insert_user(self, user: UserAccount) -> UserAccount:
        row = await self._insert(USERS, user.model_dump(mode="json"), "create user")
        return UserAccount.model_validate(row)

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        row = await self._select_one(USERS, "user_id", user_id, "get user")
        return UserAccount.model_validate(row) if row else None

    # Assignments
    async def insert_assignment(self, assignment: LeadAssignment) -> LeadAssignment:
        row = await self._insert(ASSIGNMENTS, assignment.model_dump(mode="json"), "create assignment")
        return LeadAssignment.model_validate(row)

    async def get_assignment(self, assignment_id: str) -> Optional[LeadAssignment]:
        row = await self._select_one(ASSIGNMENTS, "id", assignment_id, "get assignment")
        return LeadAssignment.model_validate(row) if row else None

    async def list_assignments_for_lead(self, lead_pk: str) -> list[LeadAssignment]:
        def query(client: Client) -> list[LeadAssignment]:
            result = (
                client.table(ASSIGNMENTS)
                .select("*")
                .eq("lead_id", lead_pk)
                .order("sent_date", desc=True)
                .execute()
            )
            return [LeadAssignment.model_validate(row) for row in result.data or []]

        return await self._run("list assignments for lead", query)

    async def list_assignments_for_user(
        self, user_id: str, exclude_statuses: Iterable[AssignmentStatus] = ()
    ) -> list[LeadAssignment]:
        excluded = [status.value for status in exclude_statuses]

        def query(client: Client) -> list[LeadAssignment]:
            q = client.table(ASSIGNMENTS).select("*").eq("user_id", user_id)
            if excluded:
                q = q.not_.in_("status", excluded)
            result = q.order("sent_date", desc=True).execute()
            return [LeadAssignment.model_validate(row) for row in result.data or []]

        return await self._run("list assignments for user", query)

    async def update_assignment(
        self, assignment_id: str, expected_version: int, updates: dict[str, Any]
    ) -> LeadAssignment:
        def query(client: Client) -> LeadAssignment:
            result = (
                client.table(ASSIGNMENTS)
                .update({**_jsonable(updates), "version": expected_version + 1})
                .eq("id", assignment_id)
                .eq("version", expected_version)
                .execute()
            )
            if result.data:
                return LeadAssignment.model_validate(result.data[0])

            exists = client.table(ASSIGNMENTS).select("id").eq("id", assignment_id).execute()
            if not exists.data:
                raise NotFoundError("Assignment", assignment_id)
            raise ConflictError(f"Assignment {assignment_id} changed concurrently")

        return await self._run("update assignment", query)

    async def sign_listing_agreement(
        self, assignment_id: str, expected_version: int, callback_time=None
    ) -> LeadAssignment:
        def query(client: Client) -> LeadAssignment:
            result = client.rpc("sign_listing_agreement", {
                "p_assignment_id": assignment_id,
                "p_expected_version": expected_version,
                "p_callback_time": callback_time.isoformat() if callback_time else None,
            }).execute()
            rows = result.data if isinstance(result.data, list) else [result.data]
            if not rows or not rows[0]:
                raise SupabaseError("sign_listing_agreement returned no row")
            return LeadAssignment.model_validate(rows[0])

        assignment = await self._run("sign listing agreement", query)
        logger.debug("Listing agreement transaction committed", assignment_id=assignment_id)
        return assignment

    # Notifications
    async def insert_notification(self, notification: Notification) -> Notification:
        row = await self._insert(NOTIFICATIONS, notification.model_dump(mode="json"), "create notification")
        return Notification.model_validate(row)

    async def list_notifications(self, limit: int) -> list[Notification]:
        def query(client: Client) -> list[Notification]:
            result = (
                client.table(NOTIFICATIONS)
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return [Notification.model_validate(row) for row in result.data or []]

        return await self._run("list notifications", query)

"""Realtor registry - sales onboarding and support edits of realtor records."""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from leadroute.models.realtor import (
    REALTOR_SELF_UPDATABLE_FIELDS,
    REALTOR_UPDATABLE_FIELDS,
    Realtor,
    RealtorRegistration,
)
from leadroute.models.user import UserAccount
from leadroute.services.store import LeadStore
from leadroute.utils.errors import NotFoundError, ValidationError
from leadroute.utils.ids import generate_id
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class RealtorRegistry:
    """Realtor records and their linked user accounts."""

    def __init__(self, store: LeadStore):
        self.store = store

    async def register_realtor(
        self,
        registration: Union[RealtorRegistration, dict[str, Any]],
        created_by_id: Optional[str] = None,
    ) -> Realtor:
        """Create the realtor's user account and an inactive realtor record."""
        if not isinstance(registration, RealtorRegistration):
            try:
                registration = RealtorRegistration.model_validate(registration)
            except PydanticValidationError as e:
                fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
                raise ValidationError(f"Invalid or missing fields: {', '.join(fields)}") from e

        if await self.store.get_realtor_by_agent_code(registration.agent_code):
            raise ValidationError(f"Agent code already in use: {registration.agent_code}")

        user = await self.store.insert_user(UserAccount(
            user_id=generate_id(),
            email=registration.email,
            first_name=registration.first_name,
            last_name=registration.last_name,
            role="realtor",
        ))
        realtor = await self.store.insert_realtor(Realtor(
            realtor_id=generate_id(),
            user_id=user.user_id,
            created_by_id=created_by_id,
            created_at=datetime.now(timezone.utc),
            is_active=False,
            **registration.model_dump(),
        ))

        logger.info(
            "Realtor registered",
            realtor_id=realtor.realtor_id,
            agent_code=realtor.agent_code,
            zip_code_count=len(realtor.zip_codes),
            created_by_id=created_by_id,
        )
        return realtor

    async def get_realtor(self, realtor_id: str) -> Realtor:
        realtor = await self.store.get_realtor(realtor_id)
        if realtor is None:
            raise NotFoundError("Realtor", realtor_id)
        return realtor

    async def list_realtors(
        self, created_by_id: Optional[str] = None, active_only: bool = False
    ) -> list[Realtor]:
        return await self.store.list_realtors(created_by_id=created_by_id, active_only=active_only)

    async def get_realtor_by_user(self, user_id: str) -> Realtor:
        """Realtor record linked to a user account."""
        realtor = await self.store.get_realtor_by_user_id(user_id)
        if realtor is None:
            raise NotFoundError("Realtor", user_id, f"No realtor record for user {user_id}")
        return realtor

    async def update_realtor(self, realtor_id: str, field: str, value: Any) -> Realtor:
        """Support edit of a single realtor field (activation, zip codes, radius...)."""
        if field not in REALTOR_UPDATABLE_FIELDS:
            raise ValidationError(f"Field cannot be updated: {field}")

        realtor = await self.get_realtor(realtor_id)
        return await self._write_field(realtor, field, value)

    async def update_own_realtor(self, user_id: str, field: str, value: Any) -> Realtor:
        """Realtor edit of their own record, limited to self-service fields."""
        if field not in REALTOR_SELF_UPDATABLE_FIELDS:
            raise ValidationError(f"Field cannot be updated: {field}")

        realtor = await self.get_realtor_by_user(user_id)
        return await self._write_field(realtor, field, value)

    async def _write_field(self, realtor: Realtor, field: str, value: Any) -> Realtor:
        realtor_id = realtor.realtor_id
        try:
            checked = Realtor.model_validate({**realtor.model_dump(), field: value})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid value for {field}") from e

        updated = await self.store.update_realtor(realtor_id, {field: getattr(checked, field)})
        logger.info(
            "Realtor updated",
            realtor_id=realtor_id,
            agent_code=updated.agent_code,
            field=field,
            is_active=updated.is_active,
        )
        return updated

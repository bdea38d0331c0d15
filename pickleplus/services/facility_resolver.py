"""Facility resolver: pins the facility a booking session works against."""

import logging
import re
from collections.abc import Mapping
from typing import Any, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pickleplus.core.settings import settings
from pickleplus.models import Facility
from pickleplus.services.audit_service import log_audit
from pickleplus.services.results import BookingErrorKind, Result

logger = logging.getLogger(__name__)

FacilitySelector = Union[str, int, Mapping[str, Any]]

ACCESS_CODE_RE = re.compile(settings.access_code_pattern)


def normalize_access_code(raw: str) -> str:
    return raw.strip().upper()


def is_access_code(raw: str) -> bool:
    return bool(ACCESS_CODE_RE.match(normalize_access_code(raw)))


class FacilityResolver:
    """Resolve check-in input (access code, numeric id or explicit selection)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, selector: FacilitySelector) -> Result[Facility]:
        """Resolve user input to an active facility.

        Args:
            selector: Scanned/typed access code, a numeric id (as int or
                digit string) or a mapping like ``{"facilityId": 3}``

        Returns:
            Result with the facility, or NOT_FOUND
        """
        if isinstance(selector, Mapping):
            facility_id = selector.get("facilityId", selector.get("facility_id"))
            if isinstance(facility_id, bool) or not isinstance(facility_id, int):
                return self._not_found(selector)
            return await self._by_id(facility_id)

        if isinstance(selector, bool):
            return self._not_found(selector)

        if isinstance(selector, int):
            return await self._by_id(selector)

        if isinstance(selector, str):
            text = normalize_access_code(selector)
            if ACCESS_CODE_RE.match(text):
                return await self._by_code(text)
            if text.isdigit():
                return await self._by_id(int(text))

        return self._not_found(selector)

    async def list_facilities(self) -> List[Facility]:
        """Get all active facilities ordered by name."""
        result = await self.db.execute(
            select(Facility)
            .where(Facility.is_active == True)
            .order_by(Facility.name, Facility.id)
        )
        return list(result.scalars().all())

    async def create_facility(
        self,
        name: str,
        address: str,
        access_code: str,
        city: Optional[str] = None,
    ) -> Result[Facility]:
        """Register a new facility (administrator operation)."""
        code = normalize_access_code(access_code)
        if not ACCESS_CODE_RE.match(code):
            return Result.fail(
                BookingErrorKind.INVALID_ACCESS_CODE,
                f"Access code {code} does not look like a facility code",
            )
        existing = await self.db.execute(
            select(Facility.id).where(Facility.access_code == code)
        )
        if existing.scalar_one_or_none() is not None:
            return Result.fail(
                BookingErrorKind.ALREADY_EXISTS,
                f"Facility with access code {code} already exists",
            )

        facility = Facility(name=name, address=address, access_code=code, city=city)
        try:
            self.db.add(facility)
            await self.db.flush()
            await log_audit(
                db=self.db,
                action_type="CREATE",
                entity_type="facility",
                entity_id=facility.id,
                entity_name=facility.name,
                description=f"Facility created: {facility.name} ({code})",
                user_type="admin",
                changes={"access_code": code, "address": address},
            )
            await self.db.commit()
            await self.db.refresh(facility)
        except IntegrityError:
            await self.db.rollback()
            return Result.fail(
                BookingErrorKind.ALREADY_EXISTS,
                f"Facility with access code {code} already exists",
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error creating facility {code}: {e}")
            raise

        logger.info(f"Created facility {facility.id} '{facility.name}' ({code})")
        return Result.ok(facility)

    async def _by_id(self, facility_id: int) -> Result[Facility]:
        result = await self.db.execute(
            select(Facility).where(
                Facility.id == facility_id,
                Facility.is_active == True,
            )
        )
        facility = result.scalar_one_or_none()
        if facility is None:
            return self._not_found(facility_id)
        return Result.ok(facility)

    async def _by_code(self, code: str) -> Result[Facility]:
        result = await self.db.execute(
            select(Facility).where(
                Facility.access_code == code,
                Facility.is_active == True,
            )
        )
        facility = result.scalar_one_or_none()
        if facility is None:
            return self._not_found(code)
        return Result.ok(facility)

    @staticmethod
    def _not_found(selector: Any) -> Result[Facility]:
        logger.info(f"Facility lookup failed for {selector!r}")
        return Result.fail(BookingErrorKind.NOT_FOUND, "Facility not found")

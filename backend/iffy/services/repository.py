from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import PersistenceError
from ..logger import logger
from ..models import Iffy, STATUS_COMPLETED, STATUS_FAILED, TERMINAL_STATUSES
from ..schemas import IffyRecord


class IffyRepository:
    """Keyed record store for Iffy jobs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, iffy_id: str) -> Optional[Iffy]:
        res = await self.db.execute(select(Iffy).filter(Iffy.id == iffy_id))
        return res.scalar_one_or_none()

    async def create(self, record: IffyRecord) -> IffyRecord:
        data = record.model_dump(exclude={"created_at", "updated_at"})
        data["status"] = record.status.value
        row = Iffy(**data)
        try:
            self.db.add(row)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save iffy {record.id}: {e}")
            raise PersistenceError(f"Failed to save record: {e}")
        return IffyRecord.model_validate(row)

    async def get(self, iffy_id: str) -> Optional[IffyRecord]:
        try:
            row = await self._get_row(iffy_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load iffy {iffy_id}: {e}")
            raise PersistenceError(f"Failed to load record: {e}")
        return IffyRecord.model_validate(row) if row else None

    async def count(self) -> int:
        try:
            res = await self.db.execute(select(func.count()).select_from(Iffy))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count records: {e}")
        return int(res.scalar_one())

    async def _finish(self, iffy_id: str, status: str, **fields) -> Optional[IffyRecord]:
        try:
            row = await self._get_row(iffy_id)
            if row is None:
                return None
            if row.status in TERMINAL_STATUSES:
                logger.warning(
                    f"Iffy {iffy_id} already {row.status}, ignoring transition to {status}",
                    extra={"iffy_id": iffy_id},
                )
                return IffyRecord.model_validate(row)
            row.status = status
            for name, value in fields.items():
                setattr(row, name, value)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update iffy {iffy_id}: {e}")
            raise PersistenceError(f"Failed to update record: {e}")
        return IffyRecord.model_validate(row)

    async def mark_completed(self, iffy_id: str, image_url: str) -> Optional[IffyRecord]:
        return await self._finish(iffy_id, STATUS_COMPLETED, gift_image_url=image_url)

    async def mark_failed(self, iffy_id: str, commentary: str) -> Optional[IffyRecord]:
        return await self._finish(iffy_id, STATUS_FAILED, is_error=True, commentary=commentary)

import asyncio
import traceback
from typing import Callable, Optional

from .workers import celery_app
from .db import AsyncSessionLocal
from .exceptions import PersistenceError
from .inference.stylize import stylize_image
from .schemas import IffyRecord, IffyStatus
from .services.repository import IffyRepository
from .services.storage import BlobStore, generated_key
from .logger import logger

async def stylize_iffy(
    repository,
    iffy_id: str,
    storage: BlobStore,
    stylizer: Callable[[bytes, str], bytes] = stylize_image,
) -> Optional[IffyRecord]:
    """
    Turn the uploaded photo of a processing record into its cartoon version.
    """
    logger.info(f"Starting stylization for iffy: {iffy_id}")

    record = await repository.get(iffy_id)
    if not record:
        logger.error(f"Iffy not found in database: {iffy_id}")
        return None

    if record.status != IffyStatus.processing:
        logger.warning(f"Iffy {iffy_id} not in processing state: {record.status.value}")
        return record

    try:
        original = storage.read(storage.key_from_url(record.gift_image_url))
        styled = stylizer(original, record.style_prompt)
        url = storage.put_png(styled, generated_key(iffy_id))
    except Exception as e:
        logger.error(
            f"Stylization failed for iffy {iffy_id}: {str(e)}",
            extra={
                "iffy_id": iffy_id,
                "error": str(e),
                "traceback": traceback.format_exc(),
            }
        )
        try:
            await repository.mark_failed(iffy_id, f"Image generation failed: {e}")
        except PersistenceError as persist_error:
            logger.error(
                f"Failed to mark iffy {iffy_id} as failed: {persist_error.message}",
                extra={"iffy_id": iffy_id},
            )
        raise

    updated = await repository.mark_completed(iffy_id, url)
    logger.info(f"Iffy {iffy_id} completed successfully", extra={"iffy_id": iffy_id})
    return updated

@celery_app.task(bind=True, acks_late=True, max_retries=0)
def stylize_iffy_task(self, iffy_id: str):
    """
    Celery task generating the cartoon image for a saved iffy.
    """
    async def _run():
        async with AsyncSessionLocal() as db:
            await stylize_iffy(IffyRepository(db), iffy_id, BlobStore())

    return asyncio.run(_run())

from __future__ import annotations

import asyncio

from ..exceptions import GenerationTriggerError
from ..logger import logger
from ..tasks import stylize_iffy_task
from ..workers import IMAGES_QUEUE


class CeleryGenerationTrigger:
    """Enqueues the stylization task for a saved iffy."""

    def __init__(self, task=stylize_iffy_task):
        self.task = task

    async def __call__(self, iffy_id: str) -> None:
        try:
            await asyncio.to_thread(self.task.apply_async, args=(iffy_id,), queue=IMAGES_QUEUE)
        except Exception as e:
            logger.error(f"Failed to enqueue stylization for {iffy_id}: {e}")
            raise GenerationTriggerError(f"Failed to enqueue image generation: {e}")

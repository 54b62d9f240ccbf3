"""
Client-side job watcher.

Submits a photo, waits a fixed delay so the server can start stylization,
then polls the record until it reaches a terminal status or the attempt
budget runs out. Dismissing the watcher only stops observing; the server
job keeps running.

    idle -> submitting -> processing -> completed | failed
    any  -- dismiss --> idle
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..logger import logger
from .api import ApiError, QuotaExceeded


class WatchState(str, Enum):
    idle = "idle"
    submitting = "submitting"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class FailureReason(str, Enum):
    quota = "quota"
    submit = "submit"
    server_failed = "server_failed"
    poll_error = "poll_error"
    timeout = "timeout"


FAILURE_MESSAGES: Dict[FailureReason, str] = {
    FailureReason.quota: "AI usage limit exceeded. Please try again later.",
    FailureReason.submit: "Something went wrong while uploading. Please try again.",
    FailureReason.server_failed: "Something went wrong on the server. Please try again.",
    FailureReason.poll_error: "Something went wrong while checking the result. Please try again.",
    FailureReason.timeout: "Processing took too long. Please try again in a moment.",
}


@dataclass(frozen=True)
class PollingBudget:
    initial_delay: float = 15.0
    interval: float = 5.0
    max_attempts: int = 15

    def __post_init__(self):
        if self.initial_delay < 0 or self.interval < 0:
            raise ValueError("delays must be non-negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True)
class WatchOutcome:
    state: WatchState
    iffy_id: Optional[str] = None
    record: Optional[Dict[str, Any]] = None
    reason: Optional[FailureReason] = None

    @property
    def message(self) -> Optional[str]:
        return FAILURE_MESSAGES[self.reason] if self.reason else None


Listener = Callable[[WatchState], None]


class JobWatcher:
    def __init__(self, api, budget: Optional[PollingBudget] = None, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.api = api
        self.budget = budget or PollingBudget()
        self._sleep = sleep
        self.state = WatchState.idle
        self.iffy_id: Optional[str] = None
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: WatchState) -> None:
        if state == self.state:
            return
        logger.debug(f"Watcher state {self.state.value} -> {state.value}", extra={"iffy_id": self.iffy_id})
        self.state = state
        for listener in self._listeners:
            listener(state)

    def start(self, image: bytes, filename: str = "photo.png", content_type: str = "image/png") -> asyncio.Task:
        """Begin a new job. While one is in flight the running task is returned."""
        if self._task is not None and not self._task.done():
            return self._task
        self.iffy_id = None
        self.attempts = 0
        self._task = asyncio.create_task(self._run(image, filename, content_type))
        return self._task

    async def wait(self) -> WatchOutcome:
        task = self._task
        if task is None:
            return WatchOutcome(state=self.state)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return WatchOutcome(state=WatchState.idle)
            raise

    async def watch(self, image: bytes, filename: str = "photo.png", content_type: str = "image/png") -> WatchOutcome:
        self.start(image, filename, content_type)
        return await self.wait()

    def dismiss(self) -> None:
        """Stop observing. Pending delays and polls are cancelled; the server job is left alone."""
        if self._task is not None and not self._task.done():
            logger.info("Watcher dismissed mid-flight", extra={"iffy_id": self.iffy_id})
            self._task.cancel()
        self._task = None
        self.iffy_id = None
        self.attempts = 0
        self._set_state(WatchState.idle)

    def _fail(self, reason: FailureReason, iffy_id: Optional[str] = None, record: Optional[Dict[str, Any]] = None) -> WatchOutcome:
        logger.warning(f"Job failed: {reason.value}", extra={"iffy_id": iffy_id, "attempts": self.attempts})
        self.iffy_id = None
        self._set_state(WatchState.failed)
        return WatchOutcome(state=WatchState.failed, iffy_id=iffy_id, record=record, reason=reason)

    async def _run(self, image: bytes, filename: str, content_type: str) -> WatchOutcome:
        self._set_state(WatchState.submitting)
        try:
            ack = await self.api.submit(image, filename, content_type)
        except QuotaExceeded:
            return self._fail(FailureReason.quota)
        except (ApiError, httpx.HTTPError) as e:
            logger.error(f"Upload failed: {e}")
            return self._fail(FailureReason.submit)

        iffy_id = ack.get("id") if isinstance(ack, dict) else None
        if not iffy_id:
            return self._fail(FailureReason.submit, record=ack)
        logger.info("Job submitted", extra={"iffy_id": iffy_id})

        await self._sleep(self.budget.initial_delay)
        self.iffy_id = iffy_id
        self._set_state(WatchState.processing)

        while True:
            self.attempts += 1
            try:
                record = await self.api.fetch(iffy_id)
            except (ApiError, httpx.HTTPError) as e:
                logger.error(f"Polling error: {e}", extra={"iffy_id": iffy_id})
                return self._fail(FailureReason.poll_error, iffy_id)

            status = record.get("status")
            if status == WatchState.completed.value:
                logger.info("Polling complete", extra={"iffy_id": iffy_id, "attempts": self.attempts})
                self._set_state(WatchState.completed)
                return WatchOutcome(state=WatchState.completed, iffy_id=iffy_id, record=record)
            if status == WatchState.failed.value:
                return self._fail(FailureReason.server_failed, iffy_id, record)
            if self.attempts >= self.budget.max_attempts:
                return self._fail(FailureReason.timeout, iffy_id, record)

            await self._sleep(self.budget.interval)

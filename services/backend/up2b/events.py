"""Upload events and the channel that delivers them to the UI layer."""

import asyncio
import logging
from typing import Callable, Literal, Optional, Union

from pydantic import BaseModel

from up2b.schemas.job import JobState

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """``upload-progress``: bytes of the request body written so far."""

    name: Literal["upload-progress"] = "upload-progress"
    job_id: int
    progress: int
    total: int

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return round(min(self.progress, self.total) * 100 / self.total, 1)


class CompressEvent(BaseModel):
    """``upload-compress``: ``NO``, then nothing, or ``START`` then ``END``."""

    name: Literal["upload-compress"] = "upload-compress"
    job_id: int
    type: Literal["NO", "START", "END"]
    filename: Optional[str] = None
    original: Optional[int] = None
    compressed: Optional[int] = None


class JobStateEvent(BaseModel):
    name: Literal["job-state"] = "job-state"
    job_id: int
    state: JobState


Event = Union[ProgressEvent, CompressEvent, JobStateEvent]
Listener = Callable[[Event], None]


class EventChannel:
    """Fan-out of pipeline events to callbacks and ``asyncio.Queue`` subscribers."""

    def __init__(self):
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # A broken listener must not abort the upload it observes.
                logger.exception(f"Event listener {listener!r} failed on {event.name}")
        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event.name} event for job {event.job_id}: subscriber queue full")

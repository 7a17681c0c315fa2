from __future__ import annotations

import logging
from collections.abc import Callable

from memogen.models.memo_models import GenerationJob

logger = logging.getLogger(__name__)

JobEventHandler = Callable[[GenerationJob], None]


class EventBus:
    """Per-job publish/subscribe registry.

    Handlers run synchronously, in subscription order, each with its own copy of the job.
    Only handlers subscribed at publish time are called; nothing is replayed.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[JobEventHandler]] = {}

    def subscribe(self, job_id: str, handler: JobEventHandler) -> None:
        self._subscribers.setdefault(job_id, []).append(handler)

    def unsubscribe(self, job_id: str, handler: JobEventHandler) -> None:
        handlers = self._subscribers.get(job_id)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))

    def publish(self, job: GenerationJob) -> None:
        # Copy the list so handlers may unsubscribe themselves while being called
        for handler in list(self._subscribers.get(job.id, ())):
            try:
                handler(job.snapshot())
            except Exception:
                logger.exception("[%s] Job event handler %r raised", job.id, handler)

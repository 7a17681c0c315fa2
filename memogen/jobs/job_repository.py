from __future__ import annotations

import asyncio
from dataclasses import dataclass
from dataclasses import field

from memogen.models.memo_models import GenerationJob


@dataclass
class JobEntry:
    """A job record plus the bookkeeping needed to mutate it safely."""

    job: GenerationJob
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Bumped on every (re)start; a running execution only writes while its attempt is current
    attempt: int = 0
    task: asyncio.Task | None = None


class JobRepository:
    """In-memory registry of generation jobs, owned by the hosting process and injected into the JobManager."""

    def __init__(self) -> None:
        self._entries: dict[str, JobEntry] = {}

    def add(self, job: GenerationJob) -> JobEntry:
        if job.id in self._entries:
            raise ValueError(f"Job {job.id} already registered")
        entry = JobEntry(job=job)
        self._entries[job.id] = entry
        return entry

    def get(self, job_id: str) -> JobEntry | None:
        return self._entries.get(job_id)

    def entries(self) -> list[JobEntry]:
        return list(self._entries.values())

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

"""
Job progress store for long-running validation jobs.

Entries expire after a TTL. Two backends: in-process memory and a SQLite row.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional

from .config import JOB_PROGRESS_TTL_SEC
from .db import get_db

JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_CANCELLED = "cancelled"
JOB_FAILED = "failed"


@dataclass
class JobProgress:
    job_id: str
    status: str = JOB_RUNNING
    total: int = 0
    processed: int = 0
    validated: int = 0
    errors: int = 0
    current_slug: Optional[str] = None
    report_path: Optional[str] = None
    error: Optional[str] = None
    recent: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.status != JOB_RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JobProgress':
        return cls(**data)


class JobProgressStore(ABC):
    """set/get by job id, with expiry."""

    @abstractmethod
    def set(self, job_id: str, progress: JobProgress) -> None:
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobProgress]:
        pass

    @abstractmethod
    def delete(self, job_id: str) -> None:
        pass


class InMemoryJobProgressStore(JobProgressStore):
    """Process-local store. Each set() refreshes the entry's expiry."""

    def __init__(self, ttl_sec: float = JOB_PROGRESS_TTL_SEC, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def set(self, job_id: str, progress: JobProgress) -> None:
        with self._lock:
            self._purge()
            self._entries[job_id] = (JobProgress.from_dict(progress.to_dict()), self._clock() + self.ttl_sec)

    def get(self, job_id: str) -> Optional[JobProgress]:
        with self._lock:
            self._purge()
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            return JobProgress.from_dict(entry[0].to_dict())

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._entries.pop(job_id, None)

    def _purge(self) -> None:
        now = self._clock()
        expired = [job_id for job_id, (_, expires_at) in self._entries.items() if expires_at <= now]
        for job_id in expired:
            del self._entries[job_id]


class SqliteJobProgressStore(JobProgressStore):
    """Store backed by the job_progress table, shared across processes using the same DB."""

    def __init__(self, ttl_sec: float = JOB_PROGRESS_TTL_SEC, clock: Callable[[], float] = time.time):
        self.ttl_sec = ttl_sec
        self._clock = clock

    def set(self, job_id: str, progress: JobProgress) -> None:
        with get_db() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO job_progress (job_id, payload, expires_at) VALUES (?, ?, ?)",
                (job_id, json.dumps(progress.to_dict()), self._clock() + self.ttl_sec)
            )
            conn.commit()

    def get(self, job_id: str) -> Optional[JobProgress]:
        with get_db() as conn:
            conn.execute("DELETE FROM job_progress WHERE expires_at <= ?", (self._clock(),))
            conn.commit()
            row = conn.execute("SELECT payload FROM job_progress WHERE job_id = ?", (job_id,)).fetchone()
            return JobProgress.from_dict(json.loads(row["payload"])) if row else None

    def delete(self, job_id: str) -> None:
        with get_db() as conn:
            conn.execute("DELETE FROM job_progress WHERE job_id = ?", (job_id,))
            conn.commit()

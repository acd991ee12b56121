"""
Thread-safe registry of translation jobs running in this process
"""
import copy
import threading
import time
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional


@dataclass
class JobProgress:
    """In-memory progress snapshot of a running job."""
    phase: str
    chapters_completed: int = 0
    chapters_total: int = 0
    current_chapter: int = 0
    detail: Optional[str] = None
    started_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ActiveJobRegistry:
    """
    Process-local guard against running the same book twice.

    A run claims the book before doing any work and releases it when it
    ends, whatever the outcome. Another process is not covered; multi-host
    deployments need a lease on the job row instead.
    """

    def __init__(self):
        self._jobs: Dict[str, JobProgress] = {}
        self._lock = threading.RLock()

    def claim(self, book_uuid: str, progress: JobProgress) -> bool:
        """Register a run. Returns False if the book is already running."""
        with self._lock:
            if book_uuid in self._jobs:
                return False
            self._jobs[book_uuid] = progress
            return True

    def release(self, book_uuid: str) -> None:
        with self._lock:
            self._jobs.pop(book_uuid, None)

    def update(self, book_uuid: str, **fields) -> bool:
        """Update snapshot fields of a running job."""
        with self._lock:
            progress = self._jobs.get(book_uuid)
            if progress is None:
                return False
            for name, value in fields.items():
                setattr(progress, name, value)
            return True

    def get(self, book_uuid: str) -> Optional[JobProgress]:
        """Snapshot copy, or None when the book is not running."""
        with self._lock:
            progress = self._jobs.get(book_uuid)
            return copy.deepcopy(progress) if progress else None

    def is_active(self, book_uuid: str) -> bool:
        with self._lock:
            return book_uuid in self._jobs

    def active_jobs(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

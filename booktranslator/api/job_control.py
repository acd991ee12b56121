"""
Start/status surface over the job orchestrator.

Transport-agnostic: an HTTP or CLI wrapper maps these dictionaries onto
its own responses.
"""
import asyncio
from typing import Any, Dict, Optional

from booktranslator.api.translation_state import ActiveJobRegistry, JobProgress
from booktranslator.core.exceptions import JobAlreadyRunningError
from booktranslator.core.models import JobStatus, TranslationJob
from booktranslator.core.orchestrator import JobOrchestrator
from booktranslator.persistence.checkpoint_manager import CheckpointManager
from booktranslator.utils import unified_logger as log

NOT_FOUND = "not_found"
STARTED = "started"
ALREADY_RUNNING = "already_running"


class JobController:
    """Launches translation runs as background tasks and reports their status."""

    def __init__(self, orchestrator: JobOrchestrator, checkpoints: CheckpointManager,
                 registry: Optional[ActiveJobRegistry] = None):
        """
        Args:
            orchestrator: Runs the jobs
            checkpoints: Used for persisted status
            registry: Must be the orchestrator's registry (default)
        """
        self.orchestrator = orchestrator
        self.checkpoints = checkpoints
        self.registry = registry or orchestrator.registry
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start(self, book_uuid: str) -> Dict[str, Any]:
        """
        Start translating a book in the background.

        Returns:
            ``{"status": "already_running", "progress": {...}}`` if a run is active,
            ``{"status": "not_found"}`` without a job,
            ``{"status": "completed"}`` for a finished job,
            ``{"status": "started"}`` otherwise
        """
        progress = self.registry.get(book_uuid)
        if progress is not None:
            return {"status": ALREADY_RUNNING, "progress": progress.to_dict()}

        job = await self.checkpoints.load_job(book_uuid)
        if job is None:
            return {"status": NOT_FOUND}
        pending = self._tasks.get(book_uuid)
        if pending is not None and not pending.done():
            # Launched but not yet registered: report the persisted position
            return {"status": ALREADY_RUNNING, "progress": self._snapshot(book_uuid, job)}
        if job.status == JobStatus.COMPLETED:
            return {"status": JobStatus.COMPLETED.value}

        task = asyncio.create_task(self._run(book_uuid), name=f"translate:{book_uuid}")
        self._tasks[book_uuid] = task
        task.add_done_callback(lambda _: self._forget(book_uuid, task))
        return {"status": STARTED}

    def _snapshot(self, book_uuid: str, job: TranslationJob) -> Dict[str, Any]:
        progress = self.registry.get(book_uuid)
        if progress is None:
            progress = JobProgress(
                phase=job.status.value,
                chapters_completed=job.completed_chapters,
                chapters_total=job.total_chapters,
                current_chapter=job.current_chapter,
            )
        return progress.to_dict()

    def _forget(self, book_uuid: str, task: asyncio.Task):
        if self._tasks.get(book_uuid) is task:
            del self._tasks[book_uuid]

    async def _run(self, book_uuid: str):
        try:
            await self.orchestrator.run(book_uuid)
        except JobAlreadyRunningError:
            log.warning(f"Job {book_uuid} was started twice; second run skipped")
        except Exception as e:
            # Already recorded on the job row by the orchestrator
            log.error(f"Background translation of {book_uuid} failed: {e}")

    async def status(self, book_uuid: str) -> Dict[str, Any]:
        """
        Current status of a book's job.

        The in-memory snapshot wins while a run is active; otherwise the
        persisted job row is reported.
        """
        progress = self.registry.get(book_uuid)
        if progress is not None:
            return {
                "status": progress.phase,
                "progress": {
                    "chapters_completed": progress.chapters_completed,
                    "chapters_total": progress.chapters_total,
                    "current_chapter": progress.current_chapter,
                    "detail": progress.detail,
                },
                "error": None,
            }

        job = await self.checkpoints.load_job(book_uuid)
        if job is None:
            return {"status": NOT_FOUND}
        return {
            "status": job.status.value,
            "progress": {
                "chapters_completed": job.completed_chapters,
                "chapters_total": job.total_chapters,
                "current_chapter": job.current_chapter,
            },
            "error": job.error_message,
        }

    async def wait(self):
        """Wait for every background run started by this controller."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

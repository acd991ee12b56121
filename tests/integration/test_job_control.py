"""Integration tests for JobController start/status."""

import asyncio

import pytest

from booktranslator.api.job_control import ALREADY_RUNNING, NOT_FOUND, STARTED, JobController
from booktranslator.core.exceptions import LLMConnectionError
from booktranslator.core.glossary import GlossaryExtractor
from booktranslator.core.orchestrator import JobOrchestrator
from booktranslator.core.segment_translator import SegmentTranslator
from llm_doubles import ScriptedProvider, default_handler, is_glossary_request, segment_text


class GatedOrchestrator(JobOrchestrator):
    """Waits on ``gate`` before the run claims the book."""

    gate = None

    async def run(self, book_uuid):
        await self.gate.wait()
        return await super().run(book_uuid)


def make_controller(checkpoints, provider, fast_retry, orchestrator_class=JobOrchestrator):
    orchestrator = orchestrator_class(
        checkpoints,
        SegmentTranslator(provider, retry_config=fast_retry),
        GlossaryExtractor(provider, retry_config=fast_retry),
    )
    return JobController(orchestrator, checkpoints)


class TestStart:

    @pytest.mark.asyncio
    async def test_start_runs_to_completion(self, checkpoints, sample_document, fast_retry):
        book_uuid = await checkpoints.import_document(sample_document)
        controller = make_controller(checkpoints, ScriptedProvider(), fast_retry)

        assert await controller.start(book_uuid) == {"status": STARTED}
        await controller.wait()

        status = await controller.status(book_uuid)
        assert status == {
            "status": "completed",
            "progress": {"chapters_completed": 2, "chapters_total": 2, "current_chapter": 3},
            "error": None,
        }

    @pytest.mark.asyncio
    async def test_start_completed_job(self, checkpoints, sample_document, fast_retry):
        book_uuid = await checkpoints.import_document(sample_document)
        controller = make_controller(checkpoints, ScriptedProvider(), fast_retry)
        await controller.start(book_uuid)
        await controller.wait()

        assert await controller.start(book_uuid) == {"status": "completed"}

    @pytest.mark.asyncio
    async def test_unknown_book(self, checkpoints, fast_retry):
        controller = make_controller(checkpoints, ScriptedProvider(), fast_retry)

        assert await controller.start("missing") == {"status": NOT_FOUND}
        assert await controller.status("missing") == {"status": NOT_FOUND}

    @pytest.mark.asyncio
    async def test_second_start_before_run_begins(self, checkpoints, sample_document, fast_retry):
        book_uuid = await checkpoints.import_document(sample_document)
        provider = ScriptedProvider()
        controller = make_controller(checkpoints, provider, fast_retry)

        first = await controller.start(book_uuid)
        second = await controller.start(book_uuid)
        await controller.wait()

        assert first == {"status": STARTED}
        assert second["status"] == ALREADY_RUNNING
        assert second["progress"]["chapters_total"] == 2
        assert second["progress"]["phase"] in ("pending", "extracting_glossary", "translating")
        assert len(provider.glossary_calls()) == 1


    @pytest.mark.asyncio
    async def test_start_before_claim_reports_persisted_progress(self, checkpoints, sample_document,
                                                                 fast_retry):
        """A launched run that has not claimed the book yet reports the job row."""
        book_uuid = await checkpoints.import_document(sample_document)
        gate = asyncio.Event()
        controller = make_controller(checkpoints, ScriptedProvider(), fast_retry,
                                     orchestrator_class=GatedOrchestrator)
        controller.orchestrator.gate = gate

        await controller.start(book_uuid)
        second = await controller.start(book_uuid)
        gate.set()
        await controller.wait()

        assert second["status"] == ALREADY_RUNNING
        assert second["progress"]["phase"] == "pending"
        assert second["progress"]["chapters_total"] == 2
        assert second["progress"]["chapters_completed"] == 0

class TestStatus:

    @pytest.mark.asyncio
    async def test_status_while_running(self, checkpoints, sample_document, fast_retry):
        entered = asyncio.Event()
        gate = asyncio.Event()

        async def handler(messages):
            if is_glossary_request(messages):
                entered.set()
                await gate.wait()
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(sample_document)
        controller = make_controller(checkpoints, ScriptedProvider(handler), fast_retry)

        await controller.start(book_uuid)
        await asyncio.wait_for(entered.wait(), timeout=5)

        status = await controller.status(book_uuid)
        again = await controller.start(book_uuid)
        gate.set()
        await controller.wait()

        assert status["status"] == "extracting_glossary"
        assert status["progress"]["chapters_total"] == 2
        assert status["progress"]["detail"] == "Extracting proper nouns"
        assert status["error"] is None
        assert again["status"] == ALREADY_RUNNING
        assert again["progress"]["phase"] == "extracting_glossary"
        assert (await controller.status(book_uuid))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_failed_job_reports_error(self, checkpoints, sample_document, fast_retry):
        def handler(messages):
            if segment_text(messages) == "Test Book":
                return LLMConnectionError("down")
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(sample_document)
        controller = make_controller(checkpoints, ScriptedProvider(handler), fast_retry)

        await controller.start(book_uuid)
        await controller.wait()

        status = await controller.status(book_uuid)
        assert status["status"] == "error"
        assert "Segment translation failed" in status["error"]
        assert status["progress"]["chapters_completed"] == 0

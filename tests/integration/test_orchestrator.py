"""Integration tests for JobOrchestrator over an in-memory store and a scripted backend."""

import pytest

from booktranslator.api.translation_state import ActiveJobRegistry, JobProgress
from booktranslator.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    LLMConnectionError,
    SegmentTranslationError,
    StoreConnectionError,
)
from booktranslator.core.glossary import GlossaryExtractor
from booktranslator.core.models import BookStatus, Chapter, Document, JobStatus
from booktranslator.core.orchestrator import JobOrchestrator
from booktranslator.core.segment_translator import SegmentTranslator
from booktranslator.persistence.checkpoint_manager import CheckpointManager
from booktranslator.persistence.store import Store
from documents import make_segments
from llm_doubles import ScriptedProvider, default_handler, is_glossary_request, segment_text

PLACEHOLDER = "[Translation pending]"


def glossary_handler(messages):
    if is_glossary_request(messages):
        return '{"Napoleon": "拿破仑"}'
    return default_handler(messages)


class FlakyStore(Store):
    """Delegating store failing on the Nth translation insert."""

    def __init__(self, inner, fail_on_insert):
        self.inner = inner
        self.fail_on_insert = fail_on_insert
        self.inserts = 0

    async def query(self, sql, params=()):
        if 'INSERT INTO translations' in sql:
            self.inserts += 1
            if self.inserts == self.fail_on_insert:
                raise StoreConnectionError("store went away")
        return await self.inner.query(sql, params)

    async def batch(self, statements):
        return await self.inner.batch(statements)


def make_orchestrator(checkpoints, provider, fast_retry, registry=None, checkpoint_interval=10):
    return JobOrchestrator(
        checkpoints,
        SegmentTranslator(provider, retry_config=fast_retry),
        GlossaryExtractor(provider, retry_config=fast_retry),
        registry=registry,
        checkpoint_interval=checkpoint_interval,
        context_segments=2,
        placeholder_text=PLACEHOLDER,
    )


async def translations_by_chapter(checkpoints, book_id):
    result = {}
    for row in await checkpoints.list_chapters(book_id):
        rows = await checkpoints.load_translations(row['id'])
        result[row['chapter_number']] = [t.translated_text for t in rows]
    return result


class TestFullRun:

    @pytest.mark.asyncio
    async def test_translates_whole_book(self, checkpoints, sample_document, fast_retry):
        provider = ScriptedProvider(glossary_handler)
        book_uuid = await checkpoints.import_document(sample_document)

        job = await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert job.completed_chapters == 2
        assert job.current_chapter == 3
        assert job.glossary == {"Napoleon": "拿破仑"}

        translations = await translations_by_chapter(checkpoints, job.book_id)
        assert translations == {
            1: ["译:Napoleon entered the room.", "译:He looked around.", "译:Everyone was silent."],
            2: ["译:Wellington arrived.", "译:The battle began."],
        }

        book = await checkpoints.load_book(book_uuid)
        assert book.status == BookStatus.READY
        assert book.title == "译:Test Book"
        assert book.original_title == "Test Book"

        chapters = await checkpoints.list_chapters(job.book_id)
        assert [c['title'] for c in chapters] == ["译:The Beginning", "译:The End"]
        assert (await checkpoints.load_chapter(job.book_id, 1)).segments == []

    @pytest.mark.asyncio
    async def test_request_sequence(self, checkpoints, sample_document, fast_retry):
        """Glossary, book title, then segments with each chapter title after its segments."""
        provider = ScriptedProvider(glossary_handler)
        book_uuid = await checkpoints.import_document(sample_document)

        await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        assert len(provider.glossary_calls()) == 1
        assert provider.translated_texts() == [
            "Test Book",
            "Napoleon entered the room.", "He looked around.", "Everyone was silent.",
            "The Beginning",
            "Wellington arrived.", "The battle began.",
            "The End",
        ]

    @pytest.mark.asyncio
    async def test_glossary_pinned_only_where_relevant(self, checkpoints, sample_document, fast_retry):
        provider = ScriptedProvider(glossary_handler)
        book_uuid = await checkpoints.import_document(sample_document)

        await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        systems = {segment_text(c['messages']): c['messages'][0]['content'] for c in provider.calls}
        assert '"Napoleon" → "拿破仑"' in systems["Napoleon entered the room."]
        assert "拿破仑" not in systems["He looked around."]

    @pytest.mark.asyncio
    async def test_preceding_segments_sent_as_context(self, checkpoints, sample_document, fast_retry):
        provider = ScriptedProvider()
        book_uuid = await checkpoints.import_document(sample_document)

        await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        users = {segment_text(c['messages']): c['messages'][1]['content'] for c in provider.calls}
        assert users["Everyone was silent."].startswith(
            "<context>\nNapoleon entered the room.\nHe looked around.\n</context>"
        )
        assert users["Napoleon entered the room."].startswith("<translate>")
        assert users["Wellington arrived."].startswith("<translate>")

    @pytest.mark.asyncio
    async def test_completed_job_is_noop(self, checkpoints, sample_document, fast_retry):
        provider = ScriptedProvider()
        book_uuid = await checkpoints.import_document(sample_document)
        orchestrator = make_orchestrator(checkpoints, provider, fast_retry)
        await orchestrator.run(book_uuid)
        calls = len(provider.calls)

        job = await orchestrator.run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert len(provider.calls) == calls

    @pytest.mark.asyncio
    async def test_unknown_book(self, checkpoints, fast_retry):
        orchestrator = make_orchestrator(checkpoints, ScriptedProvider(), fast_retry)

        with pytest.raises(JobNotFoundError):
            await orchestrator.run("no-such-book")

    @pytest.mark.asyncio
    async def test_empty_chapter_advances_cursor(self, checkpoints, sample_document, fast_retry):
        sample_document.chapters.insert(1, Chapter(number=2, title="Blank", original_title="Blank"))
        sample_document.chapters[2].number = 3
        provider = ScriptedProvider()
        book_uuid = await checkpoints.import_document(sample_document)

        job = await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert job.completed_chapters == 3
        translations = await translations_by_chapter(checkpoints, job.book_id)
        assert translations[2] == []
        assert len(translations[3]) == 2
        assert "Blank" not in provider.translated_texts()


class TestFailures:

    @pytest.mark.asyncio
    async def test_one_failure_among_ten(self, checkpoints, fast_retry):
        """A permanently failing segment leaves nine translations and one placeholder."""
        texts = [f"Sentence number {n}." for n in range(10)]
        document = Document(title="Ten", chapters=[
            Chapter(number=1, title="Only", original_title="Only", segments=make_segments(texts)),
        ], source_language="en", target_language="zh")

        def handler(messages):
            if segment_text(messages) == "Sentence number 6.":
                return LLMConnectionError("down")
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(document)

        job = await make_orchestrator(checkpoints, ScriptedProvider(handler), fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        rows = (await translations_by_chapter(checkpoints, job.book_id))[1]
        assert len(rows) == 10
        assert rows.count(PLACEHOLDER) == 1
        assert rows[6] == PLACEHOLDER

    @pytest.mark.asyncio
    async def test_failed_segment_gets_placeholder(self, checkpoints, sample_document, fast_retry):
        def handler(messages):
            if segment_text(messages) == "He looked around.":
                return LLMConnectionError("down")
            return default_handler(messages)

        provider = ScriptedProvider(handler)
        book_uuid = await checkpoints.import_document(sample_document)

        job = await make_orchestrator(checkpoints, provider, fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        translations = await translations_by_chapter(checkpoints, job.book_id)
        assert translations[1] == ["译:Napoleon entered the room.", PLACEHOLDER, "译:Everyone was silent."]
        assert provider.translated_texts().count("He looked around.") == fast_retry.max_attempts

    @pytest.mark.asyncio
    async def test_glossary_failure_is_not_fatal(self, checkpoints, sample_document, fast_retry):
        def handler(messages):
            if is_glossary_request(messages):
                return LLMConnectionError("down")
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(sample_document)

        job = await make_orchestrator(checkpoints, ScriptedProvider(handler), fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert job.glossary == {}
        assert job.glossary_extracted is True

    @pytest.mark.asyncio
    async def test_chapter_title_failure_keeps_original(self, checkpoints, sample_document, fast_retry):
        def handler(messages):
            if segment_text(messages) == "The End":
                return LLMConnectionError("down")
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(sample_document)

        job = await make_orchestrator(checkpoints, ScriptedProvider(handler), fast_retry).run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        chapters = await checkpoints.list_chapters(job.book_id)
        assert [c['title'] for c in chapters] == ["译:The Beginning", "The End"]

    @pytest.mark.asyncio
    async def test_book_title_failure_is_fatal_and_resumable(self, checkpoints, sample_document,
                                                             fast_retry):
        broken = {'title': True}

        def handler(messages):
            if broken['title'] and segment_text(messages) == "Test Book":
                return LLMConnectionError("down")
            return glossary_handler(messages)

        provider = ScriptedProvider(handler)
        book_uuid = await checkpoints.import_document(sample_document)
        orchestrator = make_orchestrator(checkpoints, provider, fast_retry)

        with pytest.raises(SegmentTranslationError):
            await orchestrator.run(book_uuid)

        job = await checkpoints.load_job(book_uuid)
        assert job.status == JobStatus.ERROR
        assert job.glossary_extracted is True
        assert job.title_translated is False
        assert (await checkpoints.load_book(book_uuid)).status == BookStatus.ERROR

        broken['title'] = False
        job = await orchestrator.run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert job.error_message is None
        assert job.translated_title == "译:Test Book"
        assert len(provider.glossary_calls()) == 1

    @pytest.mark.asyncio
    async def test_resume_after_store_failure(self, local_store, sample_document, fast_retry):
        """A crash mid-chapter resumes from the last saved offset."""
        flaky = FlakyStore(local_store, fail_on_insert=3)
        checkpoints = CheckpointManager(flaky)
        await checkpoints.ensure_schema()
        provider = ScriptedProvider(glossary_handler)
        book_uuid = await checkpoints.import_document(sample_document)
        orchestrator = make_orchestrator(checkpoints, provider, fast_retry, checkpoint_interval=2)

        with pytest.raises(StoreConnectionError):
            await orchestrator.run(book_uuid)

        job = await checkpoints.load_job(book_uuid)
        assert job.status == JobStatus.ERROR
        assert "store went away" in job.error_message
        assert (job.current_chapter, job.current_item_offset) == (1, 2)

        first_run = len(provider.calls)
        job = await orchestrator.run(book_uuid)

        assert job.status == JobStatus.COMPLETED
        assert provider.translated_texts()[first_run - 1:] == [
            "Everyone was silent.",
            "The Beginning",
            "Wellington arrived.", "The battle began.",
            "The End",
        ]
        assert len(provider.glossary_calls()) == 1
        translations = await translations_by_chapter(checkpoints, job.book_id)
        assert [len(rows) for rows in translations.values()] == [3, 2]

        resumed = [c for c in provider.calls if segment_text(c['messages']) == "Everyone was silent."][-1]
        assert "He looked around." in resumed['messages'][1]['content']

    @pytest.mark.asyncio
    async def test_offset_not_saved_at_chapter_end(self, local_store, sample_document, fast_retry):
        """With an interval dividing the chapter length the cursor moves to the next chapter."""
        flaky = FlakyStore(local_store, fail_on_insert=4)
        checkpoints = CheckpointManager(flaky)
        await checkpoints.ensure_schema()
        book_uuid = await checkpoints.import_document(sample_document)
        orchestrator = make_orchestrator(checkpoints, ScriptedProvider(), fast_retry,
                                         checkpoint_interval=3)

        with pytest.raises(StoreConnectionError):
            await orchestrator.run(book_uuid)

        job = await checkpoints.load_job(book_uuid)
        assert (job.current_chapter, job.current_item_offset, job.completed_chapters) == (2, 0, 1)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_already_running(self, checkpoints, sample_document, fast_retry):
        registry = ActiveJobRegistry()
        book_uuid = await checkpoints.import_document(sample_document)
        registry.claim(book_uuid, JobProgress(phase="translating"))
        orchestrator = make_orchestrator(checkpoints, ScriptedProvider(), fast_retry, registry=registry)

        with pytest.raises(JobAlreadyRunningError):
            await orchestrator.run(book_uuid)

        job = await checkpoints.load_job(book_uuid)
        assert job.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_registry_tracks_run(self, checkpoints, sample_document, fast_retry):
        registry = ActiveJobRegistry()
        snapshots = []

        def handler(messages):
            snapshots.append(registry.get(book_uuid))
            return default_handler(messages)

        book_uuid = await checkpoints.import_document(sample_document)
        orchestrator = make_orchestrator(checkpoints, ScriptedProvider(handler), fast_retry,
                                         registry=registry)

        await orchestrator.run(book_uuid)

        assert snapshots[0].phase == JobStatus.EXTRACTING_GLOSSARY.value
        assert snapshots[-1].phase == JobStatus.TRANSLATING.value
        assert snapshots[-1].current_chapter == 2
        assert not registry.is_active(book_uuid)

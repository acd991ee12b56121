"""
Resumable translation job orchestration.

A job moves pending → extracting_glossary → translating → completed, with
error reachable from anywhere. Every phase is skipped when the job row
says it already happened, and the chapter loop restarts from
``current_chapter`` / ``current_item_offset``, so re-running a job after a
crash or a failure continues where the last checkpoint left it.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from booktranslator.config import CHECKPOINT_INTERVAL, CONTEXT_SEGMENTS, PLACEHOLDER_TEXT
from booktranslator.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    SegmentTranslationError,
)
from booktranslator.core.glossary import GlossaryExtractor
from booktranslator.core.models import (
    BookRecord,
    BookStatus,
    ChapterRecord,
    JobStatus,
    TranslatedSegment,
    TranslationJob,
)
from booktranslator.core.segment_translator import SegmentTranslator
from booktranslator.api.translation_state import ActiveJobRegistry, JobProgress
from booktranslator.persistence.checkpoint_manager import CheckpointManager
from booktranslator.utils import unified_logger as log
from booktranslator.utils.unified_logger import LogType


@dataclass
class JobContext:
    """State of one run, passed explicitly through the phases."""
    job: TranslationJob
    book: BookRecord
    glossary: Dict[str, str] = field(default_factory=dict)
    placeholders: int = 0

    @property
    def book_uuid(self) -> str:
        return self.job.book_uuid


class JobOrchestrator:
    """Drives one book through glossary, title and chapter translation."""

    def __init__(self, checkpoints: CheckpointManager, translator: SegmentTranslator,
                 glossary_extractor: GlossaryExtractor,
                 registry: Optional[ActiveJobRegistry] = None,
                 checkpoint_interval: int = CHECKPOINT_INTERVAL,
                 context_segments: int = CONTEXT_SEGMENTS,
                 placeholder_text: str = PLACEHOLDER_TEXT):
        """
        Args:
            checkpoints: Persistence of job state and results
            translator: Segment translator
            glossary_extractor: Glossary extractor
            registry: Shared registry of running jobs (a private one if None)
            checkpoint_interval: Persist the segment offset every N segments
            context_segments: Preceding segments sent as context
            placeholder_text: Stored when a segment cannot be translated
        """
        self.checkpoints = checkpoints
        self.translator = translator
        self.glossary_extractor = glossary_extractor
        self.registry = registry or ActiveJobRegistry()
        self.checkpoint_interval = max(1, checkpoint_interval)
        self.context_segments = context_segments
        self.placeholder_text = placeholder_text

    async def run(self, book_uuid: str) -> TranslationJob:
        """
        Run (or resume) the translation of a book.

        Returns:
            The job as it was on entry for an already completed job,
            otherwise the reloaded completed job

        Raises:
            JobNotFoundError: No job row for the book
            JobAlreadyRunningError: The book is already running in this process
            Exception: Whatever failed the run, after the job was marked error
        """
        job = await self.checkpoints.load_job(book_uuid)
        if job is None:
            raise JobNotFoundError(book_uuid)
        if job.status == JobStatus.COMPLETED:
            log.info(f"Job {book_uuid} already completed")
            return job

        progress = JobProgress(
            phase=(JobStatus.TRANSLATING if job.glossary_extracted else JobStatus.EXTRACTING_GLOSSARY).value,
            chapters_completed=job.completed_chapters,
            chapters_total=job.total_chapters,
            current_chapter=job.current_chapter,
        )
        if not self.registry.claim(book_uuid, progress):
            raise JobAlreadyRunningError(book_uuid)

        try:
            try:
                await self._run_phases(job)
            except BaseException as e:
                await self._fail(book_uuid, e)
                raise
        finally:
            self.registry.release(book_uuid)

        return await self.checkpoints.load_job(book_uuid)

    async def _run_phases(self, job: TranslationJob):
        book = await self.checkpoints.load_book(job.book_uuid)
        if book is None:
            raise JobNotFoundError(job.book_uuid)

        context = JobContext(job=job, book=book, glossary=dict(job.glossary))
        resumed = job.status != JobStatus.PENDING
        log.info(
            f"Resuming at chapter {job.current_chapter}, segment {job.current_item_offset}"
            if resumed else "Starting translation",
            LogType.JOB_START,
            {
                'book_uuid': job.book_uuid,
                'title': book.original_title,
                'source_language': job.source_language,
                'target_language': job.target_language,
                'total_chapters': job.total_chapters,
                'resumed': resumed,
            },
        )
        await self.checkpoints.set_book_status(job.book_uuid, BookStatus.TRANSLATING)

        if not job.glossary_extracted:
            await self._extract_glossary(context)
        elif job.status != JobStatus.TRANSLATING:
            await self.checkpoints.mark_translating(job.book_uuid)
            job.status = JobStatus.TRANSLATING
            job.error_message = None

        if not job.title_translated:
            await self._translate_book_title(context)

        await self._translate_chapters(context)

        await self.checkpoints.complete_job(job.book_uuid, book.id)
        job.status = JobStatus.COMPLETED
        log.info("Translation completed", LogType.JOB_END,
                 {'book_uuid': job.book_uuid, 'placeholders': context.placeholders})

    async def _extract_glossary(self, context: JobContext):
        job = context.job
        self._progress(job, phase=JobStatus.EXTRACTING_GLOSSARY.value,
                       detail="Extracting proper nouns")
        await self.checkpoints.mark_extracting_glossary(job.book_uuid)
        job.status = JobStatus.EXTRACTING_GLOSSARY

        texts = await self.checkpoints.collect_segment_texts(job.book_id)
        glossary = await self.glossary_extractor.extract(texts, job.source_language,
                                                         job.target_language)
        await self.checkpoints.save_glossary(job.book_uuid, glossary)

        context.glossary = glossary
        job.glossary = glossary
        job.glossary_extracted = True
        job.status = JobStatus.TRANSLATING
        job.current_chapter = 1
        job.current_item_offset = 0

    async def _translate_book_title(self, context: JobContext):
        job = context.job
        self._progress(job, phase=JobStatus.TRANSLATING.value, detail="Translating title")
        translated = await self.translator.translate(
            context.book.original_title, context.glossary, job.source_language, job.target_language
        )
        await self.checkpoints.save_book_title(job.book_uuid, translated)
        job.title_translated = True
        job.translated_title = translated

    async def _translate_chapters(self, context: JobContext):
        job = context.job
        first_chapter = max(job.current_chapter, 1)
        resume_offset = job.current_item_offset

        for number in range(first_chapter, job.total_chapters + 1):
            job.current_chapter = number
            self._progress(job, phase=JobStatus.TRANSLATING.value,
                           detail=f"Chapter {number}/{job.total_chapters}")
            log.info("Progress", LogType.PROGRESS, {
                'chapters_completed': job.completed_chapters,
                'chapters_total': job.total_chapters,
                'detail': f"Chapter {number}/{job.total_chapters}",
            })

            chapter = await self.checkpoints.load_chapter(job.book_id, number)
            if chapter is not None and chapter.segments:
                start = resume_offset if number == first_chapter else 0
                await self._translate_segments(context, chapter, start)
                await self._translate_chapter_title(context, chapter)
            else:
                log.debug(f"Chapter {number} has no segments", LogType.CHAPTER_INFO)

            job.completed_chapters += 1
            job.current_item_offset = 0
            await self.checkpoints.complete_chapter(job.book_uuid, number + 1, job.completed_chapters)
            self._progress(job, chapters_completed=job.completed_chapters)

    async def _translate_segments(self, context: JobContext, chapter: ChapterRecord, start: int):
        job = context.job
        segments = chapter.segments
        if start:
            log.info(f"Chapter {chapter.number}: resuming at segment {start}/{len(segments)}",
                     LogType.CHAPTER_INFO)

        for index in range(start, len(segments)):
            segment = segments[index]
            preceding = [s.plain_text for s in segments[max(0, index - self.context_segments):index]]

            try:
                translated = await self.translator.translate(
                    segment.plain_text, context.glossary, job.source_language,
                    job.target_language, context=preceding or None,
                )
            except SegmentTranslationError as e:
                log.warning(f"Chapter {chapter.number} segment {index}: {e}; storing placeholder")
                translated = self.placeholder_text
                context.placeholders += 1

            await self.checkpoints.upsert_translation(TranslatedSegment(
                chapter_id=chapter.id,
                address=segment.address,
                original_text=segment.plain_text,
                original_fragment=segment.formatted_fragment,
                translated_text=translated,
                order_index=segment.order_index,
            ))

            done = index + 1
            if done % self.checkpoint_interval == 0 and done < len(segments):
                await self.checkpoints.save_item_offset(job.book_uuid, done)
                job.current_item_offset = done

    async def _translate_chapter_title(self, context: JobContext, chapter: ChapterRecord):
        if not chapter.original_title:
            return
        job = context.job
        try:
            title = await self.translator.translate(
                chapter.original_title, context.glossary, job.source_language, job.target_language
            )
        except SegmentTranslationError as e:
            log.warning(f"Chapter {chapter.number} title left untranslated: {e}")
            return
        await self.checkpoints.save_chapter_title(chapter.id, title)

    async def _fail(self, book_uuid: str, error: BaseException):
        message = str(error) or type(error).__name__
        log.error(f"Translation failed: {message}", LogType.ERROR_DETAIL,
                  {'details': type(error).__name__})
        try:
            await self.checkpoints.mark_failed(book_uuid, message)
        except Exception as cleanup_error:
            log.error(f"Could not record failure for {book_uuid}: {cleanup_error}")

    def _progress(self, job: TranslationJob, **fields):
        fields.setdefault('current_chapter', job.current_chapter)
        self.registry.update(job.book_uuid, **fields)

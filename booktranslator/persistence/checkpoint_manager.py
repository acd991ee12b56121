"""
Checkpoint manager for translation job persistence and resume.

All reads and writes of books, chapters, translation jobs and
translated segments go through here, over any Store backend.
"""

import json
import uuid
from typing import Dict, List, Optional

from booktranslator.core.models import (
    BookRecord,
    BookStatus,
    ChapterRecord,
    Document,
    JobStatus,
    TranslatedSegment,
    TranslationJob,
    segments_to_json,
)
from booktranslator.persistence.store import Store
from booktranslator.utils import unified_logger as log
from booktranslator.utils.unified_logger import LogType

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS books (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        uuid TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        original_title TEXT,
        author TEXT,
        source_language TEXT,
        target_language TEXT,
        status TEXT NOT NULL DEFAULT 'draft',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        book_id INTEGER NOT NULL,
        chapter_number INTEGER NOT NULL,
        title TEXT,
        original_title TEXT,
        raw_markup TEXT,
        segments_json TEXT,
        UNIQUE (book_id, chapter_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS translation_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        book_id INTEGER NOT NULL,
        book_uuid TEXT NOT NULL UNIQUE,
        source_language TEXT NOT NULL,
        target_language TEXT NOT NULL,
        total_chapters INTEGER NOT NULL DEFAULT 0,
        completed_chapters INTEGER NOT NULL DEFAULT 0,
        current_chapter INTEGER NOT NULL DEFAULT 0,
        current_item_offset INTEGER NOT NULL DEFAULT 0,
        glossary_json TEXT,
        glossary_extracted INTEGER NOT NULL DEFAULT 0,
        title_translated INTEGER NOT NULL DEFAULT 0,
        translated_title TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        error_message TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS translations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chapter_id INTEGER NOT NULL,
        address TEXT NOT NULL,
        original_text TEXT NOT NULL,
        original_html TEXT,
        translated_text TEXT NOT NULL,
        order_index INTEGER NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (chapter_id, address)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_jobs_status ON translation_jobs(status)",
    "CREATE INDEX IF NOT EXISTS idx_translations_chapter ON translations(chapter_id, order_index)",
]


class CheckpointManager:
    """
    Typed access to the persisted translation state.

    The job row is the durable contract between runs: every field the
    orchestrator needs to resume is written through the methods below.
    """

    def __init__(self, store: Store):
        """
        Args:
            store: RemoteStore or LocalStore
        """
        self.store = store

    async def ensure_schema(self):
        """Create tables if they don't exist."""
        await self.store.batch([(statement, ()) for statement in SCHEMA])

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_document(self, document: Document, source_language: Optional[str] = None,
                              target_language: Optional[str] = None) -> str:
        """
        Persist a document as a draft book with its chapters and a pending job.

        Args:
            document: Extracted document
            source_language: Defaults to the document's language
            target_language: Defaults to the document's target language

        Returns:
            The book uuid
        """
        book_uuid = document.id or str(uuid.uuid4())
        source = source_language or document.source_language
        target = target_language or document.target_language

        # One batch: the book, its chapters and its job commit together
        statements = [(
            """
            INSERT INTO books (uuid, title, original_title, author, source_language, target_language, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (book_uuid, document.title, document.title, document.author, source, target,
             BookStatus.DRAFT.value),
        )]
        statements.extend(
            (
                """
                INSERT INTO chapters (book_id, chapter_number, title, original_title, raw_markup, segments_json)
                VALUES ((SELECT id FROM books WHERE uuid = ?), ?, ?, ?, ?, ?)
                """,
                (book_uuid, chapter.number, chapter.title, chapter.original_title,
                 chapter.raw_markup, segments_to_json(chapter.segments)),
            )
            for chapter in document.chapters
        )
        statements.append((
            """
            INSERT INTO translation_jobs (book_id, book_uuid, source_language, target_language,
                                          total_chapters, status)
            VALUES ((SELECT id FROM books WHERE uuid = ?), ?, ?, ?, ?, ?)
            """,
            (book_uuid, book_uuid, source, target, len(document.chapters), JobStatus.PENDING.value),
        ))
        await self.store.batch(statements)

        log.info(f"Imported '{document.title}' as {book_uuid} ({len(document.chapters)} chapters)",
                 LogType.STORE_OPERATION)
        return book_uuid

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_job(self, book_uuid: str) -> Optional[TranslationJob]:
        row = await self.store.first(
            "SELECT * FROM translation_jobs WHERE book_uuid = ? LIMIT 1", (book_uuid,)
        )
        return TranslationJob.from_row(row) if row else None

    async def load_book(self, book_uuid: str) -> Optional[BookRecord]:
        row = await self.store.first("SELECT * FROM books WHERE uuid = ? LIMIT 1", (book_uuid,))
        return BookRecord.from_row(row) if row else None

    async def load_chapter(self, book_id: int, chapter_number: int) -> Optional[ChapterRecord]:
        row = await self.store.first(
            """
            SELECT id, book_id, chapter_number, title, original_title, segments_json
            FROM chapters WHERE book_id = ? AND chapter_number = ?
            """,
            (book_id, chapter_number),
        )
        return ChapterRecord.from_row(row) if row else None

    async def collect_segment_texts(self, book_id: int) -> List[str]:
        """Plain text of every cached segment, in reading order."""
        rows = await self.store.all(
            "SELECT segments_json FROM chapters WHERE book_id = ? ORDER BY chapter_number",
            (book_id,),
        )
        texts = []
        for row in rows:
            for item in json.loads(row['segments_json'] or '[]'):
                texts.append(item['plain_text'])
        return texts

    async def load_translations(self, chapter_id: int) -> List[TranslatedSegment]:
        rows = await self.store.all(
            "SELECT * FROM translations WHERE chapter_id = ? ORDER BY order_index",
            (chapter_id,),
        )
        return [TranslatedSegment.from_row(row) for row in rows]

    async def list_chapters(self, book_id: int) -> List[Dict]:
        return await self.store.all(
            "SELECT id, chapter_number, title, original_title FROM chapters "
            "WHERE book_id = ? ORDER BY chapter_number",
            (book_id,),
        )

    # ------------------------------------------------------------------
    # Checkpoint writes
    # ------------------------------------------------------------------

    async def mark_extracting_glossary(self, book_uuid: str):
        await self._update_job(book_uuid, status=JobStatus.EXTRACTING_GLOSSARY.value,
                               error_message=None)

    async def save_glossary(self, book_uuid: str, glossary: Dict[str, str]):
        """Glossary phase done: persist it and hand over to the chapter loop."""
        await self._update_job(
            book_uuid,
            glossary_json=json.dumps(glossary, ensure_ascii=False),
            glossary_extracted=1,
            status=JobStatus.TRANSLATING.value,
            current_chapter=1,
            current_item_offset=0,
        )
        log.debug(f"Glossary saved ({len(glossary)} entries)", LogType.CHECKPOINT)

    async def save_book_title(self, book_uuid: str, translated_title: str):
        await self.store.batch([
            ("UPDATE books SET title = ?, updated_at = CURRENT_TIMESTAMP WHERE uuid = ?",
             (translated_title, book_uuid)),
            ("UPDATE translation_jobs SET title_translated = 1, translated_title = ?, "
             "updated_at = CURRENT_TIMESTAMP WHERE book_uuid = ?",
             (translated_title, book_uuid)),
        ])

    async def mark_translating(self, book_uuid: str):
        """Resume from an earlier state: back to translating, error cleared."""
        await self._update_job(book_uuid, status=JobStatus.TRANSLATING.value, error_message=None)

    async def save_item_offset(self, book_uuid: str, offset: int):
        await self._update_job(book_uuid, current_item_offset=offset)
        log.debug(f"Checkpoint: offset {offset}", LogType.CHECKPOINT)

    async def upsert_translation(self, segment: TranslatedSegment):
        """Insert or overwrite the row for (chapter_id, address)."""
        await self.store.run(
            """
            INSERT INTO translations (chapter_id, address, original_text, original_html,
                                      translated_text, order_index)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (chapter_id, address) DO UPDATE SET
                original_text = excluded.original_text,
                original_html = excluded.original_html,
                translated_text = excluded.translated_text,
                order_index = excluded.order_index,
                updated_at = CURRENT_TIMESTAMP
            """,
            (segment.chapter_id, segment.address, segment.original_text,
             segment.original_fragment, segment.translated_text, segment.order_index),
        )

    async def save_chapter_title(self, chapter_id: int, title: str):
        await self.store.run("UPDATE chapters SET title = ? WHERE id = ?", (title, chapter_id))

    async def complete_chapter(self, book_uuid: str, next_chapter: int, completed_chapters: int):
        """Chapter done: move the cursor to the next chapter, offset reset."""
        await self._update_job(
            book_uuid,
            completed_chapters=completed_chapters,
            current_chapter=next_chapter,
            current_item_offset=0,
        )
        log.debug(f"Checkpoint: {completed_chapters} chapters completed", LogType.CHECKPOINT)

    async def set_book_status(self, book_uuid: str, status: BookStatus):
        await self.store.run(
            "UPDATE books SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE uuid = ?",
            (status.value, book_uuid),
        )

    async def complete_job(self, book_uuid: str, book_id: int):
        """Book ready, cached segment blobs dropped, job completed."""
        await self.store.batch([
            ("UPDATE books SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE uuid = ?",
             (BookStatus.READY.value, book_uuid)),
            ("UPDATE chapters SET segments_json = NULL WHERE book_id = ?", (book_id,)),
            ("UPDATE translation_jobs SET status = ?, current_item_offset = 0, "
             "updated_at = CURRENT_TIMESTAMP WHERE book_uuid = ?",
             (JobStatus.COMPLETED.value, book_uuid)),
        ])

    async def mark_failed(self, book_uuid: str, message: str):
        await self.store.batch([
            ("UPDATE translation_jobs SET status = ?, error_message = ?, "
             "updated_at = CURRENT_TIMESTAMP WHERE book_uuid = ?",
             (JobStatus.ERROR.value, message, book_uuid)),
            ("UPDATE books SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE uuid = ?",
             (BookStatus.ERROR.value, book_uuid)),
        ])

    async def _update_job(self, book_uuid: str, **fields):
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = list(fields.values()) + [book_uuid]
        await self.store.run(
            f"UPDATE translation_jobs SET {assignments}, updated_at = CURRENT_TIMESTAMP "
            f"WHERE book_uuid = ?",
            params,
        )

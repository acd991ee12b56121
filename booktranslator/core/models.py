"""
Data model shared by extraction, persistence and the job orchestrator.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Lifecycle of a translation job."""
    PENDING = "pending"
    EXTRACTING_GLOSSARY = "extracting_glossary"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    ERROR = "error"


class BookStatus(str, Enum):
    """Lifecycle of an imported document."""
    DRAFT = "draft"
    TRANSLATING = "translating"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class Segment:
    """Smallest unit of translatable text.

    Attributes:
        address: Structural path, e.g. ``/body[1]/div[2]/p[3]``
        plain_text: Flattened text with whitespace collapsed
        formatted_fragment: Inner markup of the block, inline tags kept
        order_index: Position in document order within the chapter
    """
    address: str
    plain_text: str
    formatted_fragment: str
    order_index: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Segment':
        return cls(
            address=data['address'],
            plain_text=data['plain_text'],
            formatted_fragment=data.get('formatted_fragment', ''),
            order_index=int(data['order_index']),
        )


def segments_to_json(segments: List[Segment]) -> str:
    return json.dumps([segment.to_dict() for segment in segments], ensure_ascii=False)


def segments_from_json(payload: Optional[str]) -> List[Segment]:
    if not payload:
        return []
    return [Segment.from_dict(item) for item in json.loads(payload)]


@dataclass
class Chapter:
    """One reading unit of a document. Only ``title`` changes after import."""
    number: int
    title: str
    original_title: str
    segments: List[Segment] = field(default_factory=list)
    raw_markup: str = ""


@dataclass
class Document:
    """A book decomposed into chapters."""
    title: str
    author: str = ""
    source_language: str = ""
    target_language: str = ""
    chapters: List[Chapter] = field(default_factory=list)
    status: BookStatus = BookStatus.DRAFT
    id: Optional[str] = None


@dataclass
class BookRecord:
    """Persisted book row."""
    id: int
    uuid: str
    title: str
    original_title: str
    author: str
    status: BookStatus

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'BookRecord':
        return cls(
            id=int(row['id']),
            uuid=row['uuid'],
            title=row.get('title') or '',
            original_title=row.get('original_title') or row.get('title') or '',
            author=row.get('author') or '',
            status=BookStatus(row.get('status') or BookStatus.DRAFT.value),
        )


@dataclass
class ChapterRecord:
    """Persisted chapter row with its cached segments."""
    id: int
    book_id: int
    number: int
    title: str
    original_title: str
    segments: List[Segment]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ChapterRecord':
        return cls(
            id=int(row['id']),
            book_id=int(row['book_id']),
            number=int(row['chapter_number']),
            title=row.get('title') or '',
            original_title=row.get('original_title') or row.get('title') or '',
            segments=segments_from_json(row.get('segments_json')),
        )


@dataclass
class TranslationJob:
    """Durable checkpoint record of one book's translation.

    ``current_item_offset`` counts the segments of ``current_chapter``
    already translated and means nothing for any other chapter.
    """
    book_id: int
    book_uuid: str
    source_language: str
    target_language: str
    total_chapters: int
    completed_chapters: int = 0
    current_chapter: int = 0
    current_item_offset: int = 0
    glossary: Dict[str, str] = field(default_factory=dict)
    glossary_extracted: bool = False
    title_translated: bool = False
    translated_title: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'TranslationJob':
        glossary_json = row.get('glossary_json')
        return cls(
            book_id=int(row['book_id']),
            book_uuid=row['book_uuid'],
            source_language=row['source_language'],
            target_language=row['target_language'],
            total_chapters=int(row.get('total_chapters') or 0),
            completed_chapters=int(row.get('completed_chapters') or 0),
            current_chapter=int(row.get('current_chapter') or 0),
            current_item_offset=int(row.get('current_item_offset') or 0),
            glossary=json.loads(glossary_json) if glossary_json else {},
            glossary_extracted=bool(row.get('glossary_extracted')),
            title_translated=bool(row.get('title_translated')),
            translated_title=row.get('translated_title'),
            status=JobStatus(row.get('status') or JobStatus.PENDING.value),
            error_message=row.get('error_message'),
        )


@dataclass(frozen=True)
class TranslatedSegment:
    """Result row, unique per (chapter_id, address)."""
    chapter_id: int
    address: str
    original_text: str
    original_fragment: str
    translated_text: str
    order_index: int

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'TranslatedSegment':
        return cls(
            chapter_id=int(row['chapter_id']),
            address=row['address'],
            original_text=row['original_text'],
            original_fragment=row.get('original_html') or '',
            translated_text=row['translated_text'],
            order_index=int(row['order_index']),
        )

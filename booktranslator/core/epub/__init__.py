"""
EPUB reading and segment extraction.
"""

from .segment_extractor import SegmentExtractor, FragmentBounds, ExtractionResult
from .fallback_extractor import extract_by_pattern
from .book_reader import EpubReader
from .exceptions import EpubFormatError

__all__ = [
    'SegmentExtractor',
    'FragmentBounds',
    'ExtractionResult',
    'extract_by_pattern',
    'EpubReader',
    'EpubFormatError',
]

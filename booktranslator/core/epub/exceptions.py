"""
Exceptions raised while reading EPUB archives.

Malformed chapter markup never raises (extraction degrades to the
pattern strategy); only an unusable archive or package document does.
"""

from typing import Optional, Dict, Any

from booktranslator.core.exceptions import TranslationError


class EpubFormatError(TranslationError):
    """Raised when the archive, container or package document cannot be used."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)

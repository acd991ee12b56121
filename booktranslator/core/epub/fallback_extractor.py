"""
Pattern-based segment extraction for markup the parser cannot handle.

Lower-priority strategy used only when structural extraction fails or
finds nothing. Addresses are flat (``/body[1]/p[3]``), counted per tag
over the matches, and duplicate texts are skipped.
"""
import html
import re
from typing import List

from booktranslator.config import MIN_SEGMENT_LENGTH
from booktranslator.core.models import Segment

_SCRIPT_STYLE = re.compile(r'<(script|style)\b[^>]*>[\s\S]*?</\1\s*>', re.IGNORECASE)
_BLOCK = re.compile(r'<(p|h[1-6]|div|li|blockquote|td|th|dt|dd)\b[^>]*>([\s\S]*?)</\1\s*>', re.IGNORECASE)
_TAG = re.compile(r'<[^>]+>')
_WHITESPACE = re.compile(r'\s+')


def extract_by_pattern(markup: str, min_length: int = MIN_SEGMENT_LENGTH) -> List[Segment]:
    """Scan raw markup for block-looking spans."""
    cleaned = _SCRIPT_STYLE.sub('', markup)
    counters = {}
    seen = set()
    segments: List[Segment] = []

    for match in _BLOCK.finditer(cleaned):
        tag = match.group(1).lower()
        inner = match.group(2)
        text = _WHITESPACE.sub(' ', html.unescape(_TAG.sub('', inner))).strip()
        if len(text) < min_length or text in seen:
            continue
        seen.add(text)
        counters[tag] = counters.get(tag, 0) + 1
        segments.append(Segment(
            address=f"/body[1]/{tag}[{counters[tag]}]",
            plain_text=text,
            formatted_fragment=inner.strip(),
            order_index=len(segments),
        ))

    return segments

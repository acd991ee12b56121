"""
Segment extraction from chapter markup

Turns one chapter's (X)HTML into an ordered list of addressable segments.
A segment is the content of a block element, flattened whole; only
blocks that merely wrap other blocks are walked into.
Its address is the chain of ``tag[ordinal]`` steps from ``/body[1]``,
where the ordinal counts preceding siblings with the same tag, so the
same markup always yields the same addresses.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from lxml import etree

from booktranslator.config import BLOCK_TAGS, SKIP_TAGS, MIN_SEGMENT_LENGTH
from booktranslator.core.models import Segment
from booktranslator.core.epub.fallback_extractor import extract_by_pattern
from booktranslator.core.epub.xml_helpers import (
    collapse_whitespace,
    contains_id,
    find_body,
    flatten_text,
    has_id,
    inner_markup,
    is_element,
    iter_child_elements,
    local_name,
    outer_markup,
    parse_markup,
)
from booktranslator.utils import unified_logger as log

BODY_PATH = "/body[1]"


@dataclass(frozen=True)
class FragmentBounds:
    """Limits extraction to the span between two element ids.

    Extraction starts at ``start_id`` (inclusive) and stops before
    ``end_id``. ``start_id=None`` starts at the top of the file and
    ``end_id=None`` runs to its end.
    """
    start_id: Optional[str]
    end_id: Optional[str] = None


@dataclass
class ExtractionResult:
    segments: List[Segment]
    raw_markup: str
    strategy: str  # 'structural', 'pattern' or 'empty'


@dataclass
class _WalkState:
    started: bool
    start_id: Optional[str] = None
    end_id: Optional[str] = None
    stopped: bool = False
    segments: List[Segment] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)


class SegmentExtractor:
    """Stateless extractor; one instance can be shared across chapters."""

    def __init__(self, min_length: int = MIN_SEGMENT_LENGTH,
                 block_tags=BLOCK_TAGS, skip_tags=SKIP_TAGS):
        self.min_length = min_length
        self.block_tags = frozenset(block_tags)
        self.skip_tags = frozenset(skip_tags)

    def extract(self, markup: str, bounds: Optional[FragmentBounds] = None) -> List[Segment]:
        """Extract segments in document order. Never raises on bad markup."""
        return self.extract_with_markup(markup, bounds).segments

    def extract_with_markup(self, markup: str,
                            bounds: Optional[FragmentBounds] = None) -> ExtractionResult:
        """
        Extract segments together with the markup they came from.

        Args:
            markup: Chapter (X)HTML
            bounds: Optional fragment bounds for files holding several chapters

        Returns:
            ExtractionResult; ``raw_markup`` is the body content for a whole
            file, or the extracted blocks joined for a fragment
        """
        root = parse_markup(markup)
        if root is None:
            return self._fallback(markup, "markup could not be parsed")

        body = find_body(root)
        if local_name(body) == 'body' or local_name(body) == 'html':
            children = list(iter_child_elements(body))
        else:
            # Bare fragment such as "<p>...</p>": treat the root as body content
            children = [body]

        state = _WalkState(started=bounds is None or bounds.start_id is None)
        if bounds is not None:
            state.start_id = bounds.start_id
            state.end_id = bounds.end_id
            if bounds.start_id and not any(contains_id(child, bounds.start_id) for child in children):
                log.warning(f"Fragment start '#{bounds.start_id}' not found, extracting from the beginning")
                state.started = True

        try:
            self._walk(children, BODY_PATH, state)
        except (etree.LxmlError, ValueError) as e:
            return self._fallback(markup, f"structural walk failed: {e}")

        if not state.segments:
            if bounds is None:
                return self._fallback(markup, "structural pass found no segments")
            # Bounded walks never widen to the whole file; those segments belong
            # to the neighbouring fragments.
            return ExtractionResult(segments=[], raw_markup='', strategy='empty')

        if bounds is None:
            raw_markup = inner_markup(body) if local_name(body) == 'body' else outer_markup(body)
        else:
            raw_markup = '\n'.join(state.blocks)
        return ExtractionResult(segments=state.segments, raw_markup=raw_markup, strategy='structural')

    def _fallback(self, markup: str, reason: str) -> ExtractionResult:
        segments = extract_by_pattern(markup or '', min_length=self.min_length)
        if segments:
            log.debug(f"Pattern extraction used ({reason}): {len(segments)} segments")
            return ExtractionResult(segments=segments, raw_markup=markup, strategy='pattern')
        return ExtractionResult(segments=[], raw_markup='', strategy='empty')

    def _is_wrapper(self, element: etree._Element) -> bool:
        """
        A block whose only content is other blocks.

        Wrappers are walked through so each inner block becomes its own
        segment. Any text of its own, including text inside inline children
        or after a child, makes the block a segment extracted whole.
        """
        if (element.text or '').strip():
            return False
        holds_block = False
        for child in element:
            if (child.tail or '').strip():
                return False
            if not is_element(child):
                continue
            tag = local_name(child)
            if tag in self.block_tags:
                holds_block = True
            elif tag not in self.skip_tags and flatten_text(child, self.skip_tags).strip():
                return False
        return holds_block

    def _walk(self, children: Iterable[etree._Element], path: str, state: _WalkState):
        ordinals = {}
        for child in children:
            if state.stopped:
                return

            tag = local_name(child)
            ordinals[tag] = ordinals.get(tag, 0) + 1
            child_path = f"{path}/{tag}[{ordinals[tag]}]"

            if tag in self.skip_tags:
                continue

            is_block = tag in self.block_tags and not self._is_wrapper(child)

            if state.end_id:
                if has_id(child, state.end_id) or (is_block and contains_id(child, state.end_id)):
                    state.stopped = True
                    return

            if not state.started and state.start_id:
                if has_id(child, state.start_id) or (is_block and contains_id(child, state.start_id)):
                    state.started = True

            if is_block:
                if state.started:
                    self._emit(child, child_path, state)
                continue

            self._walk(iter_child_elements(child), child_path, state)

    def _emit(self, element: etree._Element, address: str, state: _WalkState):
        text = collapse_whitespace(flatten_text(element, self.skip_tags))
        if len(text) < self.min_length:
            return
        state.segments.append(Segment(
            address=address,
            plain_text=text,
            formatted_fragment=inner_markup(element),
            order_index=len(state.segments),
        ))
        state.blocks.append(outer_markup(element))

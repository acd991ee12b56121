"""
XML/HTML helper utilities for safe element inspection

Chapters arrive as XHTML (namespaced) or as loose HTML, so every helper
here compares local tag names and ignores comments and processing
instructions.
"""
import re
from html.entities import name2codepoint
from typing import Iterator, Optional

from lxml import etree, html as lxml_html

from booktranslator.utils import unified_logger as log

_XML_ENTITIES = frozenset({'amp', 'lt', 'gt', 'quot', 'apos'})
_NAMED_ENTITY = re.compile(r'&([A-Za-z][A-Za-z0-9]*);')
_OUTER_OPEN_TAG = re.compile(r'^<[^>]+>')
_OUTER_CLOSE_TAG = re.compile(r'</[^>]+>$')
_WHITESPACE = re.compile(r'\s+')
_XML_DECLARATION = re.compile(r'^\s*<\?xml[^>]*\?>')


def is_element(node) -> bool:
    """True for real elements (comments and PIs have a non-string tag)."""
    return isinstance(node.tag, str)


def local_name(element: etree._Element) -> str:
    """Lower-case tag name without namespace."""
    if not is_element(element):
        return ''
    return etree.QName(element).localname.lower()


def iter_child_elements(element: etree._Element) -> Iterator[etree._Element]:
    """Yield element children only."""
    for child in element:
        if is_element(child):
            yield child


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def numeric_entities(markup: str) -> str:
    """Replace HTML named entities (``&nbsp;``) with numeric references
    so the strict XML parser accepts them."""
    def replace(match):
        name = match.group(1)
        if name in _XML_ENTITIES:
            return match.group(0)
        codepoint = name2codepoint.get(name)
        if codepoint is None:
            return match.group(0)
        return f'&#{codepoint};'
    return _NAMED_ENTITY.sub(replace, markup)


def decode_markup(data: bytes) -> str:
    """
    Decode a content document with the encoding lxml reads from it.

    lxml honours a byte-order mark and the XML declaration, and assumes
    UTF-8 when neither is present. Undecodable bytes become U+FFFD.
    """
    encoding = None
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(data, parser)
        if root is not None:
            encoding = root.getroottree().docinfo.encoding
    except etree.XMLSyntaxError as e:
        log.debug(f"Could not read declared encoding: {e}")

    try:
        text = data.decode(encoding or 'utf-8', errors='replace')
    except LookupError:
        log.warning(f"Unknown encoding '{encoding}', decoding as UTF-8")
        text = data.decode('utf-8', errors='replace')
    return text.lstrip('\ufeff')


def parse_markup(markup: str) -> Optional[etree._Element]:
    """
    Parse chapter markup into an element tree.

    Strict XML first (EPUB content documents are XHTML), then lxml's
    forgiving HTML parser. Returns None when neither produces a tree.
    """
    if not markup or not markup.strip():
        return None

    # The text is already decoded; a declared encoding would mislead the parser
    markup = _XML_DECLARATION.sub('', markup, count=1)
    data = numeric_entities(markup).encode('utf-8')
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        return etree.fromstring(data, parser)
    except etree.XMLSyntaxError as e:
        log.debug(f"Strict XML parse failed, using HTML parser: {e}")

    try:
        return lxml_html.document_fromstring(data)
    except (etree.ParserError, ValueError) as e:
        log.debug(f"HTML parse failed: {e}")
        return None


def find_body(root: etree._Element) -> etree._Element:
    """Return the <body> element, or the root when there is none."""
    if local_name(root) == 'body':
        return root
    for element in root.iter():
        if local_name(element) == 'body':
            return element
    return root


def has_id(element: etree._Element, ident: str) -> bool:
    return is_element(element) and element.get('id') == ident


def contains_id(element: etree._Element, ident: str) -> bool:
    """True if the element or any descendant carries ``id=ident``."""
    if has_id(element, ident):
        return True
    return bool(element.xpath('.//*[@id=$ident]', ident=ident))


def flatten_text(element: etree._Element, skip_tags=frozenset()) -> str:
    """Concatenated descendant text, skipping the given tags (their tails are kept)."""
    parts = []

    def walk(node):
        if node.text:
            parts.append(node.text)
        for child in node:
            if is_element(child) and local_name(child) not in skip_tags:
                walk(child)
            if child.tail:
                parts.append(child.tail)

    walk(element)
    return ''.join(parts)


def inner_markup(element: etree._Element) -> str:
    """
    Serialize the content of an element without its own tags.

    The element is serialized whole and its outer tags stripped, which
    keeps namespace declarations off the inline children.
    """
    serialized = etree.tostring(element, encoding='unicode', method='xml', with_tail=False)
    if serialized.endswith('/>') and not _OUTER_CLOSE_TAG.search(serialized):
        return ''
    inner = _OUTER_OPEN_TAG.sub('', serialized, count=1)
    inner = _OUTER_CLOSE_TAG.sub('', inner, count=1)
    return inner.strip()


def outer_markup(element: etree._Element) -> str:
    return etree.tostring(element, encoding='unicode', method='xml', with_tail=False)

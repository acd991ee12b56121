"""
EPUB reading: package metadata, table of contents and chapter extraction.

The TOC (EPUB 3 nav document, else NCX) decides what a chapter is. Entries
pointing into the same file with ``#fragment`` ids are extracted with
fragment bounds, the next entry's fragment in that file being the end.
Books without a usable TOC fall back to the spine.
"""
import hashlib
import io
import posixpath
import re
import zipfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

import aiofiles
from lxml import etree

from booktranslator.config import NAMESPACES
from booktranslator.core.models import Chapter, Document
from booktranslator.core.epub.segment_extractor import FragmentBounds, SegmentExtractor
from booktranslator.core.epub.exceptions import EpubFormatError
from booktranslator.core.epub.xml_helpers import collapse_whitespace, decode_markup
from booktranslator.utils import unified_logger as log

XHTML_MEDIA_TYPES = ('application/xhtml+xml', 'text/html')
NCX_MEDIA_TYPE = 'application/x-dtbncx+xml'

_FRONT_MATTER_TITLES = re.compile(
    r'^\s*(cover|table of contents|contents|toc|目录|目錄|封面)\s*$', re.IGNORECASE
)
_FRONT_MATTER_FILES = re.compile(r'(^|[_\-.])(cover|toc|nav)([_\-.\d]|$)', re.IGNORECASE)
_SPINE_SKIP_FILES = re.compile(r'(^|[_\-.])(cover|titlepage|toc|nav)([_\-.\d]|$)', re.IGNORECASE)
_HEADING_ADDRESS = re.compile(r'/h[1-3]\[\d+\]$')


@dataclass
class ManifestItem:
    id: str
    path: str  # archive path
    media_type: str
    properties: str = ''


@dataclass
class TocEntry:
    title: str
    path: str  # archive path
    fragment: Optional[str] = None


def _parse_xml(data: bytes) -> etree._Element:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=True)
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError as e:
        raise EpubFormatError("Unparseable XML document in EPUB", context={'error': str(e)}) from e
    if root is None:
        raise EpubFormatError("Unparseable XML document in EPUB")
    return root


def _resolve(base_dir: str, href: str) -> Tuple[str, Optional[str]]:
    """Resolve an href against a directory inside the archive; split off the fragment."""
    href, _, fragment = href.partition('#')
    path = posixpath.normpath(posixpath.join(base_dir, unquote(href))) if href else ''
    return path, (fragment or None)


def content_hash(chapter: Chapter) -> str:
    joined = '\n'.join(segment.plain_text for segment in chapter.segments)
    return hashlib.md5(joined.encode('utf-8')).hexdigest()


class EpubReader:
    """Builds a Document from an EPUB archive."""

    def __init__(self, extractor: Optional[SegmentExtractor] = None):
        self.extractor = extractor or SegmentExtractor()

    async def read(self, epub_path: str, source_language: Optional[str] = None,
                   target_language: str = '') -> Document:
        """Read an EPUB file from disk."""
        async with aiofiles.open(epub_path, 'rb') as f:
            data = await f.read()
        return self.parse(data, source_language=source_language, target_language=target_language)

    def parse(self, data: bytes, source_language: Optional[str] = None,
              target_language: str = '') -> Document:
        """
        Build a Document from EPUB bytes.

        Args:
            data: The EPUB archive
            source_language: Overrides the package's dc:language
            target_language: Recorded on the document

        Raises:
            EpubFormatError: If the archive or its package document is unusable
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise EpubFormatError("Not a valid EPUB archive", context={'error': str(e)}) from e

        with archive:
            opf_path = self._find_opf(archive)
            opf_root = _parse_xml(archive.read(opf_path))
            opf_dir = posixpath.dirname(opf_path)

            metadata = self._read_metadata(opf_root)
            manifest = self._read_manifest(opf_root, opf_dir)
            spine, toc_id = self._read_spine(opf_root, manifest)

            entries = [entry for entry in self._read_toc(archive, manifest, toc_id)
                       if not self._is_front_matter(entry)]
            from_toc = bool(entries)
            if not from_toc:
                log.info("No usable table of contents, using the spine")
                entries = [TocEntry(title='', path=item.path) for item in spine
                           if not _SPINE_SKIP_FILES.search(posixpath.basename(item.path))]

            chapters = self._build_chapters(archive, entries)

        log.info(f"Read '{metadata['title']}': {len(chapters)} chapters "
                 f"({'toc' if from_toc else 'spine'})")
        return Document(
            title=metadata['title'],
            author=metadata['author'],
            source_language=source_language or metadata['language'],
            target_language=target_language,
            chapters=chapters,
        )

    def _find_opf(self, archive: zipfile.ZipFile) -> str:
        names = archive.namelist()
        if 'META-INF/container.xml' in names:
            container = _parse_xml(archive.read('META-INF/container.xml'))
            rootfile = container.find('.//container:rootfile', namespaces=NAMESPACES)
            if rootfile is not None and rootfile.get('full-path') in names:
                return rootfile.get('full-path')

        for name in names:
            if name.endswith('.opf'):
                return name
        raise EpubFormatError("No OPF file found in EPUB")

    def _read_metadata(self, opf_root: etree._Element) -> Dict[str, str]:
        metadata = {'title': 'Untitled', 'author': '', 'language': 'en'}
        metadata_elem = opf_root.find('.//opf:metadata', namespaces=NAMESPACES)
        if metadata_elem is None:
            return metadata

        for key, path in (('title', 'dc:title'), ('author', 'dc:creator'), ('language', 'dc:language')):
            elem = metadata_elem.find(f'.//{path}', namespaces=NAMESPACES)
            if elem is not None and elem.text and elem.text.strip():
                metadata[key] = elem.text.strip()
        return metadata

    def _read_manifest(self, opf_root: etree._Element, opf_dir: str) -> Dict[str, ManifestItem]:
        manifest = opf_root.find('.//opf:manifest', namespaces=NAMESPACES)
        if manifest is None:
            raise EpubFormatError("No manifest found in EPUB")

        items = {}
        for item in manifest.findall('.//opf:item', namespaces=NAMESPACES):
            item_id, href = item.get('id'), item.get('href')
            if not item_id or not href:
                continue
            path, _ = _resolve(opf_dir, href)
            items[item_id] = ManifestItem(
                id=item_id,
                path=path,
                media_type=item.get('media-type', ''),
                properties=item.get('properties', ''),
            )
        return items

    def _read_spine(self, opf_root: etree._Element,
                    manifest: Dict[str, ManifestItem]) -> Tuple[List[ManifestItem], Optional[str]]:
        spine = opf_root.find('.//opf:spine', namespaces=NAMESPACES)
        if spine is None:
            raise EpubFormatError("No spine found in EPUB")

        items = []
        for itemref in spine.findall('.//opf:itemref', namespaces=NAMESPACES):
            item = manifest.get(itemref.get('idref', ''))
            if item is not None and item.media_type in XHTML_MEDIA_TYPES:
                items.append(item)
        return items, spine.get('toc')

    def _read_toc(self, archive: zipfile.ZipFile, manifest: Dict[str, ManifestItem],
                  toc_id: Optional[str]) -> List[TocEntry]:
        names = set(archive.namelist())

        nav = next((item for item in manifest.values() if 'nav' in item.properties.split()), None)
        if nav is not None and nav.path in names:
            entries = self._read_nav(archive.read(nav.path), posixpath.dirname(nav.path))
            if entries:
                return entries

        ncx = manifest.get(toc_id) if toc_id else None
        if ncx is None:
            ncx = next((item for item in manifest.values() if item.media_type == NCX_MEDIA_TYPE), None)
        if ncx is not None and ncx.path in names:
            return self._read_ncx(archive.read(ncx.path), posixpath.dirname(ncx.path))

        return []

    def _read_nav(self, data: bytes, base_dir: str) -> List[TocEntry]:
        root = _parse_xml(data)
        epub_type = f"{{{NAMESPACES['epub']}}}type"

        toc_nav = None
        for nav in root.iter(f"{{{NAMESPACES['xhtml']}}}nav", 'nav'):
            if nav.get(epub_type) == 'toc' or nav.get('role') == 'doc-toc':
                toc_nav = nav
                break
        if toc_nav is None:
            return []

        entries = []
        for anchor in toc_nav.iter(f"{{{NAMESPACES['xhtml']}}}a", 'a'):
            href = anchor.get('href')
            if not href:
                continue
            path, fragment = _resolve(base_dir, href)
            title = collapse_whitespace(''.join(anchor.itertext()))
            entries.append(TocEntry(title=title, path=path, fragment=fragment))
        return entries

    def _read_ncx(self, data: bytes, base_dir: str) -> List[TocEntry]:
        root = _parse_xml(data)
        entries = []
        # iter() walks nested navPoints in document (reading) order
        for nav_point in root.iter(f"{{{NAMESPACES['ncx']}}}navPoint"):
            content = nav_point.find('ncx:content', namespaces=NAMESPACES)
            if content is None or not content.get('src'):
                continue
            label = nav_point.find('ncx:navLabel/ncx:text', namespaces=NAMESPACES)
            title = collapse_whitespace(label.text) if label is not None and label.text else ''
            path, fragment = _resolve(base_dir, content.get('src'))
            entries.append(TocEntry(title=title, path=path, fragment=fragment))
        return entries

    def _is_front_matter(self, entry: TocEntry) -> bool:
        if entry.title and _FRONT_MATTER_TITLES.match(entry.title):
            return True
        return bool(_FRONT_MATTER_FILES.search(posixpath.basename(entry.path)))

    def _build_chapters(self, archive: zipfile.ZipFile, entries: List[TocEntry]) -> List[Chapter]:
        names = set(archive.namelist())
        markup_cache: Dict[str, str] = {}
        seen_hashes = set()
        chapters: List[Chapter] = []

        for index, entry in enumerate(entries):
            if entry.path not in names:
                log.warning(f"TOC entry '{entry.title}' points to missing file {entry.path}")
                continue
            if entry.path not in markup_cache:
                markup_cache[entry.path] = decode_markup(archive.read(entry.path))
            markup = markup_cache[entry.path]

            bounds = self._bounds_for(entries, index)
            result = self.extractor.extract_with_markup(markup, bounds)

            number = len(chapters) + 1
            chapter = Chapter(
                number=number,
                title='',
                original_title='',
                segments=result.segments,
                raw_markup=result.raw_markup,
            )

            if chapter.segments:
                digest = content_hash(chapter)
                if digest in seen_hashes:
                    log.debug(f"Skipping duplicate TOC entry '{entry.title}' ({entry.path})")
                    continue
                seen_hashes.add(digest)

            title = entry.title or self._heading_title(chapter) or f"Chapter {number}"
            chapter.title = chapter.original_title = title
            chapters.append(chapter)

        return chapters

    def _bounds_for(self, entries: List[TocEntry], index: int) -> Optional[FragmentBounds]:
        """Fragment bounds of an entry, or None when it owns its whole file."""
        entry = entries[index]
        end_id = None
        for later in entries[index + 1:]:
            if later.path == entry.path and later.fragment and later.fragment != entry.fragment:
                end_id = later.fragment
                break
        if entry.fragment is None and end_id is None:
            return None
        return FragmentBounds(start_id=entry.fragment, end_id=end_id)

    @staticmethod
    def _heading_title(chapter: Chapter) -> str:
        for segment in chapter.segments:
            if _HEADING_ADDRESS.search(segment.address):
                return segment.plain_text
        return ''

"""
Clean Text Extraction
=====================

Turns HTML or plain text into the canonical clean-text buffer plus the
ordered text blocks the structure builder locates within it.

Block text and clean text are produced by the same walk and whitespace
normalization, so every block can be found again in the buffer.

Version: 0.1.0
"""

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, CData, NavigableString, Tag

from services.regulatory_truth.parser.types import DocMeta


DEFAULT_BLOCK_SELECTOR = "p, div.clanak, div.stavak, li, h1, h2, h3, h4, td"

REMOVED_TAGS = ["script", "style", "noscript", "template", "iframe", "svg"]

BLOCK_TAGS = frozenset(
    (
        "address article aside blockquote caption dd div dl dt fieldset figcaption "
        "figure footer form h1 h2 h3 h4 h5 h6 header hr li main nav ol p pre "
        "section table tbody td tfoot th thead tr ul"
    ).split()
)

TEXT_TYPE_KEYWORDS = (
    ("zakon", "zakon"),
    ("pravilnik", "pravilnik"),
    ("uredba", "uredba"),
    ("odluka", "odluka"),
)

_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_BLOCK_END = object()


@dataclass
class TableBlock:
    """A table, located row by row. Each row is its cells joined by newlines."""

    rows: list[str] = field(default_factory=list)


@dataclass
class CleanedDocument:
    """Clean text plus the blocks to locate in it, in document order."""

    clean_text: str
    blocks: list[str | TableBlock] = field(default_factory=list)
    doc_meta: DocMeta = field(default_factory=DocMeta)


def normalize_whitespace(raw: str) -> str:
    """Collapse runs of inline whitespace, trim lines, drop empty lines."""
    lines = (_INLINE_WHITESPACE.sub(" ", line).strip() for line in raw.splitlines())
    return "\n".join(line for line in lines if line)


def _raw_text(root: Tag) -> str:
    # Iterative walk; deeply nested markup must not hit the recursion limit
    parts: list[str] = []
    stack: list[object] = [root]
    while stack:
        node = stack.pop()
        if node is _BLOCK_END:
            parts.append("\n")
        elif isinstance(node, NavigableString):
            if type(node) in (NavigableString, CData):
                parts.append(str(node))
        elif isinstance(node, Tag):
            if node.name == "br":
                parts.append("\n")
                continue
            if node.name in BLOCK_TAGS:
                parts.append("\n")
                stack.append(_BLOCK_END)
            stack.extend(reversed(node.contents))
    return "".join(parts)


def element_text(element: Tag) -> str:
    return normalize_whitespace(_raw_text(element))


def table_block(table: Tag) -> TableBlock:
    rows = []
    for row in table.find_all("tr"):
        if row.find_parent("table") is not table:
            continue
        text = element_text(row)
        if text:
            rows.append(text)
    return TableBlock(rows=rows)


def detect_text_type(title: str | None) -> str | None:
    if not title:
        return None
    lowered = title.lower()
    for keyword, text_type in TEXT_TYPE_KEYWORDS:
        if keyword in lowered:
            return text_type
    return None


def _extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title is not None:
        title = soup.title.get_text(strip=True)
        if title:
            return title
    h1 = soup.find("h1")
    if h1 is not None:
        title = element_text(h1).replace("\n", " ")
        if title:
            return title
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title is not None and og_title.get("content"):
        return str(og_title["content"]).strip() or None
    return None


def clean_html(html: str, block_selector: str = DEFAULT_BLOCK_SELECTOR) -> CleanedDocument:
    soup = BeautifulSoup(html, "lxml")
    title = _extract_title(soup)

    for element in soup(REMOVED_TAGS):
        element.decompose()

    root = soup.body or soup
    clean_text = element_text(root)

    blocks: list[str | TableBlock] = []
    for element in root.select(f"{block_selector}, table"):
        # Cells and nested tables belong to the outermost table
        if element.find_parent("table") is not None:
            continue
        if element.name == "table":
            table = table_block(element)
            if table.rows:
                blocks.append(table)
            continue
        # Leaf-most blocks only; an enclosing block would swallow its children
        if element.select_one(block_selector) is not None:
            continue
        text = element_text(element)
        if text:
            blocks.append(text)

    return CleanedDocument(
        clean_text=clean_text,
        blocks=blocks,
        doc_meta=DocMeta(title=title, text_type=detect_text_type(title)),
    )


def clean_plain_text(text: str) -> CleanedDocument:
    """Each non-empty line is a block. The first line doubles as the title."""
    clean_text = normalize_whitespace(text)
    blocks = clean_text.split("\n") if clean_text else []
    title = blocks[0] if blocks else None
    return CleanedDocument(
        clean_text=clean_text,
        blocks=blocks,
        doc_meta=DocMeta(title=title, text_type=detect_text_type(title)),
    )

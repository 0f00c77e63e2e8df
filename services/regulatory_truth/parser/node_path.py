"""
Node paths and structural markers of Croatian legal texts.

Paths are ASCII and encode hierarchy and ordinal, e.g.
`/clanak:28/stavak:1/tocka:a`. The same provision yields the same path
on every parse, which keeps citations stable across parser versions.
"""

import re
from collections.abc import Iterable

from services.regulatory_truth.parser.types import ProvisionNode


ARTICLE_RE = re.compile(r"^(?:Č|C)lanak\s+(\d+[a-z]?)\.?$", re.IGNORECASE)
STAVAK_RE = re.compile(r"^[»\"'„]?\s*\((\d+)\)")
TOCKA_NUMBERED_RE = re.compile(r"^(\d+)\.\s")
TOCKA_LETTERED_RE = re.compile(r"^([a-z])\)\s", re.IGNORECASE)
BULLET_RE = re.compile(r"^[-–—]\s")

# Headings are upper case in the gazette; sentences starting "Dio ..." are not
PART_RE = re.compile(r"^(?:DIO\s+([A-ZČĆĐŠŽ]+|\d+)\.?|([IVXLCDM]+|\d+)\.\s*DIO)$")
CHAPTER_RE = re.compile(r"^(?:GLAVA\s+([A-ZČĆĐŠŽ]+|\d+)\.?|([IVXLCDM]+|\d+)\.\s*GLAVA)$")
SECTION_RE = re.compile(r"^(?:Odjeljak\s+(\d+)|(\d+)\.\s*Odjeljak)\.?$", re.IGNORECASE)
ANNEX_RE = re.compile(r"^PRILOG(?:\s+([IVXLCDM]+|\d+))?\.?$")

BULLET = "bullet"

SEGMENT_CLANAK = "clanak"
SEGMENT_STAVAK = "stavak"
SEGMENT_TOCKA = "tocka"
SEGMENT_DIO = "dio"
SEGMENT_GLAVA = "glava"
SEGMENT_NASLOV = "naslov"
SEGMENT_ODJELJAK = "odjeljak"
SEGMENT_PRILOG = "prilog"
SEGMENT_TABLICA = "tablica"
SEGMENT_REDAK = "redak"


def parse_article_number(text: str) -> str | None:
    """`"Članak 28."` -> `"28"`."""
    match = ARTICLE_RE.match(text.strip())
    return match.group(1).lower() if match else None


def parse_stavak_number(text: str) -> str | None:
    """`"(2) Porezni obveznik ..."` -> `"2"`."""
    match = STAVAK_RE.match(text.strip())
    return match.group(1) if match else None


def parse_tocka_label(text: str) -> str | None:
    """Point label: `"3"` for `3. `, `"b"` for `b) `, `"bullet"` for dashes."""
    stripped = text.strip() + " "
    match = TOCKA_NUMBERED_RE.match(stripped)
    if match:
        return match.group(1)
    match = TOCKA_LETTERED_RE.match(stripped)
    if match:
        return match.group(1).lower()
    if BULLET_RE.match(stripped):
        return BULLET
    return None


def _heading_ordinal(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.match(text.strip())
    if not match:
        return None
    return (match.group(1) or match.group(2)).lower()


def parse_part_heading(text: str) -> str | None:
    """`"DIO PRVI"` -> `"prvi"`, `"II. DIO"` -> `"ii"`."""
    return _heading_ordinal(PART_RE, text)


def parse_chapter_heading(text: str) -> str | None:
    """`"GLAVA III."` -> `"iii"`."""
    return _heading_ordinal(CHAPTER_RE, text)


def parse_section_heading(text: str) -> str | None:
    """`"Odjeljak 2."` -> `"2"`, `"2. Odjeljak"` -> `"2"`."""
    return _heading_ordinal(SECTION_RE, text)


def parse_annex_heading(text: str) -> str | None:
    """`"PRILOG II."` -> `"ii"`; a bare `"PRILOG"` is annex `"1"`."""
    match = ANNEX_RE.match(text.strip())
    if not match:
        return None
    return (match.group(1) or "1").lower()


def segment(kind: str, ordinal: str) -> str:
    return f"/{kind}:{ordinal}"


def build_node_path(
    article: str | None = None,
    stavak: str | None = None,
    tocka: str | None = None,
) -> str:
    parts = []
    if article is not None:
        parts.append(segment(SEGMENT_CLANAK, article))
    if stavak is not None:
        parts.append(segment(SEGMENT_STAVAK, stavak))
    if tocka is not None:
        parts.append(segment(SEGMENT_TOCKA, tocka))
    return "".join(parts)


def parent_path(node_path: str) -> str | None:
    """Path of the parent node, or None for top-level nodes."""
    cut = node_path.rfind("/")
    return node_path[:cut] if cut > 0 else None


def find_node_by_path(nodes: Iterable[ProvisionNode], node_path: str) -> ProvisionNode | None:
    for node in nodes:
        if node.node_path == node_path:
            return node
    return None

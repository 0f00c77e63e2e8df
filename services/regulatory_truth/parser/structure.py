"""
Provision Tree Builder
======================

Builds provision nodes from located text blocks.

Each block is found in the clean text with a whitespace-tolerant search
that starts at the end of the previous match, so nodes come out in
document order with non-decreasing offsets. Recognized markers:

- `DIO ...` / `GLAVA ...` / `Odjeljak N.` headings: PART / CHAPTER /
  SECTION containers
- `PRILOG ...`: ANNEX container, closing the body of the act
- the document title: TITLE container
- `Članak N.`: article
- `(N)`: paragraph of the current article
- `N. `, `a) `, dashes: point of the current paragraph (or article)
- tables: `tablica:N` under the innermost open node, one `redak:N` per row

Parents are widened to cover their children and then drop `raw_text`,
since their text is no longer a single contiguous block of their own.
Blocks with no marker extend the innermost open node.

Version: 0.1.0
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field

from services.regulatory_truth.parser import node_path as paths
from services.regulatory_truth.parser.cleaner import TableBlock
from services.regulatory_truth.parser.offsets import Utf16Index
from services.regulatory_truth.parser.types import (
    CONTAINER_TYPES,
    NodeType,
    ParseWarning,
    ProvisionNode,
)


SNIPPET_CHARS = 50


@dataclass
class BuiltStructure:
    nodes: list[ProvisionNode] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)


def _flexible_pattern(text: str) -> re.Pattern[str]:
    return re.compile(r"\s+".join(re.escape(token) for token in text.split()))


def locate_block(clean_text: str, block: str, cursor: int) -> tuple[int, int] | None:
    """Code-point span of `block` in `clean_text` at or after `cursor`."""
    if not block.strip():
        return None
    match = _flexible_pattern(block).search(clean_text, cursor)
    if match is None:
        return None
    return match.start(), match.end()


class _Builder:
    def __init__(self, clean_text: str, title: str | None) -> None:
        self.clean_text = clean_text
        self.index = Utf16Index(clean_text)
        self.title = title
        self.result = BuiltStructure()
        self.seen_paths: set[str] = set()

        # Next order index per parent node; the None key holds top-level nodes
        self.child_counts: dict[int | None, int] = defaultdict(int)
        self.table_counts: dict[int | None, int] = defaultdict(int)
        self.bullet_count = 0

        # Indexes into result.nodes of the currently open nodes
        self.part: int | None = None
        self.chapter: int | None = None
        self.section: int | None = None
        self.annex: int | None = None
        self.article: int | None = None
        self.stavak: int | None = None
        self.tocka: int | None = None

    @property
    def nodes(self) -> list[ProvisionNode]:
        return self.result.nodes

    def warn(self, code: str, message: str, node_path: str | None = None) -> None:
        self.result.warnings.append(ParseWarning(code=code, message=message, node_path=node_path))

    def _unique_path(self, path: str) -> str:
        if path not in self.seen_paths:
            self.seen_paths.add(path)
            return path
        n = 2
        while f"{path}~{n}" in self.seen_paths:
            n += 1
        unique = f"{path}~{n}"
        self.seen_paths.add(unique)
        self.warn("DUPLICATE_PATH", f"Duplicate node path {path}; stored as {unique}", unique)
        return unique

    def _next_order(self, parent: int | None) -> int:
        order = self.child_counts[parent]
        self.child_counts[parent] += 1
        return order

    def _add(
        self,
        node_type: NodeType,
        path: str,
        label: str,
        parent: int | None,
        span: tuple[int, int],
    ) -> int:
        start, end = span
        depth = self.nodes[parent].depth + 1 if parent is not None else 1
        self.nodes.append(
            ProvisionNode(
                node_path=self._unique_path(path),
                node_type=node_type,
                label=label,
                order_index=self._next_order(parent),
                depth=depth,
                start_offset=self.index.to_utf16(start),
                end_offset=self.index.to_utf16(end),
                raw_text=self.clean_text[start:end],
                is_container=node_type in CONTAINER_TYPES,
            )
        )
        return len(self.nodes) - 1

    def _widen(self, node_index: int | None, end: int, own_text: bool = False) -> None:
        """Extend a node to `end` (code points)."""
        if node_index is None:
            return
        node = self.nodes[node_index]
        end_utf16 = self.index.to_utf16(end)
        if end_utf16 <= node.end_offset:
            return
        node.end_offset = end_utf16
        if own_text:
            node.raw_text = self.index.slice(node.start_offset, node.end_offset)
        else:
            node.raw_text = None

    def _widen_containers(self, end: int) -> None:
        for container in (self.part, self.chapter, self.section, self.annex):
            self._widen(container, end)

    def _widen_open(self, end: int) -> None:
        self._widen_containers(end)
        self._widen(self.article, end)
        self._widen(self.stavak, end)
        self._widen(self.tocka, end)

    def _heading(
        self,
        node_type: NodeType,
        kind: str,
        ordinal: str,
        text: str,
        span: tuple[int, int],
    ) -> int:
        return self._add(node_type, paths.segment(kind, ordinal), text, None, span)

    def add_block(self, text: str, span: tuple[int, int]) -> None:
        end = span[1]

        ordinal = paths.parse_part_heading(text)
        if ordinal is not None:
            self.part = self._heading(NodeType.PART, paths.SEGMENT_DIO, ordinal, text, span)
            self.chapter = self.section = self.annex = None
            self.article = self.stavak = self.tocka = None
            return

        ordinal = paths.parse_chapter_heading(text)
        if ordinal is not None:
            self._widen(self.part, end)
            self.chapter = self._heading(NodeType.CHAPTER, paths.SEGMENT_GLAVA, ordinal, text, span)
            self.section = self.annex = None
            self.article = self.stavak = self.tocka = None
            return

        ordinal = paths.parse_section_heading(text)
        if ordinal is not None:
            self._widen(self.part, end)
            self._widen(self.chapter, end)
            self.section = self._heading(
                NodeType.SECTION, paths.SEGMENT_ODJELJAK, ordinal, text, span
            )
            self.annex = None
            self.article = self.stavak = self.tocka = None
            return

        ordinal = paths.parse_annex_heading(text)
        if ordinal is not None:
            # Annexes follow the body; they sit outside any part or chapter
            self.annex = self._heading(NodeType.ANNEX, paths.SEGMENT_PRILOG, ordinal, text, span)
            self.part = self.chapter = self.section = None
            self.article = self.stavak = self.tocka = None
            return

        article = paths.parse_article_number(text)
        if article is not None:
            self._widen_containers(end)
            self.article = self._add(
                NodeType.CLANAK,
                paths.build_node_path(article=article),
                f"Članak {article}.",
                None,
                span,
            )
            self.stavak = self.tocka = None
            self.bullet_count = 0
            return

        if self.article is not None:
            article_path = self.nodes[self.article].node_path

            stavak = paths.parse_stavak_number(text)
            if stavak is not None:
                self._widen_containers(end)
                self._widen(self.article, end)
                self.stavak = self._add(
                    NodeType.STAVAK,
                    f"{article_path}/{paths.SEGMENT_STAVAK}:{stavak}",
                    f"({stavak})",
                    self.article,
                    span,
                )
                self.tocka = None
                self.bullet_count = 0
                return

            label = paths.parse_tocka_label(text)
            if label is not None:
                parent = self.stavak if self.stavak is not None else self.article
                if label == paths.BULLET:
                    self.bullet_count += 1
                    ordinal, display = f"{paths.BULLET}-{self.bullet_count}", "–"
                elif label.isdigit():
                    ordinal, display = label, f"{label}."
                else:
                    ordinal, display = label, f"{label})"

                self._widen_containers(end)
                self._widen(self.article, end)
                self._widen(self.stavak, end)
                self.tocka = self._add(
                    NodeType.TOCKA,
                    f"{self.nodes[parent].node_path}/{paths.SEGMENT_TOCKA}:{ordinal}",
                    display,
                    parent,
                    span,
                )
                return

        if (
            self.title is not None
            and not self.nodes
            and " ".join(text.split()) == " ".join(self.title.split())
        ):
            self._add(NodeType.TITLE, paths.segment(paths.SEGMENT_NASLOV, "1"), text, None, span)
            return

        self._continue_innermost(end)

    def add_table(self, rows: list[str], cursor: int) -> int:
        """Add a table and its rows; returns the advanced cursor."""
        located: list[tuple[int, tuple[int, int]]] = []
        for number, row in enumerate(rows, start=1):
            span = locate_block(self.clean_text, row, cursor)
            if span is None:
                self.warn(
                    "TEXT_NOT_FOUND",
                    f'Could not locate table row in clean output: "{row[:SNIPPET_CHARS]}..."',
                )
                continue
            located.append((number, span))
            cursor = max(cursor, span[1])
        if not located:
            return cursor

        start, end = located[0][1][0], located[-1][1][1]
        parent = next(
            (i for i in (self.tocka, self.stavak, self.article, self.annex) if i is not None),
            None,
        )
        self._widen_open(end)

        self.table_counts[parent] += 1
        table_number = self.table_counts[parent]
        prefix = self.nodes[parent].node_path if parent is not None else ""
        table = self._add(
            NodeType.TABLE,
            f"{prefix}/{paths.SEGMENT_TABLICA}:{table_number}",
            f"Tablica {table_number}",
            parent,
            (start, end),
        )
        table_path = self.nodes[table].node_path
        for number, span in located:
            self._add(
                NodeType.ROW,
                f"{table_path}/{paths.SEGMENT_REDAK}:{number}",
                f"Redak {number}",
                table,
                span,
            )
        return cursor

    def _continue_innermost(self, end: int) -> None:
        """Unmarked text belongs to the innermost open node."""
        innermost = next(
            (i for i in (self.tocka, self.stavak, self.article) if i is not None),
            None,
        )
        if innermost is None:
            self._widen_containers(end)
            return

        self._widen_containers(end)
        for ancestor in (self.article, self.stavak, self.tocka):
            if ancestor is not None and ancestor != innermost:
                self._widen(ancestor, end)
        self._widen(innermost, end, own_text=True)


def build_structure(
    clean_text: str,
    blocks: list[str | TableBlock],
    title: str | None = None,
) -> BuiltStructure:
    """Locate `blocks` in `clean_text` and build the provision nodes."""
    builder = _Builder(clean_text, title)
    cursor = 0

    for block in blocks:
        if isinstance(block, TableBlock):
            cursor = builder.add_table(block.rows, cursor)
            continue

        text = block.strip()
        if not text:
            continue

        span = locate_block(clean_text, text, cursor)
        if span is None:
            builder.warn(
                "TEXT_NOT_FOUND",
                f'Could not locate text in clean output: "{text[:SNIPPET_CHARS]}..."',
            )
            continue

        cursor = max(cursor, span[1])
        builder.add_block(text, span)

    return builder.result

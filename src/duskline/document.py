"""In-memory document model handed over by the editing surface.

A Document is an ordered list of blocks.  Each Paragraph holds inline nodes:
Text runs carrying a set of marks, HardBreak, and atomic MentionToken nodes.

Example:
    from duskline.document import Document, Mark, Paragraph, Text

    doc = Document([Paragraph([Text("hi", frozenset({Mark.BOLD}))])])

The editor itself serializes its state as a JSON node tree;
``document_from_json`` turns that tree into a Document.  Node and mark types
the model does not know about are dropped rather than rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class Mark(Enum):
    """Inline formatting attribute attachable to a text run."""

    BOLD = "bold"
    ITALIC = "italic"
    STRIKETHROUGH = "strike"
    CODE = "code"


@dataclass(frozen=True)
class Text:
    """A run of text with its marks."""

    content: str
    marks: frozenset[Mark] = frozenset()


@dataclass(frozen=True)
class HardBreak:
    """Line break inside a paragraph."""


@dataclass(frozen=True)
class MentionToken:
    """A bound mention inserted by committing a suggestion."""

    id: str
    label: str
    is_everyone: bool = False


Inline = Text | HardBreak | MentionToken


@dataclass
class Paragraph:
    inlines: list[Inline] = field(default_factory=list)


Block = Paragraph | HardBreak


@dataclass
class Document:
    """Top-level document: ordered blocks, joined by newlines when encoded."""

    blocks: list[Block] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Editor JSON ingestion
# ---------------------------------------------------------------------------

MARK_TYPES: dict[str, Mark] = {m.value: m for m in Mark}
EVERYONE_ID = "everyone"


def parse_marks(raw: object) -> frozenset[Mark]:
    """Map editor mark dicts (``{"type": "bold"}``) to Mark members, skipping unknown types."""
    if not isinstance(raw, list):
        return frozenset()
    marks = set()
    for item in raw:
        if isinstance(item, dict) and isinstance(kind := item.get("type"), str) and kind in MARK_TYPES:
            marks.add(MARK_TYPES[kind])
    return frozenset(marks)


def inline_from_json(node: object) -> Inline | None:
    """Convert one inline editor node, or return None for anything unsupported."""
    if not isinstance(node, dict):
        return None
    kind = node.get("type")
    if kind == "hardBreak":
        return HardBreak()
    if kind == "text":
        text = node.get("text")
        if not isinstance(text, str) or not text:
            return None
        return Text(text, parse_marks(node.get("marks")))
    if kind == "mention":
        attrs = node.get("attrs") or {}
        if not isinstance(attrs, dict):
            return None
        mention_id = str(attrs.get("id") or "")
        label = str(attrs.get("label") or mention_id)
        if not label:
            return None
        return MentionToken(id=mention_id, label=label, is_everyone=mention_id == EVERYONE_ID)
    return None


def document_from_json(data: object) -> Document:
    """Build a Document from the editor's ``{"type": "doc", "content": [...]}`` tree.

    Paragraphs keep their inline order.  A ``hardBreak`` sitting directly under
    the document becomes its own block.  Any other top-level node is dropped.
    """
    if not isinstance(data, dict):
        return Document()
    content = data.get("content")
    if not isinstance(content, list):
        return Document()

    blocks: list[Block] = []
    for node in content:
        if not isinstance(node, dict):
            continue
        kind = node.get("type")
        if kind == "paragraph":
            inlines = [i for i in (inline_from_json(n) for n in node.get("content") or []) if i is not None]
            blocks.append(Paragraph(inlines))
        elif kind == "hardBreak":
            blocks.append(HardBreak())
    return Document(blocks)


def document_from_text(text: str, mentions: list[tuple[int, int, MentionToken]] | None = None) -> Document:
    """Build a Document from plain text, one paragraph with hard breaks between lines.

    ``mentions`` lists bound mention spans as ``(start, end, token)`` offsets
    into *text*; the covered text is replaced by the token.  Overlapping or
    out-of-range spans are ignored.
    """
    spans = sorted(mentions or [], key=lambda s: s[0])
    inlines: list[Inline] = []
    pos = 0

    def add_text(chunk: str) -> None:
        lines = chunk.split("\n")
        for i, line in enumerate(lines):
            if i:
                inlines.append(HardBreak())
            if line:
                inlines.append(Text(line))

    for start, end, token in spans:
        if start < pos or end > len(text) or start >= end:
            continue
        add_text(text[pos:start])
        inlines.append(token)
        pos = end
    add_text(text[pos:])
    return Document([Paragraph(inlines)])

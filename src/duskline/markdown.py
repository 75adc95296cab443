"""Markdown wire format: encoding outgoing documents, rendering incoming text.

encode() turns a Document from the editing surface into the markdown sent on
the wire.  render() turns wire markdown received from a peer into a small,
fixed set of display elements.  Both are pure and total: any input produces
some string.

Supported marks are bold, italic, strikethrough and inline code.  There are no
headings, lists, quotes or tables.  A message that is nothing but an image URL
is displayed as an image.

Every character of rendered input is HTML-escaped before any element is
wrapped around it, so peer-supplied text can never produce active markup.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from duskline.document import Document, HardBreak, Inline, Mark, MentionToken, Paragraph, Text

EVERYONE = "everyone"

# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_text(run: Text) -> str:
    """Encode one text run.

    Code is exclusive: the content is wrapped in backticks verbatim and no
    other mark applies.  Bold and italic together use a single ``***`` wrap.
    Strikethrough is applied last, outside any bold/italic wrap.
    """
    text = run.content
    marks = run.marks

    if Mark.CODE in marks:
        return f"`{text}`"

    bold = Mark.BOLD in marks
    italic = Mark.ITALIC in marks
    if bold and italic:
        text = f"***{text}***"
    elif bold:
        text = f"**{text}**"
    elif italic:
        text = f"*{text}*"

    if Mark.STRIKETHROUGH in marks:
        text = f"~~{text}~~"

    return text


def encode_inline(node: Inline) -> str:
    if isinstance(node, Text):
        return encode_text(node) if node.content else ""
    if isinstance(node, HardBreak):
        return "\n"
    if isinstance(node, MentionToken):
        # Wire mentions are human readable: the label, never the id.
        return f"@{node.label}"
    return ""


def encode(doc: Document) -> str:
    """Serialize a Document to wire markdown.

    Paragraphs are joined with a single newline; a hard break is a newline.
    Unsupported nodes encode to the empty string.
    """
    parts: list[str] = []
    for block in doc.blocks:
        if isinstance(block, Paragraph):
            parts.append("".join(encode_inline(node) for node in block.inlines))
        elif isinstance(block, HardBreak):
            parts.append("\n")
        else:
            parts.append("")
    return "\n".join(parts)


def prepare_outgoing(doc: Document) -> str | None:
    """Encode and trim a document for sending.

    Returns None when nothing is left after trimming, meaning the message
    should not be sent.
    """
    text = encode(doc).strip()
    return text or None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

IMAGE_URL_PATTERN = re.compile(r"https?://\S+\.(gif|png|jpg|jpeg|webp)(\?\S*)?", re.IGNORECASE)

# Split keeps the delimiters: odd indexes are code spans.
CODE_SPAN_PATTERN = re.compile(r"(`[^`\n]+`)")

# Order matters: bold+italic must run before bold and italic alone.
INLINE_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\*\*\*(.+?)\*\*\*"), r'<strong class="dusk-msg-bold"><em>\1</em></strong>'),
    (re.compile(r"\*\*(.+?)\*\*"), r'<strong class="dusk-msg-bold">\1</strong>'),
    (re.compile(r"\*(.+?)\*"), r'<em class="dusk-msg-italic">\1</em>'),
    (re.compile(r"~~(.+?)~~"), r'<s class="dusk-msg-strike">\1</s>'),
]

URL_PATTERN = re.compile(r"(https?://[^\s<]+)")
LINK_TEMPLATE = r'<a href="\1" target="_blank" rel="noopener noreferrer" class="dusk-msg-link">\1</a>'

HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}
HTML_ESCAPE_PATTERN = re.compile(r"[&<>\"']")


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` as HTML entities."""
    return HTML_ESCAPE_PATTERN.sub(lambda m: HTML_ESCAPES[m.group(0)], text)


def is_standalone_image_url(text: str) -> bool:
    """True if the trimmed text is exactly one image URL and nothing else."""
    return IMAGE_URL_PATTERN.fullmatch(text.strip()) is not None


def render_text_segment(segment: str) -> str:
    """Escape a non-code segment, then expand marks and auto-link URLs."""
    html = escape_html(segment)
    for pattern, replacement in INLINE_RULES:
        html = pattern.sub(replacement, html)
    return URL_PATTERN.sub(LINK_TEMPLATE, html)


def render_code_segment(segment: str) -> str:
    return f'<code class="dusk-msg-code">{escape_html(segment[1:-1])}</code>'


def render(markdown: str) -> str:
    """Render wire markdown to safe display markup.

    A message that is only an image URL becomes a single image element.
    Otherwise inline code spans are isolated first so their content is never
    expanded, marks and links are applied to the remaining text, and newlines
    become line breaks.  Unbalanced markers are left as literal (escaped)
    characters.
    """
    if is_standalone_image_url(markdown):
        url = escape_html(markdown.strip())
        return f'<img src="{url}" class="dusk-msg-image" alt="image" loading="lazy" />'

    html = ""
    for i, segment in enumerate(CODE_SPAN_PATTERN.split(markdown)):
        if not segment:
            continue
        if i % 2 == 1:
            html += render_code_segment(segment)
        else:
            html += render_text_segment(segment)

    return html.replace("\n", "<br />")


# ---------------------------------------------------------------------------
# Mentions in wire text
# ---------------------------------------------------------------------------


def mention_pattern(labels: Iterable[str]) -> re.Pattern[str]:
    """Compile ``@label`` matching for the given labels plus everyone.

    Longer labels are tried first so "Bob Smith" wins over "Bob".
    """
    names = sorted({*labels, EVERYONE}, key=len, reverse=True)
    alternation = "|".join(re.escape(n) for n in names if n)
    return re.compile(rf"(?<!\w)@({alternation})(?!\w)")


def extract_mentions(content: str, labels: Iterable[str]) -> list[str]:
    """Return labels mentioned in raw wire text, first occurrence order, no repeats."""
    found: list[str] = []
    for match in mention_pattern(labels).finditer(content):
        name = match.group(1)
        if name not in found:
            found.append(name)
    return found


def is_mentioned(content: str, label: str) -> bool:
    """True if *label* or everyone is mentioned in the wire text."""
    mentions = extract_mentions(content, [label])
    return label in mentions or EVERYONE in mentions


TAG_PATTERN = re.compile(r"(<[^>]*>)")
SKIP_ELEMENTS = ("code", "a")


def highlight_mentions(html: str, labels: Iterable[str]) -> str:
    """Wrap ``@label`` occurrences of rendered markup in mention spans.

    Works on output of render(): labels are escaped before matching, and tags,
    code spans and links are left untouched.
    """
    pattern = mention_pattern(escape_html(label) for label in labels)
    escaped_everyone = escape_html(EVERYONE)

    def wrap(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == escaped_everyone:
            return f'<span class="dusk-mention dusk-mention-everyone">@{name}</span>'
        return f'<span class="dusk-mention">@{name}</span>'

    out: list[str] = []
    depth = 0
    for part in TAG_PATTERN.split(html):
        if part.startswith("<"):
            name = part[1:].lstrip("/").split(" ", 1)[0].split(">", 1)[0]
            if name in SKIP_ELEMENTS:
                depth += -1 if part.startswith("</") else 1
            out.append(part)
        elif depth > 0:
            out.append(part)
        else:
            out.append(pattern.sub(wrap, part))
    return "".join(out)

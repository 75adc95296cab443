"""Chat widgets for the compose TUI.

MessagePanel — a sent/received message, wire markdown rendered with Rich.
MentionPopover — visible mention candidates with the selection highlighted.
TypingBar — "<name> is typing" line under the log.
CommandHintBar — shows matching slash commands as you type.
"""

from __future__ import annotations

import re

from rich.markdown import Markdown as RichMarkdown
from rich.segment import Segment
from rich.style import Style
from rich.text import Text
from textual.widgets import Static

from duskline.markdown import EVERYONE
from duskline.mentions import MentionCandidate, Presence
from duskline.suggest import Open, SuggestionState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


# Palette for peers, indexed by stable hash.  Hex values parse in both Rich
# styles and Textual CSS.
PEER_COLORS = [
    "#d75fd7",
    "#d7af00",
    "#ff5f5f",
    "#00afaf",
    "#8787d7",
    "#ff7f50",
    "#ffd700",
    "#da70d6",
    "#fa8072",
    "#40e0d0",
    "#ee82ee",
    "#ff69b4",
    "#f0e68c",
    "#ff6347",
    "#ff1493",
    "#00ced1",
]

PRESENCE_COLORS: dict[Presence, str] = {
    Presence.ONLINE: "green",
    Presence.IDLE: "yellow",
    Presence.DND: "red",
    Presence.OFFLINE: "grey50",
}


def color_for_peer(name: str) -> str:
    """Return a deterministic color for a display name.

    Uses a stable hash (not affected by PYTHONHASHSEED randomization).
    """
    idx = sum(ord(c) for c in name) % len(PEER_COLORS)
    return PEER_COLORS[idx]


class ColoredMentionMarkdown:
    """Rich renderable that renders Markdown with @mentions in peer colors.

    Wraps RichMarkdown and intercepts rendered Segments, splitting any that
    contain @label tokens and applying the label's color + bold style.
    """

    def __init__(self, body: str, labels: list[str]) -> None:
        self.body = body
        self.label_colors: dict[str, str] = {label: color_for_peer(label) for label in labels}
        self.label_colors[EVERYONE] = "white"
        names = "|".join(re.escape(n) for n in sorted(self.label_colors, key=len, reverse=True))
        self.pattern = re.compile(rf"(?<!\w)@({names})(?!\w)")

    def __rich_console__(self, console, options):
        md = RichMarkdown(self.body)
        for segment in md.__rich_console__(console, options):
            if not isinstance(segment, Segment) or "@" not in segment.text:
                yield segment
                continue

            style = segment.style or Style()
            parts = self.pattern.split(segment.text)
            if len(parts) == 1:
                yield segment
                continue

            # parts alternates: [before, captured_label, after, ...]
            for i, part in enumerate(parts):
                if not part:
                    continue
                if i % 2 == 1:
                    color = self.label_colors.get(part, "white")
                    yield Segment(f"@{part}", style + Style(color=color, bold=True))
                else:
                    yield Segment(part, style)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessagePanel(Static):
    """A message rendered as Markdown inside a bordered panel."""

    DEFAULT_CSS = """
    MessagePanel {
        margin: 0 1;
        padding: 0 1;
        border: round $secondary;
    }
    MessagePanel.own {
        border: none;
        color: $text-muted;
    }
    """

    def __init__(self, sender: str, body: str, labels: list[str] | None = None, own: bool = False, **kwargs) -> None:
        super().__init__(**kwargs)
        self.sender = sender
        self.body = body
        self.labels: list[str] = labels or []
        self.own = own

    def on_mount(self) -> None:
        if self.own:
            self.add_class("own")
        else:
            self.styles.border = ("round", color_for_peer(self.sender))
            self.border_title = self.sender
        self.update(ColoredMentionMarkdown(self.body, self.labels))


# ---------------------------------------------------------------------------
# Mention popover
# ---------------------------------------------------------------------------


def candidate_line(candidate: MentionCandidate, selected: bool) -> Text:
    """One popover row: presence dot, label, and a hint for everyone."""
    line = Text()
    line.append("> " if selected else "  ")
    if candidate.is_everyone:
        line.append("@", style="bold orange1")
        line.append(f" @{candidate.label}", style="bold")
        line.append("  notify all members", style="dim")
    else:
        line.append("●", style=PRESENCE_COLORS.get(candidate.presence, "grey50"))
        line.append(f" {candidate.label}", style="bold" if selected else "")
    if selected:
        line.stylize("reverse")
    return line


class MentionPopover(Static):
    """Candidate list shown above the input while a suggestion is visible.

    Hidden by default; show_state() displays an Open state with candidates
    and hides on anything else.
    """

    DEFAULT_CSS = """
    MentionPopover {
        dock: bottom;
        height: auto;
        max-height: 11;
        background: $surface;
        padding: 0 1;
        display: none;
    }
    MentionPopover.visible {
        display: block;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.labels: list[str] = []
        self.selected_index: int = 0

    def show_state(self, state: SuggestionState) -> None:
        if not isinstance(state, Open) or not state.candidates:
            self.labels = []
            self.selected_index = 0
            self.remove_class("visible")
            self.update("")
            return
        self.labels = [c.label for c in state.candidates]
        self.selected_index = state.selected_index
        rows = [candidate_line(c, i == state.selected_index) for i, c in enumerate(state.candidates)]
        self.update(Text("\n").join(rows))
        self.add_class("visible")

    @property
    def is_shown(self) -> bool:
        return self.has_class("visible")


# ---------------------------------------------------------------------------
# Typing indicator
# ---------------------------------------------------------------------------


class TypingBar(Static):
    """One-line typing indicator; empty when nobody is typing."""

    DEFAULT_CSS = """
    TypingBar {
        dock: bottom;
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.indicator = ""

    def show_text(self, text: str) -> None:
        self.indicator = text
        self.update(text)


# ---------------------------------------------------------------------------
# Slash command hints
# ---------------------------------------------------------------------------

SLASH_COMMANDS: list[tuple[str, str]] = [
    ("/help", "show this help"),
    ("/typing <name>", "simulate a typing signal from a roster member"),
    ("/clear", "clear typing indicators"),
    ("/quit", "quit dusk chat"),
]


def match_commands(prefix: str) -> list[tuple[str, str]]:
    """Return slash commands whose name starts with the given prefix.

    An empty prefix or bare "/" returns all commands.
    """
    prefix = prefix.lower()
    return [(cmd, desc) for cmd, desc in SLASH_COMMANDS if cmd.split()[0].startswith(prefix)]


class CommandHintBar(Static):
    """Shows matching slash commands above the input area. Hidden by default."""

    DEFAULT_CSS = """
    CommandHintBar {
        dock: bottom;
        height: auto;
        max-height: 6;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
        display: none;
    }
    CommandHintBar.visible {
        display: block;
    }
    """

    def show_hints(self, prefix: str) -> None:
        """Show commands matching prefix. Hides if none match."""
        matches = match_commands(prefix)
        if not matches:
            self.hide_hints()
            return
        self.update("\n".join(f"  {cmd}  {desc}" for cmd, desc in matches))
        self.add_class("visible")

    def hide_hints(self) -> None:
        self.remove_class("visible")
        self.update("")

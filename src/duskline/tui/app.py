"""ComposeApp: local Textual compose surface for dusk chat.

Hosts the suggestion engine and typing tracker the way the real client does:
the input area reports cursor/text changes and keys to the SuggestionEngine,
applies its commits as bound mentions, and encodes the result to wire
markdown on Enter.  There is no transport; sent messages are echoed to the
log.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import ClassVar

from textual.app import App, ComposeResult
from textual.binding import BindingType
from textual.containers import VerticalScroll
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Static, TextArea

from duskline.config import DuskConfig, default_config
from duskline.document import Document, MentionToken, document_from_text
from duskline.markdown import prepare_outgoing
from duskline.mentions import Member, PeerListSource, RosterSource
from duskline.presence import Scheduler, TypingPresenceTracker, typing_indicator_text, typing_names
from duskline.suggest import Commit, Open, SuggestionEngine, SuggestionState, find_trigger

from .widgets import CommandHintBar, MentionPopover, MessagePanel, TypingBar

logger = logging.getLogger(__name__)


def textual_scheduler(widget: Widget) -> Scheduler:
    """Scheduler backed by Textual's ``set_timer`` on *widget*."""

    def schedule(delay: float, callback: Callable[[], None]) -> Callable[[], None]:
        timer = widget.set_timer(delay, callback)
        return timer.stop

    return schedule


class MessageLog(VerticalScroll):
    """Scrollable container for chat messages."""

    DEFAULT_CSS = """
    MessageLog {
        height: 1fr;
    }
    """


class StatusBar(Static):
    """Keybinding hints at the bottom."""

    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """


class ComposeArea(TextArea):
    """Message input with @mention suggestions.

    While a suggestion is open, the engine's keys (Enter/Tab, Up/Down,
    Escape) go to the engine.  Otherwise Enter sends and everything else is
    normal editing.
    """

    DEFAULT_CSS = """
    ComposeArea {
        dock: bottom;
        height: auto;
        min-height: 3;
        max-height: 10;
        scrollbar-size-vertical: 0;
    }
    """

    class Submit(Message):
        """Posted when the user presses Enter to send."""

    def __init__(self, engine: SuggestionEngine, **kwargs) -> None:
        super().__init__(**kwargs)
        self.engine = engine
        self.bound: list[MentionToken] = []
        # Anchor of a session the user dismissed; not reopened until the text changes.
        self.dismissed: tuple[int, int] | None = None
        engine.on_commit(self.apply_commit)

    async def handle_key(self, event) -> None:
        if self.engine.is_open:
            state = self.engine.state
            if self.engine.handle_key(event.key):
                event.stop()
                event.prevent_default()
                if event.key in self.engine.keys.cancel and isinstance(state, Open):
                    self.dismissed = state.anchor
                return
        if event.key == "enter":
            event.stop()
            event.prevent_default()
            self.post_message(self.Submit())
            return
        await super()._on_key(event)

    _on_key = handle_key

    def sync_suggestion(self, text_changed: bool) -> None:
        """Open, update or close the suggestion session for the current cursor."""
        if text_changed:
            self.dismissed = None
        row, col = self.cursor_location
        before = self.document.get_line(row)[:col]
        at = find_trigger(before)
        if at is None:
            self.engine.context_lost()
            return
        anchor = (row, at)
        if anchor == self.dismissed:
            return
        state = self.engine.state
        if not isinstance(state, Open) or state.anchor != anchor:
            self.engine.start(anchor=anchor)
        self.engine.update_query(before[at + 1 :])

    def apply_commit(self, commit: Commit) -> None:
        """Replace the raw ``@query`` with the committed label and bind it."""
        row, at = commit.anchor
        self.replace(f"@{commit.label} ", (row, at), self.cursor_location, maintain_selection_offset=False)
        token = MentionToken(id=commit.id, label=commit.label, is_everyone=commit.is_everyone)
        if token not in self.bound:
            self.bound.append(token)

    def mention_spans(self) -> list[tuple[int, int, MentionToken]]:
        """Offsets of bound mentions still present in the text."""
        text = self.text
        spans: list[tuple[int, int, MentionToken]] = []
        for token in self.bound:
            pattern = re.compile(rf"(?<!\w)@{re.escape(token.label)}(?!\w)")
            spans.extend((m.start(), m.end(), token) for m in pattern.finditer(text))
        return sorted(spans, key=lambda s: s[0])

    def build_document(self) -> Document:
        return document_from_text(self.text, self.mention_spans())

    def reset(self) -> None:
        self.clear()
        self.bound.clear()
        self.dismissed = None
        self.engine.context_lost()


class ComposeApp(App):
    """Compose TUI: message log, typing line, mention popover, input."""

    TITLE = "dusk chat"

    CSS = """
    Screen {
        layout: vertical;
    }
    .system-message {
        margin: 0 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS: ClassVar[list[BindingType]] = [
        ("escape", "interrupt", "Clear/Quit"),
    ]

    def __init__(
        self,
        roster: list[Member],
        name: str = "you",
        dm: bool = False,
        config: DuskConfig | None = None,
    ) -> None:
        super().__init__()
        self.roster = roster
        self.user_name = name
        self.dm = dm
        self.dusk_config = config or default_config()
        mentions = self.dusk_config.mentions
        if dm:
            source = PeerListSource(peers=roster, max_candidates=mentions.max_candidates)
        else:
            source = RosterSource(
                members=roster,
                max_candidates=mentions.max_candidates,
                everyone_label=mentions.everyone_label,
            )
        self.engine = SuggestionEngine(source, keys=self.dusk_config.keys)
        self.tracker: TypingPresenceTracker | None = None
        self.unsubscribers: list[Callable[[], None]] = []
        self.sent: list[str] = []

    @property
    def labels(self) -> list[str]:
        return [m.display_name for m in self.roster]

    def compose(self) -> ComposeResult:
        context = "direct message" if self.dm else "community"
        yield Static(f"dusk chat · {context} · {len(self.roster)} members", id="header-bar")
        yield MessageLog(id="message-log")
        yield StatusBar("Esc: clear/quit · Enter: send · @: mention · /help")
        yield TypingBar(id="typing-bar")
        yield CommandHintBar(id="command-hints")
        yield MentionPopover(id="mention-popover")
        yield ComposeArea(self.engine, id="compose-area")

    def on_mount(self) -> None:
        typing = self.dusk_config.typing
        timeout = typing.dm_timeout if self.dm else typing.community_timeout
        self.tracker = TypingPresenceTracker(timeout=timeout, schedule=textual_scheduler(self))
        self.unsubscribers = [
            self.tracker.subscribe(self.show_typing),
            self.engine.subscribe(self.show_suggestions),
        ]
        self.query_one("#compose-area", ComposeArea).focus()

    def on_unmount(self) -> None:
        # Widgets are gone by now; stop observers before tearing down timers.
        for unsubscribe in self.unsubscribers:
            unsubscribe()
        self.unsubscribers.clear()
        if self.tracker is not None:
            self.tracker.clear_all()

    # -- Observers --------------------------------------------------------

    def show_suggestions(self, state: SuggestionState) -> None:
        self.query_one("#mention-popover", MentionPopover).show_state(state)

    def show_typing(self, peer_ids: list[str]) -> None:
        text = typing_indicator_text(typing_names(peer_ids, self.roster))
        self.query_one("#typing-bar", TypingBar).show_text(text)

    # -- Input events -----------------------------------------------------

    def on_text_area_changed(self, event: TextArea.Changed) -> None:
        area = event.text_area
        if isinstance(area, ComposeArea):
            area.sync_suggestion(text_changed=True)
        hint_bar = self.query_one("#command-hints", CommandHintBar)
        first_line = area.text.split("\n", 1)[0]
        if first_line.startswith("/") and " " not in first_line:
            hint_bar.show_hints(first_line)
        else:
            hint_bar.hide_hints()

    def on_text_area_selection_changed(self, event: TextArea.SelectionChanged) -> None:
        area = event.text_area
        if isinstance(area, ComposeArea):
            area.sync_suggestion(text_changed=False)

    def on_compose_area_submit(self, _: ComposeArea.Submit) -> None:
        self.send_message()

    def action_interrupt(self) -> None:
        """Escape: clear the input if it has text, otherwise quit."""
        area = self.query_one("#compose-area", ComposeArea)
        if area.text.strip():
            area.reset()
            return
        self.exit()

    # -- Sending / receiving ----------------------------------------------

    def send_message(self) -> None:
        area = self.query_one("#compose-area", ComposeArea)
        text = area.text.strip()
        if not text:
            return
        if text.startswith("/"):
            area.reset()
            self.handle_slash_command(text)
            return

        wire = prepare_outgoing(area.build_document())
        if wire is None:
            return
        self.sent.append(wire)
        logger.debug("Sending %d chars", len(wire))
        self.mount_message(self.user_name, wire, own=True)
        area.reset()

    def receive_message(self, peer_id: str, body: str) -> None:
        """Show a peer's message; their typing indicator ends."""
        if self.tracker is not None:
            self.tracker.remove(peer_id)
        sender = next((m.display_name for m in self.roster if m.peer_id == peer_id), peer_id)
        self.mount_message(sender, body, own=False)

    def mount_message(self, sender: str, body: str, own: bool) -> None:
        log = self.query_one("#message-log", MessageLog)
        log.mount(MessagePanel(sender=sender, body=body, labels=self.labels, own=own))
        log.scroll_end(animate=False)

    # -- Slash commands ---------------------------------------------------

    def handle_slash_command(self, text: str) -> None:
        parts = text.split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "/typing":
            self.cmd_typing(arg)
        elif cmd == "/clear":
            if self.tracker is not None:
                self.tracker.clear_all()
        elif cmd in ("/help", "/h"):
            self.show_system_message(
                "@name: mention (Up/Down to choose, Enter/Tab to insert, Esc to dismiss)\n"
                "**bold** *italic* ~~strike~~ `code`\n"
                "/typing <name>: simulate a typing signal\n"
                "/clear: clear typing indicators\n"
                "/quit: quit"
            )
        elif cmd in ("/quit", "/exit"):
            self.exit()
        else:
            self.show_system_message(f"Unknown command: {cmd}. Type /help for available commands.")

    def cmd_typing(self, arg: str) -> None:
        if not arg:
            self.show_system_message("Usage: /typing <name>")
            return
        member = next((m for m in self.roster if m.display_name.lower() == arg.lower()), None)
        if member is None:
            self.show_system_message(f"Unknown member: {arg}")
            return
        if self.tracker is not None:
            self.tracker.signal(member.peer_id)

    def show_system_message(self, text: str) -> None:
        """Show a system message in the message log."""
        log = self.query_one("#message-log", MessageLog)
        log.mount(Static(text, classes="system-message"))
        log.scroll_end(animate=False)

"""Mention suggestion state machine.

The engine is driven by discrete events from the editing surface and never
touches the text itself:

    start(anchor)        trigger character typed with no whitespace before the cursor
    update_query(text)   text between trigger and cursor changed
    move_next/previous   keyboard navigation, wrapping around
    confirm()            commit the selected candidate (if any)
    cancel()             explicit dismissal
    context_lost()       cursor left the token span or the trigger was deleted

State is either Closed or Open.  Open holds the query, the current candidate
list, the selected index and an opaque anchor the host uses for placing the
popover.  While Open, the configured navigation/confirm/cancel keys are
consumed by handle_key(); every other key passes through to the editor.

Listeners are notified after every transition.  Commits are delivered to
commit listeners as a Commit, which the host turns into a bound mention token.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from duskline.mentions import CandidateSource, MentionCandidate, candidates

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States and commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Closed:
    """No suggestion session."""


@dataclass(frozen=True)
class Open:
    """An active suggestion session.

    ``selected_index`` always satisfies ``0 <= selected_index < max(1, len(candidates))``;
    with no candidates it is 0 and means "no selection".
    """

    query: str
    candidates: tuple[MentionCandidate, ...]
    selected_index: int
    anchor: object = None

    @property
    def selected(self) -> MentionCandidate | None:
        if not self.candidates:
            return None
        return self.candidates[self.selected_index]


SuggestionState = Closed | Open


@dataclass(frozen=True)
class Commit:
    """Patch command for the editing surface: replace the raw token with this mention."""

    id: str
    label: str
    is_everyone: bool = False
    anchor: object = None


class Action(Enum):
    CONFIRM = "confirm"
    NEXT = "next"
    PREVIOUS = "previous"
    CANCEL = "cancel"


@dataclass
class SuggestionKeys:
    """Key names bound to each engine action while a session is open."""

    confirm: list[str] = field(default_factory=lambda: ["enter", "tab"])
    next: list[str] = field(default_factory=lambda: ["down"])
    previous: list[str] = field(default_factory=lambda: ["up"])
    cancel: list[str] = field(default_factory=lambda: ["escape"])

    def action_for(self, key: str) -> Action | None:
        if key in self.confirm:
            return Action.CONFIRM
        if key in self.next:
            return Action.NEXT
        if key in self.previous:
            return Action.PREVIOUS
        if key in self.cancel:
            return Action.CANCEL
        return None


StateListener = Callable[[SuggestionState], None]
CommitListener = Callable[[Commit], None]

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SuggestionEngine:
    """Owns trigger detection state, candidates and keyboard selection."""

    def __init__(self, source: CandidateSource, keys: SuggestionKeys | None = None) -> None:
        self.source = source
        self.keys = keys or SuggestionKeys()
        self.state: SuggestionState = Closed()
        self.state_listeners: list[StateListener] = []
        self.commit_listeners: list[CommitListener] = []

    # -- Observers ---------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener. Returns a function that unregisters it."""
        self.state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.state_listeners:
                self.state_listeners.remove(listener)

        return unsubscribe

    def on_commit(self, listener: CommitListener) -> Callable[[], None]:
        """Register a commit listener. Returns a function that unregisters it."""
        self.commit_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.commit_listeners:
                self.commit_listeners.remove(listener)

        return unsubscribe

    def transition(self, state: SuggestionState) -> None:
        self.state = state
        for listener in list(self.state_listeners):
            listener(state)

    # -- Derived -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return isinstance(self.state, Open)

    @property
    def is_visible(self) -> bool:
        """Popover visibility: open with at least one candidate."""
        return isinstance(self.state, Open) and len(self.state.candidates) > 0

    @property
    def selected(self) -> MentionCandidate | None:
        if isinstance(self.state, Open):
            return self.state.selected
        return None

    # -- Transitions -------------------------------------------------------

    def start(self, anchor: object = None) -> None:
        """Open a session with an empty query. Restarts any session in progress."""
        found = tuple(candidates("", self.source))
        logger.debug("Suggestion opened with %d candidates", len(found))
        self.transition(Open(query="", candidates=found, selected_index=0, anchor=anchor))

    def update_query(self, query: str) -> None:
        """Recompute candidates for *query*, keeping the selection in range."""
        state = self.state
        if not isinstance(state, Open):
            return
        found = tuple(candidates(query, self.source))
        index = min(state.selected_index, max(0, len(found) - 1))
        logger.debug("Suggestion query %r: %d candidates, index %d", query, len(found), index)
        self.transition(Open(query=query, candidates=found, selected_index=index, anchor=state.anchor))

    def move_next(self) -> None:
        state = self.state
        if not isinstance(state, Open) or not state.candidates:
            return
        index = (state.selected_index + 1) % len(state.candidates)
        self.transition(Open(state.query, state.candidates, index, state.anchor))

    def move_previous(self) -> None:
        state = self.state
        if not isinstance(state, Open) or not state.candidates:
            return
        index = (state.selected_index - 1) % len(state.candidates)
        self.transition(Open(state.query, state.candidates, index, state.anchor))

    def confirm(self) -> Commit | None:
        """Commit the selected candidate and close.

        With no candidates the session stays open and nothing is committed.
        """
        state = self.state
        if not isinstance(state, Open):
            return None
        chosen = state.selected
        if chosen is None:
            return None
        commit = Commit(id=chosen.id, label=chosen.label, is_everyone=chosen.is_everyone, anchor=state.anchor)
        logger.debug("Suggestion committed: %s (%s)", commit.label, commit.id)
        self.transition(Closed())
        for listener in list(self.commit_listeners):
            listener(commit)
        return commit

    def cancel(self) -> None:
        if isinstance(self.state, Open):
            logger.debug("Suggestion cancelled")
            self.transition(Closed())

    def context_lost(self) -> None:
        """Cursor left the token span or the trigger character was removed."""
        if isinstance(self.state, Open):
            logger.debug("Suggestion context lost")
            self.transition(Closed())

    def set_source(self, source: CandidateSource) -> None:
        """Switch candidate source (e.g. conversation change). Closes any session."""
        self.source = source
        self.context_lost()

    # -- Key handling ------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Dispatch a key press. Returns True if the key was consumed.

        Only the bound keys are consumed, and only while a session is open.
        Confirm is consumed even when there is nothing to commit so the key
        does not fall through to the editor as a newline or tab.
        """
        if not isinstance(self.state, Open):
            return False
        action = self.keys.action_for(key)
        if action is None:
            return False
        if action is Action.CONFIRM:
            self.confirm()
        elif action is Action.NEXT:
            self.move_next()
        elif action is Action.PREVIOUS:
            self.move_previous()
        else:
            self.cancel()
        return True


# ---------------------------------------------------------------------------
# Trigger detection helpers for hosts
# ---------------------------------------------------------------------------

TRIGGER = "@"


def find_trigger(text_before_cursor: str) -> int | None:
    """Locate the trigger that starts the token ending at the cursor.

    Returns the index of the ``@`` in *text_before_cursor*, or None when the
    cursor is not inside a token span: the trigger must be at the start of the
    text or follow whitespace, and no whitespace may sit between it and the
    cursor.
    """
    at = text_before_cursor.rfind(TRIGGER)
    if at < 0:
        return None
    query = text_before_cursor[at + 1 :]
    if any(ch.isspace() for ch in query):
        return None
    if at > 0 and not text_before_cursor[at - 1].isspace():
        return None
    return at

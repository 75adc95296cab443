"""Typing presence: which peers are currently typing.

A TypingPresenceTracker keeps one expiry timer per peer.  A typing signal
inserts the peer or resets its timer; when the timer fires the peer is
dropped.  Communities and direct messages run separate trackers with their
own timeouts (5s and 3s by default).

Timers come from a Scheduler: ``schedule(delay, callback) -> cancel``.  The
default schedules on the running asyncio loop; the TUI passes one backed by
Textual's ``set_timer``.  Callbacks that fire after their entry was replaced,
removed, or cleared are ignored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from duskline.mentions import Member

logger = logging.getLogger(__name__)

COMMUNITY_TYPING_TIMEOUT = 5.0
DM_TYPING_TIMEOUT = 3.0

Cancel = Callable[[], None]
Scheduler = Callable[[float, Callable[[], None]], Cancel]


def asyncio_scheduler(loop: asyncio.AbstractEventLoop | None = None) -> Scheduler:
    """Scheduler backed by ``loop.call_later`` (the running loop when *loop* is None)."""

    def schedule(delay: float, callback: Callable[[], None]) -> Cancel:
        target = loop or asyncio.get_running_loop()
        handle = target.call_later(delay, callback)
        return handle.cancel

    return schedule


@dataclass
class TypingEntry:
    token: object
    cancel: Cancel


@dataclass
class TypingPresenceTracker:
    """Per-peer expiring set driving a "someone is typing" indicator."""

    timeout: float = COMMUNITY_TYPING_TIMEOUT
    schedule: Scheduler = field(default_factory=asyncio_scheduler)
    entries: dict[str, TypingEntry] = field(default_factory=dict)
    listeners: list[Callable[[list[str]], None]] = field(default_factory=list)

    def signal(self, peer_id: str) -> None:
        """Mark *peer_id* as typing, replacing any pending timer."""
        existing = self.entries.get(peer_id)
        if existing is not None:
            existing.cancel()
        token = object()
        cancel = self.schedule(self.timeout, lambda: self.expire(peer_id, token))
        # Assigning in place keeps the peer's original position.
        self.entries[peer_id] = TypingEntry(token=token, cancel=cancel)
        if existing is None:
            self.notify()

    def expire(self, peer_id: str, token: object) -> None:
        entry = self.entries.get(peer_id)
        if entry is None or entry.token is not token:
            return
        del self.entries[peer_id]
        logger.debug("Typing expired for %s", peer_id)
        self.notify()

    def remove(self, peer_id: str) -> None:
        """Drop a peer immediately (e.g. their message arrived)."""
        entry = self.entries.pop(peer_id, None)
        if entry is None:
            return
        entry.cancel()
        self.notify()

    def clear_all(self) -> None:
        """Cancel every timer and empty the set (conversation switch / teardown)."""
        if not self.entries:
            return
        for entry in self.entries.values():
            entry.cancel()
        logger.debug("Typing tracker cleared (%d peers)", len(self.entries))
        self.entries.clear()
        self.notify()

    def active_peers(self) -> set[str]:
        return set(self.entries)

    def ordered_peers(self) -> list[str]:
        """Active peers in the order they started typing."""
        return list(self.entries)

    def subscribe(self, listener: Callable[[list[str]], None]) -> Cancel:
        """Register a listener for the active peer list. Returns a function that unregisters it."""
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        peers = self.ordered_peers()
        for listener in list(self.listeners):
            listener(peers)


def typing_names(peer_ids: list[str], members: list[Member]) -> list[str]:
    """Resolve peer ids to display names, falling back to the raw id."""
    names = {m.peer_id: m.display_name for m in members}
    return [names.get(pid, pid) for pid in peer_ids]


def typing_indicator_text(names: list[str]) -> str:
    """Human-readable indicator line for the given typing names."""
    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} is typing"
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing"
    return "several people are typing"

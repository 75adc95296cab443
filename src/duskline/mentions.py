"""Mention candidates: who an ``@query`` can resolve to.

Two sources enumerate named entities:

PeerListSource — a fixed list of peers (direct messages).  No everyone entry.
RosterSource — a community roster.  Offers a synthetic everyone entry first
    whenever the query could still spell "everyone".

Both filter by case-insensitive substring on the display name, keep source
order, and cap the result (10 by default).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from duskline.document import EVERYONE_ID

MAX_CANDIDATES = 10

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class Presence(Enum):
    ONLINE = "Online"
    IDLE = "Idle"
    DND = "Dnd"
    OFFLINE = "Offline"

    @classmethod
    def parse(cls, value: str) -> Presence:
        """Parse a status string case-insensitively ("online", "DND", ...)."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(f"Unknown presence status: {value!r}")


@dataclass(frozen=True)
class Member:
    """An addressable entity from a roster or peer directory."""

    peer_id: str
    display_name: str
    status: Presence | None = None


@dataclass(frozen=True)
class MentionCandidate:
    id: str
    label: str
    is_everyone: bool = False
    presence: Presence | None = None

    @classmethod
    def from_member(cls, member: Member) -> MentionCandidate:
        return cls(id=member.peer_id, label=member.display_name, presence=member.status)


class CandidateSource(Protocol):
    """Anything that can list mention candidates for a query."""

    def candidates(self, query: str) -> list[MentionCandidate]: ...


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def name_matches(name: str, query: str) -> bool:
    """Case-insensitive substring match; an empty query matches everything."""
    return query.lower() in name.lower()


@dataclass
class PeerListSource:
    """Fixed peer list, used in direct-message conversations."""

    peers: list[Member] = field(default_factory=list)
    max_candidates: int = MAX_CANDIDATES

    def candidates(self, query: str) -> list[MentionCandidate]:
        matches = [MentionCandidate.from_member(p) for p in self.peers if name_matches(p.display_name, query)]
        return matches[: self.max_candidates]


@dataclass
class RosterSource:
    """Community roster, with a leading synthetic everyone candidate.

    The everyone entry appears when the query is empty or is a substring of
    the everyone label, and counts toward the cap.
    """

    members: list[Member] = field(default_factory=list)
    max_candidates: int = MAX_CANDIDATES
    everyone_label: str = EVERYONE_ID

    def everyone(self) -> MentionCandidate:
        return MentionCandidate(id=EVERYONE_ID, label=self.everyone_label, is_everyone=True)

    def candidates(self, query: str) -> list[MentionCandidate]:
        result: list[MentionCandidate] = []
        if name_matches(self.everyone_label, query):
            result.append(self.everyone())
        result.extend(MentionCandidate.from_member(m) for m in self.members if name_matches(m.display_name, query))
        return result[: self.max_candidates]


def candidates(query: str, source: CandidateSource) -> list[MentionCandidate]:
    """Ordered, capped candidate list for *query* from *source*."""
    return source.candidates(query)


# ---------------------------------------------------------------------------
# Name resolution
# ---------------------------------------------------------------------------


def resolve_mention_name(peer_id: str, members: list[Member], peers: list[Member] | None = None) -> str:
    """Resolve a peer id to a display name.

    Community members are checked first, then the wider peer directory.
    Unknown ids are shortened for display when long.
    """
    if peer_id == EVERYONE_ID:
        return EVERYONE_ID
    for entry in [*members, *(peers or [])]:
        if entry.peer_id == peer_id:
            return entry.display_name
    if len(peer_id) > 12:
        return peer_id[:8] + "..."
    return peer_id


# ---------------------------------------------------------------------------
# Roster files
# ---------------------------------------------------------------------------


def parse_member(data: object, index: int) -> Member:
    """Validate one roster entry."""
    if not isinstance(data, dict):
        raise ValueError(f"roster[{index}] must be an object, got {type(data).__name__}")
    unknown = set(data) - {"peer_id", "display_name", "status"}
    if unknown:
        raise ValueError(f"Unknown keys in roster[{index}]: {', '.join(sorted(unknown))}")

    peer_id = data.get("peer_id")
    if not isinstance(peer_id, str) or not peer_id:
        raise ValueError(f"roster[{index}].peer_id must be a non-empty string")
    display_name = data.get("display_name", peer_id)
    if not isinstance(display_name, str) or not display_name:
        raise ValueError(f"roster[{index}].display_name must be a non-empty string")

    status = data.get("status")
    if status is None:
        return Member(peer_id=peer_id, display_name=display_name)
    if not isinstance(status, str):
        raise ValueError(f"roster[{index}].status must be a string, got {type(status).__name__}")
    try:
        presence = Presence.parse(status)
    except ValueError as exc:
        raise ValueError(f"roster[{index}].status: {exc}") from exc
    return Member(peer_id=peer_id, display_name=display_name, status=presence)


def load_roster(path: Path) -> list[Member]:
    """Load a roster JSON file: a list of ``{peer_id, display_name, status}`` objects.

    Raises:
        ValueError: If the file is not valid JSON or an entry is malformed.
    """
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError(f"Roster must be a JSON list, got {type(data).__name__}")
    return [parse_member(item, i) for i, item in enumerate(data)]

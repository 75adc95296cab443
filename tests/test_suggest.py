"""Tests for the mention suggestion state machine."""

from __future__ import annotations

import pytest

from duskline.mentions import Member, PeerListSource, RosterSource
from duskline.suggest import (
    Action,
    Closed,
    Commit,
    Open,
    SuggestionEngine,
    SuggestionKeys,
    find_trigger,
)


def roster(*names: str) -> list[Member]:
    return [Member(peer_id=f"id-{name}", display_name=name) for name in names]


@pytest.fixture()
def engine() -> SuggestionEngine:
    """Engine over a three-peer direct-message list (no everyone entry)."""
    return SuggestionEngine(PeerListSource(peers=roster("alice", "alfred", "bob")))


def open_state(engine: SuggestionEngine) -> Open:
    assert isinstance(engine.state, Open)
    return engine.state


class TestStart:
    def test_starts_closed(self, engine: SuggestionEngine) -> None:
        assert engine.state == Closed()
        assert not engine.is_open
        assert not engine.is_visible

    def test_start_opens_with_all_candidates(self, engine: SuggestionEngine) -> None:
        engine.start(anchor=(0, 4))
        state = open_state(engine)
        assert state.query == ""
        assert [c.label for c in state.candidates] == ["alice", "alfred", "bob"]
        assert state.selected_index == 0
        assert state.anchor == (0, 4)
        assert engine.is_visible

    def test_restart_resets_selection(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.move_next()
        engine.start(anchor="again")
        assert open_state(engine).selected_index == 0
        assert open_state(engine).anchor == "again"

    def test_roster_source_offers_everyone_first(self) -> None:
        engine = SuggestionEngine(RosterSource(members=roster("alice")))
        engine.start()
        assert engine.selected is not None
        assert engine.selected.is_everyone


class TestQueryUpdate:
    def test_filters_candidates(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.update_query("al")
        assert [c.label for c in open_state(engine).candidates] == ["alice", "alfred"]
        assert open_state(engine).query == "al"

    def test_clamps_index_when_list_shrinks(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.move_next()
        engine.move_next()
        assert open_state(engine).selected_index == 2
        engine.update_query("bo")
        state = open_state(engine)
        assert len(state.candidates) == 1
        assert state.selected_index == 0

    def test_keeps_index_when_still_in_range(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.move_next()
        engine.update_query("al")
        assert open_state(engine).selected_index == 1

    def test_empty_result_keeps_session_open_but_hidden(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.move_next()
        engine.update_query("zzz")
        state = open_state(engine)
        assert state.candidates == ()
        assert state.selected_index == 0
        assert state.selected is None
        assert engine.is_open
        assert not engine.is_visible

    def test_retyping_repopulates(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.update_query("zzz")
        engine.update_query("b")
        assert engine.is_visible
        assert engine.selected is not None
        assert engine.selected.label == "bob"

    def test_ignored_when_closed(self, engine: SuggestionEngine) -> None:
        engine.update_query("al")
        assert engine.state == Closed()

    def test_anchor_preserved(self, engine: SuggestionEngine) -> None:
        engine.start(anchor=(2, 7))
        engine.update_query("a")
        assert open_state(engine).anchor == (2, 7)


class TestNavigation:
    def test_next_wraps_to_start(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.move_next()
        engine.move_next()
        assert open_state(engine).selected_index == 2
        engine.move_next()
        assert open_state(engine).selected_index == 0

    def test_previous_wraps_to_end(self, engine: SuggestionEngine) -> None:
        engine.start()
        assert open_state(engine).selected_index == 0
        engine.move_previous()
        assert open_state(engine).selected_index == 2

    def test_navigation_with_no_candidates_is_noop(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.update_query("zzz")
        engine.move_next()
        engine.move_previous()
        assert open_state(engine).selected_index == 0

    def test_navigation_when_closed_is_noop(self, engine: SuggestionEngine) -> None:
        engine.move_next()
        engine.move_previous()
        assert engine.state == Closed()


class TestCommit:
    def test_confirm_emits_selected_and_closes(self, engine: SuggestionEngine) -> None:
        commits: list[Commit] = []
        engine.on_commit(commits.append)
        engine.start(anchor=(0, 0))
        engine.move_next()
        result = engine.confirm()
        assert result == Commit(id="id-alfred", label="alfred", anchor=(0, 0))
        assert commits == [result]
        assert engine.state == Closed()

    def test_confirm_everyone(self) -> None:
        engine = SuggestionEngine(RosterSource(members=roster("alice")))
        engine.start()
        result = engine.confirm()
        assert result is not None
        assert result.is_everyone
        assert result.label == "everyone"

    def test_confirm_with_no_candidates_commits_nothing(self, engine: SuggestionEngine) -> None:
        commits: list[Commit] = []
        engine.on_commit(commits.append)
        engine.start()
        engine.update_query("zzz")
        assert engine.confirm() is None
        assert commits == []
        assert engine.is_open

    def test_confirm_when_closed(self, engine: SuggestionEngine) -> None:
        assert engine.confirm() is None

    def test_unsubscribe_commit_listener(self, engine: SuggestionEngine) -> None:
        commits: list[Commit] = []
        unsubscribe = engine.on_commit(commits.append)
        unsubscribe()
        engine.start()
        engine.confirm()
        assert commits == []


class TestCancel:
    def test_cancel_closes_without_commit(self, engine: SuggestionEngine) -> None:
        commits: list[Commit] = []
        engine.on_commit(commits.append)
        engine.start()
        engine.cancel()
        assert engine.state == Closed()
        assert commits == []

    def test_context_lost_closes(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.update_query("al")
        engine.context_lost()
        assert engine.state == Closed()
        assert not engine.is_visible

    def test_set_source_closes_session(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.set_source(RosterSource(members=roster("zed")))
        assert engine.state == Closed()
        engine.start()
        assert [c.label for c in open_state(engine).candidates] == ["everyone", "zed"]


class TestStateListeners:
    def test_notified_on_every_transition(self, engine: SuggestionEngine) -> None:
        seen: list[object] = []
        engine.subscribe(seen.append)
        engine.start()
        engine.update_query("a")
        engine.move_next()
        engine.confirm()
        assert len(seen) == 4
        assert isinstance(seen[0], Open)
        assert seen[-1] == Closed()

    def test_cancel_when_closed_does_not_notify(self, engine: SuggestionEngine) -> None:
        seen: list[object] = []
        engine.subscribe(seen.append)
        engine.cancel()
        engine.context_lost()
        assert seen == []

    def test_unsubscribe(self, engine: SuggestionEngine) -> None:
        seen: list[object] = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()
        engine.start()
        assert seen == []

    def test_visibility_flag_tracks_candidates(self, engine: SuggestionEngine) -> None:
        visible: list[bool] = []
        engine.subscribe(lambda _state: visible.append(engine.is_visible))
        engine.start()
        engine.update_query("zzz")
        engine.update_query("a")
        engine.cancel()
        assert visible == [True, False, True, False]


class TestHandleKey:
    @pytest.mark.parametrize("key", ["enter", "tab", "down", "up", "escape"])
    def test_bound_keys_pass_through_when_closed(self, engine: SuggestionEngine, key: str) -> None:
        assert engine.handle_key(key) is False

    @pytest.mark.parametrize("key", ["a", "space", "left", "backspace", "shift+enter"])
    def test_other_keys_pass_through_when_open(self, engine: SuggestionEngine, key: str) -> None:
        engine.start()
        assert engine.handle_key(key) is False
        assert engine.is_open

    def test_down_and_up_navigate(self, engine: SuggestionEngine) -> None:
        engine.start()
        assert engine.handle_key("down") is True
        assert open_state(engine).selected_index == 1
        assert engine.handle_key("up") is True
        assert engine.handle_key("up") is True
        assert open_state(engine).selected_index == 2

    @pytest.mark.parametrize("key", ["enter", "tab"])
    def test_confirm_keys_commit(self, engine: SuggestionEngine, key: str) -> None:
        commits: list[Commit] = []
        engine.on_commit(commits.append)
        engine.start()
        assert engine.handle_key(key) is True
        assert [c.label for c in commits] == ["alice"]

    def test_confirm_consumed_with_no_candidates(self, engine: SuggestionEngine) -> None:
        engine.start()
        engine.update_query("zzz")
        assert engine.handle_key("enter") is True
        assert engine.is_open

    def test_escape_cancels(self, engine: SuggestionEngine) -> None:
        engine.start()
        assert engine.handle_key("escape") is True
        assert engine.state == Closed()

    def test_custom_bindings(self) -> None:
        keys = SuggestionKeys(confirm=["ctrl+y"], next=["ctrl+n"], previous=["ctrl+p"], cancel=["ctrl+g"])
        engine = SuggestionEngine(PeerListSource(peers=roster("a", "b")), keys=keys)
        engine.start()
        assert engine.handle_key("down") is False
        assert engine.handle_key("ctrl+n") is True
        assert engine.selected is not None
        assert engine.selected.label == "b"
        assert engine.handle_key("ctrl+y") is True
        assert engine.state == Closed()


class TestSuggestionKeys:
    @pytest.mark.parametrize(
        ("key", "action"),
        [
            ("enter", Action.CONFIRM),
            ("tab", Action.CONFIRM),
            ("down", Action.NEXT),
            ("up", Action.PREVIOUS),
            ("escape", Action.CANCEL),
            ("x", None),
        ],
    )
    def test_default_bindings(self, key: str, action: Action | None) -> None:
        assert SuggestionKeys().action_for(key) is action


class TestFindTrigger:
    @pytest.mark.parametrize(
        ("before", "expected"),
        [
            ("@", 0),
            ("@al", 0),
            ("hi @al", 3),
            ("hi\t@", 3),
            ("hi @al ice", None),
            ("mail@al", None),
            ("no trigger", None),
            ("", None),
            ("@a @b", 3),
            ("@a@b", None),
        ],
    )
    def test_find_trigger(self, before: str, expected: int | None) -> None:
        assert find_trigger(before) == expected

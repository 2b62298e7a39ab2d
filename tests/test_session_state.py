"""Unit tests for the observable session state."""
import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from relaychat.client.session_state import SessionState
from relaychat.shared.models import Connectivity


class TestSessionState:

    def test_initial_state(self):
        state = SessionState("alice")

        assert state.identity == "alice"
        assert state.connectivity is Connectivity.DISCONNECTED
        assert state.last_error is None
        assert state.messages == ()
        assert state.stats["reconnect_count"] == 0

    def test_identity_must_not_be_blank(self):
        with pytest.raises(ValueError):
            SessionState("   ")

    def test_append_assigns_ids_from_one(self):
        state = SessionState("alice")

        first = state.append_message("alice", "hi")
        second = state.append_message("bob", "hey")

        assert (first.id, second.id) == (1, 2)
        assert state.messages == (first, second)

    def test_messages_are_frozen(self):
        message = SessionState("alice").append_message("alice", "hi")

        with pytest.raises(ValidationError):
            message.text = "edited"

    def test_messages_view_is_read_only(self):
        state = SessionState("alice")
        state.append_message("alice", "hi")

        assert isinstance(state.messages, tuple)

    def test_duplicates_are_kept(self):
        state = SessionState("alice")
        state.append_message("alice", "hi")
        state.append_message("alice", "hi")

        assert [m.text for m in state.messages] == ["hi", "hi"]

    def test_error_set_and_clear(self):
        state = SessionState("alice")

        state.set_error("boom")
        assert state.last_error == "boom"
        state.clear_error()
        assert state.last_error is None

    @given(st.lists(st.tuples(st.sampled_from(["alice", "bob", "carol"]), st.text(min_size=1)), max_size=50))
    def test_ids_strictly_increase(self, entries):
        """Property test: ids are strictly increasing with no repeats, in append order."""
        state = SessionState("alice")
        for author, text in entries:
            state.append_message(author, text)

        ids = [m.id for m in state.messages]
        assert ids == list(range(1, len(entries) + 1))
        assert [(m.author, m.text) for m in state.messages] == entries


class TestObservers:

    def test_mutations_do_not_notify_until_publish(self):
        state = SessionState("alice")
        seen = []
        state.subscribe(lambda s: seen.append((s.connectivity, s.last_error)))

        state.set_connectivity(Connectivity.CONNECTED)
        state.clear_error()
        assert seen == []

        state.publish()
        assert seen == [(Connectivity.CONNECTED, None)]

    def test_unsubscribe(self):
        state = SessionState("alice")
        seen = []
        unsubscribe = state.subscribe(seen.append)

        unsubscribe()
        state.publish()

        assert seen == []

    def test_failing_observer_does_not_block_others(self):
        state = SessionState("alice")
        seen = []

        def broken(s):
            raise RuntimeError("observer bug")

        state.subscribe(broken)
        state.subscribe(seen.append)
        state.publish()

        assert seen == [state]

    @pytest.mark.asyncio
    async def test_wait_for_returns_when_predicate_holds(self):
        state = SessionState("alice")

        async def connect_later():
            await asyncio.sleep(0.01)
            state.set_connectivity(Connectivity.CONNECTED)
            state.publish()

        task = asyncio.create_task(connect_later())
        await state.wait_for(lambda s: s.is_connected, timeout=1.0)
        await task

        assert state.is_connected

    @pytest.mark.asyncio
    async def test_wait_for_times_out(self):
        state = SessionState("alice")

        with pytest.raises(asyncio.TimeoutError):
            await state.wait_for(lambda s: s.is_connected, timeout=0.01)

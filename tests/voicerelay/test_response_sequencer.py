"""Unit tests for ResponseSequencer ordering, superseding and draining."""

import asyncio

import pytest

from voicerelay.response_sequencer import MAX_COMPLETED_RESPONSES, ResponseSequencer


@pytest.fixture
def sequencer():
    return ResponseSequencer()


class TestResponseSequencer:
    def test_empty_drain(self, sequencer):
        drained = sequencer.drain()
        assert drained.response_id is None
        assert drained.fragments == []
        assert drained.done is False

    def test_fragments_drain_in_arrival_order(self, sequencer):
        for fragment in ["a", "b", "c"]:
            sequencer.append("r1", fragment)

        drained = sequencer.drain()

        assert drained.response_id == "r1"
        assert drained.fragments == ["a", "b", "c"]
        assert drained.done is False

    def test_completed_response_reports_done_once(self, sequencer):
        sequencer.append("r1", "a")
        sequencer.append("r1", "b")
        assert sequencer.complete("r1") is True

        first = sequencer.drain(max_fragments=1)
        second = sequencer.drain(max_fragments=1)
        third = sequencer.drain()

        assert (first.fragments, first.done) == (["a"], False)
        assert (second.fragments, second.done) == (["b"], True)
        assert third.response_id is None
        assert not sequencer.has_pending

    def test_new_response_supersedes_unfinished_one(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.append("r1", "a2")
        sequencer.append("r2", "b1")

        drained = sequencer.drain()

        assert drained.response_id == "r2"
        assert drained.fragments == ["b1"]
        assert sequencer.superseded_count == 1

    def test_late_fragment_of_superseded_response_is_dropped(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.append("r2", "b1")
        sequencer.append("r1", "a2")

        assert sequencer.live_response_id == "r2"
        assert sequencer.drain().fragments == ["b1"]
        assert sequencer.late_fragments == 1

    def test_late_fragment_of_completed_response_is_dropped(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.complete("r1")
        assert sequencer.drain().done is True

        sequencer.append("r1", "a2")

        assert sequencer.drain().response_id is None
        assert sequencer.late_fragments == 1

    def test_stale_completion_is_ignored(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.append("r2", "b1")

        assert sequencer.complete("r1") is False
        assert sequencer.complete("unknown") is False
        assert sequencer.stale_completions == 2
        assert sequencer.live_response_id == "r2"

    def test_completed_response_drains_before_next_live_one(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.complete("r1")
        sequencer.append("r2", "b1")

        first = sequencer.drain()
        second = sequencer.drain()

        assert (first.response_id, first.fragments, first.done) == ("r1", ["a1"], True)
        assert (second.response_id, second.fragments, second.done) == ("r2", ["b1"], False)

    def test_completed_response_is_not_superseded(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.complete("r1")
        sequencer.append("r2", "b1")

        assert sequencer.superseded_count == 0
        assert sequencer.get_stats()["completed_pending"] == 1

    def test_undrained_completed_backlog_is_capped(self, sequencer):
        total = MAX_COMPLETED_RESPONSES + 5
        for i in range(total):
            sequencer.append(f"r{i}", "a")
            sequencer.complete(f"r{i}")

        stats = sequencer.get_stats()

        assert stats["completed_pending"] == MAX_COMPLETED_RESPONSES
        assert stats["dropped_completed"] == 5
        assert sequencer.drain().response_id == "r5"

    def test_max_fragments_must_be_positive(self, sequencer):
        with pytest.raises(ValueError):
            sequencer.drain(max_fragments=0)

    def test_next_fragment(self, sequencer):
        assert sequencer.next_fragment() is None
        sequencer.append("r1", "a1")
        sequencer.append("r1", "a2")

        assert sequencer.next_fragment() == "a1"
        assert sequencer.next_fragment() == "a2"
        assert sequencer.next_fragment() is None

    def test_clear(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.complete("r1")
        sequencer.append("r2", "b1")

        sequencer.clear()

        assert not sequencer.has_pending
        assert sequencer.live_response_id is None
        # Cleared ids are not remembered as finished
        sequencer.append("r1", "again")
        assert sequencer.drain().fragments == ["again"]

    def test_stats_count_fragments(self, sequencer):
        sequencer.append("r1", "a1")
        sequencer.append("r1", "a2")
        sequencer.drain(max_fragments=1)

        stats = sequencer.get_stats()

        assert stats["fragments_received"] == 2
        assert stats["fragments_drained"] == 1
        assert stats["live_fragments"] == 1

    @pytest.mark.asyncio
    async def test_wait_available_wakes_on_append(self, sequencer):
        waiter = asyncio.create_task(sequencer.wait_available(timeout=1.0))
        await asyncio.sleep(0)
        sequencer.append("r1", "a1")

        assert await waiter is True

    @pytest.mark.asyncio
    async def test_wait_available_times_out(self, sequencer):
        assert await sequencer.wait_available(timeout=0.01) is False

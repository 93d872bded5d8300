"""Unit tests for next-event selection."""
import itertools
import random
from datetime import timedelta

import pytest

from nextevt.selector import partition, select_event

pytestmark = pytest.mark.unit


class TestPartition:
    def test_splits_present_and_future(self, make_event, at):
        running = make_event("running", (8, 30), (9, 30))
        later   = make_event("later", (10, 0), (11, 0))

        present, future = partition([running, later], at(9, 0))

        assert present == [running]
        assert future == [later]

    def test_zero_duration_event_present_only_at_its_instant(self, make_event, at):
        blip = make_event("blip", (9, 0), (9, 0))

        assert partition([blip], at(9, 0)) == ([blip], [])
        assert partition([blip], at(8, 59, 59)) == ([], [blip])
        assert partition([blip], at(9, 0, 1)) == ([], [])

    def test_interval_is_closed_at_both_ends(self, make_event, at):
        event = make_event("x", (9, 0), (9, 30))

        assert partition([event], at(9, 0))[0] == [event]
        assert partition([event], at(9, 30))[0] == [event]


class TestSelectWithoutPresentEvents:
    def test_empty_set_selects_nothing(self, at):
        assert select_event([], at(9, 0)) is None

    def test_only_ended_events_selects_nothing(self, make_event, at):
        assert select_event([make_event("old", (7, 0), (8, 0))], at(9, 0)) is None

    def test_selects_earliest_future_event(self, make_event, at):
        events = [
            make_event("a", (10, 0), (11, 0)),
            make_event("b", (11, 0), (12, 0)),
        ]

        assert select_event(events, at(9, 0)).identifier == "a"

    def test_result_is_independent_of_input_order(self, make_event, at):
        events = [
            make_event("a", (10, 0), (11, 0)),
            make_event("b", (10, 15), (10, 45)),
            make_event("c", (13, 0), (14, 0)),
            make_event("d", (16, 0), (16, 30)),
        ]
        for perm in itertools.permutations(events):
            ordered = sorted(perm, key=lambda e: e.start_time)
            assert select_event(ordered, at(9, 0)).identifier == "a"


class TestSelectWithPresentEvents:
    def test_single_running_event(self, make_event, at):
        """X 09:00–09:30 at 09:10 → X."""
        x = make_event("x", (9, 0), (9, 30))

        assert select_event([x], at(9, 10)) is x

    def test_prefers_most_recently_started(self, make_event, at):
        block   = make_event("block", (8, 0), (12, 0))
        meeting = make_event("meeting", (9, 0), (9, 30))

        assert select_event([block, meeting], at(9, 10)) is meeting

    def test_not_the_earliest_ending(self, make_event, at):
        short_early = make_event("short", (8, 50), (9, 15))
        long_late   = make_event("long", (9, 0), (11, 0))

        assert select_event([short_early, long_late], at(9, 10)) is long_late

    def test_equal_starts_resolve_to_later_in_input_order(self, make_event, at):
        first  = make_event("first", (9, 0), (10, 0))
        second = make_event("second", (9, 0), (9, 45))

        assert select_event([first, second], at(9, 10)) is second
        assert select_event([second, first], at(9, 10)) is first

    def test_back_to_back_hands_off_to_next_event(self, make_event, at):
        """X 09:00–10:00 running for over a minute, Y 09:45 starts before X ends → Y."""
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (9, 45), (10, 30))

        assert select_event([x, y], at(9, 31)) is y

    def test_scenario_stacked_meeting_already_started(self, make_event, at):
        """X 09:00–10:00, Y 09:30–10:00, now 09:31 → Y."""
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (9, 30), (10, 0))

        assert select_event([x, y], at(9, 31)) is y

    def test_no_handoff_before_threshold(self, make_event, at):
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (9, 45), (10, 30))

        assert select_event([x, y], at(9, 0, 59)) is x

    def test_handoff_exactly_at_threshold(self, make_event, at):
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (9, 45), (10, 30))

        assert select_event([x, y], at(9, 1, 0)) is y

    def test_no_handoff_when_next_starts_at_current_end(self, make_event, at):
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (10, 0), (10, 30))

        assert select_event([x, y], at(9, 31)) is x

    def test_no_handoff_when_next_starts_after_current_end(self, make_event, at):
        x = make_event("x", (9, 0), (9, 30))
        y = make_event("y", (11, 0), (12, 0))

        assert select_event([x, y], at(9, 10)) is x

    def test_custom_handoff_threshold(self, make_event, at):
        x = make_event("x", (9, 0), (10, 0))
        y = make_event("y", (9, 45), (10, 30))

        assert select_event([x, y], at(9, 4), handoff_threshold=timedelta(minutes=5)) is x
        assert select_event([x, y], at(9, 5), handoff_threshold=timedelta(minutes=5)) is y

    def test_only_latest_started_present_event_is_ever_returned(self, make_event, at):
        rng = random.Random(7)
        now = at(12, 0)
        for _ in range(200):
            events = []
            for i in range(rng.randint(1, 6)):
                start = rng.randint(9 * 60, 14 * 60)
                length = rng.randint(0, 180)
                s, e = divmod(start, 60), divmod(start + length, 60)
                if e[0] > 23:
                    continue
                events.append(make_event(f"e{i}", s, e))
            events.sort(key=lambda ev: ev.start_time)

            selected = select_event(events, now)
            present, future = partition(events, now)
            if not present:
                assert selected == (future[0] if future else None)
                continue

            latest = max(e.start_time for e in present)
            if selected in present:
                assert selected.start_time == latest
            else:
                current = [p for p in present if p.start_time == latest][-1]
                assert selected is future[0]
                assert now - latest >= timedelta(seconds=60)
                assert future[0].start_time < current.end_time

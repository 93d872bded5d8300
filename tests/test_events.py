"""Unit tests for the event filter."""
import logging

import pytest

from nextevt.errors import MalformedEvent
from nextevt.events import filter_events, validate_event

pytestmark = pytest.mark.unit


class TestValidateEvent:
    def test_accepts_zero_duration_event(self, make_event):
        validate_event(make_event("x", (9, 0), (9, 0)))

    def test_rejects_missing_identifier(self, make_event):
        with pytest.raises(MalformedEvent, match="missing identifier"):
            validate_event(make_event("", (9, 0), (9, 30)))

    def test_rejects_end_before_start(self, make_event):
        with pytest.raises(MalformedEvent) as exc:
            validate_event(make_event("x", (10, 0), (9, 0)))
        assert exc.value.identifier == "x"
        assert isinstance(exc.value, ValueError)


class TestFilterEvents:
    def test_empty_input_gives_empty_result(self, at):
        assert filter_events([], at(9, 0)) == []

    def test_drops_all_day_cancelled_and_declined(self, make_event, at):
        keep = make_event("keep", (10, 0), (10, 30))
        raw = [
            make_event("allday", (0, 0), (23, 59), is_all_day=True),
            make_event("cancelled", (10, 0), (11, 0), is_cancelled=True),
            make_event("declined", (11, 0), (12, 0), attendee_declined_by_current_user=True),
            keep,
        ]

        assert filter_events(raw, at(9, 0)) == [keep]

    def test_keeps_event_without_attendees(self, make_event, at):
        solo = make_event("solo", (10, 0), (10, 30))

        assert filter_events([solo], at(9, 0)) == [solo]

    def test_sorts_by_start_time(self, make_event, at):
        late  = make_event("late", (15, 0), (16, 0))
        early = make_event("early", (10, 0), (11, 0))
        mid   = make_event("mid", (12, 0), (12, 30))

        result = filter_events([late, early, mid], at(9, 0))

        assert [e.identifier for e in result] == ["early", "mid", "late"]

    def test_equal_starts_keep_input_order(self, make_event, at):
        a = make_event("a", (10, 0), (11, 0))
        b = make_event("b", (10, 0), (10, 30))
        c = make_event("c", (10, 0), (12, 0))

        result = filter_events([b, c, a], at(9, 0))

        assert [e.identifier for e in result] == ["b", "c", "a"]

    def test_skips_malformed_events_without_failing(self, make_event, at, caplog):
        good = make_event("good", (10, 0), (11, 0))
        raw = [
            make_event("", (10, 0), (11, 0)),
            make_event("backwards", (12, 0), (11, 0)),
            good,
        ]

        with caplog.at_level(logging.WARNING, logger="nextevt.events"):
            result = filter_events(raw, at(9, 0))

        assert result == [good]
        assert sum("malformed" in r.getMessage() for r in caplog.records) == 2

    def test_first_duplicate_identifier_wins(self, make_event, at, caplog):
        first  = make_event("dup", (10, 0), (11, 0), title="First")
        second = make_event("dup", (9, 30), (10, 0), title="Second")

        with caplog.at_level(logging.WARNING, logger="nextevt.events"):
            result = filter_events([first, second], at(9, 0))

        assert result == [first]
        assert "duplicate" in caplog.text

    def test_declined_duplicate_does_not_hide_an_attended_one(self, make_event, at):
        declined = make_event("dup", (10, 0), (10, 30), attendee_declined_by_current_user=True)
        attended = make_event("dup", (10, 0), (10, 30))

        assert filter_events([declined, attended], at(9, 0)) == [attended]

    def test_ended_duplicate_does_not_hide_a_later_one(self, make_event, at):
        ended = make_event("dup", (8, 0), (8, 30))
        later = make_event("dup", (8, 0), (9, 30))

        assert filter_events([ended, later], at(9, 0)) == [later]

    def test_drops_events_that_already_ended(self, make_event, at):
        ended   = make_event("ended", (8, 0), (8, 30))
        running = make_event("running", (8, 30), (9, 30))

        assert filter_events([ended, running], at(9, 0)) == [running]

    def test_keeps_event_ending_exactly_now(self, make_event, at):
        ending = make_event("ending", (8, 0), (9, 0))

        assert filter_events([ending], at(9, 0)) == [ending]

    def test_does_not_mutate_input(self, make_event, at):
        raw = [make_event("b", (11, 0), (12, 0)), make_event("a", (10, 0), (11, 0))]
        snapshot = list(raw)

        filter_events(raw, at(9, 0))

        assert raw == snapshot

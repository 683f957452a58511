"""Tests for links and event assignment."""

import pytest
from datetime import datetime, timezone

from aw_conjure_integration.sync.category import Category, RegexRule
from aw_conjure_integration.sync.decode import DecodeError
from aw_conjure_integration.sync.event import Event
from aw_conjure_integration.sync.link import Link, assign, assign_events, decode_links
from aw_conjure_integration.sync.measure import Measure

DEEP = ("Work", "Deep")
MEETINGS = ("Work", "Meetings")
GAMES = ("Fun", "Games")

CATEGORIES = [
    Category(DEEP, RegexRule("code")),
    Category(MEETINGS, RegexRule("zoom")),
    Category(GAMES, RegexRule("steam")),
]

WORK = Measure("m-work", "Work", 1.0)
MEETING_NOTES = Measure("m-meet", "Meetings", 2.0)


def make_event(category, duration=60.0, minute=0):
    return Event(
        category=category,
        app="app",
        title="title",
        start_time=datetime(2024, 1, 1, 0, minute, tzinfo=timezone.utc),
        duration=duration,
    )


class TestDecodeLinks:
    """Tests for decode_links."""

    def test_decode(self):
        """Test links resolve category names and measure IDs."""
        links = decode_links(
            [{"from": [["Work", "Deep"], ["Work", "Meetings"]], "to": "m-work"}],
            CATEGORIES,
            [WORK, MEETING_NOTES],
        )

        assert links == [Link(sources=(DEEP, MEETINGS), to=WORK)]

    def test_unknown_measure_fails(self):
        """Test a link to a measure that doesn't exist fails."""
        with pytest.raises(DecodeError, match="Unknown measure ID encountered"):
            decode_links([{"from": [["Work", "Deep"]], "to": "m-gone"}], CATEGORIES, [WORK])

    def test_unknown_category_fails_whole_batch(self):
        """Test one bad source fails every link."""
        data = [
            {"from": [["Work", "Deep"]], "to": "m-work"},
            {"from": [["Work", "Email"]], "to": "m-work"},
        ]
        with pytest.raises(DecodeError, match="Work>Email"):
            decode_links(data, CATEGORIES, [WORK])

    def test_empty_links_fail(self):
        """Test at least one link is required."""
        with pytest.raises(DecodeError):
            decode_links([], CATEGORIES, [WORK])

    def test_empty_from_fails(self):
        """Test every link needs a source."""
        with pytest.raises(DecodeError):
            decode_links([{"from": [], "to": "m-work"}], CATEGORIES, [WORK])


class TestAssign:
    """Tests for assign and assign_events."""

    def test_any_source_matches(self):
        """Test an event in any of a link's categories is assigned to it."""
        links = [Link(sources=(DEEP, MEETINGS), to=WORK)]

        assert assign(links, make_event(MEETINGS)) == links[0]

    def test_first_match_wins(self):
        """Test configured order decides between overlapping links."""
        links = [
            Link(sources=(MEETINGS,), to=MEETING_NOTES),
            Link(sources=(DEEP, MEETINGS), to=WORK),
        ]

        assert assign(links, make_event(MEETINGS)).to == MEETING_NOTES
        assert assign(links, make_event(DEEP)).to == WORK

    def test_unmatched(self):
        """Test None when no link claims the category."""
        links = [Link(sources=(DEEP,), to=WORK)]
        assert assign(links, make_event(GAMES)) is None

    def test_assign_events_groups_per_measure(self):
        """Test grouping keeps first-seen measure order and event order."""
        links = [
            Link(sources=(MEETINGS,), to=MEETING_NOTES),
            Link(sources=(DEEP,), to=WORK),
        ]
        deep_1 = make_event(DEEP, minute=0)
        meeting = make_event(MEETINGS, minute=15)
        game = make_event(GAMES, minute=20)
        deep_2 = make_event(DEEP, minute=30)

        groups, unmatched = assign_events(links, [deep_1, meeting, game, deep_2])

        assert groups == [(WORK, [deep_1, deep_2]), (MEETING_NOTES, [meeting])]
        assert unmatched == [game]

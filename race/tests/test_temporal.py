"""
Tests for TemporalIntentParser

Covers priority order, day boundaries, week/month/year periods and
multilingual phrasing.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from race.common.errors import ValidationError
from race.retriever.temporal import (
    END_OF_DAY,
    NO_TEMPORAL_INTENT,
    TemporalIntentParser,
    resolve_timezone,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def parser():
    return TemporalIntentParser()


class TestDayGrainPhrases:
    def test_yesterday_scenario(self, parser, now):
        intent = parser.parse("what did I do yesterday", now=now)

        assert intent.has_intent
        assert intent.label == "yesterday"
        assert intent.date_range.start == utc(2024, 3, 14, 0, 0, 0)
        assert intent.date_range.end == utc(2024, 3, 14, 23, 59, 59, 999000)

    def test_today_at_midnight_is_the_full_day(self, parser):
        intent = parser.parse("how many steps today", now=utc(2024, 3, 15, 0, 0, 1))

        assert intent.label == "today"
        assert intent.date_range.start == utc(2024, 3, 15, 0, 0, 0)
        assert intent.date_range.end == utc(2024, 3, 15, 23, 59, 59, 999000)

    @pytest.mark.parametrize("text, label", [
        ("today", "today"),
        ("yesterday", "yesterday"),
        ("the day before yesterday", "day before yesterday"),
        ("2 days ago", "day before yesterday"),
        ("5 days ago", "5 days ago"),
    ])
    def test_day_grain_spans_one_calendar_day(self, parser, now, text, label):
        intent = parser.parse(text, now=now)

        assert intent.label == label
        span = intent.date_range.end - intent.date_range.start
        assert span == timedelta(hours=23, minutes=59, seconds=59, milliseconds=999)
        assert intent.date_range.start.time() == datetime.min.time()
        assert intent.date_range.end.time() == END_OF_DAY

    def test_day_before_yesterday_is_not_read_as_yesterday(self, parser, now):
        intent = parser.parse("what happened the day before yesterday?", now=now)

        assert intent.label == "day before yesterday"
        assert intent.date_range.start == utc(2024, 3, 13)

    def test_n_days_ago(self, parser, now):
        intent = parser.parse("where was I 10 days ago", now=now)

        assert intent.label == "10 days ago"
        assert intent.date_range.start == utc(2024, 3, 5)

    def test_one_day_ago_keeps_plural_label(self, parser, now):
        intent = parser.parse("1 day ago", now=now)

        assert intent.label == "1 days ago"
        assert intent.date_range.start == utc(2024, 3, 14)

    def test_zero_days_ago_is_not_intent(self, parser, now):
        assert not parser.parse("0 days ago", now=now).has_intent

    def test_absurd_days_ago_is_not_intent(self, parser, now):
        assert not parser.parse("99999999999 days ago", now=now).has_intent

    def test_days_ago_beyond_int_conversion_limit_is_not_intent(self, parser, now):
        intent = parser.parse("what did I do " + "9" * 5000 + " days ago", now=now)

        assert intent is NO_TEMPORAL_INTENT

    def test_leading_zeros_in_day_count(self, parser, now):
        intent = parser.parse("007 days ago", now=now)

        assert intent.label == "7 days ago"
        assert intent.date_range.start == utc(2024, 3, 8)


class TestPeriods:
    def test_this_week_runs_from_sunday_to_today(self, parser, now):
        # 2024-03-15 is a Friday
        intent = parser.parse("how active was I this week", now=now)

        assert intent.label == "this week"
        assert intent.date_range.start == utc(2024, 3, 10)
        assert intent.date_range.end == utc(2024, 3, 15, 23, 59, 59, 999000)

    def test_this_week_on_a_sunday_starts_today(self, parser):
        intent = parser.parse("this week", now=utc(2024, 3, 17, 9, 30))

        assert intent.date_range.start == utc(2024, 3, 17)
        assert intent.date_range.end == utc(2024, 3, 17, 23, 59, 59, 999000)

    def test_last_week_is_a_full_week(self, parser, now):
        intent = parser.parse("last week", now=now)

        assert intent.date_range.start == utc(2024, 3, 3)
        assert intent.date_range.end == utc(2024, 3, 9, 23, 59, 59, 999000)

    def test_last_week_from_a_sunday(self, parser):
        intent = parser.parse("last week", now=utc(2024, 3, 17, 12))

        assert intent.date_range.start == utc(2024, 3, 10)
        assert intent.date_range.end == utc(2024, 3, 16, 23, 59, 59, 999000)

    def test_this_month_is_clipped_to_today(self, parser, now):
        intent = parser.parse("this month", now=now)

        assert intent.date_range.start == utc(2024, 3, 1)
        assert intent.date_range.end == utc(2024, 3, 15, 23, 59, 59, 999000)

    def test_last_month_is_the_full_month(self, parser, now):
        intent = parser.parse("last month", now=now)

        # 2024 is a leap year
        assert intent.date_range.start == utc(2024, 2, 1)
        assert intent.date_range.end == utc(2024, 2, 29, 23, 59, 59, 999000)

    def test_last_month_in_january_wraps_the_year(self, parser):
        intent = parser.parse("last month", now=utc(2024, 1, 20))

        assert intent.date_range.start == utc(2023, 12, 1)
        assert intent.date_range.end == utc(2023, 12, 31, 23, 59, 59, 999000)

    def test_this_year(self, parser, now):
        intent = parser.parse("this year", now=now)

        assert intent.date_range.start == utc(2024, 1, 1)
        assert intent.date_range.end == utc(2024, 3, 15, 23, 59, 59, 999000)

    def test_last_year(self, parser, now):
        intent = parser.parse("how far did I run last year", now=now)

        assert intent.label == "last year"
        assert intent.date_range.start == utc(2023, 1, 1)
        assert intent.date_range.end == utc(2023, 12, 31, 23, 59, 59, 999000)


class TestPriority:
    def test_yesterday_beats_last_week(self, parser, now):
        intent = parser.parse("compare yesterday with last week", now=now)

        assert intent.label == "yesterday"

    def test_today_beats_this_month(self, parser, now):
        assert parser.parse("this month, and especially today", now=now).label == "today"

    def test_days_ago_beats_this_week(self, parser, now):
        assert parser.parse("3 days ago, this week", now=now).label == "3 days ago"

    @pytest.mark.parametrize("text", [
        "what did I eat",
        "show my photos from the beach",
        "weekly summary",
        "yesterdays",
        "",
    ])
    def test_no_match(self, parser, now, text):
        intent = parser.parse(text, now=now)

        assert not intent.has_intent
        assert intent.date_range is None
        assert intent.label is None


class TestMultilingual:
    @pytest.mark.parametrize("text, label", [
        ("我昨天做了什么", "yesterday"),
        ("昨日は何をしましたか", "yesterday"),
        ("一昨日どこに行った", "day before yesterday"),
        ("어제 뭐 했어", "yesterday"),
        ("¿Qué hice ayer?", "yesterday"),
        ("Qu'est-ce que j'ai fait hier ?", "yesterday"),
        ("Qu'est-ce que j'ai fait avant-hier ?", "day before yesterday"),
        ("Was habe ich gestern gemacht?", "yesterday"),
        ("Cosa ho fatto ieri?", "yesterday"),
        ("O que fiz ontem?", "yesterday"),
        ("3天前我在哪里", "3 days ago"),
        ("hace 4 días", "4 days ago"),
        ("il y a 6 jours", "6 days ago"),
        ("vor 2 Tagen", "2 days ago"),
        ("本周跑了多少步", "this week"),
        ("先週", "last week"),
        ("la semana pasada", "last week"),
        ("le mois dernier", "last month"),
        ("letzten Monat", "last month"),
        ("去年", "last year"),
    ])
    def test_phrases(self, parser, now, text, label):
        assert parser.parse(text, now=now).label == label


class TestTimezones:
    def test_boundaries_follow_the_reference_zone(self, parser):
        # 02:00 UTC on the 15th is still the 14th in New York
        intent = parser.parse("today", now=utc(2024, 3, 15, 2, 0), tz="America/New_York")

        zone = ZoneInfo("America/New_York")
        assert intent.date_range.start == datetime(2024, 3, 14, tzinfo=zone)
        assert intent.date_range.end == datetime(2024, 3, 14, 23, 59, 59, 999000, tzinfo=zone)

    def test_default_timezone_from_constructor(self):
        parser = TemporalIntentParser(default_timezone="Asia/Tokyo")

        # 20:00 UTC on the 14th is the 15th in Tokyo
        intent = parser.parse("yesterday", now=utc(2024, 3, 14, 20, 0))

        assert intent.date_range.start.date().isoformat() == "2024-03-14"
        assert intent.date_range.start.utcoffset() == timedelta(hours=9)

    def test_naive_now_is_rejected(self, parser):
        with pytest.raises(ValidationError):
            parser.parse("today", now=datetime(2024, 3, 15, 10, 0))

    def test_unknown_timezone_is_rejected(self, parser, now):
        with pytest.raises(ValidationError):
            parser.parse("today", now=now, tz="Mars/Olympus_Mons")

    def test_resolve_utc(self):
        assert resolve_timezone("utc") is timezone.utc

"""SmartTimeParserのテストコード"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from src.todo.time_parser import SmartTimeParser, disambiguate_hour

TZ = ZoneInfo("Asia/Tokyo")
# 水曜日 10:00
BASE = datetime(2025, 1, 15, 10, 0, tzinfo=TZ)


@pytest.fixture
def parser():
    return SmartTimeParser("Asia/Tokyo")


def at(year, month, day, hour=9, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=TZ)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("tomorrow 3pm", at(2025, 1, 16, 15)),
        ("tomorrow", at(2025, 1, 16, 9)),
        ("today 5pm", at(2025, 1, 15, 17)),
        ("day after tomorrow", at(2025, 1, 17, 9)),
        ("yesterday", at(2025, 1, 14, 9)),
        ("in 3 days", at(2025, 1, 18, 9)),
        ("3 days from today", at(2025, 1, 18, 9)),
        ("three days from today", at(2025, 1, 18, 9)),
        ("2 days later 4pm", at(2025, 1, 17, 16)),
        ("tonight", at(2025, 1, 15, 20)),
        ("tonight 8", at(2025, 1, 15, 20)),
        ("今夜", at(2025, 1, 15, 20)),
        ("next monday", at(2025, 1, 20, 9)),
        ("friday next week", at(2025, 1, 24, 9)),
        ("来週の月曜日", at(2025, 1, 20, 9)),
        ("friday", at(2025, 1, 17, 9)),
        ("next friday", at(2025, 1, 24, 9)),
        ("wednesday", at(2025, 1, 22, 9)),
        ("monday 10am", at(2025, 1, 20, 10)),
        ("next week", at(2025, 1, 22, 9)),
        ("next month", at(2025, 2, 15, 9)),
        ("afternoon 3", at(2025, 1, 15, 15)),
        ("evening 8", at(2025, 1, 15, 20)),
        ("tomorrow morning 9:30", at(2025, 1, 16, 9, 30)),
        ("tomorrow noon", at(2025, 1, 16, 12)),
        ("明日 午後3時", at(2025, 1, 16, 15)),
        ("明後日 10時半", at(2025, 1, 17, 10, 30)),
    ],
)
def test_parse_relative_expressions(parser, text, expected):
    """相対表現が基準時刻から正しく解決されることを確認"""
    assert parser.parse(text, BASE) == expected


def test_parse_iso_datetime_and_date(parser):
    assert parser.parse("2025-03-01 14:30", BASE) == at(2025, 3, 1, 14, 30)
    assert parser.parse("2025-03-01T14:30:00+00:00", BASE) == datetime(2025, 3, 1, 23, 30, tzinfo=TZ)
    # 日付のみは09:00
    assert parser.parse("2025-03-01", BASE) == at(2025, 3, 1, 9)


def test_hour_and_minute_offsets_return_immediately(parser):
    assert parser.parse("in 2 hours", BASE) == BASE + timedelta(hours=2)
    assert parser.parse("30 minutes from now", BASE) == BASE + timedelta(minutes=30)


def test_bare_hour_is_disambiguated_to_afternoon(parser):
    """修飾なしの3時は15時として解釈される"""
    base = at(2025, 1, 15, 14)
    assert parser.parse("3 o'clock", base) == at(2025, 1, 15, 15)
    assert parser.parse("at 3", base) == at(2025, 1, 15, 15)


def test_passed_time_without_date_rolls_to_next_day(parser):
    base = at(2025, 1, 15, 16)
    assert parser.parse("3", base) == at(2025, 1, 16, 15)
    assert parser.parse("9:30", base) == at(2025, 1, 16, 9, 30)


def test_explicit_date_does_not_roll_forward(parser):
    """日付指定があれば過去の時刻でもそのまま返す"""
    assert parser.parse("today 9am", BASE) == at(2025, 1, 15, 9)


@pytest.mark.parametrize("text", ["", "   ", "hello world", "2025-02-30", "25:00"])
def test_unparseable_returns_none(parser, text):
    assert parser.parse(text, BASE) is None


@pytest.mark.parametrize(
    "hour, expected",
    [(0, 12), (3, 15), (7, 19), (8, 8), (10, 10), (11, 11), (12, 12), (13, 13), (23, 23)],
)
def test_disambiguate_hour(hour, expected):
    assert disambiguate_hour(hour) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("15 minutes before", timedelta(minutes=-15)),
        ("2 hours early", timedelta(hours=-2)),
        ("1 day in advance", timedelta(days=-1)),
        ("30 minutes after", timedelta(minutes=30)),
        ("10分前", timedelta(minutes=-10)),
        ("whenever", timedelta(0)),
        (None, timedelta(0)),
    ],
)
def test_parse_offset(parser, text, expected):
    assert parser.parse_offset(text) == expected


def test_calculate_reminder_time(parser):
    when = at(2025, 1, 16, 15)
    assert parser.calculate_reminder_time(when, "15 minutes before") == at(2025, 1, 16, 14, 45)
    assert parser.calculate_reminder_time(None, "15 minutes before") is None
    assert parser.calculate_reminder_time(when, None) is None


def test_next_month_clamps_to_month_end(parser):
    """月末からの next month は翌月の末日に丸められる"""
    assert parser.parse("next month", at(2025, 1, 31, 8)) == at(2025, 2, 28, 9)
    assert parser.parse("next month 3pm", at(2024, 1, 31, 8)) == at(2024, 2, 29, 15)


def test_weekday_on_sunday_base(parser):
    sunday = at(2025, 1, 19, 10)
    assert parser.parse("sunday", sunday) == at(2025, 1, 26, 9)
    assert parser.parse("monday", sunday) == at(2025, 1, 20, 9)
    assert parser.parse("next monday", sunday) == at(2025, 1, 20, 9)


def test_iso_datetime_with_zulu_suffix(parser):
    assert parser.parse("2025-03-01T05:30:00Z", BASE) == at(2025, 3, 1, 14, 30)
    assert parser.parse("2025-02-30 10:00", BASE) is None

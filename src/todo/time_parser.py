"""
自然言語の時間表現パーサー

"tomorrow 3pm", "next Friday", "in 3 days", "明日 午後3時" のような表現を
基準時刻からの絶対時刻（タイムゾーン付きdatetime）へ変換する。
I/Oも共有状態も持たないため、同じ基準時刻に対しては常に同じ結果を返す。

解釈の優先順位:
  (a) ISO形式の日時/日付
  (b) in N days / N days from today（"three" のような数詞も可）
  (c) today / tomorrow / day after tomorrow / yesterday、N hours from now / N minutes later（時間・分は即座に返す）
  (d) 曜日（next / next week 修飾あり）、next week、next month
  (e) 修飾付きの時刻（3pm, afternoon 3, morning 9:30, noon）
  (f) 修飾なしの時刻（15:30, 3 o'clock, at 3, 3）→ 時刻の曖昧さ解消
"""

import re
from datetime import datetime, timedelta, tzinfo
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

DEFAULT_HOUR = 9
# 時刻指定のない "tonight" / "今夜"
TONIGHT_HOUR = 20

_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[t\s]\d{2}:\d{2}")
_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}(?![\d:])")

# (pattern, 日数)。長い表現を先に評価する
_RELATIVE_DAYS: List[Tuple[re.Pattern, int]] = [
    (re.compile(r"\b(?:the\s+)?day\s+after\s+the\s+day\s+after\s+tomorrow\b|明々後日|しあさって"), 3),
    (re.compile(r"\b(?:the\s+)?day\s+after\s+tomorrow\b|\bovermorrow\b|明後日|あさって"), 2),
    (re.compile(r"\btomorrow\b|\btmrw?\b|明日"), 1),
    (re.compile(r"\byesterday\b|昨日"), -1),
    (re.compile(r"\btoday\b|\btonight\b|今日|今夜"), 0),
]

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
_NUMBER_WORD = re.compile(
    r"\b(" + "|".join(_NUMBER_WORDS) + r")\b(?=\s+(?:days?|hours?|hrs?|minutes?|mins?)\b)"
)

_IN_DAYS = re.compile(
    r"\bin\s+(\d+)\s*days?\b|\b(\d+)\s*days?\s+(?:from\s+(?:now|today)|later|after|hence)\b|(\d+)\s*日後"
)
_IN_HOURS = re.compile(
    r"\bin\s+(\d+)\s*(?:hours?|hrs?)\b|\b(\d+)\s*(?:hours?|hrs?)\s+(?:from\s+now|later)\b|(\d+)\s*時間後"
)
_IN_MINUTES = re.compile(
    r"\bin\s+(\d+)\s*(?:minutes?|mins?)\b|\b(\d+)\s*(?:minutes?|mins?)\s+(?:from\s+now|later)\b|(\d+)\s*分後"
)

_WEEKDAYS = {
    "monday": 0, "mon": 0, "月": 0,
    "tuesday": 1, "tue": 1, "tues": 1, "火": 1,
    "wednesday": 2, "wed": 2, "水": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3, "木": 3,
    "friday": 4, "fri": 4, "金": 4,
    "saturday": 5, "sat": 5, "土": 5,
    "sunday": 6, "sun": 6, "日": 6,
}
_WEEKDAY = re.compile(
    r"(?:\b(?P<next>next)\s+)?\b(?P<day>monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|mon|tues|tue|wed|thurs|thur|thu|fri|sat|sun)\b"
    r"|(?P<jpnext>来週の?)?(?P<jpday>[月火水木金土日])曜日?"
)
_WEEKDAY_OF = (MO, TU, WE, TH, FR, SA, SU)
_NEXT_WEEK = re.compile(r"\bnext\s+week\b|来週")
_NEXT_MONTH = re.compile(r"\bnext\s+month\b|来月")

_PM_WORDS = {"pm", "p.m.", "afternoon", "evening", "night", "tonight", "午後", "夜", "夕方"}
_AM_WORDS = {"am", "a.m.", "morning", "午前", "朝"}

# 修飾付きの時刻
_AMPM_SUFFIX = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)(?![a-z])")
_QUALIFIER_PREFIX = re.compile(
    r"\b(morning|afternoon|evening|night|tonight)\s+(?:at\s+)?(\d{1,2})(?::(\d{2}))?\b"
)
_QUALIFIER_SUFFIX = re.compile(
    r"\b(\d{1,2})(?::(\d{2}))?\s+in\s+the\s+(morning|afternoon|evening)\b"
)
_JP_QUALIFIED = re.compile(r"(午前|午後|朝|夜|夕方)\s*(\d{1,2})時(?:(\d{1,2})分|(半))?")
_NOON = re.compile(r"\bnoon\b|\bmidday\b|正午|昼")
_MIDNIGHT = re.compile(r"\bmidnight\b|深夜0時")

# 修飾なしの時刻
_CLOCK = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_OCLOCK = re.compile(r"\b(\d{1,2})\s*o[’']?\s*clock\b")
_JP_CLOCK = re.compile(r"(\d{1,2})時(?:(\d{1,2})分|(半))?")
_AT_HOUR = re.compile(r"\bat\s+(\d{1,2})\b")
_LONE_HOUR = re.compile(r"^\s*(\d{1,2})\s*$")

_OFFSET_BEFORE = r"\s+(?:before|early|earlier|ahead|in\s+advance|prior)"
_OFFSET_AFTER = r"\s+(?:after|later)"
_OFFSET_RULES: List[Tuple[re.Pattern, int, str]] = [
    (re.compile(r"(\d+)\s*(?:minutes?|mins?)" + _OFFSET_BEFORE), -1, "minutes"),
    (re.compile(r"(\d+)\s*(?:hours?|hrs?)" + _OFFSET_BEFORE), -1, "hours"),
    (re.compile(r"(\d+)\s*days?" + _OFFSET_BEFORE), -1, "days"),
    (re.compile(r"(\d+)\s*(?:minutes?|mins?)" + _OFFSET_AFTER), 1, "minutes"),
    (re.compile(r"(\d+)\s*(?:hours?|hrs?)" + _OFFSET_AFTER), 1, "hours"),
    (re.compile(r"(\d+)\s*分前"), -1, "minutes"),
    (re.compile(r"(\d+)\s*時間前"), -1, "hours"),
    (re.compile(r"(\d+)\s*日前"), -1, "days"),
    (re.compile(r"(\d+)\s*分後"), 1, "minutes"),
    (re.compile(r"(\d+)\s*時間後"), 1, "hours"),
]


def _first_int(match: re.Match) -> int:
    for group in match.groups():
        if group is not None:
            return int(group)
    raise ValueError("pattern matched without a number")


def _cut(text: str, match: re.Match) -> str:
    return f"{text[:match.start()]} {text[match.end():]}"


def disambiguate_hour(hour: int) -> int:
    """AM/PM指定のない時刻を24時間制に寄せる

    11-12時はそのまま（昼前後）、0-7時は午後扱い(+12)、
    8-10時は午前のまま、13-23時は既に24時間制。
    """
    if 0 <= hour <= 7:
        return hour + 12
    return hour


class SmartTimeParser:
    """自然言語の時間表現を絶対時刻に変換するパーサー"""

    def __init__(self, timezone: Union[str, tzinfo] = "Asia/Tokyo"):
        """
        Args:
            timezone: 解釈に使うタイムゾーン（IANA名またはtzinfo）
        """
        self.tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def localize(self, value: datetime) -> datetime:
        """naiveなdatetimeにはタイムゾーンを付与し、awareなものは変換する"""
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def parse(self, natural_time: Optional[str], base: Optional[datetime] = None) -> Optional[datetime]:
        """
        自然言語の時間表現を解析

        Args:
            natural_time: 時間表現（例: "tomorrow 3pm", "next friday", "in 3 days"）
            base: 基準時刻（省略時は現在時刻）

        Returns:
            タイムゾーン付きdatetime。解析できない場合・不正な日付の場合はNone
        """
        if not natural_time or not isinstance(natural_time, str):
            return None

        now = self.localize(base) if base is not None else self.now()
        raw = natural_time.strip()
        text = raw.lower()

        if _ISO_DATETIME.match(text):
            try:
                return self.localize(isoparse(raw))
            except (ValueError, OverflowError):
                return None

        try:
            return self._parse_relative(text, now)
        except ValueError:
            # 2月30日のような存在しない日付
            return None

    def _parse_relative(self, text: str, now: datetime) -> Optional[datetime]:
        target = now
        date_fixed = False
        pm_hint = "tonight" in text or "今夜" in text
        work = _NUMBER_WORD.sub(lambda m: str(_NUMBER_WORDS[m.group(1)]), text)

        iso_date = _ISO_DATE_PREFIX.match(work)
        if iso_date:
            day = isoparse(iso_date.group(0))
            target = target.replace(year=day.year, month=day.month, day=day.day)
            date_fixed = True
            work = _cut(work, iso_date)

        # "3 days from today" の today を日付語として拾わないよう先に評価する
        if not date_fixed:
            match = _IN_DAYS.search(work)
            if match:
                target = target + timedelta(days=_first_int(match))
                date_fixed = True
                work = _cut(work, match)

        if not date_fixed:
            for pattern, days in _RELATIVE_DAYS:
                match = pattern.search(work)
                if match:
                    target = target + timedelta(days=days)
                    date_fixed = True
                    work = _cut(work, match)
                    break

        if not date_fixed:
            # 時間・分のオフセットは時刻のデフォルト補正をせずに即座に返す
            match = _IN_HOURS.search(work)
            if match:
                return target + timedelta(hours=_first_int(match))
            match = _IN_MINUTES.search(work)
            if match:
                return target + timedelta(minutes=_first_int(match))

        if not date_fixed:
            target, date_fixed, work = self._apply_weekday(work, target)

        clock, work = self._extract_time(work, pm_hint)
        if clock is None:
            if not date_fixed:
                return None
            hour, minute = (TONIGHT_HOUR if pm_hint else DEFAULT_HOUR), 0
        else:
            hour, minute = clock

        target = target.replace(hour=hour, minute=minute, second=0, microsecond=0)

        # 日付指定がなく、既に過ぎた時刻なら翌日へ
        if not date_fixed and target <= now:
            target = target + timedelta(days=1)
        return target

    def _apply_weekday(self, work: str, target: datetime) -> Tuple[datetime, bool, str]:
        match = _WEEKDAY.search(work)
        if match:
            weekday = _WEEKDAY_OF[_WEEKDAYS[match.group("day") or match.group("jpday")]]
            qualified_next = bool(match.group("next") or match.group("jpnext"))
            work = _cut(work, match)
            next_week = _NEXT_WEEK.search(work)
            if next_week:
                work = _cut(work, next_week)
            if qualified_next or next_week:
                # 来週の月曜日を起点にその曜日へ
                monday = target + relativedelta(weekday=MO(-1))
                return monday + relativedelta(weeks=+1, weekday=weekday(+1)), True, work
            # 今日または今週の過ぎた曜日は来週扱い
            return target + relativedelta(days=+1, weekday=weekday(+1)), True, work

        match = _NEXT_WEEK.search(work)
        if match:
            return target + relativedelta(weeks=+1), True, _cut(work, match)

        match = _NEXT_MONTH.search(work)
        if match:
            return target + relativedelta(months=+1), True, _cut(work, match)

        return target, False, work

    def _extract_time(self, work: str, pm_hint: bool) -> Tuple[Optional[Tuple[int, int]], str]:
        """時刻トークンを抽出して (hour, minute) を返す。見つからなければNone"""
        match = _AMPM_SUFFIX.search(work)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2) or 0)
            qualifier = match.group(3).replace(".", "")
            return self._qualified(hour, minute, qualifier), _cut(work, match)

        match = _QUALIFIER_PREFIX.search(work)
        if match:
            hour, minute = int(match.group(2)), int(match.group(3) or 0)
            return self._qualified(hour, minute, match.group(1)), _cut(work, match)

        match = _QUALIFIER_SUFFIX.search(work)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2) or 0)
            return self._qualified(hour, minute, match.group(3)), _cut(work, match)

        match = _JP_QUALIFIED.search(work)
        if match:
            hour = int(match.group(2))
            minute = 30 if match.group(4) else int(match.group(3) or 0)
            return self._qualified(hour, minute, match.group(1)), _cut(work, match)

        match = _NOON.search(work)
        if match:
            return (12, 0), _cut(work, match)

        match = _MIDNIGHT.search(work)
        if match:
            return (0, 0), _cut(work, match)

        for pattern in (_CLOCK, _OCLOCK, _JP_CLOCK, _AT_HOUR, _LONE_HOUR):
            match = pattern.search(work)
            if not match:
                continue
            hour = int(match.group(1))
            minute = 0
            if pattern is _CLOCK:
                minute = int(match.group(2))
            elif pattern is _JP_CLOCK:
                minute = 30 if match.group(3) else int(match.group(2) or 0)
            if pm_hint and hour < 12:
                hour += 12
            else:
                hour = disambiguate_hour(hour)
            return self._checked(hour, minute), _cut(work, match)

        return None, work

    def _qualified(self, hour: int, minute: int, qualifier: str) -> Tuple[int, int]:
        if qualifier in _PM_WORDS and hour < 12:
            hour += 12
        elif qualifier in _AM_WORDS and hour == 12:
            hour = 0
        return self._checked(hour, minute)

    @staticmethod
    def _checked(hour: int, minute: int) -> Tuple[int, int]:
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"invalid time of day {hour}:{minute:02d}")
        return hour, minute

    def parse_offset(self, offset_text: Optional[str]) -> timedelta:
        """
        リマインダーのオフセット表現を解析

        Args:
            offset_text: 例 "10 minutes before", "2 hours early", "30 minutes after"

        Returns:
            符号付きtimedelta（前倒しは負）。認識できなければゼロ
        """
        if not offset_text or not isinstance(offset_text, str):
            return timedelta(0)

        text = offset_text.strip().lower()
        for pattern, sign, unit in _OFFSET_RULES:
            match = pattern.search(text)
            if match:
                return sign * timedelta(**{unit: int(match.group(1))})
        return timedelta(0)

    def calculate_reminder_time(
        self, when_time: Optional[datetime], remind_offset: Optional[str]
    ) -> Optional[datetime]:
        """
        主時刻とオフセット表現からリマインダー時刻を計算

        Args:
            when_time: 主時刻
            remind_offset: オフセット表現（例: "15 minutes before"）

        Returns:
            リマインダー時刻。どちらかが欠けていればNone
        """
        if when_time is None or not remind_offset:
            return None
        return when_time + self.parse_offset(remind_offset)

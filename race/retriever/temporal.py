"""
Temporal Intent Parser

Detects relative-time references in a query ("yesterday", "last week",
"3 days ago", ...) and converts them into an absolute, inclusive date range.

Rules are checked in a fixed priority order and the first match wins. Every
boundary is a start-of-day (00:00:00.000) or end-of-day (23:59:59.999) in one
reference timezone chosen by the caller, never the server's local zone.

Current periods ("this week", "this month", "this year") end on today;
past periods ("last week", "last month", "last year") are whole periods.

Recognises English plus Chinese, Japanese, Korean, Spanish, French, German,
Italian and Portuguese phrasings.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.errors import ValidationError

logger = logging.getLogger("race.retriever.temporal")

END_OF_DAY = time(23, 59, 59, 999000)

TimezoneLike = Union[str, tzinfo]


@dataclass(frozen=True)
class DateRange:
    """Inclusive, timezone-aware date range"""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class TemporalIntent:
    """Result of temporal parsing"""
    has_intent: bool
    date_range: Optional[DateRange] = None
    label: Optional[str] = None


NO_TEMPORAL_INTENT = TemporalIntent(has_intent=False)


def resolve_timezone(value: TimezoneLike) -> tzinfo:
    """Turn an IANA name or tzinfo into a tzinfo."""
    if isinstance(value, tzinfo):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"Invalid timezone: {value!r}")
    if value.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {value}") from e


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


# ============================================================================
# Period arithmetic (on calendar dates in the reference zone)
# ============================================================================

DayRange = Tuple[date, date]


def _today(today: date) -> DayRange:
    return today, today


def _days_ago(days: int) -> Callable[[date], DayRange]:
    def compute(today: date) -> DayRange:
        target = today - timedelta(days=days)
        return target, target
    return compute


def _this_week(today: date) -> DayRange:
    # Weeks start on Sunday; weekday() is Monday=0 .. Sunday=6
    since_sunday = (today.weekday() + 1) % 7
    return today - timedelta(days=since_sunday), today


def _last_week(today: date) -> DayRange:
    since_sunday = (today.weekday() + 1) % 7
    last_saturday = today - timedelta(days=since_sunday + 1)
    return last_saturday - timedelta(days=6), last_saturday


def _this_month(today: date) -> DayRange:
    return today.replace(day=1), today


def _last_month(today: date) -> DayRange:
    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


def _this_year(today: date) -> DayRange:
    return date(today.year, 1, 1), today


def _last_year(today: date) -> DayRange:
    return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)


# ============================================================================
# Patterns (priority order)
# ============================================================================

_FLAGS = re.IGNORECASE

TODAY_RE = re.compile(
    r"\btoday\b|今天|今日|오늘|\bhoy\b|\baujourd['’]hui\b|\bheute\b|\boggi\b|\bhoje\b",
    _FLAGS,
)

# Look-arounds keep "yesterday" from firing inside "day before yesterday"
YESTERDAY_RE = re.compile(
    r"(?<!day before )\byesterday\b|昨天|(?<!一)昨日|어제|\bayer\b|(?<!avant-)\bhier\b"
    r"|(?<!l'altro )\bieri\b(?! l'altro)|\bgestern\b|\bontem\b",
    _FLAGS,
)

DAY_BEFORE_YESTERDAY_RE = re.compile(
    r"\bday before yesterday\b|\b2 days ago\b|前天|一昨日|おととい|그저께|그제|\banteayer\b"
    r"|\bavant-hier\b|\bvorgestern\b|\bl'altro ieri\b|\bieri l'altro\b|\banteontem\b",
    _FLAGS,
)

# Counts with more digits reach past datetime.MINYEAR from any date
MAX_DAYS_AGO_DIGITS = 7

DAYS_AGO_RES = [
    re.compile(r"\b(\d+)\s+days?\s+ago\b", _FLAGS),           # English
    re.compile(r"(\d+)\s*天前"),                               # Chinese
    re.compile(r"(\d+)\s*日前"),                               # Japanese
    re.compile(r"(\d+)\s*일\s*전"),                            # Korean
    re.compile(r"\bhace\s+(\d+)\s+d[ií]as?\b", _FLAGS),       # Spanish
    re.compile(r"\bil y a\s+(\d+)\s+jours?\b", _FLAGS),       # French
    re.compile(r"\bvor\s+(\d+)\s+tag(?:en)?\b", _FLAGS),      # German
    re.compile(r"\b(\d+)\s+giorn[oi]\s+fa\b", _FLAGS),        # Italian
    re.compile(r"\bhá\s+(\d+)\s+dias?\b", _FLAGS),            # Portuguese
]

THIS_WEEK_RE = re.compile(
    r"\bthis week\b|这周|本周|这个星期|今週|이번\s*주|\besta semana\b|\bcette semaine\b"
    r"|\bdiese woche\b|\bquesta settimana\b",
    _FLAGS,
)

LAST_WEEK_RE = re.compile(
    r"\blast week\b|上周|上星期|先週|지난\s*주|\bsemana pasada\b|\bsemana passada\b"
    r"|\bsemaine derni[eè]re\b|\bletzte woche\b|\bsettimana scorsa\b",
    _FLAGS,
)

THIS_MONTH_RE = re.compile(
    r"\bthis month\b|这个月|本月|今月|이번\s*달|\beste mes\b|\bce mois(?:-ci)?\b"
    r"|\bdiese[nr]? monat\b|\bquesto mese\b|\beste mês\b",
    _FLAGS,
)

LAST_MONTH_RE = re.compile(
    r"\blast month\b|上个月|上月|先月|지난\s*달|\bmes pasado\b|\bmois dernier\b"
    r"|\bletzte[nr]? monat\b|\bmese scorso\b|\bmês passado\b",
    _FLAGS,
)

THIS_YEAR_RE = re.compile(
    r"\bthis year\b|今年|올해|\beste año\b|\bcette année\b|\bdieses jahr\b"
    r"|\bquest'anno\b|\bquesto anno\b|\beste ano\b",
    _FLAGS,
)

LAST_YEAR_RE = re.compile(
    r"\blast year\b|去年|昨年|작년|\baño pasado\b|\bannée dernière\b"
    r"|\bletztes jahr\b|\banno scorso\b|\bano passado\b",
    _FLAGS,
)


class TemporalIntentParser:
    """
    Deterministic relative-time parser.

    No I/O, no randomness: the same (text, now, tz) always yields the same
    intent. The reference timezone is configurable per user.
    """

    # Fixed-label rules in priority order; "N days ago" sits between
    # "day before yesterday" and "this week"
    _LEADING_RULES: List[Tuple[str, "re.Pattern", Callable[[date], DayRange]]] = [
        ("today", TODAY_RE, _today),
        ("yesterday", YESTERDAY_RE, _days_ago(1)),
        ("day before yesterday", DAY_BEFORE_YESTERDAY_RE, _days_ago(2)),
    ]
    _TRAILING_RULES: List[Tuple[str, "re.Pattern", Callable[[date], DayRange]]] = [
        ("this week", THIS_WEEK_RE, _this_week),
        ("last week", LAST_WEEK_RE, _last_week),
        ("this month", THIS_MONTH_RE, _this_month),
        ("last month", LAST_MONTH_RE, _last_month),
        ("this year", THIS_YEAR_RE, _this_year),
        ("last year", LAST_YEAR_RE, _last_year),
    ]

    def __init__(self, default_timezone: TimezoneLike = "UTC"):
        """
        Args:
            default_timezone: Reference zone used when parse() gets no tz
        """
        self._default_tz = resolve_timezone(default_timezone)

    def parse(
        self,
        text: str,
        now: Optional[datetime] = None,
        tz: Optional[TimezoneLike] = None,
    ) -> TemporalIntent:
        """
        Parse temporal intent from a query.

        Args:
            text: Query text
            now: Reference instant (timezone-aware); defaults to the current time
            tz: Reference timezone for day boundaries; defaults to the parser's

        Returns:
            TemporalIntent with an inclusive date range if a phrase was found

        Raises:
            ValidationError: if `now` is naive or `tz` is unknown
        """
        zone = resolve_timezone(tz) if tz is not None else self._default_tz

        if now is None:
            now = datetime.now(zone)
        elif now.tzinfo is None or now.utcoffset() is None:
            raise ValidationError("Reference time must be timezone-aware")

        if not text:
            return NO_TEMPORAL_INTENT

        today = now.astimezone(zone).date()

        for label, pattern, compute in self._LEADING_RULES:
            if pattern.search(text):
                return self._intent(label, compute(today), zone)

        digits = self._match_days_ago(text)
        if digits is not None:
            day_range = None
            if len(digits) <= MAX_DAYS_AGO_DIGITS:
                try:
                    day_range = _days_ago(int(digits))(today)
                except OverflowError:
                    pass
            if day_range is None:
                logger.debug("'%s days ago' is outside the calendar, ignoring", digits[:12])
                return NO_TEMPORAL_INTENT
            return self._intent(f"{int(digits)} days ago", day_range, zone)

        for label, pattern, compute in self._TRAILING_RULES:
            if pattern.search(text):
                return self._intent(label, compute(today), zone)

        return NO_TEMPORAL_INTENT

    @staticmethod
    def _match_days_ago(text: str) -> Optional[str]:
        """Digits of the first positive "N days ago", without leading zeros."""
        for pattern in DAYS_AGO_RES:
            match = pattern.search(text)
            if match:
                digits = match.group(1).lstrip("0")
                if digits:
                    return digits
        return None

    @staticmethod
    def _intent(label: str, day_range: DayRange, zone: tzinfo) -> TemporalIntent:
        first, last = day_range
        return TemporalIntent(
            has_intent=True,
            date_range=DateRange(start=start_of_day(first, zone), end=end_of_day(last, zone)),
            label=label,
        )

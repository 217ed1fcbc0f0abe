# ============================================================================
# SCHEDULE TEXT PARSER
# ============================================================================
# STATUS: Core - Schedule text to ScheduleSet
# PURPOSE: Parse human-readable recurrence text
# CREATED: 18 OCT 2026
# EXPORTS: parse_schedule_set, parse_date, parse_time, parse_datetime
# ============================================================================
"""
Schedule Text Parser

Schedules are comma-separated; keywords are case-insensitive:

    Daily
    Daily every 10 seconds
    Weekly from '11/9/2015'
    Monthly on last day from '10/27/2017'
    Hourly
    Weekdays at '10:00 AM'
    Every Monday, Wednesday, Friday at '12:59 PM'
    Every 2 weeks on Friday from '11/10/2017' at '5:30 PM'
    Every 3 months on first Friday at '6:00'
    EVERY MONTH ON DAY 5 FROM '12/1/2017' AT '05:10 AM'
    Every day from '11/9/2015' until '11/13/2015' every hour from '10:30 AM' until '8:30 PM'
    '11/13/2015' every 2 hours from '10:30 AM' until '8:30 PM'
    DATETIME '2015-11-09 16:00'
    Today every second from 1 second from now until 5 seconds from now
    TODAY NOW

`TODAY NOW` marks the set immediate. Dates are M/d/yyyy or yyyy-M-d;
times are h:mm[:ss] AM|PM or H:mm[:ss]. A date range without FROM starts
today. Daily/Weekly/Monthly/Hourly default their time rule to midnight
(hourly: every hour); every other form requires AT or EVERY.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import List, NamedTuple, Optional, Set, Tuple

from core.errors import DefinitionError, ScheduleParseError
from recurrence.rules import (
    LAST,
    WEEKDAYS,
    DateRule,
    DateUnit,
    DaysOfWeekRule,
    LogicalDayOfMonthRule,
    OnetimeDateRule,
    OnetimeTimeRule,
    OrdinalDayOfMonthRule,
    RecurringDateRule,
    RecurringTimeRule,
    TimeRule,
    TimeUnit,
    daily_rule,
    hourly_rule,
    midnight_rule,
    monthly_rule,
    weekly_rule,
)
from recurrence.schedule import Schedule, ScheduleSet


DAY_NAMES = {
    "MONDAY": 0,
    "TUESDAY": 1,
    "WEDNESDAY": 2,
    "THURSDAY": 3,
    "FRIDAY": 4,
    "SATURDAY": 5,
    "SUNDAY": 6,
}

ORDINALS = {"FIRST": 1, "SECOND": 2, "THIRD": 3, "FOURTH": 4, "LAST": LAST}

DATE_UNITS = {"DAY": DateUnit.DAY, "WEEK": DateUnit.WEEK, "MONTH": DateUnit.MONTH}
TIME_UNITS = {"HOUR": TimeUnit.HOUR, "MINUTE": TimeUnit.MINUTE, "SECOND": TimeUnit.SECOND}


# ============================================================================
# LITERALS
# ============================================================================

_DATE_PATTERNS = [
    re.compile(r"^(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4})$"),
    re.compile(r"^(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})$"),
]

_TIME_PATTERN = re.compile(
    r"^(?P<hour>\d{1,2}):(?P<minute>\d{1,2})(?::(?P<second>\d{1,2})(?:\.(?P<fraction>\d{1,6}))?)?"
    r"(?:\s*(?P<meridiem>[AaPp][Mm]))?$"
)


def parse_date(text: str) -> date:
    """Parse M/d/yyyy or yyyy-M-d."""
    for pattern in _DATE_PATTERNS:
        match = pattern.match(text.strip())
        if match:
            try:
                return date(int(match["year"]), int(match["month"]), int(match["day"]))
            except ValueError as e:
                raise ScheduleParseError(f"Invalid date '{text}': {e}") from e
    raise ScheduleParseError(f"Invalid date format: '{text}'")


def parse_time(text: str) -> time:
    """Parse h:mm[:ss] AM|PM or H:mm[:ss]."""
    match = _TIME_PATTERN.match(text.strip())
    if not match:
        raise ScheduleParseError(f"Invalid time format: '{text}'")

    hour = int(match["hour"])
    meridiem = match["meridiem"]
    if meridiem:
        if not 1 <= hour <= 12:
            raise ScheduleParseError(f"Invalid 12-hour time: '{text}'")
        hour = hour % 12 + (12 if meridiem.upper() == "PM" else 0)

    fraction = (match["fraction"] or "").ljust(6, "0")
    try:
        return time(
            hour,
            int(match["minute"]),
            int(match["second"] or 0),
            int(fraction or 0),
        )
    except ValueError as e:
        raise ScheduleParseError(f"Invalid time '{text}': {e}") from e


def parse_datetime(text: str) -> datetime:
    """Parse a date and time separated by a space or 'T'."""
    body = text.strip()
    parts = body.split("T", 1) if "T" in body else body.split(None, 1)
    if len(parts) != 2:
        raise ScheduleParseError(f"Invalid date/time format: '{text}'")
    return datetime.combine(parse_date(parts[0]), parse_time(parts[1]))


# ============================================================================
# TOKENIZER
# ============================================================================

class Token(NamedTuple):
    kind: str       # WORD, INT, QUOTED, COMMA
    value: str
    position: int


_TOKEN_PATTERN = re.compile(
    r"\s*(?:(?P<QUOTED>'[^']*'|\"[^\"]*\")|(?P<INT>\d+)|(?P<WORD>[A-Za-z_]+)|(?P<COMMA>,))"
)


def tokenize(text: str) -> List[Token]:
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if not match:
            raise ScheduleParseError(
                f"Unexpected character '{text[position:].strip()[:1]}' at position {position}"
            )
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "QUOTED":
            value = value[1:-1]
        tokens.append(Token(kind, value, match.start(kind)))
        position = match.end()
    return tokens


# ============================================================================
# PARSER
# ============================================================================

class _ScheduleParser:
    """Recursive descent over the token list, with one-token backtracking."""

    def __init__(self, text: str, now: datetime):
        self.text = text
        self.now = now
        self.tokens = tokenize(text)
        self.position = 0

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Optional[Token]:
        index = self.position + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _error(self, message: str) -> ScheduleParseError:
        token = self._peek()
        where = f"at '{token.value}'" if token else "at end of text"
        return ScheduleParseError(f"{message} {where} in schedule '{self.text}'")

    def _is_word(self, word: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token is not None and token.kind == "WORD" and token.value.upper() == word

    def _skip_word(self, word: str) -> bool:
        if self._is_word(word):
            self.position += 1
            return True
        return False

    def _expect_word(self, word: str) -> None:
        if not self._skip_word(word):
            raise self._error(f"Expected {word}")

    def _is_day_name(self, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token is not None and token.kind == "WORD" and token.value.upper() in DAY_NAMES

    def _next_quoted(self, what: str) -> str:
        token = self._peek()
        if token is None or token.kind != "QUOTED":
            raise self._error(f"Expected quoted {what}")
        self.position += 1
        return token.value

    def _next_int(self) -> Optional[int]:
        token = self._peek()
        if token is not None and token.kind == "INT":
            self.position += 1
            return int(token.value)
        return None

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def parse_set(self) -> ScheduleSet:
        result = ScheduleSet()
        if not self.tokens:
            raise ScheduleParseError("Schedule text is empty")
        while True:
            if self._is_word("TODAY") and self._is_word("NOW", 1):
                self.position += 2
                result.immediate = True
            else:
                result.add(self._schedule())
            token = self._peek()
            if token is None:
                return result
            if token.kind != "COMMA":
                raise self._error("Unexpected text after schedule")
            self.position += 1

    def _schedule(self) -> Schedule:
        if self._skip_word("DATETIME"):
            moment = parse_datetime(self._next_quoted("date/time"))
            return Schedule(OnetimeDateRule(moment.date()), OnetimeTimeRule(moment.time()))

        if self._skip_word("DATE") or (self._peek() and self._peek().kind == "QUOTED"):
            on = parse_date(self._next_quoted("date"))
            return Schedule(OnetimeDateRule(on), self._time_rule())

        if self._skip_word("TODAY"):
            return Schedule(OnetimeDateRule(self.now.date()), self._time_rule())

        if self._skip_word("DAILY"):
            start, end = self._date_range()
            return Schedule(daily_rule(start, end), self._optional_time_rule(midnight_rule()))

        if self._skip_word("WEEKLY"):
            days = {6}
            if self._is_word("ON") and self._is_day_name(1):
                self.position += 1
                days = self._day_set()
            start, end = self._date_range()
            return Schedule(weekly_rule(start, end, days), self._optional_time_rule(midnight_rule()))

        if self._skip_word("MONTHLY"):
            if self._skip_word("ON"):
                return self._monthly(1, time_required=False)
            start, end = self._date_range()
            return Schedule(monthly_rule(start, end), self._optional_time_rule(midnight_rule()))

        if self._skip_word("HOURLY"):
            start, end = self._date_range()
            return Schedule(daily_rule(start, end), self._optional_time_rule(hourly_rule()))

        if self._skip_word("WEEKDAYS"):
            return self._weekly(1, WEEKDAYS)

        if self._is_day_name():
            return self._weekly(1, self._day_set())

        if self._skip_word("EVERY"):
            if self._skip_word("WEEKDAY"):
                return self._weekly(1, WEEKDAYS)
            if self._is_day_name():
                return self._weekly(1, self._day_set())

            unit, count = self._unit_count(DATE_UNITS, "date")
            if unit == DateUnit.DAY:
                start, end = self._date_range()
                return Schedule(RecurringDateRule(DateUnit.DAY, count, start, end), self._time_rule())
            if unit == DateUnit.WEEK:
                self._skip_word("ON")
                return self._weekly(count, self._day_set())
            self._skip_word("ON")
            return self._monthly(count, time_required=True)

        raise self._error("Invalid schedule syntax")

    def _weekly(self, count: int, days) -> Schedule:
        start, end = self._date_range()
        return Schedule(DaysOfWeekRule(count, days, start, end), self._time_rule())

    def _monthly(self, count: int, time_required: bool) -> Schedule:
        if self._skip_word("DAY"):
            day = self._next_int()
            if day is None:
                raise self._error("Expected day number")
            ordinal, weekday = day, None
        else:
            ordinal = self._ordinal()
            weekday = self._logical_day()

        start, end = self._date_range()
        if weekday is None and ordinal != LAST:
            date_rule: DateRule = OrdinalDayOfMonthRule(count, ordinal, start, end)
        else:
            date_rule = LogicalDayOfMonthRule(count, ordinal, weekday, start, end)

        time_rule = self._time_rule() if time_required else self._optional_time_rule(midnight_rule())
        return Schedule(date_rule, time_rule)

    def _ordinal(self) -> int:
        token = self._peek()
        if token is not None and token.kind == "WORD" and token.value.upper() in ORDINALS:
            self.position += 1
            return ORDINALS[token.value.upper()]
        raise self._error("Expected FIRST, SECOND, THIRD, FOURTH or LAST")

    def _logical_day(self) -> Optional[int]:
        """Weekday number, or None for DAY."""
        if self._skip_word("DAY"):
            return None
        if self._is_word("WEEKDAY"):
            raise self._error("Logical WEEKDAY of month is not supported")
        if self._is_day_name():
            return self._day_name()
        raise self._error("Expected DAY or a day of the week")

    def _day_name(self) -> int:
        token = self._peek()
        self.position += 1
        return DAY_NAMES[token.value.upper()]

    def _day_set(self) -> Set[int]:
        if not self._is_day_name():
            raise self._error("Expected a day of the week")
        days = {self._day_name()}
        # A comma followed by another day name continues the set
        while self._peek() is not None and self._peek().kind == "COMMA" and self._is_day_name(1):
            self.position += 1
            days.add(self._day_name())
        return days

    def _unit_count(self, units, context: str) -> Tuple[object, int]:
        count = self._next_int()
        plural = count is not None and count > 1
        if count is not None and count < 1:
            raise self._error("Recurrence count must be positive")

        token = self._peek()
        if token is not None and token.kind == "WORD":
            word = token.value.upper()
            singular = word[:-1] if word.endswith("S") else word
            if singular in units and word == (singular + "S" if plural else singular):
                self.position += 1
                return units[singular], count or 1
            other = TIME_UNITS if units is DATE_UNITS else DATE_UNITS
            if singular in units or singular in other:
                if singular in other:
                    raise self._error(f"Unit not valid in a {context} rule")
                raise self._error("Singular / plural mismatch")
        raise self._error(f"Expected a {context} unit")

    def _date_range(self) -> Tuple[date, Optional[date]]:
        start = self.now.date()
        end = None
        if self._skip_word("FROM"):
            start = parse_date(self._next_quoted("date"))
        if self._skip_word("UNTIL"):
            end = parse_date(self._next_quoted("date"))
        return start, end

    def _optional_time_rule(self, default: TimeRule) -> TimeRule:
        if self._is_word("AT") or self._is_word("EVERY"):
            return self._time_rule()
        return default

    def _time_rule(self) -> TimeRule:
        if self._skip_word("AT"):
            return OnetimeTimeRule(self._time_value())
        if self._skip_word("EVERY"):
            unit, count = self._unit_count(TIME_UNITS, "time")
            start, end = time.min, time.max
            if self._skip_word("FROM"):
                start = self._time_value()
            if self._skip_word("UNTIL"):
                end = self._time_value()
            return RecurringTimeRule(unit, count, start, end)
        raise self._error("Expected AT or EVERY time rule")

    def _time_value(self) -> time:
        """A quoted time, or `N unit(s) FROM NOW`."""
        token = self._peek()
        if token is not None and token.kind == "QUOTED":
            self.position += 1
            return parse_time(token.value)

        amount = self._next_int()
        if amount is None:
            raise self._error("Expected quoted time or relative time")
        token = self._peek()
        word = token.value.upper() if token is not None and token.kind == "WORD" else ""
        singular = word[:-1] if word.endswith("S") else word
        if singular not in TIME_UNITS:
            raise self._error("Expected HOUR(S), MINUTE(S) or SECOND(S)")
        self.position += 1
        self._expect_word("FROM")
        self._expect_word("NOW")
        offset = timedelta(seconds=amount * TIME_UNITS[singular].seconds)
        return (self.now + offset).time()


def parse_schedule_set(text: str, now: Optional[datetime] = None) -> ScheduleSet:
    """
    Parse schedule text into a ScheduleSet.

    Args:
        text: Schedule text, comma-separated entries
        now: Reference instant for TODAY, default start dates and relative
            times (default: the current time)

    Raises:
        ScheduleParseError: If the text is malformed or a rule is invalid
    """
    parser = _ScheduleParser(text, now or datetime.now())
    try:
        return parser.parse_set()
    except ScheduleParseError:
        raise
    except DefinitionError as e:
        raise ScheduleParseError(f"Invalid schedule '{text}': {e}") from e


__all__ = [
    "parse_schedule_set",
    "parse_date",
    "parse_time",
    "parse_datetime",
    "tokenize",
    "DAY_NAMES",
]

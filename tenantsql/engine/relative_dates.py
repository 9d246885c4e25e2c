# TenantSQL - Relative Date Resolution
# ====================================
"""
Relative Date Resolution
========================
Turns phrases such as "today", "last week" or "past 30 days" into absolute
date ranges. The reference date is injected so results are reproducible.

Weeks run Monday to Sunday. Months and years are calendar periods.
"""

import re
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Tuple


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range."""
    start: date
    end: date

    @property
    def is_single_day(self) -> bool:
        return self.start == self.end


RELATIVE_DATE_PATTERN = re.compile(
    r'\b(?:'
    r'(?P<simple>today|yesterday|tomorrow)'
    r'|(?P<rel>this|last|previous|next)\s+(?P<unit>week|month|year)'
    r'|(?:last|past)\s+(?P<count>\d+)\s+(?P<count_unit>days?|weeks?|months?)'
    r'|(?P<ago>\d+)\s+(?P<ago_unit>days?|weeks?)\s+ago'
    r')\b',
    re.IGNORECASE,
)

RANGE_START_HINTS = ('start', 'from', 'begin', 'since', 'after', 'min')
RANGE_END_HINTS = ('end', 'to', 'until', 'till', 'before', 'max')


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _month_range(day: date) -> DateRange:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return DateRange(date(day.year, day.month, 1), date(day.year, day.month, last_day))


def _week_range(day: date) -> DateRange:
    start = day - timedelta(days=day.weekday())
    return DateRange(start, start + timedelta(days=6))


def resolve_relative_date(phrase: str, today: date) -> Optional[DateRange]:
    """
    Resolve a single relative date phrase.

    Args:
        phrase: e.g. "yesterday", "last month", "past 7 days"
        today: Reference date

    Returns:
        DateRange, or None if the phrase is not recognized
    """
    match = RELATIVE_DATE_PATTERN.fullmatch(phrase.strip())
    if not match:
        return None
    return _range_from_match(match, today)


def find_relative_date(text: str, today: date) -> Optional[Tuple[DateRange, Tuple[int, int]]]:
    """Find the first relative date phrase in text; returns (range, span)."""
    match = RELATIVE_DATE_PATTERN.search(text or '')
    if not match:
        return None
    return _range_from_match(match, today), match.span()


def _range_from_match(match: 're.Match', today: date) -> DateRange:
    simple = match.group('simple')
    if simple:
        offset = {'today': 0, 'yesterday': -1, 'tomorrow': 1}[simple.lower()]
        day = today + timedelta(days=offset)
        return DateRange(day, day)

    rel = match.group('rel')
    if rel:
        step = {'this': 0, 'last': -1, 'previous': -1, 'next': 1}[rel.lower()]
        unit = match.group('unit').lower()
        if unit == 'week':
            return _week_range(today + timedelta(weeks=step))
        if unit == 'month':
            return _month_range(_add_months(today.replace(day=1), step))
        year = today.year + step
        return DateRange(date(year, 1, 1), date(year, 12, 31))

    count = match.group('count')
    if count:
        n = int(count)
        unit = match.group('count_unit').lower().rstrip('s')
        if unit == 'day':
            start = today - timedelta(days=n)
        elif unit == 'week':
            start = today - timedelta(weeks=n)
        else:
            start = _add_months(today, -n)
        return DateRange(start, today)

    n = int(match.group('ago'))
    unit = match.group('ago_unit').lower().rstrip('s')
    day = today - (timedelta(weeks=n) if unit == 'week' else timedelta(days=n))
    return DateRange(day, day)


def pick_boundary(parameter_name: str, date_range: DateRange) -> date:
    """
    Choose the range boundary a parameter should receive.

    Names suggesting an end (endDate, toDate, until) get the end; everything
    else gets the start.
    """
    segments = re.findall(r'[a-z]+', re.sub(r'([a-z])([A-Z])', r'\1 \2', parameter_name).lower())
    if any(hint in segments for hint in RANGE_START_HINTS):
        return date_range.start
    if any(hint in segments for hint in RANGE_END_HINTS):
        return date_range.end
    return date_range.start

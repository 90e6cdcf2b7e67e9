#!/usr/bin/env python3

"""
Date and elapsed-time labels shown in the stats strip, table and chart axis.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Union

from dateutil.relativedelta import relativedelta

from settings import DEFAULT_LOCALE
from weight_tracker import parse_date

DateLike = Union[str, date, datetime]

MONTH_NAMES: Dict[str, List[str]] = {
    "es": ["enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
           "agosto", "septiembre", "octubre", "noviembre", "diciembre"],
    "en": ["January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"],
}

MONTH_ABBREVIATIONS: Dict[str, List[str]] = {
    "es": ["ene", "feb", "mar", "abr", "may", "jun",
           "jul", "ago", "sept", "oct", "nov", "dic"],
    "en": ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
}


def _locale_key(locale: str) -> str:
    key = (locale or DEFAULT_LOCALE).split("_")[0].split("-")[0].lower()
    return key if key in MONTH_NAMES else DEFAULT_LOCALE


def format_elapsed_time(start: DateLike, end: DateLike) -> str:
    """
    Compact elapsed time between two days: whole months first, then whole
    weeks ("s" for semanas), then days. At most two units are shown and
    months never appear next to a zero week count, e.g. "2m", "1m 1s",
    "1m 4d", "1s 4d", "3d". An end before the start reads "0d".
    """
    cursor = parse_date(start)
    end_day = parse_date(end)
    if end_day <= cursor:
        return "0d"

    delta = relativedelta(end_day, cursor)
    months = delta.years * 12 + delta.months
    if months > 0:
        cursor = cursor + relativedelta(months=months)

    remaining = (end_day - cursor).days
    weeks, days = divmod(remaining, 7)

    if months > 0:
        if weeks > 0:
            return f"{months}m {weeks}s"
        return f"{months}m {days}d" if days > 0 else f"{months}m"
    return f"{weeks}s {days}d" if weeks > 0 else f"{days}d"


def format_date_short(value: DateLike, locale: str = DEFAULT_LOCALE) -> str:
    d = parse_date(value)
    return f"{d.day} {MONTH_ABBREVIATIONS[_locale_key(locale)][d.month - 1]}"


def format_date_long(value: DateLike, locale: str = DEFAULT_LOCALE) -> str:
    d = parse_date(value)
    key = _locale_key(locale)
    month = MONTH_NAMES[key][d.month - 1]
    if key == "en":
        return f"{month} {d.day}, {d.year}"
    return f"{d.day} de {month}, {d.year}"


def add_days(value: DateLike, days: int) -> date:
    return parse_date(value) + timedelta(days=days)

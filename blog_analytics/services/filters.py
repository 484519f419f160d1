"""Analytics filter resolution and time-bucket helpers.

Everything here is pure: no database access, no global state. Defaults are
passed in as a ``FilterDefaults`` value so callers (and tests) decide them.
"""

import calendar
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone

from blog_analytics.core.constants import (
    ALL_CATEGORIES,
    ALL_TIME_PERIOD,
    CATEGORIES,
    PERIODS,
)
from blog_analytics.core.exceptions import ValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)
ONE_DAY = timedelta(days=1)
# Smallest datetime step; closes ranges at the last instant of a day.
TICK = timedelta(microseconds=1)

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

BUCKET_DAY = "day"
BUCKET_WEEK = "week"
BUCKET_MONTH = "month"


@dataclass(frozen=True)
class FilterDefaults:
    period: str = "30"
    category: str = ALL_CATEGORIES

    @classmethod
    def from_settings(cls, settings) -> "FilterDefaults":
        return cls(
            period=settings.analytics_default_period,
            category=settings.analytics_default_category,
        )


@dataclass(frozen=True)
class AnalyticsFilter:
    """A validated, closed ``[start, end]`` UTC range plus a category constraint."""

    start: datetime
    end: datetime
    category: str = ALL_CATEGORIES

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_category_filtered(self) -> bool:
        return self.category != ALL_CATEGORIES

    def previous_period(self) -> "AnalyticsFilter":
        """Same-length window ending just before ``start``.

        Near year 1 the window is cut at ``EARLIEST``; a range that already
        starts there gets the empty ``[EARLIEST, EARLIEST]`` window.
        """
        end = self.start - TICK if self.start > EARLIEST else EARLIEST
        if end - EARLIEST < self.duration:
            return replace(self, start=EARLIEST, end=end)
        return replace(self, start=end - self.duration, end=end)

    def with_range(self, start: datetime, end: datetime) -> "AnalyticsFilter":
        return replace(self, start=start, end=end)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def _day_end(day: date) -> datetime:
    # time.max keeps 9999-12-31 representable
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def _parse_day(raw: str) -> date | None:
    match = _DATE_RE.match(raw)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def resolve_filter(
    period: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    category: str | None = None,
    *,
    defaults: FilterDefaults = FilterDefaults(),
    now: datetime | None = None,
) -> AnalyticsFilter:
    """Turn raw query parameters into an ``AnalyticsFilter``.

    Explicit ``from``/``to`` dates win over ``period``. A lone ``from`` or
    ``to`` is an error unless the all-time period is selected, in which case
    it is ignored. All problems are reported together.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    period = (period or defaults.period).strip()
    category = (category if category is not None else defaults.category).strip()
    date_from = (date_from or "").strip() or None
    date_to = (date_to or "").strip() or None

    errors: list[str] = []

    if period not in PERIODS:
        errors.append(f"period must be one of: {', '.join(PERIODS)}")

    if category != ALL_CATEGORIES and category not in CATEGORIES:
        errors.append(
            f"category must be one of: {', '.join((ALL_CATEGORIES, *CATEGORIES))}"
        )

    from_day = _parse_day(date_from) if date_from else None
    to_day = _parse_day(date_to) if date_to else None
    if date_from and from_day is None:
        errors.append("from must be a valid YYYY-MM-DD date")
    if date_to and to_day is None:
        errors.append("to must be a valid YYYY-MM-DD date")

    explicit = date_from is not None and date_to is not None
    if not explicit and (date_from or date_to) and period != ALL_TIME_PERIOD:
        errors.append("from and to must be provided together")
    if from_day and to_day and from_day > to_day:
        errors.append("from must be less than or equal to to")

    if errors:
        raise ValidationError(errors)

    if explicit:
        start = _day_start(from_day)
        end = _day_end(to_day)
    elif period == ALL_TIME_PERIOD:
        start, end = EPOCH, now
    else:
        start, end = now - timedelta(days=int(period)), now

    return AnalyticsFilter(start=start, end=end, category=category)


# ---------------------------------------------------------------------------
# Time buckets
# ---------------------------------------------------------------------------


def bucket_size(start: datetime, end: datetime) -> str:
    """Pick the bucket granularity for a range: day ≤31d, ISO week ≤90d, else month."""
    days = (end - start) / ONE_DAY
    if days <= 31:
        return BUCKET_DAY
    if days <= 90:
        return BUCKET_WEEK
    return BUCKET_MONTH


def bucket_label(moment: datetime, size: str) -> str:
    moment = as_utc(moment)
    if size == BUCKET_DAY:
        return moment.date().isoformat()
    if size == BUCKET_WEEK:
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return f"{moment.year:04d}-{moment.month:02d}"


def month_label(moment: datetime) -> str:
    return bucket_label(moment, BUCKET_MONTH)


def parse_bucket_label(label: str | None) -> tuple[datetime, datetime]:
    """Expand a bucket label back to its closed ``[start, end]`` UTC range.

    Accepts ``YYYY-MM-DD``, ``YYYY-Wnn`` (ISO week, Monday to Sunday) and
    ``YYYY-MM``.
    """
    raw = (label or "").strip()
    invalid = ValidationError(
        "date must be a bucket label: YYYY-MM-DD, YYYY-Wnn or YYYY-MM"
    )

    day = _parse_day(raw)
    if day is not None:
        return _day_start(day), _day_end(day)

    match = _WEEK_RE.match(raw)
    if match:
        try:
            monday = date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
            sunday = monday + timedelta(days=6)
        except (ValueError, OverflowError):
            # 9999-W52 ends in year 10000
            raise invalid from None
        return _day_start(monday), _day_end(sunday)

    match = _MONTH_RE.match(raw)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        try:
            first = date(year, month, 1)
        except ValueError:
            raise invalid from None
        last = first.replace(day=calendar.monthrange(year, month)[1])
        return _day_start(first), _day_end(last)

    raise invalid

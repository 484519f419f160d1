"""Shared enumerations for posts, views and analytics filters."""

from enum import Enum


class Category(str, Enum):
    TECHNOLOGY = "Technology"
    STARTUP = "Startup"
    LIFESTYLE = "Lifestyle"
    FINANCE = "Finance"


class TrafficSource(str, Enum):
    DIRECT = "direct"
    SEARCH = "search"
    SOCIAL = "social"
    OTHER = "other"


# Declaration order doubles as the tie-break order for "most active category".
CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

# Filter pseudo-category; never stored on a post.
ALL_CATEGORIES = "All"

ALL_TIME_PERIOD = "all"
PERIODS: tuple[str, ...] = ("7", "30", "90", "365", ALL_TIME_PERIOD)

ROLE_ADMIN = "admin"
ROLE_AUTHOR = "author"

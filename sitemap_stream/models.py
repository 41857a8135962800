"""
Record model for sitemap entries.

Two sealed value types come out of a parse:
- PageEntry: one <url> element of a <urlset> document
- IndexEntry: one <sitemap> element of a <sitemapindex> document

Both are frozen dataclasses. They hold no reference to the stream, the parser
or the lxml element they were decoded from.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

# Priority assumed by the sitemap protocol when <priority> is omitted
DEFAULT_PRIORITY = 0.5
MIN_PRIORITY = 0.0
MAX_PRIORITY = 1.0


class Frequency(str, Enum):
    """How frequently a page is likely to change (<changefreq> values)."""
    ALWAYS = "always"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    NEVER = "never"

    @classmethod
    def from_text(cls, text: str) -> Optional["Frequency"]:
        """Match <changefreq> text case-insensitively. Returns None if unknown."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            return None


def priority_in_range(value: float) -> bool:
    # NaN compares False on both sides, so it is never in range
    return MIN_PRIORITY <= value <= MAX_PRIORITY


@dataclass(frozen=True)
class PageEntry:
    """
    A page listed in a sitemap.

    last_modified is a timezone-aware UTC datetime, or None when <lastmod> was
    missing or unparseable. change_frequency is None when <changefreq> was
    missing or not a recognized token.
    """
    location: str
    last_modified: Optional[datetime] = None
    change_frequency: Optional[Frequency] = None
    priority: float = DEFAULT_PRIORITY

    def __post_init__(self):
        if not self.location:
            raise ValueError("PageEntry.location must be a non-empty string")
        if not priority_in_range(self.priority):
            raise ValueError(
                f"PageEntry.priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, "
                f"got {self.priority!r}"
            )


@dataclass(frozen=True)
class IndexEntry:
    """A child sitemap listed in a sitemap index."""
    location: str
    last_modified: Optional[datetime] = None

    def __post_init__(self):
        if not self.location:
            raise ValueError("IndexEntry.location must be a non-empty string")

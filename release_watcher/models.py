"""
Data model for Release Watcher.

Defines release records parsed from sources, the persisted watermark
state, and the outbound webhook message.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Category(str, Enum):
    """Release channel of a RouterOS version."""

    LONG_TERM = "Long-term"
    STABLE = "Stable"
    TESTING = "Testing"
    DEVELOPMENT = "Development"

    @classmethod
    def from_label(cls, label: str | None) -> "Category | None":
        """
        Look up a category by its exact label.

        Parameters
        ----------
        label : str | None
            Label such as "Stable" or "Long-term".

        Returns
        -------
        Category | None
            The matching category, or None for unknown labels.
        """
        if not label:
            return None
        try:
            return cls(label.strip())
        except ValueError:
            return None


CATEGORY_COLORS: dict[Category, str] = {
    Category.LONG_TERM: "#3498DB",
    Category.STABLE: "#2ECC71",
    Category.TESTING: "#E74C3C",
    Category.DEVELOPMENT: "#992D22",
}

DEFAULT_COLOR = "#23272A"
VERSION_COLOR = "#0775A1"


@dataclass(frozen=True)
class ReleaseRecord:
    """
    Normalized release announcement from a feed.

    Attributes
    ----------
    title : str
        Item title.
    link : str
        Item URL.
    published_at : int
        Publication time in epoch milliseconds.
    category : Category | None
        Category declared by the item itself, if recognised.
    raw_description : str
        HTML or plain text body.
    source_key : str
        Key of the source that produced the record.
    """

    title: str
    link: str
    published_at: int
    category: Category | None = None
    raw_description: str = ""
    source_key: str = ""


@dataclass(frozen=True)
class WatermarkState:
    """
    Last announced position of every source.

    Attributes
    ----------
    last_seen_timestamp : dict[str, int]
        Highest announced publication time per feed source, in epoch ms.
    last_seen_version : str
        Last announced version of the scraped version source.
    """

    last_seen_timestamp: dict[str, int] = field(default_factory=dict)
    last_seen_version: str = ""

    def timestamp_for(self, source_key: str) -> int:
        """Return the watermark of a feed source, 0 if never seen."""
        return self.last_seen_timestamp.get(source_key, 0)

    def with_timestamp(self, source_key: str, timestamp: int) -> "WatermarkState":
        """
        Return a copy with the watermark of one source advanced.

        The stored value never decreases: the result keeps the larger of
        the current and the given timestamp.
        """
        current = self.timestamp_for(source_key)
        if timestamp <= current and source_key in self.last_seen_timestamp:
            return self
        timestamps = dict(self.last_seen_timestamp)
        timestamps[source_key] = max(current, timestamp)
        return WatermarkState(timestamps, self.last_seen_version)

    def with_version(self, version: str) -> "WatermarkState":
        """Return a copy with a new last seen version."""
        return WatermarkState(dict(self.last_seen_timestamp), version)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON document shape."""
        return {
            "lastSeenTimestamp": dict(self.last_seen_timestamp),
            "lastSeenVersion": self.last_seen_version,
        }


@dataclass(frozen=True)
class OutboundMessage:
    """
    A notification ready to be delivered.

    Attributes
    ----------
    title : str
        Embed title.
    color : str
        Hex color such as "#2ECC71".
    description : str
        Embed body, already bounded in length.
    link : str
        URL the title links to.
    timestamp : datetime
        Time shown in the embed footer.
    """

    title: str
    color: str
    description: str
    link: str
    timestamp: datetime

    def to_embed(self) -> dict[str, Any]:
        """
        Render the message as a Discord embed object.

        Returns
        -------
        dict[str, Any]
            Embed dictionary with an integer color and ISO-8601 timestamp.
        """
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return {
            "title": self.title,
            "color": int(self.color.lstrip("#"), 16),
            "description": self.description,
            "url": self.link,
            "timestamp": timestamp.isoformat(),
        }

"""
Feed and page parsing module.

Turns raw RSS/Atom content into release records using feedparser and
extracts version strings from scraped download pages.
"""

import calendar
import logging
import re
from typing import Any

import feedparser

from release_watcher.errors import ParseError, PatternNotFoundError
from release_watcher.models import Category, ReleaseRecord

logger = logging.getLogger(__name__)


def _published_millis(entry: Any) -> int | None:
    """
    Return the publication time of a feedparser entry in epoch ms.

    Falls back to the updated date for Atom feeds. Returns None when
    neither date could be parsed.
    """
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return calendar.timegm(parsed) * 1000
    return None


def _entry_category(entry: Any) -> Category | None:
    """Return the first recognised category declared by the entry."""
    for tag in entry.get("tags") or []:
        category = Category.from_label(tag.get("term"))
        if category is not None:
            return category
    return None


def _entry_description(entry: Any) -> str:
    """Extract the entry body, preferring summary over full content."""
    if entry.get("summary"):
        return entry.summary
    if entry.get("content"):
        return entry.content[0].get("value", "")
    return ""


def parse_feed(content: str, source_key: str) -> list[ReleaseRecord]:
    """
    Parse feed content into release records.

    Items whose date is missing or unparseable are skipped with a
    warning since they cannot be compared against a watermark.

    Parameters
    ----------
    content : str
        Raw feed XML.
    source_key : str
        Key of the source, stored on every record.

    Returns
    -------
    list[ReleaseRecord]
        Records in document order.

    Raises
    ------
    ParseError
        If the content is not a recognisable feed.
    """
    # Strip leading whitespace - some servers return content with
    # leading newlines which breaks XML declaration parsing
    content = content.lstrip()
    parsed: Any = feedparser.parse(content)

    if parsed.bozo and parsed.bozo_exception:
        if not parsed.entries and not parsed.version:
            raise ParseError(
                f"Source '{source_key}' did not return a feed: {parsed.bozo_exception}"
            )
        logger.warning(
            "Feed '%s' has parsing issues: %s",
            source_key,
            parsed.bozo_exception,
        )

    records = []
    for entry in parsed.entries:
        published_at = _published_millis(entry)
        if published_at is None:
            logger.warning(
                "Skipping entry '%s' in '%s': invalid publication date %r",
                entry.get("title", "")[:50],
                source_key,
                entry.get("published", entry.get("updated")),
            )
            continue

        records.append(
            ReleaseRecord(
                title=entry.get("title", ""),
                link=entry.get("link", ""),
                published_at=published_at,
                category=_entry_category(entry),
                raw_description=_entry_description(entry),
                source_key=source_key,
            )
        )

    logger.debug("Parsed %d record(s) from '%s'", len(records), source_key)
    return records


def extract_version(content: str, pattern: str | re.Pattern) -> str:
    """
    Extract a version string from a scraped page.

    Parameters
    ----------
    content : str
        Page HTML.
    pattern : str | re.Pattern
        Regex whose first group captures the version.

    Returns
    -------
    str
        The captured version.

    Raises
    ------
    PatternNotFoundError
        If the pattern does not occur in the page.
    """
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    match = compiled.search(content)
    if match is None:
        raise PatternNotFoundError(f"Version pattern {compiled.pattern!r} not found in page")
    return match.group(1)

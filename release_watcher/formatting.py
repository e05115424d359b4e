"""
Notification formatting.

Converts changelog HTML into bounded plain text and builds the
messages sent to the webhook.
"""

import html
import re
from datetime import datetime, timezone

from release_watcher.detector import resolve_category
from release_watcher.models import (
    CATEGORY_COLORS,
    DEFAULT_COLOR,
    VERSION_COLOR,
    Category,
    OutboundMessage,
    ReleaseRecord,
)

# Maximum length of an embed description accepted downstream
MAX_DESCRIPTION_LENGTH = 2048
MAX_DESCRIPTION_LINES = 8
TRUNCATION_MARKER = "..."

READ_MORE_TEXT = "Click here to read the full changelog"

_BREAK_TAGS = re.compile(r"<br\s*/?>|</(?:p|div|li|tr|h[1-6])\s*>", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")


def strip_markup(content: str | None) -> str:
    """
    Convert HTML to plain text, keeping line structure.

    Parameters
    ----------
    content : str | None
        Raw content possibly containing HTML.

    Returns
    -------
    str
        Plain text with one non-blank line per paragraph, list item or break.
    """
    if not content:
        return ""
    text = content.replace("\r\n", "\n").replace("\r", "\n")
    text = _BREAK_TAGS.sub("\n", text)
    text = _TAGS.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")
    lines = (line.rstrip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line.strip())


def clamp_length(text: str, limit: int = MAX_DESCRIPTION_LENGTH) -> str:
    """Hard-truncate text to ``limit`` characters including the marker."""
    if len(text) > limit:
        return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
    return text


def format_description(text: str | None) -> str:
    """
    Bound a plain text description for display.

    Keeps at most eight lines, marking the last one when more existed,
    then hard-truncates to the description length limit.

    Parameters
    ----------
    text : str | None
        Plain text, usually the output of :func:`strip_markup`.

    Returns
    -------
    str
        Text of at most 2048 characters.
    """
    lines = (text or "").split("\n")
    if len(lines) > MAX_DESCRIPTION_LINES:
        lines = lines[:MAX_DESCRIPTION_LINES]
        lines[-1] += TRUNCATION_MARKER
    return clamp_length("\n".join(lines))


def category_color(category: Category | None) -> str:
    """Return the embed color of a category, neutral if unknown."""
    if category is None:
        return DEFAULT_COLOR
    return CATEGORY_COLORS.get(category, DEFAULT_COLOR)


def build_release_message(
    record: ReleaseRecord,
    label: str = "RouterOS",
    default_category: Category | None = None,
) -> OutboundMessage:
    """
    Build the notification for a new feed record.

    Parameters
    ----------
    record : ReleaseRecord
        The newly detected record.
    label : str
        Product name shown in the title.
    default_category : Category | None
        Category implied by the record's source.

    Returns
    -------
    OutboundMessage
        Message with a bounded description linking to the full changelog.
    """
    body = format_description(strip_markup(record.raw_description))
    footer = f"[{READ_MORE_TEXT}]({record.link})" if record.link else ""
    description = "\n".join(part for part in (body, footer) if part)

    return OutboundMessage(
        title=f"New {label} version published | {record.title}",
        color=category_color(resolve_category(record, default_category)),
        description=clamp_length(description),
        link=record.link,
        timestamp=datetime.fromtimestamp(record.published_at / 1000, tz=timezone.utc),
    )


def build_version_message(
    version: str,
    label: str,
    page_url: str,
    now: datetime | None = None,
) -> OutboundMessage:
    """
    Build the notification for a changed scraped version.

    Parameters
    ----------
    version : str
        The newly found version.
    label : str
        Product name shown in the title.
    page_url : str
        Download page the version was found on.
    now : datetime | None
        Message time; defaults to the current time.

    Returns
    -------
    OutboundMessage
        Message announcing the version.
    """
    return OutboundMessage(
        title=f"New {label} version published | {version}",
        color=VERSION_COLOR,
        description=f"A new {label} version was found.",
        link=page_url,
        timestamp=now or datetime.now(timezone.utc),
    )

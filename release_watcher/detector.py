"""
Change detection for release feeds.

Selects records newer than a source's watermark and computes the
advanced watermark.
"""

import logging
from dataclasses import dataclass

from release_watcher.models import Category, ReleaseRecord

logger = logging.getLogger(__name__)

# Title tags checked in this order; matching is case-sensitive
TITLE_TAGS: tuple[tuple[str, Category], ...] = (
    ("[long-term]", Category.LONG_TERM),
    ("[stable]", Category.STABLE),
    ("[testing]", Category.TESTING),
    ("[development]", Category.DEVELOPMENT),
)


@dataclass(frozen=True)
class Detection:
    """
    Result of comparing one source's records against its watermark.

    Attributes
    ----------
    new_records : list[ReleaseRecord]
        Records published after the watermark, in source order.
    watermark : int
        Updated watermark, never lower than the previous one.
    """

    new_records: list[ReleaseRecord]
    watermark: int


def detect_new_records(records: list[ReleaseRecord], watermark: int) -> Detection:
    """
    Select unseen records and advance the watermark.

    A record is new when it was published strictly after the watermark.
    The new watermark is the maximum over every record considered, not
    only the new ones, so an out-of-order batch cannot move it backward.

    Parameters
    ----------
    records : list[ReleaseRecord]
        Records of a single source in arrival order.
    watermark : int
        Highest publication time already announced, in epoch ms.

    Returns
    -------
    Detection
        The new records and the updated watermark.
    """
    if not records:
        logger.warning("Source returned no records, watermark left at %d", watermark)
        return Detection([], watermark)

    new_records = [record for record in records if record.published_at > watermark]
    latest = max(record.published_at for record in records)

    logger.debug(
        "%d of %d record(s) newer than %d",
        len(new_records),
        len(records),
        watermark,
    )
    return Detection(new_records, max(watermark, latest))


def resolve_category(
    record: ReleaseRecord,
    default_category: Category | None = None,
) -> Category | None:
    """
    Determine the release channel of a record.

    An explicit tag in the title wins, then the category implied by the
    source, then the category declared by the item itself.

    Parameters
    ----------
    record : ReleaseRecord
        The record to classify.
    default_category : Category | None
        Category configured for the record's source.

    Returns
    -------
    Category | None
        The resolved category, or None if unknown.
    """
    for tag, category in TITLE_TAGS:
        if tag in record.title:
            return category
    if default_category is not None:
        return default_category
    return record.category

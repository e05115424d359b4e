"""
Shared fixtures for Release Watcher tests.

Provides common test fixtures for use across all test modules.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from release_watcher.config import AppConfig, SourceConfig, WebhookConfig, default_sources
from release_watcher.models import Category, ReleaseRecord
from release_watcher.storage import WatermarkStore

# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

WEBHOOK_URL = "https://discord.com/api/webhooks/123/token"


def epoch_ms(*args: int) -> int:
    """Return the epoch milliseconds of a UTC date."""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def routeros_feed_content(fixtures_dir: Path) -> str:
    """Return contents of the sample RouterOS changelog feed."""
    return (fixtures_dir / "routeros_feed.xml").read_text()


@pytest.fixture
def winbox_page_content(fixtures_dir: Path) -> str:
    """Return contents of the sample WinBox download page."""
    return (fixtures_dir / "winbox_page.html").read_text()


@pytest.fixture
def make_record() -> Callable[..., ReleaseRecord]:
    """
    Return a factory for release records.

    Returns
    -------
    Callable[..., ReleaseRecord]
        Factory taking the publication time and optional overrides.
    """

    def factory(published_at: int, **kwargs: Any) -> ReleaseRecord:
        values: dict[str, Any] = {
            "title": f"RouterOS build {published_at}",
            "link": f"https://mikrotik.com/changelog/{published_at}",
            "published_at": published_at,
            "category": None,
            "raw_description": "*) system - improvements;",
            "source_key": "routeros",
        }
        values.update(kwargs)
        return ReleaseRecord(**values)

    return factory


@pytest.fixture
def sample_record() -> ReleaseRecord:
    """Create a sample release record for testing."""
    return ReleaseRecord(
        title="RouterOS 7.2 [testing]",
        link="https://mikrotik.com/download/changelogs/testing-release-tree",
        published_at=epoch_ms(2022, 2, 8, 10, 0),
        category=Category.TESTING,
        raw_description="<p>What's new in 7.2:</p><p>*) bgp - fixes;</p>",
        source_key="routeros",
    )


@pytest.fixture
def webhook_config() -> WebhookConfig:
    """Create a minimal valid webhook configuration."""
    return WebhookConfig(url=WEBHOOK_URL)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Return a path for the state file inside a temporary directory."""
    return tmp_path / "data" / "data.json"


@pytest.fixture
def app_config(webhook_config: WebhookConfig, state_path: Path) -> AppConfig:
    """Create an app configuration with the default sources."""
    return AppConfig.model_validate(
        {
            "webhook": webhook_config.model_dump(),
            "defaults": {"check_interval": 0, "retry_backoff": 0, "max_retries": 1},
            "storage": {"state_path": str(state_path)},
            "sources": [source.model_dump() for source in default_sources()],
        }
    )


@pytest.fixture
def two_feed_config(webhook_config: WebhookConfig, state_path: Path) -> AppConfig:
    """Create an app configuration with two feed sources."""
    return AppConfig(
        webhook=webhook_config,
        defaults={"check_interval": 0, "retry_backoff": 0, "max_retries": 1},
        storage={"state_path": str(state_path)},
        sources=[
            SourceConfig(key="stable", url="https://example.com/stable.rss",
                         default_category=Category.STABLE),
            SourceConfig(key="testing", url="https://example.com/testing.rss",
                         default_category=Category.TESTING),
        ],
    )


@pytest.fixture
def store(state_path: Path) -> WatermarkStore:
    """Create a watermark store backed by a temporary file."""
    return WatermarkStore(state_path)


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Create a mock notifier.

    Returns
    -------
    MagicMock
        A notifier whose send_message and close are async mocks.
    """
    notifier = MagicMock()
    notifier.send_message = AsyncMock()
    notifier.close = AsyncMock()
    return notifier


@pytest.fixture
def mock_fetcher() -> MagicMock:
    """
    Create a mock fetcher returning content per URL.

    Set ``responses`` to a dict mapping URLs to bodies or exceptions.
    """
    fetcher = MagicMock()
    fetcher.responses = {}

    async def fetch_text(url: str) -> str:
        response = fetcher.responses[url]
        if isinstance(response, Exception):
            raise response
        return response

    fetcher.fetch_text = AsyncMock(side_effect=fetch_text)
    fetcher.close = AsyncMock()
    return fetcher

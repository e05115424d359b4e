"""
Main entry point for Release Watcher.

Runs the polling cycle that fetches every source, detects new releases,
persists watermarks and delivers notifications.
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from urllib.parse import urlparse

import coloredlogs

from release_watcher.config import AppConfig, SourceConfig, load_config
from release_watcher.detector import detect_new_records
from release_watcher.errors import ConfigurationError, FetchError, ParseError, PersistError
from release_watcher.fetcher import HttpFetcher
from release_watcher.formatting import build_release_message, build_version_message
from release_watcher.models import OutboundMessage, WatermarkState
from release_watcher.notifier import Notifier
from release_watcher.parser import extract_version, parse_feed
from release_watcher.storage import WatermarkStore
from release_watcher.webhook import WebhookNotifier

logger = logging.getLogger(__name__)


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


@dataclass(frozen=True)
class SourceOutcome:
    """
    Result of checking one source.

    Attributes
    ----------
    source_key : str
        Key of the checked source.
    messages : list[OutboundMessage]
        Notifications for new releases, newest first.
    watermark : int | None
        Updated timestamp watermark (feed sources).
    version : str | None
        Version found on the page (version sources).
    """

    source_key: str
    messages: list[OutboundMessage] = field(default_factory=list)
    watermark: int | None = None
    version: str | None = None


@dataclass(frozen=True)
class CycleResult:
    """
    Result of one polling cycle.

    Attributes
    ----------
    state : WatermarkState
        State after the cycle, already persisted when possible.
    messages : list[OutboundMessage]
        Messages in delivery order, oldest first.
    failed_sources : list[str]
        Keys of sources that could not be checked.
    delivered : int
        Number of messages accepted by the notifier.
    """

    state: WatermarkState
    messages: list[OutboundMessage]
    failed_sources: list[str]
    delivered: int = 0


class ReleaseWatcher:
    """
    Main release watcher application.

    Coordinates fetching, change detection, storage and notifications.
    """

    def __init__(
        self,
        config: AppConfig,
        fetcher: HttpFetcher | None = None,
        notifier: Notifier | None = None,
        store: WatermarkStore | None = None,
    ):
        """
        Initialize the watcher.

        Parameters
        ----------
        config : AppConfig
            Validated application configuration.
        fetcher : HttpFetcher | None
            Fetcher to use; built from the configuration if omitted.
        notifier : Notifier | None
            Notifier to use; a webhook notifier if omitted.
        store : WatermarkStore | None
            Watermark store to use; built from the configuration if omitted.
        """
        self.config = config
        defaults = config.defaults

        self.fetcher = fetcher or HttpFetcher(
            timeout=defaults.request_timeout,
            max_retries=defaults.max_retries,
            retry_backoff=defaults.retry_backoff,
            user_agent=defaults.user_agent,
            proxy_url=defaults.proxy,
        )
        self.notifier: Notifier = notifier or WebhookNotifier(
            config.webhook,
            timeout=defaults.request_timeout,
            user_agent=defaults.user_agent,
            proxy_url=defaults.proxy,
        )
        legacy_key = next(
            (source.key for source in config.sources if source.kind == "feed"),
            "routeros",
        )
        self.store = store or WatermarkStore(config.storage.state_path, legacy_key)

        self._running = False
        self._stop_event = asyncio.Event()
        self._failures: dict[str, int] = {}

    async def run(self) -> None:
        """
        Load the state and run cycles until stopped.

        In once mode a single cycle is run. Errors escaping a cycle are
        logged and the next cycle is still scheduled.
        """
        state = self.store.load()
        self._running = True
        interval = self.config.defaults.check_interval

        if self.config.defaults.proxy:
            logger.info("Using proxy: %s", redact_proxy_url(self.config.defaults.proxy))
        if self.config.debug:
            logger.info("Debug mode: notifications will not be delivered")
        logger.info(
            "Release Watcher started with %d active source(s)",
            sum(1 for source in self.config.sources if source.enabled),
        )

        while self._running:
            try:
                result = await self.run_cycle(state)
                state = result.state
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error while running cycle")

            if self.config.once or not self._running:
                break

            # Wait for next cycle, measured from the end of this one
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        self._running = False

    def stop(self) -> None:
        """Ask the scheduler to exit after the current cycle."""
        logger.info("Stopping Release Watcher")
        self._running = False
        self._stop_event.set()

    async def close(self) -> None:
        """Close HTTP sessions."""
        await self.fetcher.close()
        await self.notifier.close()
        logger.info("Release Watcher stopped")

    async def run_cycle(self, state: WatermarkState) -> CycleResult:
        """
        Run one fetch, detect, persist and notify pass.

        Parameters
        ----------
        state : WatermarkState
            State before the cycle.

        Returns
        -------
        CycleResult
            The updated state and the messages of this cycle.
        """
        sources = [source for source in self.config.sources if source.enabled]
        results = await asyncio.gather(
            *(self._check_source(source, state) for source in sources),
            return_exceptions=True,
        )

        messages: list[OutboundMessage] = []
        failed: list[str] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                self._log_source_failure(source, result)
                self._record_failure(source.key)
                failed.append(source.key)
                continue

            self._record_success(source.key)
            if result.watermark is not None:
                state = state.with_timestamp(source.key, result.watermark)
            if result.version is not None and result.version != state.last_seen_version:
                state = state.with_version(result.version)
            messages.extend(result.messages)

        try:
            self.store.save(state)
        except PersistError as e:
            logger.error("%s; already announced releases may be sent again", e)

        # Sources list newest first, deliver oldest first
        messages.reverse()
        delivered = await self._deliver(messages)

        logger.info(
            "Cycle finished: %d new release(s), %d failed source(s)",
            len(messages),
            len(failed),
        )
        return CycleResult(state, messages, failed, delivered)

    async def _check_source(self, source: SourceConfig, state: WatermarkState) -> SourceOutcome:
        """
        Fetch, parse and compare one source against the state.

        Parameters
        ----------
        source : SourceConfig
            The source to check.
        state : WatermarkState
            State before the cycle.

        Returns
        -------
        SourceOutcome
            Messages and the advanced watermark of this source.

        Raises
        ------
        FetchError
            If the source could not be retrieved.
        ParseError
            If the content did not have the expected structure.
        """
        logger.debug("Checking source: %s", source.key)
        content = await self.fetcher.fetch_text(source.url)

        if source.kind == "version":
            version = extract_version(content, source.pattern or "")
            if version == state.last_seen_version:
                logger.debug("%s version unchanged: %s", source.label, version)
                return SourceOutcome(source.key, version=version)

            logger.info(
                "Found new %s version %s (previous: '%s')",
                source.label,
                version,
                state.last_seen_version,
            )
            message = build_version_message(version, source.label, source.url)
            return SourceOutcome(source.key, [message], version=version)

        records = parse_feed(content, source.key)
        detection = detect_new_records(records, state.timestamp_for(source.key))
        if detection.new_records:
            logger.info(
                "Found %d new entr%s in '%s'",
                len(detection.new_records),
                "y" if len(detection.new_records) == 1 else "ies",
                source.key,
            )

        messages = [
            build_release_message(record, source.label, source.default_category)
            for record in detection.new_records
        ]
        return SourceOutcome(source.key, messages, watermark=detection.watermark)

    async def _deliver(self, messages: list[OutboundMessage]) -> int:
        """
        Send messages in order, continuing past failures.

        Returns
        -------
        int
            Number of messages delivered.
        """
        if self.config.debug:
            for message in messages:
                logger.info("Debug mode, not sending: %s", message.title)
            return 0

        delivered = 0
        for message in messages:
            try:
                await self.notifier.send_message(message)
                delivered += 1
            except Exception as e:
                logger.error("Failed to send notification '%s': %s", message.title[:80], e)
        return delivered

    def _log_source_failure(self, source: SourceConfig, error: BaseException) -> None:
        """Log a failed source check at a level matching the error type."""
        if isinstance(error, FetchError):
            logger.error("Failed to fetch source '%s': %s", source.key, error)
        elif isinstance(error, ParseError):
            logger.error("Failed to parse source '%s': %s", source.key, error)
        else:
            logger.error(
                "Error checking source '%s'",
                source.key,
                exc_info=(type(error), error, error.__traceback__),
            )

    def _record_failure(self, source_key: str) -> None:
        """Count a failed check and escalate sustained failures."""
        count = self._failures.get(source_key, 0) + 1
        self._failures[source_key] = count
        threshold = self.config.defaults.failure_alert_threshold
        if count % threshold == 0:
            logger.error(
                "Source '%s' has failed %d consecutive cycles, check whether it changed",
                source_key,
                count,
            )

    def _record_success(self, source_key: str) -> None:
        """Reset the failure count of a source."""
        count = self._failures.pop(source_key, 0)
        if count >= self.config.defaults.failure_alert_threshold:
            logger.info("Source '%s' recovered after %d failed cycles", source_key, count)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="RouterOS and WinBox release watcher with webhook notifications",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to an optional YAML configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Detect and persist releases without sending notifications",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    overrides = {}
    if args.once:
        overrides["once"] = True
    if args.debug:
        overrides["debug"] = True
    if overrides:
        config = config.model_copy(update=overrides)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    watcher = ReleaseWatcher(config)

    def signal_handler():
        logger.info("Received shutdown signal")
        watcher.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(watcher.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.run_until_complete(watcher.close())
        loop.close()


if __name__ == "__main__":
    main()

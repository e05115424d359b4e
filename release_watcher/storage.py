"""
JSON file storage for source watermarks.

Persists the last announced timestamp and version of every source
to avoid duplicate notifications after restarts.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from release_watcher.errors import PersistError
from release_watcher.models import WatermarkState

logger = logging.getLogger(__name__)


class WatermarkStore:
    """
    Flat JSON file holding the watermark state.

    Reading fails soft to a fresh state; writing is atomic and raises
    PersistError on failure.
    """

    def __init__(self, state_path: str | Path, legacy_feed_key: str = "routeros"):
        """
        Initialize storage with the state file path.

        Parameters
        ----------
        state_path : str | Path
            Path to the JSON state file.
        legacy_feed_key : str
            Source key that inherits the ``lastRouterOSDate`` value of
            files written in the older single-feed format.
        """
        self.state_path = Path(state_path)
        self.legacy_feed_key = legacy_feed_key

    def load(self) -> WatermarkState:
        """
        Load the persisted state.

        Returns
        -------
        WatermarkState
            The stored state, or an empty state if the file is absent,
            unreadable or malformed.
        """
        if not self.state_path.exists():
            logger.info("No state file at %s, starting fresh", self.state_path)
            return WatermarkState()

        try:
            raw = self.state_path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
            state = self._from_document(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.state_path, e)
            return WatermarkState()

        logger.info(
            "Loaded state from %s: %d source watermark(s), version '%s'",
            self.state_path,
            len(state.last_seen_timestamp),
            state.last_seen_version,
        )
        return state

    def _from_document(self, data: Any) -> WatermarkState:
        """
        Build a state from a decoded JSON document.

        Raises
        ------
        ValueError
            If the document does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise ValueError("state document is not an object")

        if "lastSeenTimestamp" in data or "lastSeenVersion" in data:
            timestamps = data.get("lastSeenTimestamp") or {}
            if not isinstance(timestamps, dict):
                raise ValueError("lastSeenTimestamp is not an object")
            version = data.get("lastSeenVersion") or ""
        else:
            timestamps = {}
            if data.get("lastRouterOSDate"):
                timestamps[self.legacy_feed_key] = data["lastRouterOSDate"]
            version = data.get("lastWinBoxVersion") or ""
            if data:
                logger.info("Migrating legacy state document from %s", self.state_path)

        return WatermarkState(
            last_seen_timestamp={str(key): int(value) for key, value in timestamps.items()},
            last_seen_version=str(version),
        )

    def save(self, state: WatermarkState) -> None:
        """
        Write the state atomically.

        Parameters
        ----------
        state : WatermarkState
            State to persist.

        Raises
        ------
        PersistError
            If the file could not be written.
        """
        payload = json.dumps(state.to_dict(), indent=2, sort_keys=True)

        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.state_path.parent,
                prefix=f".{self.state_path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.state_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistError(f"Failed to write state to {self.state_path}: {e}") from e

        logger.debug("State written to %s", self.state_path)

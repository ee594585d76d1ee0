"""Process memory monitoring.

MemoryMonitor samples the process's resident set size on an interval and
logs a warning while it sits above the configured threshold. One instance
is built by create_app(), kept on ``app.state`` and reached through the
get_memory_monitor dependency; there is no module-level instance.

Current RSS comes from ``/proc/self/statm``. Where there is no procfs
(macOS) the reading falls back to ``resource.getrusage`` peak RSS, which
never goes down; the snapshot's ``source`` says which one was used.
"""

from __future__ import annotations

import asyncio
import logging
import os
import resource
import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("fightclub.monitoring")

_STATM_PATH = "/proc/self/statm"


@dataclass(frozen=True)
class RssReading:
    """Resident set size in megabytes and where it was read from."""

    rss_mb: float
    source: str  # "current" or "peak"


def read_current_rss_mb(statm_path: str = _STATM_PATH) -> float:
    """Returns the resident set size right now, from procfs.

    Raises:
        OSError: procfs is not available.
    """
    with open(statm_path) as f:
        resident_pages = int(f.read().split()[1])
    return resident_pages * os.sysconf("SC_PAGE_SIZE") / (1024 * 1024)


def read_peak_rss_mb() -> float:
    """Returns the process's peak resident set size in megabytes."""
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        return peak / (1024 * 1024)
    return peak / 1024


def read_rss() -> RssReading:
    """Current RSS where procfs exists, peak RSS otherwise."""
    try:
        return RssReading(read_current_rss_mb(), "current")
    except OSError:
        return RssReading(read_peak_rss_mb(), "peak")


@dataclass(frozen=True)
class MemorySnapshot:
    """One memory reading."""

    rss_mb: float
    threshold_mb: int
    checked_at: datetime
    source: str = "current"

    @property
    def over_threshold(self) -> bool:
        return self.rss_mb > self.threshold_mb

    def as_dict(self) -> dict[str, Any]:
        return {
            "rss_mb": round(self.rss_mb, 1),
            "rss_source": self.source,
            "threshold_mb": self.threshold_mb,
            "over_threshold": self.over_threshold,
            "checked_at": self.checked_at.isoformat(),
        }


class MemoryMonitor:
    """Periodic memory check with a warning threshold.

    Args:
        threshold_mb: Readings above this are logged at WARNING.
        interval_seconds: Time between background checks.
        reader: Returns an RssReading. Defaults to read_rss.
    """

    def __init__(
        self,
        threshold_mb: int = 1000,
        interval_seconds: float = 60.0,
        reader: Callable[[], RssReading] = read_rss,
    ) -> None:
        self._threshold_mb = threshold_mb
        self._interval = interval_seconds
        self._reader = reader
        self._task: asyncio.Task[None] | None = None
        self._last: MemorySnapshot | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_snapshot(self) -> MemorySnapshot | None:
        return self._last

    def check(self) -> MemorySnapshot:
        """Takes a reading now, logging if it is over the threshold."""
        reading = self._reader()
        snapshot = MemorySnapshot(
            rss_mb=reading.rss_mb,
            threshold_mb=self._threshold_mb,
            checked_at=datetime.now(timezone.utc),
            source=reading.source,
        )
        if snapshot.over_threshold:
            logger.warning(
                "Memory usage %.1fMB exceeds threshold %dMB",
                snapshot.rss_mb,
                self._threshold_mb,
            )
        self._last = snapshot
        return snapshot

    def start(self) -> None:
        """Starts the background loop. Must be called with a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Memory monitor started (interval=%.0fs, threshold=%dMB)",
            self._interval,
            self._threshold_mb,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Memory monitor stopped")

    def status(self) -> dict[str, Any]:
        """Health payload: the latest reading plus whether the loop runs."""
        snapshot = self._last or self.check()
        return {"running": self.running, **snapshot.as_dict()}

    async def _run(self) -> None:
        while True:
            self.check()
            await asyncio.sleep(self._interval)

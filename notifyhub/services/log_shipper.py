"""
Log Shipper

Forwards structured log events to the log-aggregation service without
ever blocking the caller. Events go into a bounded in-process queue that a
background task drains; anything that does not fit or fails to post is
dropped.
"""
import asyncio
from datetime import datetime, timezone

import httpx


LEVEL_MAP = {
    "debug": "info",
    "info": "info",
    "warning": "warning",
    "error": "error",
    "critical": "error",
    "exception": "error",
}


class LogShipper:
    """Bounded, best-effort log sink posting to ``<url>/api/log``."""

    def __init__(self, maxsize: int = 1000, timeout: float = 2.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.maxsize = maxsize
        self.timeout = timeout
        self.transport = transport
        self.service: str | None = None
        self.url: str | None = None
        self._queue: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, url: str | None, service: str) -> None:
        """Start the drain task. A missing url leaves shipping disabled."""
        if not url or self.running:
            return
        self.url = url.rstrip("/")
        self.service = service
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._task = asyncio.create_task(self._drain())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._queue = None

    def enqueue(self, level: str, message: str, details: dict | None = None) -> bool:
        """Queue one event. Returns False if it was dropped."""
        if self._queue is None:
            return False
        log = {
            "service": self.service,
            "level": LEVEL_MAP.get(level, "info"),
            "message": message,
            "details": details or None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._queue.put_nowait(log)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def __call__(self, logger, method_name, event_dict):
        """structlog processor: copy the event into the queue, pass it on unchanged."""
        if self._queue is not None:
            details = {
                k: v for k, v in event_dict.items()
                if k not in ("event", "level", "timestamp")
            }
            self.enqueue(method_name, str(event_dict.get("event", "")), details)
        return event_dict

    async def _drain(self) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                log = await self._queue.get()
                try:
                    await client.post(f"{self.url}/api/log", json=log)
                except (httpx.HTTPError, TypeError, ValueError):
                    # Log server down or event not serialisable - drop it
                    self.dropped += 1
                finally:
                    self._queue.task_done()


# Singleton instance
log_shipper = LogShipper()

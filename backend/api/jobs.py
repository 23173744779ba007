"""
Background scrape jobs and their progress streams.

A job scrapes the selected clients, writes the merged rows to each client's
sheet, and publishes progress events that the SSE endpoint relays to the
browser.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from scraper.base import ClientConfig, ProgressCallback, RunResult
from scraper.cache import ResultCache
from scraper.config import select_clients
from scraper.exceptions import ConfigurationError, SinkWriteFailure
from scraper.manager import ScraperManager

from api.sheets import SheetSink

logger = logging.getLogger(__name__)

RUNNING = "running"
COMPLETE = "complete"
FAILED = "failed"

# Finished jobs stay queryable for this long
DEFAULT_RETENTION_SECONDS = 3600.0


@dataclass
class JobStatus:
    """Last known state of a scrape job."""
    session_id: str
    client_ids: List[str]
    state: str = RUNNING
    message: str = "Starting scraping process..."
    progress: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None

    @property
    def finished(self) -> bool:
        return self.state != RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'client_ids': self.client_ids,
            'state': self.state,
            'message': self.message,
            'progress': self.progress,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'result': self.result,
        }


class ProgressHub:
    """
    Fans job progress out to SSE subscribers.

    Each subscriber gets its own queue. A late subscriber is primed with the
    job's latest state so it never misses the completion event. Finished
    jobs are forgotten once they are older than the retention window.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.jobs: Dict[str, JobStatus] = {}
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    def prune(self) -> int:
        """Drop finished jobs past the retention window; returns how many."""
        now = self.clock()
        expired = [
            session_id for session_id, status in self.jobs.items()
            if status.finished and status.completed_at is not None
            and (now - status.completed_at).total_seconds() > self.retention_seconds
        ]
        for session_id in expired:
            del self.jobs[session_id]
            self._subscribers.pop(session_id, None)
        if expired:
            logger.debug(f"Pruned {len(expired)} finished job(s)")
        return len(expired)

    def create(self, session_id: str, client_ids: List[str]) -> JobStatus:
        self.prune()
        status = JobStatus(session_id=session_id, client_ids=list(client_ids))
        self.jobs[session_id] = status
        return status

    def get(self, session_id: str) -> Optional[JobStatus]:
        return self.jobs.get(session_id)

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        status = self.jobs.get(session_id)
        if status is not None:
            queue.put_nowait(self._event_for(status))
        self._subscribers[session_id].append(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue):
        queues = self._subscribers.get(session_id)
        if queues and queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(session_id, None)

    @staticmethod
    def _event_for(status: JobStatus) -> Dict[str, Any]:
        if status.finished:
            return {
                'type': 'complete',
                'message': status.message,
                'success': status.state == COMPLETE,
            }
        return {'type': 'progress', 'message': status.message, 'progress': status.progress}

    def _publish(self, status: JobStatus):
        event = self._event_for(status)
        for queue in self._subscribers.get(status.session_id, []):
            queue.put_nowait(event)

    def publish_progress(self, session_id: str, message: str, percent: Optional[int] = None):
        status = self.jobs.get(session_id)
        if status is None or status.finished:
            return
        status.message = message
        if percent is not None:
            status.progress = max(0, min(100, int(percent)))
        logger.debug(f"Progress update for {session_id}: {message} ({status.progress}%)")
        self._publish(status)

    def complete(self, session_id: str, message: str, success: bool, result: Optional[Dict] = None):
        status = self.jobs.get(session_id)
        if status is None:
            return
        status.state = COMPLETE if success else FAILED
        status.message = message
        status.progress = 100
        status.completed_at = self.clock()
        status.result = result
        self._publish(status)

    def progress_callback(self, session_id: str) -> ProgressCallback:
        """Adapter from the engine's progress callback to this hub."""
        def report(client_id: str, message: str, percent: Optional[int] = None):
            self.publish_progress(session_id, message, percent)
        return report


def group_rows_by_sheet(
    run: RunResult,
    configs: List[ClientConfig],
    default_sheet_id: Optional[str],
) -> Dict[str, List]:
    """Successful clients' records keyed by the sheet they belong in."""
    groups: Dict[str, List] = defaultdict(list)
    for config in configs:
        result = run.results.get(config.id)
        if result is None or not result.success or not result.records:
            continue
        sheet_id = config.sheet_id or default_sheet_id or ''
        groups[sheet_id].extend(result.records)
    return dict(groups)


async def run_scrape_job(
    session_id: str,
    client_ids: List[str],
    hub: ProgressHub,
    settings,
    clients: Dict[str, ClientConfig],
    cache: Optional[ResultCache] = None,
    sink_factory: Optional[Callable[[], SheetSink]] = None,
    manager_factory: Optional[Callable[..., ScraperManager]] = None,
) -> JobStatus:
    """
    Scrape the selected clients and update their sheets.

    Never raises; the outcome is recorded on the hub's JobStatus.
    """
    status = hub.get(session_id) or hub.create(session_id, client_ids)
    sink_factory = sink_factory or (lambda: SheetSink.from_settings(settings))
    manager_factory = manager_factory or ScraperManager

    try:
        configs = select_clients(client_ids, clients)
    except ConfigurationError as e:
        logger.error(f"Scrape job {session_id} rejected: {e}")
        hub.complete(session_id, str(e), success=False)
        return status

    logger.info(f"Attempting to scrape selected client ids: {client_ids}")
    hub.publish_progress(session_id, "Starting scraping process...", 0)

    try:
        manager = manager_factory(
            settings.scrape_options(),
            cache=cache,
            progress=hub.progress_callback(session_id),
        )
        run = await manager.scrape_all(configs)
    except Exception as e:
        logger.exception(f"Scrape job {session_id} failed")
        hub.complete(session_id, f"An error occurred during scraping: {e}", success=False)
        return status

    summary = run.summary()
    groups = group_rows_by_sheet(run, configs, settings.google_sheet_id)

    try:
        if groups:
            hub.publish_progress(session_id, "Updating Google Sheet(s)...", 99)
            sink = sink_factory()
            loop = asyncio.get_running_loop()
            # gspread is synchronous
            await loop.run_in_executor(None, sink.write_groups, groups)
            logger.info("Sheet(s) updated successfully!")
    except (ConfigurationError, SinkWriteFailure) as e:
        logger.error(f"Error updating sheet: {e}")
        message = f"Failed to write to Google Sheets: {e}. {summary}"
        hub.complete(session_id, message, success=False, result=run.to_dict())
        return status
    except Exception as e:
        logger.exception(f"Unexpected error updating sheet for {session_id}")
        message = f"Failed to write to Google Sheets: {e.__class__.__name__}: {e}. {summary}"
        hub.complete(session_id, message, success=False, result=run.to_dict())
        return status

    hub.complete(session_id, summary, success=bool(run.successful_clients), result=run.to_dict())
    return status

"""Import orchestrator driving one calendar feed import run."""
import logging
import threading
from datetime import tzinfo
from typing import Any, Callable, List, Optional, Sequence
from urllib.parse import urlparse

from feed.ics_feed import FeedCache, FeedFetcher, ICSParser
from processor.errors import (
    EventImportError,
    ImportCancelledError,
    InvalidInputError,
    StoreError,
)
from processor.models import Event, ImportReport, ImportState, Message, Severity
from processor.normalizer import normalize_events
from processor.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    PostImportHook,
)
from processor.reconciler import reconcile
from storage.base import EventStore

logger = logging.getLogger(__name__)


def validate_input(feed_uri: Any, container_id: Any) -> int:
    """
    Validate the feed URI and container id of an import run.

    Args:
        feed_uri: Absolute URL of the iCalendar feed
        container_id: Non-negative integer or its decimal string form

    Returns:
        Container id as int

    Raises:
        InvalidInputError: If either value is invalid
    """
    if not isinstance(feed_uri, str) or not _is_valid_url(feed_uri):
        raise InvalidInputError('You have to enter a valid URL to the iCalendar ICS')

    if isinstance(container_id, bool):
        container_id = None
    elif isinstance(container_id, str) and container_id.strip().isdecimal():
        container_id = int(container_id.strip())

    if not isinstance(container_id, int) or container_id < 0:
        raise InvalidInputError('You have to enter a valid container id for the new created elements')

    return container_id


def _is_valid_url(value: str) -> bool:
    if not value or value != value.strip() or any(c.isspace() for c in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


class EventImporter:
    """Imports events of a remote iCalendar feed into an event store."""

    def __init__(
        self,
        store: EventStore,
        tz: tzinfo,
        fetcher: Optional[FeedFetcher] = None,
        cache: Optional[FeedCache] = None,
        parser: Optional[ICSParser] = None,
        sink: Optional[NotificationSink] = None,
        hooks: Sequence[PostImportHook] = ()
    ):
        """
        Initialize the importer with its collaborators.

        Args:
            store: Event store receiving the imported events
            tz: Timezone all event timestamps are normalized to
            fetcher: HTTP fetcher (default: FeedFetcher())
            cache: Feed cache (default: FeedCache() in the temp directory)
            parser: iCalendar parser (default: ICSParser())
            sink: Receiver of progress messages (default: log them)
            hooks: Post-import hooks, invoked in this order
        """
        self.store = store
        self.tz = tz
        self.fetcher = fetcher or FeedFetcher()
        self.cache = cache or FeedCache()
        self.parser = parser or ICSParser()
        self.sink = sink or LoggingNotificationSink()
        self.hooks: List[PostImportHook] = list(hooks)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Abort the running import before its next state."""
        self._cancelled.set()

    def run(
        self,
        feed_uri: str,
        container_id: Any,
        delete_before_import: bool = False
    ) -> ImportReport:
        """
        Run one import.

        Fatal errors do not propagate: they end the run in the FAILED
        state with the error recorded on the report.

        Args:
            feed_uri: URL of the iCalendar feed
            container_id: Container the events are imported into
            delete_before_import: Purge the container before importing

        Returns:
            Completed ImportReport
        """
        self._cancelled.clear()
        report = ImportReport(feed_uri=feed_uri)

        try:
            self._enter(report, ImportState.VALIDATING)
            report.container_id = validate_input(feed_uri, container_id)

            if delete_before_import:
                self._enter(report, ImportState.PURGING)
                self._purge(report)

            self._import(report)

            self._enter(report, ImportState.REINDEXING)
            self._notify(report, 'Reindex', Severity.INFO, 'Run reindex process after import')
            report.reindexed = self.store.reindex()

            self._enter(report, ImportState.DONE)
        except EventImportError as e:
            self._fail(report, e)
        except Exception as e:
            logger.error(f"Unexpected error during import in state {report.state.value}", exc_info=True)
            self._fail(report, e)

        logger.info(
            f"Import of {feed_uri} finished in state {report.state.value}",
            extra={
                'container_id': report.container_id,
                'created': report.created,
                'updated': report.updated,
                'skipped': report.skipped,
                'failed': report.failed,
                'error_type': type(report.error).__name__ if report.error else None,
            }
        )
        return report

    def _import(self, report: ImportReport) -> None:
        container_id = report.container_id

        self._enter(report, ImportState.FETCHING)
        self._notify(report, 'Calendar', Severity.INFO, f"Start to checkout the calendar: {report.feed_uri}")
        content = self.fetcher.get(report.feed_uri)
        path = self.cache.write(self.cache.key_for(report.feed_uri), content)

        self._enter(report, ImportState.PARSING)
        raw_events = self.parser.parse(path)
        report.fetched = len(raw_events)
        report.parsed = len(raw_events)
        self._notify(report, 'Items', Severity.INFO, f"Found {len(raw_events)} events in the given calendar")

        self._enter(report, ImportState.NORMALIZING)
        events = []
        for result in normalize_events(raw_events, self.tz):
            if result.ok:
                events.append(result.event)
                continue
            report.skipped += 1
            self._notify(
                report, 'Warning', Severity.WARNING,
                f'Could not convert the date in the right format of "{result.label}": {result.error}'
            )
        report.normalized = len(events)
        self._notify(report, 'Items', Severity.INFO, f"Found {len(events)} events in {report.feed_uri}")

        self._enter(report, ImportState.RECONCILING)
        plan = reconcile(container_id, events, self.store.find_by_container(container_id))

        self._enter(report, ImportState.APPLYING)
        if self.hooks:
            self._notify(
                report, 'Signal', Severity.INFO,
                f"Send each event to {len(self.hooks)} import hook(s)"
            )
        for event in plan.to_insert:
            self._apply(report, event, lambda e=event: self.store.insert(e, container_id), 'created')
        for stored, event in plan.to_update:
            self._apply(report, event, lambda s=stored, e=event: self.store.update(s, e), 'updated')

    def _purge(self, report: ImportReport) -> None:
        result = self.store.delete_by_container(report.container_id)
        report.deleted = result.removed
        report.kept = result.kept

        if result.removed > 0:
            text = (
                f"Removed {result.removed} and kept {result.kept} of all events "
                f"before importing. (In other containers)"
            )
        else:
            text = f"Nothing to remove. Kept {result.kept} of all events before importing. (In other containers)"
        self._notify(report, 'Delete Statistic', Severity.INFO, text)

    def _apply(
        self,
        report: ImportReport,
        event: Event,
        persist: Callable[[], Any],
        counter: str
    ) -> None:
        """Run hooks for an event, then the default persistence unless handled."""
        try:
            if self._dispatch_hooks(event, report.container_id):
                report.handled += 1
                return
            persist()
        except StoreError as e:
            report.failed += 1
            self._notify(report, 'Error', Severity.ERROR, f"Could not import event '{event.external_uid}': {e}")
            return
        except Exception as e:
            logger.error(f"Unexpected error importing event '{event.external_uid}'", exc_info=True)
            report.failed += 1
            self._notify(report, 'Error', Severity.ERROR, f"Could not import event '{event.external_uid}': {e}")
            return

        setattr(report, counter, getattr(report, counter) + 1)

    def _dispatch_hooks(self, event: Event, container_id: int) -> bool:
        for hook in self.hooks:
            if hook.on_import(event, container_id):
                logger.debug(f"Event '{event.external_uid}' handled by {type(hook).__name__}")
                return True
        return False

    def _enter(self, report: ImportReport, state: ImportState) -> None:
        if self._cancelled.is_set():
            raise ImportCancelledError(f"Import cancelled before {state.value}")
        logger.debug(f"Import state {report.state.value} -> {state.value}")
        report.state = state

    def _fail(self, report: ImportReport, error: Exception) -> None:
        report.error = error
        report.state = ImportState.FAILED
        self._notify(report, 'Error', Severity.ERROR, str(error))

    def _notify(self, report: ImportReport, title: str, severity: Severity, text: str) -> None:
        report.messages.append(Message(title=title, severity=severity, text=text))
        self.sink.emit(title, severity, text)

"""Normalizer converting raw iCalendar fields into Event values."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from dateutil.parser import isoparse
from icalendar.prop import vDuration

from processor.errors import (
    EventImportError,
    MalformedDateError,
    MalformedDurationError,
)
from processor.models import Event, RawEvent

logger = logging.getLogger(__name__)

UNTITLED = 'untitled'


@dataclass(frozen=True)
class NormalizeResult:
    """Outcome of normalizing one raw event: an Event or the error."""
    raw: RawEvent
    event: Optional[Event] = None
    error: Optional[EventImportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def label(self) -> str:
        """Summary used to identify the event in diagnostics."""
        return self.raw.get('SUMMARY') or UNTITLED


def normalize(raw: RawEvent, tz: tzinfo) -> Event:
    """
    Convert a raw iCalendar event into a normalized Event.

    Args:
        raw: Mapping of iCalendar property names to text values
        tz: Timezone both timestamps are converted to

    Returns:
        Normalized Event

    Raises:
        MalformedDateError: If DTSTART or a present DTEND cannot be parsed
        MalformedDurationError: If DTEND is absent and DURATION is missing
            or invalid
    """
    start = _parse_datetime(raw.get('DTSTART'), 'DTSTART', tz)

    if raw.get('DTEND'):
        end = _parse_datetime(raw['DTEND'], 'DTEND', tz)
    else:
        end = start + _parse_duration(raw.get('DURATION'))

    # End >= start is not checked here; ranges pass through as given
    return Event(
        external_uid=raw.get('UID') or '',
        start=start,
        end=end,
        title=raw.get('SUMMARY') or '',
        description=raw.get('DESCRIPTION') or '',
        location=raw.get('LOCATION') or '',
    )


def normalize_events(raw_events: Iterable[RawEvent], tz: tzinfo) -> List[NormalizeResult]:
    """
    Normalize a batch of raw events.

    A malformed event never aborts the batch; its error is returned in
    the corresponding result instead.

    Args:
        raw_events: Raw events from the parser
        tz: Target timezone

    Returns:
        One NormalizeResult per raw event, in input order
    """
    results = []

    for raw in raw_events:
        try:
            results.append(NormalizeResult(raw=raw, event=normalize(raw, tz)))
        except (MalformedDateError, MalformedDurationError) as e:
            logger.debug(f"Rejected raw event '{raw.get('SUMMARY') or UNTITLED}': {e}")
            results.append(NormalizeResult(raw=raw, error=e))

    return results


def _parse_datetime(value: Optional[str], name: str, tz: tzinfo) -> datetime:
    """
    Parse an ISO-8601 / iCalendar date-time string into an aware datetime.

    Naive (floating) values are interpreted in the target timezone.
    """
    if not value:
        raise MalformedDateError(f"{name} is missing")

    try:
        parsed = isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise MalformedDateError(f"Invalid {name} '{value}': {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)

    return parsed.astimezone(tz)


def _parse_duration(value: Optional[str]) -> timedelta:
    if not value:
        raise MalformedDurationError('Neither DTEND nor DURATION is set')

    try:
        return vDuration.from_ical(value.strip())
    except (ValueError, TypeError) as e:
        raise MalformedDurationError(f"Invalid DURATION '{value}': {e}") from e

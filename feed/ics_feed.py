"""Fetching, caching and parsing of remote iCalendar feeds."""
import hashlib
import logging
import tempfile
import time
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

import requests
from icalendar import Calendar

from processor.errors import FetchError, ParseError
from processor.models import RawEvent

logger = logging.getLogger(__name__)

RAW_FIELDS = (
    'UID',
    'DTSTART',
    'DTEND',
    'DURATION',
    'SUMMARY',
    'DESCRIPTION',
    'LOCATION',
)


class FeedFetcher:
    """HTTP client downloading calendar feeds."""

    USER_AGENT = 'calendar-feed-import/1.0'

    def __init__(self, timeout: int = 30, max_retries: int = 1, base_delay: float = 1):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Number of attempts per request (default: 1, no retry)
            base_delay: Backoff delay in seconds before the second attempt
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay

    def get(self, uri: str) -> bytes:
        """
        Download a feed.

        Args:
            uri: Feed URL

        Returns:
            Response body

        Raises:
            FetchError: If every attempt fails
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching {uri} (attempt {attempt + 1}/{self.max_retries})")
                response = requests.get(
                    uri,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                response.raise_for_status()
                logger.info(f"Fetched {len(response.content)} bytes from {uri}")
                return response.content

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(f"Could not fetch {uri}: {e}")
                    raise FetchError(f"Could not fetch {uri}: {e}") from e


class FeedCache:
    """Stores downloaded feeds in one stable file per feed URI."""

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else Path(tempfile.gettempdir())

    @staticmethod
    def key_for(uri: str) -> str:
        """Short MD5 of the URI, used as the cache key."""
        return hashlib.md5(uri.encode('utf-8')).hexdigest()[:10]

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"ical.{key}.ical"

    def write(self, key: str, data: bytes) -> Path:
        """
        Write feed content to the cache slot of the given key.

        Args:
            key: Cache key (see key_for)
            data: Feed content

        Returns:
            Path of the cache file

        Raises:
            FetchError: If the file cannot be written
        """
        path = self.path_for(key)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Could not write cache file {path}: {e}")
            raise FetchError(f"Could not write cache file {path}: {e}") from e

        logger.debug(f"Cached {len(data)} bytes in {path}")
        return path


class ICSParser:
    """Reads VEVENT components from an iCalendar file."""

    def parse(self, path: Union[str, Path]) -> List[RawEvent]:
        """
        Parse an iCalendar file into raw events.

        Args:
            path: Path of the cached feed

        Returns:
            One RawEvent per VEVENT, in document order

        Raises:
            ParseError: If the file cannot be read or is not iCalendar
        """
        try:
            content = Path(path).read_bytes()
        except OSError as e:
            raise ParseError(f"Could not read {path}: {e}") from e

        try:
            calendar = Calendar.from_ical(content)
        except ValueError as e:
            logger.error(f"Invalid iCalendar document {path}: {e}")
            raise ParseError(f"Invalid iCalendar document: {e}") from e

        events = [self._component_to_raw(component) for component in calendar.walk('VEVENT')]
        logger.info(f"Parsed {len(events)} events from {path}")
        return events

    def _component_to_raw(self, component) -> RawEvent:
        raw = {}

        for name in RAW_FIELDS:
            value = component.get(name)
            if value is None:
                continue
            if isinstance(value, list):
                value = value[0]
            raw[name] = self._value_to_text(value)

        return raw

    def _value_to_text(self, value) -> str:
        """
        Convert a decoded iCalendar property to text.

        Dates and date-times become ISO-8601 strings (keeping the UTC
        offset if any), durations keep their iCalendar form.
        """
        decoded = getattr(value, 'dt', None)
        if isinstance(decoded, date):
            return decoded.isoformat()
        if isinstance(value, str):
            return str(value)
        if hasattr(value, 'to_ical'):
            ical = value.to_ical()
            return ical.decode('utf-8') if isinstance(ical, bytes) else str(ical)
        return str(value)

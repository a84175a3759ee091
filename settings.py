"""Runtime configuration read from environment variables."""
import os
import tempfile
from dataclasses import dataclass
from datetime import tzinfo
from typing import Mapping, Optional

from dateutil import tz

from processor.errors import InvalidInputError

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def parse_bool(value, default: bool = False) -> bool:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def resolve_timezone(name: str) -> tzinfo:
    """
    Resolve a timezone name such as 'Europe/Berlin' or 'UTC'.

    Raises:
        InvalidInputError: If the name is unknown
    """
    zone = tz.gettz(name)
    if zone is None:
        raise InvalidInputError(f"Unknown timezone: {name}")
    return zone


@dataclass
class ImportSettings:
    """Settings of the calendar import job."""
    table_name: str = 'calendar-events'
    log_level: str = 'INFO'
    timezone: str = 'UTC'
    cache_dir: str = tempfile.gettempdir()
    timeout_seconds: int = 30
    fetch_retries: int = 1
    feed_uri: Optional[str] = None
    container_id: Optional[str] = None
    delete_before_import: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ImportSettings':
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            ImportSettings with defaults for unset variables
        """
        env = os.environ if environ is None else environ
        return cls(
            table_name=env.get('TABLE_NAME', 'calendar-events'),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            timezone=env.get('TIMEZONE', 'UTC'),
            cache_dir=env.get('CACHE_DIR') or tempfile.gettempdir(),
            timeout_seconds=int(env.get('TIMEOUT_SECONDS', '30')),
            fetch_retries=int(env.get('FETCH_RETRIES', '1')),
            feed_uri=env.get('FEED_URI') or None,
            container_id=env.get('CONTAINER_ID') or None,
            delete_before_import=parse_bool(env.get('DELETE_BEFORE_IMPORT')),
        )

    @property
    def tzinfo(self) -> tzinfo:
        return resolve_timezone(self.timezone)

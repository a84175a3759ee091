"""AWS Lambda handler for iCalendar feed imports."""
import json
import logging
import time
from typing import Dict, Any

from feed.ics_feed import FeedCache, FeedFetcher
from processor.errors import InvalidInputError
from processor.importer import EventImporter
from processor.models import ImportReport
from settings import ImportSettings, parse_bool
from storage.dynamodb_store import DynamoDBEventStore

# Attributes every LogRecord has; anything else was passed via `extra`
_RESERVED_ATTRS = set(
    logging.LogRecord('', logging.INFO, '', 0, '', None, None).__dict__
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_importer(settings: ImportSettings) -> EventImporter:
    """Wire the importer and its collaborators from settings."""
    return EventImporter(
        store=DynamoDBEventStore(table_name=settings.table_name),
        tz=settings.tzinfo,
        fetcher=FeedFetcher(
            timeout=settings.timeout_seconds,
            max_retries=settings.fetch_retries
        ),
        cache=FeedCache(settings.cache_dir),
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _status_code(report: ImportReport) -> int:
    if report.succeeded:
        return 200
    if isinstance(report.error, InvalidInputError):
        return 400
    return 500


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for calendar feed imports.

    The event payload may carry `feed_uri`, `container_id` and
    `delete_before_import`; missing keys fall back to the FEED_URI,
    CONTAINER_ID and DELETE_BEFORE_IMPORT environment variables.

    Args:
        event: EventBridge or direct invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and the import report
    """
    settings = ImportSettings.from_env()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    feed_uri = event.get('feed_uri', settings.feed_uri)
    container_id = event.get('container_id', settings.container_id)
    delete_before_import = parse_bool(
        event.get('delete_before_import'), settings.delete_before_import
    )

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': settings.table_name,
            'feed_uri': feed_uri,
            'container_id': container_id,
            'delete_before_import': delete_before_import
        }
    )

    try:
        importer = build_importer(settings)
        report = importer.run(feed_uri, container_id, delete_before_import)
    except InvalidInputError as e:
        logger.error(f"Invalid configuration: {e}")
        return _response(400, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Import failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    body = report.to_dict()
    body['duration_seconds'] = round(duration, 2)

    if report.succeeded:
        body['message'] = 'Import completed successfully'
        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_created': report.created,
                'events_updated': report.updated,
                'events_skipped': report.skipped,
                'events_failed': report.failed
            }
        )
    else:
        body['message'] = 'Import failed'
        logger.error(
            f"Import failed: {report.error}",
            extra={'duration_seconds': round(duration, 2), 'error_type': body['error_type']}
        )

    return _response(_status_code(report), body)

"""Command line entry point for importing an iCalendar feed."""
import argparse
import sys
from typing import List, Optional

from botocore.exceptions import BotoCoreError

from lambda_function import build_importer, setup_logging
from processor.errors import InvalidInputError
from settings import ImportSettings


def build_parser(settings: ImportSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Import events of an iCalendar (ICS) feed into the event store.'
    )
    parser.add_argument(
        'feed_uri', nargs='?', default=settings.feed_uri,
        help='URL of the iCalendar feed (default: $FEED_URI)'
    )
    parser.add_argument(
        'container_id', nargs='?', default=settings.container_id,
        help='Container the events are imported into (default: $CONTAINER_ID)'
    )
    parser.add_argument(
        '--delete-before-import', action='store_true',
        default=settings.delete_before_import,
        help='Delete all events of the container before importing'
    )
    parser.add_argument('--table-name', default=settings.table_name)
    parser.add_argument('--timezone', default=settings.timezone)
    parser.add_argument('--cache-dir', default=settings.cache_dir)
    parser.add_argument('--log-level', default=settings.log_level)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run one import and print its messages.

    Returns:
        0 if the import finished, 1 if it failed
    """
    settings = ImportSettings.from_env()
    args = build_parser(settings).parse_args(argv)

    settings.table_name = args.table_name
    settings.timezone = args.timezone
    settings.cache_dir = args.cache_dir
    settings.log_level = args.log_level
    setup_logging(settings.log_level)

    try:
        importer = build_importer(settings)
    except (InvalidInputError, BotoCoreError) as e:
        print(f"[Error] {e}", file=sys.stderr)
        return 1

    report = importer.run(args.feed_uri, args.container_id, args.delete_before_import)

    for message in report.messages:
        print(f"[{message.severity.value}] {message.title}: {message.text}")

    if not report.succeeded:
        return 1

    print(
        f"Created {report.created}, updated {report.updated}, "
        f"skipped {report.skipped}, failed {report.failed}"
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())

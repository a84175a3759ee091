"""Exceptions raised while importing a calendar feed."""


class EventImportError(Exception):
    """Base class for all import errors."""


class InvalidInputError(EventImportError):
    """Feed URI or container id is not valid."""


class FetchError(EventImportError):
    """Feed could not be downloaded or cached."""


class ParseError(EventImportError):
    """Feed document is not a readable iCalendar file."""


class MalformedDateError(EventImportError):
    """DTSTART or DTEND could not be parsed."""


class MalformedDurationError(EventImportError):
    """DURATION is missing or invalid while DTEND is absent."""


class StoreError(EventImportError):
    """Event store operation failed."""


class ReindexError(StoreError):
    """Rebuilding the event index failed."""


class ImportCancelledError(EventImportError):
    """Run was cancelled between two states."""

"""
Exceptions raised by querylogs.

Only configuration mistakes raise. Missing tags and empty values are never
errors, and resolver failures propagate as whatever the resolver raised.
"""


class QueryLogsError(Exception):
    """Base class for querylogs errors."""
    pass


class InvalidTagError(QueryLogsError, TypeError):
    """A tag spec entry is neither a tag name nor a label block."""
    pass


class UnknownFormatError(QueryLogsError, ValueError):
    """A comment format name is not one of the supported formats."""

    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown query log format: {name!r} (expected 'legacy' or 'sqlcommenter')")

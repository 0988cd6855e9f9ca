"""
Error Taxonomy

Exceptions raised by the aggregation engine and its store adapters.
Request-validation failures subclass ValueError; store failures subclass RuntimeError.
"""


class InvalidDateKey(ValueError):
    """A calendar key ('YYYY-MM-DD' or 'YYYY-MM') could not be parsed."""


class InvalidDateRange(ValueError):
    """The end of a requested range precedes its start."""


class RangeTooLarge(ValueError):
    """The requested range spans more days than the configured maximum."""


class StoreError(RuntimeError):
    """Reading observations from the backing store failed."""

class StreamflixError(Exception):
    """Base class for analytics errors."""


class MalformedInputError(StreamflixError, ValueError):
    """A session row failed validation at ingestion."""

    def __init__(self, reason, row=None, column=None, value=None):
        self.reason = reason
        self.row = row
        self.column = column
        self.value = value
        if column is None:
            message = reason
        else:
            message = f"row {row!r}, column '{column}': {reason} (got {value!r})"
        super().__init__(message)


class InvalidParameterError(StreamflixError, ValueError):
    """A report was requested with an unusable parameter."""

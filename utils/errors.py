from typing import Optional


class ExtractionError(ValueError):
    """
    Base class for deterministic input-validation failures raised while
    extracting a table from a sheet.

    Attributes:
        message (str): Human readable description of the failure
        token (Optional[str]): The offending token of a specification, if any
        spec (Optional[str]): The full specification the token came from, if any
    """
    def __init__(self, message: str, token: Optional[str] = None, spec: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.token = token
        self.spec = spec


class ParseError(ExtractionError):
    """A range token is not a valid integer or range."""


class RangeError(ExtractionError):
    """A parsed range starts below 1 or ends before it starts."""


class HeaderNotFoundError(ExtractionError):
    """No row exists at the requested header offset."""


class EmptySelectionError(ExtractionError):
    """The column specification matched no header column."""


class WriterError(Exception):
    """The extracted table cannot be written in the requested output format."""

"""
Trace Processing Errors
=======================
Exceptions raised when a trace cannot be processed into a trustworthy result.

Lines that simply do not match any known event are skipped, and SQL errors
reported inside the trace are stored on the statement. The exceptions here
cover the structural failures that abort a run.
"""

from typing import Optional


class TraceProcessingError(Exception):
    """Base class for errors that abort a processing run."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line_number = line_number

    def __str__(self):
        if self.line_number is not None:
            return f"line {self.line_number}: {self.message}"
        return self.message


class HeaderDecodeError(TraceProcessingError):
    """A fixed-width or prefixed header field could not be parsed."""

    def __init__(self, field_name: str, raw_line: str, line_number: Optional[int] = None):
        super().__init__(f"cannot decode header field '{field_name}' in {raw_line!r}", line_number)
        self.field_name = field_name
        self.raw_line = raw_line


class CursorStateError(TraceProcessingError):
    """An event referenced a cursor that has no open statement."""

    def __init__(self, cursor: int, event: str, line_number: Optional[int] = None):
        super().__init__(f"{event} on cursor {cursor} with no open statement", line_number)
        self.cursor = cursor
        self.event = event


class ProcessorOrderError(TraceProcessingError):
    """A call-tree processor ran before any statement processor fed it."""


class UnsupportedTraceFormatError(TraceProcessingError):
    """The file is not one of the recognised trace layouts."""

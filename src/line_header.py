"""
Line Header Module
==================
Decodes the header portion of PeopleSoft trace lines.

Two layouts are supported:
- COBOL batch timing reports use fixed character columns
- TraceSQL / PeopleCode traces use a whitespace-delimited prefix followed by
  an optional ``Cur#`` SQL block

Numbers are always parsed with ``.`` as the decimal separator, independent of
the host locale.

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import re
from dataclasses import dataclass
from typing import Optional

from trace_errors import HeaderDecodeError


def _to_float(value: str, field_name: str, line: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise HeaderDecodeError(field_name, line) from None


def _to_int(value: str, field_name: str, line: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise HeaderDecodeError(field_name, line) from None


@dataclass
class CobolLineHeader:
    """Fixed-width header of a COBOL trace line."""
    time: str
    line: str
    duration: float
    sql_duration: float
    cursor: int
    rc_number: int
    body: str = ""

    # (start, end) column slices
    TIME_COLUMNS = (0, 12)
    LINE_COLUMNS = (14, 23)
    ELAPSED_COLUMNS = (26, 33)
    SQL_TIME_COLUMNS = (36, 43)
    CURSOR_COLUMNS = (47, 53)
    RC_COLUMNS = (56, 60)
    BODY_START = 60

    @classmethod
    def from_log_line(cls, log_line: str) -> 'CobolLineHeader':
        """
        Decode the fixed columns of a COBOL trace line.

        The caller is expected to have already checked that the line is an
        event line; short or garbled lines surface as HeaderDecodeError.

        Args:
            log_line: Raw trace line

        Returns:
            Decoded header
        """
        def column(span):
            return log_line[span[0]:span[1]].strip()

        return cls(
            time=column(cls.TIME_COLUMNS),
            line=column(cls.LINE_COLUMNS),
            duration=_to_float(column(cls.ELAPSED_COLUMNS), 'elapsed', log_line),
            sql_duration=_to_float(column(cls.SQL_TIME_COLUMNS), 'sql_time', log_line),
            cursor=_to_int(column(cls.CURSOR_COLUMNS), 'cursor', log_line),
            rc_number=_to_int(column(cls.RC_COLUMNS), 'rc', log_line),
            body=log_line[cls.BODY_START:].strip(),
        )


@dataclass
class TraceSQLLineHeader:
    """Header of a TraceSQL / PeopleCode trace line."""
    program: str
    process_id: int
    sequence: str
    time: str
    elapsed: float
    body: str
    cursor: Optional[int] = None
    database: Optional[str] = None
    rc_number: int = 0
    duration: float = 0.0

    # Example:
    # PSAPPSRV.5372 (2579) \t 1-135    11.54.18    0.000066 Cur#1.5372.HR92 RC=0 Dur=0.000042 COM Stmt=SELECT ...
    LINE_PATTERN = re.compile(
        r'^(\S+)\s+'                  # Program (PSAPPSRV.5372)
        r'\((\d+)\)\s+'               # Process / request id
        r'(\d+-\d+)\s+'               # Sequence
        r'(\d{1,2}\.\d{2}\.\d{2})\s+' # Timestamp HH.MM.SS
        r'([\d.]+)\s+'                # Elapsed since previous line
        r'(.*)$'                      # Body
    )

    SQL_PATTERN = re.compile(
        r'^Cur#(\d+)\.(\d+)\.(\S+)\s+'  # Cursor, pid, database
        r'RC=(-?\d+)\s+'                # Return code
        r'Dur=([\d.]+)\s*'              # Duration
        r'(.*)$'                        # Event
    )

    @property
    def is_sql(self) -> bool:
        return self.cursor is not None

    @classmethod
    def from_log_line(cls, log_line: str) -> Optional['TraceSQLLineHeader']:
        """
        Decode a TraceSQL line header.

        Args:
            log_line: Raw trace line

        Returns:
            Decoded header, or None if the line is not a trace event line
        """
        match = cls.LINE_PATTERN.match(log_line.strip())
        if not match:
            return None

        program, process_id, sequence, time_str, elapsed_str, body = match.groups()
        header = cls(
            program=program,
            process_id=_to_int(process_id, 'process_id', log_line),
            sequence=sequence,
            time=time_str,
            elapsed=_to_float(elapsed_str, 'elapsed', log_line),
            body=body.strip(),
        )

        sql_match = cls.SQL_PATTERN.match(header.body)
        if sql_match:
            cursor, _pid, database, rc, duration, event = sql_match.groups()
            header.cursor = _to_int(cursor, 'cursor', log_line)
            header.database = database
            header.rc_number = _to_int(rc, 'rc', log_line)
            header.duration = _to_float(duration, 'duration', log_line)
            header.body = event.strip()

        return header

"""
pytest configuration for the trace analyzer tests.

Adds src/ and the project root to sys.path so the flat modules and main.py
import the same way they do when run as scripts, and provides builders for
the three trace line layouts.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
for path in (project_root, project_root / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def make_cobol_line(body: str, cursor: int = 1, rc: int = 0,
                    elapsed: float = 0.0, sql_time: float = 0.0,
                    line: int = 1, time: str = "10:00:00.000") -> str:
    """Render a COBOL trace line with its fixed-width header columns."""
    return (f"{time:<12}  {line:>9}   {elapsed:7.4f}   {sql_time:7.4f}    "
            f"{cursor:>6}   {rc:>4} {body}")


def make_tracesql_line(body: str, cursor: int = 1, rc: int = 0,
                       duration: float = 0.0, seq: int = 1) -> str:
    """Render a TraceSQL cursor line."""
    return (f"PSAPPSRV.5372 (2579) \t 1-{seq:<6} 11.54.18    0.000066 "
            f"Cur#{cursor}.5372.HR92 RC={rc} Dur={duration:.6f} {body}")


def make_peoplecode_line(body: str, seq: int = 1) -> str:
    """Render a TraceSQL PeopleCode line (no cursor block)."""
    return f"PSAPPSRV.5372 (2579) \t 1-{seq:<6} 11.54.18    0.000010    {body}"


@pytest.fixture
def cobol_line():
    return make_cobol_line


@pytest.fixture
def tracesql_line():
    return make_tracesql_line


@pytest.fixture
def peoplecode_line():
    return make_peoplecode_line


@pytest.fixture
def feed():
    """Initialise processors on a fresh TraceData and push lines through them."""
    from trace_data import TraceData

    def _feed(processors, lines, complete=True):
        data = TraceData()
        for processor in processors:
            processor.processor_init(data)
        for line_number, line in enumerate(lines, 1):
            for processor in processors:
                processor.process_line(line, line_number)
        if complete:
            for processor in processors:
                processor.processor_complete(data)
        return data

    return _feed

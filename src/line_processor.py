"""
Line Processor Module
=====================
Contract shared by every per-format processor, plus the cursor bookkeeping
used by the SQL processors.

A processor sees each trace line exactly once, in file order:
- processor_init(data) before the first line
- process_line(line, line_number) for every line
- processor_complete(data) after the last line (skipped on cancellation)

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import sql_statistics
from sql_statement import SQLStatement
from trace_data import TraceData
from trace_errors import CursorStateError

logger = logging.getLogger(__name__)


class LineProcessor(ABC):
    """Base class for everything the pipeline driver dispatches lines to."""

    # Appends to TraceData.sql_statements
    produces_statements = False
    # Reads the most recently appended statement
    consumes_statements = False

    def __init__(self):
        self.trace_data: Optional[TraceData] = None

    def processor_init(self, data: TraceData):
        self.trace_data = data

    @abstractmethod
    def process_line(self, line: str, line_number: int):
        """Handle one raw trace line."""

    def processor_complete(self, data: TraceData):
        pass

    @property
    def name(self) -> str:
        return type(self).__name__


class CursorTrackingProcessor(LineProcessor):
    """SQL processor base that maps cursor numbers to their open statement."""

    produces_statements = True

    RTNCD_OK = 0
    RTNCD_END = 1

    def __init__(self):
        super().__init__()
        self.cursor_map: Dict[int, SQLStatement] = {}
        self.statements: List[SQLStatement] = []

    def processor_init(self, data: TraceData):
        super().processor_init(data)
        self.statements = data.sql_statements

    def _register(self, statement: SQLStatement, cursor: int):
        """Record a freshly compiled statement as the open one for ``cursor``."""
        previous = self.cursor_map.get(cursor)
        if previous is not None:
            logger.debug(f"Cursor {cursor} rebound from line {previous.line_number} to line {statement.line_number}")
        self.cursor_map[cursor] = statement
        self.statements.append(statement)

    def _statement_for(self, cursor: int, event: str, line_number: int) -> SQLStatement:
        statement = self.cursor_map.get(cursor)
        if statement is None:
            raise CursorStateError(cursor, event, line_number)
        return statement

    def _record_fetch(self, statement: SQLStatement, rc_number: int, duration: float, message: str):
        if rc_number == self.RTNCD_OK:
            statement.fetch_count += 1
            statement.fetch_time += duration
        elif rc_number == self.RTNCD_END:
            statement.fetch_time += duration
        else:
            statement.mark_error(rc_number, message)

    def processor_complete(self, data: TraceData):
        logger.info(f"{self.name}: {len(self.statements)} statements, "
                    f"{sum(1 for s in self.statements if s.is_error)} with errors")
        sql_statistics.aggregate(self.statements, data)

"""
Application Engine Trace Processors
===================================
Processors for Application Engine step traces (``.aet``).

An AE trace is step oriented. Each step starts with a timestamped header
whose leading dots give the nesting depth; SQL steps are followed by the
statement text and a lone ``/`` terminator:

    -- 10.15.00 ......(PSPMAGG.MAIN.Step01) (Call Section PSPMAGG.INIT)
    -- 10.15.00 ........(PSPMAGG.INIT.Step01) (SQL)
    UPDATE PS_AETEMPTBLMGR SET ...
    WHERE PROCESS_INSTANCE = 1234
    /
    -- Bind variables:
    --        1) 1234
    -- Row(s) affected: 1

Do Select steps dump the fetched row as "-- Buffers:" followed by numbered
values. SQL failures are reported as "... Error Position: n  Return: rc - msg".

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from execution_path import ExecutionPathBuilder
from line_processor import CursorTrackingProcessor
from sql_statement import SQLBindValue, SQLStatement
from trace_data import TraceData

logger = logging.getLogger(__name__)

STEP_PATTERN = re.compile(r'^-- (\d{1,2})\.(\d{2})\.(\d{2}) (\.*)\((\S+?)\) \((.+)\)\s*$')
TIMESTAMP_PATTERN = re.compile(r'^-- (\d{1,2})\.(\d{2})\.(\d{2}) ')

SQL_ACTIONS = ("SQL", "Do Select", "Do When", "Do While", "Do Until")

SECONDS_PER_DAY = 24 * 60 * 60

# AE traces carry no cursor numbers
AE_CURSOR = 0


@dataclass
class AEStep:
    """Decoded step header line."""
    seconds: int
    level: int
    name: str
    action: str

    @property
    def has_sql(self) -> bool:
        return self.action in SQL_ACTIONS


def parse_step(line: str) -> Optional[AEStep]:
    match = STEP_PATTERN.match(line.strip())
    if not match:
        return None
    hours, minutes, seconds, dots, name, action = match.groups()
    return AEStep(
        seconds=int(hours) * 3600 + int(minutes) * 60 + int(seconds),
        level=len(dots),
        name=name,
        action=action.strip(),
    )


def parse_timestamp(line: str) -> Optional[int]:
    match = TIMESTAMP_PATTERN.match(line.strip())
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds)


def is_terminator(line: str) -> bool:
    return line.strip() == "/"


class AETSQLProcessor(CursorTrackingProcessor):
    """Builds SQLStatements from the SQL steps of an AE trace."""

    BIND_HEADER_PATTERN = re.compile(r'^-- Bind variables:\s*$')
    BUFFER_HEADER_PATTERN = re.compile(r'^-- Buffers:\s*$')
    NUMBERED_VALUE_PATTERN = re.compile(r'^--\s+(\d+)\)\s?(.*)$')
    ERROR_PATTERN = re.compile(r'Error Position:\s*(\d+)\s+Return:\s*(-?\d+)\s*-\s*(.*)$')

    def __init__(self):
        super().__init__()
        self.collecting = False
        self.sql_lines: List[str] = []
        self.current_step: Optional[AEStep] = None
        self.last_statement: Optional[SQLStatement] = None

        # (statement, step start) waiting for the next timestamp
        self.timed_statement: Optional[Tuple[SQLStatement, int]] = None

        # Numbered "-- n) value" block being read: "binds" or "buffers"
        self.block: Optional[str] = None
        self.block_values: List[Tuple[int, str]] = []

    def process_line(self, line: str, line_number: int):
        stripped = line.strip()

        if self.block is not None:
            match = self.NUMBERED_VALUE_PATTERN.match(stripped)
            if match:
                self.block_values.append((int(match.group(1)), match.group(2).rstrip()))
                return
            self._finish_block(line_number)

        seconds = parse_timestamp(stripped)
        if seconds is not None:
            self._close_timing(seconds)

            step = parse_step(stripped)
            if step is not None:
                if self.collecting:
                    logger.warning(f"Line {line_number}: step {self.current_step.name} "
                                   f"ended without a statement terminator")
                self.current_step = step
                self.collecting = step.has_sql
                self.sql_lines = []
                return

        if self.collecting:
            if is_terminator(stripped):
                self._compile(line_number)
            elif stripped:
                self.sql_lines.append(stripped)
            return

        if self.BIND_HEADER_PATTERN.match(stripped):
            self.block = "binds"
            return

        if self.BUFFER_HEADER_PATTERN.match(stripped):
            self.block = "buffers"
            return

        match = self.ERROR_PATTERN.search(stripped)
        if match:
            if self.last_statement is None:
                logger.warning(f"Line {line_number}: SQL error reported before any statement")
                return
            self.last_statement.mark_error(
                int(match.group(2)), match.group(3).strip(), error_position=int(match.group(1)))

    def _compile(self, line_number: int):
        statement = SQLStatement(" ".join(self.sql_lines))
        statement.cursor = AE_CURSOR
        statement.line_number = line_number
        statement.context = self.current_step.name
        self._register(statement, AE_CURSOR)

        self.last_statement = statement
        self.timed_statement = (statement, self.current_step.seconds)
        self.collecting = False
        self.sql_lines = []

    def _close_timing(self, seconds: int):
        if self.timed_statement is None:
            return
        statement, started = self.timed_statement
        elapsed = seconds - started
        if elapsed < 0:
            elapsed += SECONDS_PER_DAY
        statement.exec_time = float(elapsed)
        self.timed_statement = None

    def _finish_block(self, line_number: int):
        kind, values = self.block, self.block_values
        self.block = None
        self.block_values = []

        statement = self.last_statement
        if statement is None:
            logger.warning(f"Line {line_number}: {kind} listed before any statement")
            return

        if kind == "binds":
            for index, value in values:
                statement.add_bind_value(SQLBindValue(index=index, length=len(value), value=value))
        else:
            statement.buffer_data = [value for _, value in values]
            statement.fetch_count += 1

    def processor_complete(self, data: TraceData):
        if self.block is not None:
            self._finish_block(0)
        if self.collecting:
            logger.warning(f"Trace ended inside step {self.current_step.name}; statement text discarded")
        super().processor_complete(data)


class AETExecutionPathProcessor(ExecutionPathBuilder):
    """Builds the section / step call tree of an AE trace."""

    context = "Application Engine"

    def __init__(self):
        super().__init__()
        self.sql_pending = False

    def process_line(self, line: str, line_number: int):
        self.last_line_number = line_number
        stripped = line.strip()

        step = parse_step(stripped)
        if step is not None:
            while self.current_call is not None and self.current_call.level >= step.level:
                self._pop(line_number - 1)
            self._push(self._new_call(f"{step.name} ({step.action})", line_number, level=step.level))
            self.sql_pending = step.has_sql
            return

        if self.sql_pending:
            if is_terminator(stripped):
                self._sql_leaf(line_number)
                self.sql_pending = False
            return

        upper = stripped.upper()
        if upper == "COMMIT":
            self._leaf("Commit", line_number)
        elif upper == "ROLLBACK":
            self._leaf("Rollback", line_number)

"""
COBOL Trace Processors
======================
Processors for "PeopleSoft Batch Timings Report" COBOL SQL traces.

Every event line starts with fixed-width columns (time, line, elapsed,
SQL time, cursor, return code) decoded by CobolLineHeader, followed by the
event text:

    COM Stmt=<sql>          compile
    CEX Stmt=<sql>          compile and execute
    GETSTMT Stmt=<id>, ...  stored statement id for the next compile
    EXE                     execute
    Fetch                   fetch (RC 0 = row, RC 1 = end of data)
    Bind-<n>, type=..., length=..., value=...
    Connect=... / Disconnect / Commit / Rollback

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import re
import logging
from typing import Optional

from execution_path import ExecutionPathBuilder
from line_header import CobolLineHeader
from line_processor import CursorTrackingProcessor
from sql_statement import SQLBindValue, SQLStatement

logger = logging.getLogger(__name__)


class CobolSQLProcessor(CursorTrackingProcessor):
    """Builds SQLStatements from a COBOL trace."""

    COMPILE_PATTERN = re.compile(r'COM Stmt=(.*)')
    COMPILE_EXECUTE_PATTERN = re.compile(r'CEX Stmt=(.*)')
    GET_STATEMENT_PATTERN = re.compile(r'GETSTMT Stmt=(.*?), length')
    EXECUTE_PATTERN = re.compile(r'^EXE\b')
    FETCH_PATTERN = re.compile(r'^Fetch\b\s*(.*)$')
    ERROR_PATTERN = re.compile(r'^ERR\b\s*(.*)$')
    BIND_PATTERN = re.compile(
        r'(Bind-(\d+)|Bind position=(\d+)), type=(.*?), '
        r'(precision=(\d+), scale=(\d+)|length=(\d+)), value=(.*)'
    )

    VALID_MARKERS = (
        "COM Stmt=", "Bind-", "Bind position", " Fetch", " EXE",
        " EPO", " ERR", " CEX Stmt=", " GETSTMT Stmt=",
    )

    # Only used when binds are substituted back into the statement text;
    # 19 means the value is written without quotes
    BIND_TYPES = {
        "SQLPSPD": 19,
        "SQLPSLO": 19,
        "SQLPSH": 19,
        "SQLPBUF": 0,
        "SQLPDAT": 0,
        "SQLPSTR": 0,
    }

    def __init__(self):
        super().__init__()
        self.pending_statement_id: Optional[str] = None

    @classmethod
    def is_valid(cls, line: Optional[str]) -> bool:
        if line is None:
            return False
        return any(marker in line for marker in cls.VALID_MARKERS)

    def process_line(self, line: str, line_number: int):
        if not self.is_valid(line):
            return

        header = CobolLineHeader.from_log_line(line)

        match = self.GET_STATEMENT_PATTERN.search(line)
        if match:
            self.pending_statement_id = match.group(1)
            return

        compile_match = self.COMPILE_PATTERN.search(line)
        compile_execute_match = self.COMPILE_EXECUTE_PATTERN.search(line)
        if compile_match or compile_execute_match:
            self._compile(compile_match or compile_execute_match, header, line_number,
                          executed=compile_execute_match is not None)
            return

        if self.EXECUTE_PATTERN.match(header.body):
            statement = self._statement_for(header.cursor, "EXE", line_number)
            statement.exec_time = header.duration
            return

        match = self.FETCH_PATTERN.match(header.body)
        if match:
            statement = self._statement_for(header.cursor, "Fetch", line_number)
            self._record_fetch(statement, header.rc_number, header.duration, match.group(1))
            return

        match = self.BIND_PATTERN.search(line)
        if match:
            statement = self._statement_for(header.cursor, "Bind", line_number)
            statement.add_bind_value(self._parse_bind(match))
            return

        match = self.ERROR_PATTERN.match(header.body)
        if match:
            statement = self.cursor_map.get(header.cursor)
            if statement is None:
                logger.warning(f"Line {line_number}: ERR on cursor {header.cursor} with no open statement")
                return
            statement.mark_error(header.rc_number, match.group(1))

    def _compile(self, match, header: CobolLineHeader, line_number: int, executed: bool):
        statement = SQLStatement(match.group(1))
        statement.cobol = True
        statement.cursor = header.cursor
        statement.rc_number = header.rc_number
        statement.line_number = line_number

        if executed:
            statement.exec_time = header.sql_duration

        if self.pending_statement_id is not None:
            statement.sql_id = self.pending_statement_id
            self.pending_statement_id = None

        self._register(statement, header.cursor)

    def _parse_bind(self, match) -> SQLBindValue:
        index = match.group(2) or match.group(3)
        type_name = match.group(4)
        # Precision stands in for length on numeric binds
        length = match.group(6) or match.group(8)
        return SQLBindValue(
            index=int(index),
            type=self.BIND_TYPES.get(type_name, 0),
            type_string=f"{type_name} ({match.group(5)})",
            length=int(length),
            value=match.group(9),
        )


class CobolExecutionPathProcessor(ExecutionPathBuilder):
    """Builds the connect / statement / commit call tree of a COBOL trace."""

    context = "Cobol Trace"

    CONNECT_PATTERN = re.compile(r'\sConnect=')
    DISCONNECT_PATTERN = re.compile(r'\sDisconnect$')
    ROLLBACK_PATTERN = re.compile(r'\sRollback$')
    COMMIT_PATTERN = re.compile(r'\sCommit$')
    STATEMENT_PATTERN = re.compile(r'(COM|CEX) Stmt=(.*)')

    @staticmethod
    def is_valid(line: Optional[str]) -> bool:
        if line is None:
            return False
        return (" Connect=" in line
                or line.endswith(" Disconnect")
                or line.endswith(" Rollback")
                or line.endswith(" Commit")
                or "COM Stmt=" in line
                or "CEX Stmt=" in line)

    def process_line(self, line: str, line_number: int):
        self.last_line_number = line_number
        line = line.rstrip()
        if not self.is_valid(line):
            return

        header = CobolLineHeader.from_log_line(line)

        if self.CONNECT_PATTERN.search(line):
            self._push(self._new_call(f"Start Cursor #{header.cursor}", line_number))
            return

        if self.DISCONNECT_PATTERN.search(line):
            if self.current_call is None:
                self._leaf("Disconnect", line_number)
            else:
                self._pop(line_number)
            return

        if self.ROLLBACK_PATTERN.search(line):
            self._leaf("Rollback", line_number)
            return

        if self.COMMIT_PATTERN.search(line):
            self._leaf("Commit", line_number)
            return

        match = self.STATEMENT_PATTERN.search(line)
        if match:
            self._sql_leaf(line_number, duration=header.sql_duration, label=match.group(2).strip())

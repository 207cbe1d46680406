"""
TraceSQL Processors
===================
Processors for PeopleSoft SQL / PeopleCode traces (``.tracesql`` files and
Application Engine "AE SQL/PeopleCode Trace" ``.trc`` files).

SQL lines carry a cursor block after the common prefix:

    PSAPPSRV.5372 (2579)   1-135  11.54.18  0.000066 Cur#1.5372.HR92 RC=0 Dur=0.000042 COM Stmt=SELECT ...
    PSAPPSRV.5372 (2579)   1-136  11.54.18  0.000020 Cur#1.5372.HR92 RC=0 Dur=0.000000 Bind-1 type=2 length=4 value=PTPP

PeopleCode lines carry call / return markers instead:

    PSAPPSRV.5372 (2579)   1-140  11.54.18  0.000010    >>> start     Nest=00  RECORD.FIELD.FieldChange
    PSAPPSRV.5372 (2579)   1-160  11.54.18  0.000090    <<< end       Nest=00  RECORD.FIELD.FieldChange  Dur=0.000150 CPU=0.000000

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import re
import logging

from execution_path import ExecutionPathBuilder
from line_header import TraceSQLLineHeader
from line_processor import CursorTrackingProcessor
from sql_statement import SQLBindValue, SQLStatement

logger = logging.getLogger(__name__)

COMPILE_PATTERN = re.compile(r'^(COM|CEX) Stmt=(.*)$')


class TraceSQLProcessor(CursorTrackingProcessor):
    """Builds SQLStatements from the cursor lines of a TraceSQL file."""

    EXECUTE_PATTERN = re.compile(r'^EXE\b')
    FETCH_PATTERN = re.compile(r'^Fetch\b\s*(.*)$')
    BIND_PATTERN = re.compile(r'^Bind-(\d+)\s+type=(\d+)\s+length=(\d+)\s+value=(.*)$')
    ERROR_PATTERN = re.compile(r'^ERR\s+rtncd=(-?\d+)\s+msg=(.*)$')

    def process_line(self, line: str, line_number: int):
        header = TraceSQLLineHeader.from_log_line(line)
        if header is None or not header.is_sql:
            return

        body = header.body

        match = COMPILE_PATTERN.match(body)
        if match:
            statement = SQLStatement(match.group(2))
            statement.cursor = header.cursor
            statement.rc_number = header.rc_number
            statement.line_number = line_number
            statement.context = f"{header.program} ({header.process_id})"
            if match.group(1) == "CEX":
                statement.exec_time = header.duration
            self._register(statement, header.cursor)
            return

        if self.EXECUTE_PATTERN.match(body):
            statement = self._statement_for(header.cursor, "EXE", line_number)
            statement.exec_time = header.duration
            return

        match = self.FETCH_PATTERN.match(body)
        if match:
            statement = self._statement_for(header.cursor, "Fetch", line_number)
            self._record_fetch(statement, header.rc_number, header.duration, match.group(1))
            return

        match = self.BIND_PATTERN.match(body)
        if match:
            statement = self._statement_for(header.cursor, "Bind", line_number)
            index, bind_type, length, value = match.groups()
            statement.add_bind_value(SQLBindValue(
                index=int(index),
                type=int(bind_type),
                type_string=f"type={bind_type}",
                length=int(length),
                value=value,
            ))
            return

        match = self.ERROR_PATTERN.match(body)
        if match:
            statement = self._statement_for(header.cursor, "ERR", line_number)
            statement.mark_error(int(match.group(1)), match.group(2).strip())


class TraceSQLExecutionPathProcessor(ExecutionPathBuilder):
    """Builds the PeopleCode and transaction call tree of a TraceSQL file."""

    context = "TraceSQL"

    CALL_PATTERN = re.compile(r'^>>>\s+(start(?:-ext)?|call \w+|resume)\s+Nest=(\d+)\s+(\S+)(?:\s+(\S+))?')
    RETURN_PATTERN = re.compile(r'^<<<\s+(end(?:-\w+)?|pause)\s+Nest=(\d+)\s+(\S+)(?:.*?\bDur=([\d.]+))?')

    def process_line(self, line: str, line_number: int):
        self.last_line_number = line_number
        header = TraceSQLLineHeader.from_log_line(line)
        if header is None:
            return

        if header.is_sql:
            self._process_sql_event(header, line_number)
        else:
            self._process_peoplecode_event(header, line_number)

    def _process_sql_event(self, header: TraceSQLLineHeader, line_number: int):
        body = header.body

        if body.startswith("Connect="):
            self._push(self._new_call(f"Start Cursor #{header.cursor}", line_number))
        elif body == "Disconnect":
            if self.current_call is None:
                self._leaf("Disconnect", line_number)
            else:
                self._pop(line_number)
        elif body == "Commit":
            self._leaf("Commit", line_number)
        elif body == "Rollback":
            self._leaf("Rollback", line_number)
        else:
            match = COMPILE_PATTERN.match(body)
            if match:
                self._sql_leaf(line_number, duration=header.duration, label=match.group(2).strip())

    def _process_peoplecode_event(self, header: TraceSQLLineHeader, line_number: int):
        match = self.CALL_PATTERN.match(header.body)
        if match:
            _kind, nest, program, function = match.groups()
            label = f"{program} {function}" if function else program
            self._push(self._new_call(label, line_number, level=int(nest)))
            return

        match = self.RETURN_PATTERN.match(header.body)
        if match:
            duration = match.group(4)
            closed = self._pop(line_number, float(duration) if duration else None)
            if closed is None:
                logger.debug(f"Line {line_number}: return from {match.group(3)} with no open call")

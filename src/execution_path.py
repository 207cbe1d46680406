"""
Execution Path Module
=====================
Rebuilds the hierarchical call history of a trace.

Builders keep a single ``current_call`` pointer instead of a recursion
stack:
- a push links the new call under the current one and makes it current
- a pop closes the current call and moves back to its parent; popping with
  nothing open leaves the pointer empty
- leaves (commits, rollbacks, SQL statements) are linked without moving the
  pointer

Calls with no parent become roots of TraceData.execution_path. Every call,
root or not, is also registered in TraceData.all_execution_calls.

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import logging
from typing import Optional

from line_processor import LineProcessor
from trace_data import ExecutionCall, ExecutionCallType, TraceData
from trace_errors import ProcessorOrderError

logger = logging.getLogger(__name__)


class ExecutionPathBuilder(LineProcessor):
    """Base class for the per-format call tree processors."""

    consumes_statements = True
    context = "Trace"

    def __init__(self):
        super().__init__()
        self.current_call: Optional[ExecutionCall] = None
        self.last_line_number = 0

    @staticmethod
    def _new_call(label: str, line_number: int, level: int = 0) -> ExecutionCall:
        return ExecutionCall(function=label, start_line=line_number, stop_line=line_number, level=level)

    def _attach(self, call: ExecutionCall) -> ExecutionCall:
        if self.current_call is not None:
            call.parent = self.current_call
            self.current_call.children.append(call)
        else:
            call.context = self.context
            self.trace_data.execution_path.append(call)
        self.trace_data.all_execution_calls.append(call)
        return call

    def _push(self, call: ExecutionCall) -> ExecutionCall:
        self._attach(call)
        self.current_call = call
        return call

    def _pop(self, line_number: int, duration: Optional[float] = None) -> Optional[ExecutionCall]:
        closed = self.current_call
        if closed is None:
            return None
        closed.stop_line = line_number
        if duration is not None:
            closed.duration = duration
        self.current_call = closed.parent
        return closed

    def _leaf(self, label: str, line_number: int) -> ExecutionCall:
        return self._attach(ExecutionCall(
            function=label,
            type=ExecutionCallType.CALL,
            start_line=line_number,
            stop_line=line_number,
        ))

    def _sql_leaf(self, line_number: int, duration: float = 0.0, label: Optional[str] = None) -> ExecutionCall:
        """Link a leaf to the statement the SQL processor produced for this same line."""
        statements = self.trace_data.sql_statements
        if not statements:
            raise ProcessorOrderError(
                f"{self.name} saw a statement line before any statement was parsed", line_number)
        statement = statements[-1]

        call = self._attach(ExecutionCall(
            function=label if label is not None else statement.statement,
            type=ExecutionCallType.SQL,
            start_line=line_number,
            stop_line=line_number,
            duration=duration,
            sql_statement=statement,
        ))
        statement.parent_call = call
        return call

    def processor_complete(self, data: TraceData):
        open_calls = 0
        while self.current_call is not None:
            self._pop(self.last_line_number)
            open_calls += 1
        if open_calls:
            logger.debug(f"{self.name}: closed {open_calls} calls left open at end of trace")
        logger.info(f"{self.name}: {len(data.execution_path)} root calls, "
                    f"{len(data.all_execution_calls)} calls total")

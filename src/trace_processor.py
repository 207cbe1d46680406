"""
Trace Processor Module
======================
Drives one processing run over one trace file.

This module handles:
- Detecting the trace layout from the file extension and banner line
- Building the ordered processor set for that layout
- Streaming every line to every processor, with progress reporting and
  cooperative cancellation
- Running the processors' completion hooks and returning the TraceData
- Running the whole thing on a background thread for interactive callers

Processor order matters: statement processors must see a line before the
call-tree processors that link to "the statement just parsed". TraceProcessor
refuses a set that breaks this rule.

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import logging
import queue
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from aet_processor import AETExecutionPathProcessor, AETSQLProcessor
from cobol_processor import CobolExecutionPathProcessor, CobolSQLProcessor
from line_processor import LineProcessor
from trace_config import TraceConfig
from trace_data import TraceData
from trace_errors import ProcessorOrderError, TraceProcessingError, UnsupportedTraceFormatError
from tracesql_processor import TraceSQLExecutionPathProcessor, TraceSQLProcessor

logger = logging.getLogger(__name__)

AE_TRACESQL_BANNER = "AE SQL/PeopleCode Trace"
COBOL_BANNER = "PeopleSoft Batch Timings Report"


class TraceType(Enum):
    """Supported trace layouts."""
    TRACESQL = "tracesql"
    AET = "aet"
    COBOL = "cobol"


def make_set_for(trace_type: TraceType) -> List[LineProcessor]:
    """
    Build a fresh, correctly ordered processor set for a trace layout.

    Statement processors always come first.
    """
    if trace_type == TraceType.AET:
        return [AETSQLProcessor(), AETExecutionPathProcessor()]
    if trace_type == TraceType.TRACESQL:
        return [TraceSQLProcessor(), TraceSQLExecutionPathProcessor()]
    if trace_type == TraceType.COBOL:
        return [CobolSQLProcessor(), CobolExecutionPathProcessor()]
    raise UnsupportedTraceFormatError(f"No processors for trace type {trace_type}")


def detect_trace_type(trace_file: Path, encoding: str = "utf-8") -> Optional[TraceType]:
    """
    Work out which layout a trace file uses.

    ``.aet`` and ``.tracesql`` are decided by extension alone. ``.trc`` is
    shared by AE SQL traces and COBOL timing reports, so the banner on the
    first line decides.

    Returns:
        The trace type, or None if the file is not recognised
    """
    trace_file = Path(trace_file)
    extension = trace_file.suffix.lower()

    if extension == ".aet":
        return TraceType.AET
    if extension == ".tracesql":
        return TraceType.TRACESQL
    if extension == ".trc":
        with open(trace_file, 'r', encoding=encoding, errors='replace') as f:
            first_line = f.readline()
        if AE_TRACESQL_BANNER in first_line:
            return TraceType.TRACESQL
        if COBOL_BANNER in first_line:
            return TraceType.COBOL
        logger.warning(f"Unrecognised .trc banner in {trace_file.name}: {first_line.strip()[:80]!r}")
    return None


@dataclass
class TraceOutcome:
    """Terminal outcome of a run: a result, or a cancellation with no result."""
    result: Optional[TraceData] = None
    cancelled: bool = False


def validate_processor_order(processors: List[LineProcessor]):
    """Raise ProcessorOrderError if a consumer precedes every producer."""
    seen_producer = False
    for processor in processors:
        if processor.consumes_statements and not seen_producer:
            raise ProcessorOrderError(
                f"{processor.name} needs a statement processor registered before it")
        seen_producer = seen_producer or processor.produces_statements


class TraceProcessor:
    """Runs a processor set over a trace file."""

    def __init__(self, trace_file: Path,
                 processors: List[LineProcessor],
                 config: Optional[TraceConfig] = None,
                 progress_callback: Optional[Callable[[int], None]] = None,
                 trace_type: Optional[TraceType] = None):
        """
        Initialize the trace processor.

        Args:
            trace_file: Path to the trace file
            processors: Processors in dispatch order
            config: Runtime configuration (defaults if omitted)
            progress_callback: Called with an integer percentage as lines are read
            trace_type: Detected layout, for logging
        """
        validate_processor_order(processors)

        self.trace_file = Path(trace_file)
        self.processors = processors
        self.config = config or TraceConfig()
        self.progress_callback = progress_callback
        self.trace_type = trace_type
        self._cancel_requested = threading.Event()

        self.line_count = 0
        self.lines_processed = 0

        logger.info(f"Initialized TraceProcessor for {self.trace_file.name} "
                    f"with {[p.name for p in processors]}")

    def cancel(self):
        """Ask the run to stop before its next line. Safe to call repeatedly."""
        if not self._cancel_requested.is_set():
            logger.info(f"Cancellation requested for {self.trace_file.name}")
        self._cancel_requested.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def _open(self):
        return open(self.trace_file, 'r',
                    encoding=self.config.encoding,
                    errors=self.config.encoding_errors)

    def count_lines(self) -> int:
        with self._open() as f:
            return sum(1 for _ in f)

    def _report_progress(self, percent: int):
        logger.debug(f"Progress: {percent}% ({self.lines_processed:,}/{self.line_count:,} lines)")
        if self.progress_callback is not None:
            self.progress_callback(percent)

    def run(self) -> TraceOutcome:
        """
        Process the whole file.

        Returns:
            TraceOutcome carrying the TraceData, or cancelled=True and no result

        Raises:
            TraceProcessingError: if the trace is structurally inconsistent
        """
        start_time = datetime.now()
        self.line_count = self.count_lines()
        logger.info(f"Processing {self.trace_file.name}: {self.line_count:,} lines")

        data = TraceData()
        for processor in self.processors:
            processor.processor_init(data)

        report_increment = max(1, int(self.line_count * self.config.progress_fraction))
        lines_until_report = report_increment
        line_number = 0

        with self._open() as f:
            for raw_line in f:
                if self._cancel_requested.is_set():
                    logger.info(f"Processing cancelled at line {line_number:,}")
                    return TraceOutcome(result=None, cancelled=True)

                line = raw_line.rstrip("\r\n")
                line_number += 1
                self.lines_processed = line_number

                lines_until_report -= 1
                if lines_until_report == 0:
                    self._report_progress(int(line_number / self.line_count * 100))
                    lines_until_report = report_increment

                try:
                    for processor in self.processors:
                        processor.process_line(line, line_number)
                except TraceProcessingError as e:
                    if e.line_number is None:
                        e.line_number = line_number
                    logger.error(f"Processing failed in {processor.name}: {e}")
                    raise

        for processor in self.processors:
            processor.processor_complete(data)

        duration = (datetime.now() - start_time).total_seconds()
        summary = data.summary()
        logger.info(f"Processing complete: {summary['sql_statements']} statements, "
                    f"{summary['execution_calls']} calls from {line_number:,} lines in {duration:.2f}s")
        return TraceOutcome(result=data)


def for_file(trace_file: Path,
             config: Optional[TraceConfig] = None,
             progress_callback: Optional[Callable[[int], None]] = None) -> TraceProcessor:
    """
    Create a TraceProcessor with the right processor set for a file.

    Raises:
        UnsupportedTraceFormatError: if the layout cannot be recognised
    """
    config = config or TraceConfig()
    trace_type = detect_trace_type(trace_file, config.encoding)
    if trace_type is None:
        raise UnsupportedTraceFormatError(f"Unrecognised trace file: {Path(trace_file).name}")
    logger.info(f"Detected {trace_type.value} trace: {Path(trace_file).name}")
    return TraceProcessor(trace_file, make_set_for(trace_type), config=config,
                          progress_callback=progress_callback, trace_type=trace_type)


@dataclass
class WorkerEvent:
    """Message posted by a TraceWorker: progress, finished, cancelled or failed."""
    kind: str
    payload: Any = None


class TraceWorker:
    """Runs a TraceProcessor on a background thread and posts events to a queue."""

    PROGRESS = "progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"

    def __init__(self, processor: TraceProcessor):
        self.processor = processor
        self.events: "queue.Queue[WorkerEvent]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        processor.progress_callback = self._post_progress

    def _post_progress(self, percent: int):
        self.events.put(WorkerEvent(self.PROGRESS, percent))

    def start(self):
        self._thread = threading.Thread(target=self._run, name="TraceWorker", daemon=True)
        self._thread.start()

    def cancel(self):
        self.processor.cancel()

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        try:
            outcome = self.processor.run()
        except Exception as e:
            self.events.put(WorkerEvent(self.FAILED, (f"{type(e).__name__}: {e}", traceback.format_exc())))
            return

        if outcome.cancelled:
            self.events.put(WorkerEvent(self.CANCELLED))
        else:
            self.events.put(WorkerEvent(self.FINISHED, outcome.result))

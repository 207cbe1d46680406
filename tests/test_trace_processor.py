"""
Tests for trace_processor.py

Validates:
- Trace layout detection by extension and banner
- Processor set construction and order validation
- End-to-end runs with progress reporting
- Cooperative cancellation and error line numbers
- Background worker events
"""

import pytest

from aet_processor import AETExecutionPathProcessor, AETSQLProcessor
from cobol_processor import CobolExecutionPathProcessor, CobolSQLProcessor
from conftest import make_cobol_line, make_tracesql_line
from trace_config import TraceConfig
from trace_errors import CursorStateError, ProcessorOrderError, UnsupportedTraceFormatError
from trace_processor import (
    TraceProcessor,
    TraceType,
    TraceWorker,
    detect_trace_type,
    for_file,
    make_set_for,
    validate_processor_order,
)
from tracesql_processor import TraceSQLExecutionPathProcessor, TraceSQLProcessor


def write_trace(path, lines):
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def cobol_trace(tmp_path):
    lines = ["PeopleSoft Batch Timings Report"]
    lines.append(make_cobol_line("Connect=HR92/SYSADM/", cursor=1))
    for index in range(20):
        lines.append(make_cobol_line(f"COM Stmt=SELECT A FROM PS_X WHERE B = {index % 2}", cursor=1))
        lines.append(make_cobol_line("EXE", cursor=1, elapsed=0.1))
        lines.append(make_cobol_line("Fetch", cursor=1, rc=1, elapsed=0.01))
    lines.append(make_cobol_line("Commit", cursor=1))
    lines.append(make_cobol_line("Disconnect", cursor=1))
    return write_trace(tmp_path / "PSPMTRAN.trc", lines)


# ---------------------------------------------------------------------------
# Detection and processor sets
# ---------------------------------------------------------------------------

def test_detect_by_extension(tmp_path):
    aet = write_trace(tmp_path / "AE_PSPMAGG_1.aet", ["-- anything"])
    tracesql = write_trace(tmp_path / "session.tracesql", ["anything"])
    assert detect_trace_type(aet) == TraceType.AET
    assert detect_trace_type(tracesql) == TraceType.TRACESQL


def test_detect_trc_banner(tmp_path):
    ae_sql = write_trace(tmp_path / "ae.trc", ["PeopleTools 8.58 - AE SQL/PeopleCode Trace - 2026-10-19"])
    cobol = write_trace(tmp_path / "cobol.trc", ["PeopleSoft Batch Timings Report"])
    other = write_trace(tmp_path / "other.trc", ["something else"])

    assert detect_trace_type(ae_sql) == TraceType.TRACESQL
    assert detect_trace_type(cobol) == TraceType.COBOL
    assert detect_trace_type(other) is None


def test_detect_unknown_extension(tmp_path):
    assert detect_trace_type(write_trace(tmp_path / "notes.txt", ["x"])) is None


@pytest.mark.parametrize("trace_type,expected", [
    (TraceType.AET, (AETSQLProcessor, AETExecutionPathProcessor)),
    (TraceType.TRACESQL, (TraceSQLProcessor, TraceSQLExecutionPathProcessor)),
    (TraceType.COBOL, (CobolSQLProcessor, CobolExecutionPathProcessor)),
])
def test_make_set_for(trace_type, expected):
    processors = make_set_for(trace_type)
    assert tuple(type(p) for p in processors) == expected


def test_make_set_for_returns_fresh_instances():
    first = make_set_for(TraceType.COBOL)
    second = make_set_for(TraceType.COBOL)
    assert first[0] is not second[0]


def test_consumer_before_producer_is_rejected(tmp_path):
    processors = [CobolExecutionPathProcessor(), CobolSQLProcessor()]
    with pytest.raises(ProcessorOrderError):
        validate_processor_order(processors)
    with pytest.raises(ProcessorOrderError):
        TraceProcessor(tmp_path / "x.trc", processors)


def test_for_file_rejects_unknown_layout(tmp_path):
    with pytest.raises(UnsupportedTraceFormatError):
        for_file(write_trace(tmp_path / "notes.txt", ["x"]))


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------

def test_end_to_end_cobol_run(cobol_trace):
    outcome = for_file(cobol_trace).run()

    assert not outcome.cancelled
    data = outcome.result
    assert len(data.sql_statements) == 20
    assert len(data.execution_path) == 1
    root = data.execution_path[0]
    assert root.function == "Start Cursor #1"
    assert len(root.children) == 21
    assert root.stop_line == 64

    where = {g.where_clause: g for g in data.sql_by_where}
    assert where["B = 0"].number_of_calls == 10
    assert where["B = 1"].number_of_calls == 10
    assert where["B = 0"].total_time == pytest.approx(1.1)
    assert data.statistics[0].value == "20"


def test_progress_is_reported(cobol_trace):
    seen = []
    processor = for_file(cobol_trace, TraceConfig(progress_fraction=0.1), progress_callback=seen.append)
    processor.run()

    # 64 lines, reported every 6
    assert len(seen) == 10
    assert seen[0] == 9
    assert seen == sorted(seen)
    assert all(0 < p <= 100 for p in seen)


def test_progress_on_tiny_file(tmp_path):
    trace = write_trace(tmp_path / "tiny.trc", ["PeopleSoft Batch Timings Report"])
    seen = []
    for_file(trace, progress_callback=seen.append).run()
    assert seen == [100]


def test_cancel_from_progress_callback(cobol_trace):
    processor = for_file(cobol_trace, TraceConfig(progress_fraction=0.1))
    processor.progress_callback = lambda percent: processor.cancel()

    outcome = processor.run()

    assert outcome.cancelled
    assert outcome.result is None
    assert processor.cancel_requested
    assert processor.lines_processed < processor.line_count
    sql_processor = processor.processors[0]
    assert sql_processor.trace_data.statistics == []


def test_cancel_before_run(cobol_trace):
    processor = for_file(cobol_trace)
    processor.cancel()
    processor.cancel()
    outcome = processor.run()
    assert outcome.cancelled
    assert processor.lines_processed == 0


def test_error_carries_line_number(tmp_path):
    trace = write_trace(tmp_path / "broken.tracesql", [
        make_tracesql_line("COM Stmt=SELECT A FROM PS_X", cursor=1),
        make_tracesql_line("EXE", cursor=2),
    ])
    with pytest.raises(CursorStateError) as excinfo:
        for_file(trace).run()
    assert excinfo.value.line_number == 2
    assert str(excinfo.value).startswith("line 2:")


def test_crlf_line_endings(tmp_path):
    trace = tmp_path / "crlf.tracesql"
    trace.write_bytes((make_tracesql_line("COM Stmt=SELECT A FROM PS_X", cursor=1) + "\r\n").encode())
    data = for_file(trace).run().result
    assert data.sql_statements[0].statement == "SELECT A FROM PS_X"


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

def _drain(worker):
    events = []
    while True:
        event = worker.events.get(timeout=10)
        events.append(event)
        if event.kind != TraceWorker.PROGRESS:
            return events


def test_worker_posts_progress_then_result(cobol_trace):
    worker = TraceWorker(for_file(cobol_trace))
    worker.start()
    events = _drain(worker)
    worker.join()

    assert events[-1].kind == TraceWorker.FINISHED
    assert len(events[-1].payload.sql_statements) == 20
    assert any(e.kind == TraceWorker.PROGRESS for e in events[:-1])
    assert not worker.is_alive()


def test_worker_reports_failure(tmp_path):
    trace = write_trace(tmp_path / "broken.tracesql", [make_tracesql_line("EXE", cursor=2)])
    worker = TraceWorker(for_file(trace))
    worker.start()
    events = _drain(worker)
    worker.join()

    message, tb = events[-1].payload
    assert events[-1].kind == TraceWorker.FAILED
    assert message.startswith("CursorStateError: line 1:")
    assert "Traceback" in tb


def test_worker_reports_cancellation(cobol_trace):
    worker = TraceWorker(for_file(cobol_trace))
    worker.cancel()
    worker.start()
    events = _drain(worker)
    worker.join()
    assert events[-1].kind == TraceWorker.CANCELLED
    assert events[-1].payload is None

"""
Tests for aet_processor.py

Validates:
- Step header decoding (time, nesting level, name, action)
- Multi-line statement collection up to the "/" terminator
- Bind and buffer blocks, error reporting, timestamp based exec time
- Section / step call tree with SQL leaves
"""

import pytest

from aet_processor import AETExecutionPathProcessor, AETSQLProcessor, parse_step, parse_timestamp
from trace_data import ExecutionCallType


SAMPLE_TRACE = [
    "-- 10.15.00 ......(PSPMAGG.MAIN.Step01) (Call Section PSPMAGG.INIT)",
    "-- 10.15.00 ........(PSPMAGG.INIT.Step01) (SQL)",
    "UPDATE PS_AETEMPTBLMGR SET PROCESS_INSTANCE = 0",
    "WHERE PROCESS_INSTANCE = 1234",
    "/",
    "-- Bind variables:",
    "--        1) 1234",
    "-- Row(s) affected: 1",
    "COMMIT",
    "-- 10.15.03 ........(PSPMAGG.INIT.Step02) (Do Select)",
    "%Select(EMPLID, EMPL_RCD) SELECT EMPLID, EMPL_RCD FROM PS_JOB",
    "/",
    "-- Buffers:",
    "--        1) KU0001",
    "--        2) 0",
    "-- 10.15.04 ......(PSPMAGG.MAIN.Step02) (PeopleCode)",
]


@pytest.fixture
def processors():
    return [AETSQLProcessor(), AETExecutionPathProcessor()]


# ---------------------------------------------------------------------------
# Step headers
# ---------------------------------------------------------------------------

def test_parse_step():
    step = parse_step("-- 10.15.03 ........(PSPMAGG.INIT.Step02) (Do Select)")
    assert step.seconds == 10 * 3600 + 15 * 60 + 3
    assert step.level == 8
    assert step.name == "PSPMAGG.INIT.Step02"
    assert step.action == "Do Select"
    assert step.has_sql


def test_parse_step_without_sql_action():
    step = parse_step("-- 9.00.00 ..(PSPMAGG.MAIN.Step01) (Call Section PSPMAGG.INIT)")
    assert step.level == 2
    assert not step.has_sql


@pytest.mark.parametrize("line", [
    "-- Bind variables:",
    "UPDATE PS_X SET A = 1",
    "-- 10.15.00 Restart information",
])
def test_parse_step_rejects_other_lines(line):
    assert parse_step(line) is None


def test_parse_timestamp():
    assert parse_timestamp("-- 00.00.05 Restart information") == 5
    assert parse_timestamp("COMMIT") is None


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

def test_statements_are_collected_until_terminator(feed):
    data = feed([AETSQLProcessor()], SAMPLE_TRACE)

    assert len(data.sql_statements) == 2
    update, select = data.sql_statements
    assert update.statement == ("UPDATE PS_AETEMPTBLMGR SET PROCESS_INSTANCE = 0 "
                                "WHERE PROCESS_INSTANCE = 1234")
    assert update.context == "PSPMAGG.INIT.Step01"
    assert update.line_number == 5
    assert update.cursor == 0


def test_bind_block(feed):
    data = feed([AETSQLProcessor()], SAMPLE_TRACE)
    binds = data.sql_statements[0].current_execution.bind_values
    assert len(binds) == 1
    assert binds[0].index == 1
    assert binds[0].value == "1234"
    assert binds[0].length == 4


def test_buffer_block_counts_a_fetch(feed):
    data = feed([AETSQLProcessor()], SAMPLE_TRACE)
    select = data.sql_statements[1]
    assert select.buffer_data == ["KU0001", "0"]
    assert select.fetch_count == 1
    assert select.get_buffer_items() == {"EMPLID": "KU0001", "EMPL_RCD": "0"}


def test_exec_time_runs_to_next_timestamp(feed):
    data = feed([AETSQLProcessor()], SAMPLE_TRACE)
    update, select = data.sql_statements
    assert update.exec_time == pytest.approx(3.0)
    assert select.exec_time == pytest.approx(1.0)


def test_exec_time_wraps_at_midnight(feed):
    data = feed([AETSQLProcessor()], [
        "-- 23.59.58 ..(PSPMAGG.MAIN.Step01) (SQL)",
        "DELETE FROM PS_X",
        "/",
        "-- 00.00.01 ..(PSPMAGG.MAIN.Step02) (PeopleCode)",
    ])
    assert data.sql_statements[0].exec_time == pytest.approx(3.0)


def test_error_position_marks_last_statement(feed):
    data = feed([AETSQLProcessor()], [
        "-- 10.00.00 ..(PSPMAGG.MAIN.Step01) (SQL)",
        "SELECT A FROM PS_MISSING",
        "/",
        "-- Error Position: 14  Return: 942 - ORA-00942: table or view does not exist",
    ])
    statement = data.sql_statements[0]
    assert statement.is_error
    assert statement.error_info.return_code == 942
    assert statement.error_info.error_position == 14
    assert statement.error_info.message.startswith("ORA-00942")


def test_open_block_is_finished_at_end_of_trace(feed):
    data = feed([AETSQLProcessor()], [
        "-- 10.00.00 ..(PSPMAGG.MAIN.Step01) (SQL)",
        "SELECT A FROM PS_X WHERE B = :1",
        "/",
        "-- Bind variables:",
        "--        1) X",
    ])
    assert data.sql_statements[0].current_execution.bind_values[0].value == "X"


def test_unterminated_statement_is_dropped(feed):
    data = feed([AETSQLProcessor()], [
        "-- 10.00.00 ..(PSPMAGG.MAIN.Step01) (SQL)",
        "SELECT A FROM PS_X",
    ])
    assert data.sql_statements == []


# ---------------------------------------------------------------------------
# Execution path
# ---------------------------------------------------------------------------

def test_step_tree(feed, processors):
    data = feed(processors, SAMPLE_TRACE)

    roots = data.execution_path
    assert [r.function for r in roots] == [
        "PSPMAGG.MAIN.Step01 (Call Section PSPMAGG.INIT)",
        "PSPMAGG.MAIN.Step02 (PeopleCode)",
    ]
    assert all(r.context == "Application Engine" for r in roots)

    main_step = roots[0]
    assert main_step.stop_line == 15
    assert [c.function for c in main_step.children] == [
        "PSPMAGG.INIT.Step01 (SQL)",
        "PSPMAGG.INIT.Step02 (Do Select)",
    ]

    first_step = main_step.children[0]
    assert [c.type for c in first_step.children] == [ExecutionCallType.SQL, ExecutionCallType.CALL]
    assert first_step.children[0].sql_statement is data.sql_statements[0]
    assert first_step.children[1].function == "Commit"

    second_step = main_step.children[1]
    assert second_step.children[0].sql_statement is data.sql_statements[1]
    assert processors[1].current_call is None

"""
Tests for graph_builder.py

The Neo4j driver is replaced with a mock; the tests check which nodes and
relationships the builder asks for, not Cypher semantics.
"""

import json
from unittest import mock

import pytest
from neo4j.exceptions import AuthError, ServiceUnavailable

import graph_builder
from execution_path import ExecutionPathBuilder
from graph_builder import GraphStats, TraceGraphBuilder
from sql_statement import SQLStatement
from trace_data import ExecutionCall, ExecutionCallType, TraceData


@pytest.fixture
def driver():
    with mock.patch.object(graph_builder, "GraphDatabase") as database:
        yield database.driver.return_value


@pytest.fixture
def session(driver):
    return driver.session.return_value.__enter__.return_value


@pytest.fixture
def trace_data():
    data = TraceData()
    statement = SQLStatement("SELECT A FROM PS_X X, PS_Y Y WHERE X.A = Y.A")
    data.sql_statements.append(statement)

    root = ExecutionCall(function="Start Cursor #1", context="Cobol Trace")
    leaf = ExecutionCall(function=statement.statement, type=ExecutionCallType.SQL,
                         sql_statement=statement, parent=root)
    commit = ExecutionCall(function="Commit", parent=root)
    root.children.extend([leaf, commit])
    data.execution_path.append(root)
    data.all_execution_calls.extend([root, leaf, commit])
    return data


def test_graph_stats_counts():
    stats = GraphStats()
    stats.add_nodes("SQLStatement", 2)
    stats.add_nodes("SQLStatement")
    stats.add_relationships("CALLS")
    assert stats.nodes_created == 3
    assert stats.node_counts == {"SQLStatement": 3}
    assert stats.relationship_counts == {"CALLS": 1}


def test_connect_success(driver):
    builder = TraceGraphBuilder("bolt://db:7687", "neo4j", "pw")
    assert builder.connect() is True
    graph_builder.GraphDatabase.driver.assert_called_once_with("bolt://db:7687", auth=("neo4j", "pw"))


@pytest.mark.parametrize("error", [AuthError, ServiceUnavailable])
def test_connect_failure(driver, session, error):
    session.run.side_effect = error
    builder = TraceGraphBuilder()
    assert builder.connect() is False


def test_build_graph_counts(driver, session, trace_data):
    builder = TraceGraphBuilder()
    builder.connect()
    session.run.reset_mock()

    builder.build_graph(trace_data)

    assert builder.stats.node_counts == {"SQLStatement": 1, "ExecutionCall": 3}
    assert builder.stats.relationship_counts == {"TOUCHES": 2, "CALLS": 2, "EXECUTES": 1}
    assert session.run.call_count == 1 + 2 + 3 + 2 + 1


def test_build_graph_passes_statement_fields(driver, session, trace_data):
    builder = TraceGraphBuilder()
    builder.connect()
    session.run.reset_mock()

    builder.build_graph(trace_data)

    _, kwargs = session.run.call_args_list[0]
    statement = trace_data.sql_statements[0]
    assert kwargs["statement_id"] == 0
    assert kwargs["sql_id"] == statement.sql_id
    assert kwargs["type"] == "SELECT"
    assert kwargs["where_clause"] == "X.A = Y.A"

    table_names = [kwargs["name"] for _, kwargs in session.run.call_args_list if "name" in kwargs]
    assert table_names == ["PS_X", "PS_Y"]


def test_build_graph_from_processed_tree(driver, session):
    data = TraceData()
    builder = _PathBuilder()
    builder.processor_init(data)
    data.sql_statements.append(SQLStatement("DELETE FROM PS_X"))
    builder._push(builder._new_call("Start Cursor #1", 1))
    builder._sql_leaf(2)
    builder.processor_complete(data)

    graph = TraceGraphBuilder()
    graph.connect()
    graph.build_graph(data)
    assert graph.stats.relationship_counts == {"TOUCHES": 1, "CALLS": 1, "EXECUTES": 1}


def test_clear_and_constraints(driver, session):
    builder = TraceGraphBuilder()
    builder.connect()
    session.run.reset_mock()

    builder.clear_database()
    builder.create_constraints_and_indexes()

    queries = [args[0] for args, _ in session.run.call_args_list]
    assert queries[0].startswith("MATCH (n)")
    assert all("IF NOT EXISTS" in q for q in queries[1:])


def test_save_statistics(tmp_path, driver):
    builder = TraceGraphBuilder()
    builder.stats.add_nodes("SQLStatement", 4)
    path = builder.save_statistics(tmp_path / "out")

    saved = json.loads(path.read_text())
    assert path.name == "graph_stats.json"
    assert saved["nodes_created"] == 4
    assert saved["node_counts"] == {"SQLStatement": 4}


def test_close(driver):
    builder = TraceGraphBuilder()
    builder.connect()
    builder.close()
    driver.close.assert_called_once()


class _PathBuilder(ExecutionPathBuilder):
    def process_line(self, line, line_number):
        pass

"""
Graph Builder Module
====================
Loads a finished TraceData into Neo4j for ad-hoc querying.

The graph holds:
- SQLStatement nodes (one per statement occurrence) and the Table nodes
  they touch
- ExecutionCall nodes linked parent -> child with CALLS, and to the
  statement they ran with EXECUTES

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import logging
import json
from pathlib import Path
from typing import Dict
from dataclasses import dataclass, field

from neo4j import GraphDatabase
from neo4j.exceptions import ServiceUnavailable, AuthError

from trace_data import TraceData

logger = logging.getLogger(__name__)


@dataclass
class GraphStats:
    """Statistics about the constructed graph."""
    nodes_created: int = 0
    relationships_created: int = 0
    node_counts: Dict[str, int] = field(default_factory=dict)
    relationship_counts: Dict[str, int] = field(default_factory=dict)

    def add_nodes(self, label: str, count: int = 1):
        self.nodes_created += count
        self.node_counts[label] = self.node_counts.get(label, 0) + count

    def add_relationships(self, rel_type: str, count: int = 1):
        self.relationships_created += count
        self.relationship_counts[rel_type] = self.relationship_counts.get(rel_type, 0) + count


class TraceGraphBuilder:
    """Writes statements and the execution path of a trace to Neo4j."""

    def __init__(self, uri: str = "bolt://localhost:7687",
                 user: str = "neo4j",
                 password: str = "password"):
        """
        Initialize graph builder.

        Args:
            uri: Neo4j connection URI
            user: Neo4j username
            password: Neo4j password
        """
        self.uri = uri
        self.user = user
        self.password = password
        self.driver = None
        self.stats = GraphStats()

        logger.info(f"Initialized TraceGraphBuilder for {uri}")

    def connect(self) -> bool:
        """Establish connection to Neo4j database."""
        try:
            self.driver = GraphDatabase.driver(self.uri, auth=(self.user, self.password))
            with self.driver.session() as session:
                session.run("RETURN 1").single()
            logger.info("Successfully connected to Neo4j database")
            return True
        except AuthError:
            logger.error("Authentication failed. Check Neo4j credentials.")
            return False
        except ServiceUnavailable:
            logger.error("Neo4j service unavailable. Ensure Neo4j is running.")
            return False

    def close(self):
        """Close Neo4j connection."""
        if self.driver:
            self.driver.close()
            logger.info("Closed Neo4j connection")

    def clear_database(self):
        """Remove all trace nodes and their relationships."""
        logger.warning("Clearing trace data from Neo4j database")
        with self.driver.session() as session:
            session.run("MATCH (n) WHERE n:SQLStatement OR n:Table OR n:ExecutionCall DETACH DELETE n")
        logger.info("Database cleared")

    def create_constraints_and_indexes(self):
        """Create uniqueness constraints and indexes for lookups."""
        logger.info("Creating constraints and indexes")

        statements = [
            "CREATE CONSTRAINT IF NOT EXISTS FOR (s:SQLStatement) REQUIRE s.statement_id IS UNIQUE",
            "CREATE CONSTRAINT IF NOT EXISTS FOR (t:Table) REQUIRE t.name IS UNIQUE",
            "CREATE CONSTRAINT IF NOT EXISTS FOR (c:ExecutionCall) REQUIRE c.call_id IS UNIQUE",
            "CREATE INDEX IF NOT EXISTS FOR (s:SQLStatement) ON (s.sql_id)",
            "CREATE INDEX IF NOT EXISTS FOR (s:SQLStatement) ON (s.where_clause)",
        ]

        with self.driver.session() as session:
            for statement in statements:
                session.run(statement)
                logger.debug(f"Applied: {statement[:60]}...")

        logger.info("Constraints and indexes created")

    def build_graph(self, trace_data: TraceData):
        """
        Build the graph for one processed trace.

        Args:
            trace_data: Result of a completed processing run
        """
        logger.info("Building trace graph")

        statement_ids = {id(s): index for index, s in enumerate(trace_data.sql_statements)}
        call_ids = {id(c): index for index, c in enumerate(trace_data.all_execution_calls)}

        with self.driver.session() as session:
            logger.info(f"  Creating {len(trace_data.sql_statements)} SQLStatement nodes")
            for index, statement in enumerate(trace_data.sql_statements):
                session.run(
                    """
                    CREATE (s:SQLStatement {
                        statement_id: $statement_id,
                        sql_id: $sql_id,
                        statement: $statement,
                        type: $type,
                        where_clause: $where_clause,
                        from_clause: $from_clause,
                        duration: $duration,
                        fetch_count: $fetch_count,
                        executions: $executions,
                        is_error: $is_error,
                        line_number: $line_number
                    })
                    """,
                    statement_id=index,
                    sql_id=statement.sql_id,
                    statement=statement.statement,
                    type=statement.type.value if statement.type else None,
                    where_clause=statement.where_clause,
                    from_clause=statement.from_clause,
                    duration=statement.duration,
                    fetch_count=statement.fetch_count,
                    executions=statement.total_executions,
                    is_error=statement.is_error,
                    line_number=statement.line_number,
                )
                self.stats.add_nodes('SQLStatement')

                for table in statement.tables:
                    if not table:
                        continue
                    session.run(
                        """
                        MERGE (t:Table {name: $name})
                        WITH t
                        MATCH (s:SQLStatement {statement_id: $statement_id})
                        CREATE (s)-[:TOUCHES]->(t)
                        """,
                        name=table,
                        statement_id=index,
                    )
                    self.stats.add_relationships('TOUCHES')

            logger.info(f"  Creating {len(trace_data.all_execution_calls)} ExecutionCall nodes")
            for index, call in enumerate(trace_data.all_execution_calls):
                session.run(
                    """
                    CREATE (c:ExecutionCall {
                        call_id: $call_id,
                        function: $function,
                        type: $type,
                        start_line: $start_line,
                        stop_line: $stop_line,
                        duration: $duration,
                        is_root: $is_root
                    })
                    """,
                    call_id=index,
                    function=call.function,
                    type=call.type.value,
                    start_line=call.start_line,
                    stop_line=call.stop_line,
                    duration=call.duration,
                    is_root=call.is_root,
                )
                self.stats.add_nodes('ExecutionCall')

            logger.info("  Creating CALLS and EXECUTES relationships")
            for call in trace_data.all_execution_calls:
                for order, child in enumerate(call.children):
                    session.run(
                        """
                        MATCH (p:ExecutionCall {call_id: $parent_id}), (c:ExecutionCall {call_id: $child_id})
                        CREATE (p)-[:CALLS {order: $order}]->(c)
                        """,
                        parent_id=call_ids[id(call)],
                        child_id=call_ids[id(child)],
                        order=order,
                    )
                    self.stats.add_relationships('CALLS')

                if call.sql_statement is not None and id(call.sql_statement) in statement_ids:
                    session.run(
                        """
                        MATCH (c:ExecutionCall {call_id: $call_id}), (s:SQLStatement {statement_id: $statement_id})
                        CREATE (c)-[:EXECUTES]->(s)
                        """,
                        call_id=call_ids[id(call)],
                        statement_id=statement_ids[id(call.sql_statement)],
                    )
                    self.stats.add_relationships('EXECUTES')

        logger.info("Graph construction complete")
        logger.info(f"  Total nodes: {self.stats.nodes_created}")
        logger.info(f"  Total relationships: {self.stats.relationships_created}")
        for label, count in self.stats.node_counts.items():
            logger.info(f"    {label}: {count}")

    def save_statistics(self, output_dir: Path) -> Path:
        """Save graph construction statistics."""
        output_dir.mkdir(parents=True, exist_ok=True)

        stats_dict = {
            'nodes_created': self.stats.nodes_created,
            'relationships_created': self.stats.relationships_created,
            'node_counts': self.stats.node_counts,
            'relationship_counts': self.stats.relationship_counts
        }

        stats_file = output_dir / "graph_stats.json"
        with open(stats_file, 'w') as f:
            json.dump(stats_dict, f, indent=2)

        logger.info(f"Saved graph statistics to {stats_file.name}")
        return stats_file

"""
SQL Statistics Module
=====================
Post-pass aggregation over the statements collected by a SQL processor.

Produces the WHERE / FROM hotspot groupings and the summary counters shown
on the statistics view.
"""

import logging
from typing import Callable, Dict, List

from sql_statement import SQLStatement, SQLType
from trace_data import SQLByFrom, SQLByWhere, StatisticItem, TraceData

logger = logging.getLogger(__name__)

CATEGORY = "SQL Statements"


def _counted_type(statement: SQLStatement) -> SQLType:
    # Unclassified statements count as SELECT
    return statement.type or SQLType.SELECT


def _group(statements: List[SQLStatement], key: Callable[[SQLStatement], str]) -> Dict[str, List[SQLStatement]]:
    groups: Dict[str, List[SQLStatement]] = {}
    for statement in statements:
        groups.setdefault(key(statement), []).append(statement)
    return groups


def group_by_where(statements: List[SQLStatement]) -> List[SQLByWhere]:
    """Group every non-INSERT statement by its WHERE clause."""
    candidates = [s for s in statements if _counted_type(s) != SQLType.INSERT]
    return [
        SQLByWhere(
            where_clause=clause,
            number_of_calls=len(members),
            total_time=sum((s.duration for s in members), 0.0),
            has_error=any(s.is_error for s in members),
        )
        for clause, members in _group(candidates, lambda s: s.where_clause).items()
    ]


def group_by_from(statements: List[SQLStatement]) -> List[SQLByFrom]:
    """Group SELECT and DELETE statements by their FROM clause."""
    candidates = [s for s in statements if _counted_type(s) in (SQLType.SELECT, SQLType.DELETE)]
    return [
        SQLByFrom(
            from_clause=clause,
            number_of_calls=len(members),
            total_time=sum((s.duration for s in members), 0.0),
            has_error=any(s.is_error for s in members),
        )
        for clause, members in _group(candidates, lambda s: s.from_clause).items()
    ]


def _last_max(statements: List[SQLStatement], key: Callable[[SQLStatement], float]) -> SQLStatement:
    # Ties resolve to the statement seen last
    return max(reversed(statements), key=key)


def summary_statistics(statements: List[SQLStatement]) -> List[StatisticItem]:
    """Build the fixed set of summary counters."""
    longest = _last_max(statements, lambda s: s.duration)
    most_fetches = _last_max(statements, lambda s: s.fetch_count)

    def total_for(sql_type: SQLType) -> float:
        return sum((s.duration for s in statements if _counted_type(s) == sql_type), 0.0)

    return [
        StatisticItem(CATEGORY, "Total Count", str(len(statements))),
        StatisticItem(CATEGORY, "Longest Execution", str(longest.duration), tag=longest),
        StatisticItem(CATEGORY, "Most Fetches", str(most_fetches.fetch_count), tag=most_fetches),
        StatisticItem(CATEGORY, "Total SQL Time", str(sum((s.duration for s in statements), 0.0))),
        StatisticItem(CATEGORY, "Total SELECT Time", str(total_for(SQLType.SELECT))),
        StatisticItem(CATEGORY, "Total UPDATE Time", str(total_for(SQLType.UPDATE))),
        StatisticItem(CATEGORY, "Total INSERT Time", str(total_for(SQLType.INSERT))),
        StatisticItem(CATEGORY, "Total DELETE Time", str(total_for(SQLType.DELETE))),
    ]


def aggregate(statements: List[SQLStatement], data: TraceData):
    """
    Append grouped views and summary statistics for ``statements`` to ``data``.

    Args:
        statements: Statements produced by one SQL processor
        data: Result aggregate to extend
    """
    if not statements:
        logger.info("No SQL statements found; skipping statistics")
        return

    data.sql_by_where.extend(group_by_where(statements))
    data.sql_by_from.extend(group_by_from(statements))
    data.statistics.extend(summary_statistics(statements))

    logger.info(f"Aggregated {len(statements)} statements into "
                f"{len(data.sql_by_where)} WHERE groups and {len(data.sql_by_from)} FROM groups")

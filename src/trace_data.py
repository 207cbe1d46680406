"""
Trace Data Module
=================
Result aggregate produced by one processing run.

TraceData owns every statement, execution call, grouped view and statistic
built while a trace file is processed. It is the single object handed back
to whoever started the run.

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sql_statement import SQLStatement


class ExecutionCallType(Enum):
    """Kind of node in the execution path."""
    CALL = "CALL"
    SQL = "SQL"


@dataclass(eq=False)
class ExecutionCall:
    """One node of the reconstructed call tree."""
    function: str
    type: ExecutionCallType = ExecutionCallType.CALL
    start_line: int = 0
    stop_line: int = 0
    duration: float = 0.0
    sql_statement: Optional[SQLStatement] = field(default=None, repr=False)
    parent: Optional['ExecutionCall'] = field(default=None, repr=False)
    children: List['ExecutionCall'] = field(default_factory=list, repr=False)
    context: Optional[str] = None
    level: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'function': self.function,
            'type': self.type.value,
            'start_line': self.start_line,
            'stop_line': self.stop_line,
            'duration': self.duration,
            'children': [child.to_dict() for child in self.children],
        }
        if self.sql_statement is not None:
            data['sql_id'] = self.sql_statement.sql_id
        if self.context:
            data['context'] = self.context
        return data


@dataclass
class SQLByWhere:
    """Statements sharing one WHERE clause."""
    where_clause: str
    number_of_calls: int
    total_time: float
    has_error: bool


@dataclass
class SQLByFrom:
    """Statements sharing one FROM clause."""
    from_clause: str
    number_of_calls: int
    total_time: float
    has_error: bool


@dataclass
class StatisticItem:
    """One entry of the summary statistics."""
    category: str
    label: str
    value: str
    tag: Optional[SQLStatement] = field(default=None, repr=False)


@dataclass
class TraceData:
    """Everything recovered from a single trace file."""
    sql_statements: List[SQLStatement] = field(default_factory=list)
    all_execution_calls: List[ExecutionCall] = field(default_factory=list)
    execution_path: List[ExecutionCall] = field(default_factory=list)
    sql_by_where: List[SQLByWhere] = field(default_factory=list)
    sql_by_from: List[SQLByFrom] = field(default_factory=list)
    statistics: List[StatisticItem] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            'sql_statements': len(self.sql_statements),
            'execution_calls': len(self.all_execution_calls),
            'execution_path_roots': len(self.execution_path),
            'where_groups': len(self.sql_by_where),
            'from_groups': len(self.sql_by_from),
            'statistics': len(self.statistics),
            'errors': sum(1 for s in self.sql_statements if s.is_error),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary(),
            'statistics': [
                {'category': s.category, 'label': s.label, 'value': s.value,
                 'sql_id': s.tag.sql_id if s.tag is not None else None}
                for s in self.statistics
            ],
            'sql_by_where': [vars(g).copy() for g in self.sql_by_where],
            'sql_by_from': [vars(g).copy() for g in self.sql_by_from],
            'sql_statements': [s.to_dict() for s in self.sql_statements],
            'execution_path': [call.to_dict() for call in self.execution_path],
        }

"""
SQL Statement Module
====================
Structured model of the SQL activity found in a trace.

This module provides:
- SQLStatement: one occurrence of a statement with derived type, clauses,
  tables and a deterministic 13 character SQL ID
- SQLExecution: one physical run of a statement (binds, exec/fetch time)
- SQLBindValue / SQLError: bind parameters and reported failures

Only enough of the SQL is inspected to locate the FROM / WHERE / INTO
boundaries; no grammar is parsed.

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import re
import hashlib
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

SQL_ID_ALPHABET = "0123456789abcdfghjkmnpqrstuvwxyz"
SQL_ID_LENGTH = 13

# Bind type that is rendered without quotes when binds are substituted back
# into statement text
UNQUOTED_BIND_TYPE = 19


class SQLType(Enum):
    """Statement classification by leading keyword."""
    SELECT = "SELECT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    INSERT = "INSERT"


@dataclass
class SQLBindValue:
    """One bound parameter of a statement execution."""
    index: int
    type: int = 0
    type_string: str = ""
    length: int = 0
    value: str = ""

    @property
    def quoted(self) -> bool:
        return self.type != UNQUOTED_BIND_TYPE

    def to_dict(self):
        return {
            'index': self.index,
            'type': self.type,
            'type_string': self.type_string,
            'length': self.length,
            'value': self.value,
        }


@dataclass
class SQLError:
    """Return code and message reported for a statement."""
    return_code: int
    message: str = ""
    error_position: int = 0


@dataclass
class SQLExecution:
    """One run of a statement, from its binds through execute and fetches."""
    bind_values: List[SQLBindValue] = field(default_factory=list)
    exec_time: float = 0.0
    fetch_time: float = 0.0
    fetch_count: int = 0
    binds_open: bool = True


def generate_sql_id(statement: str) -> str:
    """
    Compute the 13 character SQL ID of a statement.

    The MD5 of the text plus a trailing NUL is taken; bytes 8-11 and 12-15 of
    the digest are read as little-endian 32-bit words forming the high and low
    halves of a 64-bit value, which is written out in base 32, most
    significant digit first.

    Args:
        statement: Statement text

    Returns:
        13 character identifier
    """
    digest = hashlib.md5((statement + "\0").encode("ascii", errors="replace")).digest()
    msb = int.from_bytes(digest[8:12], byteorder="little")
    lsb = int.from_bytes(digest[12:16], byteorder="little")
    value = (msb << 32) + lsb

    digits = []
    for position in range(SQL_ID_LENGTH):
        digits.append(SQL_ID_ALPHABET[(value >> (position * 5)) % 32])
    return "".join(reversed(digits))


class SQLStatement:
    """One distinct statement occurrence in a trace."""

    WHERE_PATTERN = re.compile(r' WHERE (.*?)(ORDER|$)', re.IGNORECASE)

    FROM_PATTERNS = {
        SQLType.SELECT: re.compile(r'\s+FROM\s*(.*?)\s*(WHERE|$)', re.IGNORECASE),
        SQLType.UPDATE: re.compile(r'UPDATE\s*(.*?)\s*(SET|$)', re.IGNORECASE),
        SQLType.INSERT: re.compile(r'INTO\s*(.*?)\s*(VALUES|\(|$)', re.IGNORECASE),
        SQLType.DELETE: re.compile(r'DELETE FROM\s*(.*?)\s*(WHERE|$)', re.IGNORECASE),
    }

    BUFFER_COLUMNS_PATTERN = re.compile(r'%Select(?:Init)?\((.*?)\)')
    COLUMN_SPLIT_PATTERN = re.compile(r'([^, ]+)')

    def __init__(self, text: str):
        self.statement = text.strip()
        self.executions: List[SQLExecution] = []
        self._current_execution: Optional[SQLExecution] = None
        self._add_execution()

        self.line_number = 0
        self.cursor = 0
        self.rc_number = 0
        self.cobol = False
        self.context: Optional[str] = None
        self.is_error = False
        self.error_info: Optional[SQLError] = None
        self.buffer_data: Optional[List[str]] = None
        self.parent_call = None

        self.type = self._determine_type()
        self.where_clause = self._parse_where_clause()
        self.tables: List[str] = []
        self.from_clause = self._parse_from_clause()
        self.sql_id = generate_sql_id(self.statement)

    def __repr__(self):
        return f"SQLStatement(sql_id={self.sql_id}, type={self.type}, line={self.line_number})"

    def __str__(self):
        return self.statement

    # Execution accounting (delegated to the current run)

    @property
    def current_execution(self) -> SQLExecution:
        return self._current_execution

    @property
    def exec_time(self) -> float:
        return self._current_execution.exec_time

    @exec_time.setter
    def exec_time(self, value: float):
        self._current_execution.binds_open = False
        self._current_execution.exec_time = value

    @property
    def fetch_time(self) -> float:
        return self._current_execution.fetch_time

    @fetch_time.setter
    def fetch_time(self, value: float):
        self._current_execution.fetch_time = value

    @property
    def fetch_count(self) -> int:
        return self._current_execution.fetch_count

    @fetch_count.setter
    def fetch_count(self, value: int):
        self._current_execution.fetch_count = value

    @property
    def duration(self) -> float:
        return self.exec_time + self.fetch_time

    @property
    def total_executions(self) -> int:
        return len(self.executions)

    @property
    def total_exec_time(self) -> float:
        return sum(e.exec_time for e in self.executions)

    @property
    def total_fetch_time(self) -> float:
        return sum(e.fetch_time for e in self.executions)

    @property
    def is_select_init(self) -> bool:
        return self.statement.startswith("%SelectInit")

    def add_bind_value(self, bind: SQLBindValue):
        """Attach a bind, starting a new run if the current one already executed."""
        if not self._current_execution.binds_open:
            self._add_execution()
        self._current_execution.bind_values.append(bind)

    def mark_error(self, return_code: int, message: str = "", error_position: int = 0):
        self.is_error = True
        self.error_info = SQLError(return_code=return_code, message=message, error_position=error_position)

    def _add_execution(self):
        self._current_execution = SQLExecution()
        self.executions.append(self._current_execution)

    # Derived fields, computed once from the statement text

    def _determine_type(self) -> Optional[SQLType]:
        upper = self.statement.upper()
        sql_type = None
        for candidate in (SQLType.SELECT, SQLType.UPDATE, SQLType.DELETE, SQLType.INSERT):
            if upper.startswith(candidate.value):
                sql_type = candidate
        return sql_type

    def _parse_where_clause(self) -> str:
        match = self.WHERE_PATTERN.search(self.statement)
        if match:
            return match.group(1).strip()
        return ""

    def _parse_from_clause(self) -> str:
        # Unclassified statements are parsed like a SELECT
        pattern = self.FROM_PATTERNS[self.type or SQLType.SELECT]
        from_clause = " ".join(m.group(1).strip() for m in pattern.finditer(self.statement))

        if self.type in (SQLType.SELECT, None):
            for part in from_clause.split(','):
                self.tables.append(part.strip().split(' ')[0])
        else:
            self.tables.append(from_clause)
        return from_clause

    # %Select buffers (Application Engine)

    def get_buffer_columns(self) -> List[str]:
        """Column names listed in a %Select(...) / %SelectInit(...) statement."""
        columns = []
        if not self.statement.upper().startswith("%SELECT"):
            return columns
        if not self.buffer_data:
            return columns

        match = self.BUFFER_COLUMNS_PATTERN.search(self.statement)
        if match:
            columns = [m.group(1) for m in self.COLUMN_SPLIT_PATTERN.finditer(match.group(1))]
        return columns

    def get_buffer_items(self) -> Dict[str, str]:
        """Map %Select column names to the last buffer values fetched."""
        columns = self.get_buffer_columns()
        return dict(zip(columns, self.buffer_data or []))

    def to_dict(self):
        data = {
            'sql_id': self.sql_id,
            'statement': self.statement,
            'type': self.type.value if self.type else None,
            'where_clause': self.where_clause,
            'from_clause': self.from_clause,
            'tables': list(self.tables),
            'cursor': self.cursor,
            'line_number': self.line_number,
            'duration': self.duration,
            'total_exec_time': self.total_exec_time,
            'total_fetch_time': self.total_fetch_time,
            'fetch_count': self.fetch_count,
            'executions': self.total_executions,
            'is_error': self.is_error,
        }
        if self.error_info:
            data['error'] = {
                'return_code': self.error_info.return_code,
                'message': self.error_info.message,
            }
        if self.context:
            data['context'] = self.context
        return data

"""
Post-conversion check of plain SQL statements with sqlglot.

PL/SQL blocks (procedures, triggers, anonymous blocks) are beyond what
sqlglot parses and are skipped; every other ``;``-terminated statement is
parsed with the Oracle dialect and parse failures become warnings.
"""

import logging
import re
from typing import List

import sqlglot
from sqlglot.errors import SqlglotError

from .patterns import split_top_level
from .preprocessor import strip_literals


logger = logging.getLogger(__name__)

_SCRIPT_SEPARATOR_PATTERN = re.compile(r'^[ \t]*/[ \t]*$', re.MULTILINE)
_PLSQL_PATTERN = re.compile(r'\b(?:BEGIN|DECLARE|CREATE\s+OR\s+REPLACE)\b', re.IGNORECASE)


def plain_statements(text: str) -> List[str]:
    """``;``-separated statements of every script chunk that holds no PL/SQL block."""
    statements = []
    for chunk in _SCRIPT_SEPARATOR_PATTERN.split(text):
        if _PLSQL_PATTERN.search(strip_literals(chunk)):
            continue
        for statement in split_top_level(chunk, ';'):
            if strip_literals(statement).strip():
                statements.append(statement.strip())
    return statements


def validate_sql(text: str) -> List[str]:
    """
    Parse the plain SQL statements of converted text.

    Args:
        text: Converted Oracle script

    Returns:
        One warning per statement sqlglot could not parse
    """
    warnings = []
    for number, statement in enumerate(plain_statements(text), 1):
        try:
            sqlglot.parse_one(statement, dialect="oracle")
        except SqlglotError as e:
            first_line = statement.split('\n', 1)[0]
            reason = str(e).split('\n', 1)[0]
            logger.debug("Statement %d failed to parse: %s", number, reason)
            warnings.append(f"Statement {number} may not be valid Oracle SQL ({first_line}): {reason}")
    return warnings

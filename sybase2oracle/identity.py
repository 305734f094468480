"""
Identity column rewriting.

A Sybase table with an ``identity`` column becomes three Oracle objects:
the table without the identity clause, a sequence and a BEFORE INSERT
trigger that fills the column from the sequence.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .patterns import find_closing_paren, split_top_level


logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_COLUMN = "id"
FALLBACK_COLUMN_TYPE = "NUMBER"

_CREATE_TABLE_PATTERN = re.compile(
    r'\bCREATE\s+TABLE\s+(?P<name>[\w#$.\[\]]+)\s*\(', re.IGNORECASE
)
_IDENTITY_PATTERN = re.compile(
    r'\s*\bIDENTITY\b(?:\s*\(\s*(?P<seed>-?\d+)\s*(?:,\s*(?P<step>-?\d+)\s*)?\))?',
    re.IGNORECASE,
)
_COLUMN_NAME_PATTERN = re.compile(r'^\s*\[?(?P<column>[A-Za-z_][\w$#]*)\]?\s')
_CONSTRAINT_KEYWORDS = frozenset({
    "CONSTRAINT", "PRIMARY", "UNIQUE", "FOREIGN", "CHECK", "INDEX", "IDENTITY",
})


@dataclass(frozen=True)
class IdentityColumn:
    """An identity column found in a CREATE TABLE body."""
    table: str
    column: str
    seed: str = "1"
    increment: str = "1"

    @property
    def sequence_name(self) -> str:
        return f"{self.table}_seq"

    @property
    def trigger_name(self) -> str:
        return f"{self.table}_bir"


def table_base_name(name: str) -> str:
    """``[dbo].[Orders]`` -> ``Orders``."""
    last = name.split('.')[-1]
    return last.strip('[]"')


def find_identity_column(table: str, body: str) -> Optional[Tuple[IdentityColumn, str]]:
    """
    Locate the identity column inside a table body.

    Args:
        table: Table name (already stripped of owner and brackets)
        body: Text between the outer parentheses of the CREATE TABLE

    Returns:
        Tuple of (identity column, body without the identity clause), or
        None when no column carries an identity clause
    """
    definitions = split_top_level(body)
    for index, definition in enumerate(definitions):
        match = _IDENTITY_PATTERN.search(definition)
        if not match:
            continue

        column = DEFAULT_IDENTITY_COLUMN
        name_match = _COLUMN_NAME_PATTERN.match(definition)
        if name_match and name_match.group('column').upper() not in _CONSTRAINT_KEYWORDS:
            column = name_match.group('column')
        else:
            logger.debug("No column name before identity clause in %s, using '%s'",
                         table, DEFAULT_IDENTITY_COLUMN)

        identity = IdentityColumn(
            table=table,
            column=column,
            seed=match.group('seed') or "1",
            increment=match.group('step') or "1",
        )
        stripped = definition[:match.start()] + definition[match.end():]
        if not stripped.strip():
            # A bare identity clause declares the fallback column itself
            stripped = definition[:len(definition) - len(definition.lstrip())] + f"{column} {FALLBACK_COLUMN_TYPE}"
        definitions = definitions[:index] + [stripped] + definitions[index + 1:]
        return identity, ','.join(definitions)
    return None


def render_identity_objects(identity: IdentityColumn) -> str:
    """Render the sequence and the BEFORE INSERT trigger for one table."""
    lines = [
        f"CREATE SEQUENCE {identity.sequence_name} "
        f"START WITH {identity.seed} INCREMENT BY {identity.increment};",
        "",
        f"CREATE OR REPLACE TRIGGER {identity.trigger_name}",
        f"BEFORE INSERT ON {identity.table}",
        "FOR EACH ROW",
        "BEGIN",
        f"  IF :NEW.{identity.column} IS NULL THEN",
        f"    :NEW.{identity.column} := {identity.sequence_name}.NEXTVAL;",
        "  END IF;",
        f"END {identity.trigger_name};",
        "/",
    ]
    return '\n'.join(lines)


def rewrite_identity_columns(text: str) -> str:
    """
    Rewrite every CREATE TABLE carrying an identity column.

    Tables without an identity clause, and tables whose parentheses do not
    balance, are left unchanged.

    Args:
        text: Script text (types already mapped)

    Returns:
        Script text with table + sequence + trigger triples
    """
    parts: List[str] = []
    pos = 0
    while True:
        match = _CREATE_TABLE_PATTERN.search(text, pos)
        if not match:
            break
        open_index = match.end() - 1
        close = find_closing_paren(text, open_index)
        if close == -1:
            break

        table = table_base_name(match.group('name'))
        found = find_identity_column(table, text[open_index + 1:close])
        if found is None:
            parts.append(text[pos:close + 1])
            pos = close + 1
            continue

        identity, body = found
        # Table options up to the terminator stay with the table
        tail = re.match(r'[^;\n]*;?', text[close + 1:])
        end = close + 1 + tail.end()
        table_ddl = text[match.start():open_index + 1] + body + text[close:end].rstrip()
        if not table_ddl.endswith(';'):
            table_ddl += ';'

        logger.debug("Identity column %s.%s -> sequence %s",
                     identity.table, identity.column, identity.sequence_name)
        parts.append(text[pos:match.start()])
        parts.append(table_ddl + "\n\n" + render_identity_objects(identity))
        pos = end
    parts.append(text[pos:])
    return ''.join(parts)

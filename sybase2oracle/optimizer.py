"""
Optimization level passes.

``conservative`` and ``standard`` leave the converted text alone here; the
conservative level only changes which locking-hint rules the statement pass
applies. ``aggressive`` adds Oracle performance features:

- comma-separated FROM lists with equality predicates -> explicit
  ``JOIN ... ON`` (rebuilt with sqlglot)
- ``SELECT /*+ PARALLEL(n) */`` and ``INSERT /*+ APPEND NOLOGGING */``
- interval range partitioning for tables with a date column, SecureFile
  storage for tables whose only special columns are LOBs
"""

import logging
import re
from typing import List, Optional, Set

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from .patterns import depth_map, find_closing_paren, find_top_level, split_top_level
from .statements import statement_end
from .type_mappings import DATE_TYPES, LOB_TYPES


logger = logging.getLogger(__name__)

CONSERVATIVE = "conservative"
STANDARD = "standard"
AGGRESSIVE = "aggressive"
OPTIMIZATION_LEVELS = (CONSERVATIVE, STANDARD, AGGRESSIVE)

DEFAULT_PARALLEL_DEGREE = 4
PARTITION_INTERVAL = "NUMTOYMINTERVAL(1, 'MONTH')"
INITIAL_PARTITION_BOUND = "DATE '2000-01-01'"

_SELECT_PATTERN = re.compile(r'(?<![\w.$#@])SELECT\b', re.IGNORECASE)
_UNHINTED_SELECT_PATTERN = re.compile(r'(?<![\w.$#@])SELECT\b(?!\s*/\*\+)', re.IGNORECASE)
_UNHINTED_INSERT_PATTERN = re.compile(r'(?<![\w.$#@])INSERT(?!\s*/\*\+)(\s+)INTO\b', re.IGNORECASE)
_FROM_PATTERN = re.compile(r'(?<![\w.])FROM\b', re.IGNORECASE)
_WHERE_PATTERN = re.compile(r'(?<![\w.])WHERE\b', re.IGNORECASE)
_INTO_PATTERN = re.compile(r'(?<![\w.])(?:BULK\s+COLLECT\s+)?INTO\b', re.IGNORECASE)
_CREATE_TABLE_PATTERN = re.compile(
    r'\bCREATE\s+(?P<temporary>GLOBAL\s+TEMPORARY\s+)?TABLE\s+(?P<name>[\w$#.]+)\s*\(',
    re.IGNORECASE,
)
_COLUMN_PATTERN = re.compile(r'^\s*(?P<column>[A-Za-z_][\w$#]*)\s+(?P<type>[A-Za-z_]\w*)')
_STORAGE_CLAUSE_PATTERN = re.compile(r'^\s*(?:PARTITION\s+BY|LOB\s*\()', re.IGNORECASE)


# =============================================================================
# ANSI JOINS
# =============================================================================

def _is_comma_join(join: exp.Join) -> bool:
    return not any(join.args.get(key) for key in ("on", "using", "kind", "side", "method"))


def _table_key(expression: exp.Expression) -> str:
    return expression.alias_or_name.upper()


def _referenced_tables(condition: exp.Expression) -> Set[str]:
    return {column.table.upper() for column in condition.find_all(exp.Column) if column.table}


def _conjuncts(condition: exp.Expression) -> List[exp.Expression]:
    if isinstance(condition, exp.And):
        return list(condition.flatten())
    return [condition]


def _attach_join_conditions(select: exp.Select) -> bool:
    """
    Move ``a.x = b.y`` predicates from WHERE into the ON clause of the comma
    join that brings the second table in.

    Returns:
        True when at least one join was rewritten
    """
    where = select.args.get("where")
    joins = select.args.get("joins") or []
    # Newer sqlglot releases store the FROM clause under "from_"
    from_clause = select.args.get("from_") or select.args.get("from")
    if where is None or from_clause is None or not any(_is_comma_join(j) for j in joins):
        return False

    remaining = _conjuncts(where.this)
    seen = {_table_key(from_clause.this)}
    changed = False
    for join in joins:
        name = _table_key(join.this)
        if _is_comma_join(join):
            conditions = []
            for condition in remaining:
                tables = _referenced_tables(condition)
                if isinstance(condition, exp.EQ) and name in tables \
                        and len(tables) > 1 and tables <= seen | {name}:
                    conditions.append(condition)
            if conditions:
                join.set("on", exp.and_(*[c.copy() for c in conditions]))
                remaining = [c for c in remaining if not any(c is m for m in conditions)]
                changed = True
        seen.add(name)

    if changed:
        if remaining:
            select.set("where", exp.Where(this=exp.and_(*[c.copy() for c in remaining])))
        else:
            select.set("where", None)
    return changed


def rewrite_comma_joins(statement: str) -> Optional[str]:
    """
    Rewrite one SELECT statement's comma joins to explicit JOIN ... ON.

    A PL/SQL ``INTO`` list is lifted out before parsing and put back in
    front of the regenerated FROM clause.

    Args:
        statement: A single SELECT statement without its terminator

    Returns:
        The rewritten statement, or None when nothing changed or sqlglot
        could not parse it
    """
    into_text = ""
    into = find_top_level(statement, _INTO_PATTERN)
    if into:
        from_clause = find_top_level(statement, _FROM_PATTERN, into.end())
        if from_clause is None:
            return None
        into_text = statement[into.start():from_clause.start()].strip()
        statement = statement[:into.start()] + statement[from_clause.start():]

    try:
        tree = sqlglot.parse_one(statement, dialect="oracle")
        if tree is None:
            return None
        changed = False
        for select in tree.find_all(exp.Select):
            changed = _attach_join_conditions(select) or changed
        if not changed:
            return None
        rewritten = tree.sql(dialect="oracle")
    except SqlglotError as e:
        logger.debug("Join rewrite skipped: %s", str(e).splitlines()[0] if str(e) else e)
        return None

    if into_text:
        from_clause = find_top_level(rewritten, _FROM_PATTERN)
        if from_clause is None:
            return None
        rewritten = f"{rewritten[:from_clause.start()].rstrip()} {into_text} {rewritten[from_clause.start():]}"
    return rewritten


def _has_comma_join(statement: str) -> bool:
    from_clause = find_top_level(statement, _FROM_PATTERN)
    if from_clause is None:
        return False
    where = find_top_level(statement, _WHERE_PATTERN, from_clause.end())
    if where is None:
        return False
    return len(split_top_level(statement[from_clause.end():where.start()])) > 1


def convert_comma_joins(text: str, warnings: Optional[List[str]] = None) -> str:
    """Rewrite every top-level SELECT statement that joins through a comma list."""
    depths = depth_map(text)
    parts: List[str] = []
    copied = 0
    position = 0
    while True:
        match = _SELECT_PATTERN.search(text, position)
        if not match:
            break
        position = match.end()
        if depths[match.start()] != 0 or match.start() < copied:
            continue
        end = statement_end(text, match.start())
        statement = text[match.start():end]
        if not _has_comma_join(statement):
            continue
        rewritten = rewrite_comma_joins(statement.rstrip())
        if rewritten is None:
            continue
        parts.append(text[copied:match.start()])
        parts.append(rewritten + statement[len(statement.rstrip()):])
        if warnings is not None:
            warnings.append("Comma join rewritten to explicit JOIN ... ON")
        copied = position = end
    parts.append(text[copied:])
    return ''.join(parts)


# =============================================================================
# HINTS AND STORAGE
# =============================================================================

def add_parallel_hints(text: str, degree: int = DEFAULT_PARALLEL_DEGREE) -> str:
    return _UNHINTED_SELECT_PATTERN.sub(f"SELECT /*+ PARALLEL({degree}) */", text)


def add_direct_path_hints(text: str) -> str:
    return _UNHINTED_INSERT_PATTERN.sub(r'INSERT /*+ APPEND NOLOGGING */\1INTO', text)


def _storage_clause(body: str) -> Optional[str]:
    date_column = None
    lob_columns: List[str] = []
    for definition in split_top_level(body):
        match = _COLUMN_PATTERN.match(definition)
        if not match:
            continue
        column_type = match.group('type').upper()
        if column_type in DATE_TYPES and date_column is None:
            date_column = match.group('column')
        elif column_type in LOB_TYPES:
            lob_columns.append(match.group('column'))

    if date_column:
        return (f"PARTITION BY RANGE ({date_column}) INTERVAL ({PARTITION_INTERVAL})\n"
                f"(PARTITION p_initial VALUES LESS THAN ({INITIAL_PARTITION_BOUND}))")
    if lob_columns:
        return '\n'.join(f"LOB ({column}) STORE AS SECUREFILE" for column in lob_columns)
    return None


def add_storage_clauses(text: str) -> str:
    """
    Partition tables that have a DATE/TIMESTAMP column by month; store the
    LOB columns of tables without one as SecureFiles.
    """
    parts: List[str] = []
    position = 0
    for match in _CREATE_TABLE_PATTERN.finditer(text):
        if match.start() < position or match.group('temporary'):
            continue
        close = find_closing_paren(text, match.end() - 1)
        if close == -1:
            break
        clause = _storage_clause(text[match.end():close])
        if clause is None or _STORAGE_CLAUSE_PATTERN.match(text[close + 1:]):
            continue
        logger.debug("Storage clause added to %s", match.group('name'))
        parts.append(text[position:close + 1])
        parts.append('\n' + clause)
        position = close + 1
    parts.append(text[position:])
    return ''.join(parts)


def optimize(text: str, level: str = STANDARD, parallel_degree: int = DEFAULT_PARALLEL_DEGREE,
             warnings: Optional[List[str]] = None) -> str:
    """
    Apply the optimization pass for a level.

    Args:
        text: Converted (literal-masked) text
        level: One of ``conservative``, ``standard``, ``aggressive``
        parallel_degree: Degree used in PARALLEL hints
        warnings: Optional list collecting notes about rewrites

    Returns:
        Optimized text
    """
    if level != AGGRESSIVE:
        return text
    text = convert_comma_joins(text, warnings)
    text = add_parallel_hints(text, parallel_degree)
    text = add_direct_path_hints(text)
    text = add_storage_clauses(text)
    return text

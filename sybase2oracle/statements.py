"""
Statement-level rewriters.

Whole-text passes applied after routine conversion, so they also cover
statements outside procedures. Applied in this order:

1. procedural batches outside routines -> anonymous PL/SQL blocks
2. GO -> /
3. ISNULL -> NVL
4. GETDATE, DATEADD, DATEDIFF and the other date functions
5. remaining function renames and rewrites
6. NOLOCK and other locking hints
7. SELECT TOP n -> ROWNUM predicate
8. [identifier] quoting
9. #temp tables
10. system catalog names, @@ variables and NULL comparisons
"""

import logging
import re
from typing import List, Optional

from .patterns import (
    DEFAULT_RULESET,
    SEPARATOR_COMMENT,
    RuleSet,
    apply_rules,
    depth_map,
    find_closing_paren,
    find_top_level,
)
from .procedure_converter import (
    BodyConverter,
    convert_anonymous_block,
    is_comment,
    leading_keyword,
    split_statements,
)


logger = logging.getLogger(__name__)

_BATCH_SPLIT_PATTERN = re.compile(
    rf'(^[ \t]*(?:GO(?:[ \t]+\d+)?|/)[ \t]*;?[ \t]*(?:{SEPARATOR_COMMENT})?[ \t]*$)',
    re.IGNORECASE | re.MULTILINE,
)
_SESSION_OPTION_PATTERN = re.compile(
    r'^([ \t]*)((?:SET\s+(?:NOCOUNT|ROWCOUNT|ANSI\w*|QUOTED_IDENTIFIER|CHAINED|TEXTSIZE|TRANSACTION|'
    r'ARITHABORT|ARITHIGNORE|DATEFIRST|DATEFORMAT|LOCK|XACT_ABORT|IDENTITY_INSERT|STATISTICS|'
    r'SHOWPLAN|NOEXEC|PARSEONLY|FORCEPLAN|CLOSE|STRING_RTRUNCATION)\b|USE\s+\w+)[^\n]*?)[ \t]*;?[ \t]*$',
    re.IGNORECASE | re.MULTILINE,
)
_ASSIGNMENT_SELECT_PATTERN = re.compile(r'^SELECT\s+(?:TOP\s+\d+\s+)?@\w+\s*=(?!=)', re.IGNORECASE)

PROCEDURAL_KEYWORDS = frozenset({
    "DECLARE", "PRINT", "IF", "WHILE", "RAISERROR", "RETURN", "BREAK",
    "CONTINUE", "OPEN", "FETCH", "CLOSE", "DEALLOCATE", "GOTO",
})
DDL_KEYWORDS = frozenset({"CREATE", "DROP", "ALTER", "TRUNCATE", "GRANT"})


# =============================================================================
# PROCEDURAL BATCHES
# =============================================================================

def _classify(statement: str) -> str:
    """Classify a statement as 'comment', 'procedural', 'exec', 'ddl', 'option' or 'sql'."""
    if is_comment(statement):
        return "comment"
    keyword = leading_keyword(statement)
    if keyword in DDL_KEYWORDS:
        return "ddl"
    if keyword in PROCEDURAL_KEYWORDS:
        return "procedural"
    if keyword == "SET":
        return "procedural" if re.match(r'SET\s+@', statement, re.IGNORECASE) else "option"
    if keyword == "SELECT" and _ASSIGNMENT_SELECT_PATTERN.match(statement):
        return "procedural"
    if keyword == "BEGIN":
        return "procedural" if statement.strip().upper() == "BEGIN" else "sql"
    if keyword in ("EXEC", "EXECUTE"):
        return "exec"
    if re.fullmatch(r'[A-Za-z_]\w*:', statement.strip()):
        return "procedural"
    return "sql"


def _comment_session_options(text: str) -> str:
    return _SESSION_OPTION_PATTERN.sub(r'\1-- \2', text)


def convert_batch_text(batch: str, bulk_collect: bool = False,
                       warnings: Optional[List[str]] = None) -> str:
    """
    Convert one batch found outside any routine.

    - batches with procedural statements become an anonymous block
    - EXEC-only batches become ``BEGIN proc(args); END;`` + ``/``
    - plain SQL batches only get their session options commented out

    Args:
        batch: Text between two batch separators
        bulk_collect: Rewrite cursor fetch loops to BULK COLLECT
        warnings: Optional list collecting conversion warnings

    Returns:
        Converted batch text
    """
    if not batch.strip() or re.search(r'\bCREATE\s+OR\s+REPLACE\b', batch, re.IGNORECASE):
        return batch

    statements = split_statements(batch)
    kinds = {_classify(statement) for statement in statements}
    kinds.discard("comment")
    if not kinds & {"procedural", "exec"}:
        return _comment_session_options(batch)

    if "ddl" in kinds:
        if warnings is not None:
            warnings.append("Batch mixes DDL with procedural statements; left outside a PL/SQL block")
        return _comment_session_options(batch)

    leading = batch[:len(batch) - len(batch.lstrip())]
    trailing = batch[len(batch.rstrip()):]
    logger.debug("Wrapping %d-statement batch in a PL/SQL block", len(statements))
    if kinds == {"exec"}:
        converter = BodyConverter(indent="")
        lines = converter.convert(batch, level=0)
        converted = '\n'.join(lines) + '\n/'
    else:
        converted = convert_anonymous_block(batch, bulk_collect, warnings)
    return leading + converted + trailing


def wrap_procedural_batches(text: str, bulk_collect: bool = False,
                            warnings: Optional[List[str]] = None) -> str:
    """Apply :func:`convert_batch_text` to every batch between separators."""
    parts = _BATCH_SPLIT_PATTERN.split(text)
    # Even indexes are batches, odd indexes are the captured separators
    for index in range(0, len(parts), 2):
        parts[index] = convert_batch_text(parts[index], bulk_collect, warnings)
    return ''.join(parts)


# =============================================================================
# TOP n -> ROWNUM
# =============================================================================

_TOP_PATTERN = re.compile(
    r'\bSELECT\s+(?P<distinct>DISTINCT\s+)?TOP\s+(?:\(\s*(?P<paren>\d+)\s*\)|(?P<count>\d+))\s+',
    re.IGNORECASE,
)
_STATEMENT_BREAK_PATTERN = re.compile(
    r';|^[ \t]*/[ \t]*$|\n[ \t]*\n'
    r'|\n(?=[ \t]*(?P<keyword>SELECT|INSERT|UPDATE|DELETE|CREATE|DROP|ALTER|TRUNCATE|DECLARE|BEGIN|'
    r'WHILE|EXEC|EXECUTE|PRINT|RETURN|COMMIT|ROLLBACK|OPEN|FETCH|CLOSE|DBMS_OUTPUT)\b)',
    re.IGNORECASE | re.MULTILINE,
)
_TRAILING_CLAUSE_PATTERN = re.compile(
    r'(?<![\w.])(?:GROUP\s+BY|ORDER\s+BY|HAVING|UNION|EXCEPT|INTERSECT|MINUS|FOR\s+UPDATE)\b',
    re.IGNORECASE,
)
_COMPOUND_TAIL_PATTERN = re.compile(r'(?:\b(?:UNION|ALL|EXCEPT|INTERSECT|MINUS)|\()\s*$', re.IGNORECASE)


def statement_end(text: str, start: int) -> int:
    """End offset (exclusive) of the SELECT statement starting at ``start``."""
    depths = depth_map(text)
    base = depths[start]
    end = len(text)
    if base > 0:
        for index in range(start, len(text)):
            if text[index] == ')' and 0 <= depths[index] < base:
                end = index
                break
    for match in _STATEMENT_BREAK_PATTERN.finditer(text, start, end):
        if depths[match.start()] != base:
            continue
        if match.group('keyword') and match.group('keyword').upper() == "SELECT" \
                and _COMPOUND_TAIL_PATTERN.search(text[start:match.start()]):
            continue
        return match.start()
    return end


def _rownum_insert(statement: str, count: str) -> str:
    """Add the ROWNUM predicate to a SELECT statement whose TOP was removed."""
    from_clause = find_top_level(statement, r'(?<![\w.])FROM\b')
    if from_clause is None:
        return statement
    where = find_top_level(statement, r'(?<![\w.])WHERE\b', from_clause.end())
    trailing = find_top_level(statement, _TRAILING_CLAUSE_PATTERN, (where or from_clause).end())

    cut = trailing.start() if trailing else len(statement.rstrip())
    head = statement[:cut].rstrip()
    gap = statement[len(head):cut] or ' '
    tail = statement[cut:]

    if where:
        condition = head[where.end():].strip()
        if find_top_level(condition, r'(?<![\w.])OR\b'):
            head = f"{head[:where.end()]} ({condition})"
        head += f" AND ROWNUM <= {count}"
    else:
        head += f" WHERE ROWNUM <= {count}"
    return head + gap + tail if trailing else head + tail


def rewrite_top(text: str, warnings: Optional[List[str]] = None) -> str:
    """
    Rewrite ``SELECT [DISTINCT] TOP n ... FROM ...`` to a ROWNUM predicate.

    The predicate goes before GROUP BY / ORDER BY / HAVING, joined with AND
    when the statement already has a WHERE clause.
    """
    position = 0
    while True:
        match = _TOP_PATTERN.search(text, position)
        if not match:
            return text
        count = match.group('count') or match.group('paren')
        select = f"SELECT {match.group('distinct') or ''}"
        stripped = text[:match.start()] + select + text[match.end():]
        end = statement_end(stripped, match.start())
        statement = stripped[match.start():end]
        rewritten = _rownum_insert(statement, count)
        if rewritten == statement:
            position = match.end()
            continue
        if warnings is not None and re.search(r'\bORDER\s+BY\b', rewritten, re.IGNORECASE):
            warnings.append(f"TOP {count} with ORDER BY: ROWNUM is applied before sorting")
        text = stripped[:match.start()] + rewritten + stripped[end:]
        position = match.start() + 1


# =============================================================================
# IDENTIFIERS AND TEMPORARY TABLES
# =============================================================================

_BRACKET_PATTERN = re.compile(r'\[([^\[\]\n]+)\]')
_TEMP_CREATE_PATTERN = re.compile(r'\bCREATE\s+TABLE\s+(#{1,2}\w+)\s*\(', re.IGNORECASE)
_TEMP_NAME_PATTERN = re.compile(r'(?<![\w#$@])#{1,2}([A-Za-z_]\w*)')


def strip_bracket_quotes(text: str) -> str:
    """``[Order Id]`` -> ``"Order Id"``, ``[name]`` -> ``name``."""
    def _replace(match: re.Match) -> str:
        name = match.group(1).strip()
        return f'"{name}"' if ' ' in name else name
    return _BRACKET_PATTERN.sub(_replace, text)


def rewrite_temp_tables(text: str) -> str:
    """
    Turn ``CREATE TABLE #t (...)`` into a global temporary table and rename
    every ``#t`` reference to ``TEMP_t``.
    """
    parts = []
    position = 0
    for match in _TEMP_CREATE_PATTERN.finditer(text):
        close = find_closing_paren(text, match.end() - 1)
        if close == -1:
            continue
        parts.append(text[position:match.start()])
        parts.append(f"CREATE GLOBAL TEMPORARY TABLE {match.group(1)} (")
        parts.append(text[match.end():close + 1])
        parts.append(" ON COMMIT PRESERVE ROWS")
        position = close + 1
    parts.append(text[position:])
    return _TEMP_NAME_PATTERN.sub(r'TEMP_\1', ''.join(parts))


# =============================================================================
# PASS ENTRY POINT
# =============================================================================

def rewrite_statements(text: str, rules: RuleSet = DEFAULT_RULESET,
                       optimization_level: str = "standard",
                       bulk_collect: bool = False,
                       warnings: Optional[List[str]] = None) -> str:
    """
    Run every statement-level rewriter in order.

    Args:
        text: Script text after routine conversion
        rules: Rule set to apply
        optimization_level: ``conservative`` drops NOLOCK instead of mapping it
        bulk_collect: Rewrite cursor fetch loops in standalone batches
        warnings: Optional list collecting conversion warnings

    Returns:
        Rewritten text
    """
    text = wrap_procedural_batches(text, bulk_collect, warnings)
    text = apply_rules(text, rules.batch_separators)
    text = apply_rules(text, rules.functions[:1])
    text = apply_rules(text, rules.date_arithmetic)
    text = apply_rules(text, rules.functions[1:])
    hints = rules.conservative_hints if optimization_level == "conservative" else rules.hints
    text = apply_rules(text, hints)
    text = rewrite_top(text, warnings)
    text = strip_bracket_quotes(text)
    text = rewrite_temp_tables(text)
    text = apply_rules(text, rules.system_catalog)
    text = apply_rules(text, rules.system_variables)
    text = apply_rules(text, rules.null_semantics)
    return text

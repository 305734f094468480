"""
Heuristic PL/SQL syntax repair.

Runs after every structural pass:

- appends ``END;`` lines when BEGIN/CASE openers outnumber block ENDs
- collapses doubled statement terminators and doubled ``/`` lines
- terminates a bare ``END`` that closes a block
- inserts a missing ``;`` before a line starting a new DML/DDL statement
- removes stray ``[`` / ``]`` left from bracket quoting

The pass only appends or normalizes punctuation and is idempotent.
"""

import re
from typing import List

from .preprocessor import CODE, iter_segments, strip_literals


_OPENER_PATTERN = re.compile(r'(?<![\w.$#])(?:BEGIN(?!\s+TRAN)|CASE)\b', re.IGNORECASE)
_CLOSER_PATTERN = re.compile(r'(?<![\w.$#])END\b(?!\s+(?:IF|LOOP)\b)', re.IGNORECASE)
_DOUBLE_TERMINATOR_PATTERN = re.compile(r';(?:[ \t]*;)+')
_STRAY_BRACKET_PATTERN = re.compile(r'[\[\]]')

_STATEMENT_START_PATTERN = re.compile(
    r'^\s*(?:SELECT|INSERT|UPDATE|DELETE|MERGE|CREATE|DROP|ALTER|TRUNCATE|GRANT|REVOKE|'
    r'COMMIT|ROLLBACK)\b',
    re.IGNORECASE,
)
# Line endings after which the next line continues the same statement
_CONTINUATION_END_PATTERN = re.compile(
    r'(?:(?<![\w.])(?:AS|IS|THEN|ELSE|LOOP|BEGIN|DECLARE|UNION|ALL|EXCEPT|INTERSECT|MINUS|'
    r'FOR|AND|OR|NOT|IN|EXISTS|SELECT|FROM|WHERE|BY|ON|INTO|SET|VALUES|WHEN|RETURN|WITH)'
    r'|[(,=+\-*/<>|;])\s*$',
    re.IGNORECASE,
)
_COMMENT_LINE_PATTERN = re.compile(r'^\s*--|\*/\s*$')
_BARE_END_PATTERN = re.compile(r'^(\s*END(?:\s+(?!IF\b|LOOP\b|CASE\b)\w+)?)\s*$', re.IGNORECASE)
_BLOCK_FOLLOWER_PATTERN = re.compile(r'^\s*(?:/\s*$|CREATE\b|DECLARE\b|BEGIN\b)', re.IGNORECASE)


def block_balance(text: str) -> int:
    """
    Number of BEGIN/CASE openers minus block ENDs.

    String literals and comments are ignored; ``END IF`` and ``END LOOP``
    close IF/LOOP statements, not blocks.
    """
    code = re.sub(r'\bEND\s+CASE\b', 'END', strip_literals(text), flags=re.IGNORECASE)
    return len(_OPENER_PATTERN.findall(code)) - len(_CLOSER_PATTERN.findall(code))


def _map_code(text: str, transform) -> str:
    return ''.join(
        transform(segment) if kind == CODE else segment
        for kind, segment, _ in iter_segments(text)
    )


def collapse_terminators(text: str) -> str:
    """``;;`` -> ``;`` and consecutive ``/`` lines -> one ``/`` line."""
    text = _map_code(text, lambda code: _DOUBLE_TERMINATOR_PATTERN.sub(';', code))

    lines: List[str] = []
    previous = None
    for line in text.split('\n'):
        stripped = line.strip()
        if stripped == '/' and previous in (None, '/'):
            continue
        lines.append(line)
        if stripped:
            previous = stripped
    return '\n'.join(lines)


def _next_code_line(lines: List[str], index: int) -> str:
    for line in lines[index + 1:]:
        if line.strip():
            return line
    return ""


def insert_terminators(text: str) -> str:
    """
    Add a ``;`` to a line that lacks one when the next non-blank line starts
    a DML/DDL statement, and to a bare ``END`` closing a block.
    """
    lines = text.split('\n')
    code_lines = strip_literals(text).split('\n')
    if len(code_lines) != len(lines):
        # Literals spanning lines: fall back to the raw text
        code_lines = lines

    in_insert = False
    for index, line in enumerate(lines):
        code = code_lines[index].rstrip()
        if not code.strip():
            continue
        if re.match(r'^\s*INSERT\b', code, re.IGNORECASE):
            in_insert = True
        elif in_insert and re.match(r'^\s*SELECT\b', code, re.IGNORECASE):
            in_insert = False
            continue

        following = _next_code_line(lines, index)
        if _BARE_END_PATTERN.match(code) and (not following or _BLOCK_FOLLOWER_PATTERN.match(following)):
            lines[index] = line.rstrip() + ';'
            in_insert = False
            continue

        if code.endswith(';'):
            in_insert = False
            continue
        if not following or not _STATEMENT_START_PATTERN.match(following):
            continue
        if _COMMENT_LINE_PATTERN.search(line) or _CONTINUATION_END_PATTERN.search(code):
            continue
        if in_insert and re.match(r'^\s*SELECT\b', following, re.IGNORECASE):
            continue
        lines[index] = line.rstrip() + ';'
        in_insert = False
    return '\n'.join(lines)


def balance_blocks(text: str) -> str:
    """Append one ``END;`` line per unmatched BEGIN/CASE opener."""
    missing = block_balance(text)
    if missing <= 0:
        return text
    return text.rstrip() + '\n' + '\n'.join(["END;"] * missing)


def remove_stray_brackets(text: str) -> str:
    return _map_code(text, lambda code: _STRAY_BRACKET_PATTERN.sub('', code))


def repair_syntax(text: str) -> str:
    """
    Run every repair step.

    Args:
        text: Converted PL/SQL text

    Returns:
        Repaired text; running it again returns the same text
    """
    text = remove_stray_brackets(text)
    text = insert_terminators(text)
    text = collapse_terminators(text)
    text = balance_blocks(text)
    return text

"""
Input normalization for Sybase T-SQL scripts.

Runs before any structural rewriting:

- CRLF / CR line endings -> LF
- 3+ consecutive blank lines -> a single blank line
- double-quoted string literals -> single-quoted literals
- full-line ``-- comment`` -> ``/* comment */``
- ``@ name`` -> ``@name``

It also provides the literal vault: string literal contents and comments are
swapped for placeholders so that no later pass rewrites text inside them,
and are restored once every pass has run.
"""

import re
from typing import Dict, Iterator, Tuple


CODE = "code"
STRING = "string"
DOUBLE_QUOTED = "double_quoted"
LINE_COMMENT = "line_comment"
BLOCK_COMMENT = "block_comment"

PLACEHOLDER_MARK = "\x00"
PLACEHOLDER_PATTERN = re.compile(r'\x00(\d+)\x00')

_BLANK_LINES_PATTERN = re.compile(r'\n(?:[ \t]*\n){3,}')
_SIGIL_SPACE_PATTERN = re.compile(r'(?<![\w@])(@{1,2})[ \t]+(?=[A-Za-z_])')


def iter_segments(sql: str) -> Iterator[Tuple[str, str, int]]:
    """
    Split SQL text into code, string literal and comment segments.

    Handles:
    - Single-quoted literals with doubled-quote escapes
    - Double-quoted literals with doubled-quote escapes
    - ``--`` comments up to (not including) the end of line
    - ``/* */`` comments; an unterminated one runs to end of text

    Args:
        sql: SQL text

    Yields:
        ``(kind, text, start_offset)`` tuples that concatenate back to ``sql``
    """
    length = len(sql)
    i = 0
    code_start = 0

    while i < length:
        char = sql[i]
        if char in ("'", '"'):
            kind = STRING if char == "'" else DOUBLE_QUOTED
            end = i + 1
            while end < length:
                if sql[end] == char:
                    # Doubled quote is an escaped quote
                    if end + 1 < length and sql[end + 1] == char:
                        end += 2
                        continue
                    break
                end += 1
            if end >= length:
                # Unterminated literal: leave the rest as code
                i += 1
                continue
            end += 1
        elif sql.startswith('--', i):
            kind = LINE_COMMENT
            end = sql.find('\n', i)
            if end == -1:
                end = length
        elif sql.startswith('/*', i):
            kind = BLOCK_COMMENT
            end = sql.find('*/', i + 2)
            end = length if end == -1 else end + 2
        else:
            i += 1
            continue

        if code_start < i:
            yield CODE, sql[code_start:i], code_start
        yield kind, sql[i:end], i
        i = end
        code_start = end

    if code_start < length:
        yield CODE, sql[code_start:], code_start


def normalize_line_endings(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more blank lines into one blank line."""
    return _BLANK_LINES_PATTERN.sub('\n\n', text)


def _double_to_single_quoted(literal: str) -> str:
    inner = literal[1:-1].replace('""', '"').replace("'", "''")
    return f"'{inner}'"


def _line_comment_to_block(comment: str) -> str:
    text = comment[2:].strip()
    if '/*' in text or '*/' in text:
        return comment
    return f"/* {text} */" if text else "/* */"


def _starts_line(sql: str, offset: int) -> bool:
    line_start = sql.rfind('\n', 0, offset) + 1
    return not sql[line_start:offset].strip()


def preprocess(text: str) -> str:
    """
    Normalize raw Sybase source text.

    Never raises; text that matches none of the normalizations comes back
    with only its line endings unified.

    Args:
        text: Raw source text

    Returns:
        Normalized text
    """
    text = collapse_blank_lines(normalize_line_endings(text))

    parts = []
    for kind, segment, offset in iter_segments(text):
        if kind == CODE:
            segment = _SIGIL_SPACE_PATTERN.sub(r'\1', segment)
        elif kind == DOUBLE_QUOTED:
            segment = _double_to_single_quoted(segment)
        elif kind == LINE_COMMENT and _starts_line(text, offset):
            segment = _line_comment_to_block(segment)
        parts.append(segment)
    return ''.join(parts)


# =============================================================================
# LITERAL VAULT
# =============================================================================

class LiteralVault:
    """
    Store for masked string literal contents and comment texts.

    Masked literals keep their delimiters (``'\\x000\\x00'``,
    ``/*\\x001\\x00*/``) so passes still see a literal or a comment where
    one was. Line comments are masked as block comments.
    """

    def __init__(self):
        self._values: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._values)

    def stash(self, value: str) -> str:
        key = len(self._values)
        self._values[key] = value
        return f"{PLACEHOLDER_MARK}{key}{PLACEHOLDER_MARK}"

    def restore(self, text: str) -> str:
        """Put every stashed value back in place of its placeholder."""
        if not self._values:
            return text
        return PLACEHOLDER_PATTERN.sub(
            lambda m: self._values.get(int(m.group(1)), m.group(0)), text
        )


def protect(text: str) -> Tuple[str, LiteralVault]:
    """
    Mask string literal contents and comments.

    Args:
        text: Preprocessed text (double-quoted literals already converted)

    Returns:
        Tuple of (masked text, vault to restore it with)
    """
    vault = LiteralVault()
    parts = []
    for kind, segment, _ in iter_segments(text):
        if kind in (STRING, DOUBLE_QUOTED) and len(segment) > 2:
            quote = segment[0]
            segment = quote + vault.stash(segment[1:-1]) + quote
        elif kind == BLOCK_COMMENT and segment.endswith('*/') and len(segment) > 4:
            segment = '/*' + vault.stash(segment[2:-2]) + '*/'
        elif kind == LINE_COMMENT and len(segment) > 2:
            body = segment[2:]
            # Trailing comments become block comments so a terminator can follow
            if '*/' in body or '/*' in body:
                segment = '--' + vault.stash(body)
            else:
                segment = '/*' + vault.stash(f" {body.strip()} ") + '*/'
        parts.append(segment)
    return ''.join(parts), vault


def strip_literals(text: str) -> str:
    """Blank out string literals and comments, keeping code text only."""
    return ''.join(
        segment if kind == CODE else ' '
        for kind, segment, _ in iter_segments(text)
    )

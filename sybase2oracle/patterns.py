"""
Sybase T-SQL to Oracle rewrite rules.

This module contains the static pattern library used by the statement-level
and procedure passes, grouped by concern:

- functions (ISNULL, LEN, CHARINDEX, CONVERT, string concatenation, ...)
- table/locking hints (NOLOCK, HOLDLOCK, ...)
- batch separators (GO)
- NULL comparison semantics
- date arithmetic (GETDATE, DATEADD, DATEDIFF, DATEPART, ...)
- system catalog names and @@ system variables

It also holds the small scanning helpers (balanced parentheses, top-level
comma splitting) that the other passes share.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

from .type_mappings import DATE_PART_ALIASES, base_type_name


# =============================================================================
# SCANNING HELPERS
# =============================================================================

def find_closing_paren(text: str, open_index: int) -> int:
    """
    Find the parenthesis closing the one at ``open_index``.

    Args:
        text: Text to scan
        open_index: Index of an opening ``(``

    Returns:
        Index of the matching ``)``, or -1 when the text is unbalanced
    """
    depth = 0
    in_quote = False
    for i in range(open_index, len(text)):
        char = text[i]
        if in_quote:
            if char == "'":
                in_quote = False
            continue
        if char == "'":
            in_quote = True
        elif char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
    return -1


def depth_map(text: str) -> List[int]:
    """
    Parenthesis depth at every index of ``text`` (-1 inside a string literal).
    """
    depths = []
    depth = 0
    in_quote = False
    for char in text:
        if in_quote:
            depths.append(-1)
            if char == "'":
                in_quote = False
            continue
        if char == "'":
            in_quote = True
            depths.append(-1)
            continue
        if char == ')':
            depth = max(depth - 1, 0)
        depths.append(depth)
        if char == '(':
            depth += 1
    return depths


def split_top_level(text: str, separator: str = ',') -> List[str]:
    """
    Split ``text`` on ``separator`` occurrences outside parentheses and quotes.

    Returns:
        List of raw (unstripped) pieces; an empty list for blank input
    """
    if not text.strip():
        return []
    pieces = []
    depths = depth_map(text)
    start = 0
    for i, char in enumerate(text):
        if char == separator and depths[i] == 0:
            pieces.append(text[start:i])
            start = i + 1
    pieces.append(text[start:])
    return pieces


def find_top_level(text: str, pattern: Union[str, re.Pattern], start: int = 0) -> Optional[re.Match]:
    """Return the first match of ``pattern`` at parenthesis depth 0."""
    if isinstance(pattern, str):
        pattern = re.compile(pattern, re.IGNORECASE)
    depths = depth_map(text)
    for match in pattern.finditer(text, start):
        if depths[match.start()] == 0:
            return match
    return None


def replace_function_calls(text: str, function: str,
                           rewrite: Callable[[List[str]], Optional[str]]) -> str:
    """
    Rewrite every call of ``function`` using its balanced argument list.

    Nested calls of the same function are rewritten inside-out.

    Args:
        text: Text to transform
        function: Function name (regex-escaped by the caller when needed)
        rewrite: Callable receiving the stripped arguments; returns the
            replacement text, or None to keep the call unchanged

    Returns:
        Transformed text
    """
    pattern = re.compile(rf'(?<![\w.@#$]){function}\s*\(', re.IGNORECASE)
    parts = []
    pos = 0
    while True:
        match = pattern.search(text, pos)
        if not match:
            break
        close = find_closing_paren(text, match.end() - 1)
        if close == -1:
            break
        raw_args = [
            replace_function_calls(arg, function, rewrite)
            for arg in split_top_level(text[match.end():close])
        ]
        replacement = rewrite([arg.strip() for arg in raw_args])
        parts.append(text[pos:match.start()])
        if replacement is None:
            parts.append(text[match.start():match.end()] + ','.join(raw_args) + ')')
        else:
            parts.append(replacement)
        pos = close + 1
    parts.append(text[pos:])
    return ''.join(parts)


# =============================================================================
# RULE TYPES
# =============================================================================

@dataclass(frozen=True)
class ConversionRule:
    """A regex matcher and a rewrite of its captures."""
    name: str
    pattern: str
    replacement: Union[str, Callable[[re.Match], str]]
    flags: int = re.IGNORECASE
    description: str = ""
    _compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, '_compiled', re.compile(self.pattern, self.flags))

    @property
    def compiled_pattern(self) -> re.Pattern:
        return self._compiled

    def apply(self, text: str) -> str:
        return self._compiled.sub(self.replacement, text)


@dataclass(frozen=True)
class FunctionRule:
    """A rewrite of a function call driven by its balanced argument list."""
    name: str
    function: str
    rewrite: Callable[[List[str]], Optional[str]]
    description: str = ""

    def apply(self, text: str) -> str:
        return replace_function_calls(text, self.function, self.rewrite)


Rule = Union[ConversionRule, FunctionRule]


def apply_rules(text: str, rules: Tuple[Rule, ...]) -> str:
    """Apply ``rules`` in order; each rule sees the previous rule's output."""
    for rule in rules:
        text = rule.apply(text)
    return text


# =============================================================================
# DATE ARITHMETIC
# =============================================================================

DATEADD_TEMPLATES = {
    'day': "({date} + {n})",
    'dayofyear': "({date} + {n})",
    'weekday': "({date} + {n})",
    'week': "({date} + 7 * ({n}))",
    'month': "ADD_MONTHS({date}, {n})",
    'quarter': "ADD_MONTHS({date}, 3 * ({n}))",
    'year': "ADD_MONTHS({date}, 12 * ({n}))",
    'hour': "({date} + NUMTODSINTERVAL({n}, 'HOUR'))",
    'minute': "({date} + NUMTODSINTERVAL({n}, 'MINUTE'))",
    'second': "({date} + NUMTODSINTERVAL({n}, 'SECOND'))",
    'millisecond': "({date} + NUMTODSINTERVAL(({n}) / 1000, 'SECOND'))",
}
DATEADD_FALLBACK = "({date} + NUMTODSINTERVAL({n}, 'SECOND'))"

DATEDIFF_TEMPLATES = {
    'day': "(TRUNC({end}) - TRUNC({start}))",
    'dayofyear': "(TRUNC({end}) - TRUNC({start}))",
    'weekday': "(TRUNC({end}) - TRUNC({start}))",
    'week': "TRUNC((TRUNC({end}) - TRUNC({start})) / 7)",
    'month': "MONTHS_BETWEEN(TRUNC({end}, 'MM'), TRUNC({start}, 'MM'))",
    'quarter': "TRUNC(MONTHS_BETWEEN(TRUNC({end}, 'Q'), TRUNC({start}, 'Q')) / 3)",
    'year': "TRUNC(MONTHS_BETWEEN(TRUNC({end}, 'YYYY'), TRUNC({start}, 'YYYY')) / 12)",
    'hour': "ROUND((CAST({end} AS DATE) - CAST({start} AS DATE)) * 24)",
    'minute': "ROUND((CAST({end} AS DATE) - CAST({start} AS DATE)) * 1440)",
    'second': "ROUND((CAST({end} AS DATE) - CAST({start} AS DATE)) * 86400)",
    'millisecond': "ROUND((CAST({end} AS DATE) - CAST({start} AS DATE)) * 86400000)",
}
DATEDIFF_FALLBACK = "ROUND((CAST({end} AS DATE) - CAST({start} AS DATE)) * 86400)"

# TO_CHAR format elements used by DATEPART / DATENAME
DATEPART_FORMATS = {
    'year': 'YYYY',
    'quarter': 'Q',
    'month': 'MM',
    'week': 'IW',
    'day': 'DD',
    'dayofyear': 'DDD',
    'weekday': 'D',
    'hour': 'HH24',
    'minute': 'MI',
    'second': 'SS',
    'millisecond': 'FF3',
}


def normalize_date_part(token: str) -> Optional[str]:
    """Map a Sybase date part (``dd``, ``month``, ...) to its canonical name."""
    return DATE_PART_ALIASES.get(token.strip().strip("'\"").lower())


def _convert_dateadd(args: List[str]) -> Optional[str]:
    if len(args) != 3:
        return None
    unit = normalize_date_part(args[0])
    template = DATEADD_TEMPLATES.get(unit, DATEADD_FALLBACK)
    return template.format(n=args[1], date=args[2])


def _convert_datediff(args: List[str]) -> Optional[str]:
    if len(args) != 3:
        return None
    unit = normalize_date_part(args[0])
    template = DATEDIFF_TEMPLATES.get(unit, DATEDIFF_FALLBACK)
    return template.format(start=args[1], end=args[2])


def _convert_datepart(args: List[str]) -> Optional[str]:
    if len(args) != 2:
        return None
    fmt = DATEPART_FORMATS.get(normalize_date_part(args[0]))
    if fmt is None:
        return None
    return f"TO_NUMBER(TO_CHAR({args[1]}, '{fmt}'))"


def _convert_datename(args: List[str]) -> Optional[str]:
    if len(args) != 2:
        return None
    unit = normalize_date_part(args[0])
    if unit == 'month':
        return f"TO_CHAR({args[1]}, 'FMMonth')"
    if unit == 'weekday':
        return f"TO_CHAR({args[1]}, 'FMDay')"
    fmt = DATEPART_FORMATS.get(unit)
    if fmt is None:
        return None
    return f"TO_CHAR({args[1]}, '{fmt}')"


def _extract(field_name: str) -> Callable[[List[str]], Optional[str]]:
    def _rewrite(args: List[str]) -> Optional[str]:
        if len(args) != 1:
            return None
        return f"EXTRACT({field_name} FROM {args[0]})"
    return _rewrite


DATE_RULES: Tuple[Rule, ...] = (
    ConversionRule("getdate", r'(?<![\w.])GETDATE\s*\(\s*\)', 'SYSTIMESTAMP',
                   description="GETDATE() -> SYSTIMESTAMP"),
    ConversionRule("getutcdate", r'(?<![\w.])GETUTCDATE\s*\(\s*\)', 'SYS_EXTRACT_UTC(SYSTIMESTAMP)'),
    FunctionRule("dateadd", "DATEADD", _convert_dateadd,
                 description="DATEADD(unit, n, d) -> unit-specific date arithmetic"),
    FunctionRule("datediff", "DATEDIFF", _convert_datediff,
                 description="DATEDIFF(unit, a, b) -> TRUNC/MONTHS_BETWEEN arithmetic"),
    FunctionRule("datepart", "DATEPART", _convert_datepart),
    FunctionRule("datename", "DATENAME", _convert_datename),
    FunctionRule("year", "YEAR", _extract("YEAR")),
    FunctionRule("month", "MONTH", _extract("MONTH")),
    FunctionRule("day", "DAY", _extract("DAY")),
)


# =============================================================================
# FUNCTIONS
# =============================================================================

# Sybase functions that only need a new name
RENAMED_FUNCTIONS = {
    "LEN": "LENGTH",
    "CHAR_LENGTH": "LENGTH",
    "SUBSTRING": "SUBSTR",
    "DATALENGTH": "LENGTHB",
    "CEILING": "CEIL",
    "STR_REPLACE": "REPLACE",
}

# Niladic Sybase functions -> Oracle expression
NILADIC_FUNCTIONS = {
    "NEWID": "SYS_GUID()",
    "RAND": "DBMS_RANDOM.VALUE",
    "USER_NAME": "USER",
    "SUSER_NAME": "USER",
    "DB_NAME": "SYS_CONTEXT('USERENV', 'DB_NAME')",
    "HOST_NAME": "SYS_CONTEXT('USERENV', 'HOST')",
}

CHARACTER_TYPES = frozenset({"VARCHAR2", "NVARCHAR2", "CHAR", "NCHAR", "VARCHAR"})


def _convert_charindex(args: List[str]) -> Optional[str]:
    if len(args) == 2:
        return f"INSTR({args[1]}, {args[0]})"
    if len(args) == 3:
        return f"INSTR({args[1]}, {args[0]}, {args[2]})"
    return None


def _convert_convert(args: List[str]) -> Optional[str]:
    if len(args) < 2:
        return None
    target_type, expr = args[0], args[1]
    if base_type_name(target_type) in CHARACTER_TYPES:
        return f"TO_CHAR({expr})"
    return f"CAST({expr} AS {target_type})"


def _convert_square(args: List[str]) -> Optional[str]:
    if len(args) != 1:
        return None
    return f"POWER({args[0]}, 2)"


def _rename_rule(sybase: str, oracle: str) -> ConversionRule:
    return ConversionRule(
        sybase.lower(),
        rf'(?<![\w.@#$]){sybase}\s*\(',
        f'{oracle}(',
        description=f"{sybase}() -> {oracle}()",
    )


def _niladic_rule(sybase: str, oracle: str) -> ConversionRule:
    return ConversionRule(
        sybase.lower(),
        rf'(?<![\w.@#$]){sybase}\s*\(\s*\)',
        oracle.replace('\\', r'\\'),
        description=f"{sybase}() -> {oracle}",
    )


FUNCTION_RULES: Tuple[Rule, ...] = (
    # ISNULL stays first: the statement pass runs it ahead of the date rules
    _rename_rule("ISNULL", "NVL"),
    *(_rename_rule(s, o) for s, o in RENAMED_FUNCTIONS.items()),
    *(_niladic_rule(s, o) for s, o in NILADIC_FUNCTIONS.items()),
    FunctionRule("charindex", "CHARINDEX", _convert_charindex,
                 description="CHARINDEX(needle, haystack) -> INSTR(haystack, needle)"),
    FunctionRule("convert", "CONVERT", _convert_convert,
                 description="CONVERT(type, expr) -> TO_CHAR / CAST"),
    FunctionRule("square", "SQUARE", _convert_square),
    # String concatenation next to a literal: 'a' + b -> 'a' || b
    ConversionRule("concat_after_literal", r"'(\s*)\+(?!\+)", r"'\1||"),
    ConversionRule("concat_before_literal", r"(?<!\+)\+(\s*)'", r"||\1'"),
)


# =============================================================================
# HINTS
# =============================================================================

HINT_RULES: Tuple[Rule, ...] = (
    ConversionRule("nolock", r'\s*(?:WITH\s*)?\(\s*NOLOCK\s*\)', ' /*+ RESULT_CACHE */',
                   description="WITH (NOLOCK) -> /*+ RESULT_CACHE */"),
    ConversionRule("holdlock", r'[ \t]+(?:NOHOLDLOCK|HOLDLOCK|READPAST)\b', ''),
    ConversionRule("isolation", r'[ \t]+AT\s+ISOLATION\s+(?:READ\s+\w+|\d)\b', ''),
)

# Conservative level: no hint is introduced, locking hints are dropped
CONSERVATIVE_HINT_RULES: Tuple[Rule, ...] = (
    ConversionRule("nolock", r'\s*(?:WITH\s*)?\(\s*NOLOCK\s*\)', ''),
    *HINT_RULES[1:],
)


# =============================================================================
# BATCH SEPARATORS
# =============================================================================

SEPARATOR_COMMENT = r'(?:/\*[^\n]*?\*/|--[^\n]*)'

# A trailing comment after GO still makes the line a separator
BATCH_SEPARATOR_PATTERN = re.compile(
    rf'^[ \t]*GO(?:[ \t]+\d+)?[ \t]*;?[ \t]*(?P<comment>{SEPARATOR_COMMENT})?[ \t]*$',
    re.IGNORECASE | re.MULTILINE,
)


def _separator_to_slash(match: re.Match) -> str:
    comment = match.group('comment')
    return f"/\n{comment}" if comment else '/'


BATCH_RULES: Tuple[Rule, ...] = (
    ConversionRule("go", BATCH_SEPARATOR_PATTERN.pattern, _separator_to_slash,
                   flags=re.IGNORECASE | re.MULTILINE,
                   description="GO batch separator -> /"),
)


# =============================================================================
# NULL SEMANTICS
# =============================================================================

_OPERAND = r'[\w.@:%$#]+'

NULL_RULES: Tuple[Rule, ...] = (
    ConversionRule(
        "not_equals_null",
        rf'\b(WHERE|AND|OR|IF|ELSIF|WHILE|WHEN|ON|NOT)(\s+\(?\s*{_OPERAND})\s*(?:!=|<>)\s*NULL\b',
        r'\1\2 IS NOT NULL',
    ),
    ConversionRule(
        "equals_null",
        rf'\b(WHERE|AND|OR|IF|ELSIF|WHILE|WHEN|ON|NOT)(\s+\(?\s*{_OPERAND})\s*(?<![:<>!])=\s*NULL\b',
        r'\1\2 IS NULL',
    ),
)


# =============================================================================
# SYSTEM CATALOG AND SYSTEM VARIABLES
# =============================================================================

SYSTEM_CATALOG_NAMES = {
    "sysobjects": "ALL_OBJECTS",
    "syscolumns": "ALL_TAB_COLUMNS",
    "sysindexes": "ALL_INDEXES",
    "sysusers": "ALL_USERS",
    "syslogins": "DBA_USERS",
    "sysprocedures": "ALL_PROCEDURES",
    "syscomments": "ALL_SOURCE",
    "systypes": "ALL_TYPES",
    "sysconstraints": "ALL_CONSTRAINTS",
    "sysreferences": "ALL_CONSTRAINTS",
    "sysdatabases": "V$DATABASE",
}

SYSTEM_VARIABLES = {
    "@@ERROR": "SQLCODE",
    "@@ROWCOUNT": "SQL%ROWCOUNT",
    "@@SPID": "SYS_CONTEXT('USERENV', 'SID')",
    "@@SERVERNAME": "SYS_CONTEXT('USERENV', 'SERVER_HOST')",
    "@@VERSION": "DBMS_DB_VERSION.VERSION",
    "@@MAXCHARLEN": "4",
}

CATALOG_RULES: Tuple[Rule, ...] = (
    ConversionRule("db_owner_prefix", r'(?<![\w.])([A-Za-z_]\w*)\.\.([A-Za-z_]\w*)', r'\1.\2',
                   description="db..table -> schema.table"),
    ConversionRule("dbo_prefix", r'(?<![\w.])dbo\.', ''),
    *(
        ConversionRule(name, rf'(?<![\w$]){name}\b', target)
        for name, target in SYSTEM_CATALOG_NAMES.items()
    ),
)

SYSTEM_VARIABLE_RULES: Tuple[Rule, ...] = tuple(
    ConversionRule(name.lower().lstrip('@'), rf'{re.escape(name)}\b', target)
    for name, target in SYSTEM_VARIABLES.items()
)


# =============================================================================
# RULE SET
# =============================================================================

@dataclass(frozen=True)
class RuleSet:
    """
    Immutable bundle of every default rule group.

    Built once at import time and passed by reference into the pipeline.
    """
    functions: Tuple[Rule, ...] = FUNCTION_RULES
    hints: Tuple[Rule, ...] = HINT_RULES
    conservative_hints: Tuple[Rule, ...] = CONSERVATIVE_HINT_RULES
    batch_separators: Tuple[Rule, ...] = BATCH_RULES
    null_semantics: Tuple[Rule, ...] = NULL_RULES
    date_arithmetic: Tuple[Rule, ...] = DATE_RULES
    system_catalog: Tuple[Rule, ...] = CATALOG_RULES
    system_variables: Tuple[Rule, ...] = SYSTEM_VARIABLE_RULES

    def rule_names(self) -> List[str]:
        names = []
        for group in (self.batch_separators, self.date_arithmetic, self.functions,
                      self.hints, self.null_semantics, self.system_catalog,
                      self.system_variables):
            names.extend(rule.name for rule in group)
        return names


DEFAULT_RULESET = RuleSet()

"""
Sybase to Oracle data type mappings.

This module holds the single authoritative table of Sybase ASE data types
and their Oracle equivalents. Every pass that needs a type (table DDL,
procedure parameters, local variables, standalone declarations) goes
through this table.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple


# Words after which a bare type keyword is an identifier, e.g. `SELECT text FROM`
_IDENTIFIER_CONTEXT = frozenset({
    "SELECT", "FROM", "WHERE", "BY", "AND", "OR", "ON", "SET", "JOIN", "NOT",
    "IS", "IN", "INTO", "UPDATE", "DELETE", "INSERT", "TABLE", "VALUES", "THEN",
    "ELSE", "WHEN", "CASE", "END", "RETURN", "DISTINCT", "TOP", "HAVING", "UNION",
    "ALL", "LIKE", "BETWEEN", "EXISTS", "PRINT", "GROUP", "ORDER", "ASC", "DESC",
    "WITH", "IF", "WHILE", "BEGIN", "EXEC", "EXECUTE", "DECLARE", "INDEX", "DROP",
})
_TRAILING_WORD = re.compile(r'[@#]?[\w$#]+$')
_TRAILING_CONVERT = re.compile(r'\bCONVERT\s*$', re.IGNORECASE)


def declares_type(text: str, position: int) -> bool:
    """
    Tell whether a bare type keyword at ``position`` stands where a type is declared.

    A type follows a column, variable or parameter name, ``AS`` in a CAST,
    ``RETURNS`` or the opening parenthesis of CONVERT. A keyword that follows
    a comma, an operator or a clause keyword is a column name.
    """
    before = text[max(0, position - 80):position].rstrip()
    if not before:
        return True
    if before[-1] in ']"':
        return True
    if before[-1] == '(':
        return _TRAILING_CONVERT.search(before[:-1]) is not None
    word = _TRAILING_WORD.search(before)
    if word is None:
        return False
    return word.group(0).upper() not in _IDENTIFIER_CONTEXT


@dataclass(frozen=True)
class TypeMapping:
    """A single source type -> target type template."""
    source_type: str
    arity: int  # 0 = bare keyword, 1 = (n), 2 = (p, s)
    target_template: str
    size_pattern: str = r'\d+'
    _compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        words = r'\s+'.join(re.escape(w) for w in self.source_type.split())
        if self.arity == 0:
            pattern = rf'(?<![@#$.\w]){words}\b(?!\s*\()'
        elif self.arity == 1:
            pattern = (
                rf'(?<![@#$.\w]){words}\s*\(\s*(?P<size>{self.size_pattern})\s*\)'
            )
        else:
            pattern = (
                rf'(?<![@#$.\w]){words}\s*\(\s*(?P<size>\d+)\s*,\s*(?P<scale>\d+)\s*\)'
            )
        object.__setattr__(self, '_compiled', re.compile(pattern, re.IGNORECASE))

    @property
    def compiled_pattern(self) -> re.Pattern:
        return self._compiled

    def render(self, size: Optional[str] = None, scale: Optional[str] = None) -> str:
        """Fill the target template with the captured size/scale."""
        return self.target_template.format(size=size, scale=scale)

    def apply(self, text: str) -> str:
        def _replace(match: re.Match) -> str:
            if self.arity == 0 and not declares_type(text, match.start()):
                return match.group(0)
            groups = match.groupdict()
            return self.render(groups.get('size'), groups.get('scale'))
        return self._compiled.sub(_replace, text)


# Order matters: sized and two-argument forms come before the bare keywords
# so that `decimal(10,2)` is never consumed by the `decimal` rule.
TYPE_MAPPINGS: Tuple[TypeMapping, ...] = (
    # ==========================================
    # EXACT NUMERICS WITH PRECISION/SCALE
    # ==========================================
    TypeMapping("decimal", 2, "NUMBER({size},{scale})"),
    TypeMapping("numeric", 2, "NUMBER({size},{scale})"),
    TypeMapping("decimal", 1, "NUMBER({size})"),
    TypeMapping("numeric", 1, "NUMBER({size})"),
    TypeMapping("float", 1, "FLOAT({size})"),

    # ==========================================
    # CHARACTER / BINARY WITH LENGTH
    # ==========================================
    TypeMapping("varchar", 1, "CLOB", size_pattern=r'max'),
    TypeMapping("nvarchar", 1, "NCLOB", size_pattern=r'max'),
    TypeMapping("varbinary", 1, "BLOB", size_pattern=r'max'),
    TypeMapping("univarchar", 1, "NVARCHAR2({size})"),
    TypeMapping("nvarchar", 1, "NVARCHAR2({size})"),
    TypeMapping("varchar", 1, "VARCHAR2({size})"),
    TypeMapping("unichar", 1, "NCHAR({size})"),
    TypeMapping("nchar", 1, "NCHAR({size})"),
    TypeMapping("char", 1, "CHAR({size})"),
    TypeMapping("varbinary", 1, "RAW({size})"),
    TypeMapping("binary", 1, "RAW({size})"),

    # ==========================================
    # INTEGERS
    # ==========================================
    TypeMapping("unsigned bigint", 0, "NUMBER(20)"),
    TypeMapping("unsigned int", 0, "NUMBER(10)"),
    TypeMapping("unsigned smallint", 0, "NUMBER(5)"),
    TypeMapping("bigint", 0, "NUMBER(19)"),
    TypeMapping("integer", 0, "NUMBER(10)"),
    TypeMapping("int", 0, "NUMBER(10)"),
    TypeMapping("smallint", 0, "NUMBER(5)"),
    TypeMapping("tinyint", 0, "NUMBER(3)"),
    TypeMapping("bit", 0, "NUMBER(1)"),

    # ==========================================
    # MONEY / APPROXIMATE NUMERICS
    # ==========================================
    TypeMapping("smallmoney", 0, "NUMBER(10,4)"),
    TypeMapping("money", 0, "NUMBER(19,4)"),
    TypeMapping("decimal", 0, "NUMBER"),
    TypeMapping("numeric", 0, "NUMBER"),
    TypeMapping("double precision", 0, "BINARY_DOUBLE"),
    TypeMapping("float", 0, "BINARY_DOUBLE"),
    TypeMapping("real", 0, "BINARY_FLOAT"),

    # ==========================================
    # DATE / TIME
    # ==========================================
    TypeMapping("smalldatetime", 0, "DATE"),
    TypeMapping("bigdatetime", 0, "TIMESTAMP"),
    TypeMapping("datetime", 0, "DATE"),

    # ==========================================
    # LARGE OBJECTS
    # ==========================================
    TypeMapping("unitext", 0, "NCLOB"),
    TypeMapping("text", 0, "CLOB"),
    TypeMapping("image", 0, "BLOB"),

    # ==========================================
    # CHARACTER WITHOUT LENGTH
    # ==========================================
    TypeMapping("univarchar", 0, "NVARCHAR2(255)"),
    TypeMapping("nvarchar", 0, "NVARCHAR2(255)"),
    TypeMapping("varchar", 0, "VARCHAR2(255)"),
    TypeMapping("sysname", 0, "VARCHAR2(30)"),
)

# Types whose presence marks a table as date-partitionable / LOB-heavy
DATE_TYPES = frozenset({"DATE", "TIMESTAMP"})
LOB_TYPES = frozenset({"CLOB", "NCLOB", "BLOB"})

# Sybase date part names and abbreviations -> canonical unit
DATE_PART_ALIASES = {
    "yy": "year", "yyyy": "year", "year": "year", "yr": "year",
    "qq": "quarter", "q": "quarter", "quarter": "quarter",
    "mm": "month", "m": "month", "month": "month",
    "wk": "week", "ww": "week", "week": "week",
    "dd": "day", "d": "day", "day": "day",
    "dy": "dayofyear", "y": "dayofyear", "dayofyear": "dayofyear",
    "dw": "weekday", "weekday": "weekday",
    "hh": "hour", "hour": "hour",
    "mi": "minute", "n": "minute", "minute": "minute",
    "ss": "second", "s": "second", "second": "second",
    "ms": "millisecond", "millisecond": "millisecond",
}


def apply_type_mappings(text: str, mappings: Tuple[TypeMapping, ...] = TYPE_MAPPINGS) -> str:
    """
    Rewrite every Sybase type token in ``text`` to its Oracle equivalent.

    Args:
        text: Source text (whole script or a fragment)
        mappings: Ordered mapping table

    Returns:
        Text with mapped type names; unknown types are left untouched
    """
    for mapping in mappings:
        text = mapping.apply(text)
    return text


def map_data_type(type_name: str, size: Optional[str] = None, scale: Optional[str] = None) -> str:
    """
    Map a single Sybase type (optionally with size and scale) to Oracle.

    Args:
        type_name: Type keyword, e.g. ``varchar`` or ``NUMBER``
        size: Optional length / precision
        scale: Optional scale

    Returns:
        Oracle type string. Types that are not in the table (including
        types that are already Oracle types) pass through unchanged.
    """
    name = type_name.strip()
    if size is not None and scale is not None:
        token = f"{name}({size},{scale})"
    elif size is not None:
        token = f"{name}({size})"
    else:
        token = name
    return apply_type_mappings(token)


def split_type(type_text: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split ``NUMBER(10,2)`` into ``('NUMBER', '10', '2')``."""
    match = re.match(
        r'^\s*([A-Za-z_][\w ]*?)\s*(?:\(\s*(\w+)\s*(?:,\s*(\d+)\s*)?\))?\s*$',
        type_text,
    )
    if not match:
        return type_text.strip(), None, None
    return match.group(1), match.group(2), match.group(3)


def base_type_name(type_text: str) -> str:
    """Return the upper-cased type keyword without size, e.g. ``VARCHAR2``."""
    return split_type(type_text)[0].upper()


def unsized_type(type_text: str) -> str:
    """Drop the size constraint (Oracle RETURN clauses reject sized types)."""
    return split_type(type_text)[0]

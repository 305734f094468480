"""
Sybase stored procedure, trigger and function conversion to Oracle PL/SQL.

A routine body is split into statements (keyword, parenthesis and CASE
aware), parsed into a small block tree (IF / WHILE / BEGIN ... END) and
rendered back as PL/SQL with DECLAREs hoisted into the declaration section.

Supported Sybase constructs include:
- DECLARE @var type [= init] and DECLARE cursor CURSOR FOR select
- SET @var = expr, SELECT @var = expr [FROM ...]
- IF / ELSE / ELSE IF / WHILE / BEGIN ... END / BREAK / CONTINUE
- OPEN / FETCH / CLOSE / DEALLOCATE and @@FETCH_STATUS / @@SQLSTATUS
- PRINT, RAISERROR (both the parenthesised and the Sybase number form)
- EXEC proc args, EXEC (@sql), sp_executesql
- BEGIN TRAN / COMMIT / ROLLBACK / SAVE TRAN, RETURN, labels and GOTO
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .patterns import (
    BATCH_SEPARATOR_PATTERN,
    depth_map,
    find_closing_paren,
    find_top_level,
    split_top_level,
)
from .type_mappings import map_data_type, split_type, unsized_type


logger = logging.getLogger(__name__)

INDENT = "  "

# Oracle reserves -20000 .. -20999 for application errors
ERROR_CODE_MIN = 20000
ERROR_CODE_MAX = 20999

STATEMENT_KEYWORDS = (
    "DECLARE", "SET", "SELECT", "IF", "ELSE", "WHILE", "BEGIN", "END",
    "PRINT", "RAISERROR", "EXECUTE", "EXEC", "RETURN", "INSERT", "UPDATE",
    "DELETE", "MERGE", "OPEN", "FETCH", "CLOSE", "DEALLOCATE", "BREAK",
    "CONTINUE", "COMMIT", "ROLLBACK", "SAVE", "TRUNCATE", "CREATE", "DROP",
    "ALTER", "GOTO", "WAITFOR", "GRANT",
)

_BOUNDARY_PATTERN = re.compile(
    r'(?P<label>^[ \t]*[A-Za-z_]\w*:(?!=)[ \t]*$)'
    r'|(?P<semicolon>;)'
    r'|(?<![\w@#$.])(?P<keyword>' + '|'.join(STATEMENT_KEYWORDS) + r')\b',
    re.IGNORECASE | re.MULTILINE,
)
_CASE_PATTERN = re.compile(r'(?<![\w.])CASE\b', re.IGNORECASE)
_END_PATTERN = re.compile(r'(?<![\w.])END\b', re.IGNORECASE)
_SET_OPERATOR_TAIL = re.compile(r'\b(?:UNION(?:\s+ALL)?|EXCEPT|INTERSECT|MINUS)\s*$', re.IGNORECASE)
_VARIABLE_REFERENCE = re.compile(r'(?<![@\w])@(\w+)')
_COMMENT_ONLY_PATTERN = re.compile(r'(?:/\*.*?\*/|--[^\n]*)(?:\s*(?:/\*.*?\*/|--[^\n]*))*', re.DOTALL)
_COMMENT_PATTERN = re.compile(r'/\*.*?\*/|--[^\n]*', re.DOTALL)

_ROUTINE_PATTERN = re.compile(
    r'^[ \t]*CREATE\s+(?P<kind>PROCEDURE|PROC|TRIGGER|FUNCTION)\s+(?P<name>[\w#$.\[\]]+)',
    re.IGNORECASE | re.MULTILINE,
)
_PARAMETER_PATTERN = re.compile(
    r'^\s*@(?P<name>\w+)\s+(?:AS\s+)?'
    r'(?P<type>[A-Za-z_][\w ]*?(?:\s*\(\s*\w+\s*(?:,\s*\d+\s*)?\))?)'
    r'\s*(?:=\s*(?P<default>.+?))?\s*(?P<mode>\bOUTPUT|\bOUT)?\s*$',
    re.IGNORECASE | re.DOTALL,
)
_VARIABLE_PATTERN = re.compile(
    r'^\s*@(?P<name>\w+)\s+(?:AS\s+)?'
    r'(?P<type>[A-Za-z_][\w ]*?(?:\s*\(\s*\w+\s*(?:,\s*\d+\s*)?\))?)'
    r'\s*(?:=\s*(?P<init>.+?))?\s*$',
    re.IGNORECASE | re.DOTALL,
)
_CURSOR_PATTERN = re.compile(
    r'^DECLARE\s+(?P<name>\w+)\s+(?:INSENSITIVE\s+|SCROLL\s+|SEMI_SENSITIVE\s+)*CURSOR\s+'
    r'(?:(?:LOCAL|GLOBAL|FORWARD_ONLY|STATIC|DYNAMIC|FAST_FORWARD|READ_ONLY)\s+)*'
    r'FOR\s+(?P<select>.+?)'
    r'(?P<for_clause>\s+FOR\s+(?:READ\s+ONLY|UPDATE(?:\s+OF\s+.+)?))?\s*$',
    re.IGNORECASE | re.DOTALL,
)
_FETCH_PATTERN = re.compile(
    r'^FETCH\s+(?:(?:NEXT|PRIOR|FIRST|LAST)\s+)?(?:FROM\s+)?(?P<cursor>\w+)'
    r'(?:\s+INTO\s+(?P<targets>.+))?$',
    re.IGNORECASE | re.DOTALL,
)
_INTO_TARGETS_PATTERN = re.compile(r'(?<![\w.])INTO\s+((?:[\w$#]+\s*,\s*)*[\w$#]+)', re.IGNORECASE)
_FETCH_OK_PATTERN = re.compile(
    r'@@FETCH_STATUS\s*=\s*0\b|@@SQLSTATUS\s*=\s*0\b|@@SQLSTATUS\s*(?:<>|!=)\s*2\b',
    re.IGNORECASE,
)


# =============================================================================
# DATA TYPES
# =============================================================================

@dataclass
class Parameter:
    """A routine parameter; ``raw`` holds text no parameter pattern matched."""
    name: str
    type: str = ""
    size: Optional[str] = None
    scale: Optional[str] = None
    default: Optional[str] = None
    mode: str = "IN"
    raw: Optional[str] = None

    @property
    def oracle_name(self) -> str:
        return f"p_{self.name}"

    def render(self, rename: Callable[[str], str]) -> str:
        if self.raw is not None:
            return rename(self.raw.strip())
        text = f"{self.oracle_name} {self.mode} {map_data_type(self.type, self.size, self.scale)}"
        if self.default is not None:
            text += f" DEFAULT {rename(self.default)}"
        return text


@dataclass
class ProcedureUnit:
    """One CREATE PROCEDURE / TRIGGER / FUNCTION span, parsed."""
    name: str
    kind: str
    parameters: List[Parameter] = field(default_factory=list)
    body_text: str = ""
    return_type: Optional[str] = None
    trigger_table: Optional[str] = None
    trigger_timing: str = "AFTER"
    trigger_events: List[str] = field(default_factory=list)

    @property
    def short_name(self) -> str:
        return self.name.split('.')[-1]


@dataclass
class Statement:
    text: str


@dataclass
class Block:
    body: List["Node"]


@dataclass
class IfBlock:
    condition: str
    then: List["Node"]
    otherwise: Optional[List["Node"]] = None


@dataclass
class WhileLoop:
    condition: str
    body: List["Node"]


@dataclass
class BulkCollectLoop:
    """A cursor fetch loop rewritten as BULK COLLECT + FOR loop."""
    cursor: str
    targets: List[str]
    body: List["Node"]


Node = Union[Statement, Block, IfBlock, WhileLoop, BulkCollectLoop]


# =============================================================================
# STATEMENT SPLITTING AND PARSING
# =============================================================================

def leading_keyword(text: str) -> str:
    match = re.match(r'\s*([A-Za-z_]+)', text)
    return match.group(1).upper() if match else ""


def is_comment(text: str) -> bool:
    """True when ``text`` holds nothing but comments."""
    return _COMMENT_ONLY_PATTERN.fullmatch(text.strip()) is not None


def _case_is_open(text: str) -> bool:
    depths = depth_map(text)
    opened = sum(1 for m in _CASE_PATTERN.finditer(text) if depths[m.start()] == 0)
    closed = sum(1 for m in _END_PATTERN.finditer(text) if depths[m.start()] == 0)
    return opened > closed


def _has_top_level(text: str, keyword: str) -> bool:
    return find_top_level(text, rf'(?<![\w.]){keyword}\b') is not None


def _continues_statement(current: str, keyword: str, following: str) -> bool:
    """
    Decide whether ``keyword`` belongs to the statement collected so far.

    Args:
        current: Statement text collected so far
        keyword: Upper-cased keyword found at parenthesis depth 0
        following: Text after the keyword
    """
    first = leading_keyword(current)
    stripped = current.strip()

    if _case_is_open(current):
        return True
    if keyword == "UPDATE" and following.lstrip().startswith('('):
        return True
    if keyword == "SET" and first == "UPDATE" and not _has_top_level(current, "SET"):
        return True
    if keyword == "SELECT":
        if first == "INSERT" and not _has_top_level(current, "VALUES") \
                and not _has_top_level(stripped[6:], "SELECT"):
            return True
        if _SET_OPERATOR_TAIL.search(stripped):
            return True
        if first == "DECLARE" and re.search(r'\bCURSOR\b.*\bFOR$', stripped, re.IGNORECASE | re.DOTALL):
            return True
    if keyword in ("EXEC", "EXECUTE") and first == "INSERT" \
            and not _has_top_level(stripped[6:], "SELECT"):
        return True
    if keyword == "UPDATE" and re.search(r'\bFOR$', stripped, re.IGNORECASE):
        return True
    if keyword in ("DELETE", "UPDATE") and re.search(r'\bON$', stripped, re.IGNORECASE):
        return True
    return False


def split_statements(body: str) -> List[str]:
    """
    Split a T-SQL body into statements.

    Statements are separated by ``;`` or by a statement keyword at
    parenthesis depth 0. Keywords that continue the current statement
    (``UPDATE ... SET``, ``INSERT ... SELECT``, ``UNION SELECT``, CASE
    ``ELSE``/``END``, cursor ``FOR SELECT``) do not split.

    Args:
        body: Routine body or script batch (literals already masked)

    Returns:
        Stripped statements without trailing semicolons
    """
    depths = depth_map(body)
    pieces = []
    start = 0
    for match in _BOUNDARY_PATTERN.finditer(body):
        position = match.start()
        if position < start or depths[position] != 0:
            continue
        current = body[start:position]
        if match.group('semicolon'):
            pieces.append(current)
            start = match.end()
            continue
        if not current.strip():
            continue
        if match.group('keyword'):
            keyword = match.group('keyword').upper()
            if _continues_statement(current, keyword, body[match.end():]):
                continue
        pieces.append(current)
        start = position
    pieces.append(body[start:])
    return [piece.strip() for piece in pieces if piece.strip()]


def _bare(text: str) -> str:
    """Upper-cased statement text without comments."""
    return _COMMENT_PATTERN.sub(' ', text).strip().upper()


def _is_block_begin(text: str) -> bool:
    return _bare(text) == "BEGIN"


def _skip_comments(statements: List[str], index: int) -> int:
    while index < len(statements) and is_comment(statements[index]):
        index += 1
    return index


def _parse_sequence(statements: List[str], index: int, inside_block: bool) -> Tuple[List[Node], int]:
    nodes: List[Node] = []
    while index < len(statements):
        bare = _bare(statements[index])
        if bare == "END":
            if inside_block:
                return nodes, index + 1
            # Unmatched END
            index += 1
            continue
        if bare == "ELSE":
            index += 1
            continue
        node, index = _parse_node(statements, index)
        nodes.append(node)
    return nodes, index


def _parse_body(statements: List[str], index: int) -> Tuple[List[Node], int]:
    """Parse an IF/WHILE/ELSE body: a BEGIN ... END block or one statement."""
    start = index
    index = _skip_comments(statements, index)
    comments: List[Node] = [Statement(text) for text in statements[start:index]]
    if index >= len(statements) or _bare(statements[index]) in ("END", "ELSE"):
        return comments, index
    node, index = _parse_node(statements, index)
    if isinstance(node, Block):
        return comments + node.body, index
    return comments + [node], index


def _parse_node(statements: List[str], index: int) -> Tuple[Node, int]:
    text = statements[index]
    keyword = leading_keyword(text)

    if keyword == "BEGIN" and _is_block_begin(text):
        body, index = _parse_sequence(statements, index + 1, inside_block=True)
        return Block(body), index

    if keyword == "IF":
        condition = text.strip()[2:].strip()
        then, index = _parse_body(statements, index + 1)
        otherwise = None
        lookahead = _skip_comments(statements, index)
        if lookahead < len(statements) and _bare(statements[lookahead]) == "ELSE":
            then.extend(Statement(s) for s in statements[index:lookahead])
            otherwise, index = _parse_body(statements, lookahead + 1)
        return IfBlock(condition, then, otherwise), index

    if keyword == "WHILE":
        condition = text.strip()[5:].strip()
        body, index = _parse_body(statements, index + 1)
        return WhileLoop(condition, body), index

    return Statement(text), index + 1


def parse_statements(statements: List[str]) -> List[Node]:
    """Parse split statements into a block tree."""
    nodes, _ = _parse_sequence(statements, 0, inside_block=False)
    # The whole body is usually wrapped in one BEGIN ... END
    code = [n for n in nodes if not (isinstance(n, Statement) and is_comment(n.text))]
    if len(code) == 1 and isinstance(code[0], Block):
        flattened: List[Node] = []
        for node in nodes:
            flattened.extend(node.body if node is code[0] else [node])
        return flattened
    return nodes


def parse_body(body: str) -> List[Node]:
    """Split and parse a routine body into a block tree."""
    return parse_statements(split_statements(body))


# =============================================================================
# BODY CONVERSION
# =============================================================================

def _parse_fetch(text: str) -> Optional[Tuple[str, List[str]]]:
    match = _FETCH_PATTERN.match(text.strip())
    if not match:
        return None
    targets = match.group('targets') or ''
    return match.group('cursor'), [t.strip() for t in split_top_level(targets)]


class BodyConverter:
    """
    Convert one routine body (or one anonymous batch) to PL/SQL lines.

    Declarations found anywhere in the body are collected and rendered
    separately by :meth:`render_declarations`.
    """

    def __init__(
        self,
        parameters: Optional[List[Parameter]] = None,
        routine_kind: str = "PROCEDURE",
        bulk_collect: bool = False,
        indent: str = INDENT,
    ):
        self.parameters = {
            p.name.lower(): p.oracle_name for p in (parameters or []) if p.raw is None
        }
        self.routine_kind = routine_kind
        self.bulk_collect = bulk_collect
        self.indent = indent
        self.warnings: List[str] = []

        self._declarations: List[Tuple[str, str]] = []
        self._cursor_sources: Dict[str, str] = {}
        self._bulk_cursors: Set[str] = set()
        self._savepoints: Set[str] = set()
        self._current_cursor: Optional[str] = None
        self._result_sets = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def rename(self, text: str) -> str:
        """Rewrite ``@param`` to ``p_param`` and ``@local`` to ``v_local``."""
        def _replace(match: re.Match) -> str:
            name = match.group(1)
            return self.parameters.get(name.lower(), f"v_{name}")
        return _VARIABLE_REFERENCE.sub(_replace, text)

    def convert(self, body: str, level: int = 1) -> List[str]:
        """
        Convert a body to indented PL/SQL lines.

        Args:
            body: Sybase body text
            level: Indentation level of top-level statements

        Returns:
            Rendered lines (``NULL;`` for an empty body)
        """
        statements = split_statements(body)
        for text in statements:
            cursor = _CURSOR_PATTERN.match(text)
            if cursor:
                self._cursor_sources[cursor.group('name').lower()] = cursor.group('select')

        nodes = parse_statements(statements)
        if self.bulk_collect:
            nodes = self._rewrite_cursor_loops(nodes)
        return self._render_body(nodes, level)

    def render_declarations(self, level: int = 1) -> List[str]:
        lines = []
        for key, text in self._declarations:
            if key.startswith("cursor:") and key[7:] in self._bulk_cursors:
                continue
            lines.extend(self._indent_text(text, level))
        return lines

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _indent_text(self, text: str, level: int) -> List[str]:
        pad = self.indent * level
        lines = [line.strip() for line in text.split('\n') if line.strip()]
        if not lines:
            return []
        return [pad + lines[0]] + [pad + self.indent + line for line in lines[1:]]

    def _declare(self, key: str, text: str) -> None:
        if any(existing == key for existing, _ in self._declarations):
            return
        self._declarations.append((key, text))

    def _render_body(self, nodes: List[Node], level: int) -> List[str]:
        lines = []
        for node in nodes:
            lines.extend(self._render_node(node, level))
        return lines or [self.indent * level + "NULL;"]

    def _render_node(self, node: Node, level: int) -> List[str]:
        pad = self.indent * level
        if isinstance(node, IfBlock):
            return self._render_if(node, level, "IF") + [f"{pad}END IF;"]
        if isinstance(node, WhileLoop):
            condition = self._condition(node.condition)
            return ([f"{pad}WHILE {condition} LOOP"]
                    + self._render_body(node.body, level + 1)
                    + [f"{pad}END LOOP;"])
        if isinstance(node, Block):
            return [f"{pad}BEGIN"] + self._render_body(node.body, level + 1) + [f"{pad}END;"]
        if isinstance(node, BulkCollectLoop):
            return self._render_bulk_loop(node, level)

        lines = []
        for text in self._convert_statement(node.text):
            lines.extend(self._indent_text(text, level))
        return lines

    def _render_if(self, node: IfBlock, level: int, keyword: str) -> List[str]:
        pad = self.indent * level
        lines = [f"{pad}{keyword} {self._condition(node.condition)} THEN"]
        lines.extend(self._render_body(node.then, level + 1))
        otherwise = node.otherwise
        if otherwise is not None:
            if len(otherwise) == 1 and isinstance(otherwise[0], IfBlock):
                lines.extend(self._render_if(otherwise[0], level, "ELSIF"))
            else:
                lines.append(f"{pad}ELSE")
                lines.extend(self._render_body(otherwise, level + 1))
        return lines

    def _condition(self, text: str) -> str:
        return self.rename(self._fetch_status(' '.join(text.split())))

    def _fetch_status(self, text: str) -> str:
        cursor = self._current_cursor
        found = f"{cursor}%FOUND" if cursor else "SQL%FOUND"
        not_found = f"{cursor}%NOTFOUND" if cursor else "SQL%NOTFOUND"
        text = re.sub(r'@@FETCH_STATUS\s*=\s*0\b', found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@FETCH_STATUS\s*(?:<>|!=)\s*0\b', not_found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@FETCH_STATUS\s*=\s*-?[12]\b', not_found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@SQLSTATUS\s*=\s*0\b', found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@SQLSTATUS\s*(?:<>|!=)\s*2\b', found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@SQLSTATUS\s*=\s*2\b', not_found, text, flags=re.IGNORECASE)
        text = re.sub(r'@@SQLSTATUS\s*(?:<>|!=)\s*0\b', not_found, text, flags=re.IGNORECASE)
        return text

    # -------------------------------------------------------------------------
    # Cursor loops -> BULK COLLECT
    # -------------------------------------------------------------------------

    def _rewrite_cursor_loops(self, nodes: List[Node]) -> List[Node]:
        result: List[Node] = []
        index = 0
        while index < len(nodes):
            matched = self._match_cursor_loop(nodes, index)
            if matched is not None:
                loop, index = matched
                result.append(loop)
                continue
            node = nodes[index]
            if isinstance(node, Block):
                node = Block(self._rewrite_cursor_loops(node.body))
            elif isinstance(node, WhileLoop):
                node = WhileLoop(node.condition, self._rewrite_cursor_loops(node.body))
            elif isinstance(node, IfBlock):
                otherwise = node.otherwise
                node = IfBlock(
                    node.condition,
                    self._rewrite_cursor_loops(node.then),
                    self._rewrite_cursor_loops(otherwise) if otherwise is not None else None,
                )
            result.append(node)
            index += 1
        return result

    def _match_cursor_loop(self, nodes: List[Node], index: int) -> Optional[Tuple[BulkCollectLoop, int]]:
        """Match OPEN c / FETCH c INTO ... / WHILE fetch ok BEGIN ... FETCH ... END."""
        if index + 2 >= len(nodes):
            return None
        open_node, fetch_node, loop = nodes[index], nodes[index + 1], nodes[index + 2]
        if not (isinstance(open_node, Statement) and isinstance(fetch_node, Statement)
                and isinstance(loop, WhileLoop)):
            return None
        opened = re.fullmatch(r'OPEN\s+(\w+)', open_node.text.strip(), re.IGNORECASE)
        if not opened or opened.group(1).lower() not in self._cursor_sources:
            return None
        cursor = opened.group(1)
        fetch = _parse_fetch(fetch_node.text)
        if not fetch or fetch[0].lower() != cursor.lower() or not fetch[1]:
            return None
        if not _FETCH_OK_PATTERN.search(loop.condition) or not loop.body:
            return None
        last = loop.body[-1]
        if not isinstance(last, Statement) or _parse_fetch(last.text) != fetch:
            return None

        end = index + 3
        for keyword in ("CLOSE", "DEALLOCATE"):
            if end < len(nodes) and isinstance(nodes[end], Statement) and re.fullmatch(
                    rf'{keyword}\s+(?:CURSOR\s+)?{re.escape(cursor)}',
                    nodes[end].text.strip(), re.IGNORECASE):
                end += 1

        body = self._rewrite_cursor_loops(loop.body[:-1])
        self._bulk_cursors.add(cursor.lower())
        self.warnings.append(
            f"Cursor {cursor} rewritten to BULK COLLECT; review row-by-row semantics"
        )
        return BulkCollectLoop(cursor, fetch[1], body), end

    def _render_bulk_loop(self, node: BulkCollectLoop, level: int) -> List[str]:
        pad = self.indent * level
        select = self.rename(self._cursor_sources[node.cursor.lower()].strip())
        targets = [self.rename(t) for t in node.targets]
        collections = [f"{target}_list" for target in targets]
        for target, collection in zip(targets, collections):
            self._declare(f"type:{collection}", f"TYPE {collection}_t IS TABLE OF {target}%TYPE;")
            self._declare(f"var:{collection}", f"{collection} {collection}_t;")

        into = f"BULK COLLECT INTO {', '.join(collections)}"
        from_clause = find_top_level(select, r'(?<![\w.])FROM\b')
        if from_clause:
            bulk_select = f"{select[:from_clause.start()].rstrip()}\n{into}\n{select[from_clause.start():]}"
        else:
            bulk_select = f"{select}\n{into}"

        lines = self._indent_text(bulk_select + ';', level)
        lines.append(f"{pad}FOR i IN 1..{collections[0]}.COUNT LOOP")
        for target, collection in zip(targets, collections):
            lines.append(f"{pad}{self.indent}{target} := {collection}(i);")
        lines.extend(self._render_body(node.body, level + 1))
        lines.append(f"{pad}END LOOP;")
        return lines

    # -------------------------------------------------------------------------
    # Simple statements
    # -------------------------------------------------------------------------

    def _finish(self, text: str) -> str:
        text = text.strip().rstrip(';').rstrip()
        return text + ';'

    def _convert_statement(self, text: str) -> List[str]:
        text = text.strip()
        if is_comment(text):
            return [text]
        label = re.fullmatch(r'([A-Za-z_]\w*):', text)
        if label:
            return [f"<<{label.group(1)}>>"]

        handlers = {
            "DECLARE": self._convert_declare,
            "SET": self._convert_set,
            "SELECT": self._convert_select,
            "PRINT": self._convert_print,
            "RAISERROR": self._convert_raiserror,
            "EXEC": self._convert_exec,
            "EXECUTE": self._convert_exec,
            "RETURN": self._convert_return,
            "BEGIN": self._convert_transaction,
            "COMMIT": self._convert_transaction,
            "ROLLBACK": self._convert_transaction,
            "SAVE": self._convert_transaction,
            "OPEN": self._convert_cursor_statement,
            "FETCH": self._convert_cursor_statement,
            "CLOSE": self._convert_cursor_statement,
            "DEALLOCATE": self._convert_cursor_statement,
        }
        keyword = leading_keyword(text)
        handler = handlers.get(keyword)
        if handler is not None:
            return handler(text)
        if keyword == "BREAK":
            return ["EXIT;"]
        if keyword == "CONTINUE":
            return ["CONTINUE;"]
        if keyword in ("CREATE", "DROP", "ALTER", "TRUNCATE"):
            self.warnings.append(
                f"DDL inside a PL/SQL block needs EXECUTE IMMEDIATE: {' '.join(text.split()[:3])}"
            )
        return [self._finish(self.rename(text))]

    def _convert_declare(self, text: str) -> List[str]:
        cursor = _CURSOR_PATTERN.match(text)
        if cursor:
            name = cursor.group('name')
            select = self.rename(cursor.group('select').strip())
            for_clause = ' '.join((cursor.group('for_clause') or '').split())
            if for_clause.upper().startswith("FOR READ"):
                for_clause = ''
            self._current_cursor = name
            self._declare(f"cursor:{name.lower()}",
                          f"CURSOR {name} IS\n{select}{' ' + for_clause if for_clause else ''};")
            return []

        for piece in split_top_level(text.strip()[len("DECLARE"):]):
            if re.match(r'^\s*@\w+\s+TABLE\b', piece, re.IGNORECASE):
                name = re.match(r'^\s*@(\w+)', piece).group(1)
                self.warnings.append(f"Table variable @{name} needs a collection type or a temporary table")
                self._declare(f"raw:{name.lower()}", f"-- table variable {self.rename('@' + name)} needs a collection type")
                continue
            match = _VARIABLE_PATTERN.match(piece)
            if not match:
                self._declare(f"raw:{piece.strip()}", self._finish(self.rename(piece)))
                continue
            name = match.group('name')
            type_name, size, scale = split_type(match.group('type'))
            line = f"{self.rename('@' + name)} {map_data_type(type_name, size, scale)}"
            if match.group('init'):
                line += f" := {self.rename(match.group('init').strip())}"
            self._declare(f"var:{name.lower()}", line + ';')
        return []

    def _convert_set(self, text: str) -> List[str]:
        match = re.match(r'^SET\s+@(\w+)\s*([-+*/]?)=\s*(.+)$', text, re.IGNORECASE | re.DOTALL)
        if match:
            target = self.rename('@' + match.group(1))
            expr = self.rename(match.group(3).strip())
            if match.group(2):
                expr = f"{target} {match.group(2)} {expr}"
            return [f"{target} := {expr};"]

        option = ' '.join(text.split())
        if re.match(r'^SET\s+ROWCOUNT\b', option, re.IGNORECASE):
            self.warnings.append(f"'{option}' has no PL/SQL equivalent; limit rows with ROWNUM")
        return [f"-- {option}"]

    def _convert_select(self, text: str) -> List[str]:
        if re.match(r'^SELECT\s+(?:TOP\s+\d+\s+)?@\w+\s*=(?!=)', text, re.IGNORECASE):
            return self._convert_select_assignment(text)

        into = find_top_level(text, r'(?<![\w.])INTO\b')
        from_clause = find_top_level(text, r'(?<![\w.])FROM\b')
        if into and (from_clause is None or into.start() < from_clause.start()):
            target_match = re.match(r'\s*([\w#$.\[\]]+)', text[into.end():])
            if target_match:
                target = target_match.group(1)
                columns = text[len("SELECT"):into.start()].strip()
                rest = text[into.end() + target_match.end():].strip()
                self.warnings.append(
                    f"SELECT ... INTO {target} creates a table in Sybase; create {target} before the INSERT"
                )
                return [self._finish(self.rename(f"INSERT INTO {target}\nSELECT {columns}\n{rest}"))]

        # Result set returned to the caller
        self._result_sets += 1
        cursor = f"v_result{self._result_sets}"
        self._declare(f"var:{cursor}", f"{cursor} SYS_REFCURSOR;")
        return [
            self._finish(f"OPEN {cursor} FOR\n{self.rename(text)}"),
            f"DBMS_SQL.RETURN_RESULT({cursor});",
        ]

    def _convert_select_assignment(self, text: str) -> List[str]:
        head = re.match(r'^SELECT\s+(TOP\s+\d+\s+)?', text, re.IGNORECASE)
        top = head.group(1) or ''
        body = text[head.end():]
        from_clause = find_top_level(body, r'(?<![\w.])FROM\b')
        select_list = body[:from_clause.start()] if from_clause else body
        rest = body[from_clause.start():].strip() if from_clause else ''

        targets, expressions = [], []
        for piece in split_top_level(select_list):
            match = re.match(r'^\s*@(\w+)\s*=(?!=)\s*(.+?)\s*$', piece, re.DOTALL)
            if not match:
                return [self._finish(self.rename(text))]
            targets.append(self.rename('@' + match.group(1)))
            expressions.append(self.rename(match.group(2)))

        if rest:
            return [self._finish(
                f"SELECT {top}{', '.join(expressions)} INTO {', '.join(targets)}\n{self.rename(rest)}"
            )]
        if any(re.search(r'\bSELECT\b', expr, re.IGNORECASE) for expr in expressions):
            return [f"SELECT {', '.join(expressions)} INTO {', '.join(targets)} FROM dual;"]
        return [f"{target} := {expr};" for target, expr in zip(targets, expressions)]

    def _convert_print(self, text: str) -> List[str]:
        args = [self.rename(arg.strip()) for arg in split_top_level(text.strip()[len("PRINT"):])]
        if not args:
            return ["DBMS_OUTPUT.PUT_LINE('');"]
        return [f"DBMS_OUTPUT.PUT_LINE({' || '.join(args)});"]

    def _convert_raiserror(self, text: str) -> List[str]:
        rest = text.strip()[len("RAISERROR"):].strip()
        code = ERROR_CODE_MIN

        if rest.startswith('('):
            close = find_closing_paren(rest, 0)
            inner = rest[1:close] if close != -1 else rest[1:]
            args = [arg.strip() for arg in split_top_level(inner)]
            message = args[0] if args else "'Error'"
            if len(args) >= 3 and re.fullmatch(r'-?\d+', args[1]) and re.fullmatch(r'-?\d+', args[2]):
                code = int(args[1]) * 1000 + int(args[2])
            extra = args[3:]
        else:
            match = re.match(r'^(-?\d+|@\w+)\s*,?\s*(.*)$', rest, re.DOTALL)
            if not match:
                return [self._finish(self.rename(text))]
            number = match.group(1)
            remaining = [arg.strip() for arg in split_top_level(match.group(2))]
            message = remaining[0] if remaining else f"'Error {number}'"
            extra = remaining[1:]
            if number.lstrip('-').isdigit():
                code = int(number)
            else:
                self.warnings.append(f"RAISERROR with variable error number {number}; using -{ERROR_CODE_MIN}")

        code = max(ERROR_CODE_MIN, min(ERROR_CODE_MAX, code))
        message = ' || '.join(self.rename(part) for part in [message] + extra)
        return [f"RAISE_APPLICATION_ERROR(-{code}, {message});"]

    def _convert_exec(self, text: str) -> List[str]:
        rest = re.sub(r'^EXEC(?:UTE)?\b', '', text.strip(), flags=re.IGNORECASE).strip()

        if rest.startswith('('):
            close = find_closing_paren(rest, 0)
            expr = rest[1:close] if close != -1 else rest[1:]
            return [f"EXECUTE IMMEDIATE {self.rename(expr.strip())};"]

        status = re.match(r'^@(\w+)\s*=\s*', rest)
        if status:
            self.warnings.append(f"Return status of EXEC assigned to @{status.group(1)} is not converted")
            rest = rest[status.end():]

        match = re.match(r'^([\w#$.\[\]]+)\s*(.*)$', rest, re.DOTALL)
        if not match:
            return [self._finish(self.rename(text))]
        procedure = match.group(1).replace('[', '').replace(']', '')
        args_text = match.group(2).strip()

        if procedure.lower().split('.')[-1] == "sp_executesql":
            args = split_top_level(args_text)
            if len(args) > 1:
                self.warnings.append("sp_executesql parameters need a USING clause")
            statement = args[0].strip() if args else "''"
            return [f"EXECUTE IMMEDIATE {self.rename(statement)};"]

        if args_text.startswith('(') and find_closing_paren(args_text, 0) == len(args_text) - 1:
            args_text = args_text[1:-1]
        args = []
        for piece in split_top_level(args_text):
            piece = re.sub(r'\s+OUT(?:PUT)?\s*$', '', piece.strip(), flags=re.IGNORECASE)
            named = re.match(r'^@(\w+)\s*=\s*(.+)$', piece, re.DOTALL)
            if named:
                args.append(f"p_{named.group(1)} => {self.rename(named.group(2).strip())}")
            else:
                args.append(self.rename(piece))
        call = f"{procedure}({', '.join(args)})" if args else procedure
        return [f"BEGIN {call}; END;"]

    def _convert_return(self, text: str) -> List[str]:
        value = text.strip()[len("RETURN"):].strip()
        if self.routine_kind == "FUNCTION" and value:
            return [f"RETURN {self.rename(value)};"]
        return ["RETURN;"]

    def _convert_transaction(self, text: str) -> List[str]:
        words = text.split()
        keyword = words[0].upper()
        name = None
        if len(words) > 1 and words[1].upper() in ("TRAN", "TRANSACTION", "WORK"):
            name = words[2] if len(words) > 2 else None
        elif len(words) > 1:
            name = words[1]

        if keyword == "BEGIN":
            return []
        if keyword == "COMMIT":
            return ["COMMIT;"]
        if keyword == "SAVE":
            if name is None:
                return [self._finish(self.rename(text))]
            self._savepoints.add(name.lower())
            return [f"SAVEPOINT {name};"]
        if name is not None and name.lower() in self._savepoints:
            return [f"ROLLBACK TO SAVEPOINT {name};"]
        return ["ROLLBACK;"]

    def _convert_cursor_statement(self, text: str) -> List[str]:
        keyword = leading_keyword(text)
        if keyword == "FETCH":
            fetch = _parse_fetch(text)
            if fetch is None:
                return [self._finish(self.rename(text))]
            cursor, targets = fetch
            self._current_cursor = cursor
            if not targets:
                return [f"FETCH {cursor};"]
            return [f"FETCH {cursor} INTO {', '.join(self.rename(t) for t in targets)};"]

        match = re.match(r'^\w+\s+(?:CURSOR\s+)?(\w+)\s*$', text.strip(), re.IGNORECASE)
        if not match:
            return [self._finish(self.rename(text))]
        cursor = match.group(1)
        if keyword == "DEALLOCATE":
            return [f"-- DEALLOCATE {cursor}"]
        if keyword == "OPEN":
            self._current_cursor = cursor
        return [f"{keyword} {cursor};"]


# =============================================================================
# ROUTINE HEADERS
# =============================================================================

def parse_parameters(text: str) -> List[Parameter]:
    """
    Parse a Sybase parameter list.

    Args:
        text: ``@a int, @b varchar(10) = 'x' output`` (outer parentheses removed)

    Returns:
        Parameters; pieces no pattern matches are kept as raw text
    """
    parameters = []
    for piece in split_top_level(text):
        match = _PARAMETER_PATTERN.match(piece)
        if not match:
            if piece.strip():
                parameters.append(Parameter(name="", raw=piece))
            continue
        type_name, size, scale = split_type(match.group('type'))
        parameters.append(Parameter(
            name=match.group('name'),
            type=type_name,
            size=size,
            scale=scale,
            default=match.group('default'),
            mode="IN OUT" if match.group('mode') else "IN",
        ))
    return parameters


def _strip_outer_parens(text: str) -> str:
    text = text.strip()
    if text.startswith('(') and find_closing_paren(text, 0) == len(text) - 1:
        return text[1:-1]
    return text


def parse_routine(kind: str, name: str, rest: str) -> Optional[ProcedureUnit]:
    """
    Split a routine span (the text after its name) into header and body.

    Returns:
        ProcedureUnit, or None when the header cannot be recognised
    """
    kind = "PROCEDURE" if kind.upper().startswith("PROC") else kind.upper()
    name = name.replace('[', '').replace(']', '')

    if kind == "TRIGGER":
        match = re.match(
            r'\s*ON\s+(?P<table>[\w#$.\[\]]+)\s+(?P<timing>FOR|AFTER|INSTEAD\s+OF)\s+'
            r'(?P<events>[\w\s,]+?)\s+AS\b',
            rest, re.IGNORECASE,
        )
        if not match:
            return None
        timing = ' '.join(match.group('timing').upper().split())
        return ProcedureUnit(
            name=name,
            kind=kind,
            body_text=rest[match.end():],
            trigger_table=match.group('table').replace('[', '').replace(']', ''),
            trigger_timing="INSTEAD OF" if timing == "INSTEAD OF" else "AFTER",
            trigger_events=[e.strip().upper() for e in match.group('events').split(',') if e.strip()],
        )

    return_type = None
    if kind == "FUNCTION":
        returns = find_top_level(rest, r'\bRETURNS\b')
        if not returns:
            return None
        header = rest[:returns.start()]
        after = rest[returns.end():]
        body_start = find_top_level(after, r'\bAS\b') or find_top_level(after, r'\bBEGIN\b')
        if not body_start:
            return None
        return_type = after[:body_start.start()].strip()
        body = after[body_start.end():] if body_start.group(0).upper() == "AS" \
            else after[body_start.start():]
    else:
        as_match = find_top_level(rest, r'\bAS\b')
        if not as_match:
            return None
        header = rest[:as_match.start()]
        body = rest[as_match.end():]

    header = re.sub(r'\bWITH\s+RECOMPILE\b', '', header, flags=re.IGNORECASE)
    header = re.sub(r'^\s*;\s*\d+', '', header)
    return ProcedureUnit(
        name=name,
        kind=kind,
        parameters=parse_parameters(_strip_outer_parens(header)),
        body_text=body,
        return_type=return_type,
    )


def assigned_parameters(parameters: List[Parameter], body: List[str]) -> List[Parameter]:
    """Return the IN parameters that the converted body assigns to."""
    text = '\n'.join(body)
    targets = {
        target.strip().lower()
        for match in _INTO_TARGETS_PATTERN.finditer(text)
        for target in match.group(1).split(',')
    }
    assigned = []
    for parameter in parameters:
        if parameter.raw is not None or parameter.mode != "IN":
            continue
        name = parameter.oracle_name
        if name.lower() in targets or re.search(rf'(?<![\w.]){re.escape(name)}\s*:=', text, re.IGNORECASE):
            assigned.append(parameter)
    return assigned


def render_routine(unit: ProcedureUnit, bulk_collect: bool = False,
                   warnings: Optional[List[str]] = None) -> str:
    """
    Render a parsed routine as ``CREATE OR REPLACE`` PL/SQL followed by ``/``.

    Args:
        unit: Parsed routine
        bulk_collect: Rewrite cursor fetch loops to BULK COLLECT
        warnings: Optional list collecting conversion warnings

    Returns:
        PL/SQL text
    """
    converter = BodyConverter(unit.parameters, unit.kind, bulk_collect)
    body = converter.convert(unit.body_text)
    declarations = converter.render_declarations()

    # Oracle rejects assignments to IN parameters
    for parameter in assigned_parameters(unit.parameters, body):
        if parameter.default is not None:
            converter.warnings.append(
                f"Parameter @{parameter.name} is assigned in {unit.name} but has a default; it stays IN"
            )
            continue
        parameter.mode = "IN OUT"
        converter.warnings.append(f"Parameter @{parameter.name} is assigned in {unit.name}; declared IN OUT")
    params = [p.render(converter.rename) for p in unit.parameters]

    if unit.kind == "TRIGGER":
        events = ' OR '.join(unit.trigger_events)
        lines = [
            f"CREATE OR REPLACE TRIGGER {unit.name}",
            f"{unit.trigger_timing} {events} ON {unit.trigger_table}",
        ]
        if declarations:
            lines.append("DECLARE")
            lines.extend(declarations)
        if re.search(r'\b(?:inserted|deleted)\b', unit.body_text, re.IGNORECASE):
            converter.warnings.append(
                f"Trigger {unit.name} reads the inserted/deleted tables; use :NEW/:OLD with FOR EACH ROW"
            )
        if unit.trigger_timing == "INSTEAD OF":
            converter.warnings.append(f"INSTEAD OF trigger {unit.name} is only valid on views in Oracle")
    else:
        keyword = "FUNCTION" if unit.kind == "FUNCTION" else "PROCEDURE"
        if params:
            lines = [f"CREATE OR REPLACE {keyword} {unit.name}("]
            lines.extend(f"{INDENT}{p}," for p in params[:-1])
            lines.append(f"{INDENT}{params[-1]}")
            closing = ")"
        else:
            lines = []
            closing = f"CREATE OR REPLACE {keyword} {unit.name}"
        if unit.kind == "FUNCTION":
            type_name, size, scale = split_type(unit.return_type or "")
            closing += f" RETURN {unsized_type(map_data_type(type_name, size, scale))}"
        lines.append(f"{closing} AS")
        lines.extend(declarations)

    lines.append("BEGIN")
    lines.extend(body)
    lines.append(f"END {unit.short_name};")
    lines.append("/")

    if warnings is not None:
        warnings.extend(converter.warnings)
    return '\n'.join(lines)


def convert_anonymous_block(text: str, bulk_collect: bool = False,
                            warnings: Optional[List[str]] = None) -> str:
    """
    Wrap a standalone procedural batch in an anonymous PL/SQL block.

    Returns:
        ``[DECLARE ...] BEGIN ... END;`` followed by ``/``
    """
    converter = BodyConverter(bulk_collect=bulk_collect, indent=" ")
    body = converter.convert(text)
    declarations = converter.render_declarations()
    lines = []
    if declarations:
        lines.append("DECLARE")
        lines.extend(declarations)
    lines.append("BEGIN")
    lines.extend(body)
    lines.append("END;")
    lines.append("/")
    if warnings is not None:
        warnings.extend(converter.warnings)
    return '\n'.join(lines)


def transform_routines(text: str, bulk_collect: bool = False,
                       warnings: Optional[List[str]] = None) -> str:
    """
    Convert every CREATE PROCEDURE / TRIGGER / FUNCTION span in ``text``.

    A span runs to the next ``GO`` line (consumed), the next routine or the
    end of the text. Spans whose header is not recognised are left as-is.

    Args:
        text: Script text (types mapped, identity columns rewritten)
        bulk_collect: Rewrite cursor fetch loops to BULK COLLECT
        warnings: Optional list collecting conversion warnings

    Returns:
        Script text with routines converted
    """
    matches = list(_ROUTINE_PATTERN.finditer(text))
    if not matches:
        return text

    parts = [text[:matches[0].start()]]
    for index, match in enumerate(matches):
        limit = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        separator = BATCH_SEPARATOR_PATTERN.search(text, match.end(), limit)
        span_end = separator.start() if separator else limit
        resume = separator.end() if separator else limit

        unit = parse_routine(match.group('kind'), match.group('name'), text[match.end():span_end])
        if unit is None:
            logger.debug("Unrecognised routine header for %s, left unchanged", match.group('name'))
            if warnings is not None:
                warnings.append(f"Could not parse header of {match.group('name')}; left unchanged")
            parts.append(text[match.start():resume])
        else:
            logger.debug("Converting %s %s", unit.kind.lower(), unit.name)
            parts.append(render_routine(unit, bulk_collect, warnings))
            if separator and separator.group('comment'):
                parts.append('\n' + separator.group('comment'))
            if not separator and span_end < len(text):
                parts.append('\n')
        parts.append(text[resume:limit] if separator else '')
    return ''.join(parts)

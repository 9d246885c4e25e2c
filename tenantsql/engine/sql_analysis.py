# TenantSQL - SQL Text Analysis
# =============================
"""
SQL Text Analysis
=================
Lightweight, regex-based inspection of a single statement in the target
dialect. Used by the generator (operation type, tenant scoping), the
validation rules and the optimizer.

Nothing here parses SQL fully; string literals are blanked first so that
keywords inside quoted values do not confuse the heuristics.
"""

import re
from typing import List, Optional, Tuple

from .models import PLACEHOLDER_PATTERN, SqlOperationType


STRING_LITERAL_PATTERN = re.compile(r"'(?:[^']|'')*'")

STATEMENT_KEYWORDS = {
    'SELECT': SqlOperationType.SELECT,
    'INSERT': SqlOperationType.INSERT,
    'UPDATE': SqlOperationType.UPDATE,
    'DELETE': SqlOperationType.DELETE,
}

# Tokens that end a WHERE body (parentheses are tracked for depth)
WHERE_END_PATTERN = re.compile(
    r'\(|\)|\bGROUP\s+BY\b|\bORDER\s+BY\b|\bHAVING\b|\bLIMIT\b|\bOFFSET\b|\bFETCH\b|\bUNION\b|\bRETURNING\b|;',
    re.IGNORECASE,
)

TABLE_PATTERNS = [
    re.compile(r'\bFROM\s+([\w.\[\]"`]+)', re.IGNORECASE),
    re.compile(r'\bJOIN\s+([\w.\[\]"`]+)', re.IGNORECASE),
    re.compile(r'^\s*UPDATE\s+([\w.\[\]"`]+)', re.IGNORECASE),
    re.compile(r'\bINSERT\s+INTO\s+([\w.\[\]"`]+)', re.IGNORECASE),
]

LIMIT_PATTERNS = [
    re.compile(r'\bLIMIT\s+(\d+)', re.IGNORECASE),
    re.compile(r'\bTOP\s*\(?\s*(\d+)', re.IGNORECASE),
    re.compile(r'\bFETCH\s+(?:FIRST|NEXT)\s+(\d+)\s+ROWS?\b', re.IGNORECASE),
]

CONJUNCTION_TOKEN_PATTERN = re.compile(r'\(|\)|\b(?:AND|OR|BETWEEN)\b', re.IGNORECASE)

AGGREGATE_PATTERN = re.compile(r'\b(?:COUNT|SUM|AVG|MIN|MAX)\s*\(', re.IGNORECASE)


def strip_string_literals(sql: str) -> str:
    """Blank out quoted literals, keeping offsets (quotes stay, content becomes spaces)."""
    return STRING_LITERAL_PATTERN.sub(lambda m: "'" + ' ' * (len(m.group(0)) - 2) + "'", sql or "")


def leading_keyword(sql: str) -> str:
    """Return the first keyword of a statement, upper-cased ('' if none)."""
    clean = re.sub(r'^\s*(?:--[^\n]*\n\s*|/\*.*?\*/\s*)*', '', sql or '', flags=re.DOTALL)
    clean = clean.lstrip('( \t\r\n')
    match = re.match(r'([A-Za-z]+)', clean)
    return match.group(1).upper() if match else ''


def detect_operation_type(sql: str) -> SqlOperationType:
    """
    Classify a statement by its leading keyword.

    A WITH prefix is skipped: the first statement keyword found outside
    the common table expressions decides the type.
    """
    keyword = leading_keyword(sql)
    if keyword in STATEMENT_KEYWORDS:
        return STATEMENT_KEYWORDS[keyword]
    if keyword == 'WITH':
        for word in _top_level_words(strip_string_literals(sql)):
            if word in STATEMENT_KEYWORDS:
                return STATEMENT_KEYWORDS[word]
    return SqlOperationType.UNKNOWN


def _top_level_words(sql: str) -> List[str]:
    """Upper-cased words that appear outside any parentheses."""
    words = []
    depth = 0
    token = []
    for ch in sql:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth = max(depth - 1, 0)
        if depth == 0 and (ch.isalnum() or ch == '_'):
            token.append(ch)
            continue
        if token:
            words.append(''.join(token).upper())
            token = []
    if token:
        words.append(''.join(token).upper())
    return words


def extract_tables(sql: str) -> List[str]:
    """Extract referenced table names (FROM, JOIN, UPDATE, INSERT INTO, comma joins)."""
    clean = strip_string_literals(sql)
    tables: List[str] = []

    def add(name: str):
        bare = name.strip().rstrip(',')
        if bare and bare.upper() not in ('SELECT', '(') and bare not in tables:
            tables.append(bare)

    for pattern in TABLE_PATTERNS:
        for name in pattern.findall(clean):
            add(name)

    # Comma-separated FROM lists: FROM a, b x, c
    for from_list in re.findall(
            r'\bFROM\s+(.*?)(?=\bWHERE\b|\bJOIN\b|\bGROUP\b|\bORDER\b|\bLIMIT\b|\bHAVING\b|\)|$)',
            clean, re.IGNORECASE | re.DOTALL):
        parts = from_list.split(',')
        for part in parts[1:]:
            match = re.match(r'\s*([\w.\[\]"`]+)', part)
            if match:
                add(match.group(1))

    return [t for t in tables if not t.upper().startswith('(')]


def count_joins(sql: str) -> int:
    """Count explicit JOINs plus comma joins in FROM lists."""
    clean = strip_string_literals(sql)
    explicit = len(re.findall(r'\bJOIN\b', clean, re.IGNORECASE))
    comma = 0
    for from_list in re.findall(
            r'\bFROM\s+(.*?)(?=\bWHERE\b|\bJOIN\b|\bGROUP\b|\bORDER\b|\bLIMIT\b|\bHAVING\b|\)|$)',
            clean, re.IGNORECASE | re.DOTALL):
        comma += from_list.count(',')
    return explicit + comma


def count_subqueries(sql: str) -> int:
    return len(re.findall(r'\(\s*SELECT\b', strip_string_literals(sql), re.IGNORECASE))


def top_level_where_span(sql: str) -> Optional[Tuple[int, int]]:
    """
    Character span of the outer statement's WHERE body.

    WHERE clauses inside parentheses (subqueries, CTE bodies) are skipped.
    The body ends at the first outer GROUP BY, ORDER BY, HAVING, LIMIT,
    OFFSET, FETCH, UNION, RETURNING, semicolon or closing parenthesis.
    """
    clean = strip_string_literals(sql)
    depth = 0
    body_start = None
    for match in re.finditer(r'\(|\)|\bWHERE\b', clean, re.IGNORECASE):
        token = match.group(0)
        if token == '(':
            depth += 1
        elif token == ')':
            depth -= 1
        elif depth == 0:
            body_start = match.end()
            break
    if body_start is None:
        return None

    depth = 0
    for match in WHERE_END_PATTERN.finditer(clean, body_start):
        token = match.group(0)
        if token == '(':
            depth += 1
        elif token == ')':
            if depth == 0:
                return body_start, match.start()
            depth -= 1
        elif depth == 0:
            return body_start, match.start()
    return body_start, len(clean)


def where_clause(sql: str) -> Optional[str]:
    """Return the outer WHERE body, or None."""
    span = top_level_where_span(sql)
    if span is None:
        return None
    body = sql[span[0]:span[1]].strip()
    return body or None


def has_where(sql: str) -> bool:
    return re.search(r'\bWHERE\b', strip_string_literals(sql), re.IGNORECASE) is not None


def result_limit(sql: str) -> Optional[int]:
    """Return the largest LIMIT/TOP/FETCH bound in the statement, if any."""
    clean = strip_string_literals(sql)
    values = []
    for pattern in LIMIT_PATTERNS:
        values.extend(int(v) for v in pattern.findall(clean))
    return max(values) if values else None


def has_result_bound(sql: str) -> bool:
    clean = strip_string_literals(sql)
    if result_limit(clean) is not None:
        return True
    # LIMIT @pageSize style bounds
    return re.search(r'\b(?:LIMIT|TOP|FETCH\s+(?:FIRST|NEXT))\s*\(?\s*@\w+', clean, re.IGNORECASE) is not None


def has_aggregation(sql: str) -> bool:
    clean = strip_string_literals(sql)
    return bool(re.search(r'\bGROUP\s+BY\b', clean, re.IGNORECASE) or AGGREGATE_PATTERN.search(clean))


def is_select_star(sql: str) -> bool:
    return re.search(r'\bSELECT\s+(?:DISTINCT\s+)?(?:\w+\.)?\*', strip_string_literals(sql), re.IGNORECASE) is not None


def placeholders(sql: str) -> List[str]:
    """Distinct @name tokens outside string literals, in order of appearance."""
    found: List[str] = []
    for name in PLACEHOLDER_PATTERN.findall(strip_string_literals(sql)):
        if name.lower() not in [f.lower() for f in found]:
            found.append(name)
    return found


def parentheses_balanced(sql: str) -> bool:
    depth = 0
    for ch in strip_string_literals(sql):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def has_unterminated_string(sql: str) -> bool:
    """True if a single quote is left open once complete literals are removed."""
    return "'" in STRING_LITERAL_PATTERN.sub('', sql or '')


def split_conjunction(condition: str) -> Optional[List[str]]:
    """
    Split a WHERE body on top-level AND.

    Split points are found on the literal-stripped text, so AND and OR
    inside quoted values are never treated as operators.

    Returns:
        List of predicates, or None when the clause contains a top-level OR
        or BETWEEN (which cannot be split safely on AND).
    """
    clean = strip_string_literals(condition)
    parts = []
    depth = 0
    start = 0
    for match in CONJUNCTION_TOKEN_PATTERN.finditer(clean):
        token = match.group(0).upper()
        if token == '(':
            depth += 1
        elif token == ')':
            depth -= 1
        elif depth == 0 and token in ('OR', 'BETWEEN'):
            return None
        elif depth == 0:
            parts.append(condition[start:match.start()].strip())
            start = match.end()
    parts.append(condition[start:].strip())
    return [p for p in parts if p]

# TenantSQL - SQL Security Utilities
# ==================================
"""
SQL Security Utilities
======================
Pattern tables and identifier checks shared by the security rules.

Identifiers (table/column/schema names) cannot be bound as parameters, so
any value that names a database object is checked here:
- must match ^[A-Za-z][A-Za-z0-9_]*$
- must not be a reserved word
- must not carry comment markers, separators, quotes, brackets or operators

Usage:
    from tenantsql.engine.sql_security import check_identifier

    problems = check_identifier("Orders; DROP TABLE Users")
    if problems:
        ...
"""

import re
import logging
from enum import Enum
from typing import List, Set

logger = logging.getLogger(__name__)


class IdentifierProblem(str, Enum):
    """Reasons an identifier is rejected."""
    EMPTY = "empty"
    TOO_LONG = "too_long"
    INVALID_FORMAT = "invalid_format"
    RESERVED_WORD = "reserved_word"
    INJECTION = "injection"


VALID_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')

# Maximum identifier length (prevent DoS via very long names)
MAX_IDENTIFIER_LENGTH = 128

RESERVED_WORDS: Set[str] = {
    'ADD', 'ALTER', 'ALL', 'AND', 'ANY', 'AS', 'ASC', 'BETWEEN', 'BY', 'CASE',
    'CHECK', 'COLUMN', 'CONSTRAINT', 'CREATE', 'DATABASE', 'DEFAULT', 'DELETE',
    'DESC', 'DISTINCT', 'DROP', 'EXEC', 'EXISTS', 'FOREIGN', 'FROM', 'FULL',
    'GROUP', 'HAVING', 'IN', 'INDEX', 'INNER', 'INSERT', 'INTO', 'IS', 'JOIN',
    'KEY', 'LEFT', 'LIKE', 'LIMIT', 'NOT', 'NULL', 'OR', 'ORDER', 'OUTER',
    'PRIMARY', 'PROCEDURE', 'RIGHT', 'ROWNUM', 'SELECT', 'SET', 'TABLE', 'TOP',
    'TRUNCATE', 'UNION', 'UNIQUE', 'UPDATE', 'VALUES', 'VIEW', 'WHERE',
}

# Characters and sequences that never belong inside an object name
OBJECT_NAME_INJECTION_PATTERNS = {
    'line_comment': re.compile(r'--'),
    'block_comment': re.compile(r'/\*|\*/'),
    'separator': re.compile(r';'),
    'brackets': re.compile(r'[\[\]]'),
    'whitespace': re.compile(r'\s'),
    'quote': re.compile(r'[\'"`]'),
    'parenthesis': re.compile(r'[()]'),
    'operator': re.compile(r'[+=<>|&]'),
}

# Injection signatures checked on raw SQL and on string parameter values
INJECTION_PATTERNS = {
    'comment_after_separator': re.compile(r';\s*--'),
    'block_comment_after_separator': re.compile(r';\s*/\*.*?\*/', re.DOTALL),
    'union_all_select': re.compile(r'\bUNION\s+ALL\s+SELECT\b', re.IGNORECASE),
    'tautology': re.compile(r"\bOR\s+['\"]?(\w+)['\"]?\s*=\s*['\"]?\1['\"]?", re.IGNORECASE),
    'stacked_statement': re.compile(r';\s*(?:SELECT|UPDATE|INSERT|DELETE|DROP)\b', re.IGNORECASE),
    'xp_cmdshell': re.compile(r'\bxp_cmdshell\b', re.IGNORECASE),
    'sp_execute': re.compile(r'\bsp_execute', re.IGNORECASE),
    'exec_call': re.compile(r'\bEXEC(?:UTE)?\s*\(', re.IGNORECASE),
    'line_comment': re.compile(r'--'),
    'block_comment': re.compile(r'/\*|\*/'),
}

# Extra signatures that only make sense inside a literal value
VALUE_INJECTION_PATTERNS = {
    'quote_break': re.compile(r"'\s*(?:OR|AND|UNION|;)", re.IGNORECASE),
    'drop_table': re.compile(r'\bDROP\s+TABLE\b', re.IGNORECASE),
    'delete_from': re.compile(r'\bDELETE\s+FROM\b', re.IGNORECASE),
    'insert_into': re.compile(r'\bINSERT\s+INTO\b', re.IGNORECASE),
}

MULTI_STATEMENT_PATTERN = re.compile(r';\s*\S')

DANGEROUS_KEYWORDS = {
    'DROP': re.compile(r'\bDROP\b', re.IGNORECASE),
    'TRUNCATE': re.compile(r'\bTRUNCATE\b', re.IGNORECASE),
    'ALTER': re.compile(r'\bALTER\b', re.IGNORECASE),
    'CREATE': re.compile(r'\bCREATE\b', re.IGNORECASE),
    'RENAME': re.compile(r'\bRENAME\b', re.IGNORECASE),
    'GRANT': re.compile(r'\bGRANT\b', re.IGNORECASE),
    'REVOKE': re.compile(r'\bREVOKE\b', re.IGNORECASE),
    'EXEC': re.compile(r'\bEXEC(?:UTE)?\b', re.IGNORECASE),
    'xp_': re.compile(r'\bxp_\w+', re.IGNORECASE),
    'sp_': re.compile(r'\bsp_\w+', re.IGNORECASE),
    'OPENQUERY': re.compile(r'\bOPENQUERY\b', re.IGNORECASE),
    'OPENROWSET': re.compile(r'\bOPENROWSET\b', re.IGNORECASE),
    'BULK INSERT': re.compile(r'\bBULK\s+INSERT\b', re.IGNORECASE),
    'RECONFIGURE': re.compile(r'\bRECONFIGURE\b', re.IGNORECASE),
    'SHUTDOWN': re.compile(r'\bSHUTDOWN\b', re.IGNORECASE),
}

# Parameter-name fragments that mark a value as a database object name
IDENTIFIER_NAME_HINTS = ('table', 'column', 'schema', 'database', 'view', 'field', 'index', 'procedure')


def find_injection_patterns(text: str, include_value_patterns: bool = False) -> List[str]:
    """
    Return the names of injection signatures found in text.

    Args:
        text: Raw SQL or a literal parameter value
        include_value_patterns: Also check signatures that only apply to values

    Returns:
        List of matched pattern names (empty if clean)
    """
    if not text:
        return []
    found = [name for name, pattern in INJECTION_PATTERNS.items() if pattern.search(text)]
    if include_value_patterns:
        found.extend(name for name, pattern in VALUE_INJECTION_PATTERNS.items() if pattern.search(text))
    return found


def find_dangerous_keywords(sql: str) -> List[str]:
    """Return dangerous keywords present in a statement."""
    return [keyword for keyword, pattern in DANGEROUS_KEYWORDS.items() if pattern.search(sql)]


def is_identifier_parameter(name: str) -> bool:
    """Check whether a parameter name suggests a database object name."""
    lowered = name.lower()
    return any(hint in lowered for hint in IDENTIFIER_NAME_HINTS)


def check_identifier(name: str, allow_qualified: bool = False) -> List[IdentifierProblem]:
    """
    Check a SQL identifier and return every problem found.

    Args:
        name: The identifier to check
        allow_qualified: Allow schema.table notation (each part checked)

    Returns:
        List of IdentifierProblem (empty if the identifier is safe)

    Examples:
        >>> check_identifier('Orders')
        []
        >>> IdentifierProblem.INJECTION in check_identifier("Orders;--")
        True
    """
    if name is None or not str(name).strip():
        return [IdentifierProblem.EMPTY]

    name = str(name)
    if len(name) > MAX_IDENTIFIER_LENGTH:
        logger.warning(f"Identifier too long: {name[:20]}... ({len(name)} chars)")
        return [IdentifierProblem.TOO_LONG]

    problems: List[IdentifierProblem] = []
    if find_object_name_injection(name, allow_qualified=allow_qualified):
        problems.append(IdentifierProblem.INJECTION)

    parts = name.split('.') if allow_qualified else [name]
    if allow_qualified and len(parts) > 2:
        problems.append(IdentifierProblem.INVALID_FORMAT)
        return problems

    for part in parts:
        if not VALID_IDENTIFIER_PATTERN.match(part):
            if IdentifierProblem.INVALID_FORMAT not in problems:
                problems.append(IdentifierProblem.INVALID_FORMAT)
        elif part.upper() in RESERVED_WORDS:
            if IdentifierProblem.RESERVED_WORD not in problems:
                problems.append(IdentifierProblem.RESERVED_WORD)

    if problems:
        logger.warning(f"Rejected identifier '{name}': {[p.value for p in problems]}")
    return problems


def find_object_name_injection(name: str, allow_qualified: bool = False) -> List[str]:
    """Return the injection markers found in an object name."""
    found = []
    for marker, pattern in OBJECT_NAME_INJECTION_PATTERNS.items():
        if pattern.search(name):
            found.append(marker)
    if not allow_qualified and '.' in name:
        found.append('qualifier')
    return found

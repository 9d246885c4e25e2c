# TenantSQL - Tenant Scoping
# ==========================
"""
Tenant Scoping
==============
Detects statements over tenant-scoped tables and makes sure each such
table carries an equality filter bound to the tenant parameter:

    SELECT * FROM Orders o WHERE o.Status = @status
    -> SELECT * FROM Orders o WHERE o.TenantId = @tenantId AND (o.Status = @status)

A filter counts only when it is a top-level AND conjunct of the WHERE
clause of the query block that references the table. A tenant predicate
on one side of an OR, or in another block, does not scope the table.
Tables referenced inside a subquery get the filter in that subquery:

    SELECT Id FROM Invoices WHERE DocId IN (SELECT Id FROM Documents)
    -> SELECT Id FROM Invoices WHERE DocId IN (SELECT Id FROM Documents WHERE TenantId = @tenantId)

The injected filter is always a parameter token; the tenant id itself is
bound by the generator from the authenticated TenantContext.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import EngineConfig
from .sql_analysis import leading_keyword, split_conjunction, strip_string_literals, top_level_where_span

logger = logging.getLogger(__name__)


TABLE_REFERENCE_PATTERN = re.compile(
    r'\b(?:FROM|JOIN|UPDATE)\s+(?P<table>[\w.\[\]"`]+)'
    r'(?:\s+(?:AS\s+)?(?!(?:WHERE|JOIN|ON|INNER|LEFT|RIGHT|FULL|CROSS|OUTER|GROUP|ORDER|LIMIT|SET|HAVING|UNION|OFFSET|FETCH)\b)(?P<alias>[A-Za-z_]\w*))?',
    re.IGNORECASE,
)

CLAUSE_AFTER_WHERE = re.compile(
    r'\bGROUP\s+BY\b|\bORDER\s+BY\b|\bHAVING\b|\bLIMIT\b|\bOFFSET\b|\bFETCH\b|\bRETURNING\b',
    re.IGNORECASE,
)


@dataclass
class TableReference:
    """A tenant-scoped table referenced by a statement."""
    table: str
    alias: Optional[str] = None
    qualifier: Optional[str] = None          # prefix used for the tenant column, if any
    scope: Optional[Tuple[int, int]] = None  # span of the enclosing subquery; None for the outer statement


class TenantScoper:
    """
    Finds and injects tenant filters.

    Example:
        scoper = TenantScoper(EngineConfig())
        sql, injected = scoper.apply("SELECT * FROM Documents", "tenantId")
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def scoped_references(self, sql: str) -> List[TableReference]:
        """Tenant-scoped tables referenced by FROM/JOIN/UPDATE clauses."""
        clean = strip_string_literals(sql)
        blocks = query_blocks(clean)
        matches = list(TABLE_REFERENCE_PATTERN.finditer(clean))
        scopes = [enclosing_block(blocks, match.start()) for match in matches]
        refs = []
        for match, scope in zip(matches, scopes):
            table = match.group('table')
            if not self.config.is_tenant_scoped(table):
                continue
            alias = match.group('alias')
            if alias:
                qualifier = alias
            elif scopes.count(scope) > 1:
                qualifier = table
            else:
                qualifier = None
            refs.append(TableReference(table=table, alias=alias, qualifier=qualifier, scope=scope))
        return refs

    def filter_condition(self, ref: TableReference, tenant_param: str) -> str:
        column = self.config.tenant_column
        prefix = f"{ref.qualifier}." if ref.qualifier else ""
        return f"{prefix}{column} = @{tenant_param}"

    def has_filter(self, sql: str, ref: TableReference, tenant_param: str) -> bool:
        """
        Check for '<qualifier.>TenantId = @tenant' (either operand order) as a
        top-level conjunct of the WHERE clause of the reference's own block.

        An unqualified column counts only when the reference itself is
        unqualified.
        """
        start, end = ref.scope or (0, len(sql))
        column = re.escape(self.config.tenant_column)
        param = re.escape(tenant_param)
        if ref.qualifier:
            prefix = rf'{re.escape(ref.qualifier)}\.'
        else:
            prefix = r'(?:\w+\.)?'
        pattern = re.compile(rf'{prefix}{column}\s*=\s*@{param}|@{param}\s*=\s*{prefix}{column}', re.IGNORECASE)
        return any(pattern.fullmatch(predicate) for predicate in where_conjuncts(sql[start:end]))

    def missing_filters(self, sql: str, tenant_param: str) -> List[TableReference]:
        """Tenant-scoped references that lack an equality filter."""
        return [ref for ref in self.scoped_references(sql) if not self.has_filter(sql, ref, tenant_param)]

    def apply(self, sql: str, tenant_param: Optional[str] = None) -> Tuple[str, List[str]]:
        """
        Inject missing tenant filters.

        Innermost blocks are rewritten first; offsets are recomputed after
        each block.

        Args:
            sql: Statement text (placeholders intact)
            tenant_param: Placeholder name to bind (defaults to config.tenant_parameter)

        Returns:
            Tuple of (statement, list of injected conditions)
        """
        tenant_param = tenant_param or self.config.tenant_parameter
        missing = self.missing_filters(sql, tenant_param)
        injected: List[str] = []

        while missing:
            scope = max((ref.scope for ref in missing), key=lambda s: s[0] if s else -1)
            conditions = []
            for ref in missing:
                condition = self.filter_condition(ref, tenant_param)
                if ref.scope == scope and condition not in conditions:
                    conditions.append(condition)
            if scope is None:
                sql = inject_conditions(sql, conditions)
            else:
                start, end = scope
                sql = f"{sql[:start]}{inject_conditions(sql[start:end], conditions)}{sql[end:]}"
            injected.extend(c for c in conditions if c not in injected)

            remaining = self.missing_filters(sql, tenant_param)
            if len(remaining) >= len(missing):
                logger.error(f"Could not scope every tenant table: {[r.table for r in remaining]}")
                break
            missing = remaining

        if injected:
            logger.warning(f"Injecting tenant filters: {injected}")
        return sql, injected


def query_blocks(clean: str) -> List[Tuple[int, int]]:
    """Spans of parenthesized SELECT/WITH blocks (inside the parentheses)."""
    blocks = []
    stack = []
    for i, ch in enumerate(clean):
        if ch == '(':
            stack.append(i)
        elif ch == ')' and stack:
            start = stack.pop()
            if leading_keyword(clean[start + 1:i]) in ('SELECT', 'WITH'):
                blocks.append((start + 1, i))
    return blocks


def enclosing_block(blocks: List[Tuple[int, int]], position: int) -> Optional[Tuple[int, int]]:
    """Innermost block containing position, or None for the outer statement."""
    best = None
    for start, end in blocks:
        if start <= position < end and (best is None or start > best[0]):
            best = (start, end)
    return best


def where_conjuncts(sql: str) -> List[str]:
    """
    Top-level AND conjuncts of a statement's WHERE clause.

    Fully parenthesized conjuncts are opened up. A WHERE body with a
    top-level OR has no conjuncts.
    """
    span = top_level_where_span(sql)
    if span is None:
        return []
    pending = [sql[span[0]:span[1]]]
    conjuncts = []
    while pending:
        parts = split_conjunction(pending.pop())
        if parts is None:
            continue
        for part in parts:
            if _is_wrapped(part):
                pending.append(part[1:-1])
            else:
                conjuncts.append(part)
    return conjuncts


def _is_wrapped(text: str) -> bool:
    """True if the whole text is enclosed by one matching pair of parentheses."""
    clean = strip_string_literals(text)
    if not (clean.startswith('(') and clean.endswith(')')):
        return False
    depth = 0
    for i, ch in enumerate(clean):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
            if depth == 0 and i < len(clean) - 1:
                return False
    return depth == 0


def inject_conditions(sql: str, conditions: List[str]) -> str:
    """
    AND conditions into the statement's WHERE clause.

    An existing WHERE body is parenthesized so that top-level OR cannot
    escape the added conditions. Without a WHERE, one is inserted before
    GROUP BY / ORDER BY / LIMIT, or appended.
    """
    combined = ' AND '.join(conditions)
    body_sql = sql.rstrip().rstrip(';').rstrip()
    clean = strip_string_literals(body_sql)

    span = top_level_where_span(body_sql)
    if span is not None:
        start, end = span
        existing = body_sql[start:end].strip()
        trailing = ' ' if end < len(body_sql) else ''
        return f"{body_sql[:start]} {combined} AND ({existing}){trailing}{body_sql[end:].lstrip()}"

    clause = None
    for candidate in CLAUSE_AFTER_WHERE.finditer(clean):
        # Only clauses of the outer statement (not inside parentheses)
        if clean[:candidate.start()].count('(') == clean[:candidate.start()].count(')'):
            clause = candidate
            break
    if clause:
        position = clause.start()
        return f"{body_sql[:position].rstrip()} WHERE {combined} {body_sql[position:]}"
    return f"{body_sql} WHERE {combined}"

# TenantSQL - Query Optimizer
# ===========================
"""
Query Optimizer
===============
Scores SELECT statements for complexity and proposes safe rewrites:

1. SELECT *            -> explicit column list (when the table's columns are configured)
2. Redundant filters   -> drop 1=1, TRUE and duplicate AND predicates
3. Filter order        -> equality predicates first (pure conjunctions only)
4. Result bound        -> LIMIT <default_limit> on non-aggregating queries

Optimization is advisory: the original statement stays authoritative and
a rewrite that introduces a new Critical validation issue is discarded.

This is the 'optimizing' stage of the pipeline.
"""

import re
import logging
import threading
from dataclasses import dataclass
from functools import reduce
from typing import Iterable, List, Optional, Set, Tuple

from .config import EngineConfig
from .errors import ErrorCode, OperationCancelledError
from .models import CostLevel, QueryCostEstimate, QueryOptimizationResult, SqlOperationType
from .rules_engine import ValidationRuleEngine
from .sql_analysis import (
    count_joins,
    count_subqueries,
    detect_operation_type,
    extract_tables,
    has_aggregation,
    has_result_bound,
    is_select_star,
    placeholders,
    split_conjunction,
    strip_string_literals,
    top_level_where_span,
    where_clause,
)

logger = logging.getLogger(__name__)


IMPACT_FACTORS = {'high': 1.5, 'medium': 1.2, 'low': 1.1}
MAX_IMPROVEMENT = 90.0
MAX_COMPLEXITY = 10.0

# (upper bound in ms, level)
COST_LEVELS = [
    (10, CostLevel.VERY_LOW),
    (100, CostLevel.LOW),
    (500, CostLevel.MEDIUM),
    (2000, CostLevel.HIGH),
    (10000, CostLevel.VERY_HIGH),
]

SELECT_STAR_PATTERN = re.compile(r'^(\s*SELECT\s+(?:DISTINCT\s+)?)\*(\s+FROM\b)', re.IGNORECASE)
TAUTOLOGY_PREDICATE = re.compile(r'^\(*\s*(?:1\s*=\s*1|TRUE)\s*\)*$', re.IGNORECASE)
EQUALITY_PREDICATE = re.compile(r'^[\w.\[\]"`]+\s*=\s*[^=]', re.IGNORECASE)
TRAILING_PAGINATION = re.compile(
    r'\s+(?:LIMIT\s+\d+(?:\s+OFFSET\s+\d+)?|OFFSET\s+\d+\s+ROWS?(?:\s+FETCH\s+(?:FIRST|NEXT)\s+\d+\s+ROWS?\s+ONLY)?)\s*$',
    re.IGNORECASE,
)
PAGINATION_STYLES = ('limit', 'fetch')


@dataclass
class Rewrite:
    """One applied rewrite."""
    description: str
    impact: str                # high, medium, low


class QueryOptimizer:
    """
    Suggests rewrites for expensive SELECT statements.

    Example:
        optimizer = QueryOptimizer(EngineConfig(table_columns={"Orders": ["Id", "Status"]}))
        result = optimizer.optimize("SELECT * FROM Orders WHERE 1=1 AND Status = @status")
        result.optimized_query   # "SELECT Id, Status FROM Orders WHERE Status = @status LIMIT 1000"
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 rule_engine: Optional[ValidationRuleEngine] = None):
        """
        Initialize optimizer.

        Args:
            config: Engine configuration (threshold, default limit, table columns)
            rule_engine: Used to reject rewrites that introduce Critical issues
        """
        self.config = config or EngineConfig()
        self.rule_engine = rule_engine

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def complexity_score(self, sql: str) -> float:
        """Heuristic 0-10 complexity score."""
        score = min(count_joins(sql), 3) * 1.0
        score += min(count_subqueries(sql), 3) * 1.5
        if where_clause(sql) is None:
            score += 2.0
        if is_select_star(sql):
            score += 1.5
        if not has_result_bound(sql):
            score += 1.5
        return min(score, MAX_COMPLEXITY)

    def suggestions(self, sql: str) -> List[str]:
        found = []
        joins = count_joins(sql)
        if joins > 3:
            found.append(f"Query joins {joins} tables; consider splitting it")
        if count_subqueries(sql):
            found.append("Consider replacing subqueries with joins")
        if where_clause(sql) is None:
            found.append("Add a WHERE clause to avoid a full table scan")
        if is_select_star(sql):
            found.append("Select only the columns you need instead of *")
        if not has_result_bound(sql) and not has_aggregation(sql):
            found.append("Bound the result set with LIMIT")
        return found

    def estimate_cost(self, sql: str) -> QueryCostEstimate:
        """
        Rough row/time estimate.

        Starts from 100 rows; x10 without WHERE, x2 per join, /5 with GROUP BY.
        Aggregating queries cost 0.5 ms per row, others 0.1 ms.
        """
        joins = count_joins(sql)
        has_filter = where_clause(sql) is not None
        aggregating = has_aggregation(sql)

        rows = 100.0
        if not has_filter:
            rows *= 10
        rows *= 2 ** joins
        if re.search(r'\bGROUP\s+BY\b', strip_string_literals(sql), re.IGNORECASE):
            rows /= 5

        time_ms = rows * (0.5 if aggregating else 0.1)
        level = CostLevel.EXTREME
        for bound, candidate in COST_LEVELS:
            if time_ms < bound:
                level = candidate
                break

        return QueryCostEstimate(
            estimated_rows=int(rows),
            estimated_time_ms=round(time_ms, 2),
            cost_level=level,
            join_count=joins,
            has_filter=has_filter,
            has_aggregation=aggregating,
        )

    # ------------------------------------------------------------------
    # Optimization
    # ------------------------------------------------------------------

    def optimize(self, sql: str) -> QueryOptimizationResult:
        """
        Score a statement and apply rewrites above the complexity threshold.

        Returns:
            QueryOptimizationResult (is_optimized False when nothing was changed)
        """
        if not sql or not sql.strip():
            return _unavailable(sql, "Empty statement")
        if detect_operation_type(sql) != SqlOperationType.SELECT:
            return _unavailable(sql, "Only SELECT statements can be optimized")

        sql = sql.strip()
        score = self.complexity_score(sql)
        result = QueryOptimizationResult(
            is_optimized=False,
            original_query=sql,
            complexity_score=score,
            suggestions=self.suggestions(sql),
            cost_estimate=self.estimate_cost(sql),
        )

        threshold = self.config.complexity_threshold
        if score < threshold:
            result.explanation = f"Complexity {score:.1f} is below the optimization threshold {threshold:.1f}"
            return result

        optimized, rewrites = self._rewrite(sql)
        if not rewrites:
            result.explanation = "No applicable rewrites"
            return result

        if _placeholder_set(optimized) != _placeholder_set(sql):
            logger.warning("Discarding optimization that changes the bound parameters")
            result.explanation = "Rewrite discarded: it changes the bound parameters"
            return result

        introduced = self._new_critical_issues(sql, optimized)
        if introduced:
            logger.warning(f"Discarding optimization that introduces critical issues: {introduced}")
            result.explanation = f"Rewrite discarded: it introduces critical issues ({', '.join(sorted(introduced))})"
            return result

        factor = reduce(lambda acc, r: acc * IMPACT_FACTORS[r.impact], rewrites, 1.0)
        improvement = min((1 - 1 / factor) * 100, MAX_IMPROVEMENT)

        result.is_optimized = True
        result.optimized_query = optimized
        result.estimated_improvement_percentage = round(improvement, 1)
        result.explanation = "; ".join(r.description for r in rewrites)
        logger.info(f"Optimized query ({len(rewrites)} rewrites, ~{result.estimated_improvement_percentage}%)")
        return result

    def batch_optimize(self,
                       statements: Iterable[str],
                       cancel_event: Optional[threading.Event] = None) -> List[QueryOptimizationResult]:
        """Optimize several statements independently."""
        results = []
        for sql in statements:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Batch optimization cancelled")
            results.append(self.optimize(sql))
        return results

    def apply_pagination(self, sql: str, page: int, page_size: int, style: str = 'limit') -> str:
        """
        Add (or replace) a page window on a SELECT.

        Args:
            sql: SELECT statement
            page: 1-based page number
            page_size: Rows per page
            style: 'limit' (LIMIT/OFFSET) or 'fetch' (OFFSET/FETCH NEXT)

        Raises:
            ValueError: On page or page_size below 1, an unknown style or a non-SELECT
        """
        if page < 1:
            raise ValueError(f"page must be >= 1 (got {page})")
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1 (got {page_size})")
        if style not in PAGINATION_STYLES:
            raise ValueError(f"Unknown pagination style '{style}'; use one of {PAGINATION_STYLES}")
        if detect_operation_type(sql) != SqlOperationType.SELECT:
            raise ValueError("Pagination applies to SELECT statements only")

        base = TRAILING_PAGINATION.sub('', sql.strip().rstrip(';').rstrip())
        offset = (page - 1) * page_size
        if style == 'limit':
            return f"{base} LIMIT {page_size} OFFSET {offset}"

        if not re.search(r'\bORDER\s+BY\b', strip_string_literals(base), re.IGNORECASE):
            base = f"{base} ORDER BY (SELECT NULL)"
        return f"{base} OFFSET {offset} ROWS FETCH NEXT {page_size} ROWS ONLY"

    # ------------------------------------------------------------------
    # Rewrites
    # ------------------------------------------------------------------

    def _rewrite(self, sql: str) -> Tuple[str, List[Rewrite]]:
        rewrites: List[Rewrite] = []
        current = sql.rstrip(';').rstrip()
        for step in (self._expand_select_star, self._simplify_where, self._add_result_bound):
            current, applied = step(current)
            rewrites.extend(applied)
        return current, rewrites

    def _expand_select_star(self, sql: str) -> Tuple[str, List[Rewrite]]:
        if not SELECT_STAR_PATTERN.match(sql) or count_joins(sql) or count_subqueries(sql):
            return sql, []
        tables = extract_tables(sql)
        if len(tables) != 1:
            return sql, []
        columns = self.config.columns_for(tables[0])
        if not columns:
            return sql, []
        expanded = SELECT_STAR_PATTERN.sub(lambda m: f"{m.group(1)}{', '.join(columns)}{m.group(2)}", sql, count=1)
        return expanded, [Rewrite(f"Replaced * with the {len(columns)} columns of {tables[0]}", 'medium')]

    def _simplify_where(self, sql: str) -> Tuple[str, List[Rewrite]]:
        span = top_level_where_span(sql)
        if span is None:
            return sql, []
        predicates = split_conjunction(sql[span[0]:span[1]])
        if not predicates:
            return sql, []

        rewrites = []
        kept: List[str] = []
        seen: Set[str] = set()
        for predicate in predicates:
            key = re.sub(r'\s+', ' ', predicate).strip().lower()
            if TAUTOLOGY_PREDICATE.match(predicate) or key in seen:
                continue
            seen.add(key)
            kept.append(predicate)
        if len(kept) < len(predicates):
            rewrites.append(Rewrite(f"Removed {len(predicates) - len(kept)} redundant conditions", 'low'))

        ordered = sorted(kept, key=lambda p: 0 if EQUALITY_PREDICATE.match(p) else 1)
        if ordered != kept:
            rewrites.append(Rewrite("Moved equality filters ahead of range and pattern filters", 'low'))

        if not rewrites:
            return sql, []

        before = sql[:span[0]]
        after = sql[span[1]:]
        if not ordered:
            # Every predicate was redundant: drop the WHERE keyword too
            before = re.sub(r'\s*\bWHERE\s*$', '', before, flags=re.IGNORECASE)
            return f"{before.rstrip()} {after.lstrip()}".strip(), rewrites
        body = ' AND '.join(ordered)
        return f"{before.rstrip()} {body} {after.lstrip()}".strip(), rewrites

    def _add_result_bound(self, sql: str) -> Tuple[str, List[Rewrite]]:
        if has_result_bound(sql) or has_aggregation(sql):
            return sql, []
        limit = self.config.default_limit
        return f"{sql} LIMIT {limit}", [Rewrite(f"Added LIMIT {limit}", 'high')]

    def _new_critical_issues(self, original: str, optimized: str) -> Set[str]:
        if self.rule_engine is None:
            return set()
        before = {i.rule_name for i in self.rule_engine.validate(original).critical_issues}
        after = {i.rule_name for i in self.rule_engine.validate(optimized).critical_issues}
        return after - before


def _placeholder_set(sql: str) -> Set[str]:
    return {name.lower() for name in placeholders(sql)}


def _unavailable(sql: Optional[str], reason: str) -> QueryOptimizationResult:
    return QueryOptimizationResult(
        is_optimized=False,
        original_query=sql or "",
        explanation=reason,
        error_code=ErrorCode.OPTIMIZATION_UNAVAILABLE,
    )

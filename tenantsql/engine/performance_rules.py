# TenantSQL - Performance Rules
# =============================
"""
Performance Rules
=================
Advisory checks (Info/Warning only). None of these block execution.
"""

import re
from typing import List

from .models import SqlOperationType, ValidationCategory, ValidationSeverity
from .rules_engine import ValidationRule
from .sql_analysis import (
    has_aggregation,
    has_result_bound,
    has_where,
    is_select_star,
    strip_string_literals,
    where_clause,
)
from .tenant_rules import operation_of


COMMA_JOIN_PATTERN = re.compile(r'\bFROM\s+[\w.\[\]"`]+(?:\s+(?:AS\s+)?\w+)?\s*,\s*[\w\[\]"`]', re.IGNORECASE)
CROSS_JOIN_PATTERN = re.compile(r'\bCROSS\s+JOIN\b', re.IGNORECASE)
LEADING_WILDCARD_PATTERN = re.compile(r"\bLIKE\s+N?'%", re.IGNORECASE)
LIKE_PARAMETER_PATTERN = re.compile(r'\bLIKE\s+@(\w+)', re.IGNORECASE)
WHERE_FUNCTION_PATTERN = re.compile(
    r'\b(UPPER|LOWER|YEAR|MONTH|DAY|CAST|CONVERT|SUBSTRING|TRIM|LTRIM|RTRIM|DATEPART|ISNULL|COALESCE)\s*\(\s*[A-Za-z_]',
    re.IGNORECASE,
)
POSITIONAL_PATTERN = re.compile(r'\b(?:ORDER|GROUP)\s+BY\s+\d+', re.IGNORECASE)


class _PerformanceRule(ValidationRule):
    category = ValidationCategory.PERFORMANCE
    default_severity = ValidationSeverity.INFO


class SelectAllRule(_PerformanceRule):
    name = "Performance.SelectAll"
    description = "SELECT * returns every column"
    recommendation = "List the columns you need"

    def run(self, sql, parameters, context):
        if is_select_star(sql):
            return [self.issue("Query selects all columns")]
        return []


class TableScanRule(_PerformanceRule):
    name = "Performance.TableScan"
    description = "SELECT without WHERE reads the whole table"
    default_severity = ValidationSeverity.WARNING
    recommendation = "Add a WHERE clause"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.SELECT or has_where(sql):
            return []
        if context.template is not None and context.template.allow_full_table_scan:
            return []
        return [self.issue("Query has no WHERE clause")]


class UnboundedResultsRule(_PerformanceRule):
    name = "Performance.UnboundedResults"
    description = "Row-returning SELECT without LIMIT/TOP/FETCH"
    recommendation = "Bound the result set"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.SELECT:
            return []
        if has_result_bound(sql) or has_aggregation(sql):
            return []
        return [self.issue("Query does not bound the number of rows returned")]


class CartesianJoinRule(_PerformanceRule):
    name = "Performance.CartesianJoin"
    description = "Join without a join condition"
    default_severity = ValidationSeverity.WARNING
    recommendation = "Use an explicit JOIN ... ON condition"

    def run(self, sql, parameters, context):
        clean = strip_string_literals(sql)
        if CROSS_JOIN_PATTERN.search(clean):
            return [self.issue("CROSS JOIN produces a cartesian product")]
        if COMMA_JOIN_PATTERN.search(clean) and not has_where(clean):
            return [self.issue("Comma join without WHERE produces a cartesian product")]
        return []


class LeadingWildcardRule(_PerformanceRule):
    name = "Performance.LeadingWildcard"
    description = "LIKE patterns starting with % cannot use an index"
    default_severity = ValidationSeverity.WARNING
    recommendation = "Anchor the pattern at the start where possible"

    def run(self, sql, parameters, context):
        issues = []
        if LEADING_WILDCARD_PATTERN.search(sql):
            issues.append(self.issue("LIKE pattern starts with a wildcard"))
        bound = {k.lower(): (k, v) for k, v in parameters.items()}
        for placeholder in LIKE_PARAMETER_PATTERN.findall(strip_string_literals(sql)):
            entry = bound.get(placeholder.lower())
            if entry and isinstance(entry[1], str) and entry[1].startswith('%'):
                issues.append(self.issue(
                    f"Parameter '{entry[0]}' starts with a wildcard",
                    parameter_name=entry[0],
                    original_value=entry[1],
                ))
        return issues


class FunctionInWhereRule(_PerformanceRule):
    name = "Performance.FunctionInWhere"
    description = "Functions applied to columns in WHERE prevent index use"
    recommendation = "Compare the bare column against a transformed parameter"

    def run(self, sql, parameters, context):
        condition = where_clause(sql)
        if not condition:
            return []
        functions = sorted({m.upper() for m in WHERE_FUNCTION_PATTERN.findall(strip_string_literals(condition))})
        if functions:
            return [self.issue(f"WHERE applies functions to columns: {', '.join(functions)}")]
        return []


class PositionalReferencesRule(_PerformanceRule):
    name = "BestPractice.PositionalReferences"
    description = "ORDER BY / GROUP BY by column position"
    recommendation = "Reference columns by name"

    def run(self, sql, parameters, context):
        if POSITIONAL_PATTERN.search(strip_string_literals(sql)):
            return [self.issue("Statement orders or groups by column position")]
        return []


class JoinStyleRule(_PerformanceRule):
    name = "BestPractice.JoinStyle"
    description = "Comma-separated FROM lists"
    recommendation = "Use explicit JOIN syntax"

    def run(self, sql, parameters, context):
        if COMMA_JOIN_PATTERN.search(strip_string_literals(sql)):
            return [self.issue("Statement uses implicit comma joins")]
        return []


def performance_rules() -> List[ValidationRule]:
    return [
        SelectAllRule(),
        TableScanRule(),
        UnboundedResultsRule(),
        CartesianJoinRule(),
        LeadingWildcardRule(),
        FunctionInWhereRule(),
        PositionalReferencesRule(),
        JoinStyleRule(),
    ]

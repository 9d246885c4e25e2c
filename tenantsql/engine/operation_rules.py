# TenantSQL - Operation Rules
# ===========================
"""
Operation Rules
===============
Per-operation policy checks:

    SELECT  - result bound and presence of filters
    INSERT  - must carry data
    UPDATE  - must be filtered and must set something
    DELETE  - must be filtered, preferably by key

A parameter counts as a filter when its placeholder sits in the outer
WHERE clause. Parameters that do not appear in the statement text are
classified by name (orderId, createdBefore, minAmount, ...).
"""

import uuid
from typing import Any, List, Mapping, Optional

from .config import EngineConfig
from .models import SqlOperationType, ValidationCategory, ValidationSeverity
from .rules_engine import ValidationContext, ValidationRule, name_segments
from .sql_analysis import placeholders, result_limit, where_clause
from .sql_generator import is_tenant_parameter
from .tenant_rules import operation_of


FILTER_KEYWORDS = {
    'id', 'key', 'where', 'filter', 'condition', 'equals', 'contains', 'starts',
    'ends', 'min', 'max', 'before', 'after', 'from', 'to', 'greater', 'less',
    'at', 'on', 'between', 'in',
}

KEY_KEYWORDS = {'id', 'key', 'guid', 'uuid'}
INSERT_DATA_KEYWORDS = {'data', 'values', 'record'}
LIMIT_KEYWORDS = {'limit', 'top', 'take', 'size'}

EMPTY_GUID_TEXT = '00000000-0000-0000-0000-000000000000'


def is_system_parameter(name: str, context: ValidationContext) -> bool:
    if context.template is not None:
        declared = context.template.get_parameter(name)
        if declared is not None:
            return declared.is_system_parameter
    return is_tenant_parameter(name)


def filter_parameters(sql: str, parameters: Mapping[str, Any], context: ValidationContext) -> List[str]:
    """Non-system parameters that restrict which rows a statement touches."""
    in_statement = {p.lower() for p in placeholders(sql)}
    in_where = {p.lower() for p in placeholders(where_clause(sql) or '')}
    found = []
    for name in parameters:
        if is_system_parameter(name, context):
            continue
        if name.lower() in in_statement:
            if name.lower() in in_where:
                found.append(name)
        elif FILTER_KEYWORDS.intersection(name_segments(name)):
            found.append(name)
    return found


def data_parameters(sql: str, parameters: Mapping[str, Any], context: ValidationContext) -> List[str]:
    """Non-system parameters that are not filters."""
    filters = set(filter_parameters(sql, parameters, context))
    return [n for n in parameters if n not in filters and not is_system_parameter(n, context)]


class ExcessiveLimitRule(ValidationRule):
    name = "Performance.ExcessiveLimit"
    description = "Result bound exceeds the configured maximum"
    category = ValidationCategory.PERFORMANCE
    default_severity = ValidationSeverity.WARNING

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.recommendation = f"Keep result sets at or below {self.config.max_result_limit} rows"

    def run(self, sql, parameters, context):
        maximum = self.config.max_result_limit
        issues = []
        limit = result_limit(sql)
        if limit is not None and limit > maximum:
            issues.append(self.issue(f"Result limit {limit} exceeds maximum of {maximum}", original_value=limit))
        for name, value in parameters.items():
            if not LIMIT_KEYWORDS.intersection(name_segments(name)):
                continue
            if isinstance(value, int) and not isinstance(value, bool) and value > maximum:
                issues.append(self.issue(
                    f"Parameter '{name}' requests {value} rows, maximum is {maximum}",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class NoFilterRule(ValidationRule):
    name = "Performance.NoFilter"
    description = "SELECT without filter parameters"
    category = ValidationCategory.PERFORMANCE
    default_severity = ValidationSeverity.WARNING
    recommendation = "Add filter parameters or mark the template as allowing a full table scan"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.SELECT:
            return []
        if context.template is not None and context.template.allow_full_table_scan:
            return []
        if filter_parameters(sql, parameters, context):
            return []
        return [self.issue("Query has no filter parameters and may scan the whole table")]


class MissingInsertDataRule(ValidationRule):
    name = "Validation.MissingInsertData"
    description = "INSERT must carry data parameters"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Bind the inserted values as parameters"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.INSERT:
            return []
        in_statement = {p.lower() for p in placeholders(sql)}
        for name in parameters:
            if is_system_parameter(name, context):
                continue
            if name.lower() in in_statement or INSERT_DATA_KEYWORDS.intersection(name_segments(name)):
                return []
        return [self.issue("INSERT statement has no data parameters")]


class EmptyGuidRule(ValidationRule):
    name = "DataIntegrity.EmptyGuid"
    description = "Identifier parameter bound to the empty GUID"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.WARNING
    recommendation = "Supply a real identifier"

    def run(self, sql, parameters, context):
        issues = []
        for name, value in parameters.items():
            empty = (
                (isinstance(value, uuid.UUID) and value.int == 0)
                or (isinstance(value, str) and value.strip().lower() == EMPTY_GUID_TEXT)
            )
            if empty:
                issues.append(self.issue(
                    f"Parameter '{name}' is the empty GUID",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class UnfilteredUpdateRule(ValidationRule):
    name = "Security.UnfilteredUpdate"
    description = "UPDATE without filter parameters"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Filter UPDATE statements by key"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.UPDATE:
            return []
        if filter_parameters(sql, parameters, context):
            return []
        return [self.issue("UPDATE statement has no filter parameters and would touch every row")]


class MissingUpdateDataRule(ValidationRule):
    name = "Validation.MissingUpdateData"
    description = "UPDATE must set at least one parameter"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Bind the new values as parameters"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.UPDATE:
            return []
        if data_parameters(sql, parameters, context):
            return []
        return [self.issue("UPDATE statement has no data parameters")]


class UnfilteredDeleteRule(ValidationRule):
    name = "Security.UnfilteredDelete"
    description = "DELETE without filter parameters"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Filter DELETE statements by key"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.DELETE:
            return []
        if filter_parameters(sql, parameters, context):
            return []
        return [self.issue("DELETE statement has no filter parameters and would remove every row")]


class NonKeyDeleteRule(ValidationRule):
    name = "Performance.NonKeyDelete"
    description = "DELETE filtered without a key column"
    category = ValidationCategory.PERFORMANCE
    default_severity = ValidationSeverity.WARNING
    recommendation = "Delete by primary key where possible"

    def run(self, sql, parameters, context):
        if operation_of(sql, context) != SqlOperationType.DELETE:
            return []
        filters = filter_parameters(sql, parameters, context)
        if not filters:
            return []
        if any(KEY_KEYWORDS.intersection(name_segments(n)) for n in filters):
            return []
        return [self.issue(f"DELETE is filtered by non-key parameters: {', '.join(filters)}")]


def operation_rules(config: EngineConfig) -> List[ValidationRule]:
    return [
        ExcessiveLimitRule(config),
        NoFilterRule(),
        MissingInsertDataRule(),
        EmptyGuidRule(),
        UnfilteredUpdateRule(),
        MissingUpdateDataRule(),
        UnfilteredDeleteRule(),
        NonKeyDeleteRule(),
    ]

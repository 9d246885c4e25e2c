# TenantSQL - Tenant Isolation Rules
# ==================================
"""
Tenant Isolation Rules
======================
Every statement over a tenant-scoped table must be filtered on the
tenant column with the tenant parameter, and that parameter must carry
the authenticated tenant unless an authorized cross-tenant request
replaced it.
"""

import logging
from typing import List, Optional

from .config import EngineConfig
from .models import SqlOperationType, ValidationCategory, ValidationIssue, ValidationSeverity
from .rules_engine import ValidationContext, ValidationRule
from .sql_analysis import detect_operation_type, extract_tables, placeholders, where_clause
from .sql_generator import is_tenant_parameter
from .tenant_scoping import TenantScoper

logger = logging.getLogger(__name__)


def tenant_parameter_name(context: ValidationContext, config: EngineConfig) -> str:
    """Tenant placeholder name declared by the template, else the configured default."""
    if context.template is not None:
        for param in context.template.system_parameters:
            if is_tenant_parameter(param.name):
                return param.name
    return config.tenant_parameter


def operation_of(sql: str, context: ValidationContext) -> SqlOperationType:
    if context.operation_type != SqlOperationType.UNKNOWN:
        return context.operation_type
    return detect_operation_type(sql)


def cross_tenant_approved(context: ValidationContext) -> bool:
    tenant_context = context.tenant_context
    return bool(tenant_context and tenant_context.allow_cross_tenant and context.cross_tenant_authorized)


class MissingTenantFilterRule(ValidationRule):
    name = "TenantIsolation.MissingTenantFilter"
    description = "Tenant-scoped tables must be filtered by the tenant parameter"
    category = ValidationCategory.TENANT_ISOLATION
    default_severity = ValidationSeverity.CRITICAL

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.scoper = TenantScoper(self.config)

    def run(self, sql, parameters, context):
        tenant_param = tenant_parameter_name(context, self.config)
        recommendation = f"Add '{self.config.tenant_column} = @{tenant_param}' to the WHERE clause"
        severity = ValidationSeverity.WARNING if cross_tenant_approved(context) else None
        referenced = [p.lower() for p in placeholders(sql)]
        issues: List[ValidationIssue] = []

        if operation_of(sql, context) == SqlOperationType.INSERT:
            scoped = [t for t in extract_tables(sql) if self.config.is_tenant_scoped(t)]
            if scoped and tenant_param.lower() not in referenced:
                issues.append(self.issue(
                    f"Insert into tenant-scoped table '{scoped[0]}' does not set @{tenant_param}",
                    severity=severity,
                    recommendation=f"Insert @{tenant_param} into {self.config.tenant_column}",
                ))
            return issues

        for ref in self.scoper.missing_filters(sql, tenant_param):
            issues.append(self.issue(
                f"Table '{ref.table}' is tenant-scoped but has no tenant filter",
                severity=severity,
                recommendation=recommendation,
            ))

        declares_tenant = context.template is not None and any(
            is_tenant_parameter(p.name) for p in context.template.system_parameters
        )
        if not issues and declares_tenant and tenant_param.lower() not in referenced:
            issues.append(self.issue(
                f"Template declares @{tenant_param} but the statement never uses it",
                severity=severity,
                recommendation=recommendation,
            ))
        return issues


class TenantMismatchRule(ValidationRule):
    name = "TenantIsolation.TenantMismatch"
    description = "The bound tenant must be the authenticated tenant"
    category = ValidationCategory.TENANT_ISOLATION
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Bind the tenant id from the authenticated session"

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def run(self, sql, parameters, context):
        tenant_context = context.tenant_context
        if tenant_context is None or cross_tenant_approved(context):
            return []
        tenant_param = tenant_parameter_name(context, self.config).lower()
        issues = []
        for name, value in parameters.items():
            if name.lower() != tenant_param or value is None:
                continue
            if str(value) != tenant_context.tenant_id:
                logger.warning(
                    f"Tenant mismatch: '{name}' bound to {value}, session tenant is {tenant_context.tenant_id}"
                )
                issues.append(self.issue(
                    f"Parameter '{name}' does not match the authenticated tenant",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class UnfilteredMutationRule(ValidationRule):
    name = "TenantIsolation.UnfilteredMutation"
    description = "UPDATE and DELETE must be filtered by at least one parameter"
    category = ValidationCategory.TENANT_ISOLATION
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Add a parameterized WHERE clause"

    def run(self, sql, parameters, context):
        operation = operation_of(sql, context)
        if operation not in (SqlOperationType.UPDATE, SqlOperationType.DELETE):
            return []
        condition = where_clause(sql)
        if condition is None or not placeholders(condition):
            return [self.issue(f"{operation.value} statement has no filtering parameter")]
        return []


def tenant_rules(config: EngineConfig) -> List[ValidationRule]:
    return [
        MissingTenantFilterRule(config),
        TenantMismatchRule(config),
        UnfilteredMutationRule(),
    ]

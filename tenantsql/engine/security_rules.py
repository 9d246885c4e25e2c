# TenantSQL - Security Rules
# ==========================
"""
Security Rules
==============
Injection and object-name checks, run on every statement.

Values are never part of the SQL text, so most checks look at the
statement for structural abuse (stacked statements, dangerous keywords)
and at bound values for payloads that would matter if a caller ever
spliced them.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .config import EngineConfig
from .models import ParameterType, ValidationCategory, ValidationIssue, ValidationSeverity
from .rules_engine import ValidationContext, ValidationRule
from .sql_analysis import extract_tables, strip_string_literals
from .sql_security import (
    INJECTION_PATTERNS,
    IdentifierProblem,
    MULTI_STATEMENT_PATTERN,
    check_identifier,
    find_dangerous_keywords,
    find_injection_patterns,
    is_identifier_parameter,
)

logger = logging.getLogger(__name__)


QUALIFIED_NAME_HINTS = ('table', 'view', 'procedure')


def identifier_values(parameters: Mapping[str, Any],
                      context: ValidationContext) -> Iterable[Tuple[str, Any]]:
    """(name, value) pairs for parameters that carry database object names."""
    template = context.template
    for name, value in parameters.items():
        if value is None:
            continue
        declared = template.get_parameter(name) if template else None
        if declared is not None and declared.type == ParameterType.IDENTIFIER:
            yield name, value
        elif is_identifier_parameter(name):
            yield name, value


def _allows_qualified(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in QUALIFIED_NAME_HINTS)


def _bare(name: str) -> str:
    return name.strip('[]"`')


class SqlInjectionRule(ValidationRule):
    """
    Injection signatures in the statement text.

    Comments, separators and stacked statements are looked for outside
    string literals, so a value such as '--' in a comparison is not a
    comment. Tautologies are checked on the raw text since 'a' = 'a'
    needs its quoted contents.
    """
    name = "Security.SqlInjection"
    description = "Statement contains SQL injection signatures"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Remove comments, stacked statements and tautologies from the template"

    def run(self, sql, parameters, context):
        found = find_injection_patterns(strip_string_literals(sql))
        if 'tautology' not in found and INJECTION_PATTERNS['tautology'].search(sql or ''):
            found.append('tautology')
        if not found:
            return []
        return [self.issue(f"Potential SQL injection patterns: {', '.join(found)}")]


class MultiStatementRule(ValidationRule):
    name = "Security.MultiStatement"
    description = "Only a single statement is allowed"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Split the work into separate requests"

    def run(self, sql, parameters, context):
        clean = strip_string_literals(sql)
        if MULTI_STATEMENT_PATTERN.search(clean):
            return [self.issue("Multiple statements detected")]
        return []


class DangerousKeywordsRule(ValidationRule):
    name = "Security.DangerousKeywords"
    description = "DDL, permission and procedure-execution keywords are not allowed"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Templates may only read or modify rows"

    def run(self, sql, parameters, context):
        found = find_dangerous_keywords(strip_string_literals(sql))
        if not found:
            return []
        return [self.issue(f"Dangerous keywords found: {', '.join(found)}")]


class ParameterInjectionRule(ValidationRule):
    name = "Security.ParameterInjection"
    description = "String parameter values must not carry SQL payloads"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Reject the value at the source"

    def run(self, sql, parameters, context):
        issues = []
        for name, value in parameters.items():
            if not isinstance(value, str):
                continue
            found = find_injection_patterns(value, include_value_patterns=True)
            if found:
                logger.warning(f"Injection signature in parameter '{name}': {found}")
                issues.append(self.issue(
                    f"Parameter '{name}' contains injection patterns: {', '.join(found)}",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class _IdentifierRule(ValidationRule):
    """Shared driver for the three identifier rules."""
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.CRITICAL
    problems: Tuple[IdentifierProblem, ...] = ()

    def run(self, sql, parameters, context):
        issues = []
        for name, value in identifier_values(parameters, context):
            found = [
                p for p in check_identifier(str(value), allow_qualified=_allows_qualified(name))
                if p in self.problems
            ]
            if found:
                issues.append(self.issue(
                    f"Parameter '{name}' is not a safe identifier ({', '.join(p.value for p in found)})",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class IdentifierFormatRule(_IdentifierRule):
    name = "Security.IdentifierFormat"
    description = "Identifiers must match ^[A-Za-z][A-Za-z0-9_]*$ and be at most 128 characters"
    recommendation = "Use a plain letters/digits/underscore name"
    problems = (IdentifierProblem.EMPTY, IdentifierProblem.TOO_LONG, IdentifierProblem.INVALID_FORMAT)


class ReservedWordRule(_IdentifierRule):
    name = "Security.ReservedWord"
    description = "Identifiers must not be SQL reserved words"
    recommendation = "Pick a non-reserved object name"
    problems = (IdentifierProblem.RESERVED_WORD,)


class ObjectNameInjectionRule(_IdentifierRule):
    name = "Security.ObjectNameInjection"
    description = "Identifiers must not contain comments, separators, quotes or operators"
    recommendation = "Reject the value at the source"
    problems = (IdentifierProblem.INJECTION,)


class UnknownSchemaRule(ValidationRule):
    name = "Security.UnknownSchema"
    description = "Schema is not in the configured allow-list"
    category = ValidationCategory.SECURITY
    default_severity = ValidationSeverity.WARNING
    recommendation = "Use one of the configured schemas"

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.allowed = {s.lower() for s in self.config.allowed_schemas}

    def run(self, sql, parameters, context):
        issues: List[ValidationIssue] = []
        for table in extract_tables(sql):
            parts = [_bare(p) for p in table.split('.')]
            if len(parts) >= 2 and parts[-2].lower() not in self.allowed:
                issues.append(self.issue(f"Table '{table}' uses unknown schema '{parts[-2]}'"))

        for name, value in identifier_values(parameters, context):
            text = str(value)
            if 'schema' in name.lower():
                schema = text
            elif '.' in text and _allows_qualified(name):
                schema = text.split('.')[0]
            else:
                continue
            if _bare(schema).lower() not in self.allowed:
                issues.append(self.issue(
                    f"Parameter '{name}' names unknown schema '{schema}'",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


def security_rules(config: EngineConfig) -> List[ValidationRule]:
    return [
        SqlInjectionRule(),
        MultiStatementRule(),
        DangerousKeywordsRule(),
        ParameterInjectionRule(),
        IdentifierFormatRule(),
        ReservedWordRule(),
        ObjectNameInjectionRule(),
        UnknownSchemaRule(config),
    ]

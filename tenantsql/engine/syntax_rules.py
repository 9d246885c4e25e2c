# TenantSQL - Syntax Rules
# ========================
"""
Syntax Rules
============
Structural sanity checks that do not need a full parser.
"""

import re
from typing import List

from .models import ValidationCategory, ValidationSeverity
from .rules_engine import ValidationRule
from .sql_analysis import (
    has_unterminated_string,
    leading_keyword,
    parentheses_balanced,
    placeholders,
    strip_string_literals,
)


ALLOWED_LEADING_KEYWORDS = ('SELECT', 'INSERT', 'UPDATE', 'DELETE', 'WITH')


class StatementKeywordRule(ValidationRule):
    name = "Syntax.StatementKeyword"
    description = "Statement must begin with SELECT, INSERT, UPDATE, DELETE or WITH"
    category = ValidationCategory.SYNTAX
    default_severity = ValidationSeverity.CRITICAL
    recommendation = "Only data-manipulation statements are supported"

    def run(self, sql, parameters, context):
        keyword = leading_keyword(sql)
        if keyword in ALLOWED_LEADING_KEYWORDS:
            return []
        return [self.issue(f"Statement begins with unsupported keyword '{keyword or sql.strip()[:20]}'")]


class UnbalancedParenthesesRule(ValidationRule):
    name = "Syntax.UnbalancedParentheses"
    description = "Parentheses must balance"
    category = ValidationCategory.SYNTAX
    default_severity = ValidationSeverity.CRITICAL

    def run(self, sql, parameters, context):
        if parentheses_balanced(sql):
            return []
        return [self.issue("Unbalanced parentheses")]


class UnterminatedStringRule(ValidationRule):
    name = "Syntax.UnterminatedString"
    description = "String literals must be closed"
    category = ValidationCategory.SYNTAX
    default_severity = ValidationSeverity.CRITICAL

    def run(self, sql, parameters, context):
        if has_unterminated_string(sql):
            return [self.issue("Unterminated string literal")]
        return []


class SelectWithoutFromRule(ValidationRule):
    name = "Syntax.SelectWithoutFrom"
    description = "SELECT without FROM"
    category = ValidationCategory.SYNTAX
    default_severity = ValidationSeverity.WARNING

    def run(self, sql, parameters, context):
        if leading_keyword(sql) != 'SELECT':
            return []
        if re.search(r'\bFROM\b', strip_string_literals(sql), re.IGNORECASE):
            return []
        return [self.issue("SELECT statement has no FROM clause")]


class UndefinedParameterRule(ValidationRule):
    name = "Syntax.UndefinedParameter"
    description = "Every @name placeholder needs a bound value"
    category = ValidationCategory.SYNTAX
    default_severity = ValidationSeverity.WARNING
    recommendation = "Bind a value for the placeholder"

    def run(self, sql, parameters, context):
        bound = {name.lower() for name in parameters}
        return [
            self.issue(f"Placeholder @{name} has no bound value", parameter_name=name)
            for name in placeholders(sql)
            if name.lower() not in bound
        ]


def syntax_rules() -> List[ValidationRule]:
    return [
        StatementKeywordRule(),
        UnbalancedParenthesesRule(),
        UnterminatedStringRule(),
        SelectWithoutFromRule(),
        UndefinedParameterRule(),
    ]

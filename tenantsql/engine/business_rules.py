# TenantSQL - Business Rules
# ==========================
"""
Business Rules
==============
User-management policy (the 'business.user' rule set) and the generic
check that bound values respect a template's declared allowed values.
"""

import re
from typing import List, Optional

from .config import EngineConfig
from .models import ValidationCategory, ValidationSeverity
from .rules_engine import ValidationRule, name_segments
from .value_type_rules import EMAIL_PATTERN


USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')


def is_username_parameter(name: str) -> bool:
    segments = name_segments(name)
    lowered = name.lower()
    return 'username' in lowered or 'login' in segments or ('user' in segments and 'name' in segments)


def is_email_parameter(name: str, value) -> bool:
    return 'email' in name.lower() or (isinstance(value, str) and EMAIL_PATTERN.match(value.strip()) is not None)


class _UserRule(ValidationRule):
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.CRITICAL

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()


class RestrictedDomainRule(_UserRule):
    name = "Business.RestrictedDomain"
    description = "Email addresses must not use a restricted domain"
    recommendation = "Use a real organisation email address"

    def run(self, sql, parameters, context):
        restricted = {d.lower() for d in self.config.restricted_email_domains}
        issues = []
        for name, value in parameters.items():
            if not isinstance(value, str) or '@' not in value or not is_email_parameter(name, value):
                continue
            domain = value.strip().rsplit('@', 1)[1].lower()
            if domain in restricted:
                issues.append(self.issue(
                    f"Email domain '{domain}' is not allowed",
                    parameter_name=name,
                    original_value=value,
                ))
        return issues


class UsernameLengthRule(_UserRule):
    name = "Business.UsernameLength"
    description = "Usernames must meet the minimum length"

    def run(self, sql, parameters, context):
        minimum = self.config.min_username_length
        return [
            self.issue(
                f"Username must be at least {minimum} characters",
                parameter_name=name,
                original_value=value,
                recommendation=f"Choose a username of {minimum} or more characters",
            )
            for name, value in parameters.items()
            if isinstance(value, str) and is_username_parameter(name) and len(value.strip()) < minimum
        ]


class UsernameFormatRule(_UserRule):
    name = "Business.UsernameFormat"
    description = "Usernames may contain letters, digits, '.', '_' and '-'"
    recommendation = "Remove spaces and special characters"

    def run(self, sql, parameters, context):
        return [
            self.issue("Username contains invalid characters", parameter_name=name, original_value=value)
            for name, value in parameters.items()
            if isinstance(value, str) and is_username_parameter(name) and not USERNAME_PATTERN.match(value.strip())
        ]


class ReservedUsernameRule(_UserRule):
    name = "Business.ReservedUsername"
    description = "Reserved usernames cannot be used"
    recommendation = "Choose a different username"

    def run(self, sql, parameters, context):
        reserved = {u.lower() for u in self.config.reserved_usernames}
        return [
            self.issue(f"Username '{value}' is reserved", parameter_name=name, original_value=value)
            for name, value in parameters.items()
            if isinstance(value, str) and is_username_parameter(name) and value.strip().lower() in reserved
        ]


class AllowedRoleRule(_UserRule):
    name = "Business.AllowedRole"
    description = "Roles must be one of the configured roles"

    def run(self, sql, parameters, context):
        allowed = {r.lower() for r in self.config.allowed_roles}
        issues = []
        for name, value in parameters.items():
            if value is None or 'role' not in name_segments(name):
                continue
            if str(value).strip().lower() not in allowed:
                issues.append(self.issue(
                    f"Role '{value}' is not allowed",
                    parameter_name=name,
                    original_value=value,
                    recommendation=f"Use one of: {', '.join(self.config.allowed_roles)}",
                ))
        return issues


class AllowedValuesRule(ValidationRule):
    name = "Business.AllowedValues"
    description = "Values must be among the template's declared allowed values"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.ERROR

    def run(self, sql, parameters, context):
        if context.template is None:
            return []
        issues = []
        for name, value in parameters.items():
            declared = context.template.get_parameter(name)
            if declared is None or declared.allowed_values is None or value is None:
                continue
            allowed = [str(a).lower() for a in declared.allowed_values]
            if str(value).lower() not in allowed:
                issues.append(self.issue(
                    f"'{value}' is not an allowed value for '{name}'",
                    parameter_name=name,
                    original_value=value,
                    recommendation=f"Use one of: {', '.join(str(a) for a in declared.allowed_values)}",
                ))
        return issues


def business_rules(config: EngineConfig) -> List[ValidationRule]:
    return [
        RestrictedDomainRule(config),
        UsernameLengthRule(config),
        UsernameFormatRule(config),
        AllowedRoleRule(config),
        ReservedUsernameRule(config),
        AllowedValuesRule(),
    ]

# TenantSQL - Validation Rule Engine
# ==================================
"""
Validation Rule Engine
======================
Registry of named validation rules grouped into composable rule sets.

Each rule is a ValidationRule with a category, a default severity and a
run(sql, parameters, context) method returning ValidationIssues. All
selected rules run independently and their issues are concatenated in
registration order; the result is valid iff no issue is Critical.

The registry is read-mostly: validate() works on an immutable snapshot,
while add/remove/enable and rule-set creation take a lock and publish a
new snapshot.

This is the 'validating' stage of the pipeline.
"""

import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import OperationCancelledError
from .models import (
    SqlOperationType,
    SqlTemplate,
    TenantContext,
    ValidationCategory,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)

logger = logging.getLogger(__name__)


DEFAULT_RULE_SET = "default"


@dataclass(frozen=True)
class ValidationContext:
    """Per-request inputs a rule may consult besides sql and parameters."""
    template: Optional[SqlTemplate] = None
    tenant_context: Optional[TenantContext] = None
    operation_type: SqlOperationType = SqlOperationType.UNKNOWN
    cross_tenant_authorized: bool = False


class ValidationRule(ABC):
    """
    Base class for validation rules.

    Subclasses set the class attributes and implement run().
    """
    name: str = ""
    description: str = ""
    category: ValidationCategory = ValidationCategory.SYNTAX
    default_severity: ValidationSeverity = ValidationSeverity.WARNING
    recommendation: str = ""
    enabled: bool = True        # initial state when registered

    @abstractmethod
    def run(self, sql: str, parameters: Mapping[str, Any],
            context: ValidationContext) -> List[ValidationIssue]:
        """
        Apply the rule.

        Args:
            sql: Statement text
            parameters: Bound parameter values
            context: Template, tenant context and operation type

        Returns:
            Issues found (empty if the rule passes)
        """
        pass

    def issue(self,
              description: str,
              parameter_name: str = "",
              original_value: Any = None,
              severity: Optional[ValidationSeverity] = None,
              rule_name: Optional[str] = None,
              category: Optional[ValidationCategory] = None,
              recommendation: Optional[str] = None) -> ValidationIssue:
        """Build an issue pre-filled with this rule's defaults."""
        return ValidationIssue(
            rule_name=rule_name or self.name,
            category=category or self.category,
            severity=severity or self.default_severity,
            description=description,
            parameter_name=parameter_name,
            original_value=original_value,
            recommendation=self.recommendation if recommendation is None else recommendation,
        )


class FunctionRule(ValidationRule):
    """Adapts a plain function fn(sql, parameters, context) -> issues into a rule."""

    def __init__(self,
                 name: str,
                 fn: Callable[[str, Mapping[str, Any], ValidationContext], List[ValidationIssue]],
                 category: ValidationCategory,
                 default_severity: ValidationSeverity = ValidationSeverity.WARNING,
                 description: str = "",
                 recommendation: str = ""):
        self.name = name
        self.fn = fn
        self.category = category
        self.default_severity = default_severity
        self.description = description
        self.recommendation = recommendation

    def run(self, sql, parameters, context):
        return list(self.fn(sql, parameters, context) or [])


@dataclass(frozen=True)
class RuleSet:
    """A named group of rules."""
    name: str
    rule_names: Tuple[str, ...]
    description: str = ""
    created: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class _RegistrySnapshot:
    rules: Mapping[str, ValidationRule]        # insertion-ordered
    disabled: FrozenSet[str]
    rule_sets: Mapping[str, RuleSet]


class ValidationRuleEngine:
    """
    Registry and runner for validation rules.

    Example:
        from tenantsql.engine.rule_catalog import create_rule_engine

        engine = create_rule_engine(EngineConfig())
        result = engine.validate("DELETE FROM Orders", {}, ValidationContext())
        result.is_valid        # False
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = _RegistrySnapshot(MappingProxyType({}), frozenset(), MappingProxyType({}))

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def add_rule(self, rule: ValidationRule, enabled: Optional[bool] = None) -> bool:
        """
        Register a rule.

        Args:
            rule: Rule to register
            enabled: Initial state (defaults to rule.enabled)

        Returns:
            False if a rule with the same name is already registered
        """
        if not rule.name:
            raise ValueError("Rule must have a name")
        with self._lock:
            current = self._snapshot
            if rule.name in current.rules:
                logger.warning(f"Rule '{rule.name}' already registered")
                return False
            rules = dict(current.rules)
            rules[rule.name] = rule
            if enabled is None:
                enabled = rule.enabled
            disabled = current.disabled if enabled else current.disabled | {rule.name}
            self._snapshot = _RegistrySnapshot(MappingProxyType(rules), disabled, current.rule_sets)
        logger.debug(f"Registered rule '{rule.name}' ({rule.category.value})")
        return True

    def remove_rule(self, name: str) -> bool:
        with self._lock:
            current = self._snapshot
            if name not in current.rules:
                return False
            rules = dict(current.rules)
            del rules[name]
            self._snapshot = _RegistrySnapshot(
                MappingProxyType(rules), current.disabled - {name}, current.rule_sets
            )
        logger.info(f"Removed rule '{name}'")
        return True

    def set_rule_enabled(self, name: str, enabled: bool) -> bool:
        with self._lock:
            current = self._snapshot
            if name not in current.rules:
                return False
            disabled = current.disabled - {name} if enabled else current.disabled | {name}
            self._snapshot = _RegistrySnapshot(current.rules, frozenset(disabled), current.rule_sets)
        logger.info(f"Rule '{name}' {'enabled' if enabled else 'disabled'}")
        return True

    def get_rule(self, name: str) -> Optional[ValidationRule]:
        return self._snapshot.rules.get(name)

    def get_rules(self) -> List[ValidationRule]:
        return list(self._snapshot.rules.values())

    def get_rules_by_category(self, category: ValidationCategory) -> List[ValidationRule]:
        return [r for r in self._snapshot.rules.values() if r.category == category]

    def is_enabled(self, name: str) -> bool:
        snapshot = self._snapshot
        return name in snapshot.rules and name not in snapshot.disabled

    # ------------------------------------------------------------------
    # Rule sets
    # ------------------------------------------------------------------

    def create_rule_set(self, name: str, rule_names: Iterable[str], description: str = "") -> RuleSet:
        """
        Create or replace a named rule set.

        Unknown rule names are skipped with a warning.
        """
        with self._lock:
            current = self._snapshot
            known = []
            for rule_name in rule_names:
                if rule_name in current.rules:
                    if rule_name not in known:
                        known.append(rule_name)
                else:
                    logger.warning(f"Rule set '{name}': skipping unknown rule '{rule_name}'")
            rule_set = RuleSet(name=name, rule_names=tuple(known), description=description)
            rule_sets = dict(current.rule_sets)
            rule_sets[name] = rule_set
            self._snapshot = _RegistrySnapshot(current.rules, current.disabled, MappingProxyType(rule_sets))
        logger.info(f"Created rule set '{name}' with {len(rule_set.rule_names)} rules")
        return rule_set

    def get_rule_set(self, name: str) -> Optional[RuleSet]:
        return self._snapshot.rule_sets.get(name)

    def rule_set_names(self) -> List[str]:
        return list(self._snapshot.rule_sets.keys())

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self,
                 sql: str,
                 parameters: Optional[Mapping[str, Any]] = None,
                 context: Optional[ValidationContext] = None,
                 categories: Optional[Iterable[ValidationCategory]] = None,
                 rule_sets: Optional[Iterable[str]] = None,
                 cancel_event: Optional[threading.Event] = None) -> ValidationResult:
        """
        Run rules against a statement.

        Args:
            sql: Statement text
            parameters: Bound parameter values
            context: Template / tenant context / operation type
            categories: Only run rules in these categories
            rule_sets: Rule sets to run (defaults to the 'default' set, or
                every enabled rule if no default set exists)
            cancel_event: Checked before and between rule evaluations

        Returns:
            ValidationResult with all issues

        Raises:
            OperationCancelledError: If cancel_event is set
        """
        _check_cancelled(cancel_event)
        snapshot = self._snapshot
        parameters = MappingProxyType(dict(parameters or {}))
        context = context or ValidationContext()

        if sql is None or not sql.strip():
            return ValidationResult(issues=[ValidationIssue(
                rule_name="Syntax.Empty",
                category=ValidationCategory.SYNTAX,
                severity=ValidationSeverity.CRITICAL,
                description="SQL statement is empty",
                recommendation="Provide a complete SQL statement",
            )])

        issues: List[ValidationIssue] = []
        selected = self._select_rules(snapshot, rule_sets, issues)
        if categories is not None:
            wanted = set(categories)
            selected = [r for r in selected if r.category in wanted]

        for rule in selected:
            _check_cancelled(cancel_event)
            try:
                found = rule.run(sql, parameters, context)
            except Exception as e:
                logger.error(f"Rule '{rule.name}' raised: {e}", exc_info=True)
                found = [ValidationIssue(
                    rule_name="Engine.RuleError",
                    category=rule.category,
                    severity=ValidationSeverity.WARNING,
                    description=f"Error applying rule {rule.name}: {e}",
                    recommendation="Check the rule implementation",
                )]
            issues.extend(found)

        result = ValidationResult(issues=issues)
        logger.debug(f"Validation ran {len(selected)} rules: {len(issues)} issues, valid={result.is_valid}")
        return result

    def apply_rule_set(self,
                       name: str,
                       sql: str,
                       parameters: Optional[Mapping[str, Any]] = None,
                       context: Optional[ValidationContext] = None,
                       cancel_event: Optional[threading.Event] = None) -> ValidationResult:
        """Run a single named rule set."""
        return self.validate(sql, parameters, context, rule_sets=[name], cancel_event=cancel_event)

    @staticmethod
    def _select_rules(snapshot: _RegistrySnapshot,
                      rule_sets: Optional[Iterable[str]],
                      issues: List[ValidationIssue]) -> List[ValidationRule]:
        """Enabled rules from the requested sets, in registration order."""
        if rule_sets is None:
            if DEFAULT_RULE_SET in snapshot.rule_sets:
                rule_sets = [DEFAULT_RULE_SET]
            else:
                return [r for n, r in snapshot.rules.items() if n not in snapshot.disabled]

        wanted = set()
        for set_name in rule_sets:
            rule_set = snapshot.rule_sets.get(set_name)
            if rule_set is None:
                logger.warning(f"Unknown rule set '{set_name}'")
                issues.append(ValidationIssue(
                    rule_name="Engine.UnknownRuleSet",
                    category=ValidationCategory.BUSINESS,
                    severity=ValidationSeverity.INFO,
                    description=f"Rule set '{set_name}' is not registered",
                ))
                continue
            wanted.update(rule_set.rule_names)

        return [
            r for n, r in snapshot.rules.items()
            if n in wanted and n not in snapshot.disabled
        ]


def _check_cancelled(cancel_event: Optional[threading.Event]):
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("Validation cancelled")


def name_segments(name: str) -> List[str]:
    """'customerEmail' -> ['customer', 'email'], 'order_id' -> ['order', 'id']."""
    spaced = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', name or '')
    return [s for s in re.split(r'[\s_\-]+', spaced.lower()) if s]

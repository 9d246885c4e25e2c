# TenantSQL - Built-in Rule Catalog
# =================================
"""
Built-in Rule Catalog
=====================
Registers the built-in rules and the named rule sets:

    default           everything below except the user-management rules
    security          injection, dangerous keywords, identifiers, schemas
    tenant_isolation  tenant filter, tenant mismatch, unfiltered mutation
    operation         per-operation policy (limits, filters, data)
    value_types       value format, sensitive data, dates
    syntax            statement structure
    performance       advisory performance checks
    business.user     user-management policy
"""

import logging
from datetime import date
from typing import Callable, Optional

from .business_rules import AllowedValuesRule, business_rules
from .config import EngineConfig
from .operation_rules import operation_rules
from .performance_rules import performance_rules
from .rules_engine import DEFAULT_RULE_SET, ValidationRuleEngine
from .security_rules import security_rules
from .syntax_rules import syntax_rules
from .tenant_rules import tenant_rules
from .value_type_rules import value_type_rules

logger = logging.getLogger(__name__)


def create_rule_engine(config: Optional[EngineConfig] = None,
                       clock: Optional[Callable[[], date]] = None) -> ValidationRuleEngine:
    """
    Build a rule engine with the built-in rules and rule sets.

    Args:
        config: Engine configuration (limits, tenant tables, policy lists)
        clock: Returns 'today' for date range checks

    Returns:
        Configured ValidationRuleEngine
    """
    config = config or EngineConfig()
    engine = ValidationRuleEngine()

    groups = {
        'security': security_rules(config),
        'tenant_isolation': tenant_rules(config),
        'operation': operation_rules(config),
        'value_types': value_type_rules(clock),
        'syntax': syntax_rules(),
        'performance': performance_rules(),
        'business.user': business_rules(config),
    }

    for rules in groups.values():
        for rule in rules:
            engine.add_rule(rule)

    for set_name, rules in groups.items():
        engine.create_rule_set(set_name, [r.name for r in rules])

    default_names = [
        rule.name
        for set_name, rules in groups.items() if set_name != 'business.user'
        for rule in rules
    ]
    default_names.append(AllowedValuesRule.name)
    engine.create_rule_set(DEFAULT_RULE_SET, default_names, "Rules applied to every statement")

    logger.info(f"Rule engine ready: {len(engine.get_rules())} rules, {len(engine.rule_set_names())} rule sets")
    return engine

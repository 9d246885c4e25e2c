# TenantSQL - Engine Configuration
# ================================
"""
Engine Configuration
====================
Thresholds, tenant-scoping settings and business-rule vocabularies used by
the generation pipeline and the validation rules.

Values can be supplied directly or read from TENANTSQL_* environment
variables (a .env file is honoured).
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


DEFAULT_TENANT_SCOPED_TABLES = [
    'Users', 'DataSources', 'Conversations', 'ConversationHistory',
    'Documents', 'Terms', 'KnowledgeItems', 'Settings',
]


@dataclass
class EngineConfig:
    """Configuration for the SQL generation engine."""
    # Template selection
    selection_threshold: float = 0.6        # minimum similarity (0-1) to accept a template
    confidence_threshold: float = 0.7       # extracted params below this are low-confidence

    # Result-size policy
    max_result_limit: int = 1000            # LIMIT above this raises ExcessiveLimit
    default_limit: int = 1000               # bound added by the optimizer

    # Optimizer
    complexity_threshold: float = 3.0       # rewrites proposed at or above this score
    enable_optimization: bool = True

    # Tenant scoping
    tenant_column: str = "TenantId"
    tenant_parameter: str = "tenantId"
    tenant_scoped_tables: List[str] = field(default_factory=lambda: list(DEFAULT_TENANT_SCOPED_TABLES))

    # Identifiers
    allowed_schemas: List[str] = field(default_factory=lambda: ['dbo', 'public', 'app', 'data', 'users'])
    table_columns: Dict[str, List[str]] = field(default_factory=dict)  # table -> column list for SELECT * expansion

    # Business rules
    restricted_email_domains: List[str] = field(default_factory=lambda: ['example.com'])
    allowed_roles: List[str] = field(default_factory=lambda: ['user', 'admin', 'manager', 'readonly'])
    reserved_usernames: List[str] = field(default_factory=lambda: ['admin', 'system', 'root', 'superuser'])
    min_username_length: int = 5
    tenant_rule_sets: Dict[str, List[str]] = field(default_factory=dict)  # tenant id -> extra rule sets

    # Input
    max_query_length: int = 2000

    def is_tenant_scoped(self, table: str) -> bool:
        """Check whether a table name (optionally schema-qualified) is tenant-scoped."""
        bare = table.strip('[]"`').split('.')[-1].strip('[]"`').lower()
        return bare in {t.lower() for t in self.tenant_scoped_tables}

    def columns_for(self, table: str) -> Optional[List[str]]:
        bare = table.strip('[]"`').split('.')[-1].strip('[]"`').lower()
        for name, columns in self.table_columns.items():
            if name.lower() == bare:
                return columns
        return None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """Create config from environment variables."""
        load_dotenv(env_file)
        defaults = cls()

        return cls(
            selection_threshold=float(os.getenv("TENANTSQL_SELECTION_THRESHOLD", str(defaults.selection_threshold))),
            confidence_threshold=float(os.getenv("TENANTSQL_CONFIDENCE_THRESHOLD", str(defaults.confidence_threshold))),
            max_result_limit=int(os.getenv("TENANTSQL_MAX_RESULT_LIMIT", str(defaults.max_result_limit))),
            default_limit=int(os.getenv("TENANTSQL_DEFAULT_LIMIT", str(defaults.default_limit))),
            complexity_threshold=float(os.getenv("TENANTSQL_COMPLEXITY_THRESHOLD", str(defaults.complexity_threshold))),
            enable_optimization=os.getenv("TENANTSQL_ENABLE_OPTIMIZATION", "true").lower() == "true",
            tenant_column=os.getenv("TENANTSQL_TENANT_COLUMN", defaults.tenant_column),
            tenant_parameter=os.getenv("TENANTSQL_TENANT_PARAMETER", defaults.tenant_parameter),
            tenant_scoped_tables=_env_list("TENANTSQL_TENANT_SCOPED_TABLES", defaults.tenant_scoped_tables),
            allowed_schemas=_env_list("TENANTSQL_ALLOWED_SCHEMAS", defaults.allowed_schemas),
            table_columns=_env_json("TENANTSQL_TABLE_COLUMNS", defaults.table_columns),
            restricted_email_domains=_env_list("TENANTSQL_RESTRICTED_EMAIL_DOMAINS", defaults.restricted_email_domains),
            allowed_roles=_env_list("TENANTSQL_ALLOWED_ROLES", defaults.allowed_roles),
            reserved_usernames=_env_list("TENANTSQL_RESERVED_USERNAMES", defaults.reserved_usernames),
            min_username_length=int(os.getenv("TENANTSQL_MIN_USERNAME_LENGTH", str(defaults.min_username_length))),
            tenant_rule_sets=_env_json("TENANTSQL_TENANT_RULE_SETS", defaults.tenant_rule_sets),
            max_query_length=int(os.getenv("TENANTSQL_MAX_QUERY_LENGTH", str(defaults.max_query_length))),
        )


def _env_list(name: str, default: List[str]) -> List[str]:
    """Read a comma-separated list."""
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


def _env_json(name: str, default: Dict) -> Dict:
    """Read a JSON object, falling back to the default on malformed input."""
    raw = os.getenv(name)
    if not raw:
        return dict(default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed {name}: {e}")
        return dict(default)
    if not isinstance(value, dict):
        logger.warning(f"Ignoring {name}: expected a JSON object")
        return dict(default)
    return value

# Pytest configuration for engine tests
"""
Fixtures for TenantSQL engine tests.
"""

import pytest
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = project_root / '.env'
if env_path.exists():
    load_dotenv(env_path)
    print(f"Loaded .env from {env_path}")

from tenantsql.audit import AuditService, InMemoryAuditSink
from tenantsql.engine.config import DEFAULT_TENANT_SCOPED_TABLES, EngineConfig
from tenantsql.engine.models import ParameterType, SqlTemplate, SqlTemplateParameter, TenantContext
from tenantsql.engine.pipeline import SqlGenerationPipeline


FIXED_TODAY = date(2024, 6, 15)   # a Saturday


def tenant_param(name: str = "tenantId") -> SqlTemplateParameter:
    return SqlTemplateParameter(name, ParameterType.STRING, is_system_parameter=True)


@pytest.fixture
def clock():
    """Fixed 'today' so relative dates are reproducible."""
    return lambda: FIXED_TODAY


@pytest.fixture
def config():
    """Engine config with Orders added to the tenant-scoped tables."""
    return EngineConfig(tenant_scoped_tables=DEFAULT_TENANT_SCOPED_TABLES + ['Orders'])


@pytest.fixture
def tenant():
    return TenantContext("T1", user_id="u-1")


@pytest.fixture
def orders_template():
    return SqlTemplate(
        id="orders_by_status",
        name="Orders by status",
        sql_template_text="SELECT Id, Status, Total FROM Orders WHERE TenantId = @tenantId AND Status = @status",
        parameters=(tenant_param(), SqlTemplateParameter("status", ParameterType.STRING)),
        intent_mapping=("orders with status", "show orders by status", "completed orders"),
        tags=("orders", "reporting"),
    )


@pytest.fixture
def documents_template():
    return SqlTemplate(
        id="documents_by_title",
        name="Documents by title",
        sql_template_text="SELECT Id, Title FROM Documents WHERE Title = @title",
        parameters=(tenant_param(), SqlTemplateParameter("title", ParameterType.STRING)),
        intent_mapping=("find documents by title", "documents titled"),
        tags=("documents",),
    )


@pytest.fixture
def update_role_template():
    return SqlTemplate(
        id="update_user_role",
        name="Change a user's role",
        sql_template_text="UPDATE Users SET Role = @role WHERE TenantId = @tenantId AND Id = @userId",
        parameters=(
            tenant_param(),
            SqlTemplateParameter("role", ParameterType.STRING),
            SqlTemplateParameter("userId", ParameterType.INT32),
        ),
        intent_mapping=("change user role", "make user an admin"),
        rule_sets=("business.user",),
    )


@pytest.fixture
def all_orders_template():
    return SqlTemplate(
        id="all_orders",
        name="All orders",
        sql_template_text="SELECT * FROM Orders WHERE TenantId = @tenantId",
        parameters=(tenant_param(),),
        intent_mapping=("list every order",),
    )


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def pipeline(config, clock, audit_sink, orders_template, documents_template,
             update_role_template, all_orders_template):
    """Pipeline with the sample templates registered and an in-memory audit trail."""
    pipeline = SqlGenerationPipeline(config=config, audit=AuditService([audit_sink]), clock=clock)
    for template in (orders_template, documents_template, update_role_template, all_orders_template):
        result = pipeline.add_template(template)
        assert result.is_successful, result.error_message
    return pipeline

# Tests for SQL Generation (Step 3)
"""
Test Suite for SqlGenerator
===========================
Tests statement binding including:
- System parameters always taken from the tenant context
- Cross-tenant authorization
- Tenant filter injection
- Missing, mistyped and disallowed values
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tenantsql.engine.config import EngineConfig
from tenantsql.engine.errors import ContractViolationError, ErrorCode
from tenantsql.engine.models import (
    ParameterType,
    PipelineStage,
    SqlOperationType,
    SqlTemplate,
    SqlTemplateParameter,
    TenantContext,
)
from tenantsql.engine.sql_generator import SqlGenerator, deny_cross_tenant


TENANT = SqlTemplateParameter("tenantId", is_system_parameter=True)


def _template(sql, *parameters, template_id="t"):
    return SqlTemplate(id=template_id, name=template_id, sql_template_text=sql, parameters=parameters)


class TestSystemParameters:
    """Test tenant and user binding."""

    def setup_method(self):
        """Set up test fixtures."""
        self.template = _template(
            "SELECT Id FROM Documents WHERE TenantId = @tenantId AND Title = @title",
            TENANT, SqlTemplateParameter("title"),
        )

    def test_supplied_tenant_overwritten(self):
        """Test that a caller-supplied tenant id is replaced by the session tenant."""
        result = SqlGenerator().generate(self.template, {"title": "x", "tenantId": "T9"}, TenantContext("T1"))

        assert result.is_successful is True
        assert result.parameters == {"tenantId": "T1", "title": "x"}
        assert result.sql == self.template.sql_template_text
        assert result.operation_type == SqlOperationType.SELECT
        assert result.cross_tenant_authorized is False

    def test_cross_tenant_approved(self):
        """Test an approved cross-tenant request."""
        generator = SqlGenerator(authorizer=lambda ctx, requested: requested == "T2")
        context = TenantContext("T1", allow_cross_tenant=True)

        approved = generator.generate(self.template, {"title": "x", "tenantId": "T2"}, context)
        denied = generator.generate(self.template, {"title": "x", "tenantId": "T3"}, context)

        assert approved.parameters["tenantId"] == "T2"
        assert approved.cross_tenant_authorized is True
        assert denied.parameters["tenantId"] == "T1"
        assert denied.cross_tenant_authorized is False

    def test_cross_tenant_requires_context_flag(self):
        """Test that an approving authorizer is not enough without the context flag."""
        generator = SqlGenerator(authorizer=lambda ctx, requested: True)
        result = generator.generate(self.template, {"title": "x", "tenantId": "T2"}, TenantContext("T1"))
        assert result.parameters["tenantId"] == "T1"

    def test_authorizer_error_denies(self):
        """Test that a failing authorizer denies access."""
        def broken(ctx, requested):
            raise RuntimeError("directory unavailable")

        result = SqlGenerator(authorizer=broken).generate(
            self.template, {"title": "x", "tenantId": "T2"}, TenantContext("T1", allow_cross_tenant=True)
        )
        assert result.parameters["tenantId"] == "T1"

    def test_default_authorizer(self):
        """Test the deny-by-default authorizer."""
        assert deny_cross_tenant(TenantContext("T1", allow_cross_tenant=True), "T2") is False

    def test_user_parameter(self):
        """Test that user system parameters come from the context."""
        template = _template(
            "UPDATE Users SET Name = @name WHERE TenantId = @tenantId AND Id = @currentUserId",
            TENANT, SqlTemplateParameter("name"),
            SqlTemplateParameter("currentUserId", is_system_parameter=True),
        )
        bound = SqlGenerator().generate(template, {"name": "Ann", "currentUserId": "u-99"},
                                        TenantContext("T1", user_id="u-1"))
        missing = SqlGenerator().generate(template, {"name": "Ann"}, TenantContext("T1"))

        assert bound.parameters["currentUserId"] == "u-1"
        assert missing.error_code == ErrorCode.REQUIRED_PARAMETER_MISSING
        assert missing.missing_parameters == ["currentUserId"]

    def test_null_tenant_context(self):
        """Test that a missing tenant context is a contract violation."""
        with pytest.raises(ContractViolationError):
            SqlGenerator().generate(self.template, {"title": "x"}, None)


class TestTenantInjection:
    """Test tenant filter injection at generation time."""

    def test_filter_injected(self):
        """Test that an unfiltered scoped table gets a tenant filter."""
        template = _template("SELECT Id FROM Documents WHERE Title = @title", TENANT, SqlTemplateParameter("title"))
        result = SqlGenerator().generate(template, {"title": "x"}, TenantContext("T1"))

        assert result.sql == "SELECT Id FROM Documents WHERE TenantId = @tenantId AND (Title = @title)"
        assert "Injected tenant filter: TenantId = @tenantId" in result.warnings

    def test_filter_bound_without_declaration(self):
        """Test that the injected placeholder is bound even if the template does not declare it."""
        template = _template("SELECT Id FROM Documents WHERE Title = @title", SqlTemplateParameter("title"))
        result = SqlGenerator().generate(template, {"title": "x"}, TenantContext("T1"))
        assert result.parameters == {"title": "x", "tenantId": "T1"}

    def test_configured_tenant_column(self):
        """Test a custom tenant column and scoped table list."""
        config = EngineConfig(tenant_column="OrgId", tenant_parameter="orgId", tenant_scoped_tables=["Projects"])
        template = _template("SELECT Id FROM Projects", template_id="projects")
        result = SqlGenerator(config).generate(template, {}, TenantContext("O1"))

        assert result.sql == "SELECT Id FROM Projects WHERE OrgId = @orgId"
        assert result.parameters == {"orgId": "O1"}

    def test_insert_not_rewritten(self):
        """Test that INSERT statements are left to validation."""
        template = _template("INSERT INTO Documents (Title) VALUES (@title)", SqlTemplateParameter("title"))
        result = SqlGenerator().generate(template, {"title": "x"}, TenantContext("T1"))

        assert result.sql == "INSERT INTO Documents (Title) VALUES (@title)"
        assert result.operation_type == SqlOperationType.INSERT


class TestBinding:
    """Test value binding."""

    def setup_method(self):
        """Set up test fixtures."""
        self.template = _template(
            "SELECT Id FROM Invoices WHERE Status = @status AND Total > @minTotal LIMIT @pageSize",
            SqlTemplateParameter("status", allowed_values=("open", "paid")),
            SqlTemplateParameter("minTotal", ParameterType.DECIMAL),
            SqlTemplateParameter("pageSize", ParameterType.INT32, required=False, default_value=25),
            SqlTemplateParameter("note", required=False),
        )
        self.generator = SqlGenerator()
        self.context = TenantContext("T1")

    def test_values_are_coerced(self):
        """Test coercion, defaults and optional parameters."""
        result = self.generator.generate(self.template, {"status": "OPEN", "minTotal": "$1,000"}, self.context)

        assert result.is_successful is True
        assert str(result.parameters["minTotal"]) == "1000"
        assert result.parameters["pageSize"] == 25
        assert result.parameters["note"] is None
        assert result.parameters["status"] == "OPEN"

    def test_missing_parameter(self):
        """Test a missing required value."""
        result = self.generator.generate(self.template, {"status": "open"}, self.context)

        assert result.is_successful is False
        assert result.error_code == ErrorCode.REQUIRED_PARAMETER_MISSING
        assert result.failed_stage == PipelineStage.GENERATING
        assert result.missing_parameters == ["minTotal"]

    def test_type_mismatch(self):
        """Test an unconvertible value."""
        result = self.generator.generate(self.template, {"status": "open", "minTotal": "lots"}, self.context)
        assert result.error_code == ErrorCode.PARAMETER_TYPE_MISMATCH
        assert "minTotal" in result.error_message

    def test_disallowed_value(self):
        """Test a value outside the declared allowed values."""
        result = self.generator.generate(self.template, {"status": "void", "minTotal": 5}, self.context)
        assert result.error_code == ErrorCode.PARAMETER_TYPE_MISMATCH
        assert "allowed values" in result.error_message

    def test_undeclared_parameter_ignored(self):
        """Test that undeclared values are dropped with a warning."""
        result = self.generator.generate(self.template, {"status": "open", "minTotal": 5, "region": "EU"},
                                         self.context)
        assert "region" not in result.parameters
        assert "Ignored undeclared parameter 'region'" in result.warnings

    def test_values_never_spliced(self):
        """Test that a hostile value stays out of the statement text."""
        template = _template("SELECT Id FROM Invoices WHERE Customer = @customer", SqlTemplateParameter("customer"))
        result = self.generator.generate(template, {"customer": "x' OR '1'='1"}, self.context)

        assert result.sql == "SELECT Id FROM Invoices WHERE Customer = @customer"
        assert result.parameters["customer"] == "x' OR '1'='1"

"""
Tests for the Audit Trail.

Tests the audit module including:
- Event models and checksums
- Sink dispatch and failing-sink isolation
- AuditService event builders
"""

import logging
import sys
import pytest
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from tenantsql.audit import (
    AuditEvent,
    AuditEventType,
    AuditService,
    AuditSink,
    AuditStatus,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from tenantsql.engine.errors import ErrorCode
from tenantsql.engine.models import (
    PipelineStage,
    QueryOptimizationResult,
    SqlGenerationResult,
    SqlOperationType,
    SqlTemplate,
    TenantContext,
    ValidationCategory,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)


class FailingSink(AuditSink):
    """Sink that always raises."""

    def write(self, event):
        raise IOError("disk full")


def _template():
    return SqlTemplate(id="orders", name="Orders", sql_template_text="SELECT Id FROM Orders")


class TestAuditEvent:
    """Tests for the AuditEvent model."""

    def test_checksum_is_stable(self):
        """Test that equal events hash equally and changes are detected."""
        event = AuditEvent(event_type=AuditEventType.TEMPLATE_ADDED, template_id="orders")
        copy = event.model_copy()
        tampered = event.model_copy(update={"template_id": "invoices"})

        assert len(event.checksum()) == 64
        assert event.checksum() == copy.checksum()
        assert event.checksum() != tampered.checksum()

    def test_defaults(self):
        """Test default status and timestamp."""
        event = AuditEvent(event_type=AuditEventType.GENERATION_ATTEMPT)
        assert event.status == AuditStatus.SUCCESS
        assert event.timestamp is not None


class TestSinks:
    """Tests for the sink implementations."""

    def test_in_memory_sink(self):
        """Test recording, filtering and clearing."""
        sink = InMemoryAuditSink()
        sink.write(AuditEvent(event_type=AuditEventType.TEMPLATE_ADDED, template_id="a"))
        sink.write(AuditEvent(event_type=AuditEventType.GENERATION_ATTEMPT))
        sink.write(AuditEvent(event_type=AuditEventType.TEMPLATE_ADDED, template_id="b"))

        assert len(sink.events) == 3
        assert len(sink.of_type(AuditEventType.TEMPLATE_ADDED)) == 2
        assert sink.last(AuditEventType.TEMPLATE_ADDED).template_id == "b"
        assert sink.last().template_id == "b"
        assert sink.last(AuditEventType.VALIDATION_ISSUE) is None

        sink.clear()
        assert sink.events == []

    def test_logging_sink_levels(self, caplog):
        """Test that failures log at WARNING and successes at INFO."""
        sink = LoggingAuditSink()
        with caplog.at_level(logging.INFO, logger="tenantsql.audit"):
            sink.write(AuditEvent(event_type=AuditEventType.TEMPLATE_ADDED, template_id="ok"))
            sink.write(AuditEvent(event_type=AuditEventType.GENERATION_COMPLETED, status=AuditStatus.FAILURE))

        levels = [r.levelno for r in caplog.records if r.name == "tenantsql.audit"]
        assert levels == [logging.INFO, logging.WARNING]
        assert '"template_id": "ok"' in caplog.records[0].getMessage()

    def test_failing_sink_is_isolated(self):
        """Test that one failing sink does not stop the others."""
        sink = InMemoryAuditSink()
        service = AuditService([FailingSink(), sink])
        service.log_template_added(_template())
        assert len(sink.events) == 1

    def test_default_sinks(self):
        """Test that None means a logging sink and [] means none."""
        assert isinstance(AuditService().sinks[0], LoggingAuditSink)
        assert AuditService([]).sinks == []


class TestAuditService:
    """Tests for the AuditService event builders."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sink = InMemoryAuditSink()
        self.audit = AuditService([self.sink])
        self.tenant = TenantContext("T1", user_id="u-1", allow_cross_tenant=True)

    def test_generation_attempt(self):
        """Test that the query preview is truncated."""
        self.audit.log_generation_attempt(self.tenant, "query", query="x" * 500)
        event = self.sink.last()

        assert event.tenant_id == "T1"
        assert event.user_id == "u-1"
        assert len(event.details["query_preview"]) == AuditService.MAX_QUERY_PREVIEW
        assert event.details["allow_cross_tenant"] is True

    def test_generation_completed_success(self):
        """Test an executable result."""
        result = SqlGenerationResult(
            is_successful=True,
            sql="SELECT Id FROM Orders WHERE TenantId = @tenantId",
            parameters={"tenantId": "T1", "status": "open"},
            validation_result=ValidationResult(),
            template_id="orders",
            operation_type=SqlOperationType.SELECT,
        )
        self.audit.log_generation_completed(result, self.tenant)
        event = self.sink.last()

        assert event.status == AuditStatus.SUCCESS
        assert event.details["executable"] is True
        assert event.details["parameter_names"] == ["status", "tenantId"]

    def test_generation_completed_failure(self):
        """Test a failed result."""
        result = SqlGenerationResult(
            is_successful=False,
            error_message="Required parameters missing: status",
            error_code=ErrorCode.REQUIRED_PARAMETER_MISSING,
            failed_stage=PipelineStage.GENERATING,
        )
        self.audit.log_generation_completed(result, self.tenant)
        event = self.sink.last()

        assert event.status == AuditStatus.FAILURE
        assert event.stage == "generating"
        assert event.error_code == ErrorCode.REQUIRED_PARAMETER_MISSING.value

    def test_validation_issues(self):
        """Test that only Error and Critical issues are recorded."""
        validation = ValidationResult(issues=[
            ValidationIssue("Security.SqlInjection", ValidationCategory.SECURITY, ValidationSeverity.CRITICAL),
            ValidationIssue("Performance.SelectStar", ValidationCategory.PERFORMANCE, ValidationSeverity.WARNING),
            ValidationIssue("Email.Format", ValidationCategory.BUSINESS, ValidationSeverity.ERROR,
                            parameter_name="email"),
        ])
        self.audit.log_validation_issues(validation, self.tenant, template_id="orders")
        events = self.sink.of_type(AuditEventType.VALIDATION_ISSUE)

        assert [e.details["rule_name"] for e in events] == ["Security.SqlInjection", "Email.Format"]
        assert events[0].status == AuditStatus.FAILURE
        assert events[1].status == AuditStatus.SUCCESS
        assert events[1].details["parameter_name"] == "email"

    def test_optimization_outcome(self):
        """Test optimizer decisions."""
        result = QueryOptimizationResult(is_optimized=True, complexity_score=5.0,
                                         estimated_improvement_percentage=33.3, explanation="Added LIMIT")
        self.audit.log_optimization_outcome(result, template_id="orders")
        event = self.sink.last(AuditEventType.OPTIMIZATION_OUTCOME)

        assert event.details["is_optimized"] is True
        assert event.details["complexity_score"] == 5.0
        assert event.tenant_id is None

    @pytest.mark.parametrize("with_validation,expected", [
        (True, ["Security.SqlInjection"]),
        (False, []),
    ])
    def test_template_rejected(self, with_validation, expected):
        """Test rejection events list the critical rules."""
        validation = ValidationResult(issues=[
            ValidationIssue("Security.SqlInjection", ValidationCategory.SECURITY, ValidationSeverity.CRITICAL),
        ]) if with_validation else None
        self.audit.log_template_rejected(_template(), "unsafe", validation)
        event = self.sink.last()

        assert event.event_type == AuditEventType.TEMPLATE_REJECTED
        assert event.status == AuditStatus.FAILURE
        assert event.details["critical_rules"] == expected

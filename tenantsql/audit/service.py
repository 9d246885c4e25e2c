"""
Audit Service Module
====================

High-level API for recording generation, validation, optimization and
template-store events. Events are fanned out to every configured sink;
a failing sink is logged and skipped so auditing never breaks a request.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from .models import AuditEvent, AuditEventType, AuditStatus
from .sinks import AuditSink, LoggingAuditSink

if TYPE_CHECKING:
    from ..engine.models import (
        QueryOptimizationResult,
        SqlGenerationResult,
        SqlTemplate,
        TenantContext,
        ValidationResult,
    )

logger = logging.getLogger(__name__)


class AuditService:
    """
    Centralized audit dispatcher.

    Usage:
        sink = InMemoryAuditSink()
        audit = AuditService([sink])
        audit.log_template_added(template)
    """

    # Longest query text copied into an event
    MAX_QUERY_PREVIEW = 200

    def __init__(self, sinks: Optional[Iterable[AuditSink]] = None):
        """Initialize the audit service (defaults to a LoggingAuditSink)."""
        self._sinks: List[AuditSink] = list(sinks) if sinks is not None else [LoggingAuditSink()]

    @property
    def sinks(self) -> List[AuditSink]:
        return list(self._sinks)

    def emit(self, event: AuditEvent):
        """Send an event to every sink."""
        for sink in self._sinks:
            try:
                sink.write(event)
            except Exception as e:
                logger.warning(f"Audit sink {type(sink).__name__} failed for {event.event_type.value}: {e}")

    # ==================== GENERATION ====================

    def log_generation_attempt(
        self,
        tenant_context: "TenantContext",
        source: str,
        template_id: Optional[str] = None,
        query: Optional[str] = None,
    ):
        """
        Log the start of a generation request.

        Args:
            tenant_context: Authenticated tenant scope.
            source: 'query' or 'template'.
            template_id: Requested template (template requests).
            query: Natural-language request (query requests).
        """
        details = {"source": source}
        if query:
            details["query_preview"] = query[:self.MAX_QUERY_PREVIEW]
        if tenant_context.allow_cross_tenant:
            details["allow_cross_tenant"] = True
        self.emit(AuditEvent(
            event_type=AuditEventType.GENERATION_ATTEMPT,
            tenant_id=tenant_context.tenant_id,
            user_id=tenant_context.user_id,
            template_id=template_id,
            details=details,
        ))

    def log_generation_completed(self, result: "SqlGenerationResult", tenant_context: "TenantContext"):
        """Log the outcome of a generation request."""
        executable = result.is_executable()
        self.emit(AuditEvent(
            event_type=AuditEventType.GENERATION_COMPLETED,
            tenant_id=tenant_context.tenant_id,
            user_id=tenant_context.user_id,
            template_id=result.template_id,
            status=AuditStatus.SUCCESS if executable else AuditStatus.FAILURE,
            stage=result.failed_stage.value if result.failed_stage else None,
            error_code=result.error_code.value if result.error_code else None,
            error_message=result.error_message,
            duration_ms=result.processing_time_ms,
            details={
                "operation_type": result.operation_type.value,
                "executable": executable,
                "cross_tenant_authorized": result.cross_tenant_authorized,
                "parameter_names": sorted(result.parameters),
            },
        ))

    # ==================== VALIDATION / OPTIMIZATION ====================

    def log_validation_issues(
        self,
        validation: "ValidationResult",
        tenant_context: Optional["TenantContext"] = None,
        template_id: Optional[str] = None,
    ):
        """Log one event per Error or Critical issue."""
        for issue in validation.issues:
            if issue.severity.value not in ("Error", "Critical"):
                continue
            self.emit(AuditEvent(
                event_type=AuditEventType.VALIDATION_ISSUE,
                tenant_id=tenant_context.tenant_id if tenant_context else None,
                user_id=tenant_context.user_id if tenant_context else None,
                template_id=template_id,
                status=AuditStatus.FAILURE if issue.severity.value == "Critical" else AuditStatus.SUCCESS,
                details={
                    "rule_name": issue.rule_name,
                    "category": issue.category.value,
                    "severity": issue.severity.value,
                    "parameter_name": issue.parameter_name or None,
                    "description": issue.description,
                },
            ))

    def log_optimization_outcome(
        self,
        result: "QueryOptimizationResult",
        template_id: Optional[str] = None,
        tenant_context: Optional["TenantContext"] = None,
    ):
        """Log an optimizer decision."""
        self.emit(AuditEvent(
            event_type=AuditEventType.OPTIMIZATION_OUTCOME,
            tenant_id=tenant_context.tenant_id if tenant_context else None,
            template_id=template_id,
            error_code=result.error_code.value if result.error_code else None,
            details={
                "is_optimized": result.is_optimized,
                "complexity_score": result.complexity_score,
                "estimated_improvement_percentage": result.estimated_improvement_percentage,
                "explanation": result.explanation,
            },
        ))

    # ==================== TEMPLATES ====================

    def log_template_added(self, template: "SqlTemplate"):
        self.emit(AuditEvent(
            event_type=AuditEventType.TEMPLATE_ADDED,
            template_id=template.id,
            details={"name": template.name, "version": template.version},
        ))

    def log_template_rejected(self, template: "SqlTemplate", reason: str,
                              validation: Optional["ValidationResult"] = None):
        critical = [i.rule_name for i in validation.critical_issues] if validation else []
        self.emit(AuditEvent(
            event_type=AuditEventType.TEMPLATE_REJECTED,
            template_id=template.id,
            status=AuditStatus.FAILURE,
            error_message=reason,
            details={"name": template.name, "critical_rules": critical},
        ))

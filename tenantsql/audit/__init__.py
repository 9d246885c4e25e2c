"""
TenantSQL Audit Module
======================

Audit trail for SQL generation.

This module provides:
- Pydantic audit event models
- A dispatcher that fans events out to sinks
- Logging and in-memory sinks
"""

from .models import AuditEvent, AuditEventType, AuditStatus
from .service import AuditService
from .sinks import AuditSink, InMemoryAuditSink, LoggingAuditSink

__all__ = [
    # Models
    "AuditEvent",
    "AuditEventType",
    "AuditStatus",
    # Service
    "AuditService",
    # Sinks
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
]

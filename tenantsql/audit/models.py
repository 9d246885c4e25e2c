"""
Audit Models
============

Pydantic models for generation and template audit events.
"""

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of audit events."""
    # Generation
    GENERATION_ATTEMPT = "generation_attempt"
    GENERATION_COMPLETED = "generation_completed"

    # Validation / optimization
    VALIDATION_ISSUE = "validation_issue"
    OPTIMIZATION_OUTCOME = "optimization_outcome"

    # Template store
    TEMPLATE_ADDED = "template_added"
    TEMPLATE_REJECTED = "template_rejected"


class AuditStatus(str, Enum):
    """Status of an audit event."""
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class AuditEvent(BaseModel):
    """Event recorded in the audit trail."""
    timestamp: datetime = Field(default_factory=datetime.now)
    event_type: AuditEventType
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    template_id: Optional[str] = None
    status: AuditStatus = AuditStatus.SUCCESS
    stage: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    duration_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None

    def checksum(self) -> str:
        """SHA-256 over the event fields, for tamper detection downstream."""
        serialized = json.dumps(self.model_dump(mode='json'), sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode('utf-8')).hexdigest()

# TenantSQL - Engine Models
# =========================
"""
Common dataclasses and enums shared by the generation and validation engine.
"""

import re
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .errors import ContractViolationError, ErrorCode


PLACEHOLDER_PATTERN = re.compile(r'(?<![@\w])@([A-Za-z_][A-Za-z0-9_]*)')


class ValidationCategory(str, Enum):
    """Category a validation rule belongs to."""
    SYNTAX = "Syntax"
    SECURITY = "Security"
    PERFORMANCE = "Performance"
    TENANT_ISOLATION = "TenantIsolation"
    BUSINESS = "Business"


class ValidationSeverity(str, Enum):
    """Ordered severity levels. Only CRITICAL blocks execution."""
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"
    CRITICAL = "Critical"

    @property
    def level(self) -> int:
        return _SEVERITY_LEVELS[self.value]

    def __lt__(self, other):
        if not isinstance(other, ValidationSeverity):
            return NotImplemented
        return self.level < other.level

    def __le__(self, other):
        if not isinstance(other, ValidationSeverity):
            return NotImplemented
        return self.level <= other.level

    def __gt__(self, other):
        if not isinstance(other, ValidationSeverity):
            return NotImplemented
        return self.level > other.level

    def __ge__(self, other):
        if not isinstance(other, ValidationSeverity):
            return NotImplemented
        return self.level >= other.level


_SEVERITY_LEVELS = {"Info": 0, "Warning": 1, "Error": 2, "Critical": 3}


class SqlOperationType(str, Enum):
    """Statement kind, determined from the leading keyword."""
    SELECT = "Select"
    INSERT = "Insert"
    UPDATE = "Update"
    DELETE = "Delete"
    UNKNOWN = "Unknown"


class PipelineStage(str, Enum):
    """Stages of a generation request."""
    SELECTING = "selecting"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    VALIDATING = "validating"
    OPTIMIZING = "optimizing"
    COMPLETED = "completed"
    FAILED = "failed"


class ParameterType(str, Enum):
    """Declared type of a template parameter."""
    STRING = "String"
    INT32 = "Int32"
    INT64 = "Int64"
    DECIMAL = "Decimal"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"
    GUID = "Guid"
    TIMESPAN = "TimeSpan"
    IDENTIFIER = "Identifier"

    @classmethod
    def parse(cls, value: Any) -> 'ParameterType':
        """Resolve a type name (case-insensitive, common aliases allowed)."""
        if isinstance(value, ParameterType):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        if key in _TYPE_ALIASES:
            return _TYPE_ALIASES[key]
        raise ValueError(f"Unknown parameter type: {value}")


_TYPE_ALIASES = {
    'str': ParameterType.STRING,
    'text': ParameterType.STRING,
    'int': ParameterType.INT32,
    'integer': ParameterType.INT32,
    'long': ParameterType.INT64,
    'float': ParameterType.DOUBLE,
    'single': ParameterType.DOUBLE,
    'money': ParameterType.DECIMAL,
    'bool': ParameterType.BOOLEAN,
    'date': ParameterType.DATETIME,
    'datetimeoffset': ParameterType.DATETIME,
    'uuid': ParameterType.GUID,
    'duration': ParameterType.TIMESPAN,
}


class CostLevel(str, Enum):
    """Coarse bucket for estimated query cost."""
    VERY_LOW = "VeryLow"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    VERY_HIGH = "VeryHigh"
    EXTREME = "Extreme"


@dataclass(frozen=True)
class SqlTemplateParameter:
    """A declared parameter of a SQL template."""
    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = True
    default_value: Any = None
    allowed_values: Optional[Tuple[Any, ...]] = None
    is_system_parameter: bool = False  # tenant id and other caller-uncontrollable values
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'type', ParameterType.parse(self.type))
        if self.allowed_values is not None:
            object.__setattr__(self, 'allowed_values', tuple(self.allowed_values))


@dataclass(frozen=True)
class SqlTemplate:
    """
    A parameterized SQL skeleton with natural-language intent examples.

    Templates are immutable once published; use with_changes() to derive
    the next version.
    """
    id: str
    name: str
    sql_template_text: str
    parameters: Tuple[SqlTemplateParameter, ...] = ()
    intent_mapping: Tuple[str, ...] = ()
    allow_full_table_scan: bool = False
    version: str = "1.0"
    description: str = ""
    tags: Tuple[str, ...] = ()
    rule_sets: Tuple[str, ...] = ()
    created: datetime = field(default_factory=datetime.now, compare=False)
    last_modified: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'parameters', tuple(self.parameters))
        object.__setattr__(self, 'intent_mapping', tuple(self.intent_mapping))
        object.__setattr__(self, 'tags', tuple(self.tags))
        object.__setattr__(self, 'rule_sets', tuple(self.rule_sets))

    def get_parameter(self, name: str) -> Optional[SqlTemplateParameter]:
        """Find a declared parameter by name (case-insensitive)."""
        lowered = name.lower()
        for param in self.parameters:
            if param.name.lower() == lowered:
                return param
        return None

    @property
    def system_parameters(self) -> List[SqlTemplateParameter]:
        return [p for p in self.parameters if p.is_system_parameter]

    @property
    def placeholder_names(self) -> List[str]:
        """Distinct @name placeholders in order of first appearance."""
        seen = []
        for name in PLACEHOLDER_PATTERN.findall(self.sql_template_text):
            if name.lower() not in [s.lower() for s in seen]:
                seen.append(name)
        return seen

    def with_changes(self, **changes) -> 'SqlTemplate':
        """Return an edited copy with the version bumped."""
        changes.setdefault('version', next_version(self.version))
        changes['last_modified'] = datetime.now()
        return replace(self, **changes)


def next_version(version: str) -> str:
    """Bump the minor part of a 'major.minor' version string."""
    parts = version.split('.')
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return f"{version}.1"
    return f"{major}.{minor + 1}"


@dataclass
class ExtractedParameter:
    """A typed, confidence-scored value extracted for one request."""
    name: str
    value: Any
    type: ParameterType
    confidence: float                               # 0-1
    source_span: Optional[Tuple[int, int]] = None   # character offsets in the query
    source: str = "pattern"                         # explicit, named, pattern, relative_date, synonym, provider, default


@dataclass(frozen=True)
class TenantContext:
    """Authenticated tenant scope supplied by the caller's session."""
    tenant_id: str
    allow_cross_tenant: bool = False
    permissions: FrozenSet[str] = frozenset()
    user_id: Optional[str] = None

    def __post_init__(self):
        if self.tenant_id is None or not str(self.tenant_id).strip():
            raise ContractViolationError("TenantContext requires a tenant_id")
        object.__setattr__(self, 'permissions', frozenset(self.permissions))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class ValidationIssue:
    """A single finding produced by a validation rule."""
    rule_name: str
    category: ValidationCategory
    severity: ValidationSeverity
    description: str = ""
    parameter_name: str = ""           # empty means statement-level
    original_value: Any = None
    recommendation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_name': self.rule_name,
            'category': self.category.value,
            'severity': self.severity.value,
            'description': self.description,
            'parameter_name': self.parameter_name,
            'original_value': None if self.original_value is None else str(self.original_value),
            'recommendation': self.recommendation,
        }


@dataclass
class ValidationResult:
    """Aggregated issues. Valid iff no issue is Critical."""
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_critical_issues()

    def has_critical_issues(self) -> bool:
        return any(i.severity == ValidationSeverity.CRITICAL for i in self.issues)

    @property
    def critical_issues(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.CRITICAL]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    def issues_by_category(self) -> Dict[ValidationCategory, List[ValidationIssue]]:
        grouped: Dict[ValidationCategory, List[ValidationIssue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.category, []).append(issue)
        return grouped

    def has_rule(self, rule_name: str) -> bool:
        return any(i.rule_name == rule_name for i in self.issues)

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        return ValidationResult(issues=list(self.issues) + list(other.issues))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'issues': [i.to_dict() for i in self.issues],
        }


@dataclass
class SanitizationResult:
    """Result of normalizing a natural-language query."""
    is_safe: bool
    sanitized_query: str
    original_query: str
    blocked_reason: Optional[str] = None
    detected_patterns: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TemplateSelectionResult:
    """Result of matching a natural-language query to a template."""
    is_successful: bool
    template: Optional[SqlTemplate] = None
    confidence_score: float = 0.0
    matched_example: Optional[str] = None
    alternatives: List[Tuple[str, float]] = field(default_factory=list)  # (template id, score)
    error_message: Optional[str] = None


@dataclass
class ParameterExtractionResult:
    """Result of extracting parameters for a template."""
    parameters: Dict[str, ExtractedParameter] = field(default_factory=dict)
    missing_parameters: List[str] = field(default_factory=list)
    invalid_parameters: Dict[str, str] = field(default_factory=dict)   # name -> reason
    low_confidence_parameters: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return not self.missing_parameters and self.error_message is None

    @property
    def values(self) -> Dict[str, Any]:
        return {name: p.value for name, p in self.parameters.items()}


@dataclass
class QueryCostEstimate:
    """Heuristic cost estimate for a statement."""
    estimated_rows: int
    estimated_time_ms: float
    cost_level: CostLevel
    join_count: int = 0
    has_filter: bool = False
    has_aggregation: bool = False


@dataclass
class QueryOptimizationResult:
    """Non-binding optimization suggestion for a statement."""
    is_optimized: bool
    original_query: str = ""
    optimized_query: Optional[str] = None
    estimated_improvement_percentage: float = 0.0
    explanation: str = ""
    complexity_score: float = 0.0
    suggestions: List[str] = field(default_factory=list)
    cost_estimate: Optional[QueryCostEstimate] = None
    error_code: Optional[ErrorCode] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_optimized': self.is_optimized,
            'optimized_query': self.optimized_query,
            'estimated_improvement_percentage': self.estimated_improvement_percentage,
            'explanation': self.explanation,
            'complexity_score': self.complexity_score,
            'suggestions': self.suggestions,
            'error_code': self.error_code.value if self.error_code else None,
        }


@dataclass
class SqlGenerationResult:
    """Complete output of a generation request."""
    is_successful: bool
    sql: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    validation_result: Optional[ValidationResult] = None
    error_message: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    failed_stage: Optional[PipelineStage] = None
    template_id: Optional[str] = None
    operation_type: SqlOperationType = SqlOperationType.UNKNOWN
    optimization: Optional[QueryOptimizationResult] = None
    missing_parameters: List[str] = field(default_factory=list)
    low_confidence_parameters: List[str] = field(default_factory=list)
    cross_tenant_authorized: bool = False
    warnings: List[str] = field(default_factory=list)

    # Stage bookkeeping
    pipeline_stages: Dict[str, Any] = field(default_factory=dict)
    processing_time_ms: float = 0.0

    def is_executable(self) -> bool:
        """True only when generation succeeded and validation found nothing Critical."""
        if not self.is_successful or self.validation_result is None:
            return False
        return not self.validation_result.has_critical_issues()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_successful': self.is_successful,
            'sql': self.sql,
            'parameters': {k: str(v) for k, v in self.parameters.items()},
            'validation_result': self.validation_result.to_dict() if self.validation_result else None,
            'error_message': self.error_message,
            'error_code': self.error_code.value if self.error_code else None,
            'failed_stage': self.failed_stage.value if self.failed_stage else None,
            'template_id': self.template_id,
            'operation_type': self.operation_type.value,
            'optimization': self.optimization.to_dict() if self.optimization else None,
            'missing_parameters': self.missing_parameters,
            'low_confidence_parameters': self.low_confidence_parameters,
            'warnings': self.warnings,
            'pipeline_stages': self.pipeline_stages,
            'processing_time_ms': self.processing_time_ms,
        }


@dataclass
class TemplateAddResult:
    """Outcome of adding a template to the store."""
    is_successful: bool
    template: Optional[SqlTemplate] = None
    validation_result: ValidationResult = field(default_factory=ValidationResult)
    error_message: Optional[str] = None


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request switches. Use merged() to apply caller overrides."""
    optimize: bool = True
    validate: bool = True
    selection_threshold: Optional[float] = None
    extra_rule_sets: Tuple[str, ...] = ()

    def merged(self, overrides: Optional[Dict[str, Any]] = None) -> 'GenerationOptions':
        """
        Merge caller overrides into these options by key.

        Args:
            overrides: Mapping of option name to value

        Returns:
            New GenerationOptions

        Raises:
            ValueError: If an override names an unknown option
        """
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown generation options: {', '.join(unknown)}")
        changes = dict(overrides)
        if 'extra_rule_sets' in changes:
            changes['extra_rule_sets'] = tuple(changes['extra_rule_sets'])
        return replace(self, **changes)

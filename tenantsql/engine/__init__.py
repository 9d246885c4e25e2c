# TenantSQL Engine Package
"""
Generation Engine
=================
Template-driven SQL generation and validation for TenantSQL.

Pipeline:
0. Input Normalization - trim and flag the request
1. Template Selection - similarity match against intent examples
2. Parameter Extraction - typed values from text or caller input
3. SQL Generation - parameterized, tenant-scoped statements
4. Validation - rule sets (security, tenant isolation, operation, ...)
5. Optimization - optional rewrite of SELECT statements
"""

# Models
from .models import (
    ValidationCategory,
    ValidationSeverity,
    SqlOperationType,
    PipelineStage,
    ParameterType,
    CostLevel,
    SqlTemplateParameter,
    SqlTemplate,
    ExtractedParameter,
    TenantContext,
    ValidationIssue,
    ValidationResult,
    SanitizationResult,
    TemplateSelectionResult,
    ParameterExtractionResult,
    QueryCostEstimate,
    QueryOptimizationResult,
    SqlGenerationResult,
    TemplateAddResult,
    GenerationOptions,
)

# Errors and configuration
from .errors import (
    ErrorCode,
    SqlEngineError,
    ContractViolationError,
    OperationCancelledError,
    TemplateValidationError,
    ParameterCoercionError,
)
from .config import EngineConfig

# Pipeline Components
from .input_sanitizer import InputSanitizer, SanitizerConfig
from .similarity import (
    BaseSimilarityProvider,
    RapidFuzzSimilarityProvider,
    MockSimilarityProvider,
    create_similarity_provider,
)
from .synonyms import SynonymTable
from .template_store import TemplateStore
from .template_selector import TemplateSelector
from .parameter_extractor import ParameterExtractor
from .sql_generator import SqlGenerator, CrossTenantAuthorizer, deny_cross_tenant
from .tenant_scoping import TenantScoper
from .rules_engine import ValidationRule, FunctionRule, RuleSet, ValidationContext, ValidationRuleEngine
from .rule_catalog import create_rule_engine
from .query_optimizer import QueryOptimizer

# Main Pipeline
from .pipeline import SqlGenerationPipeline, create_pipeline, violation_code

__all__ = [
    # Models
    'ValidationCategory',
    'ValidationSeverity',
    'SqlOperationType',
    'PipelineStage',
    'ParameterType',
    'CostLevel',
    'SqlTemplateParameter',
    'SqlTemplate',
    'ExtractedParameter',
    'TenantContext',
    'ValidationIssue',
    'ValidationResult',
    'SanitizationResult',
    'TemplateSelectionResult',
    'ParameterExtractionResult',
    'QueryCostEstimate',
    'QueryOptimizationResult',
    'SqlGenerationResult',
    'TemplateAddResult',
    'GenerationOptions',

    # Errors / Config
    'ErrorCode',
    'SqlEngineError',
    'ContractViolationError',
    'OperationCancelledError',
    'TemplateValidationError',
    'ParameterCoercionError',
    'EngineConfig',

    # Components
    'InputSanitizer',
    'SanitizerConfig',
    'BaseSimilarityProvider',
    'RapidFuzzSimilarityProvider',
    'MockSimilarityProvider',
    'create_similarity_provider',
    'SynonymTable',
    'TemplateStore',
    'TemplateSelector',
    'ParameterExtractor',
    'SqlGenerator',
    'CrossTenantAuthorizer',
    'deny_cross_tenant',
    'TenantScoper',
    'ValidationRule',
    'FunctionRule',
    'RuleSet',
    'ValidationContext',
    'ValidationRuleEngine',
    'create_rule_engine',
    'QueryOptimizer',

    # Pipeline
    'SqlGenerationPipeline',
    'create_pipeline',
    'violation_code',
]

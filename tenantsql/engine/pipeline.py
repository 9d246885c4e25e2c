# TenantSQL - Generation Pipeline
# ===============================
"""
Generation Pipeline
===================
Main orchestrator for turning a request into a validated, tenant-scoped
statement.

Pipeline Steps:
0. Input Normalization - trim, strip control characters, flag fragments (NL only)
1. Template Selection - similarity match against intent examples (NL only)
2. Parameter Extraction - text extraction (NL) or coercion of caller values
3. SQL Generation - bind values, overwrite system parameters, inject tenant filters
4. Validation - rule sets: default + template + tenant + request
5. Optimization - optional rewrite of valid SELECT statements

Every request returns an SqlGenerationResult. Failures are tagged with the
stage that failed and an ErrorCode; only caller contract violations raise.
"""

import time
import uuid
import logging
import threading
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..audit import AuditService, AuditSink
from .config import EngineConfig
from .errors import ErrorCode, OperationCancelledError, require
from .input_sanitizer import InputSanitizer, SanitizerConfig
from .models import (
    GenerationOptions,
    ParameterType,
    PipelineStage,
    QueryOptimizationResult,
    SqlGenerationResult,
    SqlOperationType,
    SqlTemplate,
    SqlTemplateParameter,
    TemplateAddResult,
    TenantContext,
    ValidationCategory,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)
from .parameter_extractor import ParameterExtractor
from .query_optimizer import QueryOptimizer
from .rule_catalog import create_rule_engine
from .rules_engine import DEFAULT_RULE_SET, ValidationContext, ValidationRuleEngine
from .similarity import BaseSimilarityProvider, create_similarity_provider
from .sql_analysis import detect_operation_type, extract_tables, has_where, placeholders
from .sql_generator import CrossTenantAuthorizer, SqlGenerator, is_tenant_parameter
from .synonyms import SynonymTable
from .template_selector import TemplateSelector
from .template_store import TemplateStore
from .tenant_scoping import TenantScoper

logger = logging.getLogger(__name__)


# Rule sets run against a template rendered with representative values
TEMPLATE_CHECK_RULE_SETS = ('security', 'tenant_isolation', 'operation', 'syntax')

# Tenant used when rendering a template for acceptance checks
TEMPLATE_CHECK_TENANT = "template-check"

VIOLATION_CODES = {
    ValidationCategory.SECURITY: ErrorCode.SECURITY_VIOLATION,
    ValidationCategory.TENANT_ISOLATION: ErrorCode.TENANT_ISOLATION_VIOLATION,
}

OptionsArg = Optional[Union[GenerationOptions, Dict[str, Any]]]


def violation_code(validation: ValidationResult) -> Optional[ErrorCode]:
    """Error code for a failed validation, from its first Critical issue."""
    critical = validation.critical_issues
    if not critical:
        return None
    return VIOLATION_CODES.get(critical[0].category, ErrorCode.OPERATION_POLICY_VIOLATION)


class SqlGenerationPipeline:
    """
    Tenant-aware SQL generation pipeline.

    Orchestrates normalization, selection, extraction, generation,
    validation and optimization. Stateless per request: concurrent calls
    share only the copy-on-write template store and rule registry.

    Example:
        pipeline = create_pipeline(templates=[orders_by_status])
        result = pipeline.generate_from_query("show completed orders", TenantContext("T1"))
        if result.is_executable():
            cursor.execute(result.sql, result.parameters)
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 store: Optional[TemplateStore] = None,
                 provider: Optional[BaseSimilarityProvider] = None,
                 rule_engine: Optional[ValidationRuleEngine] = None,
                 authorizer: Optional[CrossTenantAuthorizer] = None,
                 audit: Optional[AuditService] = None,
                 synonyms: Optional[SynonymTable] = None,
                 clock: Optional[Callable[[], date]] = None):
        """
        Initialize pipeline.

        Args:
            config: Engine configuration
            store: Template registry (a new empty store by default)
            provider: Similarity collaborator for selection and extraction fallback
            rule_engine: Validation rule registry (built-in rules by default)
            authorizer: Approves cross-tenant requests (defaults to deny)
            audit: Audit dispatcher (logs through 'tenantsql.audit' by default)
            synonyms: Status synonym table
            clock: Returns 'today' for relative dates and date range checks
        """
        self.config = config or EngineConfig()
        self.store = store if store is not None else TemplateStore()
        self.provider = provider or create_similarity_provider("rapidfuzz")
        self.clock = clock or date.today
        self.audit = audit or AuditService()

        self._init_components(rule_engine, authorizer, synonyms)

    def _init_components(self, rule_engine, authorizer, synonyms):
        """Initialize all pipeline components."""
        # Step 0: Input Normalization
        self.sanitizer = InputSanitizer(SanitizerConfig(max_query_length=self.config.max_query_length))

        # Step 1: Template Selector
        self.selector = TemplateSelector(self.store, self.provider, self.config.selection_threshold)

        # Step 2: Parameter Extractor
        self.extractor = ParameterExtractor(
            provider=self.provider,
            synonyms=synonyms,
            confidence_threshold=self.config.confidence_threshold,
            clock=self.clock,
        )

        # Step 3: SQL Generator
        self.generator = SqlGenerator(self.config, authorizer, self.clock)

        # Step 4: Validation Rule Engine
        self.rule_engine = rule_engine or create_rule_engine(self.config, self.clock)

        # Step 5: Optimizer (revalidates rewrites with the same engine)
        self.optimizer = QueryOptimizer(self.config, self.rule_engine)

        self.scoper = TenantScoper(self.config)

    # ==================== GENERATION ====================

    def generate_from_query(self,
                            text: str,
                            tenant_context: TenantContext,
                            cancel_event: Optional[threading.Event] = None,
                            options: OptionsArg = None) -> SqlGenerationResult:
        """
        Generate a statement from a natural-language request.

        Args:
            text: User's question
            tenant_context: Authenticated tenant scope
            cancel_event: Set to abandon the request between stages
            options: GenerationOptions or a dict of overrides

        Returns:
            SqlGenerationResult

        Raises:
            ContractViolationError: If tenant_context is None
        """
        require(tenant_context, "tenant_context")
        options = self._resolve_options(options)
        start_time = time.time()
        pipeline_stages: Dict[str, Any] = {}
        stage = PipelineStage.SELECTING

        logger.info(f"Processing query for tenant {tenant_context.tenant_id}")
        self.audit.log_generation_attempt(tenant_context, "query", query=text)

        try:
            # STEP 0: Input Normalization
            logger.info("Step 0: Normalizing input")
            _check_cancelled(cancel_event, stage)
            step_start = time.time()
            sanitization = self.sanitizer.sanitize(text)
            pipeline_stages['normalization'] = {
                'success': sanitization.is_safe,
                'time_ms': (time.time() - step_start) * 1000,
                'detected_patterns': sanitization.detected_patterns,
            }
            if not sanitization.is_safe:
                return self._finish(self._build_error_result(
                    error=f"Cannot generate SQL: {sanitization.blocked_reason}",
                    code=ErrorCode.TEMPLATE_NOT_FOUND,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                ), tenant_context)
            clean_query = sanitization.sanitized_query
            warnings = list(sanitization.warnings)

            # STEP 1: Template Selection
            logger.info("Step 1: Selecting template")
            _check_cancelled(cancel_event, stage)
            step_start = time.time()
            selection = self.selector.select(clean_query, options.selection_threshold)
            pipeline_stages['selection'] = {
                'success': selection.is_successful,
                'time_ms': (time.time() - step_start) * 1000,
                'template_id': selection.template.id if selection.template else None,
                'confidence': selection.confidence_score,
                'matched_example': selection.matched_example,
                'alternatives': selection.alternatives,
            }
            if not selection.is_successful:
                return self._finish(self._build_error_result(
                    error=selection.error_message or "No matching template",
                    code=ErrorCode.TEMPLATE_NOT_FOUND,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                    warnings=warnings,
                ), tenant_context)
            template = selection.template

            # STEP 2: Parameter Extraction
            stage = PipelineStage.EXTRACTING
            logger.info(f"Step 2: Extracting parameters for '{template.id}'")
            _check_cancelled(cancel_event, stage)
            step_start = time.time()
            extraction = self.extractor.extract(clean_query, template)
            pipeline_stages['extraction'] = {
                'success': extraction.is_complete and not extraction.error_message,
                'time_ms': (time.time() - step_start) * 1000,
                'extracted': sorted(extraction.parameters),
                'missing': extraction.missing_parameters,
                'low_confidence': extraction.low_confidence_parameters,
            }
            warnings.extend(f"Discarded value for '{k}': {v}" for k, v in extraction.invalid_parameters.items())

            if extraction.error_message:
                return self._finish(self._build_error_result(
                    error=extraction.error_message,
                    code=ErrorCode.PARAMETER_EXTRACTION_FAILED,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                    template_id=template.id,
                    warnings=warnings,
                ), tenant_context)
            if extraction.missing_parameters:
                return self._finish(self._build_error_result(
                    error=f"Required parameters missing: {', '.join(extraction.missing_parameters)}",
                    code=ErrorCode.REQUIRED_PARAMETER_MISSING,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                    template_id=template.id,
                    missing_parameters=extraction.missing_parameters,
                    low_confidence_parameters=extraction.low_confidence_parameters,
                    warnings=warnings,
                ), tenant_context)

            result = self._complete(
                template, extraction.values, tenant_context, options,
                cancel_event, pipeline_stages, start_time, warnings,
            )
            result.low_confidence_parameters = list(extraction.low_confidence_parameters)
            return self._finish(result, tenant_context)

        except OperationCancelledError as e:
            return self._finish(self._cancelled_result(e, start_time, pipeline_stages), tenant_context)

    def generate_from_template(self,
                               template_id: str,
                               parameters: Optional[Dict[str, Any]],
                               tenant_context: TenantContext,
                               cancel_event: Optional[threading.Event] = None,
                               options: OptionsArg = None) -> SqlGenerationResult:
        """
        Generate a statement from a template id and caller-supplied values.

        Extraction is bypassed: values are coerced to their declared types.
        System parameters are always taken from the tenant context.

        Args:
            template_id: Registered template id
            parameters: Parameter name -> value
            tenant_context: Authenticated tenant scope
            cancel_event: Set to abandon the request between stages
            options: GenerationOptions or a dict of overrides

        Returns:
            SqlGenerationResult

        Raises:
            ContractViolationError: If template_id is empty or tenant_context is None
        """
        require(template_id, "template_id")
        require(tenant_context, "tenant_context")
        options = self._resolve_options(options)
        parameters = dict(parameters or {})
        start_time = time.time()
        pipeline_stages: Dict[str, Any] = {}
        stage = PipelineStage.SELECTING

        logger.info(f"Processing template '{template_id}' for tenant {tenant_context.tenant_id}")
        self.audit.log_generation_attempt(tenant_context, "template", template_id=template_id)

        try:
            # STEP 1: Direct lookup
            logger.info(f"Step 1: Looking up template '{template_id}'")
            _check_cancelled(cancel_event, stage)
            template = self.store.get(template_id)
            pipeline_stages['selection'] = {'success': template is not None, 'template_id': template_id}
            if template is None:
                return self._finish(self._build_error_result(
                    error=f"Template '{template_id}' not found",
                    code=ErrorCode.TEMPLATE_NOT_FOUND,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                ), tenant_context)

            # STEP 2: Coerce caller values
            stage = PipelineStage.EXTRACTING
            logger.info("Step 2: Coercing supplied parameters")
            _check_cancelled(cancel_event, stage)
            extraction = self.extractor.extract('', template, explicit=parameters)
            pipeline_stages['extraction'] = {
                'success': extraction.is_complete and not extraction.invalid_parameters,
                'supplied': sorted(parameters),
                'missing': extraction.missing_parameters,
                'invalid': extraction.invalid_parameters,
            }
            if extraction.invalid_parameters:
                details = '; '.join(f"{k}: {v}" for k, v in extraction.invalid_parameters.items())
                return self._finish(self._build_error_result(
                    error=f"Parameter type mismatch: {details}",
                    code=ErrorCode.PARAMETER_TYPE_MISMATCH,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                    template_id=template.id,
                ), tenant_context)
            if extraction.missing_parameters:
                return self._finish(self._build_error_result(
                    error=f"Required parameters missing: {', '.join(extraction.missing_parameters)}",
                    code=ErrorCode.REQUIRED_PARAMETER_MISSING,
                    stage=stage,
                    start_time=start_time,
                    pipeline_stages=pipeline_stages,
                    template_id=template.id,
                    missing_parameters=extraction.missing_parameters,
                ), tenant_context)

            # System and undeclared keys pass through so the generator can
            # overwrite, authorize or report them
            merged = dict(parameters)
            for name, value in extraction.values.items():
                for key in [k for k in merged if k.lower() == name.lower()]:
                    del merged[key]
                merged[name] = value

            result = self._complete(
                template, merged, tenant_context, options,
                cancel_event, pipeline_stages, start_time, [],
            )
            return self._finish(result, tenant_context)

        except OperationCancelledError as e:
            return self._finish(self._cancelled_result(e, start_time, pipeline_stages), tenant_context)

    def _complete(self,
                  template: SqlTemplate,
                  values: Dict[str, Any],
                  tenant_context: TenantContext,
                  options: GenerationOptions,
                  cancel_event: Optional[threading.Event],
                  pipeline_stages: Dict[str, Any],
                  start_time: float,
                  warnings: List[str]) -> SqlGenerationResult:
        """Generation, validation and optimization shared by both entry points."""
        # STEP 3: SQL Generation
        logger.info(f"Step 3: Generating SQL from '{template.id}'")
        _check_cancelled(cancel_event, PipelineStage.GENERATING)
        step_start = time.time()
        result = self.generator.generate(template, values, tenant_context)
        pipeline_stages['generation'] = {
            'success': result.is_successful,
            'time_ms': (time.time() - step_start) * 1000,
            'operation_type': result.operation_type.value,
        }
        result.warnings = warnings + result.warnings
        if not result.is_successful:
            result.pipeline_stages = pipeline_stages
            result.processing_time_ms = (time.time() - start_time) * 1000
            return result

        # STEP 4: Validation
        if options.validate:
            logger.info("Step 4: Validating SQL")
            _check_cancelled(cancel_event, PipelineStage.VALIDATING)
            step_start = time.time()
            rule_sets = self._rule_sets_for(template, tenant_context, options)
            context = ValidationContext(
                template=template,
                tenant_context=tenant_context,
                operation_type=result.operation_type,
                cross_tenant_authorized=result.cross_tenant_authorized,
            )
            validation = self.rule_engine.validate(
                result.sql, result.parameters, context,
                rule_sets=rule_sets, cancel_event=cancel_event,
            )
            result.validation_result = validation
            pipeline_stages['validation'] = {
                'success': validation.is_valid,
                'time_ms': (time.time() - step_start) * 1000,
                'rule_sets': rule_sets,
                'issue_count': len(validation.issues),
                'critical': [i.rule_name for i in validation.critical_issues],
            }
            self.audit.log_validation_issues(validation, tenant_context, template.id)

            if not validation.is_valid:
                result.error_code = violation_code(validation)
                first = validation.critical_issues[0]
                result.error_message = f"Validation failed: {first.rule_name}: {first.description}"
                logger.warning(f"Statement from '{template.id}' is not executable: {result.error_message}")
        else:
            logger.info("Step 4: Validation skipped by request")
            pipeline_stages['validation'] = {'skipped': True}

        # STEP 5: Optimization
        if self._should_optimize(result, options):
            logger.info("Step 5: Optimizing SQL")
            _check_cancelled(cancel_event, PipelineStage.OPTIMIZING)
            step_start = time.time()
            optimization = self.optimizer.optimize(result.sql)
            result.optimization = optimization
            pipeline_stages['optimization'] = {
                'success': optimization.is_optimized,
                'time_ms': (time.time() - step_start) * 1000,
                'complexity_score': optimization.complexity_score,
            }
            self.audit.log_optimization_outcome(optimization, template.id, tenant_context)
        else:
            pipeline_stages['optimization'] = {'skipped': True}

        pipeline_stages['completed'] = {'success': True}
        result.pipeline_stages = pipeline_stages
        result.processing_time_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Generated {result.operation_type.value} from '{template.id}' "
            f"in {result.processing_time_ms:.0f}ms (executable={result.is_executable()})"
        )
        return result

    def _should_optimize(self, result: SqlGenerationResult, options: GenerationOptions) -> bool:
        if not (options.optimize and self.config.enable_optimization):
            return False
        if result.operation_type != SqlOperationType.SELECT:
            return False
        return result.validation_result is not None and result.validation_result.is_valid

    def _rule_sets_for(self, template: Optional[SqlTemplate],
                       tenant_context: Optional[TenantContext],
                       options: Optional[GenerationOptions] = None) -> List[str]:
        """default + template sets + tenant sets + request sets, without duplicates."""
        names = [DEFAULT_RULE_SET]
        if template is not None:
            names.extend(template.rule_sets)
        if tenant_context is not None:
            names.extend(self.config.tenant_rule_sets.get(tenant_context.tenant_id, []))
        if options is not None:
            names.extend(options.extra_rule_sets)
        ordered: List[str] = []
        for name in names:
            if name not in ordered:
                ordered.append(name)
        return ordered

    # ==================== VALIDATION / OPTIMIZATION ====================

    def validate(self,
                 sql: str,
                 parameters: Optional[Dict[str, Any]] = None,
                 template: Optional[SqlTemplate] = None,
                 tenant_context: Optional[TenantContext] = None,
                 cancel_event: Optional[threading.Event] = None) -> ValidationResult:
        """
        Validate a statement outside of generation.

        Args:
            sql: Statement text
            parameters: Bound parameter values
            template: Template the statement came from (enables template-aware rules)
            tenant_context: Tenant scope (enables tenant mismatch and tenant rule sets)
            cancel_event: Checked between rules

        Returns:
            ValidationResult

        Raises:
            OperationCancelledError: If cancel_event is set
        """
        context = ValidationContext(
            template=template,
            tenant_context=tenant_context,
            operation_type=detect_operation_type(sql or ''),
        )
        return self.rule_engine.validate(
            sql, parameters, context,
            rule_sets=self._rule_sets_for(template, tenant_context),
            cancel_event=cancel_event,
        )

    def optimize(self, sql: str) -> QueryOptimizationResult:
        """Optimize a SELECT statement (see QueryOptimizer.optimize)."""
        result = self.optimizer.optimize(sql)
        self.audit.log_optimization_outcome(result)
        return result

    # ==================== TEMPLATES ====================

    def add_template(self, template: SqlTemplate) -> TemplateAddResult:
        """
        Validate and publish a template.

        Args:
            template: Template to add

        Returns:
            TemplateAddResult; rejected templates carry the validation issues

        Raises:
            ContractViolationError: If template or its id is empty
        """
        require(template, "template")
        require(template.id, "template.id")

        if template.id in self.store:
            reason = f"Template '{template.id}' already exists"
            logger.warning(reason)
            self.audit.log_template_rejected(template, reason)
            return TemplateAddResult(is_successful=False, template=template, error_message=reason)

        validation = self.validate_template(template)
        if not validation.is_valid:
            first = validation.critical_issues[0]
            reason = f"Template '{template.id}' rejected: {first.rule_name}: {first.description}"
            logger.warning(reason)
            self.audit.log_template_rejected(template, reason, validation)
            return TemplateAddResult(
                is_successful=False,
                template=template,
                validation_result=validation,
                error_message=reason,
            )

        if not self.store.add(template):
            reason = f"Template '{template.id}' already exists"
            self.audit.log_template_rejected(template, reason)
            return TemplateAddResult(is_successful=False, template=template,
                                     validation_result=validation, error_message=reason)

        self.audit.log_template_added(template)
        return TemplateAddResult(is_successful=True, template=template, validation_result=validation)

    def load_templates(self, path: Union[str, Path]) -> List[TemplateAddResult]:
        """
        Read a JSON template file and add each template.

        Raises:
            TemplateValidationError: If the file or a record is malformed
        """
        results = [self.add_template(t) for t in TemplateStore.read_json(path)]
        accepted = sum(1 for r in results if r.is_successful)
        logger.info(f"Loaded {accepted}/{len(results)} templates from {path}")
        return results

    def validate_template(self, template: SqlTemplate) -> ValidationResult:
        """
        Check a template before it is published.

        Structural checks run first. A template that passes them is then
        rendered with representative values and validated like a generated
        statement.
        """
        issues = self._structural_issues(template)
        if any(i.severity == ValidationSeverity.CRITICAL for i in issues):
            return ValidationResult(issues=issues)

        check_context = TenantContext(TEMPLATE_CHECK_TENANT)
        values = {
            p.name: self._representative_value(p)
            for p in template.parameters if not p.is_system_parameter
        }
        rendered = self.generator.generate(template, values, check_context)
        if not rendered.is_successful:
            issues.append(_template_issue(
                "Template.RenderFailed", ValidationCategory.SYNTAX, ValidationSeverity.CRITICAL,
                f"Template cannot be rendered: {rendered.error_message}",
            ))
            return ValidationResult(issues=issues)

        context = ValidationContext(
            template=template,
            tenant_context=check_context,
            operation_type=rendered.operation_type,
        )
        checked = self.rule_engine.validate(
            rendered.sql, rendered.parameters, context,
            rule_sets=list(TEMPLATE_CHECK_RULE_SETS),
        )
        return ValidationResult(issues=issues + checked.issues)

    def _structural_issues(self, template: SqlTemplate) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        text = template.sql_template_text or ''

        if not text.strip():
            issues.append(_template_issue(
                "Template.EmptyText", ValidationCategory.SYNTAX, ValidationSeverity.CRITICAL,
                "Template has no SQL text",
            ))
            return issues

        seen = set()
        for param in template.parameters:
            key = param.name.lower()
            if key in seen:
                issues.append(_template_issue(
                    "Template.DuplicateParameter", ValidationCategory.SYNTAX, ValidationSeverity.CRITICAL,
                    f"Parameter '{param.name}' is declared more than once", param.name,
                ))
            seen.add(key)
            if param.required and param.default_value is not None:
                issues.append(_template_issue(
                    "Template.RequiredWithDefault", ValidationCategory.BUSINESS, ValidationSeverity.INFO,
                    f"Required parameter '{param.name}' also declares a default value", param.name,
                ))

        used = {name.lower() for name in placeholders(text)}
        for name in placeholders(text):
            if name.lower() not in seen:
                issues.append(_template_issue(
                    "Template.UndeclaredParameter", ValidationCategory.SYNTAX, ValidationSeverity.WARNING,
                    f"Placeholder @{name} is not declared", name,
                ))
        for param in template.parameters:
            if param.name.lower() not in used:
                issues.append(_template_issue(
                    "Template.UnusedParameter", ValidationCategory.SYNTAX, ValidationSeverity.WARNING,
                    f"Declared parameter '{param.name}' does not appear in the SQL", param.name,
                ))

        operation = detect_operation_type(text)
        if operation == SqlOperationType.SELECT and not has_where(text) and not template.allow_full_table_scan:
            issues.append(_template_issue(
                "Template.FullTableScan", ValidationCategory.PERFORMANCE, ValidationSeverity.CRITICAL,
                "SELECT template has no WHERE clause and does not allow full table scans",
            ))

        has_tenant_param = any(
            p.is_system_parameter and is_tenant_parameter(p.name) for p in template.parameters
        )
        if not has_tenant_param and self._touches_scoped_table(text, operation):
            issues.append(_template_issue(
                "Template.MissingTenantParameter", ValidationCategory.TENANT_ISOLATION,
                ValidationSeverity.CRITICAL,
                "Template reads or writes tenant-scoped tables but declares no system tenant parameter",
            ))
        return issues

    def _touches_scoped_table(self, text: str, operation: SqlOperationType) -> bool:
        if self.scoper.scoped_references(text):
            return True
        if operation == SqlOperationType.INSERT:
            return any(self.config.is_tenant_scoped(t) for t in extract_tables(text))
        return False

    def _representative_value(self, param: SqlTemplateParameter) -> Any:
        """A value of the declared type used to render a template for checks."""
        if param.allowed_values:
            return param.allowed_values[0]
        if param.default_value is not None:
            return param.default_value
        samples = {
            ParameterType.STRING: "sample",
            ParameterType.IDENTIFIER: self._representative_identifier(param.name),
            ParameterType.INT32: 1,
            ParameterType.INT64: 1,
            ParameterType.DECIMAL: Decimal("1.00"),
            ParameterType.DOUBLE: 1.0,
            ParameterType.BOOLEAN: True,
            ParameterType.DATETIME: datetime.combine(self.clock(), datetime.min.time()),
            ParameterType.GUID: uuid.UUID(int=1),
            ParameterType.TIMESPAN: timedelta(hours=1),
        }
        return samples[param.type]

    def _representative_identifier(self, name: str) -> str:
        if 'schema' in name.lower() and self.config.allowed_schemas:
            return self.config.allowed_schemas[0]
        return "SampleName"

    # ==================== HELPERS ====================

    @staticmethod
    def _resolve_options(options: OptionsArg) -> GenerationOptions:
        if isinstance(options, GenerationOptions):
            return options
        return GenerationOptions().merged(options)

    def _finish(self, result: SqlGenerationResult, tenant_context: TenantContext) -> SqlGenerationResult:
        self.audit.log_generation_completed(result, tenant_context)
        return result

    def _cancelled_result(self, error: OperationCancelledError, start_time: float,
                          pipeline_stages: Dict[str, Any]) -> SqlGenerationResult:
        stage = error.stage or PipelineStage.VALIDATING
        logger.warning(f"Request cancelled during {stage.value}")
        return self._build_error_result(
            error=f"Request cancelled during {stage.value}",
            code=ErrorCode.CANCELLED,
            stage=stage,
            start_time=start_time,
            pipeline_stages=pipeline_stages,
        )

    @staticmethod
    def _build_error_result(error: str,
                            code: ErrorCode,
                            stage: PipelineStage,
                            start_time: float,
                            pipeline_stages: Dict[str, Any],
                            template_id: Optional[str] = None,
                            missing_parameters: Optional[List[str]] = None,
                            low_confidence_parameters: Optional[List[str]] = None,
                            warnings: Optional[List[str]] = None) -> SqlGenerationResult:
        """
        Build a failed result tagged with the stage that failed.

        Args:
            error: Descriptive message for the caller
            code: Error code
            stage: Pipeline stage where the error occurred
            start_time: When processing started
            pipeline_stages: Stage bookkeeping collected so far
        """
        logger.warning(f"Generation failed at {stage.value}: {error}")
        pipeline_stages[stage.value] = {'success': False, 'error': error}
        return SqlGenerationResult(
            is_successful=False,
            error_message=error,
            error_code=code,
            failed_stage=stage,
            template_id=template_id,
            missing_parameters=list(missing_parameters or []),
            low_confidence_parameters=list(low_confidence_parameters or []),
            warnings=list(warnings or []),
            pipeline_stages=pipeline_stages,
            processing_time_ms=(time.time() - start_time) * 1000,
        )


def _check_cancelled(cancel_event: Optional[threading.Event], stage: PipelineStage):
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"Cancelled before {stage.value}", stage=stage)


def _template_issue(rule_name: str, category: ValidationCategory, severity: ValidationSeverity,
                    description: str, parameter_name: str = "") -> ValidationIssue:
    return ValidationIssue(
        rule_name=rule_name,
        category=category,
        severity=severity,
        description=description,
        parameter_name=parameter_name,
    )


# =============================================================================
# FACTORY FUNCTION
# =============================================================================

def create_pipeline(templates: Optional[List[SqlTemplate]] = None,
                    config: Optional[EngineConfig] = None,
                    use_mock: bool = False,
                    provider: Optional[BaseSimilarityProvider] = None,
                    authorizer: Optional[CrossTenantAuthorizer] = None,
                    audit_sinks: Optional[List[AuditSink]] = None,
                    template_file: Optional[Union[str, Path]] = None,
                    env_file: Optional[str] = None,
                    clock: Optional[Callable[[], date]] = None) -> SqlGenerationPipeline:
    """
    Factory function to create a configured pipeline.

    Args:
        templates: Templates to validate and add
        config: Engine configuration (read from TENANTSQL_* variables if omitted)
        use_mock: Use the mock similarity provider (tests)
        provider: Explicit similarity provider (overrides use_mock)
        authorizer: Cross-tenant authorizer (defaults to deny)
        audit_sinks: Audit sinks (defaults to the logging sink)
        template_file: JSON template file to load
        env_file: .env file for configuration
        clock: Returns 'today' for relative dates

    Returns:
        Configured SqlGenerationPipeline
    """
    config = config or EngineConfig.from_env(env_file)
    if provider is None:
        provider = create_similarity_provider("mock" if use_mock else "rapidfuzz")

    pipeline = SqlGenerationPipeline(
        config=config,
        provider=provider,
        authorizer=authorizer,
        audit=AuditService(audit_sinks) if audit_sinks is not None else None,
        clock=clock,
    )

    if template_file:
        pipeline.load_templates(template_file)
    for template in templates or []:
        result = pipeline.add_template(template)
        if not result.is_successful:
            logger.warning(result.error_message)

    logger.info(f"Pipeline ready with {len(pipeline.store)} templates")
    return pipeline

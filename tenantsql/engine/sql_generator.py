# TenantSQL - SQL Generator
# =========================
"""
SQL Generator
=============
Binds a template and parameter values into a parameterized statement.

Rules:
1. Values are never spliced into the SQL text; the text keeps its @name
   tokens and values travel in the parameter map
2. System parameters (tenant id, user id) are ALWAYS taken from the
   TenantContext, whatever the caller or the extractor supplied
3. Tenant-scoped tables without a tenant filter get one injected
4. The operation type comes from the leading keyword

The generator does not decide pass/fail for policy; that is left to the
validation stage. It fails only when it cannot bind (missing or
mistyped parameters).

This is the 'generating' stage of the pipeline.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from .config import EngineConfig
from .errors import ErrorCode, ParameterCoercionError, require
from .models import (
    PipelineStage,
    SqlGenerationResult,
    SqlOperationType,
    SqlTemplate,
    SqlTemplateParameter,
    TenantContext,
)
from .sql_analysis import detect_operation_type
from .tenant_scoping import TenantScoper
from .type_coercion import coerce_value, is_type_compatible

logger = logging.getLogger(__name__)


# (tenant_context, requested_tenant_id) -> approved
CrossTenantAuthorizer = Callable[[TenantContext, str], bool]


def deny_cross_tenant(tenant_context: TenantContext, requested_tenant_id: str) -> bool:
    """Default authorizer: cross-tenant access is never approved."""
    return False


def is_tenant_parameter(name: str) -> bool:
    return 'tenant' in name.lower()


def is_user_parameter(name: str) -> bool:
    return 'user' in name.lower()


class SqlGenerator:
    """
    Produces parameterized, tenant-scoped statements from templates.

    Example:
        generator = SqlGenerator(EngineConfig())
        result = generator.generate(template, {"status": "open"}, TenantContext("T1"))
        result.sql          # "SELECT ... WHERE TenantId = @tenantId AND Status = @status"
        result.parameters   # {"tenantId": "T1", "status": "open"}
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 authorizer: Optional[CrossTenantAuthorizer] = None,
                 clock: Optional[Callable[[], date]] = None):
        """
        Initialize generator.

        Args:
            config: Engine configuration
            authorizer: Approves cross-tenant requests (defaults to deny)
            clock: Returns 'today' for relative date values
        """
        self.config = config or EngineConfig()
        self.authorizer = authorizer or deny_cross_tenant
        self.clock = clock or date.today
        self.scoper = TenantScoper(self.config)

    def generate(self,
                 template: SqlTemplate,
                 parameters: Optional[Dict[str, Any]],
                 tenant_context: TenantContext) -> SqlGenerationResult:
        """
        Bind a template to parameter values.

        Args:
            template: Template to render
            parameters: Caller or extractor values (system values are ignored)
            tenant_context: Authenticated tenant scope

        Returns:
            SqlGenerationResult (failed only for binding problems)
        """
        require(template, "template")
        require(tenant_context, "tenant_context")
        supplied = {k.lower(): (k, v) for k, v in (parameters or {}).items()}
        warnings: List[str] = []

        declared = {p.name.lower() for p in template.parameters}
        for key, (original, _) in supplied.items():
            if key not in declared:
                logger.warning(f"Dropping undeclared parameter '{original}' for template '{template.id}'")
                warnings.append(f"Ignored undeclared parameter '{original}'")

        bound: Dict[str, Any] = {}
        missing: List[str] = []
        mismatched: List[str] = []
        cross_tenant_authorized = False
        today = self.clock()

        for param in template.parameters:
            entry = supplied.get(param.name.lower())
            value = entry[1] if entry else None

            if param.is_system_parameter:
                value, authorized = self._system_value(param, value, tenant_context)
                cross_tenant_authorized = cross_tenant_authorized or authorized
                if value is None:
                    if param.required:
                        missing.append(param.name)
                    continue
                bound[param.name] = value
                continue

            if value is None:
                value = param.default_value
            if value is None:
                if param.required:
                    missing.append(param.name)
                else:
                    bound[param.name] = None
                continue

            try:
                if not is_type_compatible(value, param.type):
                    value = coerce_value(param.name, value, param.type, today)
            except ParameterCoercionError as e:
                logger.warning(str(e))
                mismatched.append(f"{param.name}: {e}")
                continue

            if param.allowed_values is not None and not _is_allowed(value, param.allowed_values):
                mismatched.append(f"{param.name}: value not in allowed values {list(param.allowed_values)}")
                continue

            bound[param.name] = value

        if missing:
            return self._failure(
                template, ErrorCode.REQUIRED_PARAMETER_MISSING,
                f"Required parameters missing: {', '.join(missing)}",
                missing_parameters=missing,
            )
        if mismatched:
            return self._failure(
                template, ErrorCode.PARAMETER_TYPE_MISMATCH,
                f"Parameter type mismatch: {'; '.join(mismatched)}",
            )

        sql = template.sql_template_text.strip()
        operation_type = detect_operation_type(sql)

        if operation_type != SqlOperationType.INSERT:
            tenant_param = self._tenant_parameter_name(template)
            sql, injected = self.scoper.apply(sql, tenant_param)
            if injected:
                warnings.append(f"Injected tenant filter: {' AND '.join(injected)}")
                if tenant_param not in bound:
                    bound[tenant_param] = tenant_context.tenant_id

        logger.info(f"Generated {operation_type.value} statement from template '{template.id}'")
        return SqlGenerationResult(
            is_successful=True,
            sql=sql,
            parameters=bound,
            template_id=template.id,
            operation_type=operation_type,
            cross_tenant_authorized=cross_tenant_authorized,
            warnings=warnings,
        )

    def _system_value(self, param: SqlTemplateParameter, supplied: Any,
                      tenant_context: TenantContext):
        """
        Resolve a system parameter from the tenant context.

        Returns:
            Tuple of (value, cross_tenant_authorized)
        """
        if is_tenant_parameter(param.name):
            authenticated = tenant_context.tenant_id
            if supplied is not None and str(supplied) != authenticated:
                if tenant_context.allow_cross_tenant and self._authorize(tenant_context, str(supplied)):
                    logger.warning(
                        f"Cross-tenant access approved: {authenticated} -> {supplied} ({param.name})"
                    )
                    return str(supplied), True
                logger.warning(
                    f"Discarded supplied value for system parameter '{param.name}'; "
                    f"bound authenticated tenant instead"
                )
            return authenticated, False

        if supplied is not None:
            logger.warning(f"Discarded supplied value for system parameter '{param.name}'")
        if is_user_parameter(param.name):
            return tenant_context.user_id, False
        return None, False

    def _authorize(self, tenant_context: TenantContext, requested: str) -> bool:
        try:
            return bool(self.authorizer(tenant_context, requested))
        except Exception as e:
            logger.error(f"Cross-tenant authorizer failed, denying access: {e}")
            return False

    def _tenant_parameter_name(self, template: SqlTemplate) -> str:
        for param in template.system_parameters:
            if is_tenant_parameter(param.name):
                return param.name
        return self.config.tenant_parameter

    @staticmethod
    def _failure(template: SqlTemplate, code: ErrorCode, message: str,
                 missing_parameters: Optional[List[str]] = None) -> SqlGenerationResult:
        logger.warning(f"Generation failed for '{template.id}': {message}")
        return SqlGenerationResult(
            is_successful=False,
            error_message=message,
            error_code=code,
            failed_stage=PipelineStage.GENERATING,
            template_id=template.id,
            missing_parameters=missing_parameters or [],
        )


def _is_allowed(value: Any, allowed_values) -> bool:
    lowered = str(value).lower()
    return any(str(a).lower() == lowered for a in allowed_values)

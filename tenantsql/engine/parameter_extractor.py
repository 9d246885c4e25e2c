# TenantSQL - Parameter Extractor
# ===============================
"""
Parameter Extractor
===================
Turns a natural-language question into typed, confidence-scored parameter
bindings for a selected template.

Strategy order (first hit wins per parameter):
1. Explicit dictionary from the caller (bypasses text extraction)  1.0
2. Named pattern:  "<name> [:=|is] <value>"                        0.8
3. Type pattern:   GUID, ISO/US date, number, quoted string         0.6
4. Relative date:  "today", "last week", "past 30 days"             0.7
5. Status synonym: "done" -> "completed"                            0.7
6. Similarity provider extract_parameters()                         provider score
7. Declared default for optional parameters                         1.0

System parameters (tenant id etc.) are never extracted; the generator
fills them from the authenticated TenantContext.

This is the 'extracting' stage of the pipeline.
"""

import re
import logging
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ParameterCoercionError
from .models import (
    ExtractedParameter,
    ParameterExtractionResult,
    ParameterType,
    SqlTemplate,
    SqlTemplateParameter,
)
from .relative_dates import find_relative_date, pick_boundary
from .similarity import BaseSimilarityProvider
from .synonyms import SynonymTable
from .type_coercion import coerce_value

logger = logging.getLogger(__name__)


NAMED_CONFIDENCE = 0.8
PATTERN_CONFIDENCE = 0.6
RELATIVE_DATE_CONFIDENCE = 0.7
SYNONYM_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 1.0


def split_camel_case(name: str) -> str:
    """'customerEmail' -> 'customer email', 'order_id' -> 'order id'."""
    spaced = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', name)
    return spaced.replace('_', ' ').lower()


class ParameterExtractor:
    """
    Extracts template parameters from natural-language text.

    Example:
        extractor = ParameterExtractor(provider=RapidFuzzSimilarityProvider())
        result = extractor.extract("orders with status done since last week", template)
        result.values         # {'status': 'completed', 'fromDate': datetime(...)}
        result.missing_parameters
    """

    # Typed value patterns (used when no named pattern matched)
    TYPE_PATTERNS = {
        ParameterType.GUID: re.compile(
            r'\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b'),
        ParameterType.DATETIME: re.compile(
            r'\b\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2})?)?\b|\b\d{1,2}/\d{1,2}/\d{4}\b'),
        ParameterType.DECIMAL: re.compile(r'(?<![\w.])-?\$?\d+(?:,\d{3})*(?:\.\d+)?(?![\w.])'),
        ParameterType.DOUBLE: re.compile(r'(?<![\w.])-?\d+(?:\.\d+)?(?![\w.])'),
        ParameterType.INT32: re.compile(r'(?<![\w.-])-?\d+(?![\w.])'),
        ParameterType.INT64: re.compile(r'(?<![\w.-])-?\d+(?![\w.])'),
        ParameterType.STRING: re.compile(r'"([^"]+)"|\'([^\']+)\''),
    }

    # String parameters whose name hints at a recognizable shape
    NAME_HINT_PATTERNS = {
        'email': re.compile(r'\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+\b'),
        'phone': re.compile(r'\+?\d[\d\s().-]{8,}\d'),
        'url': re.compile(r'\bhttps?://\S+', re.IGNORECASE),
    }

    # Matched in this order so GUIDs and dates claim their digits first
    TYPE_PRIORITY = [
        ParameterType.GUID,
        ParameterType.DATETIME,
        ParameterType.DECIMAL,
        ParameterType.DOUBLE,
        ParameterType.INT64,
        ParameterType.INT32,
        ParameterType.STRING,
    ]

    def __init__(self,
                 provider: Optional[BaseSimilarityProvider] = None,
                 synonyms: Optional[SynonymTable] = None,
                 confidence_threshold: float = 0.7,
                 clock: Optional[Callable[[], date]] = None):
        """
        Initialize extractor.

        Args:
            provider: Similarity collaborator used for the fallback strategy
            synonyms: Status synonym table (defaults to the built-in table)
            confidence_threshold: Parameters below this are reported as low-confidence
            clock: Returns 'today' for relative dates (defaults to date.today)
        """
        self.provider = provider
        self.synonyms = synonyms or SynonymTable()
        self.confidence_threshold = confidence_threshold
        self.clock = clock or date.today

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self,
                text: str,
                template: SqlTemplate,
                explicit: Optional[Dict[str, Any]] = None) -> ParameterExtractionResult:
        """
        Extract parameters for a template.

        Args:
            text: Natural-language question
            template: Selected template
            explicit: Caller-supplied values; when given, text extraction is skipped

        Returns:
            ParameterExtractionResult with parameters, missing and low-confidence lists
        """
        result = ParameterExtractionResult()
        today = self.clock()
        targets = [p for p in template.parameters if not p.is_system_parameter]

        if explicit is not None:
            self._apply_explicit(explicit, targets, result, today)
        else:
            self._extract_from_text(text or '', targets, result, today)
            if result.error_message:
                return result

        self._apply_defaults(targets, result)

        for param in targets:
            if param.name not in result.parameters and param.required:
                result.missing_parameters.append(param.name)

        result.low_confidence_parameters = [
            name for name, p in result.parameters.items()
            if p.confidence < self.confidence_threshold
        ]

        if result.missing_parameters:
            logger.info(f"Missing required parameters: {result.missing_parameters}")
        logger.debug(f"Extracted {len(result.parameters)} parameters for '{template.id}'")
        return result

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _apply_explicit(self, explicit: Dict[str, Any], targets: List[SqlTemplateParameter],
                        result: ParameterExtractionResult, today: date):
        """Coerce caller-supplied values; extraction is bypassed."""
        by_name = {k.lower(): (k, v) for k, v in explicit.items()}
        for param in targets:
            entry = by_name.get(param.name.lower())
            if entry is None or entry[1] is None:
                continue
            value = self._normalize_choice(param, entry[1])
            self._accept(param, value, 1.0, result, today, source="explicit")

    def _extract_from_text(self, text: str, targets: List[SqlTemplateParameter],
                           result: ParameterExtractionResult, today: date):
        consumed: List[Tuple[int, int]] = []

        # 1. Named patterns
        for param in targets:
            found = self._find_named(text, param)
            if found is None:
                continue
            raw, span = found
            value = self._normalize_choice(param, raw)
            if self._accept(param, value, NAMED_CONFIDENCE, result, today, source="named", span=span):
                consumed.append(span)

        # 2. Type patterns
        protected = self._protected_spans(text)
        ordered = sorted(
            [p for p in targets if p.name not in result.parameters],
            key=lambda p: self.TYPE_PRIORITY.index(p.type) if p.type in self.TYPE_PRIORITY else len(self.TYPE_PRIORITY)
        )
        for param in ordered:
            if self._is_choice_parameter(param):
                continue
            for raw, span in self._find_typed(text, param, protected):
                if any(_overlaps(span, c) for c in consumed):
                    continue
                if self._accept(param, raw, PATTERN_CONFIDENCE, result, today, source="pattern", span=span):
                    consumed.append(span)
                    break

        # 3. Relative dates
        relative = find_relative_date(text, today)
        if relative is not None:
            date_range, span = relative
            for param in targets:
                if param.name in result.parameters or param.type != ParameterType.DATETIME:
                    continue
                boundary = datetime.combine(pick_boundary(param.name, date_range), time.min)
                self._accept(param, boundary, RELATIVE_DATE_CONFIDENCE, result, today,
                             source="relative_date", span=span)

        # 4. Status synonyms
        for param in targets:
            if param.name in result.parameters or not self._is_choice_parameter(param):
                continue
            match = self.synonyms.find_in_text(text, allowed=param.allowed_values)
            if match is not None:
                self._accept(param, match.canonical, SYNONYM_CONFIDENCE * match.score / 100.0,
                             result, today, source="synonym")

        # 5. Similarity provider fallback
        unresolved = [p for p in targets if p.name not in result.parameters]
        if unresolved and self.provider is not None:
            try:
                candidates = self.provider.extract_parameters(text)
            except Exception as e:
                logger.error(f"Provider parameter extraction failed: {e}")
                result.error_message = f"Parameter extraction failed: {e}"
                return
            by_name = {c.name.lower(): c for c in candidates}
            for param in unresolved:
                candidate = by_name.get(param.name.lower())
                if candidate is None:
                    continue
                value = self._normalize_choice(param, candidate.value)
                confidence = min(max(candidate.confidence, 0.0), 1.0)
                self._accept(param, value, confidence, result, today,
                             source="provider", span=candidate.source_span)

    def _apply_defaults(self, targets: List[SqlTemplateParameter], result: ParameterExtractionResult):
        for param in targets:
            if param.name in result.parameters or param.default_value is None:
                continue
            result.parameters[param.name] = ExtractedParameter(
                name=param.name,
                value=param.default_value,
                type=param.type,
                confidence=DEFAULT_CONFIDENCE,
                source="default",
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _accept(self, param: SqlTemplateParameter, raw: Any, confidence: float,
                result: ParameterExtractionResult, today: date, source: str,
                span: Optional[Tuple[int, int]] = None) -> bool:
        """Coerce and record a candidate; a failed coercion drops it."""
        try:
            value = coerce_value(param.name, raw, param.type, today)
        except ParameterCoercionError as e:
            logger.debug(f"Dropped {source} candidate for '{param.name}': {e}")
            result.invalid_parameters[param.name] = str(e)
            return False

        result.invalid_parameters.pop(param.name, None)
        result.parameters[param.name] = ExtractedParameter(
            name=param.name,
            value=value,
            type=param.type,
            confidence=round(confidence, 4),
            source_span=span,
            source=source,
        )
        return True

    def _find_named(self, text: str, param: SqlTemplateParameter) -> Optional[Tuple[str, Tuple[int, int]]]:
        """Find '<name> [:=|is|of] <value>' for a parameter."""
        names = {param.name, split_camel_case(param.name)}
        alternatives = '|'.join(re.escape(n).replace(r'\ ', r'\s+') for n in sorted(names, key=len, reverse=True))
        pattern = re.compile(
            rf'\b(?:{alternatives})\b\s*(?:[:=]|\bis\b|\bof\b|\bequals\b)?\s*'
            r'(?:"(?P<dq>[^"]*)"|\'(?P<sq>[^\']*)\'|(?P<bare>[^\s,;]+))',
            re.IGNORECASE,
        )
        match = pattern.search(text)
        if not match:
            return None
        group = 'dq' if match.group('dq') is not None else 'sq' if match.group('sq') is not None else 'bare'
        raw = match.group(group)
        if group == 'bare':
            raw = raw.rstrip('.?!')
        return raw, match.span(group)

    def _find_typed(self, text: str, param: SqlTemplateParameter,
                    protected: List[Tuple[int, int]]) -> List[Tuple[str, Tuple[int, int]]]:
        """Candidate (value, span) pairs for a parameter's type."""
        if param.type == ParameterType.STRING:
            lowered = param.name.lower()
            for hint, pattern in self.NAME_HINT_PATTERNS.items():
                if hint in lowered:
                    return [(m.group(0), m.span()) for m in pattern.finditer(text)]

        pattern = self.TYPE_PATTERNS.get(param.type)
        if pattern is None:
            return []

        found = []
        for match in pattern.finditer(text):
            span = match.span()
            numeric = param.type in (ParameterType.INT32, ParameterType.INT64,
                                     ParameterType.DECIMAL, ParameterType.DOUBLE)
            if numeric and any(_overlaps(span, p) for p in protected):
                continue
            if param.type == ParameterType.STRING:
                group = 1 if match.group(1) is not None else 2
                found.append((match.group(group), match.span(group)))
            else:
                found.append((match.group(0), span))
        return found

    def _protected_spans(self, text: str) -> List[Tuple[int, int]]:
        """Spans of GUIDs, dates and emails whose digits must not be read as numbers."""
        spans = []
        for pattern in (self.TYPE_PATTERNS[ParameterType.GUID],
                        self.TYPE_PATTERNS[ParameterType.DATETIME],
                        self.NAME_HINT_PATTERNS['email']):
            spans.extend(m.span() for m in pattern.finditer(text))
        return spans

    @staticmethod
    def _is_choice_parameter(param: SqlTemplateParameter) -> bool:
        return param.allowed_values is not None or 'status' in param.name.lower()

    def _normalize_choice(self, param: SqlTemplateParameter, raw: Any) -> Any:
        """Map synonyms to canonical values for status-like parameters."""
        if not self._is_choice_parameter(param) or not isinstance(raw, str):
            return raw
        match = self.synonyms.resolve(raw, allowed=param.allowed_values)
        return match.canonical if match else raw


def _overlaps(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]

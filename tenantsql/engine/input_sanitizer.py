# TenantSQL - Input Sanitizer
# ===========================
"""
Input Sanitizer
===============
Normalizes a natural-language request before template selection:
1. Rejects empty and over-long input
2. Strips control characters and collapses whitespace
3. Flags SQL fragments and prompt-injection phrases

Flags are warnings, not blocks: extracted values are always bound as
parameters, and the validation stage checks them again.

This is STEP 0 of the generation pipeline.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from .models import SanitizationResult

logger = logging.getLogger(__name__)


CONTROL_CHARACTERS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


@dataclass
class SanitizerConfig:
    """Configuration for input sanitizer."""
    # Maximum query length
    max_query_length: int = 2000

    # Flag SQL fragments in the request
    flag_sql_fragments: bool = True

    # Flag prompt-injection phrases in the request
    flag_prompt_injection: bool = True


class InputSanitizer:
    """
    Normalizes user requests.

    Example:
        sanitizer = InputSanitizer()
        result = sanitizer.sanitize("  show   open orders\\x00 for last week ")
        result.sanitized_query   # "show open orders for last week"
    """

    # SQL fragments that have no business in a natural-language request
    SQL_FRAGMENT_PATTERNS = {
        'union_select': re.compile(r'\bUNION\s+(?:ALL\s+)?SELECT\b', re.IGNORECASE),
        'drop_table': re.compile(r'\bDROP\s+(?:TABLE|DATABASE|INDEX)\b', re.IGNORECASE),
        'delete_from': re.compile(r'\bDELETE\s+FROM\b', re.IGNORECASE),
        'insert_into': re.compile(r'\bINSERT\s+INTO\b', re.IGNORECASE),
        'update_set': re.compile(r'\bUPDATE\s+\w+\s+SET\b', re.IGNORECASE),
        'semicolon_command': re.compile(r';\s*(?:DROP|DELETE|INSERT|UPDATE|TRUNCATE|ALTER|CREATE)\b', re.IGNORECASE),
        'or_true': re.compile(r"'\s*OR\s+['\d]\s*=\s*['\d]", re.IGNORECASE),
        'comment_injection': re.compile(r'(?:--|/\*)\s*(?:DROP|DELETE|SELECT)', re.IGNORECASE),
        'exec_command': re.compile(r'\b(?:EXEC|EXECUTE|xp_)\w*\b', re.IGNORECASE),
        'info_schema': re.compile(r'\bINFORMATION_SCHEMA\b', re.IGNORECASE),
    }

    PROMPT_INJECTION_PATTERNS = {
        'ignore_instructions': re.compile(r'ignore\s+(?:previous|all|above|prior)\s+instructions?', re.IGNORECASE),
        'override_rules': re.compile(r'(?:ignore|bypass|disable)\s+(?:the\s+)?(?:tenant|security|filter|rules?)', re.IGNORECASE),
        'other_tenant': re.compile(r'\b(?:all|every|other)\s+tenants?\b', re.IGNORECASE),
        'reveal_prompt': re.compile(r'(?:show|reveal|display)\s+(?:your\s+)?(?:prompt|instructions)', re.IGNORECASE),
    }

    def __init__(self, config: Optional[SanitizerConfig] = None):
        """
        Initialize the input sanitizer.

        Args:
            config: Configuration options
        """
        self.config = config or SanitizerConfig()

    def sanitize(self, query: str) -> SanitizationResult:
        """
        Normalize user input.

        Args:
            query: User's raw request

        Returns:
            SanitizationResult; is_safe is False only for empty or over-long input
        """
        if not query or not query.strip():
            return SanitizationResult(
                is_safe=False,
                sanitized_query="",
                original_query=query or "",
                blocked_reason="Empty query"
            )

        if len(query) > self.config.max_query_length:
            return SanitizationResult(
                is_safe=False,
                sanitized_query="",
                original_query=query,
                blocked_reason=f"Query exceeds maximum length ({self.config.max_query_length} chars)"
            )

        sanitized = self._normalize_query(query)
        if not sanitized:
            return SanitizationResult(
                is_safe=False,
                sanitized_query="",
                original_query=query,
                blocked_reason="Query contains no readable text"
            )

        detected_patterns: List[str] = []
        warnings: List[str] = []

        if self.config.flag_sql_fragments:
            found = self._check_patterns(sanitized, self.SQL_FRAGMENT_PATTERNS, 'SQL')
            if found:
                detected_patterns.extend(found)
                warnings.append("Request contains SQL fragments; they will only ever be bound as values")
                logger.warning(f"SQL fragments in request: {found}")

        if self.config.flag_prompt_injection:
            found = self._check_patterns(sanitized, self.PROMPT_INJECTION_PATTERNS, 'PROMPT')
            if found:
                detected_patterns.extend(found)
                warnings.append("Request asks to bypass scoping; tenant filters still apply")
                logger.warning(f"Prompt injection phrases in request: {found}")

        if sanitized != query.strip():
            warnings.append("Query whitespace or control characters were normalized")

        return SanitizationResult(
            is_safe=True,
            sanitized_query=sanitized,
            original_query=query,
            detected_patterns=detected_patterns,
            warnings=warnings
        )

    @staticmethod
    def _check_patterns(query: str, patterns, prefix: str) -> List[str]:
        return [f"{prefix}:{name}" for name, pattern in patterns.items() if pattern.search(query)]

    def _normalize_query(self, query: str) -> str:
        """Normalize query for processing."""
        query = CONTROL_CHARACTERS.sub(' ', query)
        return re.sub(r'\s+', ' ', query).strip()

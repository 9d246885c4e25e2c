# TenantSQL - Similarity Provider Abstraction
# ===========================================
"""
Similarity Provider System
==========================
Narrow contract for the external embedding/similarity collaborator:
- similarity(text, examples) -> scores in [0, 1]
- extract_parameters(text) -> ExtractedParameter list

Backends:
- RapidFuzz (default, local token matching)
- Mock (testing, canned responses)

An embedding service or LLM client plugs in by subclassing
BaseSimilarityProvider.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from rapidfuzz import fuzz

from .models import ExtractedParameter

logger = logging.getLogger(__name__)


class BaseSimilarityProvider(ABC):
    """Abstract base class for similarity providers."""

    @abstractmethod
    def similarity(self, text: str, examples: Sequence[str]) -> List[float]:
        """
        Score text against each example.

        Args:
            text: Natural-language query
            examples: Intent example phrases

        Returns:
            One score in [0, 1] per example, in the same order
        """
        pass

    @abstractmethod
    def extract_parameters(self, text: str) -> List[ExtractedParameter]:
        """
        Extract parameter candidates from text.

        Args:
            text: Natural-language query

        Returns:
            Candidate parameters (may be empty)
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the provider name."""
        pass


# =============================================================================
# RAPIDFUZZ PROVIDER
# =============================================================================

class RapidFuzzSimilarityProvider(BaseSimilarityProvider):
    """
    Local similarity using RapidFuzz token matching.

    The score is the best of a discounted token_set_ratio and
    token_sort_ratio, scaled to [0, 1]. No parameter extraction is offered.
    """

    def get_provider_name(self) -> str:
        return "rapidfuzz"

    def similarity(self, text: str, examples: Sequence[str]) -> List[float]:
        query = (text or '').lower().strip()
        scores = []
        for example in examples:
            candidate = (example or '').lower().strip()
            if not query or not candidate:
                scores.append(0.0)
                continue
            token_set = fuzz.token_set_ratio(query, candidate)
            token_sort = fuzz.token_sort_ratio(query, candidate)
            scores.append(round(max(token_set * 0.9, token_sort) / 100.0, 4))
        return scores

    def extract_parameters(self, text: str) -> List[ExtractedParameter]:
        return []


# =============================================================================
# MOCK PROVIDER
# =============================================================================

class MockSimilarityProvider(BaseSimilarityProvider):
    """Mock provider for testing: canned scores and extractions."""

    def __init__(self,
                 scores: Optional[Dict[str, float]] = None,
                 extracted: Optional[List[ExtractedParameter]] = None,
                 fail_with: Optional[Exception] = None):
        """
        Initialize mock provider.

        Args:
            scores: example phrase -> score (unlisted examples score 0)
            extracted: parameters returned by extract_parameters
            fail_with: exception raised by every call
        """
        self.scores = scores or {}
        self.extracted = extracted or []
        self.fail_with = fail_with
        self.calls = 0

    def get_provider_name(self) -> str:
        return "mock"

    def similarity(self, text: str, examples: Sequence[str]) -> List[float]:
        self.calls += 1
        if self.fail_with:
            raise self.fail_with
        return [self.scores.get(example, 0.0) for example in examples]

    def extract_parameters(self, text: str) -> List[ExtractedParameter]:
        self.calls += 1
        if self.fail_with:
            raise self.fail_with
        return list(self.extracted)


def create_similarity_provider(name: str = "rapidfuzz") -> BaseSimilarityProvider:
    """
    Create a similarity provider by name.

    Args:
        name: 'rapidfuzz' or 'mock'

    Returns:
        Configured provider
    """
    logger.info(f"Creating similarity provider: {name}")
    if name == "mock":
        return MockSimilarityProvider()
    if name != "rapidfuzz":
        logger.warning(f"Unknown similarity provider '{name}', defaulting to rapidfuzz")
    return RapidFuzzSimilarityProvider()

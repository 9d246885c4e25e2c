# TenantSQL - Template Selector
# =============================
"""
Template Selector
=================
Resolves a natural-language question to a template by comparing it with
each template's intent examples.

Algorithm:
1. Exact containment: every template is checked first; an intent example
   that appears verbatim in the question scores 1.0 and the provider is
   never called
2. Only when nothing is contained does the similarity provider score
   every example
3. Highest score at or above the threshold wins; ties go to the longer
   (more specific) example
4. Below threshold -> TemplateNotFound

This is the 'selecting' stage of the pipeline.
"""

import logging
from typing import List, Optional, Tuple

from .models import SqlTemplate, TemplateSelectionResult
from .similarity import BaseSimilarityProvider
from .template_store import TemplateStore

logger = logging.getLogger(__name__)


class TemplateSelector:
    """
    Picks the best-matching template for a query.

    Example:
        selector = TemplateSelector(store, RapidFuzzSimilarityProvider(), threshold=0.6)
        result = selector.select("show completed orders")
        if result.is_successful:
            print(result.template.id, result.confidence_score)
    """

    def __init__(self,
                 store: TemplateStore,
                 provider: BaseSimilarityProvider,
                 threshold: float = 0.6):
        """
        Initialize selector.

        Args:
            store: Template registry
            provider: Similarity collaborator
            threshold: Minimum similarity (0-1) to accept a match
        """
        self.store = store
        self.provider = provider
        self.threshold = threshold

    def select(self, query: str, threshold: Optional[float] = None) -> TemplateSelectionResult:
        """
        Select a template for a natural-language query.

        Args:
            query: Normalized natural-language question
            threshold: Override the configured threshold for this call

        Returns:
            TemplateSelectionResult (is_successful False -> TemplateNotFound)
        """
        threshold = self.threshold if threshold is None else threshold
        templates = self.store.list_templates()

        if not templates:
            return TemplateSelectionResult(
                is_successful=False,
                error_message="No templates are registered"
            )

        # (template, score, example)
        candidates: List[Tuple[SqlTemplate, float, str]] = []
        for template in templates:
            contained = self._contained_example(query, template)
            if contained is not None:
                candidates.append((template, 1.0, contained))

        if not candidates:
            try:
                for template in templates:
                    best = self._score_template(query, template)
                    if best is not None:
                        candidates.append(best)
            except Exception as e:
                logger.error(f"Similarity provider '{self.provider.get_provider_name()}' failed: {e}")
                return TemplateSelectionResult(
                    is_successful=False,
                    error_message=f"Template selection failed: {e}"
                )

        # Highest score first; ties broken by the longest example
        candidates.sort(key=lambda c: (c[1], len(c[2])), reverse=True)
        accepted = [c for c in candidates if c[1] >= threshold]

        if not accepted:
            best_score = candidates[0][1] if candidates else 0.0
            logger.info(f"No template above threshold {threshold:.2f} (best {best_score:.2f})")
            return TemplateSelectionResult(
                is_successful=False,
                confidence_score=best_score,
                alternatives=[(c[0].id, c[1]) for c in candidates[:3]],
                error_message=(
                    f"No template matches the query with confidence >= {threshold:.2f} "
                    f"(best was {best_score:.2f})"
                )
            )

        template, score, example = accepted[0]
        logger.info(f"Selected template '{template.id}' ({score:.2f}) via example '{example}'")
        return TemplateSelectionResult(
            is_successful=True,
            template=template,
            confidence_score=score,
            matched_example=example,
            alternatives=[(c[0].id, c[1]) for c in accepted[1:]],
        )

    @staticmethod
    def _examples(template: SqlTemplate) -> List[str]:
        return [e for e in template.intent_mapping if e and e.strip()]

    def _contained_example(self, query: str, template: SqlTemplate) -> Optional[str]:
        """Longest intent example found verbatim in the query, or None."""
        query_lower = query.lower()
        contained = [e for e in self._examples(template) if e.lower() in query_lower]
        return max(contained, key=len) if contained else None

    def _score_template(self, query: str, template: SqlTemplate) -> Optional[Tuple[SqlTemplate, float, str]]:
        """Best (template, score, example) for one template, or None without examples."""
        examples = self._examples(template)
        if not examples:
            return None

        scores = self.provider.similarity(query, examples)
        if len(scores) != len(examples):
            raise ValueError(
                f"provider returned {len(scores)} scores for {len(examples)} examples"
            )
        best_index = max(
            range(len(examples)),
            key=lambda i: (scores[i], len(examples[i]))
        )
        return template, float(scores[best_index]), examples[best_index]

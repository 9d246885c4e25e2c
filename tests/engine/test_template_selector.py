# Tests for Template Selection (Step 1)
"""
Test Suite for TemplateSelector
===============================
Tests template selection including:
- Containment short-circuit
- Provider scores, thresholds and tie-breaking
- Provider failures
- The RapidFuzz provider and the provider factory
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tenantsql.engine.models import SqlTemplate
from tenantsql.engine.similarity import (
    MockSimilarityProvider,
    RapidFuzzSimilarityProvider,
    create_similarity_provider,
)
from tenantsql.engine.template_selector import TemplateSelector
from tenantsql.engine.template_store import TemplateStore


def _template(template_id, *examples):
    return SqlTemplate(
        id=template_id,
        name=template_id,
        sql_template_text=f"SELECT Id FROM {template_id} WHERE Id = @id",
        intent_mapping=examples,
    )


class TestTemplateSelector:
    """Test selection against a small store."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = TemplateStore([
            _template("Orders", "show open orders", "orders with status"),
            _template("Invoices", "list invoices", "unpaid invoices for customer"),
            _template("Empty"),
        ])

    def test_containment_skips_provider(self):
        """Test that a contained example scores 1.0 without calling the provider."""
        provider = MockSimilarityProvider()
        result = TemplateSelector(self.store, provider).select("please show open orders now")

        assert result.is_successful is True
        assert result.template.id == "Orders"
        assert result.confidence_score == 1.0
        assert result.matched_example == "show open orders"
        assert provider.calls == 0

    def test_containment_in_later_template_skips_provider(self):
        """Test that containment is checked across every template before any scoring."""
        provider = MockSimilarityProvider(fail_with=RuntimeError("service down"))
        result = TemplateSelector(self.store, provider).select("list invoices for me")

        assert result.is_successful is True
        assert result.template.id == "Invoices"
        assert result.confidence_score == 1.0
        assert provider.calls == 0

    def test_provider_scores(self):
        """Test selection by provider score."""
        provider = MockSimilarityProvider(scores={"list invoices": 0.8, "show open orders": 0.3})
        result = TemplateSelector(self.store, provider).select("invoice listing")

        assert result.template.id == "Invoices"
        assert result.confidence_score == 0.8
        assert result.matched_example == "list invoices"

    def test_below_threshold(self):
        """Test that a weak best match is reported, not selected."""
        provider = MockSimilarityProvider(scores={"list invoices": 0.5})
        result = TemplateSelector(self.store, provider, threshold=0.6).select("invoice listing")

        assert result.is_successful is False
        assert result.confidence_score == 0.5
        assert result.alternatives[0] == ("Invoices", 0.5)
        assert "confidence >= 0.60" in result.error_message

    def test_threshold_override(self):
        """Test a per-call threshold."""
        provider = MockSimilarityProvider(scores={"list invoices": 0.5})
        result = TemplateSelector(self.store, provider, threshold=0.6).select("invoice listing", threshold=0.4)
        assert result.is_successful is True

    def test_tie_prefers_longer_example(self):
        """Test that equal scores are broken by the longer example."""
        provider = MockSimilarityProvider(scores={"list invoices": 0.8, "orders with status": 0.8})
        result = TemplateSelector(self.store, provider).select("something")

        assert result.template.id == "Orders"
        assert result.alternatives == [("Invoices", 0.8)]

    def test_provider_failure(self):
        """Test that a provider error becomes a failed selection."""
        provider = MockSimilarityProvider(fail_with=RuntimeError("service down"))
        result = TemplateSelector(self.store, provider).select("invoice listing")

        assert result.is_successful is False
        assert result.error_message == "Template selection failed: service down"

    def test_empty_store(self):
        """Test selection with no templates."""
        result = TemplateSelector(TemplateStore(), MockSimilarityProvider()).select("anything")
        assert result.error_message == "No templates are registered"


class TestRapidFuzzProvider:
    """Test the local similarity provider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.provider = RapidFuzzSimilarityProvider()

    def test_identical(self):
        """Test identical text and empty examples."""
        assert self.provider.similarity("Show Orders", ["show orders", ""]) == [1.0, 0.0]

    def test_word_order(self):
        """Test that word order does not matter."""
        assert self.provider.similarity("orders show", ["show orders"]) == [1.0]

    def test_unrelated(self):
        """Test that unrelated text scores low."""
        assert self.provider.similarity("zzz qqq", ["show open orders"])[0] < 0.5

    def test_no_extraction(self):
        """Test that the provider extracts nothing."""
        assert self.provider.extract_parameters("orders from yesterday") == []


class TestProviderFactory:
    """Test create_similarity_provider."""

    @pytest.mark.parametrize("name,expected", [
        ("rapidfuzz", "rapidfuzz"),
        ("mock", "mock"),
        ("embeddings", "rapidfuzz"),
    ])
    def test_create(self, name, expected):
        """Test provider creation by name."""
        assert create_similarity_provider(name).get_provider_name() == expected

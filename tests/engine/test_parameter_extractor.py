# Tests for Parameter Extraction (Step 2)
"""
Test Suite for ParameterExtractor
=================================
Tests parameter extraction including:
- Named and typed patterns with their confidence scores
- Relative dates and status synonyms
- Explicit values, defaults and system parameters
- The similarity provider fallback
"""

import uuid
import pytest
import sys
from datetime import date, datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tenantsql.engine.models import ExtractedParameter, ParameterType, SqlTemplate, SqlTemplateParameter
from tenantsql.engine.parameter_extractor import ParameterExtractor, split_camel_case
from tenantsql.engine.similarity import MockSimilarityProvider


def _template(*parameters):
    return SqlTemplate(
        id="t",
        name="t",
        sql_template_text="SELECT Id FROM Orders WHERE TenantId = @tenantId",
        parameters=(SqlTemplateParameter("tenantId", is_system_parameter=True),) + parameters,
    )


class TestTextExtraction:
    """Test extraction strategies on free text."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = ParameterExtractor(clock=lambda: date(2024, 6, 15))

    def test_named_pattern_with_synonym(self):
        """Test '<name> is <value>' with synonym normalization."""
        result = self.extractor.extract("orders where status is done",
                                        _template(SqlTemplateParameter("status")))
        param = result.parameters["status"]
        assert param.value == "completed"
        assert param.confidence == 0.8
        assert param.source == "named"
        assert result.low_confidence_parameters == []

    def test_named_pattern_camel_case(self):
        """Test that camelCase names match their spaced form."""
        result = self.extractor.extract("customer email: ann@acme.io",
                                        _template(SqlTemplateParameter("customerEmail")))
        assert result.values == {"customerEmail": "ann@acme.io"}

    def test_typed_number_is_low_confidence(self):
        """Test that type-pattern matches are flagged low confidence."""
        result = self.extractor.extract("orders with more than 5 items",
                                        _template(SqlTemplateParameter("quantity", ParameterType.INT32)))
        assert result.values == {"quantity": 5}
        assert result.parameters["quantity"].confidence == 0.6
        assert result.low_confidence_parameters == ["quantity"]

    def test_guid_digits_not_read_as_numbers(self):
        """Test that GUID digits are not claimed by numeric parameters."""
        text = "order 3f2504e0-4f89-11d3-9a0c-0305e82c3301 top 5"
        result = self.extractor.extract(text, _template(
            SqlTemplateParameter("orderId", ParameterType.GUID),
            SqlTemplateParameter("count", ParameterType.INT32),
        ))
        assert result.values["orderId"] == uuid.UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
        assert result.values["count"] == 5

    def test_typed_date(self):
        """Test ISO dates in text."""
        result = self.extractor.extract("orders since 2024-01-31",
                                        _template(SqlTemplateParameter("startDate", ParameterType.DATETIME)))
        assert result.values == {"startDate": datetime(2024, 1, 31)}

    def test_quoted_string(self):
        """Test quoted strings and their source span."""
        text = 'find documents titled "Q3 report"'
        result = self.extractor.extract(text, _template(SqlTemplateParameter("title")))
        param = result.parameters["title"]
        assert param.value == "Q3 report"
        assert text[param.source_span[0]:param.source_span[1]] == "Q3 report"

    def test_named_failure_falls_back_to_type(self):
        """Test that an unconvertible named value does not block a typed match."""
        result = self.extractor.extract("quantity is many, buy 3",
                                        _template(SqlTemplateParameter("quantity", ParameterType.INT32)))
        assert result.values == {"quantity": 3}
        assert result.invalid_parameters == {}

    def test_relative_date(self):
        """Test relative phrases with start/end boundaries."""
        result = self.extractor.extract("orders in the past 30 days", _template(
            SqlTemplateParameter("startDate", ParameterType.DATETIME),
            SqlTemplateParameter("endDate", ParameterType.DATETIME),
        ))
        assert result.values == {"startDate": datetime(2024, 5, 16), "endDate": datetime(2024, 6, 15)}
        assert result.parameters["startDate"].source == "relative_date"
        assert result.parameters["startDate"].confidence == 0.7

    def test_status_synonym(self):
        """Test synonym resolution for status parameters."""
        result = self.extractor.extract("show finished orders", _template(SqlTemplateParameter("status")))
        param = result.parameters["status"]
        assert param.value == "completed"
        assert param.source == "synonym"
        assert param.confidence == 0.7
        assert result.low_confidence_parameters == []

    def test_allowed_values_in_text(self):
        """Test that declared allowed values are found directly."""
        result = self.extractor.extract("show closed tickets", _template(
            SqlTemplateParameter("state", allowed_values=("open", "closed"))
        ))
        assert result.values == {"state": "closed"}

    def test_missing_required(self):
        """Test that unresolved required parameters are reported."""
        result = self.extractor.extract("show documents", _template(SqlTemplateParameter("title")))
        assert result.missing_parameters == ["title"]
        assert result.is_complete is False

    def test_system_parameters_skipped(self):
        """Test that system parameters are never extracted or missing."""
        result = self.extractor.extract("tenantId is T2", _template())
        assert result.parameters == {}
        assert result.missing_parameters == []


class TestExplicitAndDefaults:
    """Test caller values and defaults."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = ParameterExtractor(clock=lambda: date(2024, 6, 15))
        self.template = _template(
            SqlTemplateParameter("status"),
            SqlTemplateParameter("quantity", ParameterType.INT32),
            SqlTemplateParameter("pageSize", ParameterType.INT32, required=False, default_value=50),
            SqlTemplateParameter("note", required=False),
        )

    def test_explicit_values(self):
        """Test that explicit values are coerced with full confidence."""
        result = self.extractor.extract("ignored text 99", self.template,
                                        explicit={"STATUS": "done", "quantity": "12"})
        assert result.values == {"status": "completed", "quantity": 12, "pageSize": 50}
        assert result.parameters["quantity"].confidence == 1.0
        assert result.parameters["quantity"].source == "explicit"

    def test_explicit_invalid(self):
        """Test that an unconvertible explicit value is invalid and missing."""
        result = self.extractor.extract("", self.template, explicit={"status": "open", "quantity": "abc"})
        assert "quantity" in result.invalid_parameters
        assert result.missing_parameters == ["quantity"]

    def test_defaults(self):
        """Test that optional parameters take their declared default."""
        result = self.extractor.extract("", self.template, explicit={"status": "open", "quantity": 1})
        param = result.parameters["pageSize"]
        assert param.value == 50
        assert param.source == "default"
        assert "note" not in result.parameters
        assert result.missing_parameters == []


class TestProviderFallback:
    """Test the similarity provider fallback."""

    def test_provider_candidates(self):
        """Test that provider candidates fill unresolved parameters."""
        provider = MockSimilarityProvider(extracted=[
            ExtractedParameter("region", "EMEA", ParameterType.STRING, 0.9),
            ExtractedParameter("priority", "3", ParameterType.INT32, 1.5),
        ])
        extractor = ParameterExtractor(provider=provider)
        result = extractor.extract("sales numbers", _template(
            SqlTemplateParameter("region"),
            SqlTemplateParameter("priority", ParameterType.INT32, required=False),
        ))

        assert result.values == {"region": "EMEA", "priority": 3}
        assert result.parameters["region"].confidence == 0.9
        assert result.parameters["region"].source == "provider"
        assert result.parameters["priority"].confidence == 1.0

    def test_provider_not_called_when_resolved(self):
        """Test that the provider is only consulted for unresolved parameters."""
        provider = MockSimilarityProvider()
        ParameterExtractor(provider=provider).extract('title "Q3"', _template(SqlTemplateParameter("title")))
        assert provider.calls == 0

    def test_provider_failure(self):
        """Test that a provider error fails extraction."""
        provider = MockSimilarityProvider(fail_with=RuntimeError("timeout"))
        result = ParameterExtractor(provider=provider).extract("sales", _template(SqlTemplateParameter("region")))
        assert result.error_message == "Parameter extraction failed: timeout"
        assert result.is_complete is False


class TestHelpers:
    """Test helper functions."""

    @pytest.mark.parametrize("name,expected", [
        ("customerEmail", "customer email"),
        ("order_id", "order id"),
        ("status", "status"),
    ])
    def test_split_camel_case(self, name, expected):
        """Test name splitting."""
        assert split_camel_case(name) == expected

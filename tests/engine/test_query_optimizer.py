# Tests for the Query Optimizer
"""
Test Suite for QueryOptimizer
=============================
Tests the optimization stage including:
- Complexity scoring and the optimization threshold
- SELECT * expansion, redundant filter removal, filter reordering, LIMIT
- Reverting rewrites that introduce critical issues
- Cost estimates and pagination
"""

import threading
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tenantsql.engine.config import EngineConfig
from tenantsql.engine.errors import ErrorCode, OperationCancelledError
from tenantsql.engine.models import CostLevel, ValidationCategory, ValidationIssue, ValidationSeverity
from tenantsql.engine.query_optimizer import QueryOptimizer
from tenantsql.engine.rules_engine import FunctionRule, ValidationRuleEngine


def _no_limit(sql, parameters, context):
    if "LIMIT" in sql.upper():
        return [ValidationIssue(
            rule_name="Custom.NoLimit",
            category=ValidationCategory.SYNTAX,
            severity=ValidationSeverity.CRITICAL,
            description="LIMIT is not supported by this backend",
        )]
    return []


class TestComplexity:
    """Test complexity scoring."""

    def setup_method(self):
        """Set up test fixtures."""
        self.optimizer = QueryOptimizer(EngineConfig())

    def test_simple_query(self):
        """Test that a filtered, bounded query scores zero."""
        assert self.optimizer.complexity_score("SELECT Id FROM Orders WHERE Id = @id LIMIT 10") == 0.0

    def test_unfiltered_star_query(self):
        """Test the score of SELECT * without WHERE or bound."""
        assert self.optimizer.complexity_score("SELECT * FROM Orders") == 5.0

    def test_joins_are_capped(self):
        """Test that joins contribute at most 3 points."""
        sql = ("SELECT a.Id FROM A a JOIN B b ON b.Id = a.Id JOIN C c ON c.Id = a.Id "
               "JOIN D d ON d.Id = a.Id JOIN E e ON e.Id = a.Id WHERE a.Id = @id LIMIT 5")
        assert self.optimizer.complexity_score(sql) == 3.0

    def test_below_threshold(self):
        """Test that simple queries are left alone."""
        result = self.optimizer.optimize("SELECT Id FROM Orders WHERE Id = @id LIMIT 10")
        assert result.is_optimized is False
        assert "below the optimization threshold" in result.explanation
        assert result.error_code is None


class TestRewrites:
    """Test the individual rewrites."""

    def test_expand_star_and_bound(self):
        """Test the full rewrite chain on a configured table."""
        optimizer = QueryOptimizer(EngineConfig(table_columns={"Orders": ["Id", "Status"]}))
        result = optimizer.optimize("SELECT * FROM Orders WHERE 1=1 AND Status = @status")

        assert result.is_optimized is True
        assert result.optimized_query == "SELECT Id, Status FROM Orders WHERE Status = @status LIMIT 1000"
        assert result.estimated_improvement_percentage == 49.5
        assert result.original_query == "SELECT * FROM Orders WHERE 1=1 AND Status = @status"

    def test_star_kept_without_columns(self):
        """Test that SELECT * is kept when the table's columns are unknown."""
        result = QueryOptimizer(EngineConfig()).optimize("SELECT * FROM Orders")
        assert result.optimized_query == "SELECT * FROM Orders LIMIT 1000"
        assert result.estimated_improvement_percentage == 33.3

    def test_redundant_predicates_removed(self):
        """Test removal of tautologies and duplicate predicates."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT Id FROM Orders WHERE Status = @status AND 1=1 AND Status = @status")
        assert result.optimized_query == "SELECT Id FROM Orders WHERE Status = @status LIMIT 1000"

    def test_where_dropped_when_all_redundant(self):
        """Test that a WHERE with only tautologies disappears."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT Id FROM Orders WHERE 1=1 ORDER BY Id")
        assert result.optimized_query == "SELECT Id FROM Orders ORDER BY Id LIMIT 1000"

    def test_equality_filters_first(self):
        """Test reordering of a pure conjunction."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT Id FROM Orders WHERE Name LIKE @name AND Status = @status")
        assert result.optimized_query == "SELECT Id FROM Orders WHERE Status = @status AND Name LIKE @name LIMIT 1000"

    def test_reorder_keeps_string_literals_intact(self):
        """Test that AND inside a quoted value is not treated as a predicate boundary."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        sql = "SELECT * FROM Invoices WHERE Note = 'a AND b' AND Status LIKE @s AND Id = @id"
        result = optimizer.optimize(sql)

        assert result.optimized_query == (
            "SELECT * FROM Invoices WHERE Note = 'a AND b' AND Id = @id AND Status LIKE @s LIMIT 1000"
        )

    def test_or_inside_literal_still_reordered(self):
        """Test that OR inside a quoted value does not block reordering."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT Id FROM Orders WHERE Name LIKE 'x OR y' AND Id = @id")
        assert result.optimized_query == "SELECT Id FROM Orders WHERE Id = @id AND Name LIKE 'x OR y' LIMIT 1000"

    def test_or_clause_not_reordered(self):
        """Test that clauses with a top-level OR are left as written."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT Id FROM Orders WHERE Name LIKE @name OR Status = @status")
        assert result.optimized_query == "SELECT Id FROM Orders WHERE Name LIKE @name OR Status = @status LIMIT 1000"

    def test_aggregates_not_bounded(self):
        """Test that aggregating queries get no LIMIT."""
        optimizer = QueryOptimizer(EngineConfig(complexity_threshold=1.0))
        result = optimizer.optimize("SELECT COUNT(*) FROM Orders")
        assert result.is_optimized is False
        assert result.explanation == "No applicable rewrites"

    def test_rewrite_reverted_on_new_critical_issue(self):
        """Test that a rewrite introducing a critical issue is discarded."""
        engine = ValidationRuleEngine()
        engine.add_rule(FunctionRule("Custom.NoLimit", _no_limit, ValidationCategory.SYNTAX,
                                     ValidationSeverity.CRITICAL))
        optimizer = QueryOptimizer(EngineConfig(), rule_engine=engine)

        result = optimizer.optimize("SELECT * FROM Orders")

        assert result.is_optimized is False
        assert result.optimized_query is None
        assert "discarded" in result.explanation
        assert "Custom.NoLimit" in result.explanation

    def test_non_select_unavailable(self):
        """Test that only SELECT statements are optimized."""
        result = QueryOptimizer().optimize("DELETE FROM Orders WHERE Id = @id")
        assert result.is_optimized is False
        assert result.error_code == ErrorCode.OPTIMIZATION_UNAVAILABLE

    def test_empty_statement(self):
        """Test an empty statement."""
        assert QueryOptimizer().optimize("  ").error_code == ErrorCode.OPTIMIZATION_UNAVAILABLE

    def test_suggestions(self):
        """Test advisory suggestions."""
        result = QueryOptimizer().optimize("SELECT * FROM Orders")
        assert "Add a WHERE clause to avoid a full table scan" in result.suggestions
        assert "Bound the result set with LIMIT" in result.suggestions


class TestCostEstimate:
    """Test heuristic cost estimates."""

    def setup_method(self):
        """Set up test fixtures."""
        self.optimizer = QueryOptimizer()

    def test_filtered_query(self):
        """Test a filtered single-table query."""
        cost = self.optimizer.estimate_cost("SELECT Id FROM Orders WHERE Id = @id")
        assert cost.estimated_rows == 100
        assert cost.estimated_time_ms == 10.0
        assert cost.cost_level == CostLevel.LOW
        assert cost.has_filter is True

    def test_unfiltered_query(self):
        """Test that a missing WHERE multiplies rows by ten."""
        cost = self.optimizer.estimate_cost("SELECT * FROM Orders")
        assert cost.estimated_rows == 1000
        assert cost.cost_level == CostLevel.MEDIUM

    def test_join_doubles_rows(self):
        """Test that each join doubles the estimate."""
        cost = self.optimizer.estimate_cost(
            "SELECT o.Id FROM Orders o JOIN Users u ON u.Id = o.UserId WHERE o.Id = @id"
        )
        assert cost.join_count == 1
        assert cost.estimated_rows == 200

    def test_group_by(self):
        """Test grouping and aggregation costs."""
        cost = self.optimizer.estimate_cost(
            "SELECT Status, COUNT(*) FROM Orders WHERE TenantId = @t GROUP BY Status"
        )
        assert cost.estimated_rows == 20
        assert cost.estimated_time_ms == 10.0
        assert cost.has_aggregation is True


class TestPagination:
    """Test page windows."""

    def setup_method(self):
        """Set up test fixtures."""
        self.optimizer = QueryOptimizer()

    def test_limit_offset(self):
        """Test LIMIT/OFFSET pagination."""
        sql = self.optimizer.apply_pagination("SELECT Id FROM Orders ORDER BY Id", 3, 20)
        assert sql == "SELECT Id FROM Orders ORDER BY Id LIMIT 20 OFFSET 40"

    def test_existing_limit_replaced(self):
        """Test that a trailing LIMIT is replaced, not duplicated."""
        sql = self.optimizer.apply_pagination("SELECT Id FROM Orders LIMIT 1000;", 1, 50)
        assert sql == "SELECT Id FROM Orders LIMIT 50 OFFSET 0"

    def test_fetch_style(self):
        """Test OFFSET/FETCH pagination adds an ORDER BY when missing."""
        sql = self.optimizer.apply_pagination("SELECT Id FROM Orders", 2, 10, style='fetch')
        assert sql == "SELECT Id FROM Orders ORDER BY (SELECT NULL) OFFSET 10 ROWS FETCH NEXT 10 ROWS ONLY"

    def test_fetch_keeps_order_by(self):
        """Test that an existing ORDER BY is reused."""
        sql = self.optimizer.apply_pagination("SELECT Id FROM Orders ORDER BY Id", 1, 10, style='fetch')
        assert sql == "SELECT Id FROM Orders ORDER BY Id OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY"

    @pytest.mark.parametrize("page,page_size,style,sql", [
        (0, 10, 'limit', "SELECT Id FROM Orders"),
        (1, 0, 'limit', "SELECT Id FROM Orders"),
        (1, 10, 'rownum', "SELECT Id FROM Orders"),
        (1, 10, 'limit', "DELETE FROM Orders WHERE Id = @id"),
    ])
    def test_invalid_arguments(self, page, page_size, style, sql):
        """Test argument checks."""
        with pytest.raises(ValueError):
            self.optimizer.apply_pagination(sql, page, page_size, style=style)


class TestBatch:
    """Test batch optimization."""

    def test_batch(self):
        """Test that statements are optimized independently."""
        results = QueryOptimizer().batch_optimize(["SELECT * FROM Orders", "DELETE FROM Orders WHERE Id = @id"])
        assert [r.is_optimized for r in results] == [True, False]

    def test_batch_cancelled(self):
        """Test cancellation between statements."""
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            QueryOptimizer().batch_optimize(["SELECT * FROM Orders"], cancel_event=event)

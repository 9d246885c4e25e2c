# Tests for the Template Store
"""
Test Suite for TemplateStore
============================
Tests the template registry including:
- Add, update (versioning), remove
- Intent and tag lookup
- JSON persistence and record validation
- Template model helpers
"""

import json
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tenantsql.engine.errors import TemplateValidationError
from tenantsql.engine.models import ParameterType, SqlTemplate, SqlTemplateParameter, next_version
from tenantsql.engine.template_store import TemplateStore


def _template(template_id="orders_by_status", **overrides):
    fields = dict(
        id=template_id,
        name="Orders by status",
        sql_template_text="SELECT Id FROM Orders WHERE TenantId = @tenantId AND Status = @status",
        parameters=(
            SqlTemplateParameter("tenantId", is_system_parameter=True),
            SqlTemplateParameter("status", allowed_values=["open", "closed"]),
        ),
        intent_mapping=("orders with status", "show open orders"),
        tags=("orders", "reporting"),
    )
    fields.update(overrides)
    return SqlTemplate(**fields)


class TestTemplateStore:
    """Test registry operations."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = TemplateStore([_template()])

    def test_get(self):
        """Test lookup by id."""
        assert self.store.get("orders_by_status").name == "Orders by status"
        assert self.store.get("missing") is None
        assert "orders_by_status" in self.store
        assert len(self.store) == 1

    def test_duplicate_add(self):
        """Test that a duplicate id is refused."""
        assert self.store.add(_template(name="Other")) is False
        assert self.store.get("orders_by_status").name == "Orders by status"

    def test_update_bumps_version(self):
        """Test that an update publishes a new version and keeps the old one."""
        updated = self.store.update_template("orders_by_status", name="Orders by state")

        assert updated.version == "1.1"
        assert self.store.get("orders_by_status").name == "Orders by state"
        assert self.store.get_version("orders_by_status", "1.0").name == "Orders by status"
        assert self.store.versions("orders_by_status") == ["1.0", "1.1"]

    def test_update_unknown(self):
        """Test updating a template that does not exist."""
        assert self.store.update_template("missing", name="x") is None

    def test_remove(self):
        """Test removal drops the template and its history."""
        assert self.store.remove("orders_by_status") is True
        assert self.store.remove("orders_by_status") is False
        assert self.store.versions("orders_by_status") == []

    def test_find_by_intent(self):
        """Test containment matching in both directions."""
        assert [t.id for t in self.store.find_by_intent("open orders")] == ["orders_by_status"]
        assert [t.id for t in self.store.find_by_intent("please show open orders today")] == ["orders_by_status"]
        assert self.store.find_by_intent("invoices") == []
        assert self.store.find_by_intent("  ") == []

    def test_find_by_tags(self):
        """Test that every requested tag must be present."""
        assert len(self.store.find_by_tags(["Orders"])) == 1
        assert self.store.find_by_tags(["orders", "billing"]) == []

    def test_snapshot_isolation(self):
        """Test that a listing taken earlier is not affected by later changes."""
        listing = self.store.list_templates()
        self.store.add(_template("second"))
        assert len(listing) == 1
        assert len(self.store.list_templates()) == 2


class TestTemplatePersistence:
    """Test JSON persistence."""

    def test_save_and_read(self, tmp_path):
        """Test that saved templates read back equal."""
        path = tmp_path / "templates.json"
        store = TemplateStore([_template()])
        store.save_json(path)

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw[0]["sqlTemplateText"].startswith("SELECT Id FROM Orders")
        assert raw[0]["parameters"][0]["isSystemParameter"] is True

        loaded = TemplateStore.read_json(path)
        assert loaded == [_template()]

    def test_read_single_record(self, tmp_path):
        """Test that a single object is accepted."""
        path = tmp_path / "one.json"
        path.write_text(json.dumps({
            "id": "invoices",
            "name": "Invoices",
            "sqlTemplateText": "SELECT Id FROM Invoices WHERE Id = @id",
            "parameters": [{"name": "id", "type": "int"}],
        }), encoding="utf-8")

        templates = TemplateStore.read_json(path)
        assert templates[0].parameters[0].type == ParameterType.INT32

    @pytest.mark.parametrize("content", [
        "not json",
        json.dumps("a string"),
        json.dumps([{"id": "x", "name": "X"}]),
        json.dumps([{"id": "x", "name": "X", "sqlTemplateText": "SELECT 1",
                     "parameters": [{"name": "p", "type": "Blob"}]}]),
    ])
    def test_malformed(self, tmp_path, content):
        """Test that malformed files raise TemplateValidationError."""
        path = tmp_path / "bad.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(TemplateValidationError):
            TemplateStore.read_json(path)

    def test_missing_file(self, tmp_path):
        """Test reading a file that does not exist."""
        with pytest.raises(TemplateValidationError):
            TemplateStore.read_json(tmp_path / "absent.json")


class TestTemplateModel:
    """Test SqlTemplate helpers."""

    def test_equality_ignores_timestamps(self):
        """Test that created/last_modified do not affect equality."""
        assert _template() == _template()

    def test_placeholder_names(self):
        """Test distinct placeholder listing."""
        template = _template(sql_template_text="SELECT Id FROM T WHERE A = @a OR B = @A OR C = @c")
        assert template.placeholder_names == ["a", "c"]

    def test_parameter_lookup(self):
        """Test case-insensitive parameter lookup."""
        template = _template()
        assert template.get_parameter("STATUS").allowed_values == ("open", "closed")
        assert [p.name for p in template.system_parameters] == ["tenantId"]

    def test_type_aliases(self):
        """Test parameter type names."""
        assert ParameterType.parse("integer") == ParameterType.INT32
        assert ParameterType.parse("datetime") == ParameterType.DATETIME
        with pytest.raises(ValueError):
            ParameterType.parse("Blob")

    def test_next_version(self):
        """Test version bumping."""
        assert next_version("1.0") == "1.1"
        assert next_version("2") == "2.1"
        assert next_version("beta") == "beta.1"

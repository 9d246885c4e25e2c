# TenantSQL - Template Store
# ==========================
"""
Template Store
==============
Registry of SqlTemplate definitions keyed by id.

Readers work against an immutable snapshot and never block; mutations are
serialized by a lock and publish a new snapshot. Every published version of
a template is kept so that get_version() can return historical definitions.

Example:
    store = TemplateStore()
    store.add(template)
    store.get("orders_by_status")
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import TemplateValidationError
from .models import SqlTemplate
from .template_schemas import SqlTemplateRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    """Immutable view of the store contents."""
    templates: Mapping[str, SqlTemplate]
    history: Mapping[str, Mapping[str, SqlTemplate]]   # id -> version -> template


class TemplateStore:
    """
    Copy-on-write template registry.

    Construct once at process start and pass it to the pipeline; there is
    no module-level instance.
    """

    def __init__(self, templates: Optional[Iterable[SqlTemplate]] = None):
        self._lock = threading.Lock()
        self._snapshot = _Snapshot(MappingProxyType({}), MappingProxyType({}))
        for template in templates or []:
            self.add(template)

    # ------------------------------------------------------------------
    # Reads (lock-free)
    # ------------------------------------------------------------------

    def get(self, template_id: str) -> Optional[SqlTemplate]:
        """Get the current version of a template by id."""
        return self._snapshot.templates.get(template_id)

    def get_version(self, template_id: str, version: str) -> Optional[SqlTemplate]:
        """Get a specific published version of a template."""
        return self._snapshot.history.get(template_id, {}).get(version)

    def versions(self, template_id: str) -> List[str]:
        return list(self._snapshot.history.get(template_id, {}).keys())

    def list_templates(self) -> List[SqlTemplate]:
        return list(self._snapshot.templates.values())

    def find_by_intent(self, intent: str) -> List[SqlTemplate]:
        """
        Find templates whose intent examples contain the phrase, or are
        contained in it (case-insensitive).
        """
        needle = (intent or '').lower().strip()
        if not needle:
            return []
        matches = []
        for template in self._snapshot.templates.values():
            for example in template.intent_mapping:
                example_lower = example.lower()
                if needle in example_lower or example_lower in needle:
                    matches.append(template)
                    break
        return matches

    def find_by_tags(self, tags: Iterable[str]) -> List[SqlTemplate]:
        """Find templates carrying all of the given tags."""
        wanted = {t.lower() for t in tags}
        return [
            t for t in self._snapshot.templates.values()
            if wanted.issubset({tag.lower() for tag in t.tags})
        ]

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._snapshot.templates

    def __len__(self) -> int:
        return len(self._snapshot.templates)

    # ------------------------------------------------------------------
    # Mutations (exclusive)
    # ------------------------------------------------------------------

    def add(self, template: SqlTemplate) -> bool:
        """
        Publish a new template.

        Returns:
            False if a template with the same id already exists
        """
        with self._lock:
            current = self._snapshot
            if template.id in current.templates:
                logger.warning(f"Template '{template.id}' already exists")
                return False
            self._publish(current, template)
        logger.info(f"Added template '{template.id}' v{template.version}")
        return True

    def update_template(self, template_id: str, **changes) -> Optional[SqlTemplate]:
        """
        Publish an edited version of an existing template.

        Args:
            template_id: Template to edit
            **changes: Field values for the new version

        Returns:
            The new version, or None if the template does not exist
        """
        with self._lock:
            current = self._snapshot
            existing = current.templates.get(template_id)
            if existing is None:
                return None
            edited = existing.with_changes(**changes)
            self._publish(current, edited)
        logger.info(f"Updated template '{template_id}' to v{edited.version}")
        return edited

    def remove(self, template_id: str) -> bool:
        """Remove a template and its history."""
        with self._lock:
            current = self._snapshot
            if template_id not in current.templates:
                return False
            templates = dict(current.templates)
            history = dict(current.history)
            del templates[template_id]
            history.pop(template_id, None)
            self._snapshot = _Snapshot(MappingProxyType(templates), MappingProxyType(history))
        logger.info(f"Removed template '{template_id}'")
        return True

    def _publish(self, current: _Snapshot, template: SqlTemplate):
        """Swap in a snapshot containing template (caller holds the lock)."""
        templates = dict(current.templates)
        templates[template.id] = template
        history = dict(current.history)
        versions = dict(history.get(template.id, {}))
        versions[template.version] = template
        history[template.id] = MappingProxyType(versions)
        self._snapshot = _Snapshot(MappingProxyType(templates), MappingProxyType(history))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_json(self, path: Union[str, Path]):
        """Write the current templates as a JSON list of records."""
        records = [
            SqlTemplateRecord.from_template(t).model_dump(mode='json', by_alias=True)
            for t in self.list_templates()
        ]
        Path(path).write_text(json.dumps(records, indent=2), encoding='utf-8')
        logger.info(f"Saved {len(records)} templates to {path}")

    @staticmethod
    def read_json(path: Union[str, Path]) -> List[SqlTemplate]:
        """
        Read templates from a JSON file without registering them.

        Raises:
            TemplateValidationError: If the file or any record is malformed
        """
        try:
            raw = json.loads(Path(path).read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise TemplateValidationError(f"Cannot read templates from {path}: {e}") from e

        if isinstance(raw, dict):
            raw = [raw]
        if not isinstance(raw, list):
            raise TemplateValidationError(f"Expected a list of template records in {path}")

        templates = []
        for index, item in enumerate(raw):
            try:
                templates.append(SqlTemplateRecord.model_validate(item).to_template())
            except (ValidationError, ValueError) as e:
                raise TemplateValidationError(f"Invalid template record #{index} in {path}: {e}") from e
        return templates

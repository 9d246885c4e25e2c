# TenantSQL
# =========
"""
TenantSQL - tenant-scoped NL-to-SQL generation and validation.

Sub-packages:
- engine: template store, selection, extraction, generation, validation, optimization
- audit: structured audit events and sinks
"""

__version__ = "1.0.0"

"""
Template Schemas
================
Pydantic models for the persisted template record format:

    {id, name, sqlTemplateText, parameters: [{name, type, required,
     defaultValue, allowedValues, isSystemParameter}], intentMapping,
     allowFullTableScan, version}

Records convert to and from the immutable SqlTemplate dataclass.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ParameterType, SqlTemplate, SqlTemplateParameter


class SqlTemplateParameterRecord(BaseModel):
    """Persisted form of a template parameter."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: str = "String"
    required: bool = True
    default_value: Optional[Any] = Field(default=None, alias="defaultValue")
    allowed_values: Optional[List[Any]] = Field(default=None, alias="allowedValues")
    is_system_parameter: bool = Field(default=False, alias="isSystemParameter")
    description: str = ""

    @field_validator('type')
    @classmethod
    def _known_type(cls, value: str) -> str:
        return ParameterType.parse(value).value

    def to_parameter(self) -> SqlTemplateParameter:
        return SqlTemplateParameter(
            name=self.name,
            type=ParameterType.parse(self.type),
            required=self.required,
            default_value=self.default_value,
            allowed_values=tuple(self.allowed_values) if self.allowed_values is not None else None,
            is_system_parameter=self.is_system_parameter,
            description=self.description,
        )

    @classmethod
    def from_parameter(cls, param: SqlTemplateParameter) -> 'SqlTemplateParameterRecord':
        return cls(
            name=param.name,
            type=param.type.value,
            required=param.required,
            default_value=param.default_value,
            allowed_values=list(param.allowed_values) if param.allowed_values is not None else None,
            is_system_parameter=param.is_system_parameter,
            description=param.description,
        )


class SqlTemplateRecord(BaseModel):
    """Persisted form of a SQL template."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    sql_template_text: str = Field(..., alias="sqlTemplateText", min_length=1)
    parameters: List[SqlTemplateParameterRecord] = Field(default_factory=list)
    intent_mapping: List[str] = Field(default_factory=list, alias="intentMapping")
    allow_full_table_scan: bool = Field(default=False, alias="allowFullTableScan")
    version: str = "1.0"
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    rule_sets: List[str] = Field(default_factory=list, alias="ruleSets")
    created: datetime = Field(default_factory=datetime.now)
    last_modified: datetime = Field(default_factory=datetime.now, alias="lastModified")

    def to_template(self) -> SqlTemplate:
        return SqlTemplate(
            id=self.id,
            name=self.name,
            sql_template_text=self.sql_template_text,
            parameters=tuple(p.to_parameter() for p in self.parameters),
            intent_mapping=tuple(self.intent_mapping),
            allow_full_table_scan=self.allow_full_table_scan,
            version=self.version,
            description=self.description,
            tags=tuple(self.tags),
            rule_sets=tuple(self.rule_sets),
            created=self.created,
            last_modified=self.last_modified,
        )

    @classmethod
    def from_template(cls, template: SqlTemplate) -> 'SqlTemplateRecord':
        return cls(
            id=template.id,
            name=template.name,
            sql_template_text=template.sql_template_text,
            parameters=[SqlTemplateParameterRecord.from_parameter(p) for p in template.parameters],
            intent_mapping=list(template.intent_mapping),
            allow_full_table_scan=template.allow_full_table_scan,
            version=template.version,
            description=template.description,
            tags=list(template.tags),
            rule_sets=list(template.rule_sets),
            created=template.created,
            last_modified=template.last_modified,
        )

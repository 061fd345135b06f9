"""
Field-type registry for condition validation.

The registry answers "what type is this event field, and which operators may
be used with it". It is seeded with the console's preset fields and can be
extended from an event schema payload or a JSON file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from badge_rules.domain.enums import FieldType, Operator

logger = logging.getLogger(__name__)

_ALWAYS = (Operator.IS_EMPTY, Operator.IS_NOT_EMPTY)

# Operators that make sense for each field type.
TYPE_OPERATORS: dict[FieldType, frozenset[Operator]] = {
    FieldType.STRING: frozenset(
        {
            Operator.EQ,
            Operator.NEQ,
            Operator.IN,
            Operator.NOT_IN,
            Operator.CONTAINS,
            Operator.STARTS_WITH,
            Operator.ENDS_WITH,
            *_ALWAYS,
        }
    ),
    FieldType.NUMBER: frozenset(
        {
            Operator.EQ,
            Operator.NEQ,
            Operator.GT,
            Operator.GTE,
            Operator.LT,
            Operator.LTE,
            Operator.IN,
            Operator.NOT_IN,
            Operator.BETWEEN,
            *_ALWAYS,
        }
    ),
    FieldType.BOOLEAN: frozenset({Operator.EQ, Operator.NEQ, *_ALWAYS}),
    FieldType.DATE: frozenset(
        {
            Operator.EQ,
            Operator.NEQ,
            Operator.GT,
            Operator.GTE,
            Operator.LT,
            Operator.LTE,
            Operator.BETWEEN,
            *_ALWAYS,
        }
    ),
    FieldType.ARRAY: frozenset({Operator.CONTAINS, *_ALWAYS}),
}


@dataclass(frozen=True)
class FieldDefinition:
    """One registered event field."""

    field: str
    field_type: FieldType
    label: str = ""
    category: str | None = None
    allowed_operators: frozenset[Operator] | None = None
    is_active: bool = True

    @property
    def operators(self) -> frozenset[Operator]:
        """Operators usable on this field (type table narrowed by the entry)."""
        by_type = TYPE_OPERATORS[self.field_type]
        if self.allowed_operators is None:
            return by_type
        return by_type & self.allowed_operators

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "type": self.field_type.value,
            "label": self.label,
            "category": self.category,
            "operators": sorted(op.value for op in self.operators),
            "isActive": self.is_active,
        }


PRESET_FIELDS: tuple[FieldDefinition, ...] = (
    # Event attributes
    FieldDefinition("event.type", FieldType.STRING, "Event type", "event"),
    FieldDefinition("event.name", FieldType.STRING, "Event name", "event"),
    FieldDefinition("event.timestamp", FieldType.DATE, "Event time", "event"),
    # User attributes
    FieldDefinition("user.level", FieldType.NUMBER, "User level", "user"),
    FieldDefinition("user.points", FieldType.NUMBER, "User points", "user"),
    FieldDefinition("user.registerDays", FieldType.NUMBER, "Days since registration", "user"),
    FieldDefinition("user.tags", FieldType.ARRAY, "User tags", "user"),
    # Order attributes
    FieldDefinition("order.amount", FieldType.NUMBER, "Order amount", "order"),
    FieldDefinition("order.count", FieldType.NUMBER, "Order count", "order"),
    FieldDefinition("order.status", FieldType.STRING, "Order status", "order"),
    # Time of event
    FieldDefinition("time.hour", FieldType.NUMBER, "Hour of day", "time"),
    FieldDefinition("time.dayOfWeek", FieldType.NUMBER, "Day of week", "time"),
    FieldDefinition("time.dayOfMonth", FieldType.NUMBER, "Day of month", "time"),
)


class FieldRegistry:
    """Lookup of field definitions by field path."""

    def __init__(self, definitions: Iterable[FieldDefinition] = ()):
        self._fields: dict[str, FieldDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: FieldDefinition) -> None:
        """Add or replace a definition."""
        self._fields[definition.field] = definition

    def get(self, field_name: str) -> FieldDefinition | None:
        return self._fields.get(field_name)

    def field_type(self, field_name: str) -> FieldType | None:
        """Declared type of `field_name`, or None when it is not registered."""
        definition = self._fields.get(field_name)
        return definition.field_type if definition else None

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self):
        return iter(self._fields.values())

    @classmethod
    def with_presets(cls, extra: Iterable[FieldDefinition] = ()) -> FieldRegistry:
        registry = cls(PRESET_FIELDS)
        for definition in extra:
            registry.register(definition)
        return registry

    @classmethod
    def from_event_schema(cls, schema: Mapping[str, Any]) -> FieldRegistry:
        """
        Build a registry from an event schema payload.

        Format:
            {
                "fields": [
                    {"field": "amount", "type": "number", "label": "Amount"},
                    {"field": "sku", "type": "string", "operators": ["eq", "in"]}
                ]
            }

        Raises:
            ValueError: If an entry is malformed or names an unknown type/operator
        """
        entries = schema.get("fields")
        if not isinstance(entries, list):
            raise ValueError("event schema must contain a 'fields' list")
        return cls(_definition_from_entry(entry, i) for i, entry in enumerate(entries))


class EventSchemaField(BaseModel):
    """One entry of an event schema's `fields` list."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    field: str = Field(min_length=1, strict=True)
    type: FieldType
    operators: list[Operator] | None = None
    is_active: bool = Field(default=True, strict=True)
    category: str | None = Field(default=None, strict=True)
    label: str | None = Field(default=None, strict=True)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Field types are matched case-insensitively."""
        return v.lower() if isinstance(v, str) else v

    def to_definition(self) -> FieldDefinition:
        return FieldDefinition(
            field=self.field,
            field_type=self.type,
            label=self.label or self.field,
            category=self.category,
            allowed_operators=frozenset(self.operators) if self.operators is not None else None,
            is_active=self.is_active,
        )


def _definition_from_entry(entry: Any, index: int) -> FieldDefinition:
    try:
        parsed = EventSchemaField.model_validate(entry)
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        target = f"fields[{index}].{where}" if where else f"fields[{index}]"
        raise ValueError(f"{target}: {first['msg']}") from e
    return parsed.to_definition()


def load_field_registry(path: str | Path | None = None) -> FieldRegistry:
    """
    Preset registry, extended with the fields of a JSON schema file when given.

    Args:
        path: Optional path to a JSON file in event schema format
    """
    registry = FieldRegistry.with_presets()
    if not path:
        return registry

    schema = json.loads(Path(path).read_text(encoding="utf-8"))
    extra = FieldRegistry.from_event_schema(schema)
    for definition in extra:
        registry.register(definition)
    logger.info("Loaded %d field definitions from %s", len(extra), path)
    return registry

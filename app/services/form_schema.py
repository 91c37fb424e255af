"""
Field Schema Validator — dynamic application forms.

Parses the untyped JSON form definition stored on an ApprovalTemplate into a
canonical FormSchema, and validates / coerces the values an applicant submits
against it.

Wire format (what admins POST and what templates store):

    {
        "items": [
            {"id": "amount", "label": "Amount", "type": "number", "min": 0},
            {"id": "kind", "label": "Kind", "type": "select",
             "options": [{"label": "Travel", "value": "travel"}]},
        ],
        "instructions": "optional",
        "version": 1
    }

Design decisions:
    - Field types are a closed enum.  Each member has exactly one normalizer
      in ``_NORMALIZERS``; adding a type means extending both.
    - parse_form_schema() fails fast on the first structural problem.
    - validate_form_data() never short-circuits: every field is normalized
      and every problem is reported in a single pass.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from app.core.exceptions import SchemaError

_FIELD_ID_RE = re.compile(r"[-_a-zA-Z0-9]+")
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

_UNSET = object()


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTI_SELECT = "multiSelect"
    FILE = "file"
    CHECKBOX = "checkbox"


_OPTION_TYPES = frozenset({FieldType.SELECT, FieldType.MULTI_SELECT})
_ALLOWED_TYPES = {t.value: t for t in FieldType}


@dataclass(frozen=True)
class FieldOption:
    label: str
    value: str

    def to_dict(self) -> dict:
        return {"label": self.label, "value": self.value}


@dataclass(frozen=True)
class FieldDefinition:
    id: str
    label: str
    type: FieldType
    required: bool | None = None
    placeholder: str | None = None
    help_text: str | None = None
    options: tuple[FieldOption, ...] | None = None
    default_value: Any = _UNSET
    min: float | None = None
    max: float | None = None

    @property
    def is_required(self) -> bool:
        return bool(self.required)

    @property
    def has_default(self) -> bool:
        return self.default_value is not _UNSET

    @property
    def option_values(self) -> frozenset[str]:
        return frozenset(o.value for o in self.options or ())

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"id": self.id, "label": self.label, "type": self.type.value}
        if self.required is not None:
            d["required"] = self.required
        if self.placeholder is not None:
            d["placeholder"] = self.placeholder
        if self.help_text is not None:
            d["helpText"] = self.help_text
        if self.options is not None:
            d["options"] = [o.to_dict() for o in self.options]
        if self.has_default:
            d["defaultValue"] = self.default_value
        if self.min is not None:
            d["min"] = self.min
        if self.max is not None:
            d["max"] = self.max
        return d


@dataclass(frozen=True)
class FormSchema:
    items: tuple[FieldDefinition, ...]
    instructions: str | None = None
    version: int | float | None = None

    def field(self, field_id: str) -> FieldDefinition | None:
        return next((f for f in self.items if f.id == field_id), None)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"items": [f.to_dict() for f in self.items]}
        if self.instructions is not None:
            d["instructions"] = self.instructions
        if self.version is not None:
            d["version"] = self.version
        return d


class FormValidationResult(NamedTuple):
    errors: list[str]
    cleaned: dict[str, Any]

    @property
    def ok(self) -> bool:
        return not self.errors


# Common form used for quick applications submitted straight against a route.
DEFAULT_FORM_SCHEMA: dict = {
    "items": [
        {
            "id": "purpose",
            "label": "Purpose",
            "type": "text",
            "required": True,
            "placeholder": "e.g. Purpose of the equipment purchase",
        },
        {
            "id": "amount",
            "label": "Amount",
            "type": "number",
            "required": False,
            "placeholder": "e.g. 10000",
            "min": 0,
        },
        {"id": "attachment", "label": "Attachment", "type": "file", "required": False},
        {"id": "neededBy", "label": "Needed by", "type": "date", "required": False},
        {
            "id": "details",
            "label": "Details",
            "type": "textarea",
            "required": False,
            "placeholder": "Background and supplementary notes",
        },
    ],
}


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════

def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_str(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _parse_options(index: int, type_: FieldType, raw) -> tuple[FieldOption, ...]:
    if not isinstance(raw, list) or not raw:
        raise SchemaError(f"fields.items[{index}] (type: {type_.value}) requires at least one option")
    options = []
    for opt_index, opt in enumerate(raw):
        if not isinstance(opt, Mapping):
            raise SchemaError(f"fields.items[{index}].options[{opt_index}] is invalid")
        label = _non_empty_str(opt.get("label"))
        if label is None:
            raise SchemaError(f"fields.items[{index}].options[{opt_index}].label is required")
        value = _non_empty_str(opt.get("value"))
        if value is None:
            raise SchemaError(f"fields.items[{index}].options[{opt_index}].value is required")
        options.append(FieldOption(label=label, value=value))
    return tuple(options)


def _parse_field(index: int, raw, seen_ids: set[str]) -> FieldDefinition:
    if not isinstance(raw, Mapping):
        raise SchemaError(f"fields.items[{index}] is invalid")

    field_id = _non_empty_str(raw.get("id"))
    if field_id is None:
        raise SchemaError(f"fields.items[{index}].id is required")
    if not _FIELD_ID_RE.fullmatch(field_id):
        raise SchemaError(
            f"fields.items[{index}].id may only contain letters, digits, hyphens and underscores"
        )
    if field_id in seen_ids:
        raise SchemaError(f"fields.items id '{field_id}' is duplicated")
    seen_ids.add(field_id)

    label = _non_empty_str(raw.get("label"))
    if label is None:
        raise SchemaError(f"fields.items[{index}].label is required")

    raw_type = raw.get("type")
    if not isinstance(raw_type, str):
        raise SchemaError(f"fields.items[{index}].type is required")
    type_ = _ALLOWED_TYPES.get(raw_type.strip())
    if type_ is None:
        raise SchemaError(f"fields.items[{index}].type '{raw_type}' is not supported")

    options = _parse_options(index, type_, raw.get("options")) if type_ in _OPTION_TYPES else None

    required = raw.get("required")
    placeholder = raw.get("placeholder")
    help_text = raw.get("helpText")
    return FieldDefinition(
        id=field_id,
        label=label,
        type=type_,
        required=required if isinstance(required, bool) else None,
        placeholder=placeholder if isinstance(placeholder, str) else None,
        help_text=help_text if isinstance(help_text, str) else None,
        options=options,
        default_value=raw["defaultValue"] if "defaultValue" in raw else _UNSET,
        min=raw.get("min") if _is_number(raw.get("min")) else None,
        max=raw.get("max") if _is_number(raw.get("max")) else None,
    )


def parse_form_schema(raw) -> FormSchema:
    """Parse an untyped form definition into a canonical FormSchema.

    Accepts an already-parsed FormSchema unchanged, so callers can pass
    either the stored JSON or a schema value.

    Raises:
        SchemaError: on the first structural problem found.
    """
    if isinstance(raw, FormSchema):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaError("fields must be an object")

    raw_items = raw.get("items")
    if not isinstance(raw_items, list):
        raise SchemaError("fields.items must be an array")

    seen_ids: set[str] = set()
    items = tuple(_parse_field(i, item, seen_ids) for i, item in enumerate(raw_items))
    if not items:
        raise SchemaError("fields.items must define at least one field")

    instructions = raw.get("instructions")
    version = raw.get("version")
    return FormSchema(
        items=items,
        instructions=instructions.strip() if isinstance(instructions, str) else None,
        version=version if _is_number(version) else None,
    )


def build_initial_values(schema) -> dict[str, Any]:
    """Blank-form values: defaultValue if declared, else a per-type empty value."""
    schema = parse_form_schema(schema)
    values: dict[str, Any] = {}
    for f in schema.items:
        if f.has_default:
            values[f.id] = f.default_value
        elif f.type is FieldType.CHECKBOX:
            values[f.id] = False
        elif f.type is FieldType.MULTI_SELECT:
            values[f.id] = []
        else:
            values[f.id] = None
    return values


# ═════════════════════════════════════════════════════════════════════════════
# Normalization — one function per FieldType
# ═════════════════════════════════════════════════════════════════════════════

class _Invalid(Exception):
    """Internal: a single field failed normalization."""


def _is_blank(value) -> bool:
    return value is None or value == ""


def _format_bound(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _normalize_number(f: FieldDefinition, raw):
    if _is_blank(raw):
        return None
    if isinstance(raw, bool):
        raise _Invalid(f"{f.label} must be a number")
    if not _is_number(raw) and not isinstance(raw, str):
        raise _Invalid(f"{f.label} must be a number")
    try:
        num = float(raw.strip() if isinstance(raw, str) else raw)
    except (OverflowError, ValueError):
        raise _Invalid(f"{f.label} must be a number") from None
    if not math.isfinite(num):
        raise _Invalid(f"{f.label} must be a number")
    if f.min is not None and num < f.min:
        raise _Invalid(f"{f.label} must be at least {_format_bound(f.min)}")
    if f.max is not None and num > f.max:
        raise _Invalid(f"{f.label} must be at most {_format_bound(f.max)}")
    return int(num) if num.is_integer() else num


def _normalize_date(f: FieldDefinition, raw):
    if _is_blank(raw):
        return None
    if not isinstance(raw, str):
        raise _Invalid(f"{f.label} must be a date")
    trimmed = raw.strip()
    if not _DATE_RE.fullmatch(trimmed):
        raise _Invalid(f"{f.label} must be in YYYY-MM-DD format")
    return trimmed


def _normalize_select(f: FieldDefinition, raw):
    if _is_blank(raw):
        return None
    if not isinstance(raw, str):
        raise _Invalid(f"{f.label} must be selected")
    if raw not in f.option_values:
        raise _Invalid(f"{f.label} has an invalid option")
    return raw


def _normalize_multi_select(f: FieldDefinition, raw):
    if _is_blank(raw):
        return []
    entries = raw if isinstance(raw, list) else [raw]
    values: list[str] = []
    for entry in entries:
        if not isinstance(entry, str):
            raise _Invalid(f"{f.label} has an invalid value")
        if entry not in f.option_values:
            raise _Invalid(f"{f.label} has an invalid option")
        if entry not in values:
            values.append(entry)
    return values


_TRUE_STRINGS = frozenset({"true", "1"})
_FALSE_STRINGS = frozenset({"false", "0"})


def _normalize_checkbox(f: FieldDefinition, raw):
    if _is_blank(raw):
        return False
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw in _TRUE_STRINGS:
        return True
    if isinstance(raw, str) and raw in _FALSE_STRINGS:
        return False
    raise _Invalid(f"{f.label} has an invalid value")


def _normalize_text(f: FieldDefinition, raw):
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise _Invalid(f"{f.label} must be a string")
    trimmed = raw.strip()
    if f.type is FieldType.FILE and not trimmed:
        return None
    return trimmed


_NORMALIZERS = {
    FieldType.TEXT: _normalize_text,
    FieldType.TEXTAREA: _normalize_text,
    FieldType.FILE: _normalize_text,
    FieldType.NUMBER: _normalize_number,
    FieldType.DATE: _normalize_date,
    FieldType.SELECT: _normalize_select,
    FieldType.MULTI_SELECT: _normalize_multi_select,
    FieldType.CHECKBOX: _normalize_checkbox,
}


def _is_empty(value) -> bool:
    return value is None or value == "" or value == []


def validate_form_data(schema, data) -> FormValidationResult:
    """Normalize submitted values against *schema* and collect every error.

    Keys in *data* that the schema does not declare are dropped.

    Returns:
        FormValidationResult(errors, cleaned). A field that failed
        normalization is absent from ``cleaned``.

    Raises:
        SchemaError: when *data* is not an object.
    """
    schema = parse_form_schema(schema)
    if not isinstance(data, Mapping):
        raise SchemaError("Application data must be an object")

    errors: list[str] = []
    cleaned: dict[str, Any] = {}
    for f in schema.items:
        try:
            value = _NORMALIZERS[f.type](f, data.get(f.id))
        except _Invalid as exc:
            errors.append(str(exc))
            continue
        cleaned[f.id] = value
        if f.is_required and _is_empty(value):
            errors.append(f"{f.label} is required")
    return FormValidationResult(errors=errors, cleaned=cleaned)

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from form_rules.options import normalize_options
from form_rules.schemas.rules import ConditionalLogic

logger = logging.getLogger("form_rules.schemas")


def _safe_json_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def normalize_mapping(raw: Any) -> Optional[str]:
    """
    Reduce the stored `mapping` of a field to a single key.

    Seen in the wild:
      - "email"
      - { "value": "email" }
      - { "type": "custom", "customKey": "projectBudget" }  -> "projectBudget"
      - { "type": "phone" }                                 -> "phone"
      - a JSON string of either object
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        t = raw.strip()
        if not t:
            return None
        if t.startswith("{"):
            parsed = _safe_json_loads(t)
            return normalize_mapping(parsed) if isinstance(parsed, dict) else None
        return t
    if isinstance(raw, dict):
        value = raw.get("value")
        if isinstance(value, str) and value.strip():
            return value.strip()
        mtype = str(raw.get("type") or "").strip()
        custom = str(raw.get("customKey") or "").strip()
        if mtype == "custom":
            return custom or None
        return mtype or None
    return None


class FieldOption(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    value: str = ""
    label: str = ""


class FieldConfig(BaseModel):
    """
    One configurable form field.

    `id` is regenerated whenever the form is rebuilt; `stable_id` is the key that survives
    edits and must not change once assigned.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    label: str = ""
    type: str = "text"
    stable_id: Optional[str] = Field(default=None, alias="stableId")
    mapping: Optional[str] = None
    options: List[FieldOption] = Field(default_factory=list)
    key: Optional[str] = None
    name: Optional[str] = None
    conditional_logic: Optional[ConditionalLogic] = Field(default=None, alias="conditionalLogic")

    @field_validator("id", "label", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list)):
            return ""
        return str(v)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> str:
        t = str(v or "").strip().lower()
        return t or "text"

    @field_validator("stable_id", "key", "name", mode="before")
    @classmethod
    def _coerce_optional_text(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (dict, list, bool)):
            return None
        t = str(v).strip()
        return t or None

    @field_validator("mapping", mode="before")
    @classmethod
    def _coerce_mapping(cls, v: Any) -> Optional[str]:
        return normalize_mapping(v)

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, v: Any) -> List[Dict[str, str]]:
        return normalize_options(v)

    @field_validator("conditional_logic", mode="before")
    @classmethod
    def _coerce_conditional_logic(cls, v: Any) -> Any:
        if isinstance(v, ConditionalLogic):
            return v
        if isinstance(v, str):
            v = _safe_json_loads(v)
        if not isinstance(v, dict) or not isinstance(v.get("when"), dict):
            return None
        try:
            return ConditionalLogic.model_validate(v)
        except ValidationError as e:
            logger.warning("Ignoring malformed conditionalLogic: %s", e)
            return None


class FormSection(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    title: Optional[str] = None
    fields: List[FieldConfig] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list)):
            return ""
        return str(v)

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (dict, list, bool)):
            return None
        return str(v)

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, v: Any) -> List[FieldConfig]:
        # a bad field entry drops that field, not the section
        return as_fields(v if isinstance(v, (str, list)) else None)


FieldLike = Union[FieldConfig, Dict[str, Any]]


def as_field(obj: FieldLike) -> Optional[FieldConfig]:
    if isinstance(obj, FieldConfig):
        return obj
    if not isinstance(obj, dict):
        return None
    try:
        return FieldConfig.model_validate(obj)
    except ValidationError as e:
        logger.warning("Skipping malformed field config id=%r: %s", obj.get("id"), e)
        return None


def as_fields(items: Optional[Iterable[FieldLike]]) -> List[FieldConfig]:
    """Parse a field list at the boundary, dropping entries that are not field objects."""
    if not items:
        return []
    if isinstance(items, str):
        items = _safe_json_loads(items) or []
    out: List[FieldConfig] = []
    for item in items:
        f = as_field(item)
        if f is not None:
            out.append(f)
    return out


def as_section(obj: Any) -> Optional[FormSection]:
    if isinstance(obj, FormSection):
        return obj
    if not isinstance(obj, dict):
        return None
    try:
        return FormSection.model_validate(obj)
    except ValidationError as e:
        logger.warning("Skipping malformed section id=%r: %s", obj.get("id"), e)
        return None


def section_list(sections: Any) -> List[Any]:
    """Raw section entries of a stored form (list or JSON string)."""
    if isinstance(sections, str):
        sections = _safe_json_loads(sections)
    return list(sections) if isinstance(sections, list) else []


def as_sections(sections: Any) -> List[FormSection]:
    out: List[FormSection] = []
    for s in section_list(sections):
        section = as_section(s)
        if section is not None:
            out.append(section)
    return out


def flatten_sections(sections: Any) -> List[FieldConfig]:
    """Sections (models, dicts or a JSON string) -> one ordered field list."""
    fields: List[FieldConfig] = []
    for section in as_sections(sections):
        fields.extend(section.fields)
    return fields


def fields_from_form(form: Any) -> List[FieldConfig]:
    """
    Collect every field of a stored form config.

    Forms keep fields inside `sections`, older ones also in a top-level `fields` list; both
    may arrive JSON-encoded.
    """
    if isinstance(form, str):
        form = _safe_json_loads(form)
    if isinstance(form, list):
        return as_fields(form)
    if not isinstance(form, dict):
        return []
    fields = flatten_sections(form.get("sections"))
    fields.extend(as_fields(form.get("fields")))
    return fields


__all__ = [
    "FieldConfig",
    "FieldLike",
    "FieldOption",
    "FormSection",
    "as_field",
    "as_fields",
    "as_section",
    "as_sections",
    "fields_from_form",
    "flatten_sections",
    "normalize_mapping",
    "section_list",
]

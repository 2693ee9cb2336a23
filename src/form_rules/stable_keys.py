from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from form_rules.schemas.fields import FieldConfig, FieldLike, as_field, as_section, section_list

_TYPE_KEYS = {
    "email": "email",
    "tel": "phone",
    "phone": "phone",
    "name": "name",
}


def to_camel_case(text: str) -> str:
    """
    "First Name" -> "firstName", "E-mail address!" -> "eMailAddress".

    Non-alphanumerics separate words and are dropped.
    """
    t = str(text or "").lower()
    t = re.sub(r"[^a-zA-Z0-9]+(.)", lambda m: m.group(1).upper(), t)
    t = re.sub(r"[^a-zA-Z0-9]+", "", t)
    return t[:1].lower() + t[1:]


def _label_key(label: str) -> Optional[str]:
    """
    Canonical key from the label vocabulary.

    Narrower than the alias vocabulary of `resolver.map_field_ids`: "organization" and
    "business" alias to `company` there, but never become a stored stable key here.
    """
    lbl = label.lower()
    if "email" in lbl:
        return "email"
    if "phone" in lbl or "tel" in lbl:
        return "phone"
    if lbl.strip() in {"name", "full name"}:
        return "name"
    if "first name" in lbl:
        return "firstName"
    if "last name" in lbl:
        return "lastName"
    if "company" in lbl:
        return "company"
    return None


def _camel_label_key(label: str, section_title: Optional[str]) -> str:
    camel = to_camel_case(label)
    if not camel:
        return ""
    prefix = to_camel_case(section_title or "")
    return f"{prefix}_{camel}" if prefix else camel


def _raw_text(raw: Dict[str, Any], key: str) -> str:
    v = raw.get(key)
    if v is None or isinstance(v, (dict, list, bool)):
        return ""
    return str(v).strip()


def _raw_stable_key(raw: Any, section_title: Optional[str]) -> str:
    """Key for a field dict that does not parse: stableId, camelCase label, then id."""
    if not isinstance(raw, dict):
        return ""
    stable = _raw_text(raw, "stableId")
    if stable:
        return stable
    return _camel_label_key(_raw_text(raw, "label"), section_title) or _raw_text(raw, "id")


def assign_stable_key(field: FieldLike, section_title: Optional[str] = None) -> str:
    """
    Compute the stable semantic key of a field.

    First match wins:
      1. existing `stableId` (returned unchanged)
      2. administrator `mapping`
      3. field type (email / tel|phone / name)
      4. label vocabulary (email, phone|tel, name|full name, first name, last name, company)
      5. camelCase of the label, prefixed with the camelCase section title when one is given
      6. the field's own id
    """
    f = as_field(field)
    if f is None:
        return _raw_stable_key(field, section_title)
    if f.stable_id:
        return f.stable_id
    if f.mapping:
        return f.mapping
    by_type = _TYPE_KEYS.get(f.type)
    if by_type:
        return by_type

    label = f.label.strip()
    if label:
        by_label = _label_key(label)
        if by_label:
            return by_label
        camel = _camel_label_key(label, section_title)
        if camel:
            return camel
    return f.id


def has_stable_key(field: FieldLike) -> bool:
    f = as_field(field)
    return bool(f and f.stable_id)


def with_stable_key(field: FieldLike, section_title: Optional[str] = None) -> Optional[FieldConfig]:
    """Return the field carrying its stable key; already-keyed fields come back as-is."""
    f = as_field(field)
    if f is None or f.stable_id:
        return f
    key = assign_stable_key(f, section_title)
    return f.model_copy(update={"stable_id": key or None})


def assign_missing_stable_keys(
    fields: Sequence[FieldLike], section_title: Optional[str] = None
) -> List[FieldConfig]:
    out: List[FieldConfig] = []
    for field in fields:
        f = with_stable_key(field, section_title)
        if f is not None:
            out.append(f)
    return out


@dataclass
class MigrationSummary:
    fields_processed: int = 0
    fields_updated: int = 0
    fields_with_stable_ids: int = 0
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldsProcessed": self.fields_processed,
            "fieldsUpdated": self.fields_updated,
            "fieldsWithStableIds": self.fields_with_stable_ids,
            "dryRun": self.dry_run,
        }


def migrate_sections(sections: Any, *, dry_run: bool = False) -> Tuple[List[Any], MigrationSummary]:
    """
    Give every field of a form's sections a stable key.

    Keys that already exist are preserved. With `dry_run=True` the sections are returned
    untouched and only the summary reflects what would change. Sections that cannot be parsed
    are passed through unchanged. Persisting the result is the caller's job.
    """
    summary = MigrationSummary(dry_run=dry_run)
    out: List[Any] = []
    for raw in section_list(sections):
        section = as_section(raw)
        if section is None:
            out.append(raw)
            continue
        summary.fields_processed += len(section.fields)
        updated_fields: List[FieldConfig] = []
        for f in section.fields:
            if f.stable_id:
                summary.fields_with_stable_ids += 1
                updated_fields.append(f)
                continue
            summary.fields_updated += 1
            updated_fields.append(with_stable_key(f, section.title) or f)
        if not dry_run:
            section = section.model_copy(update={"fields": updated_fields})
        out.append(section.model_dump(by_alias=True, exclude_none=True))
    return out, summary


__all__ = [
    "MigrationSummary",
    "assign_missing_stable_keys",
    "assign_stable_key",
    "has_stable_key",
    "migrate_sections",
    "to_camel_case",
    "with_stable_key",
]

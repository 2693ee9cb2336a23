"""
Field value resolution.

Field ids are regenerated whenever a form is rebuilt, so rules and templates refer to fields
by a logical key (stable key, raw id, or human label). `FieldResolver` finds the submitted
value for such a key by walking an ordered list of strategies ("tiers"), most structural
first, fuzzy last. The first tier that produces a value wins.

Every tier is a plain function `(resolver, key) -> Optional[Resolution]` so the precedence
is explicit and each tier can be exercised on its own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from form_rules.config import DEFAULT_SIMILARITY_THRESHOLD
from form_rules.diagnostics import DiagnosticSink, default_sink
from form_rules.schemas.fields import FieldConfig, FieldLike, as_fields
from form_rules.stable_keys import to_camel_case

MAPPED_FIELDS_KEY = "__mappedFields"

_COMMON_PREFIXES = ("inquiry_form_", "form_", "field_", "input_")

# (trigger keys, exact data keys to try, substrings to look for in data keys)
_NAME_PATTERNS: Tuple[Tuple[frozenset, Tuple[str, ...], Tuple[str, ...]], ...] = (
    (
        frozenset({"firstname", "first_name", "fname"}),
        ("first_name", "firstname", "fname", "first-name", "givenName"),
        ("first_name", "firstname", "fname"),
    ),
    (
        frozenset({"lastname", "last_name", "lname"}),
        ("last_name", "lastname", "lname", "last-name", "surname", "familyName"),
        ("last_name", "lastname", "lname"),
    ),
)
_LEAD_ID_TRIGGERS = frozenset({"leadid", "lead_id"})
_LEAD_ID_KEYS = ("lead_id", "leadid", "lead-id", "id", "submission_id", "submissionId")


@dataclass(frozen=True)
class Resolution:
    value: Any
    key_used: str
    tier: str


Tier = Callable[["FieldResolver", str], Optional[Resolution]]


def similarity_score(a: str, b: str) -> float:
    """
    Character-overlap ratio: characters of `a` (with repeats) that occur anywhere in `b`,
    divided by the longer length. Case-insensitive.
    """
    s1 = str(a or "").lower()
    s2 = str(b or "").lower()
    longest = max(len(s1), len(s2))
    if not longest:
        return 0.0
    chars = set(s2)
    common = sum(1 for ch in s1 if ch in chars)
    return common / longest


def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def _snake_case(text: str) -> str:
    return re.sub(r"([A-Z])", r"_\1", text).lower()


class FieldResolver:
    """
    Resolve logical keys against one submission.

    The field-list indexes are built once per instance; build one resolver per submission
    and reuse it for every key (rule conditions, template variables, recipients).
    """

    def __init__(
        self,
        fields: Optional[Sequence[FieldLike]],
        data: Optional[Dict[str, Any]],
        *,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        sink: Optional[DiagnosticSink] = None,
        tiers: Optional[Sequence[Tier]] = None,
    ) -> None:
        self.fields: List[FieldConfig] = as_fields(fields)
        self.data: Dict[str, Any] = data if isinstance(data, dict) else {}
        self.similarity_threshold = similarity_threshold
        self.sink = sink or default_sink()
        self.tiers: Tuple[Tier, ...] = tuple(tiers) if tiers is not None else RESOLUTION_TIERS
        self._by_stable_id: Dict[str, List[FieldConfig]] = {}
        self._by_mapping: Dict[str, List[FieldConfig]] = {}
        for f in self.fields:
            if f.stable_id:
                self._by_stable_id.setdefault(f.stable_id, []).append(f)
            if f.mapping:
                self._by_mapping.setdefault(f.mapping, []).append(f)
        # keyed by object: field ids may be blank or repeated
        self._camel_labels: Dict[int, str] = {id(f): to_camel_case(f.label) for f in self.fields if f.label}

    # --- helpers shared by tiers ---

    def has(self, key: str) -> bool:
        return key in self.data

    def hit(self, key: str, tier: str) -> Resolution:
        return Resolution(value=self.data[key], key_used=key, tier=tier)

    def first_present(self, candidates: Sequence[FieldConfig], tier: str) -> Optional[Resolution]:
        for f in candidates:
            if f.id and self.has(f.id):
                return self.hit(f.id, tier)
        return None

    def with_stable_id(self, key: str) -> List[FieldConfig]:
        return self._by_stable_id.get(key, [])

    def with_mapping(self, key: str) -> List[FieldConfig]:
        return self._by_mapping.get(key, [])

    def camel_label(self, f: FieldConfig) -> str:
        return self._camel_labels.get(id(f), "")

    def data_keys(self) -> List[str]:
        return [k for k in self.data.keys() if isinstance(k, str) and k != MAPPED_FIELDS_KEY]

    # --- public API ---

    def lookup(self, key: Any) -> Optional[Resolution]:
        """Run every tier for one key; None means the field is absent."""
        return self.lookup_any([key])

    def lookup_any(self, keys: Sequence[Any]) -> Optional[Resolution]:
        """
        Resolve the first of several identifiers for the same field.

        Tier-major: an exact tier for a later identifier beats a fuzzy tier for an earlier
        one, and within a tier identifiers are tried in the order given.
        """
        candidates: List[str] = []
        for k in keys:
            t = str(k).strip() if k is not None else ""
            if t and t not in candidates:
                candidates.append(t)
        if not candidates:
            return None

        for tier in self.tiers:
            for key in candidates:
                found = tier(self, key)
                if found is not None:
                    self.sink.emit(
                        "debug",
                        "Resolved field",
                        key=key,
                        tier=found.tier,
                        key_used=found.key_used,
                    )
                    return found
        self.sink.emit("debug", "No field found", keys=candidates)
        return None

    def resolve(self, key: Any, default: Any = None) -> Any:
        found = self.lookup(key)
        return default if found is None else found.value


# --- tiers ---


def direct_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    return r.hit(key, "direct") if r.has(key) else None


def mapped_display_key_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    mapped = r.data.get(MAPPED_FIELDS_KEY)
    if not isinstance(mapped, dict):
        return None
    wanted = key.lower()
    for mapped_id, entry in mapped.items():
        if not isinstance(entry, dict):
            continue
        display_key = entry.get("displayKey")
        if isinstance(display_key, str) and display_key.lower() == wanted:
            return Resolution(value=entry.get("value"), key_used=str(mapped_id), tier="mapped_display_key")
    return None


def stable_id_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    return r.first_present(r.with_stable_id(key), "stable_id")


def mapping_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    return r.first_present(r.with_mapping(key), "mapping")


def label_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    wanted = key.lower()
    matches = [f for f in r.fields if f.label and (f.label.lower() == wanted or r.camel_label(f) == key)]
    return r.first_present(matches, "label")


def labelled_value_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    """Values stored as `{label, value}` objects can be found by their label."""
    wanted = re.sub(r"\s+", "", key.lower())
    for k in r.data_keys():
        val = r.data[k]
        if not isinstance(val, dict):
            continue
        label = val.get("label")
        if isinstance(label, str) and re.sub(r"\s+", "", label.lower()) == wanted:
            value = val.get("value")
            return Resolution(value=val if value is None else value, key_used=k, tier="labelled_value")
    return None


def _email_value(r: FieldResolver) -> Optional[Resolution]:
    stages = (
        [f for f in r.fields if f.type == "email"],
        [f for f in r.fields if "email" in f.label.lower()],
        [f for f in r.fields if "email" in f.id.lower()],
    )
    for candidates in stages:
        found = r.first_present(candidates, "semantic")
        if found is not None:
            return found
    keys = r.data_keys()
    for k in keys:
        v = r.data[k]
        if "email" in k.lower() and isinstance(v, str) and "@" in v:
            return r.hit(k, "semantic")
    for k in keys:
        v = r.data[k]
        if isinstance(v, str) and "@" in v:
            return r.hit(k, "semantic")
    return None


def _phone_value(r: FieldResolver) -> Optional[Resolution]:
    stages = (
        [f for f in r.fields if f.type in {"tel", "phone"}],
        [f for f in r.fields if "phone" in f.label.lower() or "tel" in f.label.lower()],
    )
    for candidates in stages:
        found = r.first_present(candidates, "semantic")
        if found is not None:
            return found
    return None


def _name_value(r: FieldResolver) -> Optional[Resolution]:
    stages = (
        [f for f in r.fields if f.type == "name"],
        [f for f in r.fields if "name" in f.label.lower()],
    )
    for candidates in stages:
        found = r.first_present(candidates, "semantic")
        if found is not None:
            return found
    return None


def semantic_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    """Type/label heuristics for well-known keys (email, phone, name, first/last name, lead id)."""
    k = key.lower()
    if k == "email":
        return _email_value(r)
    if k == "phone":
        return _phone_value(r)
    if k == "name":
        return _name_value(r)

    for triggers, exact_keys, fragments in _NAME_PATTERNS:
        if k not in triggers:
            continue
        for candidate in exact_keys:
            if r.has(candidate):
                return r.hit(candidate, "semantic")
        for dk in r.data_keys():
            if any(frag in dk.lower() for frag in fragments):
                return r.hit(dk, "semantic")
        return None

    if k in _LEAD_ID_TRIGGERS:
        for candidate in _LEAD_ID_KEYS:
            if r.has(candidate):
                return r.hit(candidate, "semantic")
        for dk in r.data_keys():
            low = dk.lower()
            if "lead" in low and "id" in low:
                return r.hit(dk, "semantic")
    return None


def field_containment_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    matches = [f for f in r.fields if _contains_either(f.id, key) or _contains_either(f.key or "", key)]
    return r.first_present(matches, "field_containment")


def prefixed_key_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    lower = key.lower()
    snake = _snake_case(key)
    for prefix in _COMMON_PREFIXES:
        for candidate in (prefix + lower, prefix + snake):
            if r.has(candidate):
                return r.hit(candidate, "prefixed_key")
    return None


def data_key_containment_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    wanted = key.lower()
    for k in r.data_keys():
        if _contains_either(k.lower(), wanted):
            return r.hit(k, "data_key_containment")
    return None


def similarity_tier(r: FieldResolver, key: str) -> Optional[Resolution]:
    best_key: Optional[str] = None
    best_score = 0.0
    for k in r.data_keys():
        score = similarity_score(key, k)
        if score > best_score:
            best_score = score
            best_key = k
    if best_key is not None and best_score > r.similarity_threshold:
        return r.hit(best_key, "similarity")
    return None


RESOLUTION_TIERS: Tuple[Tier, ...] = (
    direct_tier,
    mapped_display_key_tier,
    stable_id_tier,
    mapping_tier,
    label_tier,
    labelled_value_tier,
    semantic_tier,
    field_containment_tier,
    prefixed_key_tier,
    data_key_containment_tier,
    similarity_tier,
)


def resolve(
    logical_key: Any,
    fields: Optional[Sequence[FieldLike]],
    data: Optional[Dict[str, Any]],
    default: Any = None,
    **kwargs: Any,
) -> Any:
    """One-shot resolution; returns `default` when the field is absent."""
    return FieldResolver(fields, data, **kwargs).resolve(logical_key, default)


# --- enhanced data (plain-dict aliases for collaborators) ---

_LABEL_ALIASES: Tuple[Tuple[str, Callable[[str], bool]], ...] = (
    ("email", lambda l: "email" in l),
    ("phone", lambda l: "phone" in l or "tel" in l),
    ("name", lambda l: "name" in l and "first" not in l and "last" not in l),
    ("firstName", lambda l: "first name" in l),
    ("lastName", lambda l: "last name" in l),
    ("company", lambda l: "company" in l or "organization" in l or "business" in l),
)


def map_field_ids(fields: Optional[Sequence[FieldLike]], data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Copy a submission and add alias keys for every answered field.

    Aliases: stable id, mapping, camelCase label, label vocabulary keys and type keys.
    Original entries are never overwritten by an alias of a different field's value.

    The label vocabulary here is wider than the one `stable_keys.assign_stable_key` uses:
    "organization" and "business" labels also alias to `company`.
    """
    src = data if isinstance(data, dict) else {}
    out: Dict[str, Any] = dict(src)
    for f in as_fields(fields):
        if not f.id or f.id not in src:
            continue
        value = src[f.id]
        aliases: List[str] = []
        if f.stable_id:
            aliases.append(f.stable_id)
        if f.mapping:
            aliases.append(f.mapping)
        if f.label:
            camel = to_camel_case(f.label)
            if camel and camel != f.mapping:
                aliases.append(camel)
            lbl = f.label.lower()
            aliases.extend(alias for alias, test in _LABEL_ALIASES if test(lbl))
        if f.type == "email":
            aliases.append("email")
        elif f.type in {"tel", "phone"}:
            aliases.append("phone")
        elif f.type == "name":
            aliases.append("name")
        for alias in aliases:
            if alias in src:
                continue
            out[alias] = value
    if "email" not in out:
        for k, v in src.items():
            if isinstance(k, str) and "email" in k.lower() and isinstance(v, str) and "@" in v:
                out["email"] = v
                break
    return out


def map_single_field_id(field_id: str, fields: Optional[Sequence[FieldLike]]) -> str:
    """Ephemeral id -> stable id, else mapping, else camelCase label, else the id itself."""
    for f in as_fields(fields):
        if f.id != field_id:
            continue
        if f.stable_id:
            return f.stable_id
        if f.mapping:
            return f.mapping
        camel = to_camel_case(f.label) if f.label else ""
        return camel or field_id
    return field_id


__all__ = [
    "MAPPED_FIELDS_KEY",
    "RESOLUTION_TIERS",
    "FieldResolver",
    "Resolution",
    "Tier",
    "data_key_containment_tier",
    "direct_tier",
    "field_containment_tier",
    "label_tier",
    "labelled_value_tier",
    "map_field_ids",
    "map_single_field_id",
    "mapped_display_key_tier",
    "mapping_tier",
    "prefixed_key_tier",
    "resolve",
    "semantic_tier",
    "similarity_score",
    "similarity_tier",
    "stable_id_tier",
]

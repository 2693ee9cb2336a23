"""
Public-form field visibility (`conditionalLogic: {when, action}`).

This is deliberately looser than the email rule evaluator: string answers are compared
through several separator spellings ("Sa - Non-SA" vs "sa_non_sa"), and a field whose
controlling answer is missing or empty is shown only when the action is "hide".
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from form_rules.conditions import canonical_operator, parse_number
from form_rules.config import DEFAULT_SIMILARITY_THRESHOLD
from form_rules.diagnostics import DiagnosticSink
from form_rules.resolver import (
    FieldResolver,
    Resolution,
    Tier,
    data_key_containment_tier,
    direct_tier,
    field_containment_tier,
    label_tier,
    similarity_tier,
    stable_id_tier,
)
from form_rules.schemas.fields import FieldLike, as_field
from form_rules.schemas.rules import VisibilityWhen

# (tier, which part of `when` it is fed)
VISIBILITY_STEPS: Tuple[Tuple[Tier, str], ...] = (
    (direct_tier, "field"),
    (label_tier, "field_label"),
    (stable_id_tier, "field"),
    (field_containment_tier, "field"),
    (data_key_containment_tier, "field"),
    (similarity_tier, "field"),
)


def _spaced(t: str) -> str:
    return t.replace("_", " ").replace("-", " ")


def _dashed(t: str) -> str:
    return t.replace("_", "-").replace(" ", "-")


def _underscored(t: str) -> str:
    return t.replace("-", "_").replace(" ", "_")


def _standardized(t: str) -> str:
    return re.sub(r"\s+", " ", _spaced(t)).strip()


def _stripped(t: str) -> str:
    return re.sub(r"\s+", "", t.replace("_", "").replace("-", ""))


def _text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def normalize_value_for_comparison(value: Any, condition_value: str) -> str:
    """
    Return `condition_value` when `value` is the same answer spelled differently, else the
    value as text.

    Tried in order: case-insensitive exact, spaced / dashed / underscored variants, collapsed
    whitespace, containment either way, and finally all separators removed.
    """
    if value is None or value == "" or value is False:
        return ""
    v = _text(value).lower()
    c = str(condition_value or "").lower()

    for variant in (lambda t: t, _spaced, _dashed, _underscored, _standardized):
        if variant(v) == variant(c):
            return condition_value
    sv, sc = _standardized(v), _standardized(c)
    if sc in sv or sv in sc:
        return condition_value
    if _stripped(v) == _stripped(c):
        return condition_value
    return _text(value)


def _parse_date(text: str) -> Optional[datetime]:
    t = text.strip()
    if not t:
        return None
    if t.endswith("Z"):
        t = t[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(t)
    except ValueError:
        return None


def _compare_string(current: str, operator: str, expected: str) -> bool:
    normalized = normalize_value_for_comparison(current, expected).lower()
    wanted = expected.lower()
    if operator == "equals":
        return normalized == wanted
    if operator == "notEquals":
        return normalized != wanted
    if operator == "contains":
        return wanted in normalized
    if operator == "notContains":
        return wanted not in normalized
    return False


def _compare_list(current: Sequence[Any], operator: str, expected: str) -> bool:
    wanted = expected.lower()
    items = [item.lower() for item in current if isinstance(item, str)]
    if operator == "equals":
        return any(item == wanted for item in items)
    if operator == "notEquals":
        return not any(item == wanted for item in items)
    if operator == "contains":
        return any(wanted in item for item in items)
    if operator == "notContains":
        return not any(wanted in item for item in items)
    return False


def _compare_date(current: date, operator: str, expected: str) -> bool:
    other = _parse_date(expected)
    if other is None:
        return False
    if not isinstance(current, datetime):
        current = datetime(current.year, current.month, current.day)
    if operator == "equals":
        return current.date() == other.date()
    if operator == "notEquals":
        return current.date() != other.date()
    # naive and aware datetimes do not order against each other
    if (current.tzinfo is None) != (other.tzinfo is None):
        current, other = current.replace(tzinfo=None), other.replace(tzinfo=None)
    if operator == "lessThan":
        return current < other
    if operator == "greaterThan":
        return current > other
    return False


def _compare_number(current: float, operator: str, expected: str) -> bool:
    n = parse_number(expected)
    if operator == "equals":
        return current == n
    if operator == "notEquals":
        return current != n
    if operator == "greaterThan":
        return current > n
    if operator == "lessThan":
        return current < n
    return False


def _compare_fallback(current: Any, operator: str, expected: str) -> bool:
    cur = _text(current).lower()
    exp = expected.lower()
    variants = (lambda t: t, _spaced, _dashed, _underscored)
    is_equal = any(f(cur) == f(exp) for f in variants)
    does_contain = any(f(exp) in f(cur) for f in variants)
    if operator == "equals":
        return is_equal
    if operator == "notEquals":
        return not is_equal
    if operator == "contains":
        return does_contain
    if operator == "notContains":
        return not does_contain
    if operator == "isEmpty":
        return cur == ""
    if operator == "isNotEmpty":
        return cur != ""
    return False


def compare_answer(current: Any, operator: Any, expected: Any) -> bool:
    """Apply a visibility operator to a submitted answer, branching on the answer's type."""
    op = canonical_operator(operator)
    exp = _text(expected)
    if isinstance(current, str):
        return _compare_string(current, op, exp)
    if isinstance(current, (list, tuple)):
        return _compare_list(current, op, exp)
    if isinstance(current, (date, datetime)):
        return _compare_date(current, op, exp)
    if isinstance(current, (int, float)) and not isinstance(current, bool):
        return _compare_number(float(current), op, exp)
    return _compare_fallback(current, op, exp)


def locate_controlling_value(r: FieldResolver, when: VisibilityWhen) -> Optional[Resolution]:
    """Find the answer a visibility rule depends on; ids first, fuzzy matching last."""
    for tier, part in VISIBILITY_STEPS:
        key = (when.field if part == "field" else when.field_label) or ""
        key = key.strip()
        if not key:
            continue
        found = tier(r, key)
        if found is not None:
            return found
    return None


def should_show_field(
    field: FieldLike,
    data: Optional[Dict[str, Any]],
    fields: Optional[Sequence[FieldLike]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> bool:
    f = as_field(field)
    if f is None or f.conditional_logic is None:
        return True
    logic = f.conditional_logic
    hide_action = logic.action == "hide"

    r = resolver or FieldResolver(fields, data, similarity_threshold=similarity_threshold, sink=sink)
    found = locate_controlling_value(r, logic.when)
    if found is None:
        r.sink.emit("info", "Visibility source field not found", field=f.id, source=logic.when.field)
        return hide_action
    current = found.value
    if current is None or current == "":
        return hide_action

    matched = compare_answer(current, logic.when.operator, logic.when.value)
    r.sink.emit(
        "debug",
        "Visibility evaluated",
        field=f.id,
        source=found.key_used,
        tier=found.tier,
        matched=matched,
        action=logic.action,
    )
    return matched if logic.action == "show" else not matched


def visible_field_ids(
    fields: Optional[Sequence[FieldLike]],
    data: Optional[Dict[str, Any]],
    *,
    sink: Optional[DiagnosticSink] = None,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[str]:
    """Ids of the fields a respondent currently sees, in form order."""
    r = FieldResolver(fields, data, similarity_threshold=similarity_threshold, sink=sink)
    return [f.id for f in r.fields if should_show_field(f, data, resolver=r)]


__all__ = [
    "VISIBILITY_STEPS",
    "compare_answer",
    "locate_controlling_value",
    "normalize_value_for_comparison",
    "should_show_field",
    "visible_field_ids",
]

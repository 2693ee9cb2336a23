"""
Condition trees for email rules.

Stored rule conditions come in a few shapes (a flat list meaning AND, an `{operator,
conditions}` group, a single bare condition, or any of those JSON-encoded). They are parsed
once into a small tagged union and evaluated against one submission. Nothing here raises on
bad input: malformed pieces evaluate to False and leave a diagnostic.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from form_rules.diagnostics import DiagnosticSink, default_sink
from form_rules.resolver import FieldResolver
from form_rules.schemas.fields import FieldLike
from form_rules.schemas.rules import Condition


@dataclass(frozen=True)
class Empty:
    """No conditions at all: always matches."""


@dataclass(frozen=True)
class Leaf:
    condition: Condition


@dataclass(frozen=True)
class AllOf:
    children: Tuple["ConditionNode", ...]


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["ConditionNode", ...]


@dataclass(frozen=True)
class Invalid:
    reason: str
    raw: Any = None


ConditionNode = Union[Empty, Leaf, AllOf, AnyOf, Invalid]

_NODE_TYPES = (Empty, Leaf, AllOf, AnyOf, Invalid)
_CONDITION_KEYS = {"field", "fieldId", "stableId", "label", "operator", "value"}


def _parse_dict(raw: Dict[str, Any]) -> ConditionNode:
    if not raw:
        return Empty()
    group_op = str(raw.get("operator") or "").strip().lower()
    if "conditions" in raw:
        children = raw.get("conditions")
        if group_op not in {"and", "or"} or not isinstance(children, list):
            return Invalid("group needs operator 'and'|'or' and a conditions list", raw)
        if not children:
            return Empty()
        parsed = tuple(_parse_node(c) for c in children)
        return AllOf(parsed) if group_op == "and" else AnyOf(parsed)
    if group_op in {"and", "or"}:
        return Invalid("group without conditions", raw)
    if not _CONDITION_KEYS.intersection(raw.keys()):
        return Invalid("not a condition", raw)
    try:
        return Leaf(Condition.model_validate(raw))
    except ValidationError as e:
        return Invalid(f"condition failed validation: {e.error_count()} error(s)", raw)


def _parse_node(raw: Any) -> ConditionNode:
    if isinstance(raw, _NODE_TYPES):
        return raw
    if isinstance(raw, Condition):
        return Leaf(raw)
    if isinstance(raw, dict):
        return _parse_dict(raw)
    if isinstance(raw, (list, tuple)):
        if not raw:
            return Empty()
        return AllOf(tuple(_parse_node(c) for c in raw))
    return Invalid(f"unsupported condition shape: {type(raw).__name__}", raw)


def parse_condition_group(raw: Any, *, sink: Optional[DiagnosticSink] = None) -> ConditionNode:
    """
    Parse stored conditions into a condition tree.

    `None`, `""`, `[]` and `{}` mean "no conditions". A JSON string is decoded first; a
    string that is not valid JSON is treated as absent.
    """
    if raw is None:
        return Empty()
    if isinstance(raw, str):
        t = raw.strip()
        if not t or t == "null":
            return Empty()
        try:
            raw = json.loads(t)
        except ValueError:
            (sink or default_sink()).emit("warning", "Unparsable conditions JSON, treating as absent")
            return Empty()
    return _parse_node(raw)


def has_conditions(raw: Any) -> bool:
    return not isinstance(parse_condition_group(raw), Empty)


# --- operators ---


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _text(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


_NUMERIC_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(v: Any) -> float:
    """Permissive numeric parse: leading number of a string, NaN when there is none."""
    if _is_number(v):
        return float(v)
    if not isinstance(v, str):
        return math.nan
    t = v.strip()
    m = _NUMERIC_PREFIX.match(t)
    if m:
        return float(m.group(0))
    if t.startswith(("Infinity", "+Infinity")):
        return math.inf
    if t.startswith("-Infinity"):
        return -math.inf
    return math.nan


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without coercion: `"5" != 5`, `True != 1`, containers never equal."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is None and b is None


def _member(items: Sequence[Any], expected: Any) -> bool:
    if expected is None:
        return False
    wanted = _text(expected)
    return any(strict_equals(item, expected) or (isinstance(item, str) and item == wanted) for item in items)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return expected is not None and _text(expected) in actual
    if isinstance(actual, (list, tuple)):
        return _member(actual, expected)
    return False


def _not_contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return expected is not None and _text(expected) not in actual
    if isinstance(actual, (list, tuple)):
        return expected is not None and not _member(actual, expected)
    return False


def _starts_with(actual: Any, expected: Any) -> bool:
    return isinstance(actual, str) and expected is not None and actual.startswith(_text(expected))


def _ends_with(actual: Any, expected: Any) -> bool:
    return isinstance(actual, str) and expected is not None and actual.endswith(_text(expected))


def _is_empty(actual: Any, expected: Any) -> bool:
    return actual is None or actual == ""


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": strict_equals,
    "notEquals": lambda a, b: not strict_equals(a, b),
    "contains": _contains,
    "notContains": _not_contains,
    "startsWith": _starts_with,
    "endsWith": _ends_with,
    "greaterThan": lambda a, b: parse_number(a) > parse_number(b),
    "lessThan": lambda a, b: parse_number(a) < parse_number(b),
    "isEmpty": _is_empty,
    "isNotEmpty": lambda a, b: not _is_empty(a, b),
}

_OPERATOR_ALIASES = {
    "not_equals": "notEquals",
    "not_contains": "notContains",
    "starts_with": "startsWith",
    "ends_with": "endsWith",
    "greater_than": "greaterThan",
    "less_than": "lessThan",
    "is_empty": "isEmpty",
    "is_not_empty": "isNotEmpty",
}


def canonical_operator(op: Any) -> str:
    t = str(op or "").strip()
    return _OPERATOR_ALIASES.get(t, t)


def apply_operator(operator: Any, actual: Any, expected: Any) -> bool:
    fn = OPERATORS.get(canonical_operator(operator))
    if fn is None:
        return False
    return bool(fn(actual, expected))


# --- evaluation ---


def _as_condition(raw: Any) -> Optional[Condition]:
    if isinstance(raw, Condition):
        return raw
    if isinstance(raw, Leaf):
        return raw.condition
    if not isinstance(raw, dict):
        return None
    try:
        return Condition.model_validate(raw)
    except ValidationError:
        return None


def evaluate_condition(
    condition: Any,
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
) -> bool:
    """
    Evaluate one leaf condition.

    The condition must carry its primary id, `stableId` and `label`; the field value is
    looked up through all three. An absent field fails the condition (absence is not
    equality-to-empty).
    """
    sink = sink or (resolver.sink if resolver is not None else default_sink())
    cond = _as_condition(condition)
    if cond is None or not cond.is_well_formed():
        sink.emit("warning", "Rejected malformed condition", condition=condition)
        return False

    operator = canonical_operator(cond.operator)
    if operator not in OPERATORS:
        sink.emit("warning", "Unknown operator", operator=cond.operator)
        return False

    r = resolver or FieldResolver(fields, data, sink=sink)
    found = r.lookup_any(cond.identifiers())
    if found is None:
        sink.emit("info", "Field not found for condition", identifiers=cond.identifiers())
        return False

    result = apply_operator(operator, found.value, cond.value)
    sink.emit(
        "debug",
        "Condition evaluated",
        field=found.key_used,
        tier=found.tier,
        operator=operator,
        expected=cond.value,
        result=result,
    )
    return result


def _evaluate_node(node: ConditionNode, resolver: FieldResolver, sink: DiagnosticSink) -> bool:
    if isinstance(node, Empty):
        return True
    if isinstance(node, Leaf):
        return evaluate_condition(node.condition, resolver=resolver, sink=sink)
    if isinstance(node, AllOf):
        for child in node.children:
            if not _evaluate_node(child, resolver, sink):
                return False
        return True
    if isinstance(node, AnyOf):
        for child in node.children:
            if _evaluate_node(child, resolver, sink):
                return True
        return False
    sink.emit("warning", "Invalid condition group", reason=getattr(node, "reason", ""))
    return False


def evaluate_group(
    group: Any,
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
) -> bool:
    """
    Evaluate a condition group (raw or already parsed) against one submission.

    - no conditions                    -> True
    - flat list / {operator: "and"}    -> AND, stops at the first failing child
    - {operator: "or"}                 -> OR, stops at the first passing child
    - bare condition                   -> that condition
    - anything else                    -> False
    """
    sink = sink or (resolver.sink if resolver is not None else default_sink())
    node = parse_condition_group(group, sink=sink)
    if isinstance(node, Empty):
        return True
    r = resolver or FieldResolver(fields, data, sink=sink)
    return _evaluate_node(node, r, sink)


__all__ = [
    "OPERATORS",
    "AllOf",
    "AnyOf",
    "ConditionNode",
    "Empty",
    "Invalid",
    "Leaf",
    "apply_operator",
    "canonical_operator",
    "evaluate_condition",
    "evaluate_group",
    "has_conditions",
    "parse_condition_group",
    "parse_number",
    "strict_equals",
]

import json

from form_rules import conditions
from form_rules.conditions import (
    AllOf,
    AnyOf,
    Empty,
    Invalid,
    Leaf,
    evaluate_condition,
    evaluate_group,
    parse_condition_group,
    parse_number,
)
from form_rules.diagnostics import CollectingSink

FIELDS = [
    {"id": "f_1", "label": "Budget", "stableId": "budget"},
    {"id": "f_2", "label": "Service", "stableId": "service"},
]
DATA = {"f_1": "5000", "f_2": "Roofing"}


def _cond(operator, value, field="f_2", stable_id="service", label="Service"):
    return {"field": field, "stableId": stable_id, "label": label, "operator": operator, "value": value}


TRUE = _cond("equals", "Roofing")
FALSE = _cond("equals", "Siding")


def test_equals_and_not_equals():
    assert evaluate_condition(TRUE, FIELDS, DATA)
    assert not evaluate_condition(FALSE, FIELDS, DATA)
    assert evaluate_condition(_cond("notEquals", "Siding"), FIELDS, DATA)


def test_equals_is_strict():
    data = {"f_1": 5000, "f_2": True}
    budget = dict(field="f_1", stable_id="budget", label="Budget")
    assert not evaluate_condition(_cond("equals", "5000", **budget), FIELDS, data)
    assert evaluate_condition(_cond("notEquals", "5000", **budget), FIELDS, data)
    assert evaluate_condition(_cond("equals", 5000, **budget), FIELDS, data)
    assert evaluate_condition(_cond("equals", 5000.0, **budget), FIELDS, data)
    assert not evaluate_condition(_cond("equals", 1), FIELDS, data)
    assert evaluate_condition(_cond("equals", True), FIELDS, data)


def test_falls_back_to_stable_id_then_label():
    moved = _cond("equals", "Roofing", field="item_old")
    assert evaluate_condition(moved, FIELDS, DATA)
    relabelled = _cond("equals", "Roofing", field="gone", stable_id="gone2", label="Service")
    assert evaluate_condition(relabelled, FIELDS, DATA)


def test_malformed_conditions_are_rejected():
    sink = CollectingSink()
    no_stable = {"field": "f_2", "label": "Service", "operator": "equals", "value": "Roofing"}
    no_label = {"field": "f_2", "stableId": "service", "operator": "equals", "value": "Roofing"}
    no_value = {"field": "f_2", "stableId": "service", "label": "Service", "operator": "equals"}
    legacy = {"fieldStableId": "service", "fieldLabel": "Service", "operator": "equals", "value": "Roofing"}
    for cond in (no_stable, no_label, no_value, legacy, "junk", None):
        assert not evaluate_condition(cond, FIELDS, DATA, sink=sink)
    assert sink.messages("warning").count("Rejected malformed condition") == 6


def test_field_id_alias_is_a_primary_key():
    cond = {"fieldId": "f_2", "stableId": "service", "label": "Service", "operator": "equals", "value": "Roofing"}
    assert evaluate_condition(cond, FIELDS, DATA)


def test_absent_field_fails_even_is_empty():
    cond = _cond("isEmpty", "", field="missing", stable_id="missing", label="Missing")
    assert not evaluate_condition(cond, [], {"zzz": 1})


def test_string_operators():
    assert evaluate_condition(_cond("contains", "oof"), FIELDS, DATA)
    assert evaluate_condition(_cond("notContains", "xyz"), FIELDS, DATA)
    assert evaluate_condition(_cond("startsWith", "Roo"), FIELDS, DATA)
    assert evaluate_condition(_cond("endsWith", "ing"), FIELDS, DATA)
    assert not evaluate_condition(_cond("startsWith", "ing"), FIELDS, DATA)


def test_contains_on_lists():
    data = {"f_2": ["Roofing", "5"]}
    assert evaluate_condition(_cond("contains", "Roofing"), FIELDS, data)
    assert evaluate_condition(_cond("contains", 5), FIELDS, data)
    assert evaluate_condition(_cond("notContains", "Siding"), FIELDS, data)
    assert not evaluate_condition(_cond("contains", "Roof"), FIELDS, data)


def test_contains_on_other_types_is_false_both_ways():
    data = {"f_2": 42}
    assert not evaluate_condition(_cond("contains", "4"), FIELDS, data)
    assert not evaluate_condition(_cond("notContains", "4"), FIELDS, data)


def test_numeric_operators():
    budget = dict(field="f_1", stable_id="budget", label="Budget")
    assert evaluate_condition(_cond("greaterThan", "4000", **budget), FIELDS, DATA)
    assert evaluate_condition(_cond("lessThan", 6000, **budget), FIELDS, DATA)
    assert evaluate_condition(_cond("greaterThan", 4999, **budget), FIELDS, {"f_1": "5000abc"})
    assert not evaluate_condition(_cond("greaterThan", 1, **budget), FIELDS, {"f_1": "abc"})
    assert not evaluate_condition(_cond("lessThan", 1, **budget), FIELDS, {"f_1": "abc"})


def test_parse_number():
    assert parse_number("12.5kg") == 12.5
    assert parse_number(" -3") == -3.0
    assert parse_number(".5") == 0.5
    assert parse_number(7) == 7.0
    assert parse_number("Infinity") == float("inf")
    for bad in ("abc", "", None, True, [1]):
        n = parse_number(bad)
        assert n != n


def test_empty_operators():
    assert evaluate_condition(_cond("isEmpty", None), FIELDS, {"f_2": ""})
    assert evaluate_condition(_cond("isEmpty", None), FIELDS, {"f_2": None})
    assert not evaluate_condition(_cond("isEmpty", None), FIELDS, {"f_2": "0"})
    assert evaluate_condition(_cond("isNotEmpty", None), FIELDS, {"f_2": 0})


def test_unknown_operator_and_snake_case_aliases():
    sink = CollectingSink()
    assert not evaluate_condition(_cond("matches", "Roofing"), FIELDS, DATA, sink=sink)
    assert "Unknown operator" in sink.messages("warning")
    budget = dict(field="f_1", stable_id="budget", label="Budget")
    assert evaluate_condition(_cond("greater_than", "10", **budget), FIELDS, DATA)
    assert evaluate_condition(_cond("not_equals", "Siding"), FIELDS, DATA)


def test_parse_condition_group_shapes():
    assert isinstance(parse_condition_group(None), Empty)
    assert isinstance(parse_condition_group(""), Empty)
    assert isinstance(parse_condition_group([]), Empty)
    assert isinstance(parse_condition_group({}), Empty)
    assert isinstance(parse_condition_group("{not json"), Empty)
    assert isinstance(parse_condition_group([TRUE]), AllOf)
    assert isinstance(parse_condition_group({"operator": "AND", "conditions": [TRUE]}), AllOf)
    assert isinstance(parse_condition_group({"operator": "or", "conditions": [TRUE]}), AnyOf)
    assert isinstance(parse_condition_group(TRUE), Leaf)
    assert isinstance(parse_condition_group(json.dumps([TRUE])), AllOf)
    assert isinstance(parse_condition_group(42), Invalid)
    assert isinstance(parse_condition_group({"operator": "xor", "conditions": [TRUE]}), Invalid)
    assert isinstance(parse_condition_group({"operator": "and"}), Invalid)
    assert isinstance(parse_condition_group({"foo": "bar"}), Invalid)


def test_evaluate_group_empty_is_true():
    for group in (None, [], "", "not json", {}, {"operator": "or", "conditions": []}):
        assert evaluate_group(group, FIELDS, DATA)


def test_evaluate_group_and_or():
    assert evaluate_group([TRUE, TRUE], FIELDS, DATA)
    assert not evaluate_group([TRUE, FALSE], FIELDS, DATA)
    assert evaluate_group({"operator": "and", "conditions": [TRUE, TRUE]}, FIELDS, DATA)
    assert evaluate_group({"operator": "or", "conditions": [FALSE, TRUE]}, FIELDS, DATA)
    assert not evaluate_group({"operator": "or", "conditions": [FALSE, FALSE]}, FIELDS, DATA)
    assert evaluate_group(TRUE, FIELDS, DATA)
    assert not evaluate_group(FALSE, FIELDS, DATA)


def test_evaluate_group_nested_and_encoded():
    group = {"operator": "and", "conditions": [TRUE, {"operator": "or", "conditions": [FALSE, TRUE]}]}
    assert evaluate_group(group, FIELDS, DATA)
    assert evaluate_group(json.dumps(group), FIELDS, DATA)


def test_evaluate_group_invalid_shape_is_false():
    sink = CollectingSink()
    assert not evaluate_group(42, FIELDS, DATA, sink=sink)
    assert not evaluate_group({"operator": "xor", "conditions": [TRUE]}, FIELDS, DATA, sink=sink)
    assert not evaluate_group([TRUE, {"foo": "bar"}], FIELDS, DATA, sink=sink)
    assert "Invalid condition group" in sink.messages("warning")


def test_evaluate_group_short_circuits(monkeypatch):
    calls = []
    real = conditions.evaluate_condition

    def counting(condition, *args, **kwargs):
        calls.append(condition)
        return real(condition, *args, **kwargs)

    monkeypatch.setattr(conditions, "evaluate_condition", counting)

    assert not evaluate_group([FALSE, TRUE, TRUE], FIELDS, DATA)
    assert len(calls) == 1

    calls.clear()
    assert evaluate_group({"operator": "or", "conditions": [TRUE, FALSE, FALSE]}, FIELDS, DATA)
    assert len(calls) == 1

from datetime import date

from form_rules.diagnostics import CollectingSink
from form_rules.visibility import (
    compare_answer,
    normalize_value_for_comparison,
    should_show_field,
    visible_field_ids,
)


def _fields(operator="equals", value="Roof Repair", action="show", source_id="svc"):
    return [
        {"id": source_id, "label": "Service Type"},
        {
            "id": "roof",
            "label": "Roof Size",
            "conditionalLogic": {
                "when": {"field": "svc", "fieldLabel": "Service Type", "operator": operator, "value": value},
                "action": action,
            },
        },
    ]


def _show(data, **kwargs):
    fields = _fields(**kwargs)
    return should_show_field(fields[1], data, fields)


def test_field_without_logic_is_shown():
    assert should_show_field({"id": "x", "label": "X"}, {}, [])
    assert should_show_field({"id": "x", "conditionalLogic": "{broken"}, {}, [])


def test_show_when_answer_matches_in_another_spelling():
    assert _show({"svc": "roof_repair"})
    assert _show({"svc": "ROOF-REPAIR"})
    assert not _show({"svc": "Gutters"})


def test_hide_action_inverts():
    assert not _show({"svc": "Roof Repair"}, action="hide")
    assert _show({"svc": "Gutters"}, action="hide")


def test_missing_or_empty_source_defaults_by_action():
    assert not _show({})
    assert _show({}, action="hide")
    assert not _show({"svc": ""})
    assert _show({"svc": None}, action="hide")


def test_source_found_by_label_after_id_change():
    assert _show({"new_id_123": "Roof Repair"}, source_id="new_id_123")


def test_missing_source_leaves_a_diagnostic():
    sink = CollectingSink()
    fields = _fields()
    assert not should_show_field(fields[1], {}, fields, sink=sink)
    assert "Visibility source field not found" in sink.messages("info")


def test_list_answers():
    assert _show({"svc": ["Siding", "roof repair"]})
    assert _show({"svc": ["Siding"]}, operator="not_equals")
    assert _show({"svc": ["Metal Roof Repair"]}, operator="contains", value="roof")
    assert not _show({"svc": ["Siding"]}, operator="contains", value="roof")


def test_number_answers():
    assert _show({"svc": 12}, operator="greater_than", value="10")
    assert not _show({"svc": 8}, operator="greaterThan", value="10")
    assert _show({"svc": 3}, operator="equals", value="3")


def test_date_answers():
    assert _show({"svc": date(2024, 5, 1)}, operator="less_than", value="2024-06-01")
    assert _show({"svc": date(2024, 5, 1)}, operator="equals", value="2024-05-01T10:00:00Z")
    assert not _show({"svc": date(2024, 5, 1)}, operator="greater_than", value="not a date")


def test_fallback_comparison_for_other_types():
    assert compare_answer(True, "equals", "true")
    assert compare_answer({"a": 1}, "contains", "a")
    assert compare_answer(False, "is_not_empty", "")
    assert not compare_answer(True, "sounds_like", "true")


def test_normalize_value_for_comparison():
    assert normalize_value_for_comparison("Sa - Non-SA", "sa-non-sa") == "sa-non-sa"
    assert normalize_value_for_comparison("roof_repair", "Roof Repair") == "Roof Repair"
    assert normalize_value_for_comparison("Blue", "Red") == "Blue"
    assert normalize_value_for_comparison("", "Red") == ""
    assert normalize_value_for_comparison("nonsa", "Non-SA") == "Non-SA"


def test_visible_field_ids():
    fields = _fields()
    assert visible_field_ids(fields, {"svc": "Gutters"}) == ["svc"]
    assert visible_field_ids(fields, {"svc": "Roof Repair"}) == ["svc", "roof"]


def test_loose_when_keys_are_coerced_not_fatal():
    fields = [
        {"id": "f1", "label": "Service"},
        {
            "id": "f2",
            "label": "Budget",
            "stableId": "budget",
            "conditionalLogic": {"when": {"field": "f1", "fieldLabel": 5, "operator": None, "value": "Roofing"}},
        },
    ]
    data = {"f1": "Roofing", "f2": "5000"}
    assert visible_field_ids(fields, data) == ["f1", "f2"]
    assert visible_field_ids(fields, {"f1": "Siding"}) == ["f1"]

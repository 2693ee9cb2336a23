from form_rules.resolver import FieldResolver
from form_rules.templates import extract_variables, format_value, interpolate

FIELDS = [{"id": "n1", "stableId": "name"}, {"id": "s1", "label": "Service", "stableId": "service"}]
DATA = {"n1": "Ada", "s1": "Roofing"}


def _fixed_clock():
    return 1700000000.5


def test_no_placeholders_is_identity():
    assert interpolate("Plain text", FIELDS, DATA) == "Plain text"
    assert interpolate("", FIELDS, DATA) == ""
    assert interpolate("{ single }", FIELDS, DATA) == "{ single }"


def test_hello_name():
    assert interpolate("Hello {{name}}", FIELDS, DATA) == "Hello Ada"


def test_whitespace_inside_braces_and_repeats():
    assert interpolate("{{ name }} / {{name}} / {{  name}}", FIELDS, DATA) == "Ada / Ada / Ada"


def test_unresolved_placeholder_becomes_empty():
    assert interpolate("Hi {{unknownThing}}!", FIELDS, DATA) == "Hi !"


def test_result_does_not_depend_on_placeholder_order():
    a = interpolate("{{service}} for {{name}}", FIELDS, DATA)
    b = interpolate("{{name}} for {{service}}", FIELDS, DATA)
    assert a == "Roofing for Ada"
    assert b == "Ada for Roofing"


def test_extract_variables():
    assert extract_variables("{{a}} {{ b }} {{a}} {{c.d}}") == ["a", "b", "c.d"]
    assert extract_variables(None) == []


def test_mapped_display_key():
    data = {"__mappedFields": {"x": {"displayKey": "Budget", "value": "10k"}}}
    assert interpolate("Budget: {{budget}}", [], data) == "Budget: 10k"


def test_timestamp_uses_the_clock():
    out = interpolate("{{timestamp}}|{{time_stamp}}", FIELDS, DATA, clock=_fixed_clock)
    assert out == "1700000000500|1700000000500"


def test_lead_id_and_tracking_token():
    assert interpolate("{{leadId}}", [], {"id": "abc"}) == "abc"
    assert interpolate("{{leadId}}", [], {"trackingToken": "lead-42-1700"}) == "lead-42"
    assert interpolate("{{trackingToken}}", [], {"trackingToken": "tok-1"}) == "tok-1"
    assert interpolate("{{trackingToken}}", [], {"lead_id": "L9"}, clock=lambda: 2.0) == "L9-2000"
    assert interpolate("{{trackingToken}}", [], {}, clock=lambda: 2.0) == "2000"


def test_format_value():
    assert format_value(None) == ""
    assert format_value(True) == "true"
    assert format_value(False) == "false"
    assert format_value(3.0) == "3"
    assert format_value(2.5) == "2.5"
    assert format_value(["a", "b"]) == "a, b"
    assert format_value({"a": 1}) == '{"a":1}'


def test_shared_resolver():
    r = FieldResolver(FIELDS, DATA)
    assert interpolate("{{service}}", resolver=r) == "Roofing"

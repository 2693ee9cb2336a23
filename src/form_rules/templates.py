from __future__ import annotations

import json
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from form_rules.diagnostics import DiagnosticSink
from form_rules.resolver import FieldResolver
from form_rules.schemas.fields import FieldLike

PLACEHOLDER_RE = re.compile(r"{{\s*([^{}]+?)\s*}}")

_LEAD_ID_KEYS = ("id", "leadId", "lead_id", "submissionId")

Clock = Callable[[], float]


def extract_variables(template: Optional[str]) -> List[str]:
    """Distinct placeholder identifiers, in order of first appearance."""
    out: List[str] = []
    for m in PLACEHOLDER_RE.finditer(template or ""):
        name = m.group(1).strip()
        if name and name not in out:
            out.append(name)
    return out


def format_value(value: Any) -> str:
    """String form used in rendered emails."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def _timestamp_ms(clock: Clock) -> str:
    return str(int(clock() * 1000))


def _lead_id(data: Dict[str, Any]) -> Optional[str]:
    for k in _LEAD_ID_KEYS:
        v = data.get(k)
        if v not in (None, ""):
            return format_value(v)
    token = data.get("trackingToken")
    if isinstance(token, str) and "-" in token:
        # token format: <leadId>-<timestamp>
        return token.rsplit("-", 1)[0] or None
    return None


def _special_value(name: str, r: FieldResolver, clock: Clock) -> Optional[str]:
    low = name.lower()
    if low in {"timestamp", "time_stamp"}:
        return _timestamp_ms(clock)
    if low == "leadid":
        return _lead_id(r.data)
    if low == "trackingtoken":
        token = r.data.get("trackingToken")
        if isinstance(token, str) and token:
            return token
        lead_id = _lead_id(r.data)
        ts = _timestamp_ms(clock)
        return f"{lead_id}-{ts}" if lead_id else ts
    return None


def interpolate(
    template: Optional[str],
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
    clock: Optional[Clock] = None,
) -> str:
    """
    Replace every `{{identifier}}` with the submitted value of that field.

    Identifiers are resolved once each (`FieldResolver`), so the result does not depend on
    placeholder order. Unresolved placeholders become empty strings. `timestamp`,
    `leadId` and `trackingToken` are computed from the submission and `clock`
    (epoch seconds, `time.time` by default).
    """
    if not template or "{{" not in template:
        return template or ""
    names = extract_variables(template)
    if not names:
        return template

    r = resolver or FieldResolver(fields, data, sink=sink)
    now = clock or time.time
    values: Dict[str, str] = {}
    for name in names:
        special = _special_value(name, r, now)
        if special is not None:
            values[name] = special
            continue
        found = r.lookup(name)
        if found is None:
            r.sink.emit("info", "No value for template variable", variable=name)
            values[name] = ""
        else:
            values[name] = format_value(found.value)

    return PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1).strip(), ""), template)


__all__ = ["PLACEHOLDER_RE", "extract_variables", "format_value", "interpolate"]

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional


def _safe_json_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _scalar_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    return None


def _first_text(opt: Dict[str, Any], *keys: str) -> str:
    for k in keys:
        t = _scalar_text(opt.get(k))
        if t:
            return t
    return ""


def normalize_option(opt: Any) -> Optional[Dict[str, str]]:
    """
    Normalize a single option entry into `{ "value": str, "label": str }`.

    Returns None for entries that carry no usable text.
    """
    text = _scalar_text(opt)
    if text is not None:
        return {"value": text, "label": text} if text else None
    if not isinstance(opt, dict):
        return None

    label = _first_text(opt, "label", "name", "text", "value", "id")
    value = _first_text(opt, "value", "id", "label", "name", "text")
    if not label and not value:
        return None
    return {"value": value or label, "label": label or value}


def normalize_options(options: Any) -> List[Dict[str, str]]:
    """
    Normalize field options into the canonical object form:
      [{ "value": str, "label": str }, ...]

    Accepted source encodings:
      - JSON string of either of the shapes below (unparsable JSON -> [])
      - list of strings / numbers / option objects
      - keyed map `{value: label}`, or a wrapper `{ "options": [...] }`
    """
    if options is None:
        return []
    if isinstance(options, str):
        t = options.strip()
        if not t:
            return []
        parsed = _safe_json_loads(t)
        if not isinstance(parsed, (list, dict)):
            return []
        options = parsed

    if isinstance(options, dict):
        nested = options.get("options")
        if isinstance(nested, list):
            options = nested
        else:
            out: List[Dict[str, str]] = []
            for k, v in options.items():
                key = str(k).strip()
                if not key:
                    continue
                label = v.strip() if isinstance(v, str) and v.strip() else key
                out.append({"value": key, "label": label})
            return out

    if not isinstance(options, (list, tuple)):
        return []

    out = []
    for opt in options:
        norm = normalize_option(opt)
        if norm is not None:
            out.append(norm)
    return out


__all__ = ["normalize_option", "normalize_options"]

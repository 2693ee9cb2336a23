from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from form_rules.config import Settings, configure_logging, load_settings
from form_rules.diagnostics import CollectingSink, DiagnosticSink, default_sink
from form_rules.email_rules import process_submission
from form_rules.resolver import FieldResolver
from form_rules.schemas.fields import fields_from_form
from form_rules.stable_keys import migrate_sections
from form_rules.templates import interpolate
from form_rules.visibility import visible_field_ids


class FormRulesError(Exception):
    """Input the command line cannot work with (missing file, broken JSON, wrong shape)."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _load_json(path: Optional[str], *, what: str) -> Any:
    if not path:
        raise FormRulesError("missing_argument", f"{what} file is required")
    p = Path(path)
    if not p.is_file():
        raise FormRulesError("file_not_found", f"{what} file not found: {p}")
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except ValueError as e:
        raise FormRulesError("invalid_json", f"{what} file is not valid JSON: {p}: {e}") from e


def _load_data(path: Optional[str]) -> Dict[str, Any]:
    data = _load_json(path, what="data")
    if not isinstance(data, dict):
        raise FormRulesError("invalid_data", "data file must contain a JSON object")
    return data


def _load_rules(path: Optional[str]) -> List[Any]:
    rules = _load_json(path, what="rules")
    if isinstance(rules, dict) and isinstance(rules.get("rules"), list):
        rules = rules["rules"]
    if not isinstance(rules, list):
        raise FormRulesError("invalid_rules", "rules file must contain a list (or {\"rules\": [...]})")
    return rules


def _cmd_stable_ids(args: argparse.Namespace, settings: Settings, sink: DiagnosticSink) -> Dict[str, Any]:
    form = _load_json(args.form, what="form")
    sections = form.get("sections") if isinstance(form, dict) else form
    updated, summary = migrate_sections(sections, dry_run=args.dry_run)
    return {"summary": summary.to_dict(), "sections": updated}


def _cmd_resolve(args: argparse.Namespace, settings: Settings, sink: DiagnosticSink) -> Dict[str, Any]:
    fields = fields_from_form(_load_json(args.form, what="form"))
    r = FieldResolver(fields, _load_data(args.data), similarity_threshold=settings.similarity_threshold, sink=sink)
    found = r.lookup(args.key)
    if found is None:
        return {"key": args.key, "found": False, "value": None}
    return {"key": args.key, "found": True, "value": found.value, "keyUsed": found.key_used, "tier": found.tier}


def _cmd_evaluate(args: argparse.Namespace, settings: Settings, sink: DiagnosticSink) -> Dict[str, Any]:
    fields = fields_from_form(_load_json(args.form, what="form"))
    outcomes = process_submission(
        _load_rules(args.rules),
        fields,
        _load_data(args.data),
        sink=sink,
        similarity_threshold=settings.similarity_threshold,
    )
    return {"outcomes": [o.to_dict() for o in outcomes]}


def _cmd_render(args: argparse.Namespace, settings: Settings, sink: DiagnosticSink) -> Dict[str, Any]:
    fields = fields_from_form(_load_json(args.form, what="form"))
    r = FieldResolver(fields, _load_data(args.data), similarity_threshold=settings.similarity_threshold, sink=sink)
    return {"result": interpolate(args.template, resolver=r)}


def _cmd_visibility(args: argparse.Namespace, settings: Settings, sink: DiagnosticSink) -> Dict[str, Any]:
    fields = fields_from_form(_load_json(args.form, what="form"))
    visible = visible_field_ids(
        fields, _load_data(args.data), sink=sink, similarity_threshold=settings.similarity_threshold
    )
    hidden = [f.id for f in fields if f.id not in visible]
    return {"visible": visible, "hidden": hidden}


Command = Callable[[argparse.Namespace, Settings, DiagnosticSink], Dict[str, Any]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="form-rules", description="Resolve fields and evaluate form rules.")
    parser.add_argument("--debug", action="store_true", help="Include the diagnostic trail in the output.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("stable-ids", help="Assign stable keys to every field of a form.")
    p.add_argument("form", help="Form config JSON (object with sections, or a list of sections).")
    p.add_argument("--dry-run", action="store_true", help="Report what would change without changing it.")
    p.set_defaults(func=_cmd_stable_ids)

    p = sub.add_parser("resolve", help="Resolve one logical key against a submission.")
    p.add_argument("key")
    p.add_argument("--form", required=True)
    p.add_argument("--data", required=True)
    p.set_defaults(func=_cmd_resolve)

    p = sub.add_parser("evaluate", help="Run email rules against a submission.")
    p.add_argument("--form", required=True)
    p.add_argument("--data", required=True)
    p.add_argument("--rules", required=True)
    p.set_defaults(func=_cmd_evaluate)

    p = sub.add_parser("render", help="Interpolate a {{variable}} template.")
    p.add_argument("template")
    p.add_argument("--form", required=True)
    p.add_argument("--data", required=True)
    p.set_defaults(func=_cmd_render)

    p = sub.add_parser("visibility", help="List which fields a submission shows and hides.")
    p.add_argument("--form", required=True)
    p.add_argument("--data", required=True)
    p.set_defaults(func=_cmd_visibility)
    return parser


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str), flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings)

    collector = CollectingSink() if (args.debug or settings.debug) else None
    sink: DiagnosticSink = collector or default_sink()
    func: Command = args.func
    try:
        payload = func(args, settings, sink)
    except FormRulesError as e:
        _emit({"ok": False, "error": e.code, "message": e.message})
        return 2

    out: Dict[str, Any] = {"ok": True}
    out.update(payload)
    if collector is not None:
        out["diagnostics"] = collector.entries
    _emit(out)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Email rule processing for one form submission.

A rule fires when it is active and its condition tree matches. A fired rule needs a
recipient and a template; both are resolved against the same submission the conditions saw.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from form_rules.conditions import evaluate_group, has_conditions
from form_rules.config import DEFAULT_SIMILARITY_THRESHOLD
from form_rules.diagnostics import DiagnosticSink, default_sink
from form_rules.resolver import FieldResolver
from form_rules.schemas.fields import FieldLike
from form_rules.schemas.rules import EmailRule, EmailTemplate
from form_rules.templates import Clock, format_value, interpolate

RECIPIENT_FORM = "form"
RECIPIENT_FIELD = "field"
RECIPIENT_CUSTOM = "custom"
_CUSTOM_ALIASES = {RECIPIENT_CUSTOM, "static"}


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str

    def to_dict(self) -> Dict[str, str]:
        return {"subject": self.subject, "body": self.body}


@dataclass
class RuleOutcome:
    rule_id: str
    rule_name: str = ""
    matched: bool = False
    recipient: Optional[str] = None
    email: Optional[RenderedEmail] = None
    cc: str = ""
    bcc: str = ""
    skipped_reason: Optional[str] = None

    @property
    def sendable(self) -> bool:
        return self.matched and self.skipped_reason is None and self.email is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "matched": self.matched,
            "recipient": self.recipient,
            "email": self.email.to_dict() if self.email else None,
            "cc": self.cc,
            "bcc": self.bcc,
            "skippedReason": self.skipped_reason,
        }


def as_rule(obj: Any, *, sink: Optional[DiagnosticSink] = None) -> Optional[EmailRule]:
    if isinstance(obj, EmailRule):
        return obj
    if not isinstance(obj, dict):
        return None
    try:
        return EmailRule.model_validate(obj)
    except ValidationError as e:
        (sink or default_sink()).emit("warning", "Skipping malformed email rule", id=obj.get("id"), errors=e.error_count())
        return None


def as_rules(items: Optional[Sequence[Any]], *, sink: Optional[DiagnosticSink] = None) -> List[EmailRule]:
    out: List[EmailRule] = []
    for item in items or []:
        rule = as_rule(item, sink=sink)
        if rule is not None:
            out.append(rule)
    return out


def _resolver(
    fields: Optional[Sequence[FieldLike]],
    data: Optional[Dict[str, Any]],
    resolver: Optional[FieldResolver],
    sink: Optional[DiagnosticSink],
) -> FieldResolver:
    return resolver or FieldResolver(fields, data, sink=sink)


def rule_matches(
    rule: Any,
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
) -> bool:
    r = as_rule(rule, sink=sink)
    if r is None or not r.active:
        return False
    res = _resolver(fields, data, resolver, sink)
    return evaluate_group(r.conditions, resolver=res, sink=res.sink)


def select_matching_rules(
    rules: Optional[Sequence[Any]],
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
) -> List[EmailRule]:
    """Matching rules; rules with conditions come before catch-all rules, order kept otherwise."""
    res = _resolver(fields, data, resolver, sink)
    matching = [r for r in as_rules(rules, sink=res.sink) if rule_matches(r, resolver=res)]
    return sorted(matching, key=lambda r: 0 if has_conditions(r.conditions) else 1)


def _as_address(value: Any) -> Optional[str]:
    if value is None:
        return None
    t = format_value(value).strip()
    return t if "@" in t else None


def resolve_recipient(
    rule: Any,
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
) -> Optional[str]:
    """
    Address a fired rule sends to, or None.

    - "form" (default): the submitter's email
    - "field": the answer of `recipientField`, else the submitter's email
    - "custom" / "static": `recipientEmail`
    """
    r = as_rule(rule, sink=sink)
    if r is None:
        return None
    if r.recipient_type in _CUSTOM_ALIASES:
        return _as_address(r.recipient_email)

    res = _resolver(fields, data, resolver, sink)
    if r.recipient_type == RECIPIENT_FIELD and r.recipient_field:
        found = _as_address(res.resolve(r.recipient_field))
        if found:
            return found
        res.sink.emit("warning", "Recipient field empty, falling back to email", field=r.recipient_field)
    elif r.recipient_type not in (RECIPIENT_FORM, RECIPIENT_FIELD):
        res.sink.emit("warning", "Unknown recipient type, using form email", recipient_type=r.recipient_type)
    return _as_address(res.resolve("email"))


def render_email(
    template: Any,
    fields: Optional[Sequence[FieldLike]] = None,
    data: Optional[Dict[str, Any]] = None,
    *,
    resolver: Optional[FieldResolver] = None,
    sink: Optional[DiagnosticSink] = None,
    clock: Optional[Clock] = None,
) -> RenderedEmail:
    tpl = template if isinstance(template, EmailTemplate) else EmailTemplate.model_validate(template or {})
    res = _resolver(fields, data, resolver, sink)
    return RenderedEmail(
        subject=interpolate(tpl.subject, resolver=res, clock=clock),
        body=interpolate(tpl.body, resolver=res, clock=clock),
    )


def _first_list(*candidates: Optional[str]) -> str:
    for c in candidates:
        if c and c.strip():
            return c.strip()
    return ""


def merge_cc(rule: EmailRule, template: Optional[EmailTemplate] = None) -> str:
    tpl = template or rule.template
    return _first_list(rule.cc_emails, tpl.cc_emails if tpl else None)


def merge_bcc(rule: EmailRule, template: Optional[EmailTemplate] = None) -> str:
    tpl = template or rule.template
    return _first_list(rule.bcc_emails, tpl.bcc_emails if tpl else None)


def _raw_rule_id(raw: Any) -> str:
    rid = raw.get("id") if isinstance(raw, dict) else None
    return str(rid) if isinstance(rid, (str, int)) and not isinstance(rid, bool) else ""


def process_submission(
    rules: Optional[Sequence[Any]],
    fields: Optional[Sequence[FieldLike]],
    data: Optional[Dict[str, Any]],
    *,
    sink: Optional[DiagnosticSink] = None,
    clock: Optional[Clock] = None,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[RuleOutcome]:
    """
    Decide what every rule does for one submission.

    Fired rules come first (in selection order), followed by the rules that did not match.
    Fired rules without a recipient or template are reported as skipped, and rule objects
    that fail validation as `invalid_rule`; sending is the caller's job.
    """
    res = FieldResolver(fields, data, similarity_threshold=similarity_threshold, sink=sink)
    entries = [(item, as_rule(item, sink=res.sink)) for item in rules or [] if isinstance(item, (dict, EmailRule))]
    parsed = [rule for _, rule in entries if rule is not None]
    fired = select_matching_rules(parsed, resolver=res)
    fired_ids = {id(r) for r in fired}

    outcomes: List[RuleOutcome] = []
    for rule in fired:
        outcome = RuleOutcome(rule_id=rule.id, rule_name=rule.name, matched=True)
        outcome.recipient = resolve_recipient(rule, resolver=res)
        if rule.template is None:
            outcome.skipped_reason = "no_template"
        elif not outcome.recipient:
            outcome.skipped_reason = "no_recipient"
        else:
            outcome.email = render_email(rule.template, resolver=res, clock=clock)
            outcome.cc = merge_cc(rule)
            outcome.bcc = merge_bcc(rule)
        res.sink.emit(
            "success" if outcome.skipped_reason is None else "warning",
            "Rule fired",
            rule=rule.id,
            recipient=outcome.recipient,
            skipped=outcome.skipped_reason,
        )
        outcomes.append(outcome)

    for raw, rule in entries:
        if rule is None:
            outcomes.append(RuleOutcome(rule_id=_raw_rule_id(raw), skipped_reason="invalid_rule"))
            continue
        if id(rule) in fired_ids:
            continue
        reason = "inactive" if not rule.active else "conditions_not_met"
        outcomes.append(RuleOutcome(rule_id=rule.id, rule_name=rule.name, skipped_reason=reason))
    return outcomes


__all__ = [
    "RECIPIENT_CUSTOM",
    "RECIPIENT_FIELD",
    "RECIPIENT_FORM",
    "RenderedEmail",
    "RuleOutcome",
    "as_rule",
    "as_rules",
    "merge_bcc",
    "merge_cc",
    "process_submission",
    "render_email",
    "resolve_recipient",
    "rule_matches",
    "select_matching_rules",
]

from __future__ import annotations

import json
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _optional_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (str, int, float)) and not isinstance(v, bool):
        return str(v)
    return None


class Condition(BaseModel):
    """
    One leaf predicate of an email rule.

    Current rules carry three identification channels for the same field: the primary id
    (`field` or `fieldId`), the `stableId` and the `label`.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    field: Optional[str] = None
    field_id: Optional[str] = Field(default=None, alias="fieldId")
    stable_id: Optional[str] = Field(default=None, alias="stableId")
    label: Optional[str] = None
    operator: str = ""
    value: Any = None

    @field_validator("field", "field_id", "stable_id", "label", mode="before")
    @classmethod
    def _coerce_identifier(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("operator", mode="before")
    @classmethod
    def _coerce_operator(cls, v: Any) -> str:
        return str(v or "").strip()

    @property
    def primary_key(self) -> Optional[str]:
        return self.field or self.field_id

    def is_well_formed(self) -> bool:
        supplied = self.model_fields_set
        if not self.primary_key:
            return False
        if "stable_id" not in supplied or self.stable_id is None:
            return False
        if "label" not in supplied or self.label is None:
            return False
        return bool(self.operator) and "value" in supplied

    def identifiers(self) -> List[str]:
        """Identifiers to try, in resolution order, without blanks or repeats."""
        out: List[str] = []
        for ident in (self.primary_key, self.stable_id, self.label):
            t = str(ident or "").strip()
            if t and t not in out:
                out.append(t)
        return out


class VisibilityWhen(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    field: str = ""
    field_label: Optional[str] = Field(default=None, alias="fieldLabel")
    operator: str = "equals"
    value: Any = ""

    @field_validator("field", mode="before")
    @classmethod
    def _coerce_field(cls, v: Any) -> str:
        return _optional_text(v) or ""

    @field_validator("field_label", mode="before")
    @classmethod
    def _coerce_field_label(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("operator", mode="before")
    @classmethod
    def _coerce_operator(cls, v: Any) -> str:
        t = str(v or "").strip() if not isinstance(v, (dict, list)) else ""
        return t or "equals"


class ConditionalLogic(BaseModel):
    """Public-form visibility rule: `{ when: {...}, action: "show" | "hide" }`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    when: VisibilityWhen
    action: str = "show"

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, v: Any) -> str:
        t = str(v or "").strip().lower()
        return t or "show"


class EmailTemplate(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    name: str = ""
    subject: str = ""
    body: str = Field(default="", alias="content")
    cc_emails: Optional[str] = Field(default=None, alias="ccEmails")
    bcc_emails: Optional[str] = Field(default=None, alias="bccEmails")

    @field_validator("id", "name", "subject", "body", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _optional_text(v) or ""

    @field_validator("cc_emails", "bcc_emails", mode="before")
    @classmethod
    def _coerce_address_list(cls, v: Any) -> Optional[str]:
        return _optional_text(v)


class EmailRule(BaseModel):
    """
    An email rule as authored by an administrator.

    `conditions` is kept raw (list, group dict, JSON string or None) and parsed into a
    condition tree by `form_rules.conditions.parse_condition_group`.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    name: str = ""
    active: bool = True
    conditions: Any = None
    recipient_type: str = Field(default="form", alias="recipientType")
    recipient_field: Optional[str] = Field(default=None, alias="recipientField")
    recipient_email: Optional[str] = Field(default=None, alias="recipientEmail")
    template: Optional[EmailTemplate] = None
    cc_emails: Optional[str] = Field(default=None, alias="ccEmails")
    bcc_emails: Optional[str] = Field(default=None, alias="bccEmails")

    @field_validator("id", "name", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _optional_text(v) or ""

    @field_validator("active", mode="before")
    @classmethod
    def _coerce_active(cls, v: Any) -> Any:
        # unset flag means active; anything else goes through pydantic's bool parsing
        return True if v is None else v

    @field_validator("recipient_type", mode="before")
    @classmethod
    def _coerce_recipient_type(cls, v: Any) -> str:
        t = str(v or "").strip().lower() if not isinstance(v, (dict, list)) else ""
        return t or "form"

    @field_validator("recipient_field", "recipient_email", "cc_emails", "bcc_emails", mode="before")
    @classmethod
    def _coerce_optional_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("template", mode="before")
    @classmethod
    def _coerce_template(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                return None
        return v if isinstance(v, (dict, EmailTemplate)) else None


__all__ = ["Condition", "ConditionalLogic", "EmailRule", "EmailTemplate", "VisibilityWhen"]

"""
Schema package for form configuration, rule and template models.
"""

from .fields import (  # noqa: F401
    FieldConfig,
    FieldLike,
    FieldOption,
    FormSection,
    as_field,
    as_fields,
    as_section,
    as_sections,
    fields_from_form,
    flatten_sections,
    normalize_mapping,
    section_list,
)
from .rules import (  # noqa: F401
    Condition,
    ConditionalLogic,
    EmailRule,
    EmailTemplate,
    VisibilityWhen,
)

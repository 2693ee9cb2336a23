"""
Form rules engine.

Stable field keys, tiered field-value resolution, email rule condition trees, public-form
visibility and `{{variable}}` template interpolation.
"""

from .conditions import evaluate_condition, evaluate_group, parse_condition_group  # noqa: F401
from .config import Settings, configure_logging, load_settings  # noqa: F401
from .diagnostics import CollectingSink, DiagnosticSink, LoggingSink, NullSink  # noqa: F401
from .email_rules import (  # noqa: F401
    RenderedEmail,
    RuleOutcome,
    process_submission,
    render_email,
    resolve_recipient,
    rule_matches,
    select_matching_rules,
)
from .options import normalize_options  # noqa: F401
from .resolver import FieldResolver, Resolution, map_field_ids, resolve  # noqa: F401
from .stable_keys import assign_stable_key, migrate_sections  # noqa: F401
from .templates import extract_variables, interpolate  # noqa: F401
from .visibility import should_show_field, visible_field_ids  # noqa: F401

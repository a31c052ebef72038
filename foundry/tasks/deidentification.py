"""De-identification stage: apply the source's per-field rules to every record.

Actions
-------
redact   : replace with ``[REDACTED]``
mask     : keep the first and last two characters, star the rest
hash     : SHA-256 of ``tenant_salt:value`` (irreversible)
tokenize : Fernet token (reversible with FERNET_KEY)
remove   : drop the field from the record

A rule with a ``pattern`` transforms only the regex matches inside the value;
``remove`` with a pattern deletes the matches.  Rules name target-schema
fields, so a rule's field is resolved back through the field mapping before
it is applied to the parsed record.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from foundry.core.constants import DEIDENTIFICATION_ACTIONS
from foundry.core.security import SecurityService
from foundry.pipeline.context import StageContext, StageError

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"


def mask_value(value: str) -> str:
    if len(value) <= 4:
        return "*" * len(value)
    return f"{value[:2]}{'*' * (len(value) - 4)}{value[-2:]}"


def _tokenize(value: str, security: SecurityService) -> str:
    try:
        return security.encrypt(value)
    except ValueError as exc:
        raise StageError("tokenize requires FERNET_KEY to be configured") from exc


_TRANSFORMS: dict[str, Callable[[str, SecurityService], str]] = {
    "redact": lambda value, security: REDACTED,
    "mask": lambda value, security: mask_value(value),
    "hash": lambda value, security: security.hash_with_tenant_salt(value),
    "tokenize": _tokenize,
    "remove": lambda value, security: "",
}


def _compile(pattern: str | None, field_name: str) -> re.Pattern[str] | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise StageError(f"Invalid pattern for field {field_name!r}: {exc}") from exc


def apply_rule(
    record: dict[str, Any],
    field_name: str,
    action: str,
    pattern: re.Pattern[str] | None,
    security: SecurityService,
) -> bool:
    """Apply one rule to *record* in place.  Returns True if the record changed."""
    if field_name not in record:
        return False

    if action == "remove" and pattern is None:
        del record[field_name]
        return True

    value = record[field_name]
    if value is None:
        return False

    text = value if isinstance(value, str) else str(value)
    transform = _TRANSFORMS[action]
    if pattern is None:
        record[field_name] = transform(text, security)
    else:
        record[field_name] = pattern.sub(lambda m: transform(m.group(0), security), text)
    return True


def deidentify_records(
    records: list[dict[str, Any]],
    rules: list[dict[str, Any]],
    field_mappings: dict[str, str],
    security: SecurityService,
) -> list[str]:
    """Apply *rules* to *records* in place; return the source fields touched."""
    target_to_source = {target: source for source, target in field_mappings.items()}
    touched: set[str] = set()

    for rule in rules:
        action = rule.get("action")
        if action not in DEIDENTIFICATION_ACTIONS:
            raise StageError(f"Unknown de-identification action: {action!r}")
        target_field = rule.get("field")
        if not target_field:
            raise StageError("De-identification rule is missing a field")

        source_field = target_to_source.get(target_field, target_field)
        pattern = _compile(rule.get("pattern"), target_field)
        for record in records:
            if apply_rule(record, source_field, action, pattern, security):
                touched.add(source_field)

    return sorted(touched)


def run_deidentification(ctx: StageContext) -> None:
    ctx.fields_deidentified = deidentify_records(
        ctx.records,
        ctx.deidentification_rules,
        ctx.field_mappings,
        ctx.security,
    )
    logger.info(
        "Job %s applied %d rule(s) to %d field(s)",
        ctx.job_id,
        len(ctx.deidentification_rules),
        len(ctx.fields_deidentified),
    )

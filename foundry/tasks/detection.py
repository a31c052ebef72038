"""PII detection stage: scan every record value against the pattern catalogue.

Findings are aggregated per field: ``{"email": ["EMAIL"], "notes": [...]}``.
Matched values are never stored or logged, only the entity types.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from foundry.pipeline.context import StageContext

logger = logging.getLogger(__name__)


def luhn_check(number_str: str) -> bool:
    """Return True if *number_str* passes the Luhn (Mod-10) algorithm."""
    digits = [int(c) for c in number_str if c.isdigit()]
    if not digits:
        return False
    total = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


@dataclass(frozen=True)
class PatternDefinition:
    """A single PII recogniser.

    ``validator`` is an optional post-filter applied to each regex match.
    """

    name: str
    entity_type: str
    regex: re.Pattern[str]
    validator: Callable[[str], bool] | None = None

    def matches(self, text: str) -> bool:
        for match in self.regex.finditer(text):
            if self.validator is None or self.validator(match.group(0)):
                return True
        return False


PATTERNS: list[PatternDefinition] = [
    PatternDefinition(
        name="email",
        entity_type="EMAIL",
        regex=re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}"),
    ),
    PatternDefinition(
        name="us_ssn",
        entity_type="US_SSN",
        regex=re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    ),
    PatternDefinition(
        # Post-filter: Luhn eliminates most digit runs that are not cards.
        name="credit_card",
        entity_type="CREDIT_CARD",
        regex=re.compile(r"\b(?:\d[ \-]?){12,18}\d\b"),
        validator=luhn_check,
    ),
    PatternDefinition(
        name="phone_nanp",
        entity_type="PHONE_NUMBER",
        regex=re.compile(r"(?<![\d-])(?:\+1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]\d{4}(?![\d-])"),
    ),
    PatternDefinition(
        name="ipv4",
        entity_type="IPV4",
        regex=re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"),
    ),
]


def _scannable(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def detect_entity_types(text: str, patterns: Iterable[PatternDefinition] = PATTERNS) -> set[str]:
    return {p.entity_type for p in patterns if p.matches(text)}


def detect_pii(records: Iterable[dict[str, Any]]) -> dict[str, list[str]]:
    """Return ``{field: sorted entity types}`` for every field with a finding."""
    findings: dict[str, set[str]] = {}
    for record in records:
        for field_name, value in record.items():
            text = _scannable(value)
            if not text:
                continue
            found = detect_entity_types(text)
            if found:
                findings.setdefault(field_name, set()).update(found)
    return {name: sorted(types) for name, types in sorted(findings.items())}


def run_detection(ctx: StageContext) -> None:
    ctx.pii_findings = detect_pii(ctx.records)
    logger.info("Job %s found PII in %d field(s)", ctx.job_id, len(ctx.pii_findings))

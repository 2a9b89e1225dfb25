"""
Regex PII Redaction

Detects and redacts personally identifiable information in answers and
citations.

Patterns run in priority order; a match overlapping an earlier detection is
ignored, so a credit card number is never also reported as an SSN. Every
match is found against the original text, and replacements are applied from
the end of the text backwards so positions stay valid.

Setting ENABLE_PII_REDACTION=false disables redaction.

Example:
    >>> redactor = RegexPIIRedactor(min_severity="medium")
    >>> result = redactor.redact_text("Mail jane@corp.com or call 555-123-4567")
    >>> result.redacted_text
    'Mail [EMAIL REDACTED] or call [PHONE REDACTED]'
"""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from docgraph.services.base import PIIRedactor
from docgraph.types import PIIDetection, RedactionResult

logger = logging.getLogger(__name__)

SEVERITY_LEVELS: dict[str, int] = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}


@dataclass(frozen=True)
class PIIPattern:
    """
    A redaction rule.

    Attributes:
        context: When set, the rule only runs if this pattern occurs anywhere
            in the text
    """

    name: str
    pattern: re.Pattern[str]
    replacement: str
    category: str
    severity: str
    context: re.Pattern[str] | None = None


# Order is priority: more specific patterns first
PII_PATTERNS: tuple[PIIPattern, ...] = (
    PIIPattern(
        "creditCard",
        re.compile(r"\b(?:\d{4}[-.\s]?){3}\d{4}\b"),
        "[CREDIT CARD REDACTED]",
        "financial",
        "critical",
    ),
    PIIPattern(
        "ssn",
        re.compile(r"\b\d{3}[-.\s]?\d{2}[-.\s]?\d{4}\b"),
        "[SSN REDACTED]",
        "government_id",
        "critical",
    ),
    PIIPattern(
        "email",
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", re.IGNORECASE),
        "[EMAIL REDACTED]",
        "contact",
        "medium",
    ),
    PIIPattern(
        "phone",
        re.compile(r"\b(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
        "[PHONE REDACTED]",
        "contact",
        "medium",
    ),
    PIIPattern(
        "ipv4",
        re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"),
        "[IP ADDRESS REDACTED]",
        "technical",
        "low",
    ),
    PIIPattern(
        "dateOfBirth",
        re.compile(
            r"\b(?:DOB|Date of Birth|Born|Birthday)[\s:]*\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b",
            re.IGNORECASE,
        ),
        "[DOB REDACTED]",
        "personal",
        "high",
    ),
    PIIPattern(
        "passport",
        re.compile(r"\b(?:passport[\s#:]*)?[A-Z]{1,2}\d{6,9}\b", re.IGNORECASE),
        "[PASSPORT REDACTED]",
        "government_id",
        "critical",
    ),
    PIIPattern(
        "driversLicense",
        re.compile(r"\b(?:DL|Driver'?s?\s*License)[\s#:]*[A-Z0-9]{5,15}\b", re.IGNORECASE),
        "[DRIVERS LICENSE REDACTED]",
        "government_id",
        "high",
    ),
    PIIPattern(
        "bankAccount",
        re.compile(r"\b(?:account|acct)[\s#:]*\d{8,17}\b", re.IGNORECASE),
        "[BANK ACCOUNT REDACTED]",
        "financial",
        "critical",
    ),
    PIIPattern(
        "medicareId",
        re.compile(r"\b\d{3}-?\d{2}-?\d{4}-?[A-Z]\b"),
        "[MEDICARE ID REDACTED]",
        "healthcare",
        "high",
    ),
    PIIPattern(
        "streetAddress",
        re.compile(
            r"\b\d+\s+[A-Za-z]+(?:\s+[A-Za-z]+)*\s+"
            r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Court|Ct|Way|Place|Pl)\b\.?",
            re.IGNORECASE,
        ),
        "[ADDRESS REDACTED]",
        "contact",
        "medium",
    ),
    PIIPattern(
        "zipCode",
        re.compile(r"\b\d{5}(?:-\d{4})?\b"),
        "[ZIP REDACTED]",
        "contact",
        "low",
        context=re.compile(r"zip|postal|code|address", re.IGNORECASE),
    ),
)


def pii_redaction_enabled_by_env() -> bool:
    return os.environ.get("ENABLE_PII_REDACTION", "").strip().lower() != "false"


class RegexPIIRedactor(PIIRedactor):
    """
    Pattern-table PII redactor.

    Args:
        enabled: Also requires ENABLE_PII_REDACTION != "false"
        min_severity: Skip patterns below this severity
        categories: Only run patterns in these categories (None = all)
        audit_mode: Report detections (with original values) without redacting
        custom_patterns: Extra rules run after the built-in ones
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        min_severity: str = "low",
        categories: list[str] | None = None,
        audit_mode: bool = False,
        custom_patterns: list[PIIPattern] | None = None,
    ) -> None:
        if min_severity not in SEVERITY_LEVELS:
            raise ValueError(f"Unknown severity: {min_severity}")
        self._enabled = enabled and pii_redaction_enabled_by_env()
        self._min_severity = min_severity
        self._categories = set(categories) if categories else None
        self._audit_mode = audit_mode
        self._custom_patterns = list(custom_patterns or [])

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def add_pattern(self, pattern: PIIPattern) -> None:
        self._custom_patterns.append(pattern)

    async def redact(self, text: str) -> RedactionResult:
        return self.redact_text(text)

    def redact_text(self, text: str) -> RedactionResult:
        if not self._enabled or not text:
            return RedactionResult(redacted_text=text or "")

        min_level = SEVERITY_LEVELS[self._min_severity]
        builtin = [
            p for p in PII_PATTERNS
            if SEVERITY_LEVELS[p.severity] >= min_level
            and (self._categories is None or p.category in self._categories)
        ]

        detections: list[PIIDetection] = []
        taken: list[tuple[int, int, str]] = []
        for rule in [*builtin, *self._custom_patterns]:
            if rule.context is not None and not rule.context.search(text):
                continue
            for match in rule.pattern.finditer(text):
                start, end = match.span()
                if start == end or any(start < e and end > s for s, e, _ in taken):
                    continue
                taken.append((start, end, rule.replacement))
                detections.append(
                    PIIDetection(
                        type=rule.name,
                        category=rule.category,
                        severity=rule.severity,
                        position=start,
                        length=end - start,
                        original=match.group(0) if self._audit_mode else None,
                    )
                )

        if self._audit_mode or not taken:
            if detections:
                logger.info(f"PII audit: {dict(Counter(d.type for d in detections))}")
            return RedactionResult(redacted_text=text, detections=detections)

        redacted = text
        for start, end, replacement in sorted(taken, key=lambda t: t[0], reverse=True):
            redacted = redacted[:start] + replacement + redacted[end:]

        return RedactionResult(redacted_text=redacted, detections=detections, redaction_applied=True)

    def detect(self, text: str) -> list[PIIDetection]:
        """Detections for `text` without redacting it."""
        audit_mode = self._audit_mode
        self._audit_mode = True
        try:
            return self.redact_text(text).detections
        finally:
            self._audit_mode = audit_mode

    def redact_object(self, obj: Any, fields: set[str] | None = None) -> tuple[Any, int]:
        """
        Redact string values in nested dicts and lists.

        Args:
            obj: Value to redact
            fields: Only redact these keys (None = every string)

        Returns:
            (redacted copy, number of detections)
        """
        total = 0

        def walk(value: Any, redact_here: bool) -> Any:
            nonlocal total
            if isinstance(value, str):
                if not redact_here:
                    return value
                result = self.redact_text(value)
                total += len(result.detections)
                return result.redacted_text
            if isinstance(value, list):
                return [walk(v, redact_here) for v in value]
            if isinstance(value, dict):
                return {
                    k: walk(v, fields is None or k in fields)
                    for k, v in value.items()
                }
            return value

        return walk(obj, fields is None), total


def summarize_detections(detections: list[PIIDetection]) -> dict[str, Any]:
    """Counts by category and severity."""
    by_severity = Counter(d.severity for d in detections)
    return {
        "total_detections": len(detections),
        "by_category": dict(Counter(d.category for d in detections)),
        "by_severity": dict(by_severity),
        "has_critical": by_severity.get("critical", 0) > 0,
    }

"""
PII Redaction

Modules:
    pii: RegexPIIRedactor and its pattern table
"""

from docgraph.redaction.pii import (
    PII_PATTERNS,
    SEVERITY_LEVELS,
    PIIPattern,
    RegexPIIRedactor,
    summarize_detections,
)

__all__ = [
    "RegexPIIRedactor",
    "PIIPattern",
    "PII_PATTERNS",
    "SEVERITY_LEVELS",
    "summarize_detections",
]

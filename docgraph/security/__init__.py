"""
Security Trimming

Modules:
    trimming: RoleBasedSecurityTrimmer (OData pre-filters, post-query trimming)
"""

from docgraph.security.trimming import (
    CLASSIFICATION_LEVELS,
    ROLE_CLASSIFICATION_ACCESS,
    AccessDenial,
    RoleBasedSecurityTrimmer,
    escape_odata,
)

__all__ = [
    "RoleBasedSecurityTrimmer",
    "AccessDenial",
    "CLASSIFICATION_LEVELS",
    "ROLE_CLASSIFICATION_ACCESS",
    "escape_odata",
]

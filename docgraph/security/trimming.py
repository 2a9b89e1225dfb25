"""
Role-Based Security Trimming

Pre-query filters and post-query trimming of search results and graph
context by role, group and department.

Role hierarchy (low to high): Reader, Contributor, Reviewer, Admin.

Classification access:
    Reader, Contributor -> public, internal
    Reviewer            -> up to confidential
    Admin               -> everything (restricted)

Unclassified documents count as internal. Unknown classifications count as
public.

Example:
    >>> trimmer = RoleBasedSecurityTrimmer()
    >>> trimmer.build_filter(UserContext(roles=["Reader"], groups=["hr"]))
    "(classification eq null or classification eq 'public' or ...) and (...)"
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

from docgraph.services.base import SecurityTrimmer
from docgraph.types import (
    EntityTrimResult,
    GraphEdge,
    GraphVertex,
    SearchResult,
    TrimResult,
    UserContext,
)
from docgraph.utils.text import vertex_id

logger = logging.getLogger(__name__)

DEFAULT_ROLE_HIERARCHY: tuple[str, ...] = ("Reader", "Contributor", "Reviewer", "Admin")

CLASSIFICATION_LEVELS: dict[str, int] = {
    "public": 0,
    "internal": 1,
    "confidential": 2,
    "restricted": 3,
}

ROLE_CLASSIFICATION_ACCESS: dict[str, str] = {
    "Reader": "internal",
    "Contributor": "internal",
    "Reviewer": "confidential",
    "Admin": "restricted",
}

# Entity statuses only visible to Reviewer and above
RESTRICTED_ENTITY_STATUSES = frozenset({"pending_review", "rejected"})

# Keys dropped from SearchResult.extra for users without the Reviewer role
REVIEWER_ONLY_FIELDS = ("internal_notes", "reviewer_comments", "processing_metadata")
# Keys dropped for everyone except Admin
ADMIN_ONLY_FIELDS = ("uploaded_by", "allowed_viewers")

DENIAL_LOG_LIMIT = 1000


@dataclass
class _Permissions:
    user_id: str
    roles: list[str]
    groups: list[str]
    department: str | None
    highest_role: str | None
    is_admin: bool


@dataclass
class _Decision:
    allowed: bool
    reason: str
    required_permission: str | None = None


@dataclass
class AccessDenial:
    """One audited denial."""

    timestamp: str
    document_id: str
    user_id: str
    reason: str
    required_permission: str | None = None


def escape_odata(value: str) -> str:
    """Escape a string literal for an OData filter (' -> '')."""
    return value.replace("'", "''")


class RoleBasedSecurityTrimmer(SecurityTrimmer):
    """
    Row-level security for search results and graph traversal.

    Args:
        enabled: When False every method passes its input through unchanged
        role_hierarchy: Role names, lowest to highest
        audit_denials: Keep the last DENIAL_LOG_LIMIT denials in memory
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        role_hierarchy: tuple[str, ...] | list[str] = DEFAULT_ROLE_HIERARCHY,
        audit_denials: bool = True,
    ) -> None:
        self._enabled = enabled
        self._role_hierarchy = list(role_hierarchy)
        self._audit_denials = audit_denials
        self._denial_log: deque[AccessDenial] = deque(maxlen=DENIAL_LOG_LIMIT)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    # -------------------------------------------------------------------------
    # Pre-query filter
    # -------------------------------------------------------------------------

    def build_filter(self, user: UserContext | None) -> str | None:
        """
        OData filter limiting search to what `user` may see.

        Clauses (AND-ed, each admitting documents without the restriction):
            classification up to the user's maximum level
            allowed_groups intersecting the user's groups
            department equal to the user's department
        """
        if not self._enabled:
            return None

        perms = self._permissions(user)
        clauses: list[str] = []

        max_level = self._max_classification_level(perms)
        if max_level < CLASSIFICATION_LEVELS["restricted"]:
            allowed = " or ".join(
                f"classification eq '{name}'"
                for name, level in CLASSIFICATION_LEVELS.items()
                if level <= max_level
            )
            clauses.append(f"(classification eq null or {allowed})")

        if perms.groups:
            groups = " or ".join(
                f"allowed_groups/any(g: g eq '{escape_odata(g)}')" for g in perms.groups
            )
            clauses.append(f"(allowed_groups eq null or {groups})")

        if perms.department:
            clauses.append(
                f"(department eq null or department eq '{escape_odata(perms.department)}')"
            )

        return " and ".join(clauses) if clauses else None

    # -------------------------------------------------------------------------
    # Post-query trimming
    # -------------------------------------------------------------------------

    def filter_results(self, results: list[SearchResult], user: UserContext | None) -> TrimResult:
        if not self._enabled:
            return TrimResult(filtered=list(results))

        perms = self._permissions(user)
        filtered: list[SearchResult] = []
        denied = 0
        for result in results:
            decision = self._check_access(result, perms)
            if decision.allowed:
                filtered.append(self._trim_sensitive_fields(result, perms))
            else:
                denied += 1
                if self._audit_denials:
                    self._log_denial(result.document_id or result.id, perms, decision)

        if denied:
            logger.info(f"Security trimming denied {denied}/{len(results)} results for {perms.user_id}")
        return TrimResult(filtered=filtered, denied_count=denied)

    def filter_entities(self, entities: list[GraphVertex], user: UserContext | None) -> EntityTrimResult:
        if not self._enabled:
            return EntityTrimResult(filtered=list(entities))

        perms = self._permissions(user)
        filtered = [e for e in entities if self._check_entity_access(e, perms).allowed]
        return EntityTrimResult(filtered=filtered, denied_count=len(entities) - len(filtered))

    def filter_relationships(
        self,
        relationships: list[GraphEdge],
        allowed_entities: set[str],
    ) -> list[GraphEdge]:
        """Keep relationships whose endpoints are both allowed, compared by vertex id."""
        if not self._enabled:
            return list(relationships)
        allowed = {vertex_id(name) for name in allowed_entities}
        return [
            r for r in relationships
            if vertex_id(r.from_entity) in allowed and vertex_id(r.to_entity) in allowed
        ]

    def check_document_access(self, result: SearchResult, user: UserContext | None) -> bool:
        return self._check_access(result, self._permissions(user)).allowed

    @property
    def denial_log(self) -> list[AccessDenial]:
        return list(self._denial_log)

    def clear_denial_log(self) -> None:
        self._denial_log.clear()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _permissions(self, user: UserContext | None) -> _Permissions:
        if user is None:
            return _Permissions("unknown", [], [], None, None, False)

        highest = -1
        for role in user.roles:
            if role in self._role_hierarchy:
                highest = max(highest, self._role_hierarchy.index(role))

        return _Permissions(
            user_id=user.id or user.email or "unknown",
            roles=list(user.roles),
            groups=list(user.groups),
            department=user.department,
            highest_role=self._role_hierarchy[highest] if highest >= 0 else None,
            is_admin="Admin" in user.roles,
        )

    @staticmethod
    def _max_classification_level(perms: _Permissions) -> int:
        if perms.is_admin:
            return CLASSIFICATION_LEVELS["restricted"]
        access = ROLE_CLASSIFICATION_ACCESS.get(perms.highest_role or "", "internal")
        return CLASSIFICATION_LEVELS.get(access, CLASSIFICATION_LEVELS["internal"])

    def _check_access(self, result: SearchResult, perms: _Permissions) -> _Decision:
        if perms.is_admin:
            return _Decision(True, "admin_access")

        classification = result.classification or "internal"
        level = CLASSIFICATION_LEVELS.get(classification, 0)
        if level > self._max_classification_level(perms):
            return _Decision(False, "classification_denied", f"classification:{classification}")

        if result.allowed_groups and not set(result.allowed_groups) & set(perms.groups):
            return _Decision(False, "group_denied", f"group:{','.join(result.allowed_groups)}")

        if result.department and perms.department != result.department:
            return _Decision(False, "department_denied", f"department:{result.department}")

        return _Decision(True, "granted")

    @staticmethod
    def _check_entity_access(entity: GraphVertex, perms: _Permissions) -> _Decision:
        if perms.is_admin:
            return _Decision(True, "admin_access")

        if entity.status in RESTRICTED_ENTITY_STATUSES and not {"Reviewer", "Admin"} & set(perms.roles):
            return _Decision(False, "status_restricted")

        required_role = (entity.access_restriction or {}).get("required_role")
        if required_role and required_role not in perms.roles:
            return _Decision(False, "role_required", f"role:{required_role}")

        return _Decision(True, "granted")

    @staticmethod
    def _trim_sensitive_fields(result: SearchResult, perms: _Permissions) -> SearchResult:
        if perms.is_admin:
            return result

        hidden = set(ADMIN_ONLY_FIELDS)
        if "Reviewer" not in perms.roles:
            hidden.update(REVIEWER_ONLY_FIELDS)
        extra = {k: v for k, v in result.extra.items() if k not in hidden}
        return result.model_copy(update={"extra": extra, "allowed_groups": []})

    def _log_denial(self, document_id: str, perms: _Permissions, decision: _Decision) -> None:
        self._denial_log.append(
            AccessDenial(
                timestamp=datetime.now(timezone.utc).isoformat(),
                document_id=document_id,
                user_id=perms.user_id,
                reason=decision.reason,
                required_permission=decision.required_permission,
            )
        )

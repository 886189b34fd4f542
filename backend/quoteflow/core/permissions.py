"""Role-based access policy.

Single source of truth for:
- which role may perform which action on which resource (ROLE_PERMISSIONS)
- ownership rules on inquiries and inquiry items
- which entities a role may search

MANAGER, ADMIN and SUPERUSER bypass ownership checks.
"""

from __future__ import annotations

from typing import Iterable

from quoteflow.models.domain import Inquiry, InquiryItem, InquiryStatus, User, UserRole

WILDCARD = "*"

# role -> resource -> allowed actions
ROLE_PERMISSIONS: dict[UserRole, dict[str, frozenset[str]]] = {
    UserRole.SUPERUSER: {WILDCARD: frozenset({WILDCARD})},
    UserRole.ADMIN: {
        "users": frozenset({WILDCARD}),
        "customers": frozenset({WILDCARD}),
        "inquiries": frozenset({WILDCARD}),
        "inquiry-items": frozenset({WILDCARD}),
        "quotes": frozenset({WILDCARD}),
        "approvals": frozenset({WILDCARD}),
        "cost-calculations": frozenset({WILDCARD}),
        "audit-logs": frozenset({WILDCARD}),
        "reports": frozenset({"read"}),
        "workload": frozenset({"read"}),
    },
    UserRole.MANAGER: {
        "inquiries": frozenset({"read"}),
        "inquiry-items": frozenset({"read"}),
        "quotes": frozenset({"read"}),
        "approvals": frozenset({WILDCARD}),
        "cost-calculations": frozenset({"read", "approve"}),
        "customers": frozenset({"read"}),
        "users": frozenset({"read"}),
        "audit-logs": frozenset({"read"}),
    },
    UserRole.SALES: {
        "customers": frozenset({WILDCARD}),
        "inquiries": frozenset({WILDCARD}),
        "quotes": frozenset({WILDCARD}),
        "reports": frozenset({"read"}),
    },
    UserRole.VPP: {
        "inquiries": frozenset({"read"}),
        "inquiry-items": frozenset({"read", "assign"}),
        "users": frozenset({"read"}),
        "customers": frozenset({"read"}),
        "workload": frozenset({"read"}),
    },
    UserRole.VP: {
        "inquiries": frozenset({"read"}),
        "inquiry-items": frozenset({"read", "write"}),
        "cost-calculations": frozenset({WILDCARD}),
    },
    UserRole.TECH: {
        "inquiry-items": frozenset({"read"}),
    },
}

SEARCHABLE_ENTITIES: dict[UserRole, frozenset[str]] = {
    UserRole.SUPERUSER: frozenset({"inquiries", "items", "users", "customers"}),
    UserRole.ADMIN: frozenset({"inquiries", "items", "users", "customers"}),
    UserRole.MANAGER: frozenset({"inquiries", "items", "users", "customers"}),
    UserRole.SALES: frozenset({"inquiries", "items", "customers"}),
    UserRole.VPP: frozenset({"inquiries", "items", "users"}),
    UserRole.VP: frozenset({"inquiries", "items"}),
    UserRole.TECH: frozenset({"inquiries", "items"}),
}

OVERSIGHT_ROLES = frozenset({UserRole.SUPERUSER, UserRole.ADMIN, UserRole.MANAGER})


def _coerce_role(role: UserRole | str | None) -> UserRole | None:
    if role is None:
        return None
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).upper())
    except ValueError:
        return None


def has_permission(role: UserRole | str | None, resource: str, action: str) -> bool:
    """True when `role` may perform `action` on `resource`. Unknown roles get nothing."""

    r = _coerce_role(role)
    if r is None:
        return False
    grants = ROLE_PERMISSIONS.get(r, {})
    for res in (resource, WILDCARD):
        actions = grants.get(res)
        if actions and (action in actions or WILDCARD in actions):
            return True
    return False


def has_any_role(user: User | None, roles: Iterable[UserRole]) -> bool:
    if user is None:
        return False
    return _coerce_role(user.role) in set(roles)


def can_search(role: UserRole | str | None, entity: str) -> bool:
    r = _coerce_role(role)
    if r is None:
        return False
    return entity in SEARCHABLE_ENTITIES.get(r, frozenset())


def _bypasses_ownership(user: User) -> bool:
    return _coerce_role(user.role) in OVERSIGHT_ROLES


def can_access_inquiry(user: User, inquiry: Inquiry) -> bool:
    if not has_permission(user.role, "inquiries", "read"):
        return False
    if _bypasses_ownership(user):
        return True
    role = _coerce_role(user.role)
    if role == UserRole.SALES:
        return inquiry.created_by_id == user.id
    if role == UserRole.VPP:
        return inquiry.assigned_to_id == user.id or inquiry.status == InquiryStatus.SUBMITTED
    if role == UserRole.VP:
        return any(i.assigned_to_id == user.id for i in inquiry.items)
    return True


def can_modify_inquiry(user: User, inquiry: Inquiry) -> bool:
    """Creator or ADMIN/SUPERUSER; everyone else is read-only on the inquiry row."""

    role = _coerce_role(user.role)
    if role in {UserRole.SUPERUSER, UserRole.ADMIN}:
        return True
    if not has_permission(role, "inquiries", "write"):
        return False
    return inquiry.created_by_id == user.id


def can_access_item(user: User, item: InquiryItem) -> bool:
    if not has_permission(user.role, "inquiry-items", "read"):
        # SALES reads items through its own inquiries.
        if _coerce_role(user.role) == UserRole.SALES:
            return item.inquiry is not None and item.inquiry.created_by_id == user.id
        return False
    if _coerce_role(user.role) == UserRole.VP:
        return item.assigned_to_id == user.id
    return True


def can_modify_item(user: User, item: InquiryItem) -> bool:
    role = _coerce_role(user.role)
    if role in {UserRole.SUPERUSER, UserRole.ADMIN}:
        return True
    if role == UserRole.VP:
        return item.assigned_to_id == user.id
    if role == UserRole.SALES and item.inquiry is not None:
        return item.inquiry.created_by_id == user.id
    return False


def can_cost_item(user: User, item: InquiryItem) -> bool:
    role = _coerce_role(user.role)
    if not has_permission(role, "cost-calculations", "write"):
        return False
    if role == UserRole.VP:
        return item.assigned_to_id == user.id
    return True

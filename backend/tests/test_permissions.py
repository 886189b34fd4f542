"""
Role policy tests.

Pure checks against transient model objects; no database involved.
"""

import pytest

from quoteflow.core.permissions import (
    can_access_inquiry,
    can_access_item,
    can_cost_item,
    can_modify_inquiry,
    can_modify_item,
    can_search,
    has_permission,
)
from quoteflow.models.domain import Inquiry, InquiryItem, InquiryStatus, User, UserRole


def _user(role: UserRole, user_id: int = 1) -> User:
    return User(id=user_id, email=f"{role.value.lower()}@test.com", name=role.value, role=role)


def _inquiry(created_by_id=1, assigned_to_id=None, status=InquiryStatus.DRAFT, item_assignees=()):
    inquiry = Inquiry(
        id=10,
        title="Steel Beams",
        created_by_id=created_by_id,
        assigned_to_id=assigned_to_id,
        status=status,
    )
    inquiry.items = [InquiryItem(name=f"item {i}", assigned_to_id=a) for i, a in enumerate(item_assignees)]
    return inquiry


def test_superuser_has_every_permission():
    assert has_permission(UserRole.SUPERUSER, "anything", "delete")
    assert has_permission("superuser", "quotes", "write")


@pytest.mark.parametrize(
    "role,resource,action,expected",
    [
        (UserRole.SALES, "inquiries", "write", True),
        (UserRole.SALES, "cost-calculations", "write", False),
        (UserRole.VP, "cost-calculations", "write", True),
        (UserRole.VP, "inquiries", "write", False),
        (UserRole.VPP, "inquiry-items", "assign", True),
        (UserRole.VP, "inquiry-items", "assign", False),
        (UserRole.MANAGER, "approvals", "write", True),
        (UserRole.MANAGER, "cost-calculations", "write", False),
        (UserRole.TECH, "inquiries", "read", False),
        (UserRole.ADMIN, "audit-logs", "read", True),
    ],
)
def test_role_permission_matrix(role, resource, action, expected):
    assert has_permission(role, resource, action) is expected


def test_unknown_role_gets_nothing():
    assert has_permission("JANITOR", "inquiries", "read") is False
    assert has_permission(None, "inquiries", "read") is False


def test_sales_sees_only_own_inquiries():
    sales = _user(UserRole.SALES, user_id=1)
    assert can_access_inquiry(sales, _inquiry(created_by_id=1))
    assert not can_access_inquiry(sales, _inquiry(created_by_id=2))


def test_vpp_sees_submitted_or_coordinated_inquiries():
    vpp = _user(UserRole.VPP, user_id=5)
    assert can_access_inquiry(vpp, _inquiry(created_by_id=1, status=InquiryStatus.SUBMITTED))
    assert can_access_inquiry(vpp, _inquiry(created_by_id=1, assigned_to_id=5, status=InquiryStatus.ASSIGNED))
    assert not can_access_inquiry(vpp, _inquiry(created_by_id=1, status=InquiryStatus.DRAFT))


def test_vp_sees_inquiries_with_an_item_assigned_to_them():
    vp = _user(UserRole.VP, user_id=7)
    assert can_access_inquiry(vp, _inquiry(item_assignees=(None, 7)))
    assert not can_access_inquiry(vp, _inquiry(item_assignees=(8,)))


def test_manager_bypasses_ownership():
    manager = _user(UserRole.MANAGER, user_id=9)
    assert can_access_inquiry(manager, _inquiry(created_by_id=1))
    assert not can_modify_inquiry(manager, _inquiry(created_by_id=1))


def test_only_creator_or_admin_modifies_inquiry():
    assert can_modify_inquiry(_user(UserRole.SALES, 1), _inquiry(created_by_id=1))
    assert not can_modify_inquiry(_user(UserRole.SALES, 2), _inquiry(created_by_id=1))
    assert can_modify_inquiry(_user(UserRole.ADMIN, 3), _inquiry(created_by_id=1))


def test_item_access_and_costing_for_vp():
    vp = _user(UserRole.VP, user_id=7)
    mine = InquiryItem(name="mine", assigned_to_id=7)
    other = InquiryItem(name="other", assigned_to_id=8)
    assert can_access_item(vp, mine) and can_modify_item(vp, mine) and can_cost_item(vp, mine)
    assert not can_access_item(vp, other)
    assert not can_cost_item(vp, other)


def test_sales_reads_items_through_own_inquiry():
    sales = _user(UserRole.SALES, user_id=1)
    item = InquiryItem(name="beam")
    item.inquiry = _inquiry(created_by_id=1)
    assert can_access_item(sales, item)
    assert not can_cost_item(sales, item)


def test_search_entities_by_role():
    assert can_search(UserRole.MANAGER, "users")
    assert not can_search(UserRole.VP, "users")
    assert not can_search(UserRole.SALES, "users")
    assert can_search(UserRole.SALES, "customers")

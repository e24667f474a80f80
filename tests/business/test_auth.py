"""Login, capability and price masking tests."""
from decimal import Decimal

import pytest

from business.auth import (
    PRICE_MASK, Identity, accessible_pages, authenticate, can_access_page,
    has_capability, mask_price, require_capability,
)
from database.entities import UserRole
from database.errors import GatewayError, PermissionDeniedError


@pytest.fixture
def accounts(store):
    store.add_user(username="zhao", password="secret", name="赵会计",
                   role="accountant", is_active=True, can_view_prices=True)
    store.add_user(username="old", password="secret", name="离职员工",
                   role="technician", is_active=False)
    return store


class TestAuthenticate:
    """Test username / password login."""

    def test_success(self, accounts, memory_gateway):
        identity = authenticate(memory_gateway, "zhao", "secret")
        assert identity.username == "zhao"
        assert identity.role == UserRole.ACCOUNTANT
        assert identity.can_view_prices is True

    def test_wrong_password(self, accounts, memory_gateway):
        assert authenticate(memory_gateway, "zhao", "wrong") is None

    def test_inactive_account(self, accounts, memory_gateway):
        assert authenticate(memory_gateway, "old", "secret") is None

    def test_blank_credentials_skip_lookup(self, memory_gateway):
        assert authenticate(memory_gateway, "", "secret") is None
        assert ("find", "users") not in memory_gateway.calls

    def test_gateway_error_propagates(self, memory_gateway):
        memory_gateway.fail_on[("find", "users")] = GatewayError("down")
        with pytest.raises(GatewayError):
            authenticate(memory_gateway, "zhao", "secret")

    def test_against_sql_backend(self, temp_db):
        temp_db.store.add_user(username="admin", password="admin123", name="管理员",
                               role="admin", is_active=True, can_view_prices=True)
        identity = authenticate(temp_db.gateway, "admin", "admin123")
        assert identity is not None
        assert identity.role == UserRole.ADMIN


class TestCapabilities:
    """Test role capabilities and page access."""

    def test_role_matrix(self, admin, technician_user, accountant):
        assert has_capability(admin, "order.edit")
        assert has_capability(technician_user, "order.deliver")
        assert not has_capability(technician_user, "order.edit")
        assert not has_capability(accountant, "order.create")
        assert has_capability(accountant, "order.discount")
        assert not has_capability(admin, "order.unknown")

    def test_price_capabilities_need_visibility(self, blind_accountant):
        assert not has_capability(blind_accountant, "order.discount")
        assert not has_capability(blind_accountant, "order.paid")

    def test_require_capability(self, technician_user):
        with pytest.raises(PermissionDeniedError, match="order.edit"):
            require_capability(technician_user, "order.edit")

    def test_pages(self, admin, technician_user, accountant):
        assert "settings" in accessible_pages(admin)
        assert accessible_pages(technician_user) == ["dashboard", "orders"]
        assert can_access_page(accountant, "expenses")
        assert not can_access_page(accountant, "users")


class TestMaskPrice:
    """Test price masking."""

    def test_visible(self, admin):
        assert mask_price(admin, Decimal("1150.50")) == 1150.5
        assert mask_price(admin, None) is None

    def test_hidden(self, technician_user):
        assert mask_price(technician_user, Decimal("1150")) == PRICE_MASK
        assert mask_price(None, Decimal("1150")) == PRICE_MASK

    def test_identity_from_user(self, accounts):
        user = next(u for u in accounts.users if u.username == "zhao")
        identity = Identity.from_user(user)
        assert identity.user_id == user.id
        assert identity.name == "赵会计"

"""Tests for order lifecycle transitions and user account guards."""

import pytest

from storefront import lifecycle
from storefront.errors import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    ValidationError,
)
from storefront.lifecycle import OrderActions, UserAccountActions
from storefront.models import DeliveryInfo, Order, OrderStatus, User


def make_order(status=OrderStatus.PENDING, order_id=1):
    return Order(
        id=order_id,
        status=status,
        lines=[],
        delivery_info=DeliveryInfo(
            "A", "a@example.com", "0900000000", "Hà Nội", "Ba Đình", "Kim Mã", "1 Kim Mã", 30000
        ),
        subtotal=0,
        vat=0,
        delivery_fee=30000,
        total=30000,
    )


class TestGuards:
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_confirm_only_from_pending(self, status):
        assert lifecycle.can_confirm(status) == (status is OrderStatus.PENDING)

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_cancel_only_before_processing(self, status):
        expected = status in (OrderStatus.PENDING, OrderStatus.CONFIRMED)
        assert lifecycle.can_cancel(status) == expected

    def test_guards_accept_strings(self):
        assert lifecycle.can_confirm("pending")
        assert not lifecycle.can_cancel("DELIVERED")

    def test_next_status_follows_happy_path(self):
        assert lifecycle.next_status(OrderStatus.CONFIRMED) is OrderStatus.PROCESSING
        assert lifecycle.next_status(OrderStatus.SHIPPED) is OrderStatus.DELIVERED
        assert lifecycle.next_status(OrderStatus.DELIVERED) is None
        assert lifecycle.next_status(OrderStatus.CANCELLED) is None

    def test_can_advance_single_step_only(self):
        assert lifecycle.can_advance(OrderStatus.PENDING, OrderStatus.CONFIRMED)
        assert not lifecycle.can_advance(OrderStatus.PENDING, OrderStatus.SHIPPED)
        assert not lifecycle.can_advance(OrderStatus.SHIPPED, OrderStatus.PROCESSING)
        assert lifecycle.can_advance(OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
        assert not lifecycle.can_advance(OrderStatus.SHIPPED, OrderStatus.CANCELLED)


class TestTransitions:
    def test_confirm(self):
        order = lifecycle.confirm(make_order())

        assert order.status is OrderStatus.CONFIRMED

    def test_confirm_twice_rejected(self):
        order = lifecycle.confirm(make_order())

        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.confirm(order)
        assert exc_info.value.current == "CONFIRMED"

    def test_cancel_records_reason(self):
        order = lifecycle.cancel(make_order(OrderStatus.CONFIRMED), "  changed my mind ")

        assert order.status is OrderStatus.CANCELLED
        assert order.cancel_reason == "changed my mind"

    def test_cancel_delivered_rejected(self):
        with pytest.raises(InvalidTransitionError):
            lifecycle.cancel(make_order(OrderStatus.DELIVERED))

    def test_cancelled_is_terminal(self):
        order = lifecycle.cancel(make_order())

        for action in (lifecycle.confirm, lifecycle.cancel):
            with pytest.raises(InvalidTransitionError):
                action(order)
        with pytest.raises(InvalidTransitionError):
            lifecycle.advance(order, OrderStatus.PROCESSING)

    def test_advance_walks_full_path(self):
        order = make_order()
        for target in lifecycle.HAPPY_PATH[1:]:
            lifecycle.advance(order, target)

        assert order.status is OrderStatus.DELIVERED

    def test_advance_cannot_skip(self):
        with pytest.raises(InvalidTransitionError):
            lifecycle.advance(make_order(), OrderStatus.SHIPPED)


class TestUserTransitions:
    def test_block_requires_reason(self):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.block_user(User(1, "A", "a@example.com"), "   ")
        assert "reason" in exc_info.value.field_errors

    def test_block_and_unblock(self):
        user = lifecycle.block_user(User(1, "A", "a@example.com"), "spam")

        assert not user.is_active
        assert user.block_reason == "spam"
        with pytest.raises(InvalidTransitionError):
            lifecycle.block_user(user, "again")

        lifecycle.unblock_user(user)
        assert user.is_active
        assert user.block_reason is None
        with pytest.raises(InvalidTransitionError):
            lifecycle.unblock_user(user)


class FakeOrderService:
    """Server whose view of an order may be ahead of the client's."""

    def __init__(self, server_status):
        self.server_status = server_status
        self.calls = []

    def get_order(self, order_id):
        return make_order(self.server_status, order_id)

    def confirm_order(self, order_id):
        self.calls.append(("confirm", order_id))
        order = self.get_order(order_id)
        lifecycle.confirm(order)
        self.server_status = order.status
        return order

    def cancel_order(self, order_id, reason=None):
        self.calls.append(("cancel", order_id))
        order = self.get_order(order_id)
        lifecycle.cancel(order, reason)
        self.server_status = order.status
        return order


class TestOrderActions:
    def test_available_actions(self):
        actions = OrderActions(FakeOrderService(OrderStatus.PENDING))

        assert actions.available_actions(make_order()) == {"confirm": True, "cancel": True}
        assert actions.available_actions(make_order(OrderStatus.SHIPPED)) == {
            "confirm": False,
            "cancel": False,
        }

    def test_confirm_success(self):
        service = FakeOrderService(OrderStatus.PENDING)

        result = OrderActions(service).confirm(make_order())

        assert result.ok
        assert result.order.status is OrderStatus.CONFIRMED

    def test_local_guard_blocks_call(self):
        service = FakeOrderService(OrderStatus.DELIVERED)

        with pytest.raises(InvalidTransitionError):
            OrderActions(service).cancel(make_order(OrderStatus.DELIVERED))
        assert service.calls == []

    def test_stale_view_shows_current_status(self):
        # Client still sees PENDING; the server already shipped it
        service = FakeOrderService(OrderStatus.SHIPPED)

        result = OrderActions(service).cancel(make_order(OrderStatus.PENDING))

        assert not result.ok
        assert result.order.status is OrderStatus.SHIPPED
        assert "Cannot cancel" in result.message


class FakeUserService:
    def __init__(self):
        self.users = {1: User(1, "A", "a@example.com")}

    def get_user(self, user_id):
        return self.users[user_id]

    def block_user(self, user_id, reason):
        return lifecycle.block_user(self.users[user_id], reason)

    def unblock_user(self, user_id):
        return lifecycle.unblock_user(self.users[user_id])


class TestUserAccountActions:
    def test_block_requires_reason_before_calling(self):
        service = FakeUserService()

        with pytest.raises(ValidationError):
            UserAccountActions(service).block(service.get_user(1), "")
        assert service.get_user(1).is_active

    def test_unblock_requires_confirmation(self):
        service = FakeUserService()
        actions = UserAccountActions(service)
        user = actions.block(service.get_user(1), "fraud")

        with pytest.raises(ConfirmationRequiredError):
            actions.unblock(user)
        assert not service.get_user(1).is_active

        user = actions.unblock(user, confirmed=True)
        assert user.is_active

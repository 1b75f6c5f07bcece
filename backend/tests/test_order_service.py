# Overview: Pytest coverage for the order creation transaction and order state machine.

"""
Order Service Tests

Verifies:
- creation prices items from product snapshots and keeps amounts consistent
- any invalid item aborts the whole unit (no customer, order or counter change)
- promotions are checked twice (subtotal, then resolved store)
- assignment rules for admins and employers
- the state machine and item replacement
"""

import re
from decimal import Decimal

import pytest

from laundrypos.errors import ForbiddenError, NotFoundError, ValidationError
from laundrypos.models import Customer, Order, OrderItem, OrderStatusHistory
from laundrypos.services import customer_service, order_service
from laundrypos.services.scope_service import ChainScope, StoreScope

from conftest import principal_for


TEMP_PHONE_PATTERN = re.compile(r"^temp_\d+_[a-z0-9]{9}$")


def _create(principal, items, **extra):
    data = {"customer_name": "Lan", "customer_phone": "0901234567", "items": items}
    data.update(extra)
    return order_service.create_order(principal, data)


class TestCreateOrder:

    def test_amounts_follow_items(self, db_session, chain, product_s1):
        order = _create(
            principal_for(chain["employer_s1"]),
            [{"product_id": product_s1.id, "quantity": "2.5", "note": "no softener"}],
        )

        assert order.status == "created"
        assert order.store_id == chain["s1"].id
        assert order.assigned_to == chain["employer_s1"].id
        assert order.total_amount == Decimal("125000.00")
        assert order.discount_amount == Decimal("0")
        assert order.final_amount == Decimal("125000.00")
        assert order.total_amount == sum(item.line_total for item in order.items)
        assert order.items[0].unit_price == Decimal("50000.00")
        assert order.code.startswith("DH") and len(order.code) == 12

        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert [h.status for h in history] == ["created"]

    def test_price_is_snapshotted(self, db_session, chain, product_s1):
        order = _create(principal_for(chain["employer_s1"]), [{"product_id": product_s1.id, "quantity": 1}])
        product_s1.price = Decimal("99000")
        db_session.commit()

        item = db_session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.unit_price == Decimal("50000.00")

    def test_promotion_applied_and_clamped(self, db_session, chain, product_s1, promo_s1):
        order = _create(
            principal_for(chain["employer_s1"]),
            [{"product_id": product_s1.id, "quantity": 2}],
            promotion_id=promo_s1.id,
        )
        assert order.total_amount == Decimal("100000.00")
        assert order.discount_amount == Decimal("20000.00")
        assert order.final_amount == Decimal("80000.00")
        assert order.promotion_id == promo_s1.id

    def test_promotion_below_threshold_is_ignored(self, db_session, chain, product_s1, promo_s1):
        order = _create(
            principal_for(chain["employer_s1"]),
            [{"product_id": product_s1.id, "quantity": 1}],
            promotion_id=promo_s1.id,
        )
        assert order.promotion_id is None
        assert order.final_amount == Decimal("50000.00")

    def test_promotion_dropped_on_store_mismatch(self, db_session, chain, product_s1, promo_s1):
        # Admin assigns the order to S3 while the promotion is S1-only
        order = _create(
            principal_for(chain["admin_a"]),
            [{"product_id": product_s1.id, "quantity": 2}],
            promotion_id=promo_s1.id,
            assigned_to=chain["employer_s3"].id,
        )
        assert order.store_id == chain["s3"].id
        assert order.promotion_id is None
        assert order.discount_amount == Decimal("0")
        assert order.final_amount == order.total_amount

    def test_unknown_promotion_is_rejected(self, db_session, chain, product_s1):
        with pytest.raises(ValidationError):
            _create(
                principal_for(chain["employer_s1"]),
                [{"product_id": product_s1.id, "quantity": 1}],
                promotion_id=99999,
            )
        assert db_session.query(Order).count() == 0

    def test_empty_items_rejected(self, db_session, chain):
        with pytest.raises(ValidationError):
            _create(principal_for(chain["employer_s1"]), [])

    def test_root_cannot_create(self, db_session, chain, product_s1):
        with pytest.raises(ForbiddenError):
            _create(principal_for(chain["root"]), [{"product_id": product_s1.id, "quantity": 1}])


class TestAtomicity:

    @pytest.mark.parametrize(
        "bad_item",
        [
            {"quantity": 0},
            {"quantity": -1},
            {"quantity": "abc"},
            {"quantity": "NaN"},
            {"product_id": 99999, "quantity": 1},
        ],
    )
    def test_bad_item_leaves_nothing_behind(self, db_session, chain, product_s1, bad_item):
        principal = principal_for(chain["employer_s1"])
        _create(principal, [{"product_id": product_s1.id, "quantity": 1}])
        customer = db_session.query(Customer).filter_by(phone="0901234567").one()
        before = (customer.total_orders, customer.total_spent)

        second = {"product_id": product_s1.id}
        second.update(bad_item)
        with pytest.raises(ValidationError):
            _create(principal, [{"product_id": product_s1.id, "quantity": 3}, second])

        db_session.expire_all()
        customer = db_session.query(Customer).filter_by(phone="0901234567").one()
        assert (customer.total_orders, customer.total_spent) == before
        assert db_session.query(Order).count() == 1
        assert db_session.query(OrderItem).count() == 1

    def test_failed_first_order_creates_no_customer(self, db_session, chain, inactive_product_s1):
        with pytest.raises(ValidationError) as exc:
            _create(
                principal_for(chain["employer_s1"]),
                [{"product_id": inactive_product_s1.id, "quantity": 1}],
                customer_phone="0911111111",
            )
        assert str(inactive_product_s1.id) in exc.value.message
        assert db_session.query(Customer).count() == 0

    def test_quantity_error_names_product(self, db_session, chain, product_s1):
        with pytest.raises(ValidationError) as exc:
            _create(principal_for(chain["employer_s1"]), [{"product_id": product_s1.id, "quantity": 0}])
        assert "Wash and fold" in exc.value.message

    def test_other_chain_product_is_rejected(self, db_session, chain, product_s2):
        with pytest.raises(ValidationError):
            _create(principal_for(chain["employer_s1"]), [{"product_id": product_s2.id, "quantity": 1}])
        assert db_session.query(Order).count() == 0

    def test_code_collision_is_retried(self, db_session, chain, product_s1, monkeypatch):
        principal = principal_for(chain["employer_s1"])
        first = _create(principal, [{"product_id": product_s1.id, "quantity": 1}])

        codes = iter([first.code, "DH0000000001"])
        monkeypatch.setattr(order_service, "generate_order_code", lambda: next(codes))
        second = _create(principal, [{"product_id": product_s1.id, "quantity": 1}])

        assert second.code == "DH0000000001"
        assert db_session.query(Order).count() == 2
        customer = db_session.query(Customer).filter_by(phone="0901234567").one()
        assert customer.total_orders == 2


class TestCustomers:

    def test_stats_sum_final_amounts(self, db_session, chain, product_s1, promo_s1):
        principal = principal_for(chain["employer_s1"])
        first = _create(principal, [{"product_id": product_s1.id, "quantity": 2}], promotion_id=promo_s1.id)
        second = _create(principal, [{"product_id": product_s1.id, "quantity": 1}])

        customer = db_session.query(Customer).filter_by(phone="0901234567").one()
        assert customer.total_orders == 2
        assert customer.total_spent == first.final_amount + second.final_amount
        assert customer.total_spent == Decimal("130000.00")

    def test_name_is_refreshed(self, db_session, chain, product_s1):
        principal = principal_for(chain["employer_s1"])
        _create(principal, [{"product_id": product_s1.id, "quantity": 1}])
        _create(principal, [{"product_id": product_s1.id, "quantity": 1}], customer_name="Lan Nguyen")

        assert db_session.query(Customer).filter_by(phone="0901234567").one().name == "Lan Nguyen"

    def test_walk_in_gets_placeholder_phone(self, db_session, chain, product_s1):
        order = _create(
            principal_for(chain["employer_s1"]),
            [{"product_id": product_s1.id, "quantity": 1}],
            customer_phone="",
            customer_name="",
        )
        customer = order.customer
        assert TEMP_PHONE_PATTERN.match(customer.phone)
        assert customer.name == order_service.DEFAULT_CUSTOMER_NAME
        assert customer_service.find_by_phone(StoreScope(chain["s1"].id), customer.phone) is None

    def test_placeholder_phone_cannot_be_supplied(self, db_session, chain, product_s1):
        with pytest.raises(ValidationError):
            _create(
                principal_for(chain["employer_s1"]),
                [{"product_id": product_s1.id, "quantity": 1}],
                customer_phone="temp_123_abcdefghi",
            )


class TestAssignment:

    def test_admin_default_assignee_is_first_chain_employer(self, db_session, chain, product_s1):
        order = _create(principal_for(chain["admin_a"]), [{"product_id": product_s1.id, "quantity": 1}])
        assert order.assigned_to == chain["employer_s1"].id
        assert order.store_id == chain["s1"].id
        assert order.created_by == chain["admin_a"].id

    def test_admin_selected_store_picks_its_employer(self, db_session, chain, product_s3):
        principal = principal_for(chain["admin_a"], store_id=chain["s3"].id)
        order = _create(principal, [{"product_id": product_s3.id, "quantity": 1}])
        assert order.assigned_to == chain["employer_s3"].id
        assert order.store_id == chain["s3"].id

    def test_admin_cannot_assign_other_chain(self, db_session, chain, product_s1):
        with pytest.raises(ForbiddenError):
            _create(
                principal_for(chain["admin_a"]),
                [{"product_id": product_s1.id, "quantity": 1}],
                assigned_to=chain["employer_s2"].id,
            )
        assert db_session.query(Customer).count() == 0

    def test_employer_cannot_assign_other_store(self, db_session, chain, product_s1):
        with pytest.raises(ForbiddenError):
            _create(
                principal_for(chain["employer_s1"]),
                [{"product_id": product_s1.id, "quantity": 1}],
                assigned_to=chain["employer_s3"].id,
            )


def _order_for(chain, product, **extra):
    return _create(principal_for(chain["employer_s1"]), [{"product_id": product.id, "quantity": 1}], **extra)


class TestStateMachine:

    def test_prep_states_then_completed(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])

        for status in ("washing", "drying", "waiting_pickup"):
            order_service.update_order(scope, principal, order.id, {"status": status})
        order_service.change_status(scope, principal, order.id, "completed", "transfer")

        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).order_by(OrderStatusHistory.id)
        assert [h.status for h in history] == ["created", "washing", "drying", "waiting_pickup", "completed"]
        assert db_session.get(Order, order.id).payment_method == "transfer"

    def test_completed_is_terminal(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])
        order_service.change_status(scope, principal, order.id, "completed", "cash")

        with pytest.raises(ValidationError):
            order_service.change_status(scope, principal, order.id, "created")
        with pytest.raises(ValidationError):
            order_service.update_order(scope, principal, order.id, {"status": "washing"})

    def test_same_status_rejected(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ValidationError):
            order_service.change_status(
                StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id, "created",
            )

    def test_quick_status_needs_payment_method(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])

        with pytest.raises(ValidationError):
            order_service.change_status(scope, principal, order.id, "completed")
        with pytest.raises(ValidationError):
            order_service.change_status(scope, principal, order.id, "completed", "card")
        with pytest.raises(ValidationError):
            order_service.change_status(scope, principal, order.id, "washing")
        assert db_session.get(Order, order.id).status == "created"

    def test_invalid_status_string(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ValidationError):
            order_service.update_order(
                StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id, {"status": "lost"},
            )

    def test_out_of_scope_order_is_not_found(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(NotFoundError):
            order_service.get_order(ChainScope(chain["admin_b"].id), order.id)
        with pytest.raises(NotFoundError):
            order_service.change_status(
                StoreScope(chain["s2"].id), principal_for(chain["employer_s2"]), order.id, "completed", "cash",
            )


class TestItemReplacement:

    def test_replacement_recomputes_totals_and_keeps_discount(self, db_session, chain, product_s1, promo_s1):
        order = _create(
            principal_for(chain["employer_s1"]),
            [{"product_id": product_s1.id, "quantity": 2}],
            promotion_id=promo_s1.id,
        )
        updated = order_service.update_order(
            StoreScope(chain["s1"].id),
            principal_for(chain["employer_s1"]),
            order.id,
            {"items": [{"product_id": product_s1.id, "quantity": 3}], "note": "extra bag"},
        )

        assert updated.total_amount == Decimal("150000.00")
        assert updated.discount_amount == Decimal("20000.00")
        assert updated.final_amount == Decimal("130000.00")
        assert updated.promotion_id == promo_s1.id
        assert updated.updated_by == chain["employer_s1"].id
        assert updated.note == "extra bag"
        assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 1

    def test_replacement_refused_on_terminal_order(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])
        order_service.change_status(scope, principal, order.id, "completed", "cash")

        with pytest.raises(ValidationError):
            order_service.update_order(scope, principal, order.id, {"items": [{"product_id": product_s1.id, "quantity": 2}]})

    def test_bad_replacement_keeps_old_items(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ValidationError):
            order_service.update_order(
                StoreScope(chain["s1"].id),
                principal_for(chain["employer_s1"]),
                order.id,
                {"items": [{"product_id": product_s1.id, "quantity": -2}]},
            )
        db_session.expire_all()
        assert db_session.get(Order, order.id).total_amount == Decimal("50000.00")
        assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 1

    def test_reassignment_outside_scope_forbidden(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ForbiddenError):
            order_service.update_order(
                StoreScope(chain["s1"].id),
                principal_for(chain["employer_s1"]),
                order.id,
                {"assigned_to": chain["employer_s3"].id},
            )


class TestDebt:

    def _completed(self, chain, product):
        order = _order_for(chain, product)
        order_service.change_status(
            StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id, "completed", "cash",
        )
        return order

    def test_debt_requires_completed(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ValidationError):
            order_service.mark_debt(StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id)
        assert db_session.get(Order, order.id).is_debt is False

    def test_debt_round_trip(self, db_session, chain, product_s1):
        order = self._completed(chain, product_s1)
        scope = StoreScope(chain["s1"].id)
        principal = principal_for(chain["employer_s1"])

        marked = order_service.mark_debt(scope, principal, order.id)
        assert marked.is_debt is True
        assert marked.debt_paid_at is None

        with pytest.raises(ValidationError):
            order_service.mark_debt(scope, principal, order.id)

        paid = order_service.mark_debt_paid(scope, principal, order.id)
        assert paid.is_debt is False
        assert paid.debt_paid_at is not None

        with pytest.raises(ValidationError):
            order_service.mark_debt_paid(scope, principal, order.id)


class TestDelete:

    def test_admin_delete_cascades_children(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        code = order.code
        snapshot = order_service.delete_order(ChainScope(chain["admin_a"].id), principal_for(chain["admin_a"]), order.id)

        assert snapshot["code"] == code
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(OrderStatusHistory).count() == 0
        # Lifetime counters are not rolled back
        assert db_session.query(Customer).one().total_orders == 1

    def test_employer_cannot_delete(self, db_session, chain, product_s1):
        order = _order_for(chain, product_s1)
        with pytest.raises(ForbiddenError):
            order_service.delete_order(StoreScope(chain["s1"].id), principal_for(chain["employer_s1"]), order.id)

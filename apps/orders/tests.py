import threading
import unittest
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection, transaction
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.barcodes import services as barcodes
from apps.barcodes.models import BarcodeStatus
from apps.catalog.models import Branch, Product
from apps.common.exceptions import (
    AccountBlockedError,
    DeliverySlotFullError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
)
from apps.delivery.models import DeliverySlot
from apps.inventory.models import StockRow
from apps.loyalty import services as loyalty
from apps.loyalty.models import LoyaltyTransaction, LoyaltyTransactionType
from apps.notifications.models import Notification
from apps.orders import services
from apps.orders.models import Coupon, Order, OrderStatus
from apps.orders.transitions import cancellation_refusal, check_transition

User = get_user_model()

DELIVERY_PATH = [
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


class OrderTransitionTableTests(TestCase):
    def test_fulfillment_states_cannot_be_cancelled(self):
        for current in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY):
            with self.assertRaises(InvalidTransitionError):
                check_transition(current, OrderStatus.CANCELLED)

    def test_terminal_states_have_no_exits(self):
        for new in OrderStatus.values:
            with self.assertRaises(InvalidTransitionError):
                check_transition(OrderStatus.CANCELLED, new)
            with self.assertRaises(InvalidTransitionError):
                check_transition(OrderStatus.RETURNED, new)

    def test_return_flow_edges_are_reserved_for_the_returns_coordinator(self):
        with self.assertRaises(InvalidTransitionError):
            check_transition(OrderStatus.DELIVERED, OrderStatus.RETURN_REQUESTED)
        check_transition(OrderStatus.DELIVERED, OrderStatus.RETURN_REQUESTED, return_flow=True)
        with self.assertRaises(InvalidTransitionError):
            check_transition(OrderStatus.DELIVERED, OrderStatus.RETURNED, return_flow=True)

    def test_customer_cancellation_eligibility(self):
        for allowed in (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PAYMENT_PENDING):
            self.assertIsNone(cancellation_refusal(allowed))
        for refused in (OrderStatus.PREPARING, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED):
            self.assertIsNotNone(cancellation_refusal(refused))


class OrderServiceTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        self.branch = Branch.objects.create(code="cai", name="Cairo")
        self.products = [
            Product.objects.create(sku=f"ORD-00{index}", name=f"Product {index}", default_price=Decimal("10.00"))
            for index in range(1, 4)
        ]
        for product in self.products:
            StockRow.objects.create(branch=self.branch, product=product, stock_quantity=10)

    def place(self, user=None, quantity=2, total="60.00", **kwargs):
        kwargs.setdefault("branch_id", self.branch.id)
        return services.create_order(
            user=user or self.customer,
            items=[{"product_id": p.id, "quantity": quantity, "unit_price": "10.00"} for p in self.products],
            total=total,
            **kwargs,
        )

    def deliver(self, order):
        for new_status in DELIVERY_PATH:
            order = services.transition_order(order_id=order.pk, new_status=new_status, actor=self.admin)
        return order

    def rows(self):
        return list(StockRow.objects.filter(branch=self.branch).order_by("product__sku"))

    def points(self):
        self.customer.refresh_from_db(fields=["loyalty_points"])
        return self.customer.loyalty_points

    def test_create_reserves_stock_and_keeps_line_order(self):
        order = self.place()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertRegex(order.code, r"^ORD-\d{6}-[A-HJ-NP-Z2-9]{5}$")
        self.assertEqual([line.position for line in order.lines.all()], [1, 2, 3])
        self.assertEqual(order.subtotal, Decimal("60.00"))
        for row in self.rows():
            self.assertEqual((row.stock_quantity, row.reserved_quantity), (10, 2))
        self.assertTrue(AuditLog.objects.filter(action="order.create", entity_id=str(order.pk)).exists())

    def test_cancel_pending_order_releases_reservations_and_refunds_spent_points(self):
        loyalty.earn(user_id=self.customer.pk, points=500, reason="seed")
        order = self.place(points_to_spend=200)
        self.assertEqual(self.points(), 300)
        self.assertEqual(order.points_spent, 200)

        result = services.cancel_order(order_id=order.pk, user=self.customer, reason="Changed my mind")
        self.assertEqual(result["refunded_points"], 200)
        self.assertIsNone(result["warning"])
        self.assertEqual(self.points(), 500)
        for row in self.rows():
            self.assertEqual((row.stock_quantity, row.reserved_quantity), (10, 0))
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.cancelled_by, self.customer)

    def test_confirm_commits_and_cancel_restocks(self):
        order = self.place()
        services.transition_order(order_id=order.pk, new_status=OrderStatus.CONFIRMED, actor=self.admin)
        for row in self.rows():
            self.assertEqual((row.stock_quantity, row.reserved_quantity), (8, 0))

        services.cancel_order(order_id=order.pk, user=self.customer)
        for row in self.rows():
            self.assertEqual((row.stock_quantity, row.reserved_quantity), (10, 0))

    def test_delivery_earns_floor_of_total_and_return_deducts_it(self):
        order = self.place(total="123.75")
        order = self.deliver(order)
        self.assertEqual(order.points_earned, 123)
        self.assertIsNotNone(order.delivered_at)
        self.assertEqual(self.points(), 123)

        services.transition_order(order_id=order.pk, new_status=OrderStatus.RETURNED, actor=self.admin)
        self.assertEqual(self.points(), 0)
        entry = LoyaltyTransaction.objects.get(order=order, transaction_type=LoyaltyTransactionType.DEDUCT)
        self.assertEqual(entry.amount, -123)
        for row in self.rows():
            self.assertEqual(row.stock_quantity, 10)

    def test_reversal_deduction_clamps_at_zero_balance(self):
        order = self.deliver(self.place(total="123.75"))
        loyalty.adjust(actor=self.admin, user_id=self.customer.pk, points=-100, reason="correction")
        services.transition_order(order_id=order.pk, new_status=OrderStatus.CANCELLED, actor=self.admin)

        entry = LoyaltyTransaction.objects.get(order=order, transaction_type=LoyaltyTransactionType.DEDUCT)
        self.assertEqual(entry.amount, -23)
        self.assertEqual(entry.requested_amount, -123)
        self.assertEqual(self.points(), 0)
        self.assertEqual(loyalty.ledger_balance(self.customer.pk), 0)

    def test_guest_order_earns_nothing(self):
        order = services.create_order(
            user=None,
            items=[{"product_id": self.products[0].id, "quantity": 1, "unit_price": "50.00"}],
            total="50.00",
            branch_id=self.branch.id,
        )
        self.assertIsNone(order.user)
        self.assertTrue(order.guest_reference.startswith("guest-"))
        order = self.deliver(order)
        self.assertEqual(order.points_earned, 0)
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_last_unit_goes_to_exactly_one_order(self):
        StockRow.objects.filter(product=self.products[0]).update(stock_quantity=1)
        items = [{"product_id": self.products[0].id, "quantity": 1, "unit_price": "10.00"}]
        services.create_order(user=self.customer, items=items, total="10.00", branch_id=self.branch.id)
        with self.assertRaises(InsufficientStockError):
            services.create_order(user=self.customer, items=items, total="10.00", branch_id=self.branch.id)

        row = StockRow.objects.get(product=self.products[0])
        self.assertEqual(row.stock_quantity - row.reserved_quantity, 0)
        self.assertEqual(Order.objects.count(), 1)

    def test_failed_reservation_rolls_back_the_whole_order(self):
        loyalty.earn(user_id=self.customer.pk, points=100, reason="seed")
        StockRow.objects.filter(product=self.products[2]).update(stock_quantity=1)
        with self.assertRaises(InsufficientStockError):
            self.place(points_to_spend=100)
        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.points(), 100)
        for row in self.rows():
            self.assertEqual(row.reserved_quantity, 0)

    def test_delivery_slot_is_held_and_released(self):
        slot = DeliverySlot.objects.create(
            label="Morning",
            starts_at="2030-01-01T09:00:00Z",
            ends_at="2030-01-01T12:00:00Z",
            max_orders=1,
        )
        order = self.place(delivery_slot_id=slot.id)
        slot.refresh_from_db()
        self.assertEqual(slot.current_orders, 1)

        with self.assertRaises(DeliverySlotFullError):
            self.place(delivery_slot_id=slot.id)

        services.cancel_order(order_id=order.pk, user=self.customer)
        slot.refresh_from_db()
        self.assertEqual(slot.current_orders, 0)

    def test_redemption_code_is_used_inside_the_order(self):
        loyalty.earn(user_id=self.customer.pk, points=1000, reason="seed")
        barcode = barcodes.create_barcode(user=self.customer, points=1000)
        order = self.place(redemption_code=barcode.code, total="25.00")

        barcode.refresh_from_db()
        self.assertEqual(barcode.status, BarcodeStatus.USED)
        self.assertEqual(barcode.order, order)
        self.assertEqual(order.barcode_discount, Decimal("35.00"))
        self.assertEqual(order.redemption_code, barcode.code)

    def test_unknown_redemption_code_aborts_the_order(self):
        with self.assertRaises(NotFoundError):
            self.place(redemption_code="LPMISSING")
        self.assertFalse(Order.objects.exists())
        for row in self.rows():
            self.assertEqual(row.reserved_quantity, 0)

    def test_coupon_usage_is_best_effort(self):
        Coupon.objects.create(code="eid10")
        order = self.place(coupon_code="EID10", coupon_discount="5.00")
        order.refresh_from_db()
        self.assertEqual(order.coupon.code, "EID10")
        self.assertEqual(Coupon.objects.get(code="EID10").used_count, 1)

        order = self.place(coupon_code="NOPE", coupon_discount="5.00")
        order.refresh_from_db()
        self.assertIsNone(order.coupon)
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_customer_cannot_cancel_once_preparing(self):
        order = self.place()
        services.transition_order(order_id=order.pk, new_status=OrderStatus.PREPARING, actor=self.admin)
        with self.assertRaises(InvalidTransitionError):
            services.cancel_order(order_id=order.pk, user=self.customer)

    def test_repeated_cancellations_flag_then_block(self):
        with override_settings(
            CANCELLATION_POLICY={"WINDOW_DAYS": 30, "FLAG_THRESHOLD": 2, "BLOCK_WARNING_THRESHOLD": 2}
        ):
            first = services.cancel_order(order_id=self.place(quantity=1).pk, user=self.customer)
            self.assertIsNone(first["warning"])

            second = services.cancel_order(order_id=self.place(quantity=1).pk, user=self.customer)
            self.assertIsNotNone(second["warning"])
            self.assertFalse(second["account_blocked"])
            self.customer.refresh_from_db()
            self.assertTrue(self.customer.suspicious_activity)
            self.assertEqual(self.customer.suspension_warning_count, 1)

            third = services.cancel_order(order_id=self.place(quantity=1).pk, user=self.customer)
            self.assertTrue(third["account_blocked"])
            self.customer.refresh_from_db()
            self.assertTrue(self.customer.is_blocked)

            with self.assertRaises(AccountBlockedError):
                self.place(quantity=1)

            suspicious = list(services.suspicious_customers())
            self.assertEqual([user.pk for user in suspicious], [self.customer.pk])
            self.assertEqual(suspicious[0].recent_cancellations, 3)

    def test_admin_cancellations_do_not_count_against_the_customer(self):
        with override_settings(
            CANCELLATION_POLICY={"WINDOW_DAYS": 30, "FLAG_THRESHOLD": 1, "BLOCK_WARNING_THRESHOLD": 5}
        ):
            order = self.place(quantity=1)
            services.transition_order(order_id=order.pk, new_status=OrderStatus.CANCELLED, actor=self.admin)
            self.customer.refresh_from_db()
            self.assertFalse(self.customer.suspicious_activity)
            self.assertEqual(list(services.suspicious_customers()), [])

    def test_cancellation_notifies_after_commit(self):
        order = self.place()
        with self.captureOnCommitCallbacks(execute=True):
            services.cancel_order(order_id=order.pk, user=self.customer, reason="late")
        notification = Notification.objects.get(event="order_cancelled")
        self.assertIsNone(notification.user)
        self.assertEqual(notification.payload["code"], order.code)


class OrderApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        self.other = User.objects.create_user(username="other", password="other123")
        self.branch = Branch.objects.create(code="gza", name="Giza")
        self.product = Product.objects.create(sku="API-001", name="Helmet", default_price=Decimal("40.00"))
        StockRow.objects.create(branch=self.branch, product=self.product, stock_quantity=3)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def payload(self, quantity=1, **extra):
        data = {
            "branch_id": str(self.branch.id),
            "items": [{"product_id": str(self.product.id), "quantity": quantity, "unit_price": "40.00"}],
            "total": str(Decimal("40.00") * quantity),
            "payment_method": "cod",
        }
        data.update(extra)
        return data

    def test_customer_places_and_lists_own_orders(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/orders/", self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["order_code"].startswith("ORD-"))

        self.auth_as("other", "other123")
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.data["count"], 0)

        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.data["count"], 1)

    def test_guest_checkout_and_public_tracking(self):
        response = self.client.post("/api/v1/orders/", self.payload(guest_reference="guest-42"), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(pk=response.data["order_id"])
        self.assertIsNone(order.user)
        self.assertEqual(order.guest_reference, "guest-42")

        response = self.client.get(f"/api/v1/orders/track/{order.code}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], OrderStatus.PENDING)

    def test_guest_cannot_spend_points(self):
        response = self.client.post("/api/v1/orders/", self.payload(points_to_spend=100), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")

    def test_staff_cannot_place_orders(self):
        self.auth_as("staff", "staff123")
        response = self.client.post("/api/v1/orders/", self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_insufficient_stock_reports_available_units(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/orders/", self.payload(quantity=4), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "insufficient_stock")
        self.assertEqual(response.data["facts"]["available"], 3)

    def test_staff_moves_status_and_customer_cannot(self):
        self.auth_as("customer", "customer123")
        order_id = self.client.post("/api/v1/orders/", self.payload(), format="json").data["order_id"]
        response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth_as("staff", "staff123")
        response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], OrderStatus.CONFIRMED)

        response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "delivered"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["facts"]["current_status"], OrderStatus.CONFIRMED)

    def test_only_owner_can_cancel(self):
        self.auth_as("customer", "customer123")
        order_id = self.client.post("/api/v1/orders/", self.payload(), format="json").data["order_id"]

        self.auth_as("other", "other123")
        response = self.client.post(f"/api/v1/orders/{order_id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/orders/{order_id}/cancel/", {"reason": "oops"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["refunded_points"], 0)

    def test_admin_review_lists(self):
        self.auth_as("customer", "customer123")
        order_id = self.client.post("/api/v1/orders/", self.payload(), format="json").data["order_id"]
        self.client.post(f"/api/v1/orders/{order_id}/cancel/", {}, format="json")

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/orders/cancelled/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)
        response = self.client.get("/api/v1/orders/suspicious-customers/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentOrderTests(TransactionTestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="race", name="Race branch")
        self.product = Product.objects.create(sku="RACE-1", name="Last unit", default_price=Decimal("10.00"))
        StockRow.objects.create(branch=self.branch, product=self.product, stock_quantity=1)
        self.buyers = [User.objects.create_user(username=f"buyer{index}", password="x") for index in range(2)]

    def run_concurrently(self, target, count):
        barrier = threading.Barrier(count)
        outcomes = []

        def worker(index):
            try:
                barrier.wait()
                target(index)
                outcomes.append("ok")
            except Exception as exc:
                outcomes.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return outcomes

    def test_two_orders_for_the_last_unit(self):
        items = [{"product_id": self.product.id, "quantity": 1, "unit_price": "10.00"}]
        outcomes = self.run_concurrently(
            lambda index: services.create_order(
                user=self.buyers[index], items=items, total="10.00", branch_id=self.branch.id
            ),
            2,
        )
        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(sum(isinstance(outcome, InsufficientStockError) for outcome in outcomes), 1)
        row = StockRow.objects.get(product=self.product)
        self.assertEqual(row.stock_quantity - row.reserved_quantity, 0)

    def test_two_uses_of_the_same_barcode(self):
        owner = self.buyers[0]
        with transaction.atomic():
            loyalty.earn(user_id=owner.pk, points=1000, reason="seed")
        barcode = barcodes.create_barcode(user=owner, points=1000)

        outcomes = self.run_concurrently(
            lambda index: barcodes.use_barcode(code=barcode.code, user=self.buyers[index]),
            2,
        )
        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(sum(getattr(outcome, "status_code", None) == 409 for outcome in outcomes), 1)

    @override_settings(CANCELLATION_POLICY={"WINDOW_DAYS": 30, "FLAG_THRESHOLD": 3, "BLOCK_WARNING_THRESHOLD": 5})
    def test_two_cancellations_by_the_same_customer(self):
        customer = self.buyers[0]
        items = [{"product_id": self.product.id, "quantity": 1, "unit_price": "10.00"}]
        earlier = services.create_order(user=customer, items=items, total="10.00")
        services.cancel_order(order_id=earlier.pk, user=customer)
        orders = [services.create_order(user=customer, items=items, total="10.00") for _index in range(2)]

        outcomes = self.run_concurrently(
            lambda index: services.cancel_order(order_id=orders[index].pk, user=customer),
            2,
        )
        self.assertEqual(outcomes, ["ok", "ok"])
        customer.refresh_from_db()
        self.assertTrue(customer.suspicious_activity)
        self.assertEqual(customer.suspension_warning_count, 1)

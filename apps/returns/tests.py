import uuid
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Branch, Product
from apps.common.exceptions import ReturnAlreadyResolvedError, ReturnWindowElapsedError, ValidationError
from apps.inventory.models import StockRow
from apps.orders import services as orders
from apps.orders.models import Order, OrderStatus
from apps.returns import services
from apps.returns.models import Return, ReturnStatus

User = get_user_model()


class ReturnFlowTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        self.other = User.objects.create_user(username="other", password="other123")
        self.branch = Branch.objects.create(code="cai", name="Cairo")
        self.product = Product.objects.create(sku="RET-001", name="Jacket", default_price=Decimal("61.88"))
        self.row = StockRow.objects.create(branch=self.branch, product=self.product, stock_quantity=5)
        self.order = self.delivered_order()

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def delivered_order(self):
        order = orders.create_order(
            user=self.customer,
            items=[{"product_id": self.product.id, "quantity": 2, "unit_price": "61.88"}],
            total="123.75",
            branch_id=self.branch.id,
            shipping_fee="10.00",
        )
        for new_status in (
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        ):
            order = orders.transition_order(order_id=order.pk, new_status=new_status, actor=self.admin)
        return order

    def deliver_days_ago(self, delta):
        Order.objects.filter(pk=self.order.pk).update(delivered_at=timezone.now() - delta)

    def request_return(self, quantity=2):
        return services.create_return(
            order_id=self.order.pk,
            user=self.customer,
            items=[{"product_id": self.product.id, "quantity": quantity}],
            reason="Wrong size",
        )

    def stock(self):
        self.row.refresh_from_db()
        return self.row.stock_quantity

    def test_refund_amount_and_restock_on_request(self):
        self.assertEqual(self.stock(), 3)
        return_request = self.request_return()
        self.assertTrue(return_request.code.startswith("RET"))
        self.assertEqual(return_request.border_fee, Decimal("7.00"))
        self.assertEqual(return_request.shipping_fee, Decimal("10.00"))
        self.assertEqual(return_request.refund_amount, Decimal("106.75"))
        self.assertEqual(return_request.points_to_deduct, 123)
        self.assertEqual(self.stock(), 5)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.RETURN_REQUESTED)

    def test_window_accepts_six_days_twenty_three_hours(self):
        self.deliver_days_ago(timedelta(days=6, hours=23))
        self.assertEqual(self.request_return().status, ReturnStatus.PENDING)

    def test_window_rejects_eight_days(self):
        self.deliver_days_ago(timedelta(days=8))
        with self.assertRaises(ReturnWindowElapsedError) as ctx:
            self.request_return()
        self.assertEqual(ctx.exception.facts["days"], 8)
        self.assertFalse(Return.objects.exists())
        self.assertEqual(self.stock(), 3)

    def test_approval_refunds_wallet_and_reverses_points(self):
        return_request = self.request_return()
        services.update_return_status(return_id=return_request.pk, status=ReturnStatus.APPROVED, actor=self.admin)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("106.75"))
        self.assertEqual(self.customer.loyalty_points, 0)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.RETURNED)
        self.assertEqual(self.stock(), 5)

        with self.assertRaises(ReturnAlreadyResolvedError):
            services.update_return_status(return_id=return_request.pk, status=ReturnStatus.REJECTED, actor=self.admin)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("106.75"))

    def test_rejection_takes_units_back_and_restores_delivery(self):
        return_request = self.request_return(quantity=1)
        self.assertEqual(self.stock(), 4)
        services.update_return_status(
            return_id=return_request.pk, status=ReturnStatus.REJECTED, actor=self.admin, admin_notes="Worn"
        )
        self.assertEqual(self.stock(), 3)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 123)
        self.assertEqual(self.customer.wallet_balance, Decimal("0.00"))

    def test_api_create_requires_owner_and_delivered_order(self):
        self.auth_as("other", "other123")
        payload = {
            "order_id": self.order.pk,
            "items": [{"product_id": str(self.product.id), "quantity": 1}],
            "reason": "Damaged",
        }
        response = self.client.post("/api/v1/returns/", payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/returns/", payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        code = response.data["code"]

        response = self.client.post("/api/v1/returns/", payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "invalid_transition")

        self.client.credentials()
        response = self.client.get(f"/api/v1/returns/check/{code}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], ReturnStatus.PENDING)

    def test_api_resolution_is_admin_only(self):
        return_request = self.request_return()
        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/returns/{return_request.pk}/status/", {"status": "approved"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/returns/{return_request.pk}/status/", {"status": "approved"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post(f"/api/v1/returns/{return_request.pk}/status/", {"status": "rejected"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "return_resolved")

        response = self.client.get("/api/v1/returns/all/?status=approved")
        self.assertEqual(response.data["count"], 1)

    def test_unknown_resolution_is_rejected_before_lookup(self):
        with self.assertRaises(ValidationError):
            services.update_return_status(return_id=uuid.uuid4(), status=ReturnStatus.PENDING, actor=self.admin)

        return_request = self.request_return()
        with self.assertRaises(ValidationError):
            services.update_return_status(return_id=return_request.pk, status="refunded", actor=self.admin)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.PENDING)
        self.assertIsNone(return_request.resolved_at)

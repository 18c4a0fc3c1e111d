from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Branch, Product
from apps.delivery.models import DeliverySlot
from apps.inventory.models import StockRow
from apps.notifications.models import Notification
from apps.notifications.services import notify

User = get_user_model()


class AccountApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        self.branch = Branch.objects.create(code="alx", name="Alexandria")
        self.product = Product.objects.create(sku="ACC-001", name="Gloves", default_price=Decimal("15.00"))
        StockRow.objects.create(branch=self.branch, product=self.product, stock_quantity=5)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_admin_toggles_block(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            f"/api/v1/accounts/{self.customer.pk}/toggle-block/", {"reason": "Chargebacks"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_blocked"])
        self.assertEqual(response.data["block_reason"], "Chargebacks")
        self.assertTrue(AuditLog.objects.filter(action="accounts.block", entity_id=str(self.customer.pk)).exists())

        response = self.client.post(f"/api/v1/accounts/{self.customer.pk}/toggle-block/", {}, format="json")
        self.assertFalse(response.data["is_blocked"])
        self.assertEqual(response.data["suspension_warning_count"], 0)

    def test_admin_cannot_block_self(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/accounts/{self.admin.pk}/toggle-block/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")

    def test_customer_cannot_block(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/accounts/{self.admin.pk}/toggle-block/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unknown_user_is_not_found(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/accounts/999999/toggle-block/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_blocked_customer_cannot_order(self):
        User.objects.filter(pk=self.customer.pk).update(is_blocked=True, blocked_at=timezone.now())
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/orders/",
            {
                "branch_id": str(self.branch.id),
                "items": [{"product_id": str(self.product.id), "quantity": 1, "unit_price": "15.00"}],
                "total": "15.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "account_blocked")
        self.assertEqual(StockRow.objects.get(product=self.product).reserved_quantity, 0)

    def test_available_slots_hide_full_and_past(self):
        now = timezone.now()
        open_slot = DeliverySlot.objects.create(
            branch=self.branch, label="Tomorrow AM", starts_at=now + timedelta(days=1),
            ends_at=now + timedelta(days=1, hours=3), max_orders=2, current_orders=1,
        )
        DeliverySlot.objects.create(
            branch=self.branch, label="Full", starts_at=now + timedelta(days=1),
            ends_at=now + timedelta(days=1, hours=3), max_orders=1, current_orders=1,
        )
        DeliverySlot.objects.create(
            branch=self.branch, label="Yesterday", starts_at=now - timedelta(days=1),
            ends_at=now - timedelta(hours=21), max_orders=5,
        )
        self.auth_as("customer", "customer123")
        response = self.client.get(f"/api/v1/delivery/slots/?branch={self.branch.id}")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data["results"]], [str(open_slot.id)])
        self.assertEqual(response.data["results"][0]["remaining"], 1)

    def test_notification_inbox_scope(self):
        with self.captureOnCommitCallbacks(execute=True):
            notify(event="order_created", title="New order", payload={"order_id": 1})
            notify(event="order_status_changed", title="Shipped", user=self.customer)

        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual([row["event"] for row in response.data["results"]], ["order_status_changed"])

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/notifications/?unread=true")
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["event"], "order_created")


class NotifyTests(TestCase):
    def test_delivery_waits_for_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            notify(event="order_created", title="New order")
        self.assertEqual(len(callbacks), 1)
        self.assertFalse(Notification.objects.exists())

    def test_failed_delivery_is_logged_and_dropped(self):
        with mock.patch.object(Notification.objects, "create", side_effect=DatabaseError("inbox down")):
            with self.assertLogs("apps.notifications.services", level="WARNING"):
                with self.captureOnCommitCallbacks(execute=True):
                    notify(event="order_created", title="New order")
        self.assertFalse(Notification.objects.exists())


class SeedRolesCommandTests(TestCase):
    def test_creates_groups_and_assigns_users(self):
        admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        customer = User.objects.create_user(username="customer", password="customer123")

        out = StringIO()
        call_command("seed_roles", stdout=out)

        self.assertEqual(set(Group.objects.values_list("name", flat=True)), {"ADMIN", "STAFF", "CUSTOMER"})
        self.assertTrue(admin.groups.filter(name="ADMIN").exists())
        self.assertTrue(customer.groups.filter(name="CUSTOMER").exists())
        self.assertIn("Users assigned to role groups: 2", out.getvalue())

from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.common.exceptions import InsufficientPointsError, ValidationError
from apps.loyalty import services
from apps.loyalty.models import LoyaltyTransaction, LoyaltyTransactionType

User = get_user_model()


class LoyaltyLedgerTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="nour", password="nour123")

    def balance(self):
        self.user.refresh_from_db(fields=["loyalty_points"])
        return self.user.loyalty_points

    def test_earn_and_refund_append_one_entry_each(self):
        services.earn(user_id=self.user.pk, points=150, reason="order")
        services.refund(user_id=self.user.pk, points=50, reason="refund")
        self.assertEqual(self.balance(), 200)
        self.assertEqual(LoyaltyTransaction.objects.filter(user=self.user).count(), 2)
        self.assertEqual(services.ledger_balance(self.user.pk), 200)

    def test_deduct_clamps_at_zero_and_keeps_requested_amount(self):
        services.earn(user_id=self.user.pk, points=40, reason="order")
        entry = services.deduct(user_id=self.user.pk, points=123, reason="return")
        self.assertEqual(entry.amount, -40)
        self.assertEqual(entry.requested_amount, -123)
        self.assertEqual(entry.transaction_type, LoyaltyTransactionType.DEDUCT)
        self.assertEqual(self.balance(), 0)
        self.assertEqual(services.ledger_balance(self.user.pk), 0)

    def test_debit_requires_full_balance(self):
        services.earn(user_id=self.user.pk, points=100, reason="order")
        with self.assertRaises(InsufficientPointsError) as ctx:
            services.debit(user_id=self.user.pk, points=101, reason="spend")
        self.assertEqual(ctx.exception.facts, {"balance": 100, "requested": 101})
        self.assertEqual(self.balance(), 100)

    def test_non_positive_points_are_rejected(self):
        with self.assertRaises(ValidationError):
            services.earn(user_id=self.user.pk, points=0, reason="nothing")

    def test_entries_are_append_only(self):
        entry = services.earn(user_id=self.user.pk, points=10, reason="order")
        entry.description = "edited"
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()

    def test_reconcile_command_reports_drift(self):
        services.earn(user_id=self.user.pk, points=10, reason="order")
        call_command("reconcile_loyalty", stdout=StringIO())

        User.objects.filter(pk=self.user.pk).update(loyalty_points=99)
        with self.assertRaises(CommandError):
            call_command("reconcile_loyalty", stdout=StringIO())


class LoyaltyApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_admin_adjustment_is_audited_and_clamped(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/loyalty/adjust/",
            {"user_id": self.customer.pk, "points": 2500, "reason": "Welcome bonus"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post(
            "/api/v1/loyalty/adjust/",
            {"user_id": self.customer.pk, "points": -3000, "reason": "Fraud correction"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["amount"], -2500)
        self.assertEqual(response.data["requested_amount"], -3000)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 0)
        self.assertEqual(AuditLog.objects.filter(action="loyalty.adjust").count(), 2)

    def test_customer_sees_balance_and_own_transactions(self):
        services.earn(user_id=self.customer.pk, points=2300, reason="orders")
        services.earn(user_id=self.admin.pk, points=5, reason="orders")
        self.auth_as("customer", "customer123")

        response = self.client.get("/api/v1/loyalty/balance/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["points"], 2300)
        self.assertEqual(response.data["redeemable_points"], 2000)

        response = self.client.get("/api/v1/loyalty/transactions/")
        self.assertEqual(response.data["count"], 1)

    def test_customer_cannot_adjust(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/loyalty/adjust/",
            {"user_id": self.customer.pk, "points": 100, "reason": "self service"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.barcodes import services
from apps.barcodes.models import Barcode, BarcodeStatus
from apps.common.exceptions import (
    AuthorizationError,
    BarcodeAlreadyUsedError,
    BarcodeCancelledError,
    BarcodeExpiredError,
    InsufficientPointsError,
    NotFoundError,
    ValidationError,
)
from apps.loyalty import services as loyalty
from apps.loyalty.models import LoyaltyTransaction, LoyaltyTransactionType

User = get_user_model()


class BarcodeServiceTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="owner123")
        self.shopper = User.objects.create_user(username="shopper", password="shopper123")
        loyalty.earn(user_id=self.owner.pk, points=3000, reason="seed")

    def points(self, user):
        user.refresh_from_db(fields=["loyalty_points"])
        return user.loyalty_points

    def test_points_must_be_a_positive_multiple_of_the_unit(self):
        for points in (0, 999, 1500):
            with self.assertRaises(ValidationError):
                services.create_barcode(user=self.owner, points=points)
        self.assertFalse(Barcode.objects.exists())

    def test_create_debits_points_and_derives_value(self):
        barcode = services.create_barcode(user=self.owner, points=2000)
        self.assertTrue(barcode.code.startswith("LP"))
        self.assertEqual(barcode.monetary_value, Decimal("70.00"))
        self.assertEqual(barcode.status, BarcodeStatus.ACTIVE)
        self.assertAlmostEqual(
            (barcode.expires_at - barcode.created_at).total_seconds(), timedelta(days=30).total_seconds(), delta=5
        )
        self.assertEqual(self.points(self.owner), 1000)
        entry = LoyaltyTransaction.objects.get(barcode=barcode)
        self.assertEqual(entry.transaction_type, LoyaltyTransactionType.REDEMPTION)
        self.assertEqual(entry.amount, -2000)

    def test_create_requires_enough_points(self):
        with self.assertRaises(InsufficientPointsError):
            services.create_barcode(user=self.owner, points=4000)
        self.assertEqual(self.points(self.owner), 3000)

    def test_cancel_refunds_exactly_the_debit(self):
        barcode = services.create_barcode(user=self.owner, points=2000)
        services.cancel_barcode(barcode_id=barcode.id, user=self.owner)
        barcode.refresh_from_db()
        self.assertEqual(barcode.status, BarcodeStatus.CANCELLED)
        self.assertEqual(self.points(self.owner), 3000)
        with self.assertRaises(BarcodeCancelledError):
            services.cancel_barcode(barcode_id=barcode.id, user=self.owner)
        self.assertEqual(self.points(self.owner), 3000)

    def test_only_owner_can_cancel(self):
        barcode = services.create_barcode(user=self.owner, points=1000)
        with self.assertRaises(AuthorizationError):
            services.cancel_barcode(barcode_id=barcode.id, user=self.shopper)

    def test_use_moves_no_points_and_is_single_shot(self):
        barcode = services.create_barcode(user=self.owner, points=1000)
        services.use_barcode(code=barcode.code, user=self.shopper)
        barcode.refresh_from_db()
        self.assertEqual(barcode.status, BarcodeStatus.USED)
        self.assertEqual(barcode.used_by, self.shopper)
        self.assertEqual(self.points(self.shopper), 0)
        entry = LoyaltyTransaction.objects.get(barcode=barcode, transaction_type=LoyaltyTransactionType.BARCODE_USED)
        self.assertEqual(entry.amount, 0)

        with self.assertRaises(BarcodeAlreadyUsedError) as ctx:
            services.use_barcode(code=barcode.code, user=self.owner)
        self.assertEqual(ctx.exception.facts["used_by"], self.shopper.pk)
        with self.assertRaises(BarcodeAlreadyUsedError):
            services.cancel_barcode(barcode_id=barcode.id, user=self.owner)

    def test_expired_and_unknown_codes_are_refused(self):
        barcode = services.create_barcode(user=self.owner, points=1000)
        Barcode.objects.filter(pk=barcode.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        with self.assertRaises(BarcodeExpiredError):
            services.use_barcode(code=barcode.code, user=self.shopper)
        with self.assertRaises(NotFoundError):
            services.use_barcode(code="LPNOPE", user=self.shopper)

    def test_validate_does_not_mutate(self):
        barcode = services.create_barcode(user=self.owner, points=1000)
        services.validate_barcode(barcode.code)
        barcode.refresh_from_db()
        self.assertEqual(barcode.status, BarcodeStatus.ACTIVE)


class BarcodeApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        loyalty.earn(user_id=self.customer.pk, points=2000, reason="seed")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_create_then_cancel_round_trip(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/barcodes/", {"points_to_redeem": 2000}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["monetary_value"], "70.00")
        self.assertEqual(response.data["remaining_points"], 0)

        response = self.client.post(f"/api/v1/barcodes/{response.data['id']}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["refunded_points"], 2000)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 2000)

    def test_public_validate_reports_used_barcode(self):
        barcode = services.create_barcode(user=self.customer, points=1000)
        response = self.client.get(f"/api/v1/barcodes/{barcode.code}/validate/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["valid"])

        services.use_barcode(code=barcode.code, user=self.customer)
        response = self.client.get(f"/api/v1/barcodes/{barcode.code}/validate/")
        self.assertFalse(response.data["valid"])
        self.assertEqual(response.data["code"], "barcode_used")

    def test_second_use_over_api_is_a_conflict(self):
        barcode = services.create_barcode(user=self.customer, points=1000)
        self.auth_as("customer", "customer123")
        first = self.client.post(f"/api/v1/barcodes/{barcode.code}/use/", {}, format="json")
        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data["discount_amount"], Decimal("35.00"))
        second = self.client.post(f"/api/v1/barcodes/{barcode.code}/use/", {}, format="json")
        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(second.data["code"], "barcode_used")

    def test_admin_lists_all_barcodes_by_status(self):
        services.create_barcode(user=self.customer, points=1000)
        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/barcodes/all/?status=active")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)

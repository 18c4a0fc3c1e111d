from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Branch, Product
from apps.common.exceptions import InsufficientStockError
from apps.inventory import services
from apps.inventory.models import MovementType, StockMovement, StockRow

User = get_user_model()


class StockLedgerTests(TestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="cai", name="Cairo")
        self.product = Product.objects.create(sku="INV-001", name="Helmet", default_price=Decimal("100.00"))
        self.row = StockRow.objects.create(branch=self.branch, product=self.product, stock_quantity=5)

    def call(self, operation, qty, reference=("order", 1)):
        return operation(branch_id=self.branch.id, product_id=self.product.id, qty=qty, reference=reference)

    def test_reserve_holds_units_and_records_movement(self):
        self.call(services.reserve, 3)
        self.row.refresh_from_db()
        self.assertEqual(self.row.reserved_quantity, 3)
        self.assertEqual(self.row.available_quantity, 2)
        movement = StockMovement.objects.get(stock_row=self.row)
        self.assertEqual(movement.movement_type, MovementType.RESERVED)
        self.assertEqual(movement.reserved_delta, 3)
        self.assertEqual(movement.reference_id, "1")

    def test_reserve_beyond_available_reports_blocking_facts(self):
        self.call(services.reserve, 4)
        with self.assertRaises(InsufficientStockError) as ctx:
            self.call(services.reserve, 2)
        self.assertEqual(ctx.exception.facts["available"], 1)
        self.assertEqual(ctx.exception.facts["requested"], 2)
        self.row.refresh_from_db()
        self.assertEqual(self.row.reserved_quantity, 4)

    def test_missing_row_is_skipped(self):
        other = Product.objects.create(sku="INV-002", name="Gloves", default_price=Decimal("50.00"))
        result = services.reserve(branch_id=self.branch.id, product_id=other.id, qty=10, reference=("order", 1))
        self.assertIsNone(result)
        self.assertFalse(StockRow.objects.filter(product=other).exists())

    def test_commit_takes_units_off_hand_and_out_of_reservation(self):
        self.call(services.reserve, 2)
        self.call(services.commit, 2)
        self.row.refresh_from_db()
        self.assertEqual(self.row.stock_quantity, 3)
        self.assertEqual(self.row.reserved_quantity, 0)

    def test_commit_requires_units_on_hand(self):
        StockRow.objects.filter(pk=self.row.pk).update(stock_quantity=1)
        with self.assertRaises(InsufficientStockError):
            self.call(services.commit, 2)
        self.row.refresh_from_db()
        self.assertEqual(self.row.stock_quantity, 1)

    def test_release_clamps_reservation_at_zero(self):
        self.call(services.reserve, 1)
        self.call(services.release, 3)
        self.row.refresh_from_db()
        self.assertEqual(self.row.reserved_quantity, 0)
        self.assertEqual(self.row.stock_quantity, 5)

    def test_restock_then_unrestock(self):
        self.call(services.restock, 2)
        self.row.refresh_from_db()
        self.assertEqual(self.row.stock_quantity, 7)
        self.call(services.unrestock, 2)
        self.row.refresh_from_db()
        self.assertEqual(self.row.stock_quantity, 5)

    def test_unrestock_never_goes_below_reserved(self):
        self.call(services.reserve, 4)
        self.call(services.unrestock, 3)
        self.row.refresh_from_db()
        self.assertEqual(self.row.stock_quantity, 4)
        self.assertEqual(self.row.reserved_quantity, 4)


class StockApiTests(APITestCase):
    def setUp(self):
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        branch = Branch.objects.create(code="alx", name="Alexandria")
        product = Product.objects.create(sku="INV-010", name="Jacket", default_price=Decimal("300.00"))
        StockRow.objects.create(branch=branch, product=product, stock_quantity=4, reserved_quantity=1)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_staff_can_list_stock_rows(self):
        self.auth_as("staff", "staff123")
        response = self.client.get("/api/v1/inventory/stocks/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["available_quantity"], 3)

    def test_customer_cannot_list_stock_rows(self):
        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/inventory/stocks/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

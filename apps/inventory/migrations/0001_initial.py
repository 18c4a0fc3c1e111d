import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="StockRow",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("stock_quantity", models.IntegerField(default=0)),
                ("reserved_quantity", models.IntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_rows", to="catalog.branch"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_rows", to="catalog.product"
                    ),
                ),
            ],
            options={
                "ordering": ["branch", "product"],
                "constraints": [
                    models.UniqueConstraint(fields=("branch", "product"), name="unique_stock_branch_product"),
                    models.CheckConstraint(
                        condition=models.Q(("reserved_quantity__gte", 0)), name="stock_reserved_gte_zero"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("reserved_quantity__lte", models.F("stock_quantity"))),
                        name="stock_reserved_lte_on_hand",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("RESERVED", "Reserved"),
                            ("COMMITTED", "Committed"),
                            ("RELEASED", "Released"),
                            ("RESTOCKED", "Restocked"),
                            ("UNRESTOCKED", "Restock reverted"),
                        ],
                        max_length=20,
                    ),
                ),
                ("stock_delta", models.IntegerField(default=0)),
                ("reserved_delta", models.IntegerField(default=0)),
                ("reference_type", models.CharField(max_length=64)),
                ("reference_id", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="stock_movements",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "stock_row",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="inventory.stockrow"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["reference_type", "reference_id"], name="stockmove_reference_idx")],
            },
        ),
    ]

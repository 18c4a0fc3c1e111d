from django.contrib import admin

from apps.catalog.models import Branch, Product


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("code", "name")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "default_price", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("sku", "name")

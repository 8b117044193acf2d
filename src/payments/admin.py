from django.contrib import admin

from payments.models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    """Payments are settled by reconciliation; the admin only reads them."""

    list_display = ["reference", "user", "type", "amount", "currency", "status", "refund_status", "created_at"]
    list_filter = ["type", "status", "refund_status", "gateway"]
    search_fields = ["reference", "gateway_reference", "email", "user__email"]
    readonly_fields = [f.name for f in Transaction._meta.concrete_fields]

    def has_add_permission(self, request: object) -> bool:
        return False

from django.contrib import admin

from .models import (
    Company,
    CompanyTemplatePrice,
    Document,
    DocumentAuditLog,
    DocumentTemplate,
    Notification,
    Payment,
    TrackingHistoryEntry,
    VerificationAttempt,
    VerifySession,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    """Ledger rows are append-only; the admin may only look."""

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        # Enforce immutability in admin
        return False

    def get_actions(self, request):
        actions = super().get_actions(request)
        if 'delete_selected' in actions:
            del actions['delete_selected']
        return actions


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("company_name", "contact_email", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("company_name", "contact_email")


@admin.register(DocumentTemplate)
class DocumentTemplateAdmin(admin.ModelAdmin):
    list_display = ("name", "latest_version", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name",)


@admin.register(CompanyTemplatePrice)
class CompanyTemplatePriceAdmin(admin.ModelAdmin):
    list_display = ("company", "template", "price_amount", "price_currency", "updated_at")
    list_filter = ("price_currency",)


@admin.register(Document)
class DocumentAdmin(ReadOnlyAdmin):
    list_display = (
        "reference_no",
        "owner_full_name",
        "requester_type",
        "company",
        "doc_status",
        "tracking_status",
        "payment_status",
        "price_amount",
        "price_currency",
        "created_at",
    )
    list_filter = ("doc_status", "tracking_status", "payment_status", "requester_type")
    search_fields = ("reference_no", "barcode_id", "owner_full_name", "owner_identity_no")


@admin.register(TrackingHistoryEntry)
class TrackingHistoryEntryAdmin(ReadOnlyAdmin):
    list_display = ("document", "from_status", "to_status", "changed_by", "changed_at")
    list_filter = ("to_status",)
    search_fields = ("document__reference_no",)


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):
    list_display = ("document", "amount", "currency", "method", "payment_date", "received_by", "receipt_no")
    list_filter = ("method", "currency")
    search_fields = ("document__reference_no", "receipt_no")


@admin.register(DocumentAuditLog)
class DocumentAuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "action_type", "document", "actor", "ip_address")
    list_filter = ("action_type",)
    search_fields = ("document__reference_no",)


@admin.register(VerificationAttempt)
class VerificationAttemptAdmin(ReadOnlyAdmin):
    list_display = ("attempted_at", "reference_no", "success", "ip_address")
    list_filter = ("success",)
    search_fields = ("reference_no",)


@admin.register(VerifySession)
class VerifySessionAdmin(ReadOnlyAdmin):
    list_display = ("document", "ip_address", "expires_at", "created_at")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "target_role", "company", "created_at", "read_at")
    list_filter = ("target_role",)

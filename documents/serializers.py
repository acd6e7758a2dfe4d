from django.conf import settings
from rest_framework import serializers

from .models import (
    Document,
    Notification,
    Payment,
    TrackingHistoryEntry,
)
from .pdf_utils import build_verification_url


class DocumentSerializer(serializers.ModelSerializer):
    company_name = serializers.CharField(source="company.company_name", read_only=True, default=None)
    requester_label = serializers.CharField(read_only=True)
    pdf_ready = serializers.BooleanField(read_only=True)
    verification_url = serializers.SerializerMethodField()

    class Meta:
        model = Document
        fields = [
            "id",
            "reference_no",
            "barcode_id",
            "owner_full_name",
            "owner_identity_no",
            "owner_birth_date",
            "university_name",
            "dorm_name",
            "dorm_address",
            "issue_date",
            "footer_datetime",
            "requester_type",
            "company",
            "company_name",
            "direct_customer_name",
            "direct_customer_phone",
            "requester_label",
            "price_amount",
            "price_currency",
            "doc_status",
            "tracking_status",
            "payment_status",
            "pdf_storage_type",
            "pdf_url",
            "pdf_hash",
            "pdf_ready",
            "template",
            "template_version",
            "template_values",
            "verification_url",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_verification_url(self, obj):
        origin = getattr(settings, "DOCUMENT_PUBLIC_ORIGIN", "")
        return build_verification_url(origin, obj.token)


class DocumentWriteSerializer(serializers.Serializer):
    """Input shape for create; ``partial=True`` for content edits."""

    owner_full_name = serializers.CharField(max_length=200)
    owner_identity_no = serializers.CharField(max_length=32)
    owner_birth_date = serializers.DateField()
    university_name = serializers.CharField(max_length=200)
    dorm_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    dorm_address = serializers.CharField(required=False, allow_blank=True)
    issue_date = serializers.DateField()
    footer_datetime = serializers.DateTimeField(required=False)
    requester_type = serializers.ChoiceField(choices=Document.REQUESTER_CHOICES)
    company_id = serializers.UUIDField(required=False, allow_null=True)
    direct_customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    direct_customer_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)


class DocumentCreateSerializer(DocumentWriteSerializer):
    price_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    price_currency = serializers.CharField(max_length=3, required=False)
    template_id = serializers.UUIDField(required=False, allow_null=True)
    template_values = serializers.JSONField(required=False, allow_null=True)


class DocumentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Document.DOC_STATUS_CHOICES)


class TrackingChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Document.TRACKING_CHOICES)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class TrackingHistorySerializer(serializers.ModelSerializer):
    changed_by = serializers.StringRelatedField()

    class Meta:
        model = TrackingHistoryEntry
        fields = ["id", "from_status", "to_status", "changed_by", "changed_at", "note"]


class PaymentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3)
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    payment_date = serializers.DateTimeField(required=False, allow_null=True)
    receipt_no = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    note = serializers.CharField(required=False, allow_blank=True, default="")


class BulkPaymentSerializer(PaymentInputSerializer):
    document_ids = serializers.ListField(
        child=serializers.UUIDField(), min_length=1, max_length=500
    )


class DocumentSelectionSerializer(serializers.Serializer):
    document_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)


class PaymentSerializer(serializers.ModelSerializer):
    received_by = serializers.StringRelatedField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "amount",
            "currency",
            "method",
            "payment_date",
            "received_by",
            "receipt_no",
            "note",
            "created_at",
        ]


class VerifySerializer(serializers.Serializer):
    """Shape only. Lengths and dates are not checked here so every call
    reaches the rate limiter and the attempt log."""

    reference_no = serializers.CharField(required=False, allow_blank=True, default="")
    identity_no = serializers.CharField(required=False, allow_blank=True, default="")
    token = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    birth_date = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "target_role",
            "company",
            "title",
            "message",
            "href",
            "created_at",
            "read_at",
        ]

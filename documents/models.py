# models.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .exceptions import ImmutableRecordError

currency_validator = RegexValidator(
    r"^[A-Z]{3}$", "Currency must be a three letter upper-case code."
)


class AppendOnlyQuerySet(models.QuerySet):
    """Refuses bulk writes that would bypass the per-row guard."""

    def update(self, **kwargs):
        raise ImmutableRecordError(f"{self.model.__name__} rows are append-only")

    def bulk_update(self, objs, fields, batch_size=None):
        raise ImmutableRecordError(f"{self.model.__name__} rows are append-only")

    def delete(self):
        raise ImmutableRecordError(f"{self.model.__name__} rows cannot be deleted")


class AppendOnlyModel(models.Model):
    """Rows are written once and never changed or removed."""

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ImmutableRecordError(
                f"{type(self).__name__} #{self.pk} is append-only"
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"{type(self).__name__} rows cannot be deleted")


#
# ——————————————————————————————————————
# Lookups owned by the surrounding application
# ——————————————————————————————————————
#
class Company(models.Model):
    """Company that requests documents on behalf of its students."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company_name = models.CharField(max_length=200, unique=True)
    contact_email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "companies"
        ordering = ["company_name"]
        verbose_name_plural = "companies"

    def __str__(self):
        return self.company_name


class DocumentTemplate(models.Model):
    """HTML certificate template with ``{{ key }}`` placeholders."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    html_content = models.TextField()
    latest_version = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "document_templates"
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} v{self.latest_version}"


class CompanyTemplatePrice(models.Model):
    """Per-company price override for a template."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="template_prices")
    template = models.ForeignKey(DocumentTemplate, on_delete=models.CASCADE, related_name="company_prices")
    price_amount = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0"))]
    )
    price_currency = models.CharField(max_length=3, default="TRY", validators=[currency_validator])
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "company_template_prices"
        unique_together = ("company", "template")


#
# ——————————————————————————————————————
# Document aggregate
# ——————————————————————————————————————
#
class Document(models.Model):
    REQUESTER_COMPANY = "company"
    REQUESTER_DIRECT = "direct"
    REQUESTER_CHOICES = [
        (REQUESTER_COMPANY, "Company"),
        (REQUESTER_DIRECT, "Direct customer"),
    ]

    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"
    DOC_STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_INACTIVE, "Inactive"),
    ]

    TRACKING_CREATED = "created"
    TRACKING_SHIPPED = "shipped"
    TRACKING_RECEIVED = "received"
    TRACKING_DELIVERED_TO_STUDENT = "delivered_to_student"
    TRACKING_DELIVERED_TO_AGENT = "delivered_to_agent"
    TRACKING_RESIDENCE_FILE_DELIVERED = "residence_file_delivered"
    TRACKING_RESIDENCE_FILE_RECEIVED = "residence_file_received"
    TRACKING_CANCELLED = "cancelled"
    TRACKING_CHOICES = [
        (TRACKING_CREATED, "Created"),
        (TRACKING_SHIPPED, "Shipped"),
        (TRACKING_RECEIVED, "Received"),
        (TRACKING_DELIVERED_TO_STUDENT, "Delivered to student"),
        (TRACKING_DELIVERED_TO_AGENT, "Delivered to agent"),
        (TRACKING_RESIDENCE_FILE_DELIVERED, "Residence file delivered"),
        (TRACKING_RESIDENCE_FILE_RECEIVED, "Residence file received"),
        (TRACKING_CANCELLED, "Cancelled"),
    ]

    PAYMENT_UNPAID = "unpaid"
    PAYMENT_PARTIAL = "partial"
    PAYMENT_PAID = "paid"
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_UNPAID, "Unpaid"),
        (PAYMENT_PARTIAL, "Partially paid"),
        (PAYMENT_PAID, "Paid"),
    ]

    PDF_LOCAL = "local"
    PDF_S3 = "s3"
    PDF_DB = "db"
    PDF_STORAGE_CHOICES = [
        (PDF_LOCAL, "Local"),
        (PDF_S3, "S3"),
        (PDF_DB, "Database"),
    ]

    IDENTIFIER_FIELDS = ("token", "barcode_id", "reference_no")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    token = models.CharField(max_length=96, unique=True, editable=False)
    barcode_id = models.CharField(max_length=32, unique=True, editable=False)
    reference_no = models.CharField(max_length=32, unique=True, editable=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_documents",
    )

    owner_full_name = models.CharField(max_length=200)
    owner_identity_no = models.CharField(max_length=32, db_index=True)
    owner_birth_date = models.DateField()
    university_name = models.CharField(max_length=200)
    dorm_name = models.CharField(max_length=200, blank=True)
    dorm_address = models.TextField(blank=True)
    issue_date = models.DateField()
    footer_datetime = models.DateTimeField(default=timezone.now)

    requester_type = models.CharField(max_length=10, choices=REQUESTER_CHOICES)
    company = models.ForeignKey(
        Company,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="documents",
    )
    direct_customer_name = models.CharField(max_length=200, blank=True)
    direct_customer_phone = models.CharField(max_length=32, blank=True)

    price_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    price_currency = models.CharField(max_length=3, default="TRY", validators=[currency_validator])

    doc_status = models.CharField(max_length=10, choices=DOC_STATUS_CHOICES, default=STATUS_ACTIVE)
    tracking_status = models.CharField(max_length=32, choices=TRACKING_CHOICES, default=TRACKING_CREATED)
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_UNPAID)

    pdf_storage_type = models.CharField(max_length=8, choices=PDF_STORAGE_CHOICES, default=PDF_LOCAL)
    pdf_url = models.CharField(max_length=500, blank=True)
    pdf_hash = models.CharField(max_length=64, blank=True)

    template = models.ForeignKey(
        DocumentTemplate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="documents",
    )
    template_version = models.PositiveIntegerField(null=True, blank=True)
    template_values = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "documents"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["doc_status"], name="documents_doc_status_idx"),
            models.Index(fields=["tracking_status"], name="documents_tracking_idx"),
            models.Index(fields=["payment_status"], name="documents_payment_idx"),
            models.Index(fields=["issue_date"], name="documents_issue_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(price_amount__gte=0),
                name="documents_price_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    Q(
                        requester_type="company",
                        company__isnull=False,
                        direct_customer_name="",
                        direct_customer_phone="",
                    )
                    | (
                        Q(requester_type="direct", company__isnull=True)
                        & ~Q(direct_customer_name="")
                    )
                ),
                name="documents_requester_exclusive",
            ),
        ]

    def __str__(self):
        return f"{self.reference_no} – {self.owner_full_name}"

    def clean(self):
        """Enforce the company / direct customer mutual exclusion."""
        errors = {}
        if self.requester_type == self.REQUESTER_COMPANY:
            if not self.company_id:
                errors["company"] = "A company is required for company requests."
            if self.direct_customer_name or self.direct_customer_phone:
                errors["direct_customer_name"] = (
                    "Direct customer fields must be empty for company requests."
                )
        elif self.requester_type == self.REQUESTER_DIRECT:
            if self.company_id:
                errors["company"] = "Direct requests cannot reference a company."
            if not (self.direct_customer_name or "").strip():
                errors["direct_customer_name"] = "Customer name is required for direct requests."
        if errors:
            raise ValidationError(errors)

    @property
    def requester_label(self):
        if self.requester_type == self.REQUESTER_COMPANY:
            return self.company.company_name if self.company_id else "Company"
        return self.direct_customer_name or "Customer"

    @property
    def pdf_ready(self):
        return bool(self.pdf_url and self.pdf_hash)


class TrackingHistoryEntry(AppendOnlyModel):
    document = models.ForeignKey(Document, on_delete=models.PROTECT, related_name="tracking_history")
    from_status = models.CharField(
        max_length=32, choices=Document.TRACKING_CHOICES, null=True, blank=True
    )
    to_status = models.CharField(max_length=32, choices=Document.TRACKING_CHOICES)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    changed_at = models.DateTimeField(default=timezone.now, db_index=True)
    note = models.TextField(blank=True)

    class Meta:
        db_table = "tracking_history"
        ordering = ["-changed_at", "-id"]
        verbose_name_plural = "tracking history"

    def __str__(self):
        return f"{self.document_id}: {self.from_status or '∅'} → {self.to_status}"


class Payment(AppendOnlyModel):
    METHOD_CASH = "cash"
    METHOD_BANK_TRANSFER = "bank_transfer"
    METHOD_CARD = "card"
    METHOD_OTHER = "other"
    METHOD_CHOICES = [
        (METHOD_CASH, "Cash"),
        (METHOD_BANK_TRANSFER, "Bank transfer"),
        (METHOD_CARD, "Card"),
        (METHOD_OTHER, "Other"),
    ]

    document = models.ForeignKey(Document, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, validators=[currency_validator])
    method = models.CharField(max_length=16, choices=METHOD_CHOICES)
    payment_date = models.DateTimeField(default=timezone.now)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="received_payments",
    )
    receipt_no = models.CharField(max_length=64, blank=True)
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payments"
        ordering = ["-payment_date", "-created_at", "-id"]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="payments_amount_positive"),
        ]

    def __str__(self) -> str:
        return f"{self.payment_date:%Y-%m-%d} +{self.amount} {self.currency} ({self.method})"


class DocumentAuditLog(AppendOnlyModel):
    ACTION_CREATE = "create"
    ACTION_UPDATE = "update"
    ACTION_STATUS_CHANGE = "status_change"
    ACTION_TRACKING_CHANGE = "tracking_change"
    ACTION_PAYMENT_ADDED = "payment_added"
    ACTION_PDF_VIEW = "pdf_view"
    ACTION_PDF_DOWNLOAD = "pdf_download"
    ACTION_REVOKE = "revoke"
    ACTION_CHOICES = [
        (ACTION_CREATE, "Create"),
        (ACTION_UPDATE, "Update"),
        (ACTION_STATUS_CHANGE, "Status change"),
        (ACTION_TRACKING_CHANGE, "Tracking change"),
        (ACTION_PAYMENT_ADDED, "Payment added"),
        (ACTION_PDF_VIEW, "PDF view"),
        (ACTION_PDF_DOWNLOAD, "PDF download"),
        (ACTION_REVOKE, "Revoke"),
    ]

    document = models.ForeignKey(
        Document,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action_type = models.CharField(max_length=20, choices=ACTION_CHOICES)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    details = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "document_audit_logs"
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.created_at:%Y-%m-%d %H:%M} {self.action_type} {self.document_id or '-'}"


#
# ——————————————————————————————————————
# Public verification
# ——————————————————————————————————————
#
class VerificationAttempt(AppendOnlyModel):
    token = models.CharField(max_length=96, blank=True)
    reference_no = models.CharField(max_length=64, blank=True)
    identity_no_hash = models.CharField(max_length=64)
    birth_date = models.DateField(null=True, blank=True)
    success = models.BooleanField(default=False)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    attempted_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "verification_attempts"
        ordering = ["-attempted_at", "-id"]


class VerifySession(models.Model):
    """Short-lived credential that gates the public PDF download."""

    token_hash = models.CharField(max_length=64, unique=True)
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="verify_sessions")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(null=True, blank=True)
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "verify_sessions"

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()


#
# ——————————————————————————————————————
# Notifications
# ——————————————————————————————————————
#
class Notification(models.Model):
    ROLE_ADMIN = "admin"
    ROLE_STAFF = "staff"
    ROLE_ACCOUNTING = "accounting"
    ROLE_COMPANY = "company"
    ROLE_CHOICES = [
        (ROLE_ADMIN, "Admin"),
        (ROLE_STAFF, "Staff"),
        (ROLE_ACCOUNTING, "Accounting"),
        (ROLE_COMPANY, "Company"),
    ]

    target_role = models.CharField(max_length=16, choices=ROLE_CHOICES)
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="notifications",
    )
    title = models.CharField(max_length=200)
    message = models.TextField(blank=True)
    href = models.CharField(max_length=500, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "notifications"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.target_role}: {self.title}"

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

currency_validator = django.core.validators.RegexValidator(
    "^[A-Z]{3}$", "Currency must be a three letter upper-case code."
)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("company_name", models.CharField(max_length=200, unique=True)),
                ("contact_email", models.EmailField(blank=True, max_length=254)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "companies",
                "ordering": ["company_name"],
                "verbose_name_plural": "companies",
            },
        ),
        migrations.CreateModel(
            name="DocumentTemplate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("html_content", models.TextField()),
                ("latest_version", models.PositiveIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "document_templates",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Document",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("token", models.CharField(editable=False, max_length=96, unique=True)),
                ("barcode_id", models.CharField(editable=False, max_length=32, unique=True)),
                ("reference_no", models.CharField(editable=False, max_length=32, unique=True)),
                ("owner_full_name", models.CharField(max_length=200)),
                ("owner_identity_no", models.CharField(db_index=True, max_length=32)),
                ("owner_birth_date", models.DateField()),
                ("university_name", models.CharField(max_length=200)),
                ("dorm_name", models.CharField(blank=True, max_length=200)),
                ("dorm_address", models.TextField(blank=True)),
                ("issue_date", models.DateField()),
                ("footer_datetime", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "requester_type",
                    models.CharField(
                        choices=[("company", "Company"), ("direct", "Direct customer")],
                        max_length=10,
                    ),
                ),
                ("direct_customer_name", models.CharField(blank=True, max_length=200)),
                ("direct_customer_phone", models.CharField(blank=True, max_length=32)),
                (
                    "price_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                ("price_currency", models.CharField(default="TRY", max_length=3, validators=[currency_validator])),
                (
                    "doc_status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        default="active",
                        max_length=10,
                    ),
                ),
                (
                    "tracking_status",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("shipped", "Shipped"),
                            ("received", "Received"),
                            ("delivered_to_student", "Delivered to student"),
                            ("delivered_to_agent", "Delivered to agent"),
                            ("residence_file_delivered", "Residence file delivered"),
                            ("residence_file_received", "Residence file received"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="created",
                        max_length=32,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("unpaid", "Unpaid"), ("partial", "Partially paid"), ("paid", "Paid")],
                        default="unpaid",
                        max_length=10,
                    ),
                ),
                (
                    "pdf_storage_type",
                    models.CharField(
                        choices=[("local", "Local"), ("s3", "S3"), ("db", "Database")],
                        default="local",
                        max_length=8,
                    ),
                ),
                ("pdf_url", models.CharField(blank=True, max_length=500)),
                ("pdf_hash", models.CharField(blank=True, max_length=64)),
                ("template_version", models.PositiveIntegerField(blank=True, null=True)),
                ("template_values", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "company",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="documents",
                        to="documents.company",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_documents",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="documents",
                        to="documents.documenttemplate",
                    ),
                ),
            ],
            options={
                "db_table": "documents",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["doc_status"], name="documents_doc_status_idx"),
                    models.Index(fields=["tracking_status"], name="documents_tracking_idx"),
                    models.Index(fields=["payment_status"], name="documents_payment_idx"),
                    models.Index(fields=["issue_date"], name="documents_issue_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(price_amount__gte=0),
                        name="documents_price_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("company__isnull", False),
                                ("direct_customer_name", ""),
                                ("direct_customer_phone", ""),
                                ("requester_type", "company"),
                            ),
                            models.Q(
                                ("company__isnull", True),
                                ("requester_type", "direct"),
                                models.Q(("direct_customer_name", ""), _negated=True),
                            ),
                            _connector="OR",
                        ),
                        name="documents_requester_exclusive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CompanyTemplatePrice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "price_amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                ("price_currency", models.CharField(default="TRY", max_length=3, validators=[currency_validator])),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="template_prices",
                        to="documents.company",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="company_prices",
                        to="documents.documenttemplate",
                    ),
                ),
            ],
            options={
                "db_table": "company_template_prices",
                "unique_together": {("company", "template")},
            },
        ),
        migrations.CreateModel(
            name="DocumentAuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action_type",
                    models.CharField(
                        choices=[
                            ("create", "Create"),
                            ("update", "Update"),
                            ("status_change", "Status change"),
                            ("tracking_change", "Tracking change"),
                            ("payment_added", "Payment added"),
                            ("pdf_view", "PDF view"),
                            ("pdf_download", "PDF download"),
                            ("revoke", "Revoke"),
                        ],
                        max_length=20,
                    ),
                ),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("details", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "document",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_logs",
                        to="documents.document",
                    ),
                ),
            ],
            options={
                "db_table": "document_audit_logs",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "target_role",
                    models.CharField(
                        choices=[
                            ("admin", "Admin"),
                            ("staff", "Staff"),
                            ("accounting", "Accounting"),
                            ("company", "Company"),
                        ],
                        max_length=16,
                    ),
                ),
                ("title", models.CharField(max_length=200)),
                ("message", models.TextField(blank=True)),
                ("href", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("read_at", models.DateTimeField(blank=True, null=True)),
                (
                    "company",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to="documents.company",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "notifications",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(max_length=3, validators=[currency_validator])),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("bank_transfer", "Bank transfer"),
                            ("card", "Card"),
                            ("other", "Other"),
                        ],
                        max_length=16,
                    ),
                ),
                ("payment_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("receipt_no", models.CharField(blank=True, max_length=64)),
                ("note", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="documents.document",
                    ),
                ),
                (
                    "received_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="received_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "payments",
                "ordering": ["-payment_date", "-created_at", "-id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="payments_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TrackingHistoryEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "from_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("created", "Created"),
                            ("shipped", "Shipped"),
                            ("received", "Received"),
                            ("delivered_to_student", "Delivered to student"),
                            ("delivered_to_agent", "Delivered to agent"),
                            ("residence_file_delivered", "Residence file delivered"),
                            ("residence_file_received", "Residence file received"),
                            ("cancelled", "Cancelled"),
                        ],
                        max_length=32,
                        null=True,
                    ),
                ),
                (
                    "to_status",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("shipped", "Shipped"),
                            ("received", "Received"),
                            ("delivered_to_student", "Delivered to student"),
                            ("delivered_to_agent", "Delivered to agent"),
                            ("residence_file_delivered", "Residence file delivered"),
                            ("residence_file_received", "Residence file received"),
                            ("cancelled", "Cancelled"),
                        ],
                        max_length=32,
                    ),
                ),
                ("changed_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("note", models.TextField(blank=True)),
                (
                    "changed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tracking_history",
                        to="documents.document",
                    ),
                ),
            ],
            options={
                "db_table": "tracking_history",
                "ordering": ["-changed_at", "-id"],
                "verbose_name_plural": "tracking history",
            },
        ),
        migrations.CreateModel(
            name="VerificationAttempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("token", models.CharField(blank=True, max_length=96)),
                ("reference_no", models.CharField(blank=True, max_length=64)),
                ("identity_no_hash", models.CharField(max_length=64)),
                ("birth_date", models.DateField(blank=True, null=True)),
                ("success", models.BooleanField(default=False)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("attempted_at", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                "db_table": "verification_attempts",
                "ordering": ["-attempted_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="VerifySession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("token_hash", models.CharField(max_length=64, unique=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="verify_sessions",
                        to="documents.document",
                    ),
                ),
            ],
            options={
                "db_table": "verify_sessions",
            },
        ),
    ]

from django.urls import path

from . import views

app_name = "documents_api"

urlpatterns = [
    path("documents/", views.documents_collection, name="documents"),
    path("documents/<uuid:document_id>/", views.document_detail, name="document-detail"),
    path("documents/<uuid:document_id>/status/", views.document_status, name="document-status"),
    path("documents/<uuid:document_id>/tracking/", views.document_tracking, name="document-tracking"),
    path("documents/<uuid:document_id>/payments/", views.document_payments, name="document-payments"),
    path("documents/<uuid:document_id>/pdf/", views.document_pdf, name="document-pdf"),
    path(
        "documents/<uuid:document_id>/pdf/generate/",
        views.document_pdf_generate,
        name="document-pdf-generate",
    ),
    path(
        "documents/<uuid:document_id>/pdf/public/",
        views.document_pdf_public,
        name="document-pdf-public",
    ),
    path("accounting/payments/bulk/", views.accounting_bulk_payment, name="accounting-bulk-payments"),
    path("accounting/summary/", views.accounting_summary, name="accounting-summary"),
    path("reports/", views.reports, name="reports"),
    path("pricing/", views.pricing, name="pricing"),
    path("verify/", views.verify, name="verify"),
    path("verify/prefill/", views.verify_prefill, name="verify-prefill"),
    path("notifications/", views.notifications, name="notifications"),
    path("notifications/<int:notification_id>/read/", views.notification_read, name="notification-read"),
]

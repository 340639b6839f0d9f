from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from django.urls import reverse
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateTimeFilter,
    RangeNumericFilter,
)

from inventory.choices import Counter, DocumentStatus, QualityStatus, Severity
from inventory.models import (
    StockUnit, StockMovement, Document, DocumentLine, QualityCheck,
    ReworkDecision, BatchOperation, BatchOperationLine, InventorySettings,
)
from inventory.services.computation_service import defect_rate, document_total, percentage
from inventory.services.document_service import DocumentService

STATUS_COLORS = {
    DocumentStatus.DRAFT.value: "info",
    DocumentStatus.SUBMITTED.value: "warning",
    DocumentStatus.APPROVED.value: "info",
    DocumentStatus.REJECTED.value: "danger",
    DocumentStatus.COMPLETED.value: "success",
}

QUALITY_COLORS = {
    QualityStatus.PENDING.value: "info",
    QualityStatus.PASSED.value: "success",
    QualityStatus.FAILED.value: "danger",
    QualityStatus.REQUIRES_REWORK.value: "warning",
}


class ReadOnlyInline(TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class DocumentLineInline(ReadOnlyInline):
    model = DocumentLine
    fields = ("position", "stock_unit", "accessory_unit", "quantity", "unit_price", "line_total_display")
    readonly_fields = ("line_total_display",)

    @display(description=_("Line Total"))
    def line_total_display(self, obj):
        return f"{obj.line_total:.2f}" if obj.pk else "-"


class ReworkDecisionInline(ReadOnlyInline):
    model = ReworkDecision
    fields = ("from_status", "to_status", "notes", "decided_by", "created_at")
    readonly_fields = ("created_at",)


class BatchOperationLineInline(ReadOnlyInline):
    model = BatchOperationLine
    fields = ("position", "stock_unit", "quantity", "success", "new_quantity", "errors")


@admin.register(StockUnit)
class StockUnitAdmin(ModelAdmin):
    list_display = ["code", "name", "unit_type", "color", "location", "available_quantity", "is_active"]
    list_filter = [
        "unit_type",
        "is_active",
        ("available_quantity", RangeNumericFilter),
    ]
    search_fields = ["code", "name", "color", "supplier"]
    list_filter_submit = True
    list_fullwidth = True
    # Counters move only through the ledger
    readonly_fields = [c.value for c in Counter] + ["created_at", "updated_at"]

    fieldsets = (
        (_("Item"), {
            "fields": ("code", "name", "unit_type", "color", "supplier", "location", "is_active"),
            "classes": ["tab"],
        }),
        (_("Pricing & Packaging"), {
            "fields": ("cost_price", "selling_price", "carton_quantity", "items_per_carton"),
            "classes": ["tab"],
        }),
        (_("Quantities"), {
            "fields": tuple(c.value for c in Counter),
            "classes": ["tab"],
        }),
        (_("Notes"), {
            "fields": ("notes", "created_at", "updated_at"),
            "classes": ["tab"],
        }),
    )


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ["id", "stock_unit_link", "counter", "quantity_before", "quantity_after", "change_display",
                    "reference", "user", "created_at"]
    list_filter = [
        "counter",
        ("created_at", RangeDateTimeFilter),
    ]
    search_fields = ["reference", "stock_unit__code", "stock_unit__name"]
    list_filter_submit = True
    list_fullwidth = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description=_("Stock Unit"))
    def stock_unit_link(self, obj):
        url = reverse("admin:inventory_stockunit_change", args=[obj.stock_unit_id])
        return format_html('<a href="{}">{}</a>', url, obj.stock_unit.code)

    @display(description=_("Change"))
    def change_display(self, obj):
        return f"{obj.change:+d}"


@admin.register(Document)
class DocumentAdmin(ModelAdmin):
    list_display = ["document_number", "kind", "status_badge", "supplier_name", "recipient", "total_display",
                    "created_at"]
    list_filter = [
        "family",
        "kind",
        "status",
        ("created_at", RangeDateTimeFilter),
    ]
    search_fields = ["document_number", "supplier_name", "recipient", "reference_number"]
    list_filter_submit = True
    list_fullwidth = True
    inlines = [DocumentLineInline]
    readonly_fields = [
        "document_number", "family", "kind", "status", "reverses",
        "submitted_by", "submitted_at", "approved_by", "approved_at",
        "rejected_by", "rejected_at", "rejection_reason", "completed_by", "completed_at",
        "created_by", "created_at", "updated_at",
    ]

    fieldsets = (
        (_("Document"), {
            "fields": ("document_number", "family", "kind", "status", "reverses"),
        }),
        (_("Header"), {
            "fields": ("supplier_name", "recipient", "reference_number", "notes"),
        }),
        (_("Workflow"), {
            "fields": (
                "created_by", "created_at", "submitted_by", "submitted_at", "approved_by", "approved_at",
                "rejected_by", "rejected_at", "rejection_reason", "completed_by", "completed_at",
            ),
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return obj is None or not obj.is_locked

    @display(description=_("Status"), ordering="status", label=STATUS_COLORS)
    def status_badge(self, obj):
        return obj.status, obj.get_status_display()

    @display(description=_("Total"))
    def total_display(self, obj):
        return document_total(DocumentService.to_domain(obj).lines, InventorySettings.load().currency_places)


@admin.register(QualityCheck)
class QualityCheckAdmin(ModelAdmin):
    list_display = ["batch_number", "product_type", "checked_quantity", "defective_quantity", "defect_rate_display",
                    "severity_badge", "status_badge", "checked_at"]
    list_filter = [
        "status",
        "product_type",
        "severity",
        ("checked_at", RangeDateTimeFilter),
    ]
    search_fields = ["batch_number", "notes"]
    list_filter_submit = True
    list_fullwidth = True
    inlines = [ReworkDecisionInline]
    readonly_fields = [
        "batch_number", "product_type", "stock_unit", "checked_quantity", "defective_quantity", "defect_types",
        "severity", "status", "checked_by", "checked_at", "rework_notes", "reworked_by", "reworked_at",
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description=_("Defect Rate"))
    def defect_rate_display(self, obj):
        return f"{percentage(defect_rate(obj.checked_quantity, obj.defective_quantity))}%"

    @display(description=_("Severity"), label={
        Severity.LOW.value: "info",
        Severity.MEDIUM.value: "warning",
        Severity.HIGH.value: "danger",
        Severity.CRITICAL.value: "danger",
    })
    def severity_badge(self, obj):
        return obj.severity, obj.get_severity_display()

    @display(description=_("Status"), ordering="status", label=QUALITY_COLORS)
    def status_badge(self, obj):
        return obj.status, obj.get_status_display()


@admin.register(BatchOperation)
class BatchOperationAdmin(ModelAdmin):
    list_display = ["operation_number", "kind", "reason", "overall_success", "succeeded_count",
                    "processed_count", "created_by", "created_at"]
    list_filter = [
        "kind",
        "reason",
        "overall_success",
        ("created_at", RangeDateTimeFilter),
    ]
    search_fields = ["operation_number", "reference_number", "notes"]
    list_filter_submit = True
    list_fullwidth = True
    inlines = [BatchOperationLineInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InventorySettings)
class InventorySettingsAdmin(ModelAdmin):
    list_display = ["id", "defect_rate_fail_threshold", "currency_places", "updated_at"]
    readonly_fields = ["updated_at"]

    def has_add_permission(self, request):
        return not InventorySettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False

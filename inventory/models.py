import uuid as uuid_lib
from decimal import Decimal

from django.conf import settings
from django.db import models

from inventory.choices import (
    UnitType, Counter, DocumentFamily, DocumentKind, DocumentStatus,
    QualityStatus, Severity, ProductType, BatchReason,
)


class StockUnit(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    unit_type = models.CharField(
        max_length=20, choices=UnitType.choices, default=UnitType.INVENTORY, db_index=True
    )
    color = models.CharField(max_length=50, blank=True, default="")
    supplier = models.CharField(max_length=200, blank=True, default="")
    location = models.CharField(max_length=100, blank=True, default="")

    cost_price = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    selling_price = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    # Packaging
    carton_quantity = models.PositiveIntegerField(default=0)
    items_per_carton = models.PositiveIntegerField(default=0)

    # Counters. Only accessories use the sub-component ones.
    available_quantity = models.PositiveIntegerField(default=0)
    individual_items = models.PositiveIntegerField(default=0)
    pump_quantity = models.PositiveIntegerField(default=0)
    ring_quantity = models.PositiveIntegerField(default=0)
    cover_quantity = models.PositiveIntegerField(default=0)
    ribbon_quantity = models.PositiveIntegerField(default=0)
    sticker_quantity = models.PositiveIntegerField(default=0)
    tag_quantity = models.PositiveIntegerField(default=0)

    notes = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["unit_type", "name"]

    def __str__(self):
        return f"{self.name} ({self.code})"

    @property
    def is_accessory(self):
        return self.unit_type == UnitType.ACCESSORY

    def counter_names(self):
        if self.is_accessory:
            return [c.value for c in Counter]
        return [Counter.AVAILABLE.value]

    def counters(self):
        return {name: getattr(self, name) for name in self.counter_names()}


class StockMovement(models.Model):
    """One counter change on one stock unit. Written only by the ledger."""

    stock_unit = models.ForeignKey(
        StockUnit, on_delete=models.PROTECT, related_name="movements"
    )
    counter = models.CharField(max_length=30, choices=Counter.choices, default=Counter.AVAILABLE)
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()
    reference = models.CharField(max_length=50, blank=True, default="", db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.stock_unit.code} {self.counter}: {self.quantity_before} -> {self.quantity_after}"

    @property
    def change(self):
        return self.quantity_after - self.quantity_before


class Document(models.Model):
    """Purchase invoices and factory dispatches, including their returns."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    document_number = models.CharField(max_length=50, unique=True)
    family = models.CharField(max_length=20, choices=DocumentFamily.choices, db_index=True)
    kind = models.CharField(max_length=40, choices=DocumentKind.choices, db_index=True)
    status = models.CharField(
        max_length=20, choices=DocumentStatus.choices, default=DocumentStatus.DRAFT, db_index=True
    )

    supplier_name = models.CharField(max_length=200, blank=True, default="")
    recipient = models.CharField(max_length=200, blank=True, default="")
    reference_number = models.CharField(max_length=100, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    reverses = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.document_number} ({self.get_kind_display()})"

    @property
    def is_locked(self):
        return self.status != DocumentStatus.DRAFT


class DocumentLine(models.Model):
    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField(default=0)
    stock_unit = models.ForeignKey(StockUnit, on_delete=models.PROTECT, related_name="document_lines")
    accessory_unit = models.ForeignKey(
        StockUnit,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="accessory_lines",
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    # Dispatch breakdown
    packaging_quantity = models.PositiveIntegerField(default=0)
    finishing_quantity = models.PositiveIntegerField(default=0)
    shipping_quantity = models.PositiveIntegerField(default=0)
    breakage_quantity = models.PositiveIntegerField(default=0)

    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.document.document_number}: {self.quantity} x {self.stock_unit.code}"

    @property
    def line_total(self):
        return Decimal(self.quantity) * self.unit_price


class QualityCheck(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=50, unique=True)
    product_type = models.CharField(max_length=20, choices=ProductType.choices)
    stock_unit = models.ForeignKey(
        StockUnit,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="quality_checks",
    )
    checked_quantity = models.PositiveIntegerField()
    defective_quantity = models.PositiveIntegerField(default=0)
    defect_types = models.JSONField(default=list, blank=True)
    severity = models.CharField(max_length=20, choices=Severity.choices, default=Severity.LOW)
    status = models.CharField(
        max_length=20, choices=QualityStatus.choices, default=QualityStatus.PENDING, db_index=True
    )
    notes = models.TextField(blank=True, default="")

    checked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="quality_checks",
    )
    checked_at = models.DateTimeField(null=True, blank=True, db_index=True)

    # Last rework, full history in ReworkDecision
    rework_notes = models.TextField(blank=True, default="")
    reworked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    reworked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-checked_at", "-id"]

    def __str__(self):
        return f"{self.batch_number} ({self.get_status_display()})"

    @property
    def pass_quantity(self):
        return self.checked_quantity - self.defective_quantity


class ReworkDecision(models.Model):
    quality_check = models.ForeignKey(QualityCheck, on_delete=models.CASCADE, related_name="reworks")
    from_status = models.CharField(max_length=20, choices=QualityStatus.choices)
    to_status = models.CharField(max_length=20, choices=QualityStatus.choices)
    notes = models.TextField()
    decided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.quality_check.batch_number}: {self.from_status} -> {self.to_status}"


class BatchOperation(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    operation_number = models.CharField(max_length=50, unique=True)
    kind = models.CharField(max_length=40, choices=DocumentKind.choices, db_index=True)
    reason = models.CharField(max_length=30, choices=BatchReason.choices)
    target_location = models.CharField(max_length=100, blank=True, default="")
    reference_number = models.CharField(max_length=100, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    overall_success = models.BooleanField(default=False)
    processed_count = models.PositiveIntegerField(default=0)
    succeeded_count = models.PositiveIntegerField(default=0)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batch_operations",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.operation_number} ({self.get_kind_display()})"


class BatchOperationLine(models.Model):
    operation = models.ForeignKey(BatchOperation, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField(default=0)
    stock_unit = models.ForeignKey(
        StockUnit,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batch_lines",
    )
    quantity = models.IntegerField()
    success = models.BooleanField(default=False)
    new_quantity = models.IntegerField(null=True, blank=True)
    errors = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.operation.operation_number} #{self.position}"


class InventorySettings(models.Model):
    """
    Singleton settings table. Use InventorySettings.load() to get the instance.
    """

    # Quality
    defect_rate_fail_threshold = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0.1000"),
        help_text="A quality check fails when defective/checked is strictly above this ratio",
    )

    # Money
    currency_places = models.PositiveSmallIntegerField(default=2)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "inventory settings"
        verbose_name_plural = "inventory settings"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def __str__(self):
        return "Inventory Settings"

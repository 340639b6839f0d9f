"""
Shared vocabulary for models and the document engine.
"""
from django.db import models


class UnitType(models.TextChoices):
    INVENTORY = "INVENTORY", "Inventory Item"
    ACCESSORY = "ACCESSORY", "Accessory Item"


class Counter(models.TextChoices):
    AVAILABLE = "available_quantity", "Available"
    INDIVIDUAL_ITEMS = "individual_items", "Individual Pieces"
    PUMP = "pump_quantity", "Pumps"
    RING = "ring_quantity", "Rings"
    COVER = "cover_quantity", "Covers"
    RIBBON = "ribbon_quantity", "Ribbons"
    STICKER = "sticker_quantity", "Stickers"
    TAG = "tag_quantity", "Tags"


# Bill of materials for one accessory set, in checking order. A set is
# limited by its parts; the accessory's own available_quantity is not one.
COMPOSITE_COUNTERS = (
    Counter.INDIVIDUAL_ITEMS,
    Counter.PUMP,
    Counter.RING,
    Counter.COVER,
    Counter.RIBBON,
    Counter.STICKER,
    Counter.TAG,
)


class DocumentFamily(models.TextChoices):
    INVOICE = "INVOICE", "Purchase Invoice"
    DISPATCH = "DISPATCH", "Factory Dispatch"
    BATCH = "BATCH", "Batch Operation"
    QUALITY = "QUALITY", "Quality Check"


class DocumentKind(models.TextChoices):
    PURCHASE = "PURCHASE", "Purchase"
    PURCHASE_RETURN = "PURCHASE_RETURN", "Purchase Return"
    GLASS_ONLY = "GLASS_ONLY", "Glass Only"
    GLASS_WITH_ACCESSORIES = "GLASS_WITH_ACCESSORIES", "Glass With Accessories"
    RETURN_GLASS_ONLY = "RETURN_GLASS_ONLY", "Factory Return (Glass Only)"
    RETURN_GLASS_WITH_ACCESSORIES = "RETURN_GLASS_WITH_ACCESSORIES", "Factory Return (Glass With Accessories)"
    BULK_ADD = "BULK_ADD", "Bulk Add"
    BULK_DEDUCT = "BULK_DEDUCT", "Bulk Deduct"
    BULK_TRANSFER = "BULK_TRANSFER", "Bulk Transfer"
    BULK_ADJUST = "BULK_ADJUST", "Bulk Adjust"
    QUALITY_CHECK = "QUALITY_CHECK", "Quality Check"


class DocumentStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SUBMITTED = "SUBMITTED", "Submitted"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    COMPLETED = "COMPLETED", "Completed"


class QualityStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PASSED = "PASSED", "Passed"
    FAILED = "FAILED", "Failed"
    REQUIRES_REWORK = "REQUIRES_REWORK", "Requires Rework"


class Severity(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    CRITICAL = "CRITICAL", "Critical"


class ProductType(models.TextChoices):
    GLASS = "GLASS", "Glass"
    ACCESSORY = "ACCESSORY", "Accessory"
    FINAL_PRODUCT = "FINAL_PRODUCT", "Final Product"


class BatchReason(models.TextChoices):
    INVENTORY_COUNT = "INVENTORY_COUNT", "Inventory Count"
    BULK_PURCHASE = "BULK_PURCHASE", "Bulk Purchase"
    BULK_SALE = "BULK_SALE", "Bulk Sale"
    WAREHOUSE_TRANSFER = "WAREHOUSE_TRANSFER", "Warehouse Transfer"
    QUALITY_ADJUSTMENT = "QUALITY_ADJUSTMENT", "Quality Adjustment"
    SYSTEM_CORRECTION = "SYSTEM_CORRECTION", "System Correction"
    OTHER = "OTHER", "Other"

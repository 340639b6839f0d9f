"""
Plain data carried through the document engine.

Nothing in here touches the ORM: services convert models to these
dataclasses, hand them to the engine together with a ledger, and write
the outcome back.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from inventory.choices import (
    Counter, DocumentFamily, DocumentKind, DocumentStatus,
    QualityStatus, Severity, ProductType, UnitType,
)


# =============================================================================
# KIND CATALOGUE
# =============================================================================

@dataclass(frozen=True)
class KindSpec:
    family: str
    stock_effect: int = 0
    consuming: bool = False
    composite: bool = False
    carries_price: bool = False
    requires_stock_unit: bool = True
    required_fields: Tuple[str, ...] = ()
    is_reversal: bool = False


KIND_SPECS: Dict[str, KindSpec] = {
    DocumentKind.PURCHASE: KindSpec(
        family=DocumentFamily.INVOICE, stock_effect=1, carries_price=True,
        required_fields=("supplier_name",),
    ),
    DocumentKind.PURCHASE_RETURN: KindSpec(
        family=DocumentFamily.INVOICE, stock_effect=-1, consuming=True,
        carries_price=True, required_fields=("supplier_name",),
    ),
    DocumentKind.GLASS_ONLY: KindSpec(
        family=DocumentFamily.DISPATCH, stock_effect=-1, consuming=True,
        carries_price=True, required_fields=("recipient",),
    ),
    DocumentKind.GLASS_WITH_ACCESSORIES: KindSpec(
        family=DocumentFamily.DISPATCH, stock_effect=-1, consuming=True,
        composite=True, carries_price=True, required_fields=("recipient",),
    ),
    DocumentKind.RETURN_GLASS_ONLY: KindSpec(
        family=DocumentFamily.DISPATCH, stock_effect=1, carries_price=True,
        required_fields=("reverses_id",), is_reversal=True,
    ),
    DocumentKind.RETURN_GLASS_WITH_ACCESSORIES: KindSpec(
        family=DocumentFamily.DISPATCH, stock_effect=1, composite=True,
        carries_price=True, required_fields=("reverses_id",), is_reversal=True,
    ),
    DocumentKind.BULK_ADD: KindSpec(
        family=DocumentFamily.BATCH, stock_effect=1, required_fields=("reason",),
    ),
    DocumentKind.BULK_DEDUCT: KindSpec(
        family=DocumentFamily.BATCH, stock_effect=-1, consuming=True,
        required_fields=("reason",),
    ),
    DocumentKind.BULK_TRANSFER: KindSpec(
        family=DocumentFamily.BATCH, consuming=True,
        required_fields=("reason", "target_location"),
    ),
    DocumentKind.BULK_ADJUST: KindSpec(
        family=DocumentFamily.BATCH, required_fields=("reason",),
    ),
    DocumentKind.QUALITY_CHECK: KindSpec(
        family=DocumentFamily.QUALITY, requires_stock_unit=False,
        required_fields=("batch_number",),
    ),
}


def kind_spec(kind: str) -> KindSpec:
    try:
        return KIND_SPECS[kind]
    except KeyError:
        raise ValueError(f"Unknown document kind: {kind}")


def kinds_for_family(family: str) -> List[str]:
    return [kind for kind, spec in KIND_SPECS.items() if spec.family == family]


# =============================================================================
# LEDGER VALUES
# =============================================================================

@dataclass(frozen=True)
class StockSnapshot:
    """Advisory view of one stock unit at read time."""
    stock_unit_id: int
    unit_type: str
    counters: Dict[str, int]
    name: str = ""

    @property
    def available_quantity(self) -> int:
        return self.counters.get(str(Counter.AVAILABLE), 0)

    @property
    def is_accessory(self) -> bool:
        return self.unit_type == UnitType.ACCESSORY

    def counter(self, name) -> int:
        return self.counters.get(str(name), 0)


@dataclass(frozen=True)
class Adjustment:
    stock_unit_id: int
    delta: int = 0
    counter: str = Counter.AVAILABLE.value
    set_to: Optional[int] = None


# =============================================================================
# DOCUMENTS
# =============================================================================

@dataclass
class DocumentLine:
    stock_unit_id: Optional[int]
    quantity: int
    unit_price: Decimal = Decimal("0")
    accessory_unit_id: Optional[int] = None
    notes: str = ""
    # dispatch breakdown
    packaging_quantity: int = 0
    finishing_quantity: int = 0
    shipping_quantity: int = 0
    breakage_quantity: int = 0
    # quality inspection
    defective_quantity: int = 0
    defect_types: Tuple[str, ...] = ()
    id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(str(self.unit_price))

    @property
    def breakdown_total(self) -> int:
        return (self.packaging_quantity + self.finishing_quantity
                + self.shipping_quantity + self.breakage_quantity)


@dataclass
class Document:
    kind: str
    lines: List[DocumentLine] = field(default_factory=list)
    status: str = DocumentStatus.DRAFT
    id: Optional[int] = None
    number: str = ""
    supplier_name: str = ""
    recipient: str = ""
    reason: str = ""
    target_location: str = ""
    reference_number: str = ""
    notes: str = ""
    reverses_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    submitted_by: Optional[int] = None
    submitted_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: str = ""
    completed_by: Optional[int] = None
    completed_at: Optional[datetime] = None

    @property
    def family(self) -> str:
        return kind_spec(self.kind).family

    @property
    def is_locked(self) -> bool:
        return self.status != DocumentStatus.DRAFT

    def header_value(self, name: str):
        return getattr(self, name, None)

    def copy(self, **changes) -> "Document":
        return replace(self, lines=list(self.lines), **changes)


@dataclass
class QualityCheck:
    batch_number: str
    product_type: str
    checked_quantity: int
    defective_quantity: int = 0
    defect_types: Tuple[str, ...] = ()
    severity: str = Severity.LOW
    stock_unit_id: Optional[int] = None
    status: str = QualityStatus.PENDING
    notes: str = ""
    id: Optional[int] = None
    checked_by: Optional[int] = None
    checked_at: Optional[datetime] = None
    rework_notes: str = ""
    reworked_by: Optional[int] = None
    reworked_at: Optional[datetime] = None
    kind: str = DocumentKind.QUALITY_CHECK

    @property
    def family(self) -> str:
        return DocumentFamily.QUALITY

    @property
    def requires_stock_unit(self) -> bool:
        return self.product_type in (ProductType.GLASS, ProductType.ACCESSORY)

    def header_value(self, name: str):
        return getattr(self, name, None)

    def as_line(self) -> DocumentLine:
        return DocumentLine(
            stock_unit_id=self.stock_unit_id,
            quantity=self.checked_quantity,
            defective_quantity=self.defective_quantity,
            defect_types=tuple(self.defect_types),
        )

    def copy(self, **changes) -> "QualityCheck":
        return replace(self, **changes)


@dataclass(frozen=True)
class ReworkDecision:
    target_status: str
    notes: str
    decided_by: Optional[int] = None
    check_id: Optional[int] = None

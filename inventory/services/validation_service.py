"""
Line and document validation shared by every document kind.

A line stops at its first failure. A document collects the failures of
every line so a form can highlight each broken row at once.
"""
import logging
from collections import defaultdict
from typing import Optional, Union

from inventory.choices import (
    COMPOSITE_COUNTERS, ProductType, QualityStatus, Severity, DocumentFamily, UnitType,
)
from inventory.domain import Document, DocumentLine, QualityCheck, kind_spec
from inventory.services.ledger import LedgerReader
from inventory.services.results import (
    EmptyDocument, InsufficientStock, InvalidQuantity, MissingDefectClassification,
    MissingField, ReturnExceedsOriginal, StockUnitNotFound, ValidationResult, WrongUnitType,
)

logger = logging.getLogger(__name__)


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return value == 0


def _is_whole(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_line(document_kind: str,
                  line: DocumentLine,
                  ledger: LedgerReader,
                  line_index: Optional[int] = None) -> ValidationResult:
    result = ValidationResult()
    error = _first_line_error(document_kind, line, ledger)
    if error is not None:
        result.add(error.at_line(line_index) if line_index is not None else error)
    return result


def _first_line_error(document_kind: str, line: DocumentLine, ledger: LedgerReader):
    spec = kind_spec(document_kind)

    # References
    if _is_blank(line.stock_unit_id):
        if spec.requires_stock_unit:
            return MissingField("stock_unit_id")
    if spec.composite and _is_blank(line.accessory_unit_id):
        return MissingField("accessory_unit_id")

    unit = None
    if not _is_blank(line.stock_unit_id):
        unit = ledger.get(line.stock_unit_id)
        if unit is None:
            return StockUnitNotFound(line.stock_unit_id)

    accessory = None
    if spec.composite:
        accessory = ledger.get(line.accessory_unit_id)
        if accessory is None:
            return StockUnitNotFound(line.accessory_unit_id, field="accessory_unit_id")
        if not accessory.is_accessory:
            return WrongUnitType(line.accessory_unit_id, expected=UnitType.ACCESSORY.value)

    # Quantities
    if not _is_whole(line.quantity) or line.quantity <= 0:
        return InvalidQuantity("quantity", line.quantity)
    if spec.carries_price and (line.unit_price is None or line.unit_price < 0):
        return InvalidQuantity("unit_price", line.unit_price)

    if spec.family == DocumentFamily.DISPATCH:
        parts = (line.packaging_quantity, line.finishing_quantity,
                 line.shipping_quantity, line.breakage_quantity)
        if any(not _is_whole(p) or p < 0 for p in parts) or line.breakdown_total > line.quantity:
            return InvalidQuantity("breakdown", line.breakdown_total)

    # Availability
    if spec.consuming and line.quantity > unit.available_quantity:
        return InsufficientStock(
            unit=line.stock_unit_id,
            requested=line.quantity,
            available=unit.available_quantity,
        )

    if spec.composite and spec.consuming:
        for counter in COMPOSITE_COUNTERS:
            if accessory.counter(counter) < line.quantity:
                return InsufficientStock(
                    unit=line.accessory_unit_id,
                    requested=line.quantity,
                    available=accessory.counter(counter),
                    counter=counter.value,
                )

    # Inspection
    if line.defective_quantity > 0 and not line.defect_types:
        return MissingDefectClassification()

    return None


def validate_header(document: Union[Document, QualityCheck]) -> ValidationResult:
    result = ValidationResult()
    spec = kind_spec(document.kind)

    for name in spec.required_fields:
        if _is_blank(document.header_value(name)):
            result.add(MissingField(name))

    return result


def validate_document(document: Union[Document, QualityCheck], ledger: LedgerReader) -> ValidationResult:
    if isinstance(document, QualityCheck):
        return validate_quality_check(document, ledger)

    result = validate_header(document)

    if not document.lines:
        result.add(EmptyDocument())

    for index, line in enumerate(document.lines):
        result.extend(validate_line(document.kind, line, ledger, line_index=index))

    if not result.is_valid:
        logger.debug(
            f"Document {document.number or document.id or '<new>'} ({document.kind}) "
            f"failed validation: {[e.code for e in result.errors]}"
        )
    return result


def validate_reversal(reversal: Document, original: Document) -> ValidationResult:
    """
    Check that a return gives back no more than ``original`` moved.

    Quantities are summed per stock unit, and per accessory for composite
    returns, in line order; the line that pushes a unit past what the
    original moved is the one reported.
    """
    result = ValidationResult()

    moved = defaultdict(int)
    for line in original.lines:
        moved[("stock_unit_id", line.stock_unit_id)] += line.quantity
        if line.accessory_unit_id:
            moved[("accessory_unit_id", line.accessory_unit_id)] += line.quantity

    composite = kind_spec(reversal.kind).composite
    returned = defaultdict(int)
    for index, line in enumerate(reversal.lines):
        refs = [("stock_unit_id", line.stock_unit_id)]
        if composite:
            refs.append(("accessory_unit_id", line.accessory_unit_id))
        for ref in refs:
            returned[ref] += line.quantity
            if returned[ref] > moved[ref]:
                field, unit = ref
                result.add(ReturnExceedsOriginal(unit, returned[ref], moved[ref], field=field).at_line(index))
                break

    if not result.is_valid:
        logger.debug(
            f"Return {reversal.number or reversal.id or '<new>'} exceeds "
            f"{original.number or original.id}: {result.failed_lines}"
        )
    return result


def validate_quality_check(check: QualityCheck, ledger: LedgerReader) -> ValidationResult:
    result = validate_header(check)

    if check.product_type not in ProductType.values:
        result.add(MissingField("product_type"))
    elif check.requires_stock_unit and _is_blank(check.stock_unit_id):
        result.add(MissingField("stock_unit_id"))

    if check.severity not in Severity.values:
        result.add(MissingField("severity"))

    if not _is_whole(check.defective_quantity) or check.defective_quantity < 0:
        result.add(InvalidQuantity("defective_quantity", check.defective_quantity))
    elif _is_whole(check.checked_quantity) and check.defective_quantity > check.checked_quantity:
        result.add(InvalidQuantity("defective_quantity", check.defective_quantity))
    else:
        line_result = validate_line(check.kind, check.as_line(), ledger)
        for error in line_result.errors:
            if isinstance(error, InvalidQuantity) and error.field == "quantity":
                error = InvalidQuantity("checked_quantity", check.checked_quantity)
            result.add(error)

    return result


def check_is_reworkable(check: QualityCheck) -> bool:
    return check.status in (QualityStatus.REQUIRES_REWORK, QualityStatus.FAILED)

from decimal import Decimal

import pytest

from inventory.choices import DocumentKind, ProductType
from inventory.domain import Document, DocumentLine, QualityCheck
from inventory.services.results import (
    EmptyDocument, InsufficientStock, InvalidQuantity, MissingDefectClassification,
    MissingField, StockUnitNotFound, WrongUnitType,
)
from inventory.services.validation_service import (
    validate_document, validate_line, validate_quality_check,
)


def _dispatch(*lines, kind=DocumentKind.GLASS_ONLY, recipient="Factory A"):
    return Document(kind=kind, recipient=recipient, lines=list(lines))


# ==================== LINES ====================

def test_stock_guard_allows_exact_quantity(ledger):
    ledger.add_unit(3, available_quantity=5)
    line = DocumentLine(stock_unit_id=3, quantity=5)
    assert validate_line(DocumentKind.GLASS_ONLY, line, ledger).is_valid


def test_stock_guard_refuses_one_more(ledger):
    ledger.add_unit(3, available_quantity=5)
    line = DocumentLine(stock_unit_id=3, quantity=6)

    result = validate_line(DocumentKind.GLASS_ONLY, line, ledger)

    assert result.errors == [InsufficientStock(unit=3, requested=6, available=5)]


def test_composite_guard_names_the_short_counter(ledger):
    ledger.add_unit(
        4, available_quantity=10, unit_type="ACCESSORY",
        individual_items=10, pump_quantity=3, ring_quantity=10, cover_quantity=10,
        ribbon_quantity=10, sticker_quantity=10, tag_quantity=10,
    )
    line = DocumentLine(stock_unit_id=1, quantity=4, accessory_unit_id=4)

    (error,) = validate_line(DocumentKind.GLASS_WITH_ACCESSORIES, line, ledger).errors

    assert isinstance(error, InsufficientStock)
    assert error.unit == 4
    assert error.counter == "pump_quantity"
    assert error.requested == 4
    assert error.available == 3


def test_composite_requires_accessory(ledger):
    line = DocumentLine(stock_unit_id=1, quantity=1)
    result = validate_line(DocumentKind.GLASS_WITH_ACCESSORIES, line, ledger)
    assert result.errors == [MissingField("accessory_unit_id")]


def test_unknown_accessory(ledger):
    line = DocumentLine(stock_unit_id=1, quantity=1, accessory_unit_id=99)
    result = validate_line(DocumentKind.GLASS_WITH_ACCESSORIES, line, ledger)
    assert result.errors == [StockUnitNotFound(99, field="accessory_unit_id")]


@pytest.mark.parametrize("kind", [
    DocumentKind.GLASS_WITH_ACCESSORIES,
    DocumentKind.RETURN_GLASS_WITH_ACCESSORIES,
])
def test_accessory_reference_must_be_an_accessory(ledger, kind):
    line = DocumentLine(stock_unit_id=1, quantity=1, accessory_unit_id=1)

    result = validate_line(kind, line, ledger, line_index=0)

    assert result.errors == [WrongUnitType(1, expected="ACCESSORY", line_index=0)]


def test_missing_and_unknown_stock_unit(ledger):
    missing = validate_line(DocumentKind.PURCHASE, DocumentLine(stock_unit_id=None, quantity=1), ledger)
    unknown = validate_line(DocumentKind.PURCHASE, DocumentLine(stock_unit_id=42, quantity=1), ledger)

    assert missing.errors == [MissingField("stock_unit_id")]
    assert unknown.errors == [StockUnitNotFound(42)]


def test_quantity_must_be_positive_whole_number(ledger):
    for bad in (0, -1, 1.5, True):
        result = validate_line(DocumentKind.PURCHASE, DocumentLine(stock_unit_id=1, quantity=bad), ledger)
        assert result.errors == [InvalidQuantity("quantity", bad)]


def test_negative_price(ledger):
    line = DocumentLine(stock_unit_id=1, quantity=1, unit_price=Decimal("-0.01"))
    (error,) = validate_line(DocumentKind.PURCHASE, line, ledger).errors
    assert error.field == "unit_price"


def test_line_stops_at_first_failure(ledger):
    """Unknown unit wins over a bad quantity on the same line."""
    line = DocumentLine(stock_unit_id=42, quantity=-3, unit_price=Decimal("-1"))
    result = validate_line(DocumentKind.PURCHASE, line, ledger)
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], StockUnitNotFound)


def test_breakdown_cannot_exceed_quantity(ledger):
    ok = DocumentLine(stock_unit_id=1, quantity=10, packaging_quantity=4, shipping_quantity=6)
    over = DocumentLine(stock_unit_id=1, quantity=10, packaging_quantity=4, breakage_quantity=7)

    assert validate_line(DocumentKind.GLASS_ONLY, ok, ledger).is_valid
    assert validate_line(DocumentKind.GLASS_ONLY, over, ledger).errors == [InvalidQuantity("breakdown", 11)]


def test_defects_need_classification(ledger):
    line = DocumentLine(stock_unit_id=1, quantity=10, defective_quantity=2)
    result = validate_line(DocumentKind.PURCHASE, line, ledger)
    assert result.errors == [MissingDefectClassification()]


def test_validation_is_idempotent(ledger):
    line = DocumentLine(stock_unit_id=1, quantity=50)
    first = validate_line(DocumentKind.GLASS_ONLY, line, ledger)
    second = validate_line(DocumentKind.GLASS_ONLY, line, ledger)
    assert first == second
    assert ledger.get(1).available_quantity == 20


# ==================== DOCUMENTS ====================

def test_valid_document(ledger, purchase):
    result = validate_document(purchase, ledger)
    assert result.is_valid
    assert result.to_dict() == {"valid": True, "errors": [], "lines": {}}


def test_document_errors_point_at_their_lines(ledger):
    doc = _dispatch(
        DocumentLine(stock_unit_id=1, quantity=5),
        DocumentLine(stock_unit_id=1, quantity=25),
        DocumentLine(stock_unit_id=1, quantity=2),
        DocumentLine(stock_unit_id=77, quantity=1),
    )

    result = validate_document(doc, ledger)

    assert result.failed_lines == [1, 3]
    assert result.for_line(0) == []
    assert result.for_line(1) == [InsufficientStock(unit=1, requested=25, available=20, line_index=1)]
    assert result.for_line(3) == [StockUnitNotFound(77, line_index=3)]
    assert set(result.to_dict()["lines"]) == {"1", "3"}


def test_missing_header_and_empty_document(ledger):
    result = validate_document(_dispatch(recipient=" "), ledger)

    assert result.document_errors == [MissingField("recipient"), EmptyDocument()]
    assert result.failed_lines == []


def test_purchase_requires_supplier(ledger, purchase):
    purchase.supplier_name = ""
    result = validate_document(purchase, ledger)
    assert result.errors == [MissingField("supplier_name")]


def test_return_requires_original(ledger):
    doc = Document(
        kind=DocumentKind.RETURN_GLASS_ONLY,
        lines=[DocumentLine(stock_unit_id=1, quantity=1)],
    )
    assert validate_document(doc, ledger).errors == [MissingField("reverses_id")]


def test_error_payload():
    error = InsufficientStock(unit=3, requested=6, available=5).at_line(2)
    assert error.to_dict() == {
        "code": "INSUFFICIENT_STOCK",
        "unit": 3,
        "requested": 6,
        "available": 5,
        "counter": "available_quantity",
        "line_index": 2,
    }


# ==================== QUALITY CHECKS ====================

def _check(**overrides):
    values = dict(
        batch_number="QC-TEST-0001",
        product_type=ProductType.GLASS,
        checked_quantity=100,
        defective_quantity=0,
        stock_unit_id=1,
    )
    values.update(overrides)
    return QualityCheck(**values)


def test_quality_check_valid(ledger):
    assert validate_quality_check(_check(), ledger).is_valid
    assert validate_document(_check(defective_quantity=3, defect_types=("scratch",)), ledger).is_valid


def test_final_product_needs_no_stock_unit(ledger):
    check = _check(product_type=ProductType.FINAL_PRODUCT, stock_unit_id=None)
    assert validate_quality_check(check, ledger).is_valid


def test_glass_check_needs_stock_unit(ledger):
    result = validate_quality_check(_check(stock_unit_id=None), ledger)
    assert result.errors == [MissingField("stock_unit_id")]


def test_defective_cannot_exceed_checked(ledger):
    result = validate_quality_check(_check(defective_quantity=101, defect_types=("chip",)), ledger)
    assert result.errors == [InvalidQuantity("defective_quantity", 101)]


def test_checked_quantity_must_be_positive(ledger):
    result = validate_quality_check(_check(checked_quantity=0), ledger)
    assert result.errors == [InvalidQuantity("checked_quantity", 0)]


def test_quality_defects_need_classification(ledger):
    result = validate_quality_check(_check(defective_quantity=5), ledger)
    assert result.errors == [MissingDefectClassification()]


def test_quality_check_rejects_unknown_choices(ledger):
    result = validate_quality_check(_check(product_type="BOX", severity="EXTREME"), ledger)
    assert MissingField("product_type") in result.errors
    assert MissingField("severity") in result.errors

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from inventory.choices import COMPOSITE_COUNTERS, Counter, DocumentKind, QualityStatus
from inventory.domain import Document, DocumentLine
from inventory.services.computation_service import (
    batch_adjustments, defect_rate, document_total, pass_quantity, percentage,
    quality_metrics, recommended_status, stock_adjustments,
)


def test_document_total(purchase):
    assert document_total(purchase.lines) == Decimal("25.00")


def test_document_total_rounds_once():
    """Three half-cent lines round to 0.02, not 3 x 0.01."""
    lines = [DocumentLine(stock_unit_id=1, quantity=1, unit_price=Decimal("0.005")) for _ in range(3)]
    assert document_total(lines) == Decimal("0.02")
    assert document_total(lines, places=3) == Decimal("0.015")


def test_document_total_empty():
    assert document_total([]) == Decimal("0.00")


def test_pass_quantity_and_rate():
    assert pass_quantity(100, 7) == 93
    assert defect_rate(100, 7) == Decimal("0.07")
    assert defect_rate(0, 0) == Decimal("0")


def test_defect_rate_grows_with_defects():
    rates = [defect_rate(50, d) for d in range(51)]
    assert rates == sorted(rates)
    assert rates[-1] == Decimal("1")


@pytest.mark.parametrize("defective, expected", [
    (0, QualityStatus.PASSED),
    (1, QualityStatus.REQUIRES_REWORK),
    (10, QualityStatus.REQUIRES_REWORK),
    (11, QualityStatus.FAILED),
    (100, QualityStatus.FAILED),
])
def test_recommended_status_default_threshold(defective, expected):
    assert recommended_status(100, defective) == expected


def test_recommended_status_configurable_threshold():
    assert recommended_status(100, 11, Decimal("0.20")) == QualityStatus.REQUIRES_REWORK
    assert recommended_status(100, 11, Decimal("0.05")) == QualityStatus.FAILED


def test_percentage():
    assert percentage(Decimal("0.1234")) == Decimal("12.34")
    assert percentage(Decimal("1") / Decimal("3")) == Decimal("33.33")


def test_stock_adjustments_direction(purchase):
    (adj,) = stock_adjustments(purchase)
    assert adj.stock_unit_id == 1
    assert adj.delta == 10
    assert adj.counter == Counter.AVAILABLE.value

    returned = purchase.copy(kind=DocumentKind.PURCHASE_RETURN)
    assert [a.delta for a in stock_adjustments(returned)] == [-10]


def test_stock_adjustments_composite_covers_every_part(composite_dispatch):
    adjustments = stock_adjustments(composite_dispatch)
    glass = [a for a in adjustments if a.stock_unit_id == 1]
    accessory = [a for a in adjustments if a.stock_unit_id == 2]

    assert [(a.counter, a.delta) for a in glass] == [("available_quantity", -4)]
    assert [a.counter for a in accessory] == [c.value for c in COMPOSITE_COUNTERS]
    assert all(a.delta == -4 for a in accessory)


def test_glass_only_dispatch_ignores_accessory():
    doc = Document(
        kind=DocumentKind.GLASS_ONLY,
        recipient="Factory A",
        lines=[DocumentLine(stock_unit_id=1, quantity=3, accessory_unit_id=2)],
    )
    assert [(a.stock_unit_id, a.delta) for a in stock_adjustments(doc)] == [(1, -3)]


def test_batch_adjustments_per_kind():
    line = DocumentLine(stock_unit_id=5, quantity=3)

    assert [a.delta for a in batch_adjustments(DocumentKind.BULK_ADD, line)] == [3]
    assert [a.delta for a in batch_adjustments(DocumentKind.BULK_DEDUCT, line)] == [-3]
    assert [a.delta for a in batch_adjustments(DocumentKind.BULK_TRANSFER, line)] == [-3, 3]

    (adjust,) = batch_adjustments(DocumentKind.BULK_ADJUST, line)
    assert adjust.set_to == 3


def test_quality_metrics():
    day_one = datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    day_two = datetime(2024, 3, 2, 9, tzinfo=timezone.utc)
    checks = [
        SimpleNamespace(checked_quantity=100, defective_quantity=0, status="PASSED", checked_at=day_two),
        SimpleNamespace(checked_quantity=100, defective_quantity=20, status="FAILED", checked_at=day_one),
        SimpleNamespace(checked_quantity=50, defective_quantity=5, status="REQUIRES_REWORK", checked_at=day_one),
    ]

    metrics = quality_metrics(checks)

    assert metrics["total_checked"] == 250
    assert metrics["total_defective"] == 25
    assert metrics["overall_defect_rate"] == Decimal("0.1")
    assert metrics["passed_checks"] == 1
    assert metrics["failed_checks"] == 1
    assert metrics["rework_required"] == 1
    assert metrics["pending_checks"] == 0
    assert [d["date"] for d in metrics["daily_metrics"]] == ["2024-03-01", "2024-03-02"]
    assert metrics["daily_metrics"][0]["checked"] == 150
    assert metrics["daily_metrics"][0]["defective"] == 25


def test_quality_metrics_empty():
    metrics = quality_metrics([])
    assert metrics["total_checked"] == 0
    assert metrics["overall_defect_rate"] == Decimal("0")
    assert metrics["daily_metrics"] == []

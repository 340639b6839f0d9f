"""
Derived figures for documents and quality checks.

Pure functions: no I/O, no mutation.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List

from inventory.choices import (
    COMPOSITE_COUNTERS, Counter, DocumentKind, QualityStatus,
)
from inventory.domain import Adjustment, Document, DocumentLine, kind_spec

DEFAULT_DEFECT_RATE_FAIL_THRESHOLD = Decimal("0.10")
DEFAULT_CURRENCY_PLACES = 2


def document_total(lines: Iterable[DocumentLine], places: int = DEFAULT_CURRENCY_PLACES) -> Decimal:
    """Sum of line totals, rounded once at the end."""
    total = sum((line.line_total for line in lines), Decimal("0"))
    return total.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def pass_quantity(checked: int, defective: int) -> int:
    return checked - defective


def defect_rate(checked: int, defective: int) -> Decimal:
    if checked == 0:
        return Decimal("0")
    return Decimal(defective) / Decimal(checked)


def recommended_status(checked: int,
                       defective: int,
                       threshold: Decimal = DEFAULT_DEFECT_RATE_FAIL_THRESHOLD) -> str:
    """
    PASSED with no defects, FAILED when the defect rate is strictly above
    ``threshold``, REQUIRES_REWORK otherwise.
    """
    if defective == 0:
        return QualityStatus.PASSED
    if defect_rate(checked, defective) > Decimal(str(threshold)):
        return QualityStatus.FAILED
    return QualityStatus.REQUIRES_REWORK


def stock_adjustments(document: Document) -> List[Adjustment]:
    """Ledger movements caused by completing ``document``."""
    spec = kind_spec(document.kind)
    if spec.stock_effect == 0:
        return []

    adjustments = []
    for line in document.lines:
        delta = spec.stock_effect * line.quantity
        adjustments.append(Adjustment(line.stock_unit_id, delta, Counter.AVAILABLE.value))
        if spec.composite and line.accessory_unit_id:
            for counter in COMPOSITE_COUNTERS:
                adjustments.append(Adjustment(line.accessory_unit_id, delta, counter.value))
    return adjustments


def batch_adjustments(kind: str, line: DocumentLine) -> List[Adjustment]:
    """
    Ledger movements for one committed batch line.

    A transfer draws the quantity and puts it back in the same commit, so the
    availability check is repeated under the unit lock while the net change
    stays zero.
    """
    uid = line.stock_unit_id
    available = Counter.AVAILABLE.value
    if kind == DocumentKind.BULK_ADJUST:
        return [Adjustment(uid, counter=available, set_to=line.quantity)]
    if kind == DocumentKind.BULK_TRANSFER:
        return [Adjustment(uid, -line.quantity, available), Adjustment(uid, line.quantity, available)]
    spec = kind_spec(kind)
    return [Adjustment(uid, spec.stock_effect * line.quantity, available)]


def percentage(ratio: Decimal, places: int = 2) -> Decimal:
    return (ratio * 100).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def quality_metrics(checks: Iterable[Any]) -> Dict[str, Any]:
    """
    Aggregate figures over quality checks.

    Accepts anything with checked_quantity, defective_quantity, status and
    an optional checked_at datetime.
    """
    total_checked = 0
    total_defective = 0
    counts = {status: 0 for status in QualityStatus.values}
    daily: "OrderedDict[str, Dict[str, int]]" = OrderedDict()

    for check in checks:
        total_checked += check.checked_quantity
        total_defective += check.defective_quantity
        counts[str(check.status)] = counts.get(str(check.status), 0) + 1

        checked_at = getattr(check, "checked_at", None)
        if checked_at:
            day = daily.setdefault(checked_at.date().isoformat(), {"checked": 0, "defective": 0})
            day["checked"] += check.checked_quantity
            day["defective"] += check.defective_quantity

    return {
        "total_checked": total_checked,
        "total_defective": total_defective,
        "overall_defect_rate": defect_rate(total_checked, total_defective),
        "passed_checks": counts[QualityStatus.PASSED.value],
        "failed_checks": counts[QualityStatus.FAILED.value],
        "rework_required": counts[QualityStatus.REQUIRES_REWORK.value],
        "pending_checks": counts[QualityStatus.PENDING.value],
        "daily_metrics": [
            {
                "date": date,
                "checked": values["checked"],
                "defective": values["defective"],
                "defect_rate": defect_rate(values["checked"], values["defective"]),
            }
            for date, values in sorted(daily.items())
        ],
    }

import logging
from datetime import date
from typing import Dict, Any, List

from django.db import transaction

from inventory import domain
from inventory.choices import ProductType, QualityStatus, Severity
from inventory.models import QualityCheck, ReworkDecision, InventorySettings
from inventory.services.base_service import (
    BaseService, success_response, error_response, paginate_queryset, isoformat,
    to_int, round_decimal, generate_number,
    ValidationError, NotFoundError,
)
from inventory.services.computation_service import (
    defect_rate, pass_quantity, percentage, quality_metrics,
)
from inventory.services.ledger_service import DatabaseLedger
from inventory.services.results import IllegalTransition, ValidationResult
from inventory.services.transition_service import apply_rework, create_quality_check

logger = logging.getLogger(__name__)


def _rate(value) -> Dict[str, str]:
    return {"ratio": str(round_decimal(value, 4)), "percent": str(percentage(value))}


class QualityCheckService(BaseService):
    model = QualityCheck

    # ==================== CONVERSION ====================

    @classmethod
    def to_domain(cls, check: QualityCheck) -> domain.QualityCheck:
        return domain.QualityCheck(
            id=check.id,
            batch_number=check.batch_number,
            product_type=check.product_type,
            stock_unit_id=check.stock_unit_id,
            checked_quantity=check.checked_quantity,
            defective_quantity=check.defective_quantity,
            defect_types=tuple(check.defect_types or ()),
            severity=check.severity,
            status=check.status,
            notes=check.notes,
            checked_by=check.checked_by_id,
            checked_at=check.checked_at,
            rework_notes=check.rework_notes,
            reworked_by=check.reworked_by_id,
            reworked_at=check.reworked_at,
        )

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_rework(cls, rework: ReworkDecision) -> Dict[str, Any]:
        return {
            "id": rework.id,
            "from_status": rework.from_status,
            "to_status": rework.to_status,
            "notes": rework.notes,
            "decided_by_id": rework.decided_by_id,
            "created_at": isoformat(rework.created_at),
        }

    @classmethod
    def serialize(cls, check: QualityCheck, include_history: bool = False) -> Dict[str, Any]:
        data = {
            "id": check.id,
            "uuid": str(check.uuid),
            "batch_number": check.batch_number,
            "product_type": check.product_type,
            "product_type_display": check.get_product_type_display(),
            "stock_unit_id": check.stock_unit_id,
            "checked_quantity": check.checked_quantity,
            "defective_quantity": check.defective_quantity,
            "pass_quantity": pass_quantity(check.checked_quantity, check.defective_quantity),
            "defect_rate": _rate(defect_rate(check.checked_quantity, check.defective_quantity)),
            "defect_types": list(check.defect_types or []),
            "severity": check.severity,
            "status": check.status,
            "status_display": check.get_status_display(),
            "notes": check.notes,
            "checked_by_id": check.checked_by_id,
            "checked_at": isoformat(check.checked_at),
            "rework_notes": check.rework_notes,
            "reworked_by_id": check.reworked_by_id,
            "reworked_at": isoformat(check.reworked_at),
        }

        if include_history:
            data["reworks"] = [cls.serialize_rework(r) for r in check.reworks.all()]

        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             status: str = None,
             product_type: str = None,
             date_from: date = None,
             date_to: date = None) -> Dict[str, Any]:
        queryset = cls._filtered(status, product_type, date_from, date_to)
        checks, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "quality_checks": [cls.serialize(c) for c in checks],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in QualityStatus.choices],
            "severities": [{"value": c[0], "label": c[1]} for c in Severity.choices],
        })

    @classmethod
    def _filtered(cls, status=None, product_type=None, date_from=None, date_to=None):
        queryset = cls.model.objects.all()

        if status:
            queryset = queryset.filter(status=status)

        if product_type:
            queryset = queryset.filter(product_type=product_type)

        if date_from:
            queryset = queryset.filter(checked_at__date__gte=date_from)

        if date_to:
            queryset = queryset.filter(checked_at__date__lte=date_to)

        return queryset.order_by("-checked_at", "-id")

    @classmethod
    def get(cls, check_id: int) -> Dict[str, Any]:
        check = cls.get_or_404(check_id)
        return success_response({"quality_check": cls.serialize(check, include_history=True)})

    # ==================== CREATE ====================

    @classmethod
    @transaction.atomic
    def create(cls,
               product_type: str,
               checked_quantity: int,
               defective_quantity: int = 0,
               defect_types: List[str] = None,
               severity: str = Severity.LOW,
               stock_unit_id: int = None,
               batch_number: str = None,
               notes: str = "",
               checked_by_id: int = None) -> Dict[str, Any]:
        batch_number = (batch_number or "").strip() or generate_number("QC", cls.model, "batch_number")
        if cls.model.objects.filter(batch_number=batch_number).exists():
            raise ValidationError(f"Batch number {batch_number} is already in use", "batch_number")

        if defect_types is None:
            defect_types = []
        if not isinstance(defect_types, (list, tuple)):
            raise ValidationError("defect_types must be a list", "defect_types")

        check = domain.QualityCheck(
            batch_number=batch_number,
            product_type=product_type,
            stock_unit_id=to_int(stock_unit_id),
            checked_quantity=to_int(checked_quantity),
            defective_quantity=0 if defective_quantity in (None, "") else to_int(defective_quantity),
            defect_types=tuple(str(t).strip() for t in defect_types if str(t).strip()),
            severity=severity or Severity.LOW,
            notes=notes or "",
        )

        settings = InventorySettings.load()
        result = create_quality_check(
            check, DatabaseLedger(), settings.defect_rate_fail_threshold, actor=checked_by_id
        )
        if not result.ok:
            return error_response(
                "Quality check failed validation",
                "VALIDATION_FAILED",
                ValidationResult(list(result.errors)).to_dict(),
            )

        evaluated = result.document
        record = cls.model.objects.create(
            batch_number=evaluated.batch_number,
            product_type=evaluated.product_type,
            stock_unit_id=evaluated.stock_unit_id,
            checked_quantity=evaluated.checked_quantity,
            defective_quantity=evaluated.defective_quantity,
            defect_types=list(evaluated.defect_types),
            severity=evaluated.severity,
            status=evaluated.status,
            notes=evaluated.notes,
            checked_by_id=evaluated.checked_by,
            checked_at=evaluated.checked_at,
        )

        return success_response({
            "id": record.id,
            "quality_check": cls.serialize(record),
        }, f"Quality check {record.batch_number}: {record.get_status_display()}")

    # ==================== REWORK ====================

    @classmethod
    @transaction.atomic
    def rework(cls, check_id: int, target_status: str, notes: str, actor_id: int = None) -> Dict[str, Any]:
        record = cls.model.objects.select_for_update().filter(id=check_id).first()
        if not record:
            raise NotFoundError("QualityCheck", check_id)

        decision = domain.ReworkDecision(
            target_status=target_status or "",
            notes=notes or "",
            decided_by=actor_id,
            check_id=record.id,
        )
        result = apply_rework(cls.to_domain(record), decision)

        if not result.ok:
            error = result.error
            if isinstance(error, IllegalTransition):
                return error_response(
                    f"Cannot rework a {record.status} check to {target_status}",
                    error.code,
                    {"errors": [e.to_dict() for e in result.errors]},
                )
            return error_response(
                "Rework notes are required",
                "VALIDATION_FAILED",
                ValidationResult(list(result.errors)).to_dict(),
            )

        reworked = result.document
        ReworkDecision.objects.create(
            quality_check=record,
            from_status=record.status,
            to_status=reworked.status,
            notes=reworked.rework_notes,
            decided_by_id=actor_id,
        )

        record.status = reworked.status
        record.rework_notes = reworked.rework_notes
        record.reworked_by_id = reworked.reworked_by
        record.reworked_at = reworked.reworked_at
        record.save(update_fields=["status", "rework_notes", "reworked_by", "reworked_at", "updated_at"])

        return success_response({
            "quality_check": cls.serialize(record, include_history=True),
        }, f"Quality check {record.batch_number}: {record.get_status_display()}")

    # ==================== METRICS ====================

    @classmethod
    def metrics(cls,
                product_type: str = None,
                date_from: date = None,
                date_to: date = None) -> Dict[str, Any]:
        if product_type and product_type not in ProductType.values:
            raise ValidationError(f"Invalid product type. Valid: {ProductType.values}", "product_type")

        figures = quality_metrics(cls._filtered(None, product_type, date_from, date_to))

        return success_response({
            "metrics": {
                "total_checked": figures["total_checked"],
                "total_defective": figures["total_defective"],
                "overall_defect_rate": _rate(figures["overall_defect_rate"]),
                "passed_checks": figures["passed_checks"],
                "failed_checks": figures["failed_checks"],
                "rework_required": figures["rework_required"],
                "pending_checks": figures["pending_checks"],
                "daily_metrics": [
                    {
                        "date": day["date"],
                        "checked": day["checked"],
                        "defective": day["defective"],
                        "defect_rate": _rate(day["defect_rate"]),
                    }
                    for day in figures["daily_metrics"]
                ],
            }
        })

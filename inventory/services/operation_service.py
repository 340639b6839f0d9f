import logging
from typing import Dict, Any, List

from django.db import transaction

from inventory import domain
from inventory.choices import BatchReason, DocumentFamily, DocumentKind
from inventory.models import BatchOperation, BatchOperationLine, StockUnit
from inventory.services.base_service import (
    BaseService, success_response, error_response, paginate_queryset, isoformat,
    to_int, generate_number, ValidationError,
)
from inventory.services.batch_service import execute_batch
from inventory.services.ledger_service import DatabaseLedger
from inventory.services.results import EmptyDocument
from inventory.services.validation_service import validate_header

logger = logging.getLogger(__name__)


class BatchOperationService(BaseService):
    model = BatchOperation

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_line(cls, line: BatchOperationLine) -> Dict[str, Any]:
        return {
            "index": line.position,
            "stock_unit_id": line.stock_unit_id,
            "quantity": line.quantity,
            "success": line.success,
            "new_quantity": line.new_quantity,
            "errors": line.errors,
            "notes": line.notes,
        }

    @classmethod
    def serialize(cls, operation: BatchOperation, include_lines: bool = True) -> Dict[str, Any]:
        data = {
            "id": operation.id,
            "uuid": str(operation.uuid),
            "operation_number": operation.operation_number,
            "kind": operation.kind,
            "kind_display": operation.get_kind_display(),
            "reason": operation.reason,
            "reason_display": operation.get_reason_display(),
            "target_location": operation.target_location,
            "reference_number": operation.reference_number,
            "notes": operation.notes,
            "overall_success": operation.overall_success,
            "processed_count": operation.processed_count,
            "succeeded_count": operation.succeeded_count,
            "created_by_id": operation.created_by_id,
            "created_at": isoformat(operation.created_at),
        }

        if include_lines:
            data["lines"] = [cls.serialize_line(line) for line in operation.lines.all()]

        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls, page: int = 1, per_page: int = 20, kind: str = None, reason: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if kind:
            queryset = queryset.filter(kind=kind)

        if reason:
            queryset = queryset.filter(reason=reason)

        operations, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)

        return success_response({
            "operations": [cls.serialize(op, include_lines=False) for op in operations],
            "pagination": pagination,
            "kinds": [
                {"value": k, "label": DocumentKind(k).label}
                for k in domain.kinds_for_family(DocumentFamily.BATCH)
            ],
            "reasons": [{"value": c[0], "label": c[1]} for c in BatchReason.choices],
        })

    @classmethod
    def get(cls, operation_id: int) -> Dict[str, Any]:
        operation = cls.get_or_404(operation_id)
        return success_response({"operation": cls.serialize(operation)})

    # ==================== EXECUTE ====================

    @classmethod
    def execute(cls,
                kind: str,
                reason: str,
                lines: List[Dict] = None,
                created_by_id: int = None,
                target_location: str = "",
                reference_number: str = "",
                notes: str = "") -> Dict[str, Any]:
        """
        Run a batch operation line by line.

        Lines commit independently, so no transaction wraps the whole run:
        a line that fails leaves the lines already applied in place.
        """
        if kind not in DocumentKind.values or domain.kind_spec(kind).family != DocumentFamily.BATCH:
            raise ValidationError("Invalid batch kind", "kind")
        if reason and reason not in BatchReason.values:
            raise ValidationError(f"Invalid reason. Valid: {BatchReason.values}", "reason")
        if not isinstance(lines or [], list):
            raise ValidationError("lines must be a list", "lines")

        header = domain.Document(
            kind=kind,
            reason=reason or "",
            target_location=(target_location or "").strip(),
        )
        check = validate_header(header)
        if not lines:
            check.add(EmptyDocument())
        if not check.is_valid:
            return error_response("Batch operation failed validation", "VALIDATION_FAILED", check.to_dict())

        batch_lines = [
            domain.DocumentLine(
                stock_unit_id=to_int(row.get("stock_unit_id")) if isinstance(row, dict) else None,
                quantity=to_int(row.get("quantity")) if isinstance(row, dict) else None,
                notes=(row.get("notes") or "") if isinstance(row, dict) else "",
            )
            for row in lines
        ]

        number = generate_number("BOP", cls.model, "operation_number")
        outcome = execute_batch(
            kind, batch_lines, DatabaseLedger(),
            actor_id=created_by_id, reference=number, notes=notes or "",
        )

        with transaction.atomic():
            operation = cls.model.objects.create(
                operation_number=number,
                kind=kind,
                reason=reason,
                target_location=header.target_location,
                reference_number=(reference_number or "").strip(),
                notes=notes or "",
                overall_success=outcome.overall_success,
                processed_count=len(outcome.results),
                succeeded_count=len(outcome.succeeded),
                created_by_id=created_by_id,
            )
            ids = {line.stock_unit_id for line in batch_lines if line.stock_unit_id}
            known = set(StockUnit.objects.filter(id__in=ids).values_list("id", flat=True))
            BatchOperationLine.objects.bulk_create([
                BatchOperationLine(
                    operation=operation,
                    position=result.index,
                    stock_unit_id=line.stock_unit_id if line.stock_unit_id in known else None,
                    quantity=line.quantity if line.quantity is not None else 0,
                    success=result.success,
                    new_quantity=result.new_quantity,
                    errors=[e.to_dict() for e in result.errors],
                    notes=line.notes,
                )
                for line, result in zip(batch_lines, outcome.results)
            ])

        message = (
            "Batch operation completed" if outcome.overall_success
            else f"Batch operation applied {len(outcome.succeeded)} of {len(outcome.results)} lines"
        )
        return success_response({
            "operation": cls.serialize(operation),
            "result": outcome.to_dict(),
        }, message)

import logging
from typing import Dict, Any, List

from django.db import transaction
from django.db.models import Q

from inventory import domain
from inventory.choices import DocumentFamily, DocumentKind, DocumentStatus
from inventory.models import Document, DocumentLine, StockUnit, InventorySettings
from inventory.services.base_service import (
    BaseService, success_response, error_response, paginate_queryset, isoformat,
    to_decimal, to_int, generate_number,
    ValidationError, NotFoundError, BusinessRuleError,
)
from inventory.services.computation_service import document_total
from inventory.services.ledger_service import DatabaseLedger
from inventory.services.results import IllegalTransition, ValidationResult
from inventory.services.transition_service import (
    allowed_targets, create_reversal, transition,
)
from inventory.services.validation_service import validate_document, validate_reversal

logger = logging.getLogger(__name__)


class DocumentService(BaseService):
    """Purchase invoices, factory dispatches and their returns."""

    model = Document

    NUMBER_PREFIXES = {
        DocumentKind.PURCHASE.value: "INV-P",
        DocumentKind.PURCHASE_RETURN.value: "INV-R",
        DocumentKind.GLASS_ONLY.value: "DSP",
        DocumentKind.GLASS_WITH_ACCESSORIES.value: "DSP",
        DocumentKind.RETURN_GLASS_ONLY.value: "RTN",
        DocumentKind.RETURN_GLASS_WITH_ACCESSORIES.value: "RTN",
    }
    HEADER_FIELDS = ("supplier_name", "recipient", "reference_number", "notes")
    BREAKDOWN_FIELDS = ("packaging_quantity", "finishing_quantity", "shipping_quantity", "breakage_quantity")

    # ==================== CONVERSION ====================

    @classmethod
    def to_domain(cls, doc: Document) -> domain.Document:
        return domain.Document(
            kind=doc.kind,
            status=doc.status,
            id=doc.id,
            number=doc.document_number,
            supplier_name=doc.supplier_name,
            recipient=doc.recipient,
            reference_number=doc.reference_number,
            notes=doc.notes,
            reverses_id=doc.reverses_id,
            created_by=doc.created_by_id,
            created_at=doc.created_at,
            submitted_by=doc.submitted_by_id,
            submitted_at=doc.submitted_at,
            approved_by=doc.approved_by_id,
            approved_at=doc.approved_at,
            rejected_by=doc.rejected_by_id,
            rejected_at=doc.rejected_at,
            rejection_reason=doc.rejection_reason,
            completed_by=doc.completed_by_id,
            completed_at=doc.completed_at,
            lines=[
                domain.DocumentLine(
                    id=line.id,
                    stock_unit_id=line.stock_unit_id,
                    accessory_unit_id=line.accessory_unit_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    packaging_quantity=line.packaging_quantity,
                    finishing_quantity=line.finishing_quantity,
                    shipping_quantity=line.shipping_quantity,
                    breakage_quantity=line.breakage_quantity,
                    notes=line.notes,
                )
                for line in doc.lines.all()
            ],
        )

    @classmethod
    def _write_back(cls, doc: Document, moved: domain.Document) -> None:
        doc.status = moved.status
        doc.submitted_by_id = moved.submitted_by
        doc.submitted_at = moved.submitted_at
        doc.approved_by_id = moved.approved_by
        doc.approved_at = moved.approved_at
        doc.rejected_by_id = moved.rejected_by
        doc.rejected_at = moved.rejected_at
        doc.rejection_reason = moved.rejection_reason
        doc.completed_by_id = moved.completed_by
        doc.completed_at = moved.completed_at
        doc.save(update_fields=[
            "status", "submitted_by", "submitted_at", "approved_by", "approved_at",
            "rejected_by", "rejected_at", "rejection_reason", "completed_by", "completed_at",
            "updated_at",
        ])

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_line(cls, line: DocumentLine) -> Dict[str, Any]:
        return {
            "id": line.id,
            "position": line.position,
            "stock_unit_id": line.stock_unit_id,
            "stock_unit": line.stock_unit.name,
            "accessory_unit_id": line.accessory_unit_id,
            "quantity": line.quantity,
            "unit_price": str(line.unit_price),
            "line_total": str(line.line_total),
            "packaging_quantity": line.packaging_quantity,
            "finishing_quantity": line.finishing_quantity,
            "shipping_quantity": line.shipping_quantity,
            "breakage_quantity": line.breakage_quantity,
            "notes": line.notes,
        }

    @classmethod
    def serialize(cls, doc: Document, include_lines: bool = True, places: int = None) -> Dict[str, Any]:
        if places is None:
            places = InventorySettings.load().currency_places
        current = cls.to_domain(doc)

        data = {
            "id": doc.id,
            "uuid": str(doc.uuid),
            "document_number": doc.document_number,
            "family": doc.family,
            "kind": doc.kind,
            "kind_display": doc.get_kind_display(),
            "status": doc.status,
            "status_display": doc.get_status_display(),
            "is_locked": doc.is_locked,
            "allowed_transitions": list(allowed_targets(current)),
            "supplier_name": doc.supplier_name,
            "recipient": doc.recipient,
            "reference_number": doc.reference_number,
            "notes": doc.notes,
            "reverses_id": doc.reverses_id,
            "total": str(document_total(current.lines, places)),

            "created_by_id": doc.created_by_id,
            "submitted_by_id": doc.submitted_by_id,
            "approved_by_id": doc.approved_by_id,
            "rejected_by_id": doc.rejected_by_id,
            "completed_by_id": doc.completed_by_id,
            "submitted_at": isoformat(doc.submitted_at),
            "approved_at": isoformat(doc.approved_at),
            "rejected_at": isoformat(doc.rejected_at),
            "completed_at": isoformat(doc.completed_at),
            "rejection_reason": doc.rejection_reason,

            "created_at": isoformat(doc.created_at),
            "updated_at": isoformat(doc.updated_at),
        }

        if include_lines:
            data["lines"] = [
                cls.serialize_line(line)
                for line in doc.lines.select_related("stock_unit")
            ]
            data["line_count"] = len(data["lines"])
            data["reversal_ids"] = list(doc.reversals.values_list("id", flat=True))

        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             family: str = None,
             kind: str = None,
             status: str = None,
             search: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if family:
            queryset = queryset.filter(family=family)

        if kind:
            queryset = queryset.filter(kind=kind)

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(document_number__icontains=search) |
                Q(supplier_name__icontains=search) |
                Q(recipient__icontains=search)
            )

        documents, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)
        places = InventorySettings.load().currency_places

        return success_response({
            "documents": [cls.serialize(d, include_lines=False, places=places) for d in documents],
            "pagination": pagination,
            "statuses": [{"value": c[0], "label": c[1]} for c in DocumentStatus.choices],
        })

    @classmethod
    def get(cls, document_id: int) -> Dict[str, Any]:
        doc = cls.get_or_404(document_id)
        return success_response({"document": cls.serialize(doc)})

    # ==================== CREATE & UPDATE ====================

    @classmethod
    def _clean_lines(cls, lines: List[Dict]) -> List[Dict[str, Any]]:
        """Shape checks needed before lines can be stored; business rules run at validation."""
        if not isinstance(lines, list):
            raise ValidationError("lines must be a list", "lines")

        cleaned = []
        unit_ids = set()
        for position, data in enumerate(lines):
            if not isinstance(data, dict):
                raise ValidationError(f"Line {position} must be an object", "lines", {"line_index": position})

            stock_unit_id = to_int(data.get("stock_unit_id"))
            if not stock_unit_id:
                raise ValidationError(
                    f"Line {position}: stock_unit_id is required", "stock_unit_id", {"line_index": position}
                )

            quantity = to_int(data.get("quantity"))
            if quantity is None or quantity < 0:
                raise ValidationError(
                    f"Line {position}: quantity must be a whole number", "quantity", {"line_index": position}
                )

            unit_price = to_decimal(data.get("unit_price") or 0, None)
            if unit_price is None or unit_price < 0:
                raise ValidationError(
                    f"Line {position}: unit_price must be a non-negative number", "unit_price",
                    {"line_index": position}
                )

            row = {
                "position": position,
                "stock_unit_id": stock_unit_id,
                "accessory_unit_id": to_int(data.get("accessory_unit_id")),
                "quantity": quantity,
                "unit_price": unit_price,
                "notes": data.get("notes") or "",
            }
            for field in cls.BREAKDOWN_FIELDS:
                value = to_int(data.get(field), 0)
                if value < 0:
                    raise ValidationError(f"Line {position}: {field} cannot be negative", field,
                                          {"line_index": position})
                row[field] = value

            unit_ids.add(stock_unit_id)
            if row["accessory_unit_id"]:
                unit_ids.add(row["accessory_unit_id"])
            cleaned.append(row)

        known = set(StockUnit.objects.filter(id__in=unit_ids).values_list("id", flat=True))
        missing = sorted(unit_ids - known)
        if missing:
            raise NotFoundError("StockUnit", missing[0])

        return cleaned

    @classmethod
    def _store_lines(cls, doc: Document, rows: List[Dict[str, Any]]) -> None:
        DocumentLine.objects.bulk_create([DocumentLine(document=doc, **row) for row in rows])

    @classmethod
    @transaction.atomic
    def create(cls,
               kind: str,
               created_by_id: int = None,
               lines: List[Dict] = None,
               **header) -> Dict[str, Any]:
        if kind not in DocumentKind.values:
            raise ValidationError(f"Invalid kind. Valid: {DocumentKind.values}", "kind")

        spec = domain.kind_spec(kind)
        if spec.family not in (DocumentFamily.INVOICE, DocumentFamily.DISPATCH):
            raise ValidationError(f"{kind} documents are not created here", "kind")
        if spec.is_reversal:
            raise BusinessRuleError("Returns are drafted from the completed dispatch", "reversal_from_original")

        rows = cls._clean_lines(lines or [])

        doc = cls.model.objects.create(
            document_number=generate_number(cls.NUMBER_PREFIXES[kind], cls.model),
            family=spec.family,
            kind=kind,
            status=DocumentStatus.DRAFT,
            created_by_id=created_by_id,
            **{f: (header.get(f) or "").strip() for f in cls.HEADER_FIELDS}
        )
        cls._store_lines(doc, rows)

        logger.info(f"Created {kind} {doc.document_number} with {len(rows)} lines")
        return success_response({
            "id": doc.id,
            "document_number": doc.document_number,
            "document": cls.serialize(doc),
        }, f"Document {doc.document_number} created")

    @classmethod
    @transaction.atomic
    def update(cls, document_id: int, **kwargs) -> Dict[str, Any]:
        doc = cls.model.objects.select_for_update().filter(id=document_id).first()
        if not doc:
            raise NotFoundError("Document", document_id)

        if doc.is_locked:
            raise BusinessRuleError(f"Cannot edit {doc.status} document", "document_locked")
        if "lines" in kwargs and doc.reverses_id:
            raise BusinessRuleError("Return lines follow the reversed document", "reversal_lines_fixed")

        update_fields = ["updated_at"]
        for field in cls.HEADER_FIELDS:
            if field in kwargs:
                setattr(doc, field, (kwargs[field] or "").strip())
                update_fields.append(field)
        doc.save(update_fields=update_fields)

        if "lines" in kwargs:
            rows = cls._clean_lines(kwargs["lines"] or [])
            doc.lines.all().delete()
            cls._store_lines(doc, rows)

        return success_response({"document": cls.serialize(doc)}, "Document updated")

    # ==================== RULES & WORKFLOW ====================

    @classmethod
    def validate(cls, document_id: int) -> Dict[str, Any]:
        doc = cls.get_or_404(document_id)
        document = cls.to_domain(doc)
        result = validate_document(document, DatabaseLedger())
        if result.is_valid and doc.reverses_id:
            result = validate_reversal(document, cls.to_domain(doc.reverses))
        return success_response({"validation": result.to_dict()},
                                "Document is valid" if result.is_valid else "Document has errors")

    @classmethod
    @transaction.atomic
    def change_status(cls, document_id: int, status: str, actor_id: int = None, notes: str = "") -> Dict[str, Any]:
        doc = cls.model.objects.select_for_update().filter(id=document_id).first()
        if not doc:
            raise NotFoundError("Document", document_id)

        if status not in DocumentStatus.values:
            raise ValidationError(f"Invalid status. Valid: {DocumentStatus.values}", "status")

        original = cls.to_domain(doc.reverses) if doc.reverses_id else None
        result = transition(cls.to_domain(doc), status, actor_id, ledger=DatabaseLedger(), notes=notes,
                            original=original)

        if not result.ok:
            error = result.error
            if isinstance(error, IllegalTransition):
                return error_response(
                    f"Cannot move {doc.status} document to {status}",
                    error.code,
                    {"errors": [e.to_dict() for e in result.errors]},
                )
            if status == DocumentStatus.SUBMITTED:
                return error_response(
                    "Document failed validation",
                    "VALIDATION_FAILED",
                    ValidationResult(list(result.errors)).to_dict(),
                )
            return error_response(
                "Stock changed before the document could be completed",
                error.code,
                {"errors": [e.to_dict() for e in result.errors]},
            )

        cls._write_back(doc, result.document)
        return success_response({"document": cls.serialize(doc)}, f"Document {doc.document_number} {doc.status.lower()}")

    @classmethod
    @transaction.atomic
    def reverse(cls,
                document_id: int,
                actor_id: int = None,
                return_kind: str = None,
                notes: str = "") -> Dict[str, Any]:
        original = cls.model.objects.select_for_update().filter(id=document_id).first()
        if not original:
            raise NotFoundError("Document", document_id)

        if return_kind and return_kind not in DocumentKind.values:
            raise ValidationError(f"Invalid kind. Valid: {DocumentKind.values}", "return_kind")

        earlier = [cls.to_domain(r) for r in original.reversals.all()]
        result = create_reversal(cls.to_domain(original), actor_id, return_kind, notes, earlier)

        if not result.ok:
            return error_response(
                f"Document {original.document_number} cannot be reversed",
                result.error.code,
                {"errors": [e.to_dict() for e in result.errors]},
            )

        draft = result.document
        spec = domain.kind_spec(draft.kind)
        reversal = cls.model.objects.create(
            document_number=generate_number(cls.NUMBER_PREFIXES[draft.kind], cls.model),
            family=spec.family,
            kind=draft.kind,
            status=DocumentStatus.DRAFT,
            supplier_name=draft.supplier_name,
            recipient=draft.recipient,
            reference_number=draft.reference_number,
            notes=draft.notes,
            reverses=original,
            created_by_id=actor_id,
        )
        cls._store_lines(reversal, [
            {
                "position": position,
                "stock_unit_id": line.stock_unit_id,
                "accessory_unit_id": line.accessory_unit_id,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "notes": line.notes,
            }
            for position, line in enumerate(draft.lines)
        ])

        logger.info(f"Drafted {reversal.kind} {reversal.document_number} for {original.document_number}")
        return success_response({
            "id": reversal.id,
            "document": cls.serialize(reversal),
        }, f"Return {reversal.document_number} drafted")

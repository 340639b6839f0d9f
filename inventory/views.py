from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator
from django.utils.dateparse import parse_date
import json
import logging

from inventory.services import (
    ValidationError, NotFoundError, BusinessRuleError, LedgerUnavailableError,
    StockUnitService, DocumentService, QualityCheckService,
    BatchOperationService, InventorySettingsService,
)

logger = logging.getLogger(__name__)

# Engine outcomes that mean "the world changed under you" rather than bad input
CONFLICT_CODES = {"ILLEGAL_TRANSITION", "INSUFFICIENT_STOCK", "DUPLICATE_REVERSAL"}


def error_response(message: str, code: str = "error", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message}}
    if details:
        data["error"]["details"] = details
    return JsonResponse(data, status=status)


def handle_service_error(e: Exception):
    if isinstance(e, ValidationError):
        return error_response(str(e), "validation_error", 400, {"field": e.field, **e.details})
    elif isinstance(e, NotFoundError):
        return error_response(str(e), "not_found", 404, e.details)
    elif isinstance(e, BusinessRuleError):
        return error_response(str(e), "business_rule", 400, e.details)
    elif isinstance(e, LedgerUnavailableError):
        return error_response(str(e), "ledger_unavailable", 503)
    else:
        logger.exception("Unhandled error in inventory API")
        return error_response(str(e), "server_error", 500)


class BaseInventoryView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        try:
            return json.loads(request.body) if request.body else {}
        except json.JSONDecodeError:
            return {}

    def get_user_id(self, request):
        if request.user.is_authenticated:
            return request.user.id
        return None

    def get_int(self, request, name: str, default: int = None):
        value = request.GET.get(name)
        try:
            return int(value) if value else default
        except ValueError:
            return default

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)

    def respond(self, result: dict, status: int = 200):
        """Send a service result, mapping refused engine outcomes to 400 or 409."""
        if result.get("success", True):
            result = {k: v for k, v in result.items() if k != "success"}
            return self.success(result, status)
        code = result.get("error_code", "error")
        return error_response(
            result.get("message", ""),
            code.lower(),
            409 if code in CONFLICT_CODES else 400,
            result.get("details"),
        )


# ==================== SETTINGS ====================

class InventorySettingsView(BaseInventoryView):

    def get(self, request):
        try:
            return self.success({"settings": InventorySettingsService.get_all()})
        except Exception as e:
            return handle_service_error(e)

    def put(self, request):
        try:
            data = self.get_json_body(request)
            result = InventorySettingsService.update(**data)
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== STOCK UNITS ====================

class StockUnitListView(BaseInventoryView):

    def get(self, request):
        try:
            result = StockUnitService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                unit_type=request.GET.get("unit_type"),
                search=request.GET.get("search"),
                active_only=request.GET.get("active_only", "true").lower() == "true",
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockUnitService.create(
                code=data.get("code"),
                name=data.get("name"),
                unit_type=data.get("unit_type", "INVENTORY"),
                created_by_id=self.get_user_id(request),
                **{k: v for k, v in data.items() if k not in ("code", "name", "unit_type", "created_by_id")}
            )
            return self.respond(result, 201)
        except Exception as e:
            return handle_service_error(e)


class StockUnitDetailView(BaseInventoryView):

    def get(self, request, stock_unit_id):
        try:
            return self.respond(StockUnitService.get(stock_unit_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, stock_unit_id):
        try:
            data = self.get_json_body(request)
            return self.respond(StockUnitService.update(stock_unit_id, **data))
        except Exception as e:
            return handle_service_error(e)


class StockUnitMovementsView(BaseInventoryView):

    def get(self, request, stock_unit_id):
        try:
            result = StockUnitService.movements(
                stock_unit_id,
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 50),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== DOCUMENTS ====================

class DocumentListView(BaseInventoryView):

    def get(self, request):
        try:
            result = DocumentService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                family=request.GET.get("family"),
                kind=request.GET.get("kind"),
                status=request.GET.get("status"),
                search=request.GET.get("search"),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = DocumentService.create(
                kind=data.get("kind"),
                created_by_id=self.get_user_id(request),
                lines=data.get("lines", []),
                supplier_name=data.get("supplier_name", ""),
                recipient=data.get("recipient", ""),
                reference_number=data.get("reference_number", ""),
                notes=data.get("notes", ""),
            )
            return self.respond(result, 201)
        except Exception as e:
            return handle_service_error(e)


class DocumentDetailView(BaseInventoryView):

    def get(self, request, document_id):
        try:
            return self.respond(DocumentService.get(document_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, document_id):
        try:
            data = self.get_json_body(request)
            fields = {k: data[k] for k in DocumentService.HEADER_FIELDS + ("lines",) if k in data}
            return self.respond(DocumentService.update(document_id, **fields))
        except Exception as e:
            return handle_service_error(e)


class DocumentValidateView(BaseInventoryView):

    def post(self, request, document_id):
        try:
            return self.respond(DocumentService.validate(document_id))
        except Exception as e:
            return handle_service_error(e)


class DocumentTransitionView(BaseInventoryView):

    def post(self, request, document_id):
        try:
            data = self.get_json_body(request)
            result = DocumentService.change_status(
                document_id,
                status=data.get("status", ""),
                actor_id=self.get_user_id(request),
                notes=data.get("notes", ""),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)


class DocumentReverseView(BaseInventoryView):

    def post(self, request, document_id):
        try:
            data = self.get_json_body(request)
            result = DocumentService.reverse(
                document_id,
                actor_id=self.get_user_id(request),
                return_kind=data.get("kind"),
                notes=data.get("notes", ""),
            )
            return self.respond(result, 201)
        except Exception as e:
            return handle_service_error(e)


# ==================== QUALITY CHECKS ====================

class QualityCheckListView(BaseInventoryView):

    def get(self, request):
        try:
            result = QualityCheckService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                status=request.GET.get("status"),
                product_type=request.GET.get("product_type"),
                date_from=parse_date(request.GET.get("date_from", "")),
                date_to=parse_date(request.GET.get("date_to", "")),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = QualityCheckService.create(
                product_type=data.get("product_type"),
                checked_quantity=data.get("checked_quantity"),
                defective_quantity=data.get("defective_quantity", 0),
                defect_types=data.get("defect_types"),
                severity=data.get("severity", "LOW"),
                stock_unit_id=data.get("stock_unit_id"),
                batch_number=data.get("batch_number"),
                notes=data.get("notes", ""),
                checked_by_id=self.get_user_id(request),
            )
            return self.respond(result, 201)
        except Exception as e:
            return handle_service_error(e)


class QualityCheckDetailView(BaseInventoryView):

    def get(self, request, check_id):
        try:
            return self.respond(QualityCheckService.get(check_id))
        except Exception as e:
            return handle_service_error(e)


class QualityCheckReworkView(BaseInventoryView):

    def post(self, request, check_id):
        try:
            data = self.get_json_body(request)
            result = QualityCheckService.rework(
                check_id,
                target_status=data.get("status", ""),
                notes=data.get("notes", ""),
                actor_id=self.get_user_id(request),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)


class QualityMetricsView(BaseInventoryView):

    def get(self, request):
        try:
            result = QualityCheckService.metrics(
                product_type=request.GET.get("product_type"),
                date_from=parse_date(request.GET.get("date_from", "")),
                date_to=parse_date(request.GET.get("date_to", "")),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== BATCH OPERATIONS ====================

class BatchOperationListView(BaseInventoryView):

    def get(self, request):
        try:
            result = BatchOperationService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                kind=request.GET.get("kind"),
                reason=request.GET.get("reason"),
            )
            return self.respond(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BatchOperationService.execute(
                kind=data.get("kind"),
                reason=data.get("reason"),
                lines=data.get("lines", []),
                created_by_id=self.get_user_id(request),
                target_location=data.get("target_location", ""),
                reference_number=data.get("reference_number", ""),
                notes=data.get("notes", ""),
            )
            return self.respond(result, 201)
        except Exception as e:
            return handle_service_error(e)


class BatchOperationDetailView(BaseInventoryView):

    def get(self, request, operation_id):
        try:
            return self.respond(BatchOperationService.get(operation_id))
        except Exception as e:
            return handle_service_error(e)

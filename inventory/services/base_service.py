from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from django.db.models import Model, QuerySet
from django.utils import timezone


# =============================================================================
# FAULTS
# Raised by services, turned into HTTP responses by the views. Expected
# engine outcomes (validation errors, lost stock races) are not faults.
# =============================================================================

class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    """Request data is malformed before the engine can look at it."""

    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class LedgerUnavailableError(ServiceError):
    """The stock store could not be read or written."""

    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, "LEDGER_UNAVAILABLE", details)


# =============================================================================
# RESPONSES
# =============================================================================

def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if isinstance(data, dict):
        response.update(data)
    elif data is not None:
        response["data"] = data
    return response


def error_response(message: str, code: str = "ERROR", details: Dict = None) -> Dict:
    """A refused operation. ``details`` carries the engine's structured errors."""
    return {
        "success": False,
        "message": message,
        "error_code": code,
        "details": details or {},
    }


def paginate_queryset(queryset: QuerySet, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page or 1)
    per_page = min(max(1, per_page or 20), 100)

    total = queryset.count()
    pages = -(-total // per_page)
    start = (page - 1) * per_page

    return list(queryset[start:start + per_page]), {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": pages,
        "has_next": page < pages,
        "has_prev": page > 1,
    }


# =============================================================================
# COERCION
# =============================================================================

def to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default


def to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Whole numbers only: ``"3"`` and ``3`` pass, ``"3.5"`` and ``3.5`` do not."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    if isinstance(value, float):
        return int(value) if value.is_integer() else default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def round_decimal(value: Optional[Decimal], places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# NUMBERING
# =============================================================================

def generate_number(prefix: str, model_class: Model, field: str = "document_number") -> str:
    """Next ``PREFIX-YYYYMMDD-NNNN`` for today, numbered per prefix."""
    stem = f"{prefix}-{timezone.now():%Y%m%d}-"
    last = (
        model_class.objects
        .filter(**{f"{field}__startswith": stem})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )

    seq = 1
    if last:
        tail = last[len(stem):]
        seq = int(tail) + 1 if tail.isdigit() else 1

    return f"{stem}{seq:04d}"


class BaseService:
    model = None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.model.objects.filter(id=id).first()
        if obj is None:
            raise NotFoundError(cls.model.__name__, id)
        return obj
